"""Create database schema and seed a demo tenant for development."""
from __future__ import annotations

import asyncio
import sys

from avix_api.db.session import SessionLocal, create_schema
from avix_api.models.settings import TenantSettings
from avix_api.repositories import settings as settings_repo

DEMO_TENANT = {
	"id": "settings-demo",
	"user_id": "tenant-demo",
	"company_name": "Studio Demo",
	"office_hours_start": "09:00",
	"office_hours_end": "18:00",
	"notification_email": "demo@example.com",
	"business_type": "medical",
	"features_config": {"calendar": True, "calls": True},
}


async def seed_tenant(tenant_id: str) -> None:
	"""Insert or refresh the demo tenant settings row, leaving credentials alone."""

	async with SessionLocal() as session:
		row = await settings_repo.get_by_tenant(session, tenant_id)
		if row is None:
			session.add(TenantSettings(**{**DEMO_TENANT, "user_id": tenant_id, "ai_active": True}))
		else:
			row.company_name = DEMO_TENANT["company_name"]
			row.office_hours_start = DEMO_TENANT["office_hours_start"]
			row.office_hours_end = DEMO_TENANT["office_hours_end"]
			row.notification_email = DEMO_TENANT["notification_email"]
			row.business_type = DEMO_TENANT["business_type"]
			row.features_config = DEMO_TENANT["features_config"]
		await session.commit()


async def main(tenant_id: str) -> None:
	await create_schema()
	await seed_tenant(tenant_id)
	print(f"Database schema ensured and tenant {tenant_id} seeded.")


if __name__ == "__main__":
	asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else DEMO_TENANT["user_id"]))
