"""Expose ORM models."""
from .call import Call, CallSentiment
from .settings import TenantSettings

__all__ = [
    "Call",
    "CallSentiment",
    "TenantSettings",
]
