from datetime import datetime, timezone
from types import SimpleNamespace
from zoneinfo import ZoneInfo

from avix_api.services import calendar as calendar_service
from avix_api.services import events

ROME = ZoneInfo("Europe/Rome")


def _call(**overrides):
    base = {
        "id": "call-1",
        "customer_number": None,
        "summary": None,
        "sentiment": "neutral",
        "recording_url": None,
        "duration": 0,
        "transcript": None,
        "transcript_json": None,
    }
    base.update(overrides)
    return SimpleNamespace(**base)


def test_extract_phone_strips_separators() -> None:
    assert events.extract_phone("Telefono: +39 333 1234567") == "+393331234567"
    assert events.extract_phone("chiamare 333-1234567 dopo pranzo") == "3331234567"
    assert events.extract_phone("nessun numero") is None
    assert events.extract_phone(None) is None


def test_is_ai_booking_by_description_or_creator() -> None:
    assert events.is_ai_booking({"description": "Prenotazione automatica (AI booking)"})
    assert events.is_ai_booking({"creator": {"email": "bot@avix.ai"}})
    assert events.is_ai_booking({"organizer": {"email": "calendar-service@example.com"}})
    assert not events.is_ai_booking({"description": "Visita di controllo", "creator": {"email": "doc@clinic.it"}})


def test_attendee_name_prefers_display_name_then_email_then_summary() -> None:
    assert events.attendee_name({"attendees": [{"displayName": "Anna", "email": "a@x.it"}]}) == "Anna"
    assert events.attendee_name({"attendees": [{"email": "luca.rossi@x.it"}]}) == "luca.rossi"
    assert events.attendee_name({"summary": "Mario (AI)"}) == "Mario (AI)"
    assert events.attendee_name({}) == "Cliente"


def test_match_call_by_phone_containment() -> None:
    call = _call(customer_number="+393331234567")

    assert events.match_call([call], phone="3331234567", email=None) is call


def test_match_call_ignores_empty_numbers_and_falls_back_to_email() -> None:
    blank = _call(id="blank", customer_number="")
    symbols = _call(id="symbols", customer_number="+")
    by_email = _call(id="mail", summary="Il cliente anna@example.com ha chiesto un appuntamento")

    match = events.match_call([blank, symbols, by_email], phone="3331234567", email="Anna@Example.com")

    assert match is by_email


def test_match_call_first_in_store_order_wins() -> None:
    first = _call(id="first", customer_number="+393331234567")
    second = _call(id="second", customer_number="3331234567")

    assert events.match_call([first, second], phone="3331234567", email=None) is first


def test_enrich_event_attaches_matching_call() -> None:
    event = {
        "id": "evt-1",
        "summary": "Mario (AI)",
        "description": "Prenotazione automatica (AI booking)\nTelefono: 3331234567",
        "start": {"dateTime": "2025-03-10T14:00:00+01:00"},
        "end": {"dateTime": "2025-03-10T14:30:00+01:00"},
    }
    call = _call(customer_number="+393331234567", summary="Prenotazione confermata", duration=95)

    enriched = calendar_service.enrich_event(event, [call])

    assert enriched.id == enriched.google_event_id == "evt-1"
    assert enriched.is_ai_booking is True
    assert enriched.attendee_phone == "3331234567"
    assert enriched.call_id == "call-1"
    assert enriched.call_summary == "Prenotazione confermata"
    assert enriched.call_duration == 95


def test_enrich_event_all_day_and_missing_bounds() -> None:
    now = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
    event = {"id": "evt-2", "start": {"date": "2025-03-10"}}

    enriched = calendar_service.enrich_event(event, [], now=now)

    assert enriched.title == "Evento"
    assert enriched.start == datetime(2025, 3, 10, tzinfo=ROME)
    assert enriched.end == now
    assert enriched.call_id is None


def test_sanitize_text_strips_markup_and_handlers() -> None:
    cleaned = calendar_service.sanitize_text('<b onclick=alert(1)>Visita</b> javascript:void(0)')

    assert "<" not in cleaned
    assert "javascript:" not in cleaned.lower()
    assert "Visita" in cleaned
