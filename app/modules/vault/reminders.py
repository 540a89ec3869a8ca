"""
Reminder Deriver: turns the deadline found in a document's extracted fields into
pending reminders 30, 14, 7 and 1 day(s) before it. Failures never reach the caller.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone

from app.modules.vault import store

logger = logging.getLogger(__name__)

REMINDER_OFFSETS = (
    (30, "30_days"),
    (14, "14_days"),
    (7, "7_days"),
    (1, "1_day"),
)

# Field names per type, first present one wins.
DEADLINE_FIELDS: dict[str, tuple[str, ...]] = {
    "passport": ("expiry_date",),
    "residence_permit": ("expiry_date",),
    "rental_contract": ("cancellation_deadline", "end_date"),
    "employment_contract": ("cancellation_deadline", "end_date"),
    "insurance_documents": ("renewal_date", "expiry_date"),
}


def parse_date(value) -> date | None:
    """ISO (with or without a time part), DD.MM.YYYY or DD/MM/YYYY."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None

    raw = value.strip()
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        pass
    for fmt in ("%d.%m.%Y", "%d/%m/%Y"):
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    return None


def find_deadline(document_type: str, extracted_fields: dict) -> date | None:
    for field_name in DEADLINE_FIELDS.get(document_type, ()):
        deadline = parse_date(extracted_fields.get(field_name))
        if deadline:
            return deadline
    return None


def plan_reminders(deadline: date, today: date) -> list[tuple[str, date]]:
    """(reminder_type, reminder_date) pairs still in the future; nothing once the deadline has passed."""
    if deadline <= today:
        return []
    planned = []
    for days, reminder_type in REMINDER_OFFSETS:
        reminder_date = deadline - timedelta(days=days)
        if reminder_date > today:
            planned.append((reminder_type, reminder_date))
    return planned


def _at_midnight(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


async def create_reminders_for_document(
    document_id: str,
    user_id: str,
    document_type: str,
    extracted_fields: dict | None,
    today: date | None = None,
) -> int:
    """Insert the reminders for one document and return how many were created (0 on any error)."""
    try:
        deadline = find_deadline(document_type, extracted_fields or {})
        if deadline is None:
            return 0

        created = 0
        for reminder_type, reminder_date in plan_reminders(deadline, today or date.today()):
            await store.insert_reminder(
                document_id,
                user_id,
                reminder_type,
                _at_midnight(reminder_date),
                _at_midnight(deadline),
            )
            created += 1

        if created:
            logger.info("Created %d reminders for %s (deadline %s)", created, document_id, deadline.isoformat())
        return created
    except Exception:
        logger.exception("Reminder creation failed for document %s", document_id)
        return 0


def days_remaining(deadline: datetime | date, today: date | None = None) -> int:
    deadline_day = deadline.date() if isinstance(deadline, datetime) else deadline
    return (deadline_day - (today or date.today())).days
