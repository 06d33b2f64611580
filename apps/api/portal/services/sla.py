from __future__ import annotations

from datetime import datetime, timedelta, timezone

from ..core.errors import ValidationError
from ..models.ticket import Ticket, TICKET_CLOSED, TICKET_RESOLVED

SLA_HOURS: dict[str, int] = {
    "CRITICAL": 4,
    "HIGH": 8,
    "MEDIUM": 24,
    "LOW": 48,
}


def sla_offset(priority: str) -> timedelta:
    try:
        return timedelta(hours=SLA_HOURS[priority])
    except KeyError:
        raise ValidationError(f"Invalid priority: {priority}") from None


def compute_sla_deadline(priority: str, now: datetime | None = None) -> datetime:
    if now is None:
        now = datetime.now(timezone.utc)
    return now + sla_offset(priority)


def as_utc(value: datetime) -> datetime:
    # SQLite 등 tz 정보를 보존하지 않는 저장소 대응
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_sla_breached(ticket: Ticket, now: datetime | None = None) -> bool:
    if ticket.status in (TICKET_RESOLVED, TICKET_CLOSED) or ticket.sla_deadline is None:
        return False
    if now is None:
        now = datetime.now(timezone.utc)
    return as_utc(ticket.sla_deadline) < as_utc(now)
