"""In-process domain events published after each committed mutation.

Subscribers (cache invalidation, dashboards, audit feeds) register per event
class. Handler errors are logged and never reach the publishing engine.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DomainEvent:
    occurred_at: datetime = field(default_factory=_now, kw_only=True)


@dataclass(frozen=True)
class RequestSubmitted(DomainEvent):
    request_id: int
    request_number: str
    requestor_id: int
    approver_ids: tuple[int, ...] = ()


@dataclass(frozen=True)
class RequestDecisionRecorded(DomainEvent):
    request_id: int
    approver_id: int
    decision: str


@dataclass(frozen=True)
class RequestApproved(DomainEvent):
    request_id: int
    request_number: str


@dataclass(frozen=True)
class RequestRejected(DomainEvent):
    request_id: int
    request_number: str


@dataclass(frozen=True)
class TicketCreated(DomainEvent):
    ticket_id: int
    ticket_number: str
    creator_id: int


@dataclass(frozen=True)
class TicketStatusChanged(DomainEvent):
    ticket_id: int
    from_status: str
    to_status: str


@dataclass(frozen=True)
class TicketAssigned(DomainEvent):
    ticket_id: int
    assignee_id: int | None
    previous_assignee_id: int | None = None


@dataclass(frozen=True)
class TicketCommentAdded(DomainEvent):
    ticket_id: int
    comment_id: int
    author_id: int
    is_internal: bool = False


Handler = Callable[[DomainEvent], None]

_subscribers: dict[type, list[Handler]] = defaultdict(list)


def subscribe(event_type: type, handler: Handler) -> None:
    if handler not in _subscribers[event_type]:
        _subscribers[event_type].append(handler)


def unsubscribe(event_type: type, handler: Handler) -> None:
    handlers = _subscribers.get(event_type)
    if handlers and handler in handlers:
        handlers.remove(handler)


def clear_subscribers() -> None:
    _subscribers.clear()


def publish(event: DomainEvent) -> None:
    # DomainEvent 구독자는 모든 이벤트를 받는다.
    for event_type in (type(event), DomainEvent):
        for handler in list(_subscribers.get(event_type, ())):
            try:
                handler(event)
            except Exception:
                logger.exception("domain event handler failed: %s -> %r", type(event).__name__, handler)
        if type(event) is DomainEvent:
            break
