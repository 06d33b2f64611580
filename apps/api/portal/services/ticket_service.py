"""Support ticket lifecycle: creation with SLA, updates, assignment, comments."""
from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import case, func, or_, select
from sqlalchemy.orm import Session

from ..core.errors import ConflictError, NotFoundError, ValidationError
from ..core.settings import settings
from ..models.comment import TicketComment
from ..models.event import (
    EVENT_ASSIGNEE_ASSIGNED,
    EVENT_ASSIGNEE_CHANGED,
    EVENT_CATEGORY_CHANGED,
    EVENT_PRIORITY_CHANGED,
    EVENT_STATUS_CHANGED,
    EVENT_TICKET_CREATED,
    TicketEvent,
)
from ..models.ticket import (
    TICKET_CLOSED,
    TICKET_IN_PROGRESS,
    TICKET_OPEN,
    TICKET_RESOLVED,
    Ticket,
)
from ..models.user import User
from ..schemas.comment import CommentCreateIn
from ..schemas.ticket import TicketCreateIn, TicketUpdateIn
from . import domain_events as events
from .directory import get_user
from .mail_service import NotificationDispatcher, dispatch
from .mail_templates import ticket_assigned_mail, ticket_created_mail, ticket_status_mail
from .numbering import allocate_number, generate_ticket_number
from .sla import compute_sla_deadline

logger = logging.getLogger(__name__)

PRIORITY_RANK = {"CRITICAL": 0, "HIGH": 1, "MEDIUM": 2, "LOW": 3}
TERMINAL_STATUSES = (TICKET_RESOLVED, TICKET_CLOSED)


def _parse(schema, data):
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError.from_pydantic(exc) from exc


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_ticket(session: Session, ticket_id: int) -> Ticket:
    ticket = session.get(Ticket, ticket_id)
    if not ticket:
        raise NotFoundError(f"Ticket not found: {ticket_id}")
    return ticket


def stamp_transition(ticket: Ticket, now: datetime) -> None:
    """Set resolved_at / closed_at the first time the ticket reaches that status."""
    if ticket.status == TICKET_RESOLVED and ticket.resolved_at is None:
        ticket.resolved_at = now
    if ticket.status == TICKET_CLOSED and ticket.closed_at is None:
        ticket.closed_at = now


def _event(ticket: Ticket, actor_id: int | None, type_: str, old, new, note: str | None = None) -> TicketEvent:
    return TicketEvent(
        ticket_id=ticket.id,
        actor_id=actor_id,
        type=type_,
        from_value=str(old) if old is not None else None,
        to_value=str(new) if new is not None else None,
        note=note,
    )


def submit_ticket(
    session: Session,
    data: TicketCreateIn | Mapping[str, Any],
    creator_id: int,
    *,
    dispatcher: NotificationDispatcher | None = None,
) -> Ticket:
    payload = _parse(TicketCreateIn, data)
    creator = get_user(session, creator_id)
    now = _utcnow()

    ticket = Ticket(
        ticket_number=allocate_number(session, Ticket.ticket_number, generate_ticket_number),
        subject=payload.subject,
        description=payload.description,
        priority=payload.priority,
        category=payload.category,
        status=TICKET_OPEN,
        creator_id=creator.id,
        system_asset_id=payload.system_asset_id,
        software_id=payload.software_id,
        sla_deadline=compute_sla_deadline(payload.priority, now),
        updated_at=now,
    )
    session.add(ticket)
    session.flush()
    session.add(_event(ticket, creator.id, EVENT_TICKET_CREATED, None, TICKET_OPEN))
    session.commit()
    session.refresh(ticket)
    logger.info("ticket created: %s priority=%s", ticket.ticket_number, ticket.priority)

    events.publish(events.TicketCreated(ticket_id=ticket.id, ticket_number=ticket.ticket_number, creator_id=creator.id))
    dispatch(ticket_created_mail(ticket, creator), dispatcher)
    return ticket


def update_ticket(
    session: Session,
    ticket_id: int,
    data: TicketUpdateIn | Mapping[str, Any],
    *,
    actor_id: int | None = None,
    dispatcher: NotificationDispatcher | None = None,
) -> Ticket:
    """Apply a partial update. Priority/category changes never move the SLA deadline."""
    patch = _parse(TicketUpdateIn, data)
    fields = set(patch.model_fields_set)
    for name in ("status", "category", "priority"):
        if name in fields and getattr(patch, name) is None:
            raise ValidationError(f"{name}: must not be null")

    ticket = get_ticket(session, ticket_id)
    assignee_changed = "assignee_id" in fields and patch.assignee_id != ticket.assignee_id
    # 조회 실패 시 티켓이 일부만 바뀐 채 세션에 남지 않도록 변경 전에 확인
    new_assignee = None
    if assignee_changed and patch.assignee_id is not None:
        new_assignee = get_user(session, patch.assignee_id)

    now = _utcnow()
    old_status = ticket.status
    old_assignee_id = ticket.assignee_id
    changes: list[TicketEvent] = []
    assignee_event = None

    if "priority" in fields and patch.priority != ticket.priority:
        changes.append(_event(ticket, actor_id, EVENT_PRIORITY_CHANGED, ticket.priority, patch.priority))
        ticket.priority = patch.priority

    if "category" in fields and patch.category != ticket.category:
        changes.append(_event(ticket, actor_id, EVENT_CATEGORY_CHANGED, ticket.category, patch.category))
        ticket.category = patch.category

    if assignee_changed:
        ev_type = EVENT_ASSIGNEE_ASSIGNED if old_assignee_id is None else EVENT_ASSIGNEE_CHANGED
        assignee_event = _event(ticket, actor_id, ev_type, old_assignee_id, patch.assignee_id)
        changes.append(assignee_event)
        ticket.assignee_id = patch.assignee_id

    status_event = None
    if "status" in fields:
        ticket.status = patch.status
        if ticket.status != old_status:
            status_event = _event(ticket, actor_id, EVENT_STATUS_CHANGED, old_status, ticket.status)
            changes.append(status_event)

    stamp_transition(ticket, now)
    ticket.updated_at = now
    session.add_all(changes)
    session.commit()
    session.refresh(ticket)

    if status_event is not None:
        logger.info("ticket %s status: %s -> %s", ticket.ticket_number, old_status, ticket.status)
        events.publish(events.TicketStatusChanged(ticket_id=ticket.id, from_status=old_status, to_status=ticket.status))
        creator = ticket.creator or session.get(User, ticket.creator_id)
        if creator:
            dispatch(ticket_status_mail(ticket, creator, ticket.status, status_event.id), dispatcher)

    if ticket.assignee_id != old_assignee_id:
        events.publish(
            events.TicketAssigned(
                ticket_id=ticket.id,
                assignee_id=ticket.assignee_id,
                previous_assignee_id=old_assignee_id,
            )
        )
        if new_assignee is not None and assignee_event is not None:
            dispatch(ticket_assigned_mail(ticket, new_assignee, assignee_event.id), dispatcher)
    return ticket


def assign_ticket(
    session: Session,
    ticket_id: int,
    assignee_id: int,
    *,
    actor_id: int | None = None,
    dispatcher: NotificationDispatcher | None = None,
) -> Ticket:
    """Set the assignee and move the ticket to IN_PROGRESS.

    Resolved/closed tickets are reopened as IN_PROGRESS unless
    ``ALLOW_ASSIGN_TERMINAL_TICKETS`` is disabled, in which case a
    ConflictError is raised.
    """
    ticket = get_ticket(session, ticket_id)
    assignee = get_user(session, assignee_id)
    if ticket.status in TERMINAL_STATUSES and not settings.ALLOW_ASSIGN_TERMINAL_TICKETS:
        raise ConflictError(f"Ticket {ticket.ticket_number} is {ticket.status}; reopen it before assigning")

    now = _utcnow()
    old_status = ticket.status
    old_assignee_id = ticket.assignee_id
    assignee_event = None
    status_event = None

    if old_assignee_id != assignee.id:
        ev_type = EVENT_ASSIGNEE_ASSIGNED if old_assignee_id is None else EVENT_ASSIGNEE_CHANGED
        assignee_event = _event(ticket, actor_id, ev_type, old_assignee_id, assignee.id)
        session.add(assignee_event)
    if old_status != TICKET_IN_PROGRESS:
        status_event = _event(ticket, actor_id, EVENT_STATUS_CHANGED, old_status, TICKET_IN_PROGRESS)
        session.add(status_event)

    ticket.assignee_id = assignee.id
    ticket.status = TICKET_IN_PROGRESS
    ticket.updated_at = now
    session.commit()
    session.refresh(ticket)
    logger.info("ticket %s assigned to %s", ticket.ticket_number, assignee.id)

    if status_event is not None:
        events.publish(
            events.TicketStatusChanged(ticket_id=ticket.id, from_status=old_status, to_status=TICKET_IN_PROGRESS)
        )
    if assignee_event is not None:
        events.publish(
            events.TicketAssigned(ticket_id=ticket.id, assignee_id=assignee.id, previous_assignee_id=old_assignee_id)
        )
        dispatch(ticket_assigned_mail(ticket, assignee, assignee_event.id), dispatcher)
    return ticket


def add_comment(
    session: Session,
    ticket_id: int,
    author_id: int,
    content: str,
    is_internal: bool = False,
) -> TicketComment:
    payload = _parse(CommentCreateIn, {"content": content, "is_internal": is_internal})
    body = payload.content.strip()
    if not body:
        raise ValidationError("content: must not be blank")

    ticket = get_ticket(session, ticket_id)
    author = get_user(session, author_id)

    comment = TicketComment(
        ticket_id=ticket.id,
        author_id=author.id,
        content=body,
        is_internal=payload.is_internal,
    )
    session.add(comment)
    # 업데이트 시각 갱신
    ticket.updated_at = _utcnow()
    session.commit()
    session.refresh(comment)

    events.publish(
        events.TicketCommentAdded(
            ticket_id=ticket.id,
            comment_id=comment.id,
            author_id=author.id,
            is_internal=comment.is_internal,
        )
    )
    return comment


def list_comments(session: Session, ticket_id: int, *, include_internal: bool = True) -> list[TicketComment]:
    get_ticket(session, ticket_id)
    stmt = select(TicketComment).where(TicketComment.ticket_id == ticket_id)
    if not include_internal:
        stmt = stmt.where(TicketComment.is_internal.is_(False))
    stmt = stmt.order_by(TicketComment.created_at.desc(), TicketComment.id.desc())
    return list(session.scalars(stmt).all())


def list_events(session: Session, ticket_id: int) -> list[TicketEvent]:
    get_ticket(session, ticket_id)
    stmt = (
        select(TicketEvent)
        .where(TicketEvent.ticket_id == ticket_id)
        .order_by(TicketEvent.created_at.desc(), TicketEvent.id.desc())
    )
    return list(session.scalars(stmt).all())


def list_tickets(
    session: Session,
    *,
    status: str | None = None,
    priority: str | None = None,
    category: str | None = None,
    assignee_id: int | None = None,
    creator_id: int | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Ticket], int]:
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive")

    conditions = []
    if status:
        conditions.append(Ticket.status == status)
    if priority:
        conditions.append(Ticket.priority == priority)
    if category:
        conditions.append(Ticket.category == category)
    if assignee_id is not None:
        conditions.append(Ticket.assignee_id == assignee_id)
    if creator_id is not None:
        conditions.append(Ticket.creator_id == creator_id)
    if search:
        pattern = f"%{search.strip()}%"
        conditions.append(
            or_(
                Ticket.ticket_number.ilike(pattern),
                Ticket.subject.ilike(pattern),
                Ticket.description.ilike(pattern),
            )
        )

    total = session.scalar(select(func.count(Ticket.id)).where(*conditions)) or 0
    priority_rank = case(PRIORITY_RANK, value=Ticket.priority, else_=len(PRIORITY_RANK))
    items = session.scalars(
        select(Ticket)
        .where(*conditions)
        .order_by(priority_rank, Ticket.created_at.desc(), Ticket.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).unique().all()
    return list(items), total
