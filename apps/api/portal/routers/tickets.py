from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..core.current_user import get_current_user, is_staff, require_staff
from ..db import get_session
from ..models.ticket import Ticket
from ..models.user import User
from ..schemas.common import PaginationOut
from ..schemas.event import EventOut
from ..schemas.ticket import (
    TicketAssignIn,
    TicketCategory,
    TicketCreateIn,
    TicketListOut,
    TicketOut,
    TicketPriority,
    TicketStatus,
    TicketUpdateIn,
)
from ..services.sla import is_sla_breached
from ..services.ticket_service import (
    assign_ticket,
    get_ticket,
    list_events,
    list_tickets,
    submit_ticket,
    update_ticket,
)

router = APIRouter(prefix="/tickets", tags=["tickets"])


def serialize_ticket(t: Ticket) -> TicketOut:
    out = TicketOut.model_validate(t)
    out.sla_breached = is_sla_breached(t)
    return out


def assert_access(user: User, t: Ticket) -> None:
    if is_staff(user) or t.creator_id == user.id or t.assignee_id == user.id:
        return
    raise HTTPException(status_code=403, detail="Forbidden")


@router.post("", response_model=TicketOut)
def create_ticket(
    payload: TicketCreateIn,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    t = submit_ticket(session, payload, user.id)
    return serialize_ticket(t)


@router.get("", response_model=TicketListOut)
def list_all_tickets(
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    scope: str = Query(default="mine"),
    status: TicketStatus | None = Query(default=None),
    priority: TicketPriority | None = Query(default=None),
    category: TicketCategory | None = Query(default=None),
    search: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
):
    filters: dict = {}
    if scope == "all":
        if not is_staff(user):
            raise HTTPException(status_code=403, detail="Forbidden")
    elif scope == "assigned":
        filters["assignee_id"] = user.id
    elif scope == "mine":
        filters["creator_id"] = user.id
    else:
        raise HTTPException(status_code=422, detail=f"Invalid scope: {scope}")

    items, total = list_tickets(
        session,
        status=status.value if status else None,
        priority=priority.value if priority else None,
        category=category.value if category else None,
        search=search,
        page=page,
        limit=limit,
        **filters,
    )
    return TicketListOut(
        items=[serialize_ticket(t) for t in items],
        pagination=PaginationOut.build(total, page, limit),
    )


@router.get("/{ticket_id}", response_model=TicketOut)
def get_ticket_detail(
    ticket_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    t = get_ticket(session, ticket_id)
    assert_access(user, t)
    return serialize_ticket(t)


@router.patch("/{ticket_id}", response_model=TicketOut)
def patch_ticket(
    ticket_id: int,
    payload: TicketUpdateIn,
    session: Session = Depends(get_session),
    user: User = Depends(require_staff),
):
    t = update_ticket(session, ticket_id, payload, actor_id=user.id)
    return serialize_ticket(t)


@router.patch("/{ticket_id}/assign", response_model=TicketOut)
def assign(
    ticket_id: int,
    payload: TicketAssignIn,
    session: Session = Depends(get_session),
    user: User = Depends(require_staff),
):
    t = assign_ticket(session, ticket_id, payload.assignee_id, actor_id=user.id)
    return serialize_ticket(t)


@router.get("/{ticket_id}/events", response_model=list[EventOut])
def get_events(
    ticket_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    t = get_ticket(session, ticket_id)
    assert_access(user, t)
    return list_events(session, ticket_id)
