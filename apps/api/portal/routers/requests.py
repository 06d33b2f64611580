from typing import Annotated

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..core.current_user import get_current_user, is_staff
from ..db import get_session
from ..models.request import ITRequest
from ..models.user import User
from ..schemas.common import PaginationOut
from ..schemas.request import (
    ApprovalOut,
    RequestCreateBody,
    RequestDecisionIn,
    RequestListOut,
    RequestOut,
    RequestStatus,
    RequestType,
)
from ..schemas.user import UserSummaryOut
from ..services.request_service import decide_request, get_request, list_requests, submit_request

router = APIRouter(prefix="/requests", tags=["requests"])


def serialize_request(r: ITRequest) -> RequestOut:
    requestor = r.requestor
    manager = requestor.manager if requestor is not None else None
    return RequestOut(
        id=r.id,
        request_number=r.request_number,
        type=r.type,
        subject=r.subject,
        description=r.description,
        justification=r.justification,
        details=r.details,
        status=r.status,
        requestor_id=r.requestor_id,
        requestor=UserSummaryOut.model_validate(requestor) if requestor else None,
        manager=UserSummaryOut.model_validate(manager) if manager else None,
        approvals=[ApprovalOut.model_validate(a) for a in r.approvals],
        created_at=r.created_at,
        updated_at=r.updated_at,
    )


def assert_access(user: User, r: ITRequest) -> None:
    if is_staff(user) or r.requestor_id == user.id:
        return
    if any(a.approver_id == user.id for a in r.approvals):
        return
    raise HTTPException(status_code=403, detail="Forbidden")


@router.post("", response_model=RequestOut)
def create_request(
    payload: Annotated[RequestCreateBody, Body(discriminator="type")],
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    r = submit_request(session, payload, user.id)
    return serialize_request(r)


@router.get("", response_model=RequestListOut)
def list_all_requests(
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    scope: str = Query(default="mine"),
    status: RequestStatus | None = Query(default=None),
    type: RequestType | None = Query(default=None),
    search: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
):
    filters: dict = {}
    if scope == "all":
        if not is_staff(user):
            raise HTTPException(status_code=403, detail="Forbidden")
    elif scope == "approvals":
        filters["approver_id"] = user.id
    elif scope == "mine":
        filters["requestor_id"] = user.id
    else:
        raise HTTPException(status_code=422, detail=f"Invalid scope: {scope}")

    items, total = list_requests(
        session,
        status=status.value if status else None,
        type=type.value if type else None,
        search=search,
        page=page,
        limit=limit,
        **filters,
    )
    return RequestListOut(
        items=[serialize_request(r) for r in items],
        pagination=PaginationOut.build(total, page, limit),
    )


@router.get("/{request_id}", response_model=RequestOut)
def get_request_detail(
    request_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    r = get_request(session, request_id)
    assert_access(user, r)
    return serialize_request(r)


@router.post("/{request_id}/decision", response_model=RequestOut)
def decide(
    request_id: int,
    payload: RequestDecisionIn,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    decide_request(session, request_id, user.id, payload.decision, payload.comments)
    r = get_request(session, request_id)
    session.refresh(r)
    return serialize_request(r)
