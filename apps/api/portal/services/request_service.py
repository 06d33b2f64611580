"""Service request submission and the approval chain.

A request's status is derived from its approval records only:
any ``REJECTED`` record rejects it, all ``APPROVED`` approves it, anything
else (including an empty chain) leaves it ``PENDING_APPROVAL``.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from ..core.errors import ConflictError, NotFoundError, ValidationError
from ..models.request import (
    APPROVAL_APPROVED,
    APPROVAL_PENDING,
    APPROVAL_REJECTED,
    REQUEST_STATUS_APPROVED,
    REQUEST_STATUS_PENDING,
    REQUEST_STATUS_REJECTED,
    ITRequest,
    RequestApproval,
)
from ..models.user import User
from ..schemas.request import RequestDecisionIn, _RequestCreateBase, request_create_adapter
from . import domain_events as events
from .directory import get_manager, get_user
from .mail_service import NotificationDispatcher, dispatch
from .mail_templates import approval_required_mail, request_decision_mail
from .numbering import allocate_number, generate_request_number

logger = logging.getLogger(__name__)


def _parse_create(data: _RequestCreateBase | Mapping[str, Any]) -> _RequestCreateBase:
    if isinstance(data, _RequestCreateBase):
        return data
    try:
        return request_create_adapter.validate_python(data)
    except PydanticValidationError as exc:
        raise ValidationError.from_pydantic(exc) from exc


def derive_request_status(approvals: Iterable[RequestApproval]) -> str:
    statuses = [a.status for a in approvals]
    if APPROVAL_REJECTED in statuses:
        return REQUEST_STATUS_REJECTED
    if statuses and all(s == APPROVAL_APPROVED for s in statuses):
        return REQUEST_STATUS_APPROVED
    return REQUEST_STATUS_PENDING


def build_approval_chain(session: Session, requestor: User) -> list[RequestApproval]:
    """Approval records for a new request.

    Only the direct manager (level 1) is seeded. Higher levels, if any, are
    added outside this module.
    """
    manager = get_manager(session, requestor)
    if manager is None:
        return []
    return [RequestApproval(approver_id=manager.id, level=1, status=APPROVAL_PENDING)]


def submit_request(
    session: Session,
    data: _RequestCreateBase | Mapping[str, Any],
    requestor_id: int,
    *,
    dispatcher: NotificationDispatcher | None = None,
) -> ITRequest:
    payload = _parse_create(data)
    requestor = get_user(session, requestor_id)

    request = ITRequest(
        request_number=allocate_number(session, ITRequest.request_number, generate_request_number),
        type=payload.type,
        subject=payload.subject,
        description=payload.description,
        justification=payload.justification,
        details=payload.details.model_dump(exclude_none=True) if payload.details else None,
        status=REQUEST_STATUS_PENDING,
        requestor_id=requestor.id,
    )
    request.approvals.extend(build_approval_chain(session, requestor))
    session.add(request)
    session.commit()
    session.refresh(request)

    if not request.approvals:
        # 결재자가 없으면 수동 처리 대상으로 남는다.
        logger.warning(
            "request %s submitted without approval chain (requestor_id=%s has no manager)",
            request.request_number,
            requestor.id,
        )
    logger.info("request submitted: %s type=%s", request.request_number, request.type)

    events.publish(
        events.RequestSubmitted(
            request_id=request.id,
            request_number=request.request_number,
            requestor_id=requestor.id,
            approver_ids=tuple(a.approver_id for a in request.approvals),
        )
    )
    for approval in request.approvals:
        approver = session.get(User, approval.approver_id)
        if approver:
            dispatch(approval_required_mail(request, requestor, approver), dispatcher)
    return request


def decide_request(
    session: Session,
    request_id: int,
    approver_id: int,
    decision: str,
    comments: str | None = None,
    *,
    dispatcher: NotificationDispatcher | None = None,
) -> None:
    """Record an approver's decision and re-derive the request status.

    The request row is locked for the whole read-modify-write so that
    concurrent decisions on the same request are serialized.
    """
    try:
        payload = RequestDecisionIn(decision=decision, comments=comments)
    except PydanticValidationError as exc:
        raise ValidationError.from_pydantic(exc) from exc

    now = datetime.now(timezone.utc)

    locked = session.execute(
        select(ITRequest.id).where(ITRequest.id == request_id).with_for_update()
    ).first()
    if not locked:
        session.rollback()
        raise NotFoundError(f"Request not found: {request_id}")

    request = session.get(ITRequest, request_id, populate_existing=True)
    if request is None:
        session.rollback()
        raise NotFoundError(f"Request not found: {request_id}")
    if request.status != REQUEST_STATUS_PENDING:
        session.rollback()
        raise ConflictError(f"Request {request.request_number} is already {request.status}")

    result = session.execute(
        update(RequestApproval)
        .where(RequestApproval.request_id == request_id)
        .where(RequestApproval.approver_id == approver_id)
        .where(RequestApproval.status == APPROVAL_PENDING)
        .values(status=payload.decision, comments=payload.comments, approved_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        session.rollback()
        raise ConflictError(
            f"No pending approval for approver {approver_id} on request {request.request_number}"
        )

    approvals = session.scalars(
        select(RequestApproval)
        .where(RequestApproval.request_id == request_id)
        .order_by(RequestApproval.level)
        .execution_options(populate_existing=True)
    ).all()

    previous_status = request.status
    request.status = derive_request_status(approvals)
    request.updated_at = now
    session.commit()

    logger.info(
        "request %s decided by %s: %s -> %s",
        request.request_number,
        approver_id,
        payload.decision,
        request.status,
    )

    events.publish(
        events.RequestDecisionRecorded(request_id=request.id, approver_id=approver_id, decision=payload.decision)
    )
    if request.status != previous_status:
        if request.status == REQUEST_STATUS_APPROVED:
            events.publish(events.RequestApproved(request_id=request.id, request_number=request.request_number))
        elif request.status == REQUEST_STATUS_REJECTED:
            events.publish(events.RequestRejected(request_id=request.id, request_number=request.request_number))

    requestor = request.requestor or session.get(User, request.requestor_id)
    if requestor:
        dispatch(
            request_decision_mail(request, requestor, approver_id, payload.decision, payload.comments),
            dispatcher,
        )


def get_request(session: Session, request_id: int) -> ITRequest:
    request = session.get(ITRequest, request_id)
    if not request:
        raise NotFoundError(f"Request not found: {request_id}")
    return request


def list_requests(
    session: Session,
    *,
    status: str | None = None,
    type: str | None = None,
    requestor_id: int | None = None,
    approver_id: int | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[ITRequest], int]:
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive")

    conditions = []
    if status:
        conditions.append(ITRequest.status == status)
    if type:
        conditions.append(ITRequest.type == type)
    if requestor_id is not None:
        conditions.append(ITRequest.requestor_id == requestor_id)
    if approver_id is not None:
        conditions.append(
            ITRequest.id.in_(select(RequestApproval.request_id).where(RequestApproval.approver_id == approver_id))
        )
    if search:
        pattern = f"%{search.strip()}%"
        conditions.append(or_(ITRequest.request_number.ilike(pattern), ITRequest.subject.ilike(pattern)))

    total = session.scalar(select(func.count(ITRequest.id)).where(*conditions)) or 0
    items = session.scalars(
        select(ITRequest)
        .where(*conditions)
        .order_by(ITRequest.created_at.desc(), ITRequest.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).unique().all()
    return list(items), total
