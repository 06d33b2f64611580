from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..core.current_user import get_current_user, is_staff
from ..db import get_session
from ..models.comment import TicketComment
from ..models.user import User
from ..schemas.comment import CommentCreateIn, CommentOut
from ..services.ticket_service import add_comment, get_ticket, list_comments
from .tickets import assert_access

router = APIRouter(prefix="/tickets/{ticket_id}/comments", tags=["comments"])


def serialize_comment(c: TicketComment) -> CommentOut:
    return CommentOut.model_validate(c)


@router.get("", response_model=list[CommentOut])
def get_comments(
    ticket_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    assert_access(user, get_ticket(session, ticket_id))
    # 내부 메모는 스태프에게만 노출
    comments = list_comments(session, ticket_id, include_internal=is_staff(user))
    return [serialize_comment(c) for c in comments]


@router.post("", response_model=CommentOut)
def create_comment(
    ticket_id: int,
    payload: CommentCreateIn,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    assert_access(user, get_ticket(session, ticket_id))
    if payload.is_internal and not is_staff(user):
        raise HTTPException(status_code=403, detail="Only IT staff can add internal comments")
    comment = add_comment(session, ticket_id, user.id, payload.content, payload.is_internal)
    return serialize_comment(comment)
