from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import JSON, String, Text, Integer, DateTime, ForeignKey, UniqueConstraint, func
from .user import Base


REQUEST_STATUS_PENDING = "PENDING_APPROVAL"
REQUEST_STATUS_APPROVED = "APPROVED"
REQUEST_STATUS_REJECTED = "REJECTED"

APPROVAL_PENDING = "PENDING"
APPROVAL_APPROVED = "APPROVED"
APPROVAL_REJECTED = "REJECTED"


class ITRequest(Base):
    __tablename__ = "it_requests"

    id: Mapped[int] = mapped_column(primary_key=True)
    request_number: Mapped[str] = mapped_column(String(40), unique=True, index=True)
    type: Mapped[str] = mapped_column(String(32))
    subject: Mapped[str] = mapped_column(String(200))
    description: Mapped[str] = mapped_column(Text)
    justification: Mapped[str] = mapped_column(Text)
    # 요청 유형별 구조화 데이터 (schemas.request.REQUEST_DETAILS_SCHEMAS 참고)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    status: Mapped[str] = mapped_column(String(32), default=REQUEST_STATUS_PENDING, index=True)
    requestor_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), index=True)

    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    requestor = relationship("User", foreign_keys=[requestor_id], lazy="joined")
    approvals: Mapped[list["RequestApproval"]] = relationship(
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="RequestApproval.level",
    )


class RequestApproval(Base):
    __tablename__ = "it_request_approvals"
    __table_args__ = (UniqueConstraint("request_id", "level", name="uq_it_request_approvals_request_level"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    request_id: Mapped[int] = mapped_column(Integer, ForeignKey("it_requests.id", ondelete="CASCADE"), index=True)
    approver_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), index=True)
    level: Mapped[int] = mapped_column(Integer, default=1)
    status: Mapped[str] = mapped_column(String(16), default=APPROVAL_PENDING)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    request: Mapped[ITRequest] = relationship(back_populates="approvals")
    approver = relationship("User", foreign_keys=[approver_id], lazy="joined")
