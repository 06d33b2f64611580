from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import String, Text, Integer, DateTime, ForeignKey, func
from .user import Base


TICKET_OPEN = "OPEN"
TICKET_IN_PROGRESS = "IN_PROGRESS"
TICKET_RESOLVED = "RESOLVED"
TICKET_CLOSED = "CLOSED"


class Ticket(Base):
    __tablename__ = "it_tickets"

    id: Mapped[int] = mapped_column(primary_key=True)
    ticket_number: Mapped[str] = mapped_column(String(40), unique=True, index=True)
    subject: Mapped[str] = mapped_column(String(200))
    description: Mapped[str] = mapped_column(Text)

    status: Mapped[str] = mapped_column(String(32), default=TICKET_OPEN, index=True)
    priority: Mapped[str] = mapped_column(String(16), default="MEDIUM")
    category: Mapped[str] = mapped_column(String(32))

    creator_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), index=True)
    assignee_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    # 자산/소프트웨어 마스터는 별도 CRUD 영역. 참조 id만 보관.
    system_asset_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    software_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # 생성 시 우선순위로 고정. 이후 우선순위 변경과 무관.
    sla_deadline: Mapped[DateTime] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    resolved_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    creator = relationship("User", foreign_keys=[creator_id], lazy="joined")
    assignee = relationship("User", foreign_keys=[assignee_id], lazy="joined")
