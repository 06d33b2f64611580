from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, func
from .user import Base

EVENT_TICKET_CREATED = "ticket_created"
EVENT_STATUS_CHANGED = "status_changed"
EVENT_ASSIGNEE_ASSIGNED = "assignee_assigned"
EVENT_ASSIGNEE_CHANGED = "assignee_changed"
EVENT_PRIORITY_CHANGED = "priority_changed"
EVENT_CATEGORY_CHANGED = "category_changed"


class TicketEvent(Base):
    """Append-only audit trail of ticket changes."""

    __tablename__ = "ticket_events"
    __table_args__ = (Index("ix_ticket_events_ticket_created", "ticket_id", "created_at"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    ticket_id: Mapped[int] = mapped_column(Integer, ForeignKey("it_tickets.id", ondelete="CASCADE"))
    # 시스템 처리 시 None
    actor_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)

    type: Mapped[str] = mapped_column(String(32))
    from_value: Mapped[str | None] = mapped_column(String(64), nullable=True)
    to_value: Mapped[str | None] = mapped_column(String(64), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    actor = relationship("User", foreign_keys=[actor_id], lazy="joined")
