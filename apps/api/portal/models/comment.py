from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Boolean, Integer, Text, DateTime, ForeignKey, func
from .user import Base

class TicketComment(Base):
    __tablename__ = "ticket_comments"

    id: Mapped[int] = mapped_column(primary_key=True)

    ticket_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("it_tickets.id", ondelete="CASCADE"), index=True
    )
    author_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id")
    )

    content: Mapped[str] = mapped_column(Text)
    # 담당자(IT 스태프)에게만 노출
    is_internal: Mapped[bool] = mapped_column(Boolean, default=False, server_default="0")

    created_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    author = relationship("User", lazy="joined")
