from datetime import datetime

from pydantic import BaseModel, ConfigDict

from .user import UserSummaryOut


class EventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ticket_id: int
    type: str
    actor_id: int | None = None
    actor: UserSummaryOut | None = None
    from_value: str | None = None
    to_value: str | None = None
    note: str | None = None
    created_at: datetime | None = None
