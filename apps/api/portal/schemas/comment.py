from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from .user import UserSummaryOut

class CommentCreateIn(BaseModel):
    content: str = Field(min_length=1, max_length=10000)
    is_internal: bool = False

class CommentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ticket_id: int
    author_id: int
    author: UserSummaryOut | None = None
    content: str
    is_internal: bool
    created_at: datetime | None = None
