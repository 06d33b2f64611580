from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .common import PaginationOut
from .user import UserSummaryOut


class TicketPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class TicketCategory(str, Enum):
    HARDWARE = "HARDWARE"
    SOFTWARE = "SOFTWARE"
    NETWORK = "NETWORK"
    ACCESS = "ACCESS"
    EMAIL = "EMAIL"
    OTHER = "OTHER"


class TicketStatus(str, Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


class TicketCreateIn(BaseModel):
    model_config = ConfigDict(extra="forbid", use_enum_values=True, validate_default=True)

    subject: str = Field(min_length=3, max_length=200)
    description: str = Field(min_length=1)
    priority: TicketPriority = TicketPriority.MEDIUM
    category: TicketCategory
    system_asset_id: int | None = None
    software_id: int | None = None

    @field_validator("subject", "description")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class TicketUpdateIn(BaseModel):
    """Partial update. Only these fields are mutable after creation."""

    model_config = ConfigDict(extra="forbid", use_enum_values=True)

    status: TicketStatus | None = None
    assignee_id: int | None = None
    category: TicketCategory | None = None
    priority: TicketPriority | None = None


class TicketAssignIn(BaseModel):
    assignee_id: int


class TicketOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ticket_number: str
    subject: str
    description: str
    status: str
    priority: str
    category: str
    creator_id: int
    assignee_id: int | None = None
    creator: UserSummaryOut | None = None
    assignee: UserSummaryOut | None = None
    system_asset_id: int | None = None
    software_id: int | None = None
    sla_deadline: datetime
    sla_breached: bool = False
    resolved_at: datetime | None = None
    closed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class TicketListOut(BaseModel):
    items: list[TicketOut]
    pagination: PaginationOut
