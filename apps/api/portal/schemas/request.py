from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from .common import PaginationOut
from .user import UserSummaryOut


class RequestType(str, Enum):
    NEW_HARDWARE = "NEW_HARDWARE"
    NEW_SOFTWARE = "NEW_SOFTWARE"
    ACCESS_REQUEST = "ACCESS_REQUEST"
    MODIFICATION = "MODIFICATION"
    REMOVAL = "REMOVAL"


class RequestStatus(str, Enum):
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ApprovalDecision(str, Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


# --- per-type details -------------------------------------------------------

class _Details(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class NewHardwareDetails(_Details):
    item: str = Field(min_length=1, max_length=200)
    quantity: int = Field(default=1, ge=1, le=100)
    specifications: str | None = Field(default=None, max_length=2000)


class NewSoftwareDetails(_Details):
    software_name: str = Field(min_length=1, max_length=200)
    version: str | None = Field(default=None, max_length=50)
    license_type: str | None = Field(default=None, max_length=50)


class AccessRequestDetails(_Details):
    system: str = Field(min_length=1, max_length=200)
    access_level: str = Field(min_length=1, max_length=50)
    duration_days: int | None = Field(default=None, ge=1)


class ModificationDetails(_Details):
    target: str = Field(min_length=1, max_length=200)
    change: str = Field(min_length=1, max_length=2000)


class RemovalDetails(_Details):
    target: str = Field(min_length=1, max_length=200)
    reason: str | None = Field(default=None, max_length=2000)


REQUEST_DETAILS_SCHEMAS: dict[str, type[_Details]] = {
    RequestType.NEW_HARDWARE.value: NewHardwareDetails,
    RequestType.NEW_SOFTWARE.value: NewSoftwareDetails,
    RequestType.ACCESS_REQUEST.value: AccessRequestDetails,
    RequestType.MODIFICATION.value: ModificationDetails,
    RequestType.REMOVAL.value: RemovalDetails,
}


# --- create payloads (tagged by ``type``) -----------------------------------

class _RequestCreateBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    subject: str = Field(min_length=3, max_length=200)
    description: str = Field(min_length=1)
    justification: str = Field(min_length=1)

    @field_validator("subject", "description", "justification")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class NewHardwareRequestIn(_RequestCreateBase):
    type: Literal["NEW_HARDWARE"]
    details: NewHardwareDetails | None = None


class NewSoftwareRequestIn(_RequestCreateBase):
    type: Literal["NEW_SOFTWARE"]
    details: NewSoftwareDetails | None = None


class AccessRequestIn(_RequestCreateBase):
    type: Literal["ACCESS_REQUEST"]
    details: AccessRequestDetails | None = None


class ModificationRequestIn(_RequestCreateBase):
    type: Literal["MODIFICATION"]
    details: ModificationDetails | None = None


class RemovalRequestIn(_RequestCreateBase):
    type: Literal["REMOVAL"]
    details: RemovalDetails | None = None


RequestCreateBody = Union[
    NewHardwareRequestIn,
    NewSoftwareRequestIn,
    AccessRequestIn,
    ModificationRequestIn,
    RemovalRequestIn,
]

RequestCreateIn = Annotated[RequestCreateBody, Field(discriminator="type")]

request_create_adapter: TypeAdapter = TypeAdapter(RequestCreateIn)


class RequestDecisionIn(BaseModel):
    model_config = ConfigDict(extra="forbid", use_enum_values=True)

    decision: ApprovalDecision
    comments: str | None = Field(default=None, max_length=2000)


# --- outputs ----------------------------------------------------------------

class ApprovalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    approver_id: int
    approver: UserSummaryOut | None = None
    level: int
    status: str
    comments: str | None = None
    approved_at: datetime | None = None


class RequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    request_number: str
    type: str
    subject: str
    description: str
    justification: str
    details: dict | None = None
    status: str
    requestor_id: int
    requestor: UserSummaryOut | None = None
    manager: UserSummaryOut | None = None
    approvals: list[ApprovalOut] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


class RequestListOut(BaseModel):
    items: list[RequestOut]
    pagination: PaginationOut
