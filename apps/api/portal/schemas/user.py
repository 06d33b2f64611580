from pydantic import BaseModel, ConfigDict


class UserSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: str
    last_name: str = ""
    email: str | None = None
    department: str | None = None
