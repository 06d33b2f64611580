from pydantic import BaseModel


class PaginationOut(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int

    @classmethod
    def build(cls, total: int, page: int, limit: int) -> "PaginationOut":
        return cls(total=total, page=page, limit=limit, total_pages=-(-total // limit) if limit else 0)
