from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import Column, String
from sqlmodel import Field, SQLModel


def utc_now_naive() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class Category(SQLModel, table=True):
    __tablename__ = "categories"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    title: str = Field(sa_column=Column(String(100), nullable=False))
    link: str | None = Field(default=None, max_length=255, nullable=True)
    icon_url: str | None = Field(default=None, max_length=500, nullable=True)
    image_url: str | None = Field(default=None, max_length=500, nullable=True)
    desktop_breadcrumb_url: str | None = Field(default=None, max_length=500, nullable=True)
    mobile_breadcrumb_url: str | None = Field(default=None, max_length=500, nullable=True)
    is_active: bool = Field(default=True, nullable=False, index=True)
    sort_order: int = Field(default=0, nullable=False)
    created_at: datetime = Field(default_factory=utc_now_naive, nullable=False)
    updated_at: datetime = Field(default_factory=utc_now_naive, nullable=False)
