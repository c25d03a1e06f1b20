from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Column, String
from sqlmodel import Field, SQLModel

from catalog_admin.models.category import utc_now_naive


class Subcategory(SQLModel, table=True):
    __tablename__ = "subcategories"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    category_id: UUID = Field(foreign_key="categories.id", nullable=False, index=True)
    name: str = Field(sa_column=Column(String(100), nullable=False))
    is_active: bool = Field(default=True, nullable=False, index=True)
    sort_order: int = Field(default=0, nullable=False)
    created_at: datetime = Field(default_factory=utc_now_naive, nullable=False)
    updated_at: datetime = Field(default_factory=utc_now_naive, nullable=False)
