"""Organization model."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from .base import UUIDMixin, created_at_field


class Organization(UUIDMixin, SQLModel, table=True):
    __tablename__ = "organizations"

    name: str = Field(nullable=False, index=True)
    created_at: datetime = created_at_field()
