"""User model."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from .base import UUIDMixin, created_at_field


class User(UUIDMixin, SQLModel, table=True):
    __tablename__ = "users"

    email: str = Field(unique=True, index=True, nullable=False)
    created_at: datetime = created_at_field()
