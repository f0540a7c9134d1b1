"""
User model for every person who signs in: patients, providers and admins.

A single table holds all roles. The role is fixed at registration and drives
which connection operations and record views a user is allowed.
"""

from enum import Enum
from typing import Optional
from datetime import datetime
from sqlalchemy import String, Boolean, TIMESTAMP, Index
from sqlalchemy.orm import Mapped, mapped_column

from core.database import Base


class UserRole(str, Enum):
    """Roles recognised by the authorization gate."""

    patient = "patient"
    provider = "provider"
    admin = "admin"


class User(Base):
    """Unified user model for patients, providers and administrators."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    email: Mapped[str] = mapped_column(String(255), unique=True)
    """Globally unique email, used by providers to look a patient up."""

    full_name: Mapped[str] = mapped_column(String(255))

    role: Mapped[str] = mapped_column(String(20), nullable=False)
    """One of UserRole values."""

    specialty: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """Providers only; display in notifications and request inboxes."""

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_users_role", "role"),
    )

    @property
    def user_role(self) -> UserRole:
        return UserRole(self.role)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, role='{self.role}')>"
