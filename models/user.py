"""
models/user.py
--------------
Domain model for application users, plus the soft-delete-free DTO
handed to callers that must not see deletion bookkeeping.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class User:
    """
    Represents one row of the users table.

    Attributes:
        email: Login address, unique among users.
        name: Display name.
        id: Database primary key (None for new records).
        is_deleted: True once the user has been soft-deleted.
        deleted_at: When the soft delete happened; set only while is_deleted.
        created_at: Timestamp when the record was created.
        updated_at: Timestamp of the last mutation.
    """
    email: str
    name: str
    id: Optional[int] = None
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __str__(self) -> str:
        status = " (deleted)" if self.is_deleted else ""
        return f"#{self.id} {self.email} - {self.name}{status}"


@dataclass
class UserDto:
    """Public view of a user without soft-delete fields."""
    id: Optional[int]
    email: str
    name: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


def to_dto(user: User) -> UserDto:
    return UserDto(
        id=user.id,
        email=user.email,
        name=user.name,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def to_entity(dto: UserDto) -> User:
    return User(
        id=dto.id,
        email=dto.email,
        name=dto.name,
        created_at=dto.created_at,
        updated_at=dto.updated_at,
    )
