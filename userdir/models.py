"""Domain models for the user directory."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class User:
    """Represents a user record held by the in-memory directory."""

    id: str
    name: str
    email: str
    age: int
    created_at: datetime
    updated_at: datetime


__all__ = ["User"]
