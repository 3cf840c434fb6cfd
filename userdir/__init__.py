"""Core utilities for the in-memory user directory service."""

from __future__ import annotations

from typing import Any

from .models import User
from .store import DuplicateEmailError, UserNotFoundError, UserStore, UserStoreError


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the HTTP application."""

    from .application import create_application as _create_application

    return _create_application(*args, **kwargs)


__all__ = [
    "DuplicateEmailError",
    "User",
    "UserNotFoundError",
    "UserStore",
    "UserStoreError",
    "create_app",
]
