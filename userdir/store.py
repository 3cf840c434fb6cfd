"""Thread-safe in-memory storage for user records."""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Mapping, Optional

from .models import User

logger = logging.getLogger("userdir.store")

_MUTABLE_FIELDS = ("name", "email", "age")


class UserStoreError(RuntimeError):
    """Base class for expected failures reported by :class:`UserStore`."""


class UserNotFoundError(UserStoreError):
    """Raised when an operation targets an id with no live record."""

    def __init__(self, user_id: str) -> None:
        super().__init__("User not found")
        self.user_id = user_id


class DuplicateEmailError(UserStoreError):
    """Raised when an email is already held by another live record."""

    def __init__(self, email: str) -> None:
        super().__init__("Email already exists")
        self.email = email


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return email.lower()


class UserStore:
    """Owns the user collection and enforces email uniqueness.

    Every public method runs under one lock, so the uniqueness check and the
    commit that follows it never interleave with another caller. Records are
    frozen dataclasses; callers only ever hold values, never the store's state.
    """

    def __init__(self, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._users: Dict[str, User] = {}
        self._ids_by_email: Dict[str, str] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)

    def __contains__(self, user_id: object) -> bool:
        with self._lock:
            return user_id in self._users

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def list_users(self) -> List[User]:
        with self._lock:
            return list(self._users.values())

    def get_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            return self._users.get(user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._lock:
            user_id = self._ids_by_email.get(normalize_email(email))
            if user_id is None:
                return None
            return self._users[user_id]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def create_user(self, name: str, email: str, age: int) -> User:
        """Insert a new user and return it."""

        normalized_email = normalize_email(email)
        with self._lock:
            if normalized_email in self._ids_by_email:
                logger.debug("Rejected new user: email %s already in use", normalized_email)
                raise DuplicateEmailError(normalized_email)

            now = self._clock()
            user = User(
                id=str(uuid.uuid4()),
                name=name.strip(),
                email=normalized_email,
                age=int(age),
                created_at=now,
                updated_at=now,
            )
            self._users[user.id] = user
            self._ids_by_email[normalized_email] = user.id

        logger.info("Created user %s", user.id)
        return user

    def replace_user(
        self,
        user_id: str,
        *,
        name: Optional[str] = None,
        email: Optional[str] = None,
        age: Optional[int] = None,
    ) -> User:
        """Overwrite the supplied fields of an existing user.

        Fields passed as ``None`` keep their current value, which makes this
        behave exactly like :meth:`patch_user`.
        """

        changes = {
            key: value
            for key, value in (("name", name), ("email", email), ("age", age))
            if value is not None
        }
        return self._apply_changes(user_id, changes)

    def patch_user(self, user_id: str, changes: Mapping[str, object]) -> User:
        """Apply the ``name``/``email``/``age`` entries of *changes* to a user."""

        subset = {key: changes[key] for key in _MUTABLE_FIELDS if key in changes}
        return self._apply_changes(user_id, subset)

    def delete_user(self, user_id: str) -> None:
        with self._lock:
            user = self._users.pop(user_id, None)
            if user is None:
                raise UserNotFoundError(user_id)
            self._ids_by_email.pop(user.email, None)

        logger.info("Deleted user %s", user_id)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _apply_changes(self, user_id: str, changes: Mapping[str, object]) -> User:
        with self._lock:
            current = self._users.get(user_id)
            if current is None:
                raise UserNotFoundError(user_id)

            fields: Dict[str, object] = {}
            if "name" in changes:
                fields["name"] = str(changes["name"]).strip()
            if "email" in changes:
                new_email = normalize_email(str(changes["email"]))
                if new_email != current.email and new_email in self._ids_by_email:
                    logger.debug("Rejected update of %s: email %s already in use", user_id, new_email)
                    raise DuplicateEmailError(new_email)
                fields["email"] = new_email
            if "age" in changes:
                fields["age"] = int(changes["age"])  # type: ignore[call-overload]

            updated = replace(current, updated_at=self._next_timestamp(current), **fields)
            self._users[user_id] = updated
            if updated.email != current.email:
                del self._ids_by_email[current.email]
                self._ids_by_email[updated.email] = user_id

        return updated

    def _next_timestamp(self, current: User) -> datetime:
        # updated_at must move forward on every mutation, even on a coarse clock
        now = self._clock()
        if now <= current.updated_at:
            now = current.updated_at + timedelta(microseconds=1)
        return now


__all__ = [
    "DuplicateEmailError",
    "UserNotFoundError",
    "UserStore",
    "UserStoreError",
    "normalize_email",
]
