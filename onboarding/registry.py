from __future__ import annotations

import itertools
import threading
from typing import Dict, Optional

from onboarding.auth.models import User


class SessionRegistry:
    """
    In-memory map of session user ids to User aggregates.

    Ids are allocated from a monotonically increasing counter and never reused
    within a process. Nothing is persisted across restarts.
    """

    def __init__(self, start_id: int = 1):
        self._users: Dict[int, User] = {}
        self._ids = itertools.count(start_id)
        self._lock = threading.Lock()

    def new_user(self) -> User:
        with self._lock:
            user = User(id=next(self._ids))
            self._users[user.id] = user
        return user

    def get_user(self, user_id: Optional[int]) -> Optional[User]:
        if user_id is None:
            return None
        with self._lock:
            return self._users.get(int(user_id))

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)


# Global registry instance
_global_registry: SessionRegistry | None = None


def get_registry() -> SessionRegistry:
    """Get global session registry instance."""
    global _global_registry
    if _global_registry is None:
        _global_registry = SessionRegistry()
    return _global_registry


def reset_registry() -> None:
    """Drop all users (tests)."""
    global _global_registry
    _global_registry = None
