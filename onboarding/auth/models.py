from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class AuthEnv:
    """OAuth state for a single login attempt."""

    state_string: str
    redirect_uri: str
    scopes: List[str] = field(default_factory=list)
    access_token: Optional[str] = None  # set once by a successful code exchange

    @property
    def authenticated(self) -> bool:
        return bool(self.access_token)


@dataclass
class User:
    """Per-session user aggregate, owned by the session registry."""

    id: int
    username: str = ""
    auth_env: Optional[AuthEnv] = None
    tracks: List[str] = field(default_factory=list)  # selected, in catalog order
    available_tracks: List[str] = field(default_factory=list)

    @property
    def authenticated(self) -> bool:
        return self.auth_env is not None and self.auth_env.authenticated
