from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional


@dataclass(frozen=True)
class AuthConfig:
    # GitHub OAuth app
    github_client_id: Optional[str]
    github_client_secret: Optional[str]
    github_scopes: List[str]
    github_authorize_url: str
    github_token_url: str
    github_api_url: str

    # Session configuration
    public_base_url: Optional[str]  # Required for the OAuth redirect
    session_secret: Optional[str]  # Required for session signing
    session_ttl_seconds: int
    cookie_secure: bool

    @property
    def oauth_enabled(self) -> bool:
        """OAuth is enabled if the GitHub app credentials are configured."""
        return bool(self.github_client_id and self.github_client_secret)

    @property
    def callback_url(self) -> str:
        base = (self.public_base_url or "").rstrip("/")
        return f"{base}/auth/callback"


def _parse_csv(value: str) -> List[str]:
    items = [x.strip() for x in (value or "").split(",")]
    return [x for x in items if x]


def _env_str(name: str, default: str = "") -> str:
    return (os.getenv(name, "") or default).strip()


@lru_cache(maxsize=1)
def load_auth_config() -> AuthConfig:
    """
    Load authentication configuration from environment variables.

    OAuth is enabled if GITHUB_CLIENT_ID and GITHUB_CLIENT_SECRET are set.
    """
    public_base_url = _env_str("AUTH_PUBLIC_BASE_URL") or None
    cookie_secure_env = _env_str("AUTH_COOKIE_SECURE").lower()
    if cookie_secure_env in ("1", "true", "yes", "on"):
        cookie_secure = True
    elif cookie_secure_env in ("0", "false", "no", "off"):
        cookie_secure = False
    else:
        # Default: secure cookies when base URL is https; otherwise allow local dev.
        cookie_secure = True if (public_base_url or "").startswith("https://") else False

    ttl = int(float(_env_str("AUTH_SESSION_TTL_SECONDS", "43200") or "43200"))  # 12h default
    if ttl <= 60:
        ttl = 60

    return AuthConfig(
        github_client_id=_env_str("GITHUB_CLIENT_ID") or None,
        github_client_secret=_env_str("GITHUB_CLIENT_SECRET") or None,
        github_scopes=_parse_csv(_env_str("GITHUB_OAUTH_SCOPES", "repo,read:user")),
        github_authorize_url=_env_str("GITHUB_AUTHORIZE_URL", "https://github.com/login/oauth/authorize"),
        github_token_url=_env_str("GITHUB_TOKEN_URL", "https://github.com/login/oauth/access_token"),
        github_api_url=_env_str("GITHUB_API_URL", "https://api.github.com").rstrip("/"),
        public_base_url=public_base_url,
        session_secret=_env_str("AUTH_SESSION_SECRET") or None,
        session_ttl_seconds=ttl,
        cookie_secure=cookie_secure,
    )
