from __future__ import annotations

import json
from typing import Optional

from itsdangerous import BadSignature, BadTimeSignature, URLSafeTimedSerializer

from onboarding.auth.config import AuthConfig

SESSION_SALT = "onboarding-session-v1"
FLASH_SALT = "onboarding-flash-v1"
FLASH_TTL_SECONDS = 5 * 60


def session_cookie_name(cfg: AuthConfig) -> str:
    # `__Host-` requires Secure + Path=/ + no Domain; browsers may reject it on HTTP.
    return "__Host-onboarding_session" if cfg.cookie_secure else "onboarding_session"


def flash_cookie_name(cfg: AuthConfig) -> str:
    return "onboarding_flash"


def _serializer(cfg: AuthConfig, salt: str = SESSION_SALT) -> Optional[URLSafeTimedSerializer]:
    if not cfg.session_secret:
        return None
    return URLSafeTimedSerializer(secret_key=cfg.session_secret, salt=salt)


def encode_session(cfg: AuthConfig, user_id: int) -> Optional[str]:
    s = _serializer(cfg)
    if s is None:
        return None
    # Keep cookie small and non-sensitive: the access token stays server-side.
    raw = json.dumps({"uid": int(user_id)}, separators=(",", ":"), sort_keys=True)
    return s.dumps(raw)


def decode_session(cfg: AuthConfig, value: str | None) -> Optional[int]:
    if not value:
        return None
    s = _serializer(cfg)
    if s is None:
        return None
    try:
        raw = s.loads(value, max_age=cfg.session_ttl_seconds)
        data = json.loads(raw)
        if not isinstance(data, dict):
            return None
        return int(data["uid"])
    except (BadSignature, BadTimeSignature, ValueError, KeyError, TypeError):
        return None


def encode_flash(cfg: AuthConfig, message: str) -> Optional[str]:
    s = _serializer(cfg, FLASH_SALT)
    if s is None:
        return None
    return s.dumps(message)


def decode_flash(cfg: AuthConfig, value: str | None) -> Optional[str]:
    if not value:
        return None
    s = _serializer(cfg, FLASH_SALT)
    if s is None:
        return None
    try:
        return str(s.loads(value, max_age=FLASH_TTL_SECONDS))
    except (BadSignature, BadTimeSignature):
        return None


def _cookie_kwargs(cfg: AuthConfig, *, key: str, value: str, max_age: int) -> dict:
    return {
        "key": key,
        "value": value,
        "max_age": max_age,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }


def session_cookie_kwargs(cfg: AuthConfig, value: str) -> dict:
    return _cookie_kwargs(cfg, key=session_cookie_name(cfg), value=value, max_age=cfg.session_ttl_seconds)


def flash_cookie_kwargs(cfg: AuthConfig, value: str) -> dict:
    return _cookie_kwargs(cfg, key=flash_cookie_name(cfg), value=value, max_age=FLASH_TTL_SECONDS)


def clear_flash_cookie_kwargs(cfg: AuthConfig) -> dict:
    return _cookie_kwargs(cfg, key=flash_cookie_name(cfg), value="", max_age=0)
