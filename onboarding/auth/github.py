"""
GitHub OAuth2 provider calls (authorize URL, code exchange, account lookup).

All network calls are single-shot: no retries, since authorization codes are
single-use by provider contract.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import requests

from onboarding.auth.config import AuthConfig

_TIMEOUT_SECONDS = 10


def build_authorize_url(
    cfg: AuthConfig,
    *,
    redirect_uri: str,
    state: str,
    scopes: Optional[List[str]] = None,
) -> str:
    """Build the GitHub authorization URL carrying the CSRF `state` nonce."""
    if not cfg.github_client_id:
        raise ValueError("GitHub client ID not configured")

    params = {
        "client_id": cfg.github_client_id,
        "redirect_uri": redirect_uri,
        "scope": " ".join(scopes if scopes is not None else cfg.github_scopes),
        "state": state,
        "allow_signup": "true",
    }
    return f"{cfg.github_authorize_url}?{urlencode(params)}"


def exchange_code_for_token(cfg: AuthConfig, *, redirect_uri: str, code: str, state: str) -> str:
    """
    Exchange an authorization code for an access token.

    GitHub reports bad/expired codes with HTTP 200 and an `error` field, so both the
    status code and the body are checked.
    """
    if not cfg.github_client_id or not cfg.github_client_secret:
        raise ValueError("GitHub client ID/secret not configured")

    payload = {
        "client_id": cfg.github_client_id,
        "client_secret": cfg.github_client_secret,
        "code": code,
        "redirect_uri": redirect_uri,
        "state": state,
    }
    r = requests.post(
        cfg.github_token_url,
        data=payload,
        headers={"Accept": "application/json"},
        timeout=_TIMEOUT_SECONDS,
    )
    if r.status_code >= 400:
        # Avoid leaking sensitive info; include minimal context.
        raise ValueError(f"Token exchange failed (status={r.status_code})")
    data = r.json()
    if not isinstance(data, dict):
        raise ValueError("Invalid token response")
    if data.get("error"):
        raise ValueError(f"Token exchange failed ({data.get('error')})")
    token = str(data.get("access_token") or "").strip()
    if not token:
        raise ValueError("Missing access_token in token response")
    return token


def api_headers(access_token: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {access_token}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
    }


def fetch_account(cfg: AuthConfig, access_token: str) -> Dict[str, Any]:
    r = requests.get(f"{cfg.github_api_url}/user", headers=api_headers(access_token), timeout=_TIMEOUT_SECONDS)
    r.raise_for_status()
    data = r.json()
    if not isinstance(data, dict):
        raise ValueError("Invalid GitHub user response")
    return data


def fetch_username(cfg: AuthConfig, access_token: str) -> str:
    """Resolve the GitHub login of the account that owns `access_token`."""
    login = str(fetch_account(cfg, access_token).get("login") or "").strip()
    if not login:
        raise ValueError("GitHub user response missing login")
    return login
