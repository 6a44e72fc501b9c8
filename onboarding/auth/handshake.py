"""
Three-step GitHub OAuth2 handshake: redirect, state verification, code exchange.

The HTTP layer resolves the session's user once and passes it in; this module never
reads cookies itself.
"""

from __future__ import annotations

import base64
import logging
import os
from typing import Optional, Tuple

import requests

from onboarding.auth import github
from onboarding.auth.config import AuthConfig
from onboarding.auth.models import AuthEnv, User
from onboarding.errors import NoSession, StateMismatch, TokenExchangeFailed
from onboarding.registry import SessionRegistry

logger = logging.getLogger(__name__)


def new_state_nonce(nbytes: int = 32) -> str:
    """Random URL-safe CSRF nonce for the OAuth `state` parameter."""
    return base64.urlsafe_b64encode(os.urandom(nbytes)).decode("ascii").rstrip("=")


class OAuthHandshake:
    def __init__(self, cfg: AuthConfig, registry: SessionRegistry):
        self.cfg = cfg
        self.registry = registry

    def new_auth_env(self) -> AuthEnv:
        return AuthEnv(
            state_string=new_state_nonce(),
            redirect_uri=self.cfg.callback_url,
            scopes=list(self.cfg.github_scopes),
        )

    def begin_auth(self, user: Optional[User]) -> Tuple[User, str]:
        """
        Start a login attempt and return `(user, authorize_url)`.

        Creates a user when the session has none. Always replaces the user's AuthEnv,
        which invalidates any flow still in flight for that user.
        """
        if user is None:
            user = self.registry.new_user()
            logger.info("Created session user %d", user.id)

        auth = self.new_auth_env()
        url = github.build_authorize_url(
            self.cfg,
            redirect_uri=auth.redirect_uri,
            state=auth.state_string,
            scopes=auth.scopes,
        )
        user.auth_env = auth
        return user, url

    def handle_callback(self, user: Optional[User], state: Optional[str], code: Optional[str]) -> User:
        """
        Verify `state`, exchange `code` and record the GitHub login on the user.

        Raises NoSession, StateMismatch or TokenExchangeFailed. Nothing is retried.
        """
        if user is None:
            logger.error("Invalid OAuth callback: no session user")
            raise NoSession("Invalid OAuth callback (invalid user identity)")

        auth = user.auth_env
        expected = auth.state_string if auth is not None else ""
        got = state or ""
        # An empty nonce was consumed by an earlier successful callback.
        if auth is None or not expected or got != expected:
            logger.error("Invalid OAuth state for user %d: got %r", user.id, got)
            raise StateMismatch("Invalid OAuth state", expected=expected, got=got)

        try:
            token = github.exchange_code_for_token(
                self.cfg,
                redirect_uri=auth.redirect_uri,
                code=code or "",
                state=auth.state_string,
            )
        except (requests.RequestException, ValueError) as e:
            logger.error("Could not get access token for user %d: %s", user.id, e)
            raise TokenExchangeFailed("Failed to fetch user token", cause=e) from e

        try:
            username = github.fetch_username(self.cfg, token)
        except (requests.RequestException, ValueError) as e:
            logger.error("Could not resolve GitHub account for user %d: %s", user.id, e)
            raise TokenExchangeFailed("Failed to fetch user account", cause=e) from e

        auth.access_token = token
        auth.state_string = ""
        user.username = username
        logger.info("Successfully authenticated GitHub user: %s", user.username)
        return user
