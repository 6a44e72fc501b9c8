"""
HTTP + WebSocket surface of the onboarding service.

Routes:
- GET  /version            semantic version (readiness check)
- GET  /healthz            liveness
- GET  /                   start page state (user + one-shot flash message)
- GET  /auth               start GitHub login
- GET  /auth/callback      GitHub redirect target
- GET  /tracks             tracks available to choose from
- POST /workload           record the chosen tracks
- WS   /workload/socket    run the provisioning job and stream its events
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, List, Mapping, Optional

from fastapi import FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, RedirectResponse

from onboarding.auth.config import AuthConfig, load_auth_config
from onboarding.auth.handshake import OAuthHandshake
from onboarding.auth.models import User
from onboarding.auth.session import (
    clear_flash_cookie_kwargs,
    decode_flash,
    decode_session,
    encode_flash,
    encode_session,
    flash_cookie_kwargs,
    flash_cookie_name,
    session_cookie_kwargs,
    session_cookie_name,
)
from onboarding.bridge import EventBridge
from onboarding.catalog import available_tracks, load_setup
from onboarding.errors import NoSession, PreconditionViolation, StateMismatch, TokenExchangeFailed
from onboarding.jobs.generate_project import generate_project
from onboarding.registry import get_registry
from onboarding.version import SEMANTIC_VERSION

logger = logging.getLogger(__name__)

# RFC 6455 policy violation
_WS_POLICY_VIOLATION = 1008

app = FastAPI(title="Technical onboarding")
app.state.job_source = generate_project


def _current_user(cfg: AuthConfig, cookies: Mapping[str, str]) -> Optional[User]:
    uid = decode_session(cfg, cookies.get(session_cookie_name(cfg)))
    return get_registry().get_user(uid)


def _user_view(user: Optional[User]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {
        "id": user.id,
        "username": user.username,
        "authenticated": user.authenticated,
        "tracks": list(user.tracks),
    }


def _redirect_with_flash(cfg: AuthConfig, url: str, message: str) -> RedirectResponse:
    resp = RedirectResponse(url=url, status_code=302)
    resp.headers["Cache-Control"] = "no-store"
    value = encode_flash(cfg, message)
    if value:
        resp.set_cookie(**flash_cookie_kwargs(cfg, value))
    return resp


def _require_oauth(cfg: AuthConfig) -> None:
    if not cfg.oauth_enabled:
        raise HTTPException(status_code=403, detail="GitHub OAuth is not configured")
    if not (cfg.public_base_url or "").strip():
        raise HTTPException(status_code=500, detail="AUTH_PUBLIC_BASE_URL is required for OAuth")
    if not cfg.session_secret:
        raise HTTPException(status_code=500, detail="Session signing is not configured (AUTH_SESSION_SECRET)")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming HTTP requests."""
    start_time = time.time()
    try:
        response = await call_next(request)
        process_time = time.time() - start_time
        logger.debug("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
        return response
    except Exception as e:
        process_time = time.time() - start_time
        logger.exception("%s %s - ERROR after %.3fs: %s", request.method, request.url.path, process_time, str(e))
        raise


@app.get("/version")
def version() -> str:
    return SEMANTIC_VERSION


@app.get("/healthz")
def healthz() -> Dict[str, Any]:
    return {"ok": True}


@app.get("/")
def index(request: Request) -> JSONResponse:
    cfg = load_auth_config()
    user = _current_user(cfg, request.cookies)
    flash = decode_flash(cfg, request.cookies.get(flash_cookie_name(cfg)))
    resp = JSONResponse(content={"ok": True, "user": _user_view(user), "flash": flash})
    if flash is not None:
        resp.set_cookie(**clear_flash_cookie_kwargs(cfg))
    return resp


@app.get("/auth")
def auth(request: Request) -> RedirectResponse:
    """Initiate the GitHub OAuth2 authorization request."""
    cfg = load_auth_config()
    _require_oauth(cfg)

    handshake = OAuthHandshake(cfg, get_registry())
    user, url = handshake.begin_auth(_current_user(cfg, request.cookies))

    resp = RedirectResponse(url=url, status_code=302)
    resp.headers["Cache-Control"] = "no-store"
    resp.set_cookie(**session_cookie_kwargs(cfg, encode_session(cfg, user.id) or ""))
    return resp


@app.get("/auth/callback")
def auth_callback(
    request: Request,
    state: Optional[str] = Query(None),
    code: Optional[str] = Query(None),
) -> RedirectResponse:
    """Handle the GitHub OAuth2 response and set up the user."""
    cfg = load_auth_config()
    _require_oauth(cfg)

    handshake = OAuthHandshake(cfg, get_registry())
    try:
        handshake.handle_callback(_current_user(cfg, request.cookies), state, code)
    except NoSession:
        return _redirect_with_flash(cfg, "/", "Invalid OAuth Callback (invalid user identity)")
    except StateMismatch:
        return _redirect_with_flash(cfg, "/", "Invalid OAuth state, please sign in again")
    except TokenExchangeFailed:
        return _redirect_with_flash(cfg, "/", "Failed to fetch user token, please sign in again")

    resp = RedirectResponse(url="/tracks", status_code=302)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@app.get("/tracks", response_model=None)
def tracks(request: Request) -> Any:
    """List the tracks a user can choose and remember them on the user."""
    cfg = load_auth_config()
    user = _current_user(cfg, request.cookies)
    if user is None:
        logger.error("User not set up correctly")
        return RedirectResponse(url="/", status_code=302)

    user.available_tracks = available_tracks(load_setup())
    return {"ok": True, "user": _user_view(user), "tracks": list(user.available_tracks)}


def _requested_tracks(body: Dict[str, Any]) -> List[str]:
    raw = body.get("tracks")
    if isinstance(raw, list):
        return [str(t) for t in raw]
    # Form-style payload: {"<track>": "on", ...}
    return [str(k) for k, v in body.items() if k != "tracks" and v not in (None, "", False)]


@app.post("/workload", response_model=None)
def workload(request: Request, body: Dict[str, Any]) -> Any:
    """Assign the chosen tracks to the current user."""
    cfg = load_auth_config()
    user = _current_user(cfg, request.cookies)
    if user is None:
        logger.error("User not set up correctly")
        return _redirect_with_flash(cfg, "/", "User not set up correctly")

    # Only known tracks are kept, in catalog order.
    requested = set(_requested_tracks(body))
    known = user.available_tracks or available_tracks(load_setup())
    user.tracks = [t for t in known if t in requested]
    return {"ok": True, "user": _user_view(user), "socket": "/workload/socket"}


async def _close_quietly(websocket: WebSocket, code: int = 1000, reason: str = "") -> None:
    try:
        await websocket.close(code=code, reason=reason)
    except (RuntimeError, OSError, WebSocketDisconnect) as e:
        # Client already gone.
        logger.debug("Websocket close skipped: %s", e)


@app.websocket("/workload/socket")
async def workload_socket(websocket: WebSocket) -> None:
    """Run the provisioning job for the current user and stream its events."""
    cfg = load_auth_config()
    user = _current_user(cfg, websocket.cookies)
    bridge = EventBridge(websocket, user, setup=load_setup(), job_source=app.state.job_source)
    try:
        bridge.check_preconditions()
    except PreconditionViolation as e:
        # Reject the handshake; no job is started.
        await _close_quietly(websocket, code=_WS_POLICY_VIOLATION, reason=str(e))
        return

    await websocket.accept()
    await bridge.run()
    await _close_quietly(websocket)


def run(host: str = "0.0.0.0", port: int = 9000) -> None:
    import uvicorn

    # Configure logging for the application
    log_level = os.getenv("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Map Python logging levels to uvicorn log levels
    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    logger.info("Starting onboarding server on %s:%d (log_level=%s)", host, port, log_level)
    uvicorn.run(app, host=host, port=port, log_level=uvicorn_log_level)
