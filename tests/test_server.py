from __future__ import annotations

from urllib.parse import parse_qs, urlparse
from unittest.mock import patch

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

import onboarding.api.server as server
from onboarding.jobs.base import Job
from onboarding.registry import get_registry


class _TwoStepJob(Job):
    async def run(self) -> None:
        await self.emit("started", "go")
        await self.emit("completed", "done")


class _RecordingSource:
    def __init__(self):
        self.calls = []

    def __call__(self, *, user_id, setup, auth_env, tracks, events, cancel, username=""):
        self.calls.append({"user_id": user_id, "tracks": tracks, "username": username})
        return _TwoStepJob(events, cancel)


@pytest.fixture
def client(oauth_env, setup_file) -> TestClient:
    return TestClient(server.app)


@pytest.fixture
def job_source(monkeypatch) -> _RecordingSource:
    source = _RecordingSource()
    monkeypatch.setattr(server.app.state, "job_source", source)
    return source


def _begin(c: TestClient) -> str:
    r = c.get("/auth", follow_redirects=False)
    assert r.status_code == 302
    return parse_qs(urlparse(r.headers["location"]).query)["state"][0]


def _login(c: TestClient, username: str = "octocat") -> None:
    state = _begin(c)
    with patch("onboarding.auth.github.exchange_code_for_token", return_value="gho_token"):
        with patch("onboarding.auth.github.fetch_username", return_value=username):
            r = c.get("/auth/callback", params={"state": state, "code": "c0de"}, follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/tracks"


def test_version_is_json_scalar(client) -> None:
    r = client.get("/version")
    assert r.status_code == 200
    assert r.json() == "0.3.0"


def test_healthz(client) -> None:
    assert client.get("/healthz").json() == {"ok": True}


def test_index_without_session(client) -> None:
    body = client.get("/").json()
    assert body == {"ok": True, "user": None, "flash": None}


def test_auth_redirects_to_github_and_sets_session(client) -> None:
    r = client.get("/auth", follow_redirects=False)

    assert r.status_code == 302
    assert r.headers["location"].startswith("https://github.com/login/oauth/authorize?")
    assert r.headers["cache-control"] == "no-store"
    assert "onboarding_session" in r.cookies
    assert len(get_registry()) == 1


def test_auth_disabled_without_github_app(monkeypatch, setup_file) -> None:
    monkeypatch.delenv("GITHUB_CLIENT_ID", raising=False)
    monkeypatch.delenv("GITHUB_CLIENT_SECRET", raising=False)
    server.load_auth_config.cache_clear()
    r = TestClient(server.app).get("/auth", follow_redirects=False)
    assert r.status_code == 403


def test_full_callback_flow_signs_user_in(client) -> None:
    _login(client)

    body = client.get("/").json()
    assert body["user"]["username"] == "octocat"
    assert body["user"]["authenticated"] is True


def test_wrong_state_redirects_to_start_with_flash(client) -> None:
    _begin(client)
    with patch("onboarding.auth.github.exchange_code_for_token") as mock_exchange:
        r = client.get("/auth/callback", params={"state": "forged", "code": "c"}, follow_redirects=False)

    assert r.status_code == 302
    assert r.headers["location"] == "/"
    assert mock_exchange.call_count == 0

    body = client.get("/").json()
    assert body["flash"] == "Invalid OAuth state, please sign in again"
    assert body["user"]["authenticated"] is False
    # Flash is shown once.
    assert client.get("/").json()["flash"] is None


def test_callback_without_session_is_rejected(client) -> None:
    with patch("onboarding.auth.github.exchange_code_for_token") as mock_exchange:
        r = client.get("/auth/callback", params={"state": "s", "code": "c"}, follow_redirects=False)

    assert r.status_code == 302
    assert r.headers["location"] == "/"
    assert mock_exchange.call_count == 0
    assert len(get_registry()) == 0
    assert client.get("/").json()["flash"] == "Invalid OAuth Callback (invalid user identity)"


def test_failed_exchange_shows_generic_message(client) -> None:
    state = _begin(client)
    with patch(
        "onboarding.auth.github.exchange_code_for_token",
        side_effect=ValueError("Token exchange failed (bad_verification_code)"),
    ):
        r = client.get("/auth/callback", params={"state": state, "code": "c"}, follow_redirects=False)

    assert r.headers["location"] == "/"
    flash = client.get("/").json()["flash"]
    assert flash == "Failed to fetch user token, please sign in again"
    assert "bad_verification_code" not in flash


def test_replayed_callback_is_rejected(client) -> None:
    state = _begin(client)
    with patch("onboarding.auth.github.exchange_code_for_token", return_value="gho_token"):
        with patch("onboarding.auth.github.fetch_username", return_value="octocat"):
            client.get("/auth/callback", params={"state": state, "code": "c1"}, follow_redirects=False)

    with patch("onboarding.auth.github.exchange_code_for_token", return_value="gho_other") as mock_exchange:
        r = client.get("/auth/callback", params={"state": state, "code": "c2"}, follow_redirects=False)

    assert r.headers["location"] == "/"
    assert mock_exchange.call_count == 0
    body = client.get("/").json()
    assert body["flash"] == "Invalid OAuth state, please sign in again"
    assert body["user"]["username"] == "octocat"
    assert body["user"]["authenticated"] is True


def test_tracks_requires_user(client) -> None:
    r = client.get("/tracks", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/"


def test_tracks_lists_catalog_tags(client) -> None:
    _login(client)
    body = client.get("/tracks").json()
    assert body["tracks"] == ["core", "kubernetes", "helm"]


def test_workload_keeps_known_tracks_in_catalog_order(client) -> None:
    _login(client)
    client.get("/tracks")

    body = client.post("/workload", json={"tracks": ["helm", "bogus", "core"]}).json()

    assert body["user"]["tracks"] == ["core", "helm"]
    assert body["socket"] == "/workload/socket"


def test_workload_accepts_form_style_payload(client) -> None:
    _login(client)
    body = client.post("/workload", json={"kubernetes": "on", "helm": ""}).json()
    assert body["user"]["tracks"] == ["kubernetes"]


def test_workload_without_user_redirects(client) -> None:
    r = client.post("/workload", json={"tracks": ["core"]}, follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/"


def test_socket_streams_job_events(client, job_source) -> None:
    _login(client)
    client.post("/workload", json={"tracks": ["core"]})

    with client.websocket_connect("/workload/socket") as ws:
        first = ws.receive_json()
        second = ws.receive_json()

    assert [first["kind"], second["kind"]] == ["started", "completed"]
    assert first["message"] == "go"
    assert job_source.calls == [{"user_id": 1, "tracks": ["core"], "username": "octocat"}]


def test_socket_without_session_is_refused(client, job_source) -> None:
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/workload/socket") as ws:
            ws.receive_json()
    assert exc.value.code == 1008
    assert job_source.calls == []


def test_socket_for_unauthenticated_user_is_refused(client, job_source) -> None:
    # Login started but the callback never completed.
    _begin(client)
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/workload/socket") as ws:
            ws.receive_json()
    assert exc.value.code == 1008
    assert job_source.calls == []


def test_two_sockets_run_two_jobs(client, job_source) -> None:
    _login(client)
    for _ in range(2):
        with client.websocket_connect("/workload/socket") as ws:
            assert ws.receive_json()["kind"] == "started"
            assert ws.receive_json()["kind"] == "completed"
    assert len(job_source.calls) == 2
