"""
Pytest config.

Tests import the local `onboarding/` package from the repo root, whether or not the
project has been installed. Process-global state (session registry, cached config)
is reset around every test.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()


def _clear_caches() -> None:
    from onboarding.auth.config import load_auth_config
    from onboarding.bridge import load_bridge_config
    from onboarding.catalog import load_setup

    load_auth_config.cache_clear()
    load_bridge_config.cache_clear()
    load_setup.cache_clear()


SETUP_YAML = """
repository: example-org/onboarding
tasks:
  - title: Set up your workstation
    tags: [core]
  - title: Deploy a sample workload
    tags: [kubernetes]
  - title: Write a Helm chart
    tags: [kubernetes, helm]
"""


@pytest.fixture(autouse=True)
def _reset_process_state(monkeypatch: pytest.MonkeyPatch):
    """Fresh registry and config caches for every test."""
    from onboarding.registry import reset_registry

    for name in ("BRIDGE_CANCEL_ON_DISCONNECT", "BRIDGE_EVENT_QUEUE_SIZE", "ONBOARDING_SETUP_FILE"):
        monkeypatch.delenv(name, raising=False)
    reset_registry()
    _clear_caches()
    yield
    reset_registry()
    _clear_caches()


@pytest.fixture
def oauth_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """GitHub OAuth configured against the TestClient base URL (plain HTTP cookies)."""
    monkeypatch.setenv("GITHUB_CLIENT_ID", "test-client-id")
    monkeypatch.setenv("GITHUB_CLIENT_SECRET", "test-client-secret")
    monkeypatch.setenv("AUTH_PUBLIC_BASE_URL", "http://testserver")
    monkeypatch.setenv("AUTH_SESSION_SECRET", "test-secret-key-for-testing-purposes-only")
    _clear_caches()


@pytest.fixture
def setup_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "setup.yaml"
    path.write_text(SETUP_YAML, encoding="utf-8")
    monkeypatch.setenv("ONBOARDING_SETUP_FILE", str(path))
    _clear_caches()
    return path
