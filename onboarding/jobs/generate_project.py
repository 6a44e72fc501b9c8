"""
Default provisioning job: open one GitHub issue per onboarding task.

Tasks are taken from the catalog, filtered by the user's chosen tracks, and created as
issues in the catalog repository, assigned to the user, using the user's own token.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import requests

from onboarding.auth.config import load_auth_config
from onboarding.auth.github import api_headers
from onboarding.auth.models import AuthEnv
from onboarding.catalog import Setup, Task, tasks_for_tracks
from onboarding.jobs.base import EventStream, Job

logger = logging.getLogger(__name__)

_TIMEOUT_SECONDS = 15


class GenerateProject(Job):
    def __init__(
        self,
        *,
        user_id: int,
        setup: Setup,
        auth_env: AuthEnv,
        tracks: List[str],
        events: EventStream,
        cancel: Optional[asyncio.Event] = None,
        username: str = "",
        api_url: Optional[str] = None,
    ):
        super().__init__(events, cancel)
        self.user_id = user_id
        self.setup = setup
        self.auth_env = auth_env
        self.tracks = list(tracks)
        self.username = username
        self.api_url = (api_url or load_auth_config().github_api_url).rstrip("/")

    def create_issue(self, task: Task) -> Dict[str, Any]:
        """Blocking GitHub call; run in a worker thread."""
        body: Dict[str, Any] = {"title": task.title, "body": task.description, "labels": list(task.tags)}
        assignees = list(task.assignees) or ([self.username] if self.username else [])
        if assignees:
            body["assignees"] = assignees
        r = requests.post(
            f"{self.api_url}/repos/{self.setup.repository}/issues",
            json=body,
            headers=api_headers(self.auth_env.access_token or ""),
            timeout=_TIMEOUT_SECONDS,
        )
        r.raise_for_status()
        data = r.json()
        return data if isinstance(data, dict) else {}

    async def run(self) -> None:
        tasks = tasks_for_tracks(self.setup, self.tracks)
        logger.info("User %d: generating %d onboarding tasks (tracks=%s)", self.user_id, len(tasks), self.tracks)
        await self.emit("started", f"Generating {len(tasks)} onboarding tasks", tracks=self.tracks, total=len(tasks))

        if tasks and not self.setup.repository:
            await self.emit("failed", "No onboarding repository configured")
            return

        created = 0
        failed = 0
        for idx, task in enumerate(tasks, start=1):
            if self.cancelled:
                logger.info("User %d: job cancelled after %d tasks", self.user_id, idx - 1)
                await self.emit("cancelled", "Job cancelled", created=created, failed=failed)
                return
            await self.emit("task_started", task.title, index=idx, total=len(tasks))
            try:
                issue = await asyncio.to_thread(self.create_issue, task)
            except (requests.RequestException, ValueError) as e:
                failed += 1
                logger.warning("User %d: failed to create issue %r: %s", self.user_id, task.title, e)
                await self.emit("task_failed", task.title, index=idx, error=str(e))
                continue
            created += 1
            await self.emit(
                "issue_created",
                task.title,
                index=idx,
                number=issue.get("number"),
                url=issue.get("html_url"),
            )

        await self.emit("completed", "Onboarding project generated", created=created, failed=failed)


def generate_project(
    *,
    user_id: int,
    setup: Setup,
    auth_env: AuthEnv,
    tracks: list,
    events: EventStream,
    cancel: asyncio.Event,
    username: str = "",
) -> GenerateProject:
    """Default job source for the event bridge."""
    return GenerateProject(
        user_id=user_id,
        setup=setup,
        auth_env=auth_env,
        tracks=tracks,
        events=events,
        cancel=cancel,
        username=username,
    )
