"""
Onboarding task catalog.

The catalog is a YAML file listing the tasks a new team member works through. Each
task carries tags; the distinct tags are the tracks a user can opt into.

    repository: my-org/onboarding
    tasks:
      - title: Set up your workstation
        description: ...
        tags: [core]
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Sequence

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_SETUP_FILE = "config/setup.yaml"


class Task(BaseModel):
    title: str
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    assignees: List[str] = Field(default_factory=list)


class Setup(BaseModel):
    repository: Optional[str] = None  # "owner/name" that receives the onboarding issues
    tasks: List[Task] = Field(default_factory=list)


def parse_setup(text: str) -> Setup:
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError("Setup file must contain a mapping")
    return Setup.model_validate(data)


def setup_file_path() -> Path:
    return Path((os.getenv("ONBOARDING_SETUP_FILE") or DEFAULT_SETUP_FILE).strip())


@lru_cache(maxsize=1)
def load_setup() -> Setup:
    """Load the task catalog; a missing file yields an empty catalog."""
    path = setup_file_path()
    if not path.exists():
        logger.warning("Setup file %s not found; no onboarding tasks available", path)
        return Setup()
    setup = parse_setup(path.read_text(encoding="utf-8"))
    logger.info("Loaded %d onboarding tasks from %s", len(setup.tasks), path)
    return setup


def available_tracks(setup: Setup) -> List[str]:
    """Distinct task tags, in order of first appearance."""
    seen = set()
    tracks: List[str] = []
    for task in setup.tasks:
        for tag in task.tags:
            if tag not in seen:
                seen.add(tag)
                tracks.append(tag)
    return tracks


def tasks_for_tracks(setup: Setup, tracks: Sequence[str]) -> List[Task]:
    chosen = set(tracks)
    return [t for t in setup.tasks if chosen.intersection(t.tags)]
