from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol, Set

from pydantic import BaseModel, Field

from onboarding.auth.models import AuthEnv
from onboarding.catalog import Setup

logger = logging.getLogger(__name__)


class Event(BaseModel):
    """
    One progress update produced by a job.

    Events carry no sequence number; stream order is the only ordering guarantee.
    """

    kind: str
    message: str = ""
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class EventStream:
    """
    Single-producer/single-consumer event channel.

    The producer calls `put()` then `close()`; the consumer calls `get()` until it
    returns None. `maxsize=0` means unbounded.
    """

    _CLOSED = object()

    def __init__(self, maxsize: int = 0):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._detached = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def put(self, event: Event) -> None:
        if self._closed:
            raise RuntimeError("event stream is closed")
        if self._detached:
            return
        await self._queue.put(event)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._detached:
            return
        await self._queue.put(self._CLOSED)

    def detach(self) -> None:
        """
        The consumer is gone: drop queued and future events instead of blocking.

        Draining the queue also releases a producer blocked on a full bounded queue.
        """
        self._detached = True
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break

    async def get(self) -> Optional[Event]:
        """Next event, or None once the producer has closed the stream."""
        item = await self._queue.get()
        if item is self._CLOSED:
            return None
        return item

    def get_nowait(self) -> Optional[Event]:
        """Like `get()` but raises asyncio.QueueEmpty when nothing is ready."""
        item = self._queue.get_nowait()
        if item is self._CLOSED:
            return None
        return item


class Job(ABC):
    """
    A background job that reports progress on an EventStream.

    The job owns its own lifetime. It must close its stream when it finishes, also on
    failure; consumers rely on the close to detect completion.
    """

    def __init__(self, events: EventStream, cancel: Optional[asyncio.Event] = None):
        self.events = events
        self.cancel = cancel if cancel is not None else asyncio.Event()
        self.task: Optional[asyncio.Task] = None

    @property
    def started(self) -> bool:
        return self.task is not None

    @property
    def cancelled(self) -> bool:
        return self.cancel.is_set()

    async def emit(self, kind: str, message: str = "", **data: Any) -> None:
        await self.events.put(Event(kind=kind, message=message, data=data))

    @abstractmethod
    async def run(self) -> None:
        """Produce events, then close `self.events`."""


class JobEventSource(Protocol):
    """Builds a job for one bridge invocation. Does not start it."""

    def __call__(
        self,
        *,
        user_id: int,
        setup: Setup,
        auth_env: AuthEnv,
        tracks: list,
        events: EventStream,
        cancel: asyncio.Event,
        username: str = "",
    ) -> Job: ...


# Strong references to fire-and-forget job tasks; the event loop only keeps weak ones.
_running: Set[asyncio.Task] = set()


def start_job(job: Job) -> asyncio.Task:
    """
    Schedule `job.run()` on the running loop. A job can be started only once.

    The caller gets the task back but is not expected to await it.
    """
    if job.started:
        raise RuntimeError("job already started")
    task = asyncio.create_task(_run_guarded(job), name=f"job-{type(job).__name__}")
    job.task = task
    _running.add(task)
    task.add_done_callback(_running.discard)
    return task


async def _run_guarded(job: Job) -> None:
    try:
        await job.run()
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.exception("Job %s failed", type(job).__name__)
    finally:
        # Never leave a consumer waiting on a stream nobody will close.
        await job.events.close()


def running_jobs() -> int:
    return len(_running)
