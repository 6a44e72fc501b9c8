"""
Duplex event bridge between one client connection and one provisioning job.

For an authenticated user the bridge starts exactly one job, then waits on two
sources at once: text frames from the client and events from the job. Job events are
forwarded to the client as JSON in production order. The bridge stops when the job's
stream closes (COMPLETED) or the client goes away (DISCONNECTED).

The bridge does not own the job. Unless BRIDGE_CANCEL_ON_DISCONNECT is set, a job
keeps running after its client disconnects and its remaining events are discarded,
also when the event queue is bounded.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any, Optional, Protocol, Union

from onboarding.auth.models import User
from onboarding.catalog import Setup
from onboarding.errors import PreconditionViolation, TransportClosed
from onboarding.jobs.base import Event, EventStream, JobEventSource, start_job

logger = logging.getLogger(__name__)


class BridgeState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class BridgeConfig:
    cancel_on_disconnect: bool = False
    event_queue_size: int = 0  # 0 = unbounded


@lru_cache(maxsize=1)
def load_bridge_config() -> BridgeConfig:
    cancel_env = (os.getenv("BRIDGE_CANCEL_ON_DISCONNECT", "") or "").strip().lower()
    raw_size = (os.getenv("BRIDGE_EVENT_QUEUE_SIZE", "") or "").strip()
    try:
        size = max(0, int(raw_size)) if raw_size else 0
    except ValueError:
        size = 0
    return BridgeConfig(
        cancel_on_disconnect=cancel_env in ("1", "true", "yes", "on"),
        event_queue_size=size,
    )


class Connection(Protocol):
    """The subset of a Starlette WebSocket the bridge needs."""

    async def receive_text(self) -> str: ...

    async def send_json(self, data: Any) -> None: ...


Inbound = Union[str, TransportClosed]


class EventBridge:
    def __init__(
        self,
        connection: Optional[Connection],
        user: Optional[User],
        *,
        setup: Setup,
        job_source: JobEventSource,
        config: Optional[BridgeConfig] = None,
    ):
        self.connection = connection
        self.user = user
        self.setup = setup
        self.job_source = job_source
        self.config = config or load_bridge_config()
        self.state = BridgeState.IDLE
        self.forwarded = 0
        self.cancel = asyncio.Event()
        self.job_task: Optional[asyncio.Task] = None

    def check_preconditions(self) -> User:
        if self.connection is None:
            logger.error("Websocket not initialized")
            raise PreconditionViolation("connection is not initialized")
        if self.user is None:
            logger.error("User not set up correctly")
            raise PreconditionViolation("session has no user")
        if not self.user.authenticated:
            logger.error("User %d is not authenticated", self.user.id)
            raise PreconditionViolation("user is not authenticated")
        return self.user

    async def run(self) -> BridgeState:
        """Start the job and relay until a terminal state; returns that state."""
        if self.state is not BridgeState.IDLE:
            raise RuntimeError("bridge already used")
        user = self.check_preconditions()

        events = EventStream(maxsize=self.config.event_queue_size)
        inbox: asyncio.Queue = asyncio.Queue()
        job = self.job_source(
            user_id=user.id,
            setup=self.setup,
            auth_env=user.auth_env,
            tracks=list(user.tracks),
            events=events,
            cancel=self.cancel,
            username=user.username,
        )
        self.job_task = start_job(job)
        self.state = BridgeState.RUNNING
        logger.info("Started job for user '%s' (tracks=%s)", user.username, user.tracks)

        reader = asyncio.create_task(self._read_inbound(inbox), name=f"ws-reader-{user.id}")
        try:
            self.state = await self._relay(events, inbox)
        finally:
            reader.cancel()
            await asyncio.wait({reader})
            if self.state is not BridgeState.COMPLETED:
                # Nobody reads the stream any more; keep the job from blocking on it.
                events.detach()

        if self.state is BridgeState.COMPLETED:
            logger.info("The job has completed")
        else:
            logger.info("The user '%s' has disconnected", user.username)
            if self.config.cancel_on_disconnect:
                self.cancel.set()
        return self.state

    async def _read_inbound(self, inbox: asyncio.Queue) -> None:
        while True:
            try:
                msg = await self.connection.receive_text()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Any read failure means the client is gone; the relay loop decides when to stop.
                await inbox.put(TransportClosed(f"inbound closed: {type(e).__name__}"))
                return
            await inbox.put(msg)

    async def _send(self, event: Event) -> None:
        logger.debug("Sending event: %s", event.kind)
        try:
            await self.connection.send_json(event.model_dump(mode="json"))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise TransportClosed(f"send failed: {type(e).__name__}") from e
        self.forwarded += 1

    async def _relay(self, events: EventStream, inbox: asyncio.Queue) -> BridgeState:
        event_get: Optional[asyncio.Task] = None
        inbound_get: Optional[asyncio.Task] = None
        try:
            while True:
                if event_get is None:
                    event_get = asyncio.ensure_future(events.get())
                if inbound_get is None:
                    inbound_get = asyncio.ensure_future(inbox.get())
                done, _ = await asyncio.wait({event_get, inbound_get}, return_when=asyncio.FIRST_COMPLETED)

                # Job events first, so a disconnect seen in the same wakeup cannot drop one.
                if event_get in done:
                    event = event_get.result()
                    event_get = None
                    if event is None:
                        return BridgeState.COMPLETED
                    try:
                        await self._send(event)
                    except TransportClosed as e:
                        logger.info("%s", e)
                        return BridgeState.DISCONNECTED

                if inbound_get in done:
                    msg: Inbound = inbound_get.result()
                    inbound_get = None
                    if isinstance(msg, TransportClosed):
                        logger.info("%s", msg)
                        if event_get is not None:
                            # Not yet resolved: cancelling leaves any ready item in the stream.
                            event_get.cancel()
                            event_get = None
                        return await self._flush_ready(events)
                    logger.info("Received: %s", msg)
        finally:
            for t in (event_get, inbound_get):
                if t is not None and not t.done():
                    t.cancel()

    async def _flush_ready(self, events: EventStream) -> BridgeState:
        """
        After the client is seen gone, still attempt the events already queued.

        Only events that are ready right now are tried; the first send failure ends it.
        """
        ready = []
        while True:
            try:
                ready.append(events.get_nowait())
            except asyncio.QueueEmpty:
                break
            if ready[-1] is None:
                break
        for event in ready:
            if event is None:
                break
            try:
                await self._send(event)
            except TransportClosed as e:
                logger.debug("%s", e)
                break
        return BridgeState.DISCONNECTED
