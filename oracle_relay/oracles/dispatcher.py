"""
Flight Oracle Relay Request Dispatcher

Consumes the OracleRequest event stream and fans every request out to all
registered oracles.

Per event:
    1. Decode airline / flight / timestamp (malformed payloads are dropped)
    2. Snapshot the registry
    3. For every oracle and every one of its three indices, spawn an
       independent submission task

The consumer never waits on submissions. Up to 3 x |registry| tasks run per
event with no ordering between them, and a failure in one never affects the
others. Stream faults arrive in-band as StreamError items and are logged; the
consumer keeps reading until the subscription is cancelled.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any, Dict, Optional, Set

from pydantic import ValidationError

from ..ledger.gateway import Subscription
from ..models import DecodeError, RequestEvent, ResponseAttempt, StreamError
from .registry import OracleRegistry
from .submitter import ResponseSubmitter


logger = logging.getLogger(__name__)


class RequestDispatcher:
    """
    Fans request events out to every (oracle, index) pair.

    Example:
        dispatcher = RequestDispatcher(registry, submitter)
        consumer = asyncio.create_task(dispatcher.run(subscription))
    """

    def __init__(self, registry: OracleRegistry, submitter: ResponseSubmitter):
        self._registry = registry
        self._submitter = submitter
        self._in_flight: Set[asyncio.Task] = set()

        self.events_received = 0
        self.events_dropped = 0
        self.stream_errors = 0
        self.attempts_dispatched = 0

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    @staticmethod
    def decode(payload: Any) -> RequestEvent:
        """
        Decode a raw event payload.

        Raises:
            DecodeError: If the payload is not a mapping or fails validation
        """
        if not isinstance(payload, Mapping):
            raise DecodeError(f"event payload is not a mapping: {type(payload).__name__}")
        try:
            return RequestEvent.model_validate(dict(payload))
        except ValidationError as e:
            raise DecodeError(f"invalid OracleRequest payload: {e}") from e

    async def run(self, subscription: Subscription) -> None:
        """Consume the subscription until it is cancelled."""
        logger.info(f"Dispatcher listening for {subscription.event_name} events")

        async for item in subscription:
            if isinstance(item, StreamError):
                self.stream_errors += 1
                logger.error(f"Event stream error: {item.message}")
                continue
            self.handle(item)

        logger.info(
            f"Dispatcher stopped: {self.events_received} events, "
            f"{self.attempts_dispatched} attempts dispatched"
        )

    def handle(self, payload: Any) -> int:
        """
        Decode and dispatch one payload.

        Returns:
            Number of submission attempts spawned (0 if dropped)
        """
        self.events_received += 1
        try:
            event = self.decode(payload)
        except DecodeError as e:
            self.events_dropped += 1
            logger.warning(f"Dropping OracleRequest event: {e}")
            return 0
        return self.dispatch(event)

    def dispatch(self, event: RequestEvent) -> int:
        """
        Spawn one submission task per (oracle, index) pair.

        Must be called from a running event loop. Returns without waiting
        for the spawned submissions.
        """
        registrations = self._registry.snapshot()
        logger.info(
            f"OracleRequest flight={event.flight} airline={event.airline} "
            f"timestamp={event.timestamp} -> {len(registrations)} oracles"
        )

        spawned = 0
        for registration in registrations:
            for index in registration.index_group:
                attempt = self._submitter.build_attempt(index, event)
                self._spawn(attempt, registration.identity)
                spawned += 1

        self.attempts_dispatched += spawned
        return spawned

    def _spawn(self, attempt: ResponseAttempt, sender: str) -> None:
        task = asyncio.create_task(
            self._submitter.submit(attempt, sender),
            name=f"respond-{sender}-{attempt.index}",
        )
        self._in_flight.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._in_flight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Submission task {task.get_name()} raised: {exc!r}")

    async def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for every in-flight submission to finish. Never cancels them.

        Args:
            timeout: Seconds to wait at most (None waits indefinitely)

        Returns:
            False if submissions were still pending when the timeout expired
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        while self._in_flight:
            remaining = None
            if deadline is not None:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    return False
            await asyncio.wait(list(self._in_flight), timeout=remaining)
        return True

    def stats(self) -> Dict[str, int]:
        return {
            "events_received": self.events_received,
            "events_dropped": self.events_dropped,
            "stream_errors": self.stream_errors,
            "attempts_dispatched": self.attempts_dispatched,
            "in_flight": self.in_flight,
        }
