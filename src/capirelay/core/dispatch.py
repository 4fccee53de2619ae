"""
Detached dispatch of forward jobs.

The track endpoint acknowledges the caller before the outbound call
finishes. BackgroundDispatcher runs each forward as its own asyncio task;
the result only reaches the logs. InlineDispatcher awaits the job in
place so outcomes can be asserted deterministically.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional, Set

import structlog

from .forwarder import ForwardResult

logger = structlog.get_logger(__name__)

ForwardJob = Callable[[], Awaitable[ForwardResult]]


def log_forward_outcome(result: ForwardResult, event_name: str, event_id: str) -> None:
    """Log the outcome of a forward; nothing else consumes it."""
    if result.success:
        logger.info(
            "FB CAPI processing completed successfully",
            event_name=event_name,
            event_id=event_id,
        )
    else:
        logger.warning(
            "FB CAPI processing issue",
            event_name=event_name,
            event_id=event_id,
            error_details=result.error,
        )


class Dispatcher(ABC):
    """Runs forward jobs without coupling them to the HTTP response."""

    @abstractmethod
    async def dispatch(self, job: ForwardJob, *, event_name: str, event_id: str) -> None:
        """Run one forward job."""

    async def shutdown(self) -> None:
        """Release dispatcher resources."""


class BackgroundDispatcher(Dispatcher):
    """
    Fire-and-forget dispatcher backed by asyncio tasks.

    Tasks are referenced until they finish so they are not garbage
    collected mid-flight. There is no cancellation and no retry; a forward
    still running when the process exits is lost.
    """

    def __init__(self) -> None:
        self._tasks: Set["asyncio.Task[ForwardResult]"] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def dispatch(self, job: ForwardJob, *, event_name: str, event_id: str) -> None:
        task = asyncio.create_task(self._run(job), name=f"capi-forward-{event_id}")
        self._tasks.add(task)

        def _done(finished: "asyncio.Task[ForwardResult]") -> None:
            self._tasks.discard(finished)
            if finished.cancelled():
                logger.warning("FB CAPI forward cancelled", event_name=event_name, event_id=event_id)
                return
            exc = finished.exception()
            if exc is not None:
                logger.error(
                    "Unexpected error during FB CAPI async call",
                    event_name=event_name,
                    event_id=event_id,
                    error=str(exc),
                    error_type=type(exc).__name__,
                    exc_info=exc,
                )
                return
            log_forward_outcome(finished.result(), event_name, event_id)

        task.add_done_callback(_done)
        logger.debug("FB CAPI forward dispatched", event_name=event_name, event_id=event_id)

    async def _run(self, job: ForwardJob) -> ForwardResult:
        return await job()

    async def shutdown(self) -> None:
        if self._tasks:
            logger.warning(
                "Shutting down with FB CAPI forwards still in flight",
                in_flight=len(self._tasks),
            )


class InlineDispatcher(Dispatcher):
    """Awaits each job before returning and keeps the results."""

    def __init__(self) -> None:
        self.results: List[ForwardResult] = []

    @property
    def last_result(self) -> Optional[ForwardResult]:
        return self.results[-1] if self.results else None

    async def dispatch(self, job: ForwardJob, *, event_name: str, event_id: str) -> None:
        result = await job()
        self.results.append(result)
        log_forward_outcome(result, event_name, event_id)
