"""
Worker pool and dispatcher.

The dispatcher feeds identifiers into a bounded queue at the rate limiter's
pace. A fixed number of workers drain the queue, each running the feed
pipeline for one identifier at a time. Failures go to an error channel and
never stop the other workers.
"""

import asyncio
import time
from contextlib import suppress
from typing import Awaitable, Iterable, Optional

import structlog

from feedposts.models.domain import FeedError, FeedRunResult, RunSummary
from feedposts.services.pipeline import FeedPipeline
from feedposts.services.rate_limiter import RateLimiter

logger = structlog.get_logger(__name__)

# End-of-work marker, one per worker
_DONE = object()


class ErrorChannel:
    """Collects per-feed errors from all workers."""

    def __init__(self):
        self._errors: asyncio.Queue[FeedError] = asyncio.Queue()
        self._closed = False

    def report(self, error: FeedError):
        """Record an error without blocking the reporting worker."""
        if self._closed:
            raise RuntimeError("error channel is closed")
        self._errors.put_nowait(error)

    def close(self):
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def drain(self) -> list[FeedError]:
        """Take every reported error. Only valid once the channel is closed."""
        if not self._closed:
            raise RuntimeError("error channel must be closed before draining")
        errors = []
        while not self._errors.empty():
            errors.append(self._errors.get_nowait())
        return errors


class WorkerPool:
    """Fixed set of workers sharing one bounded queue of feed identifiers."""

    def __init__(
        self,
        pipeline: FeedPipeline,
        size: int = 10,
        queue_size: Optional[int] = None,
    ):
        if size <= 0:
            raise ValueError("size must be positive")
        self.pipeline = pipeline
        self.size = size
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size or size)
        self.errors = ErrorChannel()
        self._tasks: list[asyncio.Task] = []

    def start(self):
        if self._tasks:
            logger.warning("Worker pool already started")
            return
        self._tasks = [
            asyncio.create_task(self._worker(n), name=f"feed-worker-{n}")
            for n in range(self.size)
        ]
        logger.info("Worker pool started", workers=self.size)

    async def _worker(self, worker_id: int) -> list[FeedRunResult]:
        results: list[FeedRunResult] = []
        log = logger.bind(worker=worker_id)

        while True:
            feed_uri = await self.queue.get()
            try:
                if feed_uri is _DONE:
                    break
                log.info("Processing feed", feed_uri=feed_uri)
                results.append(await self.pipeline.run(feed_uri))
            except Exception as e:
                log.warning("Feed failed", feed_uri=feed_uri, error=str(e), error_type=type(e).__name__)
                self.errors.report(FeedError(feed_uri=feed_uri, error=e))
            finally:
                self.queue.task_done()

        log.debug("Worker done", feeds=len(results))
        return results

    async def put(self, feed_uri: str):
        await self.queue.put(feed_uri)

    async def close(self) -> list[FeedRunResult]:
        """
        Signal end of work, wait for every worker, then close the error channel.

        Returns:
            Results of every feed that completed, in completion order per worker
        """
        for _ in self._tasks:
            await self.queue.put(_DONE)
        await self.queue.join()

        per_worker = await asyncio.gather(*self._tasks)
        self._tasks = []
        self.errors.close()
        logger.info("Worker pool stopped")
        return [result for results in per_worker for result in results]


class Dispatcher:
    """Feeds identifiers into a worker pool, one per rate limiter tick."""

    def __init__(
        self,
        pool: WorkerPool,
        rate_limiter: RateLimiter,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self.pool = pool
        self.rate_limiter = rate_limiter
        self.cancel_event = cancel_event or asyncio.Event()

    def cancel(self):
        """Stop dispatching. Feeds already in progress finish their current page."""
        if not self.cancel_event.is_set():
            logger.warning("Dispatch cancelled")
        self.cancel_event.set()

    async def _unless_cancelled(self, aw: Awaitable) -> bool:
        """Await ``aw`` unless cancellation wins the race. True if ``aw`` finished."""
        task = asyncio.ensure_future(aw)
        if self.cancel_event.is_set():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
            return False

        cancelled = asyncio.ensure_future(self.cancel_event.wait())
        done, _ = await asyncio.wait({task, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        if task in done:
            cancelled.cancel()
            task.result()
            return True

        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        return False

    async def run(self, feed_uris: Iterable[str]) -> RunSummary:
        """
        Dispatch every identifier, then wait for the pool and drain its errors.
        """
        start_time = time.monotonic()
        summary = RunSummary()
        self.pool.start()

        for feed_uri in feed_uris:
            if not await self._unless_cancelled(self.rate_limiter.wait()):
                break
            if not await self._unless_cancelled(self.pool.put(feed_uri)):
                break
            summary.dispatched += 1
            logger.info("Feed dispatched", feed_uri=feed_uri, dispatched=summary.dispatched)

        summary.cancelled = self.cancel_event.is_set()
        summary.results = await self.pool.close()
        summary.errors = self.pool.errors.drain()

        for error in summary.errors:
            logger.error("Worker error", feed_uri=error.feed_uri, error=str(error.error), error_type=error.kind)

        summary.duration_seconds = time.monotonic() - start_time
        logger.info(
            "All feeds processed",
            dispatched=summary.dispatched,
            succeeded=summary.succeeded,
            failed=summary.failed,
            interrupted=summary.interrupted,
            cancelled=summary.cancelled,
            duration_seconds=round(summary.duration_seconds, 2),
        )
        return summary
