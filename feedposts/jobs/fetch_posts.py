"""
Batch job that fetches new posts for every known feed generator.

One run:
1. Loads the feed identifiers from the newest input file
2. Creates the database tables if needed
3. Logs in to Bluesky and schedules session refreshes
4. Dispatches every feed to the worker pool, rate limited
5. Logs a summary once all feeds are drained
"""
import asyncio
import signal
from contextlib import AsyncExitStack
from typing import Optional

import httpx
import structlog
from sqlalchemy.exc import SQLAlchemyError

from feedposts.config import Settings, get_settings
from feedposts.errors import ConfigurationError, SerializationError, TransportError
from feedposts.inputs import read_feed_uris, resolve_input
from feedposts.models.database import Database
from feedposts.models.domain import RunSummary
from feedposts.services.paginator import invalid_cursor_markers
from feedposts.services.pipeline import FeedPipeline
from feedposts.services.rate_limiter import RateLimiter
from feedposts.services.store import FeedStore
from feedposts.services.workers import Dispatcher, WorkerPool
from feedposts.sources.base import FeedSource
from feedposts.sources.bluesky import BlueskyFeedSource
from feedposts.sources.session import SessionManager, SessionRefresher

logger = structlog.get_logger(__name__)


async def prepare_database(database: Database):
    """
    Create the tables, treating an unreachable database as a setup failure.

    Raises:
        ConfigurationError: The database cannot be reached or initialised
    """
    try:
        await database.create_tables()
    except (SQLAlchemyError, OSError) as e:
        raise ConfigurationError(f"cannot initialise database: {e}") from e


class FetchPostsJob:
    """
    Orchestrates one fetch run.

    A prebuilt ``database`` or ``source`` can be passed in; otherwise they
    are created from settings, and a live source also gets a logged-in
    session with scheduled refreshes.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        database: Optional[Database] = None,
        source: Optional[FeedSource] = None,
    ):
        self.settings = settings or get_settings()
        self.database = database
        self.source = source
        self.cancel_event = asyncio.Event()

    def load_feed_uris(self) -> list[str]:
        path = resolve_input(self.settings.input_file, self.settings.input_dir)
        return read_feed_uris(path)

    def cancel(self):
        self.cancel_event.set()

    def _install_signal_handlers(self, stack: AsyncExitStack):
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.cancel)
            except (NotImplementedError, RuntimeError):
                # Not available on this platform or outside the main thread
                return
            stack.callback(loop.remove_signal_handler, sig)

    async def _open_source(self, stack: AsyncExitStack) -> FeedSource:
        if self.source is not None:
            return self.source

        client = await stack.enter_async_context(
            httpx.AsyncClient(timeout=self.settings.http_timeout_seconds)
        )
        session = SessionManager(
            client,
            host=self.settings.bsky_host,
            identifier=self.settings.bsky_identifier,
            password=self.settings.bsky_password,
        )
        try:
            await session.create_session()
        except (TransportError, SerializationError) as e:
            raise ConfigurationError(f"cannot log in to {self.settings.bsky_host}: {e}") from e

        refresher = SessionRefresher(session, self.settings.session_refresh_minutes)
        refresher.start()
        stack.callback(refresher.stop)

        return BlueskyFeedSource(
            client,
            session=session,
            host=self.settings.bsky_host,
            retry_attempts=self.settings.fetch_retry_attempts,
        )

    async def run(self, feed_uris: Optional[list[str]] = None) -> RunSummary:
        """Execute the full fetch run."""
        settings = self.settings
        if feed_uris is None:
            feed_uris = self.load_feed_uris()

        logger.info(
            "Starting fetch run",
            feeds=len(feed_uris),
            workers=settings.workers,
            rate_per_second=settings.dispatch_rate_per_second,
        )

        async with AsyncExitStack() as stack:
            database = self.database
            if database is None:
                database = Database(settings.database_url, pool_size=settings.db_pool_size)
                stack.push_async_callback(database.close)
            await prepare_database(database)

            store = FeedStore(database)
            source = await self._open_source(stack)

            pipeline = FeedPipeline(
                source,
                store,
                page_limit=settings.page_limit,
                is_invalid_cursor=invalid_cursor_markers(settings.invalid_cursor_markers),
                cancel_event=self.cancel_event,
            )
            pool = WorkerPool(pipeline, size=settings.workers, queue_size=settings.queue_size)
            dispatcher = Dispatcher(
                pool,
                RateLimiter(settings.dispatch_rate_per_second),
                cancel_event=self.cancel_event,
            )

            self._install_signal_handlers(stack)
            summary = await dispatcher.run(feed_uris)

        return summary


async def run_fetch_job(settings: Optional[Settings] = None) -> RunSummary:
    """Entry point for running the fetch job."""
    job = FetchPostsJob(settings)
    return await job.run()
