"""
Metadata store adapter.

Reads and writes per-feed dedup state and fetched posts. Every page update
is one transaction: the feed's state upsert and the insert of its new posts
commit together or not at all.
"""
import json
from typing import Sequence

import structlog
from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from feedposts.errors import ConfigurationError, PersistenceError, SerializationError
from feedposts.models.database import Database, DBFeedGenerator, DBPost
from feedposts.models.domain import FeedState, RawItem

logger = structlog.get_logger(__name__)

# Dialects with INSERT ... ON CONFLICT support
_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class FeedStore:
    """Store adapter over an explicit Database instance."""

    def __init__(self, database: Database):
        self.database = database
        try:
            self._insert = _INSERT_BY_DIALECT[database.dialect]
        except KeyError:
            raise ConfigurationError(
                f"unsupported database dialect: {database.dialect}"
            ) from None

    async def load_state(self, feed_uri: str) -> FeedState:
        """Fetch the feed's dedup state, or an empty one if none is stored."""
        try:
            async with self.database.async_session() as session:
                result = await session.execute(
                    select(DBFeedGenerator.metadata_json).where(DBFeedGenerator.aturi == feed_uri)
                )
                data = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError(f"error fetching metadata for {feed_uri}: {e}") from e

        return FeedState.from_json(data)

    async def persist(
        self,
        feed_uri: str,
        state: FeedState,
        new_items: Sequence[RawItem],
    ) -> None:
        """
        Upsert the feed state and insert new posts in one transaction.

        Posts whose uri is already stored are skipped.

        Raises:
            SerializationError: State or a payload cannot be encoded as JSON
            PersistenceError: The transaction failed and was rolled back
        """
        metadata = state.to_json()
        for item in new_items:
            try:
                json.dumps(item.payload)
            except (TypeError, ValueError) as e:
                raise SerializationError(
                    f"error marshalling post data for {item.content_id}: {e}"
                ) from e

        try:
            async with self.database.async_session() as session:
                async with session.begin():
                    await self._upsert_state(session, feed_uri, metadata)
                    if new_items:
                        await self._insert_posts(session, new_items)
        except SQLAlchemyError as e:
            logger.error("Transaction rolled back", feed_uri=feed_uri, error=str(e))
            raise PersistenceError(f"error saving posts for {feed_uri}: {e}") from e

        logger.debug("Transaction committed", feed_uri=feed_uri, posts=len(new_items))

    async def _upsert_state(self, session: AsyncSession, feed_uri: str, metadata: dict):
        table = DBFeedGenerator.__table__
        stmt = self._insert(table).values(aturi=feed_uri, metadata=metadata)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.aturi],
            set_={"metadata": stmt.excluded["metadata"], "updated_at": func.now()},
        )
        await session.execute(stmt)

    async def _insert_posts(self, session: AsyncSession, items: Sequence[RawItem]):
        table = DBPost.__table__
        stmt = self._insert(table).values(
            [{"uri": item.content_id, "post_data": item.payload} for item in items]
        )
        await session.execute(stmt.on_conflict_do_nothing(index_elements=[table.c.uri]))

    # -------------------------------------------------------------------------
    # Read helpers
    # -------------------------------------------------------------------------

    async def count_feeds(self) -> int:
        async with self.database.async_session() as session:
            result = await session.execute(select(func.count()).select_from(DBFeedGenerator))
            return result.scalar_one()

    async def count_posts(self) -> int:
        async with self.database.async_session() as session:
            result = await session.execute(select(func.count()).select_from(DBPost))
            return result.scalar_one()

    async def get_post(self, uri: str) -> dict | None:
        async with self.database.async_session() as session:
            result = await session.execute(select(DBPost.post_data).where(DBPost.uri == uri))
            return result.scalar_one_or_none()
