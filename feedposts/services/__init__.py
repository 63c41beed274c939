"""
Services layer - the fetch pipeline for feedposts.

1. Rate limiter (rate_limiter.py):
   - Fixed-interval ticker pacing feed dispatch

2. Paginator (paginator.py):
   - Walks a feed's cursor chain page by page
   - Stops on a missing, invalid or repeating cursor

3. Deduplicator (dedup.py):
   - Picks out posts a feed has not produced before

4. Store (store.py):
   - Per-feed dedup state and posts, one transaction per page

5. Pipeline (pipeline.py):
   - Fetch → dedup → persist loop for a single feed

6. Workers (workers.py):
   - Fixed worker pool over a bounded queue
   - Dispatcher with cancellation and error collection
"""

from feedposts.services.dedup import deduplicate
from feedposts.services.paginator import CursorWindow, FeedPaginator, invalid_cursor_markers
from feedposts.services.pipeline import FeedPipeline
from feedposts.services.rate_limiter import RateLimiter
from feedposts.services.store import FeedStore
from feedposts.services.workers import Dispatcher, ErrorChannel, WorkerPool

__all__ = [
    # Pacing
    "RateLimiter",
    # Pagination
    "CursorWindow",
    "FeedPaginator",
    "invalid_cursor_markers",
    # Dedup and storage
    "deduplicate",
    "FeedStore",
    # Orchestration
    "FeedPipeline",
    "Dispatcher",
    "ErrorChannel",
    "WorkerPool",
]
