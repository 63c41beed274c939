"""
Bluesky session handling.

Creates an authenticated session from an identifier/password pair and keeps
it alive by refreshing the tokens on a fixed interval.
API docs: https://docs.bsky.app/docs/api/com-atproto-server-create-session
"""
from typing import Optional

import httpx
import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from feedposts.errors import ConfigurationError, SerializationError, TransportError

logger = structlog.get_logger(__name__)


class SessionManager:
    """Holds the current access/refresh token pair for one account."""

    CREATE_ENDPOINT = "xrpc/com.atproto.server.createSession"
    REFRESH_ENDPOINT = "xrpc/com.atproto.server.refreshSession"

    def __init__(
        self,
        client: httpx.AsyncClient,
        host: str = "https://bsky.social",
        identifier: Optional[str] = None,
        password: Optional[str] = None,
    ):
        self.client = client
        self.host = host.rstrip("/")
        self.identifier = identifier
        self._password = password
        self.access_token: Optional[str] = None
        self.refresh_token: Optional[str] = None
        self.did: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self.access_token is not None

    async def _post(
        self,
        endpoint: str,
        json: Optional[dict] = None,
        headers: Optional[dict] = None,
    ) -> dict:
        url = f"{self.host}/{endpoint}"
        request_headers = {"Accept": "application/json", **(headers or {})}
        try:
            response = await self.client.post(url, json=json, headers=request_headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"{endpoint} failed with status {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"{endpoint} failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise SerializationError(f"{endpoint} returned invalid JSON") from e
        if not isinstance(data, dict):
            raise SerializationError(f"{endpoint} returned unexpected body")
        return data

    def _store_tokens(self, data: dict) -> tuple[str, str]:
        access = data.get("accessJwt")
        refresh = data.get("refreshJwt")
        if not isinstance(access, str) or not isinstance(refresh, str):
            raise SerializationError("session response is missing tokens")
        self.access_token = access
        self.refresh_token = refresh
        self.did = data.get("did", self.did)
        return access, refresh

    async def create_session(self) -> tuple[str, str]:
        """
        Log in with the configured credentials.

        Raises:
            ConfigurationError: Credentials are missing or rejected
        """
        if not self.identifier or not self._password:
            raise ConfigurationError("Bluesky identifier and password must be set")

        try:
            data = await self._post(
                self.CREATE_ENDPOINT,
                json={"identifier": self.identifier, "password": self._password},
            )
        except TransportError as e:
            if e.status_code in (400, 401):
                raise ConfigurationError(f"login rejected for {self.identifier}") from e
            raise

        tokens = self._store_tokens(data)
        logger.info("Session created", identifier=self.identifier, did=self.did)
        return tokens

    async def refresh(self) -> tuple[str, str]:
        """Exchange the refresh token for a new (access, refresh) pair."""
        if self.refresh_token is None:
            raise TransportError("no session to refresh")

        data = await self._post(
            self.REFRESH_ENDPOINT,
            headers={"Authorization": f"Bearer {self.refresh_token}"},
        )
        tokens = self._store_tokens(data)
        logger.info("Session refreshed", did=self.did)
        return tokens

    def auth_headers(self) -> dict[str, str]:
        if self.access_token is None:
            return {}
        return {"Authorization": f"Bearer {self.access_token}"}


class SessionRefresher:
    """
    Refreshes a session on a fixed interval, independently of the pipeline.

    Failures are logged and the next scheduled refresh still runs.
    """

    def __init__(self, session: SessionManager, interval_minutes: float = 118):
        self.session = session
        self.interval_minutes = interval_minutes
        self._scheduler: Optional[AsyncIOScheduler] = None

    async def _refresh(self):
        try:
            await self.session.refresh()
        except (TransportError, SerializationError) as e:
            logger.error("Session refresh failed", error=str(e))

    def start(self):
        """Start the refresh schedule. Must be called with a running event loop."""
        if self._scheduler is not None:
            logger.warning("Session refresher already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self._refresh,
            IntervalTrigger(minutes=self.interval_minutes),
            id="session_refresh",
            name="Bluesky session refresh",
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info("Session refresher started", interval_minutes=self.interval_minutes)

    def stop(self):
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Session refresher stopped")

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None
