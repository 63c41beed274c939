"""
Tests for the Bluesky client and session handling, using httpx.MockTransport.
"""

import json

import httpx
import pytest
from tenacity import wait_none

from feedposts.errors import ConfigurationError, SerializationError, TransportError
from feedposts.sources.bluesky import BlueskyFeedSource
from feedposts.sources.session import SessionManager, SessionRefresher

HOST = "https://bsky.test"
FEED = "at://did:plc:alice/app.bsky.feed.generator/cats"


def feed_body(uris, cursor=None) -> dict:
    body = {"feed": [{"post": {"uri": uri, "record": {"text": "hi"}}} for uri in uris]}
    if cursor is not None:
        body["cursor"] = cursor
    return body


def make_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def make_source(client, session=None) -> BlueskyFeedSource:
    return BlueskyFeedSource(client, session=session, host=HOST, retry_wait=wait_none())


class TestBlueskyFeedSource:
    """Tests for BlueskyFeedSource."""

    async def test_get_feed_request_and_parse(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=feed_body(["at://p/1", "at://p/2"], cursor="next"))

        async with make_client(handler) as client:
            page = await make_source(client).get_feed(FEED, cursor="abc", limit=50)

        assert page.cursor == "next"
        assert [item.content_id for item in page.items] == ["at://p/1", "at://p/2"]
        assert page.items[0].payload["post"]["record"]["text"] == "hi"

        request = requests[0]
        assert request.url.path == "/xrpc/app.bsky.feed.getFeed"
        assert request.url.params["feed"] == FEED
        assert request.url.params["limit"] == "50"
        assert request.url.params["cursor"] == "abc"
        assert "Authorization" not in request.headers

    async def test_first_page_sends_no_cursor(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=feed_body([]))

        async with make_client(handler) as client:
            page = await make_source(client).get_feed(FEED)

        assert "cursor" not in requests[0].url.params
        assert page.cursor is None
        assert page.items == ()

    async def test_sends_session_token(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=feed_body([]))

        async with make_client(handler) as client:
            session = SessionManager(client, host=HOST)
            session.access_token = "access-1"
            await make_source(client, session=session).get_feed(FEED)

        assert requests[0].headers["Authorization"] == "Bearer access-1"

    async def test_retries_transient_status(self):
        statuses = iter([503, 429, 200])

        def handler(request):
            status = next(statuses)
            if status != 200:
                return httpx.Response(status)
            return httpx.Response(200, json=feed_body(["at://p/1"]))

        async with make_client(handler) as client:
            page = await make_source(client).get_feed(FEED)

        assert len(page) == 1

    async def test_gives_up_after_retry_attempts(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(502)

        async with make_client(handler) as client:
            with pytest.raises(TransportError) as exc_info:
                await make_source(client).get_feed(FEED)

        assert exc_info.value.status_code == 502
        assert len(calls) == 3

    async def test_client_error_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404, json={"error": "UnknownFeed"})

        async with make_client(handler) as client:
            with pytest.raises(TransportError) as exc_info:
                await make_source(client).get_feed(FEED)

        assert exc_info.value.status_code == 404
        assert len(calls) == 1

    async def test_connection_error_is_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(TransportError) as exc_info:
                await make_source(client).get_feed(FEED)

        assert exc_info.value.status_code is None

    async def test_invalid_json(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>oops</html>")

        async with make_client(handler) as client:
            with pytest.raises(SerializationError):
                await make_source(client).get_feed(FEED)

    @pytest.mark.parametrize("body", [
        {"feed": [{"post": {"record": {}}}]},
        {"feed": [{"reason": "repost"}]},
        {"feed": "nope"},
        {"feed": [], "cursor": 17},
        ["not", "an", "object"],
    ])
    async def test_unexpected_shape(self, body):
        def handler(request):
            return httpx.Response(200, content=json.dumps(body).encode())

        async with make_client(handler) as client:
            with pytest.raises(SerializationError):
                await make_source(client).get_feed(FEED)


class TestSessionManager:
    """Tests for SessionManager."""

    async def test_create_and_refresh(self):
        requests = []

        def handler(request):
            requests.append(request)
            if request.url.path.endswith("createSession"):
                return httpx.Response(200, json={
                    "did": "did:plc:me", "accessJwt": "a1", "refreshJwt": "r1",
                })
            return httpx.Response(200, json={"accessJwt": "a2", "refreshJwt": "r2"})

        async with make_client(handler) as client:
            session = SessionManager(client, host=HOST, identifier="me.bsky.social", password="pw")

            assert await session.create_session() == ("a1", "r1")
            assert session.authenticated
            assert session.did == "did:plc:me"
            assert session.auth_headers() == {"Authorization": "Bearer a1"}

            assert await session.refresh() == ("a2", "r2")

        assert json.loads(requests[0].content) == {"identifier": "me.bsky.social", "password": "pw"}
        assert requests[1].headers["Authorization"] == "Bearer r1"
        assert session.auth_headers() == {"Authorization": "Bearer a2"}
        assert session.did == "did:plc:me"

    async def test_missing_credentials(self):
        async with make_client(lambda request: httpx.Response(200)) as client:
            session = SessionManager(client, host=HOST)
            with pytest.raises(ConfigurationError):
                await session.create_session()

    async def test_rejected_login(self):
        def handler(request):
            return httpx.Response(401, json={"error": "AuthenticationRequired"})

        async with make_client(handler) as client:
            session = SessionManager(client, host=HOST, identifier="me", password="wrong")
            with pytest.raises(ConfigurationError):
                await session.create_session()

    async def test_server_error_on_login(self):
        async with make_client(lambda request: httpx.Response(500)) as client:
            session = SessionManager(client, host=HOST, identifier="me", password="pw")
            with pytest.raises(TransportError):
                await session.create_session()

    async def test_response_without_tokens(self):
        async with make_client(lambda request: httpx.Response(200, json={"did": "x"})) as client:
            session = SessionManager(client, host=HOST, identifier="me", password="pw")
            with pytest.raises(SerializationError):
                await session.create_session()

    async def test_refresh_without_session(self):
        async with make_client(lambda request: httpx.Response(200)) as client:
            with pytest.raises(TransportError):
                await SessionManager(client, host=HOST).refresh()


class TestSessionRefresher:
    """Tests for SessionRefresher."""

    async def test_start_and_stop(self):
        async with make_client(lambda request: httpx.Response(200)) as client:
            refresher = SessionRefresher(SessionManager(client, host=HOST), interval_minutes=5)

            refresher.start()
            assert refresher.is_running
            refresher.start()  # no second scheduler
            assert refresher.is_running

            refresher.stop()
            assert not refresher.is_running
            refresher.stop()

    async def test_refresh_failure_is_logged_not_raised(self):
        async with make_client(lambda request: httpx.Response(500)) as client:
            session = SessionManager(client, host=HOST)
            session.refresh_token = "r1"
            session.access_token = "a1"

            await SessionRefresher(session)._refresh()

        # Old tokens stay in place
        assert session.auth_headers() == {"Authorization": "Bearer a1"}
