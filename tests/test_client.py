"""Tests for the reauthenticating client."""

import asyncio

import pytest

from collegemate import (
    AuthenticationError,
    NetworkError,
    ReauthenticatingClient,
    RequestDescriptor,
    Response,
    SessionStore,
)

from conftest import FakeTransport

EVENTS = RequestDescriptor("GET", "/events/all")


def protected(valid_token: str = "new-token", body: object = None):
    """Handler that only accepts ``valid_token``."""

    def handler(descriptor: RequestDescriptor, credential: str | None) -> Response:
        if credential != valid_token:
            return Response(401, {"message": "jwt expired"})
        return Response(200, body if body is not None else {"data": "ok"})

    return handler


def refresh_ok(token: str = "new-token", delay: float = 0.05, user: dict | None = None):
    async def handler(descriptor: RequestDescriptor, credential: str | None) -> Response:
        await asyncio.sleep(delay)
        data: dict = {"accessToken": token}
        if user is not None:
            data["user"] = user
        return Response(200, {"data": data})

    return handler


class TestPassThrough:
    async def test_attaches_current_token(
        self, client: ReauthenticatingClient, transport: FakeTransport
    ) -> None:
        transport.route("GET", "/events/all", protected("old-token"))

        response = await client.execute(EVENTS)

        assert response.status == 200
        assert transport.calls[0][1] == "old-token"

    async def test_domain_errors_are_returned(
        self, client: ReauthenticatingClient, transport: FakeTransport
    ) -> None:
        transport.reply("GET", "/events/all", 403, {"message": "Admins only"})

        response = await client.execute(EVENTS)

        assert response.status == 403
        assert transport.count("POST", "/refresh-token") == 0

    async def test_anonymous_request_has_no_credential(
        self, transport: FakeTransport
    ) -> None:
        client = ReauthenticatingClient(transport, SessionStore())
        transport.reply("POST", "/login", 200, {"data": {}})

        await client.execute(RequestDescriptor("POST", "/login", reauth=False))

        assert transport.calls[0][1] is None

    async def test_network_error_propagates(self, session: SessionStore) -> None:
        class Offline:
            async def send(self, descriptor, credential=None):
                raise NetworkError("connection refused")

        client = ReauthenticatingClient(Offline(), session)

        with pytest.raises(NetworkError):
            await client.execute(EVENTS)
        assert session.is_authenticated


class TestRefreshAndRetry:
    async def test_refresh_then_replay(
        self,
        client: ReauthenticatingClient,
        transport: FakeTransport,
        session: SessionStore,
    ) -> None:
        transport.route("GET", "/events/all", protected())
        transport.route("POST", "/refresh-token", refresh_ok(delay=0))

        response = await client.execute(EVENTS)

        assert response.status == 200
        assert session.access_token == "new-token"
        assert [c for _, c in transport.calls] == ["old-token", None, "new-token"]

    async def test_refresh_keeps_user_unless_sent(
        self,
        client: ReauthenticatingClient,
        transport: FakeTransport,
        session: SessionStore,
    ) -> None:
        transport.route("GET", "/events/all", protected())
        transport.route("POST", "/refresh-token", refresh_ok(delay=0))

        await client.execute(EVENTS)

        assert session.user == {"_id": "u1", "role": "student"}

    async def test_single_flight_refresh(
        self,
        client: ReauthenticatingClient,
        transport: FakeTransport,
    ) -> None:
        """N concurrent 401s trigger exactly one refresh call."""
        transport.route("GET", "/events/all", protected())
        transport.route("POST", "/refresh-token", refresh_ok())

        responses = await asyncio.gather(*(client.execute(EVENTS) for _ in range(5)))

        assert all(r.status == 200 for r in responses)
        assert transport.count("POST", "/refresh-token") == 1
        assert transport.count("GET", "/events/all") == 10

    async def test_late_401_reuses_completed_refresh(
        self,
        client: ReauthenticatingClient,
        transport: FakeTransport,
    ) -> None:
        """A request sent with the old token but rejected after the refresh
        finished replays with the new token instead of refreshing again."""
        release_slow = asyncio.Event()

        async def slow_protected(descriptor, credential):
            await release_slow.wait()
            return protected()(descriptor, credential)

        transport.route("GET", "/events/all", protected())
        transport.route("GET", "/notifications", slow_protected)
        transport.route("POST", "/refresh-token", refresh_ok(delay=0))

        slow = asyncio.create_task(client.execute(RequestDescriptor("GET", "/notifications")))
        await asyncio.sleep(0)
        await client.execute(EVENTS)
        release_slow.set()
        response = await slow

        assert response.status == 200
        assert transport.count("POST", "/refresh-token") == 1

    async def test_retry_once(
        self,
        client: ReauthenticatingClient,
        transport: FakeTransport,
        session: SessionStore,
    ) -> None:
        """A replayed request that 401s again is terminal; no second refresh."""
        transport.reply("GET", "/events/all", 401, {"message": "still no"})
        transport.route("POST", "/refresh-token", refresh_ok(delay=0))

        with pytest.raises(AuthenticationError, match="still no"):
            await client.execute(EVENTS)

        assert transport.count("POST", "/refresh-token") == 1
        assert transport.count("GET", "/events/all") == 2
        assert session.access_token == "new-token"

    async def test_refresh_failure_logs_out(
        self,
        client: ReauthenticatingClient,
        transport: FakeTransport,
        session: SessionStore,
    ) -> None:
        transport.route("GET", "/events/all", protected())
        transport.reply("POST", "/refresh-token", 401, {"message": "refresh expired"})

        results = await asyncio.gather(
            *(client.execute(EVENTS) for _ in range(3)), return_exceptions=True
        )

        assert all(isinstance(r, AuthenticationError) for r in results)
        assert transport.count("POST", "/refresh-token") == 1
        assert not session.is_authenticated
        assert session.access_token is None

    async def test_refresh_without_token_logs_out(
        self,
        client: ReauthenticatingClient,
        transport: FakeTransport,
        session: SessionStore,
    ) -> None:
        transport.route("GET", "/events/all", protected())
        transport.reply("POST", "/refresh-token", 200, {"data": {}})

        with pytest.raises(AuthenticationError):
            await client.execute(EVENTS)
        assert not session.is_authenticated

    async def test_refresh_network_error_keeps_session(
        self,
        client: ReauthenticatingClient,
        transport: FakeTransport,
        session: SessionStore,
    ) -> None:
        def offline(descriptor, credential):
            raise NetworkError("timed out")

        transport.route("GET", "/events/all", protected())
        transport.route("POST", "/refresh-token", offline)

        with pytest.raises(NetworkError):
            await client.execute(EVENTS)
        assert session.access_token == "old-token"
        assert not client.refresh_in_flight


class TestNoRecursion:
    async def test_refresh_request_never_refreshes(
        self,
        client: ReauthenticatingClient,
        transport: FakeTransport,
        session: SessionStore,
    ) -> None:
        transport.reply("POST", "/refresh-token", 401, {"message": "expired"})

        with pytest.raises(AuthenticationError):
            await client.execute(RequestDescriptor("POST", "/refresh-token", reauth=False))

        assert transport.count("POST", "/refresh-token") == 1
        assert not session.is_authenticated

    async def test_reauth_false_is_terminal(
        self,
        client: ReauthenticatingClient,
        transport: FakeTransport,
        session: SessionStore,
    ) -> None:
        """Bad login credentials do not trigger a refresh."""
        transport.reply("POST", "/login", 401, {"message": "Invalid credentials"})

        with pytest.raises(AuthenticationError, match="Invalid credentials"):
            await client.execute(RequestDescriptor("POST", "/login", reauth=False))

        assert transport.count("POST", "/refresh-token") == 0
        assert session.access_token == "old-token"


class TestCancellation:
    async def test_cancelled_waiter_does_not_cancel_refresh(
        self,
        client: ReauthenticatingClient,
        transport: FakeTransport,
        session: SessionStore,
    ) -> None:
        transport.route("GET", "/events/all", protected())
        transport.route("POST", "/refresh-token", refresh_ok(delay=0.05))

        first = asyncio.create_task(client.execute(EVENTS))
        second = asyncio.create_task(client.execute(EVENTS))
        await asyncio.sleep(0.01)
        assert client.refresh_in_flight
        first.cancel()

        response = await second

        assert response.status == 200
        assert first.cancelled()
        assert session.access_token == "new-token"
        assert transport.count("POST", "/refresh-token") == 1

    async def test_explicit_refresh_joins_in_flight(
        self,
        client: ReauthenticatingClient,
        transport: FakeTransport,
    ) -> None:
        transport.route("POST", "/refresh-token", refresh_ok(delay=0.02))

        results = await asyncio.gather(client.refresh(), client.refresh())

        assert results == [True, True]
        assert transport.count("POST", "/refresh-token") == 1
