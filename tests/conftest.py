"""Shared pytest fixtures."""

import asyncio
import inspect
from collections.abc import Awaitable, Callable

import pytest

from collegemate import (
    CampusApi,
    ReauthenticatingClient,
    RequestDescriptor,
    Response,
    SessionStore,
    TagCache,
)

Handler = Callable[[RequestDescriptor, str | None], Response | Awaitable[Response]]


class FakeTransport:
    """Scripted stand-in for Transport; each route is a handler function."""

    def __init__(self) -> None:
        self.calls: list[tuple[RequestDescriptor, str | None]] = []
        self._routes: dict[tuple[str, str], Handler] = {}

    def route(self, method: str, path: str, handler: Handler) -> None:
        self._routes[(method.upper(), path)] = handler

    def reply(self, method: str, path: str, status: int, body: object = None) -> None:
        self.route(method, path, lambda d, c: Response(status, body))

    def count(self, method: str, path: str) -> int:
        return sum(
            1
            for descriptor, _ in self.calls
            if descriptor.method.upper() == method.upper() and descriptor.path == path
        )

    async def send(
        self, descriptor: RequestDescriptor, credential: str | None = None
    ) -> Response:
        self.calls.append((descriptor, credential))
        await asyncio.sleep(0)
        handler = self._routes.get((descriptor.method.upper(), descriptor.path))
        if handler is None:
            return Response(404, {"message": f"No route for {descriptor.path}"})
        result = handler(descriptor, credential)
        if inspect.isawaitable(result):
            result = await result
        return result


@pytest.fixture
def transport() -> FakeTransport:
    """Create a fresh FakeTransport for each test."""
    return FakeTransport()


@pytest.fixture
def session() -> SessionStore:
    """Create a session store holding an (about to expire) token."""
    store = SessionStore()
    store.set_credentials("old-token", {"_id": "u1", "role": "student"})
    return store


@pytest.fixture
def client(transport: FakeTransport, session: SessionStore) -> ReauthenticatingClient:
    return ReauthenticatingClient(transport, session)


@pytest.fixture
def cache() -> TagCache:
    return TagCache(retention="60s")


@pytest.fixture
def api(client: ReauthenticatingClient, cache: TagCache) -> CampusApi:
    return CampusApi(client, cache)
