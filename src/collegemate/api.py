"""CampusApi - the generic executor behind the endpoint registry.

Provides:
- query(): cached, deduplicated reads
- mutate(): writes that apply session effects and invalidate tags
- subscribe(): live reads that refetch when their tags are invalidated
- Attribute access: ``await api.get_event_by_id(id=7)``
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from typing import Any

from loguru import logger

from collegemate.cache import Subscription, TagCache
from collegemate.client import ReauthenticatingClient
from collegemate.errors import AuthenticationError, raise_for_response
from collegemate.registry import REGISTRY, USER_SCOPED, Endpoint, SessionEffect
from collegemate.session import SessionStore, credentials_from
from collegemate.settings import Settings
from collegemate.transport import Transport
from collegemate.types import RequestDescriptor, Session


def make_cache_key(name: str, params: Mapping[str, Any]) -> str:
    """Generate a cache key from operation name and arguments.

    Values are compared by their string form, the form they take in the URL,
    so ``id=7`` and ``id="7"`` share one entry.
    """
    normalized = {param: str(value) for param, value in params.items()}
    params_hash = hashlib.sha256(
        json.dumps(normalized, sort_keys=True).encode()
    ).hexdigest()[:16]
    return f"{name}:{params_hash}"


class BoundEndpoint:
    """A registry entry bound to an api instance."""

    __slots__ = ("_api", "_endpoint")

    def __init__(self, endpoint: Endpoint, api: CampusApi) -> None:
        self._endpoint = endpoint
        self._api = api

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    async def __call__(self, body: Mapping[str, Any] | None = None, **params: Any) -> Any:
        return await self._api.call(self._endpoint.name, body, **params)

    def __repr__(self) -> str:
        kind = "query" if self._endpoint.query else "mutation"
        return f"<{kind} {self._endpoint.name}: {self._endpoint.method} {self._endpoint.path}>"


class CampusApi:
    """
    Executes registry operations through the cache and the reauthenticating client.

    Usage:
        async with create_api() as api:
            await api.login({"email": "a@b.c", "password": "secret"})
            events = await api.get_all_events()
            await api.delete_event(id=42)   # get_all_events is now stale
    """

    def __init__(
        self,
        client: ReauthenticatingClient,
        cache: TagCache,
        *,
        endpoints: Mapping[str, Endpoint] = REGISTRY,
        transport: Transport | None = None,
    ) -> None:
        self._client = client
        self._cache = cache
        self._endpoints = endpoints
        self._transport = transport
        self._unwatch_session = client.session.on_change(self._on_session_change)

    @property
    def session(self) -> SessionStore:
        return self._client.session

    @property
    def cache(self) -> TagCache:
        return self._cache

    @property
    def client(self) -> ReauthenticatingClient:
        return self._client

    def endpoint(self, name: str) -> Endpoint:
        try:
            return self._endpoints[name]
        except KeyError:
            raise KeyError(f"Unknown endpoint: {name!r}") from None

    def cache_key(self, name: str, **params: Any) -> str:
        return make_cache_key(name, params)

    async def call(
        self,
        name: str,
        body: Mapping[str, Any] | None = None,
        **params: Any,
    ) -> Any:
        """Run any registry operation, dispatching on whether it reads or writes."""
        endpoint = self.endpoint(name)
        if endpoint.query:
            if body is not None:
                raise TypeError(f"{name}() is a query and takes no body")
            return await self.query(name, **params)
        return await self.mutate(name, body, **params)

    async def query(self, name: str, *, force_refresh: bool = False, **params: Any) -> Any:
        """Run a read operation through the cache.

        Raises:
            HTTPStatusError: For non-2xx responses (NotFoundError, ...)
            AuthenticationError: If the session could not be refreshed
            NetworkError: If the server could not be reached
        """
        endpoint = self._query_endpoint(name)
        descriptor = endpoint.build(**params)
        key = make_cache_key(name, params)

        async def load() -> Any:
            return await self._fetch(descriptor)

        return await self._cache.read(
            key,
            endpoint.provided_tags(params),
            load,
            force_refresh=force_refresh,
        )

    async def subscribe(self, name: str, **params: Any) -> Subscription:
        """Read ``name`` and keep it live until the subscription is dropped."""
        await self.query(name, **params)
        return self._cache.subscribe(make_cache_key(name, params))

    async def mutate(
        self,
        name: str,
        body: Mapping[str, Any] | None = None,
        **params: Any,
    ) -> Any:
        """Run a write operation.

        Invalidation happens after the response arrives and before this
        returns, so any read issued afterwards sees post-write state. A
        failed write invalidates nothing.
        """
        endpoint = self.endpoint(name)
        if endpoint.query:
            raise TypeError(f"{name}() is a query, use query()")

        if endpoint.session_effect is SessionEffect.REFRESH:
            if body or params:
                raise TypeError(f"{name}() takes no arguments")
            if not await self._client.refresh():
                raise AuthenticationError()
            return self.session.current()

        descriptor = endpoint.build(body, **params)
        response = raise_for_response(await self._client.execute(descriptor))

        if endpoint.session_effect is SessionEffect.SET_CREDENTIALS:
            access_token, user = credentials_from(response)
            self.session.set_credentials(access_token, user)
        elif endpoint.session_effect is SessionEffect.CLEAR:
            self.session.clear()

        tags = endpoint.invalidated_tags(params)
        if tags:
            # After logout there is nobody to refetch for.
            refetch = endpoint.session_effect is not SessionEffect.CLEAR
            self._cache.invalidate(tags, refetch=refetch)
        logger.debug(f"{name} completed, invalidated {len(tags)} tag(s)")
        return response.data

    async def _fetch(self, descriptor: RequestDescriptor) -> Any:
        response = raise_for_response(await self._client.execute(descriptor))
        return response.data

    def _query_endpoint(self, name: str) -> Endpoint:
        endpoint = self.endpoint(name)
        if not endpoint.query:
            raise TypeError(f"{name}() is a mutation, use mutate()")
        return endpoint

    def _on_session_change(self, session: Session) -> None:
        # Covers a failed refresh as well as an explicit logout.
        if session.is_authenticated:
            return
        tags = [ref.resolve({}) for ref in USER_SCOPED]
        affected = self._cache.invalidate(tags, refetch=False)
        if affected:
            logger.info(f"Session ended, {len(affected)} user-scoped entries marked stale")

    def __getattr__(self, name: str) -> BoundEndpoint:
        if name.startswith("_"):
            raise AttributeError(name)
        endpoints = self.__dict__.get("_endpoints", REGISTRY)
        if name not in endpoints:
            raise AttributeError(f"{type(self).__name__!r} has no endpoint {name!r}")
        return BoundEndpoint(endpoints[name], self)

    async def aclose(self) -> None:
        """Drop cached state and close the transport."""
        self._unwatch_session()
        self._cache.clear()
        if self._transport is not None:
            await self._transport.aclose()

    async def __aenter__(self) -> CampusApi:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()


def create_api(
    settings: Settings | None = None,
    *,
    session: SessionStore | None = None,
    transport: Transport | None = None,
) -> CampusApi:
    """Create a fully wired api instance.

    Args:
        settings: Configuration (default: read from the environment)
        session: Session store to share with other components
        transport: Transport to use instead of one built from ``settings``

    Returns:
        CampusApi with query, mutate, subscribe and one bound call per endpoint
    """
    settings = settings or Settings.from_env()
    session = session or SessionStore()
    transport = transport or Transport(settings.base_url, timeout=settings.timeout_seconds)
    client = ReauthenticatingClient(
        transport,
        session,
        refresh=REGISTRY["refresh_token"].build(),
    )
    cache = TagCache(retention=settings.cache_retention_seconds)
    return CampusApi(client, cache, transport=transport)


__all__ = ["BoundEndpoint", "CampusApi", "create_api", "make_cache_key"]
