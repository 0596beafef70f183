"""Reauthenticating client: bearer credentials plus single-flight token refresh."""

from __future__ import annotations

import asyncio
from enum import Enum, auto
from typing import Protocol

from loguru import logger

from collegemate.errors import AuthenticationError, ProtocolError
from collegemate.session import SessionStore, credentials_from
from collegemate.types import RequestDescriptor, Response

REFRESH_DESCRIPTOR = RequestDescriptor("POST", "/refresh-token", reauth=False)


class Sender(Protocol):
    """Anything that can perform a single HTTP call, e.g. :class:`Transport`."""

    async def send(
        self, descriptor: RequestDescriptor, credential: str | None = None
    ) -> Response: ...


class RequestState(Enum):
    """States of one request moving through :meth:`ReauthenticatingClient.execute`."""

    IDLE = auto()
    SENT = auto()
    SUCCEEDED = auto()
    OTHER_FAILED = auto()
    AUTH_FAILED = auto()
    REFRESH_PENDING = auto()
    RETRIED = auto()
    LOGGED_OUT = auto()
    UNAUTHENTICATED = auto()


TERMINAL_STATES = frozenset(
    {
        RequestState.SUCCEEDED,
        RequestState.OTHER_FAILED,
        RequestState.LOGGED_OUT,
        RequestState.UNAUTHENTICATED,
    }
)


class ReauthenticatingClient:
    """
    Attaches the session's access token to every call and recovers from 401s.

    On a 401 the client refreshes the token once, system-wide, no matter how
    many requests failed concurrently, then replays the original request a
    single time with the new token.

    Usage:
        client = ReauthenticatingClient(transport, session)
        response = await client.execute(RequestDescriptor("GET", "/events/all"))
    """

    def __init__(
        self,
        transport: Sender,
        session: SessionStore,
        *,
        refresh: RequestDescriptor = REFRESH_DESCRIPTOR,
    ) -> None:
        self._transport = transport
        self._session = session
        self._refresh_descriptor = refresh
        self._refresh_task: asyncio.Task[bool] | None = None

    @property
    def session(self) -> SessionStore:
        return self._session

    @property
    def refresh_in_flight(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    def _is_refresh(self, descriptor: RequestDescriptor) -> bool:
        return (
            descriptor.method.upper() == self._refresh_descriptor.method.upper()
            and descriptor.path == self._refresh_descriptor.path
        )

    async def execute(self, descriptor: RequestDescriptor) -> Response:
        """Run ``descriptor`` to a terminal state.

        Returns:
            The response for any status other than an unrecoverable 401

        Raises:
            AuthenticationError: If the refresh failed, or the replayed
                request was rejected again
            NetworkError: If the transport could not reach the server
        """
        state = RequestState.IDLE
        response: Response | None = None
        sent_token: str | None = None
        attempts = 0

        while state not in TERMINAL_STATES:
            if state in (RequestState.IDLE, RequestState.RETRIED):
                sent_token = self._session.access_token
                response = await self._transport.send(descriptor, sent_token)
                attempts += 1
                state = RequestState.SENT

            elif state is RequestState.SENT:
                assert response is not None
                state = self._classify(descriptor, response, attempts)

            elif state is RequestState.AUTH_FAILED:
                current = self._session.access_token
                if current is not None and current != sent_token:
                    # Another request already refreshed while this one was in flight.
                    state = RequestState.RETRIED
                else:
                    state = RequestState.REFRESH_PENDING

            elif state is RequestState.REFRESH_PENDING:
                refreshed = await self.refresh()
                state = RequestState.RETRIED if refreshed else RequestState.LOGGED_OUT

            logger.debug(f"{descriptor.method} {descriptor.path}: {state.name}")

        if state is RequestState.LOGGED_OUT:
            raise AuthenticationError(body=response.body if response else None)
        if state is RequestState.UNAUTHENTICATED:
            assert response is not None
            raise AuthenticationError(response.message, response.body)
        assert response is not None
        return response

    def _classify(
        self,
        descriptor: RequestDescriptor,
        response: Response,
        attempts: int,
    ) -> RequestState:
        if response.status != 401:
            return RequestState.SUCCEEDED if response.ok else RequestState.OTHER_FAILED
        if self._is_refresh(descriptor):
            self._session.clear()
            return RequestState.LOGGED_OUT
        if attempts > 1 or not descriptor.reauth:
            return RequestState.UNAUTHENTICATED
        return RequestState.AUTH_FAILED

    async def refresh(self) -> bool:
        """Refresh the access token, joining a refresh already in flight.

        Returns:
            True if the session now holds a fresh token, False if the refresh
            was rejected and the session has been cleared
        """
        task = self._refresh_task
        if task is None or task.done():
            task = asyncio.create_task(self._run_refresh())
            self._refresh_task = task
            task.add_done_callback(self._release_refresh_slot)
        else:
            logger.debug("Joining in-flight token refresh")
        return await asyncio.shield(task)

    def _release_refresh_slot(self, task: asyncio.Task[bool]) -> None:
        if self._refresh_task is task:
            self._refresh_task = None
        if not task.cancelled():
            # Mark the exception retrieved; every waiter already received it.
            task.exception()

    async def _run_refresh(self) -> bool:
        logger.info("Access token rejected, refreshing")
        response = await self._transport.send(self._refresh_descriptor)
        if not response.ok:
            logger.warning(f"Token refresh rejected with HTTP {response.status}")
            self._session.clear()
            return False

        try:
            access_token, user = credentials_from(response)
        except ProtocolError:
            logger.warning("Token refresh response carried no access token")
            self._session.clear()
            return False

        self._session.set_credentials(access_token, user)
        logger.info("Access token refreshed")
        return True
