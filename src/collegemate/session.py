"""Session store: the in-memory holder of the access token and identity."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from loguru import logger

from collegemate.errors import ProtocolError
from collegemate.types import Response, Session

SessionListener = Callable[[Session], None]


class SessionStore:
    """Holds the current :class:`Session` and notifies observers of changes.

    One instance is constructed per client and passed to the components that
    need it. Nothing here is persisted; the long-lived refresh credential is
    an HTTP-only cookie owned by the transport.
    """

    def __init__(self, session: Session | None = None) -> None:
        self._session = session or Session()
        self._listeners: list[SessionListener] = []

    def current(self) -> Session:
        return self._session

    @property
    def access_token(self) -> str | None:
        return self._session.access_token

    @property
    def user(self) -> Mapping[str, Any] | None:
        return self._session.user

    @property
    def is_authenticated(self) -> bool:
        return self._session.is_authenticated

    def set_credentials(
        self,
        access_token: str,
        user: Mapping[str, Any] | None = None,
    ) -> None:
        """Store a new access token; ``user=None`` keeps the current identity."""
        if not access_token:
            raise ValueError("access_token must be a non-empty string")
        merged_user = user if user is not None else self._session.user
        self._replace(Session(access_token=access_token, user=merged_user))

    def clear(self) -> None:
        """Reset to the empty, unauthenticated session."""
        if self._session.is_authenticated or self._session.user is not None:
            logger.info("Session cleared")
        self._replace(Session())

    def on_change(self, listener: SessionListener) -> Callable[[], None]:
        """Register ``listener``; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _replace(self, session: Session) -> None:
        if session == self._session:
            return
        self._session = session
        for listener in list(self._listeners):
            listener(session)


def credentials_from(response: Response) -> tuple[str, Mapping[str, Any] | None]:
    """Extract ``(access_token, user)`` from a login or refresh response.

    Accepts both ``{"data": {"accessToken": ...}}`` and a bare
    ``{"accessToken": ...}`` body.

    Raises:
        ProtocolError: If the response carries no access token
    """
    for payload in (response.data, response.body):
        if isinstance(payload, dict) and payload.get("accessToken"):
            user = payload.get("user")
            return str(payload["accessToken"]), user if isinstance(user, dict) else None
    raise ProtocolError("Response did not include an accessToken")
