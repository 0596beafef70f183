"""Core types for the collegemate data-access layer."""

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any

# Duration type alias
Duration = str | int | float | timedelta  # "30s", "5m", seconds, or timedelta

Loader = Callable[[], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class Tag:
    """A dependency label; ``id=None`` means the whole collection of ``kind``."""

    kind: str
    id: str | None = None

    def __post_init__(self) -> None:
        if self.id is not None and not isinstance(self.id, str):
            object.__setattr__(self, "id", str(self.id))

    def __repr__(self) -> str:
        if self.id is None:
            return f"Tag({self.kind})"
        return f"Tag({self.kind}/{self.id})"


@dataclass(frozen=True, slots=True)
class RequestDescriptor:
    """Immutable description of one logical HTTP call."""

    method: str
    path: str
    body: Mapping[str, Any] | None = None
    params: Mapping[str, Any] | None = None
    multipart: bool = False
    reauth: bool = True  # False: a 401 is terminal, never triggers a refresh


@dataclass(frozen=True, slots=True)
class Response:
    """A normalized HTTP response. Non-2xx statuses are still responses."""

    status: int
    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def data(self) -> Any:
        """Payload unwrapped from the ``{data, message}`` envelope."""
        if isinstance(self.body, dict) and "data" in self.body:
            return self.body["data"]
        return self.body

    @property
    def message(self) -> str | None:
        if isinstance(self.body, dict):
            message = self.body.get("message")
            return str(message) if message is not None else None
        return None


@dataclass(frozen=True, slots=True)
class Session:
    """Snapshot of the current credential and identity."""

    access_token: str | None = None
    user: Mapping[str, Any] | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.access_token is not None

    @property
    def role(self) -> str | None:
        if self.user is None:
            return None
        return self.user.get("role")

    @property
    def is_super_admin(self) -> bool:
        return self.role == "admin" and bool(
            self.user is not None and self.user.get("isSuperAdmin") is True
        )

    @property
    def is_admin(self) -> bool:
        return self.role == "admin" and not self.is_super_admin


class CacheStatus(Enum):
    """Lifecycle of a cache entry."""

    IDLE = "idle"
    PENDING = "pending"
    FULFILLED = "fulfilled"
    STALE = "stale"
    FAILED = "failed"
