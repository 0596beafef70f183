"""HTTP transport: one call per ``send``, no retry, no auth semantics."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx
from loguru import logger

from collegemate.duration import parse_duration
from collegemate.errors import NetworkError
from collegemate.types import Duration, RequestDescriptor, Response


def _is_binary(value: Any) -> bool:
    """Binary multipart values: bytes, file objects, or httpx file tuples."""
    return (
        isinstance(value, (bytes, bytearray, memoryview))
        or hasattr(value, "read")
        or isinstance(value, tuple)
    )


def _form_value(value: Any) -> str:
    """Stringify a text field the way browser FormData does."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def build_multipart(body: Mapping[str, Any]) -> dict[str, Any]:
    """Build an httpx ``files`` mapping with one part per field.

    Text fields become ``(None, text)`` parts so the request is always
    ``multipart/form-data``, even with no file attached.
    """
    parts: dict[str, Any] = {}
    for name, value in body.items():
        if _is_binary(value):
            if isinstance(value, (bytes, bytearray, memoryview)):
                parts[name] = (name, bytes(value), "application/octet-stream")
            else:
                parts[name] = value
        else:
            parts[name] = (None, _form_value(value))
    return parts


def _parse_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class Transport:
    """Async HTTP transport bound to a single base URL.

    Cookies set by the server (such as the HTTP-only refresh cookie) live in
    the client's cookie jar and are replayed automatically.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: Duration = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url
        self._timeout = parse_duration(timeout)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(self._timeout),
            follow_redirects=True,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def cookies(self) -> httpx.Cookies:
        return self._client.cookies

    async def send(
        self,
        descriptor: RequestDescriptor,
        credential: str | None = None,
    ) -> Response:
        """Perform one HTTP call.

        Returns a :class:`Response` for every HTTP status, including 4xx/5xx.

        Raises:
            NetworkError: If no response was received (connect error, timeout)
        """
        headers = {"Accept": "application/json"}
        if credential:
            headers["Authorization"] = f"Bearer {credential}"

        kwargs: dict[str, Any] = {
            "headers": headers,
            "params": dict(descriptor.params) if descriptor.params else None,
        }
        if descriptor.body is not None:
            if descriptor.multipart:
                kwargs["files"] = build_multipart(descriptor.body)
            else:
                kwargs["json"] = dict(descriptor.body)

        logger.debug(f"--> {descriptor.method} {descriptor.path}")
        try:
            response = await self._client.request(
                descriptor.method,
                descriptor.path,
                **kwargs,
            )
        except httpx.TimeoutException as e:
            logger.warning(
                f"{descriptor.method} {descriptor.path} timed out after {self._timeout}s"
            )
            raise NetworkError(
                f"Request timed out after {self._timeout}s",
                method=descriptor.method,
                path=descriptor.path,
            ) from e
        except httpx.TransportError as e:
            logger.warning(f"{descriptor.method} {descriptor.path} failed: {e}")
            raise NetworkError(
                str(e) or type(e).__name__,
                method=descriptor.method,
                path=descriptor.path,
            ) from e

        logger.debug(f"<-- {response.status_code} {descriptor.method} {descriptor.path}")
        return Response(
            status=response.status_code,
            body=_parse_body(response),
            headers=dict(response.headers),
        )

    async def aclose(self) -> None:
        """Close the HTTP client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> Transport:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()
