"""Transport contract shared by the turn engine and the HTTP client.

``APIProtocol`` is all the engine knows about a transport; ``APIError`` is
the one exception a transport may raise; ``APIClientMixin`` holds the
httpx plumbing (status checks, closing) a concrete client reuses.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from types import TracebackType
from typing import Any, Protocol, Self

import httpx

from .data_structures import Message, Response, ToolDeclaration

__all__ = ["APIError", "APIClientMixin", "APIProtocol"]

logger = logging.getLogger(__name__)

MALFORMED_PAYLOAD = "malformed_payload"


class APIError(Exception):
    """A request that produced no usable reply.

    Raised for connection failures, timeouts, error statuses and bodies that
    do not parse. ``str(error)`` reads ``"[provider] message"``; callers that
    care about rate limits or overload look at ``status_code`` and
    ``error_type`` instead of the text.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_type: str | None = None,
        provider: str = "unknown",
    ):
        self.status_code = status_code
        self.error_type = error_type
        self.provider = provider
        super().__init__(f"[{provider}] {message}")

    def __repr__(self) -> str:
        fields = ", ".join(
            f"{name}={value!r}"
            for name, value in (
                ("status_code", self.status_code),
                ("error_type", self.error_type),
                ("provider", self.provider),
            )
        )
        return f"APIError({str(self)!r}, {fields})"


class APIProtocol(Protocol):
    """One request/response exchange with a model."""

    model: str

    async def send(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDeclaration] = (),
    ) -> Response:
        """Raises ``APIError`` when no reply could be obtained."""
        ...


def _describe_error(payload: dict[str, Any]) -> tuple[str | None, str]:
    """Pull ``(type, message)`` out of an ``{"error": ...}`` body."""
    error = payload.get("error")
    if isinstance(error, dict):
        return error.get("type"), str(error.get("message", error))
    return None, str(error if error else payload)


class APIClientMixin:
    """Status checking and lifecycle for clients built on ``httpx.AsyncClient``.

    Use as ``async with Client(...) as api:`` or call ``close()`` yourself.
    """

    _client: httpx.AsyncClient

    def _check_response(
        self,
        response: httpx.Response,
        provider: str = "API",
    ) -> dict[str, Any]:
        """Return the decoded JSON object of a successful reply.

        Raises:
            APIError: If the body is not a JSON object, the status is not 200,
                or a 200 body still carries an ``error`` entry.
        """
        status = response.status_code
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            raise APIError(
                f"HTTP {status}: expected a JSON object in the response body",
                status_code=status,
                error_type=MALFORMED_PAYLOAD,
                provider=provider,
            )

        if status != 200:
            error_type, message = _describe_error(payload)
            logger.debug("%s answered HTTP %d (%s)", provider, status, error_type)
            raise APIError(
                f"HTTP {status}: {message}",
                status_code=status,
                error_type=error_type or "unknown",
                provider=provider,
            )

        if payload.get("error") is not None:
            error_type, message = _describe_error(payload)
            raise APIError(message, error_type=error_type, provider=provider)

        return payload

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
