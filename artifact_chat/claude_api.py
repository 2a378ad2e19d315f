"""HTTP transport for the Anthropic Messages API."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx

from .api_base import MALFORMED_PAYLOAD, APIClientMixin, APIError
from .data_structures import Message, Response, ToolDeclaration, to_wire_messages

__all__ = ["ClaudeAPI", "DEFAULT_MODEL", "DEFAULT_MAX_TOKENS", "ANTHROPIC_VERSION"]

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_MAX_TOKENS = 4000
DEFAULT_BASE_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"

PROVIDER = "Claude"
KEY_PREVIEW_CHARS = 15


class ClaudeAPI(APIClientMixin):
    """One POST per ``send``; no streaming, no retries.

    The key is passed in by the caller and the environment is never read.
    ``client`` lets tests hand over an ``httpx.AsyncClient`` built on a
    ``MockTransport``.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        system: str | None = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ):
        if not api_key:
            raise ValueError("API key required")
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.system = system
        self.base_url = base_url
        # one pooled client for the lifetime of the adapter
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def __repr__(self) -> str:
        key = self.api_key
        if len(key) > KEY_PREVIEW_CHARS:
            key = key[:KEY_PREVIEW_CHARS] + "..."
        return f"ClaudeAPI(model={self.model!r}, max_tokens={self.max_tokens}, token={key!r})"

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

    def build_body(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDeclaration] = (),
    ) -> dict[str, Any]:
        """Request body; ``system`` and ``tools`` are left out when empty."""
        body: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": to_wire_messages(messages),
        }
        if self.system:
            body["system"] = self.system
        if tools:
            body["tools"] = [declaration.to_dict() for declaration in tools]
        return body

    async def send(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDeclaration] = (),
    ) -> Response:
        """POST the conversation and parse the reply.

        Raises:
            APIError: ``error_type`` is ``"timeout"`` or ``"network"`` when the
                request never completed, the API's own error type for error
                statuses, and ``"malformed_payload"`` for unreadable bodies.
        """
        body = self.build_body(messages, tools)
        logger.debug(
            "POST %s model=%s messages=%d tools=%d",
            self.base_url,
            self.model,
            len(body["messages"]),
            len(tools),
        )

        try:
            reply = await self._client.post(self.base_url, headers=self._headers(), json=body)
        except httpx.TimeoutException as e:
            raise APIError(
                f"Request timed out: {e}", error_type="timeout", provider=PROVIDER
            ) from e
        except httpx.HTTPError as e:
            raise APIError(
                f"Network error: {e}", error_type="network", provider=PROVIDER
            ) from e

        payload = self._check_response(reply, provider=PROVIDER)
        try:
            response = Response.from_dict(payload)
        except (TypeError, ValueError) as e:
            raise APIError(
                f"Malformed response payload: {e}",
                status_code=reply.status_code,
                error_type=MALFORMED_PAYLOAD,
                provider=PROVIDER,
            ) from e

        usage = response.usage
        logger.debug(
            "Response %s stop_reason=%s in=%d out=%d",
            response.id,
            response.stop_reason,
            usage.input_tokens,
            usage.output_tokens,
        )
        return response
