"""
Provider adapter contract and the shared HTTP plumbing behind it.

Every vendor adapter subclasses BaseProvider and fills in four wire
hooks: the endpoint URL, the request body, the response parser and the
error-envelope reader. BaseProvider owns everything that is the same for
all vendors:

- API key resolution (constructor argument, then vendor env vars in order)
- one JSON POST per non-streaming call via httpx.AsyncClient
- streaming via `client.stream(...)`, with non-2xx detected (and the whole
  error body read once) before any line is decoded
- converting transport failures, non-2xx statuses and vendor error
  envelopes into ProviderError
- making every network wait interruptible by the caller's Scope
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, ClassVar, Optional

import httpx

from llmcore.exceptions import ProviderError
from llmcore.llm.capabilities import Capabilities
from llmcore.llm.models import resolve_model
from llmcore.llm.retry import TRANSPORT_ERROR_CODE
from llmcore.llm.streaming import LineDecoder, consume_stream
from llmcore.llm.types import ChatRequest, ChatResponse, StreamCallback
from llmcore.scope import Scope

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120.0


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class ProviderConfig:
    """Per-adapter connection settings. Empty values take vendor defaults."""

    api_key: str = ""
    base_url: str = ""
    timeout: float = DEFAULT_TIMEOUT
    headers: dict[str, str] = field(default_factory=dict)


def env_with_fallback(*names: str) -> str:
    """First non-empty environment variable among `names`."""
    for name in names:
        value = os.environ.get(name, "").strip()
        if value:
            return value
    return ""


# ---------------------------------------------------------------------------
# Base Provider
# ---------------------------------------------------------------------------

class BaseProvider(ABC):
    """
    Uniform send / send_stream / capabilities contract over one vendor.

    Args:
        config: Connection settings (key, base URL, timeout, extra headers).
        client: A shared httpx.AsyncClient; when omitted a client is opened
                per call and closed afterwards.
        transport: Transport for per-call clients (tests pass
                   httpx.MockTransport here).
    """

    name: ClassVar[str] = ""
    default_base_url: ClassVar[str] = ""
    api_key_env: ClassVar[tuple[str, ...]] = ()
    requires_api_key: ClassVar[bool] = True
    CAPABILITIES: ClassVar[Capabilities] = Capabilities()

    # Decoder for the vendor's streaming wire shape.
    stream_decoder: ClassVar[Optional[LineDecoder]] = None

    def __init__(
        self,
        config: Optional[ProviderConfig] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        config = config or ProviderConfig()
        if not config.base_url:
            config.base_url = self.default_base_url
        config.base_url = config.base_url.rstrip("/")
        if not config.api_key and self.api_key_env:
            config.api_key = env_with_fallback(*self.api_key_env)
        self.config = config
        self._client = client
        self._transport = transport

    def __repr__(self) -> str:
        return f"{type(self).__name__}(base_url={self.config.base_url!r})"

    def capabilities(self) -> Capabilities:
        return self.CAPABILITIES

    def resolve_model(self, model: str) -> str:
        return resolve_model(self.name, model)

    # --- Wire hooks (vendor-specific) ---

    @abstractmethod
    def endpoint(self, request: ChatRequest, *, stream: bool) -> str:
        """Full URL for this request."""

    @abstractmethod
    def build_body(self, request: ChatRequest, *, stream: bool) -> dict[str, Any]:
        """Vendor JSON body for this request."""

    @abstractmethod
    def parse_response(self, data: dict[str, Any]) -> ChatResponse:
        """Turn a successful vendor payload into a ChatResponse."""

    def headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    def error_from_payload(self, data: Any) -> Optional[ProviderError]:
        """
        Read the vendor's error envelope, if any.

        Default shape: {"error": {"message": ..., "code": ...}}.
        """
        if not isinstance(data, dict):
            return None
        error = data.get("error")
        if not error:
            return None
        if isinstance(error, str):
            return ProviderError(self.name, error)
        return ProviderError(
            self.name,
            str(error.get("message") or error),
            code=str(error.get("code") or error.get("type") or ""),
        )

    # --- Error helpers ---

    def _request_headers(self) -> dict[str, str]:
        headers = self.headers()
        headers.update(self.config.headers)
        return headers

    def _require_key(self) -> None:
        if self.requires_api_key and not self.config.api_key:
            env = self.api_key_env[0] if self.api_key_env else "API key"
            raise ProviderError(self.name, f"{env} not set")

    def _transport_error(self, exc: httpx.HTTPError, what: str) -> ProviderError:
        if isinstance(exc, httpx.TimeoutException):
            message = f"{what}: timeout"
        else:
            message = what
        return ProviderError(self.name, message, code=TRANSPORT_ERROR_CODE, cause=exc)

    def _status_error(self, status: int, body: bytes) -> ProviderError:
        """
        A non-2xx response. The HTTP status becomes the code; the vendor's
        own error code and message, when present, stay in the message.
        """
        text = body.decode("utf-8", errors="replace")
        try:
            payload = json.loads(text) if text else None
        except ValueError:
            payload = None

        envelope = self.error_from_payload(payload)
        if envelope is not None:
            message = envelope.message
            if envelope.code:
                message = f"{envelope.code}: {message}"
            vendor_code = envelope.code
        else:
            message = text.strip() or httpx.codes.get_reason_phrase(status)
            vendor_code = ""
        return ProviderError(
            self.name,
            message,
            code=str(status),
            details={"status": status, "vendor_code": vendor_code},
        )

    @contextlib.asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(
            timeout=self.config.timeout,
            transport=self._transport,
        ) as client:
            yield client

    # --- Contract ---

    async def send(self, request: ChatRequest, scope: Optional[Scope] = None) -> ChatResponse:
        """One non-streaming call. Raises ProviderError on any failure."""
        scope = scope or Scope()
        self._require_key()
        url = self.endpoint(request, stream=False)
        body = self.build_body(request, stream=False)

        logger.debug(
            "llm_http_request",
            extra={"provider": self.name, "model": body.get("model", request.model)},
        )
        start = time.monotonic()
        async with self._http() as client:
            try:
                resp = await scope.run(
                    client.post(url, json=body, headers=self._request_headers())
                )
            except httpx.HTTPError as e:
                raise self._transport_error(e, "request failed") from e

        if not resp.is_success:
            raise self._status_error(resp.status_code, resp.content)

        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderError(
                self.name,
                f"parse error: {e}; body: {resp.text[:500]}",
                cause=e,
            ) from e

        envelope = self.error_from_payload(data)
        if envelope is not None:
            raise envelope

        response = self.parse_response(data)
        response.provider = self.name
        response.latency_ms = (time.monotonic() - start) * 1000
        response.raw = data
        return response

    async def send_stream(
        self,
        request: ChatRequest,
        callback: StreamCallback,
        scope: Optional[Scope] = None,
    ) -> ChatResponse:
        """
        One streaming call. `callback` receives each text delta in order;
        the returned response aggregates them.
        """
        scope = scope or Scope()
        self._require_key()
        decoder = self.decoder_for(request)
        if decoder is None:
            raise ProviderError(self.name, "streaming not supported")
        url = self.endpoint(request, stream=True)
        body = self.build_body(request, stream=True)

        logger.debug(
            "llm_http_stream",
            extra={"provider": self.name, "model": body.get("model", request.model)},
        )
        start = time.monotonic()
        async with self._http() as client:
            response = await scope.run(self._stream(client, url, body, callback, decoder))
        response.provider = self.name
        response.latency_ms = (time.monotonic() - start) * 1000
        return response

    def decoder_for(self, request: ChatRequest) -> Optional[LineDecoder]:
        return type(self).stream_decoder

    async def _stream(
        self,
        client: httpx.AsyncClient,
        url: str,
        body: dict[str, Any],
        callback: StreamCallback,
        decoder: LineDecoder,
    ) -> ChatResponse:
        try:
            async with client.stream(
                "POST", url, json=body, headers=self._request_headers()
            ) as resp:
                if not resp.is_success:
                    raise self._status_error(resp.status_code, await resp.aread())
                return await consume_stream(resp.aiter_lines(), decoder, callback)
        except httpx.HTTPError as e:
            raise self._transport_error(e, "stream read error") from e
