from __future__ import annotations

import logging
import socket
import ssl
import time

import httpx

from story_vocab.errors import (
    NetworkUnavailable,
    ProviderRejected,
    RequestTimeout,
    SecureConnectionError,
)
from story_vocab.models import TokenUsage
from story_vocab.providers.base import ChatRequest, ChatResponse, ProviderSpec
from story_vocab.providers.registry import decode_error

log = logging.getLogger("story_vocab.llm")

GENERATION_TIMEOUT = httpx.Timeout(60.0, connect=30.0)
PROBE_TIMEOUT = httpx.Timeout(10.0, connect=10.0)


def _caused_by(exc: BaseException, kind: type[BaseException]) -> bool:
    seen: set[int] = set()
    cur: BaseException | None = exc
    while cur is not None and id(cur) not in seen:
        if isinstance(cur, kind):
            return True
        seen.add(id(cur))
        cur = cur.__cause__ or cur.__context__
    return False


def _is_name_resolution_failure(exc: httpx.ConnectError) -> bool:
    if _caused_by(exc, socket.gaierror):
        return True
    msg = str(exc).lower()
    return any(s in msg for s in (
        "name or service not known",
        "nodename nor servname",
        "temporary failure in name resolution",
        "getaddrinfo failed",
    ))


def remap_transport_error(exc: Exception) -> Exception:
    """Translate httpx transport failures into user-facing errors.

    Returns *exc* itself when it is not one of the known categories.
    """
    if isinstance(exc, httpx.TimeoutException):
        return RequestTimeout()
    if _caused_by(exc, ssl.SSLError):
        return SecureConnectionError()
    if isinstance(exc, httpx.ConnectError) and _is_name_resolution_failure(exc):
        return NetworkUnavailable()
    return exc


def _parse_usage(data: dict) -> TokenUsage | None:
    usage = data.get("usage")
    if not isinstance(usage, dict):
        return None
    return TokenUsage(
        prompt_tokens=int(usage.get("prompt_tokens", 0) or 0),
        completion_tokens=int(usage.get("completion_tokens", 0) or 0),
        total_tokens=int(usage.get("total_tokens", 0) or 0),
    )


class ChatCompletionClient:
    """OpenAI-compatible ``/v1/chat/completions`` client for one provider."""

    def __init__(
        self,
        spec: ProviderSpec,
        api_key: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.spec = spec
        self.api_key = api_key
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _client(self, timeout: httpx.Timeout) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def generate(self, request: ChatRequest) -> ChatResponse:
        log.info("── PROMPT (%s) ──\n%s", self.name(), request.messages[-1]["content"])
        t0 = time.monotonic()
        try:
            async with self._client(GENERATION_TIMEOUT) as client:
                resp = await client.post(
                    self.spec.chat_url,
                    headers=self._headers(),
                    json=request.to_json(),
                )
        except httpx.HTTPError as e:
            mapped = remap_transport_error(e)
            if mapped is e:
                raise
            raise mapped from e

        if not resp.is_success:
            message = decode_error(self.spec, resp.status_code, resp.text)
            log.info("── REJECTED (%d) ── %s", resp.status_code, message)
            raise ProviderRejected(resp.status_code, message)

        data = resp.json()
        choices = data.get("choices") or []
        content = ""
        if choices:
            content = (choices[0].get("message") or {}).get("content") or ""
        usage = _parse_usage(data)
        elapsed = time.monotonic() - t0
        tokens = usage.total_tokens if usage else "?"
        log.info("── RESPONSE (%.1fs, %s tokens) ──\n%s", elapsed, tokens, content)
        return ChatResponse(content=content, usage=usage, raw=data)

    async def list_models(self) -> int:
        """Liveness probe: return the HTTP status of ``GET v1/models``."""
        try:
            async with self._client(PROBE_TIMEOUT) as client:
                resp = await client.get(self.spec.models_url, headers=self._headers())
        except httpx.HTTPError as e:
            mapped = remap_transport_error(e)
            if mapped is e:
                raise
            raise mapped from e
        log.info("Probe %s -> %d", self.spec.models_url, resp.status_code)
        return resp.status_code

    async def check_connection(self) -> tuple[bool, str]:
        status = await self.list_models()
        if 200 <= status < 300:
            return True, f"{self.spec.display_name} is reachable ({self.spec.model})"
        return False, decode_error(self.spec, status, f"HTTP {status}")

    def name(self) -> str:
        return f"{self.spec.id.value}/{self.spec.model}"
