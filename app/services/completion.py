"""Streaming chat completions from OpenRouter, re-emitted as our own SSE frames."""

import asyncio
from dataclasses import dataclass
from typing import Any, AsyncIterator, Sequence

import httpx
import orjson

from app.core.config import Settings, get_settings
from app.core.exceptions import GatewayApiError, GatewayConnectionError, StreamError
from app.core.logging import get_logger
from app.schemas.chat import Message

log = get_logger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful, friendly assistant. Answer clearly and concisely, "
    "use Markdown where it helps readability, and ask a clarifying question when the request is ambiguous."
)

DONE_FRAME = b"data: [DONE]\n\n"


def sse_frame(payload: dict[str, Any]) -> bytes:
    return b"data: " + orjson.dumps(payload) + b"\n\n"


@dataclass(frozen=True)
class ContextWindow:
    """Keeps only the most recent `size` messages; older context is dropped, not summarised."""

    size: int

    def apply(self, history: Sequence[Message]) -> list[Message]:
        if self.size <= 0:
            return []
        return list(history[-self.size:])


def build_messages(
    history: Sequence[Message],
    window: ContextWindow,
    system_prompt: str | None = None,
) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": system_prompt or DEFAULT_SYSTEM_PROMPT},
        *({"role": m.role.value, "content": m.content} for m in window.apply(history)),
    ]


def parse_sse_line(line: str) -> tuple[str, str | None]:
    """Classify one upstream line as ("content", text), ("done", None) or ("skip", None)."""
    trimmed = line.strip()
    if not trimmed.startswith("data: "):
        return "skip", None
    data = trimmed[6:]
    if data == "[DONE]":
        return "done", None
    try:
        parsed = orjson.loads(data)
    except orjson.JSONDecodeError:
        return "skip", None
    try:
        content = parsed["choices"][0]["delta"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError):
        return "skip", None
    if isinstance(content, str) and content:
        return "content", content
    return "skip", None


class CompletionStream:
    """An open upstream response.

    Iterate `frames()` once to relay the stream; `full_response` resolves with the
    accumulated text when the upstream ends, or fails with StreamError.
    """

    def __init__(self, response: httpx.Response, owned_client: httpx.AsyncClient | None = None):
        self._response = response
        self._owned_client = owned_client
        self.full_response: asyncio.Future[str] = asyncio.get_running_loop().create_future()

    async def frames(self) -> AsyncIterator[bytes]:
        parts: list[str] = []
        try:
            async for line in self._response.aiter_lines():
                kind, content = parse_sse_line(line)
                if kind == "done":
                    yield DONE_FRAME
                    break
                if kind == "content":
                    parts.append(content)
                    yield sse_frame({"content": content})
            full_text = "".join(parts)
            self.full_response.set_result(full_text)
            log.info("stream.chat_completed", response_length=len(full_text))
        except Exception as e:
            err = StreamError(f"Stream processing error: {e}")
            log.error("stream.chat_failed", error=str(e))
            if not self.full_response.done():
                self.full_response.set_exception(err)
            raise err from e
        finally:
            await self.aclose()
            if not self.full_response.done():
                # Closed or cancelled before the upstream finished
                self.full_response.set_exception(StreamError("Stream closed before completion"))

    async def aclose(self) -> None:
        await self._response.aclose()
        if self._owned_client is not None:
            await self._owned_client.aclose()
            self._owned_client = None


class CompletionGateway:
    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None):
        self.settings = settings or get_settings()
        self.window = ContextWindow(self.settings.chat_context_window)
        self._client = client

    def _timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.settings.openrouter_timeout_seconds, connect=10.0)

    async def stream_chat_completion(
        self,
        history: Sequence[Message],
        system_prompt: str | None = None,
    ) -> CompletionStream:
        log.info("stream.chat_started", message_count=len(history))
        client = self._client
        owned = None
        if client is None:
            client = owned = httpx.AsyncClient(timeout=self._timeout())

        request = client.build_request(
            "POST",
            f"{self.settings.openrouter_base_url.rstrip('/')}/chat/completions",
            headers={"Authorization": f"Bearer {self.settings.openrouter_api_key}"},
            json={
                "model": self.settings.openrouter_model,
                "messages": build_messages(history, self.window, system_prompt),
                "stream": True,
            },
        )
        try:
            response = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            log.error("stream.fetch_failed", error=str(e))
            if owned is not None:
                await owned.aclose()
            raise GatewayConnectionError(str(e) or type(e).__name__) from e

        if response.is_error:
            try:
                body = (await response.aread()).decode("utf-8", errors="replace")
            except httpx.HTTPError:
                body = "Unknown error"
            await response.aclose()
            if owned is not None:
                await owned.aclose()
            log.error("stream.api_error", status=response.status_code, body=body)
            raise GatewayApiError(response.status_code, body)

        return CompletionStream(response, owned_client=owned)
