"""
Streaming relay: one provider chat-completion stream -> event-stream frames.

- open() makes exactly one streaming call and prefetches the first non-empty
  fragment, so any failure up to the first frame is raised as ProviderError
  while the HTTP status can still be chosen.
- frames() yields one `data: {"content": ...}\\n\\n` frame per fragment, in
  provider order, each before the next fragment is requested.
- A provider failure after the first frame ends the stream without an error
  frame. Closing the generator (client disconnect) closes the upstream call.
"""
import asyncio
import json
import logging
import time
from typing import Any, AsyncIterator, Optional

import anyio

from config import CHAT_MODEL
from core.conversation import ContextWindow
from core.errors import ProviderError
from core.providers import PROVIDER_ERRORS
from metrics import streaming_metrics

logger = logging.getLogger(__name__)

FRAME_PREFIX = "data: "
FRAME_DELIMITER = "\n\n"

STREAM_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def encode_frame(content: str) -> str:
    """Compact JSON frame, e.g. 'data: {"content":"Hi"}\\n\\n'."""
    payload = json.dumps({"content": content}, separators=(",", ":"), ensure_ascii=False)
    return f"{FRAME_PREFIX}{payload}{FRAME_DELIMITER}"


def _fragment_of(chunk: Any) -> str:
    choices = getattr(chunk, "choices", None) or []
    if not choices:
        return ""
    delta = getattr(choices[0], "delta", None)
    return (getattr(delta, "content", None) or "") if delta is not None else ""


async def _fragments(upstream: Any) -> AsyncIterator[str]:
    async for chunk in upstream:
        fragment = _fragment_of(chunk)
        if fragment:
            yield fragment


class RelayStream:
    """An opened provider stream whose first fragment (if any) is already in hand."""

    def __init__(self, upstream: Any):
        self._upstream = upstream
        self._fragments = _fragments(upstream)
        self._first: Optional[str] = None
        self._closed = False

    async def prefetch(self) -> None:
        try:
            self._first = await self._fragments.__anext__()
        except StopAsyncIteration:
            self._first = None

    async def frames(self) -> AsyncIterator[str]:
        streaming_metrics.record_stream_open()
        sent = 0
        try:
            if self._first is None:
                return
            fragment, self._first = self._first, None
            while True:
                yield encode_frame(fragment)
                sent += 1
                streaming_metrics.record_frame()
                try:
                    fragment = await self._fragments.__anext__()
                except StopAsyncIteration:
                    break
                except Exception:
                    # Headers are committed: the missing frames are the only signal.
                    streaming_metrics.record_provider_failure("mid_stream")
                    logger.exception("Groq stream failed after %d frame(s); ending response", sent)
                    break
        except (GeneratorExit, asyncio.CancelledError):
            streaming_metrics.record_client_disconnect()
            logger.info("Client went away after %d frame(s); cancelling provider stream", sent)
            raise
        finally:
            await self.aclose()
            streaming_metrics.record_stream_close()
            logger.debug("Relay stream finished (%d frames)", sent)

    async def aclose(self) -> None:
        """Close the upstream provider call. Idempotent; survives cancellation."""
        if self._closed:
            return
        self._closed = True
        with anyio.CancelScope(shield=True):
            await self._fragments.aclose()
            close = getattr(self._upstream, "close", None)
            if close is not None:
                await close()


class CompletionRelay:
    def __init__(self, client: Any, model: str = CHAT_MODEL):
        self._client = client
        self.model = model

    async def open(self, window: ContextWindow) -> RelayStream:
        """
        Start the provider stream for this window.

        Raises:
            ProviderError: the call failed before a first fragment (or clean end) arrived.
        """
        started = time.perf_counter()
        try:
            upstream = await self._client.chat.completions.create(
                messages=window.to_messages(),
                model=self.model,
                stream=True,
            )
        except PROVIDER_ERRORS as e:
            streaming_metrics.record_provider_failure("pre_stream")
            raise ProviderError(f"completion failed: {e}", provider="groq", stage="pre_stream", cause=e) from e

        relay_stream = RelayStream(upstream)
        try:
            await relay_stream.prefetch()
        except PROVIDER_ERRORS as e:
            await relay_stream.aclose()
            streaming_metrics.record_provider_failure("pre_stream")
            raise ProviderError(f"completion failed: {e}", provider="groq", stage="pre_stream", cause=e) from e
        except BaseException:
            await relay_stream.aclose()
            raise
        streaming_metrics.record_first_fragment_ms((time.perf_counter() - started) * 1000)
        return relay_stream
