"""
Reassembles relay frames into the trailing assistant message.

Each non-empty fragment is appended (message stays streaming); end of stream
settles the message; a transport or parse error overwrites it with an apology
and settles it. The message is never left streaming, cancellation included.
"""

import asyncio
import logging
from typing import AsyncIterable, Optional

import httpx

from core.schemas import Role
from streaming.conversation_store import ConversationStore, Message
from streaming.frame_decoder import FrameDecoder, FrameParseError, decode_payload

logger = logging.getLogger(__name__)

APOLOGY_TEXT = "Sorry, I had trouble getting a response."

# httpx.StreamError covers StreamClosed, ResponseNotRead and friends, which are not HTTPError.
RECEIVE_ERRORS = (httpx.HTTPError, httpx.StreamError, OSError, FrameParseError)


class ClientStreamReceiver:
    def __init__(self, store: ConversationStore, apology: str = APOLOGY_TEXT):
        self._store = store
        self._apology = apology

    async def consume(self, chunks: AsyncIterable[bytes]) -> Optional[Message]:
        """
        Drain a relay response body into the store's streaming assistant message.

        Returns the settled message (None if no assistant message was streaming).
        """
        decoder = FrameDecoder()
        try:
            async for chunk in chunks:
                for payload in decoder.feed(chunk):
                    self._apply(payload)
            for payload in decoder.flush():
                self._apply(payload)
            if decoder.discarded:
                logger.debug("Discarded unterminated trailing frame: %r", decoder.discarded[:80])
        except RECEIVE_ERRORS as e:
            logger.warning("Stream failed after %d frame(s): %s", decoder.frames_seen(), e)
            return self._store.fail_streaming(self._apology)
        except asyncio.CancelledError:
            self._store.fail_streaming(self._apology)
            raise
        except Exception:
            logger.exception("Unexpected error while reading the stream")
            self._store.fail_streaming(self._apology)
            raise
        logger.debug("Stream complete (%d frames)", decoder.frames_seen())
        return self._store.settle_streaming()

    def fail(self) -> Optional[Message]:
        """Settle the streaming message with the apology (e.g. non-200 response)."""
        return self._store.fail_streaming(self._apology)

    def _apply(self, payload: str) -> None:
        content = decode_payload(payload)
        if content:
            self._store.append(Role.ASSISTANT, content, is_streaming=True)
