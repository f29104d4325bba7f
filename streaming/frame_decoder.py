"""
Incremental decoder for the relay's event stream.

Reads do not line up with frames: a delimiter can be split across two reads,
a UTF-8 character can straddle a read boundary, and one read can carry many
frames. The decoder keeps a pending-text buffer across `feed` calls and only
hands out complete, delimiter-terminated frames.
"""

import codecs
import json
from typing import List, Optional

FRAME_DELIMITER = "\n\n"


class FrameParseError(ValueError):
    """Bytes that are not UTF-8, or a complete frame whose payload is not a JSON object."""


class FrameDecoder:
    """
    Per-response frame buffer.

    - `feed(chunk)` returns the data payloads of every frame completed by this chunk.
    - The trailing partial frame stays pending until more bytes arrive.
    - `flush()` ends the stream; an unterminated trailing frame is discarded.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)()
        self._pending = ""
        self._frames_seen = 0
        self.discarded = ""

    def feed(self, chunk: bytes) -> List[str]:
        """Append a raw chunk; return payloads of the frames it completed."""
        if not chunk:
            return []
        return self._extract(self._decode(chunk))

    def flush(self) -> List[str]:
        """Decode what the byte decoder still holds; drop any unterminated frame."""
        payloads = self._extract(self._decode(b"", final=True))
        self.discarded = self._pending
        self._pending = ""
        return payloads

    def _decode(self, chunk: bytes, final: bool = False) -> str:
        try:
            return self._decoder.decode(chunk, final)
        except UnicodeDecodeError as e:
            raise FrameParseError(f"stream is not valid UTF-8: {e.reason}") from e

    def pending(self) -> str:
        """Text received but not yet part of a complete frame."""
        return self._pending

    def frames_seen(self) -> int:
        return self._frames_seen

    def _extract(self, text: str) -> List[str]:
        # CRLF may arrive split ("\r" | "\n"), so normalise the joined buffer.
        self._pending = (self._pending + text).replace("\r\n", "\n")
        payloads: List[str] = []
        while True:
            idx = self._pending.find(FRAME_DELIMITER)
            if idx < 0:
                break
            raw_frame = self._pending[:idx]
            self._pending = self._pending[idx + len(FRAME_DELIMITER):]
            payload = _data_of(raw_frame)
            if payload is not None:
                self._frames_seen += 1
                payloads.append(payload)
        return payloads


def _data_of(raw_frame: str) -> Optional[str]:
    """Join the frame's `data:` lines; None if it has none (comments, keep-alives)."""
    lines = []
    for line in raw_frame.split("\n"):
        if not line.startswith("data:"):
            continue
        value = line[len("data:"):]
        if value.startswith(" "):
            value = value[1:]
        lines.append(value)
    if not lines:
        return None
    return "\n".join(lines)


def decode_payload(payload: str) -> str:
    """Parse one frame payload and return its `content` (empty string if absent)."""
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise FrameParseError(f"invalid frame payload: {payload[:80]!r}") from e
    if not isinstance(data, dict):
        raise FrameParseError(f"frame payload is not an object: {payload[:80]!r}")
    content = data.get("content")
    if content is None:
        return ""
    if not isinstance(content, str):
        raise FrameParseError("frame content is not text")
    return content
