"""
Temporary storage for uploaded audio while it is being transcribed.

One artifact per /stt request. The file gets a canonical extension the
transcription provider can sniff (it ignores content and trusts the name),
chosen from the declared MIME type; whatever filename the client sent is ignored.
Deletion is idempotent and never raises: "not found" is success, anything else
is logged and counted.
"""
import asyncio
import logging
import os
import tempfile
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

from core.errors import ArtifactStoreError, ResourceCleanupError
from metrics import streaming_metrics

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".webm"

# Formats accepted by Groq Whisper, keyed by MIME type (without parameters).
MIME_EXTENSIONS = {
    "audio/webm": ".webm",
    "video/webm": ".webm",
    "audio/ogg": ".ogg",
    "audio/opus": ".ogg",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/wave": ".wav",
    "audio/flac": ".flac",
    "audio/x-flac": ".flac",
    "audio/mpeg": ".mp3",
    "audio/mp3": ".mp3",
    "audio/mp4": ".m4a",
    "audio/x-m4a": ".m4a",
    "video/mp4": ".mp4",
}


def canonical_extension(mime_type: Optional[str]) -> str:
    """Map a declared MIME type (e.g. "audio/webm;codecs=opus") to a file extension."""
    if not mime_type:
        return DEFAULT_EXTENSION
    base = mime_type.split(";", 1)[0].strip().lower()
    return MIME_EXTENSIONS.get(base, DEFAULT_EXTENSION)


@dataclass
class ArtifactHandle:
    path: str
    extension: str
    created_at: float = field(default_factory=time.time)
    deleted: bool = False


class TemporaryArtifactStore:
    """Writes upload bytes to a uniquely named temp file and removes it afterwards."""

    def __init__(self, directory: Optional[str] = None, prefix: str = "stt_"):
        self.directory = directory or tempfile.gettempdir()
        self.prefix = prefix

    async def store(self, raw: bytes, mime_type: Optional[str] = None) -> ArtifactHandle:
        """
        Persist raw upload bytes. Raises ArtifactStoreError if the file cannot be
        written; nothing is left behind in that case.
        """
        extension = canonical_extension(mime_type)
        loop = asyncio.get_running_loop()
        try:
            path = await loop.run_in_executor(None, self._write, raw, extension)
        except OSError as e:
            raise ArtifactStoreError(f"could not persist upload: {e}") from e
        logger.debug("Stored %d bytes at %s", len(raw), path)
        return ArtifactHandle(path=path, extension=extension)

    def _write(self, raw: bytes, extension: str) -> str:
        fd, path = tempfile.mkstemp(suffix=extension, prefix=self.prefix, dir=self.directory)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(raw)
        except OSError:
            _remove_quietly(path)
            raise
        return path

    async def delete(self, handle: ArtifactHandle) -> None:
        """Remove the artifact. Safe to call more than once; never raises."""
        if handle.deleted:
            return
        handle.deleted = True
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._remove, handle.path)
        except ResourceCleanupError as e:
            streaming_metrics.record_cleanup_failure()
            logger.warning("Failed to delete temp file %s: %s", handle.path, e)

    @staticmethod
    def _remove(path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise ResourceCleanupError(str(e)) from e

    @asynccontextmanager
    async def stored(self, raw: bytes, mime_type: Optional[str] = None) -> AsyncIterator[ArtifactHandle]:
        """Store for the duration of the block; delete on every exit path."""
        handle = await self.store(raw, mime_type)
        try:
            yield handle
        finally:
            await self.delete(handle)


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except OSError:
        pass
