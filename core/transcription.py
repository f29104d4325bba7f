"""
Speech-to-text through the Groq Whisper endpoint.

Every provider/transport failure surfaces as ProviderError, with no retry.
An empty transcript is a valid (silent) utterance, not an error.
"""
import logging
from pathlib import Path
from typing import Any

from config import STT_MODEL
from core.artifacts import ArtifactHandle
from core.errors import ProviderError
from core.providers import PROVIDER_ERRORS
from metrics import streaming_metrics

logger = logging.getLogger(__name__)


class TranscriptionGateway:
    def __init__(self, client: Any, model: str = STT_MODEL):
        self._client = client
        self.model = model

    async def transcribe(self, handle: ArtifactHandle) -> str:
        """
        Send the stored artifact to the provider and return its text.

        Raises:
            ProviderError: non-2xx response or transport failure.
        """
        try:
            transcription = await self._client.audio.transcriptions.create(
                file=Path(handle.path),
                model=self.model,
            )
        except PROVIDER_ERRORS as e:
            streaming_metrics.record_provider_failure("transcription")
            raise ProviderError(
                f"transcription failed: {e}", provider="groq", stage="transcription", cause=e
            ) from e
        streaming_metrics.record_transcription()
        text = (getattr(transcription, "text", None) or "").strip()
        logger.debug("Transcribed %s (%d chars)", handle.path, len(text))
        return text
