"""State-machine based voice chat session (client side)."""

from __future__ import annotations

import io
import logging
from enum import Enum
from typing import Callable, Optional

import httpx

from config import CONTEXT_WINDOW_SIZE, VOICE_RELAY_URL
from core.artifacts import canonical_extension
from core.conversation import ConversationWindow
from core.schemas import OutputStyle, Role
from streaming.conversation_store import ConversationStore, Message
from streaming.receiver import ClientStreamReceiver

logger = logging.getLogger(__name__)

TRANSCRIBE_APOLOGY = "Sorry, I had trouble transcribing that. ({reason})"


class SessionState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    UPLOADING = "uploading"
    TRANSCRIBING = "transcribing"
    STREAMING = "streaming"


class SessionBusyError(RuntimeError):
    """A trigger arrived while the session was in a phase that does not accept it."""


class TranscriptionFailed(Exception):
    pass


StateCallback = Callable[[SessionState, SessionState], None]


class _UploadBody(io.BytesIO):
    """
    Recorded audio as a multipart file part.

    `on_sent` fires once, when the transport reads past the last byte, so
    uploading ends when the body is on the wire and transcribing begins.
    """

    def __init__(self, data: bytes, on_sent: Callable[[], None]):
        super().__init__(data)
        self._on_sent: Optional[Callable[[], None]] = on_sent

    def read(self, size: Optional[int] = -1) -> bytes:
        chunk = super().read(size)
        if not chunk and self._on_sent is not None:
            on_sent, self._on_sent = self._on_sent, None
            on_sent()
        return chunk


class VoiceChatSession:
    """
    One user's conversation with the relay.

    idle -> recording -> uploading -> transcribing -> streaming -> idle.
    Only this object moves the state and mutates its ConversationStore.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        store: Optional[ConversationStore] = None,
        output_style: OutputStyle = OutputStyle.SHORT,
        window: Optional[ConversationWindow] = None,
        on_state_change: Optional[StateCallback] = None,
    ) -> None:
        self._http = http
        self.store = store or ConversationStore()
        self.output_style = OutputStyle(output_style)
        self._window = window or ConversationWindow(CONTEXT_WINDOW_SIZE)
        self._receiver = ClientStreamReceiver(self.store)
        self._on_state_change = on_state_change
        self._state = SessionState.IDLE

    @property
    def state(self) -> SessionState:
        return self._state

    async def aclose(self) -> None:
        await self._http.aclose()

    def start_recording(self) -> None:
        self._require(SessionState.IDLE)
        self._transition(SessionState.RECORDING)

    def cancel_recording(self) -> None:
        if self._state == SessionState.RECORDING:
            self._transition(SessionState.IDLE)

    async def stop_recording(self, audio: bytes, mime_type: str = "audio/webm") -> Optional[Message]:
        """
        Upload the captured audio, then ask the transcript.

        Returns the settled assistant message, or None for an empty utterance.
        """
        self._require(SessionState.RECORDING)
        try:
            try:
                text = await self._transcribe(audio, mime_type)
            except TranscriptionFailed as e:
                logger.warning("STT error: %s", e)
                return self.store.append(Role.ASSISTANT, TRANSCRIBE_APOLOGY.format(reason=e))
            if not text.strip():
                logger.info("Empty utterance; nothing to ask")
                return None
            self.store.append(Role.USER, text)
            return await self._complete(text)
        finally:
            self._transition(SessionState.IDLE)

    async def ask(self, prompt: str) -> Message:
        """Typed prompt: skips capture and transcription."""
        self._require(SessionState.IDLE)
        try:
            self.store.append(Role.USER, prompt)
            return await self._complete(prompt)
        finally:
            self._transition(SessionState.IDLE)

    async def _transcribe(self, audio: bytes, mime_type: str) -> str:
        self._transition(SessionState.UPLOADING)
        body = _UploadBody(audio, on_sent=lambda: self._transition(SessionState.TRANSCRIBING))
        request = self._http.build_request(
            "POST", "/stt", files={"audio": ("recording" + canonical_extension(mime_type), body, mime_type)}
        )
        try:
            response = await self._http.send(request)
        except httpx.HTTPError as e:
            raise TranscriptionFailed(str(e) or type(e).__name__) from e
        if response.status_code != 200:
            raise TranscriptionFailed(_json_field(response, "error", "Failed to transcribe audio."))
        return _json_field(response, "text", "")

    async def _complete(self, prompt: str) -> Message:
        self._transition(SessionState.STREAMING)
        placeholder = self.store.append(Role.ASSISTANT, "", is_streaming=True)
        context = self._window.build(self.store.history(), prompt, self.output_style)
        body = {
            "history": context.prior_messages,
            "prompt": prompt,
            "outputStyle": self.output_style.value,
        }
        try:
            async with self._http.stream("POST", "/groq", json=body) as response:
                if response.status_code != 200:
                    await response.aread()
                    logger.warning("Completion error %d: %s", response.status_code,
                                   _json_field(response, "error", "Failed to get response from server."))
                    return self._receiver.fail() or placeholder
                return await self._receiver.consume(response.aiter_bytes()) or placeholder
        except (httpx.HTTPError, httpx.StreamError) as e:
            logger.warning("Completion request failed: %s", e)
            return self._receiver.fail() or placeholder

    def _require(self, expected: SessionState) -> None:
        if self._state != expected:
            raise SessionBusyError(f"session is {self._state.value}, expected {expected.value}")

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        logger.debug("Session %s -> %s", from_state.value, to_state.value)
        if self._on_state_change:
            self._on_state_change(from_state, to_state)


def _json_field(response: httpx.Response, key: str, default: str) -> str:
    try:
        data = response.json()
    except ValueError:
        return default
    if not isinstance(data, dict):
        return default
    return str(data.get(key) or default)


def create_session(base_url: str = VOICE_RELAY_URL, **kwargs) -> VoiceChatSession:
    """Session with its own HTTP client; close it with `await session.aclose()`."""
    return VoiceChatSession(httpx.AsyncClient(base_url=base_url, timeout=None), **kwargs)
