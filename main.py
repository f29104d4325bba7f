"""
Voice relay API.
POST /stt: uploaded audio -> temporary artifact -> Groq Whisper -> {"text"}.
POST /groq: history + prompt -> Groq chat completion relayed as an event stream.
History is supplied by the caller on every turn; nothing is kept between requests.
"""
import logging
from typing import Optional

import uvicorn
from fastapi import Body, Depends, FastAPI, File, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

import config
from core.artifacts import TemporaryArtifactStore
from core.conversation import ConversationWindow
from core.errors import ArtifactStoreError, ProviderError, ValidationError
from core.providers import LazyGroqClient
from core.relay import STREAM_HEADERS, CompletionRelay
from core.schemas import CompletionRequest
from core.transcription import TranscriptionGateway
from metrics.streaming_metrics import get_snapshot

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
logger = logging.getLogger("voice_relay")

NO_AUDIO = "No audio file uploaded."
PROMPT_REQUIRED = "Prompt is required."
STORE_FAILED = "Failed to store uploaded audio."
STT_FAILED = "Failed to transcribe audio."
COMPLETION_FAILED = "Failed to get response from Groq API."
INTERNAL_ERROR = "Internal server error."

app = FastAPI(title="Voice Relay API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----- Providers (one long-lived client per process, built on first provider call) -----
_groq_client = LazyGroqClient()


def get_groq_client() -> LazyGroqClient:
    return _groq_client


def get_artifact_store() -> TemporaryArtifactStore:
    return TemporaryArtifactStore(directory=config.get_upload_dir())


def get_transcription_gateway(client=Depends(get_groq_client)) -> TranscriptionGateway:
    return TranscriptionGateway(client, model=config.STT_MODEL)


def get_completion_relay(client=Depends(get_groq_client)) -> CompletionRelay:
    return CompletionRelay(client, model=config.CHAT_MODEL)


def get_conversation_window() -> ConversationWindow:
    return ConversationWindow(config.CONTEXT_WINDOW_SIZE)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.exception_handler(ValidationError)
async def relay_validation_error(request, exc: ValidationError):
    return _error(400, str(exc))


@app.exception_handler(RequestValidationError)
async def request_validation_error(request, exc: RequestValidationError):
    errors = exc.errors()
    if not errors:
        return _error(400, "Invalid request.")
    first = errors[0]
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    return _error(400, f"{where}: {first.get('msg')}" if where else str(first.get("msg")))


@app.exception_handler(Exception)
async def unhandled_error(request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return _error(500, INTERNAL_ERROR)


@app.get("/")
def health_check():
    return {
        "status": "ok",
        "message": "Voice relay API is running",
        "stt_model": config.STT_MODEL,
        "chat_model": config.CHAT_MODEL,
    }


@app.post("/stt")
async def speech_to_text(
    audio: Optional[UploadFile] = File(None),
    store: TemporaryArtifactStore = Depends(get_artifact_store),
    gateway: TranscriptionGateway = Depends(get_transcription_gateway),
):
    if audio is None:
        raise ValidationError(NO_AUDIO)
    raw = await audio.read()
    if not raw:
        raise ValidationError(NO_AUDIO)

    try:
        handle = await store.store(raw, audio.content_type)
    except ArtifactStoreError:
        logger.exception("Could not persist upload")
        return _error(500, STORE_FAILED)

    try:
        text = await gateway.transcribe(handle)
    except ProviderError:
        logger.exception("Groq STT Error")
        return _error(500, STT_FAILED)
    finally:
        await store.delete(handle)
    return {"text": text}


@app.post("/groq")
async def chat_completion(
    payload: Optional[CompletionRequest] = Body(None),
    window: ConversationWindow = Depends(get_conversation_window),
    relay: CompletionRelay = Depends(get_completion_relay),
):
    if payload is None or not payload.prompt:
        raise ValidationError(PROMPT_REQUIRED)

    context = window.for_request(payload.history, payload.prompt, payload.output_style)
    try:
        relay_stream = await relay.open(context)
    except ProviderError:
        logger.exception("Groq API Error")
        return _error(500, COMPLETION_FAILED)

    return StreamingResponse(
        relay_stream.frames(),
        headers=dict(STREAM_HEADERS),
        background=BackgroundTask(relay_stream.aclose),
    )


@app.get("/metrics/streaming", include_in_schema=False)
def metrics_streaming():
    """JSON snapshot: active_streams, frames_relayed, provider_failures, cleanup_failures, first-fragment latency."""
    return get_snapshot()


if __name__ == "__main__":
    uvicorn.run(app, host=config.HOST, port=config.PORT)
