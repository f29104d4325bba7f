"""
Runtime configuration via environment variables.
Load with python-dotenv; provider credentials are never hardcoded.
"""
import os
import tempfile

# Load .env if present (optional in production where env is set by orchestrator)
from dotenv import load_dotenv

load_dotenv()

# ----- Server -----
PORT = int(os.environ.get("PORT", "3000"))
HOST = os.environ.get("HOST", "0.0.0.0")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# ----- Providers -----
# One secret for both transcription and generation (same Groq account)
GROQ_API_KEY = os.environ.get("GROQ_API_KEY", "")
STT_MODEL = os.environ.get("STT_MODEL", "whisper-large-v3")
CHAT_MODEL = os.environ.get("CHAT_MODEL", "llama-3.1-8b-instant")

# ----- Context window -----
# Max prior messages sent to the generation provider per turn
CONTEXT_WINDOW_SIZE = int(os.environ.get("CONTEXT_WINDOW_SIZE", "6"))

# ----- Uploads -----
# Where temporary audio artifacts live while a /stt request is in flight.
UPLOAD_TMP_DIR = os.environ.get("UPLOAD_TMP_DIR", "")


def get_upload_dir() -> str:
    """Return the directory for temporary audio artifacts (system temp dir if unset)."""
    if UPLOAD_TMP_DIR:
        os.makedirs(UPLOAD_TMP_DIR, exist_ok=True)
        return UPLOAD_TMP_DIR
    return tempfile.gettempdir()


# ----- Client -----
VOICE_RELAY_URL = os.environ.get("VOICE_RELAY_URL", f"http://localhost:{PORT}")

# ----- CORS (production: set to specific origins) -----
CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")
def get_cors_origins() -> list:
    """Return list of allowed CORS origins from env."""
    if CORS_ORIGINS == "*":
        return ["*"]
    return [o.strip() for o in CORS_ORIGINS.split(",") if o.strip()]
