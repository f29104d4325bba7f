"""
Groq client construction shared by the transcription gateway and the completion relay.
"""
from typing import Optional

import groq
import httpx

from config import GROQ_API_KEY

# groq.GroqError is the SDK base class (API errors and client misconfiguration);
# httpx errors can escape while a response body is still being read.
PROVIDER_ERRORS = (groq.GroqError, httpx.HTTPError)


def build_groq_client(api_key: Optional[str] = None) -> groq.AsyncGroq:
    """Process-wide async client. Retries are off: one user action, one attempt."""
    return groq.AsyncGroq(api_key=api_key or GROQ_API_KEY or None, max_retries=0)


class LazyGroqClient:
    """
    Builds the AsyncGroq client on first use.

    A missing API key then fails the provider call (as a GroqError) instead of
    request handling, so input validation still answers 400.
    """

    def __init__(self, api_key: Optional[str] = None):
        self._api_key = api_key
        self._client: Optional[groq.AsyncGroq] = None

    def __getattr__(self, name: str):
        if self._client is None:
            self._client = build_groq_client(self._api_key)
        return getattr(self._client, name)
