"""
Observability for the relay pipeline.
"""

from metrics.streaming_metrics import (
    get_snapshot,
    record_stream_open,
    record_stream_close,
    record_frame,
    record_transcription,
    record_first_fragment_ms,
    record_provider_failure,
    record_client_disconnect,
    record_cleanup_failure,
    reset,
)

__all__ = [
    "get_snapshot",
    "record_stream_open",
    "record_stream_close",
    "record_frame",
    "record_transcription",
    "record_first_fragment_ms",
    "record_provider_failure",
    "record_client_disconnect",
    "record_cleanup_failure",
    "reset",
]
