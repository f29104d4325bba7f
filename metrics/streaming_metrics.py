"""
Relay observability metrics.

Thread-safe counters and latency samples for /stt and /groq.
Exposed via GET /metrics/streaming (JSON snapshot).
Used by the artifact store, transcription gateway and completion relay.
"""

import threading
from collections import deque
from typing import Any, Dict

# ----- Shared state (module-level for singleton behavior) -----
_lock = threading.Lock()
_active_streams = 0
_frames_relayed = 0
_transcriptions = 0
_first_fragment_samples: deque = deque(maxlen=1000)  # last N ms-to-first-fragment values for avg/p95
_provider_failures = {"pre_stream": 0, "mid_stream": 0, "transcription": 0}
_client_disconnects = 0
_cleanup_failures = 0


def record_stream_open() -> None:
    """Call when a /groq response starts streaming."""
    with _lock:
        global _active_streams
        _active_streams += 1


def record_stream_close() -> None:
    """Call when a /groq response stream ends for any reason."""
    with _lock:
        global _active_streams
        _active_streams = max(0, _active_streams - 1)


def record_frame() -> None:
    with _lock:
        global _frames_relayed
        _frames_relayed += 1


def record_transcription() -> None:
    """Call after a successful provider transcription."""
    with _lock:
        global _transcriptions
        _transcriptions += 1


def record_first_fragment_ms(elapsed_ms: float) -> None:
    """Record time from provider call to first fragment (or to empty completion)."""
    with _lock:
        _first_fragment_samples.append(elapsed_ms)


def record_provider_failure(stage: str) -> None:
    """stage: pre_stream | mid_stream | transcription."""
    with _lock:
        _provider_failures[stage] = _provider_failures.get(stage, 0) + 1


def record_client_disconnect() -> None:
    with _lock:
        global _client_disconnects
        _client_disconnects += 1


def record_cleanup_failure() -> None:
    """Call when a temporary artifact could not be deleted."""
    with _lock:
        global _cleanup_failures
        _cleanup_failures += 1


def reset() -> None:
    """Zero every counter (tests and process restarts)."""
    global _active_streams, _frames_relayed, _transcriptions, _client_disconnects, _cleanup_failures
    with _lock:
        _active_streams = 0
        _frames_relayed = 0
        _transcriptions = 0
        _client_disconnects = 0
        _cleanup_failures = 0
        _first_fragment_samples.clear()
        for key in _provider_failures:
            _provider_failures[key] = 0


def get_snapshot() -> Dict[str, Any]:
    """
    Return a JSON-serializable snapshot of relay metrics.
    Used by GET /metrics/streaming.
    """
    with _lock:
        samples = list(_first_fragment_samples)
        snapshot = {
            "active_streams": _active_streams,
            "frames_relayed": _frames_relayed,
            "transcriptions": _transcriptions,
            "provider_failures": dict(_provider_failures),
            "client_disconnects": _client_disconnects,
            "cleanup_failures": _cleanup_failures,
        }
    n = len(samples)
    if n == 0:
        avg_ms = None
        p95_ms = None
    else:
        avg_ms = round(sum(samples) / n, 2)
        sorted_s = sorted(samples)
        idx = max(0, int(0.95 * n) - 1)
        p95_ms = round(sorted_s[idx], 2)
    snapshot["avg_first_fragment_ms"] = avg_ms
    snapshot["p95_first_fragment_ms"] = p95_ms
    snapshot["first_fragment_sample_count"] = n
    return snapshot
