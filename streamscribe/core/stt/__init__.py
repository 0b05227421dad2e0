"""
Speech-to-text (STT) engine module.

Key components:
- InferenceAdapter: runs one engine pass and extracts segments
- TranscriptionSegment: a span of text with start/end seconds
- FasterWhisperSession / load_session: faster-whisper backed engine session

The engine exports resolve lazily so that importing this package does not
import faster-whisper.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from streamscribe.core.stt.inference import (
    InferenceAdapter,
    InferenceParams,
    SpeechSession,
    TranscriptionSegment,
    WordTimestamp,
)

if TYPE_CHECKING:
    from streamscribe.core.stt.engine import FasterWhisperSession, load_session

__all__ = [
    "FasterWhisperSession",
    "InferenceAdapter",
    "InferenceParams",
    "SpeechSession",
    "TranscriptionSegment",
    "WordTimestamp",
    "load_session",
]


def __getattr__(name: str) -> Any:
    """Lazily resolve heavy STT engine exports to avoid startup import cost."""
    if name in {"FasterWhisperSession", "load_session"}:
        from streamscribe.core.stt.engine import FasterWhisperSession, load_session

        exports = {
            "FasterWhisperSession": FasterWhisperSession,
            "load_session": load_session,
        }
        return exports[name]

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
