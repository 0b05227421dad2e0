"""
streamscribe - audio normalization and streaming transcription.

Decodes any audio container with PyAV, normalizes it to mono float32 at
16 kHz, and transcribes it with faster-whisper either in one pass or as an
ordered stream of 10 second chunks.
"""

from typing import Any

__version__ = "0.1.0"

__all__ = [
    "Transcriber",
    "TranscriptionConfig",
    "TranscriptionResult",
    "StreamingChunk",
    "TranscriptionStats",
    "transcribe_batch",
    "transcribe_stream",
]


def __getattr__(name: str) -> Any:
    """Lazily resolve public exports so importing the package stays cheap."""
    if name == "TranscriptionConfig":
        from streamscribe.config import TranscriptionConfig

        return TranscriptionConfig
    if name in {
        "Transcriber",
        "TranscriptionResult",
        "StreamingChunk",
        "TranscriptionStats",
        "transcribe_batch",
        "transcribe_stream",
    }:
        from streamscribe.core import transcriber

        return getattr(transcriber, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
