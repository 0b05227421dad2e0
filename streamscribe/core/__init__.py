"""
Core audio and transcription components.

This module contains:
- decoder: PyAV decode adapter (packet-level resilient)
- resampler: Resampler state machine (mono float32 at 16 kHz)
- chunker: Fixed 10 second windows
- pipeline: Decode -> Resample -> Chunk, batch and streaming drivers
- stt: Speech engine session and inference adapter
- transcriber: Batch/streaming facade with running statistics
- audio_utils: Audio processing utilities
"""


# Lazy imports to avoid circular dependencies
def __getattr__(name: str):
    if name == "Transcriber":
        from streamscribe.core.transcriber import Transcriber

        return Transcriber
    elif name == "TranscriptionResult":
        from streamscribe.core.transcriber import TranscriptionResult

        return TranscriptionResult
    elif name == "StreamingChunk":
        from streamscribe.core.transcriber import StreamingChunk

        return StreamingChunk
    elif name == "TranscriptionStats":
        from streamscribe.core.transcriber import TranscriptionStats

        return TranscriptionStats
    elif name == "AudioDecoder":
        from streamscribe.core.decoder import AudioDecoder

        return AudioDecoder
    elif name == "ResamplerStateMachine":
        from streamscribe.core.resampler import ResamplerStateMachine

        return ResamplerStateMachine
    elif name == "Chunker":
        from streamscribe.core.chunker import Chunker

        return Chunker
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "Transcriber",
    "TranscriptionResult",
    "StreamingChunk",
    "TranscriptionStats",
    "AudioDecoder",
    "ResamplerStateMachine",
    "Chunker",
]
