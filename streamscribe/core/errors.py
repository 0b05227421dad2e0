"""
Error taxonomy for streamscribe.

Packet- and frame-level failures are absorbed by the pipeline (logged and
skipped). Only stream-level failures reach the caller as one of these
exceptions.
"""


class StreamScribeError(Exception):
    """Base class for all streamscribe errors."""

    pass


class AudioProcessingError(StreamScribeError):
    """Raised when a file is missing, has no audio, or yields no samples."""

    pass


class DecodeError(StreamScribeError):
    """Raised when the container or codec fails at the stream level."""

    pass


class ResampleError(StreamScribeError):
    """Raised by a resampler context when one frame cannot be converted."""

    pass


class TranscriptionError(StreamScribeError):
    """Raised when inference or result extraction fails."""

    pass


class TranscriberBusyError(TranscriptionError):
    """Raised when a run tries to use a session another run already owns."""

    pass


class ConfigurationError(StreamScribeError):
    """Raised when no usable model or configuration can be resolved."""

    pass
