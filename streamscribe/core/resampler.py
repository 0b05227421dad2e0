"""
Resampler state machine.

Converts decoded frames of any format/layout/rate into mono float32 samples
at 16 kHz. A general-purpose libswresample context (via PyAV) is kept for the
current source format and rebuilt only when that format changes or after a
conversion failure. Mono 16-bit and float frames take a fast path that never
touches the general resampler.

States:
    Uninitialized: no context (before the first general-path frame, and after
                   any conversion failure)
    Active(key):   one live context for ``key = (format, layout, rate)``
"""

import logging
from typing import Any, Callable, List, NamedTuple, Optional

import av
import numpy as np

from streamscribe.core.audio_utils import TARGET_SAMPLE_RATE, decimate, int16_to_float32
from streamscribe.core.decoder import RawFrame
from streamscribe.core.errors import ResampleError

logger = logging.getLogger(__name__)

INT16_FORMATS = frozenset({"s16", "s16p"})
FLOAT32_FORMATS = frozenset({"flt", "fltp"})

# Mono int16/float32 frames at rates other than 16 kHz are converted by strided
# sample picking instead of the band-limited resampler. Pending product sign-off.
FAST_PATH_DECIMATION = True

_EMPTY = np.zeros(0, dtype=np.float32)


class ResamplerKey(NamedTuple):
    """Source format a resampler context was built for."""

    format: str
    layout: str
    rate: int


def effective_layout(frame: RawFrame) -> str:
    """
    Channel layout to build a context for.

    Frames that report no layout get the canonical layout for their channel
    count.
    """
    if frame.layout:
        return frame.layout
    if frame.channels == 1:
        return "mono"
    if frame.channels == 2:
        return "stereo"
    return av.AudioLayout(frame.channels).name


def needs_resampling(frame: RawFrame) -> bool:
    """True unless the frame is mono int16/float32 (the fast path)."""
    direct = frame.format in INT16_FORMATS or frame.format in FLOAT32_FORMATS
    return not (direct and frame.channels == 1)


class AvResamplerContext:
    """libswresample context producing packed mono float32 at 16 kHz."""

    def __init__(self, key: ResamplerKey):
        self.key = key
        self._resampler = av.AudioResampler(
            format="flt", layout="mono", rate=TARGET_SAMPLE_RATE
        )

    def _source_frame(self, frame: RawFrame) -> "av.AudioFrame":
        if frame.source is not None:
            return frame.source
        rebuilt = av.AudioFrame.from_ndarray(
            frame.data, format=frame.format, layout=self.key.layout
        )
        rebuilt.sample_rate = frame.sample_rate
        return rebuilt

    @staticmethod
    def _collect(frames: List["av.AudioFrame"]) -> np.ndarray:
        if not frames:
            return _EMPTY
        return np.concatenate(
            [f.to_ndarray().reshape(-1).astype(np.float32, copy=False) for f in frames]
        )

    def convert(self, frame: RawFrame) -> np.ndarray:
        try:
            return self._collect(self._resampler.resample(self._source_frame(frame)))
        except (av.error.FFmpegError, ValueError) as e:
            raise ResampleError(str(e)) from e

    def flush(self) -> np.ndarray:
        try:
            return self._collect(self._resampler.resample(None))
        except (av.error.FFmpegError, ValueError) as e:
            raise ResampleError(str(e)) from e


ContextFactory = Callable[[ResamplerKey], Any]


class ResamplerStateMachine:
    """
    Per-pipeline frame normalizer.

    Owned by exactly one producer; holds at most one live resampler context.
    """

    def __init__(
        self,
        context_factory: Optional[ContextFactory] = None,
        target_rate: int = TARGET_SAMPLE_RATE,
    ):
        self._factory: ContextFactory = context_factory or AvResamplerContext
        self.target_rate = target_rate
        self._context: Optional[Any] = None
        self._key: Optional[ResamplerKey] = None

        self.contexts_built = 0
        self.conversion_failures = 0

    @property
    def key(self) -> Optional[ResamplerKey]:
        """Key of the live context, or None while Uninitialized."""
        return self._key

    @property
    def is_active(self) -> bool:
        return self._key is not None

    def reset(self) -> None:
        """Drop the live context (transition to Uninitialized)."""
        self._context = None
        self._key = None

    def _ensure_context(self, key: ResamplerKey) -> Any:
        if self._key != key or self._context is None:
            if self._key is not None:
                logger.debug(f"Source format changed: {self._key} -> {key}")
            self._context = None
            self._key = None
            self._context = self._factory(key)
            self._key = key
            self.contexts_built += 1
        return self._context

    def process(self, frame: RawFrame) -> np.ndarray:
        """
        Normalize one frame.

        Returns:
            1-D float32 array of mono samples at the target rate. Empty when
            the frame had to be dropped.
        """
        if not needs_resampling(frame) and (
            FAST_PATH_DECIMATION or frame.sample_rate == self.target_rate
        ):
            return self._fast_path(frame)

        key = ResamplerKey(frame.format, effective_layout(frame), frame.sample_rate)
        try:
            context = self._ensure_context(key)
            return context.convert(frame)
        except Exception as e:
            self.conversion_failures += 1
            logger.warning(f"Skipping frame due to resampling error ({key}): {e}")
            self.reset()
            return _EMPTY

    def flush(self) -> np.ndarray:
        """Drain samples still buffered in the live context, if any."""
        if self._context is None or not hasattr(self._context, "flush"):
            return _EMPTY
        try:
            return self._context.flush()
        except Exception as e:
            logger.warning(f"Failed to flush resampler, dropping its tail: {e}")
            return _EMPTY
        finally:
            self.reset()

    def _fast_path(self, frame: RawFrame) -> np.ndarray:
        data = frame.data.reshape(-1)[: frame.samples]

        if frame.sample_rate != self.target_rate:
            data = decimate(data, frame.sample_rate, self.target_rate)

        if frame.format in INT16_FORMATS:
            return int16_to_float32(data)
        return data.astype(np.float32, copy=False)
