"""
Fixed-window chunking of the normalized sample stream.

Splits mono 16 kHz samples into 10 second windows for incremental inference.
Windows are numbered from 0, carry their offset into the stream, and the last
one is flagged final.
"""

import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional

import numpy as np

from streamscribe.core.audio_utils import CHUNK_SAMPLES, TARGET_SAMPLE_RATE
from streamscribe.core.decoder import NO_AUDIO_EXTRACTED
from streamscribe.core.errors import AudioProcessingError

logger = logging.getLogger(__name__)


@dataclass
class AudioChunk:
    """A window of normalized audio (mono, float32, 16 kHz)."""

    samples: np.ndarray
    index: int
    start_time: float
    is_final: bool
    duration: float = 0.0
    sample_rate: int = TARGET_SAMPLE_RATE

    @classmethod
    def create(
        cls,
        samples: np.ndarray,
        index: int,
        start_time: float,
        is_final: bool,
    ) -> "AudioChunk":
        return cls(
            samples=samples,
            index=index,
            start_time=start_time,
            is_final=is_final,
            duration=len(samples) / float(TARGET_SAMPLE_RATE),
        )

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration


class Chunker:
    """
    Accumulates normalized samples and cuts them into fixed-size chunks.

    Call push() for every batch of samples, then finish() exactly once at end
    of stream. A full window is held back until more audio arrives, so the
    window that turns out to be last can still be flagged final.
    """

    def __init__(self, chunk_samples: int = CHUNK_SAMPLES):
        if chunk_samples <= 0:
            raise ValueError(f"chunk_samples must be positive, got {chunk_samples}")
        self.chunk_samples = chunk_samples
        self._buffer = np.zeros(0, dtype=np.float32)
        self._pending: Optional[np.ndarray] = None
        self._next_index = 0
        self._consumed = 0
        self._finished = False

    @property
    def chunks_emitted(self) -> int:
        return self._next_index

    @property
    def buffered(self) -> int:
        """Samples not yet handed out in a chunk."""
        pending = len(self._pending) if self._pending is not None else 0
        return pending + len(self._buffer)

    def _emit(self, samples: np.ndarray, is_final: bool) -> AudioChunk:
        chunk = AudioChunk.create(
            samples,
            index=self._next_index,
            start_time=self._consumed / float(TARGET_SAMPLE_RATE),
            is_final=is_final,
        )
        self._next_index += 1
        self._consumed += len(samples)
        return chunk

    def push(self, samples: np.ndarray) -> List[AudioChunk]:
        """
        Append samples and return every chunk known not to be the last one.

        Raises:
            AudioProcessingError: If called after finish()
        """
        if self._finished:
            raise AudioProcessingError("Cannot add samples to a finished chunk stream")

        samples = np.asarray(samples, dtype=np.float32).reshape(-1)
        if not len(samples):
            return []
        self._buffer = np.concatenate([self._buffer, samples])

        chunks: List[AudioChunk] = []
        if self._pending is not None:
            chunks.append(self._emit(self._pending, is_final=False))
            self._pending = None

        while len(self._buffer) >= self.chunk_samples:
            window = self._buffer[: self.chunk_samples].copy()
            self._buffer = self._buffer[self.chunk_samples :]
            if len(self._buffer):
                chunks.append(self._emit(window, is_final=False))
            else:
                self._pending = window
        return chunks

    def finish(self) -> AudioChunk:
        """
        Close the stream and return the final chunk.

        The final chunk holds the leftover samples, or the held-back full
        window when the stream ended exactly on a chunk boundary.

        Raises:
            AudioProcessingError: If no samples were ever seen
        """
        if self._finished:
            raise AudioProcessingError("Chunk stream already finished")
        self._finished = True

        if self._pending is not None:
            # Buffer is empty whenever a window is held back
            final = self._emit(self._pending, is_final=True)
            self._pending = None
            logger.debug(f"Stream ended on a chunk boundary after chunk #{final.index}")
            return final

        if len(self._buffer):
            final = self._emit(self._buffer, is_final=True)
            self._buffer = np.zeros(0, dtype=np.float32)
            return final

        raise AudioProcessingError(NO_AUDIO_EXTRACTED)


def chunk_samples(
    samples: np.ndarray, chunk_size: int = CHUNK_SAMPLES
) -> Iterator[AudioChunk]:
    """Split an in-memory sample array into chunks."""
    chunker = Chunker(chunk_size)
    yield from chunker.push(samples)
    yield chunker.finish()
