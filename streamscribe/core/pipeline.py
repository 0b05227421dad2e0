"""
Decode -> Resample -> Chunk pipeline.

Two ways to drive it:
- normalize_file()/load_audio(): decode and normalize a whole file into one
  sample buffer (batch transcription)
- stream_audio(): run the pipeline on a worker thread and publish AudioChunks
  over a ChunkChannel to a consumer on the event loop (streaming)

Decode and resampling are CPU-bound and always run off the event loop.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, Tuple, Union

import numpy as np

from streamscribe.core.audio_utils import TARGET_SAMPLE_RATE
from streamscribe.core.chunker import AudioChunk, Chunker
from streamscribe.core.decoder import NO_AUDIO_EXTRACTED, AudioDecoder
from streamscribe.core.errors import AudioProcessingError, DecodeError, StreamScribeError
from streamscribe.core.resampler import ResamplerStateMachine

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass
class AudioData:
    """A fully normalized file (mono float32 at 16 kHz)."""

    samples: np.ndarray
    sample_rate: int = TARGET_SAMPLE_RATE
    duration: float = 0.0


_END = object()


class ChunkChannel:
    """
    Unbounded FIFO channel from one producer to one asyncio consumer.

    The producer may live on any thread. Closing the channel from the
    receiving side makes every later send() return False, which is how a
    producer learns that nobody is listening anymore.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop or asyncio.get_running_loop()
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def _put(self, item: Any) -> bool:
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)
        except RuntimeError:
            # Event loop is gone
            self._closed.set()
            return False
        return True

    def send(self, item: Any) -> bool:
        """Publish one item. Returns False if the receiver has gone away."""
        if self._closed.is_set():
            return False
        return self._put(item)

    def finish(self) -> None:
        """Signal end of stream (producer side)."""
        if not self._closed.is_set():
            self._put(_END)

    def close(self) -> None:
        """Stop accepting items (receiver side)."""
        self._closed.set()

    async def receive(self) -> Any:
        """
        Wait for the next item.

        Raises:
            StopAsyncIteration: At end of stream
        """
        item = await self._queue.get()
        if item is _END:
            raise StopAsyncIteration
        return item

    def __aiter__(self) -> "ChunkChannel":
        return self

    async def __anext__(self) -> Any:
        return await self.receive()


def normalized_blocks(
    path: PathLike,
    max_duration: Optional[float] = None,
    opener: Optional[Callable[[str], Any]] = None,
    stop: Optional[Callable[[], bool]] = None,
) -> Iterator[np.ndarray]:
    """
    Decode and normalize a file, one block of samples per decoded frame.

    Args:
        path: Media file to decode
        max_duration: Stop after this many seconds of normalized audio
        opener: Container opener passed to AudioDecoder
        stop: Polled between frames; decoding ends early when it returns True

    Yields:
        1-D float32 arrays (mono, 16 kHz); frames dropped by the resampler
        produce no block
    """
    decoder = AudioDecoder(path, opener=opener)
    resampler = ResamplerStateMachine()
    limit = int(max_duration * TARGET_SAMPLE_RATE) if max_duration else None
    produced = 0

    frames = decoder.frames()
    try:
        for frame in frames:
            if stop is not None and stop():
                logger.info("Pipeline stopped by consumer, abandoning decode")
                return

            samples = resampler.process(frame)
            if limit is not None:
                samples = samples[: max(limit - produced, 0)]
            if len(samples):
                produced += len(samples)
                yield samples
            if limit is not None and produced >= limit:
                logger.info(f"Reached max_duration ({max_duration}s), stopping decode")
                return

        tail = resampler.flush()
        if limit is not None:
            tail = tail[: max(limit - produced, 0)]
        if len(tail):
            yield tail
    finally:
        frames.close()
        if resampler.conversion_failures:
            logger.info(
                f"{resampler.conversion_failures} frame(s) dropped by the resampler, "
                f"{resampler.contexts_built} context(s) built"
            )


def normalize_file(
    path: PathLike,
    max_duration: Optional[float] = None,
    opener: Optional[Callable[[str], Any]] = None,
) -> AudioData:
    """
    Decode a whole file into one normalized buffer (no chunking).

    Raises:
        AudioProcessingError: File missing, no audio stream, or no samples
        DecodeError: Stream-level decode failure
    """
    blocks: List[np.ndarray] = list(normalized_blocks(path, max_duration, opener))
    if not blocks:
        raise AudioProcessingError(NO_AUDIO_EXTRACTED)

    samples = np.concatenate(blocks)
    duration = len(samples) / float(TARGET_SAMPLE_RATE)
    logger.debug(f"Normalized {path}: {len(samples)} samples, {duration:.2f}s")
    return AudioData(samples=samples, sample_rate=TARGET_SAMPLE_RATE, duration=duration)


async def load_audio(path: PathLike, max_duration: Optional[float] = None) -> AudioData:
    """Async wrapper running normalize_file() on a worker thread."""
    return await asyncio.to_thread(normalize_file, path, max_duration)


def produce_chunks(
    path: PathLike,
    channel: ChunkChannel,
    max_duration: Optional[float] = None,
    opener: Optional[Callable[[str], Any]] = None,
) -> int:
    """
    Producer body: Decode -> Resample -> Chunk, publishing onto ``channel``.

    Fatal errors are published as a terminal item. The channel is always
    finished on return.

    Returns:
        Number of chunks published
    """
    chunker = Chunker()
    published = 0
    try:
        for block in normalized_blocks(
            path, max_duration, opener, stop=lambda: channel.closed
        ):
            for chunk in chunker.push(block):
                if not channel.send(chunk):
                    logger.info("Chunk receiver dropped, stopping producer")
                    return published
                published += 1

        if channel.closed:
            return published

        final = chunker.finish()
        if channel.send(final):
            published += 1
        logger.debug(f"Producer finished {path}: {published} chunk(s)")

    except StreamScribeError as e:
        logger.warning(f"Audio streaming failed: {e}")
        channel.send(e)
    except Exception as e:
        logger.error(f"Unexpected error in audio producer: {e}", exc_info=True)
        channel.send(DecodeError(f"Audio streaming failed: {e}"))
    finally:
        channel.finish()

    return published


async def stream_audio(
    path: PathLike,
    max_duration: Optional[float] = None,
    opener: Optional[Callable[[str], Any]] = None,
) -> Tuple[ChunkChannel, "asyncio.Task[int]"]:
    """
    Start the producer on a worker thread.

    Returns:
        (channel of AudioChunk | StreamScribeError items, producer task)
    """
    channel = ChunkChannel(asyncio.get_running_loop())
    task = asyncio.create_task(
        asyncio.to_thread(produce_chunks, path, channel, max_duration, opener)
    )
    return channel, task


__all__ = [
    "AudioChunk",
    "AudioData",
    "ChunkChannel",
    "load_audio",
    "normalize_file",
    "normalized_blocks",
    "produce_chunks",
    "stream_audio",
]
