"""
Transcriber facade.

Drives the two transcription modes over one loaded speech session:
- Batch: normalize the whole file, run inference once, return one result
- Streaming: run the chunk pipeline on a worker thread, infer chunk by chunk
  and yield StreamingChunks with absolute times and running statistics

A session is driven by one run at a time. A second concurrent run is
rejected with TranscriberBusyError rather than queued.
"""

import asyncio
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from streamscribe.config import TranscriptionConfig, load_transcription_config
from streamscribe.core.chunker import AudioChunk
from streamscribe.core.errors import (
    StreamScribeError,
    TranscriberBusyError,
    TranscriptionError,
)
from streamscribe.core.pipeline import load_audio, stream_audio
from streamscribe.core.stt.inference import (
    InferenceAdapter,
    SpeechSession,
    TranscriptionSegment,
    join_segment_text,
)
from streamscribe.logging import install_logging_hooks

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass
class TranscriptionStats:
    """Statistics for a completed run."""

    processing_time: float
    audio_duration: float
    real_time_factor: float
    segment_count: int
    avg_segment_length: float
    word_count: int
    words_per_minute: float

    @classmethod
    def compute(
        cls,
        processing_time: float,
        audio_duration: float,
        segment_count: int,
        word_count: int,
    ) -> "TranscriptionStats":
        return cls(
            processing_time=processing_time,
            audio_duration=audio_duration,
            real_time_factor=(
                audio_duration / processing_time if processing_time > 0 else 0.0
            ),
            segment_count=segment_count,
            avg_segment_length=(
                audio_duration / segment_count if segment_count > 0 else 0.0
            ),
            word_count=word_count,
            words_per_minute=(
                word_count * 60.0 / audio_duration if audio_duration > 0 else 0.0
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processing_time": round(self.processing_time, 3),
            "audio_duration": round(self.audio_duration, 3),
            "real_time_factor": round(self.real_time_factor, 3),
            "segment_count": self.segment_count,
            "avg_segment_length": round(self.avg_segment_length, 3),
            "word_count": self.word_count,
            "words_per_minute": round(self.words_per_minute, 1),
        }


@dataclass
class TranscriptionResult:
    """Result of a batch transcription."""

    text: str
    language: Optional[str]
    segments: List[TranscriptionSegment] = field(default_factory=list)
    processing_time: float = 0.0
    audio_duration: float = 0.0

    @property
    def word_count(self) -> int:
        return len(self.text.split())

    def stats(self) -> TranscriptionStats:
        return TranscriptionStats.compute(
            self.processing_time,
            self.audio_duration,
            len(self.segments),
            self.word_count,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "language": self.language,
            "segments": [s.to_dict() for s in self.segments],
            "processing_time": round(self.processing_time, 3),
            "audio_duration": round(self.audio_duration, 3),
            "stats": self.stats().to_dict(),
        }


@dataclass
class StreamingChunk:
    """One incremental result; times are absolute stream seconds."""

    text: str
    start: float
    end: float
    is_final: bool
    chunk_index: int
    segments: List[TranscriptionSegment] = field(default_factory=list)
    final_stats: Optional[TranscriptionStats] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "start": round(self.start, 3),
            "end": round(self.end, 3),
            "is_final": self.is_final,
            "chunk_index": self.chunk_index,
            "segments": [s.to_dict() for s in self.segments],
            "final_stats": self.final_stats.to_dict() if self.final_stats else None,
        }


class StreamAggregator:
    """Running totals across the chunks of one streaming run."""

    def __init__(self):
        self.segment_count = 0
        self.word_count = 0
        self.audio_duration = 0.0
        self.processing_time = 0.0
        self.chunks_processed = 0

    def consume(
        self,
        chunk: AudioChunk,
        segments: List[TranscriptionSegment],
        processing_time: float = 0.0,
    ) -> StreamingChunk:
        """Fold one chunk's inference output into the totals."""
        absolute = [s.shifted(chunk.start_time) for s in segments]
        text = join_segment_text(absolute)

        self.segment_count += len(absolute)
        self.word_count += len(text.split())
        self.audio_duration += chunk.duration
        self.processing_time += processing_time
        self.chunks_processed += 1

        final_stats = None
        if chunk.is_final:
            final_stats = self.snapshot()

        return StreamingChunk(
            text=text,
            start=chunk.start_time,
            end=chunk.end_time,
            is_final=chunk.is_final,
            chunk_index=chunk.index,
            segments=absolute,
            final_stats=final_stats,
        )

    def snapshot(self) -> TranscriptionStats:
        return TranscriptionStats.compute(
            self.processing_time,
            self.audio_duration,
            self.segment_count,
            self.word_count,
        )


class SessionOwnership:
    """
    Tracks which run currently drives the speech session.

    Thread-safe; a run that cannot acquire the session fails immediately.
    """

    def __init__(self):
        self._active_run_id: Optional[str] = None
        self._active_mode: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def is_busy(self) -> bool:
        with self._lock:
            return self._active_run_id is not None

    def acquire(self, mode: str) -> str:
        """
        Claim the session for a new run.

        Raises:
            TranscriberBusyError: If another run owns the session
        """
        with self._lock:
            if self._active_run_id is not None:
                raise TranscriberBusyError(
                    f"Transcriber is busy with a {self._active_mode} run "
                    f"({self._active_run_id[:8]})"
                )
            run_id = str(uuid.uuid4())
            self._active_run_id = run_id
            self._active_mode = mode
            logger.debug(f"Started {mode} run {run_id[:8]}")
            return run_id

    def release(self, run_id: str) -> bool:
        with self._lock:
            if self._active_run_id != run_id:
                return False
            logger.debug(f"Ended {self._active_mode} run {run_id[:8]}")
            self._active_run_id = None
            self._active_mode = None
            return True


class Transcriber:
    """
    Batch and streaming transcription over one speech session.

    Usage:
        transcriber = await Transcriber.from_config(config)
        result = await transcriber.transcribe_batch("talk.mp3")
        async for chunk in transcriber.transcribe_stream("talk.mp3"):
            print(chunk.text)
    """

    def __init__(
        self, session: SpeechSession, config: Optional[TranscriptionConfig] = None
    ):
        install_logging_hooks()
        self.config = (config or TranscriptionConfig()).validate()
        self._session = session
        self._adapter = InferenceAdapter(session)
        self._ownership = SessionOwnership()
        self._closed = False

    @classmethod
    async def from_config(
        cls, config: Optional[TranscriptionConfig] = None
    ) -> "Transcriber":
        """
        Load the model named by ``config`` and build a transcriber for it.

        Raises:
            ConfigurationError: Invalid config or model cannot be loaded
        """
        install_logging_hooks()
        config = (config or load_transcription_config()).validate()

        from streamscribe.core.stt.engine import load_session

        session = await asyncio.to_thread(load_session, config)
        return cls(session, config)

    @property
    def is_busy(self) -> bool:
        return self._ownership.is_busy

    def _run_config(self, language: Optional[str]) -> TranscriptionConfig:
        if self._closed:
            raise TranscriptionError("Transcriber has been closed")
        if language:
            return self.config.with_language(language)
        return self.config

    def _release_when_idle(self, run_id: str, inflight: Optional[asyncio.Future]) -> None:
        """Release the session once no inference call is still running on it."""
        if inflight is not None and not inflight.done():
            inflight.add_done_callback(lambda _: self._ownership.release(run_id))
        else:
            self._ownership.release(run_id)

    async def transcribe_batch(
        self, path: PathLike, language: Optional[str] = None
    ) -> TranscriptionResult:
        """
        Transcribe a whole file with a single inference pass.

        Raises:
            AudioProcessingError / DecodeError: Input could not be decoded
            TranscriptionError: Inference failed
            TranscriberBusyError: Another run owns the session
        """
        config = self._run_config(language)
        run_id = self._ownership.acquire("batch")
        inflight: Optional[asyncio.Future] = None
        try:
            audio = await load_audio(path, config.max_duration)
            logger.info(f"Transcribing {Path(path).name}: {audio.duration:.2f}s of audio")

            start_time = time.perf_counter()
            inflight = asyncio.ensure_future(
                asyncio.to_thread(self._adapter.transcribe, audio.samples, config)
            )
            segments = await asyncio.shield(inflight)
            processing_time = time.perf_counter() - start_time
            detected = self._adapter.detected_language
        finally:
            self._release_when_idle(run_id, inflight)

        result = TranscriptionResult(
            text=join_segment_text(segments),
            language=detected or config.language,
            segments=segments,
            processing_time=processing_time,
            audio_duration=audio.duration,
        )
        logger.info(
            f"Transcription completed in {processing_time:.2f}s: "
            f"{len(segments)} segments, language={result.language}"
        )
        return result

    async def transcribe_stream(
        self, path: PathLike, language: Optional[str] = None
    ) -> AsyncIterator[StreamingChunk]:
        """
        Transcribe a file chunk by chunk.

        Yields StreamingChunks in chunk order. A chunk whose inference fails is
        skipped. A fatal pipeline error is raised after the chunks already
        yielded. Abandoning the iterator stops the producer.
        """
        config = self._run_config(language)
        run_id = self._ownership.acquire("stream")
        aggregator = StreamAggregator()
        channel = None
        producer = None
        inflight: Optional[asyncio.Future] = None
        completed = False

        try:
            channel, producer = await stream_audio(path, config.max_duration)
            async for item in channel:
                if isinstance(item, StreamScribeError):
                    raise item

                chunk: AudioChunk = item
                start_time = time.perf_counter()
                inflight = asyncio.ensure_future(
                    asyncio.to_thread(self._adapter.transcribe, chunk.samples, config)
                )
                try:
                    segments = await asyncio.shield(inflight)
                except TranscriptionError as e:
                    logger.warning(f"Skipping chunk #{chunk.index}: {e}")
                    continue
                elapsed = time.perf_counter() - start_time

                yield aggregator.consume(chunk, segments, elapsed)

            completed = True
            await producer
            logger.info(
                f"Streamed {aggregator.chunks_processed} chunk(s) from {Path(path).name}"
            )
        finally:
            if channel is not None:
                channel.close()
            if not completed and producer is not None and not producer.done():
                logger.info("Stream consumer stopped early, cancelling producer")
                producer.cancel()
            self._release_when_idle(run_id, inflight)

    async def close(self) -> None:
        """Unload the session's model. Later runs fail with TranscriptionError."""
        if self._closed:
            return
        self._closed = True
        unload = getattr(self._session, "unload", None)
        if unload is not None:
            await asyncio.to_thread(unload)

    async def __aenter__(self) -> "Transcriber":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


async def transcribe_batch(
    path: PathLike, config: Optional[TranscriptionConfig] = None
) -> TranscriptionResult:
    """Load a model, transcribe one file in batch mode and unload it."""
    async with await Transcriber.from_config(config) as transcriber:
        return await transcriber.transcribe_batch(path)


async def transcribe_stream(
    path: PathLike, config: Optional[TranscriptionConfig] = None
) -> AsyncIterator[StreamingChunk]:
    """Load a model and stream the transcription of one file."""
    async with await Transcriber.from_config(config) as transcriber:
        stream = transcriber.transcribe_stream(path)
        try:
            async for chunk in stream:
                yield chunk
        finally:
            await stream.aclose()
