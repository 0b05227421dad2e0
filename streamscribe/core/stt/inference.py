"""
Inference adapter.

Runs one speech engine pass over a block of normalized samples and turns the
engine's segment table into TranscriptionSegments (times in seconds, relative
to the start of the block).
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import numpy as np

from streamscribe.config import TranscriptionConfig
from streamscribe.core.errors import TranscriptionError

logger = logging.getLogger(__name__)

# Engine timestamps are reported in centiseconds
ENGINE_TIME_UNITS_PER_SECOND = 100.0


@dataclass
class InferenceParams:
    """Engine parameters for a single inference call."""

    language: Optional[str] = None
    translate: bool = False
    n_threads: Optional[int] = None
    temperature: float = 0.0
    # Greedy decoding unless a beam size is configured
    beam_size: int = 1
    best_of: int = 1
    word_timestamps: bool = False
    print_progress: bool = False
    print_realtime: bool = False

    @classmethod
    def from_config(cls, config: TranscriptionConfig) -> "InferenceParams":
        return cls(
            language=config.language,
            translate=config.translate,
            n_threads=config.num_threads,
            temperature=config.temperature,
            beam_size=config.beam_size or 1,
            best_of=1,
            word_timestamps=config.output_format.word_timestamps,
        )

    def transcribe_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``WhisperModel.transcribe``."""
        return {
            "language": self.language,
            "task": "translate" if self.translate else "transcribe",
            "beam_size": self.beam_size,
            "best_of": self.best_of,
            "temperature": self.temperature,
            "word_timestamps": self.word_timestamps,
            "vad_filter": False,
        }


@dataclass
class WordTimestamp:
    word: str
    start: float
    end: float
    confidence: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "word": self.word,
            "start": self.start,
            "end": self.end,
            "confidence": self.confidence,
        }


@dataclass
class TranscriptionSegment:
    """A span of recognized text with start/end times in seconds."""

    text: str
    start: float
    end: float
    confidence: Optional[float] = None
    words: Optional[List[WordTimestamp]] = field(default=None)

    def shifted(self, offset: float) -> "TranscriptionSegment":
        """Copy of this segment with all times moved by ``offset`` seconds."""
        words = None
        if self.words is not None:
            words = [
                WordTimestamp(w.word, w.start + offset, w.end + offset, w.confidence)
                for w in self.words
            ]
        return TranscriptionSegment(
            text=self.text,
            start=self.start + offset,
            end=self.end + offset,
            confidence=self.confidence,
            words=words,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "text": self.text,
            "start": round(self.start, 3),
            "end": round(self.end, 3),
        }
        if self.confidence is not None:
            data["confidence"] = self.confidence
        if self.words is not None:
            data["words"] = [w.to_dict() for w in self.words]
        return data


@runtime_checkable
class SpeechSession(Protocol):
    """
    A loaded speech engine.

    ``full`` runs inference over one sample block and replaces the session's
    segment table; the accessors read that table. Segment times are integer
    centiseconds relative to the block start.
    """

    language: Optional[str]

    def full(self, samples: np.ndarray, params: InferenceParams) -> None: ...

    def n_segments(self) -> int: ...

    def segment_text(self, index: int) -> str: ...

    def segment_t0(self, index: int) -> int: ...

    def segment_t1(self, index: int) -> int: ...


class InferenceAdapter:
    """Runs inference on a session and extracts its segments."""

    def __init__(self, session: SpeechSession):
        self.session = session

    @property
    def detected_language(self) -> Optional[str]:
        return getattr(self.session, "language", None)

    def transcribe(
        self, samples: np.ndarray, config: TranscriptionConfig
    ) -> List[TranscriptionSegment]:
        """
        Run one inference pass.

        Segments whose text cannot be read are skipped with a warning.

        Raises:
            TranscriptionError: Inference failed, or a segment's count, times,
                confidence or words could not be read
        """
        params = InferenceParams.from_config(config)

        try:
            self.session.full(samples, params)
        except Exception as e:
            raise TranscriptionError(f"Transcription failed: {e}") from e

        try:
            count = self.session.n_segments()
        except Exception as e:
            raise TranscriptionError(f"Failed to get segment count: {e}") from e

        segments: List[TranscriptionSegment] = []
        for i in range(count):
            try:
                text = self.session.segment_text(i)
            except Exception as e:
                logger.warning(
                    f"Failed to get segment text for segment {i}: {e}. Skipping segment."
                )
                continue

            try:
                start = self.session.segment_t0(i) / ENGINE_TIME_UNITS_PER_SECOND
                end = self.session.segment_t1(i) / ENGINE_TIME_UNITS_PER_SECOND
            except Exception as e:
                raise TranscriptionError(f"Failed to get segment times: {e}") from e

            try:
                confidence = self._confidence(i, config)
                words = self._words(i, config)
            except Exception as e:
                raise TranscriptionError(f"Failed to get segment details: {e}") from e

            segments.append(
                TranscriptionSegment(
                    text=text,
                    start=start,
                    end=end,
                    confidence=confidence,
                    words=words,
                )
            )

        return segments

    def _confidence(self, index: int, config: TranscriptionConfig) -> Optional[float]:
        getter = getattr(self.session, "segment_confidence", None)
        if not config.output_format.include_confidence or getter is None:
            return None
        return getter(index)

    def _words(
        self, index: int, config: TranscriptionConfig
    ) -> Optional[List[WordTimestamp]]:
        getter = getattr(self.session, "segment_words", None)
        if not config.output_format.word_timestamps or getter is None:
            return None
        return getter(index)


def join_segment_text(segments: List[TranscriptionSegment]) -> str:
    """Concatenate segment texts (engine text carries its own spacing)."""
    return "".join(segment.text for segment in segments).strip()
