"""
faster-whisper backed speech session.

Wraps a loaded ``faster_whisper.WhisperModel`` behind the SpeechSession
protocol used by the inference adapter. One session holds the model; the
segment table of the most recent ``full`` call is kept until the next call.
"""

import logging
import math
from typing import Any, List, Optional

import faster_whisper
import numpy as np

from streamscribe.config import AppConfig, TranscriptionConfig, get_config, resolve_model
from streamscribe.core.audio_utils import check_cuda_available, clear_gpu_cache
from streamscribe.core.errors import ConfigurationError
from streamscribe.core.stt.inference import InferenceParams, WordTimestamp

logger = logging.getLogger(__name__)


def _to_centiseconds(seconds: float) -> int:
    return int(round(seconds * 100))


class FasterWhisperSession:
    """SpeechSession implementation on top of faster-whisper."""

    def __init__(self, model: Any, model_name: str, device: str):
        self._model = model
        self.model_name = model_name
        self.device = device
        self.language: Optional[str] = None
        self._segments: List[Any] = []

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    def full(self, samples: np.ndarray, params: InferenceParams) -> None:
        if self._model is None:
            raise RuntimeError("Model has been unloaded")

        segments, info = self._model.transcribe(
            samples.astype(np.float32, copy=False), **params.transcribe_kwargs()
        )
        # transcribe() is lazy; decoding happens while iterating
        self._segments = list(segments)
        self.language = info.language
        logger.debug(
            f"Inference produced {len(self._segments)} segment(s), "
            f"language={info.language}"
        )

    def n_segments(self) -> int:
        return len(self._segments)

    def segment_text(self, index: int) -> str:
        return self._segments[index].text

    def segment_t0(self, index: int) -> int:
        return _to_centiseconds(self._segments[index].start)

    def segment_t1(self, index: int) -> int:
        return _to_centiseconds(self._segments[index].end)

    def segment_confidence(self, index: int) -> Optional[float]:
        avg_logprob = getattr(self._segments[index], "avg_logprob", None)
        if avg_logprob is None:
            return None
        return round(math.exp(avg_logprob), 3)

    def segment_words(self, index: int) -> Optional[List[WordTimestamp]]:
        words = getattr(self._segments[index], "words", None)
        if not words:
            return None
        return [
            WordTimestamp(
                word=w.word,
                start=round(w.start, 3),
                end=round(w.end, 3),
                confidence=round(w.probability, 3),
            )
            for w in words
        ]

    def unload(self) -> None:
        """Drop the model and free GPU memory."""
        if self._model is None:
            return
        logger.info(f"Unloading model {self.model_name}")
        self._model = None
        self._segments = []
        clear_gpu_cache()


def select_device(config: TranscriptionConfig) -> str:
    """``cuda`` when requested and available, else ``cpu``."""
    if config.use_gpu and check_cuda_available():
        return "cuda"
    if config.use_gpu:
        logger.info("GPU requested but CUDA is not available, using CPU")
    return "cpu"


def load_session(
    config: TranscriptionConfig, app_config: Optional[AppConfig] = None
) -> FasterWhisperSession:
    """
    Load the model named by ``config`` into a new session.

    When ``config`` names no model, ``transcription.model`` from
    ``app_config`` (the global YAML configuration by default) is used.

    Raises:
        ConfigurationError: If the model cannot be loaded
    """
    model_name = resolve_model(config, app_config or get_config())
    device = select_device(config)
    logger.info(f"Loading Whisper model: {model_name} (device={device})")

    try:
        model = faster_whisper.WhisperModel(
            model_size_or_path=model_name,
            device=device,
            compute_type=config.compute_type,
            cpu_threads=config.num_threads or 0,
            download_root=config.download_root,
        )
    except Exception as e:
        logger.exception(f"Error loading Whisper model: {e}")
        raise ConfigurationError(f"Failed to load model {model_name}: {e}") from e

    logger.info("Whisper model loaded and ready")
    return FasterWhisperSession(model, model_name, device)
