"""
Audio processing utilities for streamscribe.

Provides the sample-level helpers shared by the decode and chunking stages:
- Fixed target format constants (mono float32 at 16 kHz)
- 16-bit integer to float conversion
- Fast-path strided sample rate conversion
- GPU memory management
"""

import gc
import logging

import numpy as np

logger = logging.getLogger(__name__)

# Try to import optional dependencies
try:
    import torch

    HAS_TORCH = True
except ImportError:
    torch = None  # type: ignore
    HAS_TORCH = False

# Target sample rate for Whisper (technical requirement, not configurable)
TARGET_SAMPLE_RATE = 16000

# Mathematical constant for 16-bit audio normalization
INT16_MAX_ABS_VALUE = 32768.0

# Fixed inference window
CHUNK_DURATION = 10.0
CHUNK_SAMPLES = int(CHUNK_DURATION * TARGET_SAMPLE_RATE)


def int16_to_float32(samples: np.ndarray) -> np.ndarray:
    """
    Convert signed 16-bit PCM samples to float32 in [-1, 1).

    Args:
        samples: int16 sample array (any shape, flattened on output)

    Returns:
        1-D float32 array
    """
    return samples.reshape(-1).astype(np.float32) / INT16_MAX_ABS_VALUE


def decimate(
    samples: np.ndarray,
    source_rate: int,
    target_rate: int = TARGET_SAMPLE_RATE,
) -> np.ndarray:
    """
    Strided sample rate conversion used by the resampler fast path.

    A cursor starts at 0 and advances by ``source_rate / target_rate``; the
    sample at ``floor(cursor)`` is taken while that index is in bounds. This is
    nearest-sample picking, not band-limited resampling.

    Args:
        samples: 1-D sample array at source_rate
        source_rate: Rate of the input samples in Hz
        target_rate: Rate to convert to in Hz

    Returns:
        1-D array with the picked samples, same dtype as the input
    """
    samples = samples.reshape(-1)
    if source_rate == target_rate or samples.size == 0:
        return samples

    step = source_rate / target_rate
    indices = np.floor(np.arange(0.0, samples.size, step)).astype(np.int64)
    indices = indices[indices < samples.size]
    return samples[indices]


def samples_to_seconds(count: int, sample_rate: int = TARGET_SAMPLE_RATE) -> float:
    """Duration in seconds of ``count`` samples."""
    return count / float(sample_rate)


def check_cuda_available() -> bool:
    """Check if CUDA is available for GPU acceleration."""
    if not HAS_TORCH or torch is None:
        return False
    return torch.cuda.is_available()


def clear_gpu_cache() -> None:
    """
    Clear GPU cache and run garbage collection.

    Use this after unloading models to free GPU memory.
    """
    try:
        gc.collect()

        if check_cuda_available():
            torch.cuda.empty_cache()
            torch.cuda.synchronize()
            logger.debug("GPU cache cleared")
    except Exception as e:
        logger.debug(f"Could not clear GPU cache: {e}")
