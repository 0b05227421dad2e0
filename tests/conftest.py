"""Shared fixtures: synthetic audio files and a scripted speech session."""

from pathlib import Path
from typing import Callable, List, Optional, Set, Tuple

import numpy as np
import pytest


class FakeSession:
    """
    Scripted stand-in for a loaded speech engine.

    Every ``full`` call produces one segment per ``texts`` entry, spread evenly
    over the block, with times in centiseconds.
    """

    def __init__(
        self,
        texts: Tuple[str, ...] = (" hello world",),
        fail_on_calls: Optional[Set[int]] = None,
        bad_text_segments: Optional[Set[int]] = None,
        language: Optional[str] = "en",
    ):
        self.texts = texts
        self.fail_on_calls = fail_on_calls or set()
        self.bad_text_segments = bad_text_segments or set()
        self.detected = language
        self.language: Optional[str] = None
        self.calls: List[int] = []
        self.params: List[object] = []
        self.unloaded = False
        self._table: List[Tuple[str, int, int]] = []

    def full(self, samples, params) -> None:
        call_index = len(self.calls)
        self.calls.append(len(samples))
        self.params.append(params)
        if call_index in self.fail_on_calls:
            raise RuntimeError("engine failure")

        total_cs = int(round(len(samples) / 16000 * 100))
        step = total_cs // max(len(self.texts), 1)
        self._table = [
            (text, i * step, (i + 1) * step) for i, text in enumerate(self.texts)
        ]
        self.language = self.detected

    def n_segments(self) -> int:
        return len(self._table)

    def segment_text(self, index: int) -> str:
        if index in self.bad_text_segments:
            raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")
        return self._table[index][0]

    def segment_t0(self, index: int) -> int:
        return self._table[index][1]

    def segment_t1(self, index: int) -> int:
        return self._table[index][2]

    def unload(self) -> None:
        self.unloaded = True


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def write_wav(tmp_path) -> Callable[..., Path]:
    """Write a 16-bit WAV file of silence (or a tone) and return its path."""
    import soundfile as sf

    def _write(
        seconds: float,
        sample_rate: int = 16000,
        channels: int = 1,
        name: str = "input.wav",
        tone: bool = False,
    ) -> Path:
        n = int(round(seconds * sample_rate))
        if tone:
            t = np.arange(n) / sample_rate
            mono = (0.3 * np.sin(2 * np.pi * 440.0 * t)).astype(np.float32)
        else:
            mono = np.zeros(n, dtype=np.float32)
        data = mono if channels == 1 else np.stack([mono] * channels, axis=1)

        path = tmp_path / name
        sf.write(str(path), data, sample_rate, subtype="PCM_16")
        return path

    return _write


def av_frame(samples: int = 160, rate: int = 16000):
    """A real mono s16 ``av.AudioFrame`` of silence."""
    import av

    frame = av.AudioFrame.from_ndarray(
        np.zeros((1, samples), dtype=np.int16), format="s16", layout="mono"
    )
    frame.sample_rate = rate
    return frame


def invalid_data():
    import av

    return av.error.InvalidDataError(
        -1094995529, "Invalid data found when processing input"
    )


class FakePacket:
    def __init__(self, name, size=100):
        self.name = name
        self.size = size


class FakeCodecContext:
    """Decodes each packet into one silent frame, or fails on request."""

    name = "fake"
    sample_rate = 16000

    def __init__(self, bad_packets=(), fatal_packets=(), flush_error=None, frame_samples=160):
        self.bad_packets = set(bad_packets)
        self.fatal_packets = set(fatal_packets)
        self.flush_error = flush_error
        self.frame_samples = frame_samples
        self.seen: List[str] = []

    def decode(self, packet):
        import av

        if packet is None:
            if self.flush_error is not None:
                raise self.flush_error
            return []
        self.seen.append(packet.name)
        if packet.name in self.bad_packets:
            raise invalid_data()
        if packet.name in self.fatal_packets:
            raise av.error.FFmpegError(-22, "Invalid argument")
        return [av_frame(samples=self.frame_samples)]


class FakeStream:
    index = 0

    def __init__(self, codec_context):
        self.codec_context = codec_context


class FakeStreams:
    def __init__(self, stream):
        self._stream = stream

    def best(self, kind):
        assert kind == "audio"
        return self._stream


class FakeContainer:
    def __init__(self, packets, codec_context, has_audio=True):
        self.packets = packets
        stream = FakeStream(codec_context) if has_audio else None
        self.streams = FakeStreams(stream)
        self.closed = False

    def demux(self, stream):
        yield from self.packets

    def close(self):
        self.closed = True
