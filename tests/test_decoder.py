"""Tests for the PyAV decode adapter."""

import pytest

from conftest import (
    FakeCodecContext,
    FakeContainer,
    FakePacket,
    av_frame,
    invalid_data,
)
from streamscribe.core.decoder import AudioDecoder, RawFrame, decode_frames
from streamscribe.core.errors import AudioProcessingError, DecodeError


@pytest.fixture
def media_path(tmp_path):
    path = tmp_path / "fake.mka"
    path.write_bytes(b"\x00")
    return path


class TestRealFiles:
    def test_decodes_wav(self, write_wav):
        path = write_wav(1.0, sample_rate=22050)
        decoder = AudioDecoder(path)
        frames = list(decoder.frames())

        assert frames
        assert all(isinstance(f, RawFrame) for f in frames)
        assert frames[0].sample_rate == 22050
        assert frames[0].channels == 1
        assert sum(f.samples for f in frames) == 22050
        assert decoder.packets_skipped == 0

    def test_stereo_metadata(self, write_wav):
        path = write_wav(0.5, sample_rate=44100, channels=2)
        frame = next(decode_frames(path))

        assert frame.channels == 2
        # Newer libav reports WAVs without a channel mask as "2 channels"
        assert frame.layout in ("stereo", "2 channels")
        assert frame.format.startswith("s16")

    def test_missing_file(self, tmp_path):
        with pytest.raises(AudioProcessingError, match="not found"):
            list(AudioDecoder(tmp_path / "missing.wav").frames())

    def test_not_a_media_file(self, tmp_path):
        path = tmp_path / "notes.wav"
        path.write_text("this is not audio")

        with pytest.raises((AudioProcessingError, DecodeError)):
            list(AudioDecoder(path).frames())


class TestPacketResilience:
    def test_invalid_packet_is_skipped(self, media_path):
        codec = FakeCodecContext(bad_packets={"p1"})
        container = FakeContainer(
            [FakePacket("p0"), FakePacket("p1"), FakePacket("p2")], codec
        )
        decoder = AudioDecoder(media_path, opener=lambda _: container)

        frames = list(decoder.frames())

        assert len(frames) == 2
        assert codec.seen == ["p0", "p1", "p2"]
        assert decoder.packets_skipped == 1
        assert decoder.packets_decoded == 2
        assert container.closed

    def test_stream_level_error_aborts(self, media_path):
        codec = FakeCodecContext(fatal_packets={"p1"})
        container = FakeContainer([FakePacket("p0"), FakePacket("p1")], codec)
        decoder = AudioDecoder(media_path, opener=lambda _: container)

        with pytest.raises(DecodeError, match="Failed to send packet"):
            list(decoder.frames())
        assert container.closed

    def test_empty_packets_are_ignored(self, media_path):
        codec = FakeCodecContext()
        container = FakeContainer([FakePacket("p0"), FakePacket("flush", size=0)], codec)

        frames = list(AudioDecoder(media_path, opener=lambda _: container).frames())

        assert len(frames) == 1
        assert codec.seen == ["p0"]

    def test_all_packets_invalid(self, media_path):
        codec = FakeCodecContext(bad_packets={"p0", "p1"})
        container = FakeContainer([FakePacket("p0"), FakePacket("p1")], codec)

        with pytest.raises(AudioProcessingError, match="No audio data"):
            list(AudioDecoder(media_path, opener=lambda _: container).frames())

    def test_flush_failure_is_not_fatal(self, media_path):
        codec = FakeCodecContext(flush_error=EOFError())
        container = FakeContainer([FakePacket("p0")], codec)

        frames = list(AudioDecoder(media_path, opener=lambda _: container).frames())

        assert len(frames) == 1

    def test_no_audio_stream(self, media_path):
        container = FakeContainer([], FakeCodecContext(), has_audio=False)

        with pytest.raises(AudioProcessingError, match="No audio stream"):
            list(AudioDecoder(media_path, opener=lambda _: container).frames())
        assert container.closed

    def test_open_failure(self, media_path):
        def opener(_):
            raise invalid_data()

        with pytest.raises(DecodeError, match="Failed to open"):
            list(AudioDecoder(media_path, opener=opener).frames())


class TestRawFrame:
    def test_from_av_packed_mono(self):
        frame = RawFrame.from_av(av_frame(samples=320, rate=8000))

        assert frame.format == "s16"
        assert frame.layout == "mono"
        assert frame.channels == 1
        assert frame.samples == 320
        assert frame.sample_rate == 8000
        assert frame.data.shape == (1, 320)
