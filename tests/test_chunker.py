"""Tests for fixed-window chunking."""

import numpy as np
import pytest

from streamscribe.core.audio_utils import CHUNK_SAMPLES
from streamscribe.core.chunker import AudioChunk, Chunker, chunk_samples
from streamscribe.core.errors import AudioProcessingError


def feed(chunker, total, block=4096):
    """Push ``total`` samples (values = stream position) in fixed blocks."""
    chunks = []
    position = 0
    while position < total:
        n = min(block, total - position)
        chunks.extend(chunker.push(np.arange(position, position + n, dtype=np.float32)))
        position += n
    chunks.append(chunker.finish())
    return chunks


class TestChunkCoverage:
    @pytest.mark.parametrize("total", [1, 1000, CHUNK_SAMPLES - 1, 400000])
    def test_sizes_sum_to_input(self, total):
        chunks = feed(Chunker(), total)

        assert sum(len(c.samples) for c in chunks) == total
        assert all(len(c.samples) == CHUNK_SAMPLES for c in chunks[:-1])
        assert 0 < len(chunks[-1].samples) <= CHUNK_SAMPLES

    def test_samples_preserved_in_order(self):
        chunks = feed(Chunker(), 400000, block=7777)
        joined = np.concatenate([c.samples for c in chunks])

        np.testing.assert_array_equal(joined, np.arange(400000, dtype=np.float32))

    def test_25_seconds_gives_10_10_5(self):
        chunks = feed(Chunker(), 25 * 16000)

        assert [c.duration for c in chunks] == [10.0, 10.0, 5.0]
        assert [c.start_time for c in chunks] == [0.0, 10.0, 20.0]
        assert [c.is_final for c in chunks] == [False, False, True]


class TestIndexing:
    def test_indices_are_dense(self):
        chunks = feed(Chunker(), 555555)

        assert [c.index for c in chunks] == list(range(len(chunks)))

    def test_start_times_follow_consumed_samples(self):
        chunks = feed(Chunker(), 555555)

        for i, chunk in enumerate(chunks):
            assert chunk.start_time == pytest.approx(i * 10.0)
            assert chunk.samples[0] == i * CHUNK_SAMPLES

    def test_exactly_one_final_chunk_and_it_is_last(self):
        chunks = feed(Chunker(), 333333)

        assert [c.is_final for c in chunks].count(True) == 1
        assert chunks[-1].is_final


class TestBoundaries:
    def test_exact_multiple_flags_last_full_window_final(self):
        chunks = feed(Chunker(), 2 * CHUNK_SAMPLES)

        assert len(chunks) == 2
        assert chunks[-1].is_final
        assert len(chunks[-1].samples) == CHUNK_SAMPLES

    def test_full_window_held_until_more_audio(self):
        chunker = Chunker()

        assert chunker.push(np.zeros(CHUNK_SAMPLES, dtype=np.float32)) == []
        assert chunker.buffered == CHUNK_SAMPLES

        emitted = chunker.push(np.zeros(10, dtype=np.float32))
        assert len(emitted) == 1
        assert not emitted[0].is_final

    def test_single_large_push(self):
        chunker = Chunker()
        emitted = chunker.push(np.zeros(3 * CHUNK_SAMPLES + 5, dtype=np.float32))

        assert len(emitted) == 3
        final = chunker.finish()
        assert len(final.samples) == 5
        assert final.index == 3


class TestErrors:
    def test_no_samples_is_fatal(self):
        chunker = Chunker()
        chunker.push(np.zeros(0, dtype=np.float32))

        with pytest.raises(AudioProcessingError, match="No audio data"):
            chunker.finish()

    def test_push_after_finish(self):
        chunker = Chunker()
        chunker.push(np.zeros(10, dtype=np.float32))
        chunker.finish()

        with pytest.raises(AudioProcessingError):
            chunker.push(np.zeros(10, dtype=np.float32))

    def test_finish_twice(self):
        chunker = Chunker()
        chunker.push(np.zeros(10, dtype=np.float32))
        chunker.finish()

        with pytest.raises(AudioProcessingError):
            chunker.finish()

    def test_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            Chunker(0)


class TestHelpers:
    def test_chunk_samples_generator(self):
        chunks = list(chunk_samples(np.zeros(250, dtype=np.float32), chunk_size=100))

        assert [len(c.samples) for c in chunks] == [100, 100, 50]
        assert chunks[-1].is_final

    def test_audio_chunk_end_time(self):
        chunk = AudioChunk.create(np.zeros(8000, dtype=np.float32), 2, 20.0, True)

        assert chunk.duration == 0.5
        assert chunk.end_time == 20.5
