"""
Decode adapter built on PyAV (libavformat/libavcodec).

Opens a media file, picks the best audio stream, feeds compressed packets to
the codec and yields raw decoded frames together with their format metadata.
Corrupt packets are skipped; only stream-level failures abort the decode.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Union

import av
import numpy as np

from streamscribe.core.errors import AudioProcessingError, DecodeError

logger = logging.getLogger(__name__)

NO_AUDIO_EXTRACTED = (
    "No audio data could be extracted from file - file may be corrupted or unsupported"
)


@dataclass
class RawFrame:
    """One decoded audio frame, as produced by the codec."""

    # (1, samples * channels) for packed formats, (channels, samples) for planar
    data: np.ndarray
    format: str
    # Empty when the frame reports no channel layout
    layout: str
    channels: int
    sample_rate: int
    samples: int
    source: Optional[Any] = None

    @classmethod
    def from_av(cls, frame: "av.AudioFrame") -> "RawFrame":
        """Snapshot an ``av.AudioFrame`` (decoders reuse their frame buffers)."""
        data = frame.to_ndarray()
        layout_channels = len(frame.layout.channels)

        if layout_channels:
            channels = layout_channels
        elif frame.format.is_planar:
            channels = data.shape[0]
        else:
            channels = data.shape[-1] // frame.samples if frame.samples else 0

        return cls(
            data=data,
            format=frame.format.name,
            layout=frame.layout.name if layout_channels else "",
            channels=channels,
            sample_rate=frame.sample_rate,
            samples=frame.samples,
            source=frame,
        )


class AudioDecoder:
    """
    Lazily decodes the best audio stream of a media file.

    Usage:
        decoder = AudioDecoder("talk.mp3")
        for frame in decoder.frames():
            ...
    """

    def __init__(
        self,
        path: Union[str, Path],
        opener: Optional[Callable[[str], Any]] = None,
    ):
        self.path = Path(path)
        self._opener = opener or av.open

        self.packets_decoded = 0
        self.packets_skipped = 0
        self.frames_decoded = 0

    def _open(self) -> Any:
        if not self.path.exists():
            raise AudioProcessingError(f"Audio file not found: {self.path}")

        try:
            return self._opener(str(self.path))
        except av.error.FFmpegError as e:
            raise DecodeError(f"Failed to open audio file: {e}") from e

    def frames(self) -> Iterator[RawFrame]:
        """
        Yield decoded frames in stream order.

        Raises:
            AudioProcessingError: File missing, no audio stream, or no frames at all
            DecodeError: The container or codec failed at the stream level
        """
        container = self._open()
        try:
            stream = container.streams.best("audio")
            if stream is None:
                raise AudioProcessingError("No audio stream found")

            codec_context = stream.codec_context
            logger.debug(
                f"Decoding {self.path.name}: stream #{stream.index}, "
                f"codec={getattr(codec_context, 'name', '?')}, "
                f"rate={getattr(codec_context, 'sample_rate', '?')}"
            )

            for packet in self._packets(container, stream):
                try:
                    decoded = codec_context.decode(packet)
                except av.error.InvalidDataError as e:
                    self.packets_skipped += 1
                    logger.warning(
                        f"Skipping invalid packet at stream index {stream.index}: {e}"
                    )
                    continue
                except av.error.FFmpegError as e:
                    raise DecodeError(f"Failed to send packet to decoder: {e}") from e

                self.packets_decoded += 1
                for frame in decoded:
                    self.frames_decoded += 1
                    yield RawFrame.from_av(frame)

            yield from self._flush(codec_context)

            if self.frames_decoded == 0:
                raise AudioProcessingError(NO_AUDIO_EXTRACTED)

            if self.packets_skipped:
                logger.info(
                    f"Decoded {self.path.name} with {self.packets_skipped} "
                    f"invalid packet(s) skipped"
                )
        finally:
            container.close()

    def _packets(self, container: Any, stream: Any) -> Iterator[Any]:
        """Demux packets of ``stream``, dropping libav's trailing flush packet."""
        demuxer = container.demux(stream)
        while True:
            try:
                packet = next(demuxer)
            except StopIteration:
                return
            except av.error.InvalidDataError as e:
                # A read error ends the demuxer; decode what was read so far.
                self.packets_skipped += 1
                logger.warning(f"Stopped reading {self.path.name} after read error: {e}")
                return
            except av.error.FFmpegError as e:
                raise DecodeError(f"Failed to read packet: {e}") from e

            if packet.size == 0:
                continue
            yield packet

    def _flush(self, codec_context: Any) -> Iterator[RawFrame]:
        """Drain frames buffered in the decoder. Failures are not fatal."""
        try:
            decoded = codec_context.decode(None)
        except (av.error.FFmpegError, EOFError) as e:
            logger.warning(f"Failed to flush decoder, but continuing: {e}")
            return

        for frame in decoded:
            self.frames_decoded += 1
            yield RawFrame.from_av(frame)


def decode_frames(path: Union[str, Path]) -> Iterator[RawFrame]:
    """Convenience wrapper around ``AudioDecoder(path).frames()``."""
    return AudioDecoder(path).frames()
