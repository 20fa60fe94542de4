"""Microphone access through PyAudio."""

import pyaudio
import logging
from typing import Optional, Callable

from ..exceptions import MicrophonePermissionError


logger = logging.getLogger(__name__)


class Microphone:
    """Owns one PyAudio input stream for the lifetime of a recording.

    Frames are delivered from the PortAudio callback thread; callers hop them
    back onto their own thread.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        frames_per_buffer: int = 1024,
        format: int = pyaudio.paInt16,
        input_device_index: Optional[int] = None,
    ):
        """Initialize microphone with capture format.

        Args:
            sample_rate: Audio sample rate in Hz
            channels: Number of audio channels (1 for mono)
            frames_per_buffer: Samples per PortAudio callback
            format: Audio sample format (16-bit signed int)
            input_device_index: PortAudio device, None for the default input
        """
        self.sample_rate = sample_rate
        self.channels = channels
        self.frames_per_buffer = frames_per_buffer
        self.format = format
        self.input_device_index = input_device_index

        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self.stream = None
        self._on_frames: Optional[Callable[[bytes], None]] = None

    def probe(self) -> None:
        """Open and immediately release an input stream to verify access.

        Raises:
            MicrophonePermissionError: If no input stream can be opened
        """
        instance = pyaudio.PyAudio()
        try:
            stream = instance.open(
                format=self.format,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                frames_per_buffer=self.frames_per_buffer,
                input_device_index=self.input_device_index,
            )
            stream.close()
            logger.info("Microphone probe succeeded")
        except OSError as e:
            logger.error(f"Microphone probe failed: {e}")
            raise MicrophonePermissionError(f"Microphone permission denied: {e}") from e
        finally:
            instance.terminate()

    def open(self, on_frames: Callable[[bytes], None]) -> None:
        """Open the input stream and start delivering frames to `on_frames`.

        Raises:
            MicrophonePermissionError: If the device cannot be opened
        """
        if self.stream is not None:
            logger.warning("Microphone already open")
            return

        self._on_frames = on_frames
        self.pyaudio_instance = pyaudio.PyAudio()
        try:
            self.stream = self.pyaudio_instance.open(
                format=self.format,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                frames_per_buffer=self.frames_per_buffer,
                input_device_index=self.input_device_index,
                stream_callback=self._stream_callback,
            )
            self.stream.start_stream()
        except OSError as e:
            self.close()
            raise MicrophonePermissionError(f"Could not open microphone: {e}") from e

        logger.info(f"Audio stream opened: {self.sample_rate}Hz, "
                    f"{self.frames_per_buffer} samples/buffer")

    def _stream_callback(self, in_data, frame_count, time_info, status):
        if status:
            logger.debug(f"PortAudio input status flags: {status}")
        callback = self._on_frames
        if callback is not None and in_data:
            callback(in_data)
        return (None, pyaudio.paContinue)

    def is_active(self) -> bool:
        return self.stream is not None and self.stream.is_active()

    def close(self) -> None:
        """Stop and release the stream. Safe to call repeatedly."""
        self._on_frames = None
        stream, self.stream = self.stream, None
        if stream is not None:
            try:
                stream.stop_stream()
            finally:
                stream.close()
            logger.info("Audio stream closed")
        if self.pyaudio_instance is not None:
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None
