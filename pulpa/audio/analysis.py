"""Frequency analysis of the live microphone signal."""

import logging

import numpy as np

logger = logging.getLogger(__name__)


class AudioAnalyser:
    """Analysis node fed with 16-bit PCM frames.

    Mirrors the Web Audio analyser: the latest `fft_size` samples are
    Blackman-windowed, transformed, smoothed over time and mapped from
    decibels onto 0..255 bytes.
    """

    def __init__(
        self,
        fft_size: int = 256,
        smoothing_time_constant: float = 0.8,
        min_decibels: float = -100.0,
        max_decibels: float = -30.0,
        channels: int = 1,
    ):
        if fft_size < 32 or fft_size & (fft_size - 1):
            raise ValueError(f"fft_size must be a power of two >= 32, got {fft_size}")
        if min_decibels >= max_decibels:
            raise ValueError("min_decibels must be below max_decibels")

        self.fft_size = fft_size
        self.smoothing_time_constant = smoothing_time_constant
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels
        self.channels = channels

        self._window = np.blackman(fft_size)
        self._samples = np.zeros(fft_size, dtype=np.float64)
        self._received = 0
        self._smoothed = np.zeros(fft_size // 2, dtype=np.float64)
        self._closed = False

    @property
    def frequency_bin_count(self) -> int:
        return self.fft_size // 2

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, pcm: bytes) -> None:
        """Append 16-bit PCM frames to the analysis window."""
        if self._closed or not pcm:
            return
        samples = np.frombuffer(pcm, dtype=np.int16).astype(np.float64) / 32768.0
        if self.channels > 1:
            samples = samples[: len(samples) - len(samples) % self.channels]
            samples = samples.reshape(-1, self.channels).mean(axis=1)

        if len(samples) >= self.fft_size:
            self._samples = samples[-self.fft_size:].copy()
        else:
            self._samples = np.concatenate([self._samples[len(samples):], samples])
        self._received += len(samples)

    def get_byte_frequency_data(self) -> np.ndarray:
        """Current spectrum as uint8 magnitudes, or an empty array.

        An empty array means no frames are available (nothing received yet,
        or the node was closed during teardown).
        """
        if self._closed or self._received == 0:
            return np.empty(0, dtype=np.uint8)

        spectrum = np.fft.rfft(self._samples * self._window)[: self.frequency_bin_count]
        magnitude = np.abs(spectrum) / self.fft_size
        tau = self.smoothing_time_constant
        self._smoothed = tau * self._smoothed + (1.0 - tau) * magnitude

        decibels = 20.0 * np.log10(np.maximum(self._smoothed, 1e-12))
        scaled = 255.0 * (decibels - self.min_decibels) / (self.max_decibels - self.min_decibels)
        return np.clip(scaled, 0, 255).astype(np.uint8)

    def close(self) -> None:
        self._closed = True
