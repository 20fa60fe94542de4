"""Noise suppression for recorded turns."""

import logging

import noisereduce as nr
import numpy as np

logger = logging.getLogger(__name__)

N_FFT = 1024


def reduce_noise(pcm: bytes, sample_rate: int, channels: int = 1, prop_decrease: float = 0.9) -> bytes:
    """Spectral-gate stationary background noise out of 16-bit PCM.

    The recording itself is used as the noise estimate, which suits the
    steady room noise (fans, hum) behind a spoken turn.

    Args:
        pcm: Raw little-endian int16 samples, interleaved when multichannel
        sample_rate: Sample rate of `pcm` in Hz
        channels: Number of interleaved channels
        prop_decrease: Proportion of the detected noise to remove (0..1)

    Returns:
        Processed PCM of the same length
    """
    samples = np.frombuffer(pcm, dtype=np.int16).reshape(-1, channels)
    if len(samples) < 2 * N_FFT:
        logger.debug(f"Skipping noise reduction for a {len(samples)}-frame turn")
        return pcm

    audio = samples.T.astype(np.float32) / 32768.0
    if channels == 1:
        audio = audio[0]
    cleaned = nr.reduce_noise(
        y=audio,
        sr=sample_rate,
        stationary=True,
        prop_decrease=prop_decrease,
        n_fft=N_FFT,
    )
    cleaned = np.asarray(cleaned).reshape(channels, -1).T
    out = np.clip(cleaned * 32768.0, -32768, 32767).astype(np.int16)
    logger.debug(f"Noise reduction applied to {len(samples)} frames")
    return out.tobytes()
