"""Typed views over the configuration sections used by the audio core."""

from dataclasses import dataclass

from ..config import PulpaConfig


@dataclass
class AudioSettings:
    """Capture format and analysis parameters."""
    sample_rate: int = 16000
    channels: int = 1
    frames_per_buffer: int = 1024
    time_slice_ms: int = 500
    fft_size: int = 256
    smoothing_time_constant: float = 0.8
    min_decibels: float = -100.0
    max_decibels: float = -30.0
    noise_suppression: bool = True
    noise_reduction: float = 0.9

    @classmethod
    def from_config(cls, config: PulpaConfig) -> "AudioSettings":
        settings = cls(
            sample_rate=int(config.get('audio.sample_rate', cls.sample_rate)),
            channels=int(config.get('audio.channels', cls.channels)),
            frames_per_buffer=int(config.get('audio.frames_per_buffer', cls.frames_per_buffer)),
            time_slice_ms=int(config.get('audio.time_slice_ms', cls.time_slice_ms)),
            fft_size=int(config.get('audio.fft_size', cls.fft_size)),
            smoothing_time_constant=float(config.get('audio.smoothing_time_constant', cls.smoothing_time_constant)),
            min_decibels=float(config.get('audio.min_decibels', cls.min_decibels)),
            max_decibels=float(config.get('audio.max_decibels', cls.max_decibels)),
            noise_suppression=bool(config.get('audio.noise_suppression', cls.noise_suppression)),
            noise_reduction=float(config.get('audio.noise_reduction', cls.noise_reduction)),
        )
        if not 0.0 <= settings.noise_reduction <= 1.0:
            raise ValueError(f"audio.noise_reduction must be within [0, 1], got {settings.noise_reduction}")
        return settings


@dataclass
class DetectionSettings:
    """Speech/silence detection and turn length limits."""
    silence_threshold: float = 0.025
    silence_duration_ms: int = 4000
    max_turn_duration_ms: int = 50000
    speech_confirm_samples: int = 3
    frame_interval_ms: float = 16.0
    duration_tick_ms: int = 100

    @classmethod
    def from_config(cls, config: PulpaConfig) -> "DetectionSettings":
        settings = cls(
            silence_threshold=float(config.get('detection.silence_threshold', cls.silence_threshold)),
            silence_duration_ms=int(config.get('detection.silence_duration_ms', cls.silence_duration_ms)),
            max_turn_duration_ms=int(config.get('detection.max_turn_duration_ms', cls.max_turn_duration_ms)),
            speech_confirm_samples=int(config.get('detection.speech_confirm_samples', cls.speech_confirm_samples)),
            frame_interval_ms=float(config.get('detection.frame_interval_ms', cls.frame_interval_ms)),
            duration_tick_ms=int(config.get('detection.duration_tick_ms', cls.duration_tick_ms)),
        )
        if not 0.0 <= settings.silence_threshold <= 1.0:
            raise ValueError(f"detection.silence_threshold must be within [0, 1], got {settings.silence_threshold}")
        if settings.speech_confirm_samples < 1:
            raise ValueError("detection.speech_confirm_samples must be at least 1")
        return settings


@dataclass
class TimingSettings:
    """Delays before automatic resets, in milliseconds."""
    capture_error_reset_ms: int = 2000
    nothing_heard_reset_ms: int = 2000
    pipeline_error_reset_ms: int = 4000
    resume_delay_ms: int = 100
    finish_status_reset_ms: int = 2500

    @classmethod
    def from_config(cls, config: PulpaConfig) -> "TimingSettings":
        return cls(**{
            name: int(config.get(f'timing.{name}', getattr(cls, name)))
            for name in cls.__dataclass_fields__
        })
