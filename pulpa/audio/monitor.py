"""Per-frame audio level sampling with debounced speech/silence detection."""

import logging
from typing import Callable, Optional

from ..models.settings import DetectionSettings
from ..timers import Scheduler
from .analysis import AudioAnalyser

logger = logging.getLogger(__name__)


class AudioLevelMonitor:
    """Samples the analyser once per display frame while a recording is live.

    Every sample publishes a smoothed level in [0, 1]. Speech is confirmed
    after `speech_confirm_samples` consecutive samples above the silence
    threshold. Once speech is confirmed, a silence timer runs whenever the
    level drops; reaching `silence_duration_ms` fires the auto-stop callback
    exactly once.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        settings: DetectionSettings,
        on_level: Optional[Callable[[float], None]] = None,
    ):
        self.scheduler = scheduler
        self.settings = settings
        self.on_level = on_level

        self._analyser: Optional[AudioAnalyser] = None
        self._on_auto_stop: Optional[Callable[[], None]] = None
        self._frame_handle = None
        self._silence_handle = None
        self._running = False
        self._fired = False

        self.level = 0.0
        self.consecutive_hits = 0
        self.speech_confirmed = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def silence_pending(self) -> bool:
        return self._silence_handle is not None

    def start(self, analyser: AudioAnalyser, on_auto_stop: Callable[[], None]) -> None:
        """Begin sampling a fresh recording."""
        self.stop()
        self._analyser = analyser
        self._on_auto_stop = on_auto_stop
        self.level = 0.0
        self.consecutive_hits = 0
        self.speech_confirmed = False
        self._fired = False
        self._running = True
        self._frame_handle = self.scheduler.request_frame(self._on_frame)
        logger.debug("Audio level monitor started")

    def stop(self) -> None:
        """Cancel sampling and any pending silence timer. Idempotent."""
        self._running = False
        if self._frame_handle is not None:
            self._frame_handle.cancel()
            self._frame_handle = None
        self._cancel_silence_timer()
        self._analyser = None

    def _on_frame(self) -> None:
        self._frame_handle = None
        if not self._running:
            return
        self.sample()
        if self._running:
            self._frame_handle = self.scheduler.request_frame(self._on_frame)

    def sample(self) -> None:
        """Take one level sample and update detection state."""
        if self._analyser is None:
            return
        data = self._analyser.get_byte_frequency_data()
        if len(data) == 0:
            # No frames yet, or the analyser was closed under us
            return

        current = float(data.mean()) / 255.0
        self.level = (current + self.level) / 2.0
        if self.on_level:
            self.on_level(self.level)

        if self.level > self.settings.silence_threshold:
            self.consecutive_hits += 1
            if self.consecutive_hits >= self.settings.speech_confirm_samples:
                if not self.speech_confirmed:
                    logger.debug(f"Speech confirmed at level {self.level:.3f}")
                self.speech_confirmed = True
                self._cancel_silence_timer()
        else:
            self.consecutive_hits = max(0, self.consecutive_hits - 1)
            if self.speech_confirmed and self._silence_handle is None:
                self._silence_handle = self.scheduler.call_later(
                    self.settings.silence_duration_ms, self._on_silence_timeout
                )

    def _cancel_silence_timer(self) -> None:
        if self._silence_handle is not None:
            self._silence_handle.cancel()
            self._silence_handle = None

    def _on_silence_timeout(self) -> None:
        self._silence_handle = None
        if self._fired or not self._running:
            return
        self._fired = True
        callback = self._on_auto_stop
        logger.info(f"🤫 {self.settings.silence_duration_ms}ms of silence after speech, stopping")
        self.stop()
        if callback:
            callback()
