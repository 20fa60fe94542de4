"""Unit tests for RecordingSession capture lifecycle."""

import asyncio
import io
import threading
import wave
from unittest.mock import patch

import pytest

from pulpa.models.settings import AudioSettings, DetectionSettings, TimingSettings
from pulpa.models.state import PERMISSION_DENIED_STATUS, READY_STATUS
from pulpa.services.recording_session import CaptureState, RecordingSession
from pulpa.services.state_store import SessionStore


def make_session(fakes, mic=None, audio=None, **detection):
    scheduler = fakes.Scheduler()
    publisher = fakes.Publisher()
    store = SessionStore(scheduler, publisher)
    store.grant_permission(READY_STATUS)
    mic = mic or fakes.Microphone()
    ready = []
    session = RecordingSession(
        scheduler,
        store,
        audio or AudioSettings(),
        DetectionSettings(**detection),
        TimingSettings(),
        on_audio_ready=lambda audio: ready.append((scheduler.now(), audio)),
        microphone_factory=lambda: mic,
        publisher=publisher,
    )
    return session, scheduler, store, mic, ready, publisher


def make_slow_microphone(fakes):
    """A microphone whose open() blocks on the executor until released."""

    class SlowMicrophone(fakes.Microphone):
        def __init__(self):
            super().__init__()
            self.entered = threading.Event()
            self.release = threading.Event()
            self.opening = False
            self.closed_while_opening = False

        def open(self, on_frames):
            self.opening = True
            self.entered.set()
            self.release.wait(2.0)
            super().open(on_frames)
            self.opening = False

        def close(self):
            if self.opening:
                self.closed_while_opening = True
            super().close()

    return SlowMicrophone()


def feed(scheduler, mic, pcm_factory, duration_ms, step_ms=16):
    elapsed = 0
    while elapsed < duration_ms:
        mic.emit(pcm_factory(step_ms))
        scheduler.advance(step_ms)
        elapsed += step_ms


def wav_frames(blob: bytes) -> int:
    with wave.open(io.BytesIO(blob), 'rb') as wf:
        return wf.getnframes()


@pytest.mark.unit
class TestRecordingSession:
    """Test cases for RecordingSession."""

    def test_start_opens_microphone_and_enters_recording(self, fakes):
        async def scenario():
            session, scheduler, store, mic, _, _ = make_session(fakes)
            assert await session.start() is True

            assert session.state is CaptureState.RECORDING
            assert mic.open_calls == 1
            assert store.recording.is_recording is True
            assert store.recording.recording_duration == 0
            assert store.recording.has_permission is True

        asyncio.run(scenario())

    def test_start_refused_while_recording_or_busy(self, fakes):
        async def scenario():
            session, scheduler, store, mic, _, _ = make_session(fakes)
            await session.start()
            assert await session.start() is False
            assert mic.open_calls == 1

            session.stop(False)
            store.update(is_processing=True)
            assert await session.start() is False
            assert mic.open_calls == 1

        asyncio.run(scenario())

    def test_duration_ticks_every_100ms(self, fakes, audio_factory):
        async def scenario():
            session, scheduler, store, mic, _, _ = make_session(fakes)
            await session.start()
            feed(scheduler, mic, audio_factory.noise, 352)
            assert store.recording.recording_duration == 300

        asyncio.run(scenario())

    def test_manual_stop_hands_wav_to_pipeline(self, fakes, audio_factory):
        async def scenario():
            session, scheduler, store, mic, ready, publisher = make_session(fakes)
            await session.start()
            feed(scheduler, mic, audio_factory.noise, 1200)

            session.stop(True)

            assert len(ready) == 1
            with wave.open(io.BytesIO(ready[0][1]), 'rb') as wf:
                assert wf.getframerate() == 16000
                assert wf.getnframes() > 0
            # Chunks were delivered incrementally every time slice
            assert len(publisher.chunks) >= 3
            assert session.state is CaptureState.IDLE
            assert store.recording.is_recording is False

        asyncio.run(scenario())

    def test_turn_audio_is_noise_reduced_before_handoff(self, fakes, audio_factory):
        async def scenario():
            session, scheduler, store, mic, ready, _ = make_session(
                fakes, audio=AudioSettings(noise_suppression=True, noise_reduction=0.75))
            await session.start()
            feed(scheduler, mic, audio_factory.noise, 480)

            with patch('pulpa.services.recording_session.reduce_noise',
                       side_effect=lambda pcm, *args: bytes(len(pcm))) as reduce:
                session.stop(True)

            reduce.assert_called_once()
            assert reduce.call_args.args[1:] == (16000, 1, 0.75)
            with wave.open(io.BytesIO(ready[0][1]), 'rb') as wf:
                assert wf.readframes(wf.getnframes()) == bytes(480 * 16 * 2)

        asyncio.run(scenario())

    def test_noise_suppression_can_be_disabled(self, fakes, audio_factory):
        async def scenario():
            session, scheduler, store, mic, ready, _ = make_session(
                fakes, audio=AudioSettings(noise_suppression=False))
            await session.start()
            fed = b''.join(audio_factory.noise(16, seed=i) for i in range(30))
            for i in range(30):
                mic.emit(audio_factory.noise(16, seed=i))
                scheduler.advance(16)

            with patch('pulpa.services.recording_session.reduce_noise') as reduce:
                session.stop(True)

            reduce.assert_not_called()
            with wave.open(io.BytesIO(ready[0][1]), 'rb') as wf:
                assert wf.readframes(wf.getnframes()) == fed

        asyncio.run(scenario())

    def test_stop_without_processing_resets_to_ready(self, fakes, audio_factory):
        async def scenario():
            session, scheduler, store, mic, ready, _ = make_session(fakes)
            await session.start()
            feed(scheduler, mic, audio_factory.noise, 600)

            session.stop(False)

            assert ready == []
            assert store.recording.status == READY_STATUS
            assert store.recording.is_recording is False

        asyncio.run(scenario())

    def test_stop_with_no_chunks_resets_to_ready(self, fakes):
        async def scenario():
            session, scheduler, store, mic, ready, _ = make_session(fakes)
            await session.start()
            session.stop(True)
            assert ready == []
            assert store.recording.status == READY_STATUS

        asyncio.run(scenario())

    def test_stop_twice_releases_resources_once(self, fakes, audio_factory):
        async def scenario():
            session, scheduler, store, mic, ready, _ = make_session(fakes)
            await session.start()
            feed(scheduler, mic, audio_factory.noise, 200)

            session.stop(True)
            session.stop(True)
            session.teardown()

            assert mic.close_calls == 1
            assert len(ready) == 1
            assert scheduler.pending_timers == 0

        asyncio.run(scenario())

    def test_teardown_safe_without_recording(self, fakes):
        session, scheduler, store, mic, _, _ = make_session(fakes)
        session.teardown()
        session.stop(True)
        assert mic.close_calls == 0

    def test_frames_after_stop_are_dropped(self, fakes, audio_factory):
        async def scenario():
            session, scheduler, store, mic, ready, _ = make_session(fakes)
            await session.start()
            callback = mic.on_frames
            feed(scheduler, mic, audio_factory.noise, 100)
            session.stop(True)

            # A late frame from the capture thread
            callback(audio_factory.noise(100))
            assert len(ready) == 1
            # Seven 16ms frames, nothing from the late callback
            assert wav_frames(ready[0][1]) == 7 * 256

        asyncio.run(scenario())

    def test_silence_after_speech_auto_stops_once(self, fakes, audio_factory):
        async def scenario():
            session, scheduler, store, mic, ready, _ = make_session(fakes, silence_duration_ms=1000)
            await session.start()
            feed(scheduler, mic, audio_factory.noise, 800)
            feed(scheduler, mic, audio_factory.silence, 4000)

            assert len(ready) == 1
            assert session.state is CaptureState.IDLE

        asyncio.run(scenario())

    def test_silence_only_never_auto_stops(self, fakes, audio_factory):
        async def scenario():
            session, scheduler, store, mic, ready, _ = make_session(fakes, silence_duration_ms=1000)
            await session.start()
            feed(scheduler, mic, audio_factory.silence, 5000)

            assert ready == []
            assert session.state is CaptureState.RECORDING

        asyncio.run(scenario())

    def test_max_duration_ceiling(self, fakes, audio_factory):
        async def scenario():
            session, scheduler, store, mic, ready, _ = make_session(fakes, max_turn_duration_ms=3000)
            await session.start()
            feed(scheduler, mic, audio_factory.noise, 4000, step_ms=10)

            assert len(ready) == 1
            stopped_at = ready[0][0]
            assert 3000 <= stopped_at <= 3000 + session.detection.duration_tick_ms

        asyncio.run(scenario())

    def test_counters_reset_between_turns(self, fakes, audio_factory):
        async def scenario():
            session, scheduler, store, mic, ready, _ = make_session(fakes)
            await session.start()
            feed(scheduler, mic, audio_factory.noise, 300)
            assert session.monitor.speech_confirmed is True
            session.stop(False)

            await session.start()
            assert session.monitor.speech_confirmed is False
            assert session.monitor.consecutive_hits == 0
            assert session.monitor.level == 0.0
            assert store.recording.recording_duration == 0

        asyncio.run(scenario())

    def test_stream_ending_is_a_capture_error(self, fakes, audio_factory):
        async def scenario():
            session, scheduler, store, mic, ready, _ = make_session(fakes)
            await session.start()
            feed(scheduler, mic, audio_factory.noise, 300)

            mic.active = False
            scheduler.advance(100)

            assert ready == []
            assert store.recording.error.startswith("Recording failed:")
            assert store.recording.is_recording is False
            assert store.has_pending_reset is True

            scheduler.advance(TimingSettings().capture_error_reset_ms)
            assert store.recording.error == ""
            assert store.recording.status == READY_STATUS

        asyncio.run(scenario())

    def test_permission_granted(self, fakes):
        async def scenario():
            session, scheduler, store, mic, _, _ = make_session(fakes)
            store.recording.has_permission = False
            assert await session.request_permission() is True
            assert store.recording.has_permission is True
            assert store.recording.permission_denied is False
            assert mic.probe_calls == 1
            assert mic.open_calls == 0

        asyncio.run(scenario())

    def test_permission_denied(self, fakes):
        async def scenario():
            session, scheduler, store, mic, _, _ = make_session(fakes, mic=fakes.Microphone(deny=True))
            assert await session.request_permission() is False
            assert store.recording.has_permission is False
            assert store.recording.permission_denied is True
            assert store.recording.status == PERMISSION_DENIED_STATUS
            assert store.recording.error == "Microphone permission denied."

        asyncio.run(scenario())

    def test_open_failure_treated_as_denied(self, fakes):
        async def scenario():
            session, scheduler, store, mic, _, _ = make_session(fakes, mic=fakes.Microphone(deny=True))
            assert await session.start() is False
            assert session.state is CaptureState.IDLE
            assert store.recording.permission_denied is True
            assert store.recording.is_recording is False

        asyncio.run(scenario())

    def test_stop_while_opening_closes_after_open_returns(self, fakes, waiter):
        async def scenario():
            mic = make_slow_microphone(fakes)
            session, scheduler, store, _, ready, _ = make_session(fakes, mic=mic)

            start = asyncio.ensure_future(session.start())
            await waiter(mic.entered.is_set)
            session.stop(False)
            assert mic.close_calls == 0

            mic.release.set()
            assert await start is False

            assert mic.closed_while_opening is False
            assert mic.close_calls == 1
            assert mic.active is False
            assert session.state is CaptureState.IDLE
            assert store.recording.is_recording is False
            assert ready == []

        asyncio.run(scenario())

    def test_cancelled_start_closes_device_once_opened(self, fakes, waiter):
        async def scenario():
            mic = make_slow_microphone(fakes)
            session, scheduler, store, _, _, _ = make_session(fakes, mic=mic)

            start = asyncio.ensure_future(session.start())
            await waiter(mic.entered.is_set)
            start.cancel()
            with pytest.raises(asyncio.CancelledError):
                await start
            assert session.state is CaptureState.IDLE

            session.teardown()
            assert mic.close_calls == 0

            mic.release.set()
            await waiter(lambda: mic.close_calls == 1)
            assert mic.closed_while_opening is False
            assert mic.active is False

        asyncio.run(scenario())
