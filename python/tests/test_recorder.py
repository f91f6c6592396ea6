"""Tests for the recording session state machine.

The reducer is pure, so most cases feed one event into a hand-built session
and check the resulting session and effects. Orchestrator tests run the
whole loop against fakes of the native shell, STT client and dispatcher.
"""

import asyncio

import pytest

from murmur.client.chat import ChatStreamError
from murmur.client.dispatch import CaptureMode, DispatchError, DispatchRouter
from murmur.client.recorder import (
    AudioDataAvailable,
    CloseWindow,
    Dispatch,
    EmitStatus,
    FetchAudio,
    LogIgnored,
    ReadyToFetch,
    RecorderOrchestrator,
    RecorderSession,
    RecorderState,
    ReportError,
    Reset,
    Started,
    StateChanged,
    Stopped,
    Tick,
    Transcribe,
    TranscriptionFailed,
    TranscriptionSucceeded,
    reduce,
)
from murmur.client.transcription import TranscriptionError

RECORDING = RecorderSession(state=RecorderState.RECORDING, duration_s=2.0, is_recording=True)
STOPPED = RecorderSession(state=RecorderState.RECORDING, duration_s=2.0, is_recording=False)
TRANSCRIBING = RecorderSession(state=RecorderState.TRANSCRIBING, duration_s=2.0)


def ignored(effects) -> bool:
    return len(effects) == 1 and isinstance(effects[0], LogIgnored)


# =============================================================================
# Reducer
# =============================================================================


class TestStartAndStop:
    def test_start_from_idle(self):
        session, effects = reduce(RecorderSession(), Started(CaptureMode.CLIPBOARD))

        assert session.state == RecorderState.RECORDING
        assert session.is_recording is True
        assert session.mode == CaptureMode.CLIPBOARD
        assert effects == [EmitStatus(RecorderState.RECORDING)]

    def test_start_while_transcribing_is_ignored(self):
        session, effects = reduce(TRANSCRIBING, Started())

        assert session == TRANSCRIBING
        assert ignored(effects)

    def test_start_clears_previous_result(self):
        session, _ = reduce(RecorderSession(result="old text"), Started())

        assert session.result is None
        assert session.duration_s == 0.0

    def test_tick_accumulates_while_recording(self):
        session, effects = reduce(RECORDING, Tick(1.0))

        assert session.duration_s == 3.0
        assert effects == []

    def test_tick_ignored_after_stop(self):
        session, _ = reduce(STOPPED, Tick(1.0))

        assert session.duration_s == 2.0

    def test_short_recording_is_discarded(self):
        short = RecorderSession(state=RecorderState.RECORDING, duration_s=0.4, is_recording=True)

        session, effects = reduce(short, Stopped())

        assert session.state == RecorderState.IDLE
        assert effects == [EmitStatus(RecorderState.IDLE), CloseWindow()]

    def test_stop_keeps_recording_state_until_audio(self):
        session, effects = reduce(RECORDING, Stopped())

        assert session.state == RecorderState.RECORDING
        assert session.is_recording is False
        assert effects == []

    def test_stop_when_not_recording_is_ignored(self):
        _, effects = reduce(RecorderSession(), Stopped())

        assert ignored(effects)

    def test_reducer_does_not_mutate_input(self):
        before = RecorderSession()

        reduce(before, Started())

        assert before == RecorderSession()


class TestReadyToFetch:
    def test_fetches_after_stop(self):
        session, effects = reduce(STOPPED, ReadyToFetch())

        assert session.state == RecorderState.TRANSCRIBING
        assert effects == [EmitStatus(RecorderState.TRANSCRIBING), FetchAudio()]

    def test_while_still_recording_is_ignored(self):
        session, effects = reduce(RECORDING, ReadyToFetch())

        assert session.state == RecorderState.RECORDING
        assert ignored(effects)

    def test_while_transcribing_is_ignored(self):
        session, effects = reduce(TRANSCRIBING, ReadyToFetch())

        assert session == TRANSCRIBING
        assert ignored(effects)

    def test_with_result_pending_is_ignored(self):
        _, effects = reduce(RecorderSession(result="done", duration_s=2.0), ReadyToFetch())

        assert ignored(effects)

    def test_too_short_is_ignored(self):
        short = RecorderSession(state=RecorderState.RECORDING, duration_s=0.5)

        _, effects = reduce(short, ReadyToFetch())

        assert ignored(effects)


class TestAudioDataAvailable:
    def test_pushed_audio_starts_transcription(self):
        session, effects = reduce(STOPPED, AudioDataAvailable(b"wav", is_clipboard_mode=True))

        assert session.state == RecorderState.TRANSCRIBING
        assert session.mode == CaptureMode.CLIPBOARD
        assert effects == [EmitStatus(RecorderState.TRANSCRIBING), Transcribe(b"wav")]

    def test_empty_audio_is_ignored(self):
        session, effects = reduce(STOPPED, AudioDataAvailable(b""))

        assert session == STOPPED
        assert ignored(effects)

    def test_while_transcribing_is_ignored(self):
        _, effects = reduce(TRANSCRIBING, AudioDataAvailable(b"wav"))

        assert ignored(effects)


class TestTranscriptionResults:
    def test_success_returns_to_idle_and_dispatches(self):
        transcribing = RecorderSession(state=RecorderState.TRANSCRIBING, mode=CaptureMode.CLIPBOARD)

        session, effects = reduce(transcribing, TranscriptionSucceeded("hello"))

        assert session.state == RecorderState.IDLE
        assert session.result == "hello"
        assert effects == [
            EmitStatus(RecorderState.IDLE),
            Dispatch("hello", CaptureMode.CLIPBOARD),
        ]

    def test_success_when_not_transcribing_is_ignored(self):
        _, effects = reduce(RecorderSession(), TranscriptionSucceeded("late"))

        assert ignored(effects)

    def test_failure_reports_error(self):
        session, effects = reduce(TRANSCRIBING, TranscriptionFailed("HTTP 502"))

        assert session.state == RecorderState.IDLE
        assert session.result is None
        assert effects == [EmitStatus(RecorderState.IDLE), ReportError("HTTP 502")]

    def test_state_changed_is_forwarded(self):
        session, effects = reduce(RECORDING, StateChanged(RecorderState.TRANSCRIBING))

        assert session == RECORDING
        assert effects == [EmitStatus(RecorderState.TRANSCRIBING)]

    def test_reset(self):
        session, effects = reduce(RecorderSession(result="x"), Reset())

        assert session == RecorderSession()
        assert effects == [EmitStatus(RecorderState.IDLE)]

    def test_unknown_event(self):
        with pytest.raises(TypeError):
            reduce(RecorderSession(), object())


# =============================================================================
# Orchestrator
# =============================================================================


class FakeBridge:
    def __init__(self, audio: bytes = b"RIFF-audio", fail: bool = False):
        self.audio = audio
        self.fail = fail
        self.closed = 0

    async def fetch_audio_data(self) -> bytes:
        if self.fail:
            raise OSError("recorder file missing")
        return self.audio

    async def close_window(self) -> None:
        self.closed += 1


class FakeTranscriber:
    def __init__(self, text: str = "hello world", error: TranscriptionError | None = None):
        self.text = text
        self.error = error
        self.received: list[bytes] = []

    async def transcribe(self, data: bytes) -> str:
        self.received.append(data)
        if self.error is not None:
            raise self.error
        return self.text


class FakeDispatcher:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.dispatched: list[tuple[str, CaptureMode]] = []

    async def dispatch(self, text: str, mode: CaptureMode) -> None:
        if self.fail:
            raise DispatchError("Clipboard paste failed")
        self.dispatched.append((text, mode))


class UnavailableChat:
    async def append_user_turn(self, text: str) -> None:
        raise ChatStreamError("Model not available", error_code="E_MODEL_NOT_AVAILABLE")


class UnusedClipboard:
    async def paste(self, text: str) -> None:
        raise AssertionError("clipboard should not be used")


def make_orchestrator(bridge=None, transcriber=None, dispatcher=None, tick_interval=None):
    statuses: list[RecorderState] = []
    errors: list[str] = []
    orchestrator = RecorderOrchestrator(
        bridge or FakeBridge(),
        transcriber or FakeTranscriber(),
        dispatcher or FakeDispatcher(),
        on_status=statuses.append,
        on_error=errors.append,
        tick_interval=tick_interval,
    )
    return orchestrator, statuses, errors


async def record(orchestrator, seconds: float = 2.0, mode=CaptureMode.NORMAL) -> None:
    await orchestrator.handle(Started(mode))
    await orchestrator.handle(Tick(seconds))
    await orchestrator.handle(Stopped())
    await orchestrator.handle(ReadyToFetch())


class TestRecorderOrchestrator:
    @pytest.mark.asyncio
    async def test_full_cycle(self):
        transcriber, dispatcher = FakeTranscriber("buy milk"), FakeDispatcher()
        orchestrator, statuses, errors = make_orchestrator(
            transcriber=transcriber, dispatcher=dispatcher
        )

        await record(orchestrator)

        assert statuses == [RecorderState.RECORDING, RecorderState.TRANSCRIBING, RecorderState.IDLE]
        assert transcriber.received == [b"RIFF-audio"]
        assert dispatcher.dispatched == [("buy milk", CaptureMode.NORMAL)]
        assert orchestrator.session.result == "buy milk"
        assert errors == []

    @pytest.mark.asyncio
    async def test_clipboard_mode_is_carried_to_dispatch(self):
        dispatcher = FakeDispatcher()
        orchestrator, _, _ = make_orchestrator(dispatcher=dispatcher)

        await record(orchestrator, mode=CaptureMode.CLIPBOARD)

        assert dispatcher.dispatched == [("hello world", CaptureMode.CLIPBOARD)]

    @pytest.mark.asyncio
    async def test_short_recording_closes_window(self):
        bridge, transcriber = FakeBridge(), FakeTranscriber()
        orchestrator, statuses, _ = make_orchestrator(bridge=bridge, transcriber=transcriber)

        await orchestrator.handle(Started())
        await orchestrator.handle(Tick(0.3))
        await orchestrator.handle(Stopped())

        assert bridge.closed == 1
        assert transcriber.received == []
        assert statuses[-1] == RecorderState.IDLE

    @pytest.mark.asyncio
    async def test_transcription_error_is_reported(self):
        transcriber = FakeTranscriber(error=TranscriptionError("Upstream broke", 502))
        dispatcher = FakeDispatcher()
        orchestrator, statuses, errors = make_orchestrator(
            transcriber=transcriber, dispatcher=dispatcher
        )

        await record(orchestrator)

        assert errors == ["Upstream broke"]
        assert dispatcher.dispatched == []
        assert orchestrator.session.state == RecorderState.IDLE
        assert statuses[-1] == RecorderState.IDLE

    @pytest.mark.asyncio
    async def test_fetch_failure_is_reported(self):
        orchestrator, _, errors = make_orchestrator(bridge=FakeBridge(fail=True))

        await record(orchestrator)

        assert len(errors) == 1
        assert "recorder file missing" in errors[0]
        assert orchestrator.session.state == RecorderState.IDLE

    @pytest.mark.asyncio
    async def test_dispatch_failure_is_reported(self):
        orchestrator, _, errors = make_orchestrator(dispatcher=FakeDispatcher(fail=True))

        await record(orchestrator)

        assert errors == ["Clipboard paste failed"]
        assert orchestrator.session.result == "hello world"

    @pytest.mark.asyncio
    async def test_pushed_audio_skips_fetch(self):
        bridge, transcriber = FakeBridge(fail=True), FakeTranscriber()
        orchestrator, _, errors = make_orchestrator(bridge=bridge, transcriber=transcriber)

        await orchestrator.handle(Started())
        await orchestrator.handle(AudioDataAvailable(b"pushed"))

        assert transcriber.received == [b"pushed"]
        assert errors == []

    @pytest.mark.asyncio
    async def test_run_consumes_queue_until_sentinel(self):
        dispatcher = FakeDispatcher()
        orchestrator, _, _ = make_orchestrator(dispatcher=dispatcher)
        queue: asyncio.Queue = asyncio.Queue()
        for event in (Started(), Tick(1.5), Stopped(), ReadyToFetch(), None):
            queue.put_nowait(event)

        await orchestrator.run(queue)

        assert dispatcher.dispatched == [("hello world", CaptureMode.NORMAL)]

    @pytest.mark.asyncio
    async def test_chat_failure_is_reported_and_loop_keeps_running(self):
        dispatcher = DispatchRouter(UnusedClipboard(), UnavailableChat())
        orchestrator, statuses, errors = make_orchestrator(dispatcher=dispatcher)
        queue: asyncio.Queue = asyncio.Queue()
        for event in (
            AudioDataAvailable(b"abc"),
            Reset(),
            StateChanged(RecorderState.RECORDING),
            None,
        ):
            queue.put_nowait(event)

        await orchestrator.run(queue)

        assert len(errors) == 1
        assert "Model not available" in errors[0]
        assert statuses == [
            RecorderState.TRANSCRIBING,
            RecorderState.IDLE,
            RecorderState.IDLE,
            RecorderState.RECORDING,
        ]
        assert orchestrator.session == RecorderSession()
        assert queue.empty()

    @pytest.mark.asyncio
    async def test_internal_ticker_counts_while_recording(self):
        orchestrator, _, _ = make_orchestrator(tick_interval=0.01)

        await orchestrator.handle(Started())
        await asyncio.sleep(0.1)
        recorded = orchestrator.session.duration_s
        await orchestrator.handle(Stopped())

        assert recorded > 0
        assert orchestrator._ticker is None
