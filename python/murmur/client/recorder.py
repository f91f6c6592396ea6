"""Recording session state machine.

The native shell reports what happens to the microphone (started, stopped,
ready to fetch, audio pushed) and the recorder decides what to do next.

The decision logic is a pure reducer:

    reduce(session, event) -> (session, effects)

Sessions, events and effects are frozen dataclasses. RecorderOrchestrator
owns the current session, feeds events through the reducer and carries out
the returned effects against its collaborators (native bridge, transcription
client, dispatch router).

States:
    IDLE -> RECORDING (started)
    RECORDING -> IDLE (stopped under MIN_RECORDING_SECONDS; window closes)
    RECORDING -> TRANSCRIBING (ready to fetch, or audio pushed by the shell)
    TRANSCRIBING -> IDLE (transcription succeeded or failed)

A stopped recording stays in RECORDING with is_recording=False until the
audio arrives. Events that do not apply to the current session are logged
and dropped; they never surface as errors.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Protocol

from murmur.client.dispatch import CaptureMode, DispatchError, DispatchRouter
from murmur.client.transcription import TranscriptionClient, TranscriptionError
from murmur.logging import get_logger

logger = get_logger(__name__)

# Recordings shorter than this are discarded
MIN_RECORDING_SECONDS = 1.0


class RecorderState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    TRANSCRIBING = "transcribing"


@dataclass(frozen=True)
class RecorderSession:
    """Snapshot of one recording session.

    Attributes:
        state: Current state
        mode: Where the transcript goes
        duration_s: Seconds recorded so far
        is_recording: True while the microphone is live
        result: Last transcript; cleared when the next recording starts
    """

    state: RecorderState = RecorderState.IDLE
    mode: CaptureMode = CaptureMode.NORMAL
    duration_s: float = 0.0
    is_recording: bool = False
    result: str | None = None


# =============================================================================
# Events
# =============================================================================


@dataclass(frozen=True)
class Started:
    mode: CaptureMode = CaptureMode.NORMAL


@dataclass(frozen=True)
class Stopped:
    pass


@dataclass(frozen=True)
class Tick:
    seconds: float


@dataclass(frozen=True)
class ReadyToFetch:
    pass


@dataclass(frozen=True)
class AudioDataAvailable:
    """The shell pushed captured audio directly (it already checked duration)."""

    data: bytes
    is_clipboard_mode: bool = False


@dataclass(frozen=True)
class StateChanged:
    state: RecorderState


@dataclass(frozen=True)
class TranscriptionSucceeded:
    text: str


@dataclass(frozen=True)
class TranscriptionFailed:
    message: str


@dataclass(frozen=True)
class Reset:
    pass


RecorderEvent = (
    Started
    | Stopped
    | Tick
    | ReadyToFetch
    | AudioDataAvailable
    | StateChanged
    | TranscriptionSucceeded
    | TranscriptionFailed
    | Reset
)


# =============================================================================
# Effects
# =============================================================================


@dataclass(frozen=True)
class EmitStatus:
    state: RecorderState


@dataclass(frozen=True)
class CloseWindow:
    pass


@dataclass(frozen=True)
class FetchAudio:
    pass


@dataclass(frozen=True)
class Transcribe:
    data: bytes


@dataclass(frozen=True)
class Dispatch:
    text: str
    mode: CaptureMode


@dataclass(frozen=True)
class ReportError:
    message: str


@dataclass(frozen=True)
class LogIgnored:
    event: str
    reason: str


RecorderEffect = (
    EmitStatus | CloseWindow | FetchAudio | Transcribe | Dispatch | ReportError | LogIgnored
)


# =============================================================================
# Reducer
# =============================================================================


def _ignored(
    session: RecorderSession, event: RecorderEvent, reason: str
) -> tuple[RecorderSession, list[RecorderEffect]]:
    return session, [LogIgnored(event=type(event).__name__, reason=reason)]


def reduce(
    session: RecorderSession, event: RecorderEvent
) -> tuple[RecorderSession, list[RecorderEffect]]:
    """Apply one event. Pure: no I/O, no mutation of `session`."""
    if isinstance(event, Started):
        if session.state != RecorderState.IDLE:
            return _ignored(session, event, f"cannot start while {session.state.value}")
        started = RecorderSession(
            state=RecorderState.RECORDING,
            mode=event.mode,
            duration_s=0.0,
            is_recording=True,
            result=None,
        )
        return started, [EmitStatus(RecorderState.RECORDING)]

    if isinstance(event, Tick):
        if session.state == RecorderState.RECORDING and session.is_recording:
            return replace(session, duration_s=session.duration_s + event.seconds), []
        return session, []

    if isinstance(event, Stopped):
        if not session.is_recording:
            return _ignored(session, event, "not recording")
        if session.duration_s < MIN_RECORDING_SECONDS:
            idle = RecorderSession(mode=session.mode)
            return idle, [EmitStatus(RecorderState.IDLE), CloseWindow()]
        return replace(session, is_recording=False), []

    if isinstance(event, ReadyToFetch):
        if session.is_recording:
            return _ignored(session, event, "still recording")
        if session.state == RecorderState.TRANSCRIBING:
            return _ignored(session, event, "already transcribing")
        if session.result is not None:
            return _ignored(session, event, "result pending")
        if session.duration_s < MIN_RECORDING_SECONDS:
            return _ignored(session, event, "recording too short")
        transcribing = replace(session, state=RecorderState.TRANSCRIBING)
        return transcribing, [EmitStatus(RecorderState.TRANSCRIBING), FetchAudio()]

    if isinstance(event, AudioDataAvailable):
        if session.state == RecorderState.TRANSCRIBING:
            return _ignored(session, event, "already transcribing")
        if session.result is not None:
            return _ignored(session, event, "result pending")
        if not event.data:
            return _ignored(session, event, "empty audio")
        mode = CaptureMode.CLIPBOARD if event.is_clipboard_mode else CaptureMode.NORMAL
        transcribing = replace(
            session, state=RecorderState.TRANSCRIBING, mode=mode, is_recording=False
        )
        return transcribing, [EmitStatus(RecorderState.TRANSCRIBING), Transcribe(event.data)]

    if isinstance(event, StateChanged):
        return session, [EmitStatus(event.state)]

    if isinstance(event, TranscriptionSucceeded):
        if session.state != RecorderState.TRANSCRIBING:
            return _ignored(session, event, "not transcribing")
        done = RecorderSession(mode=session.mode, result=event.text)
        return done, [EmitStatus(RecorderState.IDLE), Dispatch(event.text, session.mode)]

    if isinstance(event, TranscriptionFailed):
        if session.state != RecorderState.TRANSCRIBING:
            return _ignored(session, event, "not transcribing")
        return RecorderSession(mode=session.mode), [
            EmitStatus(RecorderState.IDLE),
            ReportError(event.message),
        ]

    if isinstance(event, Reset):
        return RecorderSession(), [EmitStatus(RecorderState.IDLE)]

    raise TypeError(f"Unknown recorder event: {event!r}")


# =============================================================================
# Orchestrator
# =============================================================================


class NativeBridge(Protocol):
    """Commands the recorder sends to the native shell."""

    async def fetch_audio_data(self) -> bytes: ...

    async def close_window(self) -> None: ...


class RecorderOrchestrator:
    """Runs the reducer and executes its effects.

    Args:
        bridge: Native shell commands (get_audio_data, close_window).
        transcriber: Speech-to-text client.
        dispatcher: Routes the transcript to chat or clipboard.
        on_status: Called with every state the UI should show.
        on_error: Called with a message when transcription or dispatch fails.
        tick_interval: Seconds between Tick events while recording; None
            disables the internal ticker (the shell then sends Tick itself).
    """

    def __init__(
        self,
        bridge: NativeBridge,
        transcriber: TranscriptionClient,
        dispatcher: DispatchRouter,
        on_status: Callable[[RecorderState], None] | None = None,
        on_error: Callable[[str], None] | None = None,
        tick_interval: float | None = 1.0,
    ):
        self._bridge = bridge
        self._transcriber = transcriber
        self._dispatcher = dispatcher
        self._on_status = on_status
        self._on_error = on_error
        self._tick_interval = tick_interval
        self._ticker: asyncio.Task | None = None
        self.session = RecorderSession()

    async def handle(self, event: RecorderEvent) -> None:
        """Apply one event and run every effect it produces, in order."""
        self.session, effects = reduce(self.session, event)
        self._sync_ticker()
        for effect in effects:
            await self._execute(effect)

    async def run(self, queue: "asyncio.Queue[RecorderEvent | None]") -> None:
        """Consume events from `queue` until a None sentinel arrives."""
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                await self.handle(event)
        finally:
            self._stop_ticker()

    async def _execute(self, effect: RecorderEffect) -> None:
        if isinstance(effect, EmitStatus):
            if self._on_status is not None:
                self._on_status(effect.state)
        elif isinstance(effect, CloseWindow):
            await self._bridge.close_window()
        elif isinstance(effect, FetchAudio):
            try:
                data = await self._bridge.fetch_audio_data()
            except Exception as e:
                logger.warning("audio_fetch_failed", error=str(e))
                await self.handle(TranscriptionFailed(f"Could not read recorded audio: {e}"))
                return
            await self._execute(Transcribe(data))
        elif isinstance(effect, Transcribe):
            try:
                text = await self._transcriber.transcribe(effect.data)
            except TranscriptionError as e:
                await self.handle(TranscriptionFailed(e.message))
                return
            await self.handle(TranscriptionSucceeded(text))
        elif isinstance(effect, Dispatch):
            try:
                await self._dispatcher.dispatch(effect.text, effect.mode)
            except DispatchError as e:
                self._report(str(e))
        elif isinstance(effect, ReportError):
            logger.warning("recorder_error", message=effect.message)
            self._report(effect.message)
        elif isinstance(effect, LogIgnored):
            logger.info("recorder_event_ignored", event=effect.event, reason=effect.reason)

    def _report(self, message: str) -> None:
        if self._on_error is not None:
            self._on_error(message)

    # -------------------------------------------------------------------------
    # Ticker
    # -------------------------------------------------------------------------

    def _sync_ticker(self) -> None:
        live = self.session.state == RecorderState.RECORDING and self.session.is_recording
        if live and self._tick_interval is not None and self._ticker is None:
            self._ticker = asyncio.get_running_loop().create_task(self._tick_loop())
        elif not live:
            self._stop_ticker()

    def _stop_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    async def _tick_loop(self) -> None:
        interval = self._tick_interval
        while True:
            await asyncio.sleep(interval)
            await self.handle(Tick(interval))
