"""
Transcript capture session.

A capture session wraps one continuous dictation against a speech source:

    IDLE --start()--> LISTENING --stop() / silence--> STOPPED
                          |
                          +--cancel()--> CANCELLED

While listening, a single control loop consumes the source's event stream.
Every partial or final result re-arms the silence timer and emits a cleaned
live preview; an unsolicited end-of-stream restarts the source without
leaving LISTENING; errors other than "no speech" are forwarded to the caller.
When the session stops, the completion callback fires exactly once with the
raw text, the cleaned text, the chunk log and the duration.

The session runs on an asyncio event loop and never blocks its caller. The
CaptureController owns at most one live session at a time.
"""

import asyncio
import logging
import time
from typing import Any, Callable, List, Optional, Tuple

from .config import config
from .debug_log import get_debug_logger
from .normalize import clean_text
from .speech import NO_SPEECH, NOT_SUPPORTED, SpeechSource
from .types import (
    CaptureResult,
    CaptureState,
    FinalResult,
    PartialResult,
    SpeechEvent,
    StartOutcome,
    StreamEnd,
    StreamError,
    TranscriptChunk,
    TranscriptUpdate,
)

logger = logging.getLogger(__name__)

RESTART_FAILED = "restart-failed"
SOURCE_FAILED = "source-failed"

UpdateCallback = Callable[[TranscriptUpdate], Any]
CompleteCallback = Callable[[CaptureResult], Any]
ErrorCallback = Callable[[str], Any]


class CaptureCallbacks:
    """Receivers for live previews, the final result and upstream errors."""

    def __init__(
        self,
        on_update: Optional[UpdateCallback] = None,
        on_complete: Optional[CompleteCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ):
        self.on_update = on_update
        self.on_complete = on_complete
        self.on_error = on_error


def _invoke(callback: Optional[Callable[..., Any]], *args: Any) -> None:
    if callback is None:
        return
    try:
        callback(*args)
    except Exception:
        # Callback failures are logged, never propagated
        logger.exception("Capture callback %s failed", getattr(callback, "__name__", repr(callback)))


class CaptureSession:
    """
    One dictation interaction with a speech source.

    Sessions are single use: once STOPPED or CANCELLED they cannot be started
    again. Create a new session (or use CaptureController) instead.
    """

    def __init__(
        self,
        source: Optional[SpeechSource],
        silence_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        project_root: str = ".",
    ):
        """
        Args:
            source: Upstream speech capability, None when the platform has none
            silence_timeout: Seconds of silence before auto-stop (default from DM_SILENCE_TIMEOUT_MS)
            clock: Monotonic clock used to timestamp chunks
            project_root: Where debug logs are written when DM_DEBUG=1
        """
        self._source = source
        self.silence_timeout = silence_timeout if silence_timeout is not None else config.silence_timeout
        self._clock = clock
        self.project_root = project_root

        self._state = CaptureState.IDLE
        self._callbacks = CaptureCallbacks()
        self._final_text = ""
        self._interim_text = ""
        self._chunks: List[TranscriptChunk] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        self.restart_count = 0
        self.result: Optional[CaptureResult] = None

    # --- Introspection ---

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def is_listening(self) -> bool:
        return self._state is CaptureState.LISTENING

    @property
    def final_text(self) -> str:
        return self._final_text

    @property
    def interim_text(self) -> str:
        return self._interim_text

    @property
    def chunks(self) -> List[TranscriptChunk]:
        return list(self._chunks)

    def preview(self) -> TranscriptUpdate:
        """Current finalized text plus the latest interim fragment, cleaned."""
        raw = self._final_text + self._interim_text
        return TranscriptUpdate(raw=raw, cleaned=clean_text(raw), is_final=False)

    # --- Lifecycle ---

    def start(self, callbacks: Optional[CaptureCallbacks] = None) -> StartOutcome:
        """
        Start listening.

        Must be called from code running inside an asyncio event loop. Never
        raises: failures are reported through the returned outcome.

        Returns:
            STARTED on success, NOT_SUPPORTED when there is no usable speech
            source, ALREADY_LISTENING when the session is live, FAILED otherwise
        """
        callbacks = callbacks or CaptureCallbacks()

        if self._state is CaptureState.LISTENING:
            return StartOutcome.ALREADY_LISTENING
        if self._state is not CaptureState.IDLE:
            logger.warning("Cannot restart a capture session in state %s", self._state.value)
            return StartOutcome.FAILED

        if self._source is None or not self._source.is_available():
            logger.info("Speech recognition is not available")
            _invoke(callbacks.on_error, NOT_SUPPORTED)
            return StartOutcome.NOT_SUPPORTED

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error("CaptureSession.start() must be called from a running event loop")
            return StartOutcome.FAILED

        try:
            self._source.start()
        except Exception as e:
            logger.error("Failed to start speech source: %s", e)
            return StartOutcome.FAILED

        self._callbacks = callbacks
        self._loop = loop
        self._state = CaptureState.LISTENING
        self._reset_silence_timer()
        self._task = loop.create_task(self._run())
        logger.debug("Capture session started (silence timeout %.3fs)", self.silence_timeout)
        return StartOutcome.STARTED

    def stop(self) -> Optional[CaptureResult]:
        """
        Finish the session and deliver the result.

        Returns:
            The completion payload, or None when the session was not listening
        """
        if self._state is not CaptureState.LISTENING:
            return None

        self._state = CaptureState.STOPPED
        self._cancel_silence_timer()
        self._close_source(abort=False)
        self._cancel_task()

        result = CaptureResult(
            raw=self._final_text,
            cleaned=clean_text(self._final_text),
            chunks=list(self._chunks),
            duration=self._duration(),
        )
        self.result = result
        logger.debug("Capture session stopped: %d chunks, %.3fs, %d restarts", len(result.chunks), result.duration, self.restart_count)

        debug_logger = get_debug_logger(self.project_root)
        if debug_logger.is_enabled():
            debug_logger.log_capture_summary(result, self.restart_count)

        _invoke(self._callbacks.on_complete, result)
        return result

    def cancel(self) -> None:
        """
        Abandon the session without a result.

        Safe in any state. The silence timer is cancelled before this returns,
        the source is aborted and the completion callback never fires.
        """
        if self._state in (CaptureState.STOPPED, CaptureState.CANCELLED):
            return

        was_listening = self._state is CaptureState.LISTENING
        self._state = CaptureState.CANCELLED
        self._cancel_silence_timer()
        if was_listening:
            self._close_source(abort=True)
        self._cancel_task()

        self._final_text = ""
        self._interim_text = ""
        self._chunks = []
        logger.debug("Capture session cancelled")

    async def wait_closed(self) -> None:
        """Wait until the control loop has exited."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    # --- Control loop ---

    async def _run(self) -> None:
        assert self._source is not None
        try:
            async for event in self._source.events():
                if self._state is not CaptureState.LISTENING:
                    break
                self.handle_event(event)
            else:
                logger.debug("Speech event stream exhausted; waiting for stop or silence")
        except Exception:
            logger.exception("Speech source event stream failed")
            if self._state is CaptureState.LISTENING:
                _invoke(self._callbacks.on_error, SOURCE_FAILED)

    def handle_event(self, event: SpeechEvent) -> None:
        """Apply one upstream event. Ignored unless the session is listening."""
        if self._state is not CaptureState.LISTENING:
            return

        if isinstance(event, FinalResult):
            self._reset_silence_timer()
            self._final_text += event.text
            self._interim_text = ""
            self._chunks.append(TranscriptChunk(text=event.text, confidence=event.confidence, timestamp=self._next_timestamp()))
            _invoke(self._callbacks.on_update, self.preview())
        elif isinstance(event, PartialResult):
            self._reset_silence_timer()
            self._interim_text = event.text
            _invoke(self._callbacks.on_update, self.preview())
        elif isinstance(event, StreamEnd):
            self._restart_source()
        elif isinstance(event, StreamError):
            if event.code == NO_SPEECH:
                logger.debug("No speech detected")
                return
            logger.warning("Speech recognition error: %s", event.code)
            _invoke(self._callbacks.on_error, event.code)

    def _restart_source(self) -> None:
        # Upstreams end on their own; the session stays LISTENING
        assert self._source is not None
        try:
            self._source.start()
        except Exception as e:
            logger.warning("Failed to restart speech source: %s", e)
            _invoke(self._callbacks.on_error, RESTART_FAILED)
            return
        self.restart_count += 1
        logger.debug("Speech source ended on its own; restarted (%d)", self.restart_count)

    def _close_source(self, abort: bool) -> None:
        assert self._source is not None
        try:
            if abort:
                self._source.abort()
            else:
                self._source.stop()
        except Exception as e:
            logger.warning("Speech source did not %s cleanly: %s", "abort" if abort else "stop", e)

    def _cancel_task(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    # --- Silence detection ---

    def _reset_silence_timer(self) -> None:
        self._cancel_silence_timer()
        if self._loop is not None:
            self._timer = self._loop.call_later(self.silence_timeout, self._on_silence)

    def _cancel_silence_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_silence(self) -> None:
        self._timer = None
        if self._state is CaptureState.LISTENING and self._final_text.strip():
            logger.debug("Silence timeout reached; stopping capture")
            self.stop()

    # --- Helpers ---

    def _next_timestamp(self) -> float:
        now = self._clock()
        if self._chunks and now < self._chunks[-1].timestamp:
            return self._chunks[-1].timestamp
        return now

    def _duration(self) -> float:
        if len(self._chunks) < 2:
            return 0.0
        return self._chunks[-1].timestamp - self._chunks[0].timestamp


class CaptureController:
    """
    Owns the single live capture session.

    Starting a new session while one is listening is refused, so at most one
    dictation runs at a time without any module-level state.
    """

    def __init__(self, silence_timeout: Optional[float] = None, clock: Callable[[], float] = time.monotonic, project_root: str = "."):
        self.silence_timeout = silence_timeout
        self._clock = clock
        self.project_root = project_root
        self._session: Optional[CaptureSession] = None

    @property
    def session(self) -> Optional[CaptureSession]:
        """The most recently started session, live or finished."""
        return self._session

    @property
    def active(self) -> Optional[CaptureSession]:
        """The live session, if any."""
        if self._session is not None and self._session.is_listening:
            return self._session
        return None

    def start(self, source: Optional[SpeechSource], callbacks: Optional[CaptureCallbacks] = None) -> Tuple[StartOutcome, Optional[CaptureSession]]:
        """
        Start a new session on the given source.

        Returns:
            The start outcome and the session when it started
        """
        if self.active is not None:
            return StartOutcome.ALREADY_LISTENING, None

        session = CaptureSession(source, silence_timeout=self.silence_timeout, clock=self._clock, project_root=self.project_root)
        outcome = session.start(callbacks)
        if outcome is not StartOutcome.STARTED:
            return outcome, None

        self._session = session
        return outcome, session

    def stop(self) -> Optional[CaptureResult]:
        if self._session is None:
            return None
        return self._session.stop()

    def cancel(self) -> None:
        if self._session is not None:
            self._session.cancel()
