"""State-machine based session orchestration.

One session runs at a time: ``IDLE -> LISTENING -> PROCESSING`` and then one
of the display states ``DONE``, ``EMPTY`` or ``ERROR``, which fall back to
``IDLE`` after ``display_interval_s``.

Audio is consumed on a per-session thread. In boost mode every chunk goes
through the StreamingCoordinator and each new transcript snapshot is typed as
a diff against the previous one. In legacy mode the chunks are only buffered
and decoded once when the session stops.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Iterator, Optional

import numpy as np

from config import AppSettings
from diff_injection import DiffInjectionEngine
from errors import (
    APP_DISABLED,
    CAPTURE_FAILED,
    DECODE_FAILED,
    ERROR_MESSAGES,
    MODEL_NOT_LOADED,
    SESSION_CANCELLED,
    CaptureError,
    DictationError,
)
from interfaces import AudioChunkSource, KeystrokeInjector, TranscriptionEngine
from models import TERMINAL_STATES, SessionMode, SessionState
from streaming import StreamingCoordinator, join_segments

logger = logging.getLogger(__name__)

StateCallback = Callable[[SessionState, SessionState], None]
PartialCallback = Callable[[str], None]
ErrorCallback = Callable[[str, str], None]
StatusCallback = Callable[[str], None]


class SessionController:
    def __init__(
        self,
        source: AudioChunkSource,
        engine: TranscriptionEngine,
        injector: KeystrokeInjector,
        settings: Optional[AppSettings] = None,
        coordinator: Optional[StreamingCoordinator] = None,
        is_model_loaded: Optional[Callable[[], bool]] = None,
        finalize_timeout_s: float = 3.0,
        on_state_change: Optional[StateCallback] = None,
        on_partial: Optional[PartialCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_status: Optional[StatusCallback] = None,
    ) -> None:
        self._source = source
        self._settings = settings or AppSettings()
        self._is_model_loaded = is_model_loaded or (lambda: True)
        self._finalize_timeout_s = finalize_timeout_s
        self._on_state_change = on_state_change
        self._on_partial = on_partial
        self._on_error = on_error
        self._on_status = on_status

        self._coordinator = coordinator or StreamingCoordinator(
            engine,
            decode_interval_s=self._settings.decode_interval_s,
            min_unconfirmed_s=self._settings.min_unconfirmed_s,
            unconfirmed_reserve=self._settings.unconfirmed_reserve,
        )
        self._injection = DiffInjectionEngine(injector, on_error=self._handle_injection_error)

        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._session_id = 0
        self._mode = SessionMode.BOOST
        self._consumer: Optional[threading.Thread] = None
        self._legacy_chunks: list[np.ndarray] = []
        self._typed_text = ""
        self._revert_timer: Optional[threading.Timer] = None

        self.status = "Idle"
        self.last_text = ""
        self.last_error: Optional[tuple[str, str]] = None
        self.injection_error: Optional[tuple[str, str]] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def mode(self) -> SessionMode:
        return self._mode

    @property
    def settings(self) -> AppSettings:
        return self._settings

    @property
    def injection(self) -> DiffInjectionEngine:
        return self._injection

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def start_session(self) -> None:
        with self._lock:
            if self._state in (SessionState.LISTENING, SessionState.PROCESSING):
                logger.debug("Start ignored in %s", self._state.value)
                return
            if not self._settings.app_enabled:
                self._set_status(ERROR_MESSAGES[APP_DISABLED])
                return
            if not self._is_model_loaded():
                self._set_status(ERROR_MESSAGES[MODEL_NOT_LOADED])
                return

            self._cancel_revert_timer()
            if self._state in TERMINAL_STATES:
                self._transition(SessionState.IDLE)
            self._session_id += 1
            session_id = self._session_id
            self._mode = SessionMode.BOOST if self._settings.streaming else SessionMode.LEGACY
            self._injection.reset()
            if not self._injection.flush(timeout=self._finalize_timeout_s):
                logger.warning("Previous injection still running at session %d start", session_id)
            self._coordinator.start()
            self._legacy_chunks = []
            self._typed_text = ""
            self.last_text = ""
            self.last_error = None
            self.injection_error = None
            self._transition(SessionState.LISTENING)
            logger.info("Session %d started (%s mode)", session_id, self._mode.value)

            try:
                chunks = self._source.start()
            except CaptureError as exc:
                self._finish_with_error(session_id, exc.code, str(exc))
                return
            except Exception as exc:
                self._finish_with_error(session_id, CAPTURE_FAILED, f"start failed: {exc}")
                return

            self._consumer = threading.Thread(
                target=self._consume,
                args=(session_id, chunks),
                name=f"session-{session_id}",
                daemon=True,
            )
            self._consumer.start()

    def stop_session(self) -> None:
        """Stop capture and run the final decode. Blocks until done."""
        with self._lock:
            if self._state != SessionState.LISTENING:
                return
            session_id = self._session_id
            consumer = self._consumer
            self._transition(SessionState.PROCESSING)
            self._safe_stop_source()

        if consumer is not None:
            consumer.join(timeout=self._finalize_timeout_s)
            if consumer.is_alive():
                with self._lock:
                    if self._is_current(session_id, SessionState.PROCESSING):
                        self._finish_with_error(session_id, CAPTURE_FAILED, "audio stream did not stop")
                return

        with self._lock:
            if not self._is_current(session_id, SessionState.PROCESSING):
                return
            mode = self._mode
            legacy_chunks, self._legacy_chunks = self._legacy_chunks, []

        try:
            if mode == SessionMode.BOOST:
                final_text = self._coordinator.finish()
            else:
                final_text = self._decode_full(legacy_chunks)
        except Exception as exc:
            code = exc.code if isinstance(exc, DictationError) else DECODE_FAILED
            logger.warning("Session %d decode failed: %s", session_id, exc)
            with self._lock:
                if self._is_current(session_id, SessionState.PROCESSING):
                    self._finish_with_error(session_id, code, str(exc))
            return

        with self._lock:
            if not self._is_current(session_id, SessionState.PROCESSING):
                return
            self._complete(session_id, final_text.strip())

    def toggle(self) -> None:
        with self._lock:
            listening = self._state == SessionState.LISTENING
        if listening:
            self.stop_session()
        else:
            self.start_session()

    def cancel_session(self, reason: str) -> None:
        with self._lock:
            self._cancel_revert_timer()
            if self._state == SessionState.IDLE:
                return
            if self._state not in TERMINAL_STATES:
                self._emit_error(SESSION_CANCELLED, reason)
            self._session_id += 1
            self._safe_stop_source()
            self._injection.reset()
            self._coordinator.reset()
            self._legacy_chunks = []
            self._transition(SessionState.IDLE)

    def close(self) -> None:
        if self._state in TERMINAL_STATES:
            self._injection.flush(timeout=self._finalize_timeout_s)
        self.cancel_session("app quit")
        self._injection.close()
        self._coordinator.close()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _consume(self, session_id: int, chunks: Iterator[np.ndarray]) -> None:
        try:
            for chunk in chunks:
                if session_id != self._session_id:
                    return
                if self._mode == SessionMode.LEGACY:
                    self._legacy_chunks.append(chunk)
                    continue
                for snapshot in self._coordinator.push_chunk(chunk):
                    self._handle_snapshot(snapshot)
        except Exception as exc:
            code = exc.code if isinstance(exc, DictationError) else DECODE_FAILED
            logger.warning("Session %d aborted while streaming: %s", session_id, exc)
            with self._lock:
                if not self._is_current(session_id, SessionState.LISTENING):
                    return
                self._safe_stop_source()
                self._injection.reset()
                self._coordinator.reset()
                self._finish_with_error(session_id, code, str(exc))

    def _is_current(self, session_id: int, state: SessionState) -> bool:
        return session_id == self._session_id and self._state == state

    def _handle_snapshot(self, snapshot: str) -> None:
        if self._on_partial:
            self._on_partial(snapshot)
        if self._settings.live_injection:
            self._injection.inject_diff(self._typed_text, snapshot)
            self._typed_text = snapshot

    def _decode_full(self, chunks: list[np.ndarray]) -> str:
        if not chunks:
            return ""
        samples = np.concatenate(chunks)
        if samples.size == 0:
            return ""
        return join_segments(self._coordinator.decode(samples))

    def _complete(self, session_id: int, final_text: str) -> None:
        if not final_text:
            self._injection.reset()
            self._transition(SessionState.EMPTY)
            self._schedule_revert(session_id)
            return
        if self._mode == SessionMode.BOOST and self._settings.live_injection:
            self._injection.inject_diff(self._typed_text, final_text)
        else:
            self._injection.inject_full(final_text)
        self._typed_text = final_text
        self.last_text = final_text
        self._transition(SessionState.DONE)
        logger.info("Session %d done: %d characters", session_id, len(final_text))
        self._schedule_revert(session_id)

    def _finish_with_error(self, session_id: int, code: str, message: str) -> None:
        self.last_error = (code, message)
        self._legacy_chunks = []
        self._transition(SessionState.ERROR)
        self._emit_error(code, message)
        self._schedule_revert(session_id)

    def _schedule_revert(self, session_id: int) -> None:
        self._cancel_revert_timer()
        interval = self._settings.display_interval_s
        if interval <= 0:
            self._revert_to_idle(session_id)
            return
        timer = threading.Timer(interval, self._revert_to_idle, args=(session_id,))
        timer.daemon = True
        self._revert_timer = timer
        timer.start()

    def _revert_to_idle(self, session_id: int) -> None:
        with self._lock:
            if session_id != self._session_id or self._state not in TERMINAL_STATES:
                return
            self._revert_timer = None
            self._typed_text = ""
            self._transition(SessionState.IDLE)

    def _cancel_revert_timer(self) -> None:
        if self._revert_timer is not None:
            self._revert_timer.cancel()
            self._revert_timer = None

    def _handle_injection_error(self, code: str, message: str) -> None:
        self.injection_error = (code, message)
        self._emit_error(code, message)

    def _emit_error(self, code: str, message: str) -> None:
        if self._on_error:
            self._on_error(code, message)

    def _set_status(self, message: str) -> None:
        self.status = message
        if self._on_status:
            self._on_status(message)

    def _safe_stop_source(self) -> None:
        try:
            self._source.stop()
        except Exception:
            logger.warning("Stopping audio source failed", exc_info=True)

    def _status_for(self, state: SessionState) -> str:
        if state == SessionState.LISTENING:
            return "Listening..."
        if state == SessionState.PROCESSING:
            return "Transcribing..."
        if state == SessionState.DONE:
            return f"Done: {self.last_text}"
        if state == SessionState.EMPTY:
            return "No speech detected"
        if state == SessionState.ERROR:
            reason = self.last_error[1] if self.last_error else ""
            return f"Error: {reason}"
        return "Idle"

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        logger.debug("State %s -> %s", from_state.value, to_state.value)
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
        self._set_status(self._status_for(to_state))
