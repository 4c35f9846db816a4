"""Word-level diffing of successive transcripts and serialized injection."""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional

from errors import INJECTION_FAILED, PERMISSION_DENIED, InjectionError, InjectionPermissionError
from interfaces import KeystrokeInjector
from models import EditOperation

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[str, str], None]


def compute_edit(old_text: str, new_text: str) -> EditOperation:
    """Prefix-only word diff between two transcripts.

    The common leading words stay; every word after them in ``old_text`` is
    deleted and the rest of ``new_text`` is inserted. Insert text starts with
    a space whenever it follows kept words.
    """
    old_words = old_text.split()
    new_words = new_text.split()
    common = 0
    limit = min(len(old_words), len(new_words))
    while common < limit and old_words[common] == new_words[common]:
        common += 1

    insert = " ".join(new_words[common:])
    if insert and common > 0:
        insert = " " + insert
    return EditOperation(
        delete_word_count=len(old_words) - common,
        insert_text=insert,
        keep_word_count=common,
    )


@dataclass
class _Job:
    generation: int
    epoch: int
    kind: str
    old_text: str = ""
    new_text: str = ""


class DiffInjectionEngine:
    """Applies edits through one worker so keystrokes never interleave.

    Jobs run strictly in submission order. ``reset()`` drops jobs that have not
    started; a job already running always completes. Diffs still waiting in
    the queue are coalesced into one edit towards the newest ``new_text``.

    Edits are computed against the words this engine has actually typed since
    the last ``reset()``, not the caller's ``old_text``, so a failed keystroke
    never makes a later edit delete text it did not type.
    """

    def __init__(
        self,
        injector: KeystrokeInjector,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._injector = injector
        self._on_error = on_error
        self._cond = threading.Condition()
        self._jobs: deque[_Job] = deque()
        self._generation = 0
        self._epoch = 0
        self._applied_words: list[str] = []
        self._busy = False
        self._closed = False
        self._worker: Optional[threading.Thread] = None
        self.last_error: Optional[tuple[str, str]] = None

    @property
    def applied_text(self) -> str:
        with self._cond:
            return " ".join(self._applied_words)

    def inject_full(self, text: str) -> None:
        if not text.strip():
            return
        if not self._has_permission():
            return
        with self._cond:
            self._cancel_pending_locked()
            self._enqueue_locked(_Job(self._generation, self._epoch, "full", new_text=text.strip()))

    def inject_diff(self, old_text: str, new_text: str) -> None:
        with self._cond:
            if not self._jobs and not self._busy and self._applied_words == new_text.split():
                return
            self._enqueue_locked(_Job(self._generation, self._epoch, "diff", old_text, new_text))

    def reset(self) -> None:
        """Start a new typing baseline and drop queued jobs."""
        with self._cond:
            self._cancel_pending_locked()
            self._epoch += 1
            self._applied_words = []

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Block until every queued job has run. Returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: not self._jobs and not self._busy, timeout)

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._jobs.clear()
            self._cond.notify_all()
        worker = self._worker
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout=1.0)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _has_permission(self) -> bool:
        try:
            allowed = self._injector.has_permission()
        except Exception:
            logger.warning("Permission check failed", exc_info=True)
            allowed = False
        if not allowed:
            logger.info("Skipping injection: accessibility permission not granted")
            self._report(PERMISSION_DENIED, "accessibility permission not granted")
        return allowed

    def _cancel_pending_locked(self) -> None:
        self._generation += 1
        if self._jobs:
            logger.debug("Cancelled %d queued injection(s)", len(self._jobs))
        self._jobs.clear()
        self._cond.notify_all()

    def _enqueue_locked(self, job: _Job) -> None:
        if self._closed:
            return
        self._jobs.append(job)
        if self._worker is None or not self._worker.is_alive():
            self._worker = threading.Thread(target=self._run, name="injector", daemon=True)
            self._worker.start()
        self._cond.notify_all()

    def _next_job_locked(self) -> _Job:
        job = self._jobs.popleft()
        if job.kind != "diff":
            return job
        while self._jobs and self._jobs[0].kind == "diff":
            newer = self._jobs.popleft()
            job = _Job(job.generation, job.epoch, "diff", job.old_text, newer.new_text)
        return job

    def _run(self) -> None:
        while True:
            with self._cond:
                self._cond.wait_for(lambda: self._jobs or self._closed)
                if self._closed:
                    return
                job = self._next_job_locked()
                if job.generation != self._generation:
                    self._cond.notify_all()
                    continue
                self._busy = True
            try:
                self._execute(job)
            finally:
                with self._cond:
                    self._busy = False
                    self._cond.notify_all()

    def _execute(self, job: _Job) -> None:
        with self._cond:
            if job.epoch != self._epoch:
                return
            words = list(self._applied_words)
        if job.kind == "full":
            op = EditOperation(delete_word_count=0, insert_text=job.new_text)
        else:
            if job.old_text.split() != words:
                logger.debug("Diffing from applied text instead of caller's previous text")
            op = compute_edit(" ".join(words), job.new_text)
        if op.is_noop:
            return
        try:
            if not self._injector.has_permission():
                raise InjectionPermissionError()
            self._apply(op, words)
        except InjectionError as exc:
            logger.warning("Injection failed (%s): %s", exc.code, exc)
            self._report(exc.code, str(exc))
        except Exception as exc:
            logger.exception("Injection failed")
            self._report(INJECTION_FAILED, str(exc))
        finally:
            with self._cond:
                if job.epoch == self._epoch:
                    self._applied_words = words

    def _apply(self, op: EditOperation, words: list[str]) -> None:
        """Send the keystrokes for ``op``, updating ``words`` after each one lands."""
        for _ in range(op.delete_word_count):
            self._injector.delete_word()
            words.pop()
        if op.delete_word_count and op.keep_word_count:
            # Word deletion leaves the separator behind; insert text brings its own.
            self._injector.delete_char()
        if op.insert_text:
            self._injector.paste_text(op.insert_text)
            words.extend(op.insert_text.split())

    def _report(self, code: str, message: str) -> None:
        self.last_error = (code, message)
        if self._on_error:
            self._on_error(code, message)
