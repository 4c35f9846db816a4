"""Incremental transcription over a growing audio buffer.

The coordinator owns the per-session sample buffer and decides when a
re-decode is worth its cost. Each decode runs on a single background worker
so audio ingestion never waits on inference.

Confirmation model:
    - Every decode receives the whole buffer plus ``clip_from_s`` set to the
      watermark, so audio that is already confirmed is skipped by the engine.
    - The last ``unconfirmed_reserve`` segments of a decode stay pending;
      boundaries near the tail move as more audio arrives.
    - Segments before the reserve are appended to the confirmed text and the
      watermark advances to the end of the last one.
    - Confirmed text only ever grows; pending text is replaced per decode.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Callable, Optional

import numpy as np

from errors import DecodeError
from interfaces import TranscriptionEngine
from models import SAMPLE_RATE, Segment

logger = logging.getLogger(__name__)


def join_segments(segments: list[Segment]) -> str:
    return " ".join(s.text.strip() for s in segments if s.text.strip())


class StreamingCoordinator:
    def __init__(
        self,
        engine: TranscriptionEngine,
        decode_interval_s: float = 1.0,
        min_unconfirmed_s: float = 1.0,
        unconfirmed_reserve: int = 2,
        executor: Optional[Executor] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if unconfirmed_reserve < 0:
            raise ValueError("unconfirmed_reserve must be >= 0")
        self._engine = engine
        self._decode_interval_s = decode_interval_s
        self._min_unconfirmed_s = min_unconfirmed_s
        self._reserve = unconfirmed_reserve
        self._executor = executor
        self._owns_executor = executor is None
        self._clock = clock

        self._lock = threading.Lock()
        self._chunks: list[np.ndarray] = []
        self._sample_count = 0
        self._watermark = 0.0
        self._confirmed: list[str] = []
        self._pending = ""
        self._last_decode_at = clock()
        self._in_flight: Optional[Future[list[Segment]]] = None
        self._in_flight_clip = 0.0
        self.decode_count = 0

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def watermark(self) -> float:
        return self._watermark

    @property
    def confirmed_text(self) -> str:
        return " ".join(self._confirmed)

    @property
    def pending_text(self) -> str:
        return self._pending

    @property
    def duration_s(self) -> float:
        return self._sample_count / SAMPLE_RATE

    @property
    def transcript(self) -> str:
        return f"{self.confirmed_text} {self._pending}".strip()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        with self._lock:
            self._reset_locked()

    def push_chunk(self, chunk: np.ndarray) -> list[str]:
        """Append a chunk and return the transcript snapshots it produced.

        At most one snapshot is returned: the result of a background decode
        that finished since the previous call. Raises DecodeError if that
        decode failed.
        """
        samples = np.asarray(chunk, dtype=np.float32).reshape(-1)
        with self._lock:
            if samples.size:
                self._chunks.append(samples.copy())
                self._sample_count += samples.size
            emitted = self._collect_locked(wait=False)
            if self._should_decode_locked():
                self._submit_locked()
                if not emitted:
                    emitted = self._collect_locked(wait=False)
            return emitted

    def finish(self) -> str:
        """Wait for any decode in flight, then decode the unconfirmed tail."""
        with self._lock:
            try:
                self._collect_locked(wait=True)
                if self._sample_count == 0:
                    return self.confirmed_text
                samples = self._snapshot_locked()
                clip_from = self._watermark
                confirmed = self.confirmed_text
                started = time.perf_counter()
                future = self._executor_locked().submit(self._run_engine, samples, clip_from)
                segments = future.result()
                logger.info(
                    "Final decode of %.2fs from %.2fs took %.2fs",
                    len(samples) / SAMPLE_RATE,
                    clip_from,
                    time.perf_counter() - started,
                )
                fresh = [s for s in segments if s.end_s > clip_from]
                return f"{confirmed} {join_segments(fresh)}".strip()
            finally:
                self._reset_locked()

    def decode(self, samples: np.ndarray, clip_from_s: float = 0.0) -> list[Segment]:
        """Run one blocking decode outside the streaming bookkeeping.

        The call goes through the decode worker, so it queues behind any
        background decode still running, including one dropped by ``reset()``.
        """
        audio = np.asarray(samples, dtype=np.float32).reshape(-1)
        with self._lock:
            executor = self._executor_locked()
        return executor.submit(self._run_engine, audio, clip_from_s).result()

    def reset(self) -> None:
        """Drop all session state.

        A decode in flight is left to finish unused; it still occupies the
        worker, so later decodes wait for it.
        """
        with self._lock:
            self._reset_locked()

    def close(self) -> None:
        self.reset()
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _reset_locked(self) -> None:
        self._chunks = []
        self._sample_count = 0
        self._watermark = 0.0
        self._confirmed = []
        self._pending = ""
        self._in_flight = None
        self._last_decode_at = self._clock()

    def _should_decode_locked(self) -> bool:
        if self._in_flight is not None:
            return False
        if self._clock() - self._last_decode_at < self._decode_interval_s:
            return False
        return self.duration_s - self._watermark >= self._min_unconfirmed_s

    def _snapshot_locked(self) -> np.ndarray:
        if len(self._chunks) > 1:
            self._chunks = [np.concatenate(self._chunks)]
        return self._chunks[0].copy()

    def _executor_locked(self) -> Executor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="decode")
        return self._executor

    def _submit_locked(self) -> None:
        executor = self._executor_locked()
        samples = self._snapshot_locked()
        clip_from = self._watermark
        self._last_decode_at = self._clock()
        self.decode_count += 1
        logger.debug(
            "Decode #%d: %.2fs buffered, clip from %.2fs",
            self.decode_count,
            len(samples) / SAMPLE_RATE,
            clip_from,
        )
        self._in_flight = executor.submit(self._run_engine, samples, clip_from)
        self._in_flight_clip = clip_from

    def _run_engine(self, samples: np.ndarray, clip_from: float) -> list[Segment]:
        try:
            return list(self._engine.transcribe(samples, clip_from))
        except DecodeError:
            raise
        except Exception as exc:
            raise DecodeError(str(exc), code=getattr(exc, "code", None)) from exc

    def _collect_locked(self, wait: bool) -> list[str]:
        future = self._in_flight
        if future is None:
            return []
        if not wait and not future.done():
            return []
        self._in_flight = None
        segments = future.result()
        self._apply_decode_locked(segments, self._in_flight_clip)
        return [self.transcript]

    def _apply_decode_locked(self, segments: list[Segment], clip_from: float) -> None:
        fresh = [s for s in segments if s.end_s > clip_from]
        if len(fresh) > self._reserve:
            cut = len(fresh) - self._reserve
            confirmed, pending = fresh[:cut], fresh[cut:]
            text = join_segments(confirmed)
            if text:
                self._confirmed.append(text)
            end = min(confirmed[-1].end_s, self.duration_s)
            if end > self._watermark:
                logger.debug("Watermark %.2fs -> %.2fs", self._watermark, end)
                self._watermark = end
        else:
            pending = fresh
        self._pending = join_segments(pending)
