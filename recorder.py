"""Microphone chunk source adapter."""

from __future__ import annotations

import logging
import threading
from queue import Empty, Full, Queue
from typing import Any, Iterator, Optional

import numpy as np

from errors import CaptureError
from resampler import resample

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)


def _iter_queue(audio_queue: Queue[np.ndarray | None]) -> Iterator[np.ndarray]:
    while True:
        chunk = audio_queue.get()
        if chunk is None:
            return
        yield chunk


class SoundDeviceChunkSource:
    """Captures at the device's native rate and yields mono 16 kHz chunks.

    ``start()`` returns an iterator that ends once ``stop()`` has pushed the
    end-of-stream sentinel; audio arriving after ``stop()`` is dropped.
    """

    def __init__(
        self,
        device: Optional[int | str] = None,
        chunk_ms: int = 100,
        queue_maxsize: int = 200,
    ) -> None:
        self.device = device
        self.chunk_ms = chunk_ms
        self.queue_maxsize = queue_maxsize
        self.native_rate = 0.0
        self.dropped_chunks = 0
        self._stream: Any = None
        self._running = False
        self._lock = threading.Lock()
        self._audio_queue: Optional[Queue[np.ndarray | None]] = None

    def start(self) -> Iterator[np.ndarray]:
        with self._lock:
            if self._running:
                raise CaptureError("capture already running")
            if sd is None:
                raise CaptureError("sounddevice is not installed")
            audio_queue: Queue[np.ndarray | None] = Queue(maxsize=self.queue_maxsize)
            self.dropped_chunks = 0
            try:
                info = sd.query_devices(self.device, kind="input")
                self.native_rate = float(info["default_samplerate"])
                channels = max(1, min(int(info["max_input_channels"]), 2))
                blocksize = int(self.native_rate * (self.chunk_ms / 1000.0))
                self._stream = sd.InputStream(
                    device=self.device,
                    samplerate=self.native_rate,
                    channels=channels,
                    dtype="float32",
                    blocksize=blocksize,
                    callback=self._on_audio,
                )
                self._audio_queue = audio_queue
                self._running = True
                self._stream.start()
            except Exception as exc:
                self._running = False
                self._stream = None
                raise CaptureError(f"could not open input stream: {exc}") from exc
            logger.info("Capture started at %.0f Hz, %d channel(s)", self.native_rate, channels)
            return _iter_queue(audio_queue)

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            stream, self._stream = self._stream, None
            if stream is not None:
                try:
                    stream.stop()
                    stream.close()
                except Exception:
                    logger.warning("Closing input stream failed", exc_info=True)
            self._emit_sentinel()
            if self.dropped_chunks:
                logger.warning("Dropped %d audio chunk(s) during capture", self.dropped_chunks)
            logger.info("Capture stopped")

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if not self._running or self._audio_queue is None:
            return
        if status:
            logger.debug("Input stream status: %s", status)
        chunk = resample(indata.copy(), self.native_rate)
        if chunk.size == 0:
            return
        try:
            self._audio_queue.put_nowait(chunk)
        except Full:
            self.dropped_chunks += 1

    def _emit_sentinel(self) -> None:
        if self._audio_queue is None:
            return
        # The consumer must always see the end of the stream, even when full.
        while True:
            try:
                self._audio_queue.put_nowait(None)
                return
            except Full:
                try:
                    self._audio_queue.get_nowait()
                except Empty:
                    pass
