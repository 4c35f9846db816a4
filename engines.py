"""Transcription engines returning timed segments.

Both engines accept the whole session buffer plus ``clip_from_s`` and only
transcribe audio after that offset. Segment times are absolute within the
buffer.

``FasterWhisperEngine`` runs Whisper locally and maps ``clip_from_s`` to
faster-whisper's ``clip_timestamps``. ``DashscopeEngine`` sends the clipped
tail to qwen3-asr-flash, which has no timestamps, so the reply comes back as
one segment spanning the tail.
"""

from __future__ import annotations

import base64
import io
import logging
import os
import threading
import time
import wave
from typing import Optional, Sequence

import numpy as np

from errors import ASR_PROTOCOL_ERROR, AUTH_FAILED, NETWORK_ERROR, EngineError
from models import SAMPLE_RATE, Segment

try:
    from faster_whisper import WhisperModel
except Exception:  # pragma: no cover
    WhisperModel = None  # type: ignore

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

logger = logging.getLogger(__name__)


def _float_to_pcm16(samples: np.ndarray) -> bytes:
    clipped = np.clip(samples, -1.0, 1.0)
    return (clipped * 32767.0).astype("<i2").tobytes()


def _pcm_to_wav_base64(
    pcm: bytes,
    sample_rate: int = SAMPLE_RATE,
    channels: int = 1,
    sample_width: int = 2,
) -> str:
    """Convert raw PCM bytes to a base64-encoded WAV string."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return base64.b64encode(buf.getvalue()).decode("ascii")


class FasterWhisperEngine:
    def __init__(
        self,
        model_size: str = "base",
        device: str = "auto",
        compute_type: str = "default",
        language: Optional[str] = None,
        beam_size: int = 5,
    ) -> None:
        self.model_size = model_size
        self.device = device
        self.compute_type = compute_type
        self.language = language
        self.beam_size = beam_size
        self._model = None
        self._load_lock = threading.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    def load(self) -> None:
        with self._load_lock:
            if self._model is not None:
                return
            if WhisperModel is None:
                raise EngineError("faster-whisper is not installed")
            logger.info("Loading faster-whisper model: %s", self.model_size)
            try:
                self._model = WhisperModel(
                    self.model_size,
                    device=self.device,
                    compute_type=self.compute_type,
                )
            except Exception as exc:
                raise EngineError(f"model load failed: {exc}") from exc
            logger.info("Model loaded")

    def transcribe(self, samples: Sequence[float], clip_from_s: float) -> list[Segment]:
        self.load()
        audio = np.asarray(samples, dtype=np.float32)
        if audio.size == 0 or clip_from_s >= audio.size / SAMPLE_RATE:
            return []
        clip = [round(clip_from_s, 3)] if clip_from_s > 0 else "0"
        try:
            segments, _info = self._model.transcribe(
                audio,
                language=self.language,
                beam_size=self.beam_size,
                clip_timestamps=clip,
                condition_on_previous_text=False,
            )
            # The segment generator decodes lazily; failures surface here.
            return [
                Segment(text=seg.text.strip(), start_s=seg.start, end_s=seg.end)
                for seg in segments
                if seg.text.strip()
            ]
        except Exception as exc:
            raise EngineError(f"decode failed: {exc}") from exc


class DashscopeEngine:
    def __init__(
        self,
        api_key: str,
        model: str = "qwen3-asr-flash",
        request_timeout_s: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._request_timeout_s = request_timeout_s

    @property
    def is_loaded(self) -> bool:
        return dashscope is not None and bool(self._api_key or os.getenv("DASHSCOPE_API_KEY"))

    def transcribe(self, samples: Sequence[float], clip_from_s: float) -> list[Segment]:
        audio = np.asarray(samples, dtype=np.float32)
        start = int(max(clip_from_s, 0.0) * SAMPLE_RATE)
        tail = audio[start:]
        if tail.size == 0:
            return []
        if dashscope is None:
            raise EngineError("dashscope is not installed", code=ASR_PROTOCOL_ERROR)
        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            raise EngineError("No API key configured", code=AUTH_FAILED)

        wav_b64 = _pcm_to_wav_base64(_float_to_pcm16(tail))
        started = time.perf_counter()
        try:
            response = dashscope.MultiModalConversation.call(
                api_key=api_key,
                model=self._model,
                messages=[
                    {"role": "system", "content": [{"text": ""}]},
                    {"role": "user", "content": [{"audio": f"data:audio/wav;base64,{wav_b64}"}]},
                ],
                result_format="message",
                asr_options={"enable_itn": False},
                stream=True,
                timeout=self._request_timeout_s,
            )
            latest_text = ""
            for chunk in response:
                text = self._extract_text(chunk)
                if text:
                    latest_text = text
        except Exception as exc:
            raise self._to_engine_error(exc) from exc

        logger.debug("DashScope decode took %.2fs", time.perf_counter() - started)
        latest_text = latest_text.strip()
        if not latest_text:
            return []
        end_s = clip_from_s + tail.size / SAMPLE_RATE
        return [Segment(text=latest_text, start_s=clip_from_s, end_s=end_s)]

    def _extract_text(self, chunk: object) -> str:
        """Pull text from a dashscope streaming chunk dict."""
        if isinstance(chunk, dict):
            output = chunk.get("output") or {}
            choices = output.get("choices") or []
            if not choices:
                return ""
            message = choices[0].get("message") or {}
            content = message.get("content") or []
            if not content:
                return ""
            value = content[0]
            if isinstance(value, dict):
                return str(value.get("text", ""))
        return ""

    def _to_engine_error(self, exc: Exception) -> EngineError:
        """Map an SDK/network exception to an EngineError with a code."""
        message = str(exc)
        low = message.lower()
        if "401" in low or "auth" in low or "api key" in low:
            code = AUTH_FAILED
        elif "timeout" in low or "network" in low or "connection" in low:
            code = NETWORK_ERROR
        else:
            code = ASR_PROTOCOL_ERROR
        return EngineError(message, code=code)
