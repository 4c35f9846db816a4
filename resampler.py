"""Decimating resampler from the device rate to the engine's mono 16 kHz."""

from __future__ import annotations

from typing import Any

import numpy as np

from models import SAMPLE_RATE


def decimation_step(native_rate: float) -> int:
    """Samples to advance per kept sample, 1 meaning no decimation."""
    if native_rate <= 0:
        return 1
    step = int(round(native_rate / SAMPLE_RATE))
    return max(step, 1)


def resample(native_chunk: Any, native_rate: float) -> np.ndarray:
    """Convert a native-rate chunk to mono float32 samples at 16 kHz.

    Multi-channel input is reduced to channel 0. Rates are decimated by
    keeping one sample every ``round(native_rate / 16000)``; rates that round
    below one step pass through undecimated and the engine has to cope with
    the mismatch.
    """
    try:
        data = np.asarray(native_chunk, dtype=np.float32)
    except (TypeError, ValueError):
        return np.zeros(0, dtype=np.float32)

    if data.ndim == 2:
        if data.shape[1] == 0:
            return np.zeros(0, dtype=np.float32)
        data = data[:, 0]
    elif data.ndim != 1:
        return np.zeros(0, dtype=np.float32)

    if data.size == 0:
        return np.zeros(0, dtype=np.float32)

    step = decimation_step(native_rate)
    if step > 1:
        data = data[::step]
    return np.ascontiguousarray(data, dtype=np.float32)
