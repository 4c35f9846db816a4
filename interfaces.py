"""Protocol interfaces for the collaborators the core talks to."""

from __future__ import annotations

from typing import Iterator, Protocol, Sequence

import numpy as np

from models import Segment


class AudioChunkSource(Protocol):
    def start(self) -> Iterator[np.ndarray]: ...

    def stop(self) -> None: ...


class TranscriptionEngine(Protocol):
    def transcribe(self, samples: Sequence[float], clip_from_s: float) -> list[Segment]: ...


class KeystrokeInjector(Protocol):
    def has_permission(self) -> bool: ...

    def delete_word(self) -> None: ...

    def delete_char(self) -> None: ...

    def paste_text(self, text: str) -> None: ...


class ConfigStore(Protocol):
    def get_api_key(self) -> str: ...

    def set_api_key(self, key: str) -> None: ...

    def get_hotkey(self) -> str: ...

    def set_hotkey(self, hotkey: str) -> None: ...
