"""Core data models for the app."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

SAMPLE_RATE = 16000


class SessionState(str, Enum):
    IDLE = "IDLE"
    LISTENING = "LISTENING"
    PROCESSING = "PROCESSING"
    DONE = "DONE"
    EMPTY = "EMPTY"
    ERROR = "ERROR"


TERMINAL_STATES = frozenset({SessionState.DONE, SessionState.EMPTY, SessionState.ERROR})


class SessionMode(str, Enum):
    LEGACY = "legacy"
    BOOST = "boost"


@dataclass(frozen=True)
class Segment:
    text: str
    start_s: float
    end_s: float


@dataclass(frozen=True)
class EditOperation:
    """Word-level edit turning one transcript into the next.

    ``keep_word_count`` words stay in place, ``delete_word_count`` trailing
    words are removed, then ``insert_text`` is pasted.
    """

    delete_word_count: int
    insert_text: str
    keep_word_count: int = 0

    @property
    def is_noop(self) -> bool:
        return self.delete_word_count == 0 and not self.insert_text

    def apply(self, words: list[str]) -> list[str]:
        kept = words[: len(words) - self.delete_word_count]
        return kept + self.insert_text.split()
