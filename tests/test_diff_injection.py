from __future__ import annotations

import threading

import pytest

from diff_injection import DiffInjectionEngine, compute_edit
from errors import INJECTION_FAILED, PERMISSION_DENIED, InjectionError, InjectionPermissionError


class FakeInjector:
    """Applies keystrokes to an in-memory text buffer."""

    def __init__(self, text: str = "", permitted: bool = True) -> None:
        self.text = text
        self.permitted = permitted
        self.ops: list[tuple[str, str]] = []

    def has_permission(self) -> bool:
        return self.permitted

    def delete_word(self) -> None:
        self.ops.append(("delete_word", ""))
        stripped = self.text.rstrip(" ")
        cut = stripped.rfind(" ")
        self.text = stripped[: cut + 1] if cut >= 0 else ""

    def delete_char(self) -> None:
        self.ops.append(("delete_char", ""))
        self.text = self.text[:-1]

    def paste_text(self, text: str) -> None:
        self.ops.append(("paste", text))
        self.text += text


class GatedInjector(FakeInjector):
    """Blocks inside the first paste until released."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def paste_text(self, text: str) -> None:
        if not self.entered.is_set():
            self.entered.set()
            assert self.release.wait(timeout=2.0)
        super().paste_text(text)


# ---------------------------------------------------------------
# compute_edit
# ---------------------------------------------------------------

def test_pure_append_adds_leading_space() -> None:
    op = compute_edit("the quick brown", "the quick brown fox")
    assert op.delete_word_count == 0
    assert op.insert_text == " fox"


def test_tail_revision_deletes_and_reinserts() -> None:
    op = compute_edit("the quick brown", "the quick red fox")
    assert op.delete_word_count == 1
    assert op.insert_text == " red fox"
    assert op.keep_word_count == 2


def test_first_text_has_no_leading_space() -> None:
    op = compute_edit("", "hello world")
    assert op.delete_word_count == 0
    assert op.insert_text == "hello world"


def test_complete_replacement() -> None:
    op = compute_edit("hello there", "goodbye")
    assert op.delete_word_count == 2
    assert op.insert_text == "goodbye"
    assert op.keep_word_count == 0


def test_shrinking_transcript_only_deletes() -> None:
    op = compute_edit("one two three", "one two")
    assert op.delete_word_count == 1
    assert op.insert_text == ""


def test_whitespace_differences_are_ignored() -> None:
    op = compute_edit("  hello   world ", "hello world")
    assert op.is_noop


@pytest.mark.parametrize(
    ("old", "new"),
    [
        ("the quick brown", "the quick brown fox"),
        ("the quick brown", "the quick red fox"),
        ("", "hello"),
        ("hello", ""),
        ("a b c d", "a x c d"),
        ("same words", "same words"),
    ],
)
def test_applying_edit_to_old_words_yields_new_words(old: str, new: str) -> None:
    op = compute_edit(old, new)
    assert op.apply(old.split()) == new.split()


# ---------------------------------------------------------------
# DiffInjectionEngine
# ---------------------------------------------------------------

def test_diff_sequence_produces_target_text() -> None:
    injector = FakeInjector()
    engine = DiffInjectionEngine(injector)

    engine.inject_diff("", "the quick brown")
    engine.inject_diff("the quick brown", "the quick red fox")
    engine.inject_diff("the quick red fox", "the quick red fox jumps")
    assert engine.flush(timeout=2.0)

    assert injector.text == "the quick red fox jumps"
    engine.close()


def test_revision_sends_word_delete_then_separator_then_paste() -> None:
    injector = FakeInjector()
    engine = DiffInjectionEngine(injector)
    engine.inject_diff("", "the quick brown")
    assert engine.flush(timeout=2.0)
    injector.ops.clear()

    engine.inject_diff("the quick brown", "the quick red fox")
    assert engine.flush(timeout=2.0)

    assert injector.ops == [("delete_word", ""), ("delete_char", ""), ("paste", " red fox")]
    assert injector.text == "the quick red fox"
    engine.close()


def test_identical_transcripts_send_nothing() -> None:
    injector = FakeInjector()
    engine = DiffInjectionEngine(injector)
    engine.inject_diff("", "hello world")
    assert engine.flush(timeout=2.0)
    injector.ops.clear()

    engine.inject_diff("hello world", "hello  world")
    assert engine.flush(timeout=2.0)

    assert injector.ops == []
    engine.close()


def test_inject_full_pastes_trimmed_text() -> None:
    injector = FakeInjector()
    engine = DiffInjectionEngine(injector)

    engine.inject_full("  hello world \n")
    assert engine.flush(timeout=2.0)

    assert injector.ops == [("paste", "hello world")]
    engine.close()


def test_inject_full_skips_empty_text() -> None:
    injector = FakeInjector()
    engine = DiffInjectionEngine(injector)

    engine.inject_full("   ")
    assert engine.flush(timeout=2.0)

    assert injector.ops == []
    engine.close()


def test_inject_full_without_permission_reports_and_skips() -> None:
    injector = FakeInjector(permitted=False)
    errors: list[tuple[str, str]] = []
    engine = DiffInjectionEngine(injector, on_error=lambda c, m: errors.append((c, m)))

    engine.inject_full("hello")
    assert engine.flush(timeout=2.0)

    assert injector.ops == []
    assert errors and errors[0][0] == PERMISSION_DENIED
    engine.close()


def test_reset_cancels_queued_but_not_in_flight() -> None:
    injector = GatedInjector()
    engine = DiffInjectionEngine(injector)

    engine.inject_diff("", "first words")
    assert injector.entered.wait(timeout=2.0)
    engine.inject_diff("first words", "first words second")
    engine.reset()
    injector.release.set()
    assert engine.flush(timeout=2.0)

    assert injector.ops == [("paste", "first words")]
    engine.close()


def test_queued_diffs_are_coalesced() -> None:
    injector = GatedInjector()
    engine = DiffInjectionEngine(injector)

    engine.inject_diff("", "a")
    assert injector.entered.wait(timeout=2.0)
    engine.inject_diff("a", "a b")
    engine.inject_diff("a b", "a c")
    engine.inject_diff("a c", "a c d")
    injector.release.set()
    assert engine.flush(timeout=2.0)

    assert injector.ops == [("paste", "a"), ("paste", " c d")]
    assert injector.text == "a c d"
    engine.close()


def test_inject_full_drops_queued_diffs() -> None:
    injector = GatedInjector()
    engine = DiffInjectionEngine(injector)

    engine.inject_diff("", "draft")
    assert injector.entered.wait(timeout=2.0)
    engine.inject_diff("draft", "draft two")
    engine.inject_full("final")
    injector.release.set()
    assert engine.flush(timeout=2.0)

    assert injector.ops == [("paste", "draft"), ("paste", "final")]
    engine.close()


class FailingInjector(FakeInjector):
    def __init__(self, exc: Exception) -> None:
        super().__init__()
        self.exc = exc
        self.failures = 0

    def paste_text(self, text: str) -> None:
        if self.failures == 0:
            self.failures += 1
            raise self.exc
        super().paste_text(text)


def test_injector_failure_is_reported_and_worker_keeps_running() -> None:
    injector = FailingInjector(InjectionError("target went away"))
    errors: list[tuple[str, str]] = []
    engine = DiffInjectionEngine(injector, on_error=lambda c, m: errors.append((c, m)))

    engine.inject_full("lost")
    assert engine.flush(timeout=2.0)
    engine.inject_full("kept")
    assert engine.flush(timeout=2.0)

    assert errors == [(INJECTION_FAILED, "target went away")]
    assert injector.ops == [("paste", "kept")]
    assert engine.last_error == (INJECTION_FAILED, "target went away")
    engine.close()


def test_permission_failure_is_distinct_from_transient_failure() -> None:
    injector = FailingInjector(InjectionPermissionError())
    errors: list[tuple[str, str]] = []
    engine = DiffInjectionEngine(injector, on_error=lambda c, m: errors.append((c, m)))

    engine.inject_diff("", "hello")
    assert engine.flush(timeout=2.0)

    assert errors[0][0] == PERMISSION_DENIED


def test_unexpected_injector_exception_is_reported() -> None:
    injector = FailingInjector(OSError("display gone"))
    errors: list[tuple[str, str]] = []
    engine = DiffInjectionEngine(injector, on_error=lambda c, m: errors.append((c, m)))

    engine.inject_full("text")
    assert engine.flush(timeout=2.0)

    assert errors == [(INJECTION_FAILED, "display gone")]
    engine.close()


class FlakyPasteInjector(FakeInjector):
    """Fails the given paste attempts (1-based) without typing anything."""

    def __init__(self, text: str, fail_on: set[int]) -> None:
        super().__init__(text=text)
        self.fail_on = fail_on
        self.pastes = 0

    def paste_text(self, text: str) -> None:
        self.pastes += 1
        if self.pastes in self.fail_on:
            raise InjectionError("paste rejected")
        super().paste_text(text)


def test_failed_paste_does_not_shift_later_edits() -> None:
    injector = FlakyPasteInjector("Dear Bob, ", fail_on={2})
    errors: list[tuple[str, str]] = []
    engine = DiffInjectionEngine(injector, on_error=lambda c, m: errors.append((c, m)))

    engine.inject_diff("", "hello")
    assert engine.flush(timeout=2.0)
    engine.inject_diff("hello", "hello world")
    assert engine.flush(timeout=2.0)
    assert engine.applied_text == "hello"
    engine.inject_diff("hello world", "hello there")
    assert engine.flush(timeout=2.0)

    assert injector.text == "Dear Bob, hello there"
    assert errors == [(INJECTION_FAILED, "paste rejected")]
    engine.close()


def test_unchanged_snapshot_retypes_text_lost_to_failure() -> None:
    injector = FlakyPasteInjector("", fail_on={2})
    engine = DiffInjectionEngine(injector)

    engine.inject_diff("", "one")
    assert engine.flush(timeout=2.0)
    engine.inject_diff("one", "one two")
    assert engine.flush(timeout=2.0)
    engine.inject_diff("one two", "one two")
    assert engine.flush(timeout=2.0)

    assert injector.text == "one two"
    engine.close()


def test_failed_delete_keeps_remaining_words_in_baseline() -> None:
    class FailingDelete(FakeInjector):
        def delete_word(self) -> None:
            raise InjectionError("key rejected")

    injector = FailingDelete()
    engine = DiffInjectionEngine(injector)

    engine.inject_diff("", "alpha beta")
    assert engine.flush(timeout=2.0)
    engine.inject_diff("alpha beta", "alpha gamma")
    assert engine.flush(timeout=2.0)

    assert engine.applied_text == "alpha beta"
    assert injector.text == "alpha beta"
    engine.close()


def test_reset_starts_a_new_baseline() -> None:
    injector = FakeInjector()
    engine = DiffInjectionEngine(injector)

    engine.inject_diff("", "first session")
    assert engine.flush(timeout=2.0)
    engine.reset()
    assert engine.applied_text == ""

    engine.inject_diff("", "second")
    assert engine.flush(timeout=2.0)

    assert injector.ops == [("paste", "first session"), ("paste", "second")]
    engine.close()
