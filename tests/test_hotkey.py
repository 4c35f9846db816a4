from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

import hotkey
from hotkey import HOLD, TOGGLE, GlobalHotkeyAdapter, normalize_key_name


class Recorder:
    def __init__(self) -> None:
        self.events: list[str] = []

    def press(self) -> None:
        self.events.append("press")

    def release(self) -> None:
        self.events.append("release")


def make_adapter(mode: str = HOLD):  # noqa: ANN201
    calls = Recorder()
    adapter = GlobalHotkeyAdapter(hotkey_name="Key.alt_r", mode=mode)
    with patch("hotkey.keyboard") as mock_keyboard:
        mock_keyboard.Listener.return_value = MagicMock()
        adapter.start(on_press=calls.press, on_release=calls.release)
    return adapter, calls


def test_hold_mode_reports_press_and_release() -> None:
    adapter, calls = make_adapter(HOLD)

    adapter.handle_press("Key.alt_r")
    adapter.handle_release("Key.alt_r")

    assert calls.events == ["press", "release"]


def test_autorepeat_presses_are_ignored() -> None:
    adapter, calls = make_adapter(HOLD)

    for _ in range(5):
        adapter.handle_press("Key.alt_r")
    adapter.handle_release("Key.alt_r")

    assert calls.events == ["press", "release"]


def test_other_keys_are_ignored() -> None:
    adapter, calls = make_adapter(HOLD)

    adapter.handle_press("Key.shift")
    adapter.handle_release("Key.shift")
    adapter.handle_release("Key.alt_r")

    assert calls.events == []


def test_toggle_mode_reports_only_releases() -> None:
    adapter, calls = make_adapter(TOGGLE)

    adapter.handle_press("Key.alt_r")
    adapter.handle_release("Key.alt_r")
    adapter.handle_press("Key.alt_r")
    adapter.handle_release("Key.alt_r")

    assert calls.events == ["release", "release"]


def test_unknown_mode_is_rejected() -> None:
    with pytest.raises(ValueError):
        GlobalHotkeyAdapter(mode="double-tap")


def test_start_without_pynput_raises(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(hotkey, "keyboard", None)
    adapter = GlobalHotkeyAdapter()
    with pytest.raises(RuntimeError):
        adapter.start(on_press=lambda: None, on_release=lambda: None)


def test_stop_stops_listener() -> None:
    adapter = GlobalHotkeyAdapter()
    with patch("hotkey.keyboard") as mock_keyboard:
        listener = MagicMock()
        mock_keyboard.Listener.return_value = listener
        adapter.start(on_press=lambda: None, on_release=lambda: None)
        adapter.stop()

    listener.start.assert_called_once()
    listener.stop.assert_called_once()


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Key.alt_r", "Key.alt_r"),
        ("key.F9", "Key.f9"),
        ("f9", "Key.f9"),
        ("'a'", "a"),
        ("A", "a"),
    ],
)
def test_normalize_key_name(raw: str, expected: str) -> None:
    assert normalize_key_name(raw) == expected


def test_configured_name_matches_pynput_char_key() -> None:
    calls = Recorder()
    adapter = GlobalHotkeyAdapter(hotkey_name="z")
    with patch("hotkey.keyboard"):
        adapter.start(on_press=calls.press, on_release=calls.release)

    adapter.handle_press("'z'")
    adapter.handle_release("'z'")

    assert calls.events == ["press", "release"]
