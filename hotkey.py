"""Global hotkey adapter based on pynput."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore

logger = logging.getLogger(__name__)

HOLD = "hold"
TOGGLE = "toggle"


def normalize_key_name(name: str) -> str:
    """Canonical form shared by config values and pynput key objects.

    pynput prints special keys as ``Key.alt_r`` and character keys quoted
    (``'a'``). Config may spell either one without decoration.
    """
    name = name.strip().strip("'").strip()
    if not name:
        return ""
    if name.lower().startswith("key."):
        return "Key." + name[4:].lower()
    if len(name) == 1:
        return name.lower()
    return "Key." + name.lower()


class GlobalHotkeyAdapter:
    """Turns raw key events for one key into start/stop callbacks.

    In ``hold`` mode the first press fires ``on_press`` and the release fires
    ``on_release``. In ``toggle`` mode only releases are reported, so the
    caller flips the session on each one. Autorepeated presses while the key
    is held are ignored in both modes.
    """

    def __init__(self, hotkey_name: str = "Key.alt_r", mode: str = HOLD) -> None:
        if mode not in (HOLD, TOGGLE):
            raise ValueError(f"unknown hotkey mode: {mode}")
        self._hotkey_name = normalize_key_name(hotkey_name)
        self._mode = mode
        self._listener: Optional[object] = None
        self._pressed = False
        self._lock = threading.Lock()
        self._on_press: Callable[[], None] = lambda: None
        self._on_release: Callable[[], None] = lambda: None

    @property
    def mode(self) -> str:
        return self._mode

    def start(self, on_press: Callable[[], None], on_release: Callable[[], None]) -> None:
        if keyboard is None:
            raise RuntimeError("pynput is not installed")
        self._on_press = on_press
        self._on_release = on_release
        self._listener = keyboard.Listener(on_press=self.handle_press, on_release=self.handle_release)
        self._listener.start()
        logger.info("Hotkey %s registered (%s mode)", self._hotkey_name, self._mode)

    def stop(self) -> None:
        listener = self._listener
        if listener is not None:
            listener.stop()
            self._listener = None

    def handle_press(self, key: object) -> None:
        if normalize_key_name(str(key)) != self._hotkey_name:
            return
        with self._lock:
            if self._pressed:
                return
            self._pressed = True
        if self._mode == HOLD:
            self._on_press()

    def handle_release(self, key: object) -> None:
        if normalize_key_name(str(key)) != self._hotkey_name:
            return
        with self._lock:
            if not self._pressed:
                return
            self._pressed = False
        self._on_release()
