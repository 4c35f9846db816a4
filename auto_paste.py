"""Keystroke injector: clipboard paste plus word deletion via pynput."""

from __future__ import annotations

import logging
import sys
import time

from errors import InjectionError, InjectionPermissionError

try:
    import pyperclip
except Exception:  # pragma: no cover
    pyperclip = None  # type: ignore

try:
    from pynput.keyboard import Controller, Key
except Exception:  # pragma: no cover
    Controller = None  # type: ignore
    Key = None  # type: ignore

logger = logging.getLogger(__name__)


class ClipboardKeystrokeInjector:
    """Types text by pasting it, restoring the user's clipboard afterwards.

    Word deletion uses Option+Backspace on macOS and Ctrl+Backspace elsewhere,
    which removes the word but leaves the whitespace before it.
    """

    def __init__(
        self,
        restore_delay_s: float = 0.2,
        key_delay_s: float = 0.05,
        platform: str = sys.platform,
    ) -> None:
        self._restore_delay_s = restore_delay_s
        self._key_delay_s = key_delay_s
        self._platform = platform
        self._keyboard = None

    def has_permission(self) -> bool:
        if pyperclip is None or Controller is None or Key is None:
            return False
        try:
            self._controller()
        except Exception:
            logger.warning("Keyboard controller unavailable", exc_info=True)
            return False
        return True

    def delete_word(self) -> None:
        self._controller()
        self._tap(Key.backspace, self._word_modifier())
        time.sleep(self._key_delay_s)

    def delete_char(self) -> None:
        self._controller()
        self._tap(Key.backspace)
        time.sleep(self._key_delay_s)

    def paste_text(self, text: str) -> None:
        if not text:
            return
        if pyperclip is None:
            raise InjectionPermissionError("clipboard dependency missing")

        old_clip: str | None = None
        try:
            old_clip = pyperclip.paste()
            pyperclip.copy(text)
            self._controller()
            self._tap("v", self._paste_modifier())
            time.sleep(self._restore_delay_s)
        except InjectionError:
            raise
        except Exception as exc:
            raise InjectionError(f"paste failed: {exc}") from exc
        finally:
            if old_clip is not None:
                try:
                    pyperclip.copy(old_clip)
                except Exception:
                    logger.warning("Clipboard restore failed", exc_info=True)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _controller(self):  # noqa: ANN202
        if Controller is None or Key is None:
            raise InjectionPermissionError("keyboard dependency missing")
        if self._keyboard is None:
            self._keyboard = Controller()
        return self._keyboard

    def _paste_modifier(self):  # noqa: ANN202
        return Key.cmd if self._platform == "darwin" else Key.ctrl

    def _word_modifier(self):  # noqa: ANN202
        return Key.alt if self._platform == "darwin" else Key.ctrl

    def _tap(self, key: object, modifier: object | None = None) -> None:
        keyboard = self._controller()
        try:
            if modifier is not None:
                keyboard.press(modifier)
            try:
                keyboard.press(key)
                keyboard.release(key)
            finally:
                if modifier is not None:
                    keyboard.release(modifier)
        except Exception as exc:
            raise InjectionError(f"key event failed: {exc}") from exc
