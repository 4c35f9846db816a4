"""Application entrypoint."""

from __future__ import annotations

import logging
import sys
import threading
from pathlib import Path
from typing import Callable

from auto_paste import ClipboardKeystrokeInjector
from config import AppSettings, JsonConfigStore
from engines import DashscopeEngine, FasterWhisperEngine
from errors import APP_DISABLED, ERROR_MESSAGES, MODEL_NOT_LOADED
from hotkey import TOGGLE, GlobalHotkeyAdapter
from models import TERMINAL_STATES, SessionState
from overlay import OverlayWindow
from recorder import SoundDeviceChunkSource
from session_controller import SessionController

try:
    from PySide6.QtCore import QObject, QSize, Signal
    from PySide6.QtGui import QAction, QBrush, QColor, QIcon, QPainter, QPixmap
    from PySide6.QtWidgets import QApplication, QInputDialog, QMenu, QMessageBox, QSystemTrayIcon
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger(__name__)

ICON_COLORS = {
    SessionState.IDLE.value: "#888888",
    SessionState.LISTENING.value: "#FF4444",
    SessionState.PROCESSING.value: "#F5C542",
    SessionState.DONE.value: "#44BB66",
    SessionState.EMPTY.value: "#888888",
    SessionState.ERROR.value: "#FF8800",
}

DISPLAY_STATES = {state.value for state in TERMINAL_STATES}


def setup_logging(log_file: Path, level: int = logging.INFO) -> None:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(log_file, encoding="utf-8"),
            logging.StreamHandler(sys.stdout),
        ],
    )


def build_engine(settings: AppSettings) -> FasterWhisperEngine | DashscopeEngine:
    if settings.engine == "dashscope":
        return DashscopeEngine(api_key=settings.api_key)
    return FasterWhisperEngine(model_size=settings.model, language=settings.language or None)


def _create_icon(color: str, size: int = 22) -> QIcon:
    """Generate a simple circular tray icon with the given color."""
    pixmap = QPixmap(QSize(size, size))
    pixmap.fill(QColor(0, 0, 0, 0))
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing, True)
    painter.setBrush(QBrush(QColor(color)))
    painter.setPen(QColor(color))
    painter.drawEllipse(2, 2, size - 4, size - 4)
    painter.end()
    return QIcon(pixmap)


class UIBridge(QObject):
    partial_signal = Signal(str)
    error_signal = Signal(str)
    status_signal = Signal(str)
    state_signal = Signal(str, str)  # from_state, to_state


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.app.setQuitOnLastWindowClosed(False)
        self.config_store = JsonConfigStore()
        setup_logging(self.config_store.path.parent / "wisprwave.log")
        self.settings = self.config_store.load_settings()

        self.overlay = OverlayWindow()
        self.ui = UIBridge()
        self.ui.partial_signal.connect(self.overlay.show_transcript)
        self.ui.error_signal.connect(self.overlay.show_error)
        self.ui.status_signal.connect(self._on_status_ui)
        self.ui.state_signal.connect(self._on_state_change_ui)

        self.engine = build_engine(self.settings)
        self.controller = SessionController(
            source=SoundDeviceChunkSource(),
            engine=self.engine,
            injector=ClipboardKeystrokeInjector(),
            settings=self.settings,
            is_model_loaded=lambda: self.engine.is_loaded,
            on_state_change=lambda f, t: self.ui.state_signal.emit(f.value, t.value),
            on_partial=self.ui.partial_signal.emit,
            on_error=self._on_error,
            on_status=self.ui.status_signal.emit,
        )
        self.hotkey = GlobalHotkeyAdapter(
            hotkey_name=self.settings.hotkey,
            mode=self.settings.hotkey_mode,
        )

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(_create_icon(ICON_COLORS[SessionState.IDLE.value]))
        self.tray.setToolTip("WisprWave — Idle")
        self._setup_menu()
        self.tray.show()

    def _setup_menu(self) -> None:
        menu = QMenu()

        self._add_toggle(menu, "Enabled", "app_enabled")
        self._add_toggle(menu, "Boost Mode (streaming)", "boost_mode")
        self._add_toggle(menu, "Legacy Mode", "legacy_mode")
        self._add_toggle(menu, "Type While Speaking", "live_injection")
        menu.addSeparator()
        self._add_action(menu, "Set DashScope API Key", self._set_api_key)
        self._add_action(menu, "Set Hotkey", self._set_hotkey)
        menu.addSeparator()
        self._add_action(menu, "Quit", self.quit)

        self.tray.setContextMenu(menu)
        self._menu = menu

    def _add_action(self, menu: QMenu, label: str, slot: Callable[[], None]) -> None:
        action = QAction(label, menu)
        action.triggered.connect(slot)
        menu.addAction(action)

    def _add_toggle(self, menu: QMenu, label: str, name: str) -> None:
        action = QAction(label, menu)
        action.setCheckable(True)
        action.setChecked(bool(getattr(self.settings, name)))

        def _toggled(checked: bool) -> None:
            setattr(self.settings, name, checked)
            self.config_store.set_value(name, checked)
            logger.info("Setting %s = %s", name, checked)

        action.toggled.connect(_toggled)
        menu.addAction(action)

    def _set_api_key(self) -> None:
        self._prompt_setting("API Key", "DashScope API Key", self.config_store.set_api_key)

    def _set_hotkey(self) -> None:
        self._prompt_setting(
            "Hotkey", "Use pynput key format, e.g. Key.alt_r", self.config_store.set_hotkey
        )

    def _prompt_setting(self, title: str, label: str, save: Callable[[str], None]) -> None:
        value, ok = QInputDialog.getText(None, title, label)
        if not ok or not value.strip():
            return
        save(value.strip())
        QMessageBox.information(None, "Saved", f"{title} saved. Restart app to apply.")

    # ------------------------------------------------------------------
    # Callbacks (called from worker threads → emit signals for UI thread)
    # ------------------------------------------------------------------

    def _on_error(self, code: str, message: str) -> None:
        text = ERROR_MESSAGES.get(code, code)
        self.ui.error_signal.emit(f"{text} ({message})" if message else text)

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_status_ui(self, status: str) -> None:
        self.tray.setToolTip(f"WisprWave — {status}")
        if status in (ERROR_MESSAGES[APP_DISABLED], ERROR_MESSAGES[MODEL_NOT_LOADED]):
            self.overlay.show_error(status)

    def _on_state_change_ui(self, from_state: str, to_state: str) -> None:
        self.tray.setIcon(_create_icon(ICON_COLORS.get(to_state, "#888888")))
        if to_state == SessionState.LISTENING.value:
            self.overlay.show_transcript("")
            self.overlay.show_status("🎙️ Listening...")
        elif to_state == SessionState.PROCESSING.value:
            self.overlay.show_status("Transcribing...")
        elif to_state == SessionState.DONE.value:
            self.overlay.show_status("Done")
            self.overlay.show_transcript(self.controller.last_text)
            self.overlay.hide_with_delay(self._linger_ms())
        elif to_state == SessionState.EMPTY.value:
            self.overlay.show_status("No speech detected")
            self.overlay.hide_with_delay(self._linger_ms())
        elif to_state == SessionState.IDLE.value and from_state not in DISPLAY_STATES:
            # cancelled mid-session
            self.overlay.hide_with_delay(0)

    def _linger_ms(self) -> int:
        return int(self.settings.display_interval_s * 1000)

    # ------------------------------------------------------------------
    # Hotkey handlers
    # ------------------------------------------------------------------

    def _on_hotkey_press(self) -> None:
        self.controller.start_session()

    def _on_hotkey_release(self) -> None:
        # stop_session waits for the final decode; keep it off the listener thread
        threading.Thread(target=self.controller.stop_session, daemon=True).start()

    def _on_hotkey_toggle(self) -> None:
        threading.Thread(target=self.controller.toggle, daemon=True).start()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _load_model(self) -> None:
        load = getattr(self.engine, "load", None)
        if load is None:
            return
        try:
            load()
        except Exception as exc:
            logger.exception("Model load failed")
            self.ui.error_signal.emit(f"Model load failed: {exc}")
            return
        self.ui.status_signal.emit("Idle")

    def run(self) -> int:
        threading.Thread(target=self._load_model, name="model-load", daemon=True).start()
        try:
            if self.hotkey.mode == TOGGLE:
                self.hotkey.start(on_press=lambda: None, on_release=self._on_hotkey_toggle)
            else:
                self.hotkey.start(
                    on_press=self._on_hotkey_press,
                    on_release=self._on_hotkey_release,
                )
        except Exception as exc:
            logger.exception("Hotkey registration failed")
            self.overlay.show_error(f"Hotkey disabled: {exc}")
        return self.app.exec()

    def quit(self) -> None:
        self.hotkey.stop()
        self.controller.close()
        self.app.quit()


def main() -> int:
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
