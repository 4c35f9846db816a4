"""Floating HUD: a status line above the live transcript."""

from __future__ import annotations

try:
    from PySide6.QtCore import Qt, QTimer
    from PySide6.QtGui import QGuiApplication
    from PySide6.QtWidgets import QFrame, QLabel, QVBoxLayout
except Exception:  # pragma: no cover
    Qt = None  # type: ignore
    QTimer = None  # type: ignore
    QGuiApplication = None  # type: ignore
    QFrame = object  # type: ignore
    QLabel = object  # type: ignore
    QVBoxLayout = object  # type: ignore

PANEL_STYLE = "QFrame#hud { background: rgba(20,20,20,200); border-radius: 12px; }"
STATUS_STYLE = "color: #DDDDDD; font-size: 13px;"
ERROR_STYLE = "color: #FF6B6B; font-size: 13px;"
TRANSCRIPT_STYLE = "color: #B8F5C8; font-size: 16px;"
BOTTOM_MARGIN = 80


class OverlayWindow(QFrame):
    def __init__(self, width: int = 560) -> None:
        if Qt is None:
            raise RuntimeError("PySide6 is not installed")
        super().__init__(None, Qt.WindowStaysOnTopHint | Qt.FramelessWindowHint | Qt.Tool)
        self.setObjectName("hud")
        self.setStyleSheet(PANEL_STYLE)
        self.setAttribute(Qt.WA_TranslucentBackground, True)
        self.setAttribute(Qt.WA_ShowWithoutActivating, True)
        self.setFixedWidth(width)

        self._status = QLabel("")
        self._status.setStyleSheet(STATUS_STYLE)
        self._transcript = QLabel("")
        self._transcript.setWordWrap(True)
        self._transcript.setStyleSheet(TRANSCRIPT_STYLE)
        self._transcript.hide()

        column = QVBoxLayout(self)
        column.setContentsMargins(16, 12, 16, 12)
        column.setSpacing(6)
        column.addWidget(self._status)
        column.addWidget(self._transcript)

        self._hide_timer = QTimer(self)
        self._hide_timer.setSingleShot(True)
        self._hide_timer.timeout.connect(self._dismiss)

    def show_status(self, text: str) -> None:
        """Replace the status line; the transcript line is left as is."""
        self._status.setStyleSheet(STATUS_STYLE)
        self._status.setText(text)
        self._present()

    def show_transcript(self, text: str) -> None:
        self._transcript.setText(text)
        self._transcript.setVisible(bool(text))
        self._present()

    def show_error(self, text: str, hide_after_ms: int = 2000) -> None:
        self._status.setStyleSheet(ERROR_STYLE)
        self._status.setText(f"⚠️ {text}")
        self._present()
        self.hide_with_delay(hide_after_ms)

    def hide_with_delay(self, delay_ms: int = 400) -> None:
        self._hide_timer.start(max(0, delay_ms))

    def _present(self) -> None:
        self._hide_timer.stop()
        self.adjustSize()
        self._anchor_bottom_center()
        self.show()

    def _dismiss(self) -> None:
        self.hide()
        self._transcript.clear()
        self._transcript.hide()

    def _anchor_bottom_center(self) -> None:
        screen = QGuiApplication.primaryScreen() if QGuiApplication else None
        if screen is None:
            return
        area = screen.availableGeometry()
        self.move(
            area.center().x() - self.width() // 2,
            area.bottom() - self.height() - BOTTOM_MARGIN,
        )
