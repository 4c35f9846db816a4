"""Simple JSON-based config store."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "wisprwave"


@dataclass
class AppSettings:
    api_key: str = ""
    hotkey: str = "Key.alt_r"
    hotkey_mode: str = "hold"
    engine: str = "faster-whisper"
    model: str = "base"
    language: str = ""
    app_enabled: bool = True
    boost_mode: bool = True
    legacy_mode: bool = False
    live_injection: bool = True
    decode_interval_s: float = 1.0
    min_unconfirmed_s: float = 1.0
    unconfirmed_reserve: int = 2
    display_interval_s: float = 2.0

    @property
    def streaming(self) -> bool:
        return self.boost_mode and not self.legacy_mode


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or DEFAULT_CONFIG_DIR / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def get_api_key(self) -> str:
        return str(self._read_all().get("api_key", ""))

    def set_api_key(self, key: str) -> None:
        self.set_value("api_key", key)

    def get_hotkey(self) -> str:
        return str(self._read_all().get("hotkey", AppSettings.hotkey))

    def set_hotkey(self, hotkey: str) -> None:
        self.set_value("hotkey", hotkey)

    def set_value(self, name: str, value: Any) -> None:
        data = self._read_all()
        data[name] = value
        self._write_all(data)

    def load_settings(self) -> AppSettings:
        """Build settings from the file, ignoring unknown or mistyped keys."""
        data = self._read_all()
        settings = AppSettings()
        for field in fields(AppSettings):
            if field.name not in data:
                continue
            default = getattr(settings, field.name)
            value = data[field.name]
            try:
                if isinstance(default, bool):
                    if not isinstance(value, bool):
                        raise TypeError(f"expected bool, got {type(value).__name__}")
                    coerced: Any = value
                else:
                    coerced = type(default)(value)
            except (TypeError, ValueError):
                logger.warning("Ignoring invalid config value %s=%r", field.name, value)
                continue
            setattr(settings, field.name, coerced)
        if settings.unconfirmed_reserve < 0:
            logger.warning("Ignoring negative unconfirmed_reserve")
            settings.unconfirmed_reserve = AppSettings.unconfirmed_reserve
        return settings

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            logger.warning("Config file %s is unreadable, using defaults", self._path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
