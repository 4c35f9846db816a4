"""Shared error codes, user-facing messages and exception types."""

from __future__ import annotations

CAPTURE_FAILED = "CAPTURE_FAILED"
DECODE_FAILED = "DECODE_FAILED"
PERMISSION_DENIED = "PERMISSION_DENIED"
INJECTION_FAILED = "INJECTION_FAILED"
NETWORK_ERROR = "NETWORK_ERROR"
AUTH_FAILED = "AUTH_FAILED"
ASR_PROTOCOL_ERROR = "ASR_PROTOCOL_ERROR"
APP_DISABLED = "APP_DISABLED"
MODEL_NOT_LOADED = "MODEL_NOT_LOADED"
SESSION_CANCELLED = "SESSION_CANCELLED"

ERROR_MESSAGES = {
    CAPTURE_FAILED: "Microphone could not be started.",
    DECODE_FAILED: "Transcription failed.",
    PERMISSION_DENIED: "Accessibility permission is required to type text.",
    INJECTION_FAILED: "Text could not be typed into the active app.",
    NETWORK_ERROR: "Network failed, please retry.",
    AUTH_FAILED: "API key is invalid.",
    ASR_PROTOCOL_ERROR: "ASR response format is invalid.",
    APP_DISABLED: "App Disabled",
    MODEL_NOT_LOADED: "Model Not Loaded",
    SESSION_CANCELLED: "Dictation was cancelled.",
}


class DictationError(Exception):
    code = ASR_PROTOCOL_ERROR

    def __init__(self, message: str = "", code: str | None = None) -> None:
        super().__init__(message or ERROR_MESSAGES.get(code or self.code, ""))
        if code is not None:
            self.code = code


class CaptureError(DictationError):
    code = CAPTURE_FAILED


class EngineError(DictationError):
    code = DECODE_FAILED


class DecodeError(DictationError):
    code = DECODE_FAILED


class InjectionError(DictationError):
    code = INJECTION_FAILED


class InjectionPermissionError(InjectionError):
    code = PERMISSION_DENIED
