"""
Exception hierarchy and error handling utilities for xtwallet.

Provides:
- Base exception class with error codes and categories
- Safe error message formatting (no key material in logs)
- Exception classification for log lines
"""

from __future__ import annotations

import asyncio
import re
from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    """Error categories for classification."""
    RECOVERABLE = "recoverable"
    RETRYABLE = "retryable"
    FATAL = "fatal"
    VALIDATION = "validation"
    PERMISSION = "permission"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"


class XTWalletError(Exception):
    """Base exception for all xtwallet errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        category: ErrorCategory = ErrorCategory.FATAL,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "category": self.category.value,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class DataCloneError(XTWalletError):
    """Value cannot be structurally copied across a context boundary."""

    def __init__(self, message: str):
        super().__init__(message, code="DATA_CLONE_ERROR", category=ErrorCategory.VALIDATION)


_SENSITIVE_PATTERNS = [
    re.compile(r"(password|passphrase|mnemonic|private[_-]?key|secret|token)[=:]\s*['\"]?([^\s'\"]+)['\"]?", re.IGNORECASE),
    re.compile(r"\b(?:[a-z]{3,8}\s+){11,23}[a-z]{3,8}\b"),
    re.compile(r"[a-fA-F0-9]{64}"),
    re.compile(r"[a-zA-Z0-9]{40,}"),
]


def sanitize_error_message(message: str, replacement: str = "[REDACTED]") -> str:
    """Remove key material (hex keys, seed phrases, passwords) from error messages."""
    sanitized = message
    for pattern in _SENSITIVE_PATTERNS:
        sanitized = pattern.sub(replacement, sanitized)
    return sanitized


def classify_exception(exc: BaseException) -> tuple[str, ErrorCategory]:
    """Return (error_code, category) for an exception, for log lines."""
    if isinstance(exc, XTWalletError):
        return exc.code, exc.category

    if isinstance(exc, asyncio.TimeoutError):
        return "TIMEOUT", ErrorCategory.TIMEOUT

    if isinstance(exc, ConnectionError):
        return "CONNECTION_ERROR", ErrorCategory.RETRYABLE

    if isinstance(exc, (ValueError, TypeError, KeyError)):
        return "INVALID_VALUE", ErrorCategory.VALIDATION

    return "INTERNAL_ERROR", ErrorCategory.FATAL
