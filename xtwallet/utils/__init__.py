"""Utility functions for xtwallet."""

from xtwallet.utils.helpers import call_handler, ensure_dir, get_data_path, structured_clone
from xtwallet.utils.exceptions import (
    XTWalletError,
    DataCloneError,
    ErrorCategory,
    classify_exception,
    sanitize_error_message,
)

__all__ = [
    "call_handler",
    "ensure_dir",
    "get_data_path",
    "structured_clone",
    "XTWalletError",
    "DataCloneError",
    "ErrorCategory",
    "classify_exception",
    "sanitize_error_message",
]
