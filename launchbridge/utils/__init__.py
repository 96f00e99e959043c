"""Utility functions for launchbridge."""

from launchbridge.utils.helpers import ensure_dir, get_data_path
from launchbridge.utils.exceptions import (
    BridgeError,
    DependencyInstallError,
    EntryClassTypeError,
    ErrorCategory,
    ExtensionExecutionError,
    ForeignObjectExpiredError,
    InvalidManifestError,
    ManifestParseError,
    MissingBinaryDependencyError,
    NotAPluginError,
    ProcessError,
    PureVirtualError,
    classify_exception,
    sanitize_error_message,
)

__all__ = [
    "ensure_dir",
    "get_data_path",
    "BridgeError",
    "DependencyInstallError",
    "EntryClassTypeError",
    "ErrorCategory",
    "ExtensionExecutionError",
    "ForeignObjectExpiredError",
    "InvalidManifestError",
    "ManifestParseError",
    "MissingBinaryDependencyError",
    "NotAPluginError",
    "ProcessError",
    "PureVirtualError",
    "classify_exception",
    "sanitize_error_message",
]
