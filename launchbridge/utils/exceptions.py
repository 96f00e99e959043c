"""
Exception hierarchy and error handling utilities for launchbridge.

Provides:
- Bridge exception classes with error codes
- Error categorization (soft skip, validation, dependency, execution)
- Safe error message formatting (no sensitive data leak)
"""

from __future__ import annotations

import re
import subprocess
from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    """Error categories for classification."""
    SOFT_SKIP = "soft_skip"
    VALIDATION = "validation"
    DEPENDENCY = "dependency"
    EXECUTION = "execution"
    TYPE_CONTRACT = "type_contract"
    PROCESS = "process"
    FATAL = "fatal"


class BridgeError(Exception):
    """Base exception for all launchbridge errors."""

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
        return self.message


class NotAPluginError(BridgeError):
    """Path is not a plugin candidate. Scans skip these silently."""

    def __init__(self, path: str, reason: str):
        super().__init__(
            reason,
            code="NOT_A_PLUGIN",
            category=ErrorCategory.SOFT_SKIP,
            details={"path": path},
        )


class ManifestParseError(BridgeError):
    """Candidate source is not valid Python."""

    def __init__(self, path: str, message: str):
        super().__init__(
            f"Invalid plugin source '{path}': {message}",
            code="MANIFEST_PARSE_ERROR",
            category=ErrorCategory.VALIDATION,
            details={"path": path},
        )


class InvalidManifestError(BridgeError):
    """Manifest rejected by the interface version gate."""

    def __init__(self, plugin_id: str, reasons: list[str]):
        super().__init__(
            ", ".join(reasons),
            code="INVALID_MANIFEST",
            category=ErrorCategory.VALIDATION,
            details={"plugin_id": plugin_id, "reasons": list(reasons)},
        )
        self.reasons = list(reasons)


class MissingBinaryDependencyError(BridgeError):
    """A declared executable is not on $PATH."""

    def __init__(self, executable: str):
        super().__init__(
            f"No '{executable}' in $PATH.",
            code="MISSING_BINARY_DEPENDENCY",
            category=ErrorCategory.DEPENDENCY,
            details={"executable": executable},
        )


class DependencyInstallError(BridgeError):
    """Installing declared package dependencies failed."""

    def __init__(self, packages: list[str], output: str):
        super().__init__(
            f"Failed installing dependencies ({', '.join(packages)}):\n\n{output}",
            code="DEPENDENCY_INSTALL_FAILED",
            category=ErrorCategory.DEPENDENCY,
            details={"packages": list(packages), "output": output},
        )


class EntryClassTypeError(BridgeError):
    """The entry class did not instantiate a PluginInstance."""

    def __init__(self, type_name: str):
        super().__init__(
            f"Python Plugin class is not of type PluginInstance (got {type_name}).",
            code="ENTRY_CLASS_WRONG_TYPE",
            category=ErrorCategory.TYPE_CONTRACT,
            details={"type": type_name},
        )


class ExtensionExecutionError(BridgeError):
    """Exception raised by extension code, converted at the bridge boundary."""

    def __init__(self, message: str, *, attribute: str | None = None, exc_type: str | None = None):
        super().__init__(
            message,
            code="EXECUTION_ERROR",
            category=ErrorCategory.EXECUTION,
            details={"attribute": attribute, "exc_type": exc_type},
        )

    @classmethod
    def from_exception(cls, exc: BaseException, attribute: str | None = None) -> "ExtensionExecutionError":
        name = type(exc).__name__
        text = str(exc) or name
        return cls(f"{name}: {text}", attribute=attribute, exc_type=name)


class PureVirtualError(BridgeError, NotImplementedError):
    """Extension did not implement a method that has no default."""

    def __init__(self, attribute: str, type_name: str):
        super().__init__(
            f'Pure virtual function "{attribute}" not implemented by {type_name}',
            code="PURE_VIRTUAL",
            category=ErrorCategory.TYPE_CONTRACT,
            details={"attribute": attribute, "type": type_name},
        )


class ForeignObjectExpiredError(BridgeError):
    """The extension object behind an adapter no longer exists."""

    def __init__(self, type_name: str):
        super().__init__(
            f"Extension object of type {type_name} has been released",
            code="FOREIGN_OBJECT_EXPIRED",
            category=ErrorCategory.EXECUTION,
            details={"type": type_name},
        )


class ProcessError(BridgeError):
    """Subprocess timed out, crashed or exited non-zero."""

    def __init__(self, message: str, *, cmdline: str, stdout: str = "", stderr: str = "", returncode: int | None = None):
        super().__init__(
            message,
            code="PROCESS_ERROR",
            category=ErrorCategory.PROCESS,
            details={"cmdline": cmdline, "returncode": returncode},
        )
        self.cmdline = cmdline
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode

    @property
    def output(self) -> str:
        parts = [self.message]
        if self.stdout.strip():
            parts.append(self.stdout.strip())
        if self.stderr.strip():
            parts.append(self.stderr.strip())
        return "\n".join(parts)


_SENSITIVE_PATTERNS = [
    re.compile(r"(api[_-]?key|token|secret|password|auth)[=:]\s*['\"]?([^\s'\"]+)['\"]?", re.IGNORECASE),
    re.compile(r"bearer\s+[a-zA-Z0-9\-._~+/]+=*", re.IGNORECASE),
    re.compile(r"https?://[^\s:@/]+:[^\s@/]+@"),
]


def sanitize_error_message(message: str, replacement: str = "[REDACTED]") -> str:
    """Remove sensitive information (tokens, index credentials) from error messages."""
    sanitized = message
    for pattern in _SENSITIVE_PATTERNS:
        sanitized = pattern.sub(replacement, sanitized)
    return sanitized


def classify_exception(exc: BaseException) -> tuple[str, ErrorCategory]:
    """
    Classify an exception for diagnostics.

    Returns:
        Tuple of (error_code, category)
    """
    if isinstance(exc, BridgeError):
        return exc.code, exc.category

    if isinstance(exc, SyntaxError):
        return "SYNTAX_ERROR", ErrorCategory.VALIDATION

    if isinstance(exc, (FileNotFoundError, PermissionError, IsADirectoryError)):
        return "FILE_ERROR", ErrorCategory.FATAL

    if isinstance(exc, subprocess.TimeoutExpired):
        return "TIMEOUT", ErrorCategory.PROCESS

    if isinstance(exc, (ImportError, AttributeError, TypeError, ValueError)):
        return "EXECUTION_ERROR", ErrorCategory.EXECUTION

    return "UNKNOWN_ERROR", ErrorCategory.FATAL
