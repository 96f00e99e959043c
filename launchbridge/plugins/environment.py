"""Isolated package environment (venv) for plugin runtime dependencies."""

from __future__ import annotations

import os
import platform
import re
import shutil
import subprocess
import sys
import threading
from pathlib import Path

from loguru import logger

from launchbridge.config.settings import SettingsStore
from launchbridge.utils.exceptions import ProcessError, sanitize_error_message
from launchbridge.utils.helpers import ensure_dir

VENV_DIRNAME = "venv"
STATE_SECTION = "launchbridge"
STATE_VENV_PYTHON_VERSION = "venv_python_version"
DEFAULT_PROCESS_TIMEOUT_SECONDS = 300.0

_FREEZE_LINE_SPLIT = re.compile(r"[\r\n]+")
_FREEZE_NAME_SEP = re.compile(r"==|@|\s")


def run_process(args: list[str], timeout: float = DEFAULT_PROCESS_TIMEOUT_SECONDS) -> str:
    """
    Run a command and return its stdout.

    Raises ProcessError on timeout, abnormal termination or non-zero exit; the
    captured output is attached to the error.
    """
    cmdline = " ".join(args)
    logger.debug("Running '{}'", cmdline)
    try:
        proc = subprocess.run(args, capture_output=True, text=True, timeout=timeout, check=False)
    except subprocess.TimeoutExpired as exc:
        logger.warning("'{}' timed out ({}s).", cmdline, timeout)
        raise ProcessError(
            f"'{cmdline}' timed out ({timeout:g}s).",
            cmdline=cmdline,
            stdout=_text(exc.stdout),
            stderr=_text(exc.stderr),
        ) from exc
    except OSError as exc:
        logger.warning("'{}' failed to start: {}", cmdline, exc)
        raise ProcessError(f"'{cmdline}' failed to start: {exc}", cmdline=cmdline) from exc

    if proc.returncode < 0:
        logger.warning("'{}' crashed.", cmdline)
        raise ProcessError(
            f"'{cmdline}' crashed.",
            cmdline=cmdline,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
            returncode=proc.returncode,
        )
    if proc.returncode != 0:
        logger.warning("'{}' finished with exit code: {}.", cmdline, proc.returncode)
        if proc.stdout:
            logger.warning("{}", proc.stdout.strip())
        if proc.stderr:
            logger.warning("{}", proc.stderr.strip())
        raise ProcessError(
            f"'{cmdline}' finished with exit code: {proc.returncode}.",
            cmdline=cmdline,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
            returncode=proc.returncode,
        )
    return proc.stdout or ""


def _text(value: bytes | str | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def parse_freeze_output(stdout: str) -> set[str]:
    """Lower-cased package names from `pip freeze` output."""
    names: set[str] = set()
    for line in _FREEZE_LINE_SPLIT.split(stdout):
        parts = [p for p in _FREEZE_NAME_SEP.split(line) if p]
        if parts and not line.lstrip().startswith("#"):
            names.add(parts[0].lower())
    return names


class PackageEnvironment:
    """
    Private venv rooted under the provider's data directory.

    The venv is created lazily and recreated whenever the running interpreter
    version differs from the one that created it. check_packages and
    install_packages are serialized against each other.
    """

    def __init__(
        self,
        data_dir: Path,
        state: SettingsStore,
        *,
        python: str | None = None,
        timeout: float = DEFAULT_PROCESS_TIMEOUT_SECONDS,
    ):
        self.data_dir = Path(data_dir)
        self.state = state
        self.python = python or sys.executable
        self.timeout = timeout
        self.python_version = platform.python_version()
        self._pip_mutex = threading.Lock()
        self._venv_lock = threading.Lock()

    @property
    def venv_path(self) -> Path:
        return self.data_dir / VENV_DIRNAME

    @property
    def bin_path(self) -> Path:
        return self.venv_path / ("Scripts" if os.name == "nt" else "bin")

    @property
    def site_packages_path(self) -> Path:
        if os.name == "nt":
            return self.venv_path / "Lib" / "site-packages"
        major, minor = sys.version_info[:2]
        return self.venv_path / "lib" / f"python{major}.{minor}" / "site-packages"

    @property
    def venv_python(self) -> Path:
        return self.bin_path / ("python.exe" if os.name == "nt" else "python")

    def _pip(self, *args: str) -> list[str]:
        return [str(self.venv_python), "-m", "pip", *args]

    def _recorded_version(self) -> str | None:
        return self.state.value(STATE_SECTION, STATE_VENV_PYTHON_VERSION)

    def is_stale(self) -> bool:
        return self.venv_path.is_dir() and self._recorded_version() != self.python_version

    def ensure(self) -> Path:
        """Create (or recreate) the venv if needed and return its site-packages directory."""
        with self._venv_lock:
            if self.is_stale():
                logger.info("Python version changed. Resetting virtual environment.")
                self._remove_venv()
            if not self.venv_path.is_dir():
                logger.debug("Initializing venv using system interpreter {}", self.python)
                ensure_dir(self.data_dir)
                run_process([self.python, "-m", "venv", str(self.venv_path)], timeout=self.timeout)
                self.state.set_value(STATE_SECTION, STATE_VENV_PYTHON_VERSION, self.python_version)
            return self.site_packages_path

    def reset(self) -> None:
        """Delete the venv; the next ensure() recreates it."""
        with self._venv_lock:
            self._remove_venv()

    def _remove_venv(self) -> None:
        if self.venv_path.exists():
            shutil.rmtree(self.venv_path)
        self.state.remove(STATE_SECTION, STATE_VENV_PYTHON_VERSION)

    def installed_packages(self) -> set[str]:
        with self._pip_mutex:
            return parse_freeze_output(run_process(self._pip("freeze"), timeout=self.timeout))

    def check_packages(self, packages: list[str]) -> bool:
        """True if every named package is installed (case-insensitive)."""
        if not packages:
            return True
        installed = self.installed_packages()
        return all(pkg.lower() in installed for pkg in packages)

    def install_packages(self, packages: list[str]) -> str | None:
        """Install packages. Returns None on success, else the error including installer output."""
        if not packages:
            return None
        with self._pip_mutex:
            try:
                stdout = run_process(
                    self._pip("install", "--disable-pip-version-check", *packages),
                    timeout=self.timeout,
                )
            except ProcessError as exc:
                return sanitize_error_message(exc.output)
        logger.debug("{}", stdout.strip())
        return None
