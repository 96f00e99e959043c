"""Interface version and platform checks for plugin manifests."""

from __future__ import annotations

import platform
import re

from launchbridge.plugins.core.types import Manifest
from launchbridge.utils.exceptions import InvalidManifestError

MAJOR_INTERFACE_VERSION = 3
MINOR_INTERFACE_VERSION = 1
INTERFACE_VERSION = f"{MAJOR_INTERFACE_VERSION}.{MINOR_INTERFACE_VERSION}"

_IID_RE = re.compile(r"^(\d+)\.(\d+)$")


def current_platform(system: str | None = None) -> str:
    """OS family as used in md_platforms: Darwin, Linux or Windows. Other Unix systems count as Linux."""
    system = system or platform.system()
    if system in ("Darwin", "Windows"):
        return system
    return "Linux"


def check_manifest(
    manifest: Manifest,
    *,
    host_major: int = MAJOR_INTERFACE_VERSION,
    host_minor: int = MINOR_INTERFACE_VERSION,
    system: str | None = None,
) -> list[str]:
    """Return every reason the manifest is unacceptable; empty means accepted."""
    errors: list[str] = []

    iid = manifest.iid
    if not iid:
        errors.append("No interface id found.")
    elif (match := _IID_RE.match(iid)) is None:
        errors.append(f"Invalid version format: '{iid}'. Expected <major>.<minor>.")
    elif (major := int(match.group(1))) != host_major:
        errors.append(f"Incompatible major interface version. Expected {host_major}, got {major}.")
    elif (minor := int(match.group(2))) > host_minor:
        errors.append(f"Incompatible minor interface version. Up to {host_minor} supported, got {minor}.")

    if manifest.platforms:
        system = current_platform(system)
        if system not in manifest.platforms:
            errors.append("Platform not supported. Supported: " + ", ".join(manifest.platforms))

    return errors


def validate_manifest(manifest: Manifest, **kwargs) -> Manifest:
    """Raise InvalidManifestError with all joined reasons if the manifest is rejected."""
    errors = check_manifest(manifest, **kwargs)
    if errors:
        raise InvalidManifestError(manifest.id, errors)
    return manifest
