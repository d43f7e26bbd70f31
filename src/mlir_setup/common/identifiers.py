"""Validation and canonicalization of the four resolution keys."""

from __future__ import annotations

import platform as _host
import re
from enum import Enum

from mlir_setup.common.errors import (
    InvalidArchitecture,
    InvalidPlatform,
    InvalidVersionFormat,
    UnsupportedHost,
    UnsupportedVariant,
)


HOST = "host"

PLATFORMS: tuple[str, ...] = ("linux", "macos", "windows")
ARCHITECTURES: tuple[str, ...] = ("x86", "aarch64")

_PLATFORM_INPUTS = (HOST, *PLATFORMS)
_ARCHITECTURE_INPUTS = (HOST, *ARCHITECTURES)

_EXACT_VERSION_RE = re.compile(r"^\d+\.\d+\.\d+$")
_COMMIT_RE = re.compile(r"^[0-9a-f]{7,40}$", re.IGNORECASE)

_HOST_SYSTEMS = {
    "linux": "linux",
    "darwin": "macos",
    "windows": "windows",
}

_HOST_MACHINES = {
    "x86_64": "x86",
    "amd64": "x86",
    "x64": "x86",
    "arm64": "aarch64",
    "aarch64": "aarch64",
}


class VersionKind(str, Enum):
    EXACT = "exact"
    COMMIT = "commit"


def host_platform() -> str:
    system = _host.system()
    resolved = _HOST_SYSTEMS.get(system.lower())
    if resolved is None:
        raise UnsupportedHost(f"Unsupported host operating system: {system or '<unknown>'}")
    return resolved


def host_architecture() -> str:
    machine = _host.machine()
    resolved = _HOST_MACHINES.get(machine.lower())
    if resolved is None:
        raise UnsupportedHost(f"Unsupported host architecture: {machine or '<unknown>'}")
    return resolved


def normalize_platform(value: str) -> str:
    if value not in _PLATFORM_INPUTS:
        raise InvalidPlatform(f"Invalid platform: {value!r}. Expected one of: {', '.join(_PLATFORM_INPUTS)}.")
    if value == HOST:
        return host_platform()
    return value


def normalize_architecture(value: str) -> str:
    if value not in _ARCHITECTURE_INPUTS:
        raise InvalidArchitecture(
            f"Invalid architecture: {value!r}. Expected one of: {', '.join(_ARCHITECTURE_INPUTS)}."
        )
    if value == HOST:
        return host_architecture()
    return value


def classify_version(value: str) -> VersionKind:
    text = str(value or "")
    if _EXACT_VERSION_RE.match(text):
        return VersionKind.EXACT
    if _COMMIT_RE.match(text):
        return VersionKind.COMMIT
    raise InvalidVersionFormat(
        f"Invalid LLVM version: {value!r}. Expected format: X.Y.Z or a commit hash (7 to 40 hex characters)."
    )


def canonical_version(value: str) -> str:
    """Return the manifest lookup key for a requested version.

    Commit hashes are stored lower-cased, so prefixes are lower-cased too.
    """
    if classify_version(value) is VersionKind.COMMIT:
        return value.lower()
    return value


def validate_variant(platform: str, debug: bool) -> None:
    # Debug archives are only published for Windows.
    if debug and platform != "windows":
        raise UnsupportedVariant(f"Debug builds are only available on Windows, not on {platform}.")
