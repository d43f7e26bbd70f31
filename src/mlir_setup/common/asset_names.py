"""Asset file name grammar for released toolchain archives and zstd binaries.

Primary archives are named::

    <product>_<versionToken>_<platform>_<osLabel>_<archToken>[_debug].tar.zst

``versionToken`` is ``llvmorg-X.Y.Z`` or a raw commit hash. ``osLabel`` names the
runner image (``ubuntu-24.04``, ``macos-14``, ``windows-2022``) or, in older
releases, a per-platform arch string (``x86_64``, ``arm64``, ``X64``, ...) and
may itself contain underscores. ``archToken`` is ``X86`` or ``AArch64``; the
manifest stores the lower-case forms ``x86`` and ``aarch64``.

The zstd binaries shipped next to them are named::

    zstd-<toolVersion>_<platform>[_<label>]_<archToken>.<zip|tar.gz>

with ``zip`` used on Windows and ``tar.gz`` elsewhere.

Names are tokenized on ``_`` from both ends so the free-form label in the
middle never has to be matched.
"""

from __future__ import annotations

import re
from typing import Iterable

from mlir_setup.common.errors import UnparseableAssetName, UnparseableAssetVersion
from mlir_setup.common.identifiers import PLATFORMS, VersionKind, classify_version
from mlir_setup.common.types import AssetMetadata, ReleaseAsset


PRODUCT = "llvm-mlir"
PRIMARY_EXTENSION = "tar.zst"
DEBUG_MARKER = "debug"

COMPANION_TOOL = "zstd"

ARCH_TOKENS: dict[str, str] = {
    "x86": "X86",
    "aarch64": "AArch64",
}
_ARCH_FROM_TOKEN = {token.lower(): arch for arch, token in ARCH_TOKENS.items()}

# Per-platform architecture strings used as the OS label by older releases.
_ARCH_LABELS: dict[str, dict[str, str]] = {
    "linux": {"x86": "x86_64", "aarch64": "aarch64"},
    "macos": {"x86": "x86_64", "aarch64": "arm64"},
    "windows": {"x86": "X64", "aarch64": "Arm64"},
}

_RELEASE_VERSION_RE = re.compile(r"^llvm-mlir_llvmorg-(\d+\.\d+\.\d+)_", re.IGNORECASE)
_COMMIT_VERSION_RE = re.compile(r"^llvm-mlir_([0-9a-f]{7,40})_", re.IGNORECASE)


def arch_token(architecture: str) -> str:
    try:
        return ARCH_TOKENS[architecture]
    except KeyError:
        raise ValueError(f"Unknown architecture: {architecture!r}") from None


def arch_label(platform: str, architecture: str) -> str:
    try:
        return _ARCH_LABELS[platform][architecture]
    except KeyError:
        raise ValueError(f"Invalid platform/architecture: {platform}/{architecture}") from None


def companion_extension(platform: str) -> str:
    return "zip" if platform == "windows" else "tar.gz"


def _split_extension(name: str, extensions: Iterable[str]) -> tuple[str, str] | None:
    lower = name.lower()
    for ext in extensions:
        suffix = "." + ext
        if lower.endswith(suffix) and len(name) > len(suffix):
            return name[: -len(suffix)], ext
    return None


def parse_asset_name(name: str) -> AssetMetadata:
    """Extract platform, architecture, OS label and debug flag from a primary asset name."""
    split = _split_extension(name, (PRIMARY_EXTENSION,))
    if split is None:
        raise UnparseableAssetName(f"Not a {PRODUCT} archive: {name}")
    stem, _ext = split

    tokens = stem.split("_")
    debug = tokens[-1].lower() == DEBUG_MARKER
    if debug:
        tokens = tokens[:-1]

    # product, version, platform, at least one label token, arch
    if len(tokens) < 5 or tokens[0].lower() != PRODUCT:
        raise UnparseableAssetName(f"Could not extract platform from asset name: {name}")

    platform = tokens[2].lower()
    architecture = _ARCH_FROM_TOKEN.get(tokens[-1].lower())
    os_label = "_".join(tokens[3:-1])
    if platform not in PLATFORMS or architecture is None or not os_label:
        raise UnparseableAssetName(f"Could not extract platform from asset name: {name}")

    return AssetMetadata(platform=platform, architecture=architecture, os_label=os_label, debug=debug)


def parse_asset_version(name: str) -> str:
    match = _RELEASE_VERSION_RE.match(name)
    if match:
        return match.group(1)
    match = _COMMIT_VERSION_RE.match(name)
    if match:
        return match.group(1).lower()
    raise UnparseableAssetVersion(f"Could not extract version from asset name: {name}")


def build_asset_name(
    version: str,
    platform: str,
    architecture: str,
    debug: bool = False,
    os_label: str | None = None,
) -> str:
    if classify_version(version) is VersionKind.EXACT:
        version_token = f"llvmorg-{version}"
    else:
        version_token = version
    label = os_label or arch_label(platform, architecture)
    parts = [PRODUCT, version_token, platform, label, arch_token(architecture)]
    if debug:
        parts.append(DEBUG_MARKER)
    return "_".join(parts) + "." + PRIMARY_EXTENSION


def build_match_pattern(platform: str, architecture: str, debug: bool = False) -> re.Pattern[str]:
    """Pattern matching any primary archive for the given target, whatever its version or label."""
    debug_suffix = "_" + DEBUG_MARKER if debug else ""
    return re.compile(
        rf"^{re.escape(PRODUCT)}_[0-9A-Za-z._-]+_{re.escape(platform)}_[0-9A-Za-z._-]+"
        rf"_{re.escape(arch_token(architecture))}{debug_suffix}\.tar\.zst$",
        re.IGNORECASE,
    )


def parse_companion_name(name: str) -> tuple[str, str]:
    """Return ``(platform, architecture)`` for a zstd binary asset name."""
    split = _split_extension(name, ("tar.gz", "zip"))
    if split is None or not name.lower().startswith(COMPANION_TOOL + "-"):
        raise UnparseableAssetName(f"Not a {COMPANION_TOOL} binary: {name}")
    stem, ext = split

    tokens = stem.split("_")
    if len(tokens) < 3 or len(tokens[0]) <= len(COMPANION_TOOL) + 1:
        raise UnparseableAssetName(f"Not a {COMPANION_TOOL} binary: {name}")

    platform = tokens[1].lower()
    architecture = _ARCH_FROM_TOKEN.get(tokens[-1].lower())
    if platform not in PLATFORMS or architecture is None:
        raise UnparseableAssetName(f"Not a {COMPANION_TOOL} binary: {name}")
    if ext != companion_extension(platform):
        raise UnparseableAssetName(f"Unexpected archive format for {platform} {COMPANION_TOOL}: {name}")
    return platform, architecture


def find_companion_asset(
    assets: Iterable[ReleaseAsset],
    platform: str,
    architecture: str,
) -> ReleaseAsset | None:
    for asset in assets:
        try:
            found = parse_companion_name(asset.name)
        except UnparseableAssetName:
            continue
        if found == (platform, architecture):
            return asset
    return None


__all__ = [
    "ARCH_TOKENS",
    "arch_label",
    "arch_token",
    "build_asset_name",
    "build_match_pattern",
    "companion_extension",
    "find_companion_asset",
    "parse_asset_name",
    "parse_asset_version",
    "parse_companion_name",
]
