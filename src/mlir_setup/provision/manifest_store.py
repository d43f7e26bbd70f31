from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Protocol

from mlir_setup.common.asset_names import parse_asset_name, parse_asset_version, parse_companion_name
from mlir_setup.common.errors import (
    ManifestFormatError,
    ManifestUnavailable,
    UnparseableAssetName,
    UnparseableAssetVersion,
)
from mlir_setup.common.identifiers import ARCHITECTURES, PLATFORMS, VersionKind, canonical_version, classify_version
from mlir_setup.common.types import MANIFEST_FIELDS, ManifestEntry, Release, ReleaseAsset


log = logging.getLogger(__name__)

EntryKey = tuple[str, str, str, bool]
BucketKey = tuple[str, str, bool]


class ReleaseLister(Protocol):
    def list_releases(self) -> Iterable[Release]: ...


@dataclass(frozen=True)
class ManifestSnapshot:
    """Immutable, indexed view of one manifest document."""

    entries: tuple[ManifestEntry, ...] = ()
    _index: dict[EntryKey, ManifestEntry] = field(default_factory=dict, init=False, repr=False, compare=False)
    _buckets: dict[BucketKey, list[ManifestEntry]] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        for entry in self.entries:
            # Manifest order is recency order; keep the first entry for a key.
            self._index.setdefault(entry.key, entry)
            self._buckets.setdefault((entry.platform, entry.architecture, entry.debug), []).append(entry)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def latest_tag(self) -> str | None:
        return self.entries[0].tag if self.entries else None

    def lookup(self, version: str, platform: str, architecture: str, debug: bool = False) -> ManifestEntry | None:
        key_version = canonical_version(version)
        if classify_version(key_version) is VersionKind.EXACT:
            return self._index.get((platform, architecture, key_version, debug))
        for entry in self._buckets.get((platform, architecture, debug), ()):
            if entry.version.startswith(key_version):
                return entry
        return None

    def available_versions(self) -> tuple[list[str], list[str]]:
        tags: set[str] = set()
        hashes: set[str] = set()
        for entry in self.entries:
            if classify_version(entry.version) is VersionKind.EXACT:
                tags.add(entry.version)
            else:
                hashes.add(entry.version)
        ordered_tags = sorted(tags, key=lambda v: tuple(int(p) for p in v.split(".")), reverse=True)
        return ordered_tags, sorted(hashes)

    def to_document(self) -> str:
        payload = [entry.to_dict() for entry in self.entries]
        return json.dumps(payload, indent=2, sort_keys=True) + "\n"


def _release_sort_key(release: Release) -> tuple[str, str]:
    return (release.published_at or "", release.tag)


def _companions_by_target(assets: Iterable[ReleaseAsset]) -> dict[tuple[str, str], ReleaseAsset]:
    found: dict[tuple[str, str], ReleaseAsset] = {}
    for asset in assets:
        try:
            target = parse_companion_name(asset.name)
        except UnparseableAssetName:
            continue
        found.setdefault(target, asset)
    return found


def build_snapshot(releases: Iterable[Release]) -> ManifestSnapshot:
    """Index every primary archive across ``releases``, newest release first."""
    ordered = sorted(releases, key=_release_sort_key, reverse=True)
    seen: set[EntryKey] = set()
    entries: list[ManifestEntry] = []

    for release in ordered:
        assets = sorted(release.assets, key=lambda a: a.name)
        companions = _companions_by_target(assets)
        release_entries: list[ManifestEntry] = []

        for asset in assets:
            try:
                meta = parse_asset_name(asset.name)
            except UnparseableAssetName:
                log.debug("Skipping non-toolchain asset %s in %s", asset.name, release.tag)
                continue
            try:
                version = parse_asset_version(asset.name)
            except UnparseableAssetVersion as exc:
                log.warning("%s (release %s)", exc, release.tag)
                continue

            entry = ManifestEntry(
                architecture=meta.architecture,
                platform=meta.platform,
                version=version,
                debug=meta.debug,
                tag=release.tag,
                release_url=release.html_url,
                asset_name=asset.name,
                download_url=asset.download_url,
            )
            if entry.key in seen:
                log.debug("Skipping %s from %s: already provided by a newer release", asset.name, release.tag)
                continue
            seen.add(entry.key)
            release_entries.append(entry.with_companion(companions.get((meta.platform, meta.architecture))))

        release_entries.sort(key=lambda e: (e.platform, e.architecture, e.version, e.debug, e.asset_name))
        entries.extend(release_entries)

    return ManifestSnapshot(entries=tuple(entries))


def _entry_from_dict(raw: Any, idx: int) -> ManifestEntry:
    if not isinstance(raw, dict):
        raise ManifestFormatError(f"Manifest entry at index {idx} is not an object.")
    missing = [k for k in MANIFEST_FIELDS if k not in raw]
    if missing:
        raise ManifestFormatError(f"Manifest entry at index {idx} missing fields: {missing}")
    if not isinstance(raw["debug"], bool):
        raise ManifestFormatError(f"Manifest entry at index {idx} has a non-boolean debug flag.")

    platform = str(raw["platform"])
    architecture = str(raw["architecture"])
    if platform not in PLATFORMS or architecture not in ARCHITECTURES:
        raise ManifestFormatError(f"Manifest entry at index {idx} has unknown target {platform}/{architecture}.")
    try:
        classify_version(str(raw["version"]))
    except ValueError as exc:
        raise ManifestFormatError(f"Manifest entry at index {idx}: {exc}") from exc

    return ManifestEntry(
        architecture=architecture,
        platform=platform,
        version=str(raw["version"]),
        debug=raw["debug"],
        tag=str(raw["tag"]),
        release_url=str(raw["release_url"]),
        asset_name=str(raw["asset_name"]),
        download_url=str(raw["download_url"]),
    )


def parse_manifest_document(text: str) -> ManifestSnapshot:
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise ManifestFormatError(f"Manifest is not valid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise ManifestFormatError("Manifest must be a JSON array of entries.")
    return ManifestSnapshot(entries=tuple(_entry_from_dict(raw, idx) for idx, raw in enumerate(data)))


class ManifestStore:
    def __init__(self, path: Path):
        self.path = path
        self._snapshot: ManifestSnapshot | None = None

    def exists(self) -> bool:
        return self.path.exists()

    @property
    def snapshot(self) -> ManifestSnapshot:
        if self._snapshot is None:
            return self.load()
        return self._snapshot

    def load(self) -> ManifestSnapshot:
        if not self.path.exists():
            raise ManifestUnavailable(f"No manifest at {self.path}; run update-manifest first.")
        # Tolerate a BOM from hand-edited files.
        snapshot = parse_manifest_document(self.path.read_text(encoding="utf-8-sig"))
        log.debug("Loaded %d manifest entries from %s", len(snapshot), self.path)
        self._snapshot = snapshot
        return snapshot

    def save(self, snapshot: ManifestSnapshot) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=self.path.stem + ".", suffix=".tmp")
        tmp = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as fh:
                fh.write(snapshot.to_document())
            tmp.replace(self.path)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise

    def rebuild(self, source: ReleaseLister) -> ManifestSnapshot:
        log.info("Rebuilding manifest at %s", self.path)
        snapshot = build_snapshot(source.list_releases())
        self.save(snapshot)
        self._snapshot = snapshot
        log.info("Manifest holds %d entries (latest release %s)", len(snapshot), snapshot.latest_tag or "<none>")
        return snapshot

    def lookup(self, version: str, platform: str, architecture: str, debug: bool = False) -> ManifestEntry | None:
        return self.snapshot.lookup(version, platform, architecture, debug)

    def available_versions(self) -> tuple[list[str], list[str]]:
        return self.snapshot.available_versions()
