from __future__ import annotations

import logging
from typing import Iterable, Protocol

from mlir_setup.common.asset_names import find_companion_asset
from mlir_setup.common.errors import InvalidReleaseTag, NoArchiveFound, NoCompanionFound, ReleaseNotFound
from mlir_setup.common.identifiers import classify_version, normalize_architecture, normalize_platform
from mlir_setup.common.types import ManifestEntry, Release, ResolvedAsset
from mlir_setup.provision.manifest_store import ManifestStore


log = logging.getLogger(__name__)


class ReleaseQueries(Protocol):
    def list_releases(self) -> Iterable[Release]: ...

    def get_release_by_tag(self, tag: str) -> Release: ...

    def get_latest_release(self) -> Release: ...


class Resolver:
    """Maps a (version, platform, architecture, variant) request to download locations."""

    def __init__(self, store: ManifestStore, source: ReleaseQueries):
        self.store = store
        self.source = source

    def _find_entry(self, version: str, platform: str, architecture: str, debug: bool) -> ManifestEntry:
        classify_version(version)
        platform = normalize_platform(platform)
        architecture = normalize_architecture(architecture)
        entry = self.store.lookup(version, platform, architecture, debug)
        if entry is None:
            variant = "debug" if debug else "release"
            raise NoArchiveFound(
                f"No LLVM/MLIR archive found for {architecture} {platform} ({variant}) at version {version}."
            )
        return entry

    def resolve_primary(self, version: str, platform: str, architecture: str, debug: bool = False) -> ResolvedAsset:
        entry = self._find_entry(version, platform, architecture, debug)
        log.info("Resolved %s to %s from release %s", version, entry.asset_name, entry.tag)
        return ResolvedAsset(url=entry.download_url, name=entry.asset_name)

    def resolve_companion(
        self, version: str, platform: str, architecture: str, debug: bool = False
    ) -> ResolvedAsset:
        """Locate the zstd binary that can unpack the archive for ``version``.

        Looks in the release the archive came from, then in the latest release.
        """
        entry = self._find_entry(version, platform, architecture, debug)
        if entry.companion is not None:
            return entry.companion

        log.info("Looking for zstd for %s/%s in release %s", entry.platform, entry.architecture, entry.tag)
        try:
            release = self.source.get_release_by_tag(entry.tag)
        except (InvalidReleaseTag, ReleaseNotFound) as exc:
            log.info("Release %s unavailable (%s)", entry.tag, exc)
        else:
            asset = find_companion_asset(release.assets, entry.platform, entry.architecture)
            if asset is not None:
                return ResolvedAsset(url=asset.download_url, name=asset.name)

        log.info("zstd not found in release %s, falling back to the latest release", entry.tag)
        latest = self.source.get_latest_release()
        asset = find_companion_asset(latest.assets, entry.platform, entry.architecture)
        if asset is not None:
            return ResolvedAsset(url=asset.download_url, name=asset.name)

        raise NoCompanionFound(f"No zstd binary found for {entry.architecture} {entry.platform}.")
