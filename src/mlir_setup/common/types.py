from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any


@dataclass(frozen=True)
class ReleaseAsset:
    name: str
    download_url: str


@dataclass(frozen=True)
class Release:
    tag: str
    html_url: str
    published_at: str
    assets: tuple[ReleaseAsset, ...] = ()


@dataclass(frozen=True)
class AssetMetadata:
    platform: str
    architecture: str
    os_label: str
    debug: bool = False


@dataclass(frozen=True)
class ResolvedAsset:
    url: str
    name: str


@dataclass(frozen=True)
class ToolchainRequest:
    version: str
    platform: str = "host"
    architecture: str = "host"
    debug: bool = False


MANIFEST_FIELDS: tuple[str, ...] = (
    "architecture",
    "asset_name",
    "debug",
    "download_url",
    "platform",
    "release_url",
    "tag",
    "version",
)


@dataclass(frozen=True)
class ManifestEntry:
    architecture: str
    platform: str
    version: str
    debug: bool
    tag: str
    release_url: str
    asset_name: str
    download_url: str
    # Only known right after a rebuild; never persisted.
    companion_asset_name: str | None = field(default=None, compare=False)
    companion_download_url: str | None = field(default=None, compare=False)

    @property
    def key(self) -> tuple[str, str, str, bool]:
        return (self.platform, self.architecture, self.version, self.debug)

    @property
    def companion(self) -> ResolvedAsset | None:
        if self.companion_asset_name and self.companion_download_url:
            return ResolvedAsset(url=self.companion_download_url, name=self.companion_asset_name)
        return None

    def with_companion(self, asset: ReleaseAsset | None) -> "ManifestEntry":
        if asset is None:
            return self
        return replace(self, companion_asset_name=asset.name, companion_download_url=asset.download_url)

    def to_dict(self) -> dict[str, Any]:
        return {
            "architecture": self.architecture,
            "asset_name": self.asset_name,
            "debug": self.debug,
            "download_url": self.download_url,
            "platform": self.platform,
            "release_url": self.release_url,
            "tag": self.tag,
            "version": self.version,
        }
