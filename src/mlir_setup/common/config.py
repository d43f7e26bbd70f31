from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path


APP_DIR_NAME = "mlir-setup"
MANIFEST_FILE_NAME = "manifest.json"

DEFAULT_REPOSITORY = "munich-quantum-software/portable-mlir-toolchain"
DEFAULT_API_URL = "https://api.github.com"

# Hosts GitHub serves release assets from, including redirect targets.
DEFAULT_TRUSTED_ASSET_HOSTS: tuple[str, ...] = (
    "github.com",
    "release-assets.githubusercontent.com",
    "objects.githubusercontent.com",
    "github-releases.githubusercontent.com",
)


def _default_cache_root() -> Path:
    if sys.platform == "win32":
        local_app_data = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
        return local_app_data / APP_DIR_NAME
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Caches" / APP_DIR_NAME
    xdg_cache = os.environ.get("XDG_CACHE_HOME", "").strip()
    if xdg_cache:
        return Path(xdg_cache) / APP_DIR_NAME
    return Path.home() / ".cache" / APP_DIR_NAME


@dataclass(frozen=True)
class AppPaths:
    root: Path
    manifest_path: Path
    toolchains_dir: Path
    logs_dir: Path
    temp_dir: Path

    @classmethod
    def default(cls) -> "AppPaths":
        override_root = os.environ.get("MLIR_SETUP_HOME", "").strip()
        root = Path(override_root) if override_root else _default_cache_root()
        return cls.under(root)

    @classmethod
    def under(cls, root: Path) -> "AppPaths":
        manifest_override = os.environ.get("MLIR_SETUP_MANIFEST", "").strip()
        return cls(
            root=root,
            manifest_path=Path(manifest_override) if manifest_override else root / MANIFEST_FILE_NAME,
            toolchains_dir=root / "toolchains",
            logs_dir=root / "logs",
            temp_dir=root / "tmp",
        )

    def ensure_layout(self) -> None:
        for path in (
            self.root,
            self.manifest_path.parent,
            self.toolchains_dir,
            self.logs_dir,
            self.temp_dir,
        ):
            path.mkdir(parents=True, exist_ok=True)

    def install_prefix(self, version: str, platform: str, architecture: str, debug: bool = False) -> Path:
        leaf = f"{platform}-{architecture}"
        if debug:
            leaf += "-debug"
        return self.toolchains_dir / version / leaf


def _split_repository(value: str) -> tuple[str, str]:
    owner, sep, name = value.strip().strip("/").partition("/")
    if not sep or not owner or not name or "/" in name:
        raise ValueError(f"Repository must be given as <owner>/<name>, got {value!r}")
    return owner, name


@dataclass(frozen=True)
class RuntimeConfig:
    repo_owner: str = "munich-quantum-software"
    repo_name: str = "portable-mlir-toolchain"
    api_url: str = DEFAULT_API_URL
    token: str | None = None
    per_page: int = 100
    download_chunk_size: int = 1024 * 1024
    connect_timeout_seconds: int = 10
    read_timeout_seconds: int = 60
    trusted_asset_hosts: tuple[str, ...] = DEFAULT_TRUSTED_ASSET_HOSTS
    allow_insecure_http: bool = False

    @property
    def repository(self) -> str:
        return f"{self.repo_owner}/{self.repo_name}"

    @property
    def timeout(self) -> tuple[int, int]:
        return (self.connect_timeout_seconds, self.read_timeout_seconds)

    @classmethod
    def from_env(cls) -> "RuntimeConfig":
        owner, name = _split_repository(os.environ.get("MLIR_SETUP_REPOSITORY", DEFAULT_REPOSITORY))
        return cls(
            repo_owner=owner,
            repo_name=name,
            api_url=os.environ.get("MLIR_SETUP_API_URL", DEFAULT_API_URL).rstrip("/"),
            token=os.environ.get("GITHUB_TOKEN", "").strip() or None,
            per_page=int(os.environ.get("MLIR_SETUP_PER_PAGE", "100")),
            download_chunk_size=int(os.environ.get("MLIR_SETUP_DOWNLOAD_CHUNK", str(1024 * 1024))),
            connect_timeout_seconds=int(os.environ.get("MLIR_SETUP_CONNECT_TIMEOUT", "10")),
            read_timeout_seconds=int(os.environ.get("MLIR_SETUP_READ_TIMEOUT", "60")),
            allow_insecure_http=os.environ.get("MLIR_SETUP_ALLOW_INSECURE_HTTP", "").strip() == "1",
        )
