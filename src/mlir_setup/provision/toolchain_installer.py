from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tarfile
import zipfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

import requests

from mlir_setup.common.asset_names import build_match_pattern
from mlir_setup.common.config import AppPaths, RuntimeConfig
from mlir_setup.common.errors import (
    ExtractionFailed,
    NoArchiveFound,
    PrefixNotManaged,
    SourceUnavailable,
    UnsafeArchive,
)
from mlir_setup.common.identifiers import (
    canonical_version,
    classify_version,
    normalize_architecture,
    normalize_platform,
    validate_variant,
)
from mlir_setup.common.state import InstallRecord, has_install_record, load_install_record, save_install_record
from mlir_setup.common.types import ResolvedAsset, ToolchainRequest
from mlir_setup.common.url_policy import validate_archive_member_path, validate_trusted_url
from mlir_setup.provision.environment import ToolchainEnvironment
from mlir_setup.provision.release_source import single_attempt_session
from mlir_setup.provision.resolver import Resolver


log = logging.getLogger(__name__)

ZSTD_EXECUTABLES = ("zstd", "zstd.exe")


def _format_bytes(value: int | None) -> str:
    if value is None:
        return "?"
    units = ["B", "KB", "MB", "GB", "TB"]
    amount = float(value)
    idx = 0
    while amount >= 1024.0 and idx < len(units) - 1:
        amount /= 1024.0
        idx += 1
    return f"{amount:.1f}{units[idx]}"


@dataclass(frozen=True)
class InstallResult:
    prefix: Path
    bin_dir: Path
    llvm_dir: Path
    mlir_dir: Path
    asset_name: str
    reused: bool = False

    @classmethod
    def for_prefix(cls, prefix: Path, asset_name: str, reused: bool = False) -> "InstallResult":
        return cls(
            prefix=prefix,
            bin_dir=prefix / "bin",
            llvm_dir=prefix / "lib" / "cmake" / "llvm",
            mlir_dir=prefix / "lib" / "cmake" / "mlir",
            asset_name=asset_name,
            reused=reused,
        )

    def environment(self) -> ToolchainEnvironment:
        return ToolchainEnvironment(bin_dir=self.bin_dir, llvm_dir=self.llvm_dir, mlir_dir=self.mlir_dir)


class ToolchainInstaller:
    def __init__(
        self,
        paths: AppPaths,
        runtime: RuntimeConfig,
        resolver: Resolver,
        session: requests.Session | None = None,
    ):
        self.paths = paths
        self.runtime = runtime
        self.resolver = resolver
        self.session = session or single_attempt_session()

    def install(self, request: ToolchainRequest, prefix: Path | None = None) -> InstallResult:
        classify_version(request.version)
        platform = normalize_platform(request.platform)
        architecture = normalize_architecture(request.architecture)
        validate_variant(platform, request.debug)
        version = canonical_version(request.version)

        target = prefix or self.paths.install_prefix(version, platform, architecture, request.debug)
        self.recover_interrupted_apply(target)
        self._ensure_replaceable(target)

        companion = self.resolver.resolve_companion(version, platform, architecture, request.debug)
        primary = self.resolver.resolve_primary(version, platform, architecture, request.debug)

        record = load_install_record(target)
        if record is not None and record.asset_name == primary.name:
            log.info("%s is already installed at %s", primary.name, target)
            return InstallResult.for_prefix(target, primary.name, reused=True)

        for asset in (companion, primary):
            validate_trusted_url(
                asset.url,
                self.runtime.trusted_asset_hosts,
                allow_http=self.runtime.allow_insecure_http,
            )
        if not build_match_pattern(platform, architecture, request.debug).match(primary.name):
            variant = "debug" if request.debug else "release"
            raise NoArchiveFound(f"{primary.name} is not a {variant} archive for {architecture} {platform}.")

        self.paths.ensure_layout()
        staging = self.paths.temp_dir / "staging"
        if staging.exists():
            shutil.rmtree(staging, ignore_errors=True)
        staging.mkdir(parents=True, exist_ok=True)

        try:
            with ThreadPoolExecutor(max_workers=2) as executor:
                companion_future = executor.submit(self._download_asset, companion, staging)
                primary_future = executor.submit(self._download_asset, primary, staging)
                companion_archive = companion_future.result()
                primary_archive = primary_future.result()

            zstd = self._extract_companion(companion_archive, staging / "zstd")
            extracted = staging / "toolchain"
            self._decompress_toolchain(zstd, primary_archive, extracted)

            self._atomic_apply(self._single_root(extracted), target)
            save_install_record(
                target,
                InstallRecord(
                    asset_name=primary.name,
                    download_url=primary.url,
                    version=version,
                    platform=platform,
                    architecture=architecture,
                    debug=request.debug,
                ),
            )
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        log.info("Installed %s to %s", primary.name, target)
        return InstallResult.for_prefix(target, primary.name)

    def recover_interrupted_apply(self, target: Path) -> None:
        backup = target.with_name(target.name + ".bak")
        if not backup.exists():
            return
        if target.exists():
            shutil.rmtree(backup, ignore_errors=True)
            log.info("Removed stale backup %s", backup)
            return
        backup.replace(target)
        log.info("Restored interrupted install target %s", target)

    @staticmethod
    def _ensure_replaceable(target: Path) -> None:
        """Refuse to overwrite a prefix this tool did not create."""
        if not target.exists() and not target.is_symlink():
            return
        if target.is_dir() and not target.is_symlink():
            if has_install_record(target) or not any(target.iterdir()):
                return
        raise PrefixNotManaged(f"{target} exists and is not an mlir-setup install")

    @staticmethod
    def _safe_asset_filename(name: str) -> str:
        raw = str(name or "").strip()
        if not raw or raw in {".", ".."}:
            raise UnsafeArchive(f"Invalid asset name: {name!r}")
        if any(ch in raw for ch in ("/", "\\")) or Path(raw).is_absolute():
            raise UnsafeArchive(f"Invalid asset name: {name!r}")
        return raw

    def _download_asset(self, asset: ResolvedAsset, staging: Path) -> Path:
        destination = staging / self._safe_asset_filename(asset.name)
        log.info("Downloading %s", asset.name)
        bytes_done = 0
        try:
            with self.session.get(asset.url, stream=True, timeout=self.runtime.timeout) as resp:
                resp.raise_for_status()
                # GitHub redirects to a CDN host; check where we actually landed.
                validate_trusted_url(
                    str(resp.url),
                    self.runtime.trusted_asset_hosts,
                    allow_http=self.runtime.allow_insecure_http,
                )
                with destination.open("wb") as fh:
                    for chunk in resp.iter_content(chunk_size=self.runtime.download_chunk_size):
                        if chunk:
                            fh.write(chunk)
                            bytes_done += len(chunk)
        except requests.RequestException as exc:
            raise SourceUnavailable(f"Download of {asset.name} failed: {exc}") from exc
        log.info("Downloaded %s (%s)", asset.name, _format_bytes(bytes_done))
        return destination

    def _extract_companion(self, archive: Path, target: Path) -> Path:
        target.mkdir(parents=True, exist_ok=True)
        if archive.name.lower().endswith(".zip"):
            self._extract_zip(archive, target)
        else:
            self._extract_tar_gz(archive, target)

        zstd = self._find_executable(target)
        if os.name != "nt":
            zstd.chmod(zstd.stat().st_mode | 0o111)
        log.debug("Using zstd at %s", zstd)
        return zstd

    @staticmethod
    def _member_destination(root: Path, member_name: str) -> Path:
        member = validate_archive_member_path(member_name)
        dest_path = (root / Path(*member.parts)).resolve()
        resolved_root = root.resolve()
        if not str(dest_path).startswith(str(resolved_root) + os.sep) and dest_path != resolved_root:
            raise UnsafeArchive(f"Archive entry escapes extraction root: {member_name}")
        return dest_path

    def _extract_zip(self, archive: Path, target: Path) -> None:
        with zipfile.ZipFile(archive, "r") as zf:
            for info in zf.infolist():
                dest_path = self._member_destination(target, info.filename)

                # Block symlinks from archives.
                mode = (info.external_attr >> 16) & 0o170000
                if mode == 0o120000:
                    raise UnsafeArchive(f"Archive contains a symbolic link entry: {info.filename}")

                if info.is_dir():
                    dest_path.mkdir(parents=True, exist_ok=True)
                    continue

                dest_path.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(info, "r") as src, dest_path.open("wb") as dst:
                    shutil.copyfileobj(src, dst, length=1024 * 1024)

    def _extract_tar_gz(self, archive: Path, target: Path) -> None:
        with tarfile.open(archive, "r:gz") as tf:
            for member in tf.getmembers():
                if member.isdir() and member.name.replace("\\", "/").strip("/") in ("", "."):
                    continue
                if member.issym() or member.islnk():
                    raise UnsafeArchive(f"Archive contains a link entry: {member.name}")
                if member.isdir():
                    self._member_destination(target, member.name).mkdir(parents=True, exist_ok=True)
                    continue
                if not member.isfile():
                    raise UnsafeArchive(f"Archive contains a special file entry: {member.name}")

                dest_path = self._member_destination(target, member.name)
                dest_path.parent.mkdir(parents=True, exist_ok=True)
                src = tf.extractfile(member)
                if src is None:
                    continue
                with src, dest_path.open("wb") as dst:
                    shutil.copyfileobj(src, dst, length=1024 * 1024)
                dest_path.chmod(member.mode & 0o777 | 0o600)

    @staticmethod
    def _find_executable(root: Path) -> Path:
        for name in ZSTD_EXECUTABLES:
            for candidate in sorted(root.rglob(name)):
                if candidate.is_file():
                    return candidate
        raise ExtractionFailed(f"zstd executable not found in {root}")

    def _decompress_toolchain(self, zstd: Path, archive: Path, target: Path) -> None:
        target.mkdir(parents=True, exist_ok=True)
        log.info("Unpacking %s", archive.name)
        zstd_cmd = [str(zstd), "-d", str(archive), "--long=30", "--stdout"]
        tar_cmd = ["tar", "-x", "-f", "-", "-C", str(target)]
        try:
            zstd_proc = subprocess.Popen(zstd_cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, shell=False)
        except OSError as exc:
            raise ExtractionFailed(f"Could not start zstd: {exc}") from exc
        try:
            tar_proc = subprocess.Popen(
                tar_cmd, stdin=zstd_proc.stdout, stdout=subprocess.DEVNULL, stderr=subprocess.PIPE, shell=False
            )
        except OSError as exc:
            zstd_proc.kill()
            zstd_proc.wait()
            raise ExtractionFailed(f"Could not start tar: {exc}") from exc

        # Let zstd see SIGPIPE if tar exits early.
        if zstd_proc.stdout is not None:
            zstd_proc.stdout.close()
        _, tar_err = tar_proc.communicate()
        zstd_err = zstd_proc.stderr.read() if zstd_proc.stderr is not None else b""
        zstd_code = zstd_proc.wait()

        if zstd_code != 0:
            detail = zstd_err.decode("utf-8", errors="replace").strip()
            raise ExtractionFailed(f"zstd exited with status {zstd_code}: {detail}")
        if tar_proc.returncode != 0:
            detail = (tar_err or b"").decode("utf-8", errors="replace").strip()
            raise ExtractionFailed(f"tar exited with status {tar_proc.returncode}: {detail}")

    @staticmethod
    def _single_root(extracted: Path) -> Path:
        children = [p for p in extracted.iterdir()]
        if len(children) == 1 and children[0].is_dir():
            return children[0]
        return extracted

    def _atomic_apply(self, source_dir: Path, target: Path) -> None:
        backup = target.with_name(target.name + ".bak")
        moved_aside = False
        try:
            if backup.exists():
                shutil.rmtree(backup, ignore_errors=True)
            if target.exists():
                target.replace(backup)
                moved_aside = True
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(source_dir), str(target))
        except Exception:
            log.exception("Applying toolchain to %s failed. Rolling back.", target)
            if moved_aside:
                if target.exists():
                    shutil.rmtree(target, ignore_errors=True)
                if backup.exists():
                    backup.replace(target)
            raise
        else:
            if backup.exists():
                shutil.rmtree(backup, ignore_errors=True)
