from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from mlir_setup import __version__ as MLIR_SETUP_VERSION
from mlir_setup.common.config import AppPaths, RuntimeConfig
from mlir_setup.common.errors import MlirSetupError
from mlir_setup.common.logging_utils import configure_logging
from mlir_setup.common.types import ToolchainRequest
from mlir_setup.provision.environment import SHELLS
from mlir_setup.provision.manifest_store import ManifestStore
from mlir_setup.provision.release_source import GitHubReleaseSource
from mlir_setup.provision.resolver import Resolver
from mlir_setup.provision.toolchain_installer import ToolchainInstaller


log = logging.getLogger(__name__)


def _add_target_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("version", help="LLVM version (X.Y.Z) or commit hash (7 to 40 hex characters).")
    parser.add_argument("--platform", default="host", help="host, linux, macos or windows.")
    parser.add_argument("--architecture", default="host", help="host, x86 or aarch64.")
    parser.add_argument("--debug", action="store_true", help="Use the debug build (Windows only).")
    parser.add_argument("--refresh", action="store_true", help="Rebuild the manifest before resolving.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mlir-setup", description="Install prebuilt LLVM/MLIR toolchains.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {MLIR_SETUP_VERSION}")
    parser.add_argument("--log-level", default=None, help="Log level (default: MLIR_SETUP_LOG_LEVEL or INFO).")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("update-manifest", help="Rebuild the local manifest from upstream releases.")
    sub.add_parser("versions", help="List versions available in the manifest.")

    resolve = sub.add_parser("resolve", help="Print the download location for a toolchain.")
    _add_target_arguments(resolve)
    resolve.add_argument("--companion", action="store_true", help="Resolve the zstd binary instead.")

    install = sub.add_parser("install", help="Download, unpack and expose a toolchain.")
    _add_target_arguments(install)
    install.add_argument("--prefix", default=None, help="Install directory (default: under the cache root).")
    install.add_argument("--shell", choices=SHELLS, default="posix", help="Syntax for printed exports.")
    return parser


def _ensure_manifest(store: ManifestStore, source: GitHubReleaseSource, refresh: bool) -> None:
    if refresh or not store.exists():
        store.rebuild(source)


def _run(args: argparse.Namespace, paths: AppPaths, runtime: RuntimeConfig) -> int:
    source = GitHubReleaseSource(runtime)
    store = ManifestStore(paths.manifest_path)

    if args.command == "update-manifest":
        snapshot = store.rebuild(source)
        print(f"{len(snapshot)} entries, latest release {snapshot.latest_tag or '<none>'}")
        return 0

    if args.command == "versions":
        tags, hashes = store.available_versions()
        print("Versions: " + (", ".join(tags) or "<none>"))
        print("Commits: " + (", ".join(hashes) or "<none>"))
        return 0

    _ensure_manifest(store, source, args.refresh)
    resolver = Resolver(store, source)

    if args.command == "resolve":
        if args.companion:
            asset = resolver.resolve_companion(args.version, args.platform, args.architecture, args.debug)
        else:
            asset = resolver.resolve_primary(args.version, args.platform, args.architecture, args.debug)
        print(json.dumps({"url": asset.url, "name": asset.name}, indent=2))
        return 0

    installer = ToolchainInstaller(paths, runtime, resolver)
    request = ToolchainRequest(
        version=args.version,
        platform=args.platform,
        architecture=args.architecture,
        debug=args.debug,
    )
    result = installer.install(request, prefix=Path(args.prefix) if args.prefix else None)
    environment = result.environment()
    if not environment.export_to_github_actions():
        for line in environment.shell_exports(args.shell):
            print(line)
    log.info("Toolchain ready at %s", result.prefix)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    paths = AppPaths.default()
    paths.ensure_layout()
    configure_logging(paths.logs_dir, level=args.log_level)

    try:
        runtime = RuntimeConfig.from_env()
        return _run(args, paths, runtime)
    except MlirSetupError as exc:
        log.error("%s", exc)
        return 1
    except Exception as exc:
        log.exception("Unexpected failure: %s", exc)
        return 3
