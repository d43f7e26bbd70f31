from __future__ import annotations

import io
import json
import os
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest.mock import patch

from mlir_setup.provision.cli import build_parser, main
from mlir_setup.provision.manifest_store import ManifestStore
from mlir_setup.provision.toolchain_installer import InstallResult

from release_fakes import FakeReleaseSource, december_release, october_release


class CliTests(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.home = Path(self._td.name)
        self.source = FakeReleaseSource([december_release(), october_release()])
        patches = [
            patch.dict(os.environ, {"MLIR_SETUP_HOME": str(self.home), "MLIR_SETUP_MANIFEST": ""}),
            patch("mlir_setup.provision.cli.configure_logging"),
            patch("mlir_setup.provision.cli.GitHubReleaseSource", return_value=self.source),
        ]
        for p in patches:
            p.start()
            self.addCleanup(p.stop)
        self.addCleanup(self._td.cleanup)

    def _run(self, *argv: str) -> tuple[int, str]:
        out = io.StringIO()
        with redirect_stdout(out):
            code = main(list(argv))
        return code, out.getvalue()

    def test_parser_requires_command(self) -> None:
        with self.assertRaises(SystemExit):
            build_parser().parse_args([])

    def test_update_manifest(self) -> None:
        code, out = self._run("update-manifest")
        self.assertEqual(code, 0)
        self.assertIn("latest release 2025.12.01", out)
        self.assertTrue((self.home / "manifest.json").exists())

    def test_resolve_builds_missing_manifest(self) -> None:
        code, out = self._run("resolve", "21.1.8", "--platform", "linux", "--architecture", "x86")
        self.assertEqual(code, 0)
        payload = json.loads(out)
        self.assertEqual(payload["name"], "llvm-mlir_llvmorg-21.1.8_linux_ubuntu-24.04_X86.tar.zst")
        self.assertEqual(self.source.calls[0], ("list", None))

    def test_resolve_companion(self) -> None:
        code, out = self._run("resolve", "21.1.8", "--platform", "windows", "--architecture", "x86", "--companion")
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out)["name"], "zstd-1.5.7_windows_windows-2022_X86.zip")

    def test_versions(self) -> None:
        ManifestStore(self.home / "manifest.json").rebuild(self.source)
        code, out = self._run("versions")
        self.assertEqual(code, 0)
        self.assertIn("Versions: 21.1.8, 20.1.0", out)

    def test_lookup_failures_exit_1(self) -> None:
        self.assertEqual(self._run("resolve", "19.1.0", "--platform", "linux", "--architecture", "x86")[0], 1)
        self.assertEqual(self._run("resolve", "21.1.8", "--platform", "Linux", "--architecture", "x86")[0], 1)
        self.assertEqual(self._run("versions")[0], 0)

    def test_versions_without_manifest_exit_1(self) -> None:
        self.assertEqual(self._run("versions")[0], 1)

    def test_unexpected_failure_exit_3(self) -> None:
        with patch("mlir_setup.provision.cli.Resolver.resolve_primary", side_effect=RuntimeError("boom")):
            code, _ = self._run("resolve", "21.1.8", "--platform", "linux", "--architecture", "x86")
        self.assertEqual(code, 3)

    def test_install_prints_exports_outside_actions(self) -> None:
        result = InstallResult.for_prefix(self.home / "tc", "a")
        with patch.dict(os.environ, {"GITHUB_PATH": "", "GITHUB_ENV": ""}), patch(
            "mlir_setup.provision.cli.ToolchainInstaller.install", return_value=result
        ) as install:
            code, out = self._run("install", "21.1.8", "--platform", "linux", "--architecture", "x86")
        self.assertEqual(code, 0)
        request = install.call_args.args[0]
        self.assertEqual((request.version, request.platform, request.architecture), ("21.1.8", "linux", "x86"))
        self.assertIn(f"export LLVM_DIR='{self.home / 'tc' / 'lib' / 'cmake' / 'llvm'}'", out)


if __name__ == "__main__":
    unittest.main()
