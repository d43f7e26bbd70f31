from __future__ import annotations

import unittest

from mlir_setup.common.asset_names import (
    arch_label,
    build_asset_name,
    build_match_pattern,
    find_companion_asset,
    parse_asset_name,
    parse_asset_version,
    parse_companion_name,
)
from mlir_setup.common.errors import UnparseableAssetName, UnparseableAssetVersion
from mlir_setup.common.identifiers import ARCHITECTURES, PLATFORMS
from mlir_setup.common.types import ReleaseAsset


def _asset(name: str) -> ReleaseAsset:
    return ReleaseAsset(name=name, download_url=f"https://github.com/o/r/releases/download/2025.12.01/{name}")


class ParseAssetNameTests(unittest.TestCase):
    def test_runner_image_label(self) -> None:
        meta = parse_asset_name("llvm-mlir_llvmorg-21.1.8_linux_ubuntu-24.04_X86.tar.zst")
        self.assertEqual(meta.platform, "linux")
        self.assertEqual(meta.architecture, "x86")
        self.assertEqual(meta.os_label, "ubuntu-24.04")
        self.assertFalse(meta.debug)

    def test_label_with_underscore_and_debug(self) -> None:
        meta = parse_asset_name("llvm-mlir_llvmorg-21.1.8_windows_X64_x86_X86_debug.tar.zst")
        self.assertEqual(meta.platform, "windows")
        self.assertEqual(meta.os_label, "X64_x86")
        self.assertTrue(meta.debug)

    def test_tokens_are_case_insensitive(self) -> None:
        meta = parse_asset_name("llvm-mlir_f8cb798_MacOS_macos-14_aarch64.tar.zst")
        self.assertEqual(meta.platform, "macos")
        self.assertEqual(meta.architecture, "aarch64")

    def test_rejects_non_archives(self) -> None:
        for name in (
            "zstd-1.5.7_linux_ubuntu-24.04_X86.tar.gz",
            "llvm-mlir_llvmorg-21.1.8_linux_ubuntu-24.04_X86.tar.zst.sha256",
            "llvm-mlir_llvmorg-21.1.8_linux_X86.tar.zst",
            "llvm-mlir_llvmorg-21.1.8_solaris_sol-11_X86.tar.zst",
            "llvm-mlir_llvmorg-21.1.8_linux_ubuntu-24.04_RISCV.tar.zst",
        ):
            with self.assertRaises(UnparseableAssetName, msg=name):
                parse_asset_name(name)


class ParseAssetVersionTests(unittest.TestCase):
    def test_release_and_commit_forms(self) -> None:
        self.assertEqual(parse_asset_version("llvm-mlir_llvmorg-21.1.8_linux_ubuntu-24.04_X86.tar.zst"), "21.1.8")
        self.assertEqual(parse_asset_version("llvm-mlir_F8CB798_macos_macos-14_AArch64.tar.zst"), "f8cb798")

    def test_unparseable_version(self) -> None:
        with self.assertRaises(UnparseableAssetVersion):
            parse_asset_version("llvm-mlir_main_linux_ubuntu-24.04_X86.tar.zst")


class BuildAssetNameTests(unittest.TestCase):
    def test_round_trip_every_target(self) -> None:
        for platform in PLATFORMS:
            for architecture in ARCHITECTURES:
                for debug in (False, True):
                    for version in ("21.1.8", "f8cb798"):
                        with self.subTest(platform=platform, architecture=architecture, debug=debug, version=version):
                            name = build_asset_name(version, platform, architecture, debug)
                            meta = parse_asset_name(name)
                            self.assertEqual(
                                (meta.platform, meta.architecture, meta.debug),
                                (platform, architecture, debug),
                            )
                            self.assertEqual(parse_asset_version(name), version)
                            self.assertIsNotNone(build_match_pattern(platform, architecture, debug).match(name))
                            self.assertIsNone(build_match_pattern(platform, architecture, not debug).match(name))

    def test_defaults_to_legacy_label(self) -> None:
        name = build_asset_name("21.1.8", "macos", "aarch64")
        self.assertEqual(name, "llvm-mlir_llvmorg-21.1.8_macos_arm64_AArch64.tar.zst")

    def test_explicit_label(self) -> None:
        name = build_asset_name("21.1.8", "linux", "x86", os_label="ubuntu-24.04")
        self.assertEqual(name, "llvm-mlir_llvmorg-21.1.8_linux_ubuntu-24.04_X86.tar.zst")

    def test_legacy_labels(self) -> None:
        self.assertEqual(arch_label("linux", "x86"), "x86_64")
        self.assertEqual(arch_label("windows", "aarch64"), "Arm64")
        with self.assertRaises(ValueError):
            arch_label("solaris", "x86")


class CompanionNameTests(unittest.TestCase):
    def test_parse(self) -> None:
        self.assertEqual(parse_companion_name("zstd-1.5.7_windows_windows-2022_X86.zip"), ("windows", "x86"))
        self.assertEqual(parse_companion_name("zstd-1.5.7_linux_AArch64.tar.gz"), ("linux", "aarch64"))

    def test_rejects_wrong_extension_or_prefix(self) -> None:
        for name in (
            "zstd-1.5.7_windows_windows-2022_X86.tar.gz",
            "zstd-1.5.7_linux_ubuntu-24.04_X86.zip",
            "zstd_linux_ubuntu-24.04_X86.tar.gz",
            "llvm-mlir_llvmorg-21.1.8_linux_ubuntu-24.04_X86.tar.zst",
        ):
            with self.assertRaises(UnparseableAssetName, msg=name):
                parse_companion_name(name)

    def test_find_companion_asset(self) -> None:
        assets = [
            _asset("llvm-mlir_llvmorg-21.1.8_linux_ubuntu-24.04_X86.tar.zst"),
            _asset("zstd-1.5.7_macos_macos-14_AArch64.tar.gz"),
            _asset("zstd-1.5.7_linux_ubuntu-24.04_X86.tar.gz"),
        ]
        found = find_companion_asset(assets, "linux", "x86")
        self.assertIsNotNone(found)
        self.assertEqual(found.name, "zstd-1.5.7_linux_ubuntu-24.04_X86.tar.gz")
        self.assertIsNone(find_companion_asset(assets, "windows", "x86"))


if __name__ == "__main__":
    unittest.main()
