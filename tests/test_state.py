from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from mlir_setup.common.state import (
    RECORD_FILE_NAME,
    InstallRecord,
    has_install_record,
    load_install_record,
    save_install_record,
)


class StateTests(unittest.TestCase):
    def test_roundtrip(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            record = InstallRecord(
                asset_name="llvm-mlir_llvmorg-21.1.8_windows_windows-2022_X86_debug.tar.zst",
                download_url="https://github.com/o/r/releases/download/2025.12.01/a",
                version="21.1.8",
                platform="windows",
                architecture="x86",
                debug=True,
            )
            save_install_record(root, record)
            loaded = load_install_record(root)
            self.assertEqual(loaded, record)
            self.assertTrue((root / RECORD_FILE_NAME).exists())
            self.assertEqual(len(list(root.iterdir())), 1)

    def test_missing_record(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            self.assertIsNone(load_install_record(Path(td)))

    def test_bom_prefixed_record(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            (root / RECORD_FILE_NAME).write_bytes(b'\xef\xbb\xbf{"asset_name": "a", "version": "21.1.8"}')
            loaded = load_install_record(root)
            self.assertEqual(loaded.asset_name, "a")
            self.assertFalse(loaded.debug)

    def test_corrupt_record_counts_as_missing(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            (root / RECORD_FILE_NAME).write_text("{truncated", encoding="utf-8")
            with self.assertLogs("mlir_setup.common.state", level="WARNING"):
                self.assertIsNone(load_install_record(root))
            self.assertTrue(has_install_record(root))


if __name__ == "__main__":
    unittest.main()
