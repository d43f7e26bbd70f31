from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import MutableMapping


log = logging.getLogger(__name__)

SHELLS = ("posix", "powershell")


def _merge_path(entry: str, existing: str = "") -> str:
    merged: list[str] = []
    seen: set[str] = set()
    for part in [entry, *existing.split(os.pathsep)]:
        p = str(part).strip()
        if not p:
            continue
        key = os.path.normcase(os.path.normpath(p))
        if key in seen:
            continue
        seen.add(key)
        merged.append(p)
    return os.pathsep.join(merged)


def _posix_quote(value: str) -> str:
    return "'" + value.replace("'", "'\"'\"'") + "'"


def _powershell_quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


@dataclass(frozen=True)
class ToolchainEnvironment:
    bin_dir: Path
    llvm_dir: Path
    mlir_dir: Path

    def variables(self) -> dict[str, str]:
        return {"LLVM_DIR": str(self.llvm_dir), "MLIR_DIR": str(self.mlir_dir)}

    def apply(self, environ: MutableMapping[str, str] | None = None) -> None:
        env = os.environ if environ is None else environ
        env["PATH"] = _merge_path(str(self.bin_dir), env.get("PATH", ""))
        env.update(self.variables())

    def export_to_github_actions(self, environ: MutableMapping[str, str] | None = None) -> bool:
        """Append to the runner's ``GITHUB_PATH``/``GITHUB_ENV`` files when running in Actions.

        The same values are applied to ``environ`` so later steps of this process see them too.
        """
        env = os.environ if environ is None else environ
        path_file = env.get("GITHUB_PATH", "").strip()
        env_file = env.get("GITHUB_ENV", "").strip()
        if not path_file or not env_file:
            return False

        with open(path_file, "a", encoding="utf-8") as fh:
            fh.write(f"{self.bin_dir}\n")
        with open(env_file, "a", encoding="utf-8") as fh:
            for name, value in self.variables().items():
                fh.write(f"{name}={value}\n")
        self.apply(env)
        log.info("Exported toolchain location to GitHub Actions environment files")
        return True

    def shell_exports(self, shell: str = "posix") -> list[str]:
        if shell == "posix":
            lines = [f'export PATH={_posix_quote(str(self.bin_dir))}:"$PATH"']
            lines += [f"export {k}={_posix_quote(v)}" for k, v in self.variables().items()]
            return lines
        if shell == "powershell":
            lines = [f"$env:PATH = {_powershell_quote(str(self.bin_dir))} + [IO.Path]::PathSeparator + $env:PATH"]
            lines += [f"$env:{k} = {_powershell_quote(v)}" for k, v in self.variables().items()]
            return lines
        raise ValueError(f"Unknown shell {shell!r}. Expected one of: {', '.join(SHELLS)}.")
