from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


log = logging.getLogger(__name__)


RECORD_FILE_NAME = ".mlir-setup-install.json"


@dataclass
class InstallRecord:
    asset_name: str
    download_url: str
    version: str
    platform: str
    architecture: str
    debug: bool = False
    installed_at_utc: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


def _record_file(prefix: Path) -> Path:
    return prefix / RECORD_FILE_NAME


def has_install_record(prefix: Path) -> bool:
    return _record_file(prefix).is_file()


def load_install_record(prefix: Path) -> InstallRecord | None:
    path = _record_file(prefix)
    if not path.exists():
        return None

    # Accept an optional UTF-8 BOM left behind by Windows editors.
    try:
        with path.open("r", encoding="utf-8-sig") as fh:
            raw: dict[str, Any] = json.load(fh)
    except ValueError as exc:
        log.warning("Ignoring unreadable install record %s: %s", path, exc)
        return None
    if not isinstance(raw, dict) or not raw.get("asset_name"):
        return None

    return InstallRecord(
        asset_name=str(raw["asset_name"]),
        download_url=str(raw.get("download_url", "")),
        version=str(raw.get("version", "")),
        platform=str(raw.get("platform", "")),
        architecture=str(raw.get("architecture", "")),
        debug=bool(raw.get("debug", False)),
        installed_at_utc=str(raw.get("installed_at_utc", "")),
    )


def save_install_record(prefix: Path, record: InstallRecord) -> None:
    path = _record_file(prefix)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    with tmp.open("w", encoding="utf-8") as fh:
        json.dump(asdict(record), fh, indent=2, sort_keys=True)
    tmp.replace(path)
