from __future__ import annotations

import logging
import os
from pathlib import Path


LOG_FILE_NAME = "mlir_setup.log"


def resolve_level(level: str | None = None) -> str:
    return (level or os.environ.get("MLIR_SETUP_LOG_LEVEL", "") or "INFO").strip().upper()


def configure_logging(log_dir: Path, level: str | None = None) -> Path:
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / LOG_FILE_NAME
    logging.basicConfig(
        level=getattr(logging, resolve_level(level), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        handlers=[
            logging.FileHandler(log_path, encoding="utf-8"),
            logging.StreamHandler(),
        ],
    )
    # urllib3 logs every connection at DEBUG; keep it out of the toolchain log.
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    return log_path
