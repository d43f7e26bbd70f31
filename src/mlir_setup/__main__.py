from __future__ import annotations

from mlir_setup.provision.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
