from mlir_setup.common.config import AppPaths, RuntimeConfig
from mlir_setup.common.state import InstallRecord, load_install_record, save_install_record

__all__ = [
    "AppPaths",
    "RuntimeConfig",
    "InstallRecord",
    "load_install_record",
    "save_install_record",
]
