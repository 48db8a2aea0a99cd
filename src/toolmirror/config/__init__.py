"""Configuration parsing modules for toolmirror."""

from .mirror_config import (
    ConfigError,
    MirrorConfig,
    PackageConfig,
    StoreConfig,
    default_work_root,
    parse_core,
)

__all__ = [
    "ConfigError",
    "MirrorConfig",
    "PackageConfig",
    "StoreConfig",
    "default_work_root",
    "parse_core",
]
