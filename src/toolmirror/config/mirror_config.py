"""
Mirror configuration loading.

The configuration is a declarative JSON document listing the packages to
mirror and any extra board-manager index URLs:

    {
        "packages": [
            {"id": "arduino-avr", "core": "arduino:avr"},
            {"id": "esp32", "core": "esp32:esp32"}
        ],
        "indexSources": [
            "https://espressif.github.io/arduino-esp32/package_esp32_index.json"
        ]
    }

Blob-store settings are read from the environment so credentials never live
in the configuration file.
"""

import json
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from toolmirror.packages.index_merger import PRIMARY_INDEX_URL

DEFAULT_BUCKET = "openblock-registry"
DEFAULT_PUBLIC_URL = "https://registry.openblock.cc"


class ConfigError(Exception):
    """Exception raised for mirror configuration errors."""

    pass


def parse_core(core: str) -> Tuple[str, str]:
    """Split a core string such as "arduino:avr" into (packager, architecture).

    Raises:
        ConfigError: If the core is not "packager:architecture"
    """
    if not isinstance(core, str):
        raise ConfigError(f"Invalid core format: {core!r} (expected: packager:architecture)")
    parts = core.split(":")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise ConfigError(f"Invalid core format: {core} (expected: packager:architecture)")
    return parts[0], parts[1]


@dataclass(frozen=True)
class PackageConfig:
    """One package the mirror manages."""

    id: str
    core: str

    @property
    def packager(self) -> str:
        return parse_core(self.core)[0]

    @property
    def architecture(self) -> str:
        return parse_core(self.core)[1]


@dataclass(frozen=True)
class MirrorConfig:
    """Packages to mirror and the upstream indexes to read them from."""

    packages: Tuple[PackageConfig, ...] = ()
    index_sources: Tuple[str, ...] = ()
    source_path: Optional[Path] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], source_path: Optional[Path] = None) -> "MirrorConfig":
        """Build a config from a parsed JSON document.

        Raises:
            ConfigError: If the document is malformed
        """
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a JSON object")

        raw_packages = data.get("packages", [])
        if not isinstance(raw_packages, list):
            raise ConfigError("'packages' must be an array")

        packages = []
        seen = set()
        for index, raw in enumerate(raw_packages):
            if not isinstance(raw, dict):
                raise ConfigError(f"packages[{index}] must be an object")
            pkg_id = raw.get("id")
            if not pkg_id:
                raise ConfigError(f"packages[{index}]: missing id field")
            if "core" not in raw or not raw["core"]:
                raise ConfigError(f"packages[{index}] ({pkg_id}): missing core field")
            parse_core(raw["core"])
            if pkg_id in seen:
                raise ConfigError(f"Duplicate package id: {pkg_id}")
            seen.add(pkg_id)
            packages.append(PackageConfig(id=str(pkg_id), core=raw["core"]))

        sources = data.get("indexSources", [])
        if not isinstance(sources, list) or not all(isinstance(u, str) for u in sources):
            raise ConfigError("'indexSources' must be an array of URLs")

        return cls(packages=tuple(packages), index_sources=tuple(sources), source_path=source_path)

    @classmethod
    def load(cls, path: Path) -> "MirrorConfig":
        """Load configuration from a JSON file.

        Raises:
            ConfigError: If the file doesn't exist or cannot be parsed
        """
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Failed to parse {path}: {e}") from e
        return cls.from_dict(data, source_path=path)

    @property
    def index_urls(self) -> Tuple[str, ...]:
        """Primary index first, then configured sources, without duplicates."""
        urls = [PRIMARY_INDEX_URL]
        for url in self.index_sources:
            if url not in urls:
                urls.append(url)
        return tuple(urls)

    @property
    def package_ids(self) -> Tuple[str, ...]:
        return tuple(p.id for p in self.packages)

    def get_package(self, package_id: str) -> Optional[PackageConfig]:
        for package in self.packages:
            if package.id == package_id:
                return package
        return None


@dataclass(frozen=True)
class StoreConfig:
    """Where bundles and the published manifest live."""

    local_dir: Optional[Path] = None
    endpoint: Optional[str] = None
    access_key: Optional[str] = field(default=None, repr=False)
    secret_key: Optional[str] = field(default=None, repr=False)
    bucket: str = DEFAULT_BUCKET
    public_url: str = DEFAULT_PUBLIC_URL
    secure: bool = True

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "StoreConfig":
        """Read store settings from TOOLMIRROR_* environment variables."""
        env = os.environ if environ is None else environ
        local_dir = env.get("TOOLMIRROR_STORE_DIR")
        return cls(
            local_dir=Path(local_dir).resolve() if local_dir else None,
            endpoint=env.get("TOOLMIRROR_S3_ENDPOINT") or None,
            access_key=env.get("TOOLMIRROR_S3_ACCESS_KEY") or None,
            secret_key=env.get("TOOLMIRROR_S3_SECRET_KEY") or None,
            bucket=env.get("TOOLMIRROR_S3_BUCKET") or DEFAULT_BUCKET,
            public_url=(env.get("TOOLMIRROR_PUBLIC_URL") or DEFAULT_PUBLIC_URL).rstrip("/"),
            secure=env.get("TOOLMIRROR_S3_SECURE", "1").lower() not in ("0", "false", "no"),
        )

    def validate(self) -> None:
        """Check that a usable store is configured.

        Raises:
            ConfigError: If neither a local directory nor S3 credentials are set
        """
        if self.local_dir is not None:
            return
        if not (self.endpoint and self.access_key and self.secret_key):
            raise ConfigError(
                "Blob store not configured. Set TOOLMIRROR_STORE_DIR, or "
                + "TOOLMIRROR_S3_ENDPOINT, TOOLMIRROR_S3_ACCESS_KEY and TOOLMIRROR_S3_SECRET_KEY"
            )


def default_work_root(environ: Optional[Mapping[str, str]] = None) -> Path:
    """Scratch root for packaging, overridable with TOOLMIRROR_WORK_DIR."""
    env = os.environ if environ is None else environ
    work_env = env.get("TOOLMIRROR_WORK_DIR")
    if work_env:
        return Path(work_env).resolve()
    return Path(tempfile.gettempdir())
