"""Published manifest model.

The manifest is the registry's ``packages.json``:

    {
        "schemaVersion": "1.0.0",
        "updatedAt": "2024-01-01T00:00:00.000Z",
        "packages": {
            "devices": [...], "extensions": [...], "libraries": [...],
            "toolchains": [
                {
                    "id": "arduino-avr",
                    "version": "1.8.6",
                    "systems": [
                        {"host": "linux-x64", "url": "...", "checksum": "SHA-256:...",
                         "size": "123", "archiveFileName": "..."}
                    ]
                }
            ]
        }
    }

Only the ``toolchains`` list is owned by the mirror; every other section is
carried through untouched. The document is always replaced wholesale.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .reconciler import PlanItem, version_key

SCHEMA_VERSION = "1.0.0"


class ManifestError(Exception):
    """Raised when the published manifest cannot be read, parsed or written."""

    pass


@dataclass(frozen=True)
class ManifestSystem:
    """One published bundle for one host."""

    host: str
    url: str
    checksum: str
    size: str
    archive_file_name: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ManifestSystem":
        try:
            return cls(
                host=str(data["host"]),
                url=str(data.get("url", "")),
                checksum=str(data.get("checksum", "")),
                size=str(data.get("size", "")),
                archive_file_name=str(data.get("archiveFileName", "")),
            )
        except (KeyError, TypeError) as e:
            raise ManifestError(f"Invalid toolchain system entry: {data!r}") from e

    def to_dict(self) -> Dict[str, str]:
        return {
            "host": self.host,
            "url": self.url,
            "checksum": self.checksum,
            "size": self.size,
            "archiveFileName": self.archive_file_name,
        }


@dataclass
class ManifestEntry:
    """All published systems of one (id, version)."""

    id: str
    version: str
    systems: List[ManifestSystem] = field(default_factory=list)

    @property
    def hosts(self) -> List[str]:
        return [s.host for s in self.systems]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ManifestEntry":
        if not isinstance(data, Mapping) or "id" not in data or "version" not in data:
            raise ManifestError(f"Invalid toolchain entry: {data!r}")
        return cls(
            id=str(data["id"]),
            version=str(data["version"]),
            systems=[ManifestSystem.from_dict(s) for s in data.get("systems") or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "version": self.version,
            "systems": [s.to_dict() for s in self.systems],
        }

    def put_system(self, system: ManifestSystem) -> None:
        """Add ``system``, replacing any system with the same host."""
        self.systems = [s for s in self.systems if s.host != system.host]
        self.systems.append(system)


def sort_entries(entries: List[ManifestEntry]) -> List[ManifestEntry]:
    """Sort by id ascending, then version descending; hosts ascending."""
    ordered = sorted(entries, key=lambda e: version_key(e.version), reverse=True)
    ordered.sort(key=lambda e: e.id)
    for entry in ordered:
        entry.systems.sort(key=lambda s: s.host)
    return ordered


class PublishedManifest:
    """The registry document with its toolchain list parsed."""

    def __init__(self, document: Optional[Dict[str, Any]] = None):
        """Initialize from a parsed document.

        Args:
            document: Parsed packages.json. If None, starts from an empty registry.

        Raises:
            ManifestError: If the document structure is invalid
        """
        if document is None:
            document = self.empty_document()
        if not isinstance(document, dict):
            raise ManifestError("Manifest must be a JSON object")

        packages = document.get("packages")
        if packages is None:
            packages = {}
        if not isinstance(packages, dict):
            raise ManifestError("Manifest 'packages' must be an object")
        toolchains = packages.get("toolchains")
        if toolchains is None:
            toolchains = []
        if not isinstance(toolchains, list):
            raise ManifestError("Manifest 'packages.toolchains' must be an array")

        self._document = copy.deepcopy(document)
        self.entries: List[ManifestEntry] = [ManifestEntry.from_dict(t) for t in toolchains]

    @staticmethod
    def empty_document() -> Dict[str, Any]:
        return {
            "schemaVersion": SCHEMA_VERSION,
            "updatedAt": _utc_now(),
            "packages": {
                "devices": [],
                "extensions": [],
                "libraries": [],
                "toolchains": [],
            },
        }

    def find(self, package_id: str, version: str) -> Optional[ManifestEntry]:
        for entry in self.entries:
            if entry.id == package_id and entry.version == version:
                return entry
        return None

    def apply(
        self,
        added: Mapping[PlanItem, ManifestSystem],
        deleted: Iterable[PlanItem] = (),
    ) -> "PublishedManifest":
        """Return a new manifest with ``deleted`` removed and ``added`` put in place.

        Args:
            added: Packaged items and their published system records
            deleted: Items whose systems should be removed

        Returns:
            New PublishedManifest; this instance is left unchanged
        """
        result = PublishedManifest(self.to_dict(touch=False))

        for item in deleted:
            entry = result.find(item.id, item.version)
            if entry is not None:
                entry.systems = [s for s in entry.systems if s.host != item.platform]

        result.entries = [e for e in result.entries if e.systems]

        for item, system in added.items():
            entry = result.find(item.id, item.version)
            if entry is None:
                entry = ManifestEntry(id=item.id, version=item.version)
                result.entries.append(entry)
            entry.put_system(system)

        result.entries = sort_entries(result.entries)
        return result

    def to_dict(self, touch: bool = True) -> Dict[str, Any]:
        """Serialize back to a packages.json document.

        Args:
            touch: Refresh ``updatedAt``
        """
        document = copy.deepcopy(self._document)
        packages = dict(document.get("packages") or {})
        packages["toolchains"] = [e.to_dict() for e in self.entries]
        document["packages"] = packages
        if touch:
            document["updatedAt"] = _utc_now()
        return document


def merge_manifests(base: PublishedManifest, fragments: Iterable[PublishedManifest]) -> PublishedManifest:
    """Fold manifest fragments produced by separate packaging jobs into ``base``.

    Systems are merged per (id, version) by host; a fragment's system replaces
    the base system for the same host.

    Args:
        base: Current published manifest
        fragments: Manifests written by individual jobs, applied in order

    Returns:
        New merged manifest
    """
    result = PublishedManifest(base.to_dict(touch=False))
    for fragment in fragments:
        for fragment_entry in fragment.entries:
            entry = result.find(fragment_entry.id, fragment_entry.version)
            if entry is None:
                entry = ManifestEntry(id=fragment_entry.id, version=fragment_entry.version)
                result.entries.append(entry)
            for system in fragment_entry.systems:
                entry.put_system(system)
    result.entries = sort_entries(result.entries)
    return result


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
