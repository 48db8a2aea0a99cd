"""Data model for upstream package indexes and resolved artifacts.

Upstream Index Structure:
    {
        "packages": [
            {
                "name": "arduino",
                "platforms": [
                    {
                        "architecture": "avr",
                        "version": "1.8.6",
                        "url": "...", "checksum": "SHA-256:...", "size": "...",
                        "archiveFileName": "...",
                        "toolsDependencies": [
                            {"packager": "arduino", "name": "avr-gcc", "version": "..."}
                        ]
                    }
                ],
                "tools": [
                    {
                        "name": "avr-gcc",
                        "version": "...",
                        "systems": [
                            {"host": "x86_64-linux-gnu", "url": "...", ...}
                        ]
                    }
                ]
            }
        ]
    }

All model objects are immutable. The catalog is built once per run and passed
explicitly to the components that need it.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Tuple, Union


@dataclass(frozen=True)
class ToolDependency:
    """A (packager, name, version) reference from a platform to a tool."""

    packager: str
    name: str
    version: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolDependency":
        return cls(
            packager=str(data.get("packager", "")),
            name=str(data.get("name", "")),
            version=str(data.get("version", "")),
        )

    def __str__(self) -> str:
        return f"{self.packager}/{self.name}@{self.version}"


@dataclass(frozen=True)
class System:
    """One host-specific binary of a tool."""

    host: str
    url: str
    checksum: Optional[str] = None
    size: Optional[str] = None
    archive_file_name: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "System":
        url = str(data.get("url", ""))
        return cls(
            host=str(data.get("host", "")),
            url=url,
            checksum=data.get("checksum"),
            size=_size_str(data.get("size")),
            archive_file_name=str(data.get("archiveFileName") or url.rsplit("/", 1)[-1]),
        )


@dataclass(frozen=True)
class Tool:
    """A versioned build or upload utility published by a packager."""

    name: str
    version: str
    systems: Tuple[System, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Tool":
        return cls(
            name=str(data.get("name", "")),
            version=str(data.get("version", "")),
            systems=tuple(System.from_dict(s) for s in data.get("systems") or []),
        )


@dataclass(frozen=True)
class Platform:
    """One architecture+version of a package core."""

    architecture: str
    version: str
    url: str
    checksum: Optional[str] = None
    size: Optional[str] = None
    archive_file_name: str = ""
    tool_dependencies: Tuple[ToolDependency, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Platform":
        url = str(data.get("url", ""))
        return cls(
            architecture=str(data.get("architecture", "")),
            version=str(data.get("version", "")),
            url=url,
            checksum=data.get("checksum"),
            size=_size_str(data.get("size")),
            archive_file_name=str(data.get("archiveFileName") or url.rsplit("/", 1)[-1]),
            tool_dependencies=tuple(
                ToolDependency.from_dict(d) for d in data.get("toolsDependencies") or []
            ),
        )


@dataclass(frozen=True)
class PackagerRecord:
    """Merged platforms and tools for one packager name."""

    name: str
    platforms: Tuple[Platform, ...] = ()
    tools: Tuple[Tool, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PackagerRecord":
        return cls(
            name=str(data.get("name", "")),
            platforms=tuple(Platform.from_dict(p) for p in data.get("platforms") or []),
            tools=tuple(Tool.from_dict(t) for t in data.get("tools") or []),
        )

    def extended(self, other: "PackagerRecord") -> "PackagerRecord":
        """Return a record with ``other``'s platforms and tools appended."""
        return PackagerRecord(
            name=self.name,
            platforms=self.platforms + other.platforms,
            tools=self.tools + other.tools,
        )


@dataclass(frozen=True)
class Catalog:
    """Merged view of all upstream indexes, keyed by packager name.

    Packager names are compared case-insensitively; the name seen first is
    kept for display.
    """

    records: Tuple[PackagerRecord, ...] = ()

    def __iter__(self) -> Iterator[PackagerRecord]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    def get(self, packager: str) -> Optional[PackagerRecord]:
        wanted = packager.lower()
        for record in self.records:
            if record.name.lower() == wanted:
                return record
        return None

    def find_platform(self, packager: str, architecture: str, version: str) -> Optional[Platform]:
        record = self.get(packager)
        if record is None:
            return None
        arch = architecture.lower()
        for platform in record.platforms:
            if platform.architecture.lower() == arch and platform.version == version:
                return platform
        return None

    def find_tool(self, packager: str, name: str, version: str) -> Optional[Tool]:
        record = self.get(packager)
        if record is None:
            return None
        for tool in record.tools:
            if tool.name == name and tool.version == version:
                return tool
        return None

    def platform_versions(self, packager: str, architecture: str) -> List[str]:
        """All versions published for ``packager:architecture``, in index order."""
        record = self.get(packager)
        if record is None:
            return []
        arch = architecture.lower()
        return [p.version for p in record.platforms if p.architecture.lower() == arch]


@dataclass(frozen=True)
class ArtifactRef:
    """A single archive to download for a resolved toolchain."""

    packager: str
    name: str
    version: str
    url: str
    checksum: Optional[str]
    size: Optional[str]
    archive_file_name: str
    host: Optional[str] = None

    @property
    def is_core(self) -> bool:
        return self.host is None


@dataclass
class ResolvedManifestEntry:
    """Result of resolving one (package, version, platform) combination."""

    packager: str
    architecture: str
    version: str
    target_platform: str
    core_artifact: Optional[ArtifactRef] = None
    tool_artifacts: List[ArtifactRef] = field(default_factory=list)
    missing_tools: List[ToolDependency] = field(default_factory=list)
    hard_errors: List[str] = field(default_factory=list)
    fallback_tools: List[str] = field(default_factory=list)

    @property
    def core(self) -> str:
        return f"{self.packager}:{self.architecture}"

    @property
    def outcome(self) -> "Resolution":
        """Tagged view of this entry: Resolved, MissingTools or Failed."""
        if self.hard_errors or self.core_artifact is None:
            reason = "; ".join(self.hard_errors) or f"Platform not found: {self.core}@{self.version}"
            return Failed(reason=reason, errors=tuple(self.hard_errors))
        if self.missing_tools:
            return MissingTools(tools=tuple(self.missing_tools))
        return Resolved(entry=self)


@dataclass(frozen=True)
class Resolved:
    tag: ClassVar[str] = "resolved"

    entry: ResolvedManifestEntry


@dataclass(frozen=True)
class MissingTools:
    tag: ClassVar[str] = "missing_tools"

    tools: Tuple[ToolDependency, ...]

    @property
    def reason(self) -> str:
        return "Missing tools: " + ", ".join(str(t) for t in self.tools)


@dataclass(frozen=True)
class Failed:
    tag: ClassVar[str] = "failed"

    reason: str
    errors: Tuple[str, ...] = ()


Resolution = Union[Resolved, MissingTools, Failed]


def _size_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)
