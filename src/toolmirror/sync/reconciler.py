"""State reconciliation between upstream and the published manifest.

Desired State:
    For every configured package, the single latest upstream version mapped
    to the full set of canonical platforms. Whether every platform can
    actually be packaged is decided later, at packaging time.

Current State:
    For every entry of the published manifest, the set of hosts present.

Diff:
    toAdd     every desired (id, version, platform) not yet published
    toDelete  every published platform of a superseded version of a managed
              id. Ids that are not desired are never touched, so packages
              dropped from configuration stay published.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, NamedTuple, Optional, Tuple

from toolmirror.config.mirror_config import PackageConfig
from toolmirror.packages.models import Catalog
from toolmirror.packages.platform_utils import CANONICAL_PLATFORMS

logger = logging.getLogger(__name__)

State = Dict[str, FrozenSet[str]]

_LEADING_DIGITS = re.compile(r"\d+")


def version_key(version: str) -> Tuple[int, ...]:
    """Ordering key for dotted versions.

    Each dot-separated component compares by its leading integer (0 when it
    has none). Trailing zero components are dropped so that missing
    components compare as zero: "1.2" == "1.2.0" < "1.2.1".
    """
    parts = []
    for component in version.split("."):
        match = _LEADING_DIGITS.match(component.strip())
        parts.append(int(match.group(0)) if match else 0)
    while parts and parts[-1] == 0:
        parts.pop()
    return tuple(parts)


def make_key(package_id: str, version: str) -> str:
    return f"{package_id}@{version}"


def split_key(key: str) -> Tuple[str, str]:
    package_id, _, version = key.rpartition("@")
    return package_id, version


class PlanItem(NamedTuple):
    """One (id, version, platform) unit of work."""

    id: str
    version: str
    platform: str

    @property
    def key(self) -> str:
        return make_key(self.id, self.version)

    def __str__(self) -> str:
        return f"{self.id}@{self.version}#{self.platform}"


@dataclass
class DiffPlan:
    """Additions and deletions needed to reach the desired state."""

    to_add: List[PlanItem] = field(default_factory=list)
    to_delete: List[PlanItem] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.to_add and not self.to_delete

    def for_platform(self, platform: Optional[str]) -> "DiffPlan":
        """Restrict the plan to a single platform (None keeps everything)."""
        if platform is None:
            return DiffPlan(to_add=list(self.to_add), to_delete=list(self.to_delete))
        return DiffPlan(
            to_add=[item for item in self.to_add if item.platform == platform],
            to_delete=[item for item in self.to_delete if item.platform == platform],
        )


class StateReconciler:
    """Computes desired/current state and the add/delete plan between them."""

    def __init__(self, platforms: Tuple[str, ...] = CANONICAL_PLATFORMS):
        """Initialize reconciler.

        Args:
            platforms: Platforms every desired version is expected on
        """
        self.platforms = frozenset(platforms)

    def latest_versions(self, packages: Iterable[PackageConfig], catalog: Catalog) -> Dict[str, str]:
        """Find the latest upstream version of each configured package.

        Args:
            packages: Configured packages
            catalog: Merged upstream catalog

        Returns:
            Map of package id -> latest version (packages with no versions are omitted)
        """
        latest: Dict[str, str] = {}
        for package in packages:
            versions = catalog.platform_versions(package.packager, package.architecture)
            if not versions:
                logger.warning(f"{package.id}: no versions found in package index")
                continue
            latest[package.id] = max(versions, key=version_key)
            logger.info(f"{package.id}: latest version is {latest[package.id]}")
        return latest

    def build_desired_state(self, latest_versions: Mapping[str, str]) -> State:
        """Map each latest id@version to the full platform set."""
        return {make_key(pkg_id, version): self.platforms for pkg_id, version in latest_versions.items()}

    @staticmethod
    def build_current_state(entries: Iterable) -> State:
        """Build current state from manifest entries.

        Args:
            entries: Objects with ``id``, ``version`` and ``hosts``

        Returns:
            Map of id@version -> published hosts
        """
        current: State = {}
        for entry in entries:
            key = make_key(entry.id, entry.version)
            current[key] = current.get(key, frozenset()) | frozenset(entry.hosts)
        return current

    @staticmethod
    def calculate_diff(desired: Mapping[str, FrozenSet[str]], current: Mapping[str, FrozenSet[str]]) -> DiffPlan:
        """Calculate the plan that turns ``current`` into ``desired``.

        Args:
            desired: id@version -> expected platforms
            current: id@version -> published platforms

        Returns:
            DiffPlan with deterministic (sorted) item order
        """
        plan = DiffPlan()

        managed_ids = {split_key(key)[0] for key in desired}

        for key in sorted(desired):
            package_id, version = split_key(key)
            present = current.get(key, frozenset())
            for platform in sorted(desired[key]):
                if platform not in present:
                    plan.to_add.append(PlanItem(package_id, version, platform))

        for key in sorted(current):
            package_id, version = split_key(key)
            if package_id not in managed_ids or key in desired:
                continue
            for platform in sorted(current[key]):
                plan.to_delete.append(PlanItem(package_id, version, platform))

        return plan
