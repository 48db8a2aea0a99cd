"""Sync Orchestrator.

Runs one reconciliation batch end to end:

    1. Merge upstream indexes into a catalog
    2. Read the published manifest (fatal on failure)
    3. Compute the add/delete plan
    4. Package and upload every addition, one isolated scratch dir per item
    5. Rewrite the manifest once, wholesale (fatal on failure)
    6. Delete the blobs of retired versions

Per-item problems (resolution failures, missing tools, download, checksum,
extraction and upload errors) become ItemOutcome records and never stop the
batch. Manifest errors propagate and abort the run before any deletion.

Only one sync may run against a given store at a time; the manifest is read
at the start and replaced at the end without locking.
"""

import logging
import shutil
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from toolmirror.config.mirror_config import MirrorConfig, default_work_root
from toolmirror.packages.archive_utils import ExtractionError
from toolmirror.packages.downloader import ChecksumError, DownloadError
from toolmirror.packages.index_merger import IndexMerger
from toolmirror.packages.models import Catalog
from toolmirror.packages.packager import Packager, PackagingError
from toolmirror.packages.platform_utils import PlatformClassifier
from toolmirror.packages.resolver import Failed, MissingTools, ResourceResolver

from .manifest import ManifestSystem, PublishedManifest
from .reconciler import DiffPlan, PlanItem, State, StateReconciler
from .store import MANIFEST_KEY, ManifestStore, StoreError, bundle_key, read_manifest, write_manifest

logger = logging.getLogger(__name__)


class OutcomeStatus(Enum):
    ADDED = "added"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ItemOutcome:
    """What happened to one planned addition."""

    item: PlanItem
    status: OutcomeStatus
    system: Optional[ManifestSystem] = None
    reason: str = ""


@dataclass
class SyncPlan:
    """Everything computed before any side effect."""

    catalog: Catalog
    manifest: PublishedManifest
    latest_versions: Dict[str, str]
    desired: State
    current: State
    plan: DiffPlan


@dataclass
class SyncResult:
    """Summary of a sync run."""

    plan: DiffPlan
    outcomes: List[ItemOutcome] = field(default_factory=list)
    deleted: List[PlanItem] = field(default_factory=list)
    delete_failures: List[PlanItem] = field(default_factory=list)
    deletions_deferred: bool = False
    manifest_written: bool = False
    dry_run: bool = False

    def _count(self, status: OutcomeStatus) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    @property
    def added(self) -> int:
        return self._count(OutcomeStatus.ADDED)

    @property
    def skipped(self) -> int:
        return self._count(OutcomeStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(OutcomeStatus.FAILED)

    @property
    def up_to_date(self) -> bool:
        return self.plan.is_empty

    def summary(self) -> str:
        text = f"Added: {self.added}, Deleted: {len(self.deleted)}"
        if self.skipped:
            text += f", Skipped: {self.skipped} (missing tools)"
        if self.failed:
            text += f", Failed: {self.failed}"
        return text


class SyncOrchestrator:
    """Coordinates catalog merge, planning, packaging and publishing."""

    def __init__(
        self,
        config: MirrorConfig,
        store: ManifestStore,
        index_merger: Optional[IndexMerger] = None,
        resolver: Optional[ResourceResolver] = None,
        packager: Optional[Packager] = None,
        reconciler: Optional[StateReconciler] = None,
        work_root: Optional[Path] = None,
        manifest_key: str = MANIFEST_KEY,
    ):
        """Initialize orchestrator.

        Args:
            config: Mirror configuration
            store: Blob store holding bundles and the manifest
            index_merger: Upstream index merger
            resolver: Toolchain resolver
            packager: Bundle packager
            reconciler: State reconciler
            work_root: Parent directory for per-item scratch dirs
            manifest_key: Store key of the published manifest
        """
        self.config = config
        self.store = store
        self.index_merger = index_merger or IndexMerger()
        self.resolver = resolver or ResourceResolver()
        self.packager = packager or Packager()
        self.reconciler = reconciler or StateReconciler()
        self.work_root = Path(work_root) if work_root else default_work_root()
        self.manifest_key = manifest_key

    def compute_plan(self, platform: Optional[str] = None) -> SyncPlan:
        """Merge indexes, read the manifest and compute the plan.

        Args:
            platform: Restrict the plan to one platform

        Raises:
            PlatformError: If platform is not a canonical platform
            ManifestError: If the manifest cannot be read
        """
        if platform is not None:
            PlatformClassifier.validate(platform)

        logger.info("Fetching package indexes...")
        catalog = self.index_merger.merge(self.config.index_urls)
        manifest = read_manifest(self.store, self.manifest_key)

        latest = self.reconciler.latest_versions(self.config.packages, catalog)
        desired = self.reconciler.build_desired_state(latest)
        current = self.reconciler.build_current_state(manifest.entries)
        plan = self.reconciler.calculate_diff(desired, current).for_platform(platform)

        logger.info(f"Expected: {len(desired)} toolchain versions")
        logger.info(f"Current: {len(current)} toolchain versions in manifest")
        logger.info(f"To Add: {len(plan.to_add)} items")
        logger.info(f"To Delete: {len(plan.to_delete)} items")

        return SyncPlan(
            catalog=catalog,
            manifest=manifest,
            latest_versions=latest,
            desired=desired,
            current=current,
            plan=plan,
        )

    def sync(self, dry_run: bool = False, platform: Optional[str] = None) -> SyncResult:
        """Run one reconciliation batch.

        Args:
            dry_run: Compute and report the plan without side effects
            platform: Only process this platform

        Returns:
            SyncResult describing every planned item

        Raises:
            ManifestError: If the manifest cannot be read or written
        """
        context = self.compute_plan(platform)
        plan = context.plan
        result = SyncResult(plan=plan, dry_run=dry_run)

        if plan.is_empty:
            logger.info("Everything is up to date!")
            return result

        if dry_run:
            logger.info("Dry run - no changes will be made")
            return result

        if plan.to_add:
            logger.info("Packaging new toolchains")
        for item in plan.to_add:
            result.outcomes.append(self.package_item(item, context.catalog))

        added = {o.item: o.system for o in result.outcomes if o.status is OutcomeStatus.ADDED and o.system}

        deletions = list(plan.to_delete)
        if deletions and result.failed:
            logger.warning(
                f"{result.failed} addition(s) failed; deferring {len(deletions)} deletion(s) to the next run"
            )
            result.deletions_deferred = True
            deletions = []

        if added or deletions:
            logger.info("Updating manifest")
            write_manifest(self.store, context.manifest.apply(added, deletions), self.manifest_key)
            result.manifest_written = True

        if deletions:
            logger.info("Deleting retired toolchains")
        for item in deletions:
            key = bundle_key(self.bundle_name(item))
            try:
                self.store.delete(key)
                result.deleted.append(item)
            except StoreError as e:
                logger.error(f"Failed to delete {item}: {e}")
                result.delete_failures.append(item)

        logger.info(result.summary())
        return result

    @staticmethod
    def bundle_name(item: PlanItem) -> str:
        return f"{item.id}-{item.platform}-{item.version}.zip"

    def package_item(self, item: PlanItem, catalog: Catalog) -> ItemOutcome:
        """Resolve, package and upload a single planned addition.

        Args:
            item: Planned (id, version, platform)
            catalog: Merged upstream catalog

        Returns:
            ItemOutcome; never raises for per-item problems
        """
        logger.info(f"Processing: {item}")

        package = self.config.get_package(item.id)
        if package is None:
            reason = f"Package config not found for: {item.id}"
            logger.error(reason)
            return ItemOutcome(item=item, status=OutcomeStatus.FAILED, reason=reason)

        outcome = self.resolver.resolve(
            catalog, package.packager, package.architecture, item.version, item.platform
        ).outcome

        if isinstance(outcome, Failed):
            for error in outcome.errors:
                logger.error(error)
            logger.error(f"Failed to package {item}: {outcome.reason}")
            return ItemOutcome(item=item, status=OutcomeStatus.FAILED, reason=outcome.reason)

        if isinstance(outcome, MissingTools):
            logger.warning(f"Skipping {item}: {outcome.reason}")
            return ItemOutcome(item=item, status=OutcomeStatus.SKIPPED, reason=outcome.reason)

        self.work_root.mkdir(parents=True, exist_ok=True)
        work_dir = Path(tempfile.mkdtemp(prefix="toolmirror-", dir=self.work_root))
        try:
            name = self.bundle_name(item)
            bundle = self.packager.package(outcome.entry, work_dir, bundle_name=name)
            url = self.store.upload_file(bundle.path, bundle_key(name))
            system = ManifestSystem(
                host=item.platform,
                url=url,
                checksum=bundle.checksum,
                size=str(bundle.size),
                archive_file_name=name,
            )
            return ItemOutcome(item=item, status=OutcomeStatus.ADDED, system=system)
        except (PackagingError, DownloadError, ChecksumError, ExtractionError, StoreError, OSError) as e:
            logger.error(f"Failed to package {item}: {e}")
            return ItemOutcome(item=item, status=OutcomeStatus.FAILED, reason=str(e))
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)
