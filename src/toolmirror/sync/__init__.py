"""Reconciliation of upstream toolchains against the published manifest."""

from .manifest import ManifestEntry, ManifestError, ManifestSystem, PublishedManifest, merge_manifests
from .orchestrator import ItemOutcome, OutcomeStatus, SyncOrchestrator, SyncPlan, SyncResult
from .reconciler import DiffPlan, PlanItem, StateReconciler, version_key
from .store import (
    LocalManifestStore,
    ManifestStore,
    MinioManifestStore,
    StoreError,
    create_store,
    read_manifest,
    write_manifest,
)

__all__ = [
    "ManifestEntry",
    "ManifestError",
    "ManifestSystem",
    "PublishedManifest",
    "merge_manifests",
    "ItemOutcome",
    "OutcomeStatus",
    "SyncOrchestrator",
    "SyncPlan",
    "SyncResult",
    "DiffPlan",
    "PlanItem",
    "StateReconciler",
    "version_key",
    "LocalManifestStore",
    "ManifestStore",
    "MinioManifestStore",
    "StoreError",
    "create_store",
    "read_manifest",
    "write_manifest",
]
