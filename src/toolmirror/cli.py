"""
Command-line interface for toolmirror.

This module provides the `toolmirror` CLI tool for mirroring board-support
toolchains into the published registry manifest.
"""

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from toolmirror import __version__
from toolmirror.cli_utils import ErrorFormatter, PlanPrinter, setup_logging
from toolmirror.config import ConfigError, MirrorConfig, StoreConfig
from toolmirror.packages import (
    CANONICAL_PLATFORMS,
    IndexMerger,
    PackageDownloader,
    Packager,
    create_session,
)
from toolmirror.sync import (
    LocalManifestStore,
    ManifestError,
    PublishedManifest,
    SyncOrchestrator,
    create_store,
    merge_manifests,
)
from toolmirror.sync.store import MANIFEST_KEY

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = Path("toolchains.json")
FRAGMENT_PREFIX = "packages-json-"


@dataclass
class SyncArgs:
    """Arguments for the sync command."""

    config_path: Path
    dry_run: bool = False
    platform: Optional[str] = None
    work_dir: Optional[Path] = None
    verbose: bool = False
    quiet: bool = False
    log_file: Optional[Path] = None


@dataclass
class DiffArgs:
    """Arguments for the diff command."""

    config_path: Path
    manifest_path: Optional[Path] = None
    platform: Optional[str] = None
    verbose: bool = False


@dataclass
class CheckArgs:
    """Arguments for the check command."""

    config_path: Path
    verbose: bool = False


@dataclass
class MergeArgs:
    """Arguments for the merge command."""

    base_path: Path
    artifacts_dir: Path
    output_path: Optional[Path] = None
    verbose: bool = False


def sync_command(args: SyncArgs) -> None:
    """Sync toolchains between configuration and the published manifest.

    Examples:
        toolmirror sync                         # Sync everything
        toolmirror sync --dry-run               # Show what would change
        toolmirror sync --platform linux-x64    # Only one platform
    """
    setup_logging(verbose=args.verbose, quiet=args.quiet, log_file=args.log_file)
    print(f"toolmirror sync v{__version__}")

    try:
        config = MirrorConfig.load(args.config_path)
        store = create_store(StoreConfig.from_env())

        session = create_session()
        orchestrator = SyncOrchestrator(
            config=config,
            store=store,
            index_merger=IndexMerger(session=session),
            packager=Packager(downloader=PackageDownloader(session=session, show_progress=not args.quiet)),
            work_root=args.work_dir,
        )
        result = orchestrator.sync(dry_run=args.dry_run, platform=args.platform)

        if result.up_to_date:
            ErrorFormatter.print_success("Everything is up to date!")
            sys.exit(0)

        if result.dry_run:
            print()
            print("Dry run - no changes made")
            PlanPrinter.print_plan(result.plan)
            sys.exit(0)

        for outcome in result.outcomes:
            if outcome.reason:
                print(f"  {outcome.status.value:>7}  {outcome.item}: {outcome.reason}")

        if result.failed or result.delete_failures:
            ErrorFormatter.print_warning(result.summary())
            sys.exit(1)

        ErrorFormatter.print_success(result.summary())
        sys.exit(0)

    except FileNotFoundError as e:
        ErrorFormatter.handle_file_not_found(e)
    except ConfigError as e:
        ErrorFormatter.handle_config_error(e)
    except ManifestError as e:
        ErrorFormatter.handle_manifest_error(e)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def diff_command(args: DiffArgs) -> None:
    """Show the add/delete plan without changing anything.

    Examples:
        toolmirror diff                             # Against the configured store
        toolmirror diff --manifest packages.json    # Against a local manifest file
    """
    setup_logging(verbose=args.verbose)

    try:
        config = MirrorConfig.load(args.config_path)
        if args.manifest_path is not None:
            store = LocalManifestStore(args.manifest_path.parent)
            manifest_key = args.manifest_path.name
        else:
            store = create_store(StoreConfig.from_env())
            manifest_key = MANIFEST_KEY

        orchestrator = SyncOrchestrator(config=config, store=store, manifest_key=manifest_key)
        context = orchestrator.compute_plan(platform=args.platform)

        print()
        PlanPrinter.print_plan(context.plan)
        sys.exit(0)

    except FileNotFoundError as e:
        ErrorFormatter.handle_file_not_found(e)
    except ConfigError as e:
        ErrorFormatter.handle_config_error(e)
    except ManifestError as e:
        ErrorFormatter.handle_manifest_error(e)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def check_command(args: CheckArgs) -> None:
    """Validate the configuration and probe every upstream index.

    Unreachable indexes are warnings; configured cores missing from the merged
    catalog are errors.
    """
    setup_logging(verbose=args.verbose)

    try:
        config = MirrorConfig.load(args.config_path)
        merger = IndexMerger()

        problems: List[str] = []
        for probe in merger.probe(config.index_urls):
            if not probe.ok:
                ErrorFormatter.print_warning(f"Board Manager URL: {probe.message}")

        catalog = merger.merge(config.index_urls)
        for package in config.packages:
            record = catalog.get(package.packager)
            if record is None:
                problems.append(f"{package.id}: packager '{package.packager}' not found in package index")
            elif not catalog.platform_versions(package.packager, package.architecture):
                problems.append(
                    f"{package.id}: architecture '{package.architecture}' not found "
                    + f"for packager '{package.packager}'"
                )

        if problems:
            ErrorFormatter.print_error("Check failed!", "\n".join(problems))
            sys.exit(1)

        ErrorFormatter.print_success(f"{len(config.packages)} package(s) OK")
        sys.exit(0)

    except FileNotFoundError as e:
        ErrorFormatter.handle_file_not_found(e)
    except ConfigError as e:
        ErrorFormatter.handle_config_error(e)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def load_manifest_file(path: Path) -> PublishedManifest:
    """Load a manifest document from a local file.

    Raises:
        ManifestError: If the file cannot be read or parsed
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            return PublishedManifest(json.load(f))
    except (OSError, json.JSONDecodeError) as e:
        raise ManifestError(f"Failed to read {path}: {e}") from e


def find_fragments(artifacts_dir: Path) -> List[Path]:
    """Find per-job manifest fragments ({artifacts_dir}/packages-json-*/packages.json)."""
    fragments = []
    for entry in sorted(artifacts_dir.iterdir()):
        if entry.is_dir() and entry.name.startswith(FRAGMENT_PREFIX):
            candidate = entry / "packages.json"
            if candidate.exists():
                fragments.append(candidate)
    return fragments


def merge_command(args: MergeArgs) -> None:
    """Merge manifest fragments from parallel packaging jobs into one manifest."""
    setup_logging(verbose=args.verbose)

    try:
        if not args.artifacts_dir.is_dir():
            raise FileNotFoundError(f"Artifacts directory not found: {args.artifacts_dir}")

        base = load_manifest_file(args.base_path) if args.base_path.exists() else PublishedManifest()
        logger.info(f"Base toolchains: {len(base.entries)}")

        fragments = []
        for path in find_fragments(args.artifacts_dir):
            try:
                fragments.append(load_manifest_file(path))
                logger.info(f"Read: {path.parent.name}/{path.name}")
            except ManifestError as e:
                logger.warning(str(e))

        if not fragments:
            ErrorFormatter.print_warning("No artifacts found, nothing to merge")
            sys.exit(0)

        merged = merge_manifests(base, fragments)
        output = args.output_path or args.base_path
        store = LocalManifestStore(output.parent)
        store.write_json(output.name, merged.to_dict())

        ErrorFormatter.print_success(f"Merged {len(fragments)} fragment(s): {len(merged.entries)} toolchains")
        sys.exit(0)

    except FileNotFoundError as e:
        ErrorFormatter.handle_file_not_found(e)
    except ManifestError as e:
        ErrorFormatter.handle_manifest_error(e)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def _add_config_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help="Mirror configuration file (default: toolchains.json)",
    )


def _add_verbose_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose output",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="toolmirror",
        description="toolmirror - Board-support toolchain mirror",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"toolmirror {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Sync command
    sync_parser = subparsers.add_parser(
        "sync",
        help="Package new toolchains and retire superseded ones",
    )
    _add_config_argument(sync_parser)
    sync_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only show what would be done",
    )
    sync_parser.add_argument(
        "-p",
        "--platform",
        default=None,
        choices=CANONICAL_PLATFORMS,
        help="Only process this platform",
    )
    sync_parser.add_argument(
        "--work-dir",
        type=Path,
        default=None,
        help="Scratch directory (default: $TOOLMIRROR_WORK_DIR or the system temp dir)",
    )
    sync_parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only show warnings, errors and the summary",
    )
    sync_parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write logs to this rotating file",
    )
    _add_verbose_argument(sync_parser)

    # Diff command
    diff_parser = subparsers.add_parser(
        "diff",
        help="Show the add/delete plan",
    )
    _add_config_argument(diff_parser)
    diff_parser.add_argument(
        "-m",
        "--manifest",
        type=Path,
        default=None,
        help="Compare against a local packages.json instead of the blob store",
    )
    diff_parser.add_argument(
        "-p",
        "--platform",
        default=None,
        choices=CANONICAL_PLATFORMS,
        help="Only show this platform",
    )
    _add_verbose_argument(diff_parser)

    # Check command
    check_parser = subparsers.add_parser(
        "check",
        help="Validate configuration and probe upstream indexes",
    )
    _add_config_argument(check_parser)
    _add_verbose_argument(check_parser)

    # Merge command
    merge_parser = subparsers.add_parser(
        "merge",
        help="Merge manifest fragments from parallel jobs",
    )
    merge_parser.add_argument(
        "artifacts_dir",
        type=Path,
        help="Directory containing packages-json-*/packages.json fragments",
    )
    merge_parser.add_argument(
        "-b",
        "--base",
        type=Path,
        default=Path("packages.json"),
        help="Base manifest (default: packages.json)",
    )
    merge_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Output manifest (default: overwrite the base manifest)",
    )
    _add_verbose_argument(merge_parser)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """toolmirror - Board-support toolchain mirror.

    Keeps the published registry manifest in sync with upstream board-manager
    indexes.
    """
    parser = build_parser()
    parsed_args = parser.parse_args(argv)

    # If no command specified, show help
    if not parsed_args.command:
        parser.print_help()
        sys.exit(0)

    if parsed_args.command == "sync":
        sync_command(
            SyncArgs(
                config_path=parsed_args.config,
                dry_run=parsed_args.dry_run,
                platform=parsed_args.platform,
                work_dir=parsed_args.work_dir,
                verbose=parsed_args.verbose,
                quiet=parsed_args.quiet,
                log_file=parsed_args.log_file,
            )
        )
    elif parsed_args.command == "diff":
        diff_command(
            DiffArgs(
                config_path=parsed_args.config,
                manifest_path=parsed_args.manifest,
                platform=parsed_args.platform,
                verbose=parsed_args.verbose,
            )
        )
    elif parsed_args.command == "check":
        check_command(CheckArgs(config_path=parsed_args.config, verbose=parsed_args.verbose))
    elif parsed_args.command == "merge":
        merge_command(
            MergeArgs(
                base_path=parsed_args.base,
                artifacts_dir=parsed_args.artifacts_dir,
                output_path=parsed_args.output,
                verbose=parsed_args.verbose,
            )
        )


if __name__ == "__main__":
    main()
