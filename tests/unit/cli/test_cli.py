"""Tests for the toolmirror command line."""

import json
import sys
from unittest.mock import MagicMock, patch

import pytest

from toolmirror.cli import main
from toolmirror.packages.index_merger import ProbeResult, merge_indexes
from toolmirror.sync.manifest import ManifestError
from toolmirror.sync.orchestrator import ItemOutcome, OutcomeStatus, SyncResult
from toolmirror.sync.reconciler import DiffPlan, PlanItem

ADD = PlanItem("arduino-avr", "1.8.6", "linux-x64")
SKIP = PlanItem("arduino-avr", "1.8.6", "linux-arm")
DELETE = PlanItem("arduino-avr", "1.8.5", "linux-x64")

CATALOG_DOCUMENT = {
    "packages": [
        {
            "name": "arduino",
            "platforms": [{"architecture": "avr", "version": "1.8.6", "url": "u"}],
        }
    ]
}


def run_cli(monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["toolmirror", *args])
    with pytest.raises(SystemExit) as exc_info:
        main()
    return exc_info.value.code


@pytest.fixture(autouse=True)
def quiet_logging():
    """Keep CLI runs from reconfiguring the root logger."""
    with patch("toolmirror.cli.setup_logging"):
        yield


@pytest.fixture
def config_path(tmp_path, monkeypatch):
    """Write a configuration and point the store at a temp directory."""
    path = tmp_path / "toolchains.json"
    path.write_text(json.dumps({"packages": [{"id": "arduino-avr", "core": "arduino:avr"}]}))
    monkeypatch.setenv("TOOLMIRROR_STORE_DIR", str(tmp_path / "store"))
    return path


class TestSyncCommand:
    """Tests for the 'toolmirror sync' command."""

    @pytest.fixture
    def mock_orchestrator(self):
        with patch("toolmirror.cli.SyncOrchestrator") as orchestrator_class:
            instance = MagicMock()
            orchestrator_class.return_value = instance
            yield instance

    def test_sync_success(self, mock_orchestrator, config_path, monkeypatch, capsys):
        mock_orchestrator.sync.return_value = SyncResult(
            plan=DiffPlan(to_add=[ADD, SKIP], to_delete=[DELETE]),
            outcomes=[
                ItemOutcome(item=ADD, status=OutcomeStatus.ADDED),
                ItemOutcome(item=SKIP, status=OutcomeStatus.SKIPPED, reason="Missing tools: arduino/avr-gcc@7.3.0"),
            ],
            deleted=[DELETE],
            manifest_written=True,
        )

        code = run_cli(monkeypatch, "sync", "--config", str(config_path))

        assert code == 0
        out = capsys.readouterr().out
        assert "Added: 1, Deleted: 1, Skipped: 1 (missing tools)" in out
        assert "Missing tools: arduino/avr-gcc@7.3.0" in out
        mock_orchestrator.sync.assert_called_once_with(dry_run=False, platform=None)

    def test_sync_with_failures_exits_nonzero(self, mock_orchestrator, config_path, monkeypatch):
        mock_orchestrator.sync.return_value = SyncResult(
            plan=DiffPlan(to_add=[ADD]),
            outcomes=[ItemOutcome(item=ADD, status=OutcomeStatus.FAILED, reason="Checksum mismatch")],
        )

        assert run_cli(monkeypatch, "sync", "-c", str(config_path)) == 1

    def test_sync_dry_run(self, mock_orchestrator, config_path, monkeypatch, capsys):
        mock_orchestrator.sync.return_value = SyncResult(
            plan=DiffPlan(to_add=[ADD], to_delete=[DELETE]), dry_run=True
        )

        code = run_cli(monkeypatch, "sync", "-c", str(config_path), "--dry-run", "--platform", "linux-x64")

        assert code == 0
        out = capsys.readouterr().out
        assert "Dry run" in out
        assert "  + arduino-avr@1.8.6#linux-x64" in out
        assert "  - arduino-avr@1.8.5#linux-x64" in out
        mock_orchestrator.sync.assert_called_once_with(dry_run=True, platform="linux-x64")

    def test_sync_up_to_date(self, mock_orchestrator, config_path, monkeypatch, capsys):
        mock_orchestrator.sync.return_value = SyncResult(plan=DiffPlan())

        assert run_cli(monkeypatch, "sync", "-c", str(config_path)) == 0
        assert "Everything is up to date!" in capsys.readouterr().out

    def test_sync_manifest_error(self, mock_orchestrator, config_path, monkeypatch, capsys):
        mock_orchestrator.sync.side_effect = ManifestError("Failed to read manifest: timeout")

        assert run_cli(monkeypatch, "sync", "-c", str(config_path)) == 1
        assert "Failed to read manifest: timeout" in capsys.readouterr().out

    def test_sync_missing_config(self, tmp_path, monkeypatch):
        assert run_cli(monkeypatch, "sync", "-c", str(tmp_path / "missing.json")) == 2

    def test_sync_store_not_configured(self, config_path, monkeypatch, capsys):
        monkeypatch.delenv("TOOLMIRROR_STORE_DIR")
        for name in ("TOOLMIRROR_S3_ENDPOINT", "TOOLMIRROR_S3_ACCESS_KEY", "TOOLMIRROR_S3_SECRET_KEY"):
            monkeypatch.delenv(name, raising=False)

        assert run_cli(monkeypatch, "sync", "-c", str(config_path)) == 2
        assert "Blob store not configured" in capsys.readouterr().out

    def test_sync_rejects_unknown_platform(self, config_path, monkeypatch):
        assert run_cli(monkeypatch, "sync", "-c", str(config_path), "--platform", "win32-ia32") == 2


class TestDiffCommand:
    """Tests for the 'toolmirror diff' command."""

    def test_diff_against_local_manifest(self, config_path, tmp_path, monkeypatch, capsys):
        manifest_path = tmp_path / "registry" / "packages.json"
        manifest_path.parent.mkdir()
        manifest_path.write_text(
            json.dumps(
                {
                    "packages": {
                        "toolchains": [
                            {
                                "id": "arduino-avr",
                                "version": "1.8.5",
                                "systems": [{"host": "linux-x64", "url": "u", "checksum": "c", "size": "1"}],
                            }
                        ]
                    }
                }
            )
        )

        with patch("toolmirror.sync.orchestrator.IndexMerger") as merger_class:
            merger_class.return_value.merge.return_value = merge_indexes([CATALOG_DOCUMENT])
            code = run_cli(
                monkeypatch, "diff", "-c", str(config_path), "--manifest", str(manifest_path), "-p", "linux-x64"
            )

        assert code == 0
        out = capsys.readouterr().out
        assert "  + arduino-avr@1.8.6#linux-x64" in out
        assert "  - arduino-avr@1.8.5#linux-x64" in out
        assert "linux-arm" not in out


class TestCheckCommand:
    """Tests for the 'toolmirror check' command."""

    @pytest.fixture
    def mock_merger(self):
        with patch("toolmirror.cli.IndexMerger") as merger_class:
            instance = MagicMock()
            merger_class.return_value = instance
            yield instance

    def test_check_ok(self, mock_merger, config_path, monkeypatch, capsys):
        mock_merger.probe.return_value = [ProbeResult(url="https://a", ok=True)]
        mock_merger.merge.return_value = merge_indexes([CATALOG_DOCUMENT])

        assert run_cli(monkeypatch, "check", "-c", str(config_path)) == 0
        assert "1 package(s) OK" in capsys.readouterr().out

    def test_check_unreachable_index_is_warning(self, mock_merger, config_path, monkeypatch, capsys):
        mock_merger.probe.return_value = [ProbeResult(url="https://a", ok=False, message="URL https://a returned 404")]
        mock_merger.merge.return_value = merge_indexes([CATALOG_DOCUMENT])

        assert run_cli(monkeypatch, "check", "-c", str(config_path)) == 0
        assert "returned 404" in capsys.readouterr().out

    def test_check_missing_core(self, mock_merger, config_path, monkeypatch, capsys):
        mock_merger.probe.return_value = []
        mock_merger.merge.return_value = merge_indexes([])

        assert run_cli(monkeypatch, "check", "-c", str(config_path)) == 1
        assert "packager 'arduino' not found" in capsys.readouterr().out


class TestMergeCommand:
    """Tests for the 'toolmirror merge' command."""

    def _fragment(self, artifacts, name, host):
        path = artifacts / f"packages-json-{name}" / "packages.json"
        path.parent.mkdir(parents=True)
        path.write_text(
            json.dumps(
                {
                    "packages": {
                        "toolchains": [
                            {
                                "id": "arduino-avr",
                                "version": "1.8.6",
                                "systems": [{"host": host, "url": f"https://r/{host}.zip", "checksum": "c", "size": "1"}],
                            }
                        ]
                    }
                }
            )
        )

    def test_merge_fragments(self, tmp_path, monkeypatch):
        base = tmp_path / "packages.json"
        base.write_text(json.dumps({"schemaVersion": "1.0.0", "packages": {"devices": [{"id": "uno"}], "toolchains": []}}))
        artifacts = tmp_path / "artifacts"
        self._fragment(artifacts, "linux-x64", "linux-x64")
        self._fragment(artifacts, "darwin-x64", "darwin-x64")
        (artifacts / "unrelated").mkdir()
        output = tmp_path / "merged.json"

        code = run_cli(monkeypatch, "merge", str(artifacts), "--base", str(base), "-o", str(output))

        assert code == 0
        document = json.loads(output.read_text())
        toolchains = document["packages"]["toolchains"]
        assert [s["host"] for s in toolchains[0]["systems"]] == ["darwin-x64", "linux-x64"]
        assert document["packages"]["devices"] == [{"id": "uno"}]

    def test_merge_without_fragments(self, tmp_path, monkeypatch, capsys):
        artifacts = tmp_path / "artifacts"
        artifacts.mkdir()

        assert run_cli(monkeypatch, "merge", str(artifacts), "--base", str(tmp_path / "packages.json")) == 0
        assert "nothing to merge" in capsys.readouterr().out

    def test_merge_missing_artifacts_dir(self, tmp_path, monkeypatch):
        assert run_cli(monkeypatch, "merge", str(tmp_path / "nope")) == 1


def test_no_command_shows_help(monkeypatch, capsys):
    assert run_cli(monkeypatch) == 0
    assert "usage: toolmirror" in capsys.readouterr().out
