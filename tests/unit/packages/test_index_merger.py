"""Unit tests for upstream index fetching and merging."""

from unittest.mock import MagicMock

import pytest
import requests

from toolmirror.packages.index_merger import (
    IndexFetchError,
    IndexMerger,
    merge_indexes,
)


def _response(payload=None, status_code=200, json_error=None):
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Error")
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = payload
    return response


PRIMARY = {
    "packages": [
        {
            "name": "arduino",
            "platforms": [{"architecture": "avr", "version": "1.8.6", "url": "a"}],
            "tools": [{"name": "avr-gcc", "version": "7.3.0", "systems": []}],
        }
    ]
}

EXTRA = {
    "packages": [
        {
            "name": "Arduino",
            "platforms": [{"architecture": "avr", "version": "1.8.7", "url": "b"}],
            "tools": [{"name": "avr-gcc", "version": "7.3.0", "systems": []}],
        },
        {"name": "esp32", "platforms": [{"architecture": "esp32", "version": "2.0.14", "url": "c"}]},
    ]
}


class TestMergeIndexes:
    """Test cases for the pure merge function."""

    def test_concatenates_in_source_order(self):
        """Test platforms of the same packager are concatenated in source order."""
        catalog = merge_indexes([PRIMARY, EXTRA])

        assert len(catalog) == 2
        assert catalog.platform_versions("arduino", "avr") == ["1.8.6", "1.8.7"]

    def test_first_seen_name_is_kept(self):
        """Test packager names merge case-insensitively and keep the first spelling."""
        catalog = merge_indexes([EXTRA, PRIMARY])
        assert catalog.get("arduino").name == "Arduino"

    def test_duplicates_are_not_removed(self):
        """Test identical tools from two sources are both kept."""
        catalog = merge_indexes([PRIMARY, EXTRA])
        assert len(catalog.get("arduino").tools) == 2

    def test_skips_nameless_entries(self):
        catalog = merge_indexes([{"packages": [{"platforms": []}, "junk"]}, {}])
        assert len(catalog) == 0


class TestIndexMerger:
    """Test cases for IndexMerger with a mocked HTTP session."""

    def test_merge_fetches_all_sources(self):
        session = MagicMock()
        session.get.side_effect = [_response(PRIMARY), _response(EXTRA)]
        merger = IndexMerger(session=session)

        catalog = merger.merge(["https://a/index.json", "https://b/index.json"])

        assert session.get.call_count == 2
        assert catalog.get("esp32") is not None

    def test_failing_source_is_skipped(self):
        """Test a source that fails is logged and skipped."""
        session = MagicMock()
        session.get.side_effect = [requests.ConnectionError("down"), _response(EXTRA)]
        merger = IndexMerger(session=session)

        catalog = merger.merge(["https://a/index.json", "https://b/index.json"])

        assert catalog.platform_versions("arduino", "avr") == ["1.8.7"]

    def test_all_sources_fail_gives_empty_catalog(self):
        session = MagicMock()
        session.get.return_value = _response(status_code=404)
        merger = IndexMerger(session=session)

        assert len(merger.merge(["https://a/index.json"])) == 0

    def test_fetch_index_invalid_json(self):
        session = MagicMock()
        session.get.return_value = _response(json_error=ValueError("Expecting value"))
        merger = IndexMerger(session=session)

        with pytest.raises(IndexFetchError, match="Invalid JSON"):
            merger.fetch_index("https://a/index.json")

    def test_fetch_index_non_object(self):
        session = MagicMock()
        session.get.return_value = _response(["not", "an", "object"])
        merger = IndexMerger(session=session)

        with pytest.raises(IndexFetchError, match="expected a JSON object"):
            merger.fetch_index("https://a/index.json")

    def test_probe(self):
        """Test probing reports each URL without raising."""
        session = MagicMock()
        session.head.side_effect = [
            _response(status_code=200),
            _response(status_code=404),
            requests.Timeout("timed out"),
        ]
        merger = IndexMerger(session=session)

        results = merger.probe(["https://ok", "https://missing", "https://slow"])

        assert [r.ok for r in results] == [True, False, False]
        assert "404" in results[1].message
        assert "not accessible" in results[2].message
        session.head.assert_any_call("https://ok", timeout=10, allow_redirects=True)
