"""Upstream package index fetching and merging.

Fetches every configured board-manager index and folds them into a single
Catalog keyed by packager name. An index that cannot be fetched or parsed is
logged and skipped; the merge itself never fails.

Merge Rule:
    Records with the same packager name (case-insensitive) have their
    ``platforms`` and ``tools`` concatenated in source order. Entries are not
    deduplicated across sources.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import requests

from .downloader import create_session
from .models import Catalog, PackagerRecord

logger = logging.getLogger(__name__)

PRIMARY_INDEX_URL = "https://downloads.arduino.cc/packages/package_index.json"

FETCH_TIMEOUT = 30
PROBE_TIMEOUT = 10


class IndexFetchError(Exception):
    """Raised when an index cannot be fetched or is not valid JSON."""

    pass


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a reachability probe against one index URL."""

    url: str
    ok: bool
    message: str = ""


def merge_indexes(documents: Iterable[Dict[str, Any]]) -> Catalog:
    """Merge parsed index documents into a Catalog.

    Args:
        documents: Parsed index documents, in source order

    Returns:
        Catalog with one record per distinct packager name
    """
    merged: Dict[str, PackagerRecord] = {}
    for document in documents:
        for raw in document.get("packages") or []:
            if not isinstance(raw, dict) or not raw.get("name"):
                continue
            record = PackagerRecord.from_dict(raw)
            key = record.name.lower()
            existing = merged.get(key)
            merged[key] = existing.extended(record) if existing else record
    return Catalog(records=tuple(merged.values()))


class IndexMerger:
    """Fetches upstream indexes over HTTP and merges them."""

    def __init__(self, session: Optional[requests.Session] = None):
        """Initialize index merger.

        Args:
            session: HTTP session to use. If not provided, creates one with a single retry.
        """
        self.session = session or create_session()

    def fetch_index(self, url: str) -> Dict[str, Any]:
        """Fetch and parse a single index document.

        Args:
            url: Index URL

        Returns:
            Parsed JSON document

        Raises:
            IndexFetchError: If the request fails or the body is not a JSON object
        """
        logger.debug(f"Fetching package index: {url}")
        try:
            response = self.session.get(url, timeout=FETCH_TIMEOUT)
            response.raise_for_status()
            document = response.json()
        except requests.RequestException as e:
            raise IndexFetchError(f"Failed to fetch {url}: {e}") from e
        except (json.JSONDecodeError, ValueError) as e:
            raise IndexFetchError(f"Invalid JSON in {url}: {e}") from e

        if not isinstance(document, dict):
            raise IndexFetchError(f"Invalid index document in {url}: expected a JSON object")
        return document

    def merge(self, urls: Iterable[str]) -> Catalog:
        """Fetch all indexes and merge them.

        Args:
            urls: Index URLs, in priority order

        Returns:
            Merged catalog (possibly empty if every source failed)
        """
        documents: List[Dict[str, Any]] = []
        for url in urls:
            try:
                documents.append(self.fetch_index(url))
            except IndexFetchError as e:
                logger.warning(str(e))

        catalog = merge_indexes(documents)
        logger.info(f"Merged {len(documents)} index(es) into {len(catalog)} packager(s)")
        return catalog

    def probe(self, urls: Iterable[str]) -> List[ProbeResult]:
        """Check that each index URL is reachable with a HEAD request.

        Failing probes are logged as warnings and never raise.

        Args:
            urls: Index URLs to check

        Returns:
            One ProbeResult per URL
        """
        results = []
        for url in urls:
            try:
                response = self.session.head(url, timeout=PROBE_TIMEOUT, allow_redirects=True)
                if response.ok:
                    results.append(ProbeResult(url=url, ok=True))
                    continue
                message = f"URL {url} returned {response.status_code}"
            except requests.RequestException as e:
                message = f"URL {url} is not accessible: {e}"
            logger.warning(message)
            results.append(ProbeResult(url=url, ok=False, message=message))
        return results
