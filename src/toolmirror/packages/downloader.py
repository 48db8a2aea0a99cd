"""Package downloader with progress tracking and checksum verification.

This module handles downloading upstream archives over HTTP and verifying
their integrity against the ``SHA-256:<hex>`` checksums published in
package indexes.

A small allow-list of upstream hosts serve broken TLS certificate chains.
Downloads from those hosts (and their subdomains) skip certificate
verification; every other host is always verified.
"""

import hashlib
import logging
import warnings
from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter
from tqdm import tqdm
from urllib3.exceptions import InsecureRequestWarning
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

INSECURE_HOSTS: Tuple[str, ...] = ("dl.cdn.sipeed.com",)

DOWNLOAD_TIMEOUT = 30


class DownloadError(Exception):
    """Raised when download fails."""

    pass


class ChecksumError(Exception):
    """Raised when checksum verification fails."""

    pass


def create_session() -> requests.Session:
    """Create an HTTP session that retries a failed request exactly once."""
    retry = Retry(
        total=1,
        backoff_factor=1.0,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset({"GET", "HEAD"}),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session = requests.Session()
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def is_insecure_host(url: str, insecure_hosts: Tuple[str, ...] = INSECURE_HOSTS) -> bool:
    """Check if a URL points at a host whose TLS chain is known to be broken.

    Args:
        url: URL to check
        insecure_hosts: Allow-listed host names

    Returns:
        True if certificate verification should be skipped
    """
    hostname = (urlparse(url).hostname or "").lower()
    if not hostname:
        return False
    return any(hostname == host or hostname.endswith(f".{host}") for host in insecure_hosts)


def parse_checksum(checksum: Optional[str]) -> Optional[Tuple[str, str]]:
    """Split an index checksum into (algorithm, HEX DIGEST).

    Args:
        checksum: Checksum string such as "SHA-256:abcd..."

    Returns:
        Tuple of upper-cased algorithm and digest, or None if no checksum
    """
    if not checksum:
        return None
    if ":" in checksum:
        algorithm, digest = checksum.split(":", 1)
    else:
        algorithm, digest = "SHA-256", checksum
    return algorithm.strip().upper(), digest.strip().upper()


def format_checksum(hex_digest: str) -> str:
    """Format a hex digest the way indexes and the manifest publish it."""
    return f"SHA-256:{hex_digest.upper()}"


def sha256_file(file_path: Path, chunk_size: int = 8192) -> str:
    """Compute the SHA-256 hex digest of a file."""
    sha256 = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            sha256.update(chunk)
    return sha256.hexdigest()


class PackageDownloader:
    """Downloads archives with progress tracking and checksum verification."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        chunk_size: int = 8192,
        show_progress: bool = True,
        insecure_hosts: Tuple[str, ...] = INSECURE_HOSTS,
    ):
        """Initialize downloader.

        Args:
            session: HTTP session to use. If not provided, creates one with a single retry.
            chunk_size: Size of chunks for downloading and hashing
            show_progress: Whether to show progress bars
            insecure_hosts: Hosts downloaded without TLS verification
        """
        self.session = session or create_session()
        self.chunk_size = chunk_size
        self.show_progress = show_progress
        self.insecure_hosts = insecure_hosts

    def download(
        self,
        url: str,
        dest_path: Path,
        checksum: Optional[str] = None,
    ) -> Path:
        """Download a file from a URL and verify it.

        Args:
            url: URL to download from
            dest_path: Destination file path
            checksum: Optional index checksum ("SHA-256:<hex>")

        Returns:
            Path to the downloaded file

        Raises:
            DownloadError: If download fails
            ChecksumError: If checksum verification fails
        """
        dest_path = Path(dest_path)
        dest_path.parent.mkdir(parents=True, exist_ok=True)

        # Use temporary file during download
        temp_file = dest_path.with_suffix(dest_path.suffix + ".tmp")

        expected = parse_checksum(checksum)
        if expected and expected[0] != "SHA-256":
            logger.warning(f"Unsupported checksum algorithm {expected[0]} for {url}, skipping verification")
            expected = None

        verify = not is_insecure_host(url, self.insecure_hosts)
        if not verify:
            logger.warning(f"Using insecure connection for: {urlparse(url).hostname}")

        logger.info(f"Downloading: {url}")

        try:
            with warnings.catch_warnings():
                if not verify:
                    warnings.simplefilter("ignore", InsecureRequestWarning)
                with self.session.get(url, stream=True, timeout=DOWNLOAD_TIMEOUT, verify=verify) as response:
                    response.raise_for_status()

                    total_size = int(response.headers.get("content-length", 0))

                    progress_bar = None
                    if self.show_progress and total_size > 0:
                        progress_bar = tqdm(
                            total=total_size,
                            unit="B",
                            unit_scale=True,
                            unit_divisor=1024,
                            desc=f"Downloading {dest_path.name}",
                        )

                    sha256 = hashlib.sha256()
                    try:
                        with open(temp_file, "wb") as f:
                            for chunk in response.iter_content(chunk_size=self.chunk_size):
                                if chunk:
                                    f.write(chunk)
                                    sha256.update(chunk)
                                    if progress_bar:
                                        progress_bar.update(len(chunk))
                    finally:
                        if progress_bar:
                            progress_bar.close()

            if expected:
                actual = sha256.hexdigest().upper()
                if actual != expected[1]:
                    temp_file.unlink()
                    raise ChecksumError(
                        f"Checksum mismatch for {dest_path.name}\n"
                        + f"Expected: {expected[1]}\n"
                        + f"Got: {actual}"
                    )
                logger.debug(f"Checksum verified: {dest_path.name}")

            if dest_path.exists():
                dest_path.unlink()
            temp_file.rename(dest_path)

            return dest_path

        except requests.RequestException as e:
            if temp_file.exists():
                temp_file.unlink()
            raise DownloadError(f"Failed to download {url}: {e}") from e

        except Exception:
            if temp_file.exists():
                temp_file.unlink()
            raise
