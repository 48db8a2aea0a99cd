"""Blob store backends for bundles and the published manifest.

Two backends implement the same interface:

- LocalManifestStore keeps objects as files under a directory (dry runs,
  tests, CI jobs that hand results to a separate upload step).
- MinioManifestStore talks to any S3-compatible service (Cloudflare R2,
  MinIO, AWS S3) through the MinIO client.

Keys are slash-separated (``toolchains/arduino-avr-linux-x64-1.8.6.zip``,
``packages.json``).
"""

import io
import json
import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from minio import Minio
from minio.error import S3Error
from urllib3.exceptions import HTTPError

from toolmirror.config.mirror_config import DEFAULT_PUBLIC_URL, StoreConfig

from .manifest import ManifestError, PublishedManifest

logger = logging.getLogger(__name__)

MANIFEST_KEY = "packages.json"
BUNDLE_PREFIX = "toolchains"

# Network failures surface from the MinIO client as urllib3 errors, and
# argument checks as ValueError.
CLIENT_ERRORS = (S3Error, HTTPError, ValueError)


class StoreError(Exception):
    """Raised when a blob store operation fails."""

    pass


def format_size(size: int) -> str:
    """Format a byte count for display."""
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{value:.2f} {unit}"
        value /= 1024
    return f"{value:.2f} GB"


class ManifestStore(ABC):
    """Interface for the key/value store holding bundles and the manifest."""

    def __init__(self, public_url: str = DEFAULT_PUBLIC_URL):
        self.public_url = public_url.rstrip("/")

    def get_public_url(self, key: str) -> str:
        """Public download URL for ``key``."""
        return f"{self.public_url}/{key}"

    @abstractmethod
    def upload_file(self, local_path: Path, key: str, content_type: str = "application/zip") -> str:
        """Upload a file.

        Returns:
            Public URL of the uploaded object

        Raises:
            StoreError: If the upload fails
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete an object. Deleting a missing object is not an error.

        Raises:
            StoreError: If the delete fails
        """
        pass

    @abstractmethod
    def read_json(self, key: str) -> Optional[Any]:
        """Read and parse a JSON object.

        Returns:
            Parsed document, or None if the object does not exist

        Raises:
            StoreError: If the object exists but cannot be read or parsed
        """
        pass

    @abstractmethod
    def write_json(self, key: str, data: Any) -> str:
        """Serialize and write a JSON object.

        Returns:
            Public URL of the written object

        Raises:
            StoreError: If the write fails
        """
        pass


class LocalManifestStore(ManifestStore):
    """Blob store backed by a local directory."""

    def __init__(self, root: Path, public_url: str = DEFAULT_PUBLIC_URL):
        """Initialize local store.

        Args:
            root: Directory holding the objects
            public_url: Base URL recorded in the manifest
        """
        super().__init__(public_url)
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        return self.root.joinpath(*key.split("/"))

    def upload_file(self, local_path: Path, key: str, content_type: str = "application/zip") -> str:
        dest = self._path(key)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(local_path, dest)
        except OSError as e:
            raise StoreError(f"Failed to upload {key}: {e}") from e
        logger.info(f"Uploaded: {key} ({format_size(dest.stat().st_size)})")
        return self.get_public_url(key)

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            if path.exists():
                path.unlink()
        except OSError as e:
            raise StoreError(f"Failed to delete {key}: {e}") from e
        logger.info(f"Deleted: {key}")

    def read_json(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Failed to read {key}: {e}") from e

    def write_json(self, key: str, data: Any) -> str:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = path.with_suffix(path.suffix + ".tmp")
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=4)
                f.write("\n")
            temp_path.replace(path)
        except (OSError, TypeError) as e:
            raise StoreError(f"Failed to write {key}: {e}") from e
        logger.info(f"Wrote: {key}")
        return self.get_public_url(key)


class MinioManifestStore(ManifestStore):
    """Blob store backed by an S3-compatible bucket."""

    def __init__(
        self,
        endpoint: str,
        access_key: str,
        secret_key: str,
        bucket: str,
        public_url: str = DEFAULT_PUBLIC_URL,
        secure: bool = True,
        client: Optional[Minio] = None,
    ):
        """Initialize the S3 store.

        Args:
            endpoint: S3 endpoint host (e.g. "<account>.r2.cloudflarestorage.com")
            access_key: Access key for authentication
            secret_key: Secret key for authentication
            bucket: Bucket name
            public_url: Base URL the bucket is publicly served from
            secure: Use HTTPS
            client: Pre-built client (tests)
        """
        super().__init__(public_url)
        self.bucket = bucket
        self.client = client or Minio(
            endpoint=endpoint,
            access_key=access_key,
            secret_key=secret_key,
            secure=secure,
        )

    def upload_file(self, local_path: Path, key: str, content_type: str = "application/zip") -> str:
        try:
            self.client.fput_object(
                bucket_name=self.bucket,
                object_name=key,
                file_path=str(local_path),
                content_type=content_type,
            )
        except CLIENT_ERRORS as e:
            raise StoreError(f"Failed to upload {key}: {e}") from e
        logger.info(f"Uploaded: {key} ({format_size(Path(local_path).stat().st_size)})")
        return self.get_public_url(key)

    def delete(self, key: str) -> None:
        try:
            self.client.remove_object(bucket_name=self.bucket, object_name=key)
        except CLIENT_ERRORS as e:
            raise StoreError(f"Failed to delete {key}: {e}") from e
        logger.info(f"Deleted: {key}")

    def read_json(self, key: str) -> Optional[Any]:
        response = None
        try:
            response = self.client.get_object(bucket_name=self.bucket, object_name=key)
            body = response.read()
        except CLIENT_ERRORS as e:
            if isinstance(e, S3Error) and e.code in ("NoSuchKey", "NoSuchObject"):
                return None
            raise StoreError(f"Failed to read {key}: {e}") from e
        finally:
            if response is not None:
                response.close()
                response.release_conn()

        try:
            return json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StoreError(f"Failed to parse {key}: {e}") from e

    def write_json(self, key: str, data: Any) -> str:
        content = json.dumps(data, indent=4).encode("utf-8")
        try:
            self.client.put_object(
                bucket_name=self.bucket,
                object_name=key,
                data=io.BytesIO(content),
                length=len(content),
                content_type="application/json",
            )
        except CLIENT_ERRORS as e:
            raise StoreError(f"Failed to write {key}: {e}") from e
        logger.info(f"Uploaded: {key} ({format_size(len(content))})")
        return self.get_public_url(key)


def create_store(config: StoreConfig) -> ManifestStore:
    """Build the store selected by ``config``.

    Raises:
        ConfigError: If no store is configured
    """
    config.validate()
    if config.local_dir is not None:
        return LocalManifestStore(config.local_dir, public_url=config.public_url)
    return MinioManifestStore(
        endpoint=config.endpoint or "",
        access_key=config.access_key or "",
        secret_key=config.secret_key or "",
        bucket=config.bucket,
        public_url=config.public_url,
        secure=config.secure,
    )


def bundle_key(file_name: str) -> str:
    return f"{BUNDLE_PREFIX}/{file_name}"


def read_manifest(store: ManifestStore, key: str = MANIFEST_KEY) -> PublishedManifest:
    """Fetch the published manifest.

    A missing manifest reads as an empty registry.

    Raises:
        ManifestError: If the manifest exists but cannot be read or parsed
    """
    try:
        data: Optional[Dict[str, Any]] = store.read_json(key)
    except StoreError as e:
        raise ManifestError(f"Failed to read manifest: {e}") from e
    if data is None:
        logger.warning(f"{key} not found, starting from an empty manifest")
        return PublishedManifest()
    return PublishedManifest(data)


def write_manifest(store: ManifestStore, manifest: PublishedManifest, key: str = MANIFEST_KEY) -> str:
    """Replace the published manifest.

    Raises:
        ManifestError: If the write fails
    """
    try:
        return store.write_json(key, manifest.to_dict())
    except StoreError as e:
        raise ManifestError(f"Failed to write manifest: {e}") from e
