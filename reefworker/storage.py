"""
Object storage boundary - the single place reefworker uploads results.

Destination URIs select the backend by scheme:
- s3://bucket/prefix  -> S3StorageClient (boto3)
- gs://bucket/prefix  -> GCSStorageClient (google-cloud-storage)

upload() walks a local directory and uploads every file under the
destination prefix, preserving relative paths. Any failure is raised as
UploadFailure; the wire protocol belongs to the client libraries.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Protocol, runtime_checkable
from urllib.parse import urlparse

import boto3
from botocore.config import Config
from google.cloud import storage as gcs

from reefworker.errors import UploadFailure
from reefworker.utils import format_duration

if TYPE_CHECKING:
    from reefworker.config import WorkerConfig

logger = logging.getLogger(__name__)


class StorageScheme(str, Enum):
    """Storage schemes matching the control-plane API definition."""

    S3 = "s3"
    GCS = "gs"


@dataclass(frozen=True)
class StorageLocation:
    """A parsed storage URI."""
    scheme: StorageScheme
    bucket: str
    prefix: str = ""

    def key_for(self, relative_path: str) -> str:
        relative_path = relative_path.lstrip("/")
        if not self.prefix:
            return relative_path
        return f"{self.prefix}/{relative_path}"

    def uri_for(self, relative_path: str) -> str:
        return f"{self.scheme.value}://{self.bucket}/{self.key_for(relative_path)}"


def parse_storage_uri(uri: str) -> StorageLocation:
    """
    Parse a storage URI.

    Raises:
        ValueError: If the scheme is unsupported or the bucket is missing
    """
    parsed = urlparse(uri)
    try:
        scheme = StorageScheme(parsed.scheme.lower())
    except ValueError:
        valid = [s.value for s in StorageScheme]
        raise ValueError(f"Unsupported storage scheme in {uri!r}. Valid: {valid}") from None
    if not parsed.netloc:
        raise ValueError(f"Storage URI has no bucket: {uri!r}")
    return StorageLocation(scheme=scheme, bucket=parsed.netloc, prefix=parsed.path.strip("/"))


@runtime_checkable
class StorageClient(Protocol):
    """Protocol for object storage uploads."""

    scheme: StorageScheme

    def upload_file(self, local_path: Path, bucket: str, key: str) -> None:
        """Upload one local file to bucket/key."""
        ...


class S3StorageClient:
    """StorageClient backed by boto3."""

    scheme = StorageScheme.S3

    def __init__(
        self,
        region: str = "ap-southeast-2",
        s3_endpoint: Optional[str] = None,
        client: Any = None,
    ):
        if client is None:
            config = Config(s3={"addressing_style": "path" if s3_endpoint else "virtual"})
            client = boto3.client(
                "s3",
                region_name=region,
                endpoint_url=s3_endpoint,
                config=config,
            )
        self._client = client

    def upload_file(self, local_path: Path, bucket: str, key: str) -> None:
        self._client.upload_file(str(local_path), bucket, key)


class GCSStorageClient:
    """StorageClient backed by google-cloud-storage."""

    scheme = StorageScheme.GCS

    def __init__(self, project: Optional[str] = None, client: Any = None):
        self._client = client if client is not None else gcs.Client(project=project)

    def upload_file(self, local_path: Path, bucket: str, key: str) -> None:
        blob = self._client.bucket(bucket).blob(key)
        blob.upload_from_filename(str(local_path))


def create_storage_client(storage_uri: str, config: "WorkerConfig") -> StorageClient:
    """Build the storage client matching the scheme of storage_uri."""
    location = parse_storage_uri(storage_uri)
    if location.scheme == StorageScheme.S3:
        return S3StorageClient(region=config.aws_region, s3_endpoint=config.s3_endpoint)
    return GCSStorageClient(project=config.gcp_project)


def upload(
    storage_client: StorageClient,
    local_directory: str | Path,
    destination_uri: str,
) -> list[str]:
    """
    Upload every file under local_directory to destination_uri.

    Args:
        storage_client: Client whose scheme matches destination_uri
        local_directory: Directory to upload
        destination_uri: Destination prefix (e.g. s3://bucket/jobs/42)

    Returns:
        Destination URIs of the uploaded files, in upload order

    Raises:
        UploadFailure: On any invalid destination, missing directory or
            client error
    """
    local_dir = Path(local_directory)
    try:
        location = parse_storage_uri(destination_uri)
    except ValueError as e:
        raise UploadFailure(str(e)) from e

    if getattr(storage_client, "scheme", location.scheme) != location.scheme:
        raise UploadFailure(
            f"Storage client for {storage_client.scheme.value}:// cannot upload to {destination_uri}"
        )
    if not local_dir.is_dir():
        raise UploadFailure(f"Upload directory does not exist: {local_dir}")

    files = sorted(p for p in local_dir.rglob("*") if p.is_file())
    logger.info(f"Uploading {len(files)} files from {local_dir} to {destination_uri}")
    start = time.time()

    uploaded: list[str] = []
    for path in files:
        relative = path.relative_to(local_dir).as_posix()
        key = location.key_for(relative)
        try:
            storage_client.upload_file(path, location.bucket, key)
        except Exception as e:
            logger.error(f"Failed to upload {path} to {location.uri_for(relative)}: {e}")
            raise UploadFailure(f"Failed to upload {relative} to {destination_uri}: {e}") from e
        uploaded.append(location.uri_for(relative))
        logger.debug(f"Uploaded {relative}")

    logger.info(
        f"Upload of {len(uploaded)} files completed in {format_duration(time.time() - start)}"
    )
    return uploaded
