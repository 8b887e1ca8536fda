"""
Object-level helpers shared by scenarios, probes and cleanup.

Every read helper issues a fresh request and fully consumes the response
body so nothing is served from a stale handle.
"""

from __future__ import annotations

import contextlib
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator, Optional

from botocore.exceptions import ClientError

# Header understood by MinIO to set an object's (or delete marker's) modification time
SOURCE_MTIME_HEADER = "X-Minio-Source-Mtime"

MIN_PART_SIZE = 5 * 1024 * 1024


def error_code(error: BaseException) -> str:
    """Return the S3 error code of a ClientError, or an empty string for anything else."""
    if isinstance(error, ClientError):
        return str(error.response.get("Error", {}).get("Code", ""))
    return ""


@dataclass(frozen=True)
class ObjectSnapshot:
    """Result of a single GetObject call."""

    content: bytes
    version_id: Optional[str] = None
    storage_class: str = "STANDARD"
    restore: Optional[str] = None

    @classmethod
    def from_response(cls, response: dict) -> "ObjectSnapshot":
        """Build a snapshot from a GetObject response, reading and closing the body."""
        body = response["Body"]
        try:
            content = body.read()
        finally:
            body.close()
        return cls(
            content=content,
            version_id=response.get("VersionId"),
            storage_class=response.get("StorageClass") or "STANDARD",
            restore=response.get("Restore"),
        )


def read_object(s3, bucket: str, key: str, version_id: Optional[str] = None) -> ObjectSnapshot:
    """GET an object (or a specific version) and return its snapshot."""
    params = {"Bucket": bucket, "Key": key}
    if version_id:
        params["VersionId"] = version_id
    return ObjectSnapshot.from_response(s3.get_object(**params))


@dataclass(frozen=True)
class ObjectVersion:
    """One stored version of a key."""

    key: str
    version_id: str
    is_latest: bool
    last_modified: Optional[datetime] = None
    storage_class: str = "STANDARD"
    size: int = 0


@dataclass(frozen=True)
class DeleteMarker:
    """A content-less version marking its key deleted."""

    key: str
    version_id: str
    is_latest: bool
    last_modified: Optional[datetime] = None


@dataclass
class VersionListing:
    """All versions and delete markers of a bucket (or of one key)."""

    versions: list[ObjectVersion] = field(default_factory=list)
    delete_markers: list[DeleteMarker] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.versions) + len(self.delete_markers)

    def current(self, key: str):
        """Return the version or delete marker flagged latest for ``key``, if any."""
        for entry in [*self.versions, *self.delete_markers]:
            if entry.key == key and entry.is_latest:
                return entry
        return None

    def version_ids(self, key: Optional[str] = None) -> list[str]:
        """Version ids of stored versions (delete markers excluded), newest first."""
        return [v.version_id for v in self.versions if key is None or v.key == key]


def list_versions(s3, bucket: str, prefix: Optional[str] = None) -> VersionListing:
    """List every version and delete marker of ``bucket`` across all pages."""
    listing = VersionListing()
    params = {"Bucket": bucket}
    if prefix is not None:
        params["Prefix"] = prefix
    paginator = s3.get_paginator("list_object_versions")
    for page in paginator.paginate(**params):
        for version in page.get("Versions", []):
            listing.versions.append(
                ObjectVersion(
                    key=version["Key"],
                    version_id=version["VersionId"],
                    is_latest=bool(version.get("IsLatest")),
                    last_modified=version.get("LastModified"),
                    storage_class=version.get("StorageClass") or "STANDARD",
                    size=version.get("Size", 0),
                )
            )
        for marker in page.get("DeleteMarkers", []):
            listing.delete_markers.append(
                DeleteMarker(
                    key=marker["Key"],
                    version_id=marker["VersionId"],
                    is_latest=bool(marker.get("IsLatest")),
                    last_modified=marker.get("LastModified"),
                )
            )
    return listing


def format_source_mtime(mtime: datetime) -> str:
    """Render a modification time the way the source-mtime header expects (RFC 3339, UTC)."""
    if mtime.tzinfo is None:
        mtime = mtime.replace(tzinfo=timezone.utc)
    return mtime.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


@contextlib.contextmanager
def source_mtime(s3, mtime: datetime, operations: tuple[str, ...] = ("PutObject",)) -> Iterator[None]:
    """
    Backdate the objects written inside the block.

    Registers a ``before-sign`` hook adding the source-mtime header to the
    given operations and removes it again on exit. The client is shared with
    the cleanup workers, so only requests sent from the calling thread are
    backdated.
    """
    header_value = format_source_mtime(mtime)
    owner = threading.get_ident()

    def _add_header(request, **_kwargs):
        if threading.get_ident() == owner:
            request.headers[SOURCE_MTIME_HEADER] = header_value

    events = s3.meta.events
    event_names = [f"before-sign.s3.{operation}" for operation in operations]
    for event_name in event_names:
        events.register(event_name, _add_header)
    try:
        yield
    finally:
        for event_name in event_names:
            events.unregister(event_name, _add_header)


def multipart_upload(s3, bucket: str, key: str, data: bytes, part_size: int = MIN_PART_SIZE, **create_params) -> dict:
    """
    Upload ``data`` in ``part_size`` chunks and complete the upload.

    The upload is aborted when a part fails, then the error is re-raised.

    Returns:
        dict: CompleteMultipartUpload response (holds VersionId on versioned buckets)
    """
    upload = s3.create_multipart_upload(Bucket=bucket, Key=key, **create_params)
    upload_id = upload["UploadId"]
    parts = []
    try:
        for index, offset in enumerate(range(0, len(data), part_size), start=1):
            result = s3.upload_part(
                Bucket=bucket,
                Key=key,
                UploadId=upload_id,
                PartNumber=index,
                Body=data[offset : offset + part_size],
            )
            parts.append({"ETag": result["ETag"], "PartNumber": index})
    except ClientError:
        s3.abort_multipart_upload(Bucket=bucket, Key=key, UploadId=upload_id)
        raise
    return s3.complete_multipart_upload(
        Bucket=bucket,
        Key=key,
        UploadId=upload_id,
        MultipartUpload={"Parts": parts},
    )


__all__ = [
    "SOURCE_MTIME_HEADER",
    "MIN_PART_SIZE",
    "error_code",
    "ObjectSnapshot",
    "read_object",
    "ObjectVersion",
    "DeleteMarker",
    "VersionListing",
    "list_versions",
    "format_source_mtime",
    "source_mtime",
    "multipart_upload",
]
