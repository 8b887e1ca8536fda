"""
Removal of test buckets.

Each scenario hands its buckets to the ``CleanupCoordinator`` when it
finishes, whatever its outcome. Cleanups run on a thread pool so they never
hold up the next scenario; the suite joins them all before exiting and gets
the failures back instead of having them only logged.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, List, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from ilm_suite.common.config import DEFAULT_CLEANUP_RETRY_SECONDS, DEFAULT_CLEANUP_TIMEOUT_SECONDS
from ilm_suite.common.exceptions import BucketNotEmptyError, CleanupFailedError
from ilm_suite.common.results import ResultReporter
from ilm_suite.common.s3_objects import error_code, list_versions

DEFAULT_CLEANUP_WORKERS = 4


class BucketCleaner:
    """Empties and deletes a single bucket, including every version and delete marker."""

    def __init__(self, s3):
        self.s3 = s3

    def _delete_version(self, bucket: str, key: str, version_id: str) -> None:
        """
        Delete one version, releasing a legal hold that blocks the delete.

        Raises:
            ClientError: If the delete fails for another reason or the hold cannot be lifted
        """
        try:
            self.s3.delete_object(Bucket=bucket, Key=key, VersionId=version_id)
        except ClientError as exc:
            if error_code(exc) != "AccessDenied":
                raise
            logging.debug("Releasing legal hold on %s/%s (%s)", bucket, key, version_id)
            self.s3.put_object_legal_hold(Bucket=bucket, Key=key, VersionId=version_id, LegalHold={"Status": "OFF"})
            self.s3.delete_object(Bucket=bucket, Key=key, VersionId=version_id)

    def _delete_versions(self, bucket: str) -> int:
        """Delete every listed version/marker one by one; return how many deletions failed."""
        listing = list_versions(self.s3, bucket)
        failed = 0
        for entry in [*listing.versions, *listing.delete_markers]:
            try:
                self._delete_version(bucket, entry.key, entry.version_id)
            except ClientError as exc:
                failed += 1
                logging.debug("Cleanup of %s/%s (%s) failed: %s", bucket, entry.key, entry.version_id, exc)
        return failed

    def _abort_multipart_uploads(self, bucket: str) -> None:
        paginator = self.s3.get_paginator("list_multipart_uploads")
        for page in paginator.paginate(Bucket=bucket):
            for upload in page.get("Uploads", []):
                self.s3.abort_multipart_upload(Bucket=bucket, Key=upload["Key"], UploadId=upload["UploadId"])

    def remove(self, bucket: str) -> None:
        """
        Run one cleanup pass.

        Raises:
            BucketNotEmptyError: If some versions could not be deleted
            ClientError: If listing or the final DeleteBucket fails
        """
        failed = self._delete_versions(bucket)
        self._abort_multipart_uploads(bucket)
        if failed:
            raise BucketNotEmptyError(bucket, failed)
        self.s3.delete_bucket(Bucket=bucket)


class CleanupCoordinator:  # pylint: disable=too-many-instance-attributes
    """Schedules bucket cleanups in the background and joins them at shutdown."""

    def __init__(
        self,
        s3,
        reporter: ResultReporter,
        timeout: float = DEFAULT_CLEANUP_TIMEOUT_SECONDS,
        retry_delay: float = DEFAULT_CLEANUP_RETRY_SECONDS,
        max_workers: int = DEFAULT_CLEANUP_WORKERS,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cleaner = BucketCleaner(s3)
        self.reporter = reporter
        self.timeout = timeout
        self.retry_delay = retry_delay
        self.sleep = sleep
        self.clock = clock
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="cleanup")
        self._futures: List[Tuple[str, Future]] = []

    def __enter__(self) -> "CleanupCoordinator":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wait()

    def cleanup_bucket(self, bucket: str, function: str, args: dict[str, Any], start_time: float) -> None:
        """
        Remove ``bucket``, retrying every ``retry_delay`` seconds up to ``timeout``.

        Raises:
            CleanupFailedError: After reporting a FAIL record for the cleanup
        """
        start = self.clock()
        last_error: Optional[BaseException] = None
        while True:
            try:
                self.cleaner.remove(bucket)
                logging.debug("Removed bucket %s", bucket)
                return
            except (ClientError, BotoCoreError, BucketNotEmptyError) as exc:
                if error_code(exc) == "NoSuchBucket":
                    return
                last_error = exc
            if self.clock() - start >= self.timeout:
                break
            self.sleep(self.retry_delay)

        failure = CleanupFailedError(bucket, last_error)
        self.reporter.failure(function, args, start_time, str(failure), last_error)
        raise failure

    def schedule(self, bucket: str, function: str, args: dict[str, Any], start_time: float) -> Future:
        """Queue the cleanup of ``bucket`` and return its future."""
        future = self._executor.submit(self.cleanup_bucket, bucket, function, dict(args), start_time)
        self._futures.append((bucket, future))
        return future

    def wait(self) -> list[CleanupFailedError]:
        """Block until every scheduled cleanup finished and return the failures."""
        failures: list[CleanupFailedError] = []
        for bucket, future in self._futures:
            try:
                future.result()
            except CleanupFailedError as exc:
                failures.append(exc)
            except Exception as exc:  # pylint: disable=broad-except
                logging.error("Cleanup of %s crashed: %s", bucket, exc)
                failures.append(CleanupFailedError(bucket, exc))
        self._futures.clear()
        self._executor.shutdown(wait=True)
        if failures:
            logging.warning("%d bucket(s) could not be cleaned up", len(failures))
        return failures


__all__ = ["BucketCleaner", "CleanupCoordinator"]
