"""Stage the deployable artifact in S3.

The artifact is uploaded only when the bucket holds no object under the
same key or the object's ETag differs from the local MD5 digest.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import ArtifactError, is_not_found
from .models import ArtifactLocation
from .naming import artifact_key

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024


def md5_digest(path: str | Path) -> str:
    """Hex MD5 of a file, read in chunks."""
    digest = hashlib.md5()  # noqa: S324 - compared against the S3 ETag, not used for security
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


class ArtifactPublisher:
    """
    Ensures the deployable artifact is present in S3.

    Example:
        publisher = ArtifactPublisher(s3_client, "lambda-function-code", region="eu-west-1")
        location = publisher.ensure_uploaded("dist/app.zip")

    Attributes:
        bucket: Destination bucket (created when missing)
        prefix: Key prefix for the artifact
        region: Region used when the bucket has to be created
    """

    def __init__(self, s3_client: Any, bucket: str, prefix: str = "", region: str | None = None):
        self._s3 = s3_client
        self.bucket = bucket
        self.prefix = prefix
        self.region = region

    def location_for(self, path: str | Path) -> ArtifactLocation:
        return ArtifactLocation(bucket=self.bucket, key=artifact_key(str(path), self.prefix))

    def ensure_uploaded(self, path: str | Path) -> ArtifactLocation:
        """Upload ``path`` unless an identical object is already staged.

        Raises:
            ArtifactError: If the local artifact is missing or the upload fails
        """
        path = Path(path)
        if not path.is_file():
            raise ArtifactError(str(path), "file not found")

        self.ensure_bucket()
        location = self.location_for(path)

        local_md5 = md5_digest(path)
        logger.debug("Local artifact %s MD5 is %s", path, local_md5)

        remote_md5 = self._remote_etag(location)
        if remote_md5 is not None:
            logger.info("%s exists in S3 with MD5 hash %s", location.key, remote_md5)
            # ETags are only MD5 digests for single-part uploads
            if remote_md5 == local_md5:
                logger.info(
                    "%s is up to date in S3 bucket %s. Not uploading...",
                    location.key,
                    location.bucket,
                )
                return location

        logger.info("Uploading %s to S3 bucket %s", path, location.bucket)
        try:
            with open(path, "rb") as body:
                self._s3.put_object(Bucket=location.bucket, Key=location.key, Body=body)
        except (ClientError, BotoCoreError) as e:
            raise ArtifactError(str(path), f"upload failed: {e}") from e
        logger.info("Upload complete")
        return location

    def ensure_bucket(self) -> None:
        """Create the bucket when it is not listed for the account.

        Raises:
            ArtifactError: If the bucket cannot be listed or created
        """
        try:
            buckets = self._s3.list_buckets().get("Buckets", [])
        except (ClientError, BotoCoreError) as e:
            raise ArtifactError(f"s3://{self.bucket}", f"cannot list buckets: {e}") from e
        if any(b.get("Name") == self.bucket for b in buckets):
            return

        kwargs: dict[str, Any] = {"Bucket": self.bucket}
        if self.region and self.region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        try:
            self._s3.create_bucket(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise ArtifactError(f"s3://{self.bucket}", f"cannot create bucket: {e}") from e
        logger.info("Created bucket s3://%s", self.bucket)

    def delete(self, location: ArtifactLocation) -> None:
        self._s3.delete_object(Bucket=location.bucket, Key=location.key)
        logger.info("Lambda function code removed from s3://%s/%s", location.bucket, location.key)

    def _remote_etag(self, location: ArtifactLocation) -> str | None:
        try:
            response = self._s3.head_object(Bucket=location.bucket, Key=location.key)
        except ClientError as e:
            if is_not_found(e):
                return None
            raise ArtifactError(location.uri, f"cannot read staged object: {e}") from e
        except BotoCoreError as e:
            raise ArtifactError(location.uri, f"cannot read staged object: {e}") from e
        return str(response.get("ETag", "")).strip('"') or None
