"""
Blob storage collaborator — deletes uploaded driver documents from S3-compatible storage.

Keys are the s3Key values stored inside onboarding form documents.
Deletion is best effort: keys the store reports as failed are logged and
returned; a failed storage call itself is raised to the caller.
"""

import asyncio
import logging

import boto3

from config import Settings, get_settings

logger = logging.getLogger(__name__)

# S3 DeleteObjects accepts at most 1000 keys per call
DELETE_BATCH_SIZE = 1000


class BlobStorage:
    def __init__(self, settings: Settings, client=None):
        self.settings = settings
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.settings.S3_BUCKET) and (
            self._client is not None
            or bool(self.settings.S3_ACCESS_KEY and self.settings.S3_SECRET_KEY)
        )

    def get_client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                region_name=self.settings.S3_REGION,
                endpoint_url=self.settings.S3_ENDPOINT,
                aws_access_key_id=self.settings.S3_ACCESS_KEY,
                aws_secret_access_key=self.settings.S3_SECRET_KEY,
            )
        return self._client

    def _delete_sync(self, keys: list[str]) -> list[str]:
        s3 = self.get_client()
        failed: list[str] = []
        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[start:start + DELETE_BATCH_SIZE]
            resp = s3.delete_objects(
                Bucket=self.settings.S3_BUCKET,
                Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
            )
            for err in resp.get("Errors", []):
                logger.error(
                    "Blob delete failed: key=%s, code=%s, message=%s",
                    err.get("Key"), err.get("Code"), err.get("Message"),
                )
                failed.append(err.get("Key"))
        return failed

    async def delete_keys(self, keys: list[str]) -> list[str]:
        """
        Delete the given keys.

        Returns:
            Keys that could not be deleted (empty list on full success).

        Raises:
            Whatever boto3 raises when the storage call itself fails; callers
            decide whether that aborts their unit of work.
        """
        keys = sorted({k for k in keys if k})
        if not keys:
            return []
        if not self.configured:
            logger.warning("Blob storage not configured, skipping delete of %d keys", len(keys))
            return keys
        failed = await asyncio.to_thread(self._delete_sync, keys)
        logger.info("Blob delete: requested=%d, failed=%d", len(keys), len(failed))
        return failed


def get_blob_storage() -> BlobStorage:
    """FastAPI dependency."""
    return BlobStorage(get_settings())
