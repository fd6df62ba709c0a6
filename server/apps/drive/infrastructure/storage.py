"""Object store gateway backed by S3-compatible storage."""

import logging
from typing import Any, Final, Protocol, final

from botocore.exceptions import BotoCoreError, ClientError
from django.core.files.storage import default_storage
from storages.backends.s3 import S3Storage

from server.apps.drive.exceptions import UpstreamStorageError

logger = logging.getLogger(__name__)

_SECONDS_PER_MINUTE: Final = 60
_MISSING_OBJECT_CODES: Final = frozenset(('404', 'NoSuchKey', 'NotFound'))
_SANITIZED_MESSAGE: Final = 'Object storage request failed'


class ObjectStoreGateway(Protocol):
    """Capabilities the drive core needs from a blob store."""

    def presign_upload(self, object_key: str, expires_in_minutes: int) -> str:
        """Return a URL that lets the holder PUT one object."""

    def presign_download(
        self,
        object_key: str,
        expires_in_minutes: int,
    ) -> str:
        """Return a URL that lets the holder GET one object."""

    def object_exists(self, object_key: str) -> bool:
        """Check whether an object is present."""

    def delete_object(self, object_key: str) -> None:
        """Delete an object, missing objects are not an error."""

    def list_by_prefix(self, prefix: str) -> list[str]:
        """List object keys starting with ``prefix``."""


@final
class FileStorage(S3Storage):
    """S3 storage backend used as the drive's object store gateway.

    Extends django-storages S3Storage with:
    - Presigned PUT/GET URLs (valet keys)
    - Existence checks and prefix listing against the raw bucket
    - Translation of boto errors into UpstreamStorageError

    Timeouts and retries come from the ``client_config`` option,
    this class never retries on its own.
    """

    @property
    def _client(self) -> Any:
        return self.connection.meta.client

    def presign_upload(self, object_key: str, expires_in_minutes: int) -> str:
        """Presign a PUT for one object key.

        Args:
            object_key: Key the client will upload to.
            expires_in_minutes: URL lifetime.

        Returns:
            Presigned URL.

        Raises:
            UpstreamStorageError: If signing fails.
        """
        return self._presign('put_object', object_key, expires_in_minutes)

    def presign_download(
        self,
        object_key: str,
        expires_in_minutes: int,
    ) -> str:
        """Presign a GET for one object key.

        Args:
            object_key: Key the client will download.
            expires_in_minutes: URL lifetime.

        Returns:
            Presigned URL.

        Raises:
            UpstreamStorageError: If signing fails.
        """
        return self._presign('get_object', object_key, expires_in_minutes)

    def object_exists(self, object_key: str) -> bool:
        """Check if an object exists with a HEAD request.

        Args:
            object_key: Key to check.

        Returns:
            True if the object exists, False if the store reports 404.

        Raises:
            UpstreamStorageError: If the store cannot be reached.
        """
        try:
            self._client.head_object(Bucket=self.bucket_name, Key=object_key)
        except ClientError as error:
            error_code = error.response.get('Error', {}).get('Code')
            if error_code in _MISSING_OBJECT_CODES:
                return False
            logger.exception('Failed to check object existence: %s', object_key)
            raise UpstreamStorageError(_SANITIZED_MESSAGE) from error
        except BotoCoreError as error:
            logger.exception('Failed to check object existence: %s', object_key)
            raise UpstreamStorageError(_SANITIZED_MESSAGE) from error
        return True

    def delete_object(self, object_key: str) -> None:
        """Delete object from S3 with error handling and logging.

        Args:
            object_key: Key of the object to delete.

        Raises:
            UpstreamStorageError: If S3 delete fails.
        """
        try:
            logger.info('Deleting object from storage: %s', object_key)
            self._client.delete_object(Bucket=self.bucket_name, Key=object_key)
        except (BotoCoreError, ClientError) as error:
            logger.exception(
                'Failed to delete object from storage: %s',
                object_key,
            )
            raise UpstreamStorageError(_SANITIZED_MESSAGE) from error
        logger.info('Successfully deleted object: %s', object_key)

    def list_by_prefix(self, prefix: str) -> list[str]:
        """List all object keys under a prefix.

        Args:
            prefix: Key prefix (e.g., 'user-42/').

        Returns:
            Object keys, in the order the store returns them.

        Raises:
            UpstreamStorageError: If listing fails.
        """
        keys: list[str] = []
        try:
            paginator = self._client.get_paginator('list_objects_v2')
            pages = paginator.paginate(Bucket=self.bucket_name, Prefix=prefix)
            for page in pages:
                keys.extend(item['Key'] for item in page.get('Contents', []))
        except (BotoCoreError, ClientError) as error:
            logger.exception('Failed to list objects with prefix: %s', prefix)
            raise UpstreamStorageError(_SANITIZED_MESSAGE) from error
        return keys

    def _presign(
        self,
        client_method: str,
        object_key: str,
        expires_in_minutes: int,
    ) -> str:
        try:
            return self._client.generate_presigned_url(
                client_method,
                Params={'Bucket': self.bucket_name, 'Key': object_key},
                ExpiresIn=expires_in_minutes * _SECONDS_PER_MINUTE,
            )
        except (BotoCoreError, ClientError) as error:
            logger.exception(
                'Failed to presign %s for key: %s',
                client_method,
                object_key,
            )
            raise UpstreamStorageError(_SANITIZED_MESSAGE) from error


def get_object_store() -> ObjectStoreGateway:
    """Get the configured default storage backend.

    Returns:
        FileStorage instance with proper S3 configuration.
    """
    return default_storage  # type: ignore[return-value]
