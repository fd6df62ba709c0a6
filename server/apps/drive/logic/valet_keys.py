"""Valet keys: scoped, time-bounded presigned URLs.

Issuance is stateless. Scope and expiry are embodied in the signed URL,
nothing about issued URLs is stored.
"""

import logging

from django.conf import settings

from server.apps.drive.exceptions import (
    InvalidInputError,
    NotFoundError,
    PermissionDeniedError,
)
from server.apps.drive.infrastructure.storage import get_object_store
from server.apps.drive.types import Permissions

logger = logging.getLogger(__name__)


def get_upload_expiry() -> int:
    """Upload URL lifetime in minutes (default 15)."""
    return getattr(settings, 'DRIVE_UPLOAD_URL_EXPIRY_MINUTES', 15)


def get_download_expiry() -> int:
    """Authenticated download URL lifetime in minutes (default 10)."""
    return getattr(settings, 'DRIVE_DOWNLOAD_URL_EXPIRY_MINUTES', 10)


def get_public_download_expiry() -> int:
    """Public-link download URL lifetime in minutes (default 60)."""
    return getattr(settings, 'DRIVE_PUBLIC_DOWNLOAD_URL_EXPIRY_MINUTES', 60)


def _validate_ttl(ttl_minutes: int) -> None:
    if ttl_minutes <= 0:
        raise InvalidInputError(
            'URL expiry must be a positive number of minutes',
        )


def issue_upload_url(
    object_key: str,
    permissions: Permissions,
    ttl_minutes: int | None = None,
) -> str:
    """Issue a presigned PUT URL for one object key.

    Args:
        object_key: Server-generated key the client uploads to.
        permissions: Permission flags of the acting principal.
        ttl_minutes: URL lifetime, defaults to the configured upload expiry.

    Returns:
        Presigned upload URL.

    Raises:
        PermissionDeniedError: If the principal can neither create nor write.
        InvalidInputError: If the lifetime is not positive.
        UpstreamStorageError: If signing fails.
    """
    if not (permissions.can_create or permissions.can_write):
        raise PermissionDeniedError(
            'User does not have permission to upload files',
        )

    ttl = get_upload_expiry() if ttl_minutes is None else ttl_minutes
    _validate_ttl(ttl)

    url = get_object_store().presign_upload(object_key, ttl)
    logger.info('Issued upload URL for %s (%d min)', object_key, ttl)
    return url


def issue_download_url(
    object_key: str,
    permissions: Permissions,
    ttl_minutes: int | None = None,
) -> str:
    """Issue a presigned GET URL for an existing object.

    Existence is checked first so no credential is ever issued for a
    missing object.

    Args:
        object_key: Key of the object to download.
        permissions: Permission flags of the acting principal.
        ttl_minutes: URL lifetime, defaults to the configured download expiry.

    Returns:
        Presigned download URL.

    Raises:
        PermissionDeniedError: If the principal cannot read.
        NotFoundError: If the object is absent from the store.
        InvalidInputError: If the lifetime is not positive.
        UpstreamStorageError: If the store cannot be reached.
    """
    if not permissions.can_read:
        raise PermissionDeniedError(
            'User does not have permission to download files',
        )

    ttl = get_download_expiry() if ttl_minutes is None else ttl_minutes
    _validate_ttl(ttl)

    storage = get_object_store()
    if not storage.object_exists(object_key):
        logger.warning('Download requested for missing object: %s', object_key)
        raise NotFoundError('File not found in storage')

    url = storage.presign_download(object_key, ttl)
    logger.info('Issued download URL for %s (%d min)', object_key, ttl)
    return url
