"""Business logic for public link sharing.

A public link is an unguessable token stored on the file record. Anyone
holding it may download the file through a short-lived, read-only URL.
"""

import logging
import secrets
from typing import Any, Final

from django.db import transaction
from django.utils import timezone

from server.apps.drive.exceptions import NotFoundError
from server.apps.drive.logic.file_operations import get_file
from server.apps.drive.logic.valet_keys import (
    get_public_download_expiry,
    issue_download_url,
)
from server.apps.drive.models import File
from server.apps.drive.types import DownloadTicket, Permissions

# User type for Django's dynamic user model
_User = Any

# 32 random bytes, 43 URL-safe characters
_TOKEN_BYTES: Final = 32

_INVALID_LINK_MESSAGE: Final = 'Invalid or expired public link'

logger = logging.getLogger(__name__)


def generate_link(file_id: int, owner: _User) -> str:
    """Make a file public and return its token.

    Idempotent: a file that is already shared keeps its token.

    Args:
        file_id: ID of the file.
        owner: Acting user.

    Returns:
        The public token.

    Raises:
        NotFoundError: If the file doesn't exist.
        AccessDeniedError: If the file belongs to another user.
    """
    get_file(file_id, owner)

    with transaction.atomic():
        file_instance = File.objects.select_for_update().get(id=file_id)
        if file_instance.is_public and file_instance.public_token:
            return file_instance.public_token

        file_instance.public_token = secrets.token_urlsafe(_TOKEN_BYTES)
        file_instance.public_token_created_at = timezone.now()
        file_instance.is_public = True
        file_instance.save(update_fields=[
            'public_token',
            'public_token_created_at',
            'is_public',
            'last_modified',
        ])

    logger.info(
        'Public link created for file %d by user: %s',
        file_id,
        owner.username,
    )
    return file_instance.public_token


def revoke_link(file_id: int, owner: _User) -> None:
    """Stop sharing a file; the old token stops resolving immediately.

    Args:
        file_id: ID of the file.
        owner: Acting user.

    Raises:
        NotFoundError: If the file doesn't exist.
        AccessDeniedError: If the file belongs to another user.
    """
    file_instance = get_file(file_id, owner)

    file_instance.public_token = None
    file_instance.public_token_created_at = None
    file_instance.is_public = False
    file_instance.save(update_fields=[
        'public_token',
        'public_token_created_at',
        'is_public',
        'last_modified',
    ])

    logger.info(
        'Public link revoked for file %d by user: %s',
        file_id,
        owner.username,
    )


def resolve_token(token: str | None) -> File:
    """Find the shared file behind a token.

    No ownership check: holding the token is the authorization.

    Args:
        token: Public token.

    Returns:
        File instance.

    Raises:
        NotFoundError: If the token is blank, unknown, revoked, or the
            file is in trash.
    """
    if not token or not token.strip():
        raise NotFoundError(_INVALID_LINK_MESSAGE)

    try:
        file_instance = File.objects.select_related('folder').get(
            public_token=token,
            is_public=True,
        )
    except File.DoesNotExist:
        raise NotFoundError(_INVALID_LINK_MESSAGE) from None

    if file_instance.is_deleted:
        raise NotFoundError(_INVALID_LINK_MESSAGE)

    return file_instance


def get_public_download_url(token: str | None) -> DownloadTicket:
    """Read-only download URL for a publicly shared file.

    Args:
        token: Public token.

    Returns:
        DownloadTicket valid for the public download expiry.

    Raises:
        NotFoundError: If the token doesn't resolve or the object is gone.
    """
    file_instance = resolve_token(token)
    expires_in_minutes = get_public_download_expiry()
    download_url = issue_download_url(
        file_instance.object_key,
        Permissions.read_only(),
        expires_in_minutes,
    )

    logger.info('Public download issued for file %d', file_instance.id)

    return DownloadTicket(
        download_url=download_url,
        expires_in_minutes=expires_in_minutes,
    )
