"""Business logic for storage quota operations.

``StorageAccount.used_bytes`` is a cache. Every quota-sensitive decision
first recomputes usage from the file records, so partial failures
(an object deleted while its record survived, or the reverse) never
make the counter drift.
"""

import logging
from typing import Any

from django.db import transaction
from django.db.models import Sum  # noqa: WPS347

from server.apps.drive.exceptions import QuotaExceededError
from server.apps.drive.models import File, StorageAccount
from server.apps.drive.types import Permissions, StorageUsage

# User type for Django's dynamic user model
_User = Any

# Field name constant to avoid string literal over-use
_USED_BYTES_FIELD = 'used_bytes'  # noqa: WPS226

logger = logging.getLogger(__name__)


def get_or_create_account(user: _User) -> StorageAccount:
    """Get or create storage account for user (on-demand creation).

    Args:
        user: User to get the account for.

    Returns:
        StorageAccount instance for the user.
    """
    account, created = StorageAccount.objects.get_or_create(user=user)
    if created:
        logger.info(
            'Created storage account for user %s: %d bytes quota',
            user.username,
            account.quota_bytes,
        )
    return account


def get_permissions(user: _User) -> Permissions:
    """Get the permission flags of a user.

    Args:
        user: Acting user.

    Returns:
        Immutable permission set.
    """
    return get_or_create_account(user).permissions


def calculate_usage(user: _User) -> int:
    """Sum sizes of the user's COMPLETED, non-deleted files.

    Args:
        user: Owner of the files.

    Returns:
        Active usage in bytes.
    """
    return File.objects.owned_by(user).active().completed().aggregate(
        total=Sum('file_size'),
    )['total'] or 0


def reconcile(user: _User) -> int:
    """Recalculate user's storage usage from file records and persist it.

    Args:
        user: User to reconcile usage for.

    Returns:
        New calculated usage in bytes.
    """
    with transaction.atomic():
        account, _ = StorageAccount.objects.select_for_update().get_or_create(
            user=user,
        )
        total = calculate_usage(user)
        old_usage = account.used_bytes
        if old_usage != total:
            account.used_bytes = total
            account.save(update_fields=[_USED_BYTES_FIELD])

    if old_usage == total:
        logger.debug(
            'Usage for user %s is consistent: %d bytes',
            user.username,
            total,
        )
    else:
        logger.info(
            'Reconciled usage for user %s: %d -> %d bytes',
            user.username,
            old_usage,
            total,
        )

    return total


def has_space(user: _User, additional_bytes: int) -> bool:
    """Reconcile, then check whether ``additional_bytes`` still fit.

    Args:
        user: User to check.
        additional_bytes: Size of the pending write.

    Returns:
        True if usage plus the write stays within quota.
    """
    reconcile(user)
    return get_or_create_account(user).has_space_for(additional_bytes)


def check_quota(user: _User, size_bytes: int) -> StorageAccount:
    """Check if user has enough quota for an upload.

    Usage is reconciled (and persisted) before the comparison.

    Args:
        user: User to check quota for.
        size_bytes: Size of the upload in bytes.

    Returns:
        The reconciled StorageAccount.

    Raises:
        QuotaExceededError: If upload would exceed quota.
    """
    reconcile(user)
    account = get_or_create_account(user)

    if not account.has_space_for(size_bytes):
        logger.warning(
            'Quota exceeded for user %s: need %d, have %d available',
            user.username,
            size_bytes,
            account.available_bytes(),
        )
        raise QuotaExceededError(
            quota_bytes=account.quota_bytes,
            used_bytes=account.used_bytes,
            required_bytes=size_bytes,
        )

    return account


def release_usage(user: _User, size_bytes: int) -> int:
    """Subtract freed bytes, then confirm against a reconciliation pass.

    The subtraction is clamped to 0. A mismatch with the recomputed value
    is logged and the recomputed value wins.

    Args:
        user: User whose files were deleted.
        size_bytes: Bytes freed by the deletion.

    Returns:
        Reconciled usage in bytes.
    """
    with transaction.atomic():
        account, _ = StorageAccount.objects.select_for_update().get_or_create(
            user=user,
        )
        expected = max(0, account.used_bytes - size_bytes)
        account.used_bytes = expected
        account.save(update_fields=[_USED_BYTES_FIELD])

    actual = reconcile(user)
    if actual != expected:
        logger.warning(
            'Usage drift for user %s: expected %d, recomputed %d bytes',
            user.username,
            expected,
            actual,
        )
    return actual


def get_storage_usage(user: _User) -> StorageUsage:
    """Reconciled usage and quota of a user.

    Args:
        user: User to report on.

    Returns:
        StorageUsage value.
    """
    used_bytes = reconcile(user)
    account = get_or_create_account(user)
    return StorageUsage(used_bytes=used_bytes, quota_bytes=account.quota_bytes)
