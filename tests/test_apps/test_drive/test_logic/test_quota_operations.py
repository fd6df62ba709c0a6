"""Tests for quota operations business logic."""

import pytest

from server.apps.drive.exceptions import QuotaExceededError
from server.apps.drive.logic.quota_operations import (
    calculate_usage,
    check_quota,
    get_or_create_account,
    get_permissions,
    get_storage_usage,
    has_space,
    reconcile,
    release_usage,
)
from server.apps.drive.models import StorageAccount, UploadStatus


@pytest.mark.django_db
def test_account_created_with_user(user):
    """New users get a storage account with default flags."""
    account = StorageAccount.objects.get(user=user)

    assert account.quota_bytes == 1024 * 1024 * 1024
    assert account.used_bytes == 0
    assert account.can_create
    assert account.can_write
    assert not account.can_read


@pytest.mark.django_db
def test_get_or_create_account_on_demand(user):
    """A missing account is recreated on first use."""
    StorageAccount.objects.filter(user=user).delete()

    account = get_or_create_account(user)

    assert account.user == user
    assert StorageAccount.objects.filter(user=user).count() == 1


@pytest.mark.django_db
def test_get_permissions(user):
    """Permissions mirror the account flags."""
    StorageAccount.objects.filter(user=user).update(can_create=False)

    permissions = get_permissions(user)

    assert not permissions.can_create
    assert permissions.can_write


@pytest.mark.django_db
def test_calculate_usage_counts_completed_active_files(
    user,
    other_user,
    make_file,
):
    """Only COMPLETED, non-deleted files of the user count."""
    make_file(file_size=100)
    make_file(file_size=200)
    make_file(file_size=400, upload_status=UploadStatus.PENDING)
    make_file(file_size=800, is_deleted=True)
    make_file(file_size=1600, owner=other_user)

    assert calculate_usage(user) == 300


@pytest.mark.django_db
def test_reconcile_fixes_drift(user, make_file):
    """Reconcile overwrites a drifted cache with the real sum."""
    StorageAccount.objects.filter(user=user).update(used_bytes=999)
    make_file(file_size=250)

    assert reconcile(user) == 250
    assert StorageAccount.objects.get(user=user).used_bytes == 250


@pytest.mark.django_db
def test_reconcile_is_idempotent(user, make_file):
    """Repeated reconciliation keeps the same value."""
    make_file(file_size=250)

    assert reconcile(user) == reconcile(user) == 250


@pytest.mark.django_db
def test_has_space(user, make_file):
    """has_space compares against reconciled usage."""
    StorageAccount.objects.filter(user=user).update(quota_bytes=1000)
    make_file(file_size=600)

    assert has_space(user, 400)
    assert not has_space(user, 401)


@pytest.mark.django_db
def test_check_quota_exceeded(user, make_file):
    """The error carries quota, usage and the requested size."""
    StorageAccount.objects.filter(user=user).update(quota_bytes=1000)
    make_file(file_size=900)

    with pytest.raises(QuotaExceededError) as exc_info:
        check_quota(user, 200)

    error = exc_info.value
    assert (error.quota_bytes, error.used_bytes, error.required_bytes) == (
        1000,
        900,
        200,
    )
    assert 'only 100 bytes available' in error.message


@pytest.mark.django_db
def test_check_quota_exact_fit(user, make_file):
    """Filling the quota exactly is allowed."""
    StorageAccount.objects.filter(user=user).update(quota_bytes=1000)
    make_file(file_size=900)

    account = check_quota(user, 100)

    assert account.used_bytes == 900


@pytest.mark.django_db
def test_release_usage_is_clamped(user):
    """Releasing more than used never goes negative."""
    StorageAccount.objects.filter(user=user).update(used_bytes=50)

    assert release_usage(user, 500) == 0
    assert StorageAccount.objects.get(user=user).used_bytes == 0


@pytest.mark.django_db
def test_release_usage_prefers_reconciled_value(user, make_file):
    """A mismatch with the records is corrected by reconciliation."""
    StorageAccount.objects.filter(user=user).update(used_bytes=500)
    make_file(file_size=300)

    assert release_usage(user, 300) == 300


@pytest.mark.django_db
def test_get_storage_usage(user, make_file):
    """Usage report is reconciled first."""
    StorageAccount.objects.filter(user=user).update(quota_bytes=0)
    make_file(file_size=10)

    usage = get_storage_usage(user)

    assert usage.used_bytes == 10
    assert usage.remaining_bytes == 0
    assert usage.usage_percentage == 0.0
