"""Shared fixtures for drive app tests."""

import boto3
import pytest
from django.conf import settings as django_settings
from django.contrib.auth import get_user_model
from moto import mock_aws

from server.apps.drive.models import File, StorageAccount, UploadStatus

User = get_user_model()

_TEST_BUCKET = 'valet-drive'


@pytest.fixture
def user(db):
    """Create test user.

    Returns:
        User instance for testing.
    """
    return User.objects.create_user(
        username='testuser',
        password='testpass123',
        email='test@example.com',
    )


@pytest.fixture
def other_user(db):
    """Create second test user for isolation tests.

    Returns:
        Second user instance.
    """
    return User.objects.create_user(
        username='otheruser',
        password='testpass123',
        email='other@example.com',
    )


@pytest.fixture
def reader(user):
    """Test user that may also download files.

    Returns:
        User instance with the read permission granted.
    """
    StorageAccount.objects.filter(user=user).update(can_read=True)
    return user


@pytest.fixture
def mock_s3(settings):
    """Mock S3 service with the drive bucket.

    The storage setting is reassigned inside the mock so the default
    storage builds its boto3 client against the mocked service.

    Yields:
        boto3 S3 client with the bucket created.
    """
    with mock_aws():
        client = boto3.client('s3', region_name='us-east-1')
        client.create_bucket(Bucket=_TEST_BUCKET)

        storages = {
            alias: dict(backend)
            for alias, backend in django_settings.STORAGES.items()
        }
        storages['default']['OPTIONS'] = {
            **storages['default']['OPTIONS'],
            'bucket_name': _TEST_BUCKET,
            'endpoint_url': None,
            'access_key': None,
            'secret_key': None,
        }
        settings.STORAGES = storages

        yield client


@pytest.fixture
def make_file(user):
    """Factory for file records that skip the upload flow.

    Returns:
        Callable creating a File, COMPLETED unless told otherwise.
    """
    created = 0

    def factory(
        file_name='file.txt',
        file_size=100,
        owner=None,
        folder=None,
        upload_status=UploadStatus.COMPLETED,
        **extra,
    ):
        nonlocal created
        created += 1
        file_owner = owner or user
        return File.objects.create(
            owner=file_owner,
            folder=folder,
            file_name=file_name,
            original_name=file_name,
            object_key=f'user-{file_owner.id}/{created}-{file_name}',
            file_size=file_size,
            content_type='text/plain',
            upload_status=upload_status,
            **extra,
        )

    return factory
