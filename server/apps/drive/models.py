"""Database models for drive app."""

from typing import TYPE_CHECKING, Final, final, override

from django.conf import settings
from django.db import models

from server.apps.drive.types import Permissions

if TYPE_CHECKING:
    from datetime import datetime

# Constants for field max lengths
_NAME_MAX_LENGTH: Final = 255
_FULL_PATH_MAX_LENGTH: Final = 1024
_OBJECT_KEY_MAX_LENGTH: Final = 1024
_CONTENT_TYPE_MAX_LENGTH: Final = 255
_TOKEN_MAX_LENGTH: Final = 64
_UPLOAD_STATUS_MAX_LENGTH: Final = 16

# Separator between folder names in full_path
PATH_SEPARATOR: Final = '/'


def default_quota_bytes() -> int:
    """Default storage quota for new accounts, from settings.

    Returns:
        Quota in bytes (1 GB unless overridden).
    """
    return getattr(settings, 'DRIVE_DEFAULT_QUOTA_BYTES', 1024 * 1024 * 1024)


@final
class StorageAccount(models.Model):
    """Drive-specific attributes of a user.

    Holds the permission flags checked before issuing valet keys and the
    storage quota. ``used_bytes`` is only a cache: it is recomputed from
    file records before any quota decision.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='storage_account',
        primary_key=True,
    )

    can_create = models.BooleanField(default=True)
    can_read = models.BooleanField(default=False)
    can_write = models.BooleanField(default=True)

    quota_bytes = models.BigIntegerField(
        default=default_quota_bytes,
        help_text='Storage quota limit in bytes',
    )

    used_bytes = models.BigIntegerField(
        default=0,
        help_text='Cached usage, reconciled from file records',
    )

    class Meta:
        """Model metadata."""

        verbose_name = 'Storage Account'  # type: ignore[mutable-override]
        verbose_name_plural = 'Storage Accounts'  # type: ignore[mutable-override]

        constraints = [
            models.CheckConstraint(
                condition=models.Q(quota_bytes__gte=0),
                name='account_quota_bytes_non_negative',
            ),
            models.CheckConstraint(
                condition=models.Q(used_bytes__gte=0),
                name='account_used_bytes_non_negative',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.user.username}: {self.used_bytes}/{self.quota_bytes}'

    @property
    def permissions(self) -> Permissions:
        """Permission flags as an immutable value."""
        return Permissions(
            can_create=self.can_create,
            can_read=self.can_read,
            can_write=self.can_write,
        )

    def has_space_for(self, size_bytes: int) -> bool:
        """Check if there's enough space for the given size.

        Args:
            size_bytes: Size to check in bytes.

        Returns:
            True if there's enough space, False otherwise.
        """
        return self.used_bytes + size_bytes <= self.quota_bytes

    def available_bytes(self) -> int:
        """Get available storage space.

        Returns:
            Available bytes (never negative).
        """
        return max(0, self.quota_bytes - self.used_bytes)

    def usage_percentage(self) -> float:
        """Share of the quota in use, 0.0 for a zero quota."""
        if self.quota_bytes == 0:
            return 0.0
        return self.used_bytes * 100 / self.quota_bytes


class FolderQuerySet(models.QuerySet['Folder']):
    """Owner-scoped queries over folders."""

    def owned_by(self, user: object) -> 'FolderQuerySet':
        return self.filter(owner=user)

    def roots(self) -> 'FolderQuerySet':
        return self.filter(parent__isnull=True)

    def children_of(self, parent: 'Folder | None') -> 'FolderQuerySet':
        if parent is None:
            return self.roots()
        return self.filter(parent=parent)

    def name_contains(self, query: str) -> 'FolderQuerySet':
        return self.filter(name__icontains=query)


@final
class Folder(models.Model):
    """Folder in a user's hierarchy.

    ``full_path`` is denormalized: it is stored on every structural
    change rather than computed on read, and always equals the join of
    the ancestor chain's names (e.g. ``/Documents/Photos``).
    """

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='folders',
        db_index=True,
    )

    parent = models.ForeignKey(
        'self',
        on_delete=models.CASCADE,
        related_name='subfolders',
        null=True,
        blank=True,
    )

    name = models.CharField(max_length=_NAME_MAX_LENGTH)

    full_path = models.CharField(
        max_length=_FULL_PATH_MAX_LENGTH,
        help_text='Path from root, e.g. /Documents/Photos',
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = FolderQuerySet.as_manager()

    class Meta:
        """Model metadata."""

        verbose_name = 'Folder'  # type: ignore[mutable-override]
        verbose_name_plural = 'Folders'  # type: ignore[mutable-override]
        ordering = ['name']

        constraints = [
            models.UniqueConstraint(
                fields=['owner', 'parent', 'name'],
                name='folders_owner_parent_name_unique',
            ),
            # NULL parents never collide in a unique index
            models.UniqueConstraint(
                fields=['owner', 'name'],
                condition=models.Q(parent__isnull=True),
                name='folders_owner_root_name_unique',
            ),
        ]

        indexes = [
            models.Index(
                fields=['owner', 'full_path'],
                name='folders_owner_path_idx',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.owner.username}:{self.full_path}'

    def compute_full_path(self) -> str:
        """Derive full_path from the parent's stored path and own name.

        Returns:
            ``/name`` for root folders, ``parent.full_path/name`` otherwise.
        """
        if self.parent is None:
            return PATH_SEPARATOR + self.name
        return self.parent.full_path + PATH_SEPARATOR + self.name


class UploadStatus(models.TextChoices):
    """Upload session state of a file record."""

    PENDING = 'PENDING', 'Pending'
    UPLOADING = 'UPLOADING', 'Uploading'
    COMPLETED = 'COMPLETED', 'Completed'
    FAILED = 'FAILED', 'Failed'


class FileQuerySet(models.QuerySet['File']):
    """Owner-scoped queries over file records."""

    def owned_by(self, user: object) -> 'FileQuerySet':
        return self.filter(owner=user)

    def active(self) -> 'FileQuerySet':
        """Exclude records in trash."""
        return self.filter(is_deleted=False)

    def completed(self) -> 'FileQuerySet':
        return self.filter(upload_status=UploadStatus.COMPLETED)

    def in_folder(self, folder: 'Folder | None') -> 'FileQuerySet':
        if folder is None:
            return self.filter(folder__isnull=True)
        return self.filter(folder=folder)

    def name_contains(self, query: str) -> 'FileQuerySet':
        return self.filter(file_name__icontains=query)

    def stale_pending(self, cutoff: 'datetime') -> 'FileQuerySet':
        """PENDING records created before ``cutoff``."""
        return self.filter(
            upload_status=UploadStatus.PENDING,
            uploaded_at__lt=cutoff,
        )


@final
class File(models.Model):
    """Metadata of a file whose bytes live in the object store.

    The record is created PENDING before any bytes exist, when an upload
    URL is requested, and becomes COMPLETED once the object is verified.
    ``object_key`` is server-generated and never chosen by the client.
    """

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='files',
        db_index=True,
    )

    folder = models.ForeignKey(
        Folder,
        on_delete=models.SET_NULL,
        related_name='files',
        null=True,
        blank=True,
    )

    file_name = models.CharField(max_length=_NAME_MAX_LENGTH)

    object_key = models.CharField(
        max_length=_OBJECT_KEY_MAX_LENGTH,
        unique=True,
        help_text='Key in storage: user-{id}/folder/name_ts_rand.ext',
    )

    original_name = models.CharField(
        max_length=_NAME_MAX_LENGTH,
        blank=True,
        default='',
    )

    file_size = models.BigIntegerField(help_text='File size in bytes')

    content_type = models.CharField(
        max_length=_CONTENT_TYPE_MAX_LENGTH,
        blank=True,
        default='',
    )

    # Timestamps
    uploaded_at = models.DateTimeField(auto_now_add=True)
    last_modified = models.DateTimeField(auto_now=True)

    # Public link sharing
    is_public = models.BooleanField(default=False)
    public_token = models.CharField(
        max_length=_TOKEN_MAX_LENGTH,
        unique=True,
        null=True,
        blank=True,
    )
    public_token_created_at = models.DateTimeField(null=True, blank=True)

    # Trash (soft delete), reserved for a restore feature
    is_deleted = models.BooleanField(default=False, db_index=True)
    deleted_at = models.DateTimeField(null=True, blank=True)
    original_folder_id = models.BigIntegerField(null=True, blank=True)

    # Upload session, reserved for resumable uploads
    upload_session_id = models.CharField(
        max_length=_TOKEN_MAX_LENGTH,
        blank=True,
        default='',
    )
    upload_progress = models.BigIntegerField(default=0)
    upload_status = models.CharField(
        max_length=_UPLOAD_STATUS_MAX_LENGTH,
        choices=UploadStatus.choices,
        default=UploadStatus.PENDING,
    )

    objects = FileQuerySet.as_manager()

    class Meta:
        """Model metadata."""

        verbose_name = 'File'  # type: ignore[mutable-override]
        verbose_name_plural = 'Files'  # type: ignore[mutable-override]
        ordering = ['-uploaded_at']

        indexes = [
            # Optimize folder listing queries
            models.Index(
                fields=['owner', 'folder', '-uploaded_at'],
                name='files_owner_folder_recent_idx',
            ),
            # Optimize usage reconciliation
            models.Index(
                fields=['owner', 'upload_status'],
                name='files_owner_status_idx',
            ),
        ]

        constraints = [
            models.CheckConstraint(
                condition=models.Q(file_size__gt=0),
                name='files_file_size_positive',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.owner.username}:{self.file_name}'

    @property
    def is_completed(self) -> bool:
        return self.upload_status == UploadStatus.COMPLETED
