"""Typed request/result structures returned by drive operations.

Outer layers serialize these with ``to_dict()``, which produces the
camelCase payloads clients already consume.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Final, final

from server.apps.drive.infrastructure.metadata import format_bytes

if TYPE_CHECKING:
    from server.apps.drive.models import File, Folder

# Name and path of the synthetic root shown in breadcrumbs
ROOT_NAME: Final = 'My Files'
ROOT_PATH: Final = '/'


@final
@dataclass(frozen=True, slots=True)
class Permissions:
    """Permission flags of the acting principal."""

    can_create: bool = False
    can_read: bool = False
    can_write: bool = False

    @classmethod
    def read_only(cls) -> 'Permissions':
        """Permissions granted to anonymous public-link holders."""
        return cls(can_read=True)


@final
@dataclass(frozen=True, slots=True)
class UploadTicket:
    """Result of step 1 of the two-phase upload."""

    upload_url: str
    file_id: int
    object_key: str
    expires_in_minutes: int

    def to_dict(self) -> dict[str, Any]:
        return {
            'uploadUrl': self.upload_url,
            'fileId': self.file_id,
            'objectKey': self.object_key,
            'expiresInMinutes': self.expires_in_minutes,
        }


@final
@dataclass(frozen=True, slots=True)
class DownloadTicket:
    """Presigned download URL and its lifetime."""

    download_url: str
    expires_in_minutes: int

    def to_dict(self) -> dict[str, Any]:
        return {
            'downloadUrl': self.download_url,
            'expiresInMinutes': self.expires_in_minutes,
        }


@final
@dataclass(frozen=True, slots=True)
class BreadcrumbEntry:
    """One step of the path from the root to a folder."""

    id: int | None
    name: str
    path: str

    def to_dict(self) -> dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'path': self.path}


@final
@dataclass(frozen=True, slots=True)
class FolderNode:
    """Folder with its nested subfolders, for tree views."""

    id: int
    name: str
    path: str
    created_at: datetime
    children: tuple['FolderNode', ...] = ()

    def to_dict(self) -> dict[str, Any]:
        node: dict[str, Any] = {
            'id': self.id,
            'name': self.name,
            'path': self.path,
            'createdAt': self.created_at.isoformat(),
        }
        if self.children:
            node['children'] = [child.to_dict() for child in self.children]
        return node


@final
@dataclass(frozen=True, slots=True)
class FilePage:
    """One page of file records, newest first."""

    items: list['File']
    page: int
    size: int
    total_items: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_items / self.size) if self.size else 0

    @property
    def has_next(self) -> bool:
        return self.page + 1 < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 0


@final
@dataclass(slots=True)
class BulkResult:
    """Per-item outcome of a bulk operation.

    Ids not owned by the caller appear in neither list.
    """

    succeeded: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)

    @property
    def count(self) -> int:
        return len(self.succeeded)

    def to_dict(self) -> dict[str, Any]:
        return {
            'count': self.count,
            'succeeded': list(self.succeeded),
            'failed': [
                {'fileId': file_id, 'message': message}
                for file_id, message in self.failed.items()
            ],
        }


@final
@dataclass(frozen=True, slots=True)
class StorageUsage:
    """Reconciled storage usage of a user."""

    used_bytes: int
    quota_bytes: int

    @property
    def remaining_bytes(self) -> int:
        return max(0, self.quota_bytes - self.used_bytes)

    @property
    def usage_percentage(self) -> float:
        if self.quota_bytes == 0:
            return 0.0
        return self.used_bytes * 100 / self.quota_bytes

    def to_dict(self) -> dict[str, Any]:
        return {
            'storageUsed': self.used_bytes,
            'storageQuota': self.quota_bytes,
            'storageRemaining': self.remaining_bytes,
            'storageUsedFormatted': format_bytes(self.used_bytes),
            'storageQuotaFormatted': format_bytes(self.quota_bytes),
            'storageRemainingFormatted': format_bytes(self.remaining_bytes),
            'usagePercentage': f'{self.usage_percentage:.2f}',
        }


@final
@dataclass(frozen=True, slots=True)
class FolderContents:
    """Direct subfolders of a folder (or the root) and its file count."""

    folders: list['Folder']
    file_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            'folders': [folder_to_dict(folder) for folder in self.folders],
            'fileCount': self.file_count,
        }


@final
@dataclass(frozen=True, slots=True)
class FolderMetadata:
    """Folder details with child counts and a parent summary."""

    folder: 'Folder'
    subfolder_count: int
    file_count: int
    parent: BreadcrumbEntry | None = None

    def to_dict(self) -> dict[str, Any]:
        metadata = folder_to_dict(self.folder)
        metadata['subFolderCount'] = self.subfolder_count
        metadata['fileCount'] = self.file_count
        if self.parent is not None:
            metadata['parent'] = self.parent.to_dict()
        return metadata


def folder_to_dict(folder: 'Folder') -> dict[str, Any]:
    """Serialize a folder record for API responses."""
    return {
        'id': folder.id,
        'name': folder.name,
        'fullPath': folder.full_path,
        'createdAt': folder.created_at.isoformat(),
        'updatedAt': folder.updated_at.isoformat(),
    }


def file_to_dict(file_instance: 'File') -> dict[str, Any]:
    """Serialize a file record for API responses.

    The public token is only included while the file is shared.
    """
    payload: dict[str, Any] = {
        'id': file_instance.id,
        'fileName': file_instance.file_name,
        'originalName': file_instance.original_name,
        'fileSize': file_instance.file_size,
        'fileSizeFormatted': format_bytes(file_instance.file_size),
        'contentType': file_instance.content_type,
        'uploadedAt': file_instance.uploaded_at.isoformat(),
        'lastModified': file_instance.last_modified.isoformat(),
        'uploadStatus': file_instance.upload_status,
        'isPublic': file_instance.is_public,
    }
    folder = file_instance.folder
    if folder is not None:
        payload['folder'] = {
            'id': folder.id,
            'name': folder.name,
            'path': folder.full_path,
        }
    if file_instance.is_public and file_instance.public_token:
        payload['publicLinkToken'] = file_instance.public_token
        payload['publicLinkCreatedAt'] = (
            file_instance.public_token_created_at.isoformat()
        )
    return payload
