"""Business logic for file operations.

Uploads follow the valet-key pattern in two phases:

1. ``request_upload`` creates a PENDING record and returns a presigned
   PUT URL. No bytes exist in storage yet.
2. The client uploads straight to the object store, then calls
   ``confirm_upload``, which verifies the object and marks the record
   COMPLETED.

Destructive operations delete the object before the record. A failure in
between leaves a record pointing at a missing object (downloads then
fail cleanly) instead of an object nobody can find.
"""

import logging
import time
import uuid
from typing import Any, Final

from django.conf import settings
from django.db import DatabaseError, transaction

from server.apps.drive.exceptions import (
    AccessDeniedError,
    DriveError,
    InvalidInputError,
    NotFoundError,
    PermissionDeniedError,
    UpstreamStorageError,
)
from server.apps.drive.infrastructure.metadata import (
    build_object_key,
    detect_content_type,
    validate_file_name,
)
from server.apps.drive.infrastructure.storage import get_object_store
from server.apps.drive.logic.folder_operations import get_folder
from server.apps.drive.logic.quota_operations import (
    check_quota,
    get_permissions,
    get_storage_usage,
    reconcile,
    release_usage,
)
from server.apps.drive.logic.valet_keys import (
    get_download_expiry,
    get_upload_expiry,
    issue_download_url,
    issue_upload_url,
)
from server.apps.drive.models import File, Folder, UploadStatus
from server.apps.drive.types import (
    BulkResult,
    DownloadTicket,
    FilePage,
    StorageUsage,
    UploadTicket,
    file_to_dict,
)

# User type for Django's dynamic user model
_User = Any

_DEFAULT_PAGE_SIZE: Final = 20
_BULK_FAILURE_MESSAGE: Final = 'Failed to process file'

logger = logging.getLogger(__name__)


def _get_list_all_batch_size() -> int:
    return getattr(settings, 'DRIVE_LIST_ALL_BATCH_SIZE', 200)


def _resolve_folder(folder_id: int | None, owner: _User) -> Folder | None:
    if folder_id is None:
        return None
    return get_folder(folder_id, owner)


def _validate_page(page: int, size: int) -> None:
    if page < 0:
        raise InvalidInputError('Page number cannot be negative')
    if size <= 0:
        raise InvalidInputError('Page size must be positive')


def get_file(file_id: int, owner: _User) -> File:
    """Get a file record owned by ``owner``.

    Args:
        file_id: ID of the file.
        owner: Acting user.

    Returns:
        File instance.

    Raises:
        NotFoundError: If the file doesn't exist.
        AccessDeniedError: If the file belongs to another user.
    """
    try:
        file_instance = File.objects.select_related('folder').get(id=file_id)
    except File.DoesNotExist:
        raise NotFoundError('File not found') from None

    if file_instance.owner_id != owner.id:
        logger.warning(
            'User %s denied access to file %d',
            owner.username,
            file_id,
        )
        raise AccessDeniedError('Access denied to this file')

    return file_instance


def request_upload(
    file_name: str | None,
    file_size: int | None,
    folder_id: int | None,
    owner: _User,
) -> UploadTicket:
    """Start a two-phase upload: create a PENDING record and a PUT URL.

    Args:
        file_name: Client-provided name, ``unnamed_<ms>`` when blank.
        file_size: Declared size in bytes, must be positive.
        folder_id: Target folder ID, None for the root.
        owner: Acting user.

    Returns:
        UploadTicket with the presigned URL and the new file ID.

    Raises:
        PermissionDeniedError: If the user may not create and write files.
        InvalidInputError: If the size is missing or not positive.
        QuotaExceededError: If the file doesn't fit the reconciled quota.
        NotFoundError: If the folder doesn't exist.
        AccessDeniedError: If the folder belongs to another user.
        UpstreamStorageError: If the URL cannot be signed.
    """
    permissions = get_permissions(owner)
    if not (permissions.can_create and permissions.can_write):
        raise PermissionDeniedError(
            'User does not have permission to upload files',
        )

    if file_size is None or file_size <= 0:
        raise InvalidInputError('Invalid file size')

    # Reconciled usage is persisted even when the upload is rejected
    check_quota(owner, file_size)

    if file_name is None or not file_name.strip():
        name = f'unnamed_{time.time_ns() // 1_000_000}'
    else:
        name = file_name.strip()

    expires_in_minutes = get_upload_expiry()

    with transaction.atomic():
        folder = _resolve_folder(folder_id, owner)
        folder_path = folder.full_path if folder is not None else ''
        object_key = build_object_key(owner.id, folder_path, name)

        file_instance = File.objects.create(
            owner=owner,
            folder=folder,
            file_name=name,
            original_name=name,
            object_key=object_key,
            file_size=file_size,
            upload_status=UploadStatus.PENDING,
            upload_session_id=uuid.uuid4().hex,
        )
        upload_url = issue_upload_url(
            object_key,
            permissions,
            expires_in_minutes,
        )

    logger.info(
        'Upload requested: %s (ID: %d, %d bytes) by user: %s',
        object_key,
        file_instance.id,
        file_size,
        owner.username,
    )

    return UploadTicket(
        upload_url=upload_url,
        file_id=file_instance.id,
        object_key=object_key,
        expires_in_minutes=expires_in_minutes,
    )


def confirm_upload(
    file_id: int,
    content_type: str | None,
    owner: _User,
) -> File:
    """Finish a two-phase upload once the client has PUT the object.

    If the object is missing the record is removed and usage reconciled.

    Args:
        file_id: ID returned by ``request_upload``.
        content_type: MIME type reported by the client, guessed from the
            file name when absent.
        owner: Acting user.

    Returns:
        The COMPLETED File instance.

    Raises:
        NotFoundError: If the file doesn't exist.
        AccessDeniedError: If the file belongs to another user.
        UpstreamStorageError: If the object is not in storage.
    """
    file_instance = get_file(file_id, owner)

    if not get_object_store().object_exists(file_instance.object_key):
        logger.warning(
            'Upload not found in storage, discarding record: %s (ID: %d)',
            file_instance.object_key,
            file_id,
        )
        file_instance.delete()
        reconcile(owner)
        raise UpstreamStorageError(
            'Upload failed - object not found in storage',
        )

    with transaction.atomic():
        if content_type:
            file_instance.content_type = content_type
        elif not file_instance.content_type:
            file_instance.content_type = detect_content_type(
                file_instance.file_name,
            )
        file_instance.upload_status = UploadStatus.COMPLETED
        file_instance.upload_progress = file_instance.file_size
        file_instance.save(update_fields=[
            'content_type',
            'upload_status',
            'upload_progress',
            'last_modified',
        ])

    reconcile(owner)

    logger.info(
        'File upload confirmed: %s by user: %s',
        file_instance.file_name,
        owner.username,
    )
    return file_instance


def get_file_metadata(file_id: int, owner: _User) -> dict[str, Any]:
    """Serialized metadata of a file owned by ``owner``."""
    return file_to_dict(get_file(file_id, owner))


def get_download_url(file_id: int, owner: _User) -> DownloadTicket:
    """Presigned download URL for a file owned by ``owner``.

    Args:
        file_id: ID of the file.
        owner: Acting user.

    Returns:
        DownloadTicket valid for the authenticated download expiry.

    Raises:
        NotFoundError: If the file or its object doesn't exist.
        AccessDeniedError: If the file belongs to another user.
        PermissionDeniedError: If the user may not read files.
    """
    file_instance = get_file(file_id, owner)
    expires_in_minutes = get_download_expiry()
    download_url = issue_download_url(
        file_instance.object_key,
        get_permissions(owner),
        expires_in_minutes,
    )
    return DownloadTicket(
        download_url=download_url,
        expires_in_minutes=expires_in_minutes,
    )


def purge_file(file_instance: File) -> None:
    """Delete a file's object, then its record.

    Args:
        file_instance: Record to remove.

    Raises:
        UpstreamStorageError: If the object delete fails; the record is
            kept in that case.
    """
    get_object_store().delete_object(file_instance.object_key)
    file_id = file_instance.id
    file_instance.delete()
    logger.info(
        'File purged: %s (ID: %d)',
        file_instance.object_key,
        file_id,
    )


def delete_file(file_id: int, owner: _User) -> None:
    """Delete a file from storage and database.

    Args:
        file_id: ID of file to delete.
        owner: Acting user.

    Raises:
        NotFoundError: If the file doesn't exist.
        AccessDeniedError: If the file belongs to another user.
        UpstreamStorageError: If the object delete fails.
    """
    file_instance = get_file(file_id, owner)
    counted = file_instance.is_completed and not file_instance.is_deleted
    freed_bytes = file_instance.file_size if counted else 0

    with transaction.atomic():
        purge_file(file_instance)

    release_usage(owner, freed_bytes)

    logger.info(
        'File deleted: %s by user: %s',
        file_instance.file_name,
        owner.username,
    )


def list_files(
    owner: _User,
    folder_id: int | None = None,
    page: int = 0,
    size: int = _DEFAULT_PAGE_SIZE,
) -> FilePage:
    """List files directly in a folder (or the root), newest first.

    Soft-deleted files are excluded.

    Args:
        owner: Acting user.
        folder_id: Folder ID, None for the root.
        page: Zero-based page number.
        size: Page size.

    Returns:
        FilePage with the requested slice and totals.
    """
    _validate_page(page, size)
    folder = _resolve_folder(folder_id, owner)

    files = (
        File.objects.owned_by(owner)
        .active()
        .in_folder(folder)
        .select_related('folder')
        .order_by('-uploaded_at', '-id')
    )
    offset = page * size
    return FilePage(
        items=list(files[offset:offset + size]),
        page=page,
        size=size,
        total_items=files.count(),
    )


def list_all_files(owner: _User, folder_id: int | None = None) -> list[File]:
    """All active files for "select all".

    With a folder, that folder's direct files; without one, every file
    of the user. Records are loaded in large batches to keep each query
    bounded.

    Args:
        owner: Acting user.
        folder_id: Folder ID, None for all of the user's files.

    Returns:
        Files ordered newest first.
    """
    files = File.objects.owned_by(owner).active()
    if folder_id is not None:
        files = files.in_folder(get_folder(folder_id, owner))
    files = files.select_related('folder').order_by('-uploaded_at', '-id')

    batch_size = _get_list_all_batch_size()
    all_files: list[File] = []
    offset = 0

    while True:
        batch = list(files[offset:offset + batch_size])
        all_files.extend(batch)
        if len(batch) < batch_size:
            break
        offset += batch_size

    return all_files


def search_files(
    owner: _User,
    query: str | None,
    page: int = 0,
    size: int = _DEFAULT_PAGE_SIZE,
) -> FilePage:
    """Case-insensitive substring search over file names.

    Args:
        owner: Acting user.
        query: Substring to look for, blank matches every file.
        page: Zero-based page number.
        size: Page size.

    Returns:
        FilePage of matching active files, newest first.
    """
    _validate_page(page, size)

    files = (
        File.objects.owned_by(owner)
        .active()
        .name_contains((query or '').strip())
        .select_related('folder')
        .order_by('-uploaded_at', '-id')
    )
    offset = page * size
    return FilePage(
        items=list(files[offset:offset + size]),
        page=page,
        size=size,
        total_items=files.count(),
    )


def move_file(file_id: int, target_folder_id: int | None, owner: _User) -> File:
    """Move a file to another folder (None moves it to the root).

    The object key is opaque, so only the record changes.

    Args:
        file_id: ID of the file.
        target_folder_id: Target folder ID, None for the root.
        owner: Acting user.

    Returns:
        Updated File instance.
    """
    file_instance = get_file(file_id, owner)
    target_folder = _resolve_folder(target_folder_id, owner)

    file_instance.folder = target_folder
    file_instance.save(update_fields=['folder', 'last_modified'])

    logger.info(
        'File moved: %s -> %s by user: %s',
        file_instance.file_name,
        target_folder.full_path if target_folder is not None else '/',
        owner.username,
    )
    return file_instance


def rename_file(file_id: int, new_name: str | None, owner: _User) -> File:
    """Change the display name of a file.

    Args:
        file_id: ID of the file.
        new_name: New name, trimmed before use.
        owner: Acting user.

    Returns:
        Updated File instance.

    Raises:
        InvalidInputError: If the name is blank.
    """
    file_instance = get_file(file_id, owner)
    file_instance.file_name = validate_file_name(new_name)
    file_instance.save(update_fields=['file_name', 'last_modified'])

    logger.info(
        'File renamed to: %s by user: %s',
        file_instance.file_name,
        owner.username,
    )
    return file_instance


def _owned_active_files(
    file_ids: list[int],
    owner: _User,
    strict: bool,
) -> list[File]:
    """Restrict ids to the caller's active files.

    Unless ``strict`` is set, ids the caller doesn't own are skipped.
    """
    unique_ids = list(dict.fromkeys(file_ids))
    files = list(
        File.objects.owned_by(owner).active().filter(id__in=unique_ids),
    )
    if strict and len(files) != len(unique_ids):
        raise AccessDeniedError('Some files are not accessible')
    return files


def _failure_message(error: Exception) -> str:
    if isinstance(error, DriveError):
        return error.message
    return _BULK_FAILURE_MESSAGE


def bulk_delete_files(
    file_ids: list[int],
    owner: _User,
    strict: bool = False,
) -> BulkResult:
    """Delete several files, each one independently.

    Ids not owned by the caller are ignored. Each item is deleted object
    first, record second, in its own transaction; a failing item is
    reported and the rest continue.

    Args:
        file_ids: IDs to delete.
        owner: Acting user.
        strict: Raise instead of skipping ids the caller doesn't own.

    Returns:
        BulkResult with deleted and failed ids.

    Raises:
        AccessDeniedError: If ``strict`` and some ids are not owned.
    """
    result = BulkResult()

    for file_instance in _owned_active_files(file_ids, owner, strict):
        file_id = file_instance.id
        try:
            with transaction.atomic():
                purge_file(file_instance)
        except (UpstreamStorageError, DatabaseError) as error:
            logger.exception('Bulk delete failed for file: %d', file_id)
            result.failed[file_id] = _failure_message(error)
        else:
            result.succeeded.append(file_id)

    reconcile(owner)

    logger.info(
        'Bulk deleted %d files by user: %s (%d failed)',
        result.count,
        owner.username,
        len(result.failed),
    )
    return result


def bulk_move_files(
    file_ids: list[int],
    target_folder_id: int | None,
    owner: _User,
    strict: bool = False,
) -> BulkResult:
    """Move several files into one folder.

    Args:
        file_ids: IDs to move.
        target_folder_id: Target folder ID, None for the root.
        owner: Acting user.
        strict: Raise instead of skipping ids the caller doesn't own.

    Returns:
        BulkResult with moved and failed ids.

    Raises:
        NotFoundError: If the target folder doesn't exist.
        AccessDeniedError: If the target folder belongs to another user,
            or ``strict`` and some ids are not owned.
    """
    target_folder = _resolve_folder(target_folder_id, owner)
    result = BulkResult()

    for file_instance in _owned_active_files(file_ids, owner, strict):
        file_id = file_instance.id
        try:
            with transaction.atomic():
                file_instance.folder = target_folder
                file_instance.save(update_fields=['folder', 'last_modified'])
        except DatabaseError as error:
            logger.exception('Bulk move failed for file: %d', file_id)
            result.failed[file_id] = _failure_message(error)
        else:
            result.succeeded.append(file_id)

    logger.info(
        'Bulk moved %d files by user: %s (%d failed)',
        result.count,
        owner.username,
        len(result.failed),
    )
    return result


def generate_public_link(file_id: int, owner: _User) -> str:
    """Share a file publicly, see ``public_links.generate_link``."""
    from server.apps.drive.logic.public_links import (  # noqa: WPS433
        generate_link,
    )

    return generate_link(file_id, owner)


def revoke_public_link(file_id: int, owner: _User) -> None:
    """Stop sharing a file, see ``public_links.revoke_link``."""
    from server.apps.drive.logic.public_links import (  # noqa: WPS433
        revoke_link,
    )

    revoke_link(file_id, owner)


def get_file_by_public_token(token: str) -> File:
    """Resolve a public token, no ownership check."""
    from server.apps.drive.logic.public_links import (  # noqa: WPS433
        resolve_token,
    )

    return resolve_token(token)


def get_public_download_url(token: str) -> DownloadTicket:
    """Download URL for a shared file, no principal required."""
    from server.apps.drive.logic.public_links import (  # noqa: WPS433
        get_public_download_url as public_download_url,
    )

    return public_download_url(token)


def get_storage_info(owner: _User) -> StorageUsage:
    """Reconciled storage usage of ``owner``."""
    return get_storage_usage(owner)
