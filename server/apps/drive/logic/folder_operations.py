"""Business logic for folder hierarchy operations.

Folders form a tree reachable through parent references. ``full_path``
is denormalized, so every rename or move rewrites the paths of the whole
subtree. Structural mutations lock the owner's folder rows first, which
serializes concurrent renames and moves of overlapping subtrees.
"""

import logging
from collections import defaultdict
from typing import Any

from django.db import IntegrityError, transaction

from server.apps.drive.exceptions import (
    AccessDeniedError,
    CircularReferenceError,
    ConflictError,
    ConflictingNameError,
    NotFoundError,
)
from server.apps.drive.infrastructure.metadata import validate_name
from server.apps.drive.logic.quota_operations import reconcile
from server.apps.drive.models import File, Folder
from server.apps.drive.types import (
    ROOT_NAME,
    ROOT_PATH,
    BreadcrumbEntry,
    FolderContents,
    FolderMetadata,
    FolderNode,
)

# User type for Django's dynamic user model
_User = Any

_FULL_PATH_FIELDS = ('full_path', 'updated_at')  # noqa: WPS226

logger = logging.getLogger(__name__)


def get_folder(folder_id: int, owner: _User) -> Folder:
    """Get a folder owned by ``owner``.

    Args:
        folder_id: ID of the folder.
        owner: Acting user.

    Returns:
        Folder instance.

    Raises:
        NotFoundError: If the folder doesn't exist.
        AccessDeniedError: If the folder belongs to another user.
    """
    try:
        folder = Folder.objects.select_related('parent').get(id=folder_id)
    except Folder.DoesNotExist:
        raise NotFoundError('Folder not found') from None

    if folder.owner_id != owner.id:
        logger.warning(
            'User %s denied access to folder %d',
            owner.username,
            folder_id,
        )
        raise AccessDeniedError('Access denied to this folder')

    return folder


def _lock_owner_tree(owner: _User) -> None:
    """Lock every folder row of ``owner`` until the transaction ends."""
    list(
        Folder.objects.select_for_update()
        .owned_by(owner)
        .values_list('id', flat=True),
    )


def _ensure_unique_name(
    owner: _User,
    parent: Folder | None,
    name: str,
    exclude_id: int | None = None,
) -> None:
    siblings = Folder.objects.owned_by(owner).children_of(parent).filter(
        name=name,
    )
    if exclude_id is not None:
        siblings = siblings.exclude(id=exclude_id)
    if siblings.exists():
        raise ConflictingNameError(
            'Folder with this name already exists in this location',
        )


def _save_unique(folder: Folder) -> None:
    """Save folder, turning a lost uniqueness race into a name conflict."""
    try:
        with transaction.atomic():
            folder.save()
    except IntegrityError as error:
        raise ConflictingNameError(
            'Folder with this name already exists in this location',
        ) from error


def _ancestor_ids(folder: Folder) -> list[int]:
    """IDs of the folder's ancestors, nearest first.

    Walks parent references one row at a time. A revisited ID means the
    stored hierarchy is already corrupt.
    """
    ancestor_ids: list[int] = []
    visited = {folder.id}
    current_id = folder.parent_id

    while current_id is not None:
        if current_id in visited:
            raise CircularReferenceError('Folder hierarchy contains a cycle')
        visited.add(current_id)
        ancestor_ids.append(current_id)
        current_id = (
            Folder.objects.filter(id=current_id)
            .values_list('parent_id', flat=True)
            .first()
        )

    return ancestor_ids


def _cascade_full_path(folder: Folder) -> int:
    """Recompute full_path of every descendant, depth-first.

    Args:
        folder: Folder whose own full_path is already up to date.

    Returns:
        Number of descendants updated.
    """
    updated = 0
    visited = {folder.id}
    stack = [folder]

    while stack:
        parent = stack.pop()
        for child in Folder.objects.filter(parent=parent):
            if child.id in visited:
                raise CircularReferenceError(
                    'Folder hierarchy contains a cycle',
                )
            visited.add(child.id)
            child.parent = parent
            child.full_path = child.compute_full_path()
            child.save(update_fields=_FULL_PATH_FIELDS)
            stack.append(child)
            updated += 1

    return updated


def create_folder(name: str, parent_id: int | None, owner: _User) -> Folder:
    """Create a folder at the root or under ``parent_id``.

    Args:
        name: Folder name, trimmed before use.
        parent_id: Parent folder ID, None for a root folder.
        owner: Acting user, becomes the folder owner.

    Returns:
        Created Folder instance.

    Raises:
        InvalidInputError: If the name is empty or contains a separator.
        NotFoundError: If the parent doesn't exist.
        AccessDeniedError: If the parent belongs to another user.
        ConflictingNameError: If a sibling already has this name.
    """
    sanitized_name = validate_name(name)

    with transaction.atomic():
        _lock_owner_tree(owner)
        parent = None if parent_id is None else get_folder(parent_id, owner)
        _ensure_unique_name(owner, parent, sanitized_name)

        folder = Folder(owner=owner, parent=parent, name=sanitized_name)
        folder.full_path = folder.compute_full_path()
        _save_unique(folder)

    logger.info(
        'Folder created: %s by user: %s',
        folder.full_path,
        owner.username,
    )
    return folder


def rename_folder(folder_id: int, new_name: str, owner: _User) -> Folder:
    """Rename a folder and rewrite the paths of its subtree.

    Args:
        folder_id: ID of the folder to rename.
        new_name: New name, trimmed before use.
        owner: Acting user.

    Returns:
        Updated Folder instance.

    Raises:
        NotFoundError: If the folder doesn't exist.
        AccessDeniedError: If the folder belongs to another user.
        InvalidInputError: If the name is empty or contains a separator.
        ConflictingNameError: If a sibling already has this name.
    """
    with transaction.atomic():
        _lock_owner_tree(owner)
        folder = get_folder(folder_id, owner)
        sanitized_name = validate_name(new_name)
        _ensure_unique_name(
            owner,
            folder.parent,
            sanitized_name,
            exclude_id=folder.id,
        )

        folder.name = sanitized_name
        folder.full_path = folder.compute_full_path()
        _save_unique(folder)
        updated = _cascade_full_path(folder)

    logger.info(
        'Folder renamed to: %s by user: %s (%d descendants updated)',
        folder.full_path,
        owner.username,
        updated,
    )
    return folder


def move_folder(
    folder_id: int,
    new_parent_id: int | None,
    owner: _User,
) -> Folder:
    """Move a folder under another parent (None moves it to the root).

    Args:
        folder_id: ID of the folder to move.
        new_parent_id: Target parent folder ID, None for the root.
        owner: Acting user.

    Returns:
        Updated Folder instance.

    Raises:
        NotFoundError: If either folder doesn't exist.
        AccessDeniedError: If either folder belongs to another user.
        CircularReferenceError: If the target is the folder itself or one
            of its descendants.
        ConflictingNameError: If the target already has a child with the
            same name.
    """
    with transaction.atomic():
        _lock_owner_tree(owner)
        folder = get_folder(folder_id, owner)

        new_parent = None
        if new_parent_id is not None:
            new_parent = get_folder(new_parent_id, owner)
            chain = [new_parent.id, *_ancestor_ids(new_parent)]
            if folder.id in chain:
                raise CircularReferenceError(
                    'Cannot move folder into itself or its own subfolder',
                )

        _ensure_unique_name(
            owner,
            new_parent,
            folder.name,
            exclude_id=folder.id,
        )

        folder.parent = new_parent
        folder.full_path = folder.compute_full_path()
        _save_unique(folder)
        updated = _cascade_full_path(folder)

    logger.info(
        'Folder moved to: %s by user: %s (%d descendants updated)',
        folder.full_path,
        owner.username,
        updated,
    )
    return folder


def delete_folder(folder_id: int, owner: _User, cascade: bool = False) -> int:
    """Delete a folder, optionally with everything inside it.

    With ``cascade`` the subtree is removed in post-order: for each folder
    its files go first (object before record), then the folder itself,
    children before parents.

    Args:
        folder_id: ID of the folder to delete.
        owner: Acting user.
        cascade: Delete contents instead of refusing a non-empty folder.

    Returns:
        Number of files deleted.

    Raises:
        NotFoundError: If the folder doesn't exist.
        AccessDeniedError: If the folder belongs to another user.
        ConflictError: If the folder is not empty and ``cascade`` is False.
        UpstreamStorageError: If an object delete fails.
    """
    with transaction.atomic():
        _lock_owner_tree(owner)
        folder = get_folder(folder_id, owner)
        full_path = folder.full_path

        if cascade:
            deleted_files = _delete_subtree(folder, owner)
        else:
            has_subfolders = Folder.objects.children_of(folder).exists()
            has_files = File.objects.owned_by(owner).active().in_folder(
                folder,
            ).exists()
            if has_subfolders or has_files:
                raise ConflictError(
                    'Cannot delete non-empty folder. '
                    'Use cascade=True to force delete.',
                )
            deleted_files = 0
            folder.delete()

    if deleted_files:
        reconcile(owner)

    logger.info(
        'Folder deleted: %s by user: %s (%d files removed)',
        full_path,
        owner.username,
        deleted_files,
    )
    return deleted_files


def _delete_subtree(folder: Folder, owner: _User) -> int:
    from server.apps.drive.logic.file_operations import (  # noqa: WPS433
        purge_file,
    )

    # Pre-order walk, reversed below so children come before parents
    ordered: list[Folder] = []
    visited: set[int] = set()
    stack = [folder]
    while stack:
        node = stack.pop()
        if node.id in visited:
            raise CircularReferenceError('Folder hierarchy contains a cycle')
        visited.add(node.id)
        ordered.append(node)
        stack.extend(Folder.objects.children_of(node))

    deleted_files = 0
    for node in reversed(ordered):
        for file_instance in File.objects.owned_by(owner).in_folder(node):
            purge_file(file_instance)
            deleted_files += 1
        node.delete()

    return deleted_files


def list_folders(parent_id: int | None, owner: _User) -> list[Folder]:
    """List direct subfolders of a folder, or the root folders.

    Args:
        parent_id: Parent folder ID, None for the root.
        owner: Acting user.

    Returns:
        Folders ordered by name.
    """
    parent = None if parent_id is None else get_folder(parent_id, owner)
    return list(
        Folder.objects.owned_by(owner).children_of(parent).order_by('name'),
    )


def list_all_folders(owner: _User) -> list[Folder]:
    """All folders of a user as a flat list ordered by path."""
    return list(Folder.objects.owned_by(owner).order_by('full_path'))


def get_folder_tree(owner: _User) -> list[FolderNode]:
    """Build the nested folder tree of a user.

    All folders are loaded in one query and indexed by parent ID, the
    nodes are then assembled bottom-up without recursion.

    Args:
        owner: Acting user.

    Returns:
        Root folder nodes ordered by name, each with nested children.
    """
    children_by_parent: dict[int | None, list[Folder]] = defaultdict(list)
    for folder in Folder.objects.owned_by(owner).order_by('name'):
        children_by_parent[folder.parent_id].append(folder)

    ordered: list[Folder] = []
    stack = list(children_by_parent[None])
    while stack:
        folder = stack.pop()
        ordered.append(folder)
        stack.extend(children_by_parent[folder.id])

    nodes: dict[int, FolderNode] = {}
    for folder in reversed(ordered):
        nodes[folder.id] = FolderNode(
            id=folder.id,
            name=folder.name,
            path=folder.full_path,
            created_at=folder.created_at,
            children=tuple(
                nodes[child.id] for child in children_by_parent[folder.id]
            ),
        )

    return [nodes[folder.id] for folder in children_by_parent[None]]


def get_breadcrumb(
    folder_id: int | None,
    owner: _User,
) -> list[BreadcrumbEntry]:
    """Path from the root to a folder, for navigation.

    The first entry is always the synthetic root. Ancestors are found by
    walking parent references, never by parsing ``full_path``.

    Args:
        folder_id: Target folder ID, None for the root itself.
        owner: Acting user.

    Returns:
        Breadcrumb entries from the root to the target folder.
    """
    breadcrumb = [BreadcrumbEntry(id=None, name=ROOT_NAME, path=ROOT_PATH)]
    if folder_id is None:
        return breadcrumb

    ancestors: list[Folder] = []
    visited: set[int] = set()
    current: Folder | None = get_folder(folder_id, owner)
    while current is not None:
        if current.id in visited:
            raise CircularReferenceError('Folder hierarchy contains a cycle')
        visited.add(current.id)
        ancestors.append(current)
        current = current.parent

    breadcrumb.extend(
        BreadcrumbEntry(id=folder.id, name=folder.name, path=folder.full_path)
        for folder in reversed(ancestors)
    )
    return breadcrumb


def search_folders(owner: _User, query: str | None) -> list[Folder]:
    """Case-insensitive substring search over folder names.

    A blank query returns every folder of the user.

    Args:
        owner: Acting user.
        query: Substring to look for.

    Returns:
        Matching folders ordered by path.
    """
    if query is None or not query.strip():
        return list_all_folders(owner)

    return list(
        Folder.objects.owned_by(owner)
        .name_contains(query.strip())
        .order_by('full_path'),
    )


def get_folder_contents(
    folder_id: int | None,
    owner: _User,
) -> FolderContents:
    """Direct subfolders and the number of active files in a folder.

    Args:
        folder_id: Folder ID, None for the root.
        owner: Acting user.

    Returns:
        FolderContents value.
    """
    folder = None if folder_id is None else get_folder(folder_id, owner)
    subfolders = list(
        Folder.objects.owned_by(owner).children_of(folder).order_by('name'),
    )
    file_count = File.objects.owned_by(owner).active().in_folder(
        folder,
    ).count()
    return FolderContents(folders=subfolders, file_count=file_count)


def get_folder_metadata(folder_id: int, owner: _User) -> FolderMetadata:
    """Folder details with counts and a parent summary.

    Args:
        folder_id: Folder ID.
        owner: Acting user.

    Returns:
        FolderMetadata value.
    """
    folder = get_folder(folder_id, owner)
    parent = None
    if folder.parent is not None:
        parent = BreadcrumbEntry(
            id=folder.parent.id,
            name=folder.parent.name,
            path=folder.parent.full_path,
        )

    return FolderMetadata(
        folder=folder,
        subfolder_count=Folder.objects.children_of(folder).count(),
        file_count=File.objects.owned_by(owner).active().in_folder(
            folder,
        ).count(),
        parent=parent,
    )
