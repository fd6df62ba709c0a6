"""Naming and metadata helpers for folders, files and object keys."""

import mimetypes
import time
import uuid
from pathlib import PurePosixPath
from typing import Final

from server.apps.drive.exceptions import InvalidInputError

# Characters never allowed inside a single folder name
_PATH_SEPARATORS: Final = ('/', '\\')
_DEFAULT_CONTENT_TYPE: Final = 'application/octet-stream'
_RANDOM_SUFFIX_LENGTH: Final = 8
_BYTE_UNITS: Final = ('B', 'KB', 'MB', 'GB', 'TB')
_UNIT_STEP: Final = 1024


def validate_name(name: str | None, kind: str = 'Folder') -> str:
    """Validate and normalize a folder name.

    Args:
        name: Name as provided by the caller.
        kind: Noun used in error messages.

    Returns:
        The trimmed name.

    Raises:
        InvalidInputError: If the name is empty or contains a separator.
    """
    if name is None or not name.strip():
        raise InvalidInputError(f'{kind} name cannot be empty')

    if any(separator in name for separator in _PATH_SEPARATORS):
        raise InvalidInputError(f"{kind} name cannot contain '/' or '\\'")

    return name.strip()


def validate_file_name(name: str | None) -> str:
    """Validate and normalize a display file name.

    Args:
        name: Name as provided by the caller.

    Returns:
        The trimmed name.

    Raises:
        InvalidInputError: If the name is empty.
    """
    if name is None or not name.strip():
        raise InvalidInputError('Invalid file name')
    return name.strip()


def generate_unique_file_name(original_name: str) -> str:
    """Make a collision-resistant storage name, keeping the extension.

    Example: 'report.pdf' -> 'report_1760000000000_1a2b3c4d.pdf'

    Args:
        original_name: Client-provided file name.

    Returns:
        Name with a millisecond timestamp and random suffix.
    """
    # The name becomes a single key segment
    safe_name = original_name
    for separator in _PATH_SEPARATORS:
        safe_name = safe_name.replace(separator, '_')

    path = PurePosixPath(safe_name)
    timestamp = time.time_ns() // 1_000_000
    random_part = uuid.uuid4().hex[:_RANDOM_SUFFIX_LENGTH]
    return f'{path.stem}_{timestamp}_{random_part}{path.suffix}'


def user_prefix(user_id: int) -> str:
    """Prefix shared by every object key of a user.

    Args:
        user_id: Owner's user ID.

    Returns:
        Prefix like 'user-42/'.
    """
    return f'user-{user_id}/'


def build_object_key(user_id: int, folder_path: str, file_name: str) -> str:
    """Build the object key for a new upload.

    Args:
        user_id: Owner's user ID.
        folder_path: Folder full_path ('/Docs/Photos') or '' for root.
        file_name: Client-provided file name.

    Returns:
        Key like 'user-42/Docs/Photos/cat_1760000000000_1a2b3c4d.jpg'.
    """
    unique_name = generate_unique_file_name(file_name)
    folder_prefix = ''.join(
        f'{segment}/' for segment in folder_path.split('/') if segment
    )
    return f'{user_prefix(user_id)}{folder_prefix}{unique_name}'


def detect_content_type(filename: str) -> str:
    """Guess content type from the file extension.

    Args:
        filename: Filename with extension.

    Returns:
        MIME type string, 'application/octet-stream' if unknown.
    """
    mime_type, _ = mimetypes.guess_type(filename)
    if mime_type is None:
        return _DEFAULT_CONTENT_TYPE
    return mime_type


def format_bytes(size_bytes: int | None) -> str:
    """Format bytes in human-readable format.

    Args:
        size_bytes: Size in bytes.

    Returns:
        Formatted size string (e.g., '1.50 MB', '234.00 KB').
    """
    if size_bytes is None or size_bytes < 0:
        return '0 B'

    size = float(size_bytes)
    unit_index = 0
    while size >= _UNIT_STEP and unit_index < len(_BYTE_UNITS) - 1:
        size /= _UNIT_STEP
        unit_index += 1

    return f'{size:.2f} {_BYTE_UNITS[unit_index]}'
