"""Exceptions for drive app.

Every error raised by the drive core derives from ``DriveError`` and
carries a stable ``code`` that outer layers map to responses.
"""

from typing import ClassVar


class DriveError(Exception):
    """Base class for drive errors with a stable error kind."""

    code: ClassVar[str] = 'drive_error'

    def __init__(self, message: str = '') -> None:
        """Initialize DriveError.

        Args:
            message: Human-readable detail, safe to show to the caller.
        """
        self.message = message or self.code
        super().__init__(self.message)


class InvalidInputError(DriveError):
    """Malformed name, missing required field or non-positive size."""

    code = 'invalid_input'


class NotFoundError(DriveError):
    """Folder, file or public token does not exist."""

    code = 'not_found'


class AccessDeniedError(DriveError):
    """Resource exists but belongs to another user."""

    code = 'access_denied'


class PermissionDeniedError(AccessDeniedError):
    """User lacks the create/read/write flag the operation needs."""

    code = 'permission_denied'


class ConflictingNameError(DriveError):
    """A sibling folder with the same name already exists."""

    code = 'conflicting_name'


class CircularReferenceError(DriveError):
    """Move would make a folder its own ancestor."""

    code = 'circular_reference'


class ConflictError(DriveError):
    """Non-empty folder deleted without cascade."""

    code = 'conflict'


class UpstreamStorageError(DriveError):
    """Object store call failed or returned an unexpected state."""

    code = 'upstream_storage_error'


class QuotaExceededError(DriveError):
    """Raised when upload would exceed user's storage quota."""

    code = 'quota_exceeded'

    def __init__(
        self,
        quota_bytes: int,
        used_bytes: int,
        required_bytes: int,
    ) -> None:
        """Initialize QuotaExceededError.

        Args:
            quota_bytes: Total quota limit in bytes.
            used_bytes: Currently used bytes.
            required_bytes: Bytes needed for the operation.
        """
        self.quota_bytes = quota_bytes
        self.used_bytes = used_bytes
        self.required_bytes = required_bytes

        available = max(0, quota_bytes - used_bytes)
        super().__init__(
            f'Quota exceeded: need {required_bytes} bytes, '
            f'only {available} bytes available '
            f'(quota: {quota_bytes}, used: {used_bytes})',
        )
