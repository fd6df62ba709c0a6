"""Drive settings: valet-key expiry, quotas and batching."""

from server.settings.components import config

# Presigned URL lifetimes in minutes
DRIVE_UPLOAD_URL_EXPIRY_MINUTES = config(
    'DRIVE_UPLOAD_URL_EXPIRY_MINUTES',
    cast=int,
    default=15,
)
DRIVE_DOWNLOAD_URL_EXPIRY_MINUTES = config(
    'DRIVE_DOWNLOAD_URL_EXPIRY_MINUTES',
    cast=int,
    default=10,
)
DRIVE_PUBLIC_DOWNLOAD_URL_EXPIRY_MINUTES = config(
    'DRIVE_PUBLIC_DOWNLOAD_URL_EXPIRY_MINUTES',
    cast=int,
    default=60,
)

# Default per-user quota: 1 GB
DRIVE_DEFAULT_QUOTA_BYTES = config(
    'DRIVE_DEFAULT_QUOTA_BYTES',
    cast=int,
    default=1024 * 1024 * 1024,
)

# Page size used when loading a whole folder for "select all"
DRIVE_LIST_ALL_BATCH_SIZE = config(
    'DRIVE_LIST_ALL_BATCH_SIZE',
    cast=int,
    default=200,
)

# PENDING uploads older than this are reclaimed by cleanup_pending_uploads
DRIVE_PENDING_UPLOAD_TTL_HOURS = config(
    'DRIVE_PENDING_UPLOAD_TTL_HOURS',
    cast=int,
    default=24,
)
