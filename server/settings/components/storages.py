"""Django storage configuration for S3-compatible backends.

This module configures django-storages to work with:
- MinIO for local development
- Any S3-compatible service (AWS S3, Cloudflare R2) in production

The application never streams file bytes through Django. The storage
backend is only used to presign URLs and to inspect or delete objects.
"""

from typing import Any, Final

from botocore.config import Config

from server.settings.components import config

# Bounded object-store calls: the drive core never retries on its own,
# retries are configured here at the gateway level.
_CLIENT_CONFIG: Final = Config(
    connect_timeout=config('AWS_S3_CONNECT_TIMEOUT', cast=int, default=5),
    read_timeout=config('AWS_S3_READ_TIMEOUT', cast=int, default=10),
    retries={
        'max_attempts': config('AWS_S3_MAX_ATTEMPTS', cast=int, default=3),
        'mode': 'standard',
    },
    signature_version='s3v4',
)

STORAGES: Final[dict[str, dict[str, Any]]] = {
    'default': {
        'BACKEND': 'server.apps.drive.infrastructure.storage.FileStorage',
        'OPTIONS': {
            'bucket_name': config(
                'AWS_STORAGE_BUCKET_NAME',
                default='valet-drive',
            ),
            'access_key': config('AWS_ACCESS_KEY_ID', default=None),
            'secret_key': config('AWS_SECRET_ACCESS_KEY', default=None),
            'endpoint_url': config(
                'AWS_S3_ENDPOINT_URL',
                default=None,
            ),
            'region_name': config(
                'AWS_S3_REGION_NAME',
                default='us-east-1',
            ),
            'client_config': _CLIENT_CONFIG,
            'file_overwrite': False,  # Prevent accidental overwrites
            'default_acl': None,  # Inherit bucket ACL
            'querystring_auth': True,
        },
    },
    'staticfiles': {
        # Keep static files separate from user files
        'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage',
    },
}
