"""Infrastructure layer for drive app.

This package contains integrations with external systems:
- Object store gateway (S3/MinIO/R2 via django-storages)
- Naming helpers for object keys, folder names and sizes

Keep infrastructure concerns separate from business logic.
"""
