"""Django admin configuration for drive app."""


from django.contrib import admin
from django.db.models import QuerySet
from django.http import HttpRequest
from django.utils.html import format_html

from server.apps.drive.infrastructure.metadata import format_bytes
from server.apps.drive.logic.file_operations import purge_file
from server.apps.drive.logic.quota_operations import reconcile
from server.apps.drive.models import File, Folder, StorageAccount


@admin.register(Folder)
class FolderAdmin(admin.ModelAdmin[Folder]):
    """Admin interface for Folder model."""

    list_display = [
        'full_path',
        'owner',
        'created_at',
        'updated_at',
    ]

    list_filter = [
        'owner',
    ]

    search_fields = [
        'name',
        'full_path',
    ]

    # Structure and paths change only through the folder operations
    readonly_fields = [
        'owner',
        'name',
        'parent',
        'full_path',
        'created_at',
        'updated_at',
    ]

    def get_queryset(self, request: HttpRequest) -> QuerySet[Folder]:
        """Optimize queryset with select_related.

        Args:
            request: HTTP request.

        Returns:
            Optimized QuerySet.
        """
        return super().get_queryset(request).select_related('owner')

    def has_add_permission(self, request: HttpRequest) -> bool:
        """Folders are created through create_folder only."""
        return False


@admin.register(File)
class FileAdmin(admin.ModelAdmin[File]):
    """Admin interface for File model."""

    list_display = [
        'file_name',
        'owner',
        'folder_path_display',
        'size_display',
        'content_type',
        'upload_status',
        'is_public',
        'uploaded_at',
    ]

    list_filter = [
        'upload_status',
        'is_public',
        'is_deleted',
        'content_type',
        'uploaded_at',
    ]

    search_fields = [
        'file_name',
        'object_key',
    ]

    # Only the labels stay editable here
    readonly_fields = [
        'file_name',
        'owner',
        'folder',
        'object_key',
        'file_size',
        'upload_status',
        'upload_session_id',
        'upload_progress',
        'is_public',
        'public_token',
        'public_token_created_at',
        'uploaded_at',
        'last_modified',
    ]

    fieldsets = (
        ('File Information', {
            'fields': ('file_name', 'original_name', 'owner', 'folder'),
        }),
        ('Storage', {
            'fields': (
                'object_key',
                'file_size',
                'content_type',
            ),
        }),
        ('Upload', {
            'fields': (
                'upload_status',
                'upload_session_id',
                'upload_progress',
            ),
        }),
        ('Sharing', {
            'fields': ('is_public', 'public_token', 'public_token_created_at'),
        }),
        ('Timestamps', {
            'fields': ('uploaded_at', 'last_modified'),
        }),
    )

    def folder_path_display(self, obj: File) -> str:
        """Display the folder path, '/' for root files.

        Args:
            obj: File instance.

        Returns:
            Folder full path.
        """
        if obj.folder is None:
            return '/'
        return obj.folder.full_path
    folder_path_display.short_description = 'Folder'  # type: ignore[attr-defined]

    def size_display(self, obj: File) -> str:
        """Display file size in human-readable format."""
        return format_bytes(obj.file_size)
    size_display.short_description = 'Size'  # type: ignore[attr-defined]

    def get_queryset(self, request: HttpRequest) -> QuerySet[File]:
        """Optimize queryset with select_related.

        Args:
            request: HTTP request.

        Returns:
            Optimized QuerySet.
        """
        return super().get_queryset(request).select_related('owner', 'folder')

    def has_add_permission(self, request: HttpRequest) -> bool:
        """Files are created through the upload flow only."""
        return False

    def delete_model(self, request: HttpRequest, obj: File) -> None:
        """Delete the stored object first, then the record.

        Args:
            request: HTTP request.
            obj: File instance to delete.
        """
        purge_file(obj)
        reconcile(obj.owner)

    def delete_queryset(
        self,
        request: HttpRequest,
        queryset: QuerySet[File],
    ) -> None:
        """Bulk admin delete, object before record for every file.

        Args:
            request: HTTP request.
            queryset: Selected files.
        """
        owners = {}
        for file_instance in queryset.select_related('owner'):
            purge_file(file_instance)
            owners[file_instance.owner_id] = file_instance.owner
        for owner in owners.values():
            reconcile(owner)


@admin.register(StorageAccount)
class StorageAccountAdmin(admin.ModelAdmin[StorageAccount]):
    """Admin interface for StorageAccount model."""

    list_display = [
        'user',
        'can_create',
        'can_read',
        'can_write',
        'quota_display',
        'used_display',
        'percentage_display',
        'status_display',
    ]

    list_filter = [
        'can_create',
        'can_read',
        'can_write',
    ]

    search_fields = [
        'user__username',
        'user__email',
    ]

    readonly_fields = [
        'user',
        'used_bytes',
    ]

    fieldsets = (
        ('User', {
            'fields': ('user',),
        }),
        ('Permissions', {
            'fields': ('can_create', 'can_read', 'can_write'),
        }),
        ('Quota Settings', {
            'fields': ('quota_bytes',),
        }),
        ('Current Usage', {
            'fields': ('used_bytes',),
        }),
    )

    def quota_display(self, obj: StorageAccount) -> str:
        """Display quota in human-readable format.

        Args:
            obj: StorageAccount instance.

        Returns:
            Formatted quota string.
        """
        return format_bytes(obj.quota_bytes)
    quota_display.short_description = 'Quota'  # type: ignore[attr-defined]

    def used_display(self, obj: StorageAccount) -> str:
        """Display used bytes in human-readable format.

        Args:
            obj: StorageAccount instance.

        Returns:
            Formatted used bytes string.
        """
        return format_bytes(obj.used_bytes)
    used_display.short_description = 'Used'  # type: ignore[attr-defined]

    def percentage_display(self, obj: StorageAccount) -> str:
        """Display percentage of quota used."""
        return f'{obj.usage_percentage():.1f}%'
    percentage_display.short_description = '%'  # type: ignore[attr-defined]

    def status_display(self, obj: StorageAccount) -> str:
        """Display status indicator based on usage.

        Args:
            obj: StorageAccount instance.

        Returns:
            HTML formatted status indicator.
        """
        percentage = obj.usage_percentage()

        if percentage >= 100:
            color = '#dc3545'  # Red - over quota
            status = 'Over Quota'
        elif percentage >= 90:
            color = '#ffc107'  # Yellow - warning
            status = 'Warning'
        else:
            color = '#28a745'  # Green - ok
            status = 'OK'

        return format_html(
            '<span style="color: {color}; font-weight: bold;">'
            '{status}</span>',
            color=color,
            status=status,
        )
    status_display.short_description = 'Status'  # type: ignore[attr-defined]

    def get_queryset(self, request: HttpRequest) -> QuerySet[StorageAccount]:
        """Optimize queryset with select_related.

        Args:
            request: HTTP request.

        Returns:
            Optimized QuerySet.
        """
        return super().get_queryset(request).select_related('user')
