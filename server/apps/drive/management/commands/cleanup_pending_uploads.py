"""Management command to reclaim abandoned PENDING uploads."""

import logging
from datetime import timedelta
from typing import Any, Final

from django.conf import settings
from django.core.management.base import BaseCommand
from django.db import DatabaseError
from django.utils import timezone

from server.apps.drive.exceptions import UpstreamStorageError
from server.apps.drive.logic.file_operations import purge_file
from server.apps.drive.models import File

_DEFAULT_BATCH_SIZE: Final = 1000

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Delete upload records that were never confirmed.

    A client may request an upload URL and never finish. Any object it
    managed to store is deleted first, then the record.
    """

    help = 'Clean up PENDING uploads that were never confirmed'

    def add_arguments(self, parser: Any) -> None:
        """Add command line arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be deleted without deleting',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=_DEFAULT_BATCH_SIZE,
            help=f'Max records to process (default: {_DEFAULT_BATCH_SIZE})',
        )
        parser.add_argument(
            '--older-than-hours',
            type=int,
            default=None,
            help=(
                'Age threshold in hours '
                '(default: DRIVE_PENDING_UPLOAD_TTL_HOURS)'
            ),
        )

    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the cleanup command.

        Args:
            args: Positional arguments (unused).
            options: Command options.
        """
        dry_run = options['dry_run']
        batch_size = options['batch_size']
        older_than_hours = options['older_than_hours']
        if older_than_hours is None:
            older_than_hours = getattr(
                settings,
                'DRIVE_PENDING_UPLOAD_TTL_HOURS',
                24,
            )

        cutoff = timezone.now() - timedelta(hours=older_than_hours)

        self.stdout.write(
            f'Looking for uploads pending since before {cutoff} '
            f'(older than {older_than_hours} hours)',
        )

        stale_uploads = File.objects.stale_pending(cutoff).select_related(
            'owner',
        ).order_by('uploaded_at')[:batch_size]

        count = 0
        failed = 0

        for file_instance in stale_uploads:
            if dry_run:
                self.stdout.write(
                    f'Would delete: {file_instance.object_key} '
                    f'(user: {file_instance.owner.username}, '
                    f'requested: {file_instance.uploaded_at})',
                )
                count += 1
                continue

            file_id = file_instance.id
            try:
                purge_file(file_instance)
            except (UpstreamStorageError, DatabaseError) as exc:
                self.stderr.write(f'Failed to delete {file_id}: {exc}')
                logger.exception(
                    'Failed to reclaim pending upload: %d',
                    file_id,
                )
                failed += 1
            else:
                count += 1

        if dry_run:
            self.stdout.write(
                self.style.SUCCESS(f'Would delete {count} pending uploads'),
            )
        else:
            self.stdout.write(
                self.style.SUCCESS(
                    f'Deleted {count} pending uploads, {failed} failed',
                ),
            )
