"""Signal handlers for drive app."""

import logging

from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

from server.apps.drive.logic.quota_operations import get_or_create_account

logger = logging.getLogger(__name__)


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def create_storage_account(
    sender: type,
    instance: object,
    created: bool,
    **kwargs: object,
) -> None:
    """Give every new user a storage account with the default quota.

    Accounts are also created on demand, so users that existed before
    the drive app was installed are covered too.

    Args:
        sender: The user model class.
        instance: The saved user.
        created: Whether the user row was inserted.
        **kwargs: Additional signal arguments.
    """
    if not created or kwargs.get('raw'):
        return

    get_or_create_account(instance)
