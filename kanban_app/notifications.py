import logging

from django.conf import settings
from django.db import DatabaseError, transaction

from kanban_app.models import Notification

logger = logging.getLogger(__name__)


def notify(recipient, type, title, message, link=None):
    """Create a notification for ``recipient``; failures are logged, not raised."""
    try:
        with transaction.atomic():
            return Notification.objects.create(
                recipient=recipient,
                type=type,
                title=title,
                message=message,
                link=link or '',
            )
    except DatabaseError:
        logger.exception(
            "Failed to create %s notification for user %s",
            type, getattr(recipient, 'pk', recipient),
        )
        return None


def for_recipient(user, unread_only=False):
    queryset = Notification.objects.filter(recipient=user)
    if unread_only:
        queryset = queryset.filter(read=False)
    return queryset.order_by('-created_at', '-id')[:settings.TASKFLOW['NOTIFICATION_LIMIT']]


def mark_all_read(user):
    return Notification.objects.filter(recipient=user, read=False).update(read=True)


def project_link(project):
    return f"/projects/{project.pk}"
