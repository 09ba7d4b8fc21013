"""Project activity feed.

``record`` is called after a mutation has succeeded. It never raises: a
failed insert is logged and the caller carries on, so the feed can lose an
entry but never a user's change.
"""
import logging

from django.conf import settings
from django.db import DatabaseError, transaction

from kanban_app.models import Activity

logger = logging.getLogger(__name__)

_MESSAGES = {
    Activity.Type.CREATED: "{name} created a {entity}",
    Activity.Type.UPDATED: "{name} updated a {entity}",
    Activity.Type.DELETED: "{name} deleted a {entity}",
    Activity.Type.MOVED: "{name} moved a {entity}",
    Activity.Type.ASSIGNED: "{name} assigned a {entity}",
    Activity.Type.UNASSIGNED: "{name} unassigned a {entity}",
    Activity.Type.COMPLETED: "{name} completed a {entity}",
    Activity.Type.COMMENTED: "{name} commented on a {entity}",
    Activity.Type.ATTACHED: "{name} attached a file to a {entity}",
    Activity.Type.MEMBER_ADDED: "{name} added a member to the project",
    Activity.Type.MEMBER_REMOVED: "{name} removed a member from the project",
    Activity.Type.ROLE_CHANGED: "{name} changed a member's role",
}


def record(type, entity, entity_id, actor, project, details=None):
    try:
        # Savepoint so a failed insert does not break the caller's transaction.
        with transaction.atomic():
            return Activity.objects.create(
                type=type,
                entity=entity,
                entity_id=str(entity_id),
                actor=actor,
                project=project,
                details=details or '',
            )
    except DatabaseError:
        logger.exception(
            "Failed to record %s %s #%s in project %s",
            type, entity, entity_id, getattr(project, 'pk', project),
        )
        return None


def feed_limit(requested=None):
    default = settings.TASKFLOW['ACTIVITY_FEED_LIMIT']
    maximum = settings.TASKFLOW['ACTIVITY_FEED_MAX']
    try:
        limit = int(requested) if requested not in (None, '') else default
    except (TypeError, ValueError):
        limit = default
    return max(1, min(limit, maximum))


def recent(project, limit=None):
    return (
        Activity.objects.filter(project=project)
        .select_related('actor')
        .order_by('-created_at', '-id')[:feed_limit(limit)]
    )


def describe(activity):
    name = activity.actor.get_full_name() or activity.actor.username or "Someone"
    template = _MESSAGES.get(activity.type, "{name} performed an action on a {entity}")
    message = template.format(name=name, entity=activity.entity)
    if activity.type == Activity.Type.MOVED and activity.details:
        message = f"{message} {activity.details}"
    return message
