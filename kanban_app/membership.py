"""Membership mutations.

Every change that can lower the number of OWNER memberships runs inside a
transaction that first locks the project row, so two concurrent removals
cannot both see a second owner and both succeed.
"""
import logging

from django.db import transaction
from rest_framework.exceptions import ValidationError

from kanban_app import activity, notifications
from kanban_app.api.exceptions import InvariantViolation
from kanban_app.models import Activity, Notification, Project, ProjectMember
from kanban_app.roles import Role

logger = logging.getLogger(__name__)


def _lock_project(project_id):
    return Project.objects.select_for_update().get(pk=project_id)


def _owner_count(project):
    return ProjectMember.objects.filter(project=project, role=Role.OWNER).count()


def _ensure_not_last_owner(project, member):
    if member.role == Role.OWNER and _owner_count(project) <= 1:
        raise InvariantViolation("Cannot remove the last owner of a project.")


def _hand_over_ownership(project, leaving_user):
    if project.owner_id != leaving_user.id:
        return
    successor = (
        ProjectMember.objects.filter(project=project, role=Role.OWNER)
        .exclude(user=leaving_user)
        .order_by('joined_at', 'id')
        .first()
    )
    project.owner_id = successor.user_id
    project.save(update_fields=['owner', 'updated_at'])
    logger.info(
        "Project %s ownership passed from user %s to user %s",
        project.pk, leaving_user.pk, successor.user_id,
    )


def invite(project, actor, user, role):
    with transaction.atomic():
        _lock_project(project.pk)
        if ProjectMember.objects.filter(project=project, user=user).exists():
            raise ValidationError({'email': "User is already a member."})
        member = ProjectMember.objects.create(project=project, user=user, role=role)

    activity.record(
        Activity.Type.MEMBER_ADDED, Activity.Entity.PROJECT, project.pk, actor, project,
        details=f"{user.email} as {Role(role).label}",
    )
    notifications.notify(
        user,
        Notification.Type.TEAM_INVITE,
        "Added to Project",
        f"You've been added to {project.title} by {actor.get_full_name() or actor.email}",
        link=notifications.project_link(project),
    )
    return member


def change_role(member, actor, role):
    role = Role(role)
    with transaction.atomic():
        project = _lock_project(member.project_id)
        member = ProjectMember.objects.select_related('user').get(pk=member.pk)
        previous = Role(member.role)
        if previous == role:
            return member
        if previous == Role.OWNER:
            _ensure_not_last_owner(project, member)
        member.role = role
        member.save(update_fields=['role'])
        if previous == Role.OWNER:
            _hand_over_ownership(project, member.user)

    activity.record(
        Activity.Type.ROLE_CHANGED, Activity.Entity.PROJECT, project.pk, actor, project,
        details=f"{member.user.email}: {previous.label} -> {role.label}",
    )
    notifications.notify(
        member.user,
        Notification.Type.ROLE_CHANGED,
        "Role changed",
        f"Your role in {project.title} is now {role.label}",
        link=notifications.project_link(project),
    )
    return member


def remove(member, actor):
    with transaction.atomic():
        project = _lock_project(member.project_id)
        member = ProjectMember.objects.select_related('user').get(pk=member.pk)
        _ensure_not_last_owner(project, member)
        removed_user = member.user
        if member.role == Role.OWNER:
            _hand_over_ownership(project, removed_user)
        member.delete()

    activity.record(
        Activity.Type.MEMBER_REMOVED, Activity.Entity.PROJECT, project.pk, actor, project,
        details=removed_user.email,
    )
    return removed_user
