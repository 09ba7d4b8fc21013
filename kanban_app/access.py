"""Who may do what inside a project.

``resolve_role`` answers "what is this user to this project", ``authorize``
turns a role and an action into a decision, and ``require`` glues the two
together for the API layer, raising the DRF exception the caller should see.
The actor is always passed in explicitly.
"""
import enum

from django.db.models import Q
from rest_framework.exceptions import NotFound, PermissionDenied

from kanban_app.models import Project, ProjectMember
from kanban_app.roles import Role


class _NotAMember:
    def __bool__(self):
        return False

    def __repr__(self):
        return 'NOT_A_MEMBER'


NOT_A_MEMBER = _NotAMember()


class Decision(enum.Enum):
    ALLOWED = 'allowed'
    DENIED = 'denied'


class Action(enum.Enum):
    VIEW = 'view'
    CREATE_TASK = 'create_task'
    UPDATE_TASK = 'update_task'
    DELETE_TASK = 'delete_task'
    CREATE_COMMENT = 'create_comment'
    UPDATE_COMMENT = 'update_comment'
    DELETE_COMMENT = 'delete_comment'
    ADD_ATTACHMENT = 'add_attachment'
    DELETE_ATTACHMENT = 'delete_attachment'
    UPDATE_PROJECT = 'update_project'
    MANAGE_BOARDS = 'manage_boards'
    INVITE_MEMBER = 'invite_member'
    REMOVE_MEMBER = 'remove_member'
    CHANGE_ROLE = 'change_role'
    DELETE_PROJECT = 'delete_project'
    LEAVE_PROJECT = 'leave_project'


# None means any membership is enough.
MINIMUM_ROLE = {
    Action.VIEW: Role.VIEWER,
    Action.CREATE_TASK: Role.MEMBER,
    Action.UPDATE_TASK: Role.MEMBER,
    Action.DELETE_TASK: Role.MEMBER,
    Action.CREATE_COMMENT: Role.MEMBER,
    Action.UPDATE_COMMENT: Role.MEMBER,
    Action.DELETE_COMMENT: Role.MEMBER,
    Action.ADD_ATTACHMENT: Role.MEMBER,
    Action.DELETE_ATTACHMENT: Role.MEMBER,
    Action.UPDATE_PROJECT: Role.ADMIN,
    Action.MANAGE_BOARDS: Role.ADMIN,
    Action.INVITE_MEMBER: Role.ADMIN,
    Action.REMOVE_MEMBER: Role.ADMIN,
    Action.CHANGE_ROLE: Role.ADMIN,
    Action.DELETE_PROJECT: Role.OWNER,
    Action.LEAVE_PROJECT: None,
}


def resolve_role(user, project):
    if user is None or not user.is_authenticated:
        return NOT_A_MEMBER
    if project.owner_id == user.id:
        return Role.OWNER
    role = (
        ProjectMember.objects.filter(project=project, user=user)
        .values_list('role', flat=True)
        .first()
    )
    if role is None:
        return NOT_A_MEMBER
    return Role(role)


def authorize(role, action):
    if role is NOT_A_MEMBER:
        return Decision.DENIED
    minimum = MINIMUM_ROLE[action]
    if minimum is None or Role(role).at_least(minimum):
        return Decision.ALLOWED
    return Decision.DENIED


def require(user, project, action, not_found="Project not found."):
    role = resolve_role(user, project)
    if role is NOT_A_MEMBER:
        raise NotFound(not_found)
    if authorize(role, action) is Decision.DENIED:
        raise PermissionDenied(
            f"Your role ({role.label}) does not allow this action."
        )
    return role


def require_task_write(user, task, action):
    role = require(user, task.project, action, not_found="Task not found.")
    if not role.at_least(Role.ADMIN) and not task.is_touchable_by(user):
        raise PermissionDenied(
            "Members may only change tasks they created or are assigned to."
        )
    return role


def require_comment_author(user, comment, action):
    require(user, comment.task.project, action, not_found="Comment not found.")
    if comment.author_id != user.id:
        raise PermissionDenied("Only the author of a comment may change it.")


def visible_projects(user):
    return Project.objects.filter(Q(owner=user) | Q(members__user=user)).distinct()
