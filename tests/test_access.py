import pytest
from rest_framework.exceptions import NotFound, PermissionDenied

from kanban_app import access
from kanban_app.access import NOT_A_MEMBER, Action, Decision
from kanban_app.models import ProjectMember
from kanban_app.roles import Role


class TestRoleOrdering:

    def test_ranks_are_strictly_ordered(self):
        ranks = [Role.VIEWER.rank, Role.MEMBER.rank, Role.ADMIN.rank, Role.OWNER.rank]
        assert ranks == sorted(ranks)
        assert len(set(ranks)) == 4

    def test_at_least(self):
        assert Role.OWNER.at_least(Role.ADMIN)
        assert Role.ADMIN.at_least('ADMIN')
        assert not Role.MEMBER.at_least(Role.ADMIN)
        assert not Role.VIEWER.at_least(Role.MEMBER)


@pytest.mark.parametrize('role, action, expected', [
    (Role.VIEWER, Action.VIEW, Decision.ALLOWED),
    (Role.VIEWER, Action.CREATE_TASK, Decision.DENIED),
    (Role.VIEWER, Action.CREATE_COMMENT, Decision.DENIED),
    (Role.VIEWER, Action.UPDATE_COMMENT, Decision.DENIED),
    (Role.MEMBER, Action.DELETE_COMMENT, Decision.ALLOWED),
    (Role.MEMBER, Action.CREATE_TASK, Decision.ALLOWED),
    (Role.MEMBER, Action.ADD_ATTACHMENT, Decision.ALLOWED),
    (Role.MEMBER, Action.INVITE_MEMBER, Decision.DENIED),
    (Role.MEMBER, Action.REMOVE_MEMBER, Decision.DENIED),
    (Role.ADMIN, Action.REMOVE_MEMBER, Decision.ALLOWED),
    (Role.ADMIN, Action.CHANGE_ROLE, Decision.ALLOWED),
    (Role.ADMIN, Action.DELETE_PROJECT, Decision.DENIED),
    (Role.OWNER, Action.DELETE_PROJECT, Decision.ALLOWED),
    (Role.VIEWER, Action.LEAVE_PROJECT, Decision.ALLOWED),
    (NOT_A_MEMBER, Action.VIEW, Decision.DENIED),
    (NOT_A_MEMBER, Action.LEAVE_PROJECT, Decision.DENIED),
])
def test_authorize(role, action, expected):
    assert access.authorize(role, action) is expected


def test_every_action_has_a_minimum_role():
    assert set(access.MINIMUM_ROLE) == set(Action)


@pytest.mark.django_db
class TestResolveRole:

    def test_owner_wins_over_membership_row(self, project, owner):
        ProjectMember.objects.filter(project=project, user=owner).update(role=Role.VIEWER)
        assert access.resolve_role(owner, project) is Role.OWNER

    def test_membership_role(self, project, add_member):
        admin = add_member(project, 'ada@example.com', Role.ADMIN)
        assert access.resolve_role(admin, project) == Role.ADMIN

    def test_non_member_gets_sentinel(self, project, outsider):
        role = access.resolve_role(outsider, project)
        assert role is NOT_A_MEMBER
        assert not role

    def test_missing_user(self, project):
        assert access.resolve_role(None, project) is NOT_A_MEMBER


@pytest.mark.django_db
class TestRequire:

    def test_non_member_is_not_found(self, project, outsider):
        with pytest.raises(NotFound):
            access.require(outsider, project, Action.VIEW)

    def test_insufficient_role_is_forbidden(self, project, add_member):
        viewer = add_member(project, 'vic@example.com', Role.VIEWER)
        with pytest.raises(PermissionDenied):
            access.require(viewer, project, Action.CREATE_TASK)

    def test_allowed_returns_role(self, project, add_member):
        member = add_member(project, 'mia@example.com', Role.MEMBER)
        assert access.require(member, project, Action.CREATE_TASK) == Role.MEMBER

    def test_visible_projects(self, project, owner, outsider, add_member):
        member = add_member(project, 'mia@example.com', Role.MEMBER)
        assert list(access.visible_projects(owner)) == [project]
        assert list(access.visible_projects(member)) == [project]
        assert not access.visible_projects(outsider).exists()
