import pytest

from kanban_app.models import Activity, Board, Project, ProjectMember, Task
from kanban_app.roles import Role

pytestmark = pytest.mark.django_db


def test_create_project_sets_up_boards_and_owner(owner, client_for):
    response = client_for(owner).post(
        '/api/projects/', {'title': 'Website', 'description': 'Relaunch'}, format='json')

    assert response.status_code == 201
    project = Project.objects.get(pk=response.data['id'])
    boards = list(Board.objects.filter(project=project).order_by('position'))
    assert [b.position for b in boards] == [0, 1, 2]
    assert [b.title for b in boards] == ['To Do', 'In Progress', 'Done']
    members = ProjectMember.objects.filter(project=project)
    assert members.count() == 1
    assert members.get().user == owner
    assert members.get().role == Role.OWNER
    assert project.color == '#6366f1'
    assert response.data['role'] == 'OWNER'
    assert Activity.objects.filter(project=project, type=Activity.Type.CREATED).exists()


def test_create_project_requires_title(owner, client_for):
    response = client_for(owner).post('/api/projects/', {'title': ''}, format='json')
    assert response.status_code == 400
    assert not Project.objects.exists()


def test_unauthenticated_request_is_rejected(client_for):
    response = client_for().get('/api/projects/')
    assert response.status_code == 401


def test_list_only_shows_projects_the_user_belongs_to(project, owner, outsider, client_for, add_member):
    member = add_member(project, 'mia@example.com', Role.MEMBER)
    client_for(outsider).post('/api/projects/', {'title': 'Private'}, format='json')

    titles = [p['title'] for p in client_for(member).get('/api/projects/').data]
    assert titles == ['Launch']

    listed = client_for(owner).get('/api/projects/').data
    assert listed[0]['member_count'] == 2
    assert listed[0]['board_count'] == 3


def test_non_member_gets_not_found(project, outsider, client_for):
    response = client_for(outsider).get(f'/api/projects/{project.pk}/')
    assert response.status_code == 404


def test_member_can_read_project(project, client_for, add_member):
    viewer = add_member(project, 'vic@example.com', Role.VIEWER)
    response = client_for(viewer).get(f'/api/projects/{project.pk}/')
    assert response.status_code == 200
    assert response.data['role'] == 'VIEWER'
    assert len(response.data['boards']) == 3


def test_viewer_cannot_update_project(project, client_for, add_member):
    viewer = add_member(project, 'vic@example.com', Role.VIEWER)
    response = client_for(viewer).patch(
        f'/api/projects/{project.pk}/', {'title': 'Hijacked'}, format='json')
    assert response.status_code == 403
    project.refresh_from_db()
    assert project.title == 'Launch'


def test_admin_updates_project(project, client_for, add_member):
    admin = add_member(project, 'ada@example.com', Role.ADMIN)
    response = client_for(admin).patch(
        f'/api/projects/{project.pk}/', {'color': '#ff0000'}, format='json')
    assert response.status_code == 200
    project.refresh_from_db()
    assert project.color == '#ff0000'
    assert Activity.objects.filter(project=project, type=Activity.Type.UPDATED, actor=admin).exists()


def test_only_owner_deletes_project(project, owner, boards, client_for, add_member):
    admin = add_member(project, 'ada@example.com', Role.ADMIN)
    Task.objects.create(board=boards['To Do'], title='Draft', created_by=owner)

    assert client_for(admin).delete(f'/api/projects/{project.pk}/').status_code == 403
    assert client_for(owner).delete(f'/api/projects/{project.pk}/').status_code == 204

    assert not Project.objects.filter(pk=project.pk).exists()
    assert not Board.objects.filter(project_id=project.pk).exists()
    assert not Task.objects.exists()
    assert not ProjectMember.objects.filter(project_id=project.pk).exists()


def test_delete_by_non_member_is_not_found(project, outsider, client_for):
    assert client_for(outsider).delete(f'/api/projects/{project.pk}/').status_code == 404
    assert Project.objects.filter(pk=project.pk).exists()


class TestBoards:

    def test_admin_adds_board_at_the_end(self, project, client_for, add_member):
        admin = add_member(project, 'ada@example.com', Role.ADMIN)
        response = client_for(admin).post(
            f'/api/projects/{project.pk}/boards/', {'title': 'Review'}, format='json')
        assert response.status_code == 201
        assert response.data['position'] == 3

    def test_member_cannot_manage_boards(self, project, boards, client_for, add_member):
        member = add_member(project, 'mia@example.com', Role.MEMBER)
        client = client_for(member)
        assert client.post(
            f'/api/projects/{project.pk}/boards/', {'title': 'Review'}, format='json').status_code == 403
        assert client.delete(
            f"/api/projects/{project.pk}/boards/{boards['Done'].pk}/").status_code == 403

    def test_viewer_lists_boards(self, project, client_for, add_member):
        viewer = add_member(project, 'vic@example.com', Role.VIEWER)
        response = client_for(viewer).get(f'/api/projects/{project.pk}/boards/')
        assert response.status_code == 200
        assert [b['title'] for b in response.data] == ['To Do', 'In Progress', 'Done']

    def test_non_member_cannot_see_boards(self, project, outsider, client_for):
        response = client_for(outsider).get(f'/api/projects/{project.pk}/boards/')
        assert response.status_code == 404
