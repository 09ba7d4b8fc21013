"""Shared fixtures for the TaskFlow API tests."""

import pytest
from rest_framework.test import APIClient

from kanban_app.models import Board, Project, ProjectMember


@pytest.fixture(autouse=True)
def media_root(settings, tmp_path):
    """Keep uploaded attachments out of the source tree."""
    settings.MEDIA_ROOT = str(tmp_path / 'uploads')
    return tmp_path / 'uploads'


@pytest.fixture
def make_user(django_user_model):
    def make(email, password='secret123', fullname='Test User'):
        first_name, _, last_name = fullname.partition(' ')
        return django_user_model.objects.create_user(
            username=email,
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
        )
    return make


@pytest.fixture
def client_for():
    def make(user=None):
        client = APIClient()
        if user is not None:
            client.force_authenticate(user=user)
        return client
    return make


@pytest.fixture
def owner(make_user):
    return make_user('olivia@example.com', fullname='Olivia Owner')


@pytest.fixture
def outsider(make_user):
    return make_user('oscar@example.com', fullname='Oscar Outsider')


@pytest.fixture
def project(owner, client_for):
    response = client_for(owner).post('/api/projects/', {'title': 'Launch'}, format='json')
    assert response.status_code == 201, response.data
    return Project.objects.get(pk=response.data['id'])


@pytest.fixture
def add_member(make_user):
    def add(project, email, role, fullname='Test User'):
        user = make_user(email, fullname=fullname)
        ProjectMember.objects.create(project=project, user=user, role=role)
        return user
    return add


@pytest.fixture
def boards(project):
    """The three default boards keyed by title."""
    return {board.title: board for board in Board.objects.filter(project=project)}
