import logging

import pytest
from django.db import DatabaseError

from kanban_app import notifications
from kanban_app.models import Notification, ProjectMember

pytestmark = pytest.mark.django_db


@pytest.fixture
def inbox(owner, outsider):
    def note(recipient, read=False, title='Hello'):
        return Notification.objects.create(
            recipient=recipient, type=Notification.Type.TEAM_INVITE,
            title=title, message='You were added', read=read)
    mine = [note(owner, title='first'), note(owner, read=True, title='second'), note(owner, title='third')]
    theirs = note(outsider, title='not yours')
    return mine, theirs


def test_list_is_scoped_to_recipient_newest_first(owner, inbox, client_for):
    response = client_for(owner).get('/api/notifications/')
    assert response.status_code == 200
    assert [n['title'] for n in response.data] == ['third', 'second', 'first']


def test_unread_only(owner, inbox, client_for):
    response = client_for(owner).get('/api/notifications/', {'unread_only': 'true'})
    assert [n['title'] for n in response.data] == ['third', 'first']


def test_list_is_bounded(owner, client_for, settings):
    settings.TASKFLOW = {**settings.TASKFLOW, 'NOTIFICATION_LIMIT': 2}
    for i in range(4):
        Notification.objects.create(
            recipient=owner, type=Notification.Type.TASK_ASSIGNED, title=str(i), message='m')
    response = client_for(owner).get('/api/notifications/')
    assert len(response.data) == 2


def test_mark_one_read(owner, inbox, client_for):
    mine, _ = inbox
    response = client_for(owner).patch(f'/api/notifications/{mine[0].pk}/', {}, format='json')
    assert response.status_code == 200
    assert response.data['read'] is True
    mine[0].refresh_from_db()
    assert mine[0].read


def test_mark_all_read(owner, inbox, client_for):
    mine, theirs = inbox
    response = client_for(owner).post('/api/notifications/mark-all-read/')
    assert response.status_code == 200
    assert response.data['updated'] == 2
    assert not Notification.objects.filter(recipient=owner, read=False).exists()
    theirs.refresh_from_db()
    assert not theirs.read


def test_delete_own(owner, inbox, client_for):
    mine, _ = inbox
    assert client_for(owner).delete(f'/api/notifications/{mine[0].pk}/').status_code == 204
    assert not Notification.objects.filter(pk=mine[0].pk).exists()


def test_other_users_notifications_are_not_found(owner, inbox, client_for):
    _, theirs = inbox
    client = client_for(owner)
    assert client.patch(f'/api/notifications/{theirs.pk}/', {}, format='json').status_code == 404
    assert client.delete(f'/api/notifications/{theirs.pk}/').status_code == 404
    theirs.refresh_from_db()
    assert not theirs.read


def test_notify_failure_is_logged_not_raised(owner, monkeypatch, caplog):
    def broken(**kwargs):
        raise DatabaseError("disk full")

    monkeypatch.setattr(Notification.objects, 'create', broken)
    with caplog.at_level(logging.ERROR, logger='kanban_app'):
        result = notifications.notify(owner, Notification.Type.TEAM_INVITE, 'Hi', 'There')

    assert result is None
    assert "Failed to create TEAM_INVITE notification" in caplog.text


def test_invite_survives_notification_failure(project, owner, make_user, client_for, monkeypatch):
    newcomer = make_user('nina@example.com')

    def broken(**kwargs):
        raise DatabaseError("disk full")

    monkeypatch.setattr(Notification.objects, 'create', broken)
    response = client_for(owner).post(
        f'/api/projects/{project.pk}/members/',
        {'email': 'nina@example.com', 'role': 'MEMBER'}, format='json')

    assert response.status_code == 201
    assert ProjectMember.objects.filter(project=project, user=newcomer).exists()
