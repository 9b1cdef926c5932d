"""Fan-out: audiência, notificações duráveis e entrega via channel layer."""

import pytest
from asgiref.sync import async_to_sync
from channels.layers import InMemoryChannelLayer
from django.db import transaction

from apps.core.models import Notification, Project, ProjectMembership, Role
from apps.core.services import project_service
from apps.core.store import default_store
from apps.notifications.audience import AUDIENCE_RESOLVERS, resolve_audience
from apps.notifications.events import ADMIN_GROUP, DomainEvent, EventKind, user_group
from apps.notifications.fanout import FanOutEngine, publish_event

R = ProjectMembership.Role


class FailingLayer:
    """Channel layer indisponível"""

    async def group_send(self, group, message):
        raise ConnectionError('redis fora do ar')


@pytest.fixture
def layer():
    return InMemoryChannelLayer()


@pytest.fixture
def engine(layer):
    return FanOutEngine(store=default_store, channel_layer=layer)


def receive_from(layer, group):
    """Inscreve um canal no grupo e devolve uma função que lê a próxima mensagem"""
    channel = async_to_sync(layer.new_channel)()
    async_to_sync(layer.group_add)(group, channel)
    return lambda: async_to_sync(layer.receive)(channel)


def task_event(project, actor, **payload):
    payload.setdefault('project_name', project.name)
    payload.setdefault('title', 'Tarefa')
    payload.setdefault('task_id', 1)
    return DomainEvent(EventKind.TASK_UPDATED, project.id, actor.id, payload)


# ===========================================================================
# Audiência
# ===========================================================================

@pytest.mark.django_db
class TestAudience:
    def test_every_event_kind_has_a_resolver(self):
        assert set(AUDIENCE_RESOLVERS) == set(EventKind)

    def test_comment_goes_to_members_except_actor(self, project, owner, manager, developer):
        event = DomainEvent(EventKind.COMMENT_CREATED, project.id, developer.id, {'project_name': project.name})
        assert {r.user_id for r in resolve_audience(event, default_store)} == {owner.id, manager.id}

    def test_task_goes_to_assignee_and_managers(self, project, owner, manager, developer, make_user):
        tester = make_user('tess')
        ProjectMembership.objects.create(project=project, user=tester, role=R.TESTER)

        event = task_event(project, owner, assignee_id=developer.id)

        assert {r.user_id for r in resolve_audience(event, default_store)} == {manager.id, developer.id}

    def test_assignee_who_manages_counted_once(self, project, owner, manager, engine):
        event = task_event(project, owner, assignee_id=manager.id)

        audience = resolve_audience(event, default_store)
        engine.publish(event)

        assert [r.user_id for r in audience] == [manager.id]
        assert Notification.objects.filter(event_id=event.event_id, user=manager).count() == 1

    def test_member_changed_goes_to_members(self, project, owner, manager, developer):
        event = DomainEvent(EventKind.MEMBER_CHANGED, project.id, owner.id, {'project_name': project.name})
        assert {r.user_id for r in resolve_audience(event, default_store)} == {manager.id, developer.id}


# ===========================================================================
# Testadores globais em projeto que entra em andamento
# ===========================================================================

@pytest.mark.django_db
class TestTesterBroadening:
    def test_in_progress_reaches_non_member_testers(
        self, project, owner, make_user, django_capture_on_commit_callbacks
    ):
        t1 = make_user('t1', roles=[Role.TESTER])
        regular = make_user('regular')

        with django_capture_on_commit_callbacks(execute=True):
            project_service.update_project(owner, project, status=Project.Status.IN_PROGRESS)

        tagged = Notification.objects.get(user=t1)
        assert tagged.audience == Notification.Audience.TESTER_BROADENED
        assert tagged.type == Notification.Type.STATUS_CHANGE
        assert tagged.message != Notification.objects.filter(
            audience=Notification.Audience.MEMBER
        ).first().message
        assert not Notification.objects.filter(user=regular).exists()

    def test_member_tester_keeps_member_tag(self, project, owner, developer, engine):
        developer.roles.add(Role.objects.create(name=Role.TESTER))
        event = DomainEvent(
            EventKind.PROJECT_UPDATED, project.id, owner.id,
            {'project_name': project.name, 'old_status': 'planning', 'new_status': 'in_progress'},
        )

        engine.publish(event)

        rows = Notification.objects.filter(user=developer, event_id=event.event_id)
        assert rows.count() == 1
        assert rows.get().audience == Notification.Audience.MEMBER

    def test_editing_in_progress_project_does_not_rebroaden(
        self, project, owner, make_user, django_capture_on_commit_callbacks
    ):
        t1 = make_user('t1', roles=[Role.TESTER])

        with django_capture_on_commit_callbacks(execute=True):
            project_service.update_project(owner, project, status=Project.Status.IN_PROGRESS)
        with django_capture_on_commit_callbacks(execute=True):
            project_service.update_project(owner, project, name='Renomeado')
            project_service.update_project(owner, project, description='nova')

        assert Notification.objects.filter(user=t1).count() == 1
        assert Notification.objects.filter(
            audience=Notification.Audience.TESTER_BROADENED
        ).count() == 1

    @pytest.mark.parametrize('status', ['on_hold', 'completed', 'cancelled', 'planning'])
    def test_other_statuses_do_not_broaden(self, project, owner, make_user, engine, status):
        t1 = make_user('t1', roles=[Role.TESTER])
        event = DomainEvent(
            EventKind.PROJECT_UPDATED, project.id, owner.id,
            {'project_name': project.name, 'old_status': 'in_progress', 'new_status': status},
        )

        engine.publish(event)

        assert not Notification.objects.filter(user=t1).exists()


# ===========================================================================
# Persistência e entrega
# ===========================================================================

@pytest.mark.django_db
class TestPublish:
    def test_republish_is_idempotent(self, project, owner, developer, engine):
        event = task_event(project, owner, assignee_id=developer.id)

        primeira = engine.publish(event)
        segunda = engine.publish(event)

        assert [n.id for n in primeira] == [n.id for n in segunda]
        assert Notification.objects.filter(event_id=event.event_id).count() == 2

    def test_live_delivery_to_user_channel(self, project, owner, developer, engine, layer):
        receive = receive_from(layer, user_group(developer.id))
        event = task_event(project, owner, assignee_id=developer.id)

        engine.publish(event)
        message = receive()

        assert message['type'] == 'notification_message'
        assert message['event']['eventId'] == str(event.event_id)
        assert message['message']['userId'] == developer.id
        assert set(message['message']) >= {
            'id', 'userId', 'message', 'type', 'read', 'link', 'projectId', 'commentId', 'createdAt'
        }

    def test_task_created_mirrored_to_admins(self, project, owner, engine, layer):
        receive = receive_from(layer, ADMIN_GROUP)
        event = DomainEvent(EventKind.TASK_CREATED, project.id, owner.id, {'project_name': project.name, 'task_id': 7})

        engine.publish(event)

        assert receive() == {'type': 'admin_event', 'event': event.as_message()}

    def test_delivery_failure_is_not_fatal(self, project, owner, developer, caplog):
        engine = FanOutEngine(store=default_store, channel_layer=FailingLayer())
        event = task_event(project, owner, assignee_id=developer.id)

        notifications = engine.publish(event)

        assert len(notifications) == 2
        assert Notification.objects.filter(event_id=event.event_id).count() == 2
        assert 'Falha na entrega' in caplog.text

    def test_actor_only_audience_writes_nothing(self, make_user, make_project, engine):
        solo = make_user('solo')
        project = make_project({solo: R.OWNER})
        event = DomainEvent(EventKind.COMMENT_CREATED, project.id, solo.id, {'project_name': project.name})

        assert engine.publish(event) == []
        assert not Notification.objects.exists()

    def test_rolled_back_work_is_never_published(self, project, owner, engine, django_capture_on_commit_callbacks):
        event = task_event(project, owner)

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            try:
                with transaction.atomic():
                    publish_event(event, engine)
                    raise RuntimeError('falhou')
            except RuntimeError:
                pass

        assert callbacks == []
        assert not Notification.objects.exists()
