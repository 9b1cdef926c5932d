"""Fixtures compartilhadas: usuários, papéis globais e projetos prontos."""

import pytest

from apps.core.models import Project, ProjectMembership, Role, Task


@pytest.fixture
def make_user(django_user_model):
    """Cria usuários com papéis globais opcionais"""

    def _make(username, roles=(), **extra):
        user = django_user_model.objects.create_user(
            username=username,
            email=f'{username}@sincro.local',
            password='senha-forte-123',
            **extra,
        )
        for name in roles:
            role, _ = Role.objects.get_or_create(name=name)
            user.roles.add(role)
        return user

    return _make


@pytest.fixture
def make_project(make_user):
    """
    Cria projeto com memberships explícitas

    members: dict usuario -> papel. O criador é o primeiro usuário.
    """

    def _make(members, name='Projeto Sincro', status=Project.Status.PLANNING):
        usuarios = list(members)
        project = Project.objects.create(name=name, status=status, created_by=usuarios[0])
        for user, role in members.items():
            ProjectMembership.objects.create(project=project, user=user, role=role)
        return project

    return _make


@pytest.fixture
def make_task():
    """Insere tarefa diretamente, com order explícito"""

    def _make(project, created_by, title='Tarefa', status=Task.Status.TODO, order=0, parent=None, **extra):
        return Task.objects.create(
            project=project,
            created_by=created_by,
            title=title,
            status=status,
            order=order,
            parent=parent,
            **extra,
        )

    return _make


@pytest.fixture
def owner(make_user):
    return make_user('ana')


@pytest.fixture
def manager(make_user):
    return make_user('bruno')


@pytest.fixture
def developer(make_user):
    return make_user('carla')


@pytest.fixture
def outsider(make_user):
    return make_user('diego')


@pytest.fixture
def project(make_project, owner, manager, developer):
    return make_project({
        owner: ProjectMembership.Role.OWNER,
        manager: ProjectMembership.Role.MANAGER,
        developer: ProjectMembership.Role.DEVELOPER,
    })

