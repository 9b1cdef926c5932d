"""Motor de autorização: decisão pura, tabela de regras e integração com o banco."""

import pytest

from apps.core.exceptions import AuthenticationError, AuthorizationError, DenyReason
from apps.core.models import Comment, Project, ProjectMembership, Role, Task
from apps.core.permissions import RULES, AccessContext, Action, Decision, authorize, decide

R = ProjectMembership.Role


def ctx(role=None, is_admin=False, project_status=Project.Status.PLANNING, owner_id=None, actor_id=1):
    return AccessContext(
        actor_id=actor_id,
        is_admin=is_admin,
        role=role,
        project_status=project_status,
        owner_id=owner_id,
    )


# ===========================================================================
# decide() - função pura
# ===========================================================================

class TestDecide:
    def test_every_action_has_a_rule(self):
        assert set(RULES) == set(Action)

    @pytest.mark.parametrize('action', list(Action))
    def test_admin_allowed_everything(self, action):
        assert decide(action, ctx(is_admin=True))

    @pytest.mark.parametrize('action', [a for a in Action if a != Action.PROJECT_READ])
    def test_non_member_denied(self, action):
        decision = decide(action, ctx(project_status=Project.Status.IN_PROGRESS))
        assert decision == Decision.deny(DenyReason.NOT_A_MEMBER)

    def test_project_read_open_when_in_progress(self):
        assert decide(Action.PROJECT_READ, ctx(project_status=Project.Status.IN_PROGRESS))

    @pytest.mark.parametrize('status', [
        Project.Status.PLANNING, Project.Status.ON_HOLD,
        Project.Status.COMPLETED, Project.Status.CANCELLED,
    ])
    def test_project_read_closed_otherwise(self, status):
        decision = decide(Action.PROJECT_READ, ctx(project_status=status))
        assert decision.reason == DenyReason.NOT_A_MEMBER

    @pytest.mark.parametrize('action', [
        Action.PROJECT_UPDATE, Action.PROJECT_DELETE,
        Action.MEMBER_UPDATE, Action.MEMBER_REMOVE,
    ])
    @pytest.mark.parametrize('role,allowed', [
        (R.OWNER, True), (R.MANAGER, True), (R.DEVELOPER, False),
        (R.DESIGNER, False), (R.TESTER, False), (R.VIEWER, False),
    ])
    def test_management_actions(self, action, role, allowed):
        decision = decide(action, ctx(role=role))
        assert decision.allowed is allowed
        if not allowed:
            assert decision.reason == DenyReason.INSUFFICIENT_ROLE

    @pytest.mark.parametrize('action', [Action.TASK_UPDATE, Action.TASK_DELETE])
    def test_task_creator_allowed(self, action):
        assert decide(action, ctx(role=R.VIEWER, owner_id=1, actor_id=1))

    @pytest.mark.parametrize('action', [Action.TASK_UPDATE, Action.TASK_DELETE])
    def test_plain_member_not_enough_for_others_task(self, action):
        decision = decide(action, ctx(role=R.DEVELOPER, owner_id=2, actor_id=1))
        assert decision.reason == DenyReason.INSUFFICIENT_ROLE

    @pytest.mark.parametrize('action', [Action.TASK_UPDATE, Action.TASK_DELETE])
    def test_manager_on_others_task(self, action):
        assert decide(action, ctx(role=R.MANAGER, owner_id=2, actor_id=1))

    def test_comment_update_only_author(self):
        assert decide(Action.COMMENT_UPDATE, ctx(role=R.VIEWER, owner_id=1, actor_id=1))
        assert not decide(Action.COMMENT_UPDATE, ctx(role=R.OWNER, owner_id=2, actor_id=1))

    def test_comment_delete_author_or_manager(self):
        assert decide(Action.COMMENT_DELETE, ctx(role=R.TESTER, owner_id=1, actor_id=1))
        assert decide(Action.COMMENT_DELETE, ctx(role=R.MANAGER, owner_id=2, actor_id=1))
        assert not decide(Action.COMMENT_DELETE, ctx(role=R.DEVELOPER, owner_id=2, actor_id=1))

    @pytest.mark.parametrize('action', [Action.TASK_CREATE, Action.COMMENT_CREATE, Action.TASK_REORDER])
    @pytest.mark.parametrize('role', list(R))
    def test_any_member_may_create(self, action, role):
        assert decide(action, ctx(role=role))

    def test_accepts_action_string(self):
        assert decide('project.update', ctx(role=R.OWNER))

    def test_raise_if_denied_carries_reason(self):
        with pytest.raises(AuthorizationError) as exc:
            Decision.deny(DenyReason.INSUFFICIENT_ROLE).raise_if_denied()
        assert exc.value.reason == DenyReason.INSUFFICIENT_ROLE
        assert exc.value.as_dict()['reason'] == 'insufficient_role'


# ===========================================================================
# authorize() - fatos carregados do banco
# ===========================================================================

@pytest.mark.django_db
class TestAuthorize:
    def test_developer_cannot_update_task_created_by_another(self, make_user, make_project, make_task):
        u3 = make_user('u3')
        u4 = make_user('u4')
        project = make_project({u4: R.OWNER, u3: R.DEVELOPER})
        # u4 é owner; u3 é só developer e não criou a tarefa
        task = make_task(project, created_by=u4)

        decision = authorize(u3, Action.TASK_UPDATE, task)

        assert not decision
        assert decision.reason == DenyReason.INSUFFICIENT_ROLE

    def test_task_creator_may_update(self, project, developer, make_task):
        task = make_task(project, created_by=developer)
        assert authorize(developer, Action.TASK_UPDATE, task)

    def test_global_admin_role(self, project, make_user, make_task, owner):
        admin = make_user('root', roles=[Role.ADMIN])
        task = make_task(project, created_by=owner)
        assert authorize(admin, Action.TASK_DELETE, task)
        assert authorize(admin, Action.PROJECT_DELETE, project)

    def test_superuser_is_admin(self, project, make_user):
        superuser = make_user('super', is_superuser=True)
        assert authorize(superuser, Action.MEMBER_REMOVE, project)

    def test_outsider_denied(self, project, outsider):
        decision = authorize(outsider, Action.COMMENT_CREATE, project)
        assert decision.reason == DenyReason.NOT_A_MEMBER

    def test_outsider_reads_in_progress_project(self, project, outsider):
        project.status = Project.Status.IN_PROGRESS
        project.save()
        assert authorize(outsider, Action.PROJECT_READ, project)

    def test_comment_author(self, project, developer, manager):
        comment = Comment.objects.create(project=project, author=developer, content='oi')
        assert authorize(developer, Action.COMMENT_UPDATE, comment)
        assert not authorize(manager, Action.COMMENT_UPDATE, comment)
        assert authorize(manager, Action.COMMENT_DELETE, comment)

    def test_anonymous_raises(self, project):
        from django.contrib.auth.models import AnonymousUser

        with pytest.raises(AuthenticationError):
            authorize(AnonymousUser(), Action.PROJECT_READ, project)

    def test_unsupported_resource(self, owner):
        with pytest.raises(TypeError):
            authorize(owner, Action.PROJECT_READ, owner)

    def test_task_resource_uses_project_status(self, make_user, make_project, make_task, outsider):
        u = make_user('u')
        project = make_project({u: R.OWNER}, status=Project.Status.IN_PROGRESS)
        task = make_task(project, created_by=u)
        assert authorize(outsider, Action.PROJECT_READ, task)
        assert not authorize(outsider, Action.TASK_UPDATE, task)

    def test_task_rule_with_task_instance(self, project, make_task, manager, owner):
        task = make_task(project, created_by=owner)
        assert isinstance(task, Task)
        assert authorize(manager, Action.TASK_DELETE, task)
