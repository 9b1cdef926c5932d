"""Motor de ordenação: inserção no fim, reordenação atômica e normalização."""

import random

import pytest

from apps.board.ordering import Bucket, ordering_engine, plan_normalize, plan_reorder
from apps.board.services import task_service
from apps.core.exceptions import AuthorizationError, ConflictError, ValidationError
from apps.core.models import Notification, ProjectMembership, Task

R = ProjectMembership.Role
TODO = Task.Status.TODO
DONE = Task.Status.DONE


def orders(bucket):
    return dict(bucket.tasks().values_list('id', 'order'))


def sequence(bucket):
    return list(bucket.tasks().values_list('id', flat=True))


def assert_dense(bucket):
    valores = sorted(bucket.tasks().values_list('order', flat=True))
    assert valores == list(range(len(valores)))


@pytest.fixture
def column(project, owner, make_task):
    """Bucket todo com A, B, C em 0, 1, 2"""
    tasks = [make_task(project, owner, title=t, order=i) for i, t in enumerate('ABC')]
    return Bucket(project.id, TODO), tasks


# ===========================================================================
# Planejamento puro
# ===========================================================================

class TestPlanning:
    def test_only_changed_rows(self):
        assert plan_reorder({1: 0, 2: 1, 3: 2}, [3, 1, 2], TODO) == [(3, 0, None), (1, 1, None), (2, 2, None)]
        assert plan_reorder({1: 0, 2: 1, 3: 2}, [1, 2, 3], TODO) == []

    def test_moving_rows_carry_status(self):
        changes = plan_reorder({1: 0, 2: 1}, [1, 9, 2], DONE, moving_ids=[9])
        assert changes == [(9, 1, DONE), (2, 2, None)]

    def test_normalize_closes_gaps(self):
        assert plan_normalize([(10, 0), (11, 4), (12, 2)]) == [(12, 1, None), (11, 2, None)]

    def test_normalize_breaks_ties_by_id(self):
        assert plan_normalize([(5, 1), (4, 1)]) == [(4, 0, None)]


# ===========================================================================
# Inserção
# ===========================================================================

@pytest.mark.django_db
class TestInsert:
    def test_appends_after_max(self, project, owner, make_task):
        for i in range(5):
            make_task(project, owner, title=f't{i}', order=i)

        task = task_service.create_task(owner, project, 'Nova')

        assert task.order == 5

    def test_empty_bucket_starts_at_zero(self, project, developer):
        task = task_service.create_task(developer, project, 'Primeira', status=Task.Status.BLOCKED)
        assert task.order == 0

    def test_buckets_are_independent(self, project, owner, make_task):
        make_task(project, owner, order=7)
        parent = make_task(project, owner, status=Task.Status.IN_PROGRESS, order=0)

        sub = task_service.create_task(owner, project, 'Sub', parent=parent)
        done = task_service.create_task(owner, project, 'Feita', status=DONE)

        assert sub.order == 0
        assert done.order == 0
        assert done.completed_at is not None

    def test_consecutive_creates_never_collide(self, project, owner):
        created = [task_service.create_task(owner, project, f't{i}') for i in range(6)]
        assert [t.order for t in created] == list(range(6))

    def test_assignee_must_be_member(self, project, owner, outsider):
        with pytest.raises(ValidationError):
            task_service.create_task(owner, project, 'X', assignee=outsider)
        assert not Task.objects.filter(project=project).exists()

    def test_subtasks_have_depth_one(self, project, owner, make_task):
        parent = make_task(project, owner)
        child = make_task(project, owner, parent=parent)
        with pytest.raises(ValidationError):
            task_service.create_task(owner, project, 'Neta', parent=child)

    def test_parent_must_be_in_project(self, project, owner, make_project, make_task):
        other = make_project({owner: R.OWNER}, name='Outro')
        parent = make_task(other, owner)
        with pytest.raises(ValidationError):
            task_service.create_task(owner, project, 'X', parent=parent)

    def test_outsider_cannot_create(self, project, outsider):
        with pytest.raises(AuthorizationError):
            task_service.create_task(outsider, project, 'X')


# ===========================================================================
# Reordenação
# ===========================================================================

@pytest.mark.django_db
class TestReorder:
    def test_moves_last_to_front(self, column, developer):
        bucket, (a, b, c) = column

        ordering_engine.reorder_bucket(developer, bucket, [c.id, a.id, b.id])

        assert orders(bucket) == {c.id: 0, a.id: 1, b.id: 2}

    def test_random_permutations_stay_dense(self, column, owner):
        bucket, tasks = column
        rng = random.Random(42)
        ids = [t.id for t in tasks]

        for _ in range(20):
            rng.shuffle(ids)
            ordering_engine.reorder_bucket(owner, bucket, ids)
            assert sequence(bucket) == ids
            assert_dense(bucket)

    def test_idempotent(self, column, owner):
        bucket, (a, b, c) = column
        ordering_engine.reorder_bucket(owner, bucket, [b.id, c.id, a.id])
        primeira = orders(bucket)
        ordering_engine.reorder_bucket(owner, bucket, [b.id, c.id, a.id])
        assert orders(bucket) == primeira

    def test_interleaved_reorders_never_duplicate(self, column, owner, manager, make_task, project):
        bucket, (a, b, c) = column
        snapshot = [a.id, b.id, c.id]

        # Dois clientes partem do mesmo estado; o segundo chega depois de uma criação
        ordering_engine.reorder_bucket(owner, bucket, [c.id, b.id, a.id])
        novo = task_service.create_task(manager, project, 'D')
        with pytest.raises(ConflictError):
            ordering_engine.reorder_bucket(manager, bucket, list(reversed(snapshot)))

        assert_dense(bucket)
        assert sequence(bucket) == [c.id, b.id, a.id, novo.id]

    def test_duplicates_rejected(self, column, owner):
        bucket, (a, b, c) = column
        with pytest.raises(ValidationError):
            ordering_engine.reorder_bucket(owner, bucket, [a.id, a.id, b.id, c.id])

    def test_non_integer_ids_rejected(self, column, owner):
        bucket, _ = column
        with pytest.raises(ValidationError):
            ordering_engine.reorder_bucket(owner, bucket, ['x'])

    def test_unknown_id_rejected_wholesale(self, column, owner):
        bucket, (a, b, c) = column
        with pytest.raises(ConflictError):
            ordering_engine.reorder_bucket(owner, bucket, [c.id, a.id, b.id, 999999])
        assert orders(bucket) == {a.id: 0, b.id: 1, c.id: 2}

    def test_omitted_task_is_stale(self, column, owner):
        bucket, (a, b, c) = column
        with pytest.raises(ConflictError):
            ordering_engine.reorder_bucket(owner, bucket, [c.id, a.id])

    def test_other_project_rejected(self, column, owner, make_project, make_task):
        bucket, (a, b, c) = column
        other = make_project({owner: R.OWNER}, name='Outro')
        stranger = make_task(other, owner)
        with pytest.raises(ValidationError):
            ordering_engine.reorder_bucket(owner, bucket, [a.id, b.id, c.id, stranger.id])
        assert orders(bucket) == {a.id: 0, b.id: 1, c.id: 2}

    def test_tombstoned_task_rejected(self, column, owner):
        bucket, (a, b, c) = column
        c.tombstone()
        with pytest.raises(ConflictError):
            ordering_engine.reorder_bucket(owner, bucket, [c.id, a.id, b.id])

    def test_subtask_level_is_separate(self, column, owner, make_task, project):
        bucket, (a, b, c) = column
        sub = make_task(project, owner, parent=a)
        with pytest.raises(ValidationError):
            ordering_engine.reorder_bucket(owner, bucket, [a.id, b.id, c.id, sub.id])

    def test_outsider_cannot_reorder(self, column, outsider):
        bucket, (a, b, c) = column
        with pytest.raises(AuthorizationError):
            ordering_engine.reorder_bucket(outsider, bucket, [c.id, a.id, b.id])

    def test_invalid_status(self, column, owner):
        bucket, _ = column
        with pytest.raises(ValidationError):
            ordering_engine.reorder_bucket(owner, Bucket(bucket.project_id, 'archived'), [])


# ===========================================================================
# Movimentação entre colunas
# ===========================================================================

@pytest.mark.django_db
class TestCrossColumnMove:
    def test_move_into_done_sets_completed_at(self, column, developer, make_task, project):
        todo, (a, b, c) = column
        feita = make_task(project, developer, title='F', status=DONE, order=0)
        done = Bucket(project.id, DONE)

        # developer criou só a tarefa F; move B (criada pelo owner) -> negado
        with pytest.raises(AuthorizationError):
            ordering_engine.reorder_bucket(developer, done, [b.id, feita.id])

        mine = make_task(project, developer, title='Minha', order=3)
        ordering_engine.reorder_bucket(developer, done, [mine.id, feita.id])

        mine.refresh_from_db()
        assert mine.status == DONE
        assert mine.completed_at is not None
        assert orders(done) == {mine.id: 0, feita.id: 1}
        assert_dense(todo)

    def test_source_column_renumbered(self, column, owner, project):
        todo, (a, b, c) = column
        done = Bucket(project.id, DONE)

        ordering_engine.reorder_bucket(owner, done, [b.id])

        assert orders(todo) == {a.id: 0, c.id: 1}
        assert orders(done) == {b.id: 0}

    def test_leaving_done_clears_completed_at(self, project, owner, make_task):
        task = task_service.create_task(owner, project, 'X', status=DONE)
        assert task.completed_at is not None

        ordering_engine.reorder_bucket(owner, Bucket(project.id, TODO), [task.id])

        task.refresh_from_db()
        assert task.status == TODO
        assert task.completed_at is None

    def test_moves_emit_task_updated(self, column, owner, project, developer, django_capture_on_commit_callbacks):
        todo, (a, b, c) = column
        a.assignee = developer
        a.save()

        with django_capture_on_commit_callbacks(execute=True):
            ordering_engine.reorder_bucket(owner, Bucket(project.id, DONE), [a.id])

        notificacao = Notification.objects.get(user=developer)
        assert notificacao.type == Notification.Type.TASK_UPDATE
        assert notificacao.link == f'/projects/{project.id}/tasks/{a.id}'

    def test_same_column_reorder_is_silent(self, column, owner, django_capture_on_commit_callbacks):
        bucket, (a, b, c) = column
        with django_capture_on_commit_callbacks() as callbacks:
            ordering_engine.reorder_bucket(owner, bucket, [c.id, b.id, a.id])
        assert callbacks == []


# ===========================================================================
# Serviço de tarefas
# ===========================================================================

@pytest.mark.django_db
class TestTaskService:
    def test_status_change_moves_to_end(self, column, owner, project, make_task):
        todo, (a, b, c) = column
        make_task(project, owner, status=DONE, order=0)

        task = task_service.update_task(owner, a, status=DONE)

        assert task.order == 1
        assert task.completed_at is not None
        assert orders(todo) == {b.id: 0, c.id: 1}

    def test_developer_cannot_update_others_task(self, column, developer):
        _, (a, _, _) = column
        with pytest.raises(AuthorizationError):
            task_service.update_task(developer, a, title='Outro')

    def test_delete_tombstones_subtasks_and_renumbers(self, column, owner, make_task, project):
        todo, (a, b, c) = column
        sub = make_task(project, owner, parent=b)

        task_service.delete_task(owner, b)

        sub.refresh_from_db()
        assert sub.is_tombstoned
        assert orders(todo) == {a.id: 0, c.id: 1}

    def test_update_deleted_task_conflicts(self, column, owner):
        _, (a, _, _) = column
        task_service.delete_task(owner, a)
        with pytest.raises(ConflictError):
            task_service.update_task(owner, a, title='Y')

    def test_reassign_requires_member(self, column, owner, outsider):
        _, (a, _, _) = column
        with pytest.raises(ValidationError):
            task_service.update_task(owner, a, assignee=outsider)
