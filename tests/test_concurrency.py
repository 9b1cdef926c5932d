"""Serialização por projeto: trava antes de ler, escritas concorrentes."""

import threading

import pytest
from django.db import connection, connections, transaction

from apps.board.ordering import Bucket, OrderingEngine
from apps.board.services import TaskService
from apps.core.exceptions import AuthorizationError, DenyReason, SincroError
from apps.core.models import ProjectMembership, Role, Task
from apps.core.services import ProjectService
from apps.core.store import DjangoMembershipStore, default_store

R = ProjectMembership.Role
TODO = Task.Status.TODO


class RecordingStore(DjangoMembershipStore):
    """Store que registra a ordem das chamadas e se havia transação aberta"""

    def __init__(self):
        self.calls = []

    def _record(self, name):
        self.calls.append((name, transaction.get_connection().in_atomic_block))

    def lock_project(self, project_id):
        self._record('lock_project')
        return super().lock_project(project_id)

    def count_owners(self, project_id):
        self._record('count_owners')
        return super().count_owners(project_id)

    def list_members(self, project_id):
        self._record('list_members')
        return super().list_members(project_id)

    def get_membership(self, project_id, user_id):
        self._record('get_membership')
        return super().get_membership(project_id, user_id)

    def max_order(self, project_id, status, parent_id):
        self._record('max_order')
        return super().max_order(project_id, status, parent_id)

    def names(self):
        return [name for name, _ in self.calls]


def assert_locked_first(store, *reads):
    nomes = store.names()
    assert nomes[0] == 'lock_project'
    for read in reads:
        assert read in nomes
        assert nomes.index('lock_project') < nomes.index(read)
    # Toda leitura acontece dentro da transação da escrita
    assert all(in_atomic for _, in_atomic in store.calls)


def in_parallel(*funcs):
    """Roda as funções ao mesmo tempo, cada uma na sua thread e conexão"""
    barreira = threading.Barrier(len(funcs))
    resultados = [None] * len(funcs)

    def executar(i, func):
        barreira.wait()
        try:
            resultados[i] = func()
        except SincroError as e:
            resultados[i] = e
        finally:
            connections.close_all()

    threads = [threading.Thread(target=executar, args=(i, f)) for i, f in enumerate(funcs)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return resultados


@pytest.fixture
def two_owners(make_user, make_project):
    u1 = make_user('u1')
    u2 = make_user('u2')
    admin = make_user('root', roles=[Role.ADMIN])
    project = make_project({u1: R.OWNER, u2: R.OWNER})
    return project, u1, u2, admin


# ===========================================================================
# Ordem das chamadas ao store
# ===========================================================================

@pytest.mark.django_db(transaction=True)
class TestLockBeforeRead:
    def test_demote_counts_owners_under_lock(self, two_owners):
        project, u1, _, admin = two_owners
        store = RecordingStore()

        ProjectService(store=store).upsert_member(admin, project, u1, R.DEVELOPER)

        assert_locked_first(store, 'get_membership', 'count_owners')

    def test_remove_counts_owners_under_lock(self, two_owners):
        project, u1, u2, _ = two_owners
        store = RecordingStore()

        ProjectService(store=store).remove_member(u2, project, u1)

        assert_locked_first(store, 'count_owners')

    def test_create_task_reads_max_order_under_lock(self, project, developer):
        store = RecordingStore()
        service = TaskService(store=store, ordering=OrderingEngine(store))

        service.create_task(developer, project, 'Nova')

        assert_locked_first(store, 'max_order')

    def test_reorder_authorizes_under_lock(self, project, owner, make_task):
        tasks = [make_task(project, owner, title=t, order=i) for i, t in enumerate('AB')]
        store = RecordingStore()

        OrderingEngine(store).reorder_bucket(owner, Bucket(project.id, TODO), [tasks[1].id, tasks[0].id])

        assert_locked_first(store, 'get_membership')


# ===========================================================================
# Escritas concorrentes de verdade (exige SELECT ... FOR UPDATE)
# ===========================================================================

@pytest.fixture
def row_locks():
    if not connection.features.has_select_for_update:
        pytest.skip('banco sem SELECT ... FOR UPDATE (use TEST_DATABASE_URL com Postgres)')


@pytest.mark.django_db(transaction=True)
@pytest.mark.usefixtures('row_locks')
class TestConcurrentWrites:
    def test_two_demotions_leave_one_owner(self, two_owners):
        project, u1, u2, admin = two_owners
        service = ProjectService()

        resultados = in_parallel(
            lambda: service.upsert_member(admin, project, u1, R.DEVELOPER),
            lambda: service.upsert_member(admin, project, u2, R.DEVELOPER),
        )

        negados = [r for r in resultados if isinstance(r, AuthorizationError)]
        assert len(negados) == 1
        assert negados[0].reason == DenyReason.LAST_OWNER_PROTECTED
        assert default_store.count_owners(project.id) == 1

    def test_two_reorders_stay_dense(self, project, owner, manager, make_task):
        a, b, c, d = (make_task(project, owner, title=t, order=i) for i, t in enumerate('ABCD'))
        bucket = Bucket(project.id, TODO)
        engine = OrderingEngine()
        primeira = [d.id, c.id, b.id, a.id]
        segunda = [b.id, d.id, a.id, c.id]

        resultados = in_parallel(
            lambda: engine.reorder_bucket(owner, bucket, primeira),
            lambda: engine.reorder_bucket(manager, bucket, segunda),
        )

        assert not any(isinstance(r, SincroError) for r in resultados)
        ordens = sorted(bucket.tasks().values_list('order', flat=True))
        assert ordens == [0, 1, 2, 3]
        assert list(bucket.tasks().values_list('id', flat=True)) in (primeira, segunda)

    def test_concurrent_creates_never_collide(self, project, owner, developer):
        service = TaskService()

        def criar(actor, prefixo):
            return [service.create_task(actor, project, f'{prefixo}{i}').order for i in range(3)]

        resultados = in_parallel(lambda: criar(owner, 'o'), lambda: criar(developer, 'd'))

        assert sorted(resultados[0] + resultados[1]) == list(range(6))
