# apps/core/store.py

"""
Repositório consumido pelo núcleo (autorização, ordenação, fan-out)

Toda ida ao banco do núcleo passa por aqui; são os únicos pontos de
suspensão legítimos. Erros de conectividade viram TransientStoreError.
"""

import logging
from abc import ABC, abstractmethod
from functools import wraps

from django.db import DatabaseError, InterfaceError, OperationalError, transaction
from django.db.models import Max

from .exceptions import ConflictError, TransientStoreError
from .models import Project, ProjectMembership, Role, Task, User

logger = logging.getLogger(__name__)


def translate_store_errors(method):
    """Converte falhas de conexão/timeout do banco em TransientStoreError"""

    @wraps(method)
    def wrapper(*args, **kwargs):
        try:
            return method(*args, **kwargs)
        except (OperationalError, InterfaceError) as e:
            logger.error(f"❌ Banco indisponível em {method.__name__}: {e}")
            raise TransientStoreError(str(e)) from e

    return wrapper


class MembershipStore(ABC):
    """Contrato do repositório de membros/tarefas"""

    @abstractmethod
    def get_membership(self, project_id, user_id):
        """Retorna a ProjectMembership ou None"""

    @abstractmethod
    def count_owners(self, project_id):
        """Quantidade atual de owners do projeto"""

    @abstractmethod
    def list_members(self, project_id):
        """Todas as memberships do projeto"""

    @abstractmethod
    def max_order(self, project_id, status, parent_id):
        """Maior `order` do bucket, ou -1 se vazio"""

    @abstractmethod
    def apply_reorder(self, bucket, changes):
        """Aplica [(task_id, new_order, new_status|None)] de forma atômica"""

    @abstractmethod
    def has_global_role(self, user_id, role_name):
        """Verifica papel global do usuário"""

    @abstractmethod
    def users_with_global_role(self, role_name):
        """Ids dos usuários ativos com o papel global informado"""

    @abstractmethod
    def lock_project(self, project_id):
        """Serializa escritas concorrentes no projeto (dentro de uma transação)"""


class DjangoMembershipStore(MembershipStore):
    """Implementação sobre o ORM do Django"""

    @translate_store_errors
    def get_membership(self, project_id, user_id):
        return (
            ProjectMembership.objects
            .filter(project_id=project_id, user_id=user_id)
            .first()
        )

    @translate_store_errors
    def count_owners(self, project_id):
        return ProjectMembership.objects.filter(
            project_id=project_id,
            role=ProjectMembership.Role.OWNER
        ).count()

    @translate_store_errors
    def list_members(self, project_id):
        return list(
            ProjectMembership.objects
            .filter(project_id=project_id)
            .select_related('user')
            .order_by('id')
        )

    @translate_store_errors
    def max_order(self, project_id, status, parent_id):
        result = (
            Task.objects.scoped(include_tombstoned=False)
            .filter(project_id=project_id, status=status, parent_id=parent_id)
            .aggregate(maior=Max('order'))
        )
        if result['maior'] is None:
            return -1
        return result['maior']

    @translate_store_errors
    def apply_reorder(self, bucket, changes):
        """
        Reescreve `order` (e opcionalmente `status`) de várias tarefas

        Tudo ou nada: qualquer falha desfaz a unidade inteira.
        """
        if not changes:
            return 0

        ids = [task_id for task_id, _, _ in changes]
        try:
            with transaction.atomic():
                tasks = {
                    task.id: task
                    for task in Task.objects.select_for_update().filter(
                        project_id=bucket.project_id,
                        id__in=ids
                    )
                }
                if len(tasks) != len(set(ids)):
                    raise DatabaseError(f"Tarefas ausentes no projeto {bucket.project_id}")

                campos = {'order'}
                for task_id, new_order, new_status in changes:
                    task = tasks[task_id]
                    task.order = new_order
                    if new_status is not None and task.apply_status(new_status):
                        campos.update({'status', 'completed_at'})

                Task.objects.bulk_update(list(tasks.values()), sorted(campos))
        except (OperationalError, InterfaceError):
            raise
        except DatabaseError as e:
            raise ConflictError(str(e)) from e

        return len(changes)

    @translate_store_errors
    def has_global_role(self, user_id, role_name):
        return Role.objects.filter(name=role_name, users__id=user_id).exists()

    @translate_store_errors
    def users_with_global_role(self, role_name):
        return list(
            User.objects
            .filter(roles__name=role_name, is_active=True)
            .values_list('id', flat=True)
            .distinct()
        )

    @translate_store_errors
    def lock_project(self, project_id):
        return Project.objects.select_for_update().get(id=project_id)


# Instância padrão, passada por referência aos serviços
default_store = DjangoMembershipStore()
