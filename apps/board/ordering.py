# apps/board/ordering.py

"""
Motor de ordenação das colunas do board

Dentro de um bucket (projeto, status, tarefa pai) os valores de `order`
são 0..n-1, sem buracos nem repetição. Toda escrita acontece numa
transação que primeiro trava o projeto, então dois drag-and-drops no
mesmo bucket nunca se intercalam.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from django.db import transaction

from apps.core.exceptions import ConflictError, ValidationError
from apps.core.models import Task
from apps.core.permissions import Action, authorize
from apps.notifications.events import DomainEvent, EventKind
from apps.notifications.fanout import publish_event

logger = logging.getLogger(__name__)

Change = Tuple[int, int, Optional[str]]


@dataclass(frozen=True)
class Bucket:
    """Escopo onde `order` tem significado"""

    project_id: int
    status: str
    parent_id: Optional[int] = None

    @classmethod
    def of(cls, task):
        return cls(task.project_id, task.status, task.parent_id)

    def tasks(self):
        return (
            Task.objects.scoped(include_tombstoned=False)
            .filter(project_id=self.project_id, status=self.status, parent_id=self.parent_id)
            .order_by('order', 'id')
        )

    def __str__(self):
        return f"{self.project_id}/{self.status}/{self.parent_id or '-'}"


# === PLANEJAMENTO (funções puras) ===

def plan_reorder(current_orders: Dict[int, int], ordered_ids: Sequence[int],
                 target_status: str, moving_ids: Iterable[int] = ()) -> List[Change]:
    """
    Calcula o conjunto mínimo de escritas para o bucket ficar igual a `ordered_ids`

    current_orders: order atual das tarefas que já estão no bucket
    moving_ids: tarefas que chegam de outra coluna (mudam de status)
    """
    moving_ids = set(moving_ids)
    changes = []

    for index, task_id in enumerate(ordered_ids):
        if task_id in moving_ids:
            changes.append((task_id, index, target_status))
        elif current_orders.get(task_id) != index:
            changes.append((task_id, index, None))

    return changes


def plan_normalize(rows: Iterable[Tuple[int, int]]) -> List[Change]:
    """Renumera (id, order) em 0..n-1 preservando a ordem relativa"""
    ordenadas = sorted(rows, key=lambda row: (row[1], row[0]))
    return [
        (task_id, index, None)
        for index, (task_id, order) in enumerate(ordenadas)
        if order != index
    ]


def _parse_ids(ordered_ids):
    try:
        ids = [int(task_id) for task_id in ordered_ids]
    except (TypeError, ValueError):
        raise ValidationError('Lista de tarefas inválida', {'ordered_ids': ['ids inteiros esperados']})

    if len(ids) != len(set(ids)):
        raise ValidationError('Lista de tarefas com ids repetidos', {'ordered_ids': ['ids repetidos']})
    return ids


class OrderingEngine:
    """Inserção e reordenação atômicas por bucket"""

    def __init__(self, store=None):
        if store is None:
            from apps.core.store import default_store
            store = default_store
        self.store = store

    def insert(self, task):
        """
        Salva uma tarefa nova no fim do bucket (maior order + 1)

        Leitura do máximo e inserção na mesma unidade atômica.
        """
        with transaction.atomic():
            self.store.lock_project(task.project_id)
            task.order = self.store.max_order(task.project_id, task.status, task.parent_id) + 1
            task.save()

        return task.order

    def move_to_end(self, task, new_status):
        """
        Muda a tarefa de coluna colocando-a no fim do bucket de destino

        Precisa rodar dentro da transação de quem chamou (projeto travado).
        """
        origem = Bucket.of(task)
        task.order = self.store.max_order(task.project_id, new_status, task.parent_id) + 1
        task.apply_status(new_status)
        task.save()
        self.normalize(origem)
        return task

    def normalize(self, bucket):
        """Fecha buracos deixados por remoções ou movimentações"""
        changes = plan_normalize(bucket.tasks().values_list('id', 'order'))
        if changes:
            self.store.apply_reorder(bucket, changes)
        return len(changes)

    def reorder_bucket(self, actor, bucket, ordered_ids):
        """
        Aplica a sequência completa desejada pelo cliente para um bucket

        - ids repetidos ou de outro projeto/nível: ValidationError
        - ids desconhecidos, excluídos ou lista que omite tarefas do bucket: ConflictError
        - tarefas vindas de outra coluna mudam de status (e completed_at) na mesma unidade,
          e os buckets de origem são renumerados

        Nada é escrito antes de toda a validação passar.
        """
        if bucket.status not in Task.Status.values:
            raise ValidationError(f'Status inválido: {bucket.status}', {'status': ['inválido']})
        ids = _parse_ids(ordered_ids)

        with transaction.atomic():
            project = self.store.lock_project(bucket.project_id)
            if project.is_tombstoned:
                raise ConflictError(f'Projeto {project.id} foi excluído')
            authorize(actor, Action.TASK_REORDER, project, self.store).raise_if_denied()

            tasks = {
                task.id: task
                for task in Task.objects.scoped(include_tombstoned=True)
                .select_related('project')
                .filter(id__in=ids)
            }
            self._validar(bucket, ids, tasks)

            moving = [task_id for task_id in ids if tasks[task_id].status != bucket.status]
            for task_id in moving:
                authorize(actor, Action.TASK_UPDATE, tasks[task_id], self.store).raise_if_denied()

            origens = {tasks[task_id].status for task_id in moving}
            status_anterior = {task_id: tasks[task_id].status for task_id in moving}

            current_orders = {
                task_id: task.order
                for task_id, task in tasks.items()
                if task_id not in moving
            }
            changes = plan_reorder(current_orders, ids, bucket.status, moving)
            self.store.apply_reorder(bucket, changes)

            for status in origens:
                self.normalize(Bucket(bucket.project_id, status, bucket.parent_id))

            resultado = list(bucket.tasks())
            por_id = {task.id: task for task in resultado}
            for task_id in moving:
                self._emit_moved(actor, por_id[task_id], status_anterior[task_id], project.name)

        logger.info(f"🔀 Bucket {bucket} reordenado por {actor.id}: {len(changes)} escrita(s)")
        return resultado

    def _validar(self, bucket, ids, tasks):
        desconhecidos = [task_id for task_id in ids if task_id not in tasks]
        if desconhecidos:
            raise ConflictError(f'Tarefas inexistentes: {desconhecidos}')

        outro_projeto = [task_id for task_id in ids if tasks[task_id].project_id != bucket.project_id]
        if outro_projeto:
            raise ValidationError(
                f'Tarefas de outro projeto: {outro_projeto}',
                {'ordered_ids': ['tarefa não pertence ao projeto']}
            )

        outro_nivel = [task_id for task_id in ids if tasks[task_id].parent_id != bucket.parent_id]
        if outro_nivel:
            raise ValidationError(
                f'Tarefas de outro nível de subtarefa: {outro_nivel}',
                {'ordered_ids': ['tarefa pai diferente do bucket']}
            )

        excluidos = [task_id for task_id in ids if tasks[task_id].is_tombstoned]
        if excluidos:
            raise ConflictError(f'Tarefas excluídas: {excluidos}')

        omitidos = set(bucket.tasks().values_list('id', flat=True)) - set(ids)
        if omitidos:
            raise ConflictError(f'Lista desatualizada, faltam tarefas do bucket: {sorted(omitidos)}')

    def _emit_moved(self, actor, task, old_status, project_name):
        publish_event(DomainEvent(
            kind=EventKind.TASK_UPDATED,
            project_id=task.project_id,
            actor_id=actor.id,
            payload={
                'project_name': project_name,
                'task_id': task.id,
                'title': task.title,
                'assignee_id': task.assignee_id,
                'old_status': old_status,
                'status': task.status,
                'order': task.order,
            },
        ))


ordering_engine = OrderingEngine()
