# apps/board/services.py

"""
Serviço de tarefas do board

Valida entrada antes de qualquer escrita, autoriza dentro da transação
e delega posições ao motor de ordenação.
"""

import logging

from django.db import transaction
from django.utils import timezone

from apps.core.exceptions import ConflictError, ValidationError
from apps.core.models import Task
from apps.core.permissions import Action, authorize
from apps.notifications.events import DomainEvent, EventKind
from apps.notifications.fanout import publish_event

from .ordering import Bucket, OrderingEngine

logger = logging.getLogger(__name__)


class TaskService:
    EDITABLE_FIELDS = (
        'title', 'description', 'priority', 'due_date',
        'estimated_hours', 'actual_hours', 'assignee', 'status',
    )

    def __init__(self, store=None, ordering=None):
        if store is None:
            from apps.core.store import default_store
            store = default_store
        self.store = store
        self.ordering = ordering or OrderingEngine(store)

    def create_task(self, actor, project, title, status=Task.Status.TODO, priority=Task.Priority.MEDIUM,
                    assignee=None, parent=None, description='', due_date=None, estimated_hours=None):
        """Cria a tarefa no fim do seu bucket e publica `task.created`"""
        title = (title or '').strip()
        if not title:
            raise ValidationError('Título é obrigatório', {'title': ['obrigatório']})
        self._validar_escolhas(status=status, priority=priority)

        with transaction.atomic():
            project = self.store.lock_project(project.id)
            if project.is_tombstoned:
                raise ConflictError(f'Projeto {project.id} foi excluído')
            authorize(actor, Action.TASK_CREATE, project, self.store).raise_if_denied()

            self._validar_responsavel(project.id, assignee)
            self._validar_tarefa_pai(project.id, parent)

            task = Task(
                project=project,
                title=title,
                description=description,
                priority=priority,
                due_date=due_date,
                estimated_hours=estimated_hours,
                assignee=assignee,
                parent=parent,
                created_by=actor,
            )
            task.apply_status(status)
            self.ordering.insert(task)

            self._emit(EventKind.TASK_CREATED, actor, task)

        logger.info(f"✅ Tarefa {task.id} criada em {Bucket.of(task)} (order {task.order})")
        return task

    def update_task(self, actor, task, **fields):
        """
        Atualiza campos da tarefa; mudança de status leva a tarefa para o
        fim da coluna nova e renumera a antiga
        """
        invalidos = set(fields) - set(self.EDITABLE_FIELDS)
        if invalidos:
            raise ValidationError(f'Campos não editáveis: {sorted(invalidos)}')
        if 'title' in fields and not (fields['title'] or '').strip():
            raise ValidationError('Título é obrigatório', {'title': ['obrigatório']})
        self._validar_escolhas(status=fields.get('status'), priority=fields.get('priority'))

        with transaction.atomic():
            self.store.lock_project(task.project_id)
            task = self._recarregar(task.pk)
            authorize(actor, Action.TASK_UPDATE, task, self.store).raise_if_denied()

            if 'assignee' in fields:
                self._validar_responsavel(task.project_id, fields['assignee'])

            old_status = task.status
            new_status = fields.pop('status', None)
            for campo, valor in fields.items():
                setattr(task, campo, valor)

            if new_status and new_status != task.status:
                self.ordering.move_to_end(task, new_status)
            else:
                task.save()

            self._emit(EventKind.TASK_UPDATED, actor, task, old_status=old_status)

        return task

    def delete_task(self, actor, task):
        """Tombstone da tarefa e das subtarefas, fechando o buraco no bucket"""
        with transaction.atomic():
            self.store.lock_project(task.project_id)
            task = self._recarregar(task.pk)
            authorize(actor, Action.TASK_DELETE, task, self.store).raise_if_denied()

            agora = timezone.now()
            Task.objects.filter(parent=task).tombstone(agora)
            task.tombstone(agora)
            self.ordering.normalize(Bucket.of(task))

            self._emit(EventKind.TASK_DELETED, actor, task)

        return task

    # =================== VALIDAÇÕES ===================

    def _recarregar(self, task_id):
        try:
            return (
                Task.objects.scoped(include_tombstoned=False)
                .select_related('project')
                .get(pk=task_id)
            )
        except Task.DoesNotExist:
            raise ConflictError(f'Tarefa {task_id} não existe mais')

    def _validar_escolhas(self, status=None, priority=None):
        if status is not None and status not in Task.Status.values:
            raise ValidationError(f'Status inválido: {status}', {'status': ['inválido']})
        if priority is not None and priority not in Task.Priority.values:
            raise ValidationError(f'Prioridade inválida: {priority}', {'priority': ['inválida']})

    def _validar_responsavel(self, project_id, assignee):
        if assignee is None:
            return
        if self.store.get_membership(project_id, assignee.id) is None:
            raise ValidationError(
                'Não é possível atribuir a tarefa a quem não é membro do projeto',
                {'assignee': ['não é membro do projeto']}
            )

    def _validar_tarefa_pai(self, project_id, parent):
        if parent is None:
            return
        if parent.project_id != project_id or parent.is_tombstoned:
            raise ValidationError('Tarefa pai inválida', {'parent': ['fora do projeto']})
        if parent.parent_id is not None:
            raise ValidationError(
                'Subtarefas não podem ter subtarefas',
                {'parent': ['profundidade máxima é 1']}
            )

    def _emit(self, kind, actor, task, old_status=None):
        payload = {
            'project_name': task.project.name,
            'task_id': task.id,
            'title': task.title,
            'assignee_id': task.assignee_id,
            'status': task.status,
            'order': task.order,
        }
        if old_status is not None:
            payload['old_status'] = old_status

        publish_event(DomainEvent(
            kind=kind,
            project_id=task.project_id,
            actor_id=actor.id,
            payload=payload,
        ))


task_service = TaskService()
