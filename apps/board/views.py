# apps/board/views.py

import logging

from django.contrib.auth import get_user_model
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from apps.core.exceptions import ValidationError
from apps.core.models import Project, Task
from apps.core.permissions import Action, authorize, requer_autenticacao
from apps.core.utils import buscar_ativo, ler_dados, task_dict, validar_form

from .forms import ReorderForm, TaskForm, TaskUpdateForm
from .ordering import Bucket, ordering_engine
from .services import task_service

logger = logging.getLogger(__name__)


def _buscar_usuario(user_id, campo):
    if user_id is None:
        return None
    user = get_user_model().objects.filter(pk=user_id, is_active=True).first()
    if user is None:
        raise ValidationError('Usuário não encontrado', {campo: ['inexistente']})
    return user


@require_GET
@requer_autenticacao
def board_view(request, project_id):
    """
    Estado atual do board: tarefas de primeiro nível agrupadas por coluna

    Usado pelo cliente na carga inicial e para recarregar após um ConflictError.
    """
    project = buscar_ativo(Project, project_id)
    authorize(request.user, Action.PROJECT_READ, project).raise_if_denied()

    colunas = {status: [] for status in Task.Status.values}
    tarefas = (
        Task.objects.scoped(include_tombstoned=False)
        .filter(project=project, parent__isnull=True)
        .order_by('status', 'order', 'id')
    )
    for task in tarefas:
        colunas[task.status].append(task_dict(task))

    return JsonResponse({
        'projectId': project.id,
        'columns': [{'status': status, 'tasks': tasks} for status, tasks in colunas.items()],
    })


@require_GET
@requer_autenticacao
def subtasks_view(request, task_id):
    task = buscar_ativo(Task, task_id, project__deleted_at__isnull=True)
    authorize(request.user, Action.PROJECT_READ, task.project).raise_if_denied()

    subtarefas = (
        Task.objects.scoped(include_tombstoned=False)
        .filter(parent=task)
        .order_by('status', 'order', 'id')
    )
    return JsonResponse({'tasks': [task_dict(t) for t in subtarefas]})


@require_POST
@requer_autenticacao
def task_create_view(request, project_id):
    project = buscar_ativo(Project, project_id)
    dados = validar_form(TaskForm, ler_dados(request))

    parent = None
    if dados['parent_id']:
        parent = Task.objects.scoped(include_tombstoned=False).filter(pk=dados['parent_id']).first()
        if parent is None:
            raise ValidationError('Tarefa pai não encontrada', {'parent_id': ['inexistente']})

    task = task_service.create_task(
        request.user,
        project,
        dados['title'],
        status=dados['status'],
        priority=dados['priority'],
        assignee=_buscar_usuario(dados['assignee_id'], 'assignee_id'),
        parent=parent,
        description=dados['description'],
        due_date=dados['due_date'],
        estimated_hours=dados['estimated_hours'],
    )
    return JsonResponse({'success': True, 'task': task_dict(task)}, status=201)


@require_POST
@requer_autenticacao
def task_update_view(request, task_id):
    task = buscar_ativo(Task, task_id, project__deleted_at__isnull=True)
    dados = validar_form(TaskUpdateForm, ler_dados(request))

    if 'assignee_id' in dados:
        dados['assignee'] = _buscar_usuario(dados.pop('assignee_id'), 'assignee_id')

    task = task_service.update_task(request.user, task, **dados)
    return JsonResponse({'success': True, 'task': task_dict(task)})


@require_POST
@requer_autenticacao
def task_delete_view(request, task_id):
    task = buscar_ativo(Task, task_id, project__deleted_at__isnull=True)
    task_service.delete_task(request.user, task)
    return JsonResponse({'success': True})


@require_POST
@requer_autenticacao
def reorder_view(request, project_id):
    """
    Drag-and-drop: aplica a sequência completa de uma coluna

    Em caso de 409 o cliente deve recarregar o board e tentar de novo.
    """
    project = buscar_ativo(Project, project_id)
    dados = validar_form(ReorderForm, ler_dados(request))

    bucket = Bucket(project.id, dados['status'], dados['parent_id'])
    tasks = ordering_engine.reorder_bucket(request.user, bucket, dados['ordered_ids'])

    return JsonResponse({
        'success': True,
        'status': bucket.status,
        'parentId': bucket.parent_id,
        'tasks': [task_dict(t) for t in tasks],
    })
