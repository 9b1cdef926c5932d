# apps/core/utils.py

import json
from typing import Dict, Optional

from django.http import Http404

from .exceptions import ValidationError


def ler_dados(request) -> Dict:
    """
    Corpo da requisição como dict

    Aceita JSON (clientes do board) ou form-encoded (formulários simples).
    """
    if request.content_type == 'application/json':
        try:
            data = json.loads(request.body or b'{}')
        except json.JSONDecodeError:
            raise ValidationError('JSON inválido')
        if not isinstance(data, dict):
            raise ValidationError('Objeto JSON esperado')
        return data
    return request.POST.dict()


def validar_form(form_class, data, **kwargs):
    """Valida um Django form e converte erros em ValidationError do núcleo"""
    form = form_class(data, **kwargs)
    if not form.is_valid():
        erros = {campo: [str(e) for e in lista] for campo, lista in form.errors.items()}
        raise ValidationError('Dados inválidos', erros)
    return form.cleaned_data


def buscar_ativo(model, pk, **filtros):
    """Registro não excluído ou 404"""
    try:
        return (
            model.objects.scoped(include_tombstoned=False)
            .filter(**filtros)
            .get(pk=pk)
        )
    except model.DoesNotExist:
        raise Http404(f"{model.__name__} {pk} não encontrado")


def isoformat(value) -> Optional[str]:
    return value.isoformat() if value else None


# === SERIALIZAÇÃO PARA AS VIEWS JSON ===

def project_dict(project, role=None):
    return {
        'id': project.id,
        'name': project.name,
        'description': project.description,
        'status': project.status,
        'createdBy': project.created_by_id,
        'createdAt': isoformat(project.created_at),
        'updatedAt': isoformat(project.updated_at),
        'role': role,
    }


def membership_dict(membership):
    return {
        'userId': membership.user_id,
        'username': membership.user.username,
        'role': membership.role,
    }


def comment_dict(comment):
    return {
        'id': comment.id,
        'projectId': comment.project_id,
        'authorId': comment.author_id,
        'content': comment.content,
        'createdAt': isoformat(comment.created_at),
        'editedAt': isoformat(comment.edited_at),
    }


def task_dict(task):
    return {
        'id': task.id,
        'projectId': task.project_id,
        'parentId': task.parent_id,
        'title': task.title,
        'description': task.description,
        'status': task.status,
        'priority': task.priority,
        'order': task.order,
        'assigneeId': task.assignee_id,
        'createdBy': task.created_by_id,
        'dueDate': isoformat(task.due_date),
        'estimatedHours': str(task.estimated_hours) if task.estimated_hours is not None else None,
        'actualHours': str(task.actual_hours) if task.actual_hours is not None else None,
        'completedAt': isoformat(task.completed_at),
        'createdAt': isoformat(task.created_at),
        'updatedAt': isoformat(task.updated_at),
    }
