# apps/notifications/audience.py

"""
Resolução de audiência: quem precisa receber cada evento

Uma tabela de despacho EventKind -> estratégia; adicionar um tipo de
evento sem estratégia quebra na importação.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List

from django.core.exceptions import ImproperlyConfigured

from apps.core.models import Notification, Project, ProjectMembership, Role

from .events import DomainEvent, EventKind


@dataclass(frozen=True)
class Recipient:
    user_id: int
    audience: str = Notification.Audience.MEMBER


def _project_members(event: DomainEvent, store) -> List[Recipient]:
    return [Recipient(m.user_id) for m in store.list_members(event.project_id)]


def _project_update(event: DomainEvent, store) -> List[Recipient]:
    """
    Membros do projeto e, quando o projeto entra em `in_progress`,
    todo testador global que ainda não é membro (marcado como divulgação)

    Editar um projeto que já estava em andamento não divulga de novo.
    """
    recipients = _project_members(event, store)

    entrou_em_andamento = (
        event.payload.get('old_status') != Project.Status.IN_PROGRESS
        and event.payload.get('new_status') == Project.Status.IN_PROGRESS
    )
    if entrou_em_andamento:
        membros = {r.user_id for r in recipients}
        recipients.extend(
            Recipient(user_id, Notification.Audience.TESTER_BROADENED)
            for user_id in store.users_with_global_role(Role.TESTER)
            if user_id not in membros
        )

    return recipients


def _task_audience(event: DomainEvent, store) -> List[Recipient]:
    """Responsável pela tarefa + owners/managers do projeto"""
    recipients = []

    assignee_id = event.payload.get('assignee_id')
    if assignee_id:
        recipients.append(Recipient(assignee_id))

    recipients.extend(
        Recipient(m.user_id)
        for m in store.list_members(event.project_id)
        if m.role in ProjectMembership.MANAGE_ROLES
    )
    return recipients


AUDIENCE_RESOLVERS: Dict[EventKind, Callable[[DomainEvent, object], List[Recipient]]] = {
    EventKind.TASK_CREATED: _task_audience,
    EventKind.TASK_UPDATED: _task_audience,
    EventKind.TASK_DELETED: _task_audience,
    EventKind.COMMENT_CREATED: _project_members,
    EventKind.COMMENT_UPDATED: _project_members,
    EventKind.COMMENT_DELETED: _project_members,
    EventKind.PROJECT_UPDATED: _project_update,
    EventKind.MEMBER_CHANGED: _project_members,
}

_sem_estrategia = set(EventKind) - set(AUDIENCE_RESOLVERS)
if _sem_estrategia:
    raise ImproperlyConfigured(f"Eventos sem estratégia de audiência: {sorted(k.value for k in _sem_estrategia)}")


def resolve_audience(event: DomainEvent, store) -> List[Recipient]:
    """
    Audiência final do evento: sem o ator e sem duplicatas

    Um usuário que casa com mais de uma regra recebe uma única
    notificação; vale a primeira marcação encontrada.
    """
    vistos = set()
    audience = []

    for recipient in AUDIENCE_RESOLVERS[event.kind](event, store):
        if recipient.user_id == event.actor_id or recipient.user_id in vistos:
            continue
        vistos.add(recipient.user_id)
        audience.append(recipient)

    return audience
