# apps/notifications/events.py

"""
Eventos de domínio emitidos após cada mutação confirmada
"""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from django.utils import timezone

from apps.core.models import Notification

ADMIN_GROUP = 'admins'


def user_group(user_id):
    """Canal privado de um usuário no channel layer"""
    return f'user_{user_id}'


class EventKind(str, enum.Enum):
    TASK_CREATED = 'task.created'
    TASK_UPDATED = 'task.updated'
    TASK_DELETED = 'task.deleted'
    COMMENT_CREATED = 'comment.created'
    COMMENT_UPDATED = 'comment.updated'
    COMMENT_DELETED = 'comment.deleted'
    PROJECT_UPDATED = 'project.updated'
    MEMBER_CHANGED = 'member.changed'

    @property
    def is_task_event(self):
        return self.value.startswith('task.')


NOTIFICATION_TYPES = {
    EventKind.TASK_CREATED: Notification.Type.TASK_UPDATE,
    EventKind.TASK_UPDATED: Notification.Type.TASK_UPDATE,
    EventKind.TASK_DELETED: Notification.Type.TASK_UPDATE,
    EventKind.COMMENT_CREATED: Notification.Type.COMMENT,
    EventKind.COMMENT_UPDATED: Notification.Type.COMMENT,
    EventKind.COMMENT_DELETED: Notification.Type.COMMENT,
    EventKind.PROJECT_UPDATED: Notification.Type.PROJECT_UPDATE,
    EventKind.MEMBER_CHANGED: Notification.Type.MEMBER_CHANGE,
}

MESSAGES = {
    EventKind.TASK_CREATED: 'Nova tarefa "{title}" no projeto {project_name}',
    EventKind.TASK_UPDATED: 'Tarefa "{title}" atualizada no projeto {project_name}',
    EventKind.TASK_DELETED: 'Tarefa "{title}" removida do projeto {project_name}',
    EventKind.COMMENT_CREATED: 'Novo comentário no projeto {project_name}',
    EventKind.COMMENT_UPDATED: 'Comentário editado no projeto {project_name}',
    EventKind.COMMENT_DELETED: 'Comentário removido do projeto {project_name}',
    EventKind.PROJECT_UPDATED: 'Projeto {project_name} foi atualizado',
    EventKind.MEMBER_CHANGED: 'Membros do projeto {project_name} foram alterados',
}

TESTER_BROADENED_MESSAGE = 'Projeto {project_name} entrou em andamento e está aberto para testes'


@dataclass(frozen=True)
class DomainEvent:
    """
    Evento tipado carregando o projeto afetado e o payload para renderizar
    a notificação. `event_id` identifica o evento para deduplicação no
    cliente e no banco.
    """

    kind: EventKind
    project_id: int
    actor_id: Optional[int]
    payload: Dict[str, Any] = field(default_factory=dict)
    event_id: uuid.UUID = field(default_factory=uuid.uuid4)
    occurred_at: datetime = field(default_factory=timezone.now)

    def __post_init__(self):
        object.__setattr__(self, 'kind', EventKind(self.kind))

    @property
    def notification_type(self):
        if self.kind == EventKind.PROJECT_UPDATED and 'new_status' in self.payload:
            if self.payload.get('new_status') != self.payload.get('old_status'):
                return Notification.Type.STATUS_CHANGE
        return NOTIFICATION_TYPES[self.kind]

    def render_message(self, audience=Notification.Audience.MEMBER):
        dados = {
            'project_name': self.payload.get('project_name', f'#{self.project_id}'),
            'title': self.payload.get('title', ''),
        }
        if audience == Notification.Audience.TESTER_BROADENED:
            return TESTER_BROADENED_MESSAGE.format(**dados)
        return MESSAGES[self.kind].format(**dados)

    @property
    def link(self):
        if self.kind.is_task_event and self.payload.get('task_id'):
            return f"/projects/{self.project_id}/tasks/{self.payload['task_id']}"
        return f"/projects/{self.project_id}"

    def as_message(self):
        """Representação enviada pelo WebSocket"""
        return {
            'eventId': str(self.event_id),
            'kind': self.kind.value,
            'projectId': self.project_id,
            'actorId': self.actor_id,
            'payload': self.payload,
            'occurredAt': self.occurred_at.isoformat(),
        }
