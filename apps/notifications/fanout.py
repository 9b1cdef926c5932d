# apps/notifications/fanout.py

"""
Motor de fan-out: evento de domínio -> notificações duráveis -> entrega ao vivo

O processo que calcula a audiência não precisa segurar o socket do
destinatário: a entrega vai para o channel layer (Redis pub/sub em
produção) e cada processo entrega só para as conexões que possui.
"""

import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import transaction

from apps.core.models import Notification

from .audience import resolve_audience
from .events import ADMIN_GROUP, EventKind, user_group

logger = logging.getLogger(__name__)


class FanOutEngine:
    """
    Publica eventos de domínio para a audiência correta

    Ordem fixa: persiste uma Notification por (destinatário, evento) e só
    depois tenta a entrega ao vivo. Falha na entrega não é fatal.
    """

    def __init__(self, store=None, channel_layer=None):
        if store is None:
            from apps.core.store import default_store
            store = default_store
        self.store = store
        self._channel_layer = channel_layer

    @property
    def channel_layer(self):
        if self._channel_layer is None:
            self._channel_layer = get_channel_layer()
        return self._channel_layer

    def publish(self, event):
        recipients = resolve_audience(event, self.store)

        notifications = self._persist(event, recipients) if recipients else []

        for notification in notifications:
            self._send(
                user_group(notification.user_id),
                {
                    'type': 'notification_message',
                    'event': event.as_message(),
                    'message': notification.as_payload(),
                }
            )

        if event.kind == EventKind.TASK_CREATED:
            # Administradores acompanham toda criação de tarefa
            self._send(ADMIN_GROUP, {'type': 'admin_event', 'event': event.as_message()})

        logger.info(f"📣 {event.kind.value} do projeto {event.project_id} -> {len(notifications)} destinatário(s)")
        return notifications

    def _persist(self, event, recipients):
        """
        Grava as notificações numa transação própria

        A restrição única (user, event_id) torna a republicação do mesmo
        evento idempotente.
        """
        comment_id = event.payload.get('comment_id')
        if event.kind == EventKind.COMMENT_DELETED:
            comment_id = None

        rows = [
            Notification(
                user_id=recipient.user_id,
                message=event.render_message(recipient.audience)[:500],
                type=event.notification_type,
                link=event.link,
                project_id=event.project_id,
                comment_id=comment_id,
                event_id=event.event_id,
                audience=recipient.audience,
            )
            for recipient in recipients
        ]

        with transaction.atomic():
            Notification.objects.bulk_create(rows, ignore_conflicts=True)

        return list(
            Notification.objects
            .filter(event_id=event.event_id, user_id__in=[r.user_id for r in recipients])
            .order_by('id')
        )

    def _send(self, group, message):
        try:
            async_to_sync(self.channel_layer.group_send)(group, message)
        except Exception as e:
            # A notificação já está gravada; o cliente recupera pelo pull
            logger.error(f"❌ Falha na entrega ao vivo para {group}: {e}")


default_fanout = FanOutEngine()


def publish_event(event, engine=None):
    """
    Dispara o fan-out depois do commit da transação corrente

    Fire-and-forget em relação à requisição: eventos de transações
    desfeitas nunca são publicados e erros do fan-out não sobem.
    """
    engine = engine or default_fanout

    def _publicar():
        try:
            engine.publish(event)
        except Exception:
            logger.exception(f"❌ Erro no fan-out de {event.kind.value} (projeto {event.project_id})")

    transaction.on_commit(_publicar)
