# apps/board/consumers.py

import json
import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer
from django.conf import settings
from django.utils import timezone

from apps.core.exceptions import AuthenticationError
from apps.core.models import Notification

logger = logging.getLogger(__name__)

# Código de fechamento para credencial ausente/inválida
CLOSE_UNAUTHENTICATED = 4401


class NotificationConsumer(AsyncWebsocketConsumer):
    """
    Consumer de notificações em tempo real do usuário

    Funcionalidades:
    - Autenticação na conexão (sessão ou token assinado)
    - Entrega das notificações publicadas pelo fan-out
    - Contagem de não lidas e marcação como lida
    - Heartbeat (ping/pong)

    O registro de conexões é injetado via `as_asgi(registry=...)`.
    """

    registry = None

    async def connect(self):
        try:
            self.membership = await self.registry.on_connect(self.scope, self.channel_name)
        except AuthenticationError:
            self.membership = None
            await self.close(code=CLOSE_UNAUTHENTICATED)
            return

        await self.accept()
        await self.send_json({
            'type': 'connected',
            'userId': self.membership.user_id,
            'unreadCount': await self.unread_count(),
            'heartbeatInterval': settings.SINCRO_WS_HEARTBEAT_INTERVAL,
            'timestamp': self.get_timestamp(),
        })

    async def disconnect(self, close_code):
        if getattr(self, 'membership', None) is not None:
            await self.registry.on_disconnect(self.channel_name)

    async def receive(self, text_data=None, bytes_data=None):
        """
        Processa comandos do cliente
        """
        try:
            data = json.loads(text_data or '')
        except json.JSONDecodeError:
            logger.error(f"❌ JSON inválido recebido via WebSocket de {self.membership.user_id}")
            await self.send_json({'type': 'error', 'error': 'invalid_json'})
            return

        message_type = data.get('type')

        # Heartbeat/Ping
        if message_type == 'ping':
            await self.send_json({'type': 'pong', 'timestamp': self.get_timestamp()})

        elif message_type == 'mark_read':
            marcada = await self.mark_notification_read(data.get('notification_id'))
            await self.send_json({
                'type': 'marked_read',
                'notification_id': data.get('notification_id'),
                'success': marcada,
                'unreadCount': await self.unread_count(),
            })

        elif message_type == 'unread_count':
            await self.send_json({'type': 'unread_count', 'unreadCount': await self.unread_count()})

        else:
            await self.send_json({'type': 'error', 'error': 'unknown_type'})

    # === Handlers do channel layer ===

    async def notification_message(self, event):
        await self._deliver(event)

    async def admin_event(self, event):
        await self._deliver(event)

    async def _deliver(self, event):
        frame = self.registry.deliver(self.channel_name, event)
        if frame is not None:
            await self.send_json(frame)

    # === Métodos auxiliares ===

    async def send_json(self, content):
        await self.send(text_data=json.dumps(content, default=str))

    @database_sync_to_async
    def unread_count(self):
        return Notification.objects.filter(user_id=self.membership.user_id, read=False).count()

    @database_sync_to_async
    def mark_notification_read(self, notification_id):
        """
        Marca como lida; só notificações do próprio usuário
        """
        try:
            notification_id = int(notification_id)
        except (TypeError, ValueError):
            return False
        return Notification.objects.filter(
            id=notification_id,
            user_id=self.membership.user_id
        ).update(read=True) > 0

    def get_timestamp(self):
        return timezone.now().isoformat()
