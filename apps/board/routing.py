# apps/board/routing.py

from django.urls import re_path

from . import consumers


def build_websocket_urlpatterns(registry):
    """Rotas WebSocket com o registro de conexões do processo injetado"""
    return [
        # Notificações do usuário (canal privado + canal de admins)
        re_path(r'ws/notifications/$', consumers.NotificationConsumer.as_asgi(registry=registry)),
    ]
