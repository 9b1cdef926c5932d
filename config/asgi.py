# config/asgi.py

import os

from django.core.asgi import get_asgi_application
from channels.routing import ProtocolTypeRouter, URLRouter
from channels.auth import AuthMiddlewareStack

# Configurar Django settings
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.development')

# Importar rotas de WebSocket depois de configurar Django
django_asgi_app = get_asgi_application()

from apps.board.registry import ConnectionRegistry, CredentialVerifier  # noqa: E402
from apps.board.routing import build_websocket_urlpatterns  # noqa: E402

# Um registro por processo, passado por referência aos consumers
connection_registry = ConnectionRegistry(verifier=CredentialVerifier())

# Configuração ASGI
application = ProtocolTypeRouter({
    # HTTP tradicional
    "http": django_asgi_app,

    # WebSocket com autenticação
    "websocket": AuthMiddlewareStack(
        URLRouter(build_websocket_urlpatterns(connection_registry))
    ),
})
