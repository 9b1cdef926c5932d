# apps/board/registry.py

"""
Registro de conexões WebSocket do processo

Cada processo ASGI cria um único ConnectionRegistry (ver config/asgi.py)
e o injeta nos consumers. O mapa local de presença só é alterado pelos
handlers de connect/disconnect deste processo; a contagem global fica no
cache compartilhado.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Optional, Set, Tuple
from urllib.parse import parse_qs

from asgiref.sync import sync_to_async
from channels.db import database_sync_to_async
from channels.layers import get_channel_layer
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core import signing
from django.core.cache import cache

from apps.core.exceptions import AuthenticationError
from apps.core.models import Role
from apps.notifications.events import ADMIN_GROUP, user_group

logger = logging.getLogger(__name__)

TOKEN_SALT = 'sincro.ws'
TOKEN_QUERY_PARAM = 'token'
PRESENCE_KEY = 'presence:user:{}'


def issue_token(user):
    """Token assinado para clientes que não usam a sessão do Django"""
    return signing.dumps({'user_id': user.pk}, salt=TOKEN_SALT)


class CredentialVerifier:
    """
    Resolve o usuário de uma conexão

    Aceita o usuário da sessão (colocado no scope pelo AuthMiddlewareStack)
    ou um token assinado no parâmetro `token` da query string.
    """

    def __init__(self, max_age=None):
        self.max_age = max_age

    def _token(self, scope):
        query = parse_qs(scope.get('query_string', b'').decode('latin-1'))
        valores = query.get(TOKEN_QUERY_PARAM)
        return valores[0] if valores else None

    def verify(self, scope):
        token = self._token(scope)
        if token:
            return self._verify_token(token)

        user = scope.get('user')
        if user is not None and user.is_authenticated and user.is_active:
            return user

        raise AuthenticationError('Conexão sem credencial válida')

    def _verify_token(self, token):
        max_age = self.max_age or settings.SINCRO_WS_TOKEN_MAX_AGE
        try:
            data = signing.loads(token, salt=TOKEN_SALT, max_age=max_age)
        except signing.SignatureExpired:
            raise AuthenticationError('Token expirado')
        except signing.BadSignature:
            raise AuthenticationError('Token inválido')

        User = get_user_model()
        try:
            return User.objects.get(pk=data.get('user_id'), is_active=True)
        except User.DoesNotExist:
            raise AuthenticationError('Usuário do token não existe ou está inativo')


@dataclass(frozen=True)
class ChannelMembership:
    """Canais lógicos em que uma conexão foi colocada"""

    user_id: int
    channel_name: str
    groups: Tuple[str, ...]

    @property
    def is_admin(self):
        return ADMIN_GROUP in self.groups


@dataclass
class _LocalState:
    by_channel: Dict[str, ChannelMembership] = field(default_factory=dict)
    by_user: Dict[int, Set[str]] = field(default_factory=lambda: defaultdict(set))


class ConnectionRegistry:
    """
    Conexões fisicamente mantidas por este processo

    - on_connect: autentica, entra em `user_<id>` (e `admins` se for admin)
    - on_disconnect: sai dos grupos e decrementa a presença
    - deliver: converte a mensagem do channel layer no frame enviado ao cliente
    """

    def __init__(self, channel_layer=None, verifier=None):
        self._channel_layer = channel_layer
        self.verifier = verifier or CredentialVerifier()
        self._state = _LocalState()

    @property
    def channel_layer(self):
        if self._channel_layer is None:
            self._channel_layer = get_channel_layer()
        return self._channel_layer

    async def on_connect(self, scope, channel_name):
        """Retorna a ChannelMembership ou levanta AuthenticationError"""
        try:
            user = await database_sync_to_async(self.verifier.verify)(scope)
        except AuthenticationError as e:
            logger.warning(f"❌ Conexão WebSocket rejeitada: {e.message}")
            raise

        groups = [user_group(user.pk)]
        if await database_sync_to_async(self._is_admin)(user):
            groups.append(ADMIN_GROUP)

        for group in groups:
            await self.channel_layer.group_add(group, channel_name)

        membership = ChannelMembership(user.pk, channel_name, tuple(groups))
        self._state.by_channel[channel_name] = membership
        self._state.by_user[user.pk].add(channel_name)
        await sync_to_async(self._incr_presence)(user.pk)

        logger.info(f"🔔 Conexão {channel_name} do usuário {user.pk} em {groups}")
        return membership

    async def on_disconnect(self, channel_name):
        membership = self._state.by_channel.pop(channel_name, None)
        if membership is None:
            return None

        for group in membership.groups:
            await self.channel_layer.group_discard(group, channel_name)

        canais = self._state.by_user.get(membership.user_id, set())
        canais.discard(channel_name)
        if not canais:
            self._state.by_user.pop(membership.user_id, None)

        await sync_to_async(self._decr_presence)(membership.user_id)
        logger.info(f"🔕 Conexão {channel_name} do usuário {membership.user_id} encerrada")
        return membership

    def deliver(self, channel_name, payload) -> Optional[dict]:
        """
        Frame JSON para uma mensagem recebida do pub/sub, ou None se a
        conexão não pertence a este processo
        """
        if channel_name not in self._state.by_channel:
            logger.debug(f"Mensagem descartada: {channel_name} não está neste processo")
            return None

        kind = payload.get('type')
        if kind == 'notification_message':
            return {
                'type': 'notification',
                'event': payload.get('event'),
                'message': payload.get('message'),
            }
        if kind == 'admin_event':
            return {'type': 'admin_event', 'event': payload.get('event')}

        logger.warning(f"⚠️ Tipo de mensagem desconhecido no registro: {kind}")
        return None

    # =================== PRESENÇA ===================

    def membership_for(self, channel_name):
        return self._state.by_channel.get(channel_name)

    def local_channels(self, user_id):
        return set(self._state.by_user.get(user_id, ()))

    @staticmethod
    def online_count(user_id):
        """Conexões abertas do usuário somando todos os processos"""
        return cache.get(PRESENCE_KEY.format(user_id), 0)

    def _is_admin(self, user):
        return user.is_superuser or user.roles.filter(name=Role.ADMIN).exists()

    def _incr_presence(self, user_id):
        key = PRESENCE_KEY.format(user_id)
        cache.add(key, 0, timeout=None)
        cache.incr(key)

    def _decr_presence(self, user_id):
        key = PRESENCE_KEY.format(user_id)
        try:
            if cache.decr(key) <= 0:
                cache.delete(key)
        except ValueError:
            # Chave expirou ou foi limpa
            logger.debug(f"Contador de presença ausente para {user_id}")
