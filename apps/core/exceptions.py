# apps/core/exceptions.py

"""
Taxonomia de erros do núcleo de sincronização do board

Os motores de autorização e ordenação nunca engolem erros: eles propagam
uma destas exceções tipadas e a camada HTTP/WebSocket decide a apresentação
(ver SincroErrorMiddleware).
"""

import enum


class DenyReason(str, enum.Enum):
    """Motivos legíveis por máquina para uma negação de acesso"""

    NOT_A_MEMBER = 'not_a_member'
    INSUFFICIENT_ROLE = 'insufficient_role'
    LAST_OWNER_PROTECTED = 'last_owner_protected'


class SincroError(Exception):
    """Base de todos os erros tipados do Sincro Board"""

    code = 'error'
    http_status = 500
    retryable = False

    def __init__(self, message=''):
        super().__init__(message or self.code)
        self.message = message or self.code

    def as_dict(self):
        return {
            'success': False,
            'error': self.code,
            'message': self.message,
        }


class AuthenticationError(SincroError):
    """Credencial ausente ou inválida - fatal para a requisição/conexão"""

    code = 'authentication_failed'
    http_status = 401


class AuthorizationError(SincroError):
    """Usuário autenticado, mas sem permissão para a ação"""

    code = 'permission_denied'
    http_status = 403

    def __init__(self, reason, message=''):
        self.reason = DenyReason(reason)
        super().__init__(message or self.reason.value)

    def as_dict(self):
        data = super().as_dict()
        data['reason'] = self.reason.value
        return data


class ConflictError(SincroError):
    """Estado desatualizado: o cliente deve recarregar e pode tentar de novo"""

    code = 'conflict'
    http_status = 409


class ValidationError(SincroError):
    """Entrada malformada, rejeitada antes de qualquer escrita"""

    code = 'validation_error'
    http_status = 400

    def __init__(self, message='', errors=None):
        super().__init__(message)
        self.errors = errors or {}

    def as_dict(self):
        data = super().as_dict()
        if self.errors:
            data['errors'] = self.errors
        return data


class TransientStoreError(SincroError):
    """Falha de conexão/timeout com o banco; seguro repetir com backoff"""

    code = 'store_unavailable'
    http_status = 503
    retryable = True
