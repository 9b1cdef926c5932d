# apps/core/permissions.py

"""
Motor de autorização do Sincro Board

Toda operação que altera estado passa por `authorize`, que junta os fatos
necessários no repositório (uma ida ao banco) e delega a `decide`, uma
função pura sobre enums e uma pequena tabela de regras.
"""

import enum
import logging
from dataclasses import dataclass
from functools import wraps
from typing import Callable, Dict, Optional

from django.core.exceptions import ImproperlyConfigured

from .exceptions import AuthenticationError, AuthorizationError, DenyReason
from .models import Comment, Project, ProjectMembership, Role, Task

logger = logging.getLogger(__name__)


class Action(str, enum.Enum):
    """Ações controladas pelo motor de autorização"""

    PROJECT_READ = 'project.read'
    PROJECT_UPDATE = 'project.update'
    PROJECT_DELETE = 'project.delete'
    MEMBER_UPDATE = 'member.update'
    MEMBER_REMOVE = 'member.remove'
    TASK_CREATE = 'task.create'
    TASK_UPDATE = 'task.update'
    TASK_DELETE = 'task.delete'
    TASK_REORDER = 'task.reorder'
    COMMENT_CREATE = 'comment.create'
    COMMENT_UPDATE = 'comment.update'
    COMMENT_DELETE = 'comment.delete'


@dataclass(frozen=True)
class Decision:
    """Resultado de uma checagem: permitido, ou negado com motivo"""

    allowed: bool
    reason: Optional[DenyReason] = None

    @classmethod
    def allow(cls):
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason):
        return cls(allowed=False, reason=DenyReason(reason))

    def __bool__(self):
        return self.allowed

    def raise_if_denied(self):
        if not self.allowed:
            raise AuthorizationError(self.reason)
        return self


@dataclass(frozen=True)
class AccessContext:
    """
    Fatos sobre o ator e o recurso necessários para decidir

    role: papel do ator no projeto (None se não for membro)
    owner_id: criador da tarefa ou autor do comentário, quando aplicável
    """

    actor_id: int
    is_admin: bool
    role: Optional[str]
    project_status: str
    owner_id: Optional[int] = None

    @property
    def is_owner_of_resource(self):
        return self.owner_id is not None and self.owner_id == self.actor_id

    @property
    def can_manage(self):
        return self.role in ProjectMembership.MANAGE_ROLES


# === REGRAS POR AÇÃO ===
# Cada regra só é avaliada depois do gate de membership.

def _any_member(ctx: AccessContext) -> Decision:
    return Decision.allow()


def _managers_only(ctx: AccessContext) -> Decision:
    if ctx.can_manage:
        return Decision.allow()
    return Decision.deny(DenyReason.INSUFFICIENT_ROLE)


def _creator_or_manager(ctx: AccessContext) -> Decision:
    if ctx.is_owner_of_resource or ctx.can_manage:
        return Decision.allow()
    return Decision.deny(DenyReason.INSUFFICIENT_ROLE)


def _author_only(ctx: AccessContext) -> Decision:
    if ctx.is_owner_of_resource:
        return Decision.allow()
    return Decision.deny(DenyReason.INSUFFICIENT_ROLE)


RULES: Dict[Action, Callable[[AccessContext], Decision]] = {
    Action.PROJECT_READ: _any_member,
    Action.PROJECT_UPDATE: _managers_only,
    Action.PROJECT_DELETE: _managers_only,
    Action.MEMBER_UPDATE: _managers_only,
    Action.MEMBER_REMOVE: _managers_only,
    Action.TASK_CREATE: _any_member,
    Action.TASK_UPDATE: _creator_or_manager,
    Action.TASK_DELETE: _creator_or_manager,
    Action.TASK_REORDER: _any_member,
    Action.COMMENT_CREATE: _any_member,
    Action.COMMENT_UPDATE: _author_only,
    Action.COMMENT_DELETE: _creator_or_manager,
}

_sem_regra = set(Action) - set(RULES)
if _sem_regra:
    raise ImproperlyConfigured(f"Ações sem regra de autorização: {sorted(a.value for a in _sem_regra)}")


def decide(action, ctx: AccessContext) -> Decision:
    """
    Decisão pura, avaliada em ordem de precedência (primeira que casar vence):

    1. Administrador global: tudo liberado
    2. Sem membership: nega (`not_a_member`), exceto `project.read` em
       projeto `in_progress`, visível a qualquer usuário autenticado
    3. Regra específica da ação (tabela RULES)
    """
    action = Action(action)

    if ctx.is_admin:
        return Decision.allow()

    if ctx.role is None:
        if action == Action.PROJECT_READ and ctx.project_status == Project.Status.IN_PROGRESS:
            return Decision.allow()
        return Decision.deny(DenyReason.NOT_A_MEMBER)

    return RULES[action](ctx)


def _resolver_recurso(resource):
    """Retorna (project_id, owner_id) para Project, Task ou Comment"""
    if isinstance(resource, Project):
        return resource.id, None
    if isinstance(resource, Task):
        return resource.project_id, resource.created_by_id
    if isinstance(resource, Comment):
        return resource.project_id, resource.author_id
    raise TypeError(f"Recurso não suportado pela autorização: {type(resource).__name__}")


def build_context(actor, resource, store) -> AccessContext:
    """Carrega do repositório os fatos para decidir sobre `resource`"""
    project_id, owner_id = _resolver_recurso(resource)

    if isinstance(resource, Project):
        project_status = resource.status
    else:
        project_status = resource.project.status

    is_admin = actor.is_superuser or store.has_global_role(actor.id, Role.ADMIN)
    membership = None if is_admin else store.get_membership(project_id, actor.id)

    return AccessContext(
        actor_id=actor.id,
        is_admin=is_admin,
        role=membership.role if membership else None,
        project_status=project_status,
        owner_id=owner_id,
    )


def authorize(actor, action, resource, store=None) -> Decision:
    """
    Ponto único de autorização consumido pela camada de serviço

    Levanta AuthenticationError para ator anônimo; devolve Decision nos
    demais casos (use `.raise_if_denied()` para propagar a negação).
    """
    if store is None:
        from .store import default_store
        store = default_store

    if actor is None or not getattr(actor, 'is_authenticated', False):
        raise AuthenticationError('Credencial ausente ou inválida')

    action = Action(action)
    decision = decide(action, build_context(actor, resource, store))

    if not decision.allowed:
        logger.info(
            f"🚫 {action.value} negado para usuário {actor.id} em "
            f"{type(resource).__name__} {resource.pk}: {decision.reason.value}"
        )

    return decision


def ensure_owner_remains(store, project_id, membership, new_role=None):
    """
    Pré-condição do invariante de owner

    Antes de rebaixar ou remover um owner, conta os owners atuais; se o
    projeto ficaria sem nenhum, rejeita com `last_owner_protected`,
    independente do papel de quem pediu. Deve rodar dentro da mesma
    transação da escrita, depois de `store.lock_project`.

    new_role=None significa remoção.
    """
    if membership is None or membership.role != ProjectMembership.Role.OWNER:
        return
    if new_role == ProjectMembership.Role.OWNER:
        return
    if store.count_owners(project_id) > 1:
        return

    # Remover o único membro deixa o projeto sem memberships, o que o invariante permite
    if new_role is None and len(store.list_members(project_id)) == 1:
        return

    logger.info(f"🛡️ Último owner protegido no projeto {project_id} (usuário {membership.user_id})")
    raise AuthorizationError(DenyReason.LAST_OWNER_PROTECTED)


# Decorador para views JSON

def requer_autenticacao(view_func):
    """Exige usuário autenticado; o middleware converte o erro em 401"""

    @wraps(view_func)
    def wrapped_view(request, *args, **kwargs):
        if not request.user.is_authenticated:
            raise AuthenticationError('Login necessário')
        return view_func(request, *args, **kwargs)

    return wrapped_view
