# apps/core/services.py

"""
Serviços de projeto, membros e comentários

Cada mutação roda numa transação que primeiro trava a linha do projeto;
a checagem (autorização + invariante de owner) e a escrita acontecem na
mesma unidade, então duas requisições concorrentes de "rebaixar o owner"
nunca passam as duas.
"""

import logging

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.notifications.events import DomainEvent, EventKind
from apps.notifications.fanout import publish_event

from .exceptions import AuthenticationError, ConflictError, ValidationError
from .models import Comment, Project, ProjectMembership, Task
from .permissions import Action, authorize, ensure_owner_remains
from .store import default_store

logger = logging.getLogger(__name__)


class ProjectService:
    """Operações de projeto e membros com o invariante de owner encapsulado"""

    EDITABLE_FIELDS = ('name', 'description', 'status')

    def __init__(self, store=None):
        self.store = store or default_store

    # =================== PROJETOS ===================

    def create_project(self, actor, name, description='', status=Project.Status.PLANNING):
        """
        Cria o projeto e a membership explícita de owner do criador

        Retorna o projeto criado.
        """
        if not actor.is_authenticated:
            raise AuthenticationError('Login necessário')
        if not (name or '').strip():
            raise ValidationError('Nome do projeto é obrigatório', {'name': ['obrigatório']})
        if status not in Project.Status.values:
            raise ValidationError(f'Status inválido: {status}', {'status': ['inválido']})

        with transaction.atomic():
            project = Project.objects.create(
                name=name.strip(),
                description=description,
                status=status,
                created_by=actor,
            )
            ProjectMembership.objects.create(
                project=project,
                user=actor,
                role=ProjectMembership.Role.OWNER,
            )

        logger.info(f"✅ Projeto {project.id} criado por {actor.id}")
        return project

    def update_project(self, actor, project, **fields):
        invalidos = set(fields) - set(self.EDITABLE_FIELDS)
        if invalidos:
            raise ValidationError(f'Campos não editáveis: {sorted(invalidos)}')
        if 'status' in fields and fields['status'] not in Project.Status.values:
            raise ValidationError(f"Status inválido: {fields['status']}", {'status': ['inválido']})

        with transaction.atomic():
            project = self.store.lock_project(project.id)
            if project.is_tombstoned:
                raise ConflictError(f'Projeto {project.id} foi excluído')
            authorize(actor, Action.PROJECT_UPDATE, project, self.store).raise_if_denied()

            old_status = project.status
            for campo, valor in fields.items():
                setattr(project, campo, valor)
            project.save(update_fields=list(fields) + ['updated_at'])

            publish_event(DomainEvent(
                kind=EventKind.PROJECT_UPDATED,
                project_id=project.id,
                actor_id=actor.id,
                payload={
                    'project_name': project.name,
                    'old_status': old_status,
                    'new_status': project.status,
                    'fields': sorted(fields),
                },
            ))

        return project

    def delete_project(self, actor, project):
        """
        Tombstone do projeto com cascata na mesma transação:
        memberships removidas, tarefas tombstoned, comentários conforme a política
        """
        with transaction.atomic():
            project = self.store.lock_project(project.id)
            if project.is_tombstoned:
                return project
            authorize(actor, Action.PROJECT_DELETE, project, self.store).raise_if_denied()

            agora = timezone.now()
            ProjectMembership.objects.filter(project=project).delete()
            Task.objects.filter(project=project).tombstone(agora)
            delete_comments(Comment.objects.filter(project=project), agora)
            project.tombstone(agora)

        logger.info(f"🗑️ Projeto {project.id} excluído por {actor.id}")
        return project

    # =================== MEMBROS ===================

    def upsert_member(self, actor, project, user, role):
        """
        Adiciona o usuário ao projeto, ou atualiza o papel se já for membro

        O primeiro membro de um projeto vazio precisa ser owner; rebaixar o
        último owner é rejeitado com `last_owner_protected`.
        """
        if role not in ProjectMembership.Role.values:
            raise ValidationError(f'Papel inválido: {role}', {'role': ['inválido']})

        with transaction.atomic():
            project = self.store.lock_project(project.id)
            authorize(actor, Action.MEMBER_UPDATE, project, self.store).raise_if_denied()

            membership = self.store.get_membership(project.id, user.id)

            if membership is None:
                if not self.store.list_members(project.id) and role != ProjectMembership.Role.OWNER:
                    raise ValidationError('O primeiro membro do projeto precisa ser owner')
                membership = ProjectMembership.objects.create(project=project, user=user, role=role)
                change = 'added'
            elif membership.role == role:
                return membership
            else:
                ensure_owner_remains(self.store, project.id, membership, new_role=role)
                previous = membership.role
                membership.role = role
                membership.save(update_fields=['role', 'updated_at'])
                change = f'role:{previous}->{role}'

            self._emit_member_changed(actor, project, user, change, role)

        return membership

    def remove_member(self, actor, project, user):
        with transaction.atomic():
            project = self.store.lock_project(project.id)
            authorize(actor, Action.MEMBER_REMOVE, project, self.store).raise_if_denied()

            membership = self.store.get_membership(project.id, user.id)
            if membership is None:
                raise ValidationError(f'Usuário {user.id} não é membro do projeto')

            ensure_owner_remains(self.store, project.id, membership)

            # Tarefas atribuídas ao ex-membro ficam sem responsável
            Task.objects.filter(project=project, assignee=user).update(assignee=None)
            membership.delete()

            self._emit_member_changed(actor, project, user, 'removed', None)

    def _emit_member_changed(self, actor, project, user, change, role):
        publish_event(DomainEvent(
            kind=EventKind.MEMBER_CHANGED,
            project_id=project.id,
            actor_id=actor.id,
            payload={
                'project_name': project.name,
                'user_id': user.id,
                'change': change,
                'role': role,
            },
        ))


def delete_comments(queryset, at=None):
    """Aplica a política de exclusão de comentários configurada"""
    if settings.SINCRO_COMMENT_DELETE_POLICY == 'hard':
        return queryset.delete()
    return queryset.tombstone(at)


class CommentService:
    """Comentários de projeto"""

    def __init__(self, store=None):
        self.store = store or default_store

    def _validar_conteudo(self, content):
        content = (content or '').strip()
        limite = settings.SINCRO_COMMENT_MAX_LENGTH
        if not content:
            raise ValidationError('Comentário não pode estar vazio', {'content': ['obrigatório']})
        if len(content) > limite:
            raise ValidationError(
                f'Comentário deve ter entre 1 e {limite} caracteres',
                {'content': ['muito longo']}
            )
        return content

    def create_comment(self, actor, project, content):
        content = self._validar_conteudo(content)

        with transaction.atomic():
            project = self._projeto_ativo(project.id)
            authorize(actor, Action.COMMENT_CREATE, project, self.store).raise_if_denied()
            comment = Comment.objects.create(project=project, author=actor, content=content)
            self._emit(EventKind.COMMENT_CREATED, actor, comment)

        return comment

    def update_comment(self, actor, comment, content):
        content = self._validar_conteudo(content)

        with transaction.atomic():
            comment = self._comentario_ativo(comment)
            authorize(actor, Action.COMMENT_UPDATE, comment, self.store).raise_if_denied()
            comment.content = content
            comment.edited_at = timezone.now()
            comment.save(update_fields=['content', 'edited_at'])
            self._emit(EventKind.COMMENT_UPDATED, actor, comment)

        return comment

    def delete_comment(self, actor, comment):
        with transaction.atomic():
            comment = self._comentario_ativo(comment)
            authorize(actor, Action.COMMENT_DELETE, comment, self.store).raise_if_denied()
            self._emit(EventKind.COMMENT_DELETED, actor, comment)
            delete_comments(Comment.objects.filter(pk=comment.pk))

    def _projeto_ativo(self, project_id):
        project = self.store.lock_project(project_id)
        if project.is_tombstoned:
            raise ConflictError(f'Projeto {project_id} foi excluído')
        return project

    def _comentario_ativo(self, comment):
        """Trava o projeto e recarrega o comentário; excluído -> ConflictError"""
        self._projeto_ativo(comment.project_id)
        atual = Comment.objects.scoped(include_tombstoned=False).filter(pk=comment.pk).first()
        if atual is None:
            raise ConflictError(f'Comentário {comment.pk} não existe mais')
        return atual

    def _emit(self, kind, actor, comment):
        publish_event(DomainEvent(
            kind=kind,
            project_id=comment.project_id,
            actor_id=actor.id,
            payload={
                'project_name': comment.project.name,
                'comment_id': comment.id,
                'preview': comment.content[:50] + '...' if len(comment.content) > 50 else comment.content,
            },
        ))


project_service = ProjectService()
comment_service = CommentService()
