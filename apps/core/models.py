# apps/core/models.py

from dataclasses import dataclass
from datetime import datetime

from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone


# === CICLO DE VIDA (SOFT DELETE) ===

@dataclass(frozen=True)
class Active:
    """Registro visível nas leituras padrão"""


@dataclass(frozen=True)
class Tombstoned:
    """Registro excluído logicamente em `at`, mantido para histórico"""

    at: datetime


class TombstoneQuerySet(models.QuerySet):
    """
    QuerySet com filtro explícito de tombstones

    Não existe escopo padrão implícito: quem lê precisa dizer se quer
    ou não os registros excluídos.
    """

    def scoped(self, *, include_tombstoned):
        if include_tombstoned:
            return self.all()
        return self.filter(deleted_at__isnull=True)

    def tombstone(self, at=None):
        return self.filter(deleted_at__isnull=True).update(deleted_at=at or timezone.now())


class TombstoneModel(models.Model):
    """Base abstrata para entidades com exclusão lógica"""

    deleted_at = models.DateTimeField(null=True, blank=True, db_index=True)

    objects = TombstoneQuerySet.as_manager()

    class Meta:
        abstract = True

    @property
    def lifecycle(self):
        if self.deleted_at is None:
            return Active()
        return Tombstoned(at=self.deleted_at)

    @property
    def is_tombstoned(self):
        return isinstance(self.lifecycle, Tombstoned)

    def tombstone(self, at=None):
        self.deleted_at = at or timezone.now()
        self.save(update_fields=['deleted_at'])


# === USUÁRIOS E PAPÉIS GLOBAIS ===

class Role(models.Model):
    """Papel global, independente de qualquer projeto"""

    ADMIN = 'admin'
    PROJECT_MANAGER = 'project_manager'
    DEVELOPER = 'developer'
    TESTER = 'tester'
    USER = 'user'

    NAME_CHOICES = [
        (ADMIN, 'Administrador'),
        (PROJECT_MANAGER, 'Gerente de Projetos'),
        (DEVELOPER, 'Desenvolvedor'),
        (TESTER, 'Testador'),
        (USER, 'Usuário'),
    ]

    name = models.CharField(max_length=30, choices=NAME_CHOICES, unique=True)
    description = models.CharField(max_length=200, blank=True)

    class Meta:
        db_table = 'role'
        ordering = ['name']

    def __str__(self):
        return self.get_name_display()


class User(AbstractUser):
    """
    Usuário do sistema

    Papéis globais (admin, tester...) ficam em `roles`; o papel dentro de
    cada projeto fica em ProjectMembership.
    """

    roles = models.ManyToManyField(Role, blank=True, related_name='users')

    criado_em = models.DateTimeField(auto_now_add=True)
    atualizado_em = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'usuario'

    def has_global_role(self, role_name):
        return self.roles.filter(name=role_name).exists()

    @property
    def is_global_admin(self):
        return self.is_superuser or self.has_global_role(Role.ADMIN)

    @property
    def display_name(self):
        return self.get_full_name() or self.username

    def __str__(self):
        return self.display_name


# === PROJETOS E MEMBROS ===

class Project(TombstoneModel):
    """Projeto - agregador de tarefas, membros e comentários"""

    class Status(models.TextChoices):
        PLANNING = 'planning', 'Planejamento'
        IN_PROGRESS = 'in_progress', 'Em andamento'
        ON_HOLD = 'on_hold', 'Pausado'
        COMPLETED = 'completed', 'Concluído'
        CANCELLED = 'cancelled', 'Cancelado'

    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PLANNING)

    # A autoria sobrevive à exclusão do usuário (id preservado)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        related_name='projects_created'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'projeto'
        ordering = ['-created_at']

    def __str__(self):
        return self.name


class ProjectMembership(models.Model):
    """
    Relação ternária (projeto, usuário, papel)

    Um usuário tem exatamente um papel por projeto. Todo projeto com
    membros precisa manter pelo menos um owner (garantido nos serviços,
    dentro da mesma transação da escrita).
    """

    class Role(models.TextChoices):
        OWNER = 'owner', 'Owner'
        MANAGER = 'manager', 'Gerente'
        DEVELOPER = 'developer', 'Desenvolvedor'
        DESIGNER = 'designer', 'Designer'
        TESTER = 'tester', 'Testador'
        VIEWER = 'viewer', 'Leitor'

    MANAGE_ROLES = frozenset({Role.OWNER, Role.MANAGER})

    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name='memberships')
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='memberships'
    )
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.DEVELOPER)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'projeto_membro'
        constraints = [
            models.UniqueConstraint(fields=['project', 'user'], name='unique_project_member'),
        ]
        indexes = [
            models.Index(fields=['project', 'role']),
        ]

    @property
    def can_manage(self):
        return self.role in self.MANAGE_ROLES

    def __str__(self):
        return f"{self.user_id}@{self.project_id} ({self.role})"


# === TAREFAS ===

class Task(TombstoneModel):
    """
    Tarefa do board Kanban

    `order` só tem significado dentro do bucket (projeto, status, tarefa pai).
    """

    class Status(models.TextChoices):
        TODO = 'todo', 'A fazer'
        IN_PROGRESS = 'in_progress', 'Em progresso'
        IN_REVIEW = 'in_review', 'Em revisão'
        DONE = 'done', 'Concluído'
        BLOCKED = 'blocked', 'Bloqueado'

    class Priority(models.TextChoices):
        LOW = 'low', '🟢 Baixa'
        MEDIUM = 'medium', '🟡 Média'
        HIGH = 'high', '🟠 Alta'
        URGENT = 'urgent', '🔴 Urgente'

    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.TODO)
    priority = models.CharField(max_length=10, choices=Priority.choices, default=Priority.MEDIUM)
    due_date = models.DateField(null=True, blank=True)
    estimated_hours = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(0)]
    )
    actual_hours = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(0)]
    )

    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name='tasks')
    parent = models.ForeignKey(
        'self',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='subtasks'
    )
    assignee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='tasks_assigned'
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        related_name='tasks_created'
    )

    order = models.PositiveIntegerField(default=0)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'tarefa'
        ordering = ['order', 'id']
        indexes = [
            models.Index(fields=['project', 'status', 'parent', 'order']),
        ]

    @property
    def bucket_key(self):
        return (self.project_id, self.status, self.parent_id)

    def apply_status(self, new_status, now=None):
        """
        Muda o status mantendo completed_at coerente

        completed_at é preenchido exatamente na entrada em `done` e limpo
        na saída. Retorna True se o status mudou.
        """
        new_status = self.Status(new_status)
        if new_status == self.status:
            return False

        if new_status == self.Status.DONE:
            self.completed_at = now or timezone.now()
        elif self.status == self.Status.DONE:
            self.completed_at = None

        self.status = new_status
        return True

    def __str__(self):
        return f"#{self.pk} {self.title}"


# === COMENTÁRIOS ===

class Comment(TombstoneModel):
    """Comentário em um projeto"""

    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name='comments')
    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        related_name='comments'
    )
    content = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)
    edited_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'comentario'
        ordering = ['-created_at']

    def __str__(self):
        return f"Comentário de {self.author_id} em {self.created_at:%d/%m/%Y}"


# === NOTIFICAÇÕES ===

class Notification(models.Model):
    """
    Registro durável de um evento entregue (ou pendente) a um usuário

    A entrega em tempo real é só uma otimização: o cliente que reconecta
    busca as perdidas por aqui.
    """

    class Type(models.TextChoices):
        COMMENT = 'comment', 'Comentário'
        MENTION = 'mention', 'Menção'
        STATUS_CHANGE = 'status_change', 'Mudança de status'
        PROJECT_UPDATE = 'project_update', 'Atualização de projeto'
        TASK_UPDATE = 'task_update', 'Atualização de tarefa'
        MEMBER_CHANGE = 'member_change', 'Mudança de membros'

    class Audience(models.TextChoices):
        MEMBER = 'member', 'Membro'
        TESTER_BROADENED = 'tester_broadened', 'Testador (divulgação)'

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='notifications'
    )
    message = models.CharField(max_length=500)
    type = models.CharField(max_length=20, choices=Type.choices, default=Type.COMMENT)
    read = models.BooleanField(default=False)
    link = models.CharField(max_length=300, null=True, blank=True)
    project = models.ForeignKey(
        Project,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='notifications'
    )
    comment = models.ForeignKey(
        Comment,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='notifications'
    )
    event_id = models.UUIDField(db_index=True)
    audience = models.CharField(max_length=20, choices=Audience.choices, default=Audience.MEMBER)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'notificacao'
        ordering = ['-created_at', '-id']
        constraints = [
            models.UniqueConstraint(fields=['user', 'event_id'], name='unique_notification_per_event'),
        ]
        indexes = [
            models.Index(fields=['user', 'read']),
        ]

    def as_payload(self):
        """Formato estável consumido pelos clientes"""
        return {
            'id': self.id,
            'userId': self.user_id,
            'message': self.message,
            'type': self.type,
            'read': self.read,
            'link': self.link,
            'projectId': self.project_id,
            'commentId': self.comment_id,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'eventId': str(self.event_id),
            'audience': self.audience,
        }

    def __str__(self):
        return f"[{self.type}] {self.message[:40]} -> {self.user_id}"
