# apps/core/admin.py

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.html import format_html

from .models import Comment, Notification, Project, ProjectMembership, Role, Task, User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Admin customizado para o modelo User"""

    list_display = [
        'username', 'email', 'get_full_name', 'roles_list',
        'is_active', 'date_joined'
    ]
    list_filter = ['roles', 'is_staff', 'is_active', 'date_joined']
    search_fields = ['username', 'first_name', 'last_name', 'email']
    ordering = ['-date_joined']
    filter_horizontal = ['roles', 'groups', 'user_permissions']

    # Adicionar papéis globais ao formulário
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Papéis globais', {
            'fields': ('roles',)
        }),
    )

    def roles_list(self, obj):
        return ', '.join(role.name for role in obj.roles.all()) or '-'

    roles_list.short_description = 'Papéis'


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ['name', 'description']


class MembershipInline(admin.TabularInline):
    """Inline de membros no projeto"""
    model = ProjectMembership
    extra = 0
    fields = ['user', 'role', 'created_at']
    readonly_fields = ['created_at']


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    """Admin para gerenciamento de projetos"""

    list_display = [
        'name', 'status_badge', 'created_by_id', 'members_count',
        'deleted_at', 'created_at'
    ]
    list_filter = ['status', 'created_at']
    search_fields = ['name', 'description']
    readonly_fields = ['created_at', 'updated_at', 'deleted_at']
    inlines = [MembershipInline]

    def get_queryset(self, request):
        return Project.objects.scoped(include_tombstoned=True)

    def status_badge(self, obj):
        """Exibe o status com badge colorido"""
        cores = {
            'planning': '#6B7280',  # cinza
            'in_progress': '#3B82F6',  # azul
            'on_hold': '#F59E0B',  # amarelo
            'completed': '#10B981',  # verde
            'cancelled': '#EF4444',  # vermelho
        }
        return format_html(
            '<span style="background-color: {}; color: white; '
            'padding: 3px 8px; border-radius: 4px; font-size: 11px;">{}</span>',
            cores.get(obj.status, '#6B7280'), obj.get_status_display()
        )

    status_badge.short_description = 'Status'

    def members_count(self, obj):
        return obj.memberships.count()

    members_count.short_description = 'Membros'


@admin.register(Task)
class TaskAdmin(admin.ModelAdmin):
    """Admin para tarefas"""

    list_display = [
        'id', 'title', 'project', 'status', 'priority',
        'assignee', 'parent', 'order', 'completed_at', 'deleted_at'
    ]
    list_filter = ['status', 'priority', 'project']
    search_fields = ['title', 'description']
    readonly_fields = ['created_at', 'updated_at', 'completed_at', 'deleted_at']

    def get_queryset(self, request):
        return Task.objects.scoped(include_tombstoned=True).select_related('project', 'assignee', 'parent')


@admin.register(Comment)
class CommentAdmin(admin.ModelAdmin):
    list_display = ['id', 'project', 'author_id', 'created_at', 'edited_at', 'deleted_at']
    search_fields = ['content']
    readonly_fields = ['created_at', 'edited_at', 'deleted_at']

    def get_queryset(self, request):
        return Comment.objects.scoped(include_tombstoned=True)


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'type', 'audience', 'read', 'project', 'created_at']
    list_filter = ['type', 'audience', 'read']
    search_fields = ['message']
    readonly_fields = ['event_id', 'created_at']
