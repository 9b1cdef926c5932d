# apps/core/views.py

"""
Views JSON de autenticação, projetos, membros e comentários

As views só traduzem HTTP <-> serviços; autorização e invariantes ficam
nos serviços, e o SincroErrorMiddleware converte os erros tipados.
"""

import logging

from django.contrib.auth import authenticate, get_user_model, login, logout
from django.core.cache import cache
from django.db import connection
from django.db.models import Q
from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from apps.board.registry import issue_token

from .exceptions import AuthenticationError, ValidationError
from .forms import CommentForm, LoginForm, MemberForm, ProjectForm, ProjectUpdateForm
from .models import Comment, Project, ProjectMembership
from .permissions import Action, authorize, requer_autenticacao
from .services import comment_service, project_service
from .store import default_store
from .utils import (
    buscar_ativo, comment_dict, ler_dados, membership_dict, project_dict, validar_form
)

logger = logging.getLogger(__name__)


# === AUTENTICAÇÃO ===

@require_POST
def login_view(request):
    """
    Login por sessão; devolve também o token para o WebSocket
    """
    dados = validar_form(LoginForm, ler_dados(request))
    username = dados['username']

    # Permitir login com email
    if '@' in username:
        user = get_user_model().objects.filter(email__iexact=username).first()
        if user:
            username = user.username

    user = authenticate(request, username=username, password=dados['password'])
    if user is None:
        logger.warning(f"❌ Falha de login para '{dados['username']}'")
        raise AuthenticationError('Usuário ou senha inválidos')

    login(request, user)
    logger.info(f"✅ Login: {user.username}")

    return JsonResponse({
        'success': True,
        'user': {'id': user.id, 'username': user.username, 'name': user.display_name},
        'token': issue_token(user),
    })


@require_POST
def logout_view(request):
    logout(request)
    return JsonResponse({'success': True})


@require_GET
@requer_autenticacao
def ws_token_view(request):
    """Renova o token usado na conexão WebSocket"""
    return JsonResponse({'token': issue_token(request.user)})


# === PROJETOS ===

@require_http_methods(['GET', 'POST'])
@requer_autenticacao
def projects_view(request):
    if request.method == 'POST':
        dados = validar_form(ProjectForm, ler_dados(request))
        project = project_service.create_project(
            request.user,
            dados['name'],
            description=dados['description'],
            status=dados['status'],
        )
        return JsonResponse(
            {'success': True, 'project': project_dict(project, ProjectMembership.Role.OWNER)},
            status=201
        )

    # Projetos do usuário + projetos em andamento (visíveis para descoberta)
    projetos = Project.objects.scoped(include_tombstoned=False)
    if not request.user.is_global_admin:
        projetos = projetos.filter(
            Q(memberships__user=request.user) | Q(status=Project.Status.IN_PROGRESS)
        ).distinct()

    papeis = dict(
        ProjectMembership.objects
        .filter(user=request.user)
        .values_list('project_id', 'role')
    )

    return JsonResponse({
        'projects': [project_dict(p, papeis.get(p.id)) for p in projetos]
    })


@require_GET
@requer_autenticacao
def project_detail_view(request, project_id):
    project = buscar_ativo(Project, project_id)
    authorize(request.user, Action.PROJECT_READ, project).raise_if_denied()

    membership = default_store.get_membership(project.id, request.user.id)
    return JsonResponse({
        'project': project_dict(project, membership.role if membership else None)
    })


@require_POST
@requer_autenticacao
def project_update_view(request, project_id):
    project = buscar_ativo(Project, project_id)
    dados = validar_form(ProjectUpdateForm, ler_dados(request))
    project = project_service.update_project(request.user, project, **dados)
    return JsonResponse({'success': True, 'project': project_dict(project)})


@require_POST
@requer_autenticacao
def project_delete_view(request, project_id):
    project = buscar_ativo(Project, project_id)
    project_service.delete_project(request.user, project)
    return JsonResponse({'success': True})


# === MEMBROS ===

@require_http_methods(['GET', 'POST'])
@requer_autenticacao
def members_view(request, project_id):
    project = buscar_ativo(Project, project_id)

    if request.method == 'POST':
        dados = validar_form(MemberForm, ler_dados(request))
        user = get_user_model().objects.filter(pk=dados['user_id'], is_active=True).first()
        if user is None:
            raise ValidationError('Usuário não encontrado', {'user_id': ['inexistente']})

        membership = project_service.upsert_member(request.user, project, user, dados['role'])
        return JsonResponse({'success': True, 'member': membership_dict(membership)})

    authorize(request.user, Action.PROJECT_READ, project).raise_if_denied()
    return JsonResponse({
        'members': [membership_dict(m) for m in default_store.list_members(project.id)]
    })


@require_POST
@requer_autenticacao
def member_remove_view(request, project_id, user_id):
    project = buscar_ativo(Project, project_id)
    user = get_user_model().objects.filter(pk=user_id).first()
    if user is None:
        raise ValidationError('Usuário não encontrado', {'user_id': ['inexistente']})

    project_service.remove_member(request.user, project, user)
    return JsonResponse({'success': True})


# === COMENTÁRIOS ===

@require_http_methods(['GET', 'POST'])
@requer_autenticacao
def comments_view(request, project_id):
    project = buscar_ativo(Project, project_id)

    if request.method == 'POST':
        dados = validar_form(CommentForm, ler_dados(request))
        comment = comment_service.create_comment(request.user, project, dados['content'])
        return JsonResponse({'success': True, 'comment': comment_dict(comment)}, status=201)

    authorize(request.user, Action.PROJECT_READ, project).raise_if_denied()
    comentarios = Comment.objects.scoped(include_tombstoned=False).filter(project=project)
    return JsonResponse({'comments': [comment_dict(c) for c in comentarios]})


@require_POST
@requer_autenticacao
def comment_update_view(request, comment_id):
    comment = buscar_ativo(Comment, comment_id, project__deleted_at__isnull=True)
    dados = validar_form(CommentForm, ler_dados(request))
    comment = comment_service.update_comment(request.user, comment, dados['content'])
    return JsonResponse({'success': True, 'comment': comment_dict(comment)})


@require_POST
@requer_autenticacao
def comment_delete_view(request, comment_id):
    comment = buscar_ativo(Comment, comment_id, project__deleted_at__isnull=True)
    comment_service.delete_comment(request.user, comment)
    return JsonResponse({'success': True})


# === MONITORAMENTO ===

@require_GET
def health_check(request):
    """
    Health check para monitoramento (banco + cache)
    """
    try:
        with connection.cursor() as cursor:
            cursor.execute('SELECT 1')

        cache.set('health_check', 'ok', 60)
        cache.get('health_check')

        status = {
            'status': 'healthy',
            'database': 'ok',
            'cache': 'ok',
            'timestamp': timezone.now().isoformat(),
        }
        return JsonResponse(status)

    except Exception as e:
        logger.error(f"❌ Health check falhou: {e}")
        status = {
            'status': 'unhealthy',
            'error': str(e),
            'timestamp': timezone.now().isoformat(),
        }
        return JsonResponse(status, status=503)
