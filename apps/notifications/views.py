# apps/notifications/views.py

"""
API de pull das notificações

Cliente que reconecta recupera aqui o que perdeu da entrega ao vivo.
"""

from django.conf import settings
from django.http import Http404, JsonResponse
from django.views.decorators.http import require_GET, require_POST

from apps.core.models import Notification
from apps.core.permissions import requer_autenticacao


@require_GET
@requer_autenticacao
def notification_list(request):
    """
    Últimas notificações do usuário (mais recentes primeiro)

    ?unread=1 filtra só as não lidas.
    """
    notificacoes = Notification.objects.filter(user=request.user)
    if request.GET.get('unread') in ('1', 'true'):
        notificacoes = notificacoes.filter(read=False)

    limite = settings.SINCRO_NOTIFICATION_PAGE_SIZE
    return JsonResponse({
        'notifications': [n.as_payload() for n in notificacoes[:limite]],
    })


@require_GET
@requer_autenticacao
def unread_count(request):
    total = Notification.objects.filter(user=request.user, read=False).count()
    return JsonResponse({'count': total})


@require_POST
@requer_autenticacao
def mark_read(request, notification_id):
    """Só o destinatário pode marcar a própria notificação"""
    atualizadas = Notification.objects.filter(
        pk=notification_id,
        user=request.user
    ).update(read=True)

    if not atualizadas:
        raise Http404('Notificação não encontrada')

    return JsonResponse({'success': True})


@require_POST
@requer_autenticacao
def mark_all_read(request):
    atualizadas = Notification.objects.filter(user=request.user, read=False).update(read=True)
    return JsonResponse({'success': True, 'updated': atualizadas})
