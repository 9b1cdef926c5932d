# apps/core/signals.py

import logging

from django.db.models.signals import pre_delete
from django.dispatch import receiver

from .exceptions import AuthorizationError, DenyReason
from .models import ProjectMembership, User

logger = logging.getLogger(__name__)


# Handlers para manter integridade referencial

@receiver(pre_delete, sender=User)
def proteger_ultimo_owner(sender, instance, **kwargs):
    """
    Impede excluir o único owner de um projeto que ainda tem outros membros

    As memberships do usuário somem junto (CASCADE); o conteúdo que ele
    criou continua atribuído ao id antigo.
    """
    projetos = ProjectMembership.objects.filter(
        user=instance,
        role=ProjectMembership.Role.OWNER
    ).values_list('project_id', flat=True)

    for project_id in projetos:
        outros_owners = ProjectMembership.objects.filter(
            project_id=project_id,
            role=ProjectMembership.Role.OWNER
        ).exclude(user=instance).exists()
        outros_membros = ProjectMembership.objects.filter(
            project_id=project_id
        ).exclude(user=instance).exists()

        if outros_membros and not outros_owners:
            logger.info(f"🛡️ Exclusão do usuário {instance.pk} bloqueada: último owner do projeto {project_id}")
            raise AuthorizationError(
                DenyReason.LAST_OWNER_PROTECTED,
                f'Usuário é o único owner do projeto {project_id}'
            )
