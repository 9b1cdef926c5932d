# apps/core/apps.py

from django.apps import AppConfig


class CoreConfig(AppConfig):
    """Configuração da app Core"""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.core'
    verbose_name = 'Core - Projetos, Membros e Autorização'

    def ready(self):
        """
        Conecta os sinais de integridade (proteção do último owner)
        """
        from . import signals  # noqa: F401
