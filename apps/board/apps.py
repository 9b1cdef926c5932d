# apps/board/apps.py

import logging

from django.apps import AppConfig
from django.conf import settings


class BoardConfig(AppConfig):
    """Configuração da app Board"""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.board'
    verbose_name = 'Board - Kanban'

    def ready(self):
        logger = logging.getLogger(__name__)
        backend = settings.CHANNEL_LAYERS["default"]["BACKEND"].rsplit(".", 1)[-1]
        logger.info(f"🔌 Board App inicializada - channel layer {backend}")
