# apps/core/middleware.py

import logging

from django.http import JsonResponse

from .exceptions import SincroError

logger = logging.getLogger(__name__)


class SincroErrorMiddleware:
    """
    Converte os erros tipados do núcleo em respostas JSON

    Os serviços nunca decidem a apresentação: propagam SincroError e
    este middleware mapeia para o status HTTP correspondente.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        return self.get_response(request)

    def process_exception(self, request, exception):
        if not isinstance(exception, SincroError):
            return None  # Deixar o tratamento padrão do Django

        user_id = getattr(getattr(request, 'user', None), 'id', None)
        logger.warning(
            f"⚠️ {exception.code} em {request.method} {request.path} "
            f"(usuário {user_id}): {exception.message}"
        )

        response = JsonResponse(exception.as_dict(), status=exception.http_status)
        if exception.retryable:
            response['Retry-After'] = '1'
        return response
