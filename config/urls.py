# config/urls.py

from django.contrib import admin
from django.urls import path, include
from django.conf import settings

urlpatterns = [
    # Admin
    path('admin/', admin.site.urls),

    # Aplicações principais
    path('api/', include('apps.core.urls')),
    path('api/', include('apps.board.urls')),
    path('api/notifications/', include('apps.notifications.urls')),
]

# Debug Toolbar em desenvolvimento
if settings.DEBUG and 'debug_toolbar' in settings.INSTALLED_APPS:
    import debug_toolbar

    urlpatterns = [path('__debug__/', include(debug_toolbar.urls))] + urlpatterns

# Customizar títulos do admin
admin.site.site_header = 'Sincro Board Admin'
admin.site.site_title = 'Sincro Board'
admin.site.index_title = 'Administração do Sistema'
