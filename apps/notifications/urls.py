# apps/notifications/urls.py

from django.urls import path
from . import views

app_name = 'notifications'

urlpatterns = [
    path('', views.notification_list, name='list'),
    path('unread-count/', views.unread_count, name='unread_count'),
    path('read-all/', views.mark_all_read, name='read_all'),
    path('<int:notification_id>/read/', views.mark_read, name='read'),
]
