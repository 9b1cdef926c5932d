# apps/core/urls.py

from django.urls import path
from . import views

app_name = 'core'

urlpatterns = [
    # === AUTENTICAÇÃO ===
    path('auth/login/', views.login_view, name='login'),
    path('auth/logout/', views.logout_view, name='logout'),
    path('auth/ws-token/', views.ws_token_view, name='ws_token'),

    # === PROJETOS ===
    path('projects/', views.projects_view, name='projects'),
    path('projects/<int:project_id>/', views.project_detail_view, name='project_detail'),
    path('projects/<int:project_id>/update/', views.project_update_view, name='project_update'),
    path('projects/<int:project_id>/delete/', views.project_delete_view, name='project_delete'),

    # === MEMBROS ===
    path('projects/<int:project_id>/members/', views.members_view, name='members'),
    path(
        'projects/<int:project_id>/members/<int:user_id>/remove/',
        views.member_remove_view,
        name='member_remove'
    ),

    # === COMENTÁRIOS ===
    path('projects/<int:project_id>/comments/', views.comments_view, name='comments'),
    path('comments/<int:comment_id>/update/', views.comment_update_view, name='comment_update'),
    path('comments/<int:comment_id>/delete/', views.comment_delete_view, name='comment_delete'),

    # === MONITORAMENTO ===
    path('health/', views.health_check, name='health'),
]
