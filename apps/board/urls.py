# apps/board/urls.py

from django.urls import path
from . import views

app_name = 'board'

urlpatterns = [
    # Kanban principal
    path('projects/<int:project_id>/board/', views.board_view, name='board'),

    # Drag-and-drop (reordenação de coluna)
    path('projects/<int:project_id>/reorder/', views.reorder_view, name='reorder'),

    # Tarefas
    path('projects/<int:project_id>/tasks/', views.task_create_view, name='task_create'),
    path('tasks/<int:task_id>/update/', views.task_update_view, name='task_update'),
    path('tasks/<int:task_id>/delete/', views.task_delete_view, name='task_delete'),
    path('tasks/<int:task_id>/subtasks/', views.subtasks_view, name='subtasks'),
]
