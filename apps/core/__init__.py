# apps/core/__init__.py

"""
Core - Aplicação principal do Sincro Board

Contém:
- Models (User, Project, ProjectMembership, Task, Comment, Notification)
- Repositório de membros/tarefas usado pelo núcleo
- Motor de autorização centralizado
- Serviços de projeto, membros e comentários
"""
