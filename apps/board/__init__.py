# apps/board/__init__.py

"""
Board - Aplicação Kanban do Sincro Board

Funcionalidades:
- Ordenação atômica das colunas (drag-and-drop)
- Serviço de tarefas
- WebSockets para notificações em tempo real
"""
