# apps/__init__.py

"""
Sincro Board - Aplicações Django

Este pacote contém todas as aplicações do sistema:
- core: Models, papéis, autorização e serviços de projeto/membros/comentários
- board: Ordenação do Kanban, tarefas e conexões WebSocket
- notifications: Fan-out de eventos e notificações duráveis
"""

__version__ = '0.1.0'
__author__ = 'Equipe Sincro'
