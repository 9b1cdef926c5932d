# apps/notifications/__init__.py

"""
Notifications - eventos de domínio, audiência e fan-out

A notificação gravada é a fonte de verdade; a entrega pelo WebSocket é
uma otimização.
"""
