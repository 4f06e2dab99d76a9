"""
Notificaciones de matches para los participantes.
"""

from permuta.notifications.service import NotificationService, NotifiedUser, display_name

__all__ = [
    "NotificationService",
    "NotifiedUser",
    "display_name",
]
