"""
Notificaciones in-app sobre matches.

Las notificaciones son best-effort: cualquier falla se loguea y nunca
se propaga al flujo que las disparó.
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from permuta.database import NotificationRepository

logger = structlog.get_logger()


@dataclass(frozen=True)
class NotifiedUser:
    """Destinatario de una notificación."""

    user_id: str
    name: str = ""


def display_name(user: dict) -> str:
    """Nombre completo a partir de una fila de users."""
    return f"{user.get('first_name') or ''} {user.get('last_name') or ''}".strip()


def _notification(user_id: str, type_: str, title: str, body: str, match_id: str) -> dict:
    return {
        "user_id": user_id,
        "type": type_,
        "title": title,
        "body": body,
        "related_entity_type": "match",
        "related_entity_id": match_id,
        "is_read": False,
    }


class NotificationService:
    """Crea notificaciones para los participantes de un match."""

    def __init__(self, repository: Optional[NotificationRepository] = None):
        self._repository = repository

    @property
    def repository(self) -> NotificationRepository:
        if self._repository is None:
            self._repository = NotificationRepository()
        return self._repository

    async def notify_match_created(
        self, match_id: str, participants: list[NotifiedUser]
    ) -> None:
        """Avisa a cada participante con quiénes fue emparejado."""
        try:
            notifications = []
            for participant in participants:
                others = ", ".join(
                    p.name for p in participants if p.user_id != participant.user_id
                )
                notifications.append(
                    _notification(
                        participant.user_id,
                        "match_created",
                        "¡Nueva permuta encontrada!",
                        f"Encontramos una permuta compatible con {others}. "
                        "Revisala y respondé.",
                        match_id,
                    )
                )
            self.repository.create_bulk(notifications)
        except Exception as e:
            logger.error("Error notificando match creado", match_id=match_id, error=str(e))

    async def notify_match_accepted(
        self,
        match_id: str,
        accepted_by: NotifiedUser,
        others: list[NotifiedUser],
    ) -> None:
        """Avisa al resto que un participante aceptó."""
        try:
            self.repository.create_bulk([
                _notification(
                    p.user_id,
                    "match_accepted",
                    "Un participante respondió",
                    f"{accepted_by.name or 'Un participante'} aceptó la permuta.",
                    match_id,
                )
                for p in others
            ])
        except Exception as e:
            logger.error("Error notificando match aceptado", match_id=match_id, error=str(e))

    async def notify_match_rejected(
        self,
        match_id: str,
        rejected_by: NotifiedUser,
        others: list[NotifiedUser],
    ) -> None:
        """Avisa al resto que el match quedó cerrado por un rechazo."""
        try:
            self.repository.create_bulk([
                _notification(
                    p.user_id,
                    "match_rejected",
                    "Permuta rechazada",
                    f"{rejected_by.name or 'Un participante'} rechazó la permuta. "
                    "El match quedó cerrado.",
                    match_id,
                )
                for p in others
            ])
        except Exception as e:
            logger.error("Error notificando match rechazado", match_id=match_id, error=str(e))
