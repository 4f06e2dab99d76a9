"""
Creación de matches como saga de dos pasos.

Paso 1: insertar el match (pending, vence en N días).
Paso 2: insertar todos los participantes.
Compensación: si falla el paso 2 se borra el match del paso 1, así no
quedan matches huérfanos sin participantes.

La notificación se dispara solo tras una creación exitosa y nunca
provoca rollback.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import structlog

from permuta.config import Settings, get_settings
from permuta.database import MatchRepository, ParticipantRepository, UserRepository
from permuta.errors import PersistenceError
from permuta.matching.allocator import AllocatedGroup
from permuta.models import Match, MatchParticipant, MatchStatus, ResponseStatus
from permuta.notifications import NotificationService, NotifiedUser, display_name

logger = structlog.get_logger()

COMPENSATION_ATTEMPTS = 2


@dataclass(frozen=True)
class CreatedMatch:
    match: Match
    participants: tuple[MatchParticipant, ...]


class MatchFactory:
    """Persiste grupos asignados como matches con sus participantes."""

    def __init__(
        self,
        match_repo: Optional[MatchRepository] = None,
        participant_repo: Optional[ParticipantRepository] = None,
        user_repo: Optional[UserRepository] = None,
        notifier: Optional[NotificationService] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.match_repo = match_repo or MatchRepository()
        self.participant_repo = participant_repo or ParticipantRepository()
        self.user_repo = user_repo or UserRepository()
        self.notifier = notifier or NotificationService()

    async def create(self, group: AllocatedGroup, now: datetime) -> Optional[CreatedMatch]:
        """
        Crea el match de un grupo asignado.

        Returns:
            CreatedMatch si el match y todos sus participantes quedaron
            guardados, None si el grupo se descartó
        """
        match = self._insert_match(group, now)
        if match is None:
            return None

        participants = self._insert_participants(match, group)
        if participants is None:
            self._compensate(match)
            return None

        logger.info(
            "Match creado",
            match_id=match.id,
            match_type=match.match_type.value,
            score=match.compatibility_score,
            request_ids=[p.transfer_request_id for p in participants],
        )

        await self._notify(match, participants)
        return CreatedMatch(match=match, participants=participants)

    def _insert_match(self, group: AllocatedGroup, now: datetime) -> Optional[Match]:
        """Paso 1 de la saga."""
        match = Match(
            match_type=group.match_type,
            compatibility_score=group.total,
            match_algorithm_version=self.settings.match_algorithm_version,
            status=MatchStatus.PENDING,
            expires_at=now + timedelta(days=self.settings.match_expiry_days),
        )
        try:
            row = self.match_repo.create(match)
        except PersistenceError as e:
            logger.error(
                "Error creando match",
                request_ids=[r.id for r in group.requests],
                error=str(e),
            )
            return None
        return Match.model_validate(row)

    def _insert_participants(
        self, match: Match, group: AllocatedGroup
    ) -> Optional[tuple[MatchParticipant, ...]]:
        """Paso 2 de la saga."""
        participants = tuple(
            MatchParticipant(
                match_id=match.id,
                transfer_request_id=request.id,
                user_id=request.user_id,
                swap_position=position,
                response_status=ResponseStatus.PENDING,
            )
            for position, request in enumerate(group.requests, start=1)
        )
        try:
            self.participant_repo.create_many(list(participants))
        except PersistenceError as e:
            logger.error(
                "Error creando participantes",
                match_id=match.id,
                error=str(e),
            )
            return None
        return participants

    def _compensate(self, match: Match) -> None:
        """
        Compensación del paso 1: borra el match sin participantes.

        El borrado es idempotente y se reintenta una vez. Si vuelve a fallar
        el match queda huérfano y se loguea para limpieza manual.
        """
        error = None
        for attempt in range(1, COMPENSATION_ATTEMPTS + 1):
            try:
                self.match_repo.delete(match.id)
            except PersistenceError as e:
                error = e
                logger.warning(
                    "Error revirtiendo match", match_id=match.id, attempt=attempt, error=str(e)
                )
                continue
            logger.warning("Match revertido", match_id=match.id)
            return

        logger.error(
            "Match huérfano sin participantes: requiere limpieza manual",
            match_id=match.id,
            orphan_match=True,
            error=str(error),
        )

    async def _notify(
        self, match: Match, participants: tuple[MatchParticipant, ...]
    ) -> None:
        try:
            users = self.user_repo.get_display_names([p.user_id for p in participants])
        except PersistenceError as e:
            logger.warning("No se pudo notificar el match", match_id=match.id, error=str(e))
            return

        recipients = [
            NotifiedUser(user_id=user["id"], name=display_name(user)) for user in users
        ]
        await self.notifier.notify_match_created(match.id, recipients)
