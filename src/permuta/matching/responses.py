"""
Respuestas de los participantes a un match.

Aceptar: cuando todos aceptaron, el match pasa a accepted y sus
solicitudes a matched. Rechazar: un solo rechazo cierra el match y
devuelve todas sus solicitudes a submitted.

Cuando la respuesta cierra el match, el cambio condicional de estado
(solo desde pending) va antes que cualquier otra escritura: si el match
dejó de estar pendiente no se modifica nada. Una aceptación parcial no
cambia el estado del match; si el barrido lo expira en paralelo, la
respuesta queda registrada sobre un match expirado, sin efecto en el pool.
"""

from datetime import datetime
from typing import Optional

import structlog

from permuta.database import (
    MatchRepository,
    ParticipantRepository,
    TransferRequestRepository,
    UserRepository,
)
from permuta.errors import (
    MatchNotFoundError,
    NotParticipantError,
    PersistenceError,
    StateConflictError,
)
from permuta.matching.engine import utcnow
from permuta.models import (
    Match,
    MatchParticipant,
    MatchStatus,
    RequestStatus,
    ResponseStatus,
)
from permuta.notifications import NotificationService, NotifiedUser, display_name

logger = structlog.get_logger()


class MatchResponseService:
    """Máquina de estados de aceptación/rechazo."""

    def __init__(
        self,
        match_repo: Optional[MatchRepository] = None,
        participant_repo: Optional[ParticipantRepository] = None,
        request_repo: Optional[TransferRequestRepository] = None,
        user_repo: Optional[UserRepository] = None,
        notifier: Optional[NotificationService] = None,
    ):
        self.match_repo = match_repo or MatchRepository()
        self.participant_repo = participant_repo or ParticipantRepository()
        self.request_repo = request_repo or TransferRequestRepository()
        self.user_repo = user_repo or UserRepository()
        self.notifier = notifier or NotificationService()

    async def accept(
        self, match_id: str, requester_id: str, now: Optional[datetime] = None
    ) -> MatchParticipant:
        """
        Registra la aceptación del solicitante.

        Raises:
            MatchNotFoundError: Si el match no existe
            StateConflictError: Si el match no está pendiente o el
                participante ya no puede aceptar
            NotParticipantError: Si el solicitante no es parte del match
        """
        now = now or utcnow()
        participants, own = self._load_for_response(
            match_id, requester_id, ResponseStatus.ACCEPTED
        )

        others = [p for p in participants if p.user_id != requester_id]
        closes_match = all(p.response_status is ResponseStatus.ACCEPTED for p in others)
        if closes_match:
            # Guard condicional antes de tocar la respuesta del participante
            self._close_match(match_id, MatchStatus.ACCEPTED)

        updated = self._record_response(match_id, requester_id, ResponseStatus.ACCEPTED, now)

        if closes_match:
            self.request_repo.update_status(
                [p.transfer_request_id for p in participants], RequestStatus.MATCHED
            )
            logger.info("Match aceptado por todos los participantes", match_id=match_id)

        names = self._names(participants)
        await self.notifier.notify_match_accepted(
            match_id,
            NotifiedUser(own.user_id, names.get(own.user_id, "")),
            [NotifiedUser(p.user_id, names.get(p.user_id, "")) for p in others],
        )
        return updated

    async def reject(
        self, match_id: str, requester_id: str, now: Optional[datetime] = None
    ) -> MatchParticipant:
        """
        Registra el rechazo y cierra el match completo.

        Raises:
            MatchNotFoundError: Si el match no existe
            StateConflictError: Si el match no está pendiente
            NotParticipantError: Si el solicitante no es parte del match
        """
        now = now or utcnow()
        participants, own = self._load_for_response(
            match_id, requester_id, ResponseStatus.REJECTED
        )

        self._close_match(match_id, MatchStatus.REJECTED)
        updated = self._record_response(match_id, requester_id, ResponseStatus.REJECTED, now)

        # Vuelven al pool para la próxima corrida
        self.request_repo.update_status(
            [p.transfer_request_id for p in participants], RequestStatus.SUBMITTED
        )
        logger.info("Match rechazado", match_id=match_id, rejected_by=requester_id)

        others = [p for p in participants if p.user_id != requester_id]
        names = self._names(participants)
        await self.notifier.notify_match_rejected(
            match_id,
            NotifiedUser(own.user_id, names.get(own.user_id, "")),
            [NotifiedUser(p.user_id, names.get(p.user_id, "")) for p in others],
        )
        return updated

    def _load_for_response(
        self, match_id: str, requester_id: str, target: ResponseStatus
    ) -> tuple[list[MatchParticipant], MatchParticipant]:
        """Valida estado y pertenencia antes de mutar nada."""
        row = self.match_repo.get_by_id(match_id)
        if row is None:
            raise MatchNotFoundError(match_id)

        match = Match.model_validate(row)
        if match.status is not MatchStatus.PENDING:
            raise StateConflictError(
                f"El match {match_id} está {match.status.value}, no admite respuestas"
            )

        participants = [
            MatchParticipant.model_validate(p)
            for p in self.participant_repo.get_by_match(match_id)
        ]
        own = next((p for p in participants if p.user_id == requester_id), None)
        if own is None:
            raise NotParticipantError(match_id, requester_id)

        own.response_status.ensure_transition(target)
        return participants, own

    def _close_match(self, match_id: str, status: MatchStatus) -> None:
        """Cierra el match solo si sigue pendiente."""
        if self.match_repo.update_status(match_id, status) is None:
            raise StateConflictError(f"El match {match_id} dejó de estar pendiente")

    def _record_response(
        self,
        match_id: str,
        requester_id: str,
        status: ResponseStatus,
        now: datetime,
    ) -> MatchParticipant:
        row = self.participant_repo.update_response(match_id, requester_id, status, now)
        if row is None:
            raise NotParticipantError(match_id, requester_id)
        return MatchParticipant.model_validate(row)

    def _names(self, participants: list[MatchParticipant]) -> dict[str, str]:
        try:
            users = self.user_repo.get_display_names([p.user_id for p in participants])
        except PersistenceError as e:
            logger.warning("No se pudieron obtener nombres", error=str(e))
            return {}
        return {user["id"]: display_name(user) for user in users}
