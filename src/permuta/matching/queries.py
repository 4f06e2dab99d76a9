"""
Consultas de lectura sobre los matches de un usuario.
"""

from collections.abc import Iterable
from typing import Optional

from permuta.database import MatchRepository, ParticipantRepository
from permuta.errors import NotParticipantError
from permuta.models import Match, MatchStatus, ResponseStatus

# Campos de perfil ocultos cuando el usuario eligió no mostrar su perfil
PRIVATE_PROFILE_FIELDS = ("profile_image_url", "mobile")


def mask_private_profiles(participants: list[dict], viewer_id: str) -> list[dict]:
    """Oculta datos de contacto de otros participantes con perfil privado."""
    masked = []
    for participant in participants:
        user = participant.get("user")
        if participant.get("user_id") == viewer_id or not user:
            masked.append(participant)
            continue
        if user.get("profile_visible") is False:
            user = {**user, **{field: None for field in PRIVATE_PROFILE_FIELDS}}
            participant = {**participant, "user": user}
        masked.append(participant)
    return masked


class MatchQueryService:
    """Listados y contadores de matches por usuario."""

    def __init__(
        self,
        match_repo: Optional[MatchRepository] = None,
        participant_repo: Optional[ParticipantRepository] = None,
    ):
        self.match_repo = match_repo or MatchRepository()
        self.participant_repo = participant_repo or ParticipantRepository()

    def list_for_user(
        self,
        user_id: str,
        statuses: Optional[Iterable[MatchStatus]] = None,
    ) -> list[Match]:
        """Matches donde participa el usuario, más recientes primero."""
        match_ids = [p["match_id"] for p in self.participant_repo.get_by_user(user_id)]
        rows = self.match_repo.get_by_ids(match_ids, statuses=statuses)
        return [Match.model_validate(row) for row in rows]

    def pending_count(self, user_id: str) -> int:
        """Matches pendientes que todavía esperan la respuesta del usuario."""
        match_ids = [
            p["match_id"]
            for p in self.participant_repo.get_by_user(
                user_id, response_status=ResponseStatus.PENDING
            )
        ]
        return len(self.match_repo.get_by_ids(match_ids, statuses=[MatchStatus.PENDING]))

    def accepted_count(self, user_id: str) -> int:
        return len(self.list_for_user(user_id, statuses=[MatchStatus.ACCEPTED]))

    def get_participants(self, match_id: str, requester_id: str) -> list[dict]:
        """
        Participantes de un match en orden de swap_position.

        Raises:
            NotParticipantError: Si el solicitante no es parte del match
        """
        participants = self.participant_repo.get_by_match_with_users(match_id)
        if not any(p.get("user_id") == requester_id for p in participants):
            raise NotParticipantError(match_id, requester_id)
        return mask_private_profiles(participants, requester_id)
