"""
Modelos de Match y Participante

Los estados son variantes cerradas con tablas de transición explícitas:
un match pendiente solo puede terminar aceptado, rechazado o expirado,
y ningún estado final vuelve atrás.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from permuta.errors import InvalidTransitionError


class MatchType(str, Enum):
    TWO_WAY = "two_way"
    CIRCULAR_THREE = "circular_three"

    @property
    def size(self) -> int:
        return 2 if self is MatchType.TWO_WAY else 3

    @classmethod
    def for_size(cls, size: int) -> "MatchType":
        if size == 2:
            return cls.TWO_WAY
        if size == 3:
            return cls.CIRCULAR_THREE
        raise ValueError(f"Un match tiene 2 o 3 participantes, no {size}")


class MatchStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"

    @property
    def is_active(self) -> bool:
        """Un match activo bloquea a sus solicitudes para nuevas corridas."""
        return self in (MatchStatus.PENDING, MatchStatus.ACCEPTED)

    def can_transition_to(self, target: "MatchStatus") -> bool:
        return target in MATCH_TRANSITIONS[self]

    def ensure_transition(self, target: "MatchStatus") -> None:
        if not self.can_transition_to(target):
            raise InvalidTransitionError("match", self.value, target.value)


class ResponseStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

    def can_transition_to(self, target: "ResponseStatus") -> bool:
        return target in RESPONSE_TRANSITIONS[self]

    def ensure_transition(self, target: "ResponseStatus") -> None:
        if not self.can_transition_to(target):
            raise InvalidTransitionError("participant", self.value, target.value)


MATCH_TRANSITIONS: dict[MatchStatus, frozenset[MatchStatus]] = {
    MatchStatus.PENDING: frozenset(
        {MatchStatus.ACCEPTED, MatchStatus.REJECTED, MatchStatus.EXPIRED}
    ),
    MatchStatus.ACCEPTED: frozenset(),
    MatchStatus.REJECTED: frozenset(),
    MatchStatus.EXPIRED: frozenset(),
}

# Un participante que aceptó todavía puede rechazar mientras el match siga pendiente
RESPONSE_TRANSITIONS: dict[ResponseStatus, frozenset[ResponseStatus]] = {
    ResponseStatus.PENDING: frozenset({ResponseStatus.ACCEPTED, ResponseStatus.REJECTED}),
    ResponseStatus.ACCEPTED: frozenset({ResponseStatus.REJECTED}),
    ResponseStatus.REJECTED: frozenset(),
}


class Match(BaseModel):
    """Match propuesto entre 2 o 3 solicitudes."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = Field(None, description="UUID generado por Supabase")
    match_type: MatchType
    compatibility_score: int = Field(..., ge=0, le=100)
    match_algorithm_version: str = Field("v1.0")
    status: MatchStatus = MatchStatus.PENDING
    expires_at: datetime = Field(..., description="Vencimiento de la propuesta")
    created_at: Optional[datetime] = None

    def to_db_dict(self) -> dict:
        """Convierte a diccionario para inserción en Supabase."""
        return self.model_dump(mode="json", exclude={"id", "created_at"})


class MatchParticipant(BaseModel):
    """Participación de una solicitud en un match."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = Field(None, description="UUID generado por Supabase")
    match_id: str
    transfer_request_id: str
    user_id: str
    swap_position: int = Field(..., ge=1, le=3, description="Orden de rotación en el ciclo")
    response_status: ResponseStatus = ResponseStatus.PENDING
    responded_at: Optional[datetime] = None

    def to_db_dict(self) -> dict:
        """Convierte a diccionario para inserción en Supabase."""
        return self.model_dump(mode="json", exclude={"id"})
