"""
Modelos de datos del sistema.

- TransferRequest: solicitud enriquecida con preferencias y geografía
- Match / MatchParticipant: propuestas de permuta y sus respuestas
"""

from permuta.models.transfer_request import (
    TransferRequest,
    PreferredDestination,
    LocationChain,
    Urgency,
    GeographicFlexibility,
    RequestStatus,
)
from permuta.models.match import (
    Match,
    MatchParticipant,
    MatchType,
    MatchStatus,
    ResponseStatus,
    MATCH_TRANSITIONS,
    RESPONSE_TRANSITIONS,
)

__all__ = [
    # Solicitudes
    "TransferRequest",
    "PreferredDestination",
    "LocationChain",
    "Urgency",
    "GeographicFlexibility",
    "RequestStatus",
    # Matches
    "Match",
    "MatchParticipant",
    "MatchType",
    "MatchStatus",
    "ResponseStatus",
    "MATCH_TRANSITIONS",
    "RESPONSE_TRANSITIONS",
]
