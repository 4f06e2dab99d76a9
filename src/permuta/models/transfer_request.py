"""
Modelo de Solicitud de Traslado

Una solicitud describe la escuela actual del docente, sus destinos
preferidos en orden de ranking y los atributos que deben coincidir
con los demás participantes de un match.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Urgency(str, Enum):
    NORMAL = "normal"
    HIGH = "high"


class GeographicFlexibility(str, Enum):
    """Alcance geográfico que el docente acepta para su traslado."""

    LOCAL = "district_only"
    REGIONAL = "province_wide"
    NATIONAL = "nationwide"

    @property
    def allows_region(self) -> bool:
        return self in (GeographicFlexibility.REGIONAL, GeographicFlexibility.NATIONAL)

    @property
    def allows_national(self) -> bool:
        return self is GeographicFlexibility.NATIONAL


class RequestStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    MATCHED = "matched"
    WITHDRAWN = "withdrawn"


class LocationChain(BaseModel):
    """
    Cadena administrativa de la escuela actual (distrito -> provincia).

    Sin distrito la comparación geográfica no es posible y el
    componente geográfico del score vale 0.
    """

    model_config = ConfigDict(frozen=True)

    district_id: Optional[int] = Field(None, description="Distrito de la escuela")
    province_id: Optional[int] = Field(None, description="Provincia del distrito")

    @property
    def is_complete(self) -> bool:
        return self.district_id is not None


class PreferredDestination(BaseModel):
    """Escuela destino con su posición en el ranking (1 = más deseada)."""

    model_config = ConfigDict(frozen=True)

    school_id: int
    rank: Optional[int] = Field(None, ge=1)


class TransferRequest(BaseModel):
    """
    Solicitud enriquecida lista para el motor de matching.

    Inmutable: el allocator trabaja sobre una lista fija de solicitudes
    y nunca las modifica.
    """

    model_config = ConfigDict(frozen=True)

    # Identificadores
    id: str = Field(..., description="UUID de la solicitud")
    user_id: str = Field(..., description="UUID del docente dueño")
    current_school_id: int = Field(..., description="Escuela actual")

    # Atributos que deben coincidir en todo el grupo
    appointment_category_id: int = Field(..., description="Categoría de nombramiento")
    medium_of_instruction: str = Field(..., description="Idioma de enseñanza")

    # Preferencias
    preferred_schools: tuple[PreferredDestination, ...] = Field(default_factory=tuple)
    subjects: frozenset[str] = Field(default_factory=frozenset)
    urgency_level: Urgency = Urgency.NORMAL
    geographic_flexibility: GeographicFlexibility = GeographicFlexibility.LOCAL

    # Estado
    status: RequestStatus = RequestStatus.SUBMITTED
    expires_at: Optional[datetime] = None

    # Geografía
    location: LocationChain = Field(default_factory=LocationChain)

    def prefers(self, school_id: int) -> bool:
        """Indica si la escuela está entre los destinos preferidos."""
        return any(p.school_id == school_id for p in self.preferred_schools)

    def rank_for(self, school_id: int) -> Optional[int]:
        """Ranking asignado a la escuela, o None si no está o no tiene ranking."""
        for preference in self.preferred_schools:
            if preference.school_id == school_id:
                return preference.rank
        return None

    @property
    def partition_key(self) -> tuple[int, str]:
        """Solo solicitudes con la misma clave pueden quedar en un mismo match."""
        return (self.appointment_category_id, self.medium_of_instruction)
