"""
Armado del pool elegible.

Carga las solicitudes enviadas y no vencidas, descarta las que ya están
en un match pendiente o aceptado, y las enriquece con preferencias,
materias y cadena geográfica.
"""

from datetime import datetime
from typing import Any, Optional

import structlog

from permuta.database import ParticipantRepository, TransferRequestRepository
from permuta.models import (
    LocationChain,
    PreferredDestination,
    TransferRequest,
)

logger = structlog.get_logger()


def _first(value: Any) -> Optional[dict]:
    """PostgREST devuelve los joins como objeto o como lista según la relación."""
    if isinstance(value, list):
        return value[0] if value else None
    return value


def parse_location(current_school: Any) -> LocationChain:
    """
    Extrae distrito y provincia de escuela -> división -> zona -> distrito.

    Si falta algún eslabón se devuelve una cadena incompleta; la solicitud
    sigue siendo elegible pero su score geográfico será 0.
    """
    school = _first(current_school)
    division = _first((school or {}).get("division"))
    zone = _first((division or {}).get("zone"))
    district = _first((zone or {}).get("district"))
    if not district:
        return LocationChain()

    province = _first(district.get("province"))
    return LocationChain(
        district_id=district.get("id"),
        province_id=(province or {}).get("id"),
    )


class EligibilityFilter:
    """Construye el pool de solicitudes para una corrida del motor."""

    def __init__(
        self,
        request_repo: Optional[TransferRequestRepository] = None,
        participant_repo: Optional[ParticipantRepository] = None,
    ):
        self.request_repo = request_repo or TransferRequestRepository()
        self.participant_repo = participant_repo or ParticipantRepository()

    def load_pool(
        self, now: datetime, limit: Optional[int] = None
    ) -> list[TransferRequest]:
        """
        Obtiene el pool elegible enriquecido.

        El tope se aplica después de descartar las solicitudes que ya están
        en un match activo, así esas no ocupan lugares del pool.

        Args:
            now: Instante de la corrida, para descartar solicitudes vencidas
            limit: Tope opcional de solicitudes elegibles (las más antiguas primero)

        Raises:
            PersistenceError: Si falla cualquier lectura; no se arma un pool parcial
        """
        rows = self.request_repo.get_submitted(now)
        if not rows:
            return []

        active_ids = self.participant_repo.get_active_request_ids(
            [row["id"] for row in rows]
        )
        eligible = [row for row in rows if row["id"] not in active_ids]
        if limit is not None:
            eligible = eligible[:limit]
        if not eligible:
            logger.info("Pool elegible vacío", submitted=len(rows), in_active_match=len(active_ids))
            return []

        request_ids = [row["id"] for row in eligible]
        preferences = self.request_repo.get_preferences(request_ids)
        subjects = self.request_repo.get_subjects(request_ids)

        preferences_by_request: dict[str, list[PreferredDestination]] = {}
        for pref in preferences:
            preferences_by_request.setdefault(pref["transfer_request_id"], []).append(
                PreferredDestination(
                    school_id=pref["preferred_school_id"],
                    rank=pref.get("preference_rank"),
                )
            )

        subjects_by_request: dict[str, set[str]] = {}
        for subject in subjects:
            subjects_by_request.setdefault(subject["transfer_request_id"], set()).add(
                str(subject["subject_id"])
            )

        pool = []
        incomplete_geo = 0
        for row in eligible:
            request = self._build_request(
                row,
                preferences_by_request.get(row["id"], []),
                subjects_by_request.get(row["id"], set()),
            )
            if not request.location.is_complete:
                incomplete_geo += 1
            pool.append(request)

        logger.info(
            "Pool elegible armado",
            submitted=len(rows),
            in_active_match=len(active_ids),
            eligible=len(pool),
            without_geo=incomplete_geo,
        )
        return pool

    def _build_request(
        self,
        row: dict,
        preferences: list[PreferredDestination],
        subjects: set[str],
    ) -> TransferRequest:
        ordered = sorted(
            preferences,
            key=lambda p: p.rank if p.rank is not None else float("inf"),
        )
        data = {
            key: row[key]
            for key in (
                "id",
                "user_id",
                "current_school_id",
                "appointment_category_id",
                "medium_of_instruction",
                "urgency_level",
                "geographic_flexibility",
                "status",
                "expires_at",
            )
            if row.get(key) is not None
        }
        return TransferRequest(
            **data,
            preferred_schools=tuple(ordered),
            subjects=frozenset(subjects),
            location=parse_location(row.get("current_school")),
        )
