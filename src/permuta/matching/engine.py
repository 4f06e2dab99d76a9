"""
Motor de matching de permutas.

Implementa:
- Corrida de asignación: pool elegible -> tríos circulares -> pares
- Barrido de expiración de matches pendientes vencidos
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import structlog

from permuta.config import Settings, get_settings
from permuta.database import MatchRepository
from permuta.matching.allocator import allocate
from permuta.matching.eligibility import EligibilityFilter
from permuta.matching.factory import MatchFactory

logger = structlog.get_logger()


@dataclass(frozen=True)
class MatchingRunResult:
    """Resumen de una corrida: solo cuenta lo que quedó guardado."""

    matches_created: int
    requests_processed: int

    def to_dict(self) -> dict:
        return {
            "matchesCreated": self.matches_created,
            "requestsProcessed": self.requests_processed,
        }


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MatchingEngine:
    """
    Motor de matching con asignación greedy y creación por saga.

    Flujo:
    1. Armar el pool elegible (enviadas, no vencidas, sin match activo)
    2. Buscar permutas circulares de tres (first-fit)
    3. Buscar pares sobre las solicitudes restantes (first-fit)
    4. Persistir cada grupo; los que fallan no cuentan
    """

    def __init__(
        self,
        eligibility: Optional[EligibilityFilter] = None,
        factory: Optional[MatchFactory] = None,
        match_repo: Optional[MatchRepository] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.eligibility = eligibility or EligibilityFilter()
        self.factory = factory or MatchFactory(settings=self.settings)
        self.match_repo = match_repo or MatchRepository()

    async def run_matching_algorithm(
        self, now: Optional[datetime] = None
    ) -> MatchingRunResult:
        """
        Ejecuta una corrida completa de asignación.

        Un error al armar el pool aborta la corrida. Los matches ya
        guardados antes de un error posterior quedan guardados.
        """
        now = now or utcnow()
        logger.info("Iniciando algoritmo de matching")

        pool = self.eligibility.load_pool(now, limit=self.settings.max_pool_size)
        if len(pool) < 2:
            logger.info("No hay suficientes solicitudes para armar matches", pool=len(pool))
            return MatchingRunResult(matches_created=0, requests_processed=0)

        allocation = allocate(pool, partition=self.settings.partition_pool)

        matches_created = 0
        processed_ids: set[str] = set()
        for group in allocation.groups:
            created = await self.factory.create(group, now)
            if created is None:
                continue
            matches_created += 1
            processed_ids.update(group.request_ids)

        result = MatchingRunResult(
            matches_created=matches_created,
            requests_processed=len(processed_ids),
        )
        logger.info(
            "Algoritmo de matching completado",
            pool=len(pool),
            groups_allocated=len(allocation.groups),
            matches_created=result.matches_created,
            requests_processed=result.requests_processed,
        )
        return result

    async def expire_old_matches(self, now: Optional[datetime] = None) -> int:
        """
        Pasa a expired los matches pendientes vencidos.

        Returns:
            Cantidad de matches expirados en este barrido
        """
        now = now or utcnow()
        expired = self.match_repo.expire_pending(now)
        if expired:
            logger.info("Matches vencidos expirados", count=len(expired))
        return len(expired)
