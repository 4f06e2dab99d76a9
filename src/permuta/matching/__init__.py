"""
Motor de matching.

Busca permutas circulares de tres y pares compatibles sobre el pool de
solicitudes enviadas, y gestiona el ciclo de vida de los matches.
"""

from permuta.matching.allocator import Allocation, AllocatedGroup, allocate
from permuta.matching.eligibility import EligibilityFilter
from permuta.matching.engine import MatchingEngine, MatchingRunResult
from permuta.matching.factory import CreatedMatch, MatchFactory
from permuta.matching.queries import MatchQueryService
from permuta.matching.responses import MatchResponseService
from permuta.matching.scoring import (
    THREE_WAY_THRESHOLD,
    TWO_WAY_THRESHOLD,
    calculate_compatibility,
    calculate_three_way_score,
    evaluate_pair,
    evaluate_triple,
    geographic_score,
)

__all__ = [
    "MatchingEngine",
    "MatchingRunResult",
    "EligibilityFilter",
    "MatchFactory",
    "CreatedMatch",
    "MatchResponseService",
    "MatchQueryService",
    "Allocation",
    "AllocatedGroup",
    "allocate",
    "TWO_WAY_THRESHOLD",
    "THREE_WAY_THRESHOLD",
    "calculate_compatibility",
    "calculate_three_way_score",
    "evaluate_pair",
    "evaluate_triple",
    "geographic_score",
]
