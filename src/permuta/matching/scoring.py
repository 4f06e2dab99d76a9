"""
Scoring de compatibilidad.

Funciones puras sobre solicitudes ya enriquecidas:
- Compatibilidad de a pares (0-100, umbral 50)
- Permuta circular de tres (0-100, umbral 40)
- Tabla de reglas geográficas compartida por ambos

Los descartes (categoría/medio distintos, sin materias en común, mismo
dueño, score bajo) no son errores: se informan en `rejection`.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from permuta.models import TransferRequest, Urgency

TWO_WAY_THRESHOLD = 50
THREE_WAY_THRESHOLD = 40

# Ranking asumido cuando la preferencia existe pero no tiene posición
DEFAULT_RANK = 5

MUTUAL_PREFERENCE_BASE = 40
MUTUAL_PREFERENCE_MAX = 60
PAIR_SUBJECTS_MAX = 15
CYCLE_PREFERENCE_MAX = 40
CYCLE_SUBJECTS_MAX = 30

GEO_SAME_DISTRICT = 20
GEO_SAME_PROVINCE = 15
GEO_SAME_PROVINCE_RESTRICTED = 5
GEO_NATIONWIDE = 10


class Rejection(str, Enum):
    """Motivo por el que un candidato no puede formar un match."""

    SAME_OWNER = "same_owner"
    CATEGORY_MISMATCH = "category_mismatch"
    MEDIUM_MISMATCH = "medium_mismatch"
    NO_COMMON_SUBJECTS = "no_common_subjects"
    NO_PREFERENCE_CYCLE = "no_preference_cycle"
    BELOW_THRESHOLD = "below_threshold"


@dataclass(frozen=True)
class CompatibilityBreakdown:
    mutual_preference: int
    geographic: int
    subjects: int
    urgency: int


@dataclass(frozen=True)
class CompatibilityScore:
    total: int
    breakdown: CompatibilityBreakdown


@dataclass(frozen=True)
class ThreeWayBreakdown:
    preference: int
    subjects: int
    geographic: int
    urgency: int


@dataclass(frozen=True)
class ThreeWayScore:
    total: int
    breakdown: ThreeWayBreakdown


@dataclass(frozen=True)
class PairEvaluation:
    """Resultado de evaluar un par como candidato a match."""

    requests: tuple[TransferRequest, TransferRequest]
    score: Optional[CompatibilityScore] = None
    rejection: Optional[Rejection] = None

    @property
    def is_candidate(self) -> bool:
        return self.rejection is None


@dataclass(frozen=True)
class TripleEvaluation:
    """
    Resultado de evaluar un trío como permuta circular.

    `requests` queda en el orden del ciclo: cada uno quiere la escuela
    del siguiente y el último quiere la del primero.
    """

    requests: tuple[TransferRequest, TransferRequest, TransferRequest]
    score: Optional[ThreeWayScore] = None
    rejection: Optional[Rejection] = None

    @property
    def is_candidate(self) -> bool:
        return self.rejection is None


def round_half_up(value: float) -> int:
    """Redondeo comercial: 2.5 -> 3 (round() de Python redondea al par)."""
    return int(math.floor(value + 0.5))


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def _rank_points(rank: Optional[int]) -> int:
    return 6 - (rank if rank is not None else DEFAULT_RANK)


def common_subjects(a: TransferRequest, b: TransferRequest) -> frozenset[str]:
    return a.subjects & b.subjects


def has_common_subjects(a: TransferRequest, b: TransferRequest) -> bool:
    """Gate obligatorio: ambos tienen materias y comparten al menos una."""
    if not a.subjects or not b.subjects:
        return False
    return bool(common_subjects(a, b))


def geographic_score(a: TransferRequest, b: TransferRequest) -> int:
    """
    Compatibilidad geográfica entre dos solicitudes (0-20).

    Mismo distrito: 20. Misma provincia: 15 si ambos aceptan traslados
    provinciales, 5 si no. Distinta provincia: 10 si ambos aceptan
    traslados nacionales. Sin distrito en alguno de los dos: 0.
    """
    loc_a, loc_b = a.location, b.location
    if not loc_a.is_complete or not loc_b.is_complete:
        return 0

    if loc_a.district_id == loc_b.district_id:
        return GEO_SAME_DISTRICT

    flex_a, flex_b = a.geographic_flexibility, b.geographic_flexibility
    same_province = (
        loc_a.province_id is not None and loc_a.province_id == loc_b.province_id
    )
    if same_province:
        if flex_a.allows_region and flex_b.allows_region:
            return GEO_SAME_PROVINCE
        return GEO_SAME_PROVINCE_RESTRICTED

    if flex_a.allows_national and flex_b.allows_national:
        return GEO_NATIONWIDE
    return 0


def calculate_compatibility(a: TransferRequest, b: TransferRequest) -> CompatibilityScore:
    """
    Score de compatibilidad de a pares (0-100).

    No aplica gates: un par sin materias en común puede tener score
    alto y aun así no ser candidato (ver `evaluate_pair`).
    """
    # 1. Preferencia mutua (0-60): sin crédito parcial por interés de un solo lado
    mutual = 0
    if b.prefers(a.current_school_id) and a.prefers(b.current_school_id):
        rank_bonus = (
            _rank_points(b.rank_for(a.current_school_id))
            + _rank_points(a.rank_for(b.current_school_id))
        ) * 2
        mutual = _clamp(MUTUAL_PREFERENCE_BASE + rank_bonus, 0, MUTUAL_PREFERENCE_MAX)

    # 2. Geografía (0-20)
    geographic = geographic_score(a, b)

    # 3. Materias (0-15)
    subjects = 0
    if a.subjects and b.subjects:
        ratio = len(common_subjects(a, b)) / max(len(a.subjects), len(b.subjects))
        subjects = round_half_up(ratio * PAIR_SUBJECTS_MAX)

    # 4. Urgencia (0-5)
    if a.urgency_level == b.urgency_level:
        urgency = 5
    elif Urgency.HIGH in (a.urgency_level, b.urgency_level):
        urgency = 2
    else:
        urgency = 0

    total = _clamp(round_half_up(mutual + geographic + subjects + urgency), 0, 100)
    return CompatibilityScore(
        total=total,
        breakdown=CompatibilityBreakdown(
            mutual_preference=mutual,
            geographic=geographic,
            subjects=subjects,
            urgency=urgency,
        ),
    )


def evaluate_pair(a: TransferRequest, b: TransferRequest) -> PairEvaluation:
    """Aplica gates, score y umbral de a pares."""
    pair = (a, b)
    if a.user_id == b.user_id:
        return PairEvaluation(pair, rejection=Rejection.SAME_OWNER)
    if a.appointment_category_id != b.appointment_category_id:
        return PairEvaluation(pair, rejection=Rejection.CATEGORY_MISMATCH)
    if a.medium_of_instruction != b.medium_of_instruction:
        return PairEvaluation(pair, rejection=Rejection.MEDIUM_MISMATCH)
    if not has_common_subjects(a, b):
        return PairEvaluation(pair, rejection=Rejection.NO_COMMON_SUBJECTS)

    score = calculate_compatibility(a, b)
    if score.total < TWO_WAY_THRESHOLD:
        return PairEvaluation(pair, score=score, rejection=Rejection.BELOW_THRESHOLD)
    return PairEvaluation(pair, score=score)


def forms_cycle(a: TransferRequest, b: TransferRequest, c: TransferRequest) -> bool:
    """A quiere la escuela de B, B la de C y C la de A (solo pertenencia)."""
    return (
        a.prefers(b.current_school_id)
        and b.prefers(c.current_school_id)
        and c.prefers(a.current_school_id)
    )


def calculate_three_way_score(
    a: TransferRequest, b: TransferRequest, c: TransferRequest
) -> ThreeWayScore:
    """Score de una permuta circular A -> B -> C -> A (0-100)."""
    # 1. Ranking de cada destino (0-40)
    preference = _clamp(
        _rank_points(a.rank_for(b.current_school_id)) * 2
        + _rank_points(b.rank_for(c.current_school_id)) * 2
        + _rank_points(c.rank_for(a.current_school_id)) * 2,
        0,
        CYCLE_PREFERENCE_MAX,
    )

    # 2. Materias en común por par adyacente (0-30)
    overlap = (
        len(common_subjects(a, b))
        + len(common_subjects(b, c))
        + len(common_subjects(c, a))
    ) / 3
    subjects = min(CYCLE_SUBJECTS_MAX, round_half_up(overlap * 10))

    # 3. Geografía promedio de los tres pares (0-20)
    geographic = round_half_up(
        (geographic_score(a, b) + geographic_score(b, c) + geographic_score(c, a)) / 3
    )

    # 4. Urgencia (5-10)
    same_urgency = a.urgency_level == b.urgency_level == c.urgency_level
    urgency = 10 if same_urgency else 5

    total = _clamp(preference + subjects + geographic + urgency, 0, 100)
    return ThreeWayScore(
        total=total,
        breakdown=ThreeWayBreakdown(
            preference=preference,
            subjects=subjects,
            geographic=geographic,
            urgency=urgency,
        ),
    )


def evaluate_triple(
    a: TransferRequest, b: TransferRequest, c: TransferRequest
) -> TripleEvaluation:
    """
    Evalúa un trío como permuta circular A -> B -> C -> A.

    Solo se acepta el ciclo en el orden recibido (i < j < k en el pool);
    el sentido inverso A -> C -> B no cuenta.
    """
    if len({a.user_id, b.user_id, c.user_id}) < 3:
        return TripleEvaluation((a, b, c), rejection=Rejection.SAME_OWNER)

    cycle = (a, b, c)
    if not forms_cycle(a, b, c):
        return TripleEvaluation(cycle, rejection=Rejection.NO_PREFERENCE_CYCLE)

    if not a.appointment_category_id == b.appointment_category_id == c.appointment_category_id:
        return TripleEvaluation(cycle, rejection=Rejection.CATEGORY_MISMATCH)
    if not a.medium_of_instruction == b.medium_of_instruction == c.medium_of_instruction:
        return TripleEvaluation(cycle, rejection=Rejection.MEDIUM_MISMATCH)

    first, second, third = cycle
    if not (
        has_common_subjects(first, second)
        and has_common_subjects(second, third)
        and has_common_subjects(third, first)
    ):
        return TripleEvaluation(cycle, rejection=Rejection.NO_COMMON_SUBJECTS)

    score = calculate_three_way_score(first, second, third)
    if score.total < THREE_WAY_THRESHOLD:
        return TripleEvaluation(cycle, score=score, rejection=Rejection.BELOW_THRESHOLD)
    return TripleEvaluation(cycle, score=score)
