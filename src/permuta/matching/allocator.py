"""
Asignación greedy de grupos sobre el pool elegible.

Primero se buscan permutas circulares de tres y luego pares sobre lo
que quedó libre. El recorrido es first-fit en orden fijo de índices:
determinista para un mismo orden de entrada, pero no óptimo.

La búsqueda no tiene efectos: recibe una lista inmutable y el conjunto
de IDs ya asignados, y devuelve los grupos elegidos junto con el
conjunto actualizado.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Union

import structlog

from permuta.models import MatchType, TransferRequest
from permuta.matching.scoring import (
    CompatibilityScore,
    ThreeWayScore,
    evaluate_pair,
    evaluate_triple,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class AllocatedGroup:
    """Grupo asignado en la corrida, en orden de swap_position."""

    requests: tuple[TransferRequest, ...]
    score: Union[CompatibilityScore, ThreeWayScore]

    @property
    def match_type(self) -> MatchType:
        return MatchType.for_size(len(self.requests))

    @property
    def total(self) -> int:
        return self.score.total

    @property
    def request_ids(self) -> frozenset[str]:
        return frozenset(r.id for r in self.requests)


@dataclass(frozen=True)
class Allocation:
    groups: tuple[AllocatedGroup, ...]
    allocated_ids: frozenset[str]


def find_three_way_groups(
    pool: Sequence[TransferRequest],
    allocated: frozenset[str] = frozenset(),
) -> tuple[list[AllocatedGroup], frozenset[str]]:
    """Recorre tríos i < j < k y toma el primero que pase gates y umbral."""
    groups: list[AllocatedGroup] = []
    n = len(pool)
    if n < 3:
        return groups, allocated

    for i in range(n):
        if pool[i].id in allocated:
            continue
        for j in range(i + 1, n):
            if pool[i].id in allocated:
                break
            if pool[j].id in allocated:
                continue
            for k in range(j + 1, n):
                if pool[k].id in allocated:
                    continue

                evaluation = evaluate_triple(pool[i], pool[j], pool[k])
                if not evaluation.is_candidate:
                    if evaluation.score is not None:
                        logger.debug(
                            "Trío descartado",
                            request_ids=[r.id for r in evaluation.requests],
                            reason=evaluation.rejection.value,
                            score=evaluation.score.total,
                        )
                    continue

                group = AllocatedGroup(requests=evaluation.requests, score=evaluation.score)
                groups.append(group)
                allocated = allocated | group.request_ids
                break

    return groups, allocated


def find_two_way_groups(
    pool: Sequence[TransferRequest],
    allocated: frozenset[str] = frozenset(),
) -> tuple[list[AllocatedGroup], frozenset[str]]:
    """Para cada solicitud libre toma el primer compañero que califique."""
    groups: list[AllocatedGroup] = []
    n = len(pool)

    for i in range(n):
        if pool[i].id in allocated:
            continue
        for j in range(i + 1, n):
            if pool[j].id in allocated:
                continue

            evaluation = evaluate_pair(pool[i], pool[j])
            if not evaluation.is_candidate:
                continue

            group = AllocatedGroup(requests=evaluation.requests, score=evaluation.score)
            groups.append(group)
            allocated = allocated | group.request_ids
            break

    return groups, allocated


def partition_pool(
    pool: Sequence[TransferRequest],
) -> list[tuple[TransferRequest, ...]]:
    """
    Agrupa el pool por (categoría, medio) conservando el orden relativo.

    Ningún grupo válido cruza particiones, así que asignar partición por
    partición elige exactamente los mismos grupos que el escaneo global.
    """
    partitions: dict[tuple[int, str], list[TransferRequest]] = {}
    for request in pool:
        partitions.setdefault(request.partition_key, []).append(request)
    return [tuple(members) for members in partitions.values()]


def allocate(
    pool: Sequence[TransferRequest],
    allocated: frozenset[str] = frozenset(),
    partition: bool = True,
) -> Allocation:
    """
    Ejecuta la asignación completa: tríos primero, después pares.

    Args:
        pool: Solicitudes elegibles en el orden de la corrida
        allocated: IDs que ya no pueden asignarse
        partition: Si True, recorre cada partición (categoría, medio) por separado

    Returns:
        Allocation con los grupos en orden de asignación
    """
    candidates = tuple(pool)
    partitions = partition_pool(candidates) if partition else [candidates]

    groups: list[AllocatedGroup] = []
    for members in partitions:
        three_way, allocated = find_three_way_groups(members, allocated)
        two_way, allocated = find_two_way_groups(members, allocated)
        groups.extend(three_way)
        groups.extend(two_way)

    logger.debug(
        "Asignación calculada",
        pool_size=len(candidates),
        partitions=len(partitions),
        groups=len(groups),
    )
    return Allocation(groups=tuple(groups), allocated_ids=allocated)
