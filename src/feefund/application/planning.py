from __future__ import annotations
from typing import Sequence
from ..domain.errors import OrdinalityMismatchError
from ..domain.models import Decomposition
from ..domain.value_types import Dimension

def check_ordinality(start: int, end: int, dimension: Dimension) -> None:
    if start > end:
        raise OrdinalityMismatchError(start, end, dimension)

def overlaps(iv: tuple[int, int], bounds: tuple[int, int]) -> bool:
    lo, hi = iv
    s_lo, s_hi = bounds
    if s_lo > s_hi: return False
    return hi >= s_lo and lo <= s_hi

def clip(iv: tuple[int, int], bounds: tuple[int, int]) -> tuple[int, int]:
    return max(iv[0], bounds[0]), min(iv[1], bounds[1])

def plan_subranges(
    decomps: Sequence[Decomposition],
    start: int,
    end: int,
    dimension: Dimension,
) -> list[tuple[int, tuple[int, int]]]:
    """Return (shard_index, clipped_range) for every shard overlapping [start, end], in shard order."""
    check_ordinality(start, end, dimension)
    out: list[tuple[int, tuple[int, int]]] = []
    for i, d in enumerate(decomps):
        if d.is_empty(): continue
        b = d.bounds(dimension)
        if overlaps((start, end), b):
            out.append((i, clip((start, end), b)))
    return out

def locate_accrual(decomps: Sequence[Decomposition], accrual: int) -> int | None:
    for i, d in enumerate(decomps):
        if d.contains_accrual(accrual):
            return i
    return None
