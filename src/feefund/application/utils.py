from typing import Iterable


def sum_amounts(values: Iterable[int]) -> int:
    total = 0
    for v in values:
        v = int(v)
        if v < 0:
            raise ValueError(f"Negative amount in aggregate: {v}")
        total += v
    return total


def min_amount(a: int, b: int) -> int:
    return a if a < b else b