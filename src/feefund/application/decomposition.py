from __future__ import annotations
import asyncio
import logging
from typing import Sequence

from ..domain.models import ClosedAccrual, Currency, Decomposition
from ..domain.errors import ShardOperationError
from ..ports.shard import ShardBinding

log = logging.getLogger(__name__)


async def decompose(
    shards: Sequence[ShardBinding],
    currency: Currency,
    first_accrual_offset: int = 0,
) -> list[Decomposition]:
    """
    Partition the global accrual space of `currency` across `shards` in order.
    Counts and boundary records are read concurrently; offsets are chained sequentially.
    """
    ct, cid = currency.ct, currency.id
    try:
        counts = await asyncio.gather(*(s.closed_accruals_count(ct, cid) for s in shards))
    except Exception as e:
        raise ShardOperationError("read closed accruals count", e) from e

    ranges: list[tuple[int, int]] = []
    offset = first_accrual_offset
    for n in counts:
        start = offset
        end = start + int(n) - 1
        ranges.append((start, end))
        offset = end + 1

    async def bounds(shard: ShardBinding, start: int, end: int) -> tuple[int, int]:
        if end < start:
            return 0, -1   # empty shard, overlaps no block span
        first: ClosedAccrual = await shard.closed_accruals_by_currency(ct, cid, start)
        last: ClosedAccrual = await shard.closed_accruals_by_currency(ct, cid, end)
        return int(first.start_block), int(last.end_block)

    try:
        blocks = await asyncio.gather(*(bounds(s, a, b) for s, (a, b) in zip(shards, ranges)))
    except Exception as e:
        raise ShardOperationError("read closed accruals by currency", e) from e

    out = [
        Decomposition(start_accrual=a, end_accrual=b, start_block=sb, end_block=eb)
        for (a, b), (sb, eb) in zip(ranges, blocks)
    ]
    log.info("decomposed %s over %d shard(s): %s", currency.key, len(out),
             ", ".join(f"[{d.start_accrual}..{d.end_accrual}]" for d in out))
    return out


class DecompositionCache:
    """
    Per-currency memo of shard decompositions.
    One build in flight per currency; concurrent callers await the same task.
    Entries are snapshots and live until `invalidate`.
    """
    def __init__(self, shards: Sequence[ShardBinding], first_accrual_offset: int = 0) -> None:
        self.shards = list(shards)
        self.first_accrual_offset = first_accrual_offset
        self._done: dict[str, list[Decomposition]] = {}
        self._inflight: dict[str, asyncio.Task[list[Decomposition]]] = {}

    def is_decomposed(self, currency: Currency) -> bool:
        return currency.key in self._done

    async def get(self, currency: Currency) -> list[Decomposition]:
        key = currency.key
        cached = self._done.get(key)
        if cached is not None:
            return cached
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(decompose(self.shards, currency, self.first_accrual_offset))
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._settle(k, t))
        return await asyncio.shield(task)

    def _settle(self, key: str, task: asyncio.Task[list[Decomposition]]) -> None:
        if self._inflight.get(key) is not task:
            # invalidated while building; callers still get the result, the cache does not
            return
        del self._inflight[key]
        if not task.cancelled() and task.exception() is None:
            self._done[key] = task.result()

    def invalidate(self, currency: Currency | None = None) -> None:
        if currency is None:
            self._done.clear()
            self._inflight.clear()
        else:
            self._done.pop(currency.key, None)
            self._inflight.pop(currency.key, None)
