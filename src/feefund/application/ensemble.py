from __future__ import annotations
import asyncio
import logging
import time
from typing import Awaitable, Iterable, Sequence

from ..domain.errors import CallException, InsufficientBalanceError, ShardOperationError
from ..domain.models import Currency, Decomposition, MonetaryAmount, TxHandle, TxRecord, Wallet
from ..domain.value_types import Dimension, Standard
from ..ports.journal import TxJournal
from ..ports.shard import ShardBinding, TxOptions
from .decomposition import DecompositionCache
from .planning import check_ordinality, locate_accrual, plan_subranges
from .utils import min_amount, sum_amounts

log = logging.getLogger(__name__)


class FeeFundEnsemble:
    """
    An ordered ensemble of fee-fund shards treated as one logical fund.

    Shard order is deployment order; it fixes how the global accrual and
    block spaces are partitioned. Per-currency partitions are discovered on
    first use and cached for the lifetime of the ensemble.
    """

    def __init__(
        self,
        shards: Iterable[ShardBinding] | ShardBinding,
        first_accrual_offset: int = 0,
        journal: TxJournal | None = None,
    ) -> None:
        shards = [shards] if isinstance(shards, ShardBinding) else list(shards)
        if not shards:
            raise ValueError("An ensemble needs at least one shard")
        self._shards: list[ShardBinding] = shards
        self._first_accrual_offset = first_accrual_offset if first_accrual_offset > 0 else 0
        self._cache = DecompositionCache(self._shards, self._first_accrual_offset)
        self._journal = journal
        self._withdraw_locks: dict[tuple[str, str], asyncio.Lock] = {}

    @property
    def shards(self) -> list[ShardBinding]: return list(self._shards)

    @property
    def first_accrual_offset(self) -> int: return self._first_accrual_offset

    # ── decomposition ─────────────────────────────

    def is_decomposed(self, currency: Currency) -> bool:
        return self._cache.is_decomposed(currency)

    async def decompose(self, currency: Currency) -> list[Decomposition]:
        return await self._cache.get(currency)

    async def decompositions(self, currency: Currency) -> list[Decomposition]:
        return list(await self._cache.get(currency))

    def invalidate(self, currency: Currency | None = None) -> None:
        """Drop cached decompositions so the next access re-reads the shards."""
        self._cache.invalidate(currency)

    # ── aggregate reads ─────────────────────────────

    async def closed_accruals_count(self, currency: Currency) -> int:
        counts = await self._gather(
            "read closed accruals count",
            [s.closed_accruals_count(currency.ct, currency.id) for s in self._shards],
        )
        return sum_amounts(counts)

    async def staged_balance(self, wallet: Wallet, currency: Currency) -> int:
        return sum_amounts(await self._staged_balances(wallet, currency))

    async def _staged_balances(self, wallet: Wallet, currency: Currency) -> list[int]:
        return await self._gather(
            "read staged balance",
            [s.staged_balance(wallet.address, currency.ct, currency.id) for s in self._shards],
        )

    # ── range queries ─────────────────────────────

    async def claimable_amount_by_accruals(
        self, wallet: Wallet, currency: Currency, start_accrual: int, end_accrual: int,
    ) -> int:
        return await self._claimable(wallet, currency, start_accrual, end_accrual, "accruals")

    async def claimable_amount_by_block_numbers(
        self, wallet: Wallet, currency: Currency, start_block: int, end_block: int,
    ) -> int:
        return await self._claimable(wallet, currency, start_block, end_block, "blocks")

    async def _claimable(
        self, wallet: Wallet, currency: Currency, start: int, end: int, dimension: Dimension,
    ) -> int:
        check_ordinality(start, end, dimension)
        plan = plan_subranges(await self._cache.get(currency), start, end, dimension)
        if not plan:
            return 0

        def read(shard: ShardBinding, lo: int, hi: int) -> Awaitable[int]:
            if dimension == "accruals":
                return shard.claimable_amount_by_accruals(wallet.address, currency.ct, currency.id, lo, hi)
            return shard.claimable_amount_by_block_numbers(wallet.address, currency.ct, currency.id, lo, hi)

        for i, (lo, hi) in plan:
            log.debug("claimable %s [%d..%d] -> shard %d %s", dimension, lo, hi, i, self._shards[i].address)
        amounts = await self._gather(
            f"read claimable amount by {_dimension_label(dimension)}",
            [read(self._shards[i], lo, hi) for i, (lo, hi) in plan],
        )
        return sum_amounts(amounts)

    async def fully_claimed(self, wallet: Wallet, currency: Currency, accrual: int) -> bool:
        decomps = await self._cache.get(currency)
        i = locate_accrual(decomps, accrual)
        if i is None:
            return False
        shard = self._shards[i]
        try:
            return bool(await shard.fully_claimed(wallet.address, currency.ct, currency.id, accrual))
        except CallException as e:
            log.warning("fully claimed check reverted on shard %s (accrual %d): %s", shard.address, accrual, e)
            return False
        except Exception as e:
            raise ShardOperationError("read fully claimed", e, shard=shard.address) from e

    # ── claim and stage ─────────────────────────────

    async def claim_and_stage_by_accruals(
        self, wallet: Wallet, currency: Currency, start_accrual: int, end_accrual: int,
        options: TxOptions | None = None,
    ) -> list[TxHandle]:
        return await self._claim_and_stage(wallet, currency, start_accrual, end_accrual, "accruals", options)

    async def claim_and_stage_by_block_numbers(
        self, wallet: Wallet, currency: Currency, start_block: int, end_block: int,
        options: TxOptions | None = None,
    ) -> list[TxHandle]:
        return await self._claim_and_stage(wallet, currency, start_block, end_block, "blocks", options)

    async def _claim_and_stage(
        self, wallet: Wallet, currency: Currency, start: int, end: int, dimension: Dimension,
        options: TxOptions | None,
    ) -> list[TxHandle]:
        check_ordinality(start, end, dimension)
        plan = plan_subranges(await self._cache.get(currency), start, end, dimension)
        operation = f"claim and stage by {_dimension_label(dimension)}"

        txs: list[TxHandle] = []
        for i, (lo, hi) in plan:
            shard = self._shards[i]
            try:
                signer = shard.connect(wallet)
                if dimension == "accruals":
                    tx = await signer.claim_and_stage_by_accruals(currency.ct, currency.id, lo, hi, options)
                else:
                    tx = await signer.claim_and_stage_by_block_numbers(currency.ct, currency.id, lo, hi, options)
            except Exception as e:
                log.warning("%s aborted at shard %d %s after %d submitted tx(s): %s",
                            operation, i, shard.address, len(txs), e)
                raise ShardOperationError(operation, e, submitted=txs, shard=shard.address) from e
            log.info("%s [%d..%d] on shard %s -> %s", operation, lo, hi, shard.address, tx.tx_hash)
            txs.append(tx)
            await self._record(tx, wallet, currency, start=lo, end=hi, dimension=dimension)
        return txs

    # ── withdrawal ─────────────────────────────

    async def withdraw(
        self,
        wallet: Wallet,
        monetary_amount: MonetaryAmount,
        standard: Standard = "ERC20",
        options: TxOptions | None = None,
    ) -> list[TxHandle]:
        """
        Withdraw `monetary_amount` from the staged balances of the shards,
        drawing greedily from the oldest shard first. At most one
        transaction is issued per shard drawn from.
        """
        requested = int(monetary_amount.amount)
        if requested < 0:
            raise ValueError(f"Withdrawal amount must be non-negative, got {requested}")
        currency = monetary_amount.currency

        await self._cache.get(currency)

        lock = self._withdraw_locks.setdefault((str(wallet.address).lower(), currency.key), asyncio.Lock())
        async with lock:
            aggregate = await self.staged_balance(wallet, currency)
            if requested > aggregate:
                raise InsufficientBalanceError(ceiling=aggregate, requested=requested)

            due = requested
            txs: list[TxHandle] = []
            for i, shard in enumerate(self._shards):
                if due == 0:
                    break
                try:
                    staged = int(await shard.staged_balance(wallet.address, currency.ct, currency.id))
                    draw = min_amount(due, staged)
                    if draw <= 0:
                        continue
                    tx = await shard.connect(wallet).withdraw(draw, currency.ct, currency.id, standard, options)
                except Exception as e:
                    log.warning("withdraw aborted at shard %d %s after %d submitted tx(s): %s",
                                i, shard.address, len(txs), e)
                    raise ShardOperationError("withdraw", e, submitted=txs, shard=shard.address) from e
                log.info("withdraw %d from shard %s -> %s", draw, shard.address, tx.tx_hash)
                txs.append(tx)
                due -= draw
                await self._record(tx, wallet, currency, amount=draw)
            return txs

    # ── helpers ─────────────────────────────

    async def _gather(self, operation: str, coros: Sequence[Awaitable[int]]) -> list[int]:
        try:
            return list(await asyncio.gather(*coros))
        except Exception as e:
            raise ShardOperationError(operation, e) from e

    async def _record(
        self, tx: TxHandle, wallet: Wallet, currency: Currency, *,
        amount: int | None = None, start: int | None = None, end: int | None = None,
        dimension: Dimension | None = None,
    ) -> None:
        if self._journal is None:
            return
        rec = TxRecord(
            tx_hash=str(tx.tx_hash), shard=str(tx.shard), operation=tx.operation,
            wallet=str(wallet.address), currency=currency.key,
            amount=str(amount) if amount is not None else None,
            start=start, end=end, dimension=dimension, submitted_at=time.time(),
        )
        try:
            await self._journal.append(rec)
        except Exception:
            # the tx is already submitted; a journal failure does not abort the batch
            log.exception("failed to journal %s tx %s on shard %s", tx.operation, tx.tx_hash, tx.shard)


def _dimension_label(dimension: Dimension) -> str:
    return "accruals" if dimension == "accruals" else "block numbers"

