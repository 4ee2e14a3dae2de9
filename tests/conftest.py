from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

import pytest

from feefund.domain.models import ClosedAccrual, Currency, TxHandle, Wallet
from feefund.domain.value_types import Address, TxHash

ETH = Currency(Address("0x0000000000000000000000000000000000000000"), 0)
WALLET = Wallet(Address("0x00000000000000000000000000000000000000a1"))


@dataclass
class FakeShard:
    """In-memory shard; accrual i (global index) covers blocks [block0 + 10*k, block0 + 10*k + 9]."""
    address: Address
    count: int = 0
    first_block: int = 0
    staged: int = 0
    claimable_per_accrual: int = 1
    claimed: set[int] = field(default_factory=set)
    fail_on: set[str] = field(default_factory=set)
    revert_on: set[str] = field(default_factory=set)
    calls: Counter = field(default_factory=Counter)
    log: list[tuple] = field(default_factory=list)
    sender: Address | None = None
    base: "FakeShard | None" = None
    _tx: int = 0

    def _root(self) -> "FakeShard":
        return self.base or self

    def _hit(self, name: str, *args) -> None:
        root = self._root()
        root.calls[name] += 1
        root.log.append((name, *args))
        if name in root.fail_on:
            raise RuntimeError(f"{name} failed on {root.address}")
        if name in root.revert_on:
            from feefund.domain.errors import CallException
            raise CallException("execution reverted", 3)

    def _tx_handle(self, operation: str) -> TxHandle:
        root = self._root()
        root._tx += 1
        return TxHandle(TxHash(f"0x{root.address[-4:]}{root._tx:060x}"), root.address, operation)

    def connect(self, wallet: Wallet) -> "FakeShard":
        root = self._root()
        self._hit("connect", wallet.address)
        return FakeShard(address=root.address, sender=wallet.address, base=root)

    async def closed_accruals_count(self, ct, id) -> int:
        self._hit("closed_accruals_count", ct, id)
        return self._root().count

    async def closed_accruals_by_currency(self, ct, id, index) -> ClosedAccrual:
        self._hit("closed_accruals_by_currency", index)
        return ClosedAccrual(start_block=self._root().first_block + 10 * index,
                             end_block=self._root().first_block + 10 * index + 9)

    async def claimable_amount_by_accruals(self, wallet, ct, id, start, end) -> int:
        self._hit("claimable_amount_by_accruals", start, end)
        return (end - start + 1) * self._root().claimable_per_accrual

    async def claimable_amount_by_block_numbers(self, wallet, ct, id, start, end) -> int:
        self._hit("claimable_amount_by_block_numbers", start, end)
        return end - start + 1

    async def fully_claimed(self, wallet, ct, id, accrual) -> bool:
        self._hit("fully_claimed", accrual)
        return accrual in self._root().claimed

    async def staged_balance(self, wallet, ct, id) -> int:
        self._hit("staged_balance", wallet)
        return self._root().staged

    async def claim_and_stage_by_accruals(self, ct, id, start, end, options=None) -> TxHandle:
        assert self.sender is not None, "unsigned claim"
        self._hit("claim_and_stage_by_accruals", start, end)
        return self._tx_handle("claim and stage by accruals")

    async def claim_and_stage_by_block_numbers(self, ct, id, start, end, options=None) -> TxHandle:
        assert self.sender is not None, "unsigned claim"
        self._hit("claim_and_stage_by_block_numbers", start, end)
        return self._tx_handle("claim and stage by block numbers")

    async def withdraw(self, amount, ct, id, standard, options=None) -> TxHandle:
        assert self.sender is not None, "unsigned withdraw"
        self._hit("withdraw", amount, standard)
        self._root().staged -= amount
        return self._tx_handle("withdraw")

    def reads(self) -> int:
        return sum(n for k, n in self.calls.items() if k in ("closed_accruals_count", "closed_accruals_by_currency"))


def make_shards(counts: list[int], staged: list[int] | None = None) -> list[FakeShard]:
    """Shards with contiguous block ranges: accrual k lives in blocks [10k, 10k+9]."""
    staged = staged or [0] * len(counts)
    return [
        FakeShard(address=Address(f"0x{i + 1:040x}"), count=c, staged=s)
        for i, (c, s) in enumerate(zip(counts, staged))
    ]


@pytest.fixture
def shards() -> list[FakeShard]:
    # accruals: [0..2], [3..7], [8..9]; blocks: [0..29], [30..79], [80..99]
    return make_shards([3, 5, 2])
