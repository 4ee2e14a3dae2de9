# feefund/ports/shard.py
from __future__ import annotations

from typing import Any, Mapping, Protocol, runtime_checkable
from ..domain.models import ClosedAccrual, TxHandle, Wallet
from ..domain.value_types import Address, Standard

TxOptions = Mapping[str, Any]


@runtime_checkable
class ShardBinding(Protocol):
    """Port for one deployed fee-fund contract ("shard").

    Every method is scoped to this shard and to a single currency (ct, id).
    State-changing methods require a signer-bound view obtained with `connect`.
    """

    @property
    def address(self) -> Address:
        """Contract address of this shard."""

    def connect(self, wallet: Wallet) -> "ShardBinding":
        """Return a view of this shard bound to `wallet` as transaction sender."""

    async def closed_accruals_count(self, ct: Address, id: int) -> int:
        """Return the number of closed accruals for the currency."""

    async def closed_accruals_by_currency(self, ct: Address, id: int, index: int) -> ClosedAccrual:
        """Return the closed accrual record at `index`."""

    async def claimable_amount_by_accruals(
        self, wallet: Address, ct: Address, id: int, start_accrual: int, end_accrual: int,
    ) -> int:
        """Return the amount claimable by `wallet` over [start_accrual, end_accrual]."""

    async def claimable_amount_by_block_numbers(
        self, wallet: Address, ct: Address, id: int, start_block: int, end_block: int,
    ) -> int:
        """Return the amount claimable by `wallet` over [start_block, end_block]."""

    async def fully_claimed(self, wallet: Address, ct: Address, id: int, accrual: int) -> bool:
        """Return True if `wallet` fully claimed the accrual at `accrual`."""

    async def staged_balance(self, wallet: Address, ct: Address, id: int) -> int:
        """Return the staged (withdrawable) balance of `wallet`."""

    async def claim_and_stage_by_accruals(
        self, ct: Address, id: int, start_accrual: int, end_accrual: int, options: TxOptions | None = None,
    ) -> TxHandle:
        """Submit a claim-and-stage transaction over an accrual span."""

    async def claim_and_stage_by_block_numbers(
        self, ct: Address, id: int, start_block: int, end_block: int, options: TxOptions | None = None,
    ) -> TxHandle:
        """Submit a claim-and-stage transaction over a block number span."""

    async def withdraw(
        self, amount: int, ct: Address, id: int, standard: Standard, options: TxOptions | None = None,
    ) -> TxHandle:
        """Submit a withdrawal of `amount` from the staged balance."""
