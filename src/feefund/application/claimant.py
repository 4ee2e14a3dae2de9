from __future__ import annotations

from ..domain.errors import ShardOperationError
from ..domain.models import Currency, MonetaryAmount, TxHandle, Wallet
from ..ports.shard import ShardBinding, TxOptions


class FeesClaimant:
    """Claiming and withdrawal of accrued fees against a single shard, without range routing."""

    def __init__(self, shard: ShardBinding) -> None:
        self.shard = shard

    async def claimable_fees_for_accruals(
        self, wallet: Wallet, currency: Currency, start_accrual: int, end_accrual: int,
    ) -> int:
        return await self.shard.claimable_amount_by_accruals(
            wallet.address, currency.ct, currency.id, start_accrual, end_accrual
        )

    async def claim_fees_for_accruals(
        self, wallet: Wallet, currency: Currency, start_accrual: int, end_accrual: int,
        options: TxOptions | None = None,
    ) -> TxHandle:
        try:
            return await self.shard.connect(wallet).claim_and_stage_by_accruals(
                currency.ct, currency.id, start_accrual, end_accrual, options
            )
        except Exception as e:
            raise ShardOperationError("claim fees for accruals", e, shard=self.shard.address) from e

    async def claimable_fees_for_blocks(
        self, wallet: Wallet, currency: Currency, start_block: int, end_block: int,
    ) -> int:
        return await self.shard.claimable_amount_by_block_numbers(
            wallet.address, currency.ct, currency.id, start_block, end_block
        )

    async def claim_fees_for_blocks(
        self, wallet: Wallet, currency: Currency, start_block: int, end_block: int,
        options: TxOptions | None = None,
    ) -> TxHandle:
        try:
            return await self.shard.connect(wallet).claim_and_stage_by_block_numbers(
                currency.ct, currency.id, start_block, end_block, options
            )
        except Exception as e:
            raise ShardOperationError("claim fees for blocks", e, shard=self.shard.address) from e

    async def withdrawable_fees(self, wallet: Wallet, currency: Currency) -> int:
        return await self.shard.staged_balance(wallet.address, currency.ct, currency.id)

    async def withdraw_fees(
        self, wallet: Wallet, monetary_amount: MonetaryAmount, options: TxOptions | None = None,
    ) -> TxHandle:
        c = monetary_amount.currency
        try:
            return await self.shard.connect(wallet).withdraw(
                int(monetary_amount.amount), c.ct, c.id, "ERC20", options
            )
        except Exception as e:
            raise ShardOperationError("withdraw fees", e, shard=self.shard.address) from e
