import asyncio, logging
from typing import Awaitable, Callable, TypeVar
import click
import httpx
from rich.console import Console
from rich.table import Table

from .adapters.journal_jsonl import JSONLTxJournal
from .adapters.rpc_httpx import HttpxRPC, HttpxShardBinding
from .application.ensemble import FeeFundEnsemble
from .config import Settings
from .domain.errors import FeeFundError
from .domain.models import Currency, MonetaryAmount, TxHandle, Wallet
from .domain.value_types import Address
from .logging_utils import configure_logging

console = Console()
T = TypeVar("T")


def _run(settings: Settings, body: Callable[[FeeFundEnsemble], Awaitable[T]]) -> T:
    async def main() -> T:
        rpc = HttpxRPC(settings.rpc_url, timeout_s=settings.timeout_s, max_conn=settings.max_connections)
        try:
            ensemble = FeeFundEnsemble(
                [HttpxShardBinding(rpc, a) for a in settings.shard_addresses],
                first_accrual_offset=settings.first_accrual_offset,
                journal=JSONLTxJournal(settings.journal_path) if settings.journal_path else None,
            )
            return await body(ensemble)
        finally:
            await rpc.aclose()

    try:
        return asyncio.run(main())
    except (FeeFundError, httpx.HTTPError, ValueError) as e:
        raise click.ClickException(str(e))


def _options(gas_limit: int | None, gas_price: int | None) -> dict[str, int] | None:
    opts = {k: v for k, v in (("gas_limit", gas_limit), ("gas_price", gas_price)) if v is not None}
    return opts or None


def _print_txs(txs: list[TxHandle]) -> None:
    if not txs:
        console.print("[yellow]no transactions submitted[/]")
        return
    for tx in txs:
        console.print(f"[green]{tx.operation}[/] shard={tx.shard} tx={tx.tx_hash}")


_gas = [
    click.option("--gas-limit", type=int, default=None),
    click.option("--gas-price", type=int, default=None, help="Gas price in wei"),
]


def gas_options(f):
    for opt in reversed(_gas):
        f = opt(f)
    return f


@click.group()
@click.option("--rpc", default=None, help="RPC endpoint URL [env FEEFUND_RPC_URL]")
@click.option("--shard", "shards", multiple=True,
              help="Fee-fund contract address; repeat in deployment order [env FEEFUND_SHARDS]")
@click.option("--first-accrual-offset", type=int, default=None, help="[env FEEFUND_FIRST_ACCRUAL_OFFSET, default 0]")
@click.option("--journal", type=str, default=None,
              help="JSONL path recording submitted transactions [env FEEFUND_JOURNAL]")
@click.option("--timeout", "timeout_s", type=int, default=None, help="[env FEEFUND_TIMEOUT_S, default 20]")
@click.option("--max-connections", type=int, default=None, help="[env FEEFUND_MAX_CONNECTIONS, default 64]")
@click.option("-v", "--verbose", is_flag=True, default=False)
@click.pass_context
def cli(ctx, rpc, shards, first_accrual_offset, journal, timeout_s, max_connections, verbose):
    """feefund: claim and withdraw fees across an ensemble of fee-fund contracts."""
    configure_logging(logging.DEBUG if verbose else logging.WARNING)
    try:
        ctx.obj = Settings.from_env(
            rpc_url=rpc, shard_addresses=shards or None, first_accrual_offset=first_accrual_offset,
            timeout_s=timeout_s, max_connections=max_connections, journal_path=journal or None,
        )
    except ValueError as e:
        raise click.UsageError(str(e))


@cli.command("spans")
@click.argument("ct")
@click.argument("currency_id", type=int)
@click.pass_obj
def spans_cmd(settings: Settings, ct, currency_id):
    """Show how accruals and blocks are partitioned across the shards."""
    currency = Currency(Address(ct), currency_id)

    async def body(ens: FeeFundEnsemble):
        return await ens.decompositions(currency)

    decomps = _run(settings, body)
    table = Table(title=f"{currency.key}")
    for col in ("shard", "accruals", "blocks"):
        table.add_column(col)
    for addr, d in zip(settings.shard_addresses, decomps):
        accr = "-" if d.is_empty() else f"{d.start_accrual:,}..{d.end_accrual:,}"
        blks = "-" if d.is_empty() else f"{d.start_block:,}..{d.end_block:,}"
        table.add_row(addr, accr, blks)
    console.print(table)


@cli.command("claimable")
@click.argument("wallet")
@click.argument("ct")
@click.argument("currency_id", type=int)
@click.argument("start", type=int)
@click.argument("end", type=int)
@click.option("--by", type=click.Choice(["accruals", "blocks"]), default="accruals", show_default=True)
@click.pass_obj
def claimable_cmd(settings: Settings, wallet, ct, currency_id, start, end, by):
    """Claimable amount over a span of accruals or block numbers."""
    w, currency = Wallet(Address(wallet)), Currency(Address(ct), currency_id)

    async def body(ens: FeeFundEnsemble):
        if by == "accruals":
            return await ens.claimable_amount_by_accruals(w, currency, start, end)
        return await ens.claimable_amount_by_block_numbers(w, currency, start, end)

    console.print(f"[bold]claimable[/]: {_run(settings, body)}")


@cli.command("fully-claimed")
@click.argument("wallet")
@click.argument("ct")
@click.argument("currency_id", type=int)
@click.argument("accrual", type=int)
@click.pass_obj
def fully_claimed_cmd(settings: Settings, wallet, ct, currency_id, accrual):
    w, currency = Wallet(Address(wallet)), Currency(Address(ct), currency_id)

    async def body(ens: FeeFundEnsemble):
        return await ens.fully_claimed(w, currency, accrual)

    console.print(f"[bold]fully claimed[/]: {_run(settings, body)}")


@cli.command("staged")
@click.argument("wallet")
@click.argument("ct")
@click.argument("currency_id", type=int)
@click.pass_obj
def staged_cmd(settings: Settings, wallet, ct, currency_id):
    """Staged balance summed over all shards."""
    w, currency = Wallet(Address(wallet)), Currency(Address(ct), currency_id)

    async def body(ens: FeeFundEnsemble):
        return await ens.staged_balance(w, currency)

    console.print(f"[bold]staged[/]: {_run(settings, body)}")


@cli.command("claim")
@click.argument("wallet")
@click.argument("ct")
@click.argument("currency_id", type=int)
@click.argument("start", type=int)
@click.argument("end", type=int)
@click.option("--by", type=click.Choice(["accruals", "blocks"]), default="accruals", show_default=True)
@gas_options
@click.pass_obj
def claim_cmd(settings: Settings, wallet, ct, currency_id, start, end, by, gas_limit, gas_price):
    """Claim and stage fees; one transaction per overlapping shard."""
    w, currency = Wallet(Address(wallet)), Currency(Address(ct), currency_id)
    opts = _options(gas_limit, gas_price)

    async def body(ens: FeeFundEnsemble):
        if by == "accruals":
            return await ens.claim_and_stage_by_accruals(w, currency, start, end, opts)
        return await ens.claim_and_stage_by_block_numbers(w, currency, start, end, opts)

    _print_txs(_run(settings, body))


@cli.command("withdraw")
@click.argument("wallet")
@click.argument("ct")
@click.argument("currency_id", type=int)
@click.argument("amount", type=int)
@click.option("--standard", default="ERC20", show_default=True)
@gas_options
@click.pass_obj
def withdraw_cmd(settings: Settings, wallet, ct, currency_id, amount, standard, gas_limit, gas_price):
    """Withdraw AMOUNT (base units) from staged balances, oldest shard first."""
    w = Wallet(Address(wallet))
    money = MonetaryAmount(amount, Currency(Address(ct), currency_id))

    async def body(ens: FeeFundEnsemble):
        return await ens.withdraw(w, money, standard, _options(gas_limit, gas_price))

    _print_txs(_run(settings, body))


if __name__ == "__main__":
    cli()
