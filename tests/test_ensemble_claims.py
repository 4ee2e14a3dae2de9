import pytest

from conftest import ETH, WALLET, make_shards
from feefund.adapters.journal_jsonl import JSONLTxJournal, load_journal
from feefund.application.ensemble import FeeFundEnsemble
from feefund.domain.errors import ShardOperationError


async def test_claim_by_accruals_one_tx_per_overlapping_shard(shards) -> None:
    ens = FeeFundEnsemble(shards)
    txs = await ens.claim_and_stage_by_accruals(WALLET, ETH, 1, 8, {"gas_limit": 800_000})
    assert [t.shard for t in txs] == [s.address for s in shards]
    assert shards[0].log[-1] == ("claim_and_stage_by_accruals", 1, 2)
    assert shards[1].log[-1] == ("claim_and_stage_by_accruals", 3, 7)
    assert shards[2].log[-1] == ("claim_and_stage_by_accruals", 8, 8)
    assert all(s.calls["connect"] == 1 for s in shards)


async def test_claim_by_block_numbers_skips_disjoint_shards(shards) -> None:
    ens = FeeFundEnsemble(shards)
    txs = await ens.claim_and_stage_by_block_numbers(WALLET, ETH, 35, 95)
    assert [t.shard for t in txs] == [shards[1].address, shards[2].address]
    assert shards[0].calls["claim_and_stage_by_block_numbers"] == 0
    assert shards[2].log[-1] == ("claim_and_stage_by_block_numbers", 80, 95)


async def test_claim_outside_ranges_submits_nothing(shards) -> None:
    ens = FeeFundEnsemble(shards)
    assert await ens.claim_and_stage_by_accruals(WALLET, ETH, 20, 30) == []


async def test_claim_failure_aborts_and_reports_submitted(shards) -> None:
    shards[1].fail_on.add("claim_and_stage_by_accruals")
    ens = FeeFundEnsemble(shards)
    with pytest.raises(ShardOperationError) as ei:
        await ens.claim_and_stage_by_accruals(WALLET, ETH, 0, 9)
    err = ei.value
    assert str(err) == "Unable to claim and stage by accruals."
    assert err.shard == shards[1].address
    assert [t.shard for t in err.submitted] == [shards[0].address]
    assert shards[2].calls["claim_and_stage_by_accruals"] == 0
    assert err.as_dict()["inner"]["type"] == "RuntimeError"


async def test_claims_are_journaled(shards, tmp_path) -> None:
    path = str(tmp_path / "journal" / "txs.jsonl")
    ens = FeeFundEnsemble(shards, journal=JSONLTxJournal(path))
    txs = await ens.claim_and_stage_by_accruals(WALLET, ETH, 2, 3)
    recs = load_journal(path)
    assert [r.tx_hash for r in recs] == [t.tx_hash for t in txs]
    assert (recs[0].start, recs[0].end, recs[0].dimension) == (2, 2, "accruals")
    assert recs[1].currency == ETH.key


class _BrokenJournal:
    def __init__(self) -> None:
        self.attempts = 0

    async def append(self, rec) -> None:
        self.attempts += 1
        raise OSError("No space left on device")


async def test_journal_failure_does_not_abort_the_batch(shards, caplog) -> None:
    journal = _BrokenJournal()
    ens = FeeFundEnsemble(shards, journal=journal)
    txs = await ens.claim_and_stage_by_accruals(WALLET, ETH, 0, 9)
    assert [t.shard for t in txs] == [s.address for s in shards]
    assert all(s.calls["claim_and_stage_by_accruals"] == 1 for s in shards)
    assert journal.attempts == 3
    assert "failed to journal" in caplog.text


async def test_claim_by_block_numbers_across_empty_middle_shard() -> None:
    shards = make_shards([2, 0, 3])
    ens = FeeFundEnsemble(shards)
    txs = await ens.claim_and_stage_by_block_numbers(WALLET, ETH, 5, 44)
    assert [t.shard for t in txs] == [shards[0].address, shards[2].address]
    assert shards[1].calls["claim_and_stage_by_block_numbers"] == 0
    assert shards[0].log[-1] == ("claim_and_stage_by_block_numbers", 5, 19)
    assert shards[2].log[-1] == ("claim_and_stage_by_block_numbers", 20, 44)
