import httpx
import pytest
from click.testing import CliRunner

import feefund.cli as cli_mod
from feefund.adapters.rpc_httpx import HttpxRPC
from test_rpc_httpx import SHARD, Node

WALLET = "0x00000000000000000000000000000000000000a1"
ZERO = "0x0000000000000000000000000000000000000000"


_ENV = ("FEEFUND_RPC_URL", "FEEFUND_SHARDS", "FEEFUND_FIRST_ACCRUAL_OFFSET", "FEEFUND_TIMEOUT_S",
        "FEEFUND_MAX_CONNECTIONS", "FEEFUND_JOURNAL")


@pytest.fixture
def node(monkeypatch) -> Node:
    for name in _ENV:
        monkeypatch.delenv(name, raising=False)
    n = Node()
    n.clients = []

    def make_rpc(url, **kw):
        n.clients.append((url, kw))
        return HttpxRPC(url, transport=httpx.MockTransport(n))

    monkeypatch.setattr(cli_mod, "HttpxRPC", make_rpc)
    return n


def _invoke(*args: str):
    return CliRunner().invoke(cli_mod.cli, ["--rpc", "http://node.test", "--shard", SHARD, *args])


def test_spans(node) -> None:
    res = _invoke("spans", ZERO, "0")
    assert res.exit_code == 0, res.output
    assert "0..3" in res.output and "100..139" in res.output


def test_claimable_and_ordinality_error(node) -> None:
    res = _invoke("claimable", WALLET, ZERO, "0", "1", "3")
    assert res.exit_code == 0, res.output
    assert "claimable" in res.output and "3" in res.output

    res = _invoke("claimable", WALLET, ZERO, "0", "3", "1")
    assert res.exit_code != 0
    assert "Ordinality mismatch" in res.output


def test_withdraw_submits(node, tmp_path) -> None:
    journal = str(tmp_path / "txs.jsonl")
    res = _invoke("--journal", journal, "withdraw", WALLET, ZERO, "0", "5", "--gas-limit", "90000")
    assert res.exit_code == 0, res.output
    assert "withdraw" in res.output
    assert node.sent[-1]["gas"] == hex(90000)


def test_missing_shard_is_usage_error(node) -> None:
    res = CliRunner().invoke(cli_mod.cli, ["--rpc", "http://node.test", "staged", WALLET, ZERO, "0"])
    assert res.exit_code == 2


def test_settings_come_from_environment(node, tmp_path) -> None:
    journal = str(tmp_path / "txs.jsonl")
    env = {"FEEFUND_RPC_URL": "http://env.test", "FEEFUND_SHARDS": SHARD,
           "FEEFUND_MAX_CONNECTIONS": "7", "FEEFUND_JOURNAL": journal}
    res = CliRunner().invoke(cli_mod.cli, ["claim", WALLET, ZERO, "0", "0", "3"], env=env)
    assert res.exit_code == 0, res.output
    url, kw = node.clients[-1]
    assert url == "http://env.test" and kw["max_conn"] == 7
    assert len(node.sent) == 1
    with open(journal) as f:
        assert len(f.readlines()) == 1


def test_max_connections_flag_overrides_environment(node) -> None:
    res = CliRunner().invoke(cli_mod.cli, ["--rpc", "http://node.test", "--shard", SHARD,
                                           "--max-connections", "3", "staged", WALLET, ZERO, "0"],
                             env={"FEEFUND_MAX_CONNECTIONS": "7"})
    assert res.exit_code == 0, res.output
    assert node.clients[-1][1]["max_conn"] == 3


def test_missing_rpc_is_usage_error(node) -> None:
    res = CliRunner().invoke(cli_mod.cli, ["--shard", SHARD, "staged", WALLET, ZERO, "0"])
    assert res.exit_code == 2
    assert "rpc_url is required" in res.output
