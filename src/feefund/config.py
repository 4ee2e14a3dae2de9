from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Any, Mapping


def _split_shards(raw: str) -> tuple[str, ...]:
    return tuple(s.strip() for s in raw.split(",") if s.strip())


@dataclass(slots=True, frozen=True)
class Settings:
    rpc_url: str
    shard_addresses: tuple[str, ...]     # deployment order
    first_accrual_offset: int = 0
    timeout_s: int = 20
    max_connections: int = 64
    journal_path: str | None = None

    def __post_init__(self) -> None:
        if not self.rpc_url:
            raise ValueError("rpc_url is required (--rpc / FEEFUND_RPC_URL)")
        if not self.shard_addresses:
            raise ValueError("at least one shard address is required (--shard / FEEFUND_SHARDS)")
        if self.first_accrual_offset < 0:
            raise ValueError(f"first_accrual_offset must be >= 0, got {self.first_accrual_offset}")
        if self.max_connections < 1:
            raise ValueError(f"max_connections must be >= 1, got {self.max_connections}")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None, **overrides: Any) -> "Settings":
        """Read FEEFUND_* variables; non-None `overrides` (e.g. CLI flags) win over the environment."""
        env = os.environ if env is None else env
        values: dict[str, Any] = {
            "rpc_url": env.get("FEEFUND_RPC_URL", ""),
            "shard_addresses": _split_shards(env.get("FEEFUND_SHARDS", "")),
            "first_accrual_offset": int(env.get("FEEFUND_FIRST_ACCRUAL_OFFSET", "0")),
            "timeout_s": int(env.get("FEEFUND_TIMEOUT_S", "20")),
            "max_connections": int(env.get("FEEFUND_MAX_CONNECTIONS", "64")),
            "journal_path": env.get("FEEFUND_JOURNAL") or None,
        }
        if overrides.get("shard_addresses") is not None:
            overrides["shard_addresses"] = _split_shards(",".join(overrides["shard_addresses"]))
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
