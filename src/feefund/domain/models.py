from __future__ import annotations
import json
from dataclasses import asdict, dataclass
from .value_types import Address, Dimension, TxHash


@dataclass(slots=True, frozen=True, eq=False)
class Currency:
    ct: Address
    id: int = 0

    @property
    def key(self) -> str: return f"{str(self.ct).lower()}-{int(self.id)}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Currency):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int: return hash(self.key)


@dataclass(slots=True, frozen=True)
class Wallet:
    address: Address


@dataclass(slots=True, frozen=True)
class MonetaryAmount:
    amount: int
    currency: Currency


@dataclass(slots=True, frozen=True)
class ClosedAccrual:
    start_block: int
    end_block: int
    amount: int = 0


@dataclass(slots=True, frozen=True)
class Decomposition:
    """Inclusive accrual and block bounds of one shard for one currency."""
    start_accrual: int
    end_accrual: int
    start_block: int
    end_block: int

    @property
    def accruals(self) -> int: return self.end_accrual - self.start_accrual + 1

    def is_empty(self) -> bool: return self.accruals <= 0

    def bounds(self, dimension: Dimension) -> tuple[int, int]:
        if dimension == "accruals":
            return self.start_accrual, self.end_accrual
        return self.start_block, self.end_block

    def contains_accrual(self, accrual: int) -> bool:
        return self.start_accrual <= accrual <= self.end_accrual


@dataclass(slots=True, frozen=True)
class TxHandle:
    tx_hash: TxHash
    shard: Address
    operation: str


@dataclass(slots=True, frozen=True)
class TxRecord:
    tx_hash: str
    shard: str
    operation: str
    wallet: str
    currency: str
    amount: str | None = None      # big ints as strings
    start: int | None = None
    end: int | None = None
    dimension: str | None = None
    submitted_at: float = 0.0

    def to_json_line(self) -> str:
        # unset fields are omitted
        return json.dumps({k: v for k, v in asdict(self).items() if v is not None}, separators=(",", ":")) + "\n"
