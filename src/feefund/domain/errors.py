from __future__ import annotations
import json
import traceback
from typing import Any, Sequence

from .models import TxHandle
from .value_types import Dimension

_LABELS: dict[str, tuple[str, str]] = {
    "accruals": ("startAccrual", "endAccrual"),
    "blocks":   ("startBlock", "endBlock"),
}


class FeeFundError(Exception):
    """Base class for every error raised by feefund."""


class OrdinalityMismatchError(FeeFundError, ValueError):
    def __init__(self, start: int, end: int, dimension: Dimension = "accruals") -> None:
        lo, hi = _LABELS[dimension]
        super().__init__(f"Ordinality mismatch of {lo} > {hi} ({start} > {end})")
        self.start = start
        self.end = end
        self.dimension = dimension


class InsufficientBalanceError(FeeFundError):
    def __init__(self, ceiling: int, requested: int) -> None:
        super().__init__(f"Unable to withdraw more than {ceiling}")
        self.ceiling = ceiling
        self.requested = requested


class RPCError(FeeFundError):
    def __init__(self, message: str, code: int | None = None, data: Any = None) -> None:
        super().__init__(f"RPC error code={code} message={message}")
        self.code = code
        self.rpc_message = message
        self.data = data


class CallException(RPCError):
    """A view call reverted on-chain."""


def _as_dict(err: BaseException | None) -> dict[str, Any] | None:
    if err is None:
        return None
    out: dict[str, Any] = {"type": type(err).__name__, "message": str(err)}
    if isinstance(err, ShardOperationError):
        out["operation"] = err.operation
        out["submitted"] = [h.tx_hash for h in err.submitted]
    # first few frames only
    frames = traceback.format_tb(err.__traceback__)[:5] if err.__traceback__ else []
    out["stack"] = [f.strip() for f in frames]
    out["inner"] = _as_dict(err.__cause__)
    return out


class ShardOperationError(FeeFundError):
    """Wraps a failed per-shard read or write; the original error is kept as `inner`."""

    def __init__(
        self,
        operation: str,
        inner: BaseException,
        submitted: Sequence[TxHandle] = (),
        shard: str | None = None,
    ) -> None:
        super().__init__(f"Unable to {operation}.")
        self.operation = operation
        self.inner = inner
        self.submitted: list[TxHandle] = list(submitted)
        self.shard = shard
        self.__cause__ = inner

    def as_dict(self) -> dict[str, Any]:
        return _as_dict(self) or {}

    def as_stringified(self) -> str:
        return json.dumps(self.as_dict(), indent=2)
