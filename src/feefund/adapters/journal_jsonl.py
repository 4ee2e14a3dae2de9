from __future__ import annotations
import os, json, asyncio, logging
from ..ports.journal import TxJournal
from ..domain.models import TxRecord

log = logging.getLogger(__name__)


class JSONLTxJournal(TxJournal):
    """
    Append-only record of submitted transactions, one JSON object per line.
    Appends are serialized so concurrent claims and withdrawals never interleave a line.
    """
    def __init__(self, path: str) -> None:
        self.path = path
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        self._lock = asyncio.Lock()

    async def append(self, rec: TxRecord) -> None:
        line = rec.to_json_line()
        async with self._lock:
            await asyncio.to_thread(self._write_line, self.path, line)
        log.debug("journaled %s tx %s on shard %s", rec.operation, rec.tx_hash, rec.shard)

    @staticmethod
    def _write_line(path: str, line: str) -> None:
        with open(path, "a", buffering=1) as f:
            f.write(line); f.flush(); os.fsync(f.fileno())


def load_journal(path: str, *, wallet: str | None = None, operation: str | None = None) -> list[TxRecord]:
    """
    Read journaled transactions back in submission order, optionally for one wallet
    (case-insensitive) or one operation. A torn trailing line from a crash mid-write is skipped.
    """
    if not os.path.exists(path):
        return []
    out: list[TxRecord] = []
    with open(path, "r") as f:
        for n, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                rec = TxRecord(**json.loads(line))
            except (ValueError, TypeError):
                log.warning("skipping unreadable journal line %s:%d", path, n)
                continue
            if wallet is not None and rec.wallet.lower() != wallet.lower():
                continue
            if operation is not None and rec.operation != operation:
                continue
            out.append(rec)
    return out
