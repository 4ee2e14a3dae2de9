from __future__ import annotations
import asyncio, itertools, logging, httpx
from typing import Any, Sequence
from eth_utils import function_signature_to_4byte_selector, to_checksum_address
from ..domain.errors import CallException, RPCError
from ..domain.models import ClosedAccrual, TxHandle, Wallet
from ..domain.value_types import Address, Standard, TxHash
from ..ports.shard import ShardBinding, TxOptions

log = logging.getLogger(__name__)

def _to_hex(n: int) -> str: return hex(int(n))
def _is_revert(code: Any, msg: str) -> bool: return code == 3 or "revert" in (msg or "").lower()

# --------- 32B word encoding (no eth_abi) ------------------------------------
def _enc_uint(n: int) -> bytes:
    n = int(n)
    if n < 0: raise ValueError(f"uint256 must be non-negative, got {n}")
    return n.to_bytes(32, "big")

def _enc_int(n: int) -> bytes: return int(n).to_bytes(32, "big", signed=True)

def _enc_address(a: str) -> bytes: return bytes.fromhex(to_checksum_address(a)[2:]).rjust(32, b"\x00")

def _enc_string(s: str) -> bytes:
    raw = s.encode()
    pad = (-len(raw)) % 32
    return _enc_uint(len(raw)) + raw + b"\x00" * pad

_STATIC = {"uint256": _enc_uint, "int256": _enc_int, "address": _enc_address}

def encode_call(signature: str, args: Sequence[Any]) -> str:
    """Encode `signature(args...)` calldata for static words and trailing strings."""
    types = signature[signature.index("(") + 1:-1].split(",") if not signature.endswith("()") else []
    if len(types) != len(args):
        raise ValueError(f"{signature}: expected {len(types)} args, got {len(args)}")
    head: list[bytes] = []
    tail = b""
    for t, v in zip(types, args):
        if t == "string":
            head.append(_enc_uint(32 * len(types) + len(tail)))
            tail += _enc_string(v)
        else:
            head.append(_STATIC[t](v))
    return "0x" + (function_signature_to_4byte_selector(signature) + b"".join(head) + tail).hex()

def _word(b: bytes, i: int) -> bytes: return b[i*32:(i+1)*32]
def _u256(w: bytes) -> int: return int.from_bytes(w, "big")
def _hex_to_bytes(h: str) -> bytes: return bytes.fromhex(h[2:] if h.startswith("0x") else h)

def _tx_params(sender: Address, to: Address, data: str, options: TxOptions | None) -> dict[str, str]:
    tx = {"from": to_checksum_address(sender), "to": to_checksum_address(to), "data": data}
    for keys, field in ((("gas_limit", "gasLimit", "gas"), "gas"), (("gas_price", "gasPrice"), "gasPrice"), (("nonce",), "nonce")):
        for k in keys:
            if options and options.get(k) is not None:
                tx[field] = _to_hex(options[k]); break
    return tx


class HttpxRPC:
    """Minimal Ethereum JSON-RPC client (eth_call, eth_sendTransaction)."""

    def __init__(self, rpc_url: str, timeout_s: int = 20, max_conn: int = 64,
                 transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.rpc_url = rpc_url
        self._ids = itertools.count(1)
        self.client = httpx.AsyncClient(
            http2=True,
            timeout=httpx.Timeout(timeout_s),
            limits=httpx.Limits(max_connections=max_conn, max_keepalive_connections=max_conn//2),
            transport=transport,
        )

    async def request(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc":"2.0","id":next(self._ids),"method":method,"params":params}
        # retry on 429 with simple backoff
        for attempt in range(3):
            r = await self.client.post(self.rpc_url, json=payload)
            if r.status_code == 429:
                ra = r.headers.get("Retry-After")
                delay = max(1.0, float(ra)) if ra and ra.isdigit() else (1.0 * (2**attempt))
                log.debug("%s rate limited, retrying in %.1fs", method, delay)
                await asyncio.sleep(delay); continue
            r.raise_for_status()
            data = r.json()
            if "error" in data:
                err = data["error"]
                code = err.get("code") if isinstance(err, dict) else None
                msg = err.get("message") if isinstance(err, dict) else str(err)
                if _is_revert(code, msg):
                    raise CallException(msg, code, err.get("data") if isinstance(err, dict) else None)
                raise RPCError(msg, code)
            return data.get("result")
        raise RPCError(f"Retries exhausted for {method}")

    async def call(self, to: Address, data: str, block: str = "latest") -> bytes:
        res = await self.request("eth_call", [{"to": to_checksum_address(to), "data": data}, block])
        return _hex_to_bytes(res or "0x")

    async def send_transaction(self, tx: dict[str, str]) -> TxHash:
        return TxHash(str(await self.request("eth_sendTransaction", [tx])).lower())

    async def aclose(self) -> None:
        await self.client.aclose()


class HttpxShardBinding(ShardBinding):
    """Fee-fund shard reached over JSON-RPC; transactions are signed by the node for `sender`."""

    def __init__(self, rpc: HttpxRPC, address: str, sender: Address | None = None) -> None:
        self.rpc = rpc
        self._address = Address(to_checksum_address(address))
        self.sender = sender

    @property
    def address(self) -> Address: return self._address

    def connect(self, wallet: Wallet) -> "HttpxShardBinding":
        return HttpxShardBinding(self.rpc, self._address, sender=wallet.address)

    async def _read(self, signature: str, *args: Any) -> bytes:
        return await self.rpc.call(self._address, encode_call(signature, args))

    async def _uint(self, signature: str, *args: Any) -> int:
        return _u256(_word(await self._read(signature, *args), 0))

    async def _send(self, operation: str, signature: str, args: Sequence[Any], options: TxOptions | None) -> TxHandle:
        if self.sender is None:
            raise ValueError(f"{operation} requires a signer-bound shard; call connect(wallet) first")
        tx = _tx_params(self.sender, self._address, encode_call(signature, args), options)
        tx_hash = await self.rpc.send_transaction(tx)
        return TxHandle(tx_hash=tx_hash, shard=self._address, operation=operation)

    async def closed_accruals_count(self, ct: Address, id: int) -> int:
        return await self._uint("closedAccrualsCount(address,uint256)", ct, id)

    async def closed_accruals_by_currency(self, ct: Address, id: int, index: int) -> ClosedAccrual:
        b = await self._read("closedAccrualsByCurrency(address,uint256,uint256)", ct, id, index)
        # (startBlock, endBlock, amount)
        return ClosedAccrual(start_block=_u256(_word(b, 0)), end_block=_u256(_word(b, 1)), amount=_u256(_word(b, 2)))

    async def claimable_amount_by_accruals(self, wallet: Address, ct: Address, id: int, start_accrual: int, end_accrual: int) -> int:
        return await self._uint("claimableAmountByAccruals(address,address,uint256,uint256,uint256)",
                                wallet, ct, id, start_accrual, end_accrual)

    async def claimable_amount_by_block_numbers(self, wallet: Address, ct: Address, id: int, start_block: int, end_block: int) -> int:
        return await self._uint("claimableAmountByBlockNumbers(address,address,uint256,uint256,uint256)",
                                wallet, ct, id, start_block, end_block)

    async def fully_claimed(self, wallet: Address, ct: Address, id: int, accrual: int) -> bool:
        return await self._uint("fullyClaimed(address,address,uint256,uint256)", wallet, ct, id, accrual) != 0

    async def staged_balance(self, wallet: Address, ct: Address, id: int) -> int:
        return await self._uint("stagedBalance(address,address,uint256)", wallet, ct, id)

    async def claim_and_stage_by_accruals(self, ct: Address, id: int, start_accrual: int, end_accrual: int,
                                          options: TxOptions | None = None) -> TxHandle:
        return await self._send("claim and stage by accruals", "claimAndStageByAccruals(address,uint256,uint256,uint256)",
                                (ct, id, start_accrual, end_accrual), options)

    async def claim_and_stage_by_block_numbers(self, ct: Address, id: int, start_block: int, end_block: int,
                                               options: TxOptions | None = None) -> TxHandle:
        return await self._send("claim and stage by block numbers", "claimAndStageByBlockNumbers(address,uint256,uint256,uint256)",
                                (ct, id, start_block, end_block), options)

    async def withdraw(self, amount: int, ct: Address, id: int, standard: Standard,
                       options: TxOptions | None = None) -> TxHandle:
        return await self._send("withdraw", "withdraw(int256,address,uint256,string)",
                                (amount, ct, id, standard), options)
