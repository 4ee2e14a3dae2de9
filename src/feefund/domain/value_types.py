from __future__ import annotations
from typing import NewType, Literal

Address   = NewType("Address", str)    # 0x-prefixed, 40 hex chars
TxHash    = NewType("TxHash", str)     # 66-char 0x-hash
Dimension = Literal["accruals", "blocks"]
Standard  = str                        # "ERC20", "ETH", ...
