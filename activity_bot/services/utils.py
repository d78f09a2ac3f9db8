from decimal import Decimal
from enum import Enum
from typing import Any, Mapping

from hexbytes import HexBytes
from pydantic import BaseModel
from web3 import Web3


def to_json_safe(obj: Any) -> Any:
    """
    Recursively convert web3 receipts / pydantic outcomes into plain
    JSON-serializable primitives.

    - HexBytes / bytes -> "0x..." str
    - Decimal          -> str (keeps exact digits)
    - Enum             -> its value
    - BaseModel        -> its dict dump, converted
    - mappings (AttributeDict included) -> {k: to_json_safe(v)}
    - list/tuple/set   -> [to_json_safe(v), ...]
    - everything else  -> unchanged if natively serializable, else str(obj)
    """
    if isinstance(obj, HexBytes):
        return Web3.to_hex(obj)

    if isinstance(obj, (bytes, bytearray)):
        return "0x" + bytes(obj).hex()

    if isinstance(obj, Enum):
        return obj.value

    if isinstance(obj, (str, int, float, bool)) or obj is None:
        return obj

    if isinstance(obj, Decimal):
        return str(obj)

    if isinstance(obj, BaseModel):
        return to_json_safe(obj.model_dump())

    if isinstance(obj, Mapping):
        return {str(k): to_json_safe(v) for (k, v) in obj.items()}

    if isinstance(obj, (list, tuple, set)):
        return [to_json_safe(v) for v in obj]

    return str(obj)


def tx_hash_hex(tx_hash: Any) -> str:
    """web3 returns HexBytes; .hex() drops the 0x prefix on recent hexbytes."""
    if isinstance(tx_hash, (bytes, bytearray)):
        return Web3.to_hex(tx_hash)
    s = str(tx_hash)
    return s if s.startswith("0x") else "0x" + s
