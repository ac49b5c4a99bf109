from typing import Any

from hexbytes import HexBytes
from web3 import Web3


def to_json_safe(obj: Any) -> Any:
    """
    Recursively turn web3 receipts / AttributeDicts into plain JSON-able
    values so they can be logged and stored in Mongo.

    - HexBytes / bytes -> "0x..." str
    - ints above int64 -> str (Mongo cannot store them)
    - mappings and sequences recurse
    """
    if isinstance(obj, HexBytes):
        return Web3.to_hex(obj)
    if isinstance(obj, (bytes, bytearray)):
        return "0x" + bytes(obj).hex()
    if isinstance(obj, bool) or obj is None or isinstance(obj, (str, float)):
        return obj
    if isinstance(obj, int):
        return obj if -(2**63) <= obj < 2**63 else str(obj)
    if hasattr(obj, "items"):
        return {str(k): to_json_safe(v) for (k, v) in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [to_json_safe(v) for v in obj]
    return str(obj)
