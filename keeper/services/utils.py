from typing import Any
from hexbytes import HexBytes
from web3 import Web3

def to_json_safe(obj: Any) -> Any:
    """
    Recursively convert web3 / HexBytes-heavy structures into plain
    JSON-serializable primitives (dict, list, str, int, float, bool, None).

    - HexBytes -> "0x..." str
    - bytes    -> "0x..." str
    - dict / AttributeDict -> {k: to_json_safe(v)}
    - list/tuple -> [to_json_safe(v), ...]
    - everything else -> unchanged if natively serializable, else str(obj)
    """
    if isinstance(obj, HexBytes):
        return Web3.to_hex(obj)

    if isinstance(obj, (bytes, bytearray)):
        return "0x" + bytes(obj).hex()

    if isinstance(obj, (str, int, float, bool)) or obj is None:
        return obj

    # receipts come back as AttributeDict (a Mapping, not a dict)
    if hasattr(obj, "items"):
        return {str(k): to_json_safe(v) for (k, v) in obj.items()}

    if isinstance(obj, (list, tuple, set)):
        return [to_json_safe(v) for v in obj]

    return str(obj)


def int_to_topic(value: int) -> str:
    """uint256 -> 32-byte hex topic, as used for indexed event args."""
    return "0x" + format(int(value), "x").rjust(64, "0")
