"""
Trigger payload codec.

A trigger is stored on-chain as ABI-encoded bytes. The first two words are
always the position reference (cdp id) and a 16-bit type tag; the rest of
the payload follows a per-type schema:

    CLOSE_TO_COLLATERAL / CLOSE_TO_DAI
        (uint256 cdpId, uint16 type, uint256 stopLossLevel)

    BASIC_BUY / BASIC_SELL
        (uint256 cdpId, uint16 type, uint256 execCollRatio, uint256 targetCollRatio,
         uint256 maxBuyOrMinSellPrice, bool continuous, uint64 deviation)

Ratios are expressed in basis points of a percent (15000 == 150%).
Decoding is pure: no chain access, no mutation.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional, Tuple

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError
from web3 import Web3

from ..services.exceptions import DecodeError

WORD = 32
HEAD_TYPES = ["uint256", "uint16"]


class TriggerType(IntEnum):
    CLOSE_TO_COLLATERAL = 1
    CLOSE_TO_DAI = 2
    BASIC_BUY = 3
    BASIC_SELL = 4

    @property
    def is_close(self) -> bool:
        return self in (TriggerType.CLOSE_TO_COLLATERAL, TriggerType.CLOSE_TO_DAI)

    @property
    def mpa_method(self) -> str:
        return MPA_METHODS[self]


# (name, abi type) after the fixed head
TRIGGER_LAYOUTS: Dict[TriggerType, List[Tuple[str, str]]] = {
    TriggerType.CLOSE_TO_COLLATERAL: [("stop_loss_level", "uint256")],
    TriggerType.CLOSE_TO_DAI: [("stop_loss_level", "uint256")],
    TriggerType.BASIC_BUY: [
        ("exec_coll_ratio", "uint256"),
        ("target_coll_ratio", "uint256"),
        ("max_buy_price", "uint256"),
        ("continuous", "bool"),
        ("deviation", "uint64"),
    ],
    TriggerType.BASIC_SELL: [
        ("exec_coll_ratio", "uint256"),
        ("target_coll_ratio", "uint256"),
        ("min_sell_price", "uint256"),
        ("continuous", "bool"),
        ("deviation", "uint64"),
    ],
}

MPA_METHODS: Dict[TriggerType, str] = {
    TriggerType.CLOSE_TO_COLLATERAL: "closeVaultExitCollateral",
    TriggerType.CLOSE_TO_DAI: "closeVaultExitDai",
    TriggerType.BASIC_BUY: "increaseMultiple",
    TriggerType.BASIC_SELL: "decreaseMultiple",
}


@dataclass(frozen=True)
class TriggerRecord:
    id: int
    position_ref: int
    trigger_type: int                  # raw tag, see `kind`
    fields: Tuple[Any, ...] = ()
    raw: bytes = b""
    command_address: Optional[str] = None
    names: Tuple[str, ...] = field(default=(), compare=False)

    @property
    def kind(self) -> Optional[TriggerType]:
        try:
            return TriggerType(self.trigger_type)
        except ValueError:
            return None

    def as_dict(self) -> Dict[str, Any]:
        return dict(zip(self.names, self.fields))

    def describe(self) -> List[str]:
        kind = self.kind
        out = [
            f"Trigger ID: {self.id}",
            f"Command Address: {self.command_address}",
            f"Vault ID: {self.position_ref}",
            f"Trigger Type: {kind.name if kind else self.trigger_type}",
        ]
        for name, value in zip(self.names, self.fields):
            if name.endswith("coll_ratio"):
                out.append(f"{name}: {value / 100}%")
            else:
                out.append(f"{name}: {value}")
        return out


def _layout(trigger_type: TriggerType) -> List[Tuple[str, str]]:
    return TRIGGER_LAYOUTS[trigger_type]


def decode_trigger(
    raw: bytes | str,
    trigger_type: Optional[int] = None,
    trigger_id: int = 0,
    command_address: Optional[str] = None,
) -> TriggerRecord:
    """
    Decode `raw` into a TriggerRecord.

    Fails with DecodeError on structural problems only: wrong length, bad
    padding, or a `trigger_type` hint that disagrees with the encoded tag.
    Unknown tags decode to a record with empty fields; rejecting them is the
    planner's job.
    """
    if isinstance(raw, str):
        try:
            raw = bytes(Web3.to_bytes(hexstr=raw))
        except ValueError as exc:
            raise DecodeError(f"Trigger data is not valid hex: {exc}") from exc
    raw = bytes(raw)

    if len(raw) < WORD * len(HEAD_TYPES) or len(raw) % WORD:
        raise DecodeError(f"Trigger data has invalid length {len(raw)}")

    try:
        position_ref, tag = decode(HEAD_TYPES, raw[: WORD * len(HEAD_TYPES)])
    except DecodingError as exc:
        raise DecodeError(f"Malformed trigger head: {exc}") from exc

    if trigger_type is not None and int(trigger_type) != tag:
        raise DecodeError(f"Trigger type mismatch: expected {int(trigger_type)}, payload has {tag}")

    try:
        kind = TriggerType(tag)
    except ValueError:
        return TriggerRecord(
            id=int(trigger_id),
            position_ref=int(position_ref),
            trigger_type=int(tag),
            raw=raw,
            command_address=command_address,
        )

    layout = _layout(kind)
    expected = WORD * (len(HEAD_TYPES) + len(layout))
    if len(raw) != expected:
        raise DecodeError(f"{kind.name} trigger data must be {expected} bytes, got {len(raw)}")

    try:
        values = decode(HEAD_TYPES + [t for _, t in layout], raw)
    except DecodingError as exc:
        raise DecodeError(f"Malformed {kind.name} trigger data: {exc}") from exc

    return TriggerRecord(
        id=int(trigger_id),
        position_ref=int(position_ref),
        trigger_type=int(tag),
        fields=tuple(values[len(HEAD_TYPES):]),
        raw=raw,
        command_address=command_address,
        names=tuple(n for n, _ in layout),
    )


def encode_trigger(position_ref: int, trigger_type: TriggerType, *fields: Any) -> bytes:
    """Inverse of decode_trigger for the known trigger types."""
    layout = _layout(TriggerType(trigger_type))
    if len(fields) != len(layout):
        raise ValueError(f"{TriggerType(trigger_type).name} expects {len(layout)} fields, got {len(fields)}")
    try:
        return encode(HEAD_TYPES + [t for _, t in layout], [position_ref, int(trigger_type), *fields])
    except EncodingError as exc:
        raise ValueError(f"Error encoding trigger data: {exc}") from exc
