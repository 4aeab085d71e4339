from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple
from pydantic import BaseModel, Field

from .triggers import TriggerRecord


# ---------- engine records (in-memory, one attempt) ----------

@dataclass(frozen=True)
class PositionState:
    position_ref: int
    ilk: bytes
    collateral: Decimal           # normalized (18 decimals -> human units)
    debt: Decimal
    ratio: Decimal                # 1.5 == 150%
    oracle_price: Decimal
    liquidation_ratio: Decimal
    collateral_decimals: int
    gem: str
    gem_join: str
    funds_receiver: str
    fetched_at: float

    def to_native_collateral(self, amount: Decimal) -> int:
        return to_native(amount, self.collateral_decimals)


@dataclass(frozen=True)
class SwapRequest:
    from_token: str
    to_token: str
    from_amount: int              # native units
    slippage: Decimal             # fraction
    to_debt_asset: bool           # True when selling collateral for DAI
    expected_to_amount: Optional[int] = None
    recipient: Optional[str] = None


@dataclass(frozen=True)
class SwapQuote:
    from_token: str
    to_token: str
    from_amount: int
    to_amount: int
    min_to_amount: int
    router: str
    calldata: bytes


@dataclass(frozen=True)
class ExchangeData:
    from_token: str
    to_token: str
    from_amount: int
    to_amount: int
    min_to_amount: int
    exchange_address: str
    exchange_calldata: bytes

    def as_tuple(self) -> Tuple:
        return (
            self.from_token, self.to_token, self.from_amount, self.to_amount,
            self.min_to_amount, self.exchange_address, self.exchange_calldata,
        )


@dataclass(frozen=True)
class CdpData:
    gem_join: str
    funds_receiver: str
    cdp_id: int
    ilk: bytes
    required_debt: int
    borrow_collateral: int
    withdraw_collateral: int = 0
    withdraw_dai: int = 0
    deposit_dai: int = 0
    deposit_collateral: int = 0
    skip_flash_loan: bool = False
    method_name: str = ""

    def as_tuple(self) -> Tuple:
        return (
            self.gem_join, self.funds_receiver, self.cdp_id, self.ilk,
            self.required_debt, self.borrow_collateral, self.withdraw_collateral,
            self.withdraw_dai, self.deposit_dai, self.deposit_collateral,
            self.skip_flash_loan, self.method_name,
        )


@dataclass(frozen=True)
class ServiceRegistryArgs:
    jug: str
    manager: str
    multiply_proxy_actions: str
    lender: str
    fee_recipient: str
    exchange: str

    def as_tuple(self) -> Tuple:
        return (
            self.jug, self.manager, self.multiply_proxy_actions,
            self.lender, self.fee_recipient, self.exchange,
        )


@dataclass(frozen=True)
class ExecutionPlan:
    trigger: TriggerRecord
    method: str
    exchange: ExchangeData
    cdp: CdpData
    registry: ServiceRegistryArgs
    quote: SwapQuote
    execution_data: bytes
    state_fetched_at: float
    to_debt_asset: bool           # swap direction: collateral -> DAI


@dataclass(frozen=True)
class ExecutionReceipt:
    trigger_id: int
    position_ref: int
    transaction_hash: str
    gas_used: int
    block_number: int
    execution_data: bytes

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["execution_data"] = "0x" + self.execution_data.hex()
        return d


# ---------- helpers ----------

def to_native(amount: Decimal, decimals: int) -> int:
    """Human amount -> integer base units (floor, never rounds up)."""
    return int(abs(amount).scaleb(decimals).to_integral_value(rounding="ROUND_DOWN"))


def from_native(amount: int, decimals: int) -> Decimal:
    return Decimal(int(amount)).scaleb(-decimals)


def apply_slippage(amount: int, slippage: Decimal) -> int:
    """min amount out = amount * (1 - slippage), rounded down."""
    return int((Decimal(int(amount)) * (Decimal(1) - slippage)).to_integral_value(rounding="ROUND_DOWN"))


# ---------- HTTP surface ----------

class ExecuteTriggerRequest(BaseModel):
    slippage_pct: Decimal = Field(default=Decimal("0.5"), ge=0, lt=100)
    refund: int = Field(default=0, ge=0)
    debug: bool = False


class ExecuteTriggerResponse(BaseModel):
    trigger_id: int
    position_ref: int
    transaction_hash: str
    gas_used: int
    block_number: int
    execution_data: str


class TriggerInfoResponse(BaseModel):
    trigger_id: int
    position_ref: int
    trigger_type: int
    trigger_type_name: Optional[str] = None
    command_address: Optional[str] = None
    fields: Dict[str, Any] = {}
    summary: list[str] = []
