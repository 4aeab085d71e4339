"""
Position math used by the planner.

The planner only depends on the `PositionMath` interface. `MultiplyMath` is
the closed-form multiply model (same equations the Multiply Proxy Actions
frontends use), working in normalized units:

  - amounts are human (collateral units, DAI), never wei
  - ratios are plain fractions (1.5 == 150%)
  - fees and slippage are fractions (0.002 == 0.2%)

Increase (buy), with P' = marketPrice * (1 + slippage):

    debt = P' * (C * oracle - R * D) / (P' * R * (1 + FF) - oracle * (1 - OF))
    coll = debt * (1 - OF) / P'

Decrease (sell), with P' = marketPrice * (1 - slippage):

    debt = (C * oracle * P' - R * D * P') / (oracle * (1 + FF + OF + OF * FF) - P' * R)
    coll = debt * (1 + OF + FF) / P'
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, localcontext

PRECISION = 80

ZERO = Decimal(0)
ONE = Decimal(1)


@dataclass(frozen=True)
class MarketParams:
    oracle_price: Decimal
    market_price: Decimal
    origination_fee: Decimal      # OF
    flash_loan_fee: Decimal       # FF
    slippage: Decimal


@dataclass(frozen=True)
class PositionInfo:
    collateral: Decimal
    debt: Decimal
    min_coll_ratio: Decimal = ZERO


@dataclass(frozen=True)
class DesiredState:
    target_coll_ratio: Decimal
    increase: bool


@dataclass(frozen=True)
class CloseParams:
    from_amount: Decimal      # collateral sold
    to_amount: Decimal        # DAI expected
    min_to_amount: Decimal


@dataclass(frozen=True)
class AdjustParams:
    collateral_delta: Decimal     # signed
    debt_delta: Decimal           # signed
    origination_fee: Decimal      # DAI
    skip_flash_loan: bool


class PositionMath(ABC):

    @abstractmethod
    def close_params(self, market: MarketParams, info: PositionInfo, to_collateral: bool) -> CloseParams:
        ...

    @abstractmethod
    def adjust_params(self, market: MarketParams, info: PositionInfo, desired: DesiredState) -> AdjustParams:
        ...


class MultiplyMath(PositionMath):

    def close_params(self, market: MarketParams, info: PositionInfo, to_collateral: bool) -> CloseParams:
        with localcontext() as ctx:
            ctx.prec = PRECISION
            return self._close_params(market, info, to_collateral)

    def _close_params(self, market: MarketParams, info: PositionInfo, to_collateral: bool) -> CloseParams:
        OF, FF, s = market.origination_fee, market.flash_loan_fee, market.slippage
        if market.market_price <= 0:
            raise ValueError("market price must be > 0")

        if to_collateral:
            # sell just enough collateral to repay the debt (+fees), keep the rest
            final_debt = info.debt * (ONE + FF)
            from_amount = final_debt * (ONE + OF) / (market.market_price * (ONE - s))
            from_amount = min(from_amount, info.collateral)
        else:
            from_amount = info.collateral

        to_amount = from_amount * market.market_price * (ONE - OF)
        return CloseParams(
            from_amount=from_amount,
            to_amount=to_amount,
            min_to_amount=to_amount * (ONE - s),
        )

    def adjust_params(self, market: MarketParams, info: PositionInfo, desired: DesiredState) -> AdjustParams:
        with localcontext() as ctx:
            ctx.prec = PRECISION
            return self._adjust_params(market, info, desired)

    def _adjust_params(self, market: MarketParams, info: PositionInfo, desired: DesiredState) -> AdjustParams:
        OF, FF = market.origination_fee, market.flash_loan_fee
        oracle, R = market.oracle_price, desired.target_coll_ratio
        C, D = info.collateral, info.debt

        if desired.increase:
            mps = market.market_price * (ONE + market.slippage)
            denom = mps * R * (ONE + FF) - oracle * (ONE - OF)
            if denom == 0:
                raise ValueError("target ratio cannot be reached at this price")
            debt = mps * (C * oracle - R * D) / denom
            coll = debt * (ONE - OF) / mps
            # vault can mint the extra debt against current collateral alone
            skip_fl = bool(info.min_coll_ratio) and (D + debt) > 0 and \
                C * oracle / (D + debt) >= info.min_coll_ratio
            return AdjustParams(
                collateral_delta=coll,
                debt_delta=debt,
                origination_fee=debt * OF,
                skip_flash_loan=skip_fl,
            )

        mps = market.market_price * (ONE - market.slippage)
        denom = oracle * (ONE + FF + OF + OF * FF) - mps * R
        if denom == 0:
            raise ValueError("target ratio cannot be reached at this price")
        debt = (C * oracle * mps - R * D * mps) / denom
        coll = debt * (ONE + OF + FF) / mps
        # collateral can be withdrawn before repaying without breaching the floor
        skip_fl = bool(info.min_coll_ratio) and D > 0 and \
            (C - coll) * oracle / D >= info.min_coll_ratio
        return AdjustParams(
            collateral_delta=-coll,
            debt_delta=-debt,
            origination_fee=debt * OF,
            skip_flash_loan=skip_fl,
        )
