"""
Execution planner: turns (trigger, live vault state) into the Multiply Proxy
Actions call the executor will run.

Each TriggerType has exactly one handler; building a planner with a missing
handler fails immediately instead of at execution time.

  CLOSE_TO_COLLATERAL / CLOSE_TO_DAI
      sell collateral for DAI, repay everything; the variant decides whether
      leftover collateral or leftover DAI goes back to the owner.
  BASIC_BUY / BASIC_SELL
      move the ratio to targetCollRatio. `increase` picks the swap side:
      buy draws DAI and buys collateral, sell sells collateral and repays DAI.

Sizing is done in normalized units and converted to native units only when
the swap request and cdp data are built. A delta whose sign disagrees with
the trigger's direction is refused; otherwise deltas are used as absolute
values, and the origination fee is taken before slippage is applied.

Off production the market price is the oracle price and no aggregator round
trip happens (the quote provider wired for those networks synthesizes the
router calldata itself).
"""

import logging
import time
from decimal import Decimal
from typing import Callable, Dict, Optional, Tuple

from web3 import Web3

from ..adapters.base import SwapQuoteProvider
from ..chain import Chain
from ..config import Settings
from ..domain.models import (
    CdpData, ExchangeData, ExecutionPlan, PositionState, ServiceRegistryArgs,
    SwapQuote, SwapRequest, to_native,
)
from ..domain.position_math import DesiredState, MarketParams, PositionInfo, PositionMath
from ..domain.triggers import TriggerRecord, TriggerType
from .exceptions import QuoteUnavailable, StateUnavailable, UnsupportedTriggerType

DAI_DECIMALS = 18
RATIO_SCALE = Decimal(10_000)   # trigger ratios: 15000 == 150%

HandlerResult = Tuple[ExchangeData, CdpData, SwapQuote, bool]


class ExecutionPlanner:

    def __init__(
        self,
        chain: Chain,
        quotes: SwapQuoteProvider,
        math: PositionMath,
        settings: Settings,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ):
        self.chain = chain
        self.quotes = quotes
        self.math = math
        self.settings = settings
        self.clock = clock
        self._logger = logger or logging.getLogger(self.__class__.__name__)

        # market price == oracle price is only acceptable off production
        self.use_oracle_as_market_price = not settings.is_production
        self.dai = Web3.to_checksum_address(settings.DAI)

        self._handlers: Dict[TriggerType, Callable[[TriggerRecord, PositionState, Decimal], HandlerResult]] = {
            TriggerType.CLOSE_TO_COLLATERAL: lambda t, s, sl: self._plan_close(t, s, sl, to_collateral=True),
            TriggerType.CLOSE_TO_DAI: lambda t, s, sl: self._plan_close(t, s, sl, to_collateral=False),
            TriggerType.BASIC_BUY: lambda t, s, sl: self._plan_adjust(t, s, sl, increase=True),
            TriggerType.BASIC_SELL: lambda t, s, sl: self._plan_adjust(t, s, sl, increase=False),
        }
        missing = set(TriggerType) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No execution handler for {sorted(m.name for m in missing)}")

    # ---------- public API ----------

    def plan(
        self,
        trigger: TriggerRecord,
        state: PositionState,
        slippage: Decimal,
        fee_recipient: str,
    ) -> ExecutionPlan:
        kind = trigger.kind
        if kind is None:
            raise UnsupportedTriggerType(trigger.trigger_type, trigger_id=trigger.id)
        if state.position_ref != trigger.position_ref:
            raise StateUnavailable(
                f"State is for vault {state.position_ref}, trigger targets {trigger.position_ref}",
                trigger_id=trigger.id,
            )
        age = self.clock() - state.fetched_at
        if age > self.settings.STATE_MAX_AGE_SEC:
            raise StateUnavailable(
                f"Vault state is {age:.1f}s old (max {self.settings.STATE_MAX_AGE_SEC}s), fetch it again",
                trigger_id=trigger.id,
            )
        if not Decimal(0) <= slippage < Decimal(1):
            raise ValueError(f"slippage must be a fraction in [0, 1), got {slippage}")

        exchange, cdp, quote, to_debt_asset = self._handlers[kind](trigger, state, slippage)
        registry = self._service_registry(fee_recipient)
        execution_data = self._encode(kind.mpa_method, exchange, cdp, registry)

        self._logger.info(
            "Planned %s for vault %s: %s %s -> %s (min %s) via %s",
            kind.mpa_method, state.position_ref, exchange.from_amount,
            exchange.from_token, exchange.to_token, exchange.min_to_amount, exchange.exchange_address,
        )
        return ExecutionPlan(
            trigger=trigger,
            method=kind.mpa_method,
            exchange=exchange,
            cdp=cdp,
            registry=registry,
            quote=quote,
            execution_data=execution_data,
            state_fetched_at=state.fetched_at,
            to_debt_asset=to_debt_asset,
        )

    # ---------- helpers ----------

    def _market(self, state: PositionState, slippage: Decimal) -> MarketParams:
        if self.use_oracle_as_market_price:
            market_price = state.oracle_price
        else:
            self._logger.info("Requesting market price for %s", state.gem)
            market_price = self.quotes.market_price(state.gem, self.dai, 10 ** state.collateral_decimals)
        return MarketParams(
            oracle_price=state.oracle_price,
            market_price=market_price,
            origination_fee=self.settings.ORIGINATION_FEE,
            flash_loan_fee=self.settings.FLASH_LOAN_FEE,
            slippage=slippage,
        )

    def _base_cdp(self, state: PositionState, required_debt: int, borrow_collateral: int, skip_fl: bool) -> CdpData:
        return CdpData(
            gem_join=state.gem_join,
            funds_receiver=state.funds_receiver,
            cdp_id=state.position_ref,
            ilk=state.ilk,
            required_debt=required_debt,
            borrow_collateral=borrow_collateral,
            skip_flash_loan=skip_fl,
        )

    def _exchange_from(self, quote: SwapQuote, from_amount: int) -> ExchangeData:
        return ExchangeData(
            from_token=quote.from_token,
            to_token=quote.to_token,
            from_amount=from_amount,
            to_amount=quote.to_amount,
            min_to_amount=quote.min_to_amount,
            exchange_address=quote.router,
            exchange_calldata=quote.calldata,
        )

    def _service_registry(self, fee_recipient: str) -> ServiceRegistryArgs:
        s = self.settings
        return ServiceRegistryArgs(
            jug=Web3.to_checksum_address(s.MCD_JUG),
            manager=Web3.to_checksum_address(s.CDP_MANAGER),
            multiply_proxy_actions=Web3.to_checksum_address(s.MULTIPLY_PROXY_ACTIONS),
            lender=Web3.to_checksum_address(s.MCD_FLASH),
            fee_recipient=Web3.to_checksum_address(fee_recipient),
            exchange=Web3.to_checksum_address(s.EXCHANGE),
        )

    def _encode(self, method: str, exchange: ExchangeData, cdp: CdpData, registry: ServiceRegistryArgs) -> bytes:
        mpa = self.chain.multiply_proxy_actions()
        data = mpa.encode_abi(method, args=[exchange.as_tuple(), cdp.as_tuple(), registry.as_tuple()])
        return bytes(Web3.to_bytes(hexstr=data))

    # ---------- handlers ----------

    def _plan_close(self, trigger: TriggerRecord, state: PositionState, slippage: Decimal, to_collateral: bool) -> HandlerResult:
        market = self._market(state, slippage)
        params = self.math.close_params(
            market,
            PositionInfo(collateral=state.collateral, debt=state.debt),
            to_collateral,
        )
        from_amount = state.to_native_collateral(params.from_amount)
        if from_amount <= 0:
            raise QuoteUnavailable(f"Vault {state.position_ref} has no collateral to sell", trigger_id=trigger.id)

        quote = self.quotes.quote(SwapRequest(
            from_token=state.gem,
            to_token=self.dai,
            from_amount=from_amount,
            slippage=slippage,
            to_debt_asset=True,
            expected_to_amount=to_native(params.to_amount, DAI_DECIMALS),
            recipient=Web3.to_checksum_address(self.settings.EXCHANGE),
        ))
        cdp = self._base_cdp(
            state,
            required_debt=0,
            borrow_collateral=state.to_native_collateral(state.collateral),
            skip_fl=False,
        )
        return self._exchange_from(quote, from_amount), cdp, quote, True

    def _plan_adjust(self, trigger: TriggerRecord, state: PositionState, slippage: Decimal, increase: bool) -> HandlerResult:
        target = Decimal(int(trigger.as_dict()["target_coll_ratio"])) / RATIO_SCALE
        market = self._market(state, slippage)
        params = self.math.adjust_params(
            market,
            PositionInfo(collateral=state.collateral, debt=state.debt, min_coll_ratio=state.liquidation_ratio),
            DesiredState(target_coll_ratio=target, increase=increase),
        )
        if params.debt_delta == 0:
            raise QuoteUnavailable(
                f"Vault {state.position_ref} is already at target ratio {target}, nothing to swap",
                trigger_id=trigger.id,
            )
        # buy must draw debt, sell must repay it; the other sign moves away from target
        if (params.debt_delta > 0) != increase:
            raise QuoteUnavailable(
                f"Vault {state.position_ref} ratio {state.ratio:.4f} is on the wrong side of "
                f"target {target} for {trigger.kind.name}, nothing to do",
                trigger_id=trigger.id,
            )

        required_debt = to_native(params.debt_delta, DAI_DECIMALS)
        borrow_collateral = state.to_native_collateral(params.collateral_delta)
        fee = to_native(params.origination_fee, DAI_DECIMALS)

        if increase:
            from_token, to_token = self.dai, state.gem
            exchange_amount, expected_to = required_debt, borrow_collateral
            # the exchange keeps its fee out of the DAI before swapping
            swap_amount = required_debt - fee
        else:
            from_token, to_token = state.gem, self.dai
            exchange_amount, expected_to = borrow_collateral, required_debt
            swap_amount = borrow_collateral

        if swap_amount <= 0 or expected_to <= 0:
            raise QuoteUnavailable(
                f"Vault {state.position_ref} is already at target ratio {target}, nothing to swap",
                trigger_id=trigger.id,
            )

        quote = self.quotes.quote(SwapRequest(
            from_token=from_token,
            to_token=to_token,
            from_amount=swap_amount,
            slippage=slippage,
            to_debt_asset=not increase,
            expected_to_amount=expected_to,
            recipient=Web3.to_checksum_address(self.settings.EXCHANGE),
        ))
        cdp = self._base_cdp(
            state,
            required_debt=required_debt,
            borrow_collateral=borrow_collateral,
            skip_fl=params.skip_flash_loan,
        )
        return self._exchange_from(quote, exchange_amount), cdp, quote, not increase
