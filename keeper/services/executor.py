"""
Trigger execution engine.

One call to `execute` is one attempt, strictly ordered and blocking:

    lookup -> decode -> fetch state -> plan (quote) -> authorize -> submit

Nothing is cached between attempts: the vault state and the swap quote are
read again on every call. The first failure is tagged with the stage it
happened in and the trigger id, logged, and re-raised. Errors that are not
KeeperErrors (RPC failures, ValueErrors from the math) are wrapped into the
stage's KeeperError with the original as __cause__.
"""

import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import Iterator, Optional

from web3 import Web3

from ..adapters.base import SwapQuoteProvider
from ..adapters.one_inch import OneInchQuoteProvider
from ..adapters.unoswap import UnoswapQuoteProvider
from ..chain import Chain, make_web3
from ..config import Settings
from ..domain.models import ExecutionReceipt
from ..domain.position_math import MultiplyMath
from ..domain.triggers import TriggerRecord, decode_trigger
from .exceptions import DecodeError, KeeperError, PlanningFailed, StateUnavailable, SubmissionFailed
from .gas_price import BaseFeeOracle, EtherscanGasOracle, GasPriceCache, NodeGasOracle
from .planner import ExecutionPlanner
from .position_reader import PositionStateFetcher
from .signers import CallerAuthorizer, build_signer_resolver, preferred_signer
from .trigger_registry import TriggerRegistry
from .tx_service import TransactionSubmitter

# errors from outside the taxonomy are wrapped into the class of the stage they hit
STAGE_ERRORS = {
    "lookup": StateUnavailable,
    "decode": DecodeError,
    "fetch_state": StateUnavailable,
    "authorize": StateUnavailable,
    "plan": PlanningFailed,
    "submit": SubmissionFailed,
}


class TriggerExecutionEngine:

    def __init__(
        self,
        settings: Settings,
        registry: TriggerRegistry,
        fetcher: PositionStateFetcher,
        planner: ExecutionPlanner,
        authorizer: CallerAuthorizer,
        submitter: TransactionSubmitter,
        w3: Web3,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.registry = registry
        self.fetcher = fetcher
        self.planner = planner
        self.authorizer = authorizer
        self.submitter = submitter
        self.w3 = w3
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    @contextmanager
    def _stage(self, name: str, trigger_id: int) -> Iterator[None]:
        try:
            yield
        except KeeperError as exc:
            if exc.stage is None:
                exc.stage = name
            if exc.trigger_id is None:
                exc.trigger_id = trigger_id
            self._logger.error("Trigger execution failed: %s", exc)
            raise
        except Exception as exc:
            error_cls = STAGE_ERRORS[name]
            wrapped = error_cls(f"{exc.__class__.__name__}: {exc}", stage=name, trigger_id=trigger_id)
            self._logger.exception("Trigger execution failed: %s", wrapped)
            raise wrapped from exc

    def load_trigger(self, trigger_id: int) -> TriggerRecord:
        """Locate the TriggerAdded registration and decode its payload."""
        with self._stage("lookup", trigger_id):
            registration = self.registry.find(trigger_id)
        with self._stage("decode", trigger_id):
            return decode_trigger(
                registration.trigger_data,
                trigger_id=trigger_id,
                command_address=registration.command_address,
            )

    def execute(
        self,
        trigger_id: int,
        slippage: Optional[Decimal] = None,
        refund: int = 0,
        debug: bool = False,
    ) -> ExecutionReceipt:
        if slippage is None:
            slippage = self.settings.DEFAULT_SLIPPAGE_PCT / Decimal(100)

        trigger = self.load_trigger(trigger_id)
        for line in trigger.describe():
            self._logger.info(line)

        with self._stage("fetch_state", trigger_id):
            state = self.fetcher.fetch(trigger.position_ref)

        with self._stage("authorize", trigger_id):
            preferred = preferred_signer(self.w3, self.settings)

        if self.settings.is_production:
            fee_recipient = self.settings.FEE_RECIPIENT
        else:
            fee_recipient = preferred.address

        with self._stage("plan", trigger_id):
            plan = self.planner.plan(trigger, state, slippage, fee_recipient)

        with self._stage("authorize", trigger_id):
            signer = self.authorizer.resolve(preferred)

        with self._stage("submit", trigger_id):
            return self.submitter.submit_and_confirm(
                plan, signer, trigger_id, trigger.position_ref, refund=refund, debug=debug,
            )


def build_quote_provider(chain: Chain, settings: Settings) -> SwapQuoteProvider:
    """Aggregator on production, fixed-pool unoswap everywhere else."""
    if settings.is_production:
        return OneInchQuoteProvider(settings.ONE_INCH_API_URL, timeout_sec=settings.HTTP_TIMEOUT_SEC)
    return UnoswapQuoteProvider(chain.one_inch_router())


def build_gas_oracle(w3: Web3, settings: Settings) -> BaseFeeOracle:
    if settings.GAS_ORACLE == "node":
        return NodeGasOracle(w3)
    if settings.GAS_ORACLE == "etherscan":
        return EtherscanGasOracle(settings.ETHERSCAN_API_KEY, timeout_sec=settings.HTTP_TIMEOUT_SEC)
    raise ValueError(f"Unknown GAS_ORACLE `{settings.GAS_ORACLE}` (expected etherscan or node)")


def build_engine(settings: Settings, w3: Optional[Web3] = None) -> TriggerExecutionEngine:
    w3 = w3 or make_web3(settings)
    chain = Chain(w3, settings)
    gas_cache = GasPriceCache(build_gas_oracle(w3, settings), ttl_sec=settings.GAS_PRICE_TTL_SEC)
    return TriggerExecutionEngine(
        settings=settings,
        registry=TriggerRegistry(chain, settings.START_BLOCK_AUTOMATION_BOT),
        fetcher=PositionStateFetcher(chain),
        planner=ExecutionPlanner(chain, build_quote_provider(chain, settings), MultiplyMath(), settings),
        authorizer=CallerAuthorizer(build_signer_resolver(chain, settings)),
        submitter=TransactionSubmitter(chain, gas_cache, settings),
        w3=w3,
    )
