"""
Tests for the TriggerExecutionEngine orchestration.
"""
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from web3 import Web3

from keeper.adapters.one_inch import OneInchQuoteProvider
from keeper.adapters.unoswap import UnoswapQuoteProvider
from keeper.domain.models import ExecutionReceipt
from keeper.domain.triggers import TriggerType, encode_trigger
from keeper.services.exceptions import (
    AmbiguousOrMissingTrigger, DecodeError, NotAuthorized, PlanningFailed, StateUnavailable,
    SubmissionFailed,
)
from keeper.services.executor import (
    TriggerExecutionEngine, build_engine, build_gas_oracle, build_quote_provider,
)
from keeper.services.gas_price import EtherscanGasOracle, NodeGasOracle
from keeper.services.signers import AuthorizedSigner
from keeper.services.trigger_registry import TriggerRegistration

from conftest import ADDR_COMMAND, ADDR_SIGNER, make_settings, make_state

PREFERRED = AuthorizedSigner(address=ADDR_SIGNER)
RECEIPT = ExecutionReceipt(
    trigger_id=7, position_ref=42, transaction_hash="0xabc", gas_used=1, block_number=2, execution_data=b"",
)


def _registration(trigger_type=TriggerType.BASIC_BUY):
    if trigger_type is TriggerType.BASIC_BUY:
        raw = encode_trigger(42, trigger_type, 15000, 20000, 0, False, 0)
    else:
        raw = encode_trigger(42, trigger_type, 16000)
    return TriggerRegistration(
        trigger_id=7, command_address=ADDR_COMMAND, position_ref=42, trigger_data=raw, block_number=1,
    )


@pytest.fixture
def parts():
    registry, fetcher, planner, authorizer, submitter = (MagicMock() for _ in range(5))
    registry.find.return_value = _registration()
    fetcher.fetch.side_effect = lambda ref: make_state(position_ref=ref)
    authorizer.resolve.side_effect = lambda preferred: preferred
    submitter.submit_and_confirm.return_value = RECEIPT
    return registry, fetcher, planner, authorizer, submitter


def _engine(parts, settings, logger=None):
    registry, fetcher, planner, authorizer, submitter = parts
    return TriggerExecutionEngine(
        settings, registry, fetcher, planner, authorizer, submitter, w3=MagicMock(), logger=logger,
    )


@pytest.fixture(autouse=True)
def preferred():
    with patch("keeper.services.executor.preferred_signer", return_value=PREFERRED) as p:
        yield p


class TestExecute:

    def test_runs_all_stages_in_order(self, parts, settings):
        registry, fetcher, planner, authorizer, submitter = parts
        engine = _engine(parts, settings)

        receipt = engine.execute(7, slippage=Decimal("0.01"), refund=5, debug=True)

        assert receipt is RECEIPT
        registry.find.assert_called_once_with(7)
        fetcher.fetch.assert_called_once_with(42)
        trigger, state, slippage, fee_recipient = planner.plan.call_args[0]
        assert trigger.kind is TriggerType.BASIC_BUY
        assert trigger.command_address == ADDR_COMMAND
        assert state.position_ref == 42
        assert slippage == Decimal("0.01")
        authorizer.resolve.assert_called_once_with(PREFERRED)
        submitter.submit_and_confirm.assert_called_once_with(
            planner.plan.return_value, PREFERRED, 7, 42, refund=5, debug=True,
        )

    def test_default_slippage_from_settings(self, parts, settings):
        _engine(parts, settings).execute(7)
        assert parts[2].plan.call_args[0][2] == Decimal("0.005")

    def test_fee_recipient_by_network(self, parts, settings, mainnet_settings):
        _engine(parts, settings).execute(7)
        assert parts[2].plan.call_args[0][3] == ADDR_SIGNER

        _engine(parts, mainnet_settings).execute(7)
        assert parts[2].plan.call_args[0][3] == mainnet_settings.FEE_RECIPIENT

    def test_state_is_fetched_on_every_attempt(self, parts, settings):
        registry, fetcher, planner, _, _ = parts
        engine = _engine(parts, settings)

        engine.execute(7)
        engine.execute(7)

        assert fetcher.fetch.call_count == 2
        first_state = planner.plan.call_args_list[0][0][1]
        second_state = planner.plan.call_args_list[1][0][1]
        assert first_state is not second_state


class TestFailures:

    def test_lookup_failure_is_tagged(self, parts, settings):
        registry = parts[0]
        registry.find.side_effect = AmbiguousOrMissingTrigger(7, 2)

        with pytest.raises(AmbiguousOrMissingTrigger) as exc:
            _engine(parts, settings).execute(7)
        assert exc.value.stage == "lookup"
        assert "stage=lookup" in str(exc.value)

    def test_state_failure_stops_before_planning(self, parts, settings):
        _, fetcher, planner, authorizer, submitter = parts
        fetcher.fetch.side_effect = StateUnavailable("rpc down")

        with pytest.raises(StateUnavailable) as exc:
            _engine(parts, settings).execute(7)

        assert exc.value.stage == "fetch_state"
        assert exc.value.trigger_id == 7
        planner.plan.assert_not_called()
        submitter.submit_and_confirm.assert_not_called()

    def test_authorization_failure_sends_nothing(self, parts, settings):
        _, _, _, authorizer, submitter = parts
        authorizer.resolve.side_effect = NotAuthorized("not a caller")

        with pytest.raises(NotAuthorized) as exc:
            _engine(parts, settings).execute(7)
        assert exc.value.stage == "authorize"
        submitter.submit_and_confirm.assert_not_called()

    def test_decode_failure(self, parts, settings):
        parts[0].find.return_value = TriggerRegistration(
            trigger_id=7, command_address=ADDR_COMMAND, position_ref=42, trigger_data=b"\x00" * 33, block_number=1,
        )
        with pytest.raises(DecodeError) as exc:
            _engine(parts, settings).execute(7)
        assert exc.value.stage == "decode"

    def test_send_error_is_wrapped_with_context(self, parts, settings):
        submitter = parts[4]
        cause = ValueError("nonce too low")
        submitter.submit_and_confirm.side_effect = cause
        logger = MagicMock()

        with pytest.raises(SubmissionFailed) as exc:
            _engine(parts, settings, logger=logger).execute(7)

        assert exc.value.stage == "submit"
        assert exc.value.trigger_id == 7
        assert exc.value.__cause__ is cause
        assert "nonce too low" in str(exc.value)
        logger.exception.assert_called_once()

    @pytest.mark.parametrize("index, method, stage, error_cls", [
        (1, "fetch", "fetch_state", StateUnavailable),
        (2, "plan", "plan", PlanningFailed),
        (3, "resolve", "authorize", StateUnavailable),
    ])
    def test_foreign_errors_take_the_stage_class(self, parts, settings, index, method, stage, error_cls):
        getattr(parts[index], method).side_effect = ValueError("target ratio cannot be reached")

        with pytest.raises(error_cls) as exc:
            _engine(parts, settings).execute(7)

        assert exc.value.stage == stage
        assert exc.value.trigger_id == 7
        assert isinstance(exc.value.__cause__, ValueError)
        parts[4].submit_and_confirm.assert_not_called()


class TestWiring:

    def test_quote_provider_by_network(self, offline_chain, settings, mainnet_settings):
        assert isinstance(build_quote_provider(offline_chain, settings), UnoswapQuoteProvider)
        assert isinstance(build_quote_provider(offline_chain, mainnet_settings), OneInchQuoteProvider)

    def test_gas_oracle_by_config(self, settings):
        w3 = MagicMock()
        assert isinstance(build_gas_oracle(w3, settings), EtherscanGasOracle)
        assert isinstance(build_gas_oracle(w3, make_settings(GAS_ORACLE="node")), NodeGasOracle)
        with pytest.raises(ValueError):
            build_gas_oracle(w3, make_settings(GAS_ORACLE="blocknative"))

    def test_build_engine_offline(self, settings):
        engine = build_engine(settings, w3=Web3())
        assert isinstance(engine.planner.quotes, UnoswapQuoteProvider)
        assert engine.submitter.gas_cache.ttl_sec == settings.GAS_PRICE_TTL_SEC
