"""
Tests for the multiply position math.
"""
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal, getcontext, localcontext

import pytest

from keeper.domain.position_math import (
    DesiredState, MarketParams, MultiplyMath, PositionInfo,
)

TOLERANCE = Decimal("1e-20")


def _market(price="1000", oracle="1000", of="0", ff="0", slippage="0"):
    return MarketParams(
        oracle_price=Decimal(oracle),
        market_price=Decimal(price),
        origination_fee=Decimal(of),
        flash_loan_fee=Decimal(ff),
        slippage=Decimal(slippage),
    )


@pytest.fixture
def math():
    return MultiplyMath()


class TestAdjust:

    def test_increase_reaches_target_without_fees(self, math):
        info = PositionInfo(collateral=Decimal(10), debt=Decimal(4000))
        params = math.adjust_params(_market(), info, DesiredState(Decimal(2), increase=True))

        assert params.debt_delta > 0
        assert params.collateral_delta > 0
        new_ratio = (info.collateral + params.collateral_delta) * 1000 / (info.debt + params.debt_delta)
        assert abs(new_ratio - 2) < TOLERANCE

    def test_decrease_reaches_target_without_fees(self, math):
        info = PositionInfo(collateral=Decimal(10), debt=Decimal(8000))
        params = math.adjust_params(_market(), info, DesiredState(Decimal("1.5"), increase=False))

        assert params.debt_delta < 0
        assert params.collateral_delta < 0
        new_ratio = (info.collateral + params.collateral_delta) * 1000 / (info.debt + params.debt_delta)
        assert abs(new_ratio - Decimal("1.5")) < TOLERANCE

    def test_origination_fee_is_charged_on_debt(self, math):
        info = PositionInfo(collateral=Decimal(10), debt=Decimal(4000))
        params = math.adjust_params(
            _market(of="0.002", slippage="0.005"), info, DesiredState(Decimal(2), increase=True),
        )
        assert params.origination_fee == params.debt_delta * Decimal("0.002")

    def test_skip_flash_loan_from_liquidation_ratio(self, math):
        desired = DesiredState(Decimal(2), increase=True)
        safe = PositionInfo(collateral=Decimal(10), debt=Decimal(4000), min_coll_ratio=Decimal("1.5"))
        tight = PositionInfo(collateral=Decimal(10), debt=Decimal(4000), min_coll_ratio=Decimal("1.9"))
        unknown = PositionInfo(collateral=Decimal(10), debt=Decimal(4000))

        assert math.adjust_params(_market(), safe, desired).skip_flash_loan is True
        assert math.adjust_params(_market(), tight, desired).skip_flash_loan is False
        assert math.adjust_params(_market(), unknown, desired).skip_flash_loan is False

    def test_unreachable_target(self, math):
        # market * R == oracle with no fees -> degenerate denominator
        info = PositionInfo(collateral=Decimal(10), debt=Decimal(4000))
        with pytest.raises(ValueError):
            math.adjust_params(_market(), info, DesiredState(Decimal(1), increase=True))


class TestClose:

    def test_close_to_dai_sells_everything(self, math):
        info = PositionInfo(collateral=Decimal(10), debt=Decimal(4000))
        params = math.close_params(_market(of="0.002", slippage="0.01"), info, to_collateral=False)

        assert params.from_amount == Decimal(10)
        assert params.to_amount == Decimal(10) * 1000 * Decimal("0.998")
        assert params.min_to_amount == params.to_amount * Decimal("0.99")

    def test_close_to_collateral_sells_just_enough(self, math):
        info = PositionInfo(collateral=Decimal(10), debt=Decimal(4000))
        params = math.close_params(_market(of="0.002", slippage="0.005"), info, to_collateral=True)

        expected = Decimal(4000) * Decimal("1.002") / (Decimal(1000) * Decimal("0.995"))
        assert abs(params.from_amount - expected) < TOLERANCE
        assert params.from_amount < info.collateral
        assert params.min_to_amount <= params.to_amount

    def test_close_to_collateral_capped_by_collateral(self, math):
        info = PositionInfo(collateral=Decimal(1), debt=Decimal(4000))
        params = math.close_params(_market(), info, to_collateral=True)
        assert params.from_amount == Decimal(1)

    def test_zero_market_price(self, math):
        info = PositionInfo(collateral=Decimal(1), debt=Decimal(1))
        with pytest.raises(ValueError):
            math.close_params(_market(price="0"), info, to_collateral=False)


class TestPrecision:

    INFO = PositionInfo(collateral=Decimal(10), debt=Decimal(4000))
    DESIRED = DesiredState(Decimal(2), increase=True)

    def test_result_independent_of_caller_context(self, math):
        market = _market(of="0.002", slippage="0.005")
        expected = math.adjust_params(market, self.INFO, self.DESIRED)

        with localcontext() as ctx:
            ctx.prec = 6
            low = math.adjust_params(market, self.INFO, self.DESIRED)
            assert getcontext().prec == 6

        assert low == expected
        # more digits than the default 28-digit context carries
        assert len(expected.debt_delta.as_tuple().digits) > 28

    def test_same_result_in_worker_thread(self, math):
        market = _market(of="0.002", slippage="0.005")
        expected = math.adjust_params(market, self.INFO, self.DESIRED)

        with ThreadPoolExecutor(max_workers=1) as pool:
            in_thread = pool.submit(math.adjust_params, market, self.INFO, self.DESIRED).result()
            close_in_thread = pool.submit(math.close_params, market, self.INFO, True).result()

        assert in_thread == expected
        assert close_in_thread == math.close_params(market, self.INFO, True)
