"""
Pytest configuration and fixtures for the keeper tests.
"""
from dataclasses import replace
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from hypothesis import strategies as st
from web3 import Web3

from keeper.chain import Chain
from keeper.config import Network, Settings
from keeper.domain.models import PositionState
from keeper.domain.triggers import TRIGGER_LAYOUTS, TriggerType

# ============================================================================
# HYPOTHESIS STRATEGIES
# ============================================================================

UINT256 = st.integers(min_value=0, max_value=2**256 - 1)
UINT64 = st.integers(min_value=0, max_value=2**64 - 1)

_FIELD_STRATEGIES = {
    "uint256": UINT256,
    "uint64": UINT64,
    "bool": st.booleans(),
}


@st.composite
def trigger_fields_strategy(draw, trigger_type: TriggerType):
    """Generate a valid field tuple for a trigger type's tail layout."""
    return tuple(draw(_FIELD_STRATEGIES[abi_type]) for _, abi_type in TRIGGER_LAYOUTS[trigger_type])


@st.composite
def trigger_payload_strategy(draw):
    """Generate (position_ref, trigger_type, fields) triples."""
    trigger_type = draw(st.sampled_from(list(TriggerType)))
    position_ref = draw(UINT256)
    fields = draw(trigger_fields_strategy(trigger_type))
    return position_ref, trigger_type, fields


# ============================================================================
# FIXTURES - Settings and chain
# ============================================================================

ADDR_GEM = "0x5555555555555555555555555555555555555555"
ADDR_JOIN = "0x6666666666666666666666666666666666666666"
ADDR_PROXY = "0x1111111111111111111111111111111111111111"
ADDR_OWNER = "0x2222222222222222222222222222222222222222"
ADDR_COMMAND = "0x4444444444444444444444444444444444444444"
ADDR_SIGNER = "0x3333333333333333333333333333333333333333"
ILK_ETH_A = b"ETH-A".ljust(32, b"\x00")

NOW = 1_000.0


def make_settings(network: Network = Network.HARDHAT, **overrides) -> Settings:
    base = Settings(
        NETWORK=network,
        RPC_URL="http://127.0.0.1:8545",
        PRIVATE_KEY="",
        ETHERSCAN_API_KEY="test-key",
        ONE_INCH_API_URL="https://aggregator.test/v4.0/1",
        AUTOMATION_BOT="0x6E87a7A0A03E51A741075fDf4D1FCce39a4Df01b",
        AUTOMATION_EXECUTOR="0x87607992FDd5eAe12201bFBE83432D469944EE1C",
        AUTOMATION_MCD_VIEW="0x55Dc2Be8020bCa72E58e665dC931E03B749ea5E0",
        START_BLOCK_AUTOMATION_BOT=14583413,
        CDP_MANAGER="0x5ef30b9986345249bc32d8928B7ee64DE9435E39",
        ILK_REGISTRY="0x5a464C28D19848f44199D003BeF5ecc87d090F87",
        MCD_SPOT="0x65C79fcB50Ca1594B025960e539eD7A9a6D434A3",
        MCD_JUG="0x19c0976f590D67707E62397C87829d896Dc0f1F1",
        MCD_FLASH="0x1EB4CF3A948E7D72A198fe073cCb8C7a948cD853",
        DAI="0x6b175474e89094c44da98b954eedeac495271d0f",
        MULTIPLY_PROXY_ACTIONS="0x2a49eae5cca3f050ebec729cf90cc910fadaf7a2",
        EXCHANGE="0xb5eb8cb6ced6b6f8e13bcd502fb489db4a726c7b",
        ONE_INCH_V4_ROUTER="0x1111111254fb6c44bac0bed2854e76f90643097d",
        FEE_RECIPIENT="0xC7b548AD9Cf38721810246C079b2d8083aba8909",
    )
    return replace(base, **overrides)


@pytest.fixture
def settings() -> Settings:
    """Non-production (hardhat fork) settings."""
    return make_settings(Network.HARDHAT)


@pytest.fixture
def mainnet_settings() -> Settings:
    return make_settings(Network.MAINNET)


@pytest.fixture
def offline_chain(settings) -> Chain:
    """Real contract objects for ABI encoding; no provider is ever hit."""
    return Chain(Web3(), settings)


@pytest.fixture
def mock_chain():
    chain = MagicMock()
    chain.w3 = MagicMock()
    return chain


# ============================================================================
# FIXTURES - Vault state
# ============================================================================

def make_state(
    collateral: str = "10",
    debt: str = "4000",
    oracle_price: str = "1000",
    liquidation_ratio: str = "1.5",
    position_ref: int = 42,
    fetched_at: float = NOW,
    collateral_decimals: int = 18,
) -> PositionState:
    c, d, p = Decimal(collateral), Decimal(debt), Decimal(oracle_price)
    return PositionState(
        position_ref=position_ref,
        ilk=ILK_ETH_A,
        collateral=c,
        debt=d,
        ratio=(c * p / d) if d else Decimal(0),
        oracle_price=p,
        liquidation_ratio=Decimal(liquidation_ratio),
        collateral_decimals=collateral_decimals,
        gem=ADDR_GEM,
        gem_join=ADDR_JOIN,
        funds_receiver=ADDR_OWNER,
        fetched_at=fetched_at,
    )


@pytest.fixture
def vault_state() -> PositionState:
    """10 ETH, 4000 DAI at 1000 DAI/ETH: 250% ratio."""
    return make_state()
