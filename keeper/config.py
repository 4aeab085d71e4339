import os
from decimal import Decimal
from dotenv import load_dotenv
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache

load_dotenv()


class Network(str, Enum):
    MAINNET = "mainnet"
    GOERLI = "goerli"
    HARDHAT = "hardhat"
    LOCAL = "local"

    @property
    def is_production(self) -> bool:
        return self is Network.MAINNET

    @property
    def is_local(self) -> bool:
        return self in (Network.HARDHAT, Network.LOCAL)


@dataclass
class Settings:
    # signing / chain
    NETWORK: Network
    RPC_URL: str
    PRIVATE_KEY: str  # hex 0x..., empty -> node account #0

    # external APIs
    ETHERSCAN_API_KEY: str
    ONE_INCH_API_URL: str

    # automation system
    AUTOMATION_BOT: str
    AUTOMATION_EXECUTOR: str
    AUTOMATION_MCD_VIEW: str
    START_BLOCK_AUTOMATION_BOT: int

    # maker
    CDP_MANAGER: str
    ILK_REGISTRY: str
    MCD_SPOT: str
    MCD_JUG: str
    MCD_FLASH: str
    DAI: str

    # multiply
    MULTIPLY_PROXY_ACTIONS: str
    EXCHANGE: str
    ONE_INCH_V4_ROUTER: str
    FEE_RECIPIENT: str

    # trade policy
    DEFAULT_SLIPPAGE_PCT: Decimal = Decimal("0.5")
    ORIGINATION_FEE: Decimal = Decimal("0.002")
    FLASH_LOAN_FEE: Decimal = Decimal("0")
    STATE_MAX_AGE_SEC: float = 30.0

    # gas
    GAS_LIMIT_MULTIPLIER: Decimal = Decimal("1.20")
    DEFAULT_GAS_ESTIMATE: int = 2_000_000
    PRIORITY_FEE_GWEI: Decimal = Decimal("2")
    GAS_PRICE_TTL_SEC: float = 10.0
    GAS_ORACLE: str = "etherscan"      # etherscan | node

    # timeouts
    HTTP_TIMEOUT_SEC: float = 10.0
    RECEIPT_TIMEOUT_SEC: float = 300.0

    # test networks only
    IMPERSONATION_FUNDING_WEI: int = 10**18

    # generic
    LOG_LEVEL: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.NETWORK.is_production


@lru_cache()
def get_settings() -> Settings:
    return Settings(
        NETWORK=Network(os.environ.get("NETWORK", "mainnet")),
        RPC_URL=os.environ["RPC_URL"],
        PRIVATE_KEY=os.environ.get("PRIVATE_KEY", ""),  # keep empty when missing

        ETHERSCAN_API_KEY=os.environ.get("ETHERSCAN_API_KEY", ""),
        ONE_INCH_API_URL=os.environ.get("ONE_INCH_API_URL", "https://oasis.api.enterprise.1inch.exchange/v4.0/1"),

        AUTOMATION_BOT=os.environ.get("AUTOMATION_BOT", "0x6E87a7A0A03E51A741075fDf4D1FCce39a4Df01b"),
        AUTOMATION_EXECUTOR=os.environ.get("AUTOMATION_EXECUTOR", "0x87607992FDd5eAe12201bFBE83432D469944EE1C"),
        AUTOMATION_MCD_VIEW=os.environ.get("AUTOMATION_MCD_VIEW", "0x55Dc2Be8020bCa72E58e665dC931E03B749ea5E0"),
        START_BLOCK_AUTOMATION_BOT=int(os.environ.get("START_BLOCK_AUTOMATION_BOT", 14583413)),

        CDP_MANAGER=os.environ.get("CDP_MANAGER", "0x5ef30b9986345249bc32d8928B7ee64DE9435E39"),
        ILK_REGISTRY=os.environ.get("ILK_REGISTRY", "0x5a464C28D19848f44199D003BeF5ecc87d090F87"),
        MCD_SPOT=os.environ.get("MCD_SPOT", "0x65C79fcB50Ca1594B025960e539eD7A9a6D434A3"),
        MCD_JUG=os.environ.get("MCD_JUG", "0x19c0976f590D67707E62397C87829d896Dc0f1F1"),
        MCD_FLASH=os.environ.get("MCD_FLASH", "0x1EB4CF3A948E7D72A198fe073cCb8C7a948cD853"),
        DAI=os.environ.get("DAI", "0x6b175474e89094c44da98b954eedeac495271d0f"),

        MULTIPLY_PROXY_ACTIONS=os.environ.get("MULTIPLY_PROXY_ACTIONS", "0x2a49eae5cca3f050ebec729cf90cc910fadaf7a2"),
        EXCHANGE=os.environ.get("EXCHANGE", "0xb5eb8cb6ced6b6f8e13bcd502fb489db4a726c7b"),
        ONE_INCH_V4_ROUTER=os.environ.get("ONE_INCH_V4_ROUTER", "0x1111111254fb6c44bac0bed2854e76f90643097d"),
        FEE_RECIPIENT=os.environ.get("FEE_RECIPIENT", "0xC7b548AD9Cf38721810246C079b2d8083aba8909"),

        DEFAULT_SLIPPAGE_PCT=Decimal(os.environ.get("DEFAULT_SLIPPAGE_PCT", "0.5")),
        ORIGINATION_FEE=Decimal(os.environ.get("ORIGINATION_FEE", "0.002")),
        FLASH_LOAN_FEE=Decimal(os.environ.get("FLASH_LOAN_FEE", "0")),
        STATE_MAX_AGE_SEC=float(os.environ.get("STATE_MAX_AGE_SEC", 30)),

        GAS_LIMIT_MULTIPLIER=Decimal(os.environ.get("GAS_LIMIT_MULTIPLIER", "1.20")),
        DEFAULT_GAS_ESTIMATE=int(os.environ.get("DEFAULT_GAS_ESTIMATE", 2_000_000)),
        PRIORITY_FEE_GWEI=Decimal(os.environ.get("PRIORITY_FEE_GWEI", "2")),
        GAS_PRICE_TTL_SEC=float(os.environ.get("GAS_PRICE_TTL_SEC", 10)),
        GAS_ORACLE=os.environ.get("GAS_ORACLE", "etherscan"),

        HTTP_TIMEOUT_SEC=float(os.environ.get("HTTP_TIMEOUT_SEC", 10)),
        RECEIPT_TIMEOUT_SEC=float(os.environ.get("RECEIPT_TIMEOUT_SEC", 300)),

        IMPERSONATION_FUNDING_WEI=int(os.environ.get("IMPERSONATION_FUNDING_WEI", 10**18)),
        LOG_LEVEL=os.environ.get("LOG_LEVEL", "INFO"),
    )
