from decimal import Decimal

from web3 import Web3
from web3.contract import Contract

from ..domain.models import SwapQuote, SwapRequest
from ..services.exceptions import QuoteUnavailable
from .base import SwapQuoteProvider

# WETH/DAI Uniswap V2 pair packed as a 1inch `unoswap` pool word:
#   bit 255 -> direction (set = swap into DAI)
#   low 160 -> pair address, the bits in between carry the router's fee packing
UNOSWAP_POOL_TAIL = "0000000000000003b6d0340a478c2975ab1ea89e8196811f51a7b7ade33eb11"


def unoswap_pool(to_debt_asset: bool) -> bytes:
    prefix = "8" if to_debt_asset else "0"
    return bytes.fromhex(prefix + UNOSWAP_POOL_TAIL)


class UnoswapQuoteProvider(SwapQuoteProvider):
    """
    Direct-swap path for networks without aggregator access (forks, local
    nodes). Nothing is requested from outside: the router calldata targets a
    fixed, pre-known pool and the amounts are the ones the planner computed.
    """

    def __init__(self, router: Contract):
        self.router = router

    def market_price(self, collateral_token: str, debt_token: str, collateral_amount: int) -> Decimal:
        raise QuoteUnavailable("Direct swap path has no market price source, use the oracle price")

    def quote(self, request: SwapRequest) -> SwapQuote:
        if request.expected_to_amount is None or request.expected_to_amount <= 0:
            raise QuoteUnavailable("Direct swap needs the expected output amount")
        if request.from_amount <= 0:
            raise QuoteUnavailable("Direct swap needs a positive input amount")

        to_amount = int(request.expected_to_amount)
        min_to = self.min_to_amount(to_amount, request.slippage)
        calldata = self.router.encode_abi(
            "unoswap",
            args=[
                Web3.to_checksum_address(request.from_token),
                int(request.from_amount),
                min_to,
                [unoswap_pool(request.to_debt_asset)],
            ],
        )
        return SwapQuote(
            from_token=Web3.to_checksum_address(request.from_token),
            to_token=Web3.to_checksum_address(request.to_token),
            from_amount=int(request.from_amount),
            to_amount=to_amount,
            min_to_amount=min_to,
            router=self.router.address,
            calldata=bytes(Web3.to_bytes(hexstr=calldata)),
        )
