from abc import ABC, abstractmethod
from decimal import Decimal

from ..domain.models import SwapQuote, SwapRequest, apply_slippage


class SwapQuoteProvider(ABC):
    """
    Abstract adapter that normalizes swap sourcing across liquidity venues.

    Two modes:
      - market_price(): price estimation only, nothing tradeable
      - quote():        amounts + router calldata bound to a specific router
    """

    @abstractmethod
    def market_price(self, collateral_token: str, debt_token: str, collateral_amount: int) -> Decimal:
        """Debt-asset units per one collateral unit."""
        ...

    @abstractmethod
    def quote(self, request: SwapRequest) -> SwapQuote:
        ...

    @staticmethod
    def min_to_amount(to_amount: int, slippage: Decimal) -> int:
        """Never trusted from the venue: always recomputed from to_amount."""
        return apply_slippage(to_amount, slippage)
