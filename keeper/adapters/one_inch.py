import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError
from web3 import Web3

from ..domain.models import SwapQuote, SwapRequest, from_native
from ..domain.swap import OneInchQuoteResponse, OneInchSwapResponse
from ..services.exceptions import QuoteUnavailable
from .base import SwapQuoteProvider

SWAP_PROTOCOLS = "UNISWAP_V3,PMM4,UNISWAP_V2,SUSHI,CURVE,PSM"


class OneInchQuoteProvider(SwapQuoteProvider):
    """
    Thin sync wrapper around the 1inch v4 aggregator (`/quote` and `/swap`).

    This client does *no* sizing logic: amounts come in native units and the
    min amount out is recomputed locally from the returned toTokenAmount.
    """

    def __init__(self, base_url: str, timeout_sec: float = 10.0, client: Optional[httpx.Client] = None):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_sec
        self._client = client
        self._logger = logging.getLogger(self.__class__.__name__)

    def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self._base_url}/{path}"
        try:
            if self._client is not None:
                r = self._client.get(url, params=params, timeout=self._timeout)
            else:
                with httpx.Client(timeout=self._timeout) as client:
                    r = client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise QuoteUnavailable(f"1inch {path} request failed: {exc}") from exc

        if r.status_code != 200:
            self._logger.warning("1inch %s non-200 %s: %s", path, r.status_code, r.text)
            raise QuoteUnavailable(f"1inch {path} returned {r.status_code}: {r.text}")
        try:
            return r.json()
        except ValueError as exc:
            raise QuoteUnavailable(f"1inch {path} returned invalid JSON") from exc

    def market_price(self, collateral_token: str, debt_token: str, collateral_amount: int) -> Decimal:
        payload = self._get("quote", {
            "fromTokenAddress": collateral_token,
            "toTokenAddress": debt_token,
            "amount": str(int(collateral_amount)),
        })
        try:
            data = OneInchQuoteResponse.model_validate(payload)
        except ValidationError as exc:
            raise QuoteUnavailable(f"Unexpected 1inch quote payload: {exc}") from exc

        collateral = from_native(data.from_token_amount, data.from_token.decimals)
        dai = from_native(data.to_token_amount, data.to_token.decimals)
        if collateral <= 0 or dai <= 0:
            raise QuoteUnavailable("1inch quote returned an empty route")
        price = dai / collateral
        self._logger.info("1inch market price %s (coll=%s dai=%s)", price, collateral, dai)
        return price

    def quote(self, request: SwapRequest) -> SwapQuote:
        if request.recipient is None:
            raise QuoteUnavailable("1inch swap needs the exchange address as sender")
        params = {
            "fromTokenAddress": request.from_token,
            "toTokenAddress": request.to_token,
            "amount": str(int(request.from_amount)),
            "fromAddress": request.recipient,
            # 1inch takes slippage in percent
            "slippage": str(request.slippage * 100),
            "disableEstimate": "true",
            "allowPartialFill": "false",
            "protocols": SWAP_PROTOCOLS,
        }
        self._logger.debug("1inch swap params %s", params)
        payload = self._get("swap", params)
        try:
            data = OneInchSwapResponse.model_validate(payload)
        except ValidationError as exc:
            raise QuoteUnavailable(f"Unexpected 1inch swap payload: {exc}") from exc

        if data.to_token_amount <= 0:
            raise QuoteUnavailable("1inch swap returned no output for the requested amount")

        return SwapQuote(
            from_token=Web3.to_checksum_address(request.from_token),
            to_token=Web3.to_checksum_address(request.to_token),
            from_amount=int(data.from_token_amount),
            to_amount=int(data.to_token_amount),
            min_to_amount=self.min_to_amount(data.to_token_amount, request.slippage),
            router=Web3.to_checksum_address(data.tx.to),
            calldata=bytes(Web3.to_bytes(hexstr=data.tx.data)),
        )
