import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, Optional

import httpx
from web3 import Web3

from .exceptions import GasPriceUnavailable

GWEI = Decimal(10) ** 9


class BaseFeeOracle(ABC):

    @abstractmethod
    def base_fee_gwei(self) -> Decimal:
        ...


class EtherscanGasOracle(BaseFeeOracle):
    """Etherscan gastracker `suggestBaseFee` (gwei, decimal string)."""

    def __init__(self, api_key: str, timeout_sec: float = 10.0, url: str = "https://api.etherscan.io/api"):
        self._api_key = api_key
        self._timeout = timeout_sec
        self._url = url
        self._logger = logging.getLogger(self.__class__.__name__)

    def base_fee_gwei(self) -> Decimal:
        params = {"module": "gastracker", "action": "gasoracle", "apikey": self._api_key}
        try:
            with httpx.Client(timeout=self._timeout) as client:
                r = client.get(self._url, params=params)
                r.raise_for_status()
                result = r.json()["result"]
                return Decimal(str(result["suggestBaseFee"]))
        except (httpx.HTTPError, ValueError, KeyError, TypeError, ArithmeticError) as exc:
            raise GasPriceUnavailable(f"Etherscan gas oracle failed: {exc}") from exc


class NodeGasOracle(BaseFeeOracle):
    """Reads baseFeePerGas of the latest block from the node itself."""

    def __init__(self, w3: Web3):
        self.w3 = w3

    def base_fee_gwei(self) -> Decimal:
        try:
            block = self.w3.eth.get_block("latest")
            return Decimal(int(block["baseFeePerGas"])) / GWEI
        except Exception as exc:
            raise GasPriceUnavailable(f"Node base fee read failed: {exc}") from exc


@dataclass(frozen=True)
class CachedFee:
    base_fee_gwei: Decimal
    fetched_at: float


class GasPriceCache:
    """
    Short-lived base fee cache owned by one submitter.

    Entries are refreshed, never invalidated: readers past the TTL trigger a
    refetch, readers inside it get the cached value.
    """

    def __init__(self, oracle: BaseFeeOracle, ttl_sec: float = 10.0, clock: Callable[[], float] = time.monotonic):
        self.oracle = oracle
        self.ttl_sec = ttl_sec
        self.clock = clock
        self._entry: Optional[CachedFee] = None
        self._lock = threading.Lock()

    def base_fee_gwei(self) -> Decimal:
        with self._lock:
            now = self.clock()
            if self._entry is None or now - self._entry.fetched_at >= self.ttl_sec:
                self._entry = CachedFee(self.oracle.base_fee_gwei(), now)
            return self._entry.base_fee_gwei


def fee_fields(base_fee_gwei: Decimal, priority_fee_gwei: Decimal) -> Dict[str, int]:
    """EIP-1559 fields: max fee = base + priority, both in wei."""
    return {
        "maxFeePerGas": int((base_fee_gwei + priority_fee_gwei) * GWEI),
        "maxPriorityFeePerGas": int(priority_fee_gwei * GWEI),
    }
