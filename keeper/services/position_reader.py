"""
Reads the live state of a Maker vault for one execution attempt.

Reads:
  - CdpManager.ilks / owns          -> ilk and owning DSProxy (sequential, everything depends on them)
  - McdView.getVaultInfo / getRatio -> collateral (wad), debt (wad), ratio (wad)
  - McdView.getPrice(ilk)           -> oracle price (wad)
  - IlkRegistry.gem / join / dec    -> collateral token, join adapter, native decimals
  - Spotter.ilks(ilk).mat           -> liquidation ratio (ray)
  - DSProxy.owner                   -> funds receiver

The independent reads are issued on a small thread pool and joined. None of
them mutate state so ordering among them is irrelevant.

Every amount is returned normalized to human units (18-decimal wad scale for
collateral, whatever the token precision). Native precision travels with the
snapshot as `collateral_decimals`.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from typing import Callable, Optional

from web3 import Web3

from ..chain import Chain
from ..domain.models import PositionState, from_native
from .exceptions import StateUnavailable

WAD = 18
RAY = 27
ZERO_ILK = b"\x00" * 32


class PositionStateFetcher:

    def __init__(
        self,
        chain: Chain,
        max_workers: int = 6,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ):
        self.chain = chain
        self.max_workers = max_workers
        self.clock = clock
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    def _read(self, what: str, fn, position_ref: int):
        try:
            return fn()
        except Exception as exc:
            raise StateUnavailable(f"{what} read failed for vault {position_ref}: {exc}") from exc

    def fetch(self, position_ref: int) -> PositionState:
        position_ref = int(position_ref)
        manager = self.chain.cdp_manager()
        ilk = bytes(self._read("ilk", lambda: manager.functions.ilks(position_ref).call(), position_ref))
        if ilk == ZERO_ILK:
            raise StateUnavailable(f"Vault {position_ref} does not exist")
        proxy_addr = self._read("owner", lambda: manager.functions.owns(position_ref).call(), position_ref)

        mcd_view = self.chain.mcd_view()
        registry = self.chain.ilk_registry()
        spotter = self.chain.spotter()
        proxy = self.chain.ds_proxy(proxy_addr)

        reads = {
            "vault_info": lambda: mcd_view.functions.getVaultInfo(position_ref).call(),
            "ratio": lambda: mcd_view.functions.getRatio(position_ref, False).call(),
            "price": lambda: mcd_view.functions.getPrice(ilk).call(),
            "gem": lambda: registry.functions.gem(ilk).call(),
            "join": lambda: registry.functions.join(ilk).call(),
            "dec": lambda: registry.functions.dec(ilk).call(),
            "spot": lambda: spotter.functions.ilks(ilk).call(),
            "proxy_owner": lambda: proxy.functions.owner().call(),
        }
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = {k: pool.submit(self._read, k, fn, position_ref) for k, fn in reads.items()}
            # .result() re-raises the first StateUnavailable
            out = {k: f.result() for k, f in futures.items()}

        collateral_wad, debt_wad = out["vault_info"]
        _, mat = out["spot"]

        state = PositionState(
            position_ref=position_ref,
            ilk=ilk,
            collateral=from_native(collateral_wad, WAD),
            debt=from_native(debt_wad, WAD),
            ratio=from_native(out["ratio"], WAD),
            oracle_price=from_native(out["price"], WAD),
            liquidation_ratio=from_native(mat, RAY),
            collateral_decimals=int(out["dec"]),
            gem=Web3.to_checksum_address(out["gem"]),
            gem_join=Web3.to_checksum_address(out["join"]),
            funds_receiver=Web3.to_checksum_address(out["proxy_owner"]),
            fetched_at=self.clock(),
        )
        self._logger.info(
            "Vault %s: coll=%s debt=%s ratio=%s%% price=%s dec=%s",
            position_ref, state.collateral, state.debt,
            (state.ratio * 100).quantize(Decimal("0.01")), state.oracle_price, state.collateral_decimals,
        )
        return state
