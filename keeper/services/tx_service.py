import logging
from decimal import Decimal
from typing import Optional

from web3 import Web3
from web3.exceptions import TimeExhausted
from web3.logs import DISCARD

from ..chain import Chain
from ..config import Settings
from ..domain.models import ExecutionPlan, ExecutionReceipt
from .exceptions import (
    ConfirmationTimeout,
    ExecutionNotConfirmed,
    GasEstimationFailed,
    TransactionRevertedError,
)
from .gas_price import GasPriceCache, fee_fields
from .signers import AuthorizedSigner
from .utils import to_json_safe


class TransactionSubmitter:
    """
    Sends the AutomationExecutor.execute() call for a plan and confirms it.

    Responsibilities:
    - Estimate gas; fail fast unless debug mode allows the static default.
    - Pad the estimate with GAS_LIMIT_MULTIPLIER (the debug default is used as is).
    - Price the tx with EIP-1559 fields from a short-lived base fee cache.
    - Sign locally (PRIVATE_KEY) or hand it to the node (unlocked / impersonated).
    - Wait for one receipt and require the TriggerExecuted event of this trigger.
    """

    def __init__(
        self,
        chain: Chain,
        gas_cache: GasPriceCache,
        settings: Settings,
        logger: Optional[logging.Logger] = None,
    ):
        self.chain = chain
        self.w3 = chain.w3
        self.gas_cache = gas_cache
        self.settings = settings
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    # ---------- internal helpers ----------

    def _build_call(self, plan: ExecutionPlan, signer: AuthorizedSigner, trigger_id: int, position_ref: int, refund: int) -> dict:
        executor = self.chain.automation_executor()
        data = executor.encode_abi(
            "execute",
            args=[
                plan.execution_data,
                int(position_ref),
                plan.trigger.raw,
                Web3.to_checksum_address(plan.trigger.command_address),
                int(trigger_id),
                0,
                0,
                int(refund),
            ],
        )
        return {"from": signer.address, "to": executor.address, "data": data, "value": 0}

    def _estimate(self, tx: dict, debug: bool) -> int:
        """
        Returns the gas limit to submit with.
        Normal path: node estimate * GAS_LIMIT_MULTIPLIER.
        Debug path (estimate failed): DEFAULT_GAS_ESTIMATE verbatim.
        """
        try:
            estimate = int(self.w3.eth.estimate_gas(tx))
        except Exception as exc:
            self._logger.warning("Gas estimate failed: %s", exc)
            if not debug:
                raise GasEstimationFailed(f"Gas estimation failed: {exc}") from exc
            self._logger.warning("Debug, using default gas %s", self.settings.DEFAULT_GAS_ESTIMATE)
            return int(self.settings.DEFAULT_GAS_ESTIMATE)

        adjusted = int(Decimal(estimate) * self.settings.GAS_LIMIT_MULTIPLIER)
        self._logger.info("Gas estimate %s, adjusted %s", estimate, adjusted)
        return adjusted

    def _sign_and_send(self, tx: dict, signer: AuthorizedSigner) -> str:
        if signer.account is not None:
            tx["nonce"] = self.w3.eth.get_transaction_count(signer.address)
            tx["chainId"] = self.w3.eth.chain_id
            signed = signer.account.sign_transaction(tx)
            txh = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        else:
            txh = self.w3.eth.send_transaction(tx)
        return Web3.to_hex(txh)

    def _wait_receipt(self, tx_hash: str, trigger_id: int):
        try:
            return self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.settings.RECEIPT_TIMEOUT_SEC)
        except TimeExhausted as exc:
            raise ConfirmationTimeout(
                f"No receipt for {tx_hash} after {self.settings.RECEIPT_TIMEOUT_SEC}s; it may still be mined",
                tx_hash=tx_hash,
                trigger_id=trigger_id,
            ) from exc

    def _executed_event(self, receipt, trigger_id: int):
        bot = self.chain.automation_bot()
        events = bot.events.TriggerExecuted().process_receipt(receipt, errors=DISCARD)
        for ev in events:
            if str(ev["address"]).lower() != bot.address.lower():
                continue
            if int(ev["args"]["triggerId"]) == int(trigger_id):
                return ev
        return None

    # ---------- public API ----------

    def submit_and_confirm(
        self,
        plan: ExecutionPlan,
        signer: AuthorizedSigner,
        trigger_id: int,
        position_ref: int,
        *,
        refund: int = 0,
        debug: bool = False,
    ) -> ExecutionReceipt:
        """
        Broadcasts the execution and blocks until one confirmation.

        Raises:
            GasEstimationFailed:     before sending, nothing on-chain (non-debug only)
            GasPriceUnavailable:     before sending, nothing on-chain
            TransactionRevertedError: mined with status == 0
            ExecutionNotConfirmed:   mined OK but no TriggerExecuted for this trigger
            ConfirmationTimeout:     sent, receipt not seen in RECEIPT_TIMEOUT_SEC
        """
        # 1) build + gas limit
        tx = self._build_call(plan, signer, trigger_id, position_ref, refund)
        tx["gas"] = self._estimate(tx, debug)

        # 2) EIP-1559 fee fields
        base_fee = self.gas_cache.base_fee_gwei()
        tx.update(fee_fields(base_fee, self.settings.PRIORITY_FEE_GWEI))

        # 3) broadcast
        self._logger.info("Starting trigger %s execution from %s", trigger_id, signer.address)
        tx_hash = self._sign_and_send(tx, signer)
        self._logger.info("Execution transaction hash: %s", tx_hash)

        # 4) one confirmation
        rcpt = self._wait_receipt(tx_hash, trigger_id)
        if int(rcpt.get("status", 0)) == 0:
            raise TransactionRevertedError(
                tx_hash=tx_hash,
                receipt=to_json_safe(rcpt),
                msg="Execution reverted (status=0). Possibly out-of-gas or require() failed",
                trigger_id=trigger_id,
            )

        ev = self._executed_event(rcpt, trigger_id)
        if ev is None:
            raise ExecutionNotConfirmed(
                f"Failed to execute the trigger, no TriggerExecuted event in {tx_hash}",
                tx_hash=tx_hash,
                receipt=to_json_safe(rcpt),
                trigger_id=trigger_id,
            )

        receipt = ExecutionReceipt(
            trigger_id=int(ev["args"]["triggerId"]),
            position_ref=int(ev["args"]["cdpId"]),
            transaction_hash=tx_hash,
            gas_used=int(rcpt["gasUsed"]),
            block_number=int(rcpt["blockNumber"]),
            execution_data=bytes(ev["args"]["executionData"]),
        )
        self._logger.info(
            "Successfully executed the trigger %s for vault %s (gas used %s)",
            receipt.trigger_id, receipt.position_ref, receipt.gas_used,
        )
        return receipt
