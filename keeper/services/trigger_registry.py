import logging
from dataclasses import dataclass
from typing import Optional

from web3 import Web3

from ..chain import Chain
from .exceptions import AmbiguousOrMissingTrigger, StateUnavailable
from .utils import int_to_topic

TRIGGER_ADDED_SIGNATURE = "TriggerAdded(uint256,address,uint256,bytes)"


@dataclass(frozen=True)
class TriggerRegistration:
    trigger_id: int
    command_address: str
    position_ref: int
    trigger_data: bytes
    block_number: int


class TriggerRegistry:
    """
    Looks up the TriggerAdded event of a trigger id on the AutomationBot.
    The event log is append-only, so exactly one match is expected.
    """

    def __init__(self, chain: Chain, start_block: int, logger: Optional[logging.Logger] = None):
        self.chain = chain
        self.w3 = chain.w3
        self.start_block = int(start_block)
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    def find(self, trigger_id: int) -> TriggerRegistration:
        bot = self.chain.automation_bot()
        flt = {
            "address": bot.address,
            "topics": [Web3.to_hex(Web3.keccak(text=TRIGGER_ADDED_SIGNATURE)), int_to_topic(trigger_id)],
            "fromBlock": self.start_block,
            "toBlock": "latest",
        }
        try:
            logs = self.w3.eth.get_logs(flt)
        except Exception as exc:
            raise StateUnavailable(f"Error looking up TriggerAdded events: {exc}", trigger_id=trigger_id) from exc

        if len(logs) != 1:
            raise AmbiguousOrMissingTrigger(trigger_id, len(logs))

        event = bot.events.TriggerAdded().process_log(logs[0])
        args = event["args"]
        self._logger.info(
            "Found trigger %s at block %s (command %s)",
            trigger_id, event["blockNumber"], args["commandAddress"],
        )
        return TriggerRegistration(
            trigger_id=int(args["triggerId"]),
            command_address=Web3.to_checksum_address(args["commandAddress"]),
            position_ref=int(args["cdpId"]),
            trigger_data=bytes(args["triggerData"]),
            block_number=int(event["blockNumber"]),
        )
