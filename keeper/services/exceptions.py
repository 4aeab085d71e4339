from typing import Optional


class KeeperError(Exception):
    """
    Base class for every failure of a trigger execution attempt.

    `stage` and `trigger_id` are filled in by the engine when the error
    crosses a stage boundary, so operators see where the attempt stopped.
    """
    def __init__(self, msg: str, *, stage: Optional[str] = None, trigger_id: Optional[int] = None):
        super().__init__(msg)
        self.msg = msg
        self.stage = stage
        self.trigger_id = trigger_id

    def __str__(self) -> str:
        ctx = []
        if self.trigger_id is not None:
            ctx.append(f"trigger={self.trigger_id}")
        if self.stage:
            ctx.append(f"stage={self.stage}")
        if not ctx:
            return self.msg
        return f"[{' '.join(ctx)}] {self.msg}"


class DecodeError(KeeperError):
    """Malformed trigger payload. Fatal, retrying cannot help."""


class AmbiguousOrMissingTrigger(KeeperError):
    """Zero or several TriggerAdded events for one trigger id."""
    def __init__(self, trigger_id: int, matches: int):
        super().__init__(
            f"Expected a single TriggerAdded event, received {matches}",
            trigger_id=trigger_id,
        )
        self.matches = matches


class UnsupportedTriggerType(KeeperError):
    def __init__(self, tag: int, **kw):
        super().__init__(f"Trigger type `{tag}` is not supported", **kw)
        self.tag = tag


class StateUnavailable(KeeperError):
    """A chain read failed or the position does not exist. Retryable by the caller."""


class QuoteUnavailable(KeeperError):
    """
    Aggregator or pool could not produce a usable quote.
    Retryable, but the quote must be fetched again.
    """


class PlanningFailed(KeeperError):
    """The execution plan could not be sized for the current vault state."""


class NotAuthorized(KeeperError):
    """No signer allowed to call the executor could be resolved."""


class GasEstimationFailed(KeeperError):
    """
    Raised BEFORE broadcasting when the node cannot estimate the execution.
    Nothing was sent on-chain.
    """


class SubmissionFailed(KeeperError):
    """
    Building, signing or broadcasting the execute tx failed.
    The tx may or may not have reached the node.
    """


class GasPriceUnavailable(KeeperError):
    """The base fee oracle could not be read (nothing sent on-chain)."""


class ExecutionNotConfirmed(KeeperError):
    """
    The transaction landed but the TriggerExecuted event for this trigger
    is absent. Needs manual investigation.
    """
    def __init__(self, msg: str, tx_hash: Optional[str] = None, receipt: Optional[dict] = None, **kw):
        super().__init__(msg, **kw)
        self.tx_hash = tx_hash
        self.receipt = receipt


class ConfirmationTimeout(ExecutionNotConfirmed):
    """
    The tx was broadcast but no receipt arrived in time.
    It may still be mined; the engine just stopped waiting.
    """


class TransactionRevertedError(KeeperError):
    """
    Raised when the tx was actually sent on-chain, mined, and status == 0.
    You ALREADY paid gas, the chain executed and reverted.
    """
    def __init__(self, tx_hash: str, receipt: dict, msg: str, **kw):
        super().__init__(msg, **kw)
        self.tx_hash = tx_hash
        self.receipt = receipt
