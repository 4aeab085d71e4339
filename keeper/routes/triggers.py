from decimal import Decimal
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ..config import get_settings
from ..domain.models import (
    ExecuteTriggerRequest, ExecuteTriggerResponse, TriggerInfoResponse,
)
from ..services.exceptions import (
    AmbiguousOrMissingTrigger, DecodeError, ExecutionNotConfirmed, GasPriceUnavailable,
    KeeperError, NotAuthorized, PlanningFailed, QuoteUnavailable, StateUnavailable,
    TransactionRevertedError, UnsupportedTriggerType,
)
from ..services.executor import TriggerExecutionEngine, build_engine
from ..services.utils import to_json_safe

router = APIRouter(tags=["triggers"])


@lru_cache()
def get_engine() -> TriggerExecutionEngine:
    return build_engine(get_settings())


def _status_for(exc: KeeperError) -> int:
    if isinstance(exc, AmbiguousOrMissingTrigger):
        return 404
    if isinstance(exc, (DecodeError, UnsupportedTriggerType, PlanningFailed)):
        return 422
    if isinstance(exc, NotAuthorized):
        return 403
    if isinstance(exc, (StateUnavailable, QuoteUnavailable, GasPriceUnavailable)):
        return 503
    return 500


def _http_error(exc: KeeperError) -> HTTPException:
    detail = {
        "error": exc.__class__.__name__,
        "message": exc.msg,
        "stage": exc.stage,
        "trigger_id": exc.trigger_id,
    }
    if isinstance(exc, (ExecutionNotConfirmed, TransactionRevertedError)):
        detail["tx"] = exc.tx_hash
        detail["receipt"] = to_json_safe(exc.receipt)
    return HTTPException(status_code=_status_for(exc), detail=detail)


@router.get("/triggers/{trigger_id}", response_model=TriggerInfoResponse)
def get_trigger(trigger_id: int, engine: TriggerExecutionEngine = Depends(get_engine)):
    try:
        trigger = engine.load_trigger(trigger_id)
    except KeeperError as e:
        raise _http_error(e)

    kind = trigger.kind
    return TriggerInfoResponse(
        trigger_id=trigger.id,
        position_ref=trigger.position_ref,
        trigger_type=trigger.trigger_type,
        trigger_type_name=kind.name if kind else None,
        command_address=trigger.command_address,
        fields=trigger.as_dict(),
        summary=trigger.describe(),
    )


@router.post("/triggers/{trigger_id}/execute", response_model=ExecuteTriggerResponse)
def execute_trigger(
    trigger_id: int,
    req: Optional[ExecuteTriggerRequest] = None,
    engine: TriggerExecutionEngine = Depends(get_engine),
):
    req = req or ExecuteTriggerRequest()
    try:
        receipt = engine.execute(
            trigger_id,
            slippage=req.slippage_pct / Decimal(100),
            refund=req.refund,
            debug=req.debug,
        )
    except KeeperError as e:
        raise _http_error(e)

    return ExecuteTriggerResponse(**receipt.to_dict())
