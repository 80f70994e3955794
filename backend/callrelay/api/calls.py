from fastapi import APIRouter, Query
from ..schemas.pydantic_schemas import ActiveCallListResponse, EndCallResult
from ..services import active_calls
from ..services.call_actions import end_active_call
import logging

# Set up logger
logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/active", response_model=ActiveCallListResponse)
async def list_active_calls(tenant_id: str = Query(...)):
    items = active_calls.list_active(tenant_id)
    return {"items": items, "total": len(items)}


@router.post("/{tenant_id}/{call_id}/end", response_model=EndCallResult)
async def end_call(tenant_id: str, call_id: str):
    logger.info(f"Operator requested end of call {call_id} for client {tenant_id}")
    result = await end_active_call(tenant_id, call_id)
    if not result["success"]:
        logger.warning(f"Ending call {call_id} failed: {result.get('error')}")
    return result
