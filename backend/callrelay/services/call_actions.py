from typing import Any, Dict
import logging

from ..db import get_db
from . import active_calls
from .vapi_client import VapiClient

logger = logging.getLogger(__name__)


async def end_active_call(client_id: str, vapi_call_id: str) -> Dict[str, Any]:
    """Operator-triggered hang-up. Reports failure in the result instead of raising."""
    try:
        db = get_db()
        client = db.get_client(client_id)
        if not client or not client.get("vapi_key"):
            return {"success": False, "error": "Client not found or missing Vapi API key"}

        ended = await VapiClient(client["vapi_key"]).end_call(vapi_call_id)
        if not ended:
            return {"success": False, "error": "Failed to end call via Vapi API"}

        active_calls.remove(client_id, vapi_call_id)
        return {"success": True}
    except Exception:
        logger.exception(f"Error ending call {vapi_call_id} for client {client_id}")
        return {"success": False, "error": "Internal error"}
