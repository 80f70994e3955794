from typing import Any, Dict
import logging

from ..db import get_db

logger = logging.getLogger(__name__)


def record_call_usage(client_id: str, vapi_call_id: str, duration_seconds: int) -> Dict[str, Any]:
    """Append one usage row for a finished call. Pricing happens elsewhere."""
    row = get_db().insert_call_usage({
        "client_id": client_id,
        "vapi_call_id": vapi_call_id,
        "duration_seconds": duration_seconds,
    })
    logger.info(f"Recorded {duration_seconds}s of usage for call {vapi_call_id} (client {client_id})")
    return row
