"""
Active-call state tracking.

One row per (client, Vapi call id) while a call is believed to be ringing or
connected. Rows are created on the first lifecycle event, refreshed on updates
and deleted when the call ends. There is no "ended" resting state: removal is
the terminal transition. Idempotency of start events comes from the existence
check, not from locking.
"""
from datetime import timedelta
from typing import Any, Dict, List, Optional
import logging

from ..config import STALE_CALL_MAX_AGE_SECONDS
from ..db import get_db
from ..schemas.pydantic_schemas import VapiCall, VapiConversationMessage
from .normalizer import to_iso, utc_now, utc_now_iso

logger = logging.getLogger(__name__)


def render_transcript(conversation: List[VapiConversationMessage]) -> str:
    return "\n".join(f"{m.role}: {m.text}" for m in conversation)


def ensure_started(client_id: str, call: VapiCall) -> bool:
    """Insert the active-call row unless it already exists. Returns True on insert."""
    if call.status == "ended":
        # Late event for a finished call; there is no "ended" row to create
        logger.debug(f"Not tracking call {call.id}: already ended")
        return False

    db = get_db()

    # Reap rows whose end-of-call webhook was never delivered
    cutoff = utc_now() - timedelta(seconds=STALE_CALL_MAX_AGE_SECONDS)
    reaped = db.delete_stale_active_calls(cutoff)
    if reaped:
        logger.info(f"Removed {reaped} stale active call(s) started before {cutoff.isoformat()}")

    if db.get_active_call(client_id, call.id):
        logger.debug(f"Active call {call.id} already tracked for client {client_id}")
        return False

    now = utc_now_iso()
    db.insert_active_call({
        "vapi_call_id": call.id,
        "client_id": client_id,
        "status": call.status or "ringing",
        "started_at": to_iso(call.startedAt) or now,
        "customer_number": call.customer_number,
        "assistant_id": call.assistantId,
        "type": call.type or "inbound",
        "last_active_at": now,
    })
    logger.info(f"Tracking active call {call.id} for client {client_id} (status {call.status or 'ringing'})")
    return True


def apply_update(client_id: str, call: VapiCall, conversation: Optional[List[VapiConversationMessage]] = None) -> bool:
    """Refresh an existing row. Never creates one. Returns whether a row was updated."""
    if call.status == "ended":
        remove(client_id, call.id)
        return False

    updates: Dict[str, Any] = {
        "status": call.status,
        "last_active_at": utc_now_iso(),
    }
    if call.summary:
        updates["summary"] = call.summary
    if conversation is not None:
        # Vapi resends the whole history on every update, so replace rather than append
        updates["transcript"] = render_transcript(conversation)

    updated = get_db().update_active_call(client_id, call.id, updates)
    if not updated:
        logger.debug(f"No active call {call.id} for client {client_id}; update skipped")
    return updated


def remove(client_id: str, call_id: str) -> None:
    get_db().delete_active_call(client_id, call_id)
    logger.info(f"Removed active call {call_id} for client {client_id}")


def list_active(client_id: str) -> List[Dict[str, Any]]:
    since = utc_now() - timedelta(seconds=STALE_CALL_MAX_AGE_SECONDS)
    return get_db().list_active_calls(client_id, since)
