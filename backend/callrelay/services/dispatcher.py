"""
Classification and dispatch of inbound Vapi events.

Every delivery is handled independently. The dispatch table picks one of:
assistant context reply, call start, call update, call termination, or a
best-effort start for anything else that carries a call.
"""
import logging
from typing import Any, Dict, Optional

from ..config import FANOUT_CALL_ENDED, FANOUT_CALL_STARTED
from ..schemas.pydantic_schemas import VapiCall, VapiMessage
from . import active_calls
from .billing import record_call_usage
from .contact_context import get_contact_context
from .contact_enrichment import update_contact_after_call
from .fanout import fan_out
from .normalizer import compute_duration
from .tenants import TenantResolver

logger = logging.getLogger(__name__)

START_EVENTS = ("call-started", "assistant.started", "speech-update")


def normalize_envelope(raw: Any) -> VapiMessage:
    """Unwrap either `{body: {message}}` or `{message}` into the inner event.

    Forwarded deliveries wrap the provider request as
    `{headers, params, query, body, ...}`; direct deliveries send it as-is.
    """
    if not isinstance(raw, dict):
        raise ValueError("webhook payload must be a JSON object")
    payload = raw.get("body") if isinstance(raw.get("body"), dict) else raw
    message = payload.get("message") if isinstance(payload.get("message"), dict) else payload
    return VapiMessage.model_validate(message)


def fanout_event_for(message_type: Optional[str], call: VapiCall) -> Optional[str]:
    if message_type == "status-update" and call.status == "in-progress":
        return FANOUT_CALL_STARTED
    if message_type == "end-of-call-report":
        return FANOUT_CALL_ENDED
    return None


def _ensure_started(client_id: Optional[str], call: VapiCall) -> None:
    if not client_id:
        logger.info(f"No client for call {call.id} (org {call.orgId}); not tracking")
        return
    try:
        active_calls.ensure_started(client_id, call)
    except Exception:
        logger.exception(f"Error tracking start of call {call.id}")


def _apply_update(client_id: Optional[str], call: VapiCall, conversation=None) -> None:
    if not client_id:
        return
    try:
        active_calls.apply_update(client_id, call, conversation)
    except Exception:
        logger.exception(f"Error applying update to call {call.id}")


async def handle_end_of_call(client_id: Optional[str], call: VapiCall) -> None:
    """Termination path. The active row goes first so a later failure cannot strand it."""
    logger.info(f"Handling end of call {call.id}")
    if client_id:
        try:
            active_calls.remove(client_id, call.id)
        except Exception:
            logger.exception(f"Error removing active call {call.id}")

    await update_contact_after_call(client_id, call)

    if client_id:
        duration = compute_duration(call.startedAt, call.endedAt)
        if duration > 0:
            try:
                record_call_usage(client_id, call.id, duration)
            except Exception:
                logger.exception(f"Error recording usage for call {call.id}")


async def dispatch_event(message: VapiMessage) -> Dict[str, Any]:
    call = message.call
    if call is None:
        logger.debug(f"Skipping {message.type} event without a call object")
        return {"received": True}

    message_type = message.type
    logger.info(f"Processing call {call.id} type={message_type} status={call.status}")

    tenants = TenantResolver()
    client_id = tenants.resolve(call.orgId)

    # The only event whose reply body is read by Vapi
    if message_type == "assistant-request":
        _ensure_started(client_id, call)
        return get_contact_context(client_id, call) or {}

    if message_type in START_EVENTS:
        _ensure_started(client_id, call)
    elif message_type == "status-update":
        if call.status == "ended":
            await handle_end_of_call(client_id, call)
        else:
            _ensure_started(client_id, call)
            _apply_update(client_id, call)
    elif message_type == "conversation-update":
        _ensure_started(client_id, call)
        _apply_update(client_id, call, message.conversation)
    elif message_type == "end-of-call-report":
        await handle_end_of_call(client_id, call)
    else:
        _ensure_started(client_id, call)

    event_name = fanout_event_for(message_type, call)
    if not event_name:
        return {"received": True}

    forwarded, total = await fan_out(event_name, call)
    return {"received": True, "forwarded": forwarded, "total": total}
