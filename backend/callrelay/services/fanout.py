"""
Forwarding of normalized call events to registered subscriber webhooks.

Deliveries for one event run concurrently, each bounded by its own timeout,
and every attempt leaves exactly one row in webhook_logs. A failing subscriber
never fails the provider-facing response, and nothing is retried here.
"""
import asyncio
import hashlib
import hmac
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..config import (
    EVENT_HEADER,
    FANOUT_TIMEOUT_SECONDS,
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
)
from ..db import get_db
from ..schemas.pydantic_schemas import VapiCall
from .normalizer import (
    classify_outcome,
    compute_duration,
    format_duration,
    round_cost,
    sum_cost,
    utc_now_iso,
)

logger = logging.getLogger(__name__)


def build_outbound_payload(event_name: str, call: VapiCall) -> Dict[str, Any]:
    duration = compute_duration(call.startedAt, call.endedAt)
    return {
        "event": event_name,
        "timestamp": utc_now_iso(),
        "call": {
            "id": call.id,
            "agentId": call.assistantId,
            "status": call.status,
            "outcome": classify_outcome(call.endedReason),
            "duration": {
                "seconds": duration,
                "formatted": format_duration(duration),
            },
            "startedAt": call.startedAt,
            "endedAt": call.endedAt,
        },
        "customer": {
            "phone": call.customer_number,
        },
        "transcript": call.transcript,
        "summary": call.summary,
        "costs": {
            "total": round_cost(sum_cost(call.costs)),
        },
    }


def is_eligible(subscriber: Dict[str, Any], event_name: str, agent_id: Optional[str]) -> bool:
    if not subscriber.get("is_active"):
        return False
    if event_name not in (subscriber.get("events") or []):
        return False
    agent_ids = subscriber.get("agent_ids") or []
    # No agent scope means the subscriber wants every agent
    return not agent_ids or agent_id in agent_ids


def serialize_payload(payload: Dict[str, Any]) -> bytes:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def sign_payload(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def _http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=FANOUT_TIMEOUT_SECONDS)


async def deliver(
    client: httpx.AsyncClient,
    subscriber: Dict[str, Any],
    body: bytes,
    event_name: str,
    timestamp: str,
) -> Dict[str, Any]:
    headers = {
        "Content-Type": "application/json",
        EVENT_HEADER: event_name,
        TIMESTAMP_HEADER: timestamp,
    }
    if subscriber.get("secret"):
        headers[SIGNATURE_HEADER] = sign_payload(body, subscriber["secret"])

    try:
        response = await client.post(
            subscriber["url"],
            content=body,
            headers=headers,
            timeout=FANOUT_TIMEOUT_SECONDS,
        )
    except Exception as e:
        logger.warning(f"Delivery of {event_name} to webhook {subscriber.get('id')} failed: {type(e).__name__}: {e}")
        return {"success": False, "status": None, "error": str(e) or type(e).__name__}

    ok = 200 <= response.status_code < 300
    if not ok:
        logger.warning(f"Webhook {subscriber.get('id')} answered {response.status_code} to {event_name}")
    return {"success": ok, "status": response.status_code, "error": None}


async def _deliver_and_log(
    client: httpx.AsyncClient,
    subscriber: Dict[str, Any],
    payload: Dict[str, Any],
    body: bytes,
    event_name: str,
) -> Dict[str, Any]:
    result = await deliver(client, subscriber, body, event_name, payload["timestamp"])
    try:
        get_db().insert_delivery_log({
            "webhook_id": subscriber["id"],
            "event_type": event_name,
            "payload": payload,
            "response_status": result["status"],
            "error_message": result["error"],
        })
    except Exception:
        logger.exception(f"Failed to write delivery log for webhook {subscriber.get('id')}")
    return result


async def fan_out(event_name: str, call: VapiCall) -> Tuple[int, int]:
    """Forward one event to every eligible subscriber. Returns (forwarded, total eligible)."""
    try:
        subscribers: List[Dict[str, Any]] = get_db().list_subscribers_for_event(event_name)
    except Exception:
        logger.exception(f"Failed to load subscribers for {event_name}")
        return 0, 0

    eligible = [s for s in subscribers if is_eligible(s, event_name, call.assistantId)]
    if not eligible:
        return 0, 0

    payload = build_outbound_payload(event_name, call)
    body = serialize_payload(payload)

    async with _http_client() as client:
        results = await asyncio.gather(
            *(_deliver_and_log(client, s, payload, body, event_name) for s in eligible)
        )

    forwarded = sum(1 for r in results if r["success"])
    logger.info(f"Forwarded {event_name} for call {call.id} to {forwarded}/{len(eligible)} webhook(s)")
    return forwarded, len(eligible)
