"""
Post-call contact enrichment.

Runs once per terminated call with a customer number and a resolvable client:
records the call against the caller's contact, rolls the conversation summary
and backfills name/email.

Backfill is first-write-wins. Each field is re-read right before the write and
skipped if another delivery already filled it. This narrows but does not close
the race between two terminations for the same contact; a conditional
update-if-null at the store level would close it.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from ..config import EXTRACTION_MIN_TRANSCRIPT_LENGTH, EXTRACTION_TIMEOUT_SECONDS
from ..db import get_db
from ..schemas.pydantic_schemas import VapiCall
from .contacts import append_summary, find_or_create_contact
from .normalizer import compute_duration, format_call_date, to_iso, utc_now_iso
from .openai_client import OpenAIClient

logger = logging.getLogger(__name__)


async def _extract_with_timeout(transcript: str) -> Dict[str, Optional[str]]:
    try:
        return await asyncio.wait_for(
            OpenAIClient().extract_contact_info(transcript),
            timeout=EXTRACTION_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        logger.warning(f"Contact extraction timed out after {EXTRACTION_TIMEOUT_SECONDS}s")
    except Exception:
        logger.exception("Contact extraction failed")
    return {"name": None, "email": None}


async def update_contact_after_call(client_id: Optional[str], call: VapiCall) -> None:
    phone = call.customer_number
    if not phone or not client_id:
        return

    try:
        db = get_db()
        data = call.structured_data

        contact = find_or_create_contact(db, client_id, phone, name=data.name, email=data.email)
        if not contact:
            return

        called_at = to_iso(call.startedAt) or utc_now_iso()
        db.insert_contact_call({
            "contact_id": contact["id"],
            "vapi_call_id": call.id,
            "summary": call.summary,
            "transcript": call.transcript,
            "outcome": call.endedReason or call.status,
            "duration_seconds": compute_duration(call.startedAt, call.endedAt),
            "called_at": called_at,
        })

        updates: Dict[str, Any] = {
            "total_calls": (contact.get("total_calls") or 0) + 1,
            "last_call_at": called_at,
            "updated_at": utc_now_iso(),
        }

        if call.summary:
            entry = f"[{format_call_date(call.startedAt)}] {call.summary}"
            updates["conversation_summary"] = append_summary(contact.get("conversation_summary"), entry)

        # Provider analysis first, then the LLM over the transcript
        name = data.name or data.caller_name
        email = data.email or data.caller_email
        transcript = call.transcript or ""
        if (not name or not email) and len(transcript) > EXTRACTION_MIN_TRANSCRIPT_LENGTH:
            logger.info(f"Using LLM fallback for contact extraction on call {call.id}")
            extracted = await _extract_with_timeout(transcript)
            if not name and extracted.get("name"):
                name = extracted["name"]
            if not email and extracted.get("email"):
                email = extracted["email"]

        if name:
            current = db.get_contact_by_id(contact["id"]) or {}
            if not current.get("name"):
                updates["name"] = name
        if email:
            current = db.get_contact_by_id(contact["id"]) or {}
            if not current.get("email"):
                updates["email"] = email

        db.update_contact(contact["id"], updates)
        logger.info(f"Updated contact {contact['id']} after call {call.id} (total_calls={updates['total_calls']})")
    except Exception:
        logger.exception(f"Error updating contact after call {call.id}")
