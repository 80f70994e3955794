from typing import Any, Dict, Optional
import logging

from ..db import get_db
from ..schemas.pydantic_schemas import VapiCall
from .contacts import find_or_create_contact
from .normalizer import format_call_date

logger = logging.getLogger(__name__)


def build_customer_context(contact: Dict[str, Any], phone: str) -> str:
    total_calls = contact.get("total_calls") or 0
    if total_calls > 0:
        last_call = format_call_date(contact["last_call_at"]) if contact.get("last_call_at") else "Unknown"
        return (
            "RETURNING CALLER DETECTED\n"
            f"Name: {contact.get('name') or 'Unknown'}\n"
            f"Phone: {phone}\n"
            f"Email: {contact.get('email') or 'Not provided'}\n"
            f"Previous Calls: {total_calls}\n"
            f"Last Call: {last_call}\n\n"
            "CONVERSATION HISTORY:\n"
            f"{contact.get('conversation_summary') or 'No previous conversation summary.'}\n\n"
            "Use this context to personalize the conversation."
        )
    return (
        "NEW CALLER\n"
        f"Phone: {phone}\n"
        "This is their first time calling. Be welcoming and gather basic information."
    )


def get_contact_context(client_id: Optional[str], call: VapiCall) -> Optional[Dict[str, Any]]:
    """Variables injected into the live assistant on assistant-request.

    Returns None when the caller or client cannot be resolved.
    """
    phone = call.customer_number
    if not phone or not client_id:
        return None

    try:
        contact = find_or_create_contact(get_db(), client_id, phone)
        if not contact:
            return None

        total_calls = contact.get("total_calls") or 0
        is_returning = total_calls > 0
        logger.info(f"Returning context for {'returning' if is_returning else 'new'} caller {phone}")
        return {
            "variableValues": {
                "customer_name": contact.get("name") or "",
                "customer_phone": phone,
                "customer_email": contact.get("email") or "",
                "customer_context": build_customer_context(contact, phone),
                "is_returning_caller": is_returning,
                "total_previous_calls": total_calls,
                "contact_id": contact["id"],
            }
        }
    except Exception:
        logger.exception(f"Error building contact context for {phone}")
        return None
