from typing import Any, Dict, Optional
import logging

from ..config import ROLLING_SUMMARY_LIMIT

logger = logging.getLogger(__name__)

SUMMARY_SEPARATOR = "\n\n"


def find_or_create_contact(db, client_id: str, phone: str, name: Optional[str] = None, email: Optional[str] = None) -> Optional[Dict[str, Any]]:
    contact = db.get_contact(client_id, phone)
    if contact:
        return contact
    try:
        contact = db.create_contact(client_id, phone, name=name, email=email)
        logger.info(f"Created contact {contact['id']} for {phone} (client {client_id})")
        return contact
    except Exception as e:
        # A concurrent delivery for the same caller may have inserted it first
        logger.warning(f"Contact insert for {phone} failed ({e}); re-reading")
        return db.get_contact(client_id, phone)


def append_summary(existing: Optional[str], entry: str, limit: int = ROLLING_SUMMARY_LIMIT) -> str:
    """Append a dated entry to the rolling summary, keeping only the newest `limit` entries."""
    entries = [s for s in (existing or "").split(SUMMARY_SEPARATOR) if s]
    entries.append(entry)
    return SUMMARY_SEPARATOR.join(entries[-limit:])
