"""
Pytest configuration and fixtures for the call relay tests.

Every test runs against a fresh in-memory store; Supabase is never contacted.
"""
from typing import Any, Dict

import pytest

from callrelay import db as db_module
from callrelay.db import InMemoryDB
from callrelay.schemas.pydantic_schemas import VapiCall

ORG_ID = "org-1"
PHONE = "+15551234567"


@pytest.fixture(autouse=True)
def memory_db(monkeypatch) -> InMemoryDB:
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_SERVICE_ROLE_KEY", raising=False)
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    store = InMemoryDB()
    monkeypatch.setattr(db_module, "_db_instance", store)
    return store


@pytest.fixture
def tenant(memory_db: InMemoryDB) -> Dict[str, Any]:
    return memory_db.create_client("Acme Dental", ORG_ID, vapi_key="vapi-key-1")


def make_call(**overrides: Any) -> VapiCall:
    data: Dict[str, Any] = {
        "id": "call-1",
        "orgId": ORG_ID,
        "assistantId": "asst-1",
        "status": "ringing",
        "type": "inboundPhoneCall",
        "customer": {"number": PHONE},
    }
    data.update(overrides)
    return VapiCall.model_validate(data)
