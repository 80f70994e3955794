import pytest

from callrelay.schemas.pydantic_schemas import VapiMessage
from callrelay.services import contact_enrichment, dispatcher

from conftest import ORG_ID, PHONE


class NoExtraction:
    async def extract_contact_info(self, transcript):
        return {"name": None, "email": None}


@pytest.fixture(autouse=True)
def no_llm(monkeypatch):
    monkeypatch.setattr(contact_enrichment, "OpenAIClient", NoExtraction)


@pytest.fixture
def fanned_out(monkeypatch):
    events = []

    async def fake_fan_out(event_name, call):
        events.append((event_name, call.id))
        return 0, 0

    monkeypatch.setattr(dispatcher, "fan_out", fake_fan_out)
    return events


def message(message_type, conversation=None, **call):
    data = {"id": "call-1", "orgId": ORG_ID, "assistantId": "asst-1", "customer": {"number": PHONE}}
    data.update(call)
    body = {"type": message_type, "call": data}
    if conversation is not None:
        body["conversation"] = conversation
    return VapiMessage.model_validate(body)


def test_normalize_envelope_unwraps_both_shapes():
    inner = {"type": "status-update", "call": {"id": "c1"}}

    direct = dispatcher.normalize_envelope({"message": inner})
    forwarded = dispatcher.normalize_envelope({"headers": {}, "body": {"message": inner}})
    bare = dispatcher.normalize_envelope(inner)

    assert direct.type == forwarded.type == bare.type == "status-update"
    assert direct.call.id == forwarded.call.id == bare.call.id == "c1"


def test_normalize_envelope_rejects_non_objects():
    with pytest.raises(ValueError):
        dispatcher.normalize_envelope(["not", "an", "object"])


@pytest.mark.asyncio
async def test_missing_call_is_acknowledged(memory_db, tenant, fanned_out):
    result = await dispatcher.dispatch_event(VapiMessage(type="status-update"))

    assert result == {"received": True}
    assert memory_db.active_calls == {}
    assert fanned_out == []


@pytest.mark.asyncio
async def test_unknown_org_is_acknowledged_without_state(memory_db, tenant, fanned_out):
    result = await dispatcher.dispatch_event(message("status-update", status="ringing", orgId="org-unknown"))

    assert result == {"received": True}
    assert memory_db.active_calls == {}


@pytest.mark.asyncio
async def test_full_lifecycle(memory_db, tenant, fanned_out):
    client_id = tenant["id"]

    await dispatcher.dispatch_event(message("status-update", status="ringing"))
    assert memory_db.get_active_call(client_id, "call-1")["status"] == "ringing"

    result = await dispatcher.dispatch_event(message("status-update", status="in-progress"))
    assert result == {"received": True, "forwarded": 0, "total": 0}
    assert memory_db.get_active_call(client_id, "call-1")["status"] == "in-progress"

    await dispatcher.dispatch_event(message(
        "conversation-update",
        conversation=[{"role": "assistant", "content": "Hello"}, {"role": "user", "message": "Hi"}],
        status="in-progress",
    ))
    assert memory_db.get_active_call(client_id, "call-1")["transcript"] == "assistant: Hello\nuser: Hi"

    result = await dispatcher.dispatch_event(message(
        "end-of-call-report",
        status="ended",
        endedReason="customer-ended-call",
        startedAt="2024-03-05T10:00:00.000Z",
        endedAt="2024-03-05T10:01:00.000Z",
        analysis={"summary": "Asked about hours"},
    ))

    assert result == {"received": True, "forwarded": 0, "total": 0}
    assert memory_db.get_active_call(client_id, "call-1") is None
    contact = memory_db.get_contact(client_id, PHONE)
    assert contact["total_calls"] == 1
    assert memory_db.list_call_usage(client_id)[0]["duration_seconds"] == 60
    assert fanned_out == [("call.started", "call-1"), ("call.ended", "call-1")]


@pytest.mark.asyncio
async def test_duplicate_start_events_create_one_row(memory_db, tenant, fanned_out):
    for _ in range(3):
        await dispatcher.dispatch_event(message("call-started", status="ringing"))
    await dispatcher.dispatch_event(message("speech-update", status="in-progress"))

    assert len(memory_db.active_calls) == 1
    assert fanned_out == []


@pytest.mark.asyncio
async def test_status_ended_terminates_without_fan_out(memory_db, tenant, fanned_out):
    await dispatcher.dispatch_event(message("status-update", status="ringing"))

    result = await dispatcher.dispatch_event(message("status-update", status="ended"))

    assert result == {"received": True}
    assert memory_db.active_calls == {}
    assert fanned_out == []
    # No timestamps means zero duration, so nothing is billed
    assert memory_db.list_call_usage(tenant["id"]) == []


@pytest.mark.asyncio
async def test_late_events_after_end_leave_no_active_row(memory_db, tenant, fanned_out):
    await dispatcher.dispatch_event(message("status-update", status="ringing"))
    await dispatcher.dispatch_event(message("end-of-call-report", status="ended"))

    await dispatcher.dispatch_event(message("conversation-update", conversation=[], status="ended"))
    await dispatcher.dispatch_event(message("speech-update", status="ended"))
    await dispatcher.dispatch_event(message("assistant-request", status="ended"))

    assert memory_db.get_active_call(tenant["id"], "call-1") is None
    assert memory_db.active_calls == {}


@pytest.mark.asyncio
async def test_assistant_request_returns_variables(memory_db, tenant, fanned_out):
    result = await dispatcher.dispatch_event(message("assistant-request", status="ringing"))

    assert result["variableValues"]["customer_phone"] == PHONE
    assert result["variableValues"]["is_returning_caller"] is False
    assert memory_db.get_active_call(tenant["id"], "call-1") is not None


@pytest.mark.asyncio
async def test_assistant_request_without_client_returns_empty(memory_db, fanned_out):
    result = await dispatcher.dispatch_event(message("assistant-request", orgId="org-unknown"))

    assert result == {}


@pytest.mark.asyncio
async def test_unknown_type_with_call_starts_tracking(memory_db, tenant, fanned_out):
    result = await dispatcher.dispatch_event(message("hang", status="in-progress"))

    assert result == {"received": True}
    assert memory_db.get_active_call(tenant["id"], "call-1")["status"] == "in-progress"


@pytest.mark.asyncio
async def test_end_report_with_non_string_structured_data(memory_db, tenant, fanned_out):
    await dispatcher.dispatch_event(message("status-update", status="ringing"))

    report = dispatcher.normalize_envelope({"message": {
        "type": "end-of-call-report",
        "call": {
            "id": "call-1",
            "orgId": ORG_ID,
            "status": "ended",
            "customer": {"number": PHONE},
            "analysis": {
                "summary": "Asked about hours",
                "structuredData": {"name": {"first": "Jane"}, "caller_name": ["Jane"], "email": 42},
            },
        },
    }})
    result = await dispatcher.dispatch_event(report)

    assert result == {"received": True, "forwarded": 0, "total": 0}
    assert memory_db.get_active_call(tenant["id"], "call-1") is None
    contact = memory_db.get_contact(tenant["id"], PHONE)
    assert contact["total_calls"] == 1
    assert contact["name"] is None
    assert contact["email"] is None
    assert fanned_out[-1] == ("call.ended", "call-1")
