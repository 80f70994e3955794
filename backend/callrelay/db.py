from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4
from datetime import datetime, timezone
import copy
import os

# Tenant-scoped record store over Supabase. Falls back to an in-memory store when SUPABASE_URL is missing.
from supabase import create_client, Client

from .services.normalizer import parse_timestamp


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryDB:
    def __init__(self) -> None:
        self.clients: Dict[str, Dict[str, Any]] = {}
        # Keyed by (client_id, vapi_call_id); at most one row per pair
        self.active_calls: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.contacts: Dict[str, Dict[str, Any]] = {}
        self.contact_calls: List[Dict[str, Any]] = []
        self.call_usage: List[Dict[str, Any]] = []
        self.webhooks: Dict[str, Dict[str, Any]] = {}
        self.webhook_agents: List[Dict[str, str]] = []
        self.webhook_logs: List[Dict[str, Any]] = []

    # Clients (tenants)
    def create_client(self, name: str, vapi_org_id: Optional[str], vapi_key: Optional[str] = None) -> Dict[str, Any]:
        cid = str(uuid4())
        obj = {
            "id": cid,
            "name": name,
            "vapi_org_id": vapi_org_id,
            "vapi_key": vapi_key,
            "created_at": _now_iso(),
        }
        self.clients[cid] = obj
        return dict(obj)

    def get_client(self, client_id: str) -> Optional[Dict[str, Any]]:
        obj = self.clients.get(str(client_id))
        return dict(obj) if obj else None

    def get_client_id_by_org(self, vapi_org_id: str) -> Optional[str]:
        for obj in self.clients.values():
            if obj.get("vapi_org_id") == vapi_org_id:
                return obj["id"]
        return None

    # Active calls
    def delete_stale_active_calls(self, cutoff: datetime) -> int:
        stale = []
        for key, row in self.active_calls.items():
            started = parse_timestamp(row.get("started_at"))
            if started is not None and started < cutoff:
                stale.append(key)
        for key in stale:
            del self.active_calls[key]
        return len(stale)

    def get_active_call(self, client_id: str, vapi_call_id: str) -> Optional[Dict[str, Any]]:
        row = self.active_calls.get((client_id, vapi_call_id))
        return dict(row) if row else None

    def insert_active_call(self, row: Dict[str, Any]) -> Dict[str, Any]:
        key = (row["client_id"], row["vapi_call_id"])
        if key in self.active_calls:
            raise ValueError(f"active call {row['vapi_call_id']} already exists for client {row['client_id']}")
        obj = {"id": str(uuid4()), "transcript": None, "summary": None}
        obj.update(row)
        self.active_calls[key] = obj
        return dict(obj)

    def update_active_call(self, client_id: str, vapi_call_id: str, updates: Dict[str, Any]) -> bool:
        row = self.active_calls.get((client_id, vapi_call_id))
        if row is None:
            return False
        row.update(updates)
        return True

    def delete_active_call(self, client_id: str, vapi_call_id: str) -> None:
        self.active_calls.pop((client_id, vapi_call_id), None)

    def list_active_calls(self, client_id: str, since: datetime) -> List[Dict[str, Any]]:
        items = []
        for row in self.active_calls.values():
            if row.get("client_id") != client_id:
                continue
            started = parse_timestamp(row.get("started_at"))
            if started is not None and started < since:
                continue
            items.append(dict(row))
        items.sort(key=lambda r: r.get("started_at") or "", reverse=True)
        return items

    # Contacts
    def get_contact(self, client_id: str, phone: str) -> Optional[Dict[str, Any]]:
        for obj in self.contacts.values():
            if obj["client_id"] == client_id and obj["phone"] == phone:
                return dict(obj)
        return None

    def get_contact_by_id(self, contact_id: str) -> Optional[Dict[str, Any]]:
        obj = self.contacts.get(str(contact_id))
        return dict(obj) if obj else None

    def create_contact(self, client_id: str, phone: str, name: Optional[str] = None, email: Optional[str] = None) -> Dict[str, Any]:
        if self.get_contact(client_id, phone):
            raise ValueError(f"contact {phone} already exists for client {client_id}")
        cid = str(uuid4())
        obj = {
            "id": cid,
            "client_id": client_id,
            "phone": phone,
            "name": name,
            "email": email,
            "conversation_summary": None,
            "total_calls": 0,
            "last_call_at": None,
            "created_at": _now_iso(),
            "updated_at": _now_iso(),
        }
        self.contacts[cid] = obj
        return dict(obj)

    def update_contact(self, contact_id: str, updates: Dict[str, Any]) -> None:
        if contact_id in self.contacts:
            self.contacts[contact_id].update(updates)

    def insert_contact_call(self, row: Dict[str, Any]) -> Dict[str, Any]:
        obj = {"id": str(uuid4()), "created_at": _now_iso()}
        obj.update(row)
        self.contact_calls.append(obj)
        return dict(obj)

    def list_contact_calls(self, contact_id: str) -> List[Dict[str, Any]]:
        return [dict(r) for r in self.contact_calls if r["contact_id"] == contact_id]

    # Usage
    def insert_call_usage(self, row: Dict[str, Any]) -> Dict[str, Any]:
        obj = {"id": str(uuid4()), "recorded_at": _now_iso()}
        obj.update(row)
        self.call_usage.append(obj)
        return dict(obj)

    def list_call_usage(self, client_id: str) -> List[Dict[str, Any]]:
        return [dict(r) for r in self.call_usage if r["client_id"] == client_id]

    # Subscribers (outbound webhooks)
    def _with_agents(self, webhook: Dict[str, Any]) -> Dict[str, Any]:
        obj = copy.deepcopy(webhook)
        obj["agent_ids"] = [m["agent_id"] for m in self.webhook_agents if m["webhook_id"] == webhook["id"]]
        return obj

    def _set_agents(self, webhook_id: str, agent_ids: List[str]) -> None:
        self.webhook_agents = [m for m in self.webhook_agents if m["webhook_id"] != webhook_id]
        for agent_id in agent_ids:
            self.webhook_agents.append({"webhook_id": webhook_id, "agent_id": agent_id})

    def list_subscribers(self) -> List[Dict[str, Any]]:
        return [self._with_agents(w) for w in self.webhooks.values()]

    def get_subscriber(self, rid: str) -> Optional[Dict[str, Any]]:
        obj = self.webhooks.get(str(rid))
        return self._with_agents(obj) if obj else None

    def create_subscriber(self, body) -> Dict[str, Any]:
        rid = str(uuid4())
        obj = {
            "id": rid,
            "url": body.url,
            "secret": body.secret,
            "is_active": body.is_active,
            "events": list(body.events),
            "created_at": _now_iso(),
            "updated_at": _now_iso(),
        }
        self.webhooks[rid] = obj
        self._set_agents(rid, list(body.agent_ids or []))
        return self._with_agents(obj)

    def update_subscriber(self, rid: str, body) -> Optional[Dict[str, Any]]:
        rid = str(rid)
        if rid not in self.webhooks:
            return None
        obj = self.webhooks[rid]
        for k in ["url", "secret", "is_active", "events"]:
            v = getattr(body, k, None)
            if v is not None:
                obj[k] = v
        agent_ids = getattr(body, "agent_ids", None)
        if agent_ids is not None:
            self._set_agents(rid, list(agent_ids))
        obj["updated_at"] = _now_iso()
        return self._with_agents(obj)

    def delete_subscriber(self, rid: str) -> bool:
        rid = str(rid)
        self._set_agents(rid, [])
        return self.webhooks.pop(rid, None) is not None

    def list_subscribers_for_event(self, event_name: str) -> List[Dict[str, Any]]:
        return [
            self._with_agents(w)
            for w in self.webhooks.values()
            if w.get("is_active") and event_name in (w.get("events") or [])
        ]

    def insert_delivery_log(self, row: Dict[str, Any]) -> Dict[str, Any]:
        obj = {"id": str(uuid4()), "created_at": _now_iso()}
        obj.update(copy.deepcopy(row))
        self.webhook_logs.append(obj)
        return dict(obj)

    def list_delivery_logs(self, webhook_id: str) -> List[Dict[str, Any]]:
        rows = [dict(r) for r in self.webhook_logs if r["webhook_id"] == webhook_id]
        rows.reverse()
        return rows


class SupabaseDB:
    def __init__(self, client: Client) -> None:
        self.client = client

    def _first(self, res) -> Optional[Dict[str, Any]]:
        return (res.data or [None])[0]

    # Clients (tenants)
    def create_client(self, name: str, vapi_org_id: Optional[str], vapi_key: Optional[str] = None) -> Dict[str, Any]:
        res = self.client.table("clients").insert({
            "name": name,
            "vapi_org_id": vapi_org_id,
            "vapi_key": vapi_key,
        }).execute()
        return (res.data or [])[0]

    def get_client(self, client_id: str) -> Optional[Dict[str, Any]]:
        res = self.client.table("clients").select("*").eq("id", str(client_id)).limit(1).execute()
        return self._first(res)

    def get_client_id_by_org(self, vapi_org_id: str) -> Optional[str]:
        res = self.client.table("clients").select("id").eq("vapi_org_id", vapi_org_id).limit(1).execute()
        row = self._first(res)
        return row["id"] if row else None

    # Active calls
    def delete_stale_active_calls(self, cutoff: datetime) -> int:
        res = self.client.table("active_calls").delete().lt("started_at", cutoff.isoformat()).execute()
        return len(res.data or [])

    def get_active_call(self, client_id: str, vapi_call_id: str) -> Optional[Dict[str, Any]]:
        res = (
            self.client.table("active_calls").select("*")
            .eq("client_id", client_id).eq("vapi_call_id", vapi_call_id)
            .limit(1).execute()
        )
        return self._first(res)

    def insert_active_call(self, row: Dict[str, Any]) -> Dict[str, Any]:
        res = self.client.table("active_calls").insert(row).execute()
        return (res.data or [])[0]

    def update_active_call(self, client_id: str, vapi_call_id: str, updates: Dict[str, Any]) -> bool:
        res = (
            self.client.table("active_calls").update(updates)
            .eq("client_id", client_id).eq("vapi_call_id", vapi_call_id)
            .execute()
        )
        return bool(res.data)

    def delete_active_call(self, client_id: str, vapi_call_id: str) -> None:
        self.client.table("active_calls").delete().eq("client_id", client_id).eq("vapi_call_id", vapi_call_id).execute()

    def list_active_calls(self, client_id: str, since: datetime) -> List[Dict[str, Any]]:
        res = (
            self.client.table("active_calls").select("*")
            .eq("client_id", client_id).gte("started_at", since.isoformat())
            .order("started_at", desc=True).execute()
        )
        return res.data or []

    # Contacts
    def get_contact(self, client_id: str, phone: str) -> Optional[Dict[str, Any]]:
        res = self.client.table("contacts").select("*").eq("client_id", client_id).eq("phone", phone).limit(1).execute()
        return self._first(res)

    def get_contact_by_id(self, contact_id: str) -> Optional[Dict[str, Any]]:
        res = self.client.table("contacts").select("*").eq("id", str(contact_id)).limit(1).execute()
        return self._first(res)

    def create_contact(self, client_id: str, phone: str, name: Optional[str] = None, email: Optional[str] = None) -> Dict[str, Any]:
        res = self.client.table("contacts").insert({
            "client_id": client_id,
            "phone": phone,
            "name": name,
            "email": email,
            "total_calls": 0,
        }).execute()
        return (res.data or [])[0]

    def update_contact(self, contact_id: str, updates: Dict[str, Any]) -> None:
        self.client.table("contacts").update(updates).eq("id", contact_id).execute()

    def insert_contact_call(self, row: Dict[str, Any]) -> Dict[str, Any]:
        res = self.client.table("contact_calls").insert(row).execute()
        return (res.data or [])[0]

    def list_contact_calls(self, contact_id: str) -> List[Dict[str, Any]]:
        res = self.client.table("contact_calls").select("*").eq("contact_id", contact_id).order("called_at", desc=False).execute()
        return res.data or []

    # Usage
    def insert_call_usage(self, row: Dict[str, Any]) -> Dict[str, Any]:
        res = self.client.table("call_usage").insert(row).execute()
        return (res.data or [])[0]

    def list_call_usage(self, client_id: str) -> List[Dict[str, Any]]:
        res = self.client.table("call_usage").select("*").eq("client_id", client_id).execute()
        return res.data or []

    # Subscribers (outbound webhooks)
    def _attach_agents(self, webhooks: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not webhooks:
            return []
        ids = [w["id"] for w in webhooks]
        res = self.client.table("webhook_agents").select("webhook_id,agent_id").in_("webhook_id", ids).execute()
        by_webhook: Dict[str, List[str]] = {}
        for m in res.data or []:
            by_webhook.setdefault(m["webhook_id"], []).append(m["agent_id"])
        for w in webhooks:
            w["agent_ids"] = by_webhook.get(w["id"], [])
        return webhooks

    def _set_agents(self, webhook_id: str, agent_ids: List[str]) -> None:
        self.client.table("webhook_agents").delete().eq("webhook_id", webhook_id).execute()
        if agent_ids:
            self.client.table("webhook_agents").insert(
                [{"webhook_id": webhook_id, "agent_id": a} for a in agent_ids]
            ).execute()

    def list_subscribers(self) -> List[Dict[str, Any]]:
        res = self.client.table("webhooks").select("*").order("created_at", desc=False).execute()
        return self._attach_agents(res.data or [])

    def get_subscriber(self, rid: str) -> Optional[Dict[str, Any]]:
        res = self.client.table("webhooks").select("*").eq("id", str(rid)).limit(1).execute()
        row = self._first(res)
        return self._attach_agents([row])[0] if row else None

    def create_subscriber(self, body) -> Dict[str, Any]:
        payload = {
            "url": body.url,
            "secret": body.secret,
            "is_active": body.is_active,
            "events": list(body.events),
        }
        res = self.client.table("webhooks").insert(payload).execute()
        created = (res.data or [])[0]
        self._set_agents(created["id"], list(body.agent_ids or []))
        return self._attach_agents([created])[0]

    def update_subscriber(self, rid: str, body) -> Optional[Dict[str, Any]]:
        payload: Dict[str, Any] = {}
        for k in ["url", "secret", "is_active", "events"]:
            v = getattr(body, k, None)
            if v is not None:
                payload[k] = v
        if payload:
            payload["updated_at"] = _now_iso()
            res = self.client.table("webhooks").update(payload).eq("id", str(rid)).execute()
            if not res.data:
                return None
        elif not self.get_subscriber(rid):
            return None
        agent_ids = getattr(body, "agent_ids", None)
        if agent_ids is not None:
            self._set_agents(str(rid), list(agent_ids))
        return self.get_subscriber(rid)

    def delete_subscriber(self, rid: str) -> bool:
        res = self.client.table("webhooks").delete().eq("id", str(rid)).execute()
        return bool(res.data)

    def list_subscribers_for_event(self, event_name: str) -> List[Dict[str, Any]]:
        res = (
            self.client.table("webhooks").select("*")
            .eq("is_active", True).contains("events", [event_name])
            .execute()
        )
        return self._attach_agents(res.data or [])

    def insert_delivery_log(self, row: Dict[str, Any]) -> Dict[str, Any]:
        res = self.client.table("webhook_logs").insert(row).execute()
        return (res.data or [])[0]

    def list_delivery_logs(self, webhook_id: str) -> List[Dict[str, Any]]:
        res = (
            self.client.table("webhook_logs").select("*")
            .eq("webhook_id", str(webhook_id)).order("created_at", desc=True).limit(100)
            .execute()
        )
        return res.data or []


_client: Optional[Client] = None
_db_instance: Optional[Any] = None


def get_db():
    global _client, _db_instance

    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
    if url and key:
        if _client is None:
            _client = create_client(url, key)
        if _db_instance is None or not isinstance(_db_instance, SupabaseDB):
            _db_instance = SupabaseDB(_client)
        return _db_instance
    if _db_instance is None or not isinstance(_db_instance, InMemoryDB):
        _db_instance = InMemoryDB()
    return _db_instance
