from fastapi import APIRouter, HTTPException
from typing import List
from ..schemas.pydantic_schemas import DeliveryLogRead, SubscriberCreate, SubscriberRead, SubscriberUpdate
from ..db import get_db

router = APIRouter()


@router.get("/", response_model=List[SubscriberRead])
async def list_subscribers():
    db = get_db()
    return db.list_subscribers()


@router.post("/", response_model=SubscriberRead, status_code=201)
async def create_subscriber(body: SubscriberCreate):
    db = get_db()
    return db.create_subscriber(body)


@router.put("/{subscriber_id}", response_model=SubscriberRead)
async def update_subscriber(subscriber_id: str, body: SubscriberUpdate):
    db = get_db()
    updated = db.update_subscriber(subscriber_id, body)
    if not updated:
        raise HTTPException(status_code=404, detail="Subscriber not found")
    return updated


@router.delete("/{subscriber_id}")
async def delete_subscriber(subscriber_id: str):
    db = get_db()
    ok = db.delete_subscriber(subscriber_id)
    if not ok:
        raise HTTPException(status_code=404, detail="Subscriber not found")
    return {"deleted": True}


@router.get("/{subscriber_id}/deliveries", response_model=List[DeliveryLogRead])
async def list_deliveries(subscriber_id: str):
    db = get_db()
    if not db.get_subscriber(subscriber_id):
        raise HTTPException(status_code=404, detail="Subscriber not found")
    return db.list_delivery_logs(subscriber_id)
