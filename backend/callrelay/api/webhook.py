from fastapi import APIRouter, Request, HTTPException
from fastapi.responses import JSONResponse
from .. import config
from ..services.dispatcher import dispatch_event, normalize_envelope
import hmac
import json
import logging

# Set up logger
logger = logging.getLogger(__name__)

router = APIRouter()


def verify_secret(provided: str) -> bool:
    secret = config.VAPI_WEBHOOK_SECRET
    if not secret:
        return True  # allow in local dev
    return hmac.compare_digest(secret.encode(), (provided or "").encode())


@router.post("/webhook")
async def vapi_webhook(request: Request):
    if not verify_secret(request.headers.get("x-vapi-secret", "")):
        logger.warning("Vapi webhook secret verification failed")
        raise HTTPException(status_code=401, detail="Invalid secret")

    try:
        raw = json.loads((await request.body()).decode("utf-8"))
        message = normalize_envelope(raw)
        logger.info(f"Vapi webhook received: type={message.type} call={message.call.id if message.call else None}")
        return await dispatch_event(message)
    except Exception:
        logger.exception("Vapi webhook error")
        return JSONResponse(status_code=500, content={"error": "Webhook processing failed"})
