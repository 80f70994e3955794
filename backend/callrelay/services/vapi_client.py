import httpx
from typing import Optional
import logging

from ..config import VAPI_BASE_URL

logger = logging.getLogger(__name__)


class VapiClient:
    """Thin client for the Vapi REST API, authenticated with one client's key."""

    def __init__(self, api_key: Optional[str]) -> None:
        self.api_key = api_key
        self.base_url = VAPI_BASE_URL

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def end_call(self, call_id: str) -> bool:
        """Terminate a live call. Returns False on any upstream failure."""
        if not self.api_key:
            logger.error(f"Cannot end call {call_id}: no Vapi API key")
            return False

        logger.info(f"Ending call: {call_id}")
        try:
            async with httpx.AsyncClient() as client:
                response = await client.delete(
                    f"{self.base_url}/call/{call_id}",
                    headers=self._headers(),
                    timeout=10.0,
                )
                logger.info(f"End call API response: {response.status_code}")
                response.raise_for_status()
                return True
        except httpx.HTTPStatusError as e:
            logger.error(f"Vapi API HTTP error ending call {call_id}: {e.response.status_code} - {e.response.text}")
            return False
        except httpx.RequestError as e:
            logger.error(f"Vapi API request error ending call {call_id}: {str(e)}")
            return False
