import os
import re
import json
import logging
from typing import Dict, Optional
from openai import AsyncOpenAI

from ..config import GROQ_MODEL, OPENAI_EXTRACTION_MODEL

logger = logging.getLogger(__name__)


CONTACT_EXTRACTION_PROMPT = (
    "You are extracting caller information from a phone call transcript.\n"
    "Extract the caller's name and email address if they provided them during the call.\n"
    "Return a JSON object with exactly this format:\n"
    "{\"name\": \"string or null\", \"email\": \"string or null\"}\n\n"
    "Rules:\n"
    "- Only extract information the caller explicitly stated about themselves\n"
    "- Do not extract agent/business names\n"
    "- Email must be a valid email format\n"
    "- Name should be the caller's full name if available\n"
    "- Return null for any field not clearly stated by the caller"
)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Keep the call well inside the provider's webhook response window
CLIENT_TIMEOUT_SECONDS = 5.0
MAX_TRANSCRIPT_CHARS = 4000
MIN_TRANSCRIPT_CHARS = 50


class OpenAIClient:
    def __init__(self) -> None:
        # Groq first (OpenAI-compatible), then OpenAI, else simulated
        groq_key = os.getenv("GROQ_API_KEY")
        openai_key = os.getenv("OPENAI_API_KEY")

        if groq_key and len(groq_key.strip()) > 0:
            self.client = AsyncOpenAI(
                api_key=groq_key,
                base_url="https://api.groq.com/openai/v1",
                timeout=CLIENT_TIMEOUT_SECONDS,
            )
            self.model = GROQ_MODEL
            self.simulated = False
            logger.debug("OpenAIClient: using Groq")
        elif openai_key and len(openai_key.strip()) > 0:
            self.client = AsyncOpenAI(api_key=openai_key, timeout=CLIENT_TIMEOUT_SECONDS)
            self.model = OPENAI_EXTRACTION_MODEL
            self.simulated = False
            logger.debug("OpenAIClient: using OpenAI")
        else:
            self.client = None
            self.model = None
            self.simulated = True
            logger.debug("OpenAIClient: no API keys, extraction disabled")

    async def extract_contact_info(self, transcript: str) -> Dict[str, Optional[str]]:
        """Pull the caller's own name and email out of a transcript.

        Best-effort: any failure, short transcript or simulated mode yields
        {"name": None, "email": None}.
        """
        empty: Dict[str, Optional[str]] = {"name": None, "email": None}
        if not transcript or len(transcript) < MIN_TRANSCRIPT_CHARS:
            return empty
        if self.simulated:
            return empty

        try:
            chat = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": CONTACT_EXTRACTION_PROMPT},
                    {
                        "role": "user",
                        "content": f"Extract caller name and email from this transcript:\n\n{transcript[:MAX_TRANSCRIPT_CHARS]}",
                    },
                ],
                response_format={"type": "json_object"},
                temperature=0,
                max_tokens=100,
            )
            content = chat.choices[0].message.content
            if not content:
                return empty
            parsed = json.loads(content)
        except Exception as e:
            logger.error(f"Contact extraction failed: {type(e).__name__}: {e}")
            return empty

        name = parsed.get("name") if isinstance(parsed, dict) else None
        email = parsed.get("email") if isinstance(parsed, dict) else None
        return {
            "name": name if isinstance(name, str) and name else None,
            "email": email if isinstance(email, str) and EMAIL_RE.match(email) else None,
        }
