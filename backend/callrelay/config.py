"""
Configuration for the call relay.
Centralizes environment variables and the fixed constants of the webhook pipeline.
"""
import os
import pathlib
from dotenv import load_dotenv

# Load .env from the project root first, then the current directory
project_root = pathlib.Path(__file__).parent.parent.parent
env_path = project_root / ".env"
if env_path.exists():
    load_dotenv(env_path)
else:
    load_dotenv()

# Provider
VAPI_BASE_URL = os.getenv("VAPI_BASE_URL", "https://api.vapi.ai").rstrip("/")
# Optional shared secret Vapi sends in X-Vapi-Secret; unset allows all (local dev)
VAPI_WEBHOOK_SECRET = os.getenv("VAPI_WEBHOOK_SECRET", "")

# Contact extraction LLM
OPENAI_EXTRACTION_MODEL = os.getenv("OPENAI_EXTRACTION_MODEL", "gpt-4o-mini")
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.1-8b-instant")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Active calls older than this are reaped on every start event
STALE_CALL_MAX_AGE_SECONDS = 60 * 60

# Per-subscriber outbound delivery timeout
FANOUT_TIMEOUT_SECONDS = 10.0

# Hard cap on the AI extraction step of contact enrichment
EXTRACTION_TIMEOUT_SECONDS = 5.0
EXTRACTION_MIN_TRANSCRIPT_LENGTH = 100

ROLLING_SUMMARY_LIMIT = 5

# Outbound fan-out headers
EVENT_HEADER = "X-Relay-Event"
TIMESTAMP_HEADER = "X-Relay-Timestamp"
SIGNATURE_HEADER = "X-Relay-Signature"

# Provider event names
FANOUT_CALL_STARTED = "call.started"
FANOUT_CALL_ENDED = "call.ended"
