"""Pure helpers that turn raw Vapi call fields into canonical duration, outcome and cost values."""
import math
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Union

OUTCOME_BY_ENDED_REASON = {
    "assistant-ended-call": "completed",
    "customer-ended-call": "customer_hangup",
    "customer-did-not-answer": "no_answer",
    "voicemail": "voicemail",
    "assistant-error": "error",
}

Timestamp = Optional[Union[str, int, float]]


def parse_timestamp(value: Timestamp) -> Optional[datetime]:
    """Parse an ISO-8601 string or Unix milliseconds into an aware UTC datetime.

    Unparseable values are treated the same as missing ones.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_iso(value: Timestamp) -> Optional[str]:
    """Normalize a provider timestamp to ISO-8601.

    Parseable strings pass through untouched; anything unparseable becomes None.
    """
    if isinstance(value, str):
        return value if parse_timestamp(value) else None
    parsed = parse_timestamp(value)
    return parsed.isoformat() if parsed else None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    # Millisecond precision with a trailing Z, the format Vapi itself emits
    return utc_now().isoformat(timespec="milliseconds").replace("+00:00", "Z")


def compute_duration(started_at: Timestamp, ended_at: Timestamp) -> int:
    """Whole seconds between two timestamps, rounded half-up.

    Returns 0 when either side is missing. A negative difference (clock skew,
    out-of-order delivery) is returned as-is.
    """
    start = parse_timestamp(started_at)
    end = parse_timestamp(ended_at)
    if start is None or end is None:
        return 0
    return math.floor((end - start).total_seconds() + 0.5)


def sum_cost(costs: Optional[Iterable[Any]]) -> float:
    total = 0.0
    for item in costs or []:
        cost = item.get("cost") if isinstance(item, dict) else getattr(item, "cost", None)
        total += cost or 0
    return total


def round_cost(total: float) -> float:
    return math.floor(total * 100 + 0.5) / 100


def classify_outcome(ended_reason: Optional[str]) -> str:
    if not ended_reason:
        return "unknown"
    return OUTCOME_BY_ENDED_REASON.get(ended_reason, ended_reason)


def format_duration(seconds: int) -> str:
    sign = "-" if seconds < 0 else ""
    seconds = abs(int(seconds))
    return f"{sign}{seconds // 60}:{seconds % 60:02d}"


def format_call_date(value: Timestamp = None) -> str:
    """M/D/YYYY date used in rolling summaries and caller context."""
    moment = parse_timestamp(value) or utc_now()
    return f"{moment.month}/{moment.day}/{moment.year}"
