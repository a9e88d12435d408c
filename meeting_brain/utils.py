import hashlib
import logging
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

# -------------------------------------------------------------- #
# Constants
# -------------------------------------------------------------- #


SENTIMENT_SCORES = {"positive": 1, "neutral": 0, "negative": -1}

DEFAULT_PARTICIPANT_ROLE = "participant"


# -------------------------------------------------------------- #
# Util Functions
# -------------------------------------------------------------- #


def get_current_timestamp_utc() -> datetime:
    """Get the current UTC timestamp."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat_or_none(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


def child_row_idempotency_key(transcript_id: str, kind: str, ordinal: int, description: str) -> str:
    """
    Build the natural key for an action item or decision row.

    The same transcript/kind/position/text always hashes to the same key, so
    replaying an ingestion never duplicates child rows.
    """
    payload = f"{transcript_id}|{kind}|{ordinal}|{description}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def distance_to_similarity(distance: float) -> float:
    """
    Convert a vector distance to a similarity score in (0, 1].

    score(0) == 1 and the score strictly decreases as distance grows.
    """
    if distance < 0:
        logger.warning(f"Negative distance {distance} clamped to 0")
        distance = 0.0
    return 1.0 / (1.0 + distance)
