from datetime import datetime, timezone
from typing import Optional

# Fixed width so that string order matches time order in the store.
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)


def normalize_timestamp(value: str) -> Optional[str]:
    """
    Rewrite any ISO 8601 timestamp into TIMESTAMP_FORMAT.

    Clients echo back what the API serialized, which may omit the fraction
    (``...:05Z``) or carry an offset. Naive values are taken as UTC. Raises
    ValueError for anything that is not a timestamp.
    """
    if value is None or not value.strip():
        return None

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)
