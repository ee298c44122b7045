from datetime import datetime, timezone


def epoch_ms_to_iso(epoch_ms: int) -> str:
    """Format epoch milliseconds as an ISO-8601 UTC string.

    Uses millisecond precision and a ``Z`` suffix, e.g.
    ``2025-09-18T16:44:39.000Z``.

    Args:
        epoch_ms: UNIX time in milliseconds.

    Returns:
        str: ISO-8601 timestamp.
    """
    moment = datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now_iso() -> str:
    """Return the current time in the same format as ``epoch_ms_to_iso``."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")
