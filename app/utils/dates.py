"""Date helpers"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC now, matching what MongoDB hands back"""
    return datetime.now(timezone.utc).replace(tzinfo=None)
