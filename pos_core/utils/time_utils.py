# =============================================================================
# pos_core/utils/time_utils.py
# Wall-clock helpers
# =============================================================================

import time
from datetime import datetime, timezone
from typing import Callable

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND

# Anything returning epoch milliseconds; tests pass a fake one.
Clock = Callable[[], int]


def now_ms() -> int:
    """Current time as integer epoch milliseconds."""
    return int(time.time() * MS_PER_SECOND)


def iso_from_ms(ms: int) -> str:
    """Epoch milliseconds as a UTC ISO-8601 string, e.g. 2024-03-05T09:30:00.000Z"""
    stamp = datetime.fromtimestamp(ms / MS_PER_SECOND, tz=timezone.utc)
    return stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")
