import time
from datetime import datetime
import pytz

BERLIN_TZ = pytz.timezone('Europe/Berlin')

def now_berlin() -> datetime:
    """Get current time in Berlin timezone."""
    return datetime.now(pytz.UTC).astimezone(BERLIN_TZ)


def monotonic_ms() -> float:
    """Monotonic clock in milliseconds, shared by sample arrival and ticks."""
    return time.monotonic() * 1000.0
