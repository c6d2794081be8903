from datetime import datetime

from voucher_engine.core.clock import utcnow


def get_now() -> datetime:
    """Clock used by every voucher check; overridden in tests to freeze time."""
    return utcnow()
