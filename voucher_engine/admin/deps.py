"""Admin auth: X-Admin-Secret header (or admin_secret query) against ADMIN_SECRET."""
import hmac

from fastapi import Header, HTTPException, Query

from voucher_engine.core.config import settings


def _admin_secret_constant_time_compare(provided: str | None, expected: str | None) -> bool:
    """Timing-safe compare; leaks nothing about the expected value."""
    p = (provided or "").encode("utf-8")
    e = (expected or "").encode("utf-8")
    if len(p) != len(e):
        # Still spend a compare of the same shape on mismatched lengths
        dummy = b"\x00" * max(len(p), len(e))
        hmac.compare_digest(p if len(p) >= len(e) else dummy[: len(p)], e if len(e) >= len(p) else dummy[: len(e)])
        return False
    return hmac.compare_digest(p, e)


def require_admin(
    x_admin_secret: str | None = Header(None, alias="X-Admin-Secret"),
    admin_secret: str | None = Query(None, description="Admin secret"),
) -> None:
    expected = settings.admin_secret
    if not expected:
        raise HTTPException(status_code=503, detail="Admin API is not configured (ADMIN_SECRET missing).")
    secret = (x_admin_secret or admin_secret) or ""
    if not _admin_secret_constant_time_compare(secret, expected):
        raise HTTPException(status_code=403, detail="Forbidden.")
