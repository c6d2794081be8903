"""Pytest fixtures: test client with a frozen clock, in-memory SQLite, voucher factory."""
import os
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

# In-memory SQLite for tests (must be set before the app is imported)
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ADMIN_SECRET", "test-admin-secret")
# High limits so the whole suite stays under them
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "1000")
os.environ.setdefault("RATE_LIMIT_COMMIT_PER_MINUTE", "1000")

from sqlmodel import Session, SQLModel

from voucher_engine.api.deps import get_now
from voucher_engine.core.config import settings
from voucher_engine.core.database import engine, init_db
from voucher_engine.core.rate_limit import limiter
from voucher_engine.main import app
from voucher_engine.models import Voucher
from voucher_engine.schemas import DiscountKind, VoucherCategory

NOW = datetime(2025, 6, 1, 12, 0, 0)


@pytest.fixture(autouse=True)
def _fresh_db():
    """Empty tables and rate limit counters for every test."""
    init_db()
    limiter.reset()
    yield
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def client():
    """TestClient with the voucher clock frozen at NOW."""
    app.dependency_overrides[get_now] = lambda: NOW
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return {"X-Admin-Secret": settings.admin_secret}


def build_voucher(voucher_id: str, category: VoucherCategory = VoucherCategory.discount, **overrides) -> Voucher:
    """Unsaved voucher, valid around NOW; discount defaults to a fixed 10,000."""
    fields = {
        "voucher_id": voucher_id,
        "category": category,
        "min_order_value": 0,
        "usage_limit": 100,
        "usage_count": 0,
        "max_per_user": 1,
        "valid_from": NOW - timedelta(days=30),
        "valid_until": NOW + timedelta(days=30),
        "active": True,
    }
    if category == VoucherCategory.discount:
        fields.update({"discount_kind": DiscountKind.fixed, "discount_value": 10_000})
    else:
        fields["shipping_discount_value"] = 15_000
    fields.update(overrides)
    return Voucher(**fields)


@pytest.fixture
def make_voucher():
    """Persists a voucher through its own session and returns its id."""

    def _make(voucher_id: str, category: VoucherCategory = VoucherCategory.discount, **overrides) -> str:
        with Session(engine) as db:
            db.add(build_voucher(voucher_id, category, **overrides))
            db.commit()
        return voucher_id

    return _make


@pytest.fixture
def load_voucher():
    """Fresh read of a voucher as persisted now."""

    def _load(voucher_id: str) -> Voucher:
        with Session(engine) as db:
            voucher = db.get(Voucher, voucher_id)
            db.expunge(voucher)
            return voucher

    return _load
