"""Admin catalogue: /api/admin/vouchers CRUD behind X-Admin-Secret."""
from fastapi.testclient import TestClient

from voucher_engine.schemas import VoucherCategory

BASE = "/api/admin/vouchers"


def _discount_body(**overrides):
    body = {
        "voucher_id": "summer2025",
        "category": "discount",
        "discount_kind": "percentage",
        "discount_value": 20,
        "discount_cap": 50_000,
        "min_order_value": 100_000,
        "usage_limit": 500,
        "max_per_user": 1,
        "valid_from": "2025-05-01T00:00:00Z",
        "valid_until": "2025-08-31T23:59:59Z",
        "description": "Summer sale",
    }
    body.update(overrides)
    return body


def _shipping_body(**overrides):
    body = {
        "voucher_id": "FREESHIP",
        "category": "shipping",
        "shipping_discount_value": 30_000,
        "min_order_value": 0,
        "usage_limit": 100,
        "max_per_user": 2,
        "valid_from": "2025-05-01T00:00:00+07:00",
        "valid_until": "2025-07-01T00:00:00+07:00",
    }
    body.update(overrides)
    return body


def test_admin_requires_secret(client: TestClient):
    assert client.get(BASE).status_code == 403
    r = client.get(BASE, headers={"X-Admin-Secret": "wrong"})
    assert r.status_code == 403
    assert r.json()["error"] == "Forbidden."


def test_create_discount_voucher(client: TestClient, admin_headers):
    r = client.post(BASE, json=_discount_body(), headers=admin_headers)
    assert r.status_code == 201
    v = r.json()["voucher"]
    assert v["voucher_id"] == "SUMMER2025"
    assert v["discount_kind"] == "percentage"
    assert v["discount_cap"] == 50_000
    assert v["usage_count"] == 0
    assert v["valid_from"] == "2025-05-01T00:00:00"
    assert "shipping_discount_value" not in v


def test_create_shipping_voucher_converts_to_utc(client: TestClient, admin_headers):
    r = client.post(BASE, json=_shipping_body(), headers=admin_headers)
    assert r.status_code == 201
    v = r.json()["voucher"]
    assert v["category"] == "shipping"
    assert v["shipping_discount_value"] == 30_000
    assert v["valid_from"] == "2025-04-30T17:00:00"
    assert "discount_kind" not in v


def test_create_rejects_bad_terms(client: TestClient, admin_headers):
    # Percentage over 100
    assert client.post(BASE, json=_discount_body(discount_value=150), headers=admin_headers).status_code == 422
    # Window ends before it starts
    bad_window = _discount_body(valid_until="2025-04-01T00:00:00Z")
    assert client.post(BASE, json=bad_window, headers=admin_headers).status_code == 422
    # Shipping field on a discount voucher
    mixed = _discount_body(shipping_discount_value=10_000)
    assert client.post(BASE, json=mixed, headers=admin_headers).status_code == 422
    # Only letters and digits
    assert client.post(BASE, json=_discount_body(voucher_id="BAD-ID"), headers=admin_headers).status_code == 422
    assert client.post(BASE, json=_discount_body(category="gift"), headers=admin_headers).status_code == 422


def test_create_duplicate_id(client: TestClient, admin_headers):
    assert client.post(BASE, json=_discount_body(), headers=admin_headers).status_code == 201
    r = client.post(BASE, json=_discount_body(), headers=admin_headers)
    assert r.status_code == 400
    assert r.json()["error"] == "Voucher ID already exists."


def test_list_filters_and_pagination(client: TestClient, admin_headers, make_voucher):
    make_voucher("DISC1")
    make_voucher("DISC2", active=False)
    make_voucher("SHIP1", VoucherCategory.shipping)
    make_voucher("DELETED1", is_deleted=True)

    r = client.get(BASE, headers=admin_headers)
    j = r.json()
    assert j["pagination"]["total"] == 3
    assert {v["voucher_id"] for v in j["vouchers"]} == {"DISC1", "DISC2", "SHIP1"}

    r = client.get(BASE, params={"status": "inactive"}, headers=admin_headers)
    assert [v["voucher_id"] for v in r.json()["vouchers"]] == ["DISC2"]
    r = client.get(BASE, params={"category": "shipping"}, headers=admin_headers)
    assert [v["voucher_id"] for v in r.json()["vouchers"]] == ["SHIP1"]
    r = client.get(BASE, params={"search": "disc", "limit": 1}, headers=admin_headers)
    assert r.json()["pagination"] == {"page": 1, "limit": 1, "total": 2, "pages": 2}


def test_detail_and_soft_delete(client: TestClient, admin_headers, make_voucher, load_voucher):
    make_voucher("DISC1")
    assert client.get(f"{BASE}/disc1", headers=admin_headers).json()["voucher"]["voucher_id"] == "DISC1"
    r = client.delete(f"{BASE}/DISC1", headers=admin_headers)
    assert r.status_code == 200
    assert client.get(f"{BASE}/DISC1", headers=admin_headers).status_code == 404
    assert load_voucher("DISC1").is_deleted is True
    assert client.get(f"{BASE}/MISSING", headers=admin_headers).status_code == 404


def test_update_merges_and_revalidates(client: TestClient, admin_headers, make_voucher):
    make_voucher("DISC1", discount_value=10_000)
    r = client.put(f"{BASE}/DISC1", json={"discount_value": 25_000, "description": "bigger"}, headers=admin_headers)
    assert r.status_code == 200
    v = r.json()["voucher"]
    assert v["discount_value"] == 25_000
    assert v["description"] == "bigger"
    assert v["updated_at"] is not None

    r = client.put(f"{BASE}/DISC1", json={"discount_kind": "percentage"}, headers=admin_headers)
    assert r.status_code == 400

    r = client.put(f"{BASE}/DISC1", json={"shipping_discount_value": 5_000}, headers=admin_headers)
    assert r.status_code == 400
    assert "shipping_discount_value" in r.json()["error"]


def test_update_cannot_drop_limit_below_usage(client: TestClient, admin_headers, make_voucher):
    make_voucher("DISC1", usage_limit=10, usage_count=4)
    r = client.put(f"{BASE}/DISC1", json={"usage_limit": 3}, headers=admin_headers)
    assert r.status_code == 400
    r = client.put(f"{BASE}/DISC1", json={"usage_limit": 4}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["voucher"]["remaining_usage"] == 0
