import pytest
from fastapi.testclient import TestClient

from backoffice.app.api.deps import get_db
from backoffice.app.core.config import get_settings
from backoffice.app.main import app


@pytest.fixture
def client(session_factory, settings, world):
    """
    Une session par requête, sur la base du test.

    db_session n'est plus utilisée après ``world`` : une transaction SQLite
    ouverte bloquerait les écritures faites par l'API.
    """

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_settings] = lambda: settings
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()


def _supplier(client, name="ACME", tax_id="FR-001"):
    r = client.post("/v1/suppliers", json={"name": name, "legal_name": f"{name} SARL", "tax_id": tax_id})
    assert r.status_code == 200, r.text
    return r.json()


def _order(client, world, supplier_id, quantity=10, unit_price="12.50"):
    r = client.post(
        "/v1/supplier-orders",
        json={
            "supplier_id": supplier_id,
            "destination_location_id": world.warehouse.id,
            "created_by": world.actor,
            "lines": [
                {
                    "product_id": world.product.id,
                    "product_title": "Widget",
                    "quantity_ordered": quantity,
                    "unit_price": unit_price,
                }
            ],
        },
    )
    assert r.status_code == 200, r.text
    return r.json()


def _stock(client, product_id):
    r = client.get("/v1/stock", params={"product_id": product_id})
    assert r.status_code == 200
    return {row["location_id"]: row["stocked_quantity"] for row in r.json()}


def _transfer(world, quantity=10):
    return {
        "product_id": world.product.id,
        "from_location_id": world.warehouse.id,
        "to_location_id": world.shop.id,
        "quantity": quantity,
        "performed_by": world.actor,
    }


def test_health(client):
    r = client.get("/v1/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_duplicate_tax_id_is_a_validation_error(client):
    _supplier(client, "ACME", "FR-001")

    r = client.post("/v1/suppliers", json={"name": "Other", "legal_name": "Other SA", "tax_id": "FR-001"})

    assert r.status_code == 400
    body = r.json()
    assert body["code"] == "VALIDATION"
    assert body["field"] == "tax_id"


def test_unknown_order_is_not_found(client):
    r = client.get("/v1/supplier-orders/999999")

    assert r.status_code == 404
    assert r.json()["code"] == "NOT_FOUND"
    assert r.json()["entity"] == "SupplierOrder"


def test_order_lifecycle_over_http(client, world):
    supplier = _supplier(client)
    order = _order(client, world, supplier["id"])

    assert order["status"] == "draft"
    assert order["total"] == 125.0
    assert order["created_by_name"] == "Hina Teriierooiterai"

    r = client.get(f"/v1/supplier-orders/{order['id']}/valid-statuses")
    assert r.json()["valid_next_statuses"] == ["pending", "confirmed", "received", "cancelled"]

    r = client.post(f"/v1/supplier-orders/{order['id']}/status", json={"status": "confirmed"})
    assert r.status_code == 200
    assert r.json()["status"] == "confirmed"
    assert _stock(client, world.product.id)[world.warehouse.id] == 60

    r = client.post(f"/v1/supplier-orders/{order['id']}/status", json={"status": "draft"})
    assert r.status_code == 409
    body = r.json()
    assert body["code"] == "INVALID_STATE_TRANSITION"
    assert body["current"] == "confirmed"
    assert body["valid_next"] == ["shipped", "received", "cancelled"]


def test_unknown_actor_is_shown_by_raw_id(client, world):
    supplier = _supplier(client)
    order = _order(client, world, supplier["id"])

    r = client.post(f"/v1/supplier-orders/{order['id']}/status", json={"status": "received", "actor": "api-key-42"})

    assert r.status_code == 200
    assert r.json()["received_by"] == "api-key-42"
    assert r.json()["received_by_name"] == "api-key-42"
    assert r.json()["created_by_name"] == "Hina Teriierooiterai"

    r = client.get("/v1/inventory-movements", params={"reference_id": str(order["id"]), "stock_only": True})
    assert [(m["movement_type"], m["quantity"]) for m in r.json()] == [("supplier_receipt", 10)]


def test_receive_line_over_http(client, world):
    supplier = _supplier(client)
    order = _order(client, world, supplier["id"])
    line_id = order["lines"][0]["id"]

    r = client.post(f"/v1/supplier-orders/lines/{line_id}/receive", json={"quantity_received": 0})
    assert r.status_code == 400
    assert r.json()["field"] == "quantity_received"

    r = client.post(
        f"/v1/supplier-orders/lines/{line_id}/receive",
        json={"quantity_received": 4, "actor": world.actor},
    )
    assert r.status_code == 200
    line = r.json()
    assert line["quantity_pending"] == 6
    assert line["line_status"] == "partial"
    assert line["received_by_name"] == "Hina Teriierooiterai"


def test_transfer_over_http(client, world):
    r = client.post("/v1/stock-transfers", json=_transfer(world, 10))

    assert r.status_code == 201, r.text
    body = r.json()
    assert body["transfer_id"].startswith("TRF-")
    assert body["stock_before"] == {"source": 50, "destination": 5}
    assert body["stock_after"] == {"source": 40, "destination": 15}
    assert body["order"]["status"] == "shipped"
    assert body["order"]["order_type"] == "transfer"
    assert _stock(client, world.product.id) == {world.warehouse.id: 40, world.shop.id: 15}

    r = client.get("/v1/inventory-movements", params={"reference_id": body["transfer_id"]})
    assert [(m["movement_type"], m["quantity"]) for m in r.json()] == [("transfer_out", -10), ("transfer_in", 10)]


def test_transfer_insufficient_stock(client, world):
    r = client.post("/v1/stock-transfers", json=_transfer(world, 60))

    assert r.status_code == 409
    body = r.json()
    assert body["code"] == "INSUFFICIENT_STOCK"
    assert body["available"] == 50
    assert body["requested"] == 60
    assert _stock(client, world.product.id) == {world.warehouse.id: 50, world.shop.id: 5}


def test_transfer_request_validation(client, world):
    same = dict(_transfer(world), to_location_id=world.warehouse.id)
    r = client.post("/v1/stock-transfers", json=same)
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION"
    assert r.json()["field"] == "to_location_id"

    r = client.post("/v1/stock-transfers", json=_transfer(world, 0))
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION"
    assert r.json()["field"] == "quantity"

    r = client.post("/v1/stock-transfers", json=_transfer(world), headers={"Idempotency-Key": "k" * 65})
    assert r.status_code == 400


def test_transfer_replay_with_idempotency_key(client, world):
    headers = {"Idempotency-Key": "transfer-abc"}

    first = client.post("/v1/stock-transfers", json=_transfer(world, 10), headers=headers)
    again = client.post("/v1/stock-transfers", json=_transfer(world, 10), headers=headers)

    assert first.status_code == 201
    assert again.status_code == 200
    assert again.json()["replayed"] is True
    assert again.json()["transfer_id"] == first.json()["transfer_id"]
    assert _stock(client, world.product.id)[world.warehouse.id] == 40


def test_transfer_statistics(client, world):
    client.post("/v1/stock-transfers", json=_transfer(world, 10))
    client.post("/v1/stock-transfers", json=_transfer(world, 5))

    r = client.get("/v1/stock-transfers")

    assert r.status_code == 200
    assert r.json() == {"total_transfers": 2, "total_units": 15, "by_status": {"shipped": 2}}


def test_price_comparison_over_http(client, world):
    current = _supplier(client, "Current", "FR-001")
    cheaper = _supplier(client, "Cheaper", "FR-002")
    _order(client, world, current["id"], unit_price="10")
    _order(client, world, cheaper["id"], unit_price="8")

    r = client.get(f"/v1/suppliers/{current['id']}/products/{world.product.id}/price-comparison")

    assert r.status_code == 200
    body = r.json()
    assert body["current_price"] == 10.0
    assert body["cheapest_option"]["supplier_id"] == cheaper["id"]
    assert body["cheapest_option"]["savings"] == 2.0
    assert body["cheapest_option"]["savings_percentage"] == 20.0
