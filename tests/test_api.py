import pytest
from fastapi.testclient import TestClient

from pool_pricing.api.main import create_app
from pool_pricing.api.state import AppState

RECT_CONFIG = {
    "pool_shape": "rectangle_rounded",
    "pool_type": "skimmer",
    "dimensions": {"width": 3, "length": 6, "depth": 1.5},
    "contact_name": "Jan Novák",
}

SHARP_CONFIG = {
    "pool_shape": "rectangle_sharp",
    "pool_type": "skimmer",
    "dimensions": {"width": 4, "length": 8, "depth": 1.5},
}


@pytest.fixture
def client(settings):
    return TestClient(create_app(AppState(settings)))


def create_quote(client, **payload):
    response = client.post("/api/quotes", json=payload or {"configuration": RECT_CONFIG})
    assert response.status_code == 201, response.text
    return response.json()


def test_root_and_status(client):
    assert client.get("/").json()["status"] == "online"

    status = client.get("/system/status").json()
    assert status["engine_active"]
    assert status["products_count"] == 22
    assert status["active_products_count"] == 21
    assert status["rules_count"] == 13
    assert status["unassigned_rules"] == 1
    assert status["set_sizes"] == 2
    assert status["catalog_last_build"] is None


def test_status_reports_missing_catalog(client, settings):
    settings.products_csv.unlink()
    status = client.get("/system/status").json()
    assert status["engine_active"] is False
    assert "Products file not found" in status["error"]


def test_geometry(client):
    response = client.post("/api/geometry", json={
        "pool_shape": "rectangle_rounded", "dimensions": {"width": 3, "length": 6, "depth": 1.5},
    })
    data = response.json()
    assert data["surface"] == 45
    assert data["perimeter"] == 18
    assert data["volume"] == 27
    assert data["formatted"]["surface"] == "45.0 m²"
    assert data["formatted"]["dimensions"] == "6 × 3 × 1.5 m"

    bad = client.post("/api/geometry", json={"pool_shape": "oval", "dimensions": {}})
    assert bad.status_code == 400


def test_catalog_prices_for_pool(client):
    response = client.get("/api/catalog/prices", params={
        "pool_shape": "rectangle_rounded", "width": 3, "length": 6, "depth": 1.5, "category": "material",
    })
    assert response.json() == [{
        "id": "folie-lem",
        "code": "FOLIE-LEM",
        "name": "Lemový profil",
        "category": "material",
        "price_type": "surface_coefficient",
        "price": 5760,
        "description": "18.0 bm × 320 Kč",
        "fallback_reason": None,
    }]


def test_catalog_prices_without_pool_fall_back(client):
    prices = {p["id"]: p for p in client.get("/api/catalog/prices").json()}
    assert prices["folie-lem"]["price"] == 0
    assert prices["folie-lem"]["fallback_reason"] == "pool measurement unavailable"
    assert "stare-schody" not in prices


def test_generate_items_preview(client):
    response = client.post("/api/quotes/generate-items", json={
        "configuration": SHARP_CONFIG, "skeleton_addons": {"thickness_8mm": True},
    })
    data = response.json()
    assert data["used_set"] is False
    assert data["items"][0]["name"] == "Skelet 8 × 4 × 1.5 m (ostré rohy, 8mm)"
    assert data["items"][0]["source"] == "skeleton"
    assert data["items"][-1]["name"] == "Doprava"
    assert data["trace"][0]["step"] == "Geometry"
    assert client.get("/api/quotes").json() == []


def test_create_quote_from_configuration(client):
    quote = create_quote(client)

    assert quote["quote_number"].startswith("NAB-")
    assert quote["customer_name"] == "Jan Novák"
    assert quote["status"] == "draft"
    assert [i["name"] for i in quote["items"]] == ["Bazénový set 6 × 3 m", "Hloubka 1,5 m", "Doprava"]
    assert quote["subtotal"] == 201000
    assert quote["needs_comparison"] is False
    assert quote["warnings"] == []

    fetched = client.get(f"/api/quotes/{quote['id']}").json()
    assert fetched["items"] == quote["items"]


def test_create_quote_with_overrides(client):
    quote = create_quote(
        client, configuration=RECT_CONFIG, customer_name="Firma s.r.o.",
        discount_percent=10, valid_until="2030-06-30",
    )
    assert quote["customer_name"] == "Firma s.r.o."
    assert quote["total_price"] == 180900
    assert quote["valid_until"] == "2030-06-30"


def test_manual_quote_requires_customer(client):
    response = client.post("/api/quotes", json={"items": []})
    assert response.status_code == 400

    quote = create_quote(client, customer_name="Eva", items=[
        {"name": "Servis", "unit_price": 1500, "total_price": 3000, "quantity": 2},
    ])
    assert quote["subtotal"] == 3000
    assert quote["items"][0]["category"] == "jine"


def test_missing_quote_is_404(client):
    assert client.get("/api/quotes/nope").status_code == 404
    assert client.delete("/api/quotes/nope").status_code == 404


def test_edit_quote(client):
    quote = create_quote(client)
    qid = quote["id"]

    patched = client.patch(f"/api/quotes/{qid}", json={"notes": "Zavolat v pondělí"}).json()
    assert patched["notes"] == "Zavolat v pondělí"
    assert patched["customer_name"] == "Jan Novák"

    discounted = client.put(f"/api/quotes/{qid}/discount", json={"discount_amount": 1000}).json()
    assert discounted["total_price"] == 200000

    replaced = client.put(f"/api/quotes/{qid}/items", json={"items": [
        {"name": "Skelet", "unit_price": 100000, "total_price": 100000},
    ]}).json()
    assert replaced["subtotal"] == 100000
    assert replaced["total_price"] == 99000

    assert client.delete(f"/api/quotes/{qid}").json() == {"success": True}
    assert client.get(f"/api/quotes/{qid}").status_code == 404


def test_add_catalog_item_prerequisites(client):
    quote = create_quote(client, customer_name="Jan", configuration=SHARP_CONFIG, generate_items=False)
    url = f"/api/quotes/{quote['id']}/items"

    blocked = client.post(url, json={"product_id": "priplatek-8mm"})
    assert blocked.status_code == 400
    assert blocked.json()["detail"]["missing_product_ids"] == ["priplatek-ostre-rohy"]

    assert client.post(url, json={"product_id": "priplatek-ostre-rohy"}).status_code == 201
    added = client.post(url, json={"product_id": "priplatek-8mm"})
    assert added.status_code == 201
    assert added.json()["unit_price"] == 44200

    assert client.post(url, json={"product_id": "stare-schody"}).status_code == 404


def test_status_flow_orders_and_production(client):
    quote = create_quote(client)
    qid = quote["id"]

    assert client.post(f"/api/quotes/{qid}/status", json={"status": "accepted"}).status_code == 400
    assert client.post(f"/api/quotes/{qid}/convert").status_code == 400

    client.post(f"/api/quotes/{qid}/status", json={"status": "sent"})
    accepted = client.post(f"/api/quotes/{qid}/status", json={"status": "accepted"}).json()
    assert accepted["accepted_at"] is not None
    assert [q["id"] for q in client.get("/api/quotes", params={"status": "accepted"}).json()] == [qid]

    converted = client.post(f"/api/quotes/{qid}/convert")
    assert converted.status_code == 201
    order_id = converted.json()["order_id"]
    assert converted.json()["order_number"].startswith("OBJ-")
    assert client.post(f"/api/quotes/{qid}/convert").status_code == 409

    order = client.get(f"/api/orders/{order_id}").json()
    assert len(order["items"]) == 3
    assert [o["id"] for o in client.get("/api/orders").json()] == [order_id]

    production = client.post("/api/production", json={"order_id": order_id})
    assert production.status_code == 201
    assert production.json()["production_number"].startswith("VYR-")
    assert production.json()["items"][0]["material_code"] == "SET-6-3"
    assert client.post("/api/production", json={"order_id": order_id}).status_code == 409
    assert client.post("/api/production", json={"order_id": "nope"}).status_code == 404
    assert client.get(f"/api/orders/{order_id}").json()["status"] == "in_production"
    assert len(client.get("/api/production").json()) == 1


def test_variants(client):
    quote = create_quote(client)
    qid = quote["id"]
    first_item = quote["items"][0]["id"]

    variant = client.post(f"/api/quotes/{qid}/variants", json={"variant_key": "optimalni"})
    assert variant.status_code == 201
    vid = variant.json()["id"]
    assert variant.json()["variant_name"] == "Optimální"

    assigned = client.post(f"/api/quotes/{qid}/variants/{vid}/items/{first_item}").json()
    assert assigned["subtotal"] == 189000

    discounted = client.put(f"/api/quotes/{qid}/variants/{vid}/discount", json={"discount_percent": 10}).json()
    assert discounted["total_price"] == 170100

    detail = client.get(f"/api/quotes/{qid}").json()
    assert detail["items"][0]["variant_ids"] == [vid]
    assert detail["needs_comparison"] is False

    assert client.post(f"/api/quotes/{qid}/variants", json={"variant_key": "zlata"}).status_code == 400
    assert client.post(f"/api/quotes/{qid}/variants/nope/items/{first_item}").status_code == 404


def test_versions_and_restore(client):
    quote = create_quote(client)
    qid = quote["id"]

    version = client.post(f"/api/quotes/{qid}/versions", json={"notes": "První návrh"})
    assert version.status_code == 201
    vid = version.json()["id"]

    client.put(f"/api/quotes/{qid}/discount", json={"discount_percent": 50})
    restored = client.post(f"/api/quotes/{qid}/versions/{vid}/restore").json()

    assert restored["message"] == "Nabídka obnovena na verzi 1"
    assert restored["backup_version"] == 2
    assert restored["quote"]["discount_percent"] == 0
    assert restored["quote"]["total_price"] == 201000

    versions = client.get(f"/api/quotes/{qid}/versions").json()
    assert [v["version_number"] for v in versions] == [2, 1]
    assert versions[0]["notes"] == "Záloha před obnovením verze 1"
    assert client.post(f"/api/quotes/{qid}/versions/nope/restore").status_code == 404


# --- Mapping rules ---

def test_rules_crud(client):
    assert len(client.get("/api/mapping-rules").json()) == 13
    assert client.get("/api/mapping-rules/ROOFING").json()["product_id"] == "zastreseni"
    assert client.get("/api/mapping-rules/NOPE").status_code == 404

    created = client.post("/api/mapping-rules", json={
        "name": "Druhé světlo", "config_field": "lighting", "config_value": "led",
        "product_id": "led-svetlo", "sort_order": 50,
    })
    assert created.status_code == 200
    assert created.json()["id"] == "LIGHTING-LED-1"
    assert client.get("/system/status").json()["rules_count"] == 14

    invalid = client.post("/api/mapping-rules", json={
        "name": "Disco", "config_field": "lighting", "config_value": "disco",
    })
    assert invalid.status_code == 400

    updated = client.put("/api/mapping-rules/WATER-CHLORINE", json={"product_id": "solinator"})
    assert updated.json()["product_id"] == "solinator"
    assert client.get("/api/mapping-rules/stats").json()["unassigned"] == 0
    assert client.put("/api/mapping-rules/NOPE", json={"quantity": 2}).status_code == 404

    assert client.delete("/api/mapping-rules/LIGHTING-LED-1").json()["success"]
    assert client.delete("/api/mapping-rules/LIGHTING-LED-1").status_code == 404


def test_rules_validate_compile_and_test(client):
    validation = client.post("/api/mapping-rules/validate", json={
        "name": "Schody", "config_field": "stairs", "config_value": "roman", "product_id": "nope",
    }).json()
    assert validation["valid"]
    assert "Product 'nope' not found in catalog" in validation["warnings"]

    compiled = client.post("/api/mapping-rules/compile").json()
    assert compiled == {"success": True, "output": "Compiled 13 mapping rules"}

    fields = client.post("/api/mapping-rules/test", json={
        "pool_shape": "circle", "pool_type": "skimmer", "stairs": "corner_triangle", "lighting": "led",
    }).json()["fields"]
    by_field = {f["config_field"]: f for f in fields}
    assert by_field["stairs"]["rule_id"] is None
    assert by_field["lighting"]["rule_id"] == "LIGHTING-LED"
