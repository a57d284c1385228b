import os
import shutil
import sys

import pytest
from fastapi.testclient import TestClient

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from quote_pricing.api.main import app
from quote_pricing.api.state import state
from quote_pricing.config.settings import get_settings

BUNDLED_CONFIG = os.path.join(src_path, 'quote_pricing', 'data', 'pricing_config.json')


@pytest.fixture
def client(tmp_path, monkeypatch):
    """API client backed by a scratch copy of the bundled pricing config."""
    config_path = tmp_path / "pricing_config.json"
    shutil.copy(BUNDLED_CONFIG, config_path)
    monkeypatch.setattr(get_settings(), "pricing_config", config_path)
    state.reload()
    yield TestClient(app)
    monkeypatch.undo()
    state.reload()


QUOTE = {
    "line_items": [
        {"kind": "service", "name": "Packing", "quantity": 2, "unit_price": 100, "unit_cost": 60, "taxable": True},
        {"kind": "fee", "name": "Fuel", "quantity": 1, "unit_price": 50, "unit_cost": 20, "taxable": False},
    ],
    "tax_rate_percent": 10,
    "discount_percent": 10,
}


def test_root(client):
    assert client.get("/").json()["status"] == "online"


def test_calculate(client):
    response = client.post("/calculate", json=QUOTE)
    assert response.status_code == 200

    body = response.json()
    assert body["result"]["subtotal"] == 250
    assert body["result"]["discountAmount"] == 25
    assert body["result"]["taxAmount"] == pytest.approx(18)
    assert body["result"]["total"] == pytest.approx(243)
    assert body["rounded"]["marginPercentage"] == 42.39
    assert body["display"]["total"] == "$243.00"
    assert body["taxable_total"] == 200
    assert body["flags"] == []
    assert [t["step"] for t in body["trace"]][0] == "Subtotal"


def test_calculate_flags_degenerate_result(client):
    response = client.post("/calculate", json={
        "line_items": [{"quantity": 1, "unit_price": 100, "taxable": False}],
        "discount_amount": 150,
    })
    assert response.status_code == 200
    assert "negative_total" in response.json()["flags"]


def test_calculate_validation_error(client):
    bad = dict(QUOTE, discount_percent=150)
    response = client.post("/calculate", json=bad)
    assert response.status_code == 422
    assert response.json()["field"] == "discount_percent"

    bad_line = {"line_items": [{"quantity": -1, "unit_price": 10}]}
    response = client.post("/calculate", json=bad_line)
    assert response.status_code == 422
    assert response.json()["field"] == "line_items[0].quantity"


def test_evaluate_formula(client):
    response = client.post("/formulas/evaluate", json={
        "formula": "rate + rate2", "context": {"rate": 1, "rate2": 2},
    })
    assert response.status_code == 200
    assert response.json() == {"result": 3, "variables": ["rate", "rate2"]}


def test_evaluate_formula_errors(client):
    response = client.post("/formulas/evaluate", json={"formula": "a + b", "context": {"a": 1}})
    assert response.status_code == 400
    assert "unknown variable" in response.json()["reason"]

    response = client.post("/formulas/evaluate", json={
        "formula": "a / 0", "context": {"a": 1}, "best_effort": True,
    })
    assert response.status_code == 200
    assert response.json()["result"] == 0


def test_default_formulas(client):
    listing = client.get("/formulas/defaults").json()
    assert "moving_volume" in listing["formulas"]
    assert listing["coefficients"]["hourly_rate"] == 50

    response = client.post("/formulas/defaults/labor_cost", json={"hours": 4, "workers": 3})
    assert response.json() == {"formula": "labor_cost", "result": 600}

    assert client.post("/formulas/defaults/nope", json={}).status_code == 404
    assert client.post("/formulas/defaults/labor_cost", json={"hours": 4}).status_code == 400


def test_calculated_fields(client):
    response = client.post("/calculated-fields", json={"values": {"rooms": 3, "distance": 25}})
    body = response.json()
    assert body["applied_rules"] == ["EST-VOLUME", "EST-COST"]
    assert body["values"]["estimated_volume"] == pytest.approx(540)
    assert body["values"]["estimated_cost"] == pytest.approx(520)

    response = client.post("/calculated-fields", json={
        "values": {"rooms": 3, "distance": 40, "estimated_volume": 540},
        "changed_fields": ["distance"],
    })
    assert response.json()["applied_rules"] == ["EST-COST"]


def test_rules_crud(client):
    assert len(client.get("/api/calculation-rules").json()) == 2

    created = client.post("/api/calculation-rules", json={
        "name": "Crew cost",
        "formula": "hours * workers * hourly_rate",
        "output_field": "crew_cost",
        "trigger_fields": ["hours", "workers"],
    })
    assert created.status_code == 200
    rule_id = created.json()["rule_id"]
    assert rule_id == "CALC-CREW-COST"
    assert client.get("/system/status").json()["rules_count"] == 3

    updated = client.put(f"/api/calculation-rules/{rule_id}", json={"active": False})
    assert updated.json()["active"] is False
    assert client.get("/api/calculation-rules/stats").json()["inactive"] == 1

    assert client.delete(f"/api/calculation-rules/{rule_id}").status_code == 200
    assert client.get(f"/api/calculation-rules/{rule_id}").status_code == 404
    assert client.delete(f"/api/calculation-rules/{rule_id}").status_code == 404


def test_rule_update_ignores_null_fields(client):
    response = client.put("/api/calculation-rules/EST-VOLUME", json={"name": None, "active": False})
    assert response.status_code == 200
    assert response.json()["name"]
    assert response.json()["active"] is False
    assert client.get("/api/calculation-rules/EST-VOLUME").json()["name"] == response.json()["name"]


def test_rules_reject_cycles(client):
    response = client.post("/api/calculation-rules", json={
        "name": "Volume from cost",
        "formula": "estimated_cost * 2",
        "output_field": "rooms",
    })
    assert response.status_code == 400

    validation = client.post("/api/calculation-rules/validate", json={
        "name": "Bad", "formula": "1 +", "output_field": "x",
    }).json()
    assert validation["valid"] is False
