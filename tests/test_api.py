import inspect

import pytest
from fastapi.testclient import TestClient

from frenchmaster.api import create_app


@pytest.fixture
def client(service):
    with TestClient(create_app(service)) as test_client:
        yield test_client


def test_status_reports_normal_mode(client):
    body = client.get("/status").json()
    assert body["mode"] == "normal"
    assert body["initialized"] is True
    assert body["userId"] == "guest"
    assert body["wordCount"] == 3


def test_unknown_category_is_rejected(client):
    assert client.get("/content/adjective").status_code == 422


def test_content_crud_round_trip(client):
    response = client.post("/content/word", json={"english": "milk", "french": "lait"})
    assert response.status_code == 201

    words = client.get("/content/word").json()
    milk = next(word for word in words if word["english"] == "milk")
    assert milk["french"] == ["lait"]
    assert milk["id"].startswith("user-w-")

    response = client.put(f"/content/word/{milk['id']}", json={"english": "milk", "french": ["lait", "du lait"]})
    assert response.status_code == 200
    updated = next(word for word in client.get("/content/word").json() if word["id"] == milk["id"])
    assert updated["french"] == ["lait", "du lait"]

    assert client.delete(f"/content/word/{milk['id']}").status_code == 204
    assert client.delete(f"/content/word/{milk['id']}").status_code == 404


def test_invalid_record_is_a_bad_request(client):
    assert client.post("/content/sentence", json={"english": "no translation"}).status_code == 400


def test_replace_content(client):
    response = client.put("/content/number", json=[{"english": "10", "french": "dix"}])
    assert response.json() == {"success": True}
    numbers = client.get("/content/number").json()
    assert [number["english"] for number in numbers] == ["10"]


def test_practice_next_and_seen(client):
    item = client.get("/practice/sentence/next", params={"user_id": "erin"}).json()
    assert item["english"] == "I am fine"
    response = client.post("/practice/sentence/seen", json={"item_id": item["id"], "user_id": "erin"})
    assert response.json() == {"success": True}
    assert client.get("/practice/verb/next").status_code == 404


def test_refresh_is_acknowledged(client):
    response = client.post("/refresh")
    assert response.status_code == 202
    assert response.json()["message"] == "Data refresh initiated"
    assert len(client.get("/content/word").json()) == 3


def test_duplicates(client):
    client.post("/content/word", json={"english": "good morning", "french": ["bonjour"]})
    groups = client.get("/duplicates/word").json()
    assert groups[0]["matchType"] == "french"
    assert len(groups[0]["items"]) == 2


def test_csv_import(client):
    files = {"file": ("words.csv", "apple,pomme\npear\n", "text/csv")}
    body = client.post("/import/word", files=files).json()
    assert body == {"added": 1, "skipped": 0, "errors": ["Row 2: expected at least 2 columns."]}


def test_csv_import_rejects_other_content_types(client):
    files = {"file": ("words.json", "{}", "application/json")}
    assert client.post("/import/word", files=files).status_code == 400


def test_purge_predefined(client):
    body = client.post("/maintenance/purge/word").json()
    assert body["deleted"] == 3
    assert client.get("/content/word").json() == []


def test_practice_endpoints_run_on_the_event_loop(service):
    app = create_app(service)
    endpoints = {route.path: route.endpoint for route in app.routes if hasattr(route, "endpoint")}
    assert inspect.iscoroutinefunction(endpoints["/practice/{category}/seen"])
    assert inspect.iscoroutinefunction(endpoints["/practice/{category}/next"])
