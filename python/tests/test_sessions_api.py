import pytest
from fastapi.testclient import TestClient

from conftest import FakeGateway
from school_recommender import dependencies
from school_recommender.main import app
from school_recommender.services.gemini_gateway import GatewayError
from school_recommender.services.session_registry import SessionRegistry

client = TestClient(app)


@pytest.fixture
def gateway(sample_recommendations):
    return FakeGateway(recommendations=sample_recommendations, reply="Look at BSc Geology.\nWits has a strong programme.")


@pytest.fixture(autouse=True)
def registry(gateway):
    reg = SessionRegistry(gateway_factory=lambda: gateway, maxsize=10, ttl_seconds=60)
    dependencies.set_session_registry(reg)
    yield reg
    dependencies.set_session_registry(None)


def new_session() -> dict:
    response = client.post("/api/sessions")
    assert response.status_code == 201
    return response.json()


def fill_marks(sid: str, marks):
    for entry_id, mark in zip(range(1, len(marks) + 1), marks):
        response = client.patch(f"/api/sessions/{sid}/subjects/{entry_id}", json={"field": "mark", "value": mark})
        assert response.status_code == 200


def test_create_session_snapshot():
    body = new_session()
    assert body["session_id"].startswith("sess_")
    form = body["form"]
    assert form["state"] == "idle"
    assert [s["name"] for s in form["subjects"]][:2] == ["Mathematics", "Physical Sciences"]
    assert body["chat"]["messages"][0]["role"] == "model"


def test_recommendation_flow(gateway):
    sid = new_session()["session_id"]
    fill_marks(sid, ["78", "66", "71"])
    assert client.put(f"/api/sessions/{sid}/average", json={"value": "70"}).status_code == 200

    response = client.post(f"/api/sessions/{sid}/recommendations")
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["outcome"] == "success"
    recs = body["form"]["recommendations"]
    assert [r["institutionName"] for r in recs] == ["University of Pretoria", "Tshwane South TVET College", "Eduvos"]
    assert recs[0]["recommendedCourses"][0]["requirements"][0]["minimumMark"] == 60
    assert gateway.requests[0].average_mark == 70


def test_insufficient_data_reported_in_body():
    sid = new_session()["session_id"]
    fill_marks(sid, ["78", "66"])
    body = client.post(f"/api/sessions/{sid}/recommendations").json()
    assert body["success"] is False
    assert body["outcome"] == "insufficient_data"
    assert body["form"]["error"] == "Please provide at least 3 subjects and their marks."


def test_invalid_mark_attached_to_row():
    sid = new_session()["session_id"]
    response = client.patch(f"/api/sessions/{sid}/subjects/2", json={"field": "mark", "value": "7.5"})
    assert response.json()["error"] == "Mark must be a whole number between 0 and 100."

    fill_marks(sid, ["78"])
    client.patch(f"/api/sessions/{sid}/subjects/3", json={"field": "mark", "value": "60"})
    body = client.post(f"/api/sessions/{sid}/recommendations").json()
    assert body["outcome"] == "invalid_input"
    errors = {s["id"]: s["error"] for s in body["form"]["subjects"]}
    assert errors[2] == "Mark must be a whole number between 0 and 100."


def test_gateway_failure_reported(gateway):
    gateway.error = GatewayError("Failed to get recommendations. The AI model may be temporarily unavailable. Please try again later.")
    sid = new_session()["session_id"]
    fill_marks(sid, ["78", "66", "71"])
    body = client.post(f"/api/sessions/{sid}/recommendations").json()
    assert body["outcome"] == "gateway_failure"
    assert body["form"]["error"].startswith("Failed to get recommendations")
    assert body["form"]["recommendations"] == []


def test_subject_rows_and_reset():
    sid = new_session()["session_id"]
    added = client.post(f"/api/sessions/{sid}/subjects").json()
    assert added["id"] == 6

    response = client.delete(f"/api/sessions/{sid}/subjects/{added['id']}")
    assert response.status_code == 200
    assert len(response.json()["subjects"]) == 5

    assert client.delete(f"/api/sessions/{sid}/subjects/999").status_code == 404
    assert client.patch(f"/api/sessions/{sid}/subjects/999", json={"field": "mark", "value": "1"}).status_code == 404

    fill_marks(sid, ["78", "66", "71"])
    client.put(f"/api/sessions/{sid}/average", json={"value": "70"})
    form = client.post(f"/api/sessions/{sid}/reset").json()
    assert form["state"] == "idle"
    assert form["average_mark"] == ""
    assert all(s["mark"] == "" for s in form["subjects"])


def test_last_row_cannot_be_removed():
    sid = new_session()["session_id"]
    for entry_id in range(1, 5):
        assert client.delete(f"/api/sessions/{sid}/subjects/{entry_id}").status_code == 200
    assert client.delete(f"/api/sessions/{sid}/subjects/5").status_code == 409


def test_unknown_field_is_validation_error():
    sid = new_session()["session_id"]
    response = client.patch(f"/api/sessions/{sid}/subjects/1", json={"field": "colour", "value": "red"})
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_chat_flow(gateway):
    sid = new_session()["session_id"]
    body = client.post(f"/api/sessions/{sid}/chat", json={"message": "  Which careers use geography?  "}).json()
    assert [m["role"] for m in body["messages"]] == ["model", "user", "model"]
    assert body["messages"][1]["content"] == "Which careers use geography?"
    assert body["state"] == "idle"

    blank = client.post(f"/api/sessions/{sid}/chat", json={"message": "   "}).json()
    assert len(blank["messages"]) == 3

    gateway.error = GatewayError("Sorry, I'm having trouble connecting right now. Please try again later.")
    failed = client.post(f"/api/sessions/{sid}/chat", json={"message": "And biology?"}).json()
    assert failed["messages"][-1]["role"] == "error"

    cleared = client.delete(f"/api/sessions/{sid}/chat").json()
    assert len(cleared["messages"]) == 1
    assert len(client.get(f"/api/sessions/{sid}/chat").json()["messages"]) == 1


def test_unknown_session_404():
    response = client.get("/api/sessions/sess_missing")
    assert response.status_code == 404
    assert response.json()["success"] is False
    assert response.json()["error"]["code"] == "HTTP_ERROR"


def test_delete_session(registry):
    sid = new_session()["session_id"]
    assert client.delete(f"/api/sessions/{sid}").status_code == 204
    assert len(registry) == 0
    assert client.get(f"/api/sessions/{sid}").status_code == 404


def test_service_unavailable_without_registry():
    dependencies.set_session_registry(None)
    assert client.post("/api/sessions").status_code == 503


def test_health_and_metrics():
    health = client.get("/health").json()
    assert health["status"] == "healthy"
    assert health["services"]["sessions"] is True

    new_session()
    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "http_requests_total" in metrics.text
