"""Tests for the HTTP API."""

import asyncio
from uuid import UUID, uuid4

from fastapi import BackgroundTasks
from fastapi.testclient import TestClient

from meal_tracker.api.app import create_app
from meal_tracker.api.models import DraftChangeEvent
from meal_tracker.domain.drafts import MealSlot
from tests.conftest import FakeAnalysisClient, InMemoryDraftRepository

AUTH = {"Authorization": "Bearer user-token"}
WEBHOOK = {"X-Webhook-Secret": "webhook-secret"}

DRAFT_BODY = {
    "name": "Chicken salad",
    "slot": {"id": "lunch", "name": "Lunch"},
    "image": {"storagePath": "meals/lunch.jpg", "contentType": "image/jpeg"},
    "sourceFileName": "lunch.jpg",
}


def _create_draft(client: TestClient) -> str:
    response = client.post("/meal-drafts", json=DRAFT_BODY, headers=AUTH)
    assert response.status_code == 201
    return response.json()["draft"]["id"]


def test_health(container) -> None:
    client = TestClient(create_app(container))

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_requests_without_valid_token_are_rejected(container) -> None:
    client = TestClient(create_app(container))

    missing = client.get("/meal-drafts")
    wrong_scheme = client.get("/meal-drafts", headers={"Authorization": "Token x"})
    unknown = client.get("/meal-drafts", headers={"Authorization": "Bearer nope"})

    assert missing.status_code == 401
    assert wrong_scheme.status_code == 401
    assert unknown.status_code == 401


def test_create_draft_runs_analysis(container) -> None:
    client = TestClient(create_app(container))

    response = client.post("/meal-drafts", json=DRAFT_BODY, headers=AUTH)

    assert response.status_code == 201
    created = response.json()["draft"]
    assert created["status"] == "pending"
    assert created["image"]["downloadURL"] == (
        "https://storage.test/public/meals/lunch.jpg"
    )

    fetched = client.get(f"/meal-drafts/{created['id']}", headers=AUTH).json()["draft"]
    assert fetched["status"] == "ready"
    assert fetched["analysis"]["calories"] == 450
    assert fetched["autoPromoteAt"] is not None

    listed = client.get("/meal-drafts", headers=AUTH).json()["drafts"]
    assert [draft["id"] for draft in listed] == [created["id"]]


def test_create_draft_rejects_invalid_delay(container) -> None:
    client = TestClient(create_app(container))

    response = client.post(
        "/meal-drafts",
        json={**DRAFT_BODY, "autoPromoteDelayMinutes": 0},
        headers=AUTH,
    )

    assert response.status_code == 422


def test_get_unknown_draft(container) -> None:
    client = TestClient(create_app(container))

    assert client.get(f"/meal-drafts/{uuid4()}", headers=AUTH).status_code == 404
    assert client.get("/meal-drafts/not-a-uuid", headers=AUTH).status_code == 404


def test_promote_end_to_end(container) -> None:
    client = TestClient(create_app(container))
    draft_id = _create_draft(client)

    response = client.post(
        f"/meal-drafts/{draft_id}/promote",
        json={"isEstimated": False},
        headers=AUTH,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert client.get(f"/meal-drafts/{draft_id}", headers=AUTH).status_code == 404

    log = client.get(f"/meal-logs/{body['logId']}", headers=AUTH).json()["log"]
    assert log["isEstimated"] is False
    assert log["sourceDraftId"] == draft_id
    assert log["name"] == "Chicken salad"
    assert log["analysis"]["calories"] == 450

    again = client.post(f"/meal-drafts/{draft_id}/promote", json={}, headers=AUTH)
    assert again.status_code == 404
    assert again.json() == {"error": "Draft not found"}


def test_promote_defaults_to_estimated(container) -> None:
    client = TestClient(create_app(container))
    draft_id = _create_draft(client)

    response = client.post(f"/meal-drafts/{draft_id}/promote", headers=AUTH)

    assert response.status_code == 200
    log_id = response.json()["logId"]
    log = client.get(f"/meal-logs/{log_id}", headers=AUTH).json()["log"]
    assert log["isEstimated"] is True


def test_promote_accepts_string_flag(container) -> None:
    client = TestClient(create_app(container))
    draft_id = _create_draft(client)

    response = client.post(
        f"/meal-drafts/{draft_id}/promote",
        json={"isEstimated": "false"},
        headers=AUTH,
    )

    log_id = response.json()["logId"]
    log = client.get(f"/meal-logs/{log_id}", headers=AUTH).json()["log"]
    assert log["isEstimated"] is False


def test_promote_rejects_invalid_body(container) -> None:
    client = TestClient(create_app(container))
    draft_id = _create_draft(client)

    not_json = client.post(
        f"/meal-drafts/{draft_id}/promote",
        content="{not json",
        headers={**AUTH, "Content-Type": "application/json"},
    )
    not_object = client.post(
        f"/meal-drafts/{draft_id}/promote", json=[1, 2], headers=AUTH
    )

    assert not_json.status_code == 400
    assert not_json.json() == {"error": "Invalid request body"}
    assert not_object.status_code == 400
    assert client.get(f"/meal-drafts/{draft_id}", headers=AUTH).status_code == 200


def test_promote_checks_auth_first(container) -> None:
    client = TestClient(create_app(container))

    response = client.post(
        "/meal-drafts/not-a-uuid/promote",
        content="{not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 401


def test_promote_unknown_draft(container) -> None:
    client = TestClient(create_app(container))

    unknown = client.post(f"/meal-drafts/{uuid4()}/promote", headers=AUTH)
    malformed = client.post("/meal-drafts/abc/promote", headers=AUTH)

    assert unknown.status_code == 404
    assert malformed.status_code == 404


def test_promote_not_ready(container, owner_id: UUID) -> None:
    client = TestClient(create_app(container))
    draft = container.draft_service.create_draft(
        owner_id=owner_id, name="Soup", slot=MealSlot(id="dinner", name="Dinner")
    )

    response = client.post(f"/meal-drafts/{draft.id}/promote", headers=AUTH)

    assert response.status_code == 400
    assert response.json() == {"error": "Draft is not ready for promotion"}


def test_promote_unexpected_failure(
    container, draft_repository: InMemoryDraftRepository, monkeypatch
) -> None:
    client = TestClient(create_app(container))
    draft_id = _create_draft(client)

    def broken_commit(*_args, **_kwargs) -> bool:
        raise RuntimeError("database offline")

    monkeypatch.setattr(draft_repository, "commit_promotion", broken_commit)

    response = client.post(f"/meal-drafts/{draft_id}/promote", headers=AUTH)

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to promote meal draft"}


def test_retry_reanalyzes_errored_draft(
    container, analysis_client: FakeAnalysisClient
) -> None:
    client = TestClient(create_app(container))
    analysis_client.error = RuntimeError("boom")
    draft_id = _create_draft(client)

    failed = client.get(f"/meal-drafts/{draft_id}", headers=AUTH).json()["draft"]
    assert failed["status"] == "error"
    assert failed["error"] == {
        "code": "ANALYSIS_FAILED",
        "message": "We couldn't analyze this meal.",
        "retryable": True,
    }

    analysis_client.error = None
    response = client.post(f"/meal-drafts/{draft_id}/retry", headers=AUTH)

    assert response.status_code == 200
    assert response.json()["draft"]["status"] == "pending"
    fetched = client.get(f"/meal-drafts/{draft_id}", headers=AUTH).json()["draft"]
    assert fetched["status"] == "ready"
    assert fetched["error"] is None


def test_retry_unknown_draft(container) -> None:
    client = TestClient(create_app(container))

    response = client.post(f"/meal-drafts/{uuid4()}/retry", headers=AUTH)

    assert response.status_code == 404


def test_log_meal_directly(container) -> None:
    client = TestClient(create_app(container))

    response = client.post(
        "/meal-logs",
        json={"name": "Apple", "slot": {"id": "snack", "name": "Snack"}},
        headers=AUTH,
    )

    assert response.status_code == 201
    assert response.json()["ok"] is True
    logs = client.get("/meal-logs", headers=AUTH).json()["logs"]
    assert len(logs) == 1
    assert logs[0]["isEstimated"] is False
    assert logs[0]["analysis"] is None
    assert logs[0]["sourceDraftId"] is None


def test_webhook_requires_secret(container) -> None:
    client = TestClient(create_app(container))

    response = client.post(
        "/webhooks/meal-drafts",
        json={"type": "INSERT", "table": "meal_drafts", "record": {}},
        headers={"X-Webhook-Secret": "wrong"},
    )

    assert response.status_code == 401


def test_webhook_processes_pending_draft(
    container, owner_id: UUID, analysis_client: FakeAnalysisClient
) -> None:
    client = TestClient(create_app(container))
    draft = container.draft_service.create_draft(
        owner_id=owner_id, name="Soup", slot=MealSlot(id="dinner", name="Dinner")
    )
    event = {
        "type": "INSERT",
        "table": "meal_drafts",
        "record": {"id": str(draft.id), "owner_id": str(owner_id), "status": "pending"},
    }

    first = client.post("/webhooks/meal-drafts", json=event, headers=WEBHOOK)
    second = client.post("/webhooks/meal-drafts", json=event, headers=WEBHOOK)

    assert first.json() == {"status": "queued"}
    assert second.status_code == 200
    assert len(analysis_client.calls) == 1
    stored = container.draft_service.get_draft(owner_id, draft.id)
    assert stored is not None
    assert stored.status == "ready"


def test_webhook_defers_analysis_to_background(
    container, owner_id: UUID, analysis_client: FakeAnalysisClient
) -> None:
    app = create_app(container)
    endpoint = next(
        route.endpoint
        for route in app.routes
        if getattr(route, "path", None) == "/webhooks/meal-drafts"
    )
    draft = container.draft_service.create_draft(
        owner_id=owner_id, name="Soup", slot=MealSlot(id="dinner", name="Dinner")
    )
    event = DraftChangeEvent(
        type="INSERT",
        table="meal_drafts",
        record={"id": str(draft.id), "owner_id": str(owner_id), "status": "pending"},
    )
    request = type("Request", (), {"app": app})()
    background_tasks = BackgroundTasks()

    result = asyncio.run(endpoint(event, request, background_tasks))

    assert result == {"status": "queued"}
    assert analysis_client.calls == []
    assert container.draft_service.get_draft(owner_id, draft.id).status == "pending"
    assert len(background_tasks.tasks) == 1

    asyncio.run(background_tasks())

    assert len(analysis_client.calls) == 1
    assert container.draft_service.get_draft(owner_id, draft.id).status == "ready"

def test_webhook_ignores_other_events(container) -> None:
    client = TestClient(create_app(container))
    events = [
        {"type": "DELETE", "table": "meal_drafts", "record": {"status": "pending"}},
        {"type": "INSERT", "table": "meal_logs", "record": {"status": "pending"}},
        {"type": "UPDATE", "table": "meal_drafts", "record": {"status": "ready"}},
        {"type": "INSERT", "table": "meal_drafts", "record": {"status": "pending"}},
    ]

    for event in events:
        response = client.post("/webhooks/meal-drafts", json=event, headers=WEBHOOK)
        assert response.json() == {"status": "ignored"}


def test_meal_slots_default_then_saved(container) -> None:
    client = TestClient(create_app(container))

    initial = client.get("/meal-slots", headers=AUTH)
    saved = client.put(
        "/meal-slots",
        json={"slots": [{"id": "dinner", "name": "Dinner"}, {"name": " Late snack "}]},
        headers=AUTH,
    )
    current = client.get("/meal-slots", headers=AUTH)

    assert initial.status_code == 200
    assert initial.json()["isDefault"] is True
    assert [slot["id"] for slot in initial.json()["slots"]] == [
        "breakfast",
        "lunch",
        "dinner",
        "drinks",
    ]
    assert saved.status_code == 200
    assert current.json() == {
        "slots": [
            {"id": "dinner", "name": "Dinner", "position": 0},
            {"id": "slot-late-snack", "name": "Late snack", "position": 1},
        ],
        "isDefault": False,
    }


def test_meal_slots_rejects_duplicate_names(container) -> None:
    client = TestClient(create_app(container))

    response = client.put(
        "/meal-slots",
        json={"slots": [{"name": "Lunch"}, {"name": "LUNCH"}]},
        headers=AUTH,
    )

    assert response.status_code == 400
    assert response.json() == {
        "error": "Meal slot names must be unique",
        "slotIndex": 0,
    }
    assert client.get("/meal-slots", headers=AUTH).json()["isDefault"] is True


def test_meal_slots_require_auth(container) -> None:
    client = TestClient(create_app(container))

    assert client.get("/meal-slots").status_code == 401
    assert client.put("/meal-slots", json={"slots": []}).status_code == 401


def test_list_logs_for_day_returns_totals(
    container, clock, analysis_client: FakeAnalysisClient
) -> None:
    client = TestClient(create_app(container))
    draft_id = _create_draft(client)
    client.post(f"/meal-drafts/{draft_id}/promote", json={}, headers=AUTH)
    client.post("/meal-logs", json={"name": "Water"}, headers=AUTH)
    day = clock.now.date().isoformat()

    response = client.get(f"/meal-logs?day={day}&tz=Europe/Berlin", headers=AUTH)
    previous = client.get("/meal-logs?day=2025-03-13", headers=AUTH)

    assert response.status_code == 200
    body = response.json()
    assert body["day"] == day
    assert body["timezone"] == "Europe/Berlin"
    assert len(body["logs"]) == 2
    assert body["totals"] == {"calories": 450, "protein": 30, "carbs": 40, "fat": 15}
    assert previous.json()["logs"] == []


def test_list_logs_rejects_unknown_timezone(container) -> None:
    client = TestClient(create_app(container))

    response = client.get("/meal-logs?day=2025-03-14&tz=Mars/Olympus", headers=AUTH)

    assert response.status_code == 400
    assert response.json() == {"error": "Unknown timezone"}
