from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from studio.api.deps import get_db, get_ledger, get_orchestrator
from studio.core.config import settings
from studio.main import app
from studio.models import SubjectModel

from _fakes import RUNNING, USER, failed, succeeded

HEADERS = {"X-User-Id": USER, "X-User-Email": "owner@example.com"}

TRAIN_BODY = {
    "name": "Rex",
    "trigger_word": "rexdog",
    "images_data_url": "https://files.test/photos.zip",
    "images_count": 12,
}


@pytest.fixture
def client(session_factory, ledger, orchestrator):
    def override_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def model_id(session_factory, ledger) -> int:
    ledger.open_account(USER, email="owner@example.com")
    db = session_factory()
    try:
        model = SubjectModel(
            user_id=USER, name="Rex", trigger_word="rexdog",
            lora_url="https://fal.media/lora.safetensors", training_images_count=12,
        )
        db.add(model)
        db.commit()
        return model.id
    finally:
        db.close()


def _balance(client) -> int:
    return client.get("/api/v1/credits", headers=HEADERS).json()["balance"]


def test_requests_need_a_user(client) -> None:
    assert client.get("/api/v1/credits").status_code == 401


def test_first_request_opens_account_with_signup_credits(client) -> None:
    response = client.get("/api/v1/credits", headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["balance"] == settings.SIGNUP_CREDITS
    assert response.json()["email"] == "owner@example.com"


def test_train_success(client) -> None:
    response = client.post("/api/v1/train", json=TRAIN_BODY, headers=HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "succeeded"
    assert body["credits_reserved"] == settings.TRAINING_COST_CREDITS
    assert _balance(client) == settings.SIGNUP_CREDITS - settings.TRAINING_COST_CREDITS

    models = client.get("/api/v1/models", headers=HEADERS).json()
    assert [m["name"] for m in models] == ["Rex"]
    assert models[0]["preview_image_url"]


def test_train_rejected_without_credits(client, ledger) -> None:
    ledger.open_account(USER, initial_credits=3)

    response = client.post("/api/v1/train", json=TRAIN_BODY, headers=HEADERS)

    assert response.status_code == 402
    assert response.json()["required"] == settings.TRAINING_COST_CREDITS
    assert response.json()["current"] == 3
    assert client.get("/api/v1/jobs", headers=HEADERS).json() == []


def test_train_validation(client) -> None:
    body = dict(TRAIN_BODY, trigger_word="two words")
    assert client.post("/api/v1/train", json=body, headers=HEADERS).status_code == 422

    body = dict(TRAIN_BODY, images_data_url="http://files.test/photos.zip")
    assert client.post("/api/v1/train", json=body, headers=HEADERS).status_code == 422


def test_train_failure_is_refunded(client, gateway) -> None:
    gateway.plan(failed("no faces found"))

    response = client.post("/api/v1/train", json=TRAIN_BODY, headers=HEADERS)

    assert response.status_code == 502
    assert response.json()["state"] == "failed"
    assert _balance(client) == settings.SIGNUP_CREDITS


def test_slow_training_continues_and_status_query_finishes_it(client, gateway) -> None:
    gateway.plan(RUNNING)

    response = client.post("/api/v1/train", json=TRAIN_BODY, headers=HEADERS)

    assert response.status_code == 202
    job_id = response.json()["job_id"]
    pending = client.get("/api/v1/train/pending", headers=HEADERS).json()
    assert [job["id"] for job in pending] == [job_id]

    gateway.rescript(
        gateway.polls[0],
        succeeded({"diffusers_lora_file": {"url": "https://fal.media/lora.safetensors"}}),
    )
    status = client.get(f"/api/v1/jobs/{job_id}", headers=HEADERS).json()

    assert status["state"] == "succeeded"
    assert status["artifact_ref"].startswith("subject_model:")
    assert client.get("/api/v1/train/pending", headers=HEADERS).json() == []


def test_jobs_are_private(client, gateway) -> None:
    job_id = client.post("/api/v1/train", json=TRAIN_BODY, headers=HEADERS).json()["job_id"]

    response = client.get(f"/api/v1/jobs/{job_id}", headers={"X-User-Id": "someone_else"})

    assert response.status_code == 404


def test_batch_generate_and_row_actions(client, model_id) -> None:
    response = client.post(
        "/api/v1/batch-generate",
        json={"model_id": model_id, "num_images": 12, "scene_ids": ["park-scene", "beach-scene"]},
        headers=HEADERS,
    )

    assert response.status_code == 200
    assert len(response.json()["artifact_urls"]) == 12
    assert _balance(client) == settings.SIGNUP_CREDITS - 3

    batch_id = int(response.json()["artifact_ref"].split(":")[1])
    batch = client.get(f"/api/v1/batches/{batch_id}", headers=HEADERS).json()
    assert [row["scene_id"] for row in batch["rows"]] == ["park-scene", "park-scene", "beach-scene"]

    remake = client.post(f"/api/v1/batches/{batch_id}/rows/1/remake", headers=HEADERS)
    assert remake.status_code == 200
    again = client.post(f"/api/v1/batches/{batch_id}/rows/1/remake", headers=HEADERS)
    assert again.status_code == 409

    free = client.post(f"/api/v1/batches/{batch_id}/rows/0/upscale", headers=HEADERS).json()
    paid = client.post(f"/api/v1/batches/{batch_id}/rows/2/upscale", headers=HEADERS).json()
    assert (free["free"], paid["free"]) == (True, False)
    assert _balance(client) == settings.SIGNUP_CREDITS - 3 - settings.PAID_UPSCALE_COST_CREDITS


def test_batch_generate_validation(client, model_id) -> None:
    bad_size = {"model_id": model_id, "num_images": 8, "scene_ids": ["park-scene"]}
    assert client.post("/api/v1/batch-generate", json=bad_size, headers=HEADERS).status_code == 422

    no_prompt = {"model_id": model_id, "num_images": 4, "scene_ids": ["nowhere"]}
    assert client.post("/api/v1/batch-generate", json=no_prompt, headers=HEADERS).status_code == 422

    unknown_model = {"model_id": model_id + 1, "num_images": 4, "custom_prompt": "on a boat"}
    assert client.post("/api/v1/batch-generate", json=unknown_model, headers=HEADERS).status_code == 404


def test_video_generation(client, gateway) -> None:
    gateway.plan(RUNNING)
    body = {"image_url": "https://v3.fal.media/files/img.png", "motion_prompt": "gentle breeze"}

    response = client.post("/api/v1/videos/generate", json=body, headers=HEADERS)

    assert response.status_code == 202
    assert response.json()["state"] == "timed_out"
    assert _balance(client) == settings.SIGNUP_CREDITS - settings.VIDEO_COST_CREDITS


def test_video_source_must_be_allowed(client) -> None:
    body = {"image_url": "https://evil.example.com/img.png", "motion_prompt": "spin"}
    assert client.post("/api/v1/videos/generate", json=body, headers=HEADERS).status_code == 422

    body = {"image_url": "https://fal.media/img.png", "motion_prompt": "x" * 501}
    assert client.post("/api/v1/videos/generate", json=body, headers=HEADERS).status_code == 422


def test_grants_need_admin_token_and_are_idempotent(client, monkeypatch) -> None:
    grant = {"user_id": USER, "credits": 25, "reference": "cs_live_1"}
    assert client.post("/api/v1/credits/grants", json=grant).status_code == 403

    monkeypatch.setattr(settings, "ADMIN_TOKEN", "letmein")
    admin = {"X-Admin-Token": "letmein"}
    first = client.post("/api/v1/credits/grants", json=grant, headers=admin)
    second = client.post("/api/v1/credits/grants", json=grant, headers=admin)

    assert first.status_code == second.status_code == 200
    assert first.json()["id"] == second.json()["id"]
    # the grant opened the account, so no signup bonus
    assert _balance(client) == 25
