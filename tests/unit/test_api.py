"""
Endpoint tests for the HTTP API.

The app runs with both mock modes on: settings and content rows live in
the in-memory database and every provider is an in-memory backend.
"""

import pytest
from fastapi.testclient import TestClient

from coursecast.api.dependencies import build_storage_service, get_storage_service
from coursecast.config.settings import Settings, get_settings
from coursecast.core.storage import BYTES_PER_MB
from coursecast.main import create_app

API_KEY = "test-key"
HEADERS = {"X-API-Key": API_KEY}


@pytest.fixture
def app_settings() -> Settings:
    return Settings(
        api_keys=API_KEY,
        snowflake_mock_mode=True,
        storage_mock_mode=True,
    )


@pytest.fixture
def storage(app_settings):
    return build_storage_service(app_settings)


@pytest.fixture
def client(app_settings, storage) -> TestClient:
    app = create_app()
    app.dependency_overrides[get_settings] = lambda: app_settings
    app.dependency_overrides[get_storage_service] = lambda: storage
    return TestClient(app)


def upload(client, content_id="lesson-1", data=b"\x00" * 2048, content_type="video/mp4"):
    form = {"course_id": "course-1"}
    if content_id:
        form["content_id"] = content_id
    return client.post(
        "/api/v1/videos/upload",
        headers=HEADERS,
        files={"file": ("Intro Lesson.mp4", data, content_type)},
        data=form,
    )


class TestHealth:

    def test_health_needs_no_key(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["details"]["mock_mode"] == {"snowflake": True, "storage": True}

    def test_ready_when_settings_load(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["ready"] is True
        assert data["active_provider"] == "supabase"

    def test_not_ready_when_database_unreachable(self, client, storage):
        storage._connect = lambda: _raising_connection()

        response = client.get("/health/ready")

        assert response.status_code == 503
        checks = {c["name"]: c for c in response.json()["checks"]}
        assert checks["storage_settings"]["ok"] is False
        assert "database unreachable" in checks["storage_settings"]["error"]


def _raising_connection():
    raise RuntimeError("database unreachable")


class TestAuth:

    def test_missing_key_is_403(self, client):
        response = client.get("/api/v1/storage/settings")

        assert response.status_code == 403

    def test_wrong_key_is_403(self, client):
        response = client.get("/api/v1/storage/settings", headers={"X-API-Key": "nope"})

        assert response.status_code == 403


class TestVideoEndpoints:

    def test_upload_attaches_to_lesson(self, client):
        response = upload(client)

        assert response.status_code == 201
        data = response.json()
        assert data["provider"] == "supabase"
        assert data["path"].startswith("courses/course-1/")
        assert data["path"].endswith("_Intro_Lesson.mp4")
        assert data["size_bytes"] == 2048
        assert data["content_id"] == "lesson-1"

    def test_upload_without_lesson_returns_record_only(self, client):
        response = upload(client, content_id=None)

        assert response.status_code == 201
        assert response.json()["content_id"] is None

    def test_non_video_upload_is_rejected(self, client):
        response = upload(client, content_type="application/pdf")

        assert response.status_code == 400

    def test_too_large_is_413(self, client):
        client.put(
            "/api/v1/storage/settings",
            headers=HEADERS,
            json={"active_provider": "supabase", "max_file_size_mb": 1},
        )

        response = upload(client, data=b"\x00" * (BYTES_PER_MB + 1))

        assert response.status_code == 413
        assert "1MB" in response.json()["detail"]

    def test_playback_url_and_status(self, client):
        path = upload(client).json()["path"]

        url = client.get("/api/v1/videos/lesson-1/url", headers=HEADERS)
        status = client.get("/api/v1/videos/lesson-1/status", headers=HEADERS)

        assert url.status_code == 200
        assert url.json()["url"] == f"http://mock-storage.local/supabase/{path}"
        assert status.json() == {"content_id": "lesson-1", "status": "ready"}

    def test_unknown_content_is_404(self, client):
        response = client.get("/api/v1/videos/missing/url", headers=HEADERS)

        assert response.status_code == 404
        assert response.json()["error"] == "ContentNotFoundError"

    def test_delete_is_204(self, client):
        upload(client)

        response = client.delete("/api/v1/videos/lesson-1/storage", headers=HEADERS)

        assert response.status_code == 204

    def test_delete_twice_still_204(self, client):
        upload(client)
        client.delete("/api/v1/videos/lesson-1/storage", headers=HEADERS)

        response = client.delete("/api/v1/videos/lesson-1/storage", headers=HEADERS)

        assert response.status_code == 204

    def test_migrate_repoints_lesson(self, client):
        upload(client)

        response = client.post(
            "/api/v1/videos/lesson-1/migrate",
            headers=HEADERS,
            json={"target_provider": "bunny"},
        )

        assert response.status_code == 200
        assert response.json()["provider"] == "bunny"
        url = client.get("/api/v1/videos/lesson-1/url", headers=HEADERS).json()["url"]
        assert url.startswith("http://mock-storage.local/bunny/")

    def test_migrate_to_same_provider_is_400(self, client):
        upload(client)

        response = client.post(
            "/api/v1/videos/lesson-1/migrate",
            headers=HEADERS,
            json={"target_provider": "supabase"},
        )

        assert response.status_code == 400

    def test_reconcile_with_nothing_orphaned(self, client):
        response = client.post("/api/v1/videos/reconcile-orphans", headers=HEADERS)

        assert response.json() == {"reconciled": 0}

    def test_pipeline_sets_processing_status(self, client):
        upload(client)

        response = client.put(
            "/api/v1/videos/lesson-1/status",
            headers=HEADERS,
            json={"status": "processing"},
        )

        assert response.status_code == 200
        status = client.get("/api/v1/videos/lesson-1/status", headers=HEADERS)
        assert status.json() == {"content_id": "lesson-1", "status": "processing"}

    def test_status_for_unknown_content_is_404(self, client):
        response = client.put(
            "/api/v1/videos/missing/status",
            headers=HEADERS,
            json={"status": "ready"},
        )

        assert response.status_code == 404

    def test_upload_session_needs_worker_backend(self, client):
        response = client.get("/api/v1/videos/uploads/upload-1", headers=HEADERS)

        assert response.status_code == 400
        assert "upload sessions" in response.json()["detail"]


class TestStorageSettingsEndpoints:

    def test_defaults(self, client):
        response = client.get("/api/v1/storage/settings", headers=HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["active_provider"] == "supabase"
        assert data["configured_secrets"] == []
        assert "bunny_api_key" not in data

    def test_secrets_are_write_only(self, client):
        response = client.put(
            "/api/v1/storage/settings",
            headers=HEADERS,
            json={
                "active_provider": "bunny",
                "bunny_storage_zone": "coursecast-videos",
                "bunny_api_key": "zone-password",
            },
        )

        assert response.status_code == 200
        assert "zone-password" not in response.text
        assert response.json()["configured_secrets"] == ["bunny_api_key"]

    def test_omitted_secret_is_kept_and_empty_clears(self, client, storage):
        client.put(
            "/api/v1/storage/settings",
            headers=HEADERS,
            json={"active_provider": "bunny", "bunny_api_key": "zone-password"},
        )

        client.put(
            "/api/v1/storage/settings",
            headers=HEADERS,
            json={"active_provider": "bunny", "max_file_size_mb": 900},
        )
        assert storage.get_settings().bunny_api_key == "zone-password"

        client.put(
            "/api/v1/storage/settings",
            headers=HEADERS,
            json={"active_provider": "bunny", "bunny_api_key": ""},
        )
        assert storage.get_settings().bunny_api_key is None

    def test_new_active_provider_applies_to_next_upload(self, client):
        client.put(
            "/api/v1/storage/settings",
            headers=HEADERS,
            json={"active_provider": "cloudflare"},
        )

        assert upload(client).json()["provider"] == "cloudflare"

    def test_external_cannot_be_active(self, client):
        response = client.put(
            "/api/v1/storage/settings",
            headers=HEADERS,
            json={"active_provider": "external"},
        )

        assert response.status_code == 422

    def test_connection_test_defaults_to_active(self, client):
        response = client.post("/api/v1/storage/settings/test-connection", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["provider"] == "supabase"
        assert response.json()["ok"] is True

    def test_connection_test_for_named_provider(self, client):
        response = client.post(
            "/api/v1/storage/settings/test-connection",
            headers=HEADERS,
            json={"provider": "cloudflare"},
        )

        assert response.json()["provider"] == "cloudflare"
