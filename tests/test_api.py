"""
Tests for the HTTP API.

Uses the Flask test client with the in-memory Redis double; generation jobs
are recorded instead of run.
"""

import pytest

from alphabook.config import Config
from alphabook.models import StoryContent, StoryPage, serialize_images
from alphabook.services import JobService
from alphabook.settings import ALPHABET_LETTERS_COUNT, SUBMISSIONS_HALTED
from tests.conftest import PNG_BYTES, hours_ago, make_story_record

ADMIN_PASSWORD = "let-me-in"
CRON_SECRET = "cron-secret"


@pytest.fixture
def jobs():
    return []


@pytest.fixture
def app(monkeypatch, tmp_path, repository, settings_store, blob_store, jobs):
    monkeypatch.setenv("ADMIN_PASSWORD", ADMIN_PASSWORD)
    monkeypatch.setenv("CRON_SECRET", CRON_SECRET)
    monkeypatch.setenv("BLOB_DIR", str(tmp_path / "media"))
    config = Config()
    config.RATELIMIT_ENABLED = False
    config.TESTING = True

    from app import create_app
    return create_app(
        config=config,
        repository=repository,
        settings_store=settings_store,
        blob_store=blob_store,
        job_service=JobService(job_func=lambda **kwargs: jobs.append(kwargs), inline=True),
    )


@pytest.fixture
def client(app):
    return app.test_client()


def admin_headers():
    return {"X-Admin-Password": ADMIN_PASSWORD}


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.get_json() == {"status": "ok"}


class TestCreateStory:
    """Test POST /api/stories."""

    def test_create_returns_202_and_schedules_job(self, client, repository, jobs):
        response = client.post("/api/stories", json={"title": "Ocean Friends", "prompt": "Sea creatures"})
        assert response.status_code == 202
        data = response.get_json()
        assert data["status"] == "generating"
        assert data["letterCount"] == 8

        record = repository.get(data["id"])
        assert record["title"] == "Ocean Friends"
        assert record["age"] == "3-8"
        assert record["visibility"] == "public"
        assert len(record["deletionToken"]) == 32

        assert jobs == [{
            "story_id": data["id"],
            "title": "Ocean Friends",
            "prompt": "Sea creatures",
            "age_range": "3-8",
            "letter_count": 8,
        }]

    def test_defaults_applied(self, client, repository):
        response = client.post("/api/stories", json={"title": "Colors", "prompt": "", "visibility": "secret"})
        record = repository.get(response.get_json()["id"])
        assert record["prompt"] == "A fun alphabet adventure for children"
        assert record["visibility"] == "public"

    def test_form_submission_accepted(self, client, repository):
        response = client.post("/api/stories", data={"title": "Colors", "visibility": "unlisted", "age": "4-6"})
        assert response.status_code == 202
        record = repository.get(response.get_json()["id"])
        assert record["visibility"] == "unlisted"
        assert record["age"] == "4-6"

    def test_letter_count_snapshot_taken_at_creation(self, client, settings_store, repository, jobs):
        settings_store.set(ALPHABET_LETTERS_COUNT, 5)
        response = client.post("/api/stories", json={"title": "Colors"})
        story_id = response.get_json()["id"]
        settings_store.set(ALPHABET_LETTERS_COUNT, 12)

        assert repository.get(story_id)["letterCount"] == 5
        assert jobs[0]["letter_count"] == 5

    @pytest.mark.parametrize("body", [{}, {"title": ""}, {"title": "   "}, {"title": 42}])
    def test_title_required(self, client, repository, jobs, body):
        response = client.post("/api/stories", json=body)
        assert response.status_code == 400
        assert response.get_json()["error_code"] == "VALIDATION_ERROR"
        assert repository.list() == []
        assert jobs == []

    def test_overlong_title_rejected(self, client):
        response = client.post("/api/stories", json={"title": "x" * 500})
        assert response.status_code == 400

    def test_rejected_when_submissions_halted(self, client, settings_store, repository, jobs):
        settings_store.set(SUBMISSIONS_HALTED, True)
        response = client.post("/api/stories", json={"title": "Ocean Friends"})
        assert response.status_code == 503
        assert response.get_json()["error_code"] == "SUBMISSIONS_HALTED"
        assert repository.list() == []
        assert jobs == []


class TestGetStory:
    """Test GET /api/story/<id>."""

    def test_returns_public_view(self, client, repository):
        content = StoryContent(title="Ocean Friends", pages=[StoryPage(text="A is for anchor", imagePrompt="anchor")])
        repository.create(make_story_record(
            "s1",
            status="complete",
            storyContent=content.to_json(),
            images=serialize_images(["http://testserver/media/s1/page-0.png"]),
        ))

        response = client.get("/api/story/s1")
        assert response.status_code == 200
        data = response.get_json()
        assert "deletionToken" not in data
        assert data["storyContent"]["pages"][0]["imagePrompt"] == "anchor"
        assert data["images"] == ["http://testserver/media/s1/page-0.png"]

    def test_in_progress_story(self, client, repository):
        repository.create(make_story_record("s1", status="generating_story"))
        data = client.get("/api/story/s1").get_json()
        assert data["status"] == "generating_story"
        assert data["storyContent"] is None
        assert data["images"] is None

    def test_missing_story_404(self, client):
        response = client.get("/api/story/nope")
        assert response.status_code == 404
        assert response.get_json()["error_code"] == "NOT_FOUND"


class TestListStories:
    """Test GET /api/stories."""

    @pytest.fixture(autouse=True)
    def seed(self, repository):
        repository.create(make_story_record(
            "public-done", status="complete", createdAt=hours_ago(3),
            images=serialize_images(["http://testserver/media/public-done/page-0.png"]),
        ))
        repository.create(make_story_record("hidden", visibility="unlisted", createdAt=hours_ago(2)))
        repository.create(make_story_record("broken", status="failed", error="boom", createdAt=hours_ago(1)))
        repository.create(make_story_record("newest", createdAt=hours_ago(0.5)))

    def test_public_list(self, client):
        response = client.get("/api/stories")
        assert response.status_code == 200
        stories = response.get_json()["stories"]
        assert [s["id"] for s in stories] == ["newest", "public-done"]
        assert stories[0]["previewImage"] is None
        assert stories[1]["previewImage"] == "http://testserver/media/public-done/page-0.png"
        for story in stories:
            assert "deletionToken" not in story
            assert "storyContent" not in story
            assert "images" not in story

    def test_unlisted_requires_admin(self, client):
        response = client.get("/api/stories?includeUnlisted=true")
        assert response.status_code == 403

    def test_unlisted_with_admin_header(self, client):
        response = client.get("/api/stories?includeUnlisted=true", headers=admin_headers())
        assert [s["id"] for s in response.get_json()["stories"]] == ["newest", "hidden", "public-done"]

    def test_unlisted_with_admin_query(self, client):
        response = client.get(f"/api/stories?includeUnlisted=true&adminPassword={ADMIN_PASSWORD}")
        assert response.status_code == 200


class TestDeleteStory:
    """Test DELETE /api/story/<id>."""

    def test_requires_admin(self, client, repository):
        repository.create(make_story_record("s1"))
        assert client.delete("/api/story/s1").status_code == 403
        assert client.delete("/api/story/s1?adminPassword=wrong").status_code == 403
        assert repository.get("s1") is not None

    def test_deletes_record_and_images(self, client, repository, blob_store):
        repository.create(make_story_record("s1"))
        url = blob_store.upload(PNG_BYTES, "s1", 0)

        response = client.delete(f"/api/story/s1?adminPassword={ADMIN_PASSWORD}")
        assert response.status_code == 200
        assert response.get_json()["success"] is True
        assert repository.get("s1") is None
        assert blob_store.read(url) is None

    def test_admin_header_accepted(self, client, repository):
        repository.create(make_story_record("s1"))
        response = client.delete("/api/story/s1", headers=admin_headers())
        assert response.status_code == 200
        assert repository.get("s1") is None

    def test_missing_story_404(self, client):
        assert client.delete(f"/api/story/nope?adminPassword={ADMIN_PASSWORD}").status_code == 404


class TestVisibility:
    """Test POST /api/story/<id>/visibility."""

    def test_requires_admin(self, client, repository):
        repository.create(make_story_record("s1"))
        response = client.post("/api/story/s1/visibility", json={"visibility": "unlisted"})
        assert response.status_code == 403
        assert repository.get("s1")["visibility"] == "public"

    def test_updates_visibility(self, client, repository):
        repository.create(make_story_record("s1"))
        response = client.post("/api/story/s1/visibility", json={"visibility": "unlisted"}, headers=admin_headers())
        assert response.status_code == 200
        assert response.get_json()["story"]["visibility"] == "unlisted"
        assert repository.get("s1")["visibility"] == "unlisted"

    def test_invalid_visibility(self, client, repository):
        repository.create(make_story_record("s1"))
        response = client.post("/api/story/s1/visibility", json={"visibility": "private"}, headers=admin_headers())
        assert response.status_code == 400

    def test_missing_story(self, client):
        response = client.post("/api/story/nope/visibility", json={"visibility": "public"}, headers=admin_headers())
        assert response.status_code == 404


class TestSettingsApi:
    """Test the settings endpoints."""

    def test_get_setting(self, client):
        response = client.get(f"/api/settings?key={ALPHABET_LETTERS_COUNT}")
        assert response.get_json() == {"key": ALPHABET_LETTERS_COUNT, "value": 8}

    def test_get_setting_requires_key(self, client):
        assert client.get("/api/settings").status_code == 400

    def test_get_unknown_setting(self, client):
        assert client.get("/api/settings?key=THEME").status_code == 400

    def test_get_setting_with_wrong_password(self, client):
        response = client.get(f"/api/settings?key={ALPHABET_LETTERS_COUNT}&adminPassword=wrong")
        assert response.status_code == 403

    def test_get_all(self, client):
        response = client.get("/api/settings/all")
        assert response.get_json() == {"settings": {ALPHABET_LETTERS_COUNT: 8, SUBMISSIONS_HALTED: False}}

    def test_update_requires_admin(self, client, settings_store):
        response = client.post("/api/settings", json={"key": ALPHABET_LETTERS_COUNT, "value": 5})
        assert response.status_code == 403
        assert settings_store.get(ALPHABET_LETTERS_COUNT) == 8

    def test_update_setting(self, client, settings_store):
        response = client.post(
            f"/api/settings?adminPassword={ADMIN_PASSWORD}",
            json={"key": ALPHABET_LETTERS_COUNT, "value": "5"},
        )
        assert response.status_code == 200
        assert response.get_json()["value"] == 5
        assert settings_store.get(ALPHABET_LETTERS_COUNT) == 5

    def test_update_setting_with_admin_header(self, client, settings_store):
        response = client.post(
            "/api/settings",
            json={"key": SUBMISSIONS_HALTED, "value": True},
            headers=admin_headers(),
        )
        assert response.status_code == 200
        assert settings_store.get(SUBMISSIONS_HALTED) is True

    @pytest.mark.parametrize("body", [
        {"value": 5},
        {"key": ALPHABET_LETTERS_COUNT},
        {"key": ALPHABET_LETTERS_COUNT, "value": 30},
        {"key": "THEME", "value": "blue"},
    ])
    def test_update_invalid(self, client, body):
        response = client.post(f"/api/settings?adminPassword={ADMIN_PASSWORD}", json=body)
        assert response.status_code == 400


class TestAdminAuth:
    def test_check_auth(self, client):
        assert client.get("/api/admin/check-auth").status_code == 401
        response = client.get("/api/admin/check-auth", headers=admin_headers())
        assert response.status_code == 200
        assert response.get_json() == {"authenticated": True}


class TestCronCleanup:
    """Test GET /api/cron/cleanup."""

    @pytest.fixture(autouse=True)
    def seed(self, repository):
        repository.create(make_story_record("stuck", status="generating_images", createdAt=hours_ago(25)))
        repository.create(make_story_record("done", status="complete", createdAt=hours_ago(25)))

    @pytest.mark.parametrize("query", ["", "?cronSecret=", "?cronSecret=wrong"])
    def test_rejects_bad_secret_without_side_effects(self, client, repository, query):
        response = client.get(f"/api/cron/cleanup{query}")
        assert response.status_code == 401
        assert repository.get("stuck") is not None

    def test_sweeps_stuck_stories(self, client, repository):
        response = client.get(f"/api/cron/cleanup?cronSecret={CRON_SECRET}")
        assert response.status_code == 200
        data = response.get_json()
        assert data["deletedCount"] == 1
        assert data["results"][0]["id"] == "stuck"
        assert repository.get("stuck") is None
        assert repository.get("done") is not None


class TestUnconfiguredSecrets:
    def test_empty_cron_secret_rejects_everything(self, monkeypatch, repository, settings_store, blob_store):
        monkeypatch.setenv("CRON_SECRET", "")
        from app import create_app
        config = Config()
        config.RATELIMIT_ENABLED = False
        app = create_app(config=config, repository=repository, settings_store=settings_store,
                         blob_store=blob_store, job_service=JobService(job_func=lambda **kw: None, inline=True))
        assert app.test_client().get("/api/cron/cleanup?cronSecret=").status_code == 401


class TestMedia:
    def test_serves_uploaded_image(self, client, blob_store):
        blob_store.upload(PNG_BYTES, "s1", 0)
        response = client.get("/media/s1/page-0.png")
        assert response.status_code == 200
        assert response.data == PNG_BYTES
