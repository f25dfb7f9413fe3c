"""Tests for job submission and administration endpoints."""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from reelsync.jobs.models import Job
from reelsync.jobs.types import JobStatus, JobType
from reelsync.providers.base import InvalidImportFile, MissingCredentials
from reelsync.repositories.jobs import InvalidTransition
from reelsync.services.job_submission import SubmissionResult


@pytest.fixture
def submission():
    service = MagicMock()
    with patch("reelsync.routers.jobs._submission_service", return_value=service):
        yield service


@pytest.fixture
def job_repo(mock_pool):
    repo = MagicMock()
    with patch("reelsync.routers.jobs._db_pool", mock_pool), patch(
        "reelsync.routers.jobs.JobRepository", return_value=repo
    ):
        yield repo


class TestSubmission:
    def test_upload_history_queues_job(self, client, submission, user_headers):
        job_id = uuid4()
        submission.submit_streaming_history = AsyncMock(
            return_value=SubmissionResult(status="pending", job_id=job_id)
        )

        response = client.post(
            "/jobs/streaming/history",
            files={"file": ("history.csv", b"Title,Date\nInception,1/15/24\n", "text/csv")},
            headers=user_headers,
        )

        assert response.status_code == 200
        assert response.json() == {"status": "pending", "job_id": str(job_id)}
        submission.submit_streaming_history.assert_awaited_once_with(
            1, b"Title,Date\nInception,1/15/24\n"
        )

    def test_invalid_upload_is_400(self, client, submission, user_headers):
        submission.submit_streaming_history = AsyncMock(
            side_effect=InvalidImportFile("Line 2: bad date")
        )

        response = client.post(
            "/jobs/streaming/history",
            files={"file": ("history.csv", b"x", "text/csv")},
            headers=user_headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Line 2: bad date"

    def test_duplicate_is_not_an_error(self, client, submission, user_headers):
        job_id = uuid4()
        submission.submit_streaming_ratings = AsyncMock(
            return_value=SubmissionResult(status="duplicate", job_id=job_id)
        )

        response = client.post(
            "/jobs/streaming/ratings",
            files={"file": ("ratings.csv", b"x", "text/csv")},
            headers=user_headers,
        )

        assert response.status_code == 200
        assert response.json()["status"] == "duplicate"

    def test_trakt_without_credentials_is_400(self, client, submission, user_headers):
        submission.submit_trakt_history = AsyncMock(
            side_effect=MissingCredentials("Trakt account is not connected")
        )

        response = client.post("/jobs/trakt/history", headers=user_headers)

        assert response.status_code == 400

    def test_requires_user(self, client, submission):
        response = client.post("/jobs/trakt/ratings")
        assert response.status_code == 401

    def test_invalid_user_header(self, client, submission):
        response = client.post("/jobs/trakt/ratings", headers={"X-User-Id": "abc"})
        assert response.status_code == 401


class TestListing:
    def test_list_jobs(self, client, job_repo, user_headers):
        job = Job(
            id=uuid4(),
            type=JobType.STREAMING_HISTORY_IMPORT,
            status=JobStatus.COMPLETED_FAILED,
            payload={},
            user_id=1,
            failure_reason="Invalid import file: Line 3: bad date",
        )
        job_repo.find = AsyncMock(return_value=[job])

        response = client.get("/jobs?type=streaming_history_import", headers=user_headers)

        assert response.status_code == 200
        (item,) = response.json()
        assert item["status"] == "completed_failed"
        assert item["failure_reason"] == "Invalid import file: Line 3: bad date"
        job_repo.find.assert_awaited_once_with(1, JobType.STREAMING_HISTORY_IMPORT)

    def test_unknown_type_is_422(self, client, job_repo, user_headers):
        response = client.get("/jobs?type=nope", headers=user_headers)
        assert response.status_code == 422

    def test_no_database_is_503(self, client, user_headers):
        with patch("reelsync.routers.jobs._db_pool", None):
            response = client.get("/jobs?type=trakt_history_import", headers=user_headers)
        assert response.status_code == 503


class TestAdministration:
    def test_purge_all(self, client, job_repo, admin_headers):
        job_repo.purge_all = AsyncMock(return_value=3)

        response = client.post("/jobs/purge-all", headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == {"deleted": 3}

    def test_purge_processed(self, client, job_repo, admin_headers):
        job_repo.purge_terminal = AsyncMock(return_value=2)

        response = client.post("/jobs/purge-processed", headers=admin_headers)

        assert response.json() == {"deleted": 2}

    def test_admin_token_required(self, client, job_repo, admin_settings):
        response = client.post("/jobs/purge-all")
        assert response.status_code == 401

    def test_admin_token_invalid(self, client, job_repo, admin_settings):
        response = client.post("/jobs/purge-all", headers={"X-Admin-Token": "wrong"})
        assert response.status_code == 403

    def test_delete_in_progress_is_409(self, client, job_repo, admin_headers):
        job_repo.delete = AsyncMock(side_effect=InvalidTransition("in progress"))

        response = client.delete(f"/jobs/{uuid4()}", headers=admin_headers)

        assert response.status_code == 409

    def test_delete_missing_is_404(self, client, job_repo, admin_headers):
        job_repo.delete = AsyncMock(return_value=False)

        response = client.delete(f"/jobs/{uuid4()}", headers=admin_headers)

        assert response.status_code == 404

    def test_trigger_catalog_sync(self, client, submission, admin_headers):
        job_id = uuid4()
        submission.submit_system = AsyncMock(
            return_value=SubmissionResult(status="pending", job_id=job_id)
        )

        response = client.post(
            "/jobs/catalog/sync", json={"catalog_ids": [603]}, headers=admin_headers
        )

        assert response.status_code == 200
        submission.submit_system.assert_awaited_once_with(
            JobType.CATALOG_MOVIE_SYNC, {"catalog_ids": [603]}
        )

    def test_trigger_image_cache(self, client, submission, admin_headers):
        submission.submit_system = AsyncMock(
            return_value=SubmissionResult(status="duplicate", job_id=uuid4())
        )

        response = client.post(
            "/jobs/catalog/image-cache", json={"force": True}, headers=admin_headers
        )

        assert response.json()["status"] == "duplicate"
        submission.submit_system.assert_awaited_once_with(
            JobType.CATALOG_IMAGE_CACHE, {"force": True}
        )
