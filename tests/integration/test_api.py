"""Integration tests for the FastAPI ingestion trigger using TestClient."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from coursemind.config.settings import Settings
from coursemind.main import create_app
from coursemind.models.jobs import BatchSummary
from coursemind.utils.errors import StorageError

SECRET = "s3cret-token"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _create_client(
    cron_secret: str = SECRET,
    summary: BatchSummary | None = None,
) -> tuple[TestClient, MagicMock]:
    if summary is None:
        summary = BatchSummary(processed=1, failures=["job-2: Provider timeout"])
    scheduler = MagicMock()
    scheduler.run_batch = AsyncMock(return_value=summary)
    components = {
        "settings": Settings(_env_file=None, cron_secret=cron_secret, app_env="test"),
        "scheduler": scheduler,
    }
    return TestClient(create_app(components), raise_server_exceptions=False), scheduler


# ---------------------------------------------------------------------------
# Authorisation
# ---------------------------------------------------------------------------


class TestProcessMaterialsAuth:
    def test_x_cron_secret_header(self) -> None:
        client, scheduler = _create_client()

        response = client.post("/api/materials/process", headers={"x-cron-secret": SECRET})

        assert response.status_code == 200
        assert response.json() == {"processed": 1, "failures": ["job-2: Provider timeout"]}
        scheduler.run_batch.assert_awaited_once()

    @pytest.mark.parametrize(
        "authorization",
        [f"Bearer {SECRET}", f"bearer {SECRET}", f"Bearer   {SECRET}"],
    )
    def test_bearer_token(self, authorization: str) -> None:
        client, _ = _create_client()

        response = client.post(
            "/api/materials/process", headers={"Authorization": authorization}
        )

        assert response.status_code == 200

    @pytest.mark.parametrize(
        "headers",
        [
            {},
            {"x-cron-secret": "wrong"},
            {"Authorization": "Bearer wrong"},
            {"Authorization": SECRET},
            {"Authorization": f"Basic {SECRET}"},
        ],
    )
    def test_rejected(self, headers: dict[str, str]) -> None:
        client, scheduler = _create_client()

        response = client.post("/api/materials/process", headers=headers)

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}
        scheduler.run_batch.assert_not_awaited()

    def test_x_cron_secret_wins_over_bearer(self) -> None:
        client, _ = _create_client()

        response = client.post(
            "/api/materials/process",
            headers={"x-cron-secret": "wrong", "Authorization": f"Bearer {SECRET}"},
        )

        assert response.status_code == 401

    def test_open_without_secret(self) -> None:
        client, scheduler = _create_client(cron_secret="", summary=BatchSummary())

        response = client.post("/api/materials/process")

        assert response.status_code == 200
        assert response.json() == {"processed": 0, "failures": []}
        scheduler.run_batch.assert_awaited_once()


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class TestErrorsAndHealth:
    def test_scheduler_failure_is_generic_500(self) -> None:
        client, scheduler = _create_client()
        scheduler.run_batch.side_effect = StorageError(
            "database is locked", provider_name="sqlite"
        )

        response = client.post("/api/materials/process", headers={"x-cron-secret": SECRET})

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}

    def test_health(self) -> None:
        client, _ = _create_client()

        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
