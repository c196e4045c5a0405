from __future__ import annotations

from pathlib import Path

from fastapi.testclient import TestClient

from starter.application import TOKEN_CLEANUP_JOB, create_app
from starter.core.config import (
    AppConfig,
    AuthConfig,
    DatabaseConfig,
    LoggingConfig,
    SchedulerConfig,
    SecurityConfig,
)


def _config(tmp_path: Path, *, scheduler_enabled: bool = True) -> AppConfig:
    return AppConfig(
        auth=AuthConfig(
            access_secret="access-secret",
            refresh_secret="refresh-secret",
            access_token_ttl_seconds=300,
            refresh_token_ttl_seconds=1200,
            issuer="starter-test",
            bcrypt_rounds=4,
            admin_email="admin@example.com",
            admin_username="admin",
            admin_password="Admin1234",
        ),
        database=DatabaseConfig(url=f"sqlite:///{tmp_path / 'jobs.db'}"),
        scheduler=SchedulerConfig(
            enabled=scheduler_enabled, token_cleanup_interval_seconds=3600
        ),
        logging=LoggingConfig(level="INFO"),
        security=SecurityConfig(
            cors_allowed_origins=["http://localhost:3000"],
            request_max_bytes=64 * 1024,
        ),
    )


def _token(client: TestClient, email: str, password: str) -> str:
    response = client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200
    return response.json()["tokens"]["access_token"]


def test_startup_registers_token_cleanup_job(tmp_path: Path) -> None:
    with TestClient(create_app(_config(tmp_path))) as client:
        headers = {"Authorization": f"Bearer {_token(client, 'admin@example.com', 'Admin1234')}"}

        listing = client.get("/scheduler/jobs", headers=headers)
        single = client.get(f"/scheduler/jobs/{TOKEN_CLEANUP_JOB}", headers=headers)
        missing = client.get("/scheduler/jobs/unknown", headers=headers)

    assert listing.status_code == 200
    jobs = listing.json()["jobs"]
    assert [job["name"] for job in jobs] == [TOKEN_CLEANUP_JOB]
    assert jobs[0]["running"] is True
    assert jobs[0]["interval_seconds"] == 3600
    assert single.json()["name"] == TOKEN_CLEANUP_JOB
    assert missing.status_code == 404
    assert missing.json()["error_code"] == "SCHEDULER_JOB_NOT_FOUND"


def test_scheduler_disabled_registers_nothing(tmp_path: Path) -> None:
    with TestClient(create_app(_config(tmp_path, scheduler_enabled=False))) as client:
        headers = {"Authorization": f"Bearer {_token(client, 'admin@example.com', 'Admin1234')}"}
        listing = client.get("/scheduler/jobs", headers=headers)

    assert listing.json() == {"jobs": []}


def test_scheduler_jobs_require_admin(tmp_path: Path) -> None:
    with TestClient(create_app(_config(tmp_path))) as client:
        registered = client.post(
            "/auth/register",
            json={"email": "alice@example.com", "username": "alice", "password": "Secret123"},
        ).json()
        headers = {"Authorization": f"Bearer {registered['tokens']['access_token']}"}

        as_user = client.get("/scheduler/jobs", headers=headers)
        anonymous = client.get("/scheduler/jobs")

    assert as_user.status_code == 403
    assert anonymous.status_code == 401
