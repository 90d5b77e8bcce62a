from pathlib import Path

import pytest

pytest.importorskip("sqlmodel")

from fakes import FakePlanner, FakeS3Client, build_test_app
from fastapi.testclient import TestClient


class UnconfiguredPlanner(FakePlanner):
    configured = False


def test_health_reports_all_services(tmp_path: Path) -> None:
    with TestClient(build_test_app(tmp_path)) as client:
        response = client.get("/api/health")
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["status"] == "healthy"
        assert body["data"]["services"] == {
            "api": "operational",
            "database": "operational",
            "storage": "operational",
            "llm": "operational",
            "tts": "configured",
        }


def test_unreachable_bucket_degrades_health(tmp_path: Path) -> None:
    s3 = FakeS3Client()
    s3.bucket_available = False
    with TestClient(build_test_app(tmp_path, s3=s3)) as client:
        response = client.get("/api/health")
        assert response.status_code == 503
        data = response.json()["data"]
        assert data["status"] == "degraded"
        assert data["services"]["storage"] == "unavailable"


def test_unconfigured_llm_does_not_degrade_health(tmp_path: Path) -> None:
    with TestClient(build_test_app(tmp_path, planner=UnconfiguredPlanner())) as client:
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["data"]["services"]["llm"] == "not_configured"


def test_storage_round_trip_cleans_up(tmp_path: Path) -> None:
    s3 = FakeS3Client()
    with TestClient(build_test_app(tmp_path, s3=s3)) as client:
        response = client.get("/api/storage/test")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "all_tests_passed"
        assert set(data["tests"].values()) == {"passed"}
        assert data["testFile"]["key"].startswith("projects/test-project-")
        assert data["testFile"]["key"].endswith("/docs/test-file.json")
        assert data["fileInfo"]["size"] == data["testFile"]["size"]
        assert data["fileInfo"]["contentType"] == "application/json"
        assert data["validationResult"]["isValid"] is True
        assert s3.objects == {}


def test_storage_round_trip_reports_unreachable_bucket(tmp_path: Path) -> None:
    s3 = FakeS3Client()
    s3.bucket_available = False
    with TestClient(build_test_app(tmp_path, s3=s3)) as client:
        response = client.get("/api/storage/test")
        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "R2 connection test failed"
        assert body["details"] == {"test": "connection", "status": "failed"}
