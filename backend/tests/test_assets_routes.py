import hashlib
import json
from pathlib import Path

import pytest

pytest.importorskip("sqlmodel")

from fakes import OTHER_USER_HEADERS, USER_HEADERS, FakeS3Client, build_test_app, create_project, plan_project
from fastapi.testclient import TestClient

from explainer import validation
from explainer.models import AssetType
from explainer.planning import generate_mock_plan

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def _upload(client: TestClient, project_id: str, filename: str, content: bytes, mime: str, **form: str):
    return client.post(
        f"/api/projects/{project_id}/assets",
        files={"file": (filename, content, mime)},
        data=form,
        headers=USER_HEADERS,
    )


def test_upload_frame_with_pattern(tmp_path: Path) -> None:
    s3 = FakeS3Client()
    with TestClient(build_test_app(tmp_path, s3=s3)) as client:
        project_id = create_project(client)
        response = _upload(client, project_id, "B1_F2.png", PNG_BYTES, "image/png", type="FRAME", pattern="FRAME")

        assert response.status_code == 200
        data = response.json()["data"]
        asset = data["asset"]
        assert asset["type"] == "FRAME"
        assert asset["r2Key"] == f"projects/{project_id}/frames/B1_F2.png"
        assert asset["sizeBytes"] == len(PNG_BYTES)
        assert asset["checksum"] == hashlib.sha256(PNG_BYTES).hexdigest()
        assert asset["meta"] == {
            "kind": "upload",
            "original_filename": "B1_F2.png",
            "content_type": "image/png",
            "warnings": [],
        }
        assert data["url"].startswith("https://signed.example/")
        assert s3.objects[asset["r2Key"]] == (PNG_BYTES, "image/png")


def test_upload_infers_type_and_sanitizes_name(tmp_path: Path) -> None:
    with TestClient(build_test_app(tmp_path)) as client:
        project_id = create_project(client)
        response = _upload(client, project_id, "My Notes (draft).txt", b"hello", "text/plain")

        assert response.status_code == 200
        asset = response.json()["data"]["asset"]
        assert asset["type"] == "DOC"
        assert asset["label"] == "my_notes_draft_.txt"
        assert asset["r2Key"].endswith("/docs/my_notes_draft_.txt")


def test_upload_rejects_unknown_type(tmp_path: Path) -> None:
    with TestClient(build_test_app(tmp_path)) as client:
        project_id = create_project(client)
        response = _upload(client, project_id, "payload.exe", b"MZ", "application/octet-stream")
        assert response.status_code == 400
        assert response.json()["error"] == "Could not determine asset type"


def test_upload_reports_every_validation_error(tmp_path: Path) -> None:
    with TestClient(build_test_app(tmp_path)) as client:
        project_id = create_project(client)
        response = _upload(client, project_id, "frame-1.bmp", PNG_BYTES, "image/bmp", type="FRAME", pattern="FRAME")

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "File validation failed"
        assert len(body["details"]) == 3
        assert client.get(f"/api/projects/{project_id}/assets", headers=USER_HEADERS).json()["data"] == []


def test_uploaded_project_plan_is_structurally_checked(tmp_path: Path) -> None:
    with TestClient(build_test_app(tmp_path)) as client:
        project_id = create_project(client)
        bad = _upload(
            client,
            project_id,
            "ProjectPlan.json",
            json.dumps({"beats": []}).encode(),
            "application/json",
            pattern="PROJECT_PLAN",
        )
        assert bad.status_code == 400
        assert "Missing required fields" in bad.json()["details"][0]

        plan = generate_mock_plan("Coffee").model_dump_json(by_alias=True).encode()
        good = _upload(client, project_id, "ProjectPlan.json", plan, "application/json", pattern="PROJECT_PLAN")
        assert good.status_code == 200
        assert good.json()["data"]["asset"]["r2Key"] == f"projects/{project_id}/docs/ProjectPlan.json"


def test_list_filters_by_type(tmp_path: Path) -> None:
    with TestClient(build_test_app(tmp_path)) as client:
        project_id = create_project(client)
        plan_project(client, project_id)
        _upload(client, project_id, "B1_F1.png", PNG_BYTES, "image/png")

        everything = client.get(f"/api/projects/{project_id}/assets", headers=USER_HEADERS).json()["data"]
        frames = client.get(f"/api/projects/{project_id}/assets?type=FRAME", headers=USER_HEADERS).json()["data"]
        assert len(everything) == 3
        assert [asset["label"] for asset in frames] == ["b1_f1.png"]

        invalid = client.get(f"/api/projects/{project_id}/assets?type=BOGUS", headers=USER_HEADERS)
        assert invalid.status_code == 400


def test_delete_removes_row_and_object(tmp_path: Path) -> None:
    s3 = FakeS3Client()
    with TestClient(build_test_app(tmp_path, s3=s3)) as client:
        project_id = create_project(client)
        asset = _upload(client, project_id, "B1_F1.png", PNG_BYTES, "image/png").json()["data"]["asset"]

        response = client.delete(f"/api/projects/{project_id}/assets/{asset['id']}", headers=USER_HEADERS)
        assert response.status_code == 200
        assert response.json()["data"]["id"] == asset["id"]
        assert asset["r2Key"] not in s3.objects
        assert client.get(f"/api/projects/{project_id}/assets", headers=USER_HEADERS).json()["data"] == []

        again = client.delete(f"/api/projects/{project_id}/assets/{asset['id']}", headers=USER_HEADERS)
        assert again.status_code == 404
        assert again.json()["error"] == "Asset not found"


def test_storage_usage_and_orphans(tmp_path: Path) -> None:
    s3 = FakeS3Client()
    with TestClient(build_test_app(tmp_path, s3=s3)) as client:
        project_id = create_project(client)
        frame = _upload(client, project_id, "B1_F1.png", PNG_BYTES, "image/png").json()["data"]["asset"]
        _upload(client, project_id, "notes.txt", b"hello", "text/plain")

        usage = client.get(f"/api/projects/{project_id}/storage", headers=USER_HEADERS).json()["data"]
        assert usage["totalAssets"] == 2
        assert usage["totalBytes"] == len(PNG_BYTES) + 5
        assert usage["byType"]["FRAME"] == {"count": 1, "bytes": len(PNG_BYTES)}
        assert usage["byType"]["DOC"] == {"count": 1, "bytes": 5}

        assert client.get(f"/api/projects/{project_id}/assets/orphans", headers=USER_HEADERS).json()["data"] == []
        del s3.objects[frame["r2Key"]]
        orphans = client.get(f"/api/projects/{project_id}/assets/orphans", headers=USER_HEADERS).json()["data"]
        assert [orphan["id"] for orphan in orphans] == [frame["id"]]


def test_assets_are_owner_scoped(tmp_path: Path) -> None:
    with TestClient(build_test_app(tmp_path)) as client:
        project_id = create_project(client)
        response = client.get(f"/api/projects/{project_id}/assets", headers=OTHER_USER_HEADERS)
        assert response.status_code == 404
        upload = client.post(
            f"/api/projects/{project_id}/assets",
            files={"file": ("B1_F1.png", PNG_BYTES, "image/png")},
            headers=OTHER_USER_HEADERS,
        )
        assert upload.status_code == 404


def test_oversized_upload_is_rejected_before_storing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setitem(validation.FILE_SIZE_LIMITS, AssetType.DOC, 10)
    s3 = FakeS3Client()
    with TestClient(build_test_app(tmp_path, s3=s3)) as client:
        project_id = create_project(client)
        response = _upload(client, project_id, "notes.txt", b"a" * 50, "text/plain")

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "File validation failed"
        assert "exceeds limit" in body["details"][0]
        assert s3.objects == {}
