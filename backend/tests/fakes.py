from __future__ import annotations

import io
import os
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional

os.environ.setdefault("DATABASE_URL", "sqlite:////tmp/explainer_test.db")
os.environ.setdefault("NARRATION_DELAY_SEC", "0")

from botocore.exceptions import ClientError
from fastapi import FastAPI

from explainer.config import get_settings
from explainer.errors import NarrationError
from explainer.main import create_app
from explainer.narration import NarrationOptions
from explainer.planning import generate_mock_plan
from explainer.schemas import PlanResponse
from explainer.storage import ArtifactStore

USER_HEADERS = {"X-User-Id": "user_alpha", "X-User-Email": "alpha@example.com"}
OTHER_USER_HEADERS = {"X-User-Id": "user_beta", "X-User-Email": "beta@example.com"}


class FakeS3Client:
    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.bucket_available = True

    def put_object(self, Bucket: str, Key: str, Body: bytes, ContentType: str) -> dict[str, Any]:
        self.objects[Key] = (bytes(Body), ContentType)
        return {"ETag": '"fake"'}

    def get_object(self, Bucket: str, Key: str) -> dict[str, Any]:
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "Not Found"}}, "GetObject")
        return {"Body": io.BytesIO(self.objects[Key][0])}

    def delete_object(self, Bucket: str, Key: str) -> dict[str, Any]:
        self.objects.pop(Key, None)
        return {}

    def head_object(self, Bucket: str, Key: str) -> dict[str, Any]:
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        data, content_type = self.objects[Key]
        return {"ContentLength": len(data), "ContentType": content_type}

    def head_bucket(self, Bucket: str) -> dict[str, Any]:
        if not self.bucket_available:
            raise ClientError({"Error": {"Code": "403", "Message": "Forbidden"}}, "HeadBucket")
        return {}

    def generate_presigned_url(self, operation: str, Params: dict[str, Any], ExpiresIn: int) -> str:
        return f"https://signed.example/{Params['Key']}?op={operation}&ttl={ExpiresIn}"


class FakePlanner:
    configured = True

    def __init__(self, error: Optional[Exception] = None, plan: Optional[PlanResponse] = None) -> None:
        self.error = error
        self.plan = plan
        self.topics: list[str] = []

    def generate(self, topic: str) -> PlanResponse:
        self.topics.append(topic)
        if self.error is not None:
            raise self.error
        return self.plan or generate_mock_plan(topic)

    def check_connection(self) -> bool:
        return self.error is None

    def close(self) -> None:
        return None


class FakeNarrator:
    configured = True

    def __init__(self, fail_on_text: Optional[str] = None) -> None:
        self.fail_on_text = fail_on_text
        self.calls: list[tuple[str, NarrationOptions]] = []

    def synthesize(self, text: str, options: Optional[NarrationOptions] = None) -> bytes:
        self.calls.append((text, options or NarrationOptions()))
        if self.fail_on_text is not None and text == self.fail_on_text:
            raise NarrationError("Failed to generate audio: HTTP 500 upstream")
        return b"ID3" + text.encode("utf-8")

    def close(self) -> None:
        return None


def make_store(client: Optional[FakeS3Client] = None) -> tuple[ArtifactStore, FakeS3Client]:
    client = client or FakeS3Client()
    store = ArtifactStore(
        lambda: client,
        "explainer-test",
        endpoint="https://r2.example",
        public_base_url="https://cdn.example",
    )
    return store, client


def build_test_app(
    tmp_path: Path,
    *,
    planner: Any = None,
    narrator: Any = None,
    s3: Optional[FakeS3Client] = None,
    **overrides: Any,
) -> FastAPI:
    values: dict[str, Any] = {
        "database_url": f"sqlite:///{tmp_path / 'explainer.db'}",
        "narration_delay_sec": 0.0,
        "auth_proxy_secret": "",
    }
    values.update(overrides)
    settings = replace(get_settings(), **values)
    store, _ = make_store(s3)
    return create_app(
        settings,
        store=store,
        planner=planner or FakePlanner(),
        narrator=narrator or FakeNarrator(),
    )


def create_project(client: Any, topic: str = "How to make coffee", headers: Optional[dict[str, str]] = None) -> str:
    response = client.post("/api/projects", json={"topic": topic}, headers=headers or USER_HEADERS)
    assert response.status_code == 200, response.text
    return response.json()["data"]["id"]


def plan_project(client: Any, project_id: str, topic: str = "How to make coffee") -> dict[str, Any]:
    response = client.post(
        "/api/plan",
        json={"projectId": project_id, "topic": topic},
        headers=USER_HEADERS,
    )
    assert response.status_code == 200, response.text
    return response.json()["data"]

