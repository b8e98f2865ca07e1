from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient

from unireg.app import create_app
from unireg.sessions import SESSION_COOKIE

UPSTREAM_URL = "http://upstream.test"
ACCESS_TOKEN = "tok-123"
PASSWORD = "secret-password"


class FakeUpstream:
    """A small stand-in for the student/account REST API.

    Every request is recorded in ``calls``. ``overrides`` maps (method, path) to a
    canned httpx.Response or an exception to raise instead of the default routing.
    """

    def __init__(self) -> None:
        self.calls: list[httpx.Request] = []
        self.students: dict[int, dict[str, Any]] = {}
        self.next_id = 1
        self.overrides: dict[tuple[str, str], httpx.Response | Exception] = {}

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)

    def add_student(self, **fields: Any) -> dict[str, Any]:
        student = {"id": self.next_id, **fields}
        self.students[self.next_id] = student
        self.next_id += 1
        return student

    def calls_to(self, method: str, path: str) -> list[httpx.Request]:
        return [c for c in self.calls if c.method == method and c.url.path == path]

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)

        override = self.overrides.get((request.method, request.url.path))
        if isinstance(override, Exception):
            raise override
        if override is not None:
            return override

        path = request.url.path
        body = json.loads(request.content) if request.content else None

        if path == "/auth/login" and request.method == "POST":
            if body.get("password") != PASSWORD:
                return httpx.Response(
                    401, json={"status": "error", "message": "Invalid email or password"}
                )
            return httpx.Response(
                200,
                json={
                    "user": {
                        "id": 7,
                        "username": "registrar",
                        "email": body["email"],
                        "first_name": "Rita",
                        "last_name": "Registrar",
                        "role_id": 1,
                        "is_active": True,
                    },
                    "accessToken": ACCESS_TOKEN,
                    "role": "admin",
                },
            )

        if path == "/auth/register" and request.method == "POST":
            user = {k: v for k, v in body.items() if k != "password"}
            return httpx.Response(201, json={"user": {"id": 99, **user}})

        if not path.startswith("/v1/students"):
            return httpx.Response(404, json={"message": "no route"})

        if request.headers.get("Authorization") != f"Bearer {ACCESS_TOKEN}":
            return httpx.Response(401, json={"error": "Invalid token"})

        if path == "/v1/students":
            if request.method == "GET":
                limit = int(request.url.params.get("limit", "10"))
                offset = int(request.url.params.get("offset", "0"))
                rows = list(self.students.values())[offset : offset + limit]
                return httpx.Response(200, json={"status": "success", "data": rows})
            if request.method == "POST":
                return httpx.Response(201, json=self.add_student(**body))

        student_id = int(path.rsplit("/", 1)[-1])
        student = self.students.get(student_id)
        if student is None:
            return httpx.Response(404, json={"status": "error", "message": "missing"})

        if request.method == "GET":
            return httpx.Response(200, json=student)
        if request.method == "PUT":
            student.update(body)
            return httpx.Response(200, json=student)
        if request.method == "DELETE":
            del self.students[student_id]
            return httpx.Response(204)

        return httpx.Response(405, json={"message": "method not allowed"})


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def client(tmp_path: Path, monkeypatch, upstream: FakeUpstream) -> Iterator[TestClient]:
    monkeypatch.setenv("UNIREG_HOME", str(tmp_path))
    monkeypatch.setenv("UNIREG_API_URL", UPSTREAM_URL)

    with TestClient(create_app(upstream_transport=upstream.transport())) as c:
        yield c


def log_in(client: TestClient, email: str = "rita@uni.edu") -> str:
    r = client.post(
        "/ui/login",
        data={"email": email, "password": PASSWORD},
        follow_redirects=False,
    )
    assert r.status_code == 302
    session_id = client.cookies.get(SESSION_COOKIE)
    assert session_id
    return session_id


@pytest.fixture
def signed_in(client: TestClient) -> TestClient:
    log_in(client)
    return client
