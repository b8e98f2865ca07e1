from __future__ import annotations

import asyncio

import httpx
import pytest

from conftest import ACCESS_TOKEN, FakeUpstream
from unireg.cache import InvalidationBus
from unireg.config import UpstreamConfig
from unireg.gateway import UpstreamGateway
from unireg.resources import STUDENTS, ResourceHandlers
from unireg.sessions import Session, SessionUser
from unireg.ui.forms import (
    AUTH_REQUIRED_MESSAGE,
    IN_FLIGHT_MESSAGE,
    SAVE_ERROR_MESSAGE,
    SAVE_FAILED_MESSAGE,
    StudentForm,
)

VALID = {
    "name": "Ada Lovelace",
    "email": "ada@uni.edu",
    "phone": "555-0100",
    "course": "Mathematics",
}


def _handlers(upstream: FakeUpstream, bus: InvalidationBus | None = None) -> ResourceHandlers:
    gateway = UpstreamGateway.from_config(
        UpstreamConfig(base_url="http://upstream.test"), transport=upstream.transport()
    )
    return ResourceHandlers(STUDENTS, gateway, bus=bus)


def _session(token: str | None = ACCESS_TOKEN) -> Session:
    return Session(
        session_id="s1",
        user=SessionUser(id="7", access_token=token),
        expires_at=10**12,
    )


def _submit(form: StudentForm, data: dict[str, str], upstream: FakeUpstream):
    return asyncio.run(form.submit(data, session=_session(), handlers=_handlers(upstream)))


def test_validate_reports_every_missing_field() -> None:
    errors = StudentForm.validate({"name": "", "email": "", "phone": "", "course": ""})
    assert errors == {
        "name": "Name is required",
        "email": "Email is required",
        "phone": "Phone number is required",
        "course": "Course is required",
    }


@pytest.mark.parametrize("email", ["ADA@UNI.EDU", "first.last+tag@sub.example.org"])
def test_validate_accepts_emails_case_insensitively(email: str) -> None:
    assert StudentForm.validate({**VALID, "email": email}) == {}


@pytest.mark.parametrize("email", ["not-an-email", "a@b", "a@b.c", "@uni.edu"])
def test_validate_rejects_bad_emails(email: str) -> None:
    errors = StudentForm.validate({**VALID, "email": email})
    assert errors == {"email": "Please enter a valid email address"}


def test_invalid_email_blocks_submission(upstream: FakeUpstream) -> None:
    form = StudentForm()
    result = _submit(form, {**VALID, "email": "not-an-email"}, upstream)

    assert not result.ok
    assert result.sent is False
    assert result.field_errors == {"email": "Please enter a valid email address"}
    assert upstream.calls == []


def test_missing_token_blocks_submission(upstream: FakeUpstream) -> None:
    form = StudentForm()

    no_session = asyncio.run(form.submit(VALID, session=None, handlers=_handlers(upstream)))
    no_token = asyncio.run(form.submit(VALID, session=_session(None), handlers=_handlers(upstream)))

    assert no_session.error == AUTH_REQUIRED_MESSAGE
    assert no_token.error == AUTH_REQUIRED_MESSAGE
    assert upstream.calls == []


def test_create_uses_post_and_publishes_invalidation(upstream: FakeUpstream) -> None:
    bus = InvalidationBus()
    seen: list[str] = []
    bus.subscribe(seen.append)

    result = asyncio.run(
        StudentForm().submit(VALID, session=_session(), handlers=_handlers(upstream, bus))
    )

    assert result.ok
    assert result.student == {"id": 1, **VALID}
    assert [c.method for c in upstream.calls] == ["POST"]
    assert seen == ["students"]


def test_edit_uses_put(upstream: FakeUpstream) -> None:
    upstream.add_student(**VALID)
    form = StudentForm({"id": 1, **VALID})
    assert form.is_edit
    assert form.initial_values() == VALID

    result = _submit(form, {**VALID, "course": "Physics"}, upstream)

    assert result.ok
    assert upstream.calls[0].method == "PUT"
    assert upstream.calls[0].url.path == "/v1/students/1"
    assert upstream.students[1]["course"] == "Physics"


def test_server_message_is_surfaced(upstream: FakeUpstream) -> None:
    upstream.overrides[("POST", "/v1/students")] = httpx.Response(
        409, json={"status": "error", "message": "Email already exists"}
    )

    result = _submit(StudentForm(), VALID, upstream)
    assert not result.ok
    assert result.sent
    assert result.error == "Email already exists"


def test_generic_message_when_server_has_none(upstream: FakeUpstream) -> None:
    upstream.overrides[("POST", "/v1/students")] = httpx.Response(409, json={"error": "dup"})

    result = _submit(StudentForm(), VALID, upstream)
    assert result.error == SAVE_FAILED_MESSAGE


def test_unexpected_exception_is_reported(upstream: FakeUpstream) -> None:
    class _Broken:
        async def create_one(self, session, body):
            raise RuntimeError("boom")

    result = asyncio.run(StudentForm().submit(VALID, session=_session(), handlers=_Broken()))
    assert result.error == SAVE_ERROR_MESSAGE
    assert result.sent


def test_second_submit_while_in_flight_is_rejected(upstream: FakeUpstream) -> None:
    form = StudentForm()
    form.submitting = True

    result = _submit(form, VALID, upstream)
    assert result.error == IN_FLIGHT_MESSAGE
    assert upstream.calls == []


def test_submitting_flag_is_cleared_after_failure(upstream: FakeUpstream) -> None:
    upstream.overrides[("POST", "/v1/students")] = httpx.ConnectError("refused")
    form = StudentForm()

    _submit(form, VALID, upstream)
    assert form.submitting is False
