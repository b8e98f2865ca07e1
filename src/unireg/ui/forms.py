from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Final

from unireg.errors import PortalError
from unireg.resources import ResourceHandlers
from unireg.sessions import Session

logger = logging.getLogger(__name__)

EMAIL_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}$", re.IGNORECASE
)

STUDENT_FIELDS: Final[tuple[str, ...]] = ("name", "email", "phone", "course")

REQUIRED_MESSAGES: Final[dict[str, str]] = {
    "name": "Name is required",
    "email": "Email is required",
    "phone": "Phone number is required",
    "course": "Course is required",
}

INVALID_EMAIL_MESSAGE: Final[str] = "Please enter a valid email address"
AUTH_REQUIRED_MESSAGE: Final[str] = "Authentication required"
IN_FLIGHT_MESSAGE: Final[str] = "This student is already being saved"
SAVE_FAILED_MESSAGE: Final[str] = "Failed to save student"
SAVE_ERROR_MESSAGE: Final[str] = "An error occurred while saving the student"


@dataclass
class FormResult:
    ok: bool
    values: dict[str, str]
    field_errors: dict[str, str] = field(default_factory=dict)
    error: str | None = None
    student: Any | None = None
    sent: bool = False


def clean_values(data: dict[str, Any]) -> dict[str, str]:
    out: dict[str, str] = {}
    for key in STUDENT_FIELDS:
        raw = data.get(key)
        out[key] = raw.strip() if isinstance(raw, str) else ""
    return out


class StudentForm:
    """Add/edit form for one student.

    Field rules run before anything is sent; a form instance sends at most one
    request at a time.
    """

    def __init__(self, student: dict[str, Any] | None = None) -> None:
        self.student = student
        self.submitting = False

    @property
    def is_edit(self) -> bool:
        return self.student is not None

    @property
    def title(self) -> str:
        return "Edit Student" if self.is_edit else "Add New Student"

    @property
    def submit_label(self) -> str:
        return "Update Student" if self.is_edit else "Add Student"

    def initial_values(self) -> dict[str, str]:
        if self.student is None:
            return {key: "" for key in STUDENT_FIELDS}
        return {key: str(self.student.get(key) or "") for key in STUDENT_FIELDS}

    @staticmethod
    def validate(values: dict[str, str]) -> dict[str, str]:
        errors: dict[str, str] = {}
        for key in STUDENT_FIELDS:
            if not values.get(key):
                errors[key] = REQUIRED_MESSAGES[key]

        email = values.get("email")
        if email and not EMAIL_PATTERN.match(email):
            errors["email"] = INVALID_EMAIL_MESSAGE
        return errors

    async def submit(
        self,
        data: dict[str, Any],
        *,
        session: Session | None,
        handlers: ResourceHandlers,
    ) -> FormResult:
        values = clean_values(data)

        field_errors = self.validate(values)
        if field_errors:
            return FormResult(ok=False, values=values, field_errors=field_errors)

        if session is None or not session.user.access_token:
            return FormResult(ok=False, values=values, error=AUTH_REQUIRED_MESSAGE)

        # Only callers that reuse one instance hit this; each HTTP post builds a
        # fresh form, and the page's onsubmit handler blocks browser double posts.
        if self.submitting:
            return FormResult(ok=False, values=values, error=IN_FLIGHT_MESSAGE)

        self.submitting = True
        try:
            if self.student is None:
                saved = await handlers.create_one(session, values)
            else:
                saved = await handlers.update_one(session, str(self.student["id"]), values)
        except PortalError as exc:
            body = exc.upstream_body
            message = body.get("message") if isinstance(body, dict) else None
            return FormResult(
                ok=False,
                values=values,
                error=message if isinstance(message, str) and message else SAVE_FAILED_MESSAGE,
                sent=True,
            )
        except Exception:
            logger.exception("Saving student failed")
            return FormResult(ok=False, values=values, error=SAVE_ERROR_MESSAGE, sent=True)
        finally:
            self.submitting = False

        return FormResult(ok=True, values=values, student=saved, sent=True)
