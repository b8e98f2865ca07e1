from __future__ import annotations

from pathlib import Path
from typing import Any
from urllib.parse import urlencode

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from starlette.responses import Response

from unireg.accounts import register_account, sign_in
from unireg.cache import PageCache
from unireg.errors import ErrorKind, PortalError
from unireg.gateway import get_gateway
from unireg.resources import STUDENTS, ResourceHandlers, parse_page, resource_handlers
from unireg.sessions import SESSION_COOKIE, Session, current_session, get_session_store
from unireg.ui.forms import StudentForm
from unireg.ui.listing import StudentListView

BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = BASE_DIR / "templates"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

router = APIRouter(prefix="/ui", tags=["ui"])


def _flash_from_request(request: Request) -> dict[str, Any] | None:
    msg = request.query_params.get("msg")
    if not msg:
        return None
    kind = request.query_params.get("kind") or ""
    return {"message": msg, "kind": kind}


def _redirect(path: str, msg: str | None = None, kind: str = "ok") -> RedirectResponse:
    url = path
    if msg:
        sep = "&" if "?" in path else "?"
        url = f"{path}{sep}{urlencode({'msg': msg, 'kind': kind})}"
    return RedirectResponse(url=url, status_code=302)


def _login_redirect() -> RedirectResponse:
    return _redirect("/ui/login", "Please sign in", "bad")


def _page_cache(request: Request) -> PageCache | None:
    return getattr(request.app.state, "page_cache", None)


def _students(request: Request) -> ResourceHandlers:
    return resource_handlers(request, STUDENTS)


def _render_form(
    request: Request,
    form: StudentForm,
    session: Session,
    *,
    action: str,
    values: dict[str, str] | None = None,
    field_errors: dict[str, str] | None = None,
    error: str | None = None,
    status_code: int = 200,
) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "student_form.html",
        {
            "title": f"{form.title} • UniReg",
            "active": "dashboard",
            "user": session.user,
            "form": form,
            "action": action,
            "values": values if values is not None else form.initial_values(),
            "field_errors": field_errors or {},
            "error": error,
        },
        status_code=status_code,
    )


@router.get("/login", response_class=HTMLResponse)
async def ui_login(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "login.html",
        {"title": "Sign in • UniReg", "active": None, "flash": _flash_from_request(request)},
    )


@router.post("/login", response_model=None)
async def ui_login_post(
    request: Request,
    email: str = Form(default=""),
    password: str = Form(default=""),
) -> Response:
    email = (email or "").strip()

    if not email or not password:
        return templates.TemplateResponse(
            request,
            "login.html",
            {
                "title": "Sign in • UniReg",
                "active": None,
                "email": email,
                "error": "Email and password are required",
            },
            status_code=400,
        )

    try:
        user = await sign_in(get_gateway(request), email=email, password=password)
    except PortalError as exc:
        return templates.TemplateResponse(
            request,
            "login.html",
            {"title": "Sign in • UniReg", "active": None, "email": email, "error": exc.message},
            status_code=exc.status_code if exc.status_code < 500 else 502,
        )

    store = get_session_store(request)
    session = store.create(user)
    config = request.app.state.portal_config

    resp = _redirect("/ui/dashboard", "Signed in")
    resp.set_cookie(
        SESSION_COOKIE,
        session.session_id,
        httponly=True,
        samesite="lax",
        secure=config.session.cookie_secure,
        max_age=store.max_age_seconds,
    )
    return resp


@router.post("/logout")
async def ui_logout(request: Request) -> RedirectResponse:
    session = current_session(request)
    if session is not None:
        get_session_store(request).destroy(session.session_id)
        cache = _page_cache(request)
        if cache is not None:
            cache.forget_session(session.session_id)

    resp = _redirect("/ui/login", "Signed out")
    resp.delete_cookie(SESSION_COOKIE)
    return resp


@router.get("/register", response_class=HTMLResponse)
async def ui_register(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "register.html",
        {"title": "Create account • UniReg", "active": None, "values": {}},
    )


@router.post("/register", response_model=None)
async def ui_register_post(
    request: Request,
    username: str = Form(default=""),
    email: str = Form(default=""),
    password: str = Form(default=""),
    first_name: str = Form(default=""),
    last_name: str = Form(default=""),
) -> Response:
    values = {
        "username": username.strip(),
        "email": email.strip(),
        "password": password,
        "first_name": first_name.strip(),
        "last_name": last_name.strip(),
    }

    try:
        await register_account(get_gateway(request), values)
    except PortalError as exc:
        error = exc.message
        if exc.kind == ErrorKind.TRANSPORT_FAILURE:
            error = "Registration is unavailable right now"
        return templates.TemplateResponse(
            request,
            "register.html",
            {
                "title": "Create account • UniReg",
                "active": None,
                "values": {k: v for k, v in values.items() if k != "password"},
                "error": error,
            },
            status_code=exc.status_code,
        )

    return _redirect("/ui/login", "Registration successful, please sign in")


@router.get("/dashboard", response_class=HTMLResponse, response_model=None)
async def ui_dashboard(request: Request) -> Response:
    session = current_session(request)
    if session is None:
        return _login_redirect()

    view = StudentListView(page=parse_page(request.query_params.get("page")))
    await view.load(_students(request), session, cache=_page_cache(request))

    return templates.TemplateResponse(
        request,
        "dashboard.html",
        {
            "title": "Dashboard • UniReg",
            "active": "dashboard",
            "flash": _flash_from_request(request),
            "user": session.user,
            "view": view,
        },
    )


@router.get("/students/new", response_class=HTMLResponse, response_model=None)
async def ui_student_new(request: Request) -> Response:
    session = current_session(request)
    if session is None:
        return _login_redirect()
    return _render_form(request, StudentForm(), session, action="/ui/students/new")


@router.post("/students/new", response_model=None)
async def ui_student_new_post(
    request: Request,
    name: str = Form(default=""),
    email: str = Form(default=""),
    phone: str = Form(default=""),
    course: str = Form(default=""),
) -> Response:
    session = current_session(request)
    if session is None:
        return _login_redirect()

    form = StudentForm()
    result = await form.submit(
        {"name": name, "email": email, "phone": phone, "course": course},
        session=session,
        handlers=_students(request),
    )
    if not result.ok:
        return _render_form(
            request,
            form,
            session,
            action="/ui/students/new",
            values=result.values,
            field_errors=result.field_errors,
            error=result.error,
            status_code=400 if result.field_errors else 200,
        )
    return _redirect("/ui/dashboard", "Student added")


@router.get("/students/{student_id}/edit", response_class=HTMLResponse, response_model=None)
async def ui_student_edit(request: Request, student_id: str) -> Response:
    session = current_session(request)
    if session is None:
        return _login_redirect()

    try:
        student = await _students(request).get_one(session, student_id)
    except PortalError as exc:
        return _redirect("/ui/dashboard", exc.message, "bad")

    if not isinstance(student, dict):
        return _redirect("/ui/dashboard", STUDENTS.failure_message("fetch"), "bad")

    # Upstreams that wrap single entities answer {"status": ..., "data": {...}}.
    if isinstance(student.get("data"), dict):
        student = student["data"]
    student.setdefault("id", student_id)

    return _render_form(
        request,
        StudentForm(student),
        session,
        action=f"/ui/students/{student_id}/edit",
    )


@router.post("/students/{student_id}/edit", response_model=None)
async def ui_student_edit_post(
    request: Request,
    student_id: str,
    name: str = Form(default=""),
    email: str = Form(default=""),
    phone: str = Form(default=""),
    course: str = Form(default=""),
) -> Response:
    session = current_session(request)
    if session is None:
        return _login_redirect()

    form = StudentForm({"id": student_id})
    result = await form.submit(
        {"name": name, "email": email, "phone": phone, "course": course},
        session=session,
        handlers=_students(request),
    )
    if not result.ok:
        return _render_form(
            request,
            form,
            session,
            action=f"/ui/students/{student_id}/edit",
            values=result.values,
            field_errors=result.field_errors,
            error=result.error,
            status_code=400 if result.field_errors else 200,
        )
    return _redirect("/ui/dashboard", "Student updated")


@router.get("/students/{student_id}/delete", response_class=HTMLResponse, response_model=None)
async def ui_student_delete_confirm(request: Request, student_id: str) -> Response:
    session = current_session(request)
    if session is None:
        return _login_redirect()

    return templates.TemplateResponse(
        request,
        "student_delete.html",
        {
            "title": "Delete student • UniReg",
            "active": "dashboard",
            "user": session.user,
            "student_id": student_id,
            "return_page": parse_page(request.query_params.get("page")),
        },
    )


@router.post("/students/{student_id}/delete", response_model=None)
async def ui_student_delete(
    request: Request,
    student_id: str,
    confirm: str = Form(default=""),
) -> Response:
    session = current_session(request)
    if session is None:
        return _login_redirect()

    if confirm != "yes":
        return _redirect("/ui/dashboard", "Delete cancelled", "bad")

    try:
        await _students(request).delete_one(session, student_id)
    except PortalError as exc:
        message = exc.message if exc.kind == ErrorKind.NOT_FOUND else "Failed to delete student"
        return _redirect("/ui/dashboard", message, "bad")

    return _redirect("/ui/dashboard", "Student deleted")
