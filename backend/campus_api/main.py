"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the campus administration
backend. Controllers are intentionally thin: they apply the auth/role
dependencies, delegate to services, and shape the JSON responses.

Endpoints implemented:
- POST /auth/register
- POST /auth/login
- GET /auth/me
- GET /courses
- GET /courses/{id}
- POST /courses
- POST /courses/{id}/enroll
- PATCH /courses/{id}
- DELETE /courses/{id}
- GET /papers
- GET /papers/{id}
- POST /papers
- PUT /papers/{id}
- DELETE /papers/{id}

Course responses use the `{status, results?, data}` envelope; paper
responses are the bare record or list.
"""

from typing import Optional
from fastapi import FastAPI, Depends, UploadFile, File, Form, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session
import json
import logging
import time
import uuid
from .database import create_db_and_tables, get_session
from . import services, repositories, models
from .auth import get_current_user, restrict_to
from .config import settings
from .errors import AppError, ServerError, UnauthenticatedError, ValidationError
from .schemas import CourseCreate, CourseUpdate, LoginIn, RegisterIn, course_input
from .utils.file_store import FileStore, get_file_store

app = FastAPI(title="Campus Administration API")
logger = logging.getLogger("campus_api.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

SELF_REGISTER_ROLES = {models.Role.student.value, models.Role.instructor.value}

# Wide-open CORS keeps local frontends working without extra config in dev.
if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                    "client": request.client.host if request.client else "unknown",
                },
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info(
        "request_done %s",
        json.dumps(
            {
                "request_id": req_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
                "client": request.client.host if request.client else "unknown",
            },
            ensure_ascii=True,
        ),
    )
    return response


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("app_error %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path"))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse(status_code=400, content=ValidationError("Invalid input data. " + "; ".join(parts)).to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(
        "unhandled_error %s",
        json.dumps(
            {
                "request_id": getattr(request.state, "request_id", ""),
                "path": request.url.path,
                "method": request.method,
                "error": type(exc).__name__,
            },
            ensure_ascii=True,
        ),
    )
    return JSONResponse(status_code=500, content=ServerError().to_dict())


@app.post('/auth/register', status_code=201)
def register(payload: RegisterIn, db: Session = Depends(get_session)):
    """Register a new student or instructor (idempotent on email).

    Repeating the call for a known email only echoes its id and email.
    Staff and admin accounts are created by operators with
    `scripts/create_user.py`.
    """
    if payload.role.value not in SELF_REGISTER_ROLES:
        raise ValidationError(f"role '{payload.role.value}' cannot be self-assigned")
    existing = repositories.UserRepository(db).get_by_email(payload.email.strip().lower())
    if existing:
        return {'id': existing.id, 'email': existing.email}
    user = services.AuthService(db).register(payload.name, payload.email, payload.password, payload.role.value)
    return {'id': user.id, 'name': user.name, 'email': user.email, 'role': user.role}


@app.post('/auth/login')
def login(payload: LoginIn, db: Session = Depends(get_session)):
    """Authenticate a user and return a short-lived JWT token.

    The token carries `user_id` and `role` and is signed with the
    configured JWT secret.
    """
    token = services.AuthService(db).authenticate(payload.email, payload.password)
    if not token:
        raise UnauthenticatedError('Incorrect email or password')
    return {'access_token': token}


@app.get('/auth/me')
def me(user: models.User = Depends(get_current_user)):
    """Return the identity attached to the bearer token."""
    return {'id': user.id, 'name': user.name, 'email': user.email, 'role': user.role}


@app.get('/courses')
def list_courses(db: Session = Depends(get_session)):
    """List all active courses with instructor and prerequisite titles."""
    courses = services.CourseService(db).list_active()
    return {'status': 'success', 'results': len(courses), 'data': {'courses': courses}}


@app.get('/courses/{course_id}')
def get_course(course_id: int, db: Session = Depends(get_session)):
    """Return one course by id, including inactive ones."""
    course = services.CourseService(db).get_by_id(course_id)
    return {'status': 'success', 'data': {'course': course}}


@app.post('/courses', status_code=201)
def create_course(
    payload: CourseCreate,
    db: Session = Depends(get_session),
    user: models.User = Depends(restrict_to(models.Role.instructor, models.Role.admin)),
):
    """Create a course; the caller becomes its instructor."""
    course = services.CourseService(db).create(course_input(payload), user.id)
    return {'status': 'success', 'data': {'course': course}}


@app.post('/courses/{course_id}/enroll')
def enroll_in_course(
    course_id: int,
    db: Session = Depends(get_session),
    user: models.User = Depends(restrict_to(models.Role.student)),
):
    """Enroll the calling student; repeating the call changes nothing."""
    course = services.CourseService(db).enroll(course_id, user.id)
    return {'status': 'success', 'data': {'course': course}}


@app.patch('/courses/{course_id}')
def update_course(
    course_id: int,
    payload: CourseUpdate,
    db: Session = Depends(get_session),
    user: models.User = Depends(get_current_user),
):
    """Update a course owned by the caller (admins may update any)."""
    course = services.CourseService(db).update(
        course_id, course_input(payload), user.id, is_admin=user.role == models.Role.admin.value
    )
    return {'status': 'success', 'data': {'course': course}}


@app.delete('/courses/{course_id}', status_code=204)
def delete_course(
    course_id: int,
    db: Session = Depends(get_session),
    user: models.User = Depends(restrict_to(models.Role.instructor, models.Role.admin)),
):
    """Deactivate a course; it remains fetchable by id."""
    services.CourseService(db).soft_delete(course_id)
    return Response(status_code=204)


@app.get('/papers')
def list_papers(db: Session = Depends(get_session), store: FileStore = Depends(get_file_store)):
    """List papers that are not deleted. Public, unlike the single fetch."""
    return services.PaperService(db, store).list_active()


@app.get('/papers/{paper_id}')
def get_paper(
    paper_id: int,
    db: Session = Depends(get_session),
    store: FileStore = Depends(get_file_store),
    user: models.User = Depends(get_current_user),
):
    """Return one paper unless it is missing or deleted."""
    return services.PaperService(db, store).get_by_id(paper_id)


@app.post('/papers', status_code=201)
def create_paper(
    title: Optional[str] = Form(default=None),
    description: Optional[str] = Form(default=None),
    file: Optional[UploadFile] = File(default=None),
    db: Session = Depends(get_session),
    store: FileStore = Depends(get_file_store),
    user: models.User = Depends(restrict_to(models.Role.admin, models.Role.staff)),
):
    """Create a paper from a multipart form with an optional file."""
    path = store.save(file)
    return services.PaperService(db, store).create({'title': title, 'description': description}, path)


@app.put('/papers/{paper_id}')
def update_paper(
    paper_id: int,
    title: Optional[str] = Form(default=None),
    description: Optional[str] = Form(default=None),
    file: Optional[UploadFile] = File(default=None),
    db: Session = Depends(get_session),
    store: FileStore = Depends(get_file_store),
    user: models.User = Depends(restrict_to(models.Role.admin, models.Role.staff)),
):
    """Update a paper; a new file replaces and removes the old one."""
    path = store.save(file)
    return services.PaperService(db, store).update(paper_id, {'title': title, 'description': description}, path)


@app.delete('/papers/{paper_id}', status_code=204)
def delete_paper(
    paper_id: int,
    db: Session = Depends(get_session),
    store: FileStore = Depends(get_file_store),
    user: models.User = Depends(restrict_to(models.Role.admin, models.Role.staff)),
):
    """Soft delete a paper."""
    services.PaperService(db, store).soft_delete(paper_id)
    return Response(status_code=204)


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}
