"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the exam-preparation portal.
Controllers are intentionally thin: they accept requests, delegate to
services, and wrap the outcome in the `{success, message?, data?}`
envelope.

Endpoints implemented:
- GET /health
- GET /exam-types
- GET /exam-types/{exam_type_id}/departments
- GET /departments/{department_id}/academic-periods
- GET /academic-periods/{academic_period_id}/materials
- GET /materials/{material_id}/content
- GET /materials/{material_id}/breadcrumbs
- GET /files/{filename}
- POST /auth/login
- POST /auth/register
- POST /auth/refresh
- POST /auth/logout
- GET /auth/profile
- GET /auth/verify
- GET /auth/sessions
- DELETE /auth/sessions/{session_id}
- DELETE /auth/sessions
- POST/PUT/DELETE /admin/exam-types[/{id}], /admin/departments[/{id}],
  /admin/academic-periods[/{id}], /admin/materials[/{id}] (admins)
- POST /admin/materials/{material_id}/documents, DELETE /admin/documents/{id}
- GET/POST /admin/materials/{material_id}/questions, PUT/DELETE /admin/questions/{id}
- GET/POST /super-admin/admins, GET/DELETE /super-admin/admins/{id},
  PUT /super-admin/admins/{id}/toggle-status, GET /super-admin/stats,
  GET /super-admin/users, PUT /super-admin/users/{id}/status
- POST /progress, GET /progress/stats, GET /progress/by-exam-type,
  GET /progress/leaderboard, GET /progress/materials/{material_id},
  POST /progress/materials/{material_id}/complete (students)
"""

import json
import logging
import os
import time
import uuid
from datetime import datetime, timezone
from typing import List, Optional
from fastapi import Body, Depends, FastAPI, File, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, Response
from sqlmodel import Session
from starlette.exceptions import HTTPException as StarletteHTTPException
from . import services
from .auth import (
    REFRESH_COOKIE,
    clear_auth_cookies,
    get_access_claims,
    get_current_identity,
    require_active_identity,
    require_admin,
    require_super_admin,
    require_user,
    set_access_cookie,
    set_refresh_cookie,
)
from .breadcrumbs import generate_breadcrumb_items
from .config import settings
from .database import create_db_and_tables, get_session
from .errors import AuthError, ErrorKind, PortalError
from .responses import Err, Ok, envelope
from .schemas import (
    AdminCreateIn,
    ExamTypeIn,
    LoginIn,
    MaterialIn,
    NameIn,
    ProgressIn,
    QuestionIn,
    RefreshIn,
    RegisterIn,
    StatusIn,
)

app = FastAPI(title="Exam Preparation Portal API")
logger = logging.getLogger("app.api")
if not logger.handlers:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
_started_at = time.monotonic()

# Cookies carry the tokens, so origins must be explicit when credentials are allowed.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
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


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    if isinstance(exc, AuthError):
        logger.info("auth_failed reason=%s path=%s", exc.reason.value, request.url.path)
    return envelope(Err.from_exception(exc))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = []
    for issue in exc.errors():
        loc = [str(p) for p in issue.get("loc", ()) if p not in ("body", "query", "path")]
        message = issue.get("msg", "Invalid value")
        # pydantic prefixes messages raised from validators with "Value error, "
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.append({"field": ".".join(loc), "message": message})
    return envelope(Err(ErrorKind.VALIDATION, "Validation failed", errors))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return envelope(Err(ErrorKind.NOT_FOUND, "Route not found"))
    kind = ErrorKind.VALIDATION if exc.status_code < 500 else ErrorKind.INTERNAL
    response = envelope(Err(kind, str(exc.detail)))
    response.status_code = exc.status_code
    return response


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    """Opaque 500; `request_context_middleware` has already logged the traceback."""
    request_id = getattr(request.state, "request_id", None)
    headers = {"X-Request-ID": request_id} if request_id else None
    return envelope(Err(ErrorKind.INTERNAL, "Internal server error"), headers=headers)


def _include_tokens(request: Request) -> bool:
    return settings.is_dev or request.query_params.get("includeTokens") == "true"


@app.get('/health')
def health():
    """Liveness check."""
    return {
        'status': 'OK',
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'uptime': round(time.monotonic() - _started_at, 3),
    }


@app.get('/exam-types')
def list_exam_types(db: Session = Depends(get_session)):
    """List all exam types with departments, periods and materials nested."""
    return envelope(Ok(services.ContentService(db).list_exam_types()))


@app.get('/exam-types/{exam_type_id}/departments')
def list_departments(exam_type_id: str, db: Session = Depends(get_session)):
    """List the departments of one exam type (empty list when none)."""
    return envelope(Ok(services.ContentService(db).list_departments(exam_type_id)))


@app.get('/departments/{department_id}/academic-periods')
def list_academic_periods(department_id: str, db: Session = Depends(get_session)):
    return envelope(Ok(services.ContentService(db).list_academic_periods(department_id)))


@app.get('/academic-periods/{academic_period_id}/materials')
def list_materials(academic_period_id: str, db: Session = Depends(get_session)):
    """List materials with their documents and questions+options."""
    return envelope(Ok(services.ContentService(db).list_materials(academic_period_id)))


@app.get('/materials/{material_id}/content')
def get_material_content(material_id: str, db: Session = Depends(get_session)):
    """Return one material with documents and questions, 404 if absent."""
    return envelope(Ok(services.ContentService(db).get_material(material_id)))


@app.get('/materials/{material_id}/breadcrumbs')
def get_material_breadcrumbs(material_id: str, db: Session = Depends(get_session)):
    """Return the Home -> ... -> Material trail for a material page."""
    context = services.ContentService(db).get_material_chain(material_id)
    return envelope(Ok(generate_breadcrumb_items(context)))


@app.get('/files/{filename:path}')
def serve_document_file(filename: str):
    """Stream a stored document by basename from the upload directory.

    Names with NUL bytes or `..` segments, or that resolve outside the
    upload directory, are rejected with 400; unknown names return 404.
    """
    storage = services.DocumentStorage()
    path = storage.resolve(filename)
    return FileResponse(
        path,
        media_type=storage.media_type_for(path),
        headers={'Cache-Control': services.FILE_CACHE_CONTROL},
    )


def _session_payload(request: Request, identity, pair: services.TokenPair, include_refresh: bool = True) -> dict:
    tokens = {
        'accessExpiresIn': pair.access_expires_in,
        'refreshExpiresIn': pair.refresh_expires_in,
    }
    if _include_tokens(request):
        tokens['accessToken'] = pair.access_token
        if include_refresh:
            tokens['refreshToken'] = pair.refresh_token
    return {'user': services.identity_to_dict(identity), 'tokens': tokens}


@app.post('/auth/login')
def login(payload: LoginIn, request: Request, db: Session = Depends(get_session)):
    """Authenticate an admin or user and set the token cookies.

    The email is looked up among admins first, then users. Raw tokens are
    only echoed in the body in development or with `?includeTokens=true`.
    """
    identity, pair = services.AuthService(db).login(payload.email, payload.password)
    kind = services.identity_kind(identity)
    message = 'Admin login successful' if kind == 'admin' else 'User login successful'
    response = envelope(Ok(_session_payload(request, identity, pair), message=message))
    set_access_cookie(response, pair.access_token)
    set_refresh_cookie(response, pair.refresh_token)
    return response


@app.post('/auth/register')
def register(payload: RegisterIn, request: Request, db: Session = Depends(get_session)):
    """Create a student account and sign it in."""
    user, pair = services.AuthService(db).register_user(payload.name, payload.email, payload.password)
    response = envelope(Ok(_session_payload(request, user, pair), message='User registration successful', status_code=201))
    set_access_cookie(response, pair.access_token)
    set_refresh_cookie(response, pair.refresh_token)
    return response


@app.post('/auth/refresh')
def refresh(request: Request, body: Optional[RefreshIn] = Body(default=None), db: Session = Depends(get_session)):
    """Issue a new access token from the refresh cookie (or body)."""
    token = request.cookies.get(REFRESH_COOKIE) or (body.refresh_token if body else None)
    if not token:
        return envelope(Err(ErrorKind.AUTH, 'Refresh token required'))
    access_token = services.AuthService(db).refresh_access_token(token)
    tokens = {'accessExpiresIn': settings.JWT_ACCESS_EXPIRES_IN}
    if _include_tokens(request):
        tokens['accessToken'] = access_token
    response = envelope(Ok({'tokens': tokens}, message='Token refreshed successfully'))
    set_access_cookie(response, access_token)
    return response


@app.post('/auth/logout')
def logout(
    request: Request,
    body: Optional[RefreshIn] = Body(default=None),
    claims: dict = Depends(get_access_claims),
    db: Session = Depends(get_session),
):
    """Revoke the current refresh token (or all of them) and clear cookies."""
    token = request.cookies.get(REFRESH_COOKIE) or (body.refresh_token if body else None)
    revoked = services.AuthService(db).logout(claims['identity_id'], token)
    logger.info("logout id=%s revoked=%d", claims['identity_id'], revoked)
    response = envelope(Ok(message='Logout successful'))
    clear_auth_cookies(response)
    return response


@app.get('/auth/profile')
def profile(identity=Depends(require_active_identity)):
    return envelope(Ok({'user': services.identity_to_dict(identity)}, message='Profile retrieved successfully'))


@app.get('/auth/verify')
def verify(identity=Depends(get_current_identity)):
    """Report whether the presented access token is valid."""
    return envelope(Ok({'valid': True, 'user': services.identity_to_dict(identity)}, message='Token is valid'))


@app.get('/auth/sessions')
def list_sessions(identity=Depends(require_active_identity), db: Session = Depends(get_session)):
    """List the caller's active refresh-token sessions."""
    sessions = services.AuthService(db).list_sessions(identity.id)
    return envelope(Ok({'sessions': sessions}))


@app.delete('/auth/sessions/{session_id}')
def revoke_session(session_id: str, identity=Depends(require_active_identity), db: Session = Depends(get_session)):
    services.AuthService(db).revoke_session(identity.id, session_id)
    return envelope(Ok(message='Session revoked'))


@app.delete('/auth/sessions')
def revoke_all_sessions(identity=Depends(require_active_identity), db: Session = Depends(get_session)):
    count = services.AuthService(db).revoke_all_sessions(identity.id)
    return envelope(Ok({'revoked': count}, message='All sessions revoked'))


# Content management (admins)

@app.post('/admin/exam-types')
def create_exam_type(payload: ExamTypeIn, admin=Depends(require_admin), db: Session = Depends(get_session)):
    data = services.ContentAdminService(db).create_exam_type(payload.name, payload.description)
    return envelope(Ok(data, message='Exam type created successfully', status_code=201))


@app.put('/admin/exam-types/{exam_type_id}')
def update_exam_type(exam_type_id: str, payload: ExamTypeIn, admin=Depends(require_admin), db: Session = Depends(get_session)):
    data = services.ContentAdminService(db).update_exam_type(exam_type_id, payload.name, payload.description)
    return envelope(Ok(data, message='Exam type updated successfully'))


@app.delete('/admin/exam-types/{exam_type_id}')
def delete_exam_type(exam_type_id: str, admin=Depends(require_admin), db: Session = Depends(get_session)):
    """Delete an exam type with all departments, periods and materials beneath it."""
    services.ContentAdminService(db).delete_exam_type(exam_type_id)
    return envelope(Ok(message='Exam type deleted successfully'))


@app.post('/admin/exam-types/{exam_type_id}/departments')
def create_department(exam_type_id: str, payload: NameIn, admin=Depends(require_admin), db: Session = Depends(get_session)):
    data = services.ContentAdminService(db).create_department(exam_type_id, payload.name)
    return envelope(Ok(data, message='Department created successfully', status_code=201))


@app.put('/admin/departments/{department_id}')
def update_department(department_id: str, payload: NameIn, admin=Depends(require_admin), db: Session = Depends(get_session)):
    data = services.ContentAdminService(db).update_department(department_id, payload.name)
    return envelope(Ok(data, message='Department updated successfully'))


@app.delete('/admin/departments/{department_id}')
def delete_department(department_id: str, admin=Depends(require_admin), db: Session = Depends(get_session)):
    services.ContentAdminService(db).delete_department(department_id)
    return envelope(Ok(message='Department deleted successfully'))


@app.post('/admin/departments/{department_id}/academic-periods')
def create_academic_period(department_id: str, payload: NameIn, admin=Depends(require_admin), db: Session = Depends(get_session)):
    data = services.ContentAdminService(db).create_academic_period(department_id, payload.name)
    return envelope(Ok(data, message='Academic period created successfully', status_code=201))


@app.put('/admin/academic-periods/{academic_period_id}')
def update_academic_period(academic_period_id: str, payload: NameIn, admin=Depends(require_admin), db: Session = Depends(get_session)):
    data = services.ContentAdminService(db).update_academic_period(academic_period_id, payload.name)
    return envelope(Ok(data, message='Academic period updated successfully'))


@app.delete('/admin/academic-periods/{academic_period_id}')
def delete_academic_period(academic_period_id: str, admin=Depends(require_admin), db: Session = Depends(get_session)):
    services.ContentAdminService(db).delete_academic_period(academic_period_id)
    return envelope(Ok(message='Academic period deleted successfully'))


@app.post('/admin/academic-periods/{academic_period_id}/materials')
def create_material(academic_period_id: str, payload: MaterialIn, admin=Depends(require_admin), db: Session = Depends(get_session)):
    data = services.ContentAdminService(db).create_material(academic_period_id, payload.title, payload.type)
    return envelope(Ok(data, message='Material created successfully', status_code=201))


@app.put('/admin/materials/{material_id}')
def update_material(material_id: str, payload: MaterialIn, admin=Depends(require_admin), db: Session = Depends(get_session)):
    data = services.ContentAdminService(db).update_material(material_id, payload.title, payload.type)
    return envelope(Ok(data, message='Material updated successfully'))


@app.delete('/admin/materials/{material_id}')
def delete_material(material_id: str, admin=Depends(require_admin), db: Session = Depends(get_session)):
    """Delete a material, its questions and documents, and the stored files."""
    services.ContentAdminService(db).delete_material(material_id)
    return envelope(Ok(message='Material deleted successfully'))


@app.post('/admin/materials/{material_id}/documents')
def upload_documents(
    material_id: str,
    files: List[UploadFile] = File(...),
    admin=Depends(require_admin),
    db: Session = Depends(get_session),
):
    """Upload one or more documents (multipart field `files`) to a material.

    Each file is read up to one byte past the size limit so oversize
    uploads are detected without buffering them whole.
    """
    uploads = [
        services.Upload(f.filename or '', f.content_type, f.file.read(settings.MAX_UPLOAD_BYTES + 1))
        for f in files
    ]
    docs = services.ContentAdminService(db).upload_documents(material_id, uploads)
    return envelope(Ok(docs, message=f'{len(docs)} file(s) uploaded successfully', status_code=201))


@app.delete('/admin/documents/{document_id}')
def delete_document(document_id: str, admin=Depends(require_admin), db: Session = Depends(get_session)):
    services.ContentAdminService(db).delete_document(document_id)
    return envelope(Ok(message='Document deleted successfully'))


@app.get('/admin/materials/{material_id}/questions')
def list_questions(material_id: str, admin=Depends(require_admin), db: Session = Depends(get_session)):
    return envelope(Ok(services.ContentAdminService(db).list_questions(material_id)))


def _option_pairs(payload: QuestionIn):
    return [(o.text, o.is_correct) for o in payload.options]


@app.post('/admin/materials/{material_id}/questions')
def create_question(material_id: str, payload: QuestionIn, admin=Depends(require_admin), db: Session = Depends(get_session)):
    data = services.ContentAdminService(db).create_question(
        material_id, payload.question_text, payload.explanation, _option_pairs(payload)
    )
    return envelope(Ok(data, message='Question created successfully', status_code=201))


@app.put('/admin/questions/{question_id}')
def update_question(question_id: str, payload: QuestionIn, admin=Depends(require_admin), db: Session = Depends(get_session)):
    """Replace a question and its whole option list."""
    data = services.ContentAdminService(db).update_question(
        question_id, payload.question_text, payload.explanation, _option_pairs(payload)
    )
    return envelope(Ok(data, message='Question updated successfully'))


@app.delete('/admin/questions/{question_id}')
def delete_question(question_id: str, admin=Depends(require_admin), db: Session = Depends(get_session)):
    services.ContentAdminService(db).delete_question(question_id)
    return envelope(Ok(message='Question deleted successfully'))


# Account management (super admins)

@app.get('/super-admin/admins')
def list_admins(admin=Depends(require_super_admin), db: Session = Depends(get_session)):
    admins = services.AdminManagementService(db).list_admins()
    return envelope(Ok({'admins': admins}, message='Admins retrieved successfully'))


@app.post('/super-admin/admins')
def create_admin(payload: AdminCreateIn, admin=Depends(require_super_admin), db: Session = Depends(get_session)):
    """Add an admin account; the caller is recorded as its creator."""
    created = services.AdminManagementService(db).create_admin(
        admin, payload.full_name, payload.email, payload.password, payload.is_super_admin
    )
    return envelope(Ok({'admin': created}, message='Admin created successfully', status_code=201))


@app.get('/super-admin/admins/{admin_id}')
def get_admin(admin_id: str, admin=Depends(require_super_admin), db: Session = Depends(get_session)):
    return envelope(Ok(services.AdminManagementService(db).get_admin(admin_id)))


@app.put('/super-admin/admins/{admin_id}/toggle-status')
def toggle_admin_status(admin_id: str, admin=Depends(require_super_admin), db: Session = Depends(get_session)):
    updated = services.AdminManagementService(db).toggle_admin_status(admin, admin_id)
    state = 'activated' if updated['isActive'] else 'deactivated'
    return envelope(Ok({'admin': updated}, message=f'Admin {state} successfully'))


@app.delete('/super-admin/admins/{admin_id}')
def delete_admin(admin_id: str, admin=Depends(require_super_admin), db: Session = Depends(get_session)):
    """Soft-delete an admin: deactivate it and revoke its sessions."""
    services.AdminManagementService(db).delete_admin(admin, admin_id)
    return envelope(Ok(message='Admin deleted successfully'))


@app.get('/super-admin/stats')
def admin_stats(admin=Depends(require_super_admin), db: Session = Depends(get_session)):
    return envelope(Ok(services.AdminManagementService(db).admin_stats()))


@app.get('/super-admin/users')
def list_users(admin=Depends(require_super_admin), db: Session = Depends(get_session)):
    users = services.AdminManagementService(db).list_users()
    return envelope(Ok({'users': users}, message='Users retrieved successfully'))


@app.put('/super-admin/users/{user_id}/status')
def set_user_status(user_id: str, payload: StatusIn, admin=Depends(require_super_admin), db: Session = Depends(get_session)):
    user = services.AdminManagementService(db).set_user_status(user_id, payload.is_active)
    return envelope(Ok({'user': user}, message='User status updated successfully'))


# Study progress (students)

@app.post('/progress')
def record_progress(payload: ProgressIn, user=Depends(require_user), db: Session = Depends(get_session)):
    """Add study time to a material, optionally marking it completed."""
    data = services.ProgressService(db).record_progress(user.id, payload.material_id, payload.time_spent, payload.completed)
    return envelope(Ok(data, message='Progress recorded successfully'))


@app.get('/progress/stats')
def progress_stats(user=Depends(require_user), db: Session = Depends(get_session)):
    return envelope(Ok(services.ProgressService(db).get_stats(user.id), message='User statistics retrieved successfully'))


@app.get('/progress/by-exam-type')
def progress_by_exam_type(user=Depends(require_user), db: Session = Depends(get_session)):
    return envelope(Ok(services.ProgressService(db).progress_by_exam_type(user.id)))


@app.get('/progress/leaderboard')
def leaderboard(limit: int = Query(default=10, ge=1, le=100), identity=Depends(require_active_identity), db: Session = Depends(get_session)):
    """Top active students by completed materials."""
    return envelope(Ok(services.ProgressService(db).leaderboard(limit)))


@app.get('/progress/materials/{material_id}')
def material_progress(material_id: str, user=Depends(require_user), db: Session = Depends(get_session)):
    """Progress on one material; `data` is omitted when nothing was recorded yet."""
    return envelope(Ok(services.ProgressService(db).get_material_progress(user.id, material_id)))


@app.post('/progress/materials/{material_id}/complete')
def mark_material_completed(material_id: str, user=Depends(require_user), db: Session = Depends(get_session)):
    data = services.ProgressService(db).mark_completed(user.id, material_id)
    return envelope(Ok(data, message='Material marked as completed'))
