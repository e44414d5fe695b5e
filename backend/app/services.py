"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories
and auxiliary logic. Services are intentionally thin: they perform
validation, execute domain logic and raise the errors defined in
`errors.py`; controllers only wrap results in the response envelope.
"""

import hashlib
import logging
import os
import re
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union
import jwt
from passlib.context import CryptContext
from sqlmodel import Session
from . import models, repositories
from .config import settings
from .errors import AuthError, AuthFailure, ForbiddenError, NotFoundError, PathEscapeError, ValidationError

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

logger = logging.getLogger("app.services")

MIME_TYPES = {
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".ppt": "application/vnd.ms-powerpoint",
    ".pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".txt": "text/plain",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
}
DEFAULT_MIME_TYPE = "application/octet-stream"
FILE_CACHE_CONTROL = "public, max-age=31536000, immutable"
# extensions accepted for uploaded documents
UPLOAD_EXTENSIONS = (".pdf", ".doc", ".docx", ".jpg", ".jpeg", ".png", ".gif", ".txt")
_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")

Identity = Union[models.Admin, models.User]


def require_param(value: Optional[str], label: str) -> str:
    """Return `value` stripped, or raise a ValidationError naming `label`."""
    if value is None or not value.strip():
        raise ValidationError(f"{label} is required")
    return value.strip()


# JSON projections. Keys are camelCase because that is the wire format
# the web frontend consumes.

def _timestamps(obj) -> dict:
    out = {"createdAt": obj.created_at}
    if hasattr(obj, "updated_at"):
        out["updatedAt"] = obj.updated_at
    return out


def _by_created(rows):
    return sorted(rows, key=lambda r: r.created_at)


def option_to_dict(o: models.QuestionOption) -> dict:
    return {
        "id": o.id,
        "questionId": o.question_id,
        "optionText": o.option_text,
        "isCorrect": o.is_correct,
        "createdAt": o.created_at,
    }


def question_to_dict(q: models.Question) -> dict:
    return {
        "id": q.id,
        "materialId": q.material_id,
        "questionText": q.question_text,
        "explanation": q.explanation,
        **_timestamps(q),
        "options": [option_to_dict(o) for o in _by_created(q.options)],
    }


def document_to_dict(d: models.Document) -> dict:
    return {
        "id": d.id,
        "materialId": d.material_id,
        "filePath": d.file_path,
        "fileType": d.file_type,
        "originalName": d.original_name,
        "createdAt": d.created_at,
    }


def material_to_dict(m: models.Material, content: bool = False) -> dict:
    """Project a material; `content=True` adds documents and questions."""
    out = {
        "id": m.id,
        "title": m.title,
        "type": m.type.value if isinstance(m.type, models.MaterialType) else m.type,
        "academicPeriodId": m.academic_period_id,
        **_timestamps(m),
    }
    if content:
        out["documents"] = [document_to_dict(d) for d in _by_created(m.documents)]
        out["questions"] = [question_to_dict(q) for q in _by_created(m.questions)]
    return out


def academic_period_to_dict(p: models.AcademicPeriod, materials: bool = False) -> dict:
    out = {
        "id": p.id,
        "name": p.name,
        "departmentId": p.department_id,
        **_timestamps(p),
    }
    if materials:
        out["materials"] = [material_to_dict(m) for m in _by_created(p.materials)]
    return out


def department_to_dict(d: models.Department, depth: int = 0) -> dict:
    """Project a department with `depth` levels of nested descendants."""
    out = {
        "id": d.id,
        "name": d.name,
        "examTypeId": d.exam_type_id,
        **_timestamps(d),
    }
    if depth > 0:
        out["academicPeriods"] = [
            academic_period_to_dict(p, materials=depth > 1) for p in _by_created(d.academic_periods)
        ]
    return out


def exam_type_to_dict(e: models.ExamType, depth: int = 0) -> dict:
    out = {
        "id": e.id,
        "name": e.name,
        "description": e.description,
        **_timestamps(e),
    }
    if depth > 0:
        out["departments"] = [department_to_dict(d, depth=depth - 1) for d in _by_created(e.departments)]
    return out


class ContentService:
    """Read-only traversal of the content hierarchy."""
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.ContentRepository(session)

    def list_exam_types(self) -> List[dict]:
        """All exam types with departments -> periods -> materials nested."""
        return [exam_type_to_dict(e, depth=3) for e in self.repo.list_exam_types()]

    def list_departments(self, exam_type_id: Optional[str]) -> List[dict]:
        exam_type_id = require_param(exam_type_id, "Exam type ID")
        return [department_to_dict(d, depth=1) for d in self.repo.list_departments(exam_type_id)]

    def list_academic_periods(self, department_id: Optional[str]) -> List[dict]:
        department_id = require_param(department_id, "Department ID")
        return [
            academic_period_to_dict(p, materials=True)
            for p in self.repo.list_academic_periods(department_id)
        ]

    def list_materials(self, academic_period_id: Optional[str]) -> List[dict]:
        academic_period_id = require_param(academic_period_id, "Academic period ID")
        return [material_to_dict(m, content=True) for m in self.repo.list_materials(academic_period_id)]

    def get_material(self, material_id: Optional[str]) -> dict:
        """Return a material with documents and questions, or raise NotFoundError."""
        material_id = require_param(material_id, "Material ID")
        material = self.repo.get_material(material_id)
        if not material:
            raise NotFoundError("Material not found")
        return material_to_dict(material, content=True)

    def get_material_chain(self, material_id: Optional[str]) -> dict:
        """Return the material and its ancestors as a breadcrumb context."""
        material_id = require_param(material_id, "Material ID")
        material = self.repo.get_material_with_ancestors(material_id)
        if not material:
            raise NotFoundError("Material not found")
        period = material.academic_period
        department = period.department if period else None
        exam_type = department.exam_type if department else None
        return {
            "examType": exam_type_to_dict(exam_type) if exam_type else None,
            "department": department_to_dict(department) if department else None,
            "academicPeriod": academic_period_to_dict(period) if period else None,
            "material": material_to_dict(material),
        }


class DocumentStorage:
    """Stored document files under the upload directory.

    Documents are addressed by basename only. Reads go through
    `resolve`, which refuses anything that would leave the storage root.
    """
    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root or settings.UPLOAD_DIR)

    def resolve(self, filename: Optional[str]) -> Path:
        """Map a requested file name to a path inside the storage root.

        Directory components are discarded and only the basename is
        looked up. Names carrying `..` segments or NUL bytes, or whose
        resolved path (after following symlinks) leaves the storage root,
        raise PathEscapeError. Missing or unreadable names raise
        NotFoundError.
        """
        filename = require_param(filename, "Filename")
        if "\x00" in filename:
            raise PathEscapeError()
        parts = filename.replace("\\", "/").split("/")
        if ".." in parts:
            raise PathEscapeError()
        name = os.path.basename(parts[-1])
        if name in ("", ".", ".."):
            raise PathEscapeError()
        root = self.root.resolve()
        try:
            candidate = (root / name).resolve()
            if not candidate.is_relative_to(root):
                raise PathEscapeError()
            if not candidate.is_file():
                raise NotFoundError("File not found")
        except (OSError, ValueError):
            # e.g. a name longer than the file system allows
            raise NotFoundError("File not found")
        return candidate

    @staticmethod
    def media_type_for(path: Path) -> str:
        return MIME_TYPES.get(path.suffix.lower(), DEFAULT_MIME_TYPE)

    def save(self, original_name: str, content: bytes) -> str:
        """Write `content` under a fresh unique basename and return that name."""
        safe = _UNSAFE_NAME_CHARS.sub("_", os.path.basename(original_name.replace("\\", "/")))
        stem, ext = os.path.splitext(safe)
        stored = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{stem[:80]}{ext.lower()}"
        self.root.mkdir(parents=True, exist_ok=True)
        (self.root / stored).write_bytes(content)
        return stored

    def remove(self, stored_name: str) -> None:
        path = self.root / os.path.basename(stored_name)
        path.unlink(missing_ok=True)


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    access_expires_in: str
    refresh_expires_in: str


def identity_kind(identity: Identity) -> str:
    return "admin" if isinstance(identity, models.Admin) else "user"


def identity_claim(identity: Identity) -> dict:
    """The fields embedded in every token issued to `identity`."""
    name = identity.full_name if isinstance(identity, models.Admin) else identity.name
    return {
        "identity_id": identity.id,
        "email": identity.email,
        "full_name": name,
        "kind": identity_kind(identity),
    }


def identity_to_dict(identity: Identity) -> dict:
    out = {
        "id": identity.id,
        "email": identity.email,
        "name": identity.full_name if isinstance(identity, models.Admin) else identity.name,
        "isActive": identity.is_active,
        "type": identity_kind(identity),
        "createdAt": identity.created_at,
    }
    if isinstance(identity, models.Admin):
        out["role"] = "super_admin" if identity.is_super_admin else "admin"
        out["isSuperAdmin"] = identity.is_super_admin
    else:
        out["role"] = "user"
    return out


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class TokenService:
    """Issue and verify signed, time-limited JWTs.

    Access and refresh tokens are signed with distinct secrets and carry
    a `type` claim so one can never stand in for the other.
    """
    def __init__(self, config=settings):
        self.config = config

    def _encode(self, claim: dict, token_type: str, secret: str, lifetime) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            **claim,
            "type": token_type,
            "jti": uuid.uuid4().hex,
            "iat": now,
            "exp": now + lifetime,
            "iss": self.config.JWT_ISSUER,
            "aud": self.config.JWT_AUDIENCE,
        }
        return jwt.encode(payload, secret, algorithm=self.config.JWT_ALGORITHM)

    def issue_access_token(self, claim: dict) -> str:
        return self._encode(claim, "access", self.config.JWT_ACCESS_SECRET, self.config.access_lifetime)

    def issue_token_pair(self, claim: dict) -> TokenPair:
        """Sign an access token and a refresh token for the same claim."""
        return TokenPair(
            access_token=self.issue_access_token(claim),
            refresh_token=self._encode(claim, "refresh", self.config.JWT_REFRESH_SECRET, self.config.refresh_lifetime),
            access_expires_in=self.config.JWT_ACCESS_EXPIRES_IN,
            refresh_expires_in=self.config.JWT_REFRESH_EXPIRES_IN,
        )

    def verify_token(self, token: str, secret: str, issuer: str, audience: str, expected_type: Optional[str] = None) -> dict:
        """Decode and verify a token, raising AuthError on any failure.

        Signature problems (including malformed tokens) map to
        INVALID_SIGNATURE, expiry to EXPIRED and any issuer, audience,
        missing-claim or `type` mismatch to CLAIM_MISMATCH.
        """
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self.config.JWT_ALGORITHM],
                issuer=issuer,
                audience=audience,
                options={"require": ["exp", "iat", "iss", "aud"]},
            )
        except jwt.ExpiredSignatureError:
            raise AuthError(AuthFailure.EXPIRED)
        except (jwt.InvalidSignatureError, jwt.DecodeError):
            raise AuthError(AuthFailure.INVALID_SIGNATURE)
        except jwt.InvalidTokenError:
            raise AuthError(AuthFailure.CLAIM_MISMATCH)
        if expected_type is not None and payload.get("type") != expected_type:
            raise AuthError(AuthFailure.CLAIM_MISMATCH)
        if not payload.get("identity_id"):
            raise AuthError(AuthFailure.CLAIM_MISMATCH)
        return payload

    def verify_access_token(self, token: str) -> dict:
        return self.verify_token(token, self.config.JWT_ACCESS_SECRET, self.config.JWT_ISSUER, self.config.JWT_AUDIENCE, expected_type="access")

    def verify_refresh_token(self, token: str) -> dict:
        return self.verify_token(token, self.config.JWT_REFRESH_SECRET, self.config.JWT_ISSUER, self.config.JWT_AUDIENCE, expected_type="refresh")


class AuthService:
    """Authentication related operations (credentials, sessions, tokens)."""
    def __init__(self, session: Session, tokens: Optional[TokenService] = None):
        self.session = session
        self.admin_repo = repositories.AdminRepository(session)
        self.user_repo = repositories.UserRepository(session)
        self.token_repo = repositories.RefreshTokenRepository(session)
        self.tokens = tokens or TokenService()

    def find_identity(self, email: str) -> Optional[Identity]:
        """Look an identity up by normalized email; admins take precedence."""
        return self.admin_repo.get_by_email(email) or self.user_repo.get_by_email(email)

    def get_identity(self, identity_id: str, kind: str) -> Optional[Identity]:
        if kind == "admin":
            return self.admin_repo.get(identity_id)
        return self.user_repo.get(identity_id)

    def check_credentials(self, email: str, password: str) -> Identity:
        """Verify an email/password pair and return the matching identity.

        Raises AuthError with NOT_FOUND, INACTIVE or BAD_PASSWORD.
        """
        identity = self.find_identity(email)
        if not identity:
            raise AuthError(AuthFailure.NOT_FOUND)
        if not identity.is_active:
            raise AuthError(AuthFailure.INACTIVE)
        if not PWD_CTX.verify(password, identity.password_hash):
            raise AuthError(AuthFailure.BAD_PASSWORD)
        return identity

    def start_session(self, identity: Identity) -> TokenPair:
        """Issue a token pair and persist the hashed refresh token."""
        pair = self.tokens.issue_token_pair(identity_claim(identity))
        expires_at = datetime.now(timezone.utc) + self.tokens.config.refresh_lifetime
        self.token_repo.create(models.RefreshToken(
            identity_id=identity.id,
            identity_kind=identity_kind(identity),
            token_hash=hash_token(pair.refresh_token),
            expires_at=expires_at,
        ))
        return pair

    def login(self, email: str, password: str):
        identity = self.check_credentials(email, password)
        pair = self.start_session(identity)
        logger.info("login_ok kind=%s id=%s", identity_kind(identity), identity.id)
        return identity, pair

    def register_user(self, name: str, email: str, password: str):
        """Create a user account and open a session for it."""
        if self.find_identity(email):
            raise ValidationError("An account with this email already exists")
        user = self.user_repo.create(models.User(name=name, email=email, password_hash=PWD_CTX.hash(password)))
        return user, self.start_session(user)

    def refresh_access_token(self, refresh_token: str) -> str:
        """Exchange a valid, persisted refresh token for a new access token."""
        claims = self.tokens.verify_refresh_token(refresh_token)
        now = datetime.now(timezone.utc)
        stored = self.token_repo.find_active(hash_token(refresh_token), now)
        if not stored or stored.identity_id != claims["identity_id"]:
            raise AuthError(AuthFailure.REVOKED)
        identity = self.get_identity(stored.identity_id, stored.identity_kind)
        if not identity:
            raise AuthError(AuthFailure.NOT_FOUND)
        if not identity.is_active:
            raise AuthError(AuthFailure.INACTIVE)
        return self.tokens.issue_access_token(identity_claim(identity))

    def logout(self, identity_id: str, refresh_token: Optional[str] = None) -> int:
        """Revoke the given refresh token, or all of the identity's tokens."""
        if refresh_token:
            stored = self.token_repo.find_active(hash_token(refresh_token), datetime.now(timezone.utc))
            if stored and stored.identity_id == identity_id:
                self.token_repo.revoke(stored)
                return 1
            return 0
        return self.token_repo.revoke_all(identity_id)

    def list_sessions(self, identity_id: str) -> List[dict]:
        rows = self.token_repo.list_active(identity_id, datetime.now(timezone.utc))
        return [{"id": r.id, "createdAt": r.created_at, "expiresAt": r.expires_at} for r in rows]

    def revoke_session(self, identity_id: str, session_id: str) -> None:
        row = self.token_repo.get_for_identity(session_id, identity_id)
        if not row:
            raise NotFoundError("Session not found")
        self.token_repo.revoke(row)

    def revoke_all_sessions(self, identity_id: str) -> int:
        return self.token_repo.revoke_all(identity_id)

    def purge_expired_tokens(self) -> int:
        return self.token_repo.delete_expired(datetime.now(timezone.utc))

    def ensure_super_admin(self, email: str, password: str, full_name: str) -> models.Admin:
        """Create the super admin if missing, or re-activate and promote it."""
        admin = self.admin_repo.get_by_email(email)
        if not admin:
            return self.admin_repo.create(models.Admin(
                full_name=full_name,
                email=email,
                password_hash=PWD_CTX.hash(password),
                is_super_admin=True,
                is_active=True,
            ))
        if not admin.is_super_admin or not admin.is_active:
            admin.is_super_admin = True
            admin.is_active = True
            admin.password_hash = PWD_CTX.hash(password)
            admin = self.admin_repo.save(admin)
        return admin


def admin_to_dict(admin: models.Admin, creator: Optional[models.Admin] = None) -> dict:
    out = identity_to_dict(admin)
    out["createdById"] = admin.created_by_id
    if creator is not None:
        out["creator"] = {"id": creator.id, "fullName": creator.full_name, "email": creator.email}
    return out


# which relationship holds the children of each hierarchy level
_CHILDREN = {
    models.ExamType: "departments",
    models.Department: "academic_periods",
    models.AcademicPeriod: "materials",
    models.Material: "documents",
}


def _stored_files(obj) -> List[str]:
    """Basenames of every document file stored under `obj`."""
    if isinstance(obj, models.Document):
        return [obj.file_path]
    attr = _CHILDREN.get(type(obj))
    if attr is None:
        return []
    return [name for child in getattr(obj, attr) for name in _stored_files(child)]


@dataclass
class Upload:
    """A file received from a client, already read into memory."""
    filename: str
    content_type: Optional[str]
    content: bytes


class ContentAdminService:
    """Create, update and delete the content hierarchy (admin only).

    Deleting a row deletes everything beneath it, including stored
    document files.
    """
    def __init__(self, session: Session, storage: Optional[DocumentStorage] = None):
        self.session = session
        self.repo = repositories.ContentRepository(session)
        self.storage = storage or DocumentStorage()

    def _get(self, model, obj_id: Optional[str], label: str):
        obj_id = require_param(obj_id, f"{label} ID")
        obj = self.repo.get(model, obj_id)
        if not obj:
            raise NotFoundError(f"{label} not found")
        return obj

    def _delete(self, obj) -> None:
        kind, obj_id = type(obj).__name__, obj.id
        files = _stored_files(obj)
        self.repo.delete(obj)
        for name in files:
            self.storage.remove(name)
        logger.info("content_deleted kind=%s id=%s files=%d", kind, obj_id, len(files))

    # exam types
    def create_exam_type(self, name: str, description: Optional[str] = None) -> dict:
        return exam_type_to_dict(self.repo.add(models.ExamType(name=name, description=description)))

    def update_exam_type(self, exam_type_id: str, name: str, description: Optional[str] = None) -> dict:
        exam_type = self._get(models.ExamType, exam_type_id, "Exam type")
        exam_type.name = name
        exam_type.description = description
        return exam_type_to_dict(self.repo.add(exam_type))

    def delete_exam_type(self, exam_type_id: str) -> None:
        self._delete(self._get(models.ExamType, exam_type_id, "Exam type"))

    # departments
    def create_department(self, exam_type_id: str, name: str) -> dict:
        exam_type = self._get(models.ExamType, exam_type_id, "Exam type")
        return department_to_dict(self.repo.add(models.Department(name=name, exam_type_id=exam_type.id)))

    def update_department(self, department_id: str, name: str) -> dict:
        department = self._get(models.Department, department_id, "Department")
        department.name = name
        return department_to_dict(self.repo.add(department))

    def delete_department(self, department_id: str) -> None:
        self._delete(self._get(models.Department, department_id, "Department"))

    # academic periods
    def create_academic_period(self, department_id: str, name: str) -> dict:
        department = self._get(models.Department, department_id, "Department")
        return academic_period_to_dict(self.repo.add(models.AcademicPeriod(name=name, department_id=department.id)))

    def update_academic_period(self, academic_period_id: str, name: str) -> dict:
        period = self._get(models.AcademicPeriod, academic_period_id, "Academic period")
        period.name = name
        return academic_period_to_dict(self.repo.add(period))

    def delete_academic_period(self, academic_period_id: str) -> None:
        self._delete(self._get(models.AcademicPeriod, academic_period_id, "Academic period"))

    # materials
    def create_material(self, academic_period_id: str, title: str, material_type: models.MaterialType) -> dict:
        period = self._get(models.AcademicPeriod, academic_period_id, "Academic period")
        material = models.Material(title=title, type=material_type, academic_period_id=period.id)
        return material_to_dict(self.repo.add(material))

    def update_material(self, material_id: str, title: str, material_type: models.MaterialType) -> dict:
        material = self._get(models.Material, material_id, "Material")
        material.title = title
        material.type = material_type
        return material_to_dict(self.repo.add(material))

    def delete_material(self, material_id: str) -> None:
        self._delete(self._get(models.Material, material_id, "Material"))

    # documents
    def upload_documents(self, material_id: str, uploads: List[Upload]) -> List[dict]:
        """Store uploaded files and attach them to a material.

        Every file is checked (count, extension, size) before any is
        written, so a rejected batch leaves nothing behind.
        """
        material = self._get(models.Material, material_id, "Material")
        if not uploads:
            raise ValidationError("No files uploaded")
        if len(uploads) > settings.MAX_UPLOAD_FILES:
            raise ValidationError(f"Too many files (at most {settings.MAX_UPLOAD_FILES})")
        for upload in uploads:
            ext = os.path.splitext(upload.filename or "")[1].lower()
            if ext not in UPLOAD_EXTENSIONS:
                raise ValidationError(
                    "Invalid file type. Only PDF, DOC, DOCX, JPG, JPEG, PNG, GIF, TXT are allowed."
                )
            if len(upload.content) > settings.MAX_UPLOAD_BYTES:
                raise ValidationError(f"File too large: {upload.filename}")
        documents = []
        for upload in uploads:
            stored = self.storage.save(upload.filename, upload.content)
            file_type = upload.content_type or DocumentStorage.media_type_for(Path(stored))
            documents.append(self.repo.add(models.Document(
                material_id=material.id,
                file_path=stored,
                file_type=file_type,
                original_name=os.path.basename(upload.filename.replace("\\", "/")),
            )))
        logger.info("documents_uploaded material=%s count=%d", material.id, len(documents))
        return [document_to_dict(d) for d in documents]

    def delete_document(self, document_id: str) -> None:
        self._delete(self._get(models.Document, document_id, "Document"))

    # questions
    def list_questions(self, material_id: str) -> List[dict]:
        material = self._get(models.Material, material_id, "Material")
        return [question_to_dict(q) for q in self.repo.list_questions(material.id)]

    def create_question(self, material_id: str, question_text: str, explanation: Optional[str], options) -> dict:
        """Create a question with its options; `options` is a list of (text, is_correct)."""
        material = self._get(models.Material, material_id, "Material")
        question = models.Question(
            material_id=material.id,
            question_text=question_text,
            explanation=explanation,
            options=[models.QuestionOption(option_text=text, is_correct=correct) for text, correct in options],
        )
        return question_to_dict(self.repo.add(question))

    def update_question(self, question_id: str, question_text: str, explanation: Optional[str], options) -> dict:
        """Replace a question's text, explanation and whole option list."""
        question = self._get(models.Question, question_id, "Question")
        question.question_text = question_text
        question.explanation = explanation
        question.options = [models.QuestionOption(option_text=text, is_correct=correct) for text, correct in options]
        return question_to_dict(self.repo.add(question))

    def delete_question(self, question_id: str) -> None:
        self._delete(self._get(models.Question, question_id, "Question"))


class AdminManagementService:
    """Super-admin management of admin and user accounts.

    Accounts are never hard-deleted; removing an admin deactivates it and
    revokes its refresh tokens. Super admins cannot act on themselves or
    on other super admins.
    """
    def __init__(self, session: Session):
        self.session = session
        self.admin_repo = repositories.AdminRepository(session)
        self.user_repo = repositories.UserRepository(session)
        self.token_repo = repositories.RefreshTokenRepository(session)

    def list_admins(self) -> List[dict]:
        admins = self.admin_repo.list_all()
        by_id = {a.id: a for a in admins}
        return [admin_to_dict(a, by_id.get(a.created_by_id)) for a in admins]

    def get_admin(self, admin_id: str) -> dict:
        admin = self._target(admin_id)
        creator = self.admin_repo.get(admin.created_by_id) if admin.created_by_id else None
        return admin_to_dict(admin, creator)

    def create_admin(self, creator: models.Admin, full_name: str, email: str, password: str, is_super_admin: bool = False) -> dict:
        if self.admin_repo.get_by_email(email):
            raise ValidationError("An admin with this email already exists")
        if self.user_repo.get_by_email(email):
            raise ValidationError("This email is already registered as a user account")
        admin = self.admin_repo.create(models.Admin(
            full_name=full_name,
            email=email,
            password_hash=PWD_CTX.hash(password),
            is_super_admin=is_super_admin,
            created_by_id=creator.id,
        ))
        logger.info("admin_created id=%s by=%s super=%s", admin.id, creator.id, is_super_admin)
        return admin_to_dict(admin, creator)

    def _target(self, admin_id: str) -> models.Admin:
        admin_id = require_param(admin_id, "Admin ID")
        admin = self.admin_repo.get(admin_id)
        if not admin:
            raise NotFoundError("Admin not found")
        return admin

    def _guarded_target(self, requester: models.Admin, admin_id: str, self_message: str, super_message: str) -> models.Admin:
        if admin_id == requester.id:
            raise ValidationError(self_message)
        admin = self._target(admin_id)
        if admin.is_super_admin:
            raise ForbiddenError(super_message)
        return admin

    def _set_active(self, admin: models.Admin, active: bool) -> models.Admin:
        admin.is_active = active
        admin = self.admin_repo.save(admin)
        if not active:
            self.token_repo.revoke_all(admin.id)
        return admin

    def toggle_admin_status(self, requester: models.Admin, admin_id: str) -> dict:
        admin = self._guarded_target(
            requester, admin_id, "You cannot change your own status", "Cannot change status of other super admins"
        )
        admin = self._set_active(admin, not admin.is_active)
        logger.info("admin_status id=%s active=%s by=%s", admin.id, admin.is_active, requester.id)
        return admin_to_dict(admin)

    def delete_admin(self, requester: models.Admin, admin_id: str) -> None:
        admin = self._guarded_target(requester, admin_id, "You cannot delete yourself", "Cannot delete other super admins")
        self._set_active(admin, False)
        logger.info("admin_deleted id=%s by=%s", admin.id, requester.id)

    def admin_stats(self) -> dict:
        active = models.Admin.is_active
        return {
            "total": self.admin_repo.count(),
            "active": self.admin_repo.count(active == True),  # noqa: E712
            "inactive": self.admin_repo.count(active == False),  # noqa: E712
            "superAdmins": self.admin_repo.count(models.Admin.is_super_admin == True),  # noqa: E712
        }

    def list_users(self) -> List[dict]:
        return [identity_to_dict(u) for u in self.user_repo.list_all()]

    def set_user_status(self, user_id: str, active: bool) -> dict:
        user_id = require_param(user_id, "User ID")
        user = self.user_repo.get(user_id)
        if not user:
            raise NotFoundError("User not found")
        user.is_active = active
        user = self.user_repo.save(user)
        if not active:
            self.token_repo.revoke_all(user.id)
        return identity_to_dict(user)


def progress_to_dict(row: models.UserProgress) -> dict:
    return {
        "materialId": row.material_id,
        "materialTitle": row.material.title if row.material else None,
        "timeSpent": row.time_spent,
        "completed": row.completed,
        "lastAccessed": row.last_accessed,
    }


class ProgressService:
    """Study progress of users across materials."""
    RECENT_ACTIVITY = 10

    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.ProgressRepository(session)
        self.content = repositories.ContentRepository(session)
        self.user_repo = repositories.UserRepository(session)

    def record_progress(self, user_id: str, material_id: str, time_spent: int = 0, completed: bool = False) -> dict:
        """Add study time to a material; once completed, it stays completed."""
        material_id = require_param(material_id, "Material ID")
        if not self.content.get(models.Material, material_id):
            raise NotFoundError("Material not found")
        row = self.repo.get(user_id, material_id)
        if row is None:
            row = models.UserProgress(user_id=user_id, material_id=material_id)
        row.time_spent = (row.time_spent or 0) + time_spent
        row.completed = bool(row.completed) or completed
        row.last_accessed = models.utcnow()
        return progress_to_dict(self.repo.save(row))

    def mark_completed(self, user_id: str, material_id: str) -> dict:
        return self.record_progress(user_id, material_id, completed=True)

    def get_material_progress(self, user_id: str, material_id: str) -> Optional[dict]:
        material_id = require_param(material_id, "Material ID")
        row = self.repo.get(user_id, material_id)
        return progress_to_dict(row) if row else None

    def get_stats(self, user_id: str) -> dict:
        rows = self.repo.list_for_user(user_id)
        return {
            "totalMaterials": len(rows),
            "completedMaterials": sum(1 for r in rows if r.completed),
            "totalTimeSpent": sum(r.time_spent for r in rows),
            "recentActivity": [progress_to_dict(r) for r in rows[:self.RECENT_ACTIVITY]],
        }

    def progress_by_exam_type(self, user_id: str) -> List[dict]:
        """Group a user's progress as exam type -> department -> period."""
        groups = {}
        for row in self.repo.list_for_user(user_id):
            period = row.material.academic_period
            department = period.department
            exam_type = department.exam_type
            eg = groups.setdefault(exam_type.id, {
                "examTypeId": exam_type.id,
                "examTypeName": exam_type.name,
                "completed": 0,
                "total": 0,
                "departments": {},
            })
            dg = eg["departments"].setdefault(department.id, {
                "departmentId": department.id,
                "departmentName": department.name,
                "periods": {},
            })
            pg = dg["periods"].setdefault(period.id, {
                "academicPeriodId": period.id,
                "academicPeriodName": period.name,
                "materials": [],
            })
            pg["materials"].append(progress_to_dict(row))
            eg["total"] += 1
            eg["completed"] += 1 if row.completed else 0
        out = []
        for eg in groups.values():
            departments = []
            for dg in eg["departments"].values():
                departments.append({**dg, "periods": list(dg["periods"].values())})
            out.append({**eg, "departments": departments})
        return out

    def leaderboard(self, limit: int = 10) -> List[dict]:
        """Active users ranked by completed materials, then least time spent."""
        totals = {}
        for row in self.repo.list_all():
            t = totals.setdefault(row.user_id, {"completed": 0, "time": 0, "total": 0})
            t["completed"] += 1 if row.completed else 0
            t["time"] += row.time_spent
            t["total"] += 1
        board = []
        for user in self.user_repo.list_all():
            if not user.is_active:
                continue
            t = totals.get(user.id, {"completed": 0, "time": 0, "total": 0})
            board.append({
                "id": user.id,
                "name": user.name,
                "completedMaterials": t["completed"],
                "totalTimeSpent": t["time"],
                "totalMaterials": t["total"],
            })
        board.sort(key=lambda e: (-e["completedMaterials"], e["totalTimeSpent"]))
        return board[:limit]
