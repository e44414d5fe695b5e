"""SQLModel data models.

This module defines the portal's database tables using SQLModel. The
content hierarchy is ExamType -> Department -> AcademicPeriod ->
Material, and a material owns documents and/or questions. Admins and
users are the credential-holding identities; refresh tokens persist the
long-lived half of an issued token pair, and `UserProgress` records what
a user has studied.
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import List, Optional
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field, Relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


# children are deleted together with their parent row
_OWNED = {"cascade": "all, delete-orphan"}


class MaterialType(str, enum.Enum):
    DOCUMENT = "DOCUMENT"
    QUESTION = "QUESTION"


class ExamType(SQLModel, table=True):
    """Top level of the content hierarchy (e.g. national exit exam)."""
    id: str = Field(default_factory=new_id, primary_key=True)
    name: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})
    departments: List["Department"] = Relationship(back_populates="exam_type", sa_relationship_kwargs=_OWNED)


class Department(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    name: str
    exam_type_id: str = Field(foreign_key="examtype.id", index=True)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})
    exam_type: Optional[ExamType] = Relationship(back_populates="departments")
    academic_periods: List["AcademicPeriod"] = Relationship(back_populates="department", sa_relationship_kwargs=_OWNED)


class AcademicPeriod(SQLModel, table=True):
    """A year or semester inside a department."""
    id: str = Field(default_factory=new_id, primary_key=True)
    name: str
    department_id: str = Field(foreign_key="department.id", index=True)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})
    department: Optional[Department] = Relationship(back_populates="academic_periods")
    materials: List["Material"] = Relationship(back_populates="academic_period", sa_relationship_kwargs=_OWNED)


class Material(SQLModel, table=True):
    """A unit of study content.

    `type` says whether the material is meant to hold documents or
    questions. The schema does not stop a material from holding both.
    """
    id: str = Field(default_factory=new_id, primary_key=True)
    title: str
    type: MaterialType
    academic_period_id: str = Field(foreign_key="academicperiod.id", index=True)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})
    academic_period: Optional[AcademicPeriod] = Relationship(back_populates="materials")
    documents: List["Document"] = Relationship(back_populates="material", sa_relationship_kwargs=_OWNED)
    questions: List["Question"] = Relationship(back_populates="material", sa_relationship_kwargs=_OWNED)
    progress: List["UserProgress"] = Relationship(back_populates="material", sa_relationship_kwargs=_OWNED)


class Document(SQLModel, table=True):
    """An uploaded file attached to a material.

    `file_path` is the stored basename under the upload directory.
    """
    id: str = Field(default_factory=new_id, primary_key=True)
    material_id: str = Field(foreign_key="material.id", index=True)
    file_path: str
    file_type: str
    original_name: str
    created_at: datetime = Field(default_factory=utcnow)
    material: Optional[Material] = Relationship(back_populates="documents")


class Question(SQLModel, table=True):
    """A multiple-choice question belonging to a material."""
    id: str = Field(default_factory=new_id, primary_key=True)
    material_id: str = Field(foreign_key="material.id", index=True)
    question_text: str
    explanation: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})
    material: Optional[Material] = Relationship(back_populates="questions")
    options: List["QuestionOption"] = Relationship(back_populates="question", sa_relationship_kwargs=_OWNED)


class QuestionOption(SQLModel, table=True):
    """Possible answer for a `Question`; `is_correct` marks the right one."""
    id: str = Field(default_factory=new_id, primary_key=True)
    question_id: str = Field(foreign_key="question.id", index=True)
    option_text: str
    is_correct: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    question: Optional[Question] = Relationship(back_populates="options")


class Admin(SQLModel, table=True):
    """An administrator account.

    Fields:
    - `email`: unique, always stored lower-cased
    - `password_hash`: hashed password string (never store plaintext)
    - `created_by_id`: the admin who created this account, if any
    """
    id: str = Field(default_factory=new_id, primary_key=True)
    full_name: str
    email: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    is_active: bool = True
    is_super_admin: bool = False
    created_by_id: Optional[str] = Field(default=None, foreign_key="admin.id")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})


class User(SQLModel, table=True):
    """A registered student account."""
    id: str = Field(default_factory=new_id, primary_key=True)
    name: str
    email: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})


class RefreshToken(SQLModel, table=True):
    """A persisted refresh token.

    Only the sha256 digest of the issued token is stored. `identity_kind`
    is `admin` or `user` and tells which table `identity_id` points at.
    """
    id: str = Field(default_factory=new_id, primary_key=True)
    identity_id: str = Field(index=True)
    identity_kind: str
    token_hash: str = Field(index=True, unique=True)
    expires_at: datetime
    is_revoked: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})


class UserProgress(SQLModel, table=True):
    """How far a user got with one material.

    One row per (user, material); `time_spent` accumulates seconds across
    visits.
    """
    __table_args__ = (UniqueConstraint("user_id", "material_id"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True)
    material_id: str = Field(foreign_key="material.id", index=True)
    time_spent: int = 0
    completed: bool = False
    last_accessed: datetime = Field(default_factory=utcnow, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    material: Optional[Material] = Relationship(back_populates="progress")
