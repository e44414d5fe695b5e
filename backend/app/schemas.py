"""Pydantic request schemas used by the API.

Schemas keep API input shapes stable and provide validation for
controller handlers and tests. Emails are normalized (stripped and
lower-cased) here so every downstream lookup sees the same form.
"""

import re
from typing import List, Optional
from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, Field, field_validator
from .models import MaterialType


def _normalize_email(value: str) -> str:
    try:
        validate_email(value.strip(), check_deliverability=False)
    except EmailNotValidError:
        raise ValueError("Invalid email format")
    return value.strip().lower()


class LoginIn(BaseModel):
    """Payload for the login endpoint."""
    email: str = Field(min_length=5, max_length=255)
    password: str = Field(min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return _normalize_email(v)


class RegisterIn(BaseModel):
    """Payload for user self-registration."""
    name: str = Field(min_length=2, max_length=100)
    email: str = Field(min_length=5, max_length=255)
    password: str = Field(min_length=6, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return _normalize_email(v)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v


class RefreshIn(BaseModel):
    """Optional body for /auth/refresh when the cookie is not available."""
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")

    model_config = {"populate_by_name": True}


class _CamelModel(BaseModel):
    model_config = {"populate_by_name": True}


def _required_text(v: str, label: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError(f"{label} is required")
    return v


class ExamTypeIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return _required_text(v, "Name")


class NameIn(BaseModel):
    """Payload for departments and academic periods."""
    name: str = Field(min_length=1, max_length=100)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return _required_text(v, "Name")


class MaterialIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    type: MaterialType

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        return _required_text(v, "Title")


class OptionIn(_CamelModel):
    text: str = Field(min_length=1, max_length=1000)
    is_correct: bool = Field(default=False, alias="isCorrect")


class QuestionIn(_CamelModel):
    """A question with its full option list.

    Updates replace the whole option list, so the same shape serves both
    create and update.
    """
    question_text: str = Field(min_length=1, max_length=5000, alias="questionText")
    explanation: Optional[str] = Field(default=None, max_length=5000)
    options: List[OptionIn] = Field(min_length=2, max_length=10)

    @field_validator("question_text")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return _required_text(v, "Question text")

    @field_validator("options")
    @classmethod
    def one_correct_option(cls, v: List[OptionIn]) -> List[OptionIn]:
        if not any(o.is_correct for o in v):
            raise ValueError("At least one option must be correct")
        return v


class AdminCreateIn(_CamelModel):
    """Payload a super admin uses to add another admin."""
    full_name: str = Field(min_length=2, max_length=100, alias="fullName")
    email: str = Field(min_length=5, max_length=255)
    password: str = Field(min_length=6, max_length=128)
    is_super_admin: bool = Field(default=False, alias="isSuperAdmin")

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return _normalize_email(v)

    @field_validator("full_name")
    @classmethod
    def check_full_name(cls, v: str) -> str:
        v = v.strip()
        if not re.fullmatch(r"[A-Za-z ]{2,100}", v):
            raise ValueError("Full name can only contain letters and spaces")
        return v


class StatusIn(_CamelModel):
    is_active: bool = Field(alias="isActive")


class ProgressIn(_CamelModel):
    material_id: str = Field(min_length=1, alias="materialId")
    time_spent: int = Field(default=0, ge=0, le=24 * 60 * 60, alias="timeSpent")
    completed: bool = False
