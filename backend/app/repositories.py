"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (content
hierarchy, admins, users, refresh tokens, progress). Repositories return SQLModel
objects and perform commits/refreshes where appropriate.
"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import selectinload
from sqlmodel import Session, select, col, func
from . import models


class ContentRepository:
    """Queries and writes over the exam content hierarchy.

    Every listing filters by its immediate parent id, orders newest
    first and eager-loads the descendants the API projects.
    """
    def __init__(self, session: Session):
        self.session = session

    def list_exam_types(self) -> List[models.ExamType]:
        stmt = (
            select(models.ExamType)
            .options(
                selectinload(models.ExamType.departments)
                .selectinload(models.Department.academic_periods)
                .selectinload(models.AcademicPeriod.materials)
            )
            .order_by(col(models.ExamType.created_at).desc())
        )
        return self.session.exec(stmt).all()

    def list_departments(self, exam_type_id: str) -> List[models.Department]:
        stmt = (
            select(models.Department)
            .where(models.Department.exam_type_id == exam_type_id)
            .options(selectinload(models.Department.academic_periods))
            .order_by(col(models.Department.created_at).desc())
        )
        return self.session.exec(stmt).all()

    def list_academic_periods(self, department_id: str) -> List[models.AcademicPeriod]:
        stmt = (
            select(models.AcademicPeriod)
            .where(models.AcademicPeriod.department_id == department_id)
            .options(selectinload(models.AcademicPeriod.materials))
            .order_by(col(models.AcademicPeriod.created_at).desc())
        )
        return self.session.exec(stmt).all()

    def list_materials(self, academic_period_id: str) -> List[models.Material]:
        stmt = (
            select(models.Material)
            .where(models.Material.academic_period_id == academic_period_id)
            .options(
                selectinload(models.Material.documents),
                selectinload(models.Material.questions).selectinload(models.Question.options),
            )
            .order_by(col(models.Material.created_at).desc())
        )
        return self.session.exec(stmt).all()

    def get_material(self, material_id: str) -> Optional[models.Material]:
        """Fetch a material with its documents and questions+options."""
        stmt = (
            select(models.Material)
            .where(models.Material.id == material_id)
            .options(
                selectinload(models.Material.documents),
                selectinload(models.Material.questions).selectinload(models.Question.options),
            )
        )
        return self.session.exec(stmt).first()

    def get_material_with_ancestors(self, material_id: str) -> Optional[models.Material]:
        """Fetch a material together with its period, department and exam type."""
        stmt = (
            select(models.Material)
            .where(models.Material.id == material_id)
            .options(
                selectinload(models.Material.academic_period)
                .selectinload(models.AcademicPeriod.department)
                .selectinload(models.Department.exam_type)
            )
        )
        return self.session.exec(stmt).first()

    def get(self, model, obj_id: str):
        """Fetch one hierarchy row of type `model` by id."""
        return self.session.get(model, obj_id)

    def list_questions(self, material_id: str) -> List[models.Question]:
        stmt = (
            select(models.Question)
            .where(models.Question.material_id == material_id)
            .options(selectinload(models.Question.options))
            .order_by(col(models.Question.created_at))
        )
        return self.session.exec(stmt).all()

    def add(self, obj):
        """Persist any content row and return the refreshed instance."""
        self.session.add(obj)
        self.session.commit()
        self.session.refresh(obj)
        return obj

    def delete(self, obj) -> None:
        """Delete a row; owned children go with it."""
        self.session.delete(obj)
        self.session.commit()


class AdminRepository:
    """CRUD operations for `Admin` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, admin: models.Admin) -> models.Admin:
        """Persist a new admin and return the managed instance."""
        admin.email = admin.email.strip().lower()
        self.session.add(admin)
        self.session.commit()
        self.session.refresh(admin)
        return admin

    def get_by_email(self, email: str) -> Optional[models.Admin]:
        """Return an `Admin` by (normalized) email or `None` if not found."""
        stmt = select(models.Admin).where(models.Admin.email == email.strip().lower())
        return self.session.exec(stmt).first()

    def get(self, admin_id: str) -> Optional[models.Admin]:
        return self.session.get(models.Admin, admin_id)

    def save(self, admin: models.Admin) -> models.Admin:
        self.session.add(admin)
        self.session.commit()
        self.session.refresh(admin)
        return admin

    def list_all(self) -> List[models.Admin]:
        stmt = select(models.Admin).order_by(col(models.Admin.created_at).desc())
        return self.session.exec(stmt).all()

    def count(self, *conditions) -> int:
        stmt = select(func.count()).select_from(models.Admin).where(*conditions)
        return self.session.exec(stmt).one()


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        user.email = user.email.strip().lower()
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def get_by_email(self, email: str) -> Optional[models.User]:
        """Return a `User` by (normalized) email or `None` if not found."""
        stmt = select(models.User).where(models.User.email == email.strip().lower())
        return self.session.exec(stmt).first()

    def get(self, user_id: str) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)

    def list_all(self) -> List[models.User]:
        stmt = select(models.User).order_by(col(models.User.created_at).desc())
        return self.session.exec(stmt).all()

    def save(self, user: models.User) -> models.User:
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user


class RefreshTokenRepository:
    """Persistence for hashed refresh tokens (login sessions)."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, token: models.RefreshToken) -> models.RefreshToken:
        self.session.add(token)
        self.session.commit()
        self.session.refresh(token)
        return token

    def find_active(self, token_hash: str, now: datetime) -> Optional[models.RefreshToken]:
        """Return the unrevoked, unexpired token row matching `token_hash`."""
        stmt = select(models.RefreshToken).where(
            models.RefreshToken.token_hash == token_hash,
            models.RefreshToken.is_revoked == False,  # noqa: E712
            models.RefreshToken.expires_at > now,
        )
        return self.session.exec(stmt).first()

    def list_active(self, identity_id: str, now: datetime) -> List[models.RefreshToken]:
        stmt = select(models.RefreshToken).where(
            models.RefreshToken.identity_id == identity_id,
            models.RefreshToken.is_revoked == False,  # noqa: E712
            models.RefreshToken.expires_at > now,
        ).order_by(col(models.RefreshToken.created_at).desc())
        return self.session.exec(stmt).all()

    def get_for_identity(self, token_id: str, identity_id: str) -> Optional[models.RefreshToken]:
        stmt = select(models.RefreshToken).where(
            models.RefreshToken.id == token_id,
            models.RefreshToken.identity_id == identity_id,
            models.RefreshToken.is_revoked == False,  # noqa: E712
        )
        return self.session.exec(stmt).first()

    def revoke(self, token: models.RefreshToken) -> None:
        token.is_revoked = True
        self.session.add(token)
        self.session.commit()

    def revoke_all(self, identity_id: str) -> int:
        """Revoke every active token of an identity; return how many."""
        stmt = select(models.RefreshToken).where(
            models.RefreshToken.identity_id == identity_id,
            models.RefreshToken.is_revoked == False,  # noqa: E712
        )
        rows = self.session.exec(stmt).all()
        for row in rows:
            row.is_revoked = True
            self.session.add(row)
        self.session.commit()
        return len(rows)

    def delete_expired(self, now: datetime) -> int:
        """Delete rows whose expiry is in the past; return the count."""
        stmt = select(models.RefreshToken).where(models.RefreshToken.expires_at < now)
        rows = self.session.exec(stmt).all()
        for row in rows:
            self.session.delete(row)
        self.session.commit()
        return len(rows)


class ProgressRepository:
    """Per-user study progress rows."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: str, material_id: str) -> Optional[models.UserProgress]:
        stmt = select(models.UserProgress).where(
            models.UserProgress.user_id == user_id,
            models.UserProgress.material_id == material_id,
        ).options(selectinload(models.UserProgress.material))
        return self.session.exec(stmt).first()

    def list_for_user(self, user_id: str) -> List[models.UserProgress]:
        """All rows of a user, most recently accessed first, with the material chain loaded."""
        stmt = (
            select(models.UserProgress)
            .where(models.UserProgress.user_id == user_id)
            .options(
                selectinload(models.UserProgress.material)
                .selectinload(models.Material.academic_period)
                .selectinload(models.AcademicPeriod.department)
                .selectinload(models.Department.exam_type)
            )
            .order_by(col(models.UserProgress.last_accessed).desc())
        )
        return self.session.exec(stmt).all()

    def list_all(self) -> List[models.UserProgress]:
        return self.session.exec(select(models.UserProgress)).all()

    def save(self, row: models.UserProgress) -> models.UserProgress:
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return row
