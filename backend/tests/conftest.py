import os
import shutil
import tempfile
from pathlib import Path

# Settings are read at import time, so the test environment must exist
# before anything under `app` is imported.
_TMP = Path(tempfile.mkdtemp(prefix="exam-portal-tests-"))
os.environ.setdefault("ENV", "test")
os.environ.setdefault("JWT_ACCESS_SECRET", "test-access-secret-0123456789abcdef0123456789")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret-0123456789abcdef012345678")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TMP / 'test.db'}")
os.environ.setdefault("UPLOAD_DIR", str(_TMP / "uploads"))

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

from app import models, services
from app.config import settings
from app.database import create_db_and_tables, engine

PASSWORD = "correct-horse-battery"


@pytest.fixture(autouse=True)
def reset_db():
    """Give every test a fresh set of tables."""
    SQLModel.metadata.drop_all(engine)
    create_db_and_tables()
    yield


@pytest.fixture
def session():
    with Session(engine) as s:
        yield s


@pytest.fixture
def client():
    """A TestClient with its own cookie jar."""
    from app.main import app
    with TestClient(app) as c:
        yield c


@pytest.fixture
def upload_dir():
    root = Path(settings.UPLOAD_DIR)
    root.mkdir(parents=True, exist_ok=True)
    yield root
    shutil.rmtree(root, ignore_errors=True)


@pytest.fixture
def make_admin(session):
    def _make(email="admin@example.com", password=PASSWORD, is_active=True, full_name="Ada Admin", is_super_admin=False):
        admin = models.Admin(
            full_name=full_name,
            email=email,
            password_hash=services.PWD_CTX.hash(password),
            is_active=is_active,
            is_super_admin=is_super_admin,
        )
        return services.repositories.AdminRepository(session).create(admin)
    return _make


@pytest.fixture
def make_user(session):
    def _make(email="student@example.com", password=PASSWORD, is_active=True, name="Sam Student"):
        user = models.User(name=name, email=email, password_hash=services.PWD_CTX.hash(password), is_active=is_active)
        return services.repositories.UserRepository(session).create(user)
    return _make


@pytest.fixture
def hierarchy(session):
    """One exam type -> department -> period with a question and a document material."""
    repo = services.repositories.ContentRepository(session)
    exam = repo.add(models.ExamType(name="Exit Exam", description="National exit exam"))
    dept = repo.add(models.Department(name="Computer Science", exam_type_id=exam.id))
    period = repo.add(models.AcademicPeriod(name="Year 4", department_id=dept.id))
    quiz = repo.add(models.Material(title="Algorithms Quiz", type=models.MaterialType.QUESTION, academic_period_id=period.id))
    notes = repo.add(models.Material(title="OS Notes", type=models.MaterialType.DOCUMENT, academic_period_id=period.id))
    question = repo.add(models.Question(material_id=quiz.id, question_text="Which structure is LIFO?", explanation="Stacks pop the newest item."))
    repo.add(models.QuestionOption(question_id=question.id, option_text="Stack", is_correct=True))
    repo.add(models.QuestionOption(question_id=question.id, option_text="Queue", is_correct=False))
    doc = repo.add(models.Document(material_id=notes.id, file_path="os-notes.pdf", file_type="pdf", original_name="OS Notes.pdf"))
    return {
        "exam_type": exam.id,
        "department": dept.id,
        "period": period.id,
        "quiz": quiz.id,
        "notes": notes.id,
        "question": question.id,
        "document": doc.id,
    }


@pytest.fixture
def login(client):
    """Sign `client` in (cookies land in its jar) and return the response."""
    def _login(email, password=PASSWORD):
        r = client.post("/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.text
        return r
    return _login
