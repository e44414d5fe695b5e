"""CLI script to seed the backend DB with a super admin and demo content.
Usage: python scripts/seed_demo.py [--no-content]

The super admin comes from SUPER_ADMIN_EMAIL / SUPER_ADMIN_PASSWORD /
SUPER_ADMIN_NAME. An existing account with that email is re-activated
and promoted instead of duplicated.
"""
import os
import sys
import argparse
import pathlib
# Ensure `backend/` is on sys.path so `app` package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session, select
from app.database import engine, create_db_and_tables
from app import models, repositories, services

DEMO_HIERARCHY = {
    'Exit Exam': {
        'Computer Science': {
            'Year 4': [
                ('Data Structures Practice', models.MaterialType.QUESTION),
                ('Operating Systems Notes', models.MaterialType.DOCUMENT),
            ],
        },
    },
}

DEMO_QUESTIONS = [
    ('Which structure is LIFO?', 'A stack removes the most recently pushed item first.',
     [('Stack', True), ('Queue', False), ('Heap', False)]),
    ('What is the worst-case lookup in a balanced BST?', None,
     [('O(log n)', True), ('O(n)', False), ('O(1)', False)]),
]


def seed_super_admin(session: Session):
    email = os.getenv('SUPER_ADMIN_EMAIL')
    password = os.getenv('SUPER_ADMIN_PASSWORD')
    if not email or not password:
        print('SUPER_ADMIN_EMAIL/SUPER_ADMIN_PASSWORD not set; skipping super admin')
        return None
    name = os.getenv('SUPER_ADMIN_NAME', 'Super Admin')
    admin = services.AuthService(session).ensure_super_admin(email, password, name)
    print(f'Super admin ready: {admin.email}')
    return admin


def seed_content(session: Session):
    """Create the demo hierarchy unless an exam type of the same name exists."""
    repo = repositories.ContentRepository(session)
    for exam_name, departments in DEMO_HIERARCHY.items():
        existing = session.exec(select(models.ExamType).where(models.ExamType.name == exam_name)).first()
        if existing:
            print(f'Exam type {exam_name!r} already present; skipping content')
            continue
        exam = repo.add(models.ExamType(name=exam_name, description='Demo content'))
        for dept_name, periods in departments.items():
            dept = repo.add(models.Department(name=dept_name, exam_type_id=exam.id))
            for period_name, materials in periods.items():
                period = repo.add(models.AcademicPeriod(name=period_name, department_id=dept.id))
                for title, mtype in materials:
                    material = repo.add(models.Material(title=title, type=mtype, academic_period_id=period.id))
                    if mtype == models.MaterialType.QUESTION:
                        for text, explanation, options in DEMO_QUESTIONS:
                            q = repo.add(models.Question(material_id=material.id, question_text=text, explanation=explanation))
                            for option_text, correct in options:
                                repo.add(models.QuestionOption(question_id=q.id, option_text=option_text, is_correct=correct))
                    print(f'Created material {title!r}')


def main(with_content: bool = True):
    create_db_and_tables()
    with Session(engine) as session:
        seed_super_admin(session)
        if with_content:
            seed_content(session)


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--no-content', action='store_true', help='Only create the super admin')
    args = parser.parse_args()
    main(with_content=not args.no_content)
