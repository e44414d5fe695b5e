"""CLI script to purge expired refresh tokens from the backend DB.
Usage: python scripts/cleanup_tokens.py

Intended to run from cron (daily is plenty).
"""
import sys
import pathlib
# Ensure `backend/` is on sys.path so `app` package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from app.database import engine, create_db_and_tables
from app import services


def main() -> int:
    """Delete every refresh token whose expiry has passed and report the count."""
    create_db_and_tables()
    with Session(engine) as session:
        deleted = services.AuthService(session).purge_expired_tokens()
    print(f'Cleaned up {deleted} expired refresh tokens')
    return deleted


if __name__ == '__main__':
    main()
