"""Application settings and validation."""

import os
import re
from datetime import timedelta
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd])\s*$")
_DURATION_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}


def parse_duration(value: str) -> timedelta:
    """Parse a short duration string such as `15m` or `7d`.

    Supported units are seconds, minutes, hours and days. Raises
    ValueError for anything else.
    """
    match = _DURATION_RE.match(value or "")
    if not match:
        raise ValueError(f"invalid duration: {value!r}")
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit]: int(amount)})


class Settings:
    ENV: str
    DATABASE_URL: str
    UPLOAD_DIR: Path
    JWT_ACCESS_SECRET: str
    JWT_REFRESH_SECRET: str
    JWT_ALGORITHM: str
    JWT_ACCESS_EXPIRES_IN: str
    JWT_REFRESH_EXPIRES_IN: str
    JWT_ISSUER: str
    JWT_AUDIENCE: str
    COOKIE_SECURE: bool
    COOKIE_DOMAIN: str | None
    CORS_ORIGINS: list[str]
    MAX_UPLOAD_BYTES: int
    MAX_UPLOAD_FILES: int

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'app.db'}")
        self.UPLOAD_DIR = Path(os.getenv("UPLOAD_DIR", str(BASE / "uploads")))
        self.JWT_ACCESS_SECRET = os.getenv("JWT_ACCESS_SECRET", "")
        self.JWT_REFRESH_SECRET = os.getenv("JWT_REFRESH_SECRET", "")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_ACCESS_EXPIRES_IN = os.getenv("JWT_ACCESS_EXPIRES_IN", "15m")
        self.JWT_REFRESH_EXPIRES_IN = os.getenv("JWT_REFRESH_EXPIRES_IN", "7d")
        self.JWT_ISSUER = os.getenv("JWT_ISSUER", "exam-portal")
        self.JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "exam-portal-users")
        self.COOKIE_SECURE = os.getenv("COOKIE_SECURE", "false").lower() == "true"
        self.COOKIE_DOMAIN = os.getenv("COOKIE_DOMAIN") or None
        origins = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:3001")
        self.CORS_ORIGINS = [o.strip() for o in origins.split(",") if o.strip()]
        self.MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))
        self.MAX_UPLOAD_FILES = int(os.getenv("MAX_UPLOAD_FILES", "10"))
        self._validate()

    def _validate(self):
        if not self.JWT_ACCESS_SECRET or not self.JWT_REFRESH_SECRET:
            raise RuntimeError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must both be set")
        if self.JWT_ACCESS_SECRET == self.JWT_REFRESH_SECRET:
            raise RuntimeError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must differ")
        for name in ("JWT_ACCESS_EXPIRES_IN", "JWT_REFRESH_EXPIRES_IN"):
            try:
                parse_duration(getattr(self, name))
            except ValueError as e:
                raise RuntimeError(f"{name} is not a valid duration") from e

    @property
    def access_lifetime(self) -> timedelta:
        return parse_duration(self.JWT_ACCESS_EXPIRES_IN)

    @property
    def refresh_lifetime(self) -> timedelta:
        return parse_duration(self.JWT_REFRESH_EXPIRES_IN)

    @property
    def is_dev(self) -> bool:
        return self.ENV in ("dev", "development")


settings = Settings()
