import re
import jwt
from datetime import datetime, date, timedelta, timezone
from typing import Optional

from .config import settings

TIME_PATTERN = re.compile(r"([01]?[0-9]|2[0-3]):[0-5][0-9]")


# =========================
# Time helpers
# =========================
def utcnow() -> datetime:
    """Naive UTC now; all stored datetimes are naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_current_utc() -> str:
    """Response timestamp, e.g. 2025-03-07 16:22:29"""
    return utcnow().strftime("%Y-%m-%d %H:%M:%S")


def is_valid_time(value: Optional[str]) -> bool:
    return bool(value) and TIME_PATTERN.fullmatch(value) is not None


def normalize_time(value: str) -> str:
    """Pad single-digit hours so HH:MM strings compare lexicographically."""
    hours, minutes = value.split(":")
    return f"{int(hours):02d}:{minutes}"


def time_of_day(value: datetime) -> str:
    return value.strftime("%H:%M")


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_date(value: str) -> date:
    try:
        return datetime.strptime(value[:10], "%Y-%m-%d").date()
    except (TypeError, ValueError):
        from .exceptions import ValidationError
        raise ValidationError("Invalid date format. Use YYYY-MM-DD")


def day_bounds(value: date):
    start = datetime(value.year, value.month, value.day)
    return start, start + timedelta(days=1)


# =========================
# JWT Token Handling
# =========================
def create_jwt_token(data: dict, expires_minutes: int = 60 * 24) -> str:
    """Create JWT access token carrying sub and role"""
    to_encode = data.copy()
    to_encode.update({"exp": utcnow() + timedelta(minutes=expires_minutes), "type": "access"})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_jwt_token(token: str):
    """Decode and verify JWT token"""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None
