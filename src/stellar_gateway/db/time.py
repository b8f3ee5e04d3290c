# src/stellar_gateway/db/time.py
"""Clock helpers shared by models and time-windowed queries."""

from datetime import UTC, datetime, time, timedelta


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def days_ago(days: int) -> datetime:
    """Return the instant ``days`` whole days before now."""
    return utcnow() - timedelta(days=days)


def start_of_today() -> datetime:
    """Return midnight UTC of the current day."""
    return datetime.combine(utcnow().date(), time.min, tzinfo=UTC)


def epoch_millis() -> int:
    return int(utcnow().timestamp() * 1000)
