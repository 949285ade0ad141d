from datetime import datetime, timedelta, timezone

from flask import current_app, has_app_context

from frontdesk.config.settings import Config


def _utc_offset_minutes() -> int:
    if has_app_context():
        return int(current_app.config.get('CLINIC_UTC_OFFSET_MINUTES', Config.CLINIC_UTC_OFFSET_MINUTES))
    return Config.CLINIC_UTC_OFFSET_MINUTES


def clinic_now() -> datetime:
    """Return current clinic wall time as a naive datetime.

    Timestamps are stored as clinic local time. Deriving it from UTC plus a
    configured offset avoids dependence on the OS timezone.
    """
    utc = datetime.now(timezone.utc).replace(tzinfo=None)
    return utc + timedelta(minutes=_utc_offset_minutes())


def date_key(now: datetime | None = None) -> str:
    """Calendar-day key (YYYY-MM-DD) scoping "today" and token sequences."""
    if now is None:
        now = clinic_now()
    return now.strftime('%Y-%m-%d')


def parse_datetime(dt: datetime | str | None) -> datetime | None:
    """
    Parse a stored timestamp to a datetime object.
    Accepts a datetime, 'YYYY-MM-DD HH:MM:SS', ISO format or a bare date.
    """
    if dt is None:
        return None

    if isinstance(dt, datetime):
        return dt

    if isinstance(dt, str):
        if not dt:
            return None
        for fmt in ('%Y-%m-%d %H:%M:%S', '%Y-%m-%d'):
            try:
                return datetime.strptime(dt, fmt)
            except ValueError:
                continue
        try:
            return datetime.fromisoformat(dt)
        except ValueError:
            return None
    return None


def format_token(number: int) -> str:
    """Render a queue sequence number as a token: 1 -> 'T001', 1000 -> 'T1000'."""
    if number < 1:
        raise ValueError(f"token sequence starts at 1, got {number}")
    return f"T{number:03d}"
