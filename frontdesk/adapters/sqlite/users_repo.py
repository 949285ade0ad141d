import logging
import sqlite3
from datetime import datetime
from typing import Optional

from frontdesk.adapters.sqlite.core import get_db
from frontdesk.common.utils import clinic_now, parse_datetime
from frontdesk.domain.user import Role, User

logger = logging.getLogger(__name__)


def _stamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat(timespec="seconds") if value else None


class UserStore:
    """Staff accounts behind the identity provider: doctors and receptionists."""

    def find(self, username: str) -> Optional[User]:
        row = get_db().execute(
            "SELECT * FROM users WHERE username = ?", (username,)
        ).fetchone()
        return self._map_row(row) if row else None

    def get(self, user_id: int) -> Optional[User]:
        row = get_db().execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._map_row(row) if row else None

    def add(self, username: str, password_hash: bytes, role: str,
            full_name: Optional[str] = None) -> Optional[User]:
        """Insert an account. Returns None when the username is taken."""
        if role not in Role.ALL:
            raise ValueError(f"role must be one of {', '.join(Role.ALL)}")
        try:
            cursor = self._write(
                "INSERT INTO users (username, password_hash, role, full_name) VALUES (?, ?, ?, ?)",
                (username, password_hash, role, full_name),
            )
        except sqlite3.IntegrityError as e:
            logger.warning("Could not create %s %s: %s", role, username, e)
            return None
        return self.get(cursor.lastrowid)

    def record_failure(self, user_id: int, failed_attempts: int, locked_until: Optional[datetime]) -> None:
        self._write(
            "UPDATE users SET failed_attempts = ?, locked_until = ? WHERE id = ?",
            (failed_attempts, _stamp(locked_until), user_id),
        )

    def record_login(self, user_id: int) -> None:
        """Clear the failure count and any lock, and stamp last_login."""
        self._write(
            "UPDATE users SET failed_attempts = 0, locked_until = NULL, last_login = ? WHERE id = ?",
            (_stamp(clinic_now()), user_id),
        )

    def set_password_hash(self, user_id: int, password_hash: bytes) -> None:
        self._write("UPDATE users SET password_hash = ? WHERE id = ?", (password_hash, user_id))

    def set_full_name(self, user_id: int, full_name: str) -> bool:
        cursor = self._write("UPDATE users SET full_name = ? WHERE id = ?", (full_name, user_id))
        return cursor.rowcount > 0

    @staticmethod
    def _write(sql: str, params: tuple) -> sqlite3.Cursor:
        db = get_db()
        try:
            cursor = db.execute(sql, params)
            db.commit()
        except sqlite3.Error:
            db.rollback()
            raise
        return cursor

    @staticmethod
    def _map_row(row) -> User:
        return User(
            id=row["id"],
            username=row["username"],
            role=row["role"],
            password_hash=row["password_hash"],
            full_name=row["full_name"],
            is_active=bool(row["is_active"]),
            failed_attempts=row["failed_attempts"] or 0,
            locked_until=parse_datetime(row["locked_until"]),
            last_login=parse_datetime(row["last_login"]),
            created_at=parse_datetime(row["created_at"]),
        )
