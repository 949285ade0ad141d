import logging
from datetime import timedelta
from typing import Optional

import bcrypt
from flask import session
from werkzeug.security import check_password_hash

from frontdesk.adapters.sqlite.users_repo import UserStore
from frontdesk.common.errors import InvalidProfile
from frontdesk.common.utils import clinic_now
from frontdesk.domain.user import Role, Session, User

logger = logging.getLogger(__name__)

MAX_FAILED_ATTEMPTS = 5
LOCKOUT_MINUTES = 15
MAX_FULL_NAME_LENGTH = 100


class AuthService:
    """Identity provider: password login, lockout, roles and profile names."""

    def __init__(self, users: UserStore | None = None):
        self.users = users or UserStore()

    # ---- Lockout ----
    def _record_failure(self, user: User) -> None:
        attempts = user.failed_attempts + 1
        locked_until = None
        if attempts >= MAX_FAILED_ATTEMPTS:
            locked_until = clinic_now() + timedelta(minutes=LOCKOUT_MINUTES)
            attempts = 0
            logger.warning("Locking %s %s until %s", user.role, user.username,
                           locked_until.isoformat(timespec="seconds"))
        self.users.record_failure(user.id, attempts, locked_until)

    def _check_password(self, user: User, password: str) -> bool:
        stored_hash = user.password_hash
        if isinstance(stored_hash, str):
            stored_hash = stored_hash.encode("utf-8")
        if not stored_hash:
            return False

        if stored_hash.startswith(b"$2"):
            return bcrypt.checkpw(password.encode("utf-8"), stored_hash)

        # Legacy werkzeug hashes (pbkdf2/scrypt); migrate to bcrypt on success
        try:
            ok = check_password_hash(stored_hash.decode("utf-8"), password)
        except ValueError:
            return False
        if ok:
            logger.info("Upgrading password hash for %s to bcrypt", user.username)
            self.users.set_password_hash(user.id, bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()))
        return ok

    # ---- Public API ----
    def validate(self, username: str, password: str) -> Optional[User]:
        user = self.users.find((username or "").strip())
        if user is None or not user.is_active:
            return None

        if user.is_locked(clinic_now()):
            logger.info("Refusing sign-in for locked account %s", user.username)
            return None

        if not self._check_password(user, password or ""):
            self._record_failure(user)
            return None

        self.users.record_login(user.id)
        return user

    def register_user(self, username: str, password: str, role: str = Role.RECEPTIONIST,
                      full_name: str | None = None) -> bool:
        """Create a staff account. False when the username already exists."""
        if self.users.find(username):
            return False
        if role not in Role.ALL:
            raise ValueError(f"role must be one of {', '.join(Role.ALL)}")
        password_hash = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt())
        return self.users.add(username, password_hash, role, full_name) is not None

    def update_full_name(self, user_id: int, full_name: str) -> User:
        if not isinstance(full_name, str) or not full_name.strip():
            raise InvalidProfile("full name must not be empty")
        name = full_name.strip()
        if len(name) > MAX_FULL_NAME_LENGTH:
            raise InvalidProfile(f"full name must be at most {MAX_FULL_NAME_LENGTH} characters")
        if not self.users.set_full_name(user_id, name):
            raise InvalidProfile(f"no account with id {user_id}")
        return self.users.get(user_id)


def current_session() -> Optional[Session]:
    """The signed-in subject and role carried by the Flask session."""
    user_id = session.get("user_id")
    if user_id is None:
        return None
    return Session(subject_id=user_id, username=session.get("username"), role=session.get("role"))
