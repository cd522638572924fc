import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from .db import Database
from .errors import AuthenticationError

logger = logging.getLogger(__name__)

USER_COLUMNS = "id, external_user_id, email, access_level, created_at, updated_at"

CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"


@dataclass
class AppUser:
    id: int
    external_user_id: str
    email: Optional[str]
    access_level: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row) -> "AppUser":
        return cls(*row)


# returns (user, "created" | "updated" | "unchanged")
def get_or_create_app_user(conn, external_user_id: str, email: Optional[str],
                           default_access_level: str) -> Tuple[AppUser, str]:
    if not external_user_id:
        raise AuthenticationError("User ID is required to get or create an app user.")

    # ON CONFLICT keeps two first requests from the same user from racing
    row = conn.execute(
        f"""
        INSERT INTO app_users (external_user_id, email, access_level)
        VALUES (%s, %s, %s)
        ON CONFLICT (external_user_id) DO NOTHING
        RETURNING {USER_COLUMNS}
        """,
        (external_user_id, email or None, default_access_level),
    ).fetchone()
    if row:
        logger.info("Created app_user %s with access_level %s", external_user_id, default_access_level)
        return AppUser.from_row(row), CREATED

    row = conn.execute(
        f"SELECT {USER_COLUMNS} FROM app_users WHERE external_user_id = %s",
        (external_user_id,),
    ).fetchone()
    user = AppUser.from_row(row)

    if email and user.email != email:
        row = conn.execute(
            f"""
            UPDATE app_users SET email = %s, updated_at = NOW()
            WHERE external_user_id = %s
            RETURNING {USER_COLUMNS}
            """,
            (email, external_user_id),
        ).fetchone()
        logger.info("Updated email for app_user %s", external_user_id)
        return AppUser.from_row(row), UPDATED

    return user, UNCHANGED


class UserRepository:
    def __init__(self, db: Database, default_access_level: str = "pending_approval"):
        self.db = db
        self.default_access_level = default_access_level

    def get_or_create(self, external_user_id: str, email: Optional[str] = None) -> AppUser:
        with self.db.connection() as conn:
            user, _ = get_or_create_app_user(conn, external_user_id, email, self.default_access_level)
        return user
