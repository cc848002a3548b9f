from __future__ import annotations

import sqlite3
import uuid
from typing import Any

from .database import SQLiteStoreDB
from .time_utils import to_iso, utc_now


class AccountExistsError(Exception):
    pass


def _row_to_account(row: sqlite3.Row | None) -> dict[str, Any] | None:
    if row is None:
        return None
    return {
        "id": row["id"],
        "email": row["email"],
        "password_hash": row["password_hash"],
        "name": row["name"],
        "picture": row["picture"],
        "google_id": row["google_id"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class AccountStore:
    def __init__(self, db: SQLiteStoreDB) -> None:
        self._db = db

    def get_by_id(self, user_id: str) -> dict[str, Any] | None:
        with self._db.connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return _row_to_account(row)

    def get_by_email(self, email: str) -> dict[str, Any] | None:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ? LIMIT 1",
                (normalize_email(email),),
            ).fetchone()
        return _row_to_account(row)

    def get_by_google_id(self, google_id: str) -> dict[str, Any] | None:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE google_id = ? LIMIT 1",
                (google_id,),
            ).fetchone()
        return _row_to_account(row)

    def create(
        self,
        *,
        email: str,
        name: str,
        password_hash: str | None = None,
        picture: str | None = None,
        google_id: str | None = None,
    ) -> dict[str, Any]:
        now = to_iso(utc_now())
        user_id = uuid.uuid4().hex
        try:
            with self._db.write_lock, self._db.connection() as conn:
                conn.execute(
                    """
                    INSERT INTO users (
                      id, email, password_hash, name, picture, google_id, created_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (user_id, normalize_email(email), password_hash, name, picture, google_id, now, now),
                )
        except sqlite3.IntegrityError as exc:
            raise AccountExistsError("User already exists") from exc
        account = self.get_by_id(user_id)
        assert account is not None
        return account

    def upsert_google_account(
        self,
        *,
        google_id: str,
        email: str,
        name: str | None,
        picture: str | None,
    ) -> dict[str, Any]:
        existing = self.get_by_google_id(google_id)
        if existing is None:
            by_email = self.get_by_email(email)
            if by_email is None:
                return self.create(
                    email=email,
                    name=name or "Google User",
                    picture=picture,
                    google_id=google_id,
                )
            existing = by_email

        now = to_iso(utc_now())
        with self._db.write_lock, self._db.connection() as conn:
            conn.execute(
                """
                UPDATE users
                SET google_id = ?,
                    name = ?,
                    picture = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    google_id,
                    name or existing["name"],
                    picture or existing["picture"],
                    now,
                    existing["id"],
                ),
            )
        account = self.get_by_id(existing["id"])
        assert account is not None
        return account

    def count(self) -> int:
        with self._db.connection() as conn:
            row = conn.execute("SELECT COUNT(*) AS count FROM users").fetchone()
        return int(row["count"]) if row else 0
