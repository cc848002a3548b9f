from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from .database import SQLiteStoreDB
from .time_utils import epoch_millis, to_iso, utc_now

logger = logging.getLogger(__name__)


def _json_dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


class DonationCenterCatalog:
    """Read-only donation center list backed by a JSON file.

    The file is read on every lookup so edits show up without a restart.
    A missing or unreadable file yields an empty catalog.
    """

    def __init__(self, path: str) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> str:
        return str(self._path)

    def load(self) -> list[dict[str, Any]]:
        if not self._path.exists():
            logger.error("donation center catalog not found at %s", self._path)
            return []
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("donation center catalog unreadable (%s): %s", self._path, exc)
            return []
        if not isinstance(payload, list):
            return []
        return [item for item in payload if isinstance(item, dict)]

    def search(self, location: str | None) -> list[dict[str, Any]]:
        centers = self.load()
        needle = (location or "").strip().lower()
        if not needle:
            return centers
        matched: list[dict[str, Any]] = []
        for center in centers:
            city = str(center.get("city") or "").lower()
            address = str(center.get("address") or "").lower()
            zip_code = str(center.get("zipCode") or "").lower()
            if needle in city or needle in address or needle in zip_code:
                matched.append(center)
        return matched


class DonationReportStore:
    def __init__(self, db: SQLiteStoreDB) -> None:
        self._db = db

    def append(self, donation_info: dict[str, Any]) -> dict[str, Any]:
        submitted_at = to_iso(utc_now())
        with self._db.write_lock, self._db.connection() as conn:
            report_id = f"DON{epoch_millis()}"
            # Reports landing in the same millisecond still need distinct ids.
            while conn.execute(
                "SELECT 1 FROM donation_reports WHERE report_id = ?",
                (report_id,),
            ).fetchone():
                report_id = f"{report_id}-1"
            cursor = conn.execute(
                """
                INSERT INTO donation_reports (report_id, donation_json, submitted_at)
                VALUES (?, ?, ?)
                """,
                (report_id, _json_dumps(donation_info), submitted_at),
            )
            sequence = cursor.lastrowid
        return {
            **donation_info,
            "id": sequence,
            "reportId": report_id,
            "submittedAt": submitted_at,
        }

    def list_reports(self, limit: int = 50) -> list[dict[str, Any]]:
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT id, report_id, donation_json, submitted_at
                FROM donation_reports
                ORDER BY id DESC
                LIMIT ?
                """,
                (max(1, limit),),
            ).fetchall()
        return [
            {
                **json.loads(row["donation_json"]),
                "id": row["id"],
                "reportId": row["report_id"],
                "submittedAt": row["submitted_at"],
            }
            for row in rows
        ]
