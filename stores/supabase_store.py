"""Supabase (PostgREST) profile store.

Progress lives on the ``profiles`` table in three columns: ``current_stage``
(integer), ``stage_progress`` (jsonb) and ``progress_version`` (integer used
for conditional updates).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests
from pydantic import ValidationError

from config import settings
from contracts import ProgressUpdate, UserProgressRecord
from roadmap.errors import PersistenceError, WriteConflictError
from stores.base import ProfileStore, apply_update


logger = logging.getLogger(__name__)

MIGRATION_SQL = """\
ALTER TABLE {table}
ADD COLUMN IF NOT EXISTS current_stage integer DEFAULT 0,
ADD COLUMN IF NOT EXISTS stage_progress jsonb DEFAULT '{{}}'::jsonb,
ADD COLUMN IF NOT EXISTS progress_version integer NOT NULL DEFAULT 0;
"""

_COLUMNS = "id,current_stage,stage_progress,progress_version"


def migration_sql(table: Optional[str] = None) -> str:
    """DDL adding the progress columns to the profiles table."""
    return MIGRATION_SQL.format(table=table or settings.profiles_table)


class SupabaseProfileStore(ProfileStore):
    """Thin wrapper over the PostgREST endpoint of a Supabase project."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        table: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
    ):
        super().__init__(max_retries)
        self.base_url = (base_url or settings.supabase_url).rstrip("/")
        self.api_key = api_key or settings.supabase_key
        self.table = table or settings.profiles_table
        self.timeout = timeout or settings.request_timeout_seconds

    @property
    def name(self) -> str:
        return "supabase"

    def is_available(self) -> bool:
        return bool(self.base_url and self.api_key)

    @property
    def _endpoint(self) -> str:
        return f"{self.base_url}/rest/v1/{self.table}"

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def read(self, user_id: str) -> UserProgressRecord:
        rows = self._request(
            "GET",
            params={"id": f"eq.{user_id}", "select": _COLUMNS},
        )
        if not rows:
            return UserProgressRecord(user_id=user_id)
        return self._parse_row(user_id, rows[0])

    def write(
        self,
        user_id: str,
        update: ProgressUpdate,
        expected_version: Optional[int] = None,
    ) -> UserProgressRecord:
        if expected_version is None:
            # PostgREST has no "increment" on PATCH, so blind writes go through
            # the conditional path with a fresh read.
            return self.update(user_id, lambda _record: update)

        body: Dict[str, Any] = {"progress_version": expected_version + 1}
        if "current_stage" in update.model_fields_set:
            body["current_stage"] = update.current_stage
        if "stage_progress" in update.model_fields_set:
            body["stage_progress"] = {
                str(k): v.model_dump(mode="json") for k, v in (update.stage_progress or {}).items()
            }

        rows = self._request(
            "PATCH",
            params={"id": f"eq.{user_id}", "progress_version": f"eq.{expected_version}"},
            json=body,
            prefer="return=representation",
        )
        if rows:
            logger.debug("Patched progress for %s to version %d", user_id, expected_version + 1)
            return self._parse_row(user_id, rows[0])

        if expected_version != 0:
            raise WriteConflictError(user_id, expected_version)
        return self._insert(user_id, update)

    def _insert(self, user_id: str, update: ProgressUpdate) -> UserProgressRecord:
        """Create the row on first write. A duplicate key means someone else got there first."""
        record = apply_update(UserProgressRecord(user_id=user_id), update)
        body = {
            "id": user_id,
            "current_stage": record.current_stage,
            "stage_progress": {
                str(k): v.model_dump(mode="json") for k, v in record.stage_progress.items()
            },
            "progress_version": record.version,
        }
        rows = self._request("POST", json=body, prefer="return=representation", conflict_user=user_id)
        logger.debug("Inserted progress row for %s", user_id)
        return self._parse_row(user_id, rows[0]) if rows else record

    def _request(
        self,
        method: str,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
        prefer: Optional[str] = None,
        conflict_user: Optional[str] = None,
    ) -> list:
        if not self.is_available():
            raise PersistenceError("Supabase store not configured (ROADMAP_SUPABASE_URL / ROADMAP_SUPABASE_KEY)")
        try:
            r = requests.request(
                method,
                self._endpoint,
                headers=self._headers(prefer),
                params=params,
                json=json,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise PersistenceError(f"{method} {self.table} failed: {e}") from e

        if r.status_code == 409 and conflict_user is not None:
            raise WriteConflictError(conflict_user, 0)
        try:
            r.raise_for_status()
        except requests.HTTPError as e:
            raise PersistenceError(f"{method} {self.table} failed ({r.status_code}): {r.text}") from e

        if not r.content:
            return []
        try:
            data = r.json()
        except ValueError as e:
            raise PersistenceError(f"{method} {self.table} returned invalid JSON") from e
        if isinstance(data, dict):
            return [data]
        return data if isinstance(data, list) else []

    def _parse_row(self, user_id: str, row: Dict[str, Any]) -> UserProgressRecord:
        try:
            return UserProgressRecord(
                user_id=user_id,
                current_stage=row.get("current_stage"),
                stage_progress=row.get("stage_progress") or {},
                version=row.get("progress_version") or 0,
            )
        except ValidationError as e:
            raise PersistenceError(f"Corrupt progress row for {user_id}: {e}") from e
