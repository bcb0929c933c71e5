"""Profile store backed by a single JSON file."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from config import settings
from contracts import ProgressUpdate, UserProgressRecord
from roadmap.errors import PersistenceError, WriteConflictError
from stores.base import ProfileStore, apply_update


logger = logging.getLogger(__name__)


class JsonFileProfileStore(ProfileStore):
    """Stores every user's record in one JSON document.

    Layout: ``{"users": {"<user_id>": {"current_stage": 0, "stage_progress": {...}, "version": 1}}}``.
    Writes go to a temp file in the same directory and are moved into place.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None, max_retries: Optional[int] = None):
        super().__init__(max_retries)
        self.path = Path(path) if path else settings.get_json_store_path()
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "json"

    def read(self, user_id: str) -> UserProgressRecord:
        with self._lock:
            return self._get(self._load(), user_id)

    def write(
        self,
        user_id: str,
        update: ProgressUpdate,
        expected_version: Optional[int] = None,
    ) -> UserProgressRecord:
        with self._lock:
            document = self._load()
            current = self._get(document, user_id)
            if expected_version is not None and current.version != expected_version:
                raise WriteConflictError(user_id, expected_version, current.version)
            stored = apply_update(current, update)
            document.setdefault("users", {})[user_id] = stored.model_dump(
                mode="json", exclude={"user_id"}
            )
            self._save(document)
            return stored

    def _get(self, document: Dict[str, Any], user_id: str) -> UserProgressRecord:
        raw = document.get("users", {}).get(user_id)
        if raw is None:
            return UserProgressRecord(user_id=user_id)
        try:
            return UserProgressRecord.model_validate({**raw, "user_id": user_id})
        except ValidationError as e:
            raise PersistenceError(f"Corrupt progress record for {user_id} in {self.path}: {e}") from e

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {"users": {}}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Could not read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError(f"Unexpected content in {self.path}")
        return data

    def _save(self, document: Dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(document, fh, indent=2, sort_keys=True)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceError(f"Could not write {self.path}: {e}") from e
        logger.debug("Saved %d records to %s", len(document.get("users", {})), self.path)
