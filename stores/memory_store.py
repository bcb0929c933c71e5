"""In-process profile store."""

import threading
from typing import Dict, Optional

from contracts import ProgressUpdate, UserProgressRecord
from roadmap.errors import WriteConflictError
from stores.base import ProfileStore, apply_update


class InMemoryProfileStore(ProfileStore):
    """Keeps records in a dict. Useful for tests and single-process tools."""

    def __init__(self, max_retries: Optional[int] = None):
        super().__init__(max_retries)
        self._records: Dict[str, UserProgressRecord] = {}
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "memory"

    def read(self, user_id: str) -> UserProgressRecord:
        with self._lock:
            record = self._records.get(user_id)
            if record is None:
                return UserProgressRecord(user_id=user_id)
            return record.model_copy(deep=True)

    def write(
        self,
        user_id: str,
        update: ProgressUpdate,
        expected_version: Optional[int] = None,
    ) -> UserProgressRecord:
        with self._lock:
            current = self._records.get(user_id) or UserProgressRecord(user_id=user_id)
            if expected_version is not None and current.version != expected_version:
                raise WriteConflictError(user_id, expected_version, current.version)
            stored = apply_update(current, update)
            self._records[user_id] = stored
            return stored.model_copy(deep=True)
