"""Base profile store interface."""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from config import settings
from contracts import ProgressUpdate, UserProgressRecord
from roadmap.errors import WriteConflictError


logger = logging.getLogger(__name__)


def apply_update(record: UserProgressRecord, update: ProgressUpdate) -> UserProgressRecord:
    """Return a copy of ``record`` with the fields set on ``update`` applied and the version bumped."""
    changes = {"version": record.version + 1}
    if "current_stage" in update.model_fields_set:
        changes["current_stage"] = update.current_stage
    if "stage_progress" in update.model_fields_set:
        changes["stage_progress"] = {
            k: v.model_copy(deep=True) for k, v in (update.stage_progress or {}).items()
        }
    return record.model_copy(update=changes, deep=True)


class ProfileStore(ABC):
    """Abstract base class for per-user progress persistence."""

    def __init__(self, max_retries: Optional[int] = None):
        self.max_retries = settings.max_write_retries if max_retries is None else max_retries

    @property
    @abstractmethod
    def name(self) -> str:
        """Store name (memory, json, supabase)."""
        pass

    @abstractmethod
    def read(self, user_id: str) -> UserProgressRecord:
        """Read a user's progress record.

        A user with no stored record reads as stage 0, no progress, version 0.
        """
        pass

    @abstractmethod
    def write(
        self,
        user_id: str,
        update: ProgressUpdate,
        expected_version: Optional[int] = None,
    ) -> UserProgressRecord:
        """Apply a partial update, creating the record if needed.

        Args:
            user_id: Owner of the record
            update: Fields to set
            expected_version: If given, write only when the stored version matches

        Returns:
            The record as stored after the write

        Raises:
            WriteConflictError: If expected_version does not match
            PersistenceError: If the backend fails
        """
        pass

    def update(
        self,
        user_id: str,
        mutate: Callable[[UserProgressRecord], ProgressUpdate],
    ) -> UserProgressRecord:
        """Read-modify-write a record under an optimistic version check.

        ``mutate`` receives the freshly read record and returns the update to
        apply. It is called again on every retry, so it must work from the
        record it is given and nothing it saw on an earlier attempt.
        An empty update means nothing changed; the record is returned
        as read and no write is issued.
        """
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            record = self.read(user_id)
            update = mutate(record)
            if update.is_empty():
                return record
            try:
                return self.write(user_id, update, expected_version=record.version)
            except WriteConflictError as e:
                if attempt == attempts:
                    raise
                logger.warning(
                    "Write conflict on %s (attempt %d/%d): %s", user_id, attempt, attempts, e
                )
        raise RuntimeError("Unexpected exit from update loop")

    def is_available(self) -> bool:
        """Check if this store is usable (credentials set, etc.)."""
        return True
