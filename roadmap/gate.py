"""Stage gating for the homeowner roadmap.

Decides which stages a user may access and records task completion. A stage
is ``locked`` until the previous stage is verified and the user's
``current_stage`` ceiling reaches it, ``active`` while its tasks are being
completed, and ``completed`` once every required task is done.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, List, Optional

from config import settings
from contracts import (
    ProgressUpdate,
    RoadmapConfig,
    StageProgress,
    StageStatus,
    StageSummary,
    UserProgressRecord,
)
from roadmap.catalog import load_roadmap
from roadmap.errors import (
    InvalidStageError,
    StageAdvanceError,
    StageLockedError,
    UnknownTaskError,
)

if TYPE_CHECKING:
    from stores import ProfileStore


logger = logging.getLogger(__name__)


class StageGate:
    """Roadmap decisions and progress mutations for one roadmap and one store."""

    def __init__(
        self,
        store: Optional["ProfileStore"] = None,
        roadmap: Optional[RoadmapConfig] = None,
        allow_unknown_tasks: Optional[bool] = None,
        enforce_stage_order: Optional[bool] = None,
    ):
        """Initialize the gate.

        Args:
            store: Profile store; defaults to the configured store
            roadmap: Roadmap table; defaults to ``load_roadmap()``
            allow_unknown_tasks: Record undeclared task ids instead of rejecting them
            enforce_stage_order: Validate ordering in ``advance_stage``
        """
        if store is None:
            from stores import get_profile_store
            store = get_profile_store()
        self.store = store
        self.roadmap = roadmap or load_roadmap()
        self.allow_unknown_tasks = (
            settings.allow_unknown_tasks if allow_unknown_tasks is None else allow_unknown_tasks
        )
        self.enforce_stage_order = (
            settings.enforce_stage_order if enforce_stage_order is None else enforce_stage_order
        )

    # --- Pure decisions ---

    def is_stage_unlocked(self, user: UserProgressRecord, stage_id: int) -> bool:
        """Whether ``stage_id`` may be shown and acted on for ``user``."""
        if stage_id < 0:
            raise InvalidStageError(stage_id)
        if stage_id == 0:
            return True
        # The ceiling wins over task completion
        if user.current_stage is not None and stage_id > user.current_stage:
            return False
        return user.is_verified(stage_id - 1)

    def get_stage_status(self, user: UserProgressRecord, stage_id: int) -> StageStatus:
        if not self.is_stage_unlocked(user, stage_id):
            return StageStatus.LOCKED
        if user.is_verified(stage_id):
            return StageStatus.COMPLETED
        return StageStatus.ACTIVE

    def is_feature_unlocked(self, user: Optional[UserProgressRecord], feature_key: str) -> bool:
        """Whether a named feature (TheLedger, TheTeam, TheJobsite) is visible to ``user``."""
        if user is None:
            return False
        threshold = self.roadmap.feature_thresholds().get(feature_key)
        if threshold is None:
            return False
        return self.is_stage_unlocked(user, threshold)

    def unlocked_features(self, user: Optional[UserProgressRecord]) -> List[str]:
        return [f for f in self.roadmap.feature_thresholds() if self.is_feature_unlocked(user, f)]

    def is_roadmap_complete(self, user: UserProgressRecord) -> bool:
        return user.is_verified(self.roadmap.final_stage_id)

    def summarize(self, user: UserProgressRecord) -> List[StageSummary]:
        """Status and task breakdown for every configured stage."""
        summaries = []
        for stage in self.roadmap.stages:
            done = user.progress_for(stage.id).completed_tasks
            summaries.append(StageSummary(
                stage_id=stage.id,
                name=stage.name,
                status=self.get_stage_status(user, stage.id),
                completed_tasks=[t for t in stage.task_ids if t in done],
                remaining_tasks=[t for t in stage.task_ids if t not in done],
                unlocks_feature=stage.unlocks_feature,
            ))
        return summaries

    # --- Mutations ---

    def get_progress(self, user_id: str) -> UserProgressRecord:
        return self.store.read(user_id)

    def verify_task(self, user_id: str, stage_id: int, task_id: str) -> Dict[int, StageProgress]:
        """Mark a task complete and re-check the stage.

        The record is read, updated and written back under the store's
        version check, so concurrent completions are not lost. Completing the
        last required task verifies the stage and raises ``current_stage`` to
        the next stage in the same write. Tasks of a stage the user has not
        unlocked are rejected.

        Args:
            user_id: Owner of the progress record
            stage_id: Stage the task belongs to
            task_id: Task to mark complete

        Returns:
            The full updated stage_progress map

        Raises:
            InvalidStageError: If the stage is not configured
            UnknownTaskError: If the stage does not declare the task and
                unknown tasks are not allowed
            StageLockedError: If the stage is locked for the user
            PersistenceError: If the store fails
        """
        stage = self.roadmap.get_stage(stage_id)
        if stage is None:
            raise InvalidStageError(stage_id)

        required = stage.task_ids
        if task_id not in required:
            if not self.allow_unknown_tasks:
                raise UnknownTaskError(stage_id, task_id, required)
            logger.warning("Recording undeclared task %r for stage %d (user %s)", task_id, stage_id, user_id)

        transition = {}

        def mutate(record: UserProgressRecord) -> ProgressUpdate:
            if not self.is_stage_unlocked(record, stage_id):
                raise StageLockedError(stage_id, record.current_stage)

            entry = record.progress_for(stage_id).model_copy(deep=True)
            if task_id not in entry.completed_tasks:
                entry.completed_tasks.append(task_id)

            was_verified = entry.is_verified
            entry.is_verified = was_verified or all(t in entry.completed_tasks for t in required)

            transition["verified"] = entry.is_verified and not was_verified
            if entry == record.progress_for(stage_id):
                return ProgressUpdate()

            progress = {k: v.model_copy(deep=True) for k, v in record.stage_progress.items()}
            progress[stage_id] = entry

            if transition["verified"]:
                ceiling = record.current_stage or 0
                return ProgressUpdate(stage_progress=progress, current_stage=max(ceiling, stage_id + 1))
            return ProgressUpdate(stage_progress=progress)

        stored = self.store.update(user_id, mutate)

        logger.info("Task %s/%s recorded for %s", stage_id, task_id, user_id)
        if transition.get("verified"):
            logger.info(
                "Stage %d (%s) verified for %s; current_stage now %s",
                stage_id, stage.name, user_id, stored.current_stage,
            )
        return stored.stage_progress

    def advance_stage(self, user_id: str, target_stage_id: int) -> int:
        """Set the user's ``current_stage`` ceiling.

        Unchecked by default. With ``enforce_stage_order`` the target may not
        skip past the next stage and the stage before it must be verified.

        Raises:
            InvalidStageError: If the target is outside 0..final_stage_id + 1
            StageAdvanceError: If ordering is enforced and violated
            PersistenceError: If the store fails
        """
        if not 0 <= target_stage_id <= self.roadmap.final_stage_id + 1:
            raise InvalidStageError(
                target_stage_id,
                f"Cannot advance to stage {target_stage_id}; "
                f"valid targets are 0..{self.roadmap.final_stage_id + 1}",
            )

        def mutate(record: UserProgressRecord) -> ProgressUpdate:
            if self.enforce_stage_order and target_stage_id > 0:
                ceiling = record.current_stage or 0
                if target_stage_id > ceiling + 1:
                    raise StageAdvanceError(
                        f"Cannot skip from stage {ceiling} to {target_stage_id}"
                    )
                if not record.is_verified(target_stage_id - 1):
                    raise StageAdvanceError(
                        f"Stage {target_stage_id - 1} is not verified"
                    )
            if record.current_stage == target_stage_id:
                return ProgressUpdate()
            return ProgressUpdate(current_stage=target_stage_id)

        self.store.update(user_id, mutate)
        logger.info("Advanced %s to stage %d", user_id, target_stage_id)
        return target_stage_id

    def reset_progress(self, user_id: str) -> None:
        """Wipe a user's progress back to stage 0. Irreversible."""
        self.store.write(user_id, ProgressUpdate(current_stage=0, stage_progress={}))
        logger.info("Reset roadmap progress for %s", user_id)


def get_stage_gate(
    store_name: Optional[str] = None,
    roadmap_path: Optional[str] = None,
) -> StageGate:
    """Build a gate over the named (or configured) store and roadmap table.

    Raises:
        InvalidRoadmapError: If the roadmap file is missing or invalid
        ValueError: If the store name is unknown
    """
    from stores import get_profile_store
    return StageGate(store=get_profile_store(store_name), roadmap=load_roadmap(roadmap_path))
