"""Errors raised by the roadmap gate and its profile stores."""


class RoadmapError(Exception):
    """Base class for roadmap gate errors."""


class InvalidStageError(RoadmapError, ValueError):
    """A stage id is not part of the configured roadmap."""

    def __init__(self, stage_id: int, message: str = ""):
        self.stage_id = stage_id
        super().__init__(message or f"Invalid stage id: {stage_id}")


class UnknownTaskError(RoadmapError, ValueError):
    """A task id is not declared by its stage."""

    def __init__(self, stage_id: int, task_id: str, valid: list):
        self.stage_id = stage_id
        self.task_id = task_id
        super().__init__(
            f"Unknown task '{task_id}' for stage {stage_id}. Valid tasks: {valid}"
        )


class StageAdvanceError(RoadmapError):
    """An advance would skip a stage or pass an unverified one."""


class StageLockedError(RoadmapError):
    """A task was submitted for a stage the user has not unlocked."""

    def __init__(self, stage_id: int, current_stage=None):
        self.stage_id = stage_id
        self.current_stage = current_stage
        super().__init__(
            f"Stage {stage_id} is locked (current stage {current_stage})"
        )


class InvalidRoadmapError(RoadmapError, ValueError):
    """A roadmap table failed to load or validate."""


class PersistenceError(RoadmapError):
    """The profile store failed to read or write a record."""


class WriteConflictError(PersistenceError):
    """The stored record changed since it was read."""

    def __init__(self, user_id: str, expected_version: int, actual_version=None):
        self.user_id = user_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        detail = f", found {actual_version}" if actual_version is not None else ""
        super().__init__(
            f"Progress record for {user_id} changed (expected version {expected_version}{detail})"
        )
