"""Tests for StageGate decisions and progress mutations."""

import json

import pytest
from unittest.mock import MagicMock, patch

from config import settings
from contracts import (
    ProgressUpdate,
    RoadmapConfig,
    StageConfig,
    StageProgress,
    StageStatus,
    TaskConfig,
    UserProgressRecord,
)
from roadmap import (
    DEFAULT_ROADMAP,
    InvalidRoadmapError,
    InvalidStageError,
    PersistenceError,
    StageAdvanceError,
    StageGate,
    StageLockedError,
    UnknownTaskError,
    WriteConflictError,
    get_stage_gate,
)
from stores import InMemoryProfileStore


ROADMAP = RoadmapConfig(stages=(
    StageConfig(id=0, name="Start", required_tasks=(
        TaskConfig(id="a", label="A"), TaskConfig(id="b", label="B"),
    )),
    StageConfig(id=1, name="Middle", required_tasks=(TaskConfig(id="c", label="C"),),
                unlocks_feature="TheLedger"),
    StageConfig(id=2, name="End", required_tasks=(TaskConfig(id="d", label="D"),),
                unlocks_feature="TheTeam"),
))


@pytest.fixture
def store():
    return InMemoryProfileStore()


@pytest.fixture
def gate(store):
    return StageGate(store=store, roadmap=ROADMAP, allow_unknown_tasks=False, enforce_stage_order=False)


def _record(current_stage=0, **verified):
    """Build a record; verified maps "s<N>" to is_verified for stage N."""
    progress = {
        int(key[1:]): StageProgress(is_verified=value) for key, value in verified.items()
    }
    return UserProgressRecord(user_id="u1", current_stage=current_stage, stage_progress=progress)


def _progress_update(completed):
    return ProgressUpdate(stage_progress={
        stage_id: StageProgress(completed_tasks=tasks) for stage_id, tasks in completed.items()
    })


class TestIsStageUnlocked:
    """Test the unlock decision."""

    def test_stage_zero_always_unlocked(self, gate):
        """Test stage 0 is open whatever the record says."""
        assert gate.is_stage_unlocked(UserProgressRecord(user_id="u1"), 0)
        assert gate.is_stage_unlocked(_record(current_stage=None), 0)

    def test_ceiling_blocks_next_stage(self, gate):
        """Test a verified stage does not unlock past the ceiling."""
        user = _record(current_stage=0, s0=True)
        assert not gate.is_stage_unlocked(user, 1)

    def test_ceiling_checked_for_every_stage(self, gate):
        """Test the ceiling applies to every stage, not just the next one."""
        user = _record(current_stage=1, s0=True, s1=True)
        assert gate.is_stage_unlocked(user, 1)
        assert not gate.is_stage_unlocked(user, 2)

    def test_sequential_unlock(self, gate):
        """Test the next stage opens once the previous one is verified."""
        user = _record(current_stage=1, s0=True)
        assert gate.is_stage_unlocked(user, 1)

    def test_previous_stage_must_be_verified(self, gate):
        """Test a high ceiling alone does not unlock a stage."""
        user = _record(current_stage=2, s0=True, s1=False)
        assert not gate.is_stage_unlocked(user, 2)

    def test_missing_previous_entry_counts_as_unverified(self, gate):
        """Test a stage with no progress entry counts as unverified."""
        user = _record(current_stage=2)
        assert not gate.is_stage_unlocked(user, 1)

    def test_undefined_ceiling_falls_back_to_verification(self, gate):
        """Test an unset ceiling leaves unlocking to verification alone."""
        user = _record(current_stage=None, s0=True)
        assert gate.is_stage_unlocked(user, 1)
        assert not gate.is_stage_unlocked(user, 2)

    def test_negative_stage_rejected(self, gate):
        """Test negative stage ids raise InvalidStageError."""
        with pytest.raises(InvalidStageError):
            gate.is_stage_unlocked(_record(), -1)


class TestGetStageStatus:
    """Test the three-state status derivation."""

    def test_locked(self, gate):
        """Test a stage past the ceiling reports locked."""
        assert gate.get_stage_status(_record(), 1) == StageStatus.LOCKED

    def test_active(self, gate):
        """Test an open, unfinished stage reports active."""
        assert gate.get_stage_status(_record(), 0) == StageStatus.ACTIVE

    def test_completed(self, gate):
        """Test a verified stage reports completed."""
        user = _record(current_stage=1, s0=True)
        assert gate.get_stage_status(user, 0) == StageStatus.COMPLETED
        assert gate.get_stage_status(user, 1) == StageStatus.ACTIVE

    def test_verified_but_locked_stage_reports_locked(self, gate):
        """Test locked wins over verified."""
        user = _record(current_stage=0, s0=True, s1=True)
        assert gate.get_stage_status(user, 1) == StageStatus.LOCKED

    @pytest.mark.parametrize("current_stage", [None, 0, 1, 2, 3])
    def test_status_consistent_with_unlock(self, gate, current_stage):
        """Test status and unlock decisions agree for every stage."""
        user = _record(current_stage=current_stage, s0=True, s1=True, s2=False)
        for stage_id in range(4):
            status = gate.get_stage_status(user, stage_id)
            unlocked = gate.is_stage_unlocked(user, stage_id)
            assert (status == StageStatus.LOCKED) == (not unlocked)
            assert (status == StageStatus.COMPLETED) == (unlocked and user.is_verified(stage_id))


class TestVerifyTask:
    """Test task completion and stage verification."""

    def test_first_task_recorded(self, gate, store):
        """Test a first task is recorded without verifying the stage."""
        progress = gate.verify_task("u1", 0, "a")
        assert progress[0].completed_tasks == ["a"]
        assert progress[0].is_verified is False

        user = store.read("u1")
        assert user.current_stage == 0
        assert gate.get_stage_status(user, 0) == StageStatus.ACTIVE
        assert gate.get_stage_status(user, 1) == StageStatus.LOCKED

    def test_last_task_verifies_and_advances(self, gate, store):
        """Test the last required task verifies the stage and unlocks the next."""
        gate.verify_task("u1", 0, "a")
        progress = gate.verify_task("u1", 0, "b")
        assert progress[0].is_verified is True

        user = store.read("u1")
        assert user.current_stage == 1
        assert gate.get_stage_status(user, 0) == StageStatus.COMPLETED
        assert gate.get_stage_status(user, 1) == StageStatus.ACTIVE

    def test_idempotent(self, gate, store):
        """Test repeating a completed task changes nothing and skips the write."""
        gate.verify_task("u1", 0, "a")
        progress = gate.verify_task("u1", 0, "a")
        assert progress[0].completed_tasks == ["a"]
        assert store.read("u1").version == 1

    def test_reverifying_does_not_readvance(self, gate, store):
        """Test re-completing a verified stage leaves a lowered ceiling alone."""
        gate.verify_task("u1", 0, "a")
        gate.verify_task("u1", 0, "b")
        gate.advance_stage("u1", 0)

        progress = gate.verify_task("u1", 0, "b")
        assert progress[0].is_verified is True
        assert store.read("u1").current_stage == 0

    def test_auto_advance_keeps_higher_ceiling(self, gate, store):
        """Test verification never lowers a ceiling already set higher."""
        gate.advance_stage("u1", 2)
        gate.verify_task("u1", 0, "a")
        gate.verify_task("u1", 0, "b")
        assert store.read("u1").current_stage == 2

    def test_locked_stage_rejected(self, gate, store):
        """Test tasks of a stage beyond the ceiling are rejected and nothing is written."""
        with pytest.raises(StageLockedError, match="Stage 2 is locked") as exc_info:
            gate.verify_task("u1", 2, "d")
        assert exc_info.value.current_stage == 0

        user = store.read("u1")
        assert user.version == 0
        assert user.current_stage == 0
        assert user.stage_progress == {}

    def test_stage_after_unverified_stage_rejected(self, gate, store):
        """Test a raised ceiling alone does not open a stage whose predecessor is unverified."""
        gate.advance_stage("u1", 2)
        with pytest.raises(StageLockedError):
            gate.verify_task("u1", 1, "c")
        assert store.read("u1").current_stage == 2
        assert store.read("u1").stage_progress == {}

    def test_ceiling_moves_one_stage_at_a_time(self, gate, store):
        """Test each verification raises the ceiling by exactly one stage."""
        ceilings = []
        for stage_id, task in [(0, "a"), (0, "b"), (1, "c")]:
            gate.verify_task("u1", stage_id, task)
            ceilings.append(store.read("u1").current_stage)
        assert ceilings == [0, 1, 2]

    def test_final_stage_advances_past_end(self, gate, store):
        """Test verifying the last stage completes the roadmap."""
        for stage_id, task in [(0, "a"), (0, "b"), (1, "c"), (2, "d")]:
            gate.verify_task("u1", stage_id, task)
        user = store.read("u1")
        assert user.current_stage == 3
        assert gate.is_roadmap_complete(user)

    def test_returns_full_progress_map(self, gate):
        """Test the whole stage_progress map is returned, not just one stage."""
        gate.verify_task("u1", 0, "a")
        gate.verify_task("u1", 0, "b")
        progress = gate.verify_task("u1", 1, "c")
        assert set(progress) == {0, 1}
        assert progress[0].is_verified and progress[1].is_verified

    def test_invalid_stage(self, gate, store):
        """Test an unconfigured stage raises before anything is written."""
        with pytest.raises(InvalidStageError):
            gate.verify_task("u1", 7, "a")
        assert store.read("u1").version == 0

    def test_unknown_task_rejected(self, gate, store):
        """Test an undeclared task is rejected by default."""
        with pytest.raises(UnknownTaskError, match="telemetry"):
            gate.verify_task("u1", 0, "telemetry")
        assert store.read("u1").version == 0

    def test_unknown_task_recorded_when_allowed(self, store):
        """Test undeclared tasks are recorded but never verify a stage."""
        gate = StageGate(store=store, roadmap=ROADMAP, allow_unknown_tasks=True)
        progress = gate.verify_task("u1", 0, "telemetry")
        assert progress[0].completed_tasks == ["telemetry"]
        assert progress[0].is_verified is False

        gate.verify_task("u1", 0, "a")
        progress = gate.verify_task("u1", 0, "b")
        assert progress[0].is_verified is True

    def test_verification_monotonic_under_config_change(self, store):
        """Test a stage verified under an older table stays verified when tasks are added."""
        old_gate = StageGate(store=store, roadmap=ROADMAP)
        for stage_id, task in [(0, "a"), (0, "b"), (1, "c")]:
            old_gate.verify_task("u1", stage_id, task)

        bigger = RoadmapConfig(stages=(
            ROADMAP.stages[0],
            StageConfig(id=1, name="Middle", required_tasks=(
                TaskConfig(id="c", label="C"), TaskConfig(id="c2", label="C2"),
            )),
            ROADMAP.stages[2],
        ))
        progress = StageGate(store=store, roadmap=bigger).verify_task("u1", 1, "c")
        assert progress[1].is_verified is True

    def test_one_write_per_call(self, gate, store):
        """Test each completion is a single store write."""
        gate.verify_task("u1", 0, "a")
        gate.verify_task("u1", 0, "b")
        assert store.read("u1").version == 2

    def test_persistence_error_propagates(self):
        """Test store failures reach the caller unchanged."""
        store = MagicMock()
        store.update.side_effect = PersistenceError("boom")
        gate = StageGate(store=store, roadmap=ROADMAP)
        with pytest.raises(PersistenceError, match="boom"):
            gate.verify_task("u1", 0, "a")

    def test_concurrent_completion_not_lost(self, store):
        """Test a write landing between our read and write is retried, not overwritten."""
        gate = StageGate(store=store, roadmap=ROADMAP)
        original_read = store.read
        raced = []

        def racing_read(user_id):
            record = original_read(user_id)
            if not raced:
                raced.append(True)
                # Another tab completes task "a" between our read and our write
                store.write(user_id, _progress_update({0: ["a"]}))
            return record

        store.read = racing_read
        progress = gate.verify_task("u1", 0, "b")
        assert progress[0].completed_tasks == ["a", "b"]
        assert progress[0].is_verified is True

    def test_conflict_exhausts_retries(self):
        """Test WriteConflictError surfaces once retries run out."""
        store = InMemoryProfileStore(max_retries=1)
        store.write = MagicMock(side_effect=WriteConflictError("u1", 0, 1))
        gate = StageGate(store=store, roadmap=ROADMAP)
        with pytest.raises(WriteConflictError):
            gate.verify_task("u1", 0, "a")
        assert store.write.call_count == 2


class TestAdvanceStage:
    """Test the manual ceiling setter."""

    def test_unchecked_by_default(self, gate, store):
        """Test any in-range target is accepted without ordering checks."""
        assert gate.advance_stage("u1", 2) == 2
        assert store.read("u1").current_stage == 2

    def test_can_move_back(self, gate, store):
        """Test the ceiling can be lowered."""
        gate.advance_stage("u1", 2)
        gate.advance_stage("u1", 1)
        assert store.read("u1").current_stage == 1

    def test_past_end_allowed(self, gate, store):
        """Test final_stage_id + 1 is a valid target."""
        gate.advance_stage("u1", 3)
        assert store.read("u1").current_stage == 3

    def test_same_stage_skips_write(self, gate, store):
        """Test advancing to the current ceiling does not write."""
        gate.advance_stage("u1", 2)
        assert gate.advance_stage("u1", 2) == 2
        assert store.read("u1").version == 1

    @pytest.mark.parametrize("target", [-1, 4, 99])
    def test_out_of_range_rejected(self, gate, target):
        """Test targets outside 0..final_stage_id + 1 are rejected."""
        with pytest.raises(InvalidStageError):
            gate.advance_stage("u1", target)

    def test_enforced_order_rejects_skip(self, store):
        """Test enforced ordering rejects jumping more than one stage."""
        gate = StageGate(store=store, roadmap=ROADMAP, enforce_stage_order=True)
        with pytest.raises(StageAdvanceError, match="skip"):
            gate.advance_stage("u1", 2)

    def test_enforced_order_rejects_unverified(self, store):
        """Test enforced ordering rejects passing an unverified stage."""
        gate = StageGate(store=store, roadmap=ROADMAP, enforce_stage_order=True)
        with pytest.raises(StageAdvanceError, match="not verified"):
            gate.advance_stage("u1", 1)
        assert store.read("u1").version == 0

    def test_enforced_order_allows_next_verified_stage(self, store):
        """Test enforced ordering accepts the next stage once its predecessor is verified."""
        gate = StageGate(store=store, roadmap=ROADMAP, enforce_stage_order=True)
        gate.verify_task("u1", 0, "a")
        gate.verify_task("u1", 0, "b")
        gate.advance_stage("u1", 0)
        assert gate.advance_stage("u1", 1) == 1
        assert store.read("u1").current_stage == 1


class TestResetProgress:
    """Test the administrative reset."""

    def test_reset_scenario(self, gate, store):
        """Test a reset wipes progress and relocks later stages."""
        gate.verify_task("u1", 0, "a")
        gate.verify_task("u1", 0, "b")
        assert gate.get_stage_status(store.read("u1"), 1) == StageStatus.ACTIVE

        gate.reset_progress("u1")
        user = store.read("u1")
        assert user.current_stage == 0
        assert user.stage_progress == {}
        assert gate.get_stage_status(user, 1) == StageStatus.LOCKED

    def test_reset_unknown_user_creates_empty_record(self, gate, store):
        """Test resetting a user with no record writes an empty one."""
        gate.reset_progress("nobody")
        assert store.read("nobody").version == 1


class TestFeaturesAndSummary:
    """Test feature gating and summaries."""

    def test_no_user(self, gate):
        """Test a missing user sees no features."""
        assert gate.is_feature_unlocked(None, "TheLedger") is False

    def test_unknown_feature(self, gate):
        """Test a key no stage unlocks is never visible."""
        assert gate.is_feature_unlocked(_record(current_stage=3, s0=True, s1=True), "TheJobsite") is False

    def test_feature_follows_stage_unlock(self, gate):
        """Test a feature becomes visible when its stage unlocks."""
        user = _record(current_stage=1, s0=True)
        assert gate.is_feature_unlocked(user, "TheLedger")
        assert not gate.is_feature_unlocked(user, "TheTeam")
        assert gate.unlocked_features(user) == ["TheLedger"]

    def test_default_roadmap_features(self, store):
        """Test the built-in feature thresholds."""
        gate = StageGate(store=store, roadmap=DEFAULT_ROADMAP)
        user = _record(current_stage=3, s0=True, s1=True, s2=True)
        assert gate.is_feature_unlocked(user, "TheLedger")
        assert gate.is_feature_unlocked(user, "TheTeam")
        assert not gate.is_feature_unlocked(user, "TheJobsite")

    def test_summarize(self, gate):
        """Test summaries split done and remaining tasks per stage."""
        gate.verify_task("u1", 0, "b")
        summaries = gate.summarize(gate.get_progress("u1"))
        assert [s.status for s in summaries] == [
            StageStatus.ACTIVE, StageStatus.LOCKED, StageStatus.LOCKED,
        ]
        assert summaries[0].completed_tasks == ["b"]
        assert summaries[0].remaining_tasks == ["a"]
        assert summaries[1].unlocks_feature == "TheLedger"


class TestGetStageGate:
    """Test the convenience constructor."""

    def test_named_store_and_default_roadmap(self):
        """Test the gate uses the named store and the built-in roadmap."""
        with patch.object(settings, "roadmap_config_path", None):
            gate = get_stage_gate("memory")
        assert isinstance(gate.store, InMemoryProfileStore)
        assert gate.roadmap == DEFAULT_ROADMAP

    def test_roadmap_path(self, tmp_path):
        """Test a JSON roadmap file replaces the built-in table."""
        path = tmp_path / "roadmap.json"
        path.write_text(json.dumps({
            "stages": [{"id": 0, "name": "Only Stage", "required_tasks": [{"id": "x", "label": "X"}]}]
        }))
        gate = get_stage_gate("memory", str(path))
        assert gate.roadmap.final_stage_id == 0
        assert gate.roadmap.required_task_ids(0) == ["x"]

    def test_missing_roadmap_file(self, tmp_path):
        """Test a missing roadmap file raises InvalidRoadmapError."""
        with pytest.raises(InvalidRoadmapError):
            get_stage_gate("memory", str(tmp_path / "missing.json"))

    def test_unknown_store(self):
        """Test an unknown store name raises ValueError."""
        with pytest.raises(ValueError, match="Unknown profile store"):
            get_stage_gate("redis")
