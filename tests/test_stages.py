import pytest

from reefworker.errors import JobStageFailed, UploadFailure
from reefworker.stages import JobStage, StageTracker


def test_stages_advance_in_order():
    tracker = StageTracker("job-1")
    with tracker.stage(JobStage.CONFIG_RESOLVED):
        pass
    with tracker.stage(JobStage.WORKSPACE_ALLOCATED):
        pass

    assert tracker.current is JobStage.WORKSPACE_ALLOCATED
    assert tracker.completed == [JobStage.CONFIG_RESOLVED, JobStage.WORKSPACE_ALLOCATED]
    assert tracker.failed_stage is None


def test_failure_is_tagged_with_stage():
    tracker = StageTracker("job-1")
    cause = UploadFailure("connection reset")

    with pytest.raises(JobStageFailed) as exc_info:
        with tracker.stage(JobStage.UPLOADED):
            raise cause

    assert exc_info.value.stage is JobStage.UPLOADED
    assert exc_info.value.cause is cause
    assert exc_info.value.__cause__ is cause
    assert tracker.failed_stage is JobStage.UPLOADED
    assert tracker.history[-1].error == "UploadFailure: connection reset"


def test_cannot_go_backwards():
    tracker = StageTracker("job-1")
    with tracker.stage(JobStage.UPLOADED):
        pass
    with pytest.raises(ValueError, match="cannot follow"):
        with tracker.stage(JobStage.ENGINE_EXECUTED):
            pass


def test_cleanup_stage_follows_a_failure():
    tracker = StageTracker("job-1")
    with pytest.raises(JobStageFailed):
        with tracker.stage(JobStage.ENGINE_EXECUTED):
            raise RuntimeError("engine crashed")
    with tracker.stage(JobStage.CLEANED_UP):
        pass

    assert tracker.to_dict()["failed_stage"] == "engine_executed"
    assert [r["stage"] for r in tracker.to_dict()["history"]] == ["engine_executed", "cleaned_up"]


def test_stage_logging(caplog):
    tracker = StageTracker("job-9")
    with caplog.at_level("INFO", logger="reefworker.stages"):
        with tracker.stage(JobStage.CONFIG_RESOLVED):
            pass

    assert "[job-9] config_resolved: started" in caplog.text
    assert "[job-9] config_resolved: ok" in caplog.text
