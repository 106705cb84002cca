"""Tests for the execution engine."""

import asyncio

import pytest

from command_center.core.broadcaster import GLOBAL_TOPIC, RealtimeBroadcaster, execution_topic
from command_center.core.execution_engine import ExecutionEngine
from command_center.core.progress import ProgressSource, ProgressUpdate, TimedProgressSource
from command_center.exceptions import ExecutionStateError, NotFoundError
from command_center.tracker.enums import ExecutionStatus

from .conftest import EventRecorder, GatedSource, wait_until


class ScriptedSource(ProgressSource):
    name = "scripted"

    def __init__(self, updates):
        self.updates = updates

    async def stream(self, execution):
        for update in self.updates:
            await asyncio.sleep(0)
            yield update


class FailingSource(ProgressSource):
    name = "failing"

    async def stream(self, execution):
        yield ProgressUpdate(progress=20, log="Step 1 completed")
        raise RuntimeError("claude process exited with code 1")


class SlowSource(ProgressSource):
    name = "slow"

    async def stream(self, execution):
        yield ProgressUpdate(progress=10, log="Step 1 completed")
        await asyncio.sleep(10)
        yield ProgressUpdate(progress=100)


def make_engine(source=None, **kwargs) -> ExecutionEngine:
    kwargs.setdefault("start_delay_seconds", 0)
    return ExecutionEngine(
        RealtimeBroadcaster(),
        source=source or TimedProgressSource(steps=10, step_delay_seconds=0),
        **kwargs,
    )


class HookRecorder:
    def __init__(self):
        self.calls = []

    async def __call__(self, execution, success):
        self.calls.append((execution, success))


class TestExecutionLifecycle:
    """Start, progress and completion."""

    @pytest.mark.asyncio
    async def test_start_returns_pending_execution(self):
        engine = make_engine()
        execution = await engine.start("issue-1", "Fix the bug", context={"k": "v"})

        assert execution.status == ExecutionStatus.PENDING
        assert execution.progress == 0
        assert execution.job_id.startswith("job-")
        assert execution.completed_at is None
        assert execution.context == {"k": "v"}

        await engine.wait(execution.id)

    @pytest.mark.asyncio
    async def test_run_completes_with_ten_steps(self):
        engine = make_engine()
        execution = await engine.start("issue-1", "Fix the bug")
        finished = await engine.wait(execution.id)

        assert finished.status == ExecutionStatus.COMPLETED
        assert finished.progress == 100
        assert finished.completed_at is not None
        assert finished.logs == [f"Step {i} completed" for i in range(1, 11)]
        assert finished.result == {
            "success": True,
            "files_modified": ["file1.ts", "file2.ts"],
            "tests_run": 5,
            "coverage": 85,
        }

    @pytest.mark.asyncio
    async def test_progress_events_are_ordered(self):
        engine = make_engine()
        recorder = EventRecorder()

        execution = await engine.start("issue-1")
        engine.broadcaster.subscribe(execution_topic(execution.id), recorder)
        await engine.wait(execution.id)

        progress = [event["progress"] for event in recorder.events("execution:progress")]
        assert progress == [0, 10, 20, 30, 40, 50, 60, 70, 80, 90]
        assert recorder.names[-1] == "execution:completed"
        assert recorder.events("execution:completed")[0]["result"]["tests_run"] == 5

    @pytest.mark.asyncio
    async def test_started_event_is_global(self):
        engine = make_engine()
        recorder = EventRecorder()
        engine.broadcaster.subscribe(GLOBAL_TOPIC, recorder)

        execution = await engine.start("issue-1")
        await engine.wait(execution.id)

        started = recorder.events("execution:started")
        assert len(started) == 1
        assert started[0]["executionId"] == execution.id
        assert started[0]["issueId"] == "issue-1"

    @pytest.mark.asyncio
    async def test_progress_never_decreases(self):
        source = ScriptedSource(
            [
                ProgressUpdate(progress=30, log="a"),
                ProgressUpdate(progress=20, log="b"),
                ProgressUpdate(progress=50, log="c"),
            ]
        )
        engine = make_engine(source)
        recorder = EventRecorder()

        execution = await engine.start("issue-1")
        engine.broadcaster.subscribe(execution_topic(execution.id), recorder)
        finished = await engine.wait(execution.id)

        progress = [event["progress"] for event in recorder.events("execution:progress")]
        assert progress == [0, 30, 30, 50]
        # An exhausted source completes the execution
        assert finished.status == ExecutionStatus.COMPLETED
        assert finished.progress == 100
        assert finished.logs == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_completed_state_is_consistent_for_observers(self):
        engine = make_engine()
        seen = []

        async def observer(message):
            snapshot = engine.get(message["data"]["executionId"])
            seen.append((snapshot.status, snapshot.progress, snapshot.completed_at is not None))

        execution = await engine.start("issue-1")
        engine.broadcaster.subscribe(execution_topic(execution.id), observer)
        await engine.wait(execution.id)

        for status, progress, has_completed_at in seen:
            assert (progress == 100) == (status == ExecutionStatus.COMPLETED)
            assert has_completed_at == status.is_terminal

    @pytest.mark.asyncio
    async def test_reads_return_copies(self):
        engine = make_engine()
        execution = await engine.start("issue-1")
        await engine.wait(execution.id)

        logs = engine.get_logs(execution.id)
        logs.append("tampered")
        snapshot = engine.get(execution.id)
        snapshot.progress = 0

        assert "tampered" not in engine.get_logs(execution.id)
        assert engine.get(execution.id).progress == 100


class TestCompletionHooks:
    """Hooks registered with the engine."""

    @pytest.mark.asyncio
    async def test_hook_runs_once_on_success(self):
        engine = make_engine()
        hook = HookRecorder()
        engine.register_completion_hook(hook)

        execution = await engine.start("issue-1")
        await engine.wait(execution.id)

        assert len(hook.calls) == 1
        called_with, success = hook.calls[0]
        assert success is True
        assert called_with.id == execution.id
        assert called_with.status == ExecutionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_hook_errors_do_not_break_the_engine(self):
        engine = make_engine()
        second = HookRecorder()

        async def broken(execution, success):
            raise ValueError("hook exploded")

        engine.register_completion_hook(broken)
        engine.register_completion_hook(second)

        execution = await engine.start("issue-1")
        finished = await engine.wait(execution.id)

        assert finished.status == ExecutionStatus.COMPLETED
        assert len(second.calls) == 1


class TestFailures:
    """Source errors and timeouts."""

    @pytest.mark.asyncio
    async def test_source_error_fails_execution(self):
        engine = make_engine(FailingSource())
        hook = HookRecorder()
        engine.register_completion_hook(hook)
        recorder = EventRecorder()

        execution = await engine.start("issue-1")
        engine.broadcaster.subscribe(execution_topic(execution.id), recorder)
        finished = await engine.wait(execution.id)

        assert finished.status == ExecutionStatus.FAILED
        assert finished.error == "claude process exited with code 1"
        assert finished.progress == 20
        assert finished.completed_at is not None
        assert hook.calls[0][1] is False
        assert recorder.events("execution:failed")[0]["error"] == finished.error
        assert recorder.events("execution:completed") == []

    @pytest.mark.asyncio
    async def test_timeout_fails_execution(self):
        engine = make_engine(SlowSource(), timeout_seconds=0.05)
        hook = HookRecorder()
        engine.register_completion_hook(hook)

        execution = await engine.start("issue-1")
        finished = await engine.wait(execution.id)

        assert finished.status == ExecutionStatus.FAILED
        assert "timed out" in finished.error
        assert hook.calls[0][1] is False


class TestCancel:
    """Cancelling executions."""

    @pytest.mark.asyncio
    async def test_cancel_running_execution(self):
        source = GatedSource()
        engine = make_engine(source)
        hook = HookRecorder()
        engine.register_completion_hook(hook)
        recorder = EventRecorder()

        execution = await engine.start("issue-1")
        engine.broadcaster.subscribe(execution_topic(execution.id), recorder)
        await wait_until(lambda: engine.get(execution.id).progress == 10)

        cancelled = await engine.cancel(execution.id)
        assert cancelled.status == ExecutionStatus.CANCELLED
        assert cancelled.completed_at is not None
        assert cancelled.logs[-1] == "Execution cancelled"

        source.gate.set()
        finished = await engine.wait(execution.id)

        assert finished.status == ExecutionStatus.CANCELLED
        assert finished.progress == 10
        assert finished.result is None
        assert hook.calls == [(hook.calls[0][0], False)]
        assert "execution:cancelled" in recorder.names
        assert "execution:completed" not in recorder.names

    @pytest.mark.asyncio
    async def test_cancel_completed_execution_is_rejected(self):
        engine = make_engine()
        execution = await engine.start("issue-1")
        await engine.wait(execution.id)

        with pytest.raises(ExecutionStateError) as exc_info:
            await engine.cancel(execution.id)

        assert exc_info.value.status == "completed"
        assert engine.get(execution.id).status == ExecutionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_cancel_pending_execution_is_rejected(self):
        engine = make_engine(start_delay_seconds=10)
        execution = await engine.start("issue-1")

        with pytest.raises(ExecutionStateError):
            await engine.cancel(execution.id)

        await engine.shutdown()

    @pytest.mark.asyncio
    async def test_cancel_unknown_execution(self):
        engine = make_engine()

        with pytest.raises(NotFoundError):
            await engine.cancel("missing")


class TestRetry:
    """Retrying executions."""

    @pytest.mark.asyncio
    async def test_retry_creates_new_execution(self):
        engine = make_engine(FailingSource())
        original = await engine.start("issue-1", "Fix it", context={"attempt": 1})
        await engine.wait(original.id)

        engine.source = TimedProgressSource(steps=2, step_delay_seconds=0)
        retried = await engine.retry(original.id)
        finished = await engine.wait(retried.id)

        assert retried.id != original.id
        assert retried.retry_of == original.id
        assert retried.issue_id == "issue-1"
        assert retried.prompt == "Fix it"
        assert retried.context == {"attempt": 1}
        assert finished.status == ExecutionStatus.COMPLETED
        assert engine.get(original.id).status == ExecutionStatus.FAILED
        assert [e.id for e in engine.list_by_issue("issue-1")] == [original.id, retried.id]

    @pytest.mark.asyncio
    async def test_retry_unknown_execution(self):
        engine = make_engine()

        with pytest.raises(NotFoundError) as exc_info:
            await engine.retry("missing")

        assert exc_info.value.message == "Execution not found"


class TestReadsAndBounds:
    """Queries, stats and registry bounds."""

    def test_unknown_ids_read_as_empty(self):
        engine = make_engine()

        assert engine.get("missing") is None
        assert engine.get_logs("missing") == []
        assert engine.get_result("missing") is None
        assert engine.list_by_issue("missing") == []

    @pytest.mark.asyncio
    async def test_stats_counts_by_status(self):
        engine = make_engine()
        first = await engine.start("issue-1")
        await engine.wait(first.id)
        second = await engine.start("issue-2")
        await engine.wait(second.id)

        stats = engine.stats()
        assert stats["total"] == 2
        assert stats["active"] == 0
        assert stats["by_status"]["completed"] == 2

    @pytest.mark.asyncio
    async def test_log_entries_are_capped(self):
        engine = make_engine(TimedProgressSource(steps=30, step_delay_seconds=0), max_log_entries=10)
        execution = await engine.start("issue-1")
        finished = await engine.wait(execution.id)

        assert len(finished.logs) == 10
        assert finished.logs[0] == "... 21 earlier log lines truncated"
        assert finished.logs[1] == "Step 22 completed"
        assert finished.logs[-1] == "Step 30 completed"

    @pytest.mark.asyncio
    async def test_oldest_terminal_executions_are_evicted(self):
        engine = make_engine(max_executions=2)
        ids = []
        for issue in ("a", "b", "c"):
            execution = await engine.start(issue)
            await engine.wait(execution.id)
            ids.append(execution.id)

        assert engine.get(ids[0]) is None
        assert [e.id for e in engine.list_all()] == ids[1:]

    @pytest.mark.asyncio
    async def test_shutdown_cancels_in_flight_runs(self):
        engine = make_engine(start_delay_seconds=10)
        pending = await engine.start("issue-1")

        await engine.shutdown()

        assert engine.running_tasks == {}
        stopped = engine.get(pending.id)
        assert stopped.status == ExecutionStatus.FAILED
        assert stopped.error == "Engine shut down"
        assert stopped.completed_at is not None

    @pytest.mark.asyncio
    async def test_shutdown_fails_running_executions(self):
        engine = make_engine(SlowSource())
        hook = HookRecorder()
        engine.register_completion_hook(hook)
        execution = await engine.start("issue-1")
        await wait_until(lambda: engine.get(execution.id).progress == 10)

        await engine.shutdown()

        stopped = engine.get(execution.id)
        assert stopped.status == ExecutionStatus.FAILED
        assert stopped.error == "Engine shut down"
        assert stopped.progress == 10
        assert stopped.completed_at is not None
        assert stopped.logs[-1] == "Execution failed: Engine shut down"
        assert hook.calls == []
