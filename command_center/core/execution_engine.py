"""
Execution engine.

Owns the in-memory registry of executions and drives each one from
``pending`` to a terminal status on its own asyncio task. Progress comes from
a ``ProgressSource``; every state change is published through the realtime
broadcaster. Completion hooks registered by other components run exactly
once per execution, after its final update.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

from ..exceptions import ExecutionStateError, NotFoundError
from ..tracker.enums import ExecutionStatus
from ..tracker.execution import Execution
from ..tracker.primitives import utc_now
from .broadcaster import RealtimeBroadcaster, execution_topic
from .progress import ProgressSource, ProgressUpdate, TimedProgressSource

logger = structlog.get_logger()

CompletionHook = Callable[[Execution, bool], Awaitable[None]]


class ExecutionEngine:
    """Registry and runner for executions.

    Reads always return copies; the engine's own records are mutated only by
    the run task and by ``cancel``.
    """

    def __init__(
        self,
        broadcaster: RealtimeBroadcaster,
        source: Optional[ProgressSource] = None,
        start_delay_seconds: float = 1.0,
        timeout_seconds: float = 3600,
        max_executions: int = 1000,
        max_log_entries: int = 500,
    ):
        self.broadcaster = broadcaster
        self.source = source or TimedProgressSource()
        self.start_delay_seconds = start_delay_seconds
        self.timeout_seconds = timeout_seconds
        self.max_executions = max_executions
        self.max_log_entries = max_log_entries

        self.executions: Dict[str, Execution] = {}
        self.running_tasks: Dict[str, asyncio.Task] = {}
        self._hooks: List[CompletionHook] = []
        self._truncated_logs: Dict[str, int] = {}

    def register_completion_hook(self, hook: CompletionHook) -> None:
        """Register an async callback run as ``hook(execution, success)``."""
        self._hooks.append(hook)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def start(
        self,
        issue_id: str,
        prompt: str = "",
        context: Optional[Dict[str, Any]] = None,
        options: Optional[Dict[str, Any]] = None,
        retry_of: Optional[str] = None,
    ) -> Execution:
        """Register a pending execution and schedule its run.

        Returns as soon as the execution is registered; the run proceeds on
        a background task.
        """
        execution = Execution(
            issue_id=issue_id,
            prompt=prompt,
            context=dict(context or {}),
            options=dict(options or {}),
            retry_of=retry_of,
        )
        self.executions[execution.id] = execution
        self._evict_terminal()

        log = logger.bind(execution_id=execution.id, issue_id=issue_id)
        log.info("execution_registered", job_id=execution.job_id, retry_of=retry_of)

        snapshot = execution.model_copy(deep=True)
        await self.broadcaster.broadcast(
            "execution:started",
            {
                "executionId": execution.id,
                "issueId": issue_id,
                "execution": snapshot.model_dump(mode="json"),
            },
        )
        self.running_tasks[execution.id] = asyncio.create_task(
            self._run(execution.id), name=f"execution-{execution.id}"
        )
        return snapshot

    async def cancel(self, execution_id: str) -> Execution:
        """Cancel a running execution.

        Raises:
            NotFoundError: unknown id
            ExecutionStateError: the execution is not running
        """
        execution = self.executions.get(execution_id)
        if execution is None:
            raise NotFoundError("Execution", execution_id)
        if execution.status != ExecutionStatus.RUNNING:
            raise ExecutionStateError(execution_id, execution.status.value, "cancel")

        execution.status = ExecutionStatus.CANCELLED
        execution.completed_at = utc_now()
        self._append_log(execution, "Execution cancelled")
        logger.info("execution_cancelled", execution_id=execution_id)

        await self.broadcaster.publish(
            execution_topic(execution_id),
            "execution:cancelled",
            {"executionId": execution_id, "issueId": execution.issue_id},
        )
        return execution.model_copy(deep=True)

    async def retry(self, execution_id: str) -> Execution:
        """Start a new execution for the same issue. The original is untouched."""
        original = self.executions.get(execution_id)
        if original is None:
            raise NotFoundError("Execution", execution_id)

        logger.info("execution_retry", execution_id=execution_id)
        return await self.start(
            original.issue_id,
            prompt=original.prompt,
            context=original.context,
            options=original.options,
            retry_of=original.id,
        )

    async def shutdown(self) -> None:
        """Cancel every in-flight run task and fail the executions it leaves unfinished."""
        tasks = [task for task in self.running_tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("execution_engine_stopped", cancelled_tasks=len(tasks))
        for execution in self.executions.values():
            if not execution.is_terminal:
                self._fail(execution, "Engine shut down")
        self.running_tasks.clear()

    async def wait(self, execution_id: str) -> Optional[Execution]:
        """Wait for an execution's run task (hooks included) to finish."""
        task = self.running_tasks.get(execution_id)
        if task is not None:
            await asyncio.shield(task)
        return self.get(execution_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, execution_id: str) -> Optional[Execution]:
        execution = self.executions.get(execution_id)
        return execution.model_copy(deep=True) if execution is not None else None

    def get_logs(self, execution_id: str) -> List[str]:
        execution = self.executions.get(execution_id)
        return list(execution.logs) if execution is not None else []

    def get_result(self, execution_id: str) -> Optional[Dict[str, Any]]:
        execution = self.executions.get(execution_id)
        if execution is None or execution.result is None:
            return None
        return dict(execution.result)

    def list_by_issue(self, issue_id: str) -> List[Execution]:
        return [
            execution.model_copy(deep=True)
            for execution in self.executions.values()
            if execution.issue_id == issue_id
        ]

    def list_all(self) -> List[Execution]:
        return [execution.model_copy(deep=True) for execution in self.executions.values()]

    def stats(self) -> Dict[str, Any]:
        by_status = {status.value: 0 for status in ExecutionStatus}
        for execution in self.executions.values():
            by_status[execution.status.value] += 1
        return {
            "total": len(self.executions),
            "active": by_status["pending"] + by_status["running"],
            "by_status": by_status,
        }

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    async def _run(self, execution_id: str) -> None:
        execution = self.executions[execution_id]
        log = logger.bind(execution_id=execution_id, issue_id=execution.issue_id)
        topic = execution_topic(execution_id)

        try:
            await asyncio.sleep(self.start_delay_seconds)

            execution.status = ExecutionStatus.RUNNING
            log.info("execution_started", source=self.source.name)
            await self.broadcaster.publish(
                topic,
                "execution:progress",
                {"executionId": execution_id, "progress": 0, "status": "running"},
            )

            try:
                await asyncio.wait_for(
                    self._consume(execution), timeout=self.timeout_seconds
                )
            except asyncio.TimeoutError:
                if not execution.is_terminal:
                    self._fail(execution, f"Execution timed out after {self.timeout_seconds}s")
            except Exception as e:
                if not execution.is_terminal:
                    self._fail(execution, str(e) or type(e).__name__)

            if execution.status == ExecutionStatus.COMPLETED:
                log.info("execution_completed", progress=execution.progress)
                await self.broadcaster.publish(
                    topic,
                    "execution:completed",
                    {
                        "executionId": execution_id,
                        "issueId": execution.issue_id,
                        "result": execution.result,
                    },
                )
            elif execution.status == ExecutionStatus.FAILED:
                log.warning("execution_failed", error=execution.error)
                await self.broadcaster.publish(
                    topic,
                    "execution:failed",
                    {
                        "executionId": execution_id,
                        "issueId": execution.issue_id,
                        "error": execution.error,
                    },
                )

            await self._run_hooks(execution)
        except asyncio.CancelledError:
            log.info("execution_task_cancelled", status=execution.status.value)
            raise
        finally:
            self.running_tasks.pop(execution_id, None)

    async def _consume(self, execution: Execution) -> None:
        topic = execution_topic(execution.id)
        result: Optional[Dict[str, Any]] = None

        async for update in self.source.stream(execution.model_copy(deep=True)):
            if execution.status == ExecutionStatus.CANCELLED:
                return
            if update.result is not None:
                result = update.result
            if update.progress >= 100:
                self._complete(execution, update, result)
                return

            execution.progress = max(execution.progress, update.progress)
            if update.log:
                self._append_log(execution, update.log)
            await self.broadcaster.publish(
                topic,
                "execution:progress",
                {
                    "executionId": execution.id,
                    "progress": execution.progress,
                    "log": update.log,
                },
            )

        if execution.status != ExecutionStatus.CANCELLED:
            self._complete(execution, None, result)

    def _complete(
        self,
        execution: Execution,
        update: Optional[ProgressUpdate],
        result: Optional[Dict[str, Any]],
    ) -> None:
        # No await in here: subscribers never observe a completed status
        # without progress 100 and a completion time.
        if update is not None and update.log:
            self._append_log(execution, update.log)
        execution.progress = 100
        execution.status = ExecutionStatus.COMPLETED
        execution.completed_at = utc_now()
        execution.result = result

    def _fail(self, execution: Execution, error: str) -> None:
        execution.status = ExecutionStatus.FAILED
        execution.error = error
        execution.completed_at = utc_now()
        self._append_log(execution, f"Execution failed: {error}")

    async def _run_hooks(self, execution: Execution) -> None:
        success = execution.status == ExecutionStatus.COMPLETED
        for hook in self._hooks:
            try:
                await hook(execution.model_copy(deep=True), success)
            except Exception as e:
                logger.error(
                    "completion_hook_failed",
                    execution_id=execution.id,
                    hook=getattr(hook, "__qualname__", repr(hook)),
                    error=str(e),
                )

    # ------------------------------------------------------------------
    # Bounds
    # ------------------------------------------------------------------

    def _append_log(self, execution: Execution, line: str) -> None:
        execution.logs.append(line)
        overflow = len(execution.logs) - self.max_log_entries
        if overflow <= 0:
            return

        dropped = self._truncated_logs.get(execution.id, 0)
        body = execution.logs[1:] if dropped else execution.logs
        # One slot goes to the marker line
        removed = overflow + (0 if dropped else 1)
        body = body[removed:]
        dropped += removed
        self._truncated_logs[execution.id] = dropped
        execution.logs[:] = [f"... {dropped} earlier log lines truncated"] + body

    def _evict_terminal(self) -> None:
        excess = len(self.executions) - self.max_executions
        if excess <= 0:
            return
        for execution_id in list(self.executions):
            if excess <= 0:
                break
            if self.executions[execution_id].is_terminal:
                del self.executions[execution_id]
                self._truncated_logs.pop(execution_id, None)
                excess -= 1
                logger.debug("execution_evicted", execution_id=execution_id)
