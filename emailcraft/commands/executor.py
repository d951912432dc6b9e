"""
Action Executor

Runs AgentCommands through a tool invoker.

- Auto-executable commands (auto_execute recommendation AND safe operation)
  run sequentially, capped per iteration, with a short pause between them
- A critical failure (auth, rate limit, system unavailable) stops the batch
- Every attempt is bounded by asyncio.wait_for; timeouts count as failures
- Failed commands get up to max_retries attempts, then one fallback attempt
- Manual commands need an approval decision before they run

A tool invoker is any object with `async invoke(command) -> dict`.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..errors import CommandExecutionFailed, is_critical_error
from ..models import (
    AgentCommand,
    ApprovalCallback,
    ExecutionResult,
    ProgressCallback,
    Recommendation,
    RecommendationCategory,
)
from ..utils.config import ConsultantConfig
from .safety import is_safe_for_auto_execution

logger = logging.getLogger(__name__)


BASE_SCORE_IMPACT = {
    "get_figma_assets": 8.0,
    "generate_copy": 12.0,
    "patch_html": 5.0,
    "render_mjml": 3.0,
}
DEFAULT_SCORE_IMPACT = 5.0

REJECTED_MESSAGE = "User rejected command"


@dataclass
class ExecutionContext:
    """Per-iteration execution context."""
    session_id: Optional[str] = None
    iteration_number: int = 0
    user_approvals: Dict[str, bool] = field(default_factory=dict)
    approval_callback: Optional[ApprovalCallback] = None
    progress_callback: Optional[ProgressCallback] = None


@dataclass
class ExecutionPartition:
    auto: List[AgentCommand] = field(default_factory=list)
    manual: List[AgentCommand] = field(default_factory=list)
    deferred: List[AgentCommand] = field(default_factory=list)


def calculate_score_impact(command: AgentCommand, confidence: float) -> float:
    """Advisory estimate of the score gain of a successful command."""
    base = BASE_SCORE_IMPACT.get(command.tool, DEFAULT_SCORE_IMPACT)
    if confidence >= 0.9:
        bonus = 2.0
    elif confidence >= 0.8:
        bonus = 1.0
    else:
        bonus = 0.0
    return base + bonus


class ActionExecutor:
    """
    Executes commands with retries, timeouts, fallbacks and approvals.

    Usage:
        executor = ActionExecutor(invoker, config)
        results = await executor.execute_commands(commands, recommendations, context)
    """

    def __init__(
        self,
        invoker: Any,
        config: Optional[ConsultantConfig] = None,
        pause_seconds: float = 0.5,
        retry_delay: float = 1.0,
    ):
        """
        Args:
            invoker: Tool invoker with `async invoke(command) -> dict`
            config: Consultant configuration
            pause_seconds: Pause between auto-executed commands
            retry_delay: Base delay between retry attempts, doubled each time
        """
        self.invoker = invoker
        self.config = config or ConsultantConfig()
        self.pause_seconds = pause_seconds
        self.retry_delay = retry_delay

    # =========================================================================
    # PARTITIONING
    # =========================================================================

    def partition(
        self,
        commands: List[AgentCommand],
        recommendations: List[Recommendation],
    ) -> ExecutionPartition:
        """Split commands into auto, manual and deferred (auto over the cap)."""
        by_id = {r.id: r for r in recommendations}
        partition = ExecutionPartition()
        cap = self.config.max_auto_execute_per_iteration

        for command in commands:
            rec = by_id.get(command.recommendation_id)
            auto = (
                rec is not None
                and rec.category == RecommendationCategory.AUTO_EXECUTE
                and is_safe_for_auto_execution(command)
            )
            if not auto:
                partition.manual.append(command)
            elif len(partition.auto) < cap:
                partition.auto.append(command)
            else:
                partition.deferred.append(command)

        return partition

    # =========================================================================
    # EXECUTION
    # =========================================================================

    async def execute_commands(
        self,
        commands: List[AgentCommand],
        recommendations: List[Recommendation],
        context: Optional[ExecutionContext] = None,
    ) -> List[ExecutionResult]:
        """
        Execute a batch of commands.

        Manual commands without an approval decision produce no result and
        remain pending. Deferred auto commands are skipped this iteration.
        """
        context = context or ExecutionContext()
        by_id = {r.id: r for r in recommendations}
        partition = self.partition(commands, recommendations)

        if partition.deferred:
            logger.info(
                f"Deferring {len(partition.deferred)} auto commands "
                f"(limit {self.config.max_auto_execute_per_iteration} per iteration)"
            )

        results: List[ExecutionResult] = []
        if self.config.enable_auto_execution and partition.auto:
            results.extend(await self._execute_auto_commands(partition.auto, by_id, context))
        elif partition.auto:
            logger.info(f"Auto-execution disabled, skipping {len(partition.auto)} commands")

        if partition.manual:
            results.extend(await self._execute_manual_commands(partition.manual, by_id, context))

        succeeded = sum(1 for r in results if r.success)
        logger.info(f"Executed {len(results)} commands: {succeeded} succeeded")
        return results

    async def _execute_auto_commands(
        self,
        commands: List[AgentCommand],
        by_id: Dict[str, Recommendation],
        context: ExecutionContext,
    ) -> List[ExecutionResult]:
        results = []
        for index, command in enumerate(commands):
            self._report_progress(context, command, index, len(commands))
            try:
                results.append(await self.execute_command(command, by_id.get(command.recommendation_id)))
            except CommandExecutionFailed as e:
                logger.error(f"Critical failure, stopping auto batch: {e.message}")
                results.append(self._failed_result(command, e.message, e.details.get("attempts", 1)))
                break

            if index < len(commands) - 1 and self.pause_seconds > 0:
                await asyncio.sleep(self.pause_seconds)

        return results

    async def _execute_manual_commands(
        self,
        commands: List[AgentCommand],
        by_id: Dict[str, Recommendation],
        context: ExecutionContext,
    ) -> List[ExecutionResult]:
        results = []
        for command in commands:
            decision = await self._approval_decision(command, context)

            if decision is None:
                logger.info(f"Awaiting approval for {command.recommendation_id}")
                continue
            if decision is False:
                logger.info(f"Rejected by user: {command.recommendation_id}")
                results.append(self._failed_result(command, REJECTED_MESSAGE, 0))
                continue

            try:
                results.append(await self.execute_command(command, by_id.get(command.recommendation_id)))
            except CommandExecutionFailed as e:
                logger.error(f"Critical failure on approved command: {e.message}")
                results.append(self._failed_result(command, e.message, e.details.get("attempts", 1)))

        return results

    @staticmethod
    async def _approval_decision(command: AgentCommand, context: ExecutionContext) -> Optional[bool]:
        if command.recommendation_id in context.user_approvals:
            return bool(context.user_approvals[command.recommendation_id])
        if context.approval_callback is None:
            return None
        return await context.approval_callback(command)

    async def execute_command(
        self,
        command: AgentCommand,
        recommendation: Optional[Recommendation] = None,
    ) -> ExecutionResult:
        """
        Run one command with retries and fallback.

        Raises:
            CommandExecutionFailed: critical failure (no retry, no fallback)
        """
        start = time.monotonic()
        confidence = recommendation.confidence if recommendation else 0.0

        ok, payload, attempts = await self._run_with_retries(command)
        used_fallback = False

        if not ok and command.fallback_strategy is not None:
            logger.info(f"Trying fallback for {command.tool} ({command.recommendation_id})")
            fb_ok, fb_payload, _ = await self._run_with_retries(command.fallback_strategy, max_attempts=1)
            attempts += 1
            used_fallback = True
            if fb_ok:
                ok, payload = True, fb_payload
            else:
                payload = f"{payload}; fallback failed: {fb_payload}"

        elapsed = time.monotonic() - start
        if ok:
            return ExecutionResult(
                recommendation_id=command.recommendation_id,
                command=command,
                success=True,
                result=payload,
                score_impact=calculate_score_impact(command, confidence),
                execution_time=elapsed,
                attempts=attempts,
                used_fallback=used_fallback,
            )

        logger.warning(f"Command {command.tool} failed after {attempts} attempts: {payload}")
        return ExecutionResult(
            recommendation_id=command.recommendation_id,
            command=command,
            success=False,
            error_message=str(payload),
            execution_time=elapsed,
            attempts=attempts,
            used_fallback=used_fallback,
        )

    async def _run_with_retries(
        self,
        command: AgentCommand,
        max_attempts: Optional[int] = None,
    ) -> Tuple[bool, Any, int]:
        """
        Returns (success, result or error message, attempts).

        Raises:
            CommandExecutionFailed: critical error on any attempt
        """
        attempts_allowed = max(1, max_attempts or command.max_retries)
        last_error = ""

        for attempt in range(1, attempts_allowed + 1):
            try:
                result = await asyncio.wait_for(
                    self.invoker.invoke(command),
                    timeout=command.timeout,
                )
                return True, result, attempt
            except asyncio.TimeoutError:
                last_error = f"{command.tool} timed out after {command.timeout}s"
            except Exception as e:
                if is_critical_error(e):
                    raise CommandExecutionFailed(
                        f"{command.tool} failed critically: {e}",
                        {"recommendation_id": command.recommendation_id, "attempts": attempt},
                        critical=True,
                    ) from e
                last_error = f"{command.tool} failed: {e}"

            if attempt < attempts_allowed:
                wait_time = self.retry_delay * (2 ** (attempt - 1))
                logger.warning(
                    f"{last_error} (attempt {attempt}/{attempts_allowed}), retrying in {wait_time}s"
                )
                if wait_time > 0:
                    await asyncio.sleep(wait_time)

        return False, last_error, attempts_allowed

    @staticmethod
    def _failed_result(command: AgentCommand, message: str, attempts: int) -> ExecutionResult:
        return ExecutionResult(
            recommendation_id=command.recommendation_id,
            command=command,
            success=False,
            error_message=message,
            attempts=attempts,
        )

    @staticmethod
    def _report_progress(context: ExecutionContext, command: AgentCommand, index: int, total: int):
        if context.progress_callback is None:
            return
        try:
            context.progress_callback(f"Executing {command.tool}", index / total * 100)
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")
