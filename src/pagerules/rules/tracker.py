"""Execution lifecycle tracking."""

from typing import Optional
import structlog

from ..core.errors import FrameworkError, RuleInactiveError, RuleNotFoundError
from ..core.models import (
    ActionExecution,
    AutomationAction,
    AutomationExecution,
    AutomationRule,
    ExecutionStatus,
    PageContext,
    new_id,
    now_ms,
)
from .actions import ActionExecutor
from .store import RuleStore

logger = structlog.get_logger()


class ExecutionTracker:
    """
    Creates and drives AutomationExecution records.

    Records live in memory for the life of the process and are never
    persisted. Each record is only mutated by the coroutine running it.

    Flow:
    1. Check the rule exists and is active
    2. Build the execution with one pending ActionExecution per action
    3. Run actions strictly in order through the ActionExecutor
    4. Stamp the outcome and count the run against the rule
    """

    def __init__(self, store: RuleStore, executor: ActionExecutor):
        self.store = store
        self.executor = executor
        self._executions: dict[str, AutomationExecution] = {}

    async def execute_rule(self, rule_id: str, context: PageContext) -> AutomationExecution:
        """
        Run a rule's actions against a context snapshot.

        Raises:
            RuleNotFoundError: rule id unknown
            RuleInactiveError: rule is disabled

        Action and persistence failures do not raise; they are recorded on
        the returned execution.
        """
        rule = self.store.get(rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)
        if not rule.is_active:
            raise RuleInactiveError(rule_id)

        execution = AutomationExecution(
            id=new_id("exec"),
            rule_id=rule_id,
            triggered_at=now_ms(),
            context=context,
            actions=[
                ActionExecution(id=new_id("actx"), action_id=action.id)
                for action in rule.actions
            ],
        )
        self._executions[execution.id] = execution
        log = logger.bind(rule_id=rule_id, execution_id=execution.id)

        execution.transition(ExecutionStatus.RUNNING)
        log.info("execution_started", actions=len(execution.actions))

        try:
            await self._run_actions(execution, rule)
            completed_at = now_ms()
            await self.store.record_execution(rule_id, completed_at)
        except FrameworkError as e:
            self._fail(execution, e.message)
            log.warning("execution_failed", error=e.message, error_type=type(e).__name__)
            return execution
        except Exception as e:
            self._fail(execution, str(e) or type(e).__name__)
            log.exception("execution_error")
            return execution

        execution.completed_at = completed_at
        execution.duration = completed_at - execution.triggered_at
        execution.transition(ExecutionStatus.COMPLETED)
        log.info("execution_completed", duration_ms=execution.duration)
        return execution

    async def _run_actions(self, execution: AutomationExecution, rule: AutomationRule) -> None:
        for record in execution.actions:
            action = self._resolve_action(rule, record.action_id)
            if action is None:
                record.skip()
                logger.info(
                    "action_skipped",
                    execution_id=execution.id,
                    action_id=record.action_id,
                )
                continue

            try:
                await self.executor.run(action, record, execution.context)
            except FrameworkError as e:
                logger.warning(
                    "action_failed",
                    execution_id=execution.id,
                    action_id=action.id,
                    action_type=action.type,
                    error=e.message,
                )
                if rule.stop_on_error:
                    raise

    def _resolve_action(
        self,
        snapshot: AutomationRule,
        action_id: str,
    ) -> Optional[AutomationAction]:
        """
        Find the definition to run for an action id.

        A rule edited mid-flight is consulted so removed actions are
        skipped; a rule deleted mid-flight finishes on its original list.
        """
        current = self.store.get(snapshot.id)
        source = current if current is not None else snapshot
        return source.find_action(action_id)

    @staticmethod
    def _fail(execution: AutomationExecution, error: str) -> None:
        execution.error = error
        execution.completed_at = now_ms()
        execution.transition(ExecutionStatus.FAILED)

    # ==================== Queries ====================

    def get_execution(self, execution_id: str) -> Optional[AutomationExecution]:
        return self._executions.get(execution_id)

    def list_executions(
        self,
        rule_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
    ) -> list[AutomationExecution]:
        """List executions in creation order, optionally filtered."""
        executions = list(self._executions.values())
        if rule_id is not None:
            executions = [e for e in executions if e.rule_id == rule_id]
        if status is not None:
            executions = [e for e in executions if e.status == status]
        return executions
