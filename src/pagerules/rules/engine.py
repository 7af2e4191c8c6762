"""Rules engine - evaluates triggers and conditions, runs rule actions."""

import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional
import structlog

from ..browser.environment import Environment
from ..core.config import ConfigLoader, EngineConfig
from ..core.models import (
    AutomationExecution,
    AutomationRule,
    ExecutionStatus,
    PageContext,
)
from ..core.storage import Storage
from ..orchestrator.watcher import PageClassifier, TriggerWatcher
from ..services.ai import AIProcessor
from ..services.notify import Notifier
from .actions import ActionExecutor
from .evaluator import ConditionEvaluator
from .stats import EngineStats, compute_stats
from .store import RuleStore
from .tracker import ExecutionTracker

logger = structlog.get_logger()


class AutomationEngine:
    """
    Page automation engine.

    An explicit value built from injected collaborators, so several
    independent engines can coexist and tests can drive one
    deterministically.

    Flow:
    1. A trigger fires and the watcher builds a context snapshot
    2. Each active rule's trigger is evaluated against the snapshot
    3. Rules whose trigger and conditions all hold are executed
       concurrently, each running its own actions in order
    4. Executions are recorded and can be queried or aggregated
    """

    def __init__(
        self,
        storage: Storage,
        environment: Environment,
        ai: AIProcessor,
        notifier: Optional[Notifier] = None,
        config: Optional[EngineConfig] = None,
        page_classifier: Optional[PageClassifier] = None,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or EngineConfig()
        self.environment = environment

        # Components
        self.store = RuleStore(storage)
        self.evaluator = ConditionEvaluator(environment.element_exists)
        self.executor = ActionExecutor(
            environment,
            storage,
            ai,
            notifier=notifier,
            config=self.config.actions,
            sleep=sleep,
        )
        self.tracker = ExecutionTracker(self.store, self.executor)
        self.watcher = TriggerWatcher(
            environment,
            on_context=self.check_triggers,
            on_rule=self._handle_rule_trigger,
            config=self.config.triggers,
            page_classifier=page_classifier,
            clock=clock,
        )

        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    # ==================== Lifecycle ====================

    async def start(self) -> None:
        """Load persisted rules and install all triggers."""
        if self._running:
            return

        rules = await self.store.load()
        self._running = True

        for rule in rules:
            if rule.is_active:
                await self.watcher.register_rule(rule)
        await self.watcher.start()

        logger.info(
            "automation_engine_started",
            rules=len(rules),
            per_rule_triggers=len(self.watcher.registered_rules()),
        )

    async def stop(self) -> None:
        """
        Stop reacting to triggers.

        Observers, pollers and listeners are removed; executions already
        running finish on their own.
        """
        if not self._running:
            return
        self._running = False
        await self.watcher.stop()
        logger.info("automation_engine_stopped")

    # ==================== Rule CRUD ====================

    async def create_rule(self, rule_data: dict[str, Any]) -> AutomationRule:
        rule = await self.store.create(rule_data)
        if self._running and rule.is_active:
            await self.watcher.register_rule(rule)
        return rule

    async def update_rule(self, rule_id: str, partial: dict[str, Any]) -> AutomationRule:
        """Update a rule, re-installing its trigger if the trigger or active flag changed."""
        previous = self.store.get(rule_id)
        rule = await self.store.update(rule_id, partial)

        if self._running and previous is not None and (
            previous.trigger != rule.trigger or previous.is_active != rule.is_active
        ):
            if rule.is_active:
                await self.watcher.register_rule(rule)
            else:
                await self.watcher.unregister_rule(rule_id)

        return rule

    async def delete_rule(self, rule_id: str) -> None:
        await self.store.delete(rule_id)
        await self.watcher.unregister_rule(rule_id)

    def get_rule(self, rule_id: str) -> Optional[AutomationRule]:
        return self.store.get(rule_id)

    def get_rules(
        self,
        active_only: bool = False,
        tags: Optional[list[str]] = None,
    ) -> list[AutomationRule]:
        """List rules with optional filtering."""
        rules = self.store.list_rules()

        if active_only:
            rules = [r for r in rules if r.is_active]

        if tags:
            rules = [r for r in rules if any(t in r.tags for t in tags)]

        return rules

    async def import_rules(self, directory: Optional[str] = None) -> list[AutomationRule]:
        """
        Create rules from YAML/JSON documents in a directory.

        Defaults to the configured rules_directory. Files are validated
        before any rule is created.
        """
        directory = directory or self.config.rules_directory
        documents = ConfigLoader().load_rules(directory)

        created = []
        for document in documents:
            created.append(await self.create_rule(document))

        logger.info("rules_imported", directory=directory, count=len(created))
        return created

    # ==================== Execution ====================

    async def execute_rule(self, rule_id: str, context: PageContext) -> AutomationExecution:
        """Run a rule now, bypassing its trigger and conditions."""
        return await self.tracker.execute_rule(rule_id, context)

    async def check_triggers(self, context: PageContext) -> list[AutomationExecution]:
        """
        Evaluate every active rule against a snapshot and run the ones that hold.

        A failure while evaluating one rule is logged and does not affect
        the others. Matching rules run concurrently.
        """
        if not self._running:
            return []

        candidates = []
        for rule in self.store.list_rules():
            if not rule.is_active or rule.trigger.type == "user_action":
                continue
            try:
                if not await self.watcher.evaluate_trigger(rule, context):
                    continue
                if not await self.evaluator.evaluate(rule.conditions, context):
                    continue
            except Exception:
                logger.exception("trigger_evaluation_error", rule_id=rule.id)
                continue
            candidates.append(rule.id)

        if not candidates:
            return []

        logger.debug("rules_triggered", rule_ids=candidates, url=context.url)
        results = await asyncio.gather(
            *(self.tracker.execute_rule(rule_id, context) for rule_id in candidates),
            return_exceptions=True,
        )

        executions = []
        for rule_id, result in zip(candidates, results):
            if isinstance(result, BaseException):
                logger.warning("rule_not_executed", rule_id=rule_id, error=str(result))
                continue
            executions.append(result)
        return executions

    async def _handle_rule_trigger(
        self,
        rule_id: str,
        context: PageContext,
    ) -> Optional[AutomationExecution]:
        """Run a rule whose own trigger fired, if it is still active and its conditions hold."""
        if not self._running:
            return None

        rule = self.store.get(rule_id)
        if rule is None or not rule.is_active:
            return None

        try:
            if not await self.evaluator.evaluate(rule.conditions, context):
                return None
        except Exception:
            logger.exception("trigger_evaluation_error", rule_id=rule_id)
            return None

        return await self.tracker.execute_rule(rule_id, context)

    # ==================== Queries ====================

    def get_execution(self, execution_id: str) -> Optional[AutomationExecution]:
        return self.tracker.get_execution(execution_id)

    def get_executions(
        self,
        rule_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
    ) -> list[AutomationExecution]:
        return self.tracker.list_executions(rule_id=rule_id, status=status)

    def get_stats(self) -> EngineStats:
        return compute_stats(
            self.store.list_rules(),
            self.tracker.list_executions(),
            self.config.time_saved_minutes_per_execution,
        )
