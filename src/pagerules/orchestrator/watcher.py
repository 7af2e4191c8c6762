"""Trigger watching: turns environment notifications into rule checks."""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional
import structlog

from ..browser.environment import Disposer, Environment
from ..core.config import TriggerConfig
from ..core.models import AutomationRule, PageContext
from ..rules.patterns import matches_glob
from .scheduler import Debouncer, IntervalPoller, is_within_schedule

logger = structlog.get_logger()


# Content-analysis collaborator: classifies a snapshot into a page type
PageClassifier = Callable[[PageContext], Awaitable[str]]

# Called with a fresh snapshot whenever a global trigger fires
ContextHandler = Callable[[PageContext], Awaitable[Any]]

# Called with a rule id and snapshot when a per-rule trigger fires
RuleHandler = Callable[[str, PageContext], Awaitable[Any]]


async def classify_general(context: PageContext) -> str:
    """Default classifier."""
    return "general"


@dataclass
class RuleTriggerHandle:
    """Resources installed for one rule's own trigger."""
    rule_id: str
    trigger_type: str
    poller: Optional[IntervalPoller] = None
    disposer: Optional[Disposer] = None


class TriggerWatcher:
    """
    Watches the environment and dispatches trigger firings.

    Global triggers (page load, navigation, content changes) are shared by
    all rules and hand a snapshot to `on_context`. Per-rule triggers
    (time_based polling, user_action listeners) are installed per active
    rule and hand the rule id plus a snapshot to `on_rule`.

    Every subscription is kept as a disposer so `stop()` can tear down
    observers, pollers and listeners explicitly. Work started by a firing
    runs in its own task and is left to finish when the watcher stops.
    """

    def __init__(
        self,
        environment: Environment,
        on_context: ContextHandler,
        on_rule: RuleHandler,
        config: Optional[TriggerConfig] = None,
        page_classifier: Optional[PageClassifier] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.environment = environment
        self.on_context = on_context
        self.on_rule = on_rule
        self.config = config or TriggerConfig()
        self.page_classifier = page_classifier or classify_general
        self.clock = clock

        self._running = False
        self._last_url: Optional[str] = None
        self._disposers: list[Disposer] = []
        self._rule_handles: dict[str, RuleTriggerHandle] = {}
        self._ready_task: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()

        self._navigation_debounce = Debouncer(
            self.config.navigation_debounce_seconds,
            lambda: self._spawn(self._handle_navigation()),
            name="navigation",
        )
        self._content_debounce = Debouncer(
            self.config.content_debounce_seconds,
            lambda: self._spawn(self._handle_global("content_changed")),
            name="content",
        )

    @property
    def running(self) -> bool:
        return self._running

    # ==================== Lifecycle ====================

    async def start(self) -> None:
        """Install the global triggers."""
        if self._running:
            return
        self._running = True

        self._ready_task = asyncio.create_task(self._wait_for_page_load())
        self._disposers.append(
            await self.environment.on_navigation(self._navigation_debounce.trigger)
        )
        self._disposers.append(
            await self.environment.on_content_changed(self._content_debounce.trigger)
        )
        logger.info("trigger_watcher_started")

    async def stop(self) -> None:
        """
        Tear down every observer, poller and listener.

        Executions already running are not interrupted.
        """
        self._running = False

        if self._ready_task and not self._ready_task.done():
            self._ready_task.cancel()
        self._ready_task = None
        self._navigation_debounce.cancel()
        self._content_debounce.cancel()

        disposers, self._disposers = self._disposers, []
        for dispose in disposers:
            await self._dispose(dispose)

        for rule_id in list(self._rule_handles):
            await self.unregister_rule(rule_id)

        logger.info("trigger_watcher_stopped")

    async def drain(self) -> None:
        """Wait for work started by trigger firings to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ==================== Per-rule triggers ====================

    async def register_rule(self, rule: AutomationRule) -> None:
        """(Re)install the per-rule trigger for a rule, if it has one."""
        await self.unregister_rule(rule.id)
        if not rule.is_active:
            return

        trigger = rule.trigger
        if trigger.type == "time_based":
            poller = IntervalPoller(
                self.config.time_poll_interval_seconds,
                lambda: self._spawn(self._check_time_rule(rule)),
                name=f"time:{rule.id}",
            )
            poller.start()
            self._rule_handles[rule.id] = RuleTriggerHandle(
                rule_id=rule.id, trigger_type=trigger.type, poller=poller,
            )
        elif trigger.type == "user_action":
            disposer = await self.environment.on_event(
                trigger.event or "click",
                lambda: self._spawn(self._fire_rule(rule.id, trigger.type)),
                selector=trigger.selector,
            )
            self._rule_handles[rule.id] = RuleTriggerHandle(
                rule_id=rule.id, trigger_type=trigger.type, disposer=disposer,
            )
        else:
            return

        logger.debug("rule_trigger_registered", rule_id=rule.id, trigger=trigger.type)

    async def unregister_rule(self, rule_id: str) -> None:
        """Remove a rule's per-rule trigger. No-op when none is installed."""
        handle = self._rule_handles.pop(rule_id, None)
        if handle is None:
            return

        if handle.poller:
            await handle.poller.stop()
        if handle.disposer:
            await self._dispose(handle.disposer)
        logger.debug("rule_trigger_unregistered", rule_id=rule_id, trigger=handle.trigger_type)

    def registered_rules(self) -> list[str]:
        return list(self._rule_handles)

    # ==================== Evaluation ====================

    async def evaluate_trigger(self, rule: AutomationRule, context: PageContext) -> bool:
        """
        Whether a rule's trigger holds for a snapshot.

        user_action triggers are push-only and never hold here.
        """
        trigger = rule.trigger
        if trigger.type == "page_load":
            return True
        if trigger.type == "url_change":
            return matches_glob(context.url, trigger.pattern)
        if trigger.type == "element_appears":
            if not trigger.selector:
                return False
            return await self.environment.element_exists(trigger.selector)
        if trigger.type == "time_based":
            return is_within_schedule(trigger.schedule, self.clock())
        return False

    async def snapshot(self) -> PageContext:
        """Read the environment into a PageContext."""
        context = PageContext(
            url=await self.environment.current_url(),
            title=await self.environment.title(),
            content=await self.environment.visible_text(),
            form_fields=await self.environment.form_fields(),
        )
        context.page_type = await self.page_classifier(context)
        return context

    # ==================== Firing ====================

    async def _wait_for_page_load(self) -> None:
        try:
            await self.environment.wait_until_ready()
            self._last_url = await self.environment.current_url()
        except Exception:
            logger.exception("page_load_wait_failed")
            return
        self._spawn(self._handle_global("page_load"))

    async def _handle_navigation(self) -> None:
        url = await self.environment.current_url()
        if url == self._last_url:
            return
        self._last_url = url
        await self._handle_global("navigation")

    async def _handle_global(self, source: str) -> None:
        if not self._running:
            return
        context = await self.snapshot()
        logger.debug("trigger_fired", source=source, url=context.url)
        await self.on_context(context)

    async def _check_time_rule(self, rule: AutomationRule) -> None:
        if not is_within_schedule(rule.trigger.schedule, self.clock()):
            return
        await self._fire_rule(rule.id, rule.trigger.type)

    async def _fire_rule(self, rule_id: str, source: str) -> None:
        if not self._running:
            return
        context = await self.snapshot()
        logger.debug("rule_trigger_fired", rule_id=rule_id, source=source)
        await self.on_rule(rule_id, context)

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "trigger_handler_error",
                error=str(error),
                error_type=type(error).__name__,
            )

    @staticmethod
    async def _dispose(dispose: Disposer) -> None:
        try:
            await dispose()
        except Exception as e:
            logger.warning("dispose_failed", error=str(e))
