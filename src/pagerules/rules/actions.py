"""Action dispatch and execution for the automation engine."""

import asyncio
import uuid
from typing import Any, Callable, Optional, Awaitable
import structlog

from ..browser.environment import Environment
from ..core.config import ActionConfig
from ..core.errors import ActionError, ElementNotFoundError, FrameworkError, RuleError
from ..core.models import (
    ActionExecution,
    ActionType,
    AutomationAction,
    PageContext,
    now_ms,
)
from ..core.storage import Storage
from ..services.ai import AIProcessor
from ..services.notify import LogNotifier, Notifier

logger = structlog.get_logger()


# Type alias for action handlers
ActionHandler = Callable[[AutomationAction, PageContext], Awaitable[Any]]


class ActionExecutor:
    """
    Closed dispatch over the action types.

    Every ActionType must have a handler; construction fails otherwise, so
    adding an action type without wiring it up is caught immediately.
    Handlers raise on failure; `execute` wraps foreign exceptions in
    ActionError and `run` records the outcome on the ActionExecution.
    """

    def __init__(
        self,
        environment: Environment,
        storage: Storage,
        ai: AIProcessor,
        notifier: Optional[Notifier] = None,
        config: Optional[ActionConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.environment = environment
        self.storage = storage
        self.ai = ai
        self.notifier = notifier
        self.config = config or ActionConfig()
        self._sleep = sleep
        self._fallback_notifier = LogNotifier()

        self._handlers: dict[str, ActionHandler] = {}
        self._register_builtin_actions()

        missing = {t.value for t in ActionType} - set(self._handlers)
        if missing:
            raise RuleError(f"No handler for action types: {sorted(missing)}")

    def register(self, action_type: ActionType, handler: ActionHandler) -> None:
        """Replace the handler for an action type."""
        self._handlers[ActionType(action_type).value] = handler

    def get_handler(self, action_type: str) -> Optional[ActionHandler]:
        """Get handler for action type."""
        return self._handlers.get(action_type)

    def list_actions(self) -> list[str]:
        """List all registered action types."""
        return list(self._handlers.keys())

    async def execute(self, action: AutomationAction, context: PageContext) -> Any:
        """
        Run one action and return its result.

        Raises:
            ActionError (or a subclass) describing the failure
        """
        handler = self._handlers.get(action.type)
        if not handler:
            raise ActionError(
                f"Unknown action type: {action.type}",
                action_id=action.id,
                action_type=action.type,
            )

        try:
            return await handler(action, context)
        except FrameworkError as e:
            if not e.context.get("action_id"):
                e.context["action_id"] = action.id
                e.context["action_type"] = action.type
            raise
        except Exception as e:
            raise ActionError(
                str(e) or e.__class__.__name__,
                action_id=action.id,
                action_type=action.type,
            ) from e

    async def run(
        self,
        action: AutomationAction,
        record: ActionExecution,
        context: PageContext,
    ) -> Any:
        """
        Execute an action while driving its ActionExecution record.

        pending -> running -> completed (then the optional post-action
        delay) or failed (then the error is re-raised to the caller).
        """
        record.start()
        try:
            result = await self.execute(action, context)
        except FrameworkError as e:
            record.fail(e.message)
            raise

        record.complete(result)

        if action.delay and action.delay > 0:
            await self._sleep(action.delay / 1000)

        return result

    def _register_builtin_actions(self) -> None:
        """Register built-in actions."""
        self._handlers[ActionType.CLICK.value] = self._action_click
        self._handlers[ActionType.FILL.value] = self._action_fill
        self._handlers[ActionType.NAVIGATE.value] = self._action_navigate
        self._handlers[ActionType.EXTRACT.value] = self._action_extract
        self._handlers[ActionType.AI_PROCESS.value] = self._action_ai_process
        self._handlers[ActionType.NOTIFY.value] = self._action_notify
        self._handlers[ActionType.SAVE.value] = self._action_save
        self._handlers[ActionType.WAIT.value] = self._action_wait

    # ==================== Environment actions ====================

    async def _action_click(self, action: AutomationAction, context: PageContext) -> dict:
        selector = self._require_selector(action)
        if not await self.environment.element_exists(selector):
            raise ElementNotFoundError(selector, action_id=action.id, action_type=action.type)
        await self.environment.click(selector)
        return {"selector": selector, "action": "click"}

    async def _action_fill(self, action: AutomationAction, context: PageContext) -> dict:
        selector = self._require_selector(action)
        value = "" if action.value is None else str(action.value)
        if not await self.environment.element_exists(selector):
            raise ElementNotFoundError(selector, action_id=action.id, action_type=action.type)
        await self.environment.fill(selector, value)
        return {"selector": selector, "action": "fill", "length": len(value)}

    async def _action_navigate(self, action: AutomationAction, context: PageContext) -> dict:
        url = action.value
        if not url:
            raise ActionError("URL is required", action_id=action.id, action_type=action.type)
        new_tab = bool(action.options.get("newTab") or action.options.get("new_tab"))
        await self.environment.navigate(str(url), new_tab=new_tab)
        return {"url": str(url), "new_tab": new_tab}

    async def _action_extract(self, action: AutomationAction, context: PageContext) -> list[str]:
        selector = self._require_selector(action)
        return await self.environment.extract(selector)

    # ==================== Collaborator actions ====================

    async def _action_ai_process(self, action: AutomationAction, context: PageContext) -> Any:
        content = context.content or ""
        operation = action.value

        if operation == "summarize":
            return await self.ai.summarize(content)
        if operation == "extract_entities":
            return await self.ai.extract_entities(content)
        if operation == "analyze_sentiment":
            return await self.ai.analyze_sentiment(content)

        raise ActionError(
            f"Unknown AI process: {operation}",
            action_id=action.id,
            action_type=action.type,
        )

    async def _action_notify(self, action: AutomationAction, context: PageContext) -> dict:
        message = "" if action.value is None else str(action.value)
        title = action.options.get("title") or self.config.notification_title

        if self.notifier is not None and self.notifier.available:
            try:
                if await self.notifier.notify(title, message):
                    return {"delivered": True, "channel": type(self.notifier).__name__}
            except Exception as e:
                logger.warning("notifier_error", error=str(e), action_id=action.id)

        await self._fallback_notifier.notify(title, message)
        return {"delivered": True, "channel": type(self._fallback_notifier).__name__}

    async def _action_save(self, action: AutomationAction, context: PageContext) -> dict:
        timestamp = now_ms()
        key = f"{self.config.saved_key_prefix}{timestamp}_{uuid.uuid4().hex[:6]}"
        data = {
            "url": context.url,
            "title": context.title,
            "content": action.value or context.content,
            "timestamp": timestamp,
            "tags": list(action.options.get("tags") or []),
        }
        await self.storage.save_blob(key, data)
        return {"key": key}

    async def _action_wait(self, action: AutomationAction, context: PageContext) -> dict:
        try:
            duration_ms = float(action.value)
        except (TypeError, ValueError):
            duration_ms = 0
        if not duration_ms > 0:
            duration_ms = self.config.default_wait_ms

        await self._sleep(duration_ms / 1000)
        return {"waited_ms": duration_ms}

    @staticmethod
    def _require_selector(action: AutomationAction) -> str:
        if not action.selector:
            raise ActionError("Selector is required", action_id=action.id, action_type=action.type)
        return action.selector
