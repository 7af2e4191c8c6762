"""
Page Environment - Playwright-backed implementation of the Environment contract.

Wraps a single Playwright page with:
- Snapshot reads (URL, title, text, form fields)
- Selector probes that fail closed on invalid selectors
- Click/fill/navigate/extract primitives
- Mutation, navigation and DOM event subscriptions with disposers
"""

import asyncio
import uuid
from typing import Any, Optional
import structlog

from playwright.async_api import Page, Frame, Error as PlaywrightError

from ..core.errors import ElementNotFoundError
from ..core.models import FormField
from .environment import Environment, Disposer, Listener

logger = structlog.get_logger()


_FORM_FIELDS_SCRIPT = """
() => Array.from(document.querySelectorAll('input, select, textarea')).map((el, index) => ({
    type: el.type || 'text',
    name: el.name || `field_${index}`,
    id: el.id || `field_${index}`,
    value: el.value,
    placeholder: el.placeholder || null,
    required: !!el.required,
}))
"""

_MUTATION_OBSERVER_SCRIPT = """
(name) => {
    const registry = (window.__pagerules = window.__pagerules || {});
    if (registry[name]) return;
    const observer = new MutationObserver(() => window.__pagerules_dispatch(name));
    observer.observe(document, { childList: true, subtree: true });
    registry[name] = () => observer.disconnect();
}
"""

_EVENT_LISTENER_SCRIPT = """
([name, eventType, selector]) => {
    const registry = (window.__pagerules = window.__pagerules || {});
    if (registry[name]) return;
    const handler = (event) => {
        if (selector) {
            try {
                if (!(event.target instanceof Element) || !event.target.matches(selector)) return;
            } catch (e) {
                return;
            }
        }
        window.__pagerules_dispatch(name);
    };
    document.addEventListener(eventType, handler, true);
    registry[name] = () => document.removeEventListener(eventType, handler, true);
}
"""

_DISPATCH_BINDING = "__pagerules_dispatch"

_DISPOSE_SCRIPT = """
(name) => {
    const registry = window.__pagerules || {};
    if (registry[name]) {
        registry[name]();
        delete registry[name];
    }
}
"""


class PageEnvironment(Environment):
    """Environment over a live Playwright page."""

    def __init__(
        self,
        page: Page,
        default_timeout: int = 30000,
        click_settle_ms: int = 500,
    ):
        """
        Initialize page environment.

        Args:
            page: Playwright page instance
            default_timeout: Default timeout in milliseconds
            click_settle_ms: Pause after scrolling a click target into view
        """
        self.page = page
        self.default_timeout = default_timeout
        self.click_settle_ms = click_settle_ms
        self.tabs: list[Page] = []
        self._listeners: dict[str, Listener] = {}
        self._installers: dict[str, tuple[str, Any]] = {}
        self._dispatch_ready = False

    # ==================== Reads ====================

    async def current_url(self) -> str:
        return self.page.url

    async def title(self) -> str:
        return await self.page.title()

    async def visible_text(self) -> str:
        try:
            return await self.page.inner_text("body", timeout=self.default_timeout)
        except PlaywrightError as e:
            logger.warning("visible_text_unavailable", error=str(e))
            return ""

    async def form_fields(self) -> list[FormField]:
        raw = await self.page.evaluate(_FORM_FIELDS_SCRIPT)
        return [FormField(**item) for item in raw]

    # ==================== Probes ====================

    async def element_exists(self, selector: str) -> bool:
        try:
            return await self.page.query_selector(selector) is not None
        except PlaywrightError as e:
            logger.debug("invalid_selector", selector=selector, error=str(e))
            return False

    # ==================== Primitives ====================

    async def click(self, selector: str) -> None:
        handle = await self._locate(selector)
        await handle.scroll_into_view_if_needed(timeout=self.default_timeout)
        if self.click_settle_ms:
            await asyncio.sleep(self.click_settle_ms / 1000)
        await handle.click(timeout=self.default_timeout)

    async def fill(self, selector: str, value: str) -> None:
        handle = await self._locate(selector)
        await handle.fill(value, timeout=self.default_timeout)
        for event_type in ("input", "change", "blur"):
            await handle.dispatch_event(event_type)

    async def navigate(self, url: str, new_tab: bool = False) -> None:
        if new_tab:
            page = await self.page.context.new_page()
            self.tabs.append(page)
            await page.goto(url, timeout=self.default_timeout)
        else:
            await self.page.goto(url, timeout=self.default_timeout)

    async def extract(self, selector: str) -> list[str]:
        elements = await self.page.query_selector_all(selector)
        results = []
        for element in elements:
            text = (await element.text_content() or "").strip()
            if text:
                results.append(text)
        return results

    # ==================== Lifecycle & subscriptions ====================

    async def wait_until_ready(self) -> None:
        await self.page.wait_for_load_state("domcontentloaded")

    async def on_content_changed(self, listener: Listener) -> Disposer:
        name = self._binding_name("mutation")
        return await self._install(name, listener, _MUTATION_OBSERVER_SCRIPT, name)

    async def on_navigation(self, listener: Listener) -> Disposer:
        def handler(frame: Frame) -> None:
            if frame == self.page.main_frame:
                listener()

        self.page.on("framenavigated", handler)

        async def dispose() -> None:
            self.page.remove_listener("framenavigated", handler)

        return dispose

    async def on_event(
        self,
        event: str,
        listener: Listener,
        selector: Optional[str] = None,
    ) -> Disposer:
        name = self._binding_name("event")
        return await self._install(
            name, listener, _EVENT_LISTENER_SCRIPT, [name, event, selector]
        )

    # ==================== Internals ====================

    async def _locate(self, selector: str):
        try:
            handle = await self.page.query_selector(selector)
        except PlaywrightError:
            handle = None
        if handle is None:
            raise ElementNotFoundError(selector)
        return handle

    async def _install(self, name: str, listener: Listener, script: str, arg: Any) -> Disposer:
        """
        Run an installer script now and again on every new document.

        All page-side hooks report through the one shared dispatch binding.
        """
        await self._ensure_dispatch()
        self._listeners[name] = listener
        self._installers[name] = (script, arg)
        await self.page.evaluate(script, arg)

        async def dispose() -> None:
            self._listeners.pop(name, None)
            self._installers.pop(name, None)
            try:
                await self.page.evaluate(_DISPOSE_SCRIPT, name)
            except PlaywrightError as e:
                # Page closed or mid-navigation
                logger.debug("dispose_script_failed", binding=name, error=str(e))

        return dispose

    async def _ensure_dispatch(self) -> None:
        if self._dispatch_ready:
            return
        await self.page.expose_binding(_DISPATCH_BINDING, self._dispatch)
        self.page.on("domcontentloaded", self._reinstall)
        self._dispatch_ready = True

    def _dispatch(self, source, name: str) -> None:
        listener = self._listeners.get(name)
        if listener:
            listener()

    async def _reinstall(self, page: Page) -> None:
        for name, (script, arg) in list(self._installers.items()):
            try:
                await page.evaluate(script, arg)
            except PlaywrightError as e:
                logger.debug("reinstall_script_failed", binding=name, error=str(e))

    async def close(self) -> None:
        """Close tabs opened by navigate(new_tab=True)."""
        for tab in self.tabs:
            if not tab.is_closed():
                await tab.close()
        self.tabs.clear()

    @staticmethod
    def _binding_name(kind: str) -> str:
        return f"__pagerules_{kind}_{uuid.uuid4().hex[:8]}"
