"""
Environment contract - everything the engine needs from a live page.

The engine core never talks to a browser API directly; it reads state,
probes selectors, performs primitives and subscribes to change
notifications through this interface only.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional

from ..core.models import FormField


# Async disposer returned by every subscription
Disposer = Callable[[], Awaitable[None]]

# Notification callback; the environment calls it without arguments
Listener = Callable[[], Any]


class Environment(ABC):
    """
    Abstract page environment.

    Implement this interface to drive a real browser page (see
    PageEnvironment) or an in-memory fake for tests.
    """

    # ==================== Reads ====================

    @abstractmethod
    async def current_url(self) -> str:
        """Current page URL."""

    @abstractmethod
    async def title(self) -> str:
        """Current document title."""

    @abstractmethod
    async def visible_text(self) -> str:
        """Visible text content of the page body."""

    @abstractmethod
    async def form_fields(self) -> list[FormField]:
        """Input, select and textarea controls on the page."""

    # ==================== Probes ====================

    @abstractmethod
    async def element_exists(self, selector: str) -> bool:
        """
        Whether at least one element matches selector.

        Invalid selectors report False rather than raising.
        """

    # ==================== Primitives ====================

    @abstractmethod
    async def click(self, selector: str) -> None:
        """Scroll the first match into view and click it."""

    @abstractmethod
    async def fill(self, selector: str, value: str) -> None:
        """
        Set the value of an input-capable element.

        Must emit input, change and blur notifications so page logic
        observes the change.
        """

    @abstractmethod
    async def navigate(self, url: str, new_tab: bool = False) -> None:
        """Go to url in the current frame, or open it in a new one."""

    @abstractmethod
    async def extract(self, selector: str) -> list[str]:
        """Trimmed text content of every matching element."""

    # ==================== Lifecycle & subscriptions ====================

    @abstractmethod
    async def wait_until_ready(self) -> None:
        """Return once the page has signalled it is ready."""

    @abstractmethod
    async def on_content_changed(self, listener: Listener) -> Disposer:
        """Subscribe to DOM content changes."""

    @abstractmethod
    async def on_navigation(self, listener: Listener) -> Disposer:
        """Subscribe to navigation (including same-document URL changes)."""

    @abstractmethod
    async def on_event(
        self,
        event: str,
        listener: Listener,
        selector: Optional[str] = None,
    ) -> Disposer:
        """
        Subscribe to a DOM event type.

        When selector is given, only events whose target matches it are
        delivered.
        """

    async def close(self) -> None:
        """Release anything the environment opened beyond the main page."""
