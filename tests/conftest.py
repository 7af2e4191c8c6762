"""Shared fakes and fixtures for engine tests."""

import asyncio
import copy
import os
import sys
from datetime import datetime
from typing import Any, Optional

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from pagerules.browser.environment import Environment
from pagerules.core.errors import PersistenceError
from pagerules.core.models import FormField
from pagerules.core.storage import Storage
from pagerules.services.notify import Notifier


# Wednesday 2024-01-03 12:00 local time
WEDNESDAY_NOON = datetime(2024, 1, 3, 12, 0)


class FakeEnvironment(Environment):
    """In-memory page with controllable elements and notifications."""

    def __init__(
        self,
        url: str = "https://shop.example.com/cart",
        title: str = "Cart",
        text: str = "Your cart has great items",
        elements: Optional[set[str]] = None,
    ):
        self.url = url
        self.page_title = title
        self.text = text
        self.elements = set(elements or ())
        self.broken_selectors: set[str] = set()
        self.fields: list[FormField] = []
        self.extracted: dict[str, list[str]] = {}
        self.calls: list[tuple] = []
        self.ready = asyncio.Event()

        self.content_listeners: list = []
        self.navigation_listeners: list = []
        self.event_listeners: list[tuple[str, Optional[str], Any]] = []

    # Reads

    async def current_url(self) -> str:
        return self.url

    async def title(self) -> str:
        return self.page_title

    async def visible_text(self) -> str:
        return self.text

    async def form_fields(self) -> list[FormField]:
        return list(self.fields)

    async def element_exists(self, selector: str) -> bool:
        if selector in self.broken_selectors:
            raise RuntimeError(f"probe failed for {selector}")
        return selector in self.elements

    # Primitives

    async def click(self, selector: str) -> None:
        self.calls.append(("click", selector))

    async def fill(self, selector: str, value: str) -> None:
        self.calls.append(("fill", selector, value))

    async def navigate(self, url: str, new_tab: bool = False) -> None:
        self.calls.append(("navigate", url, new_tab))
        if not new_tab:
            self.url = url

    async def extract(self, selector: str) -> list[str]:
        self.calls.append(("extract", selector))
        return list(self.extracted.get(selector, []))

    # Lifecycle and subscriptions

    async def wait_until_ready(self) -> None:
        await self.ready.wait()

    async def on_content_changed(self, listener):
        self.content_listeners.append(listener)

        async def dispose():
            self.content_listeners.remove(listener)
        return dispose

    async def on_navigation(self, listener):
        self.navigation_listeners.append(listener)

        async def dispose():
            self.navigation_listeners.remove(listener)
        return dispose

    async def on_event(self, event, listener, selector=None):
        entry = (event, selector, listener)
        self.event_listeners.append(entry)

        async def dispose():
            self.event_listeners.remove(entry)
        return dispose

    # Test helpers

    def mark_ready(self) -> None:
        self.ready.set()

    def emit_content_change(self) -> None:
        for listener in list(self.content_listeners):
            listener()

    def emit_navigation(self, url: str) -> None:
        self.url = url
        for listener in list(self.navigation_listeners):
            listener()

    def emit_event(self, event: str, target: Optional[str] = None) -> None:
        for event_type, selector, listener in list(self.event_listeners):
            if event_type == event and (selector is None or selector == target):
                listener()


class FakeStorage(Storage):
    """Dict-backed storage that can be told to fail."""

    def __init__(self, rules: Optional[list[dict]] = None):
        self.rules: list[dict] = copy.deepcopy(rules or [])
        self.blobs: dict[str, Any] = {}
        self.fail_saves = False
        self.save_count = 0

    async def load_rules(self) -> list[dict[str, Any]]:
        return copy.deepcopy(self.rules)

    async def save_rules(self, rules: list[dict[str, Any]]) -> None:
        if self.fail_saves:
            raise PersistenceError("disk full", key="automation_rules")
        self.save_count += 1
        self.rules = copy.deepcopy(rules)

    async def save_blob(self, key: str, value: Any) -> None:
        if self.fail_saves:
            raise PersistenceError("disk full", key=key)
        self.blobs[key] = copy.deepcopy(value)

    async def load_blob(self, key: str) -> Optional[Any]:
        return copy.deepcopy(self.blobs.get(key))


class RecordingNotifier(Notifier):
    """Notifier that records what it was asked to show."""

    def __init__(self, available: bool = True, delivers: bool = True, error: Optional[Exception] = None):
        self._available = available
        self.delivers = delivers
        self.error = error
        self.sent: list[tuple[str, str]] = []

    @property
    def available(self) -> bool:
        return self._available

    async def notify(self, title: str, message: str) -> bool:
        if self.error:
            raise self.error
        self.sent.append((title, message))
        return self.delivers


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested durations."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


def make_rule_data(**overrides) -> dict[str, Any]:
    """Minimal valid rule document."""
    data = {
        "name": "Notify on cart",
        "trigger": {"type": "page_load"},
        "conditions": [],
        "actions": [{"type": "notify", "value": "hello"}],
    }
    data.update(overrides)
    return data


async def settle(rounds: int = 5) -> None:
    """Let spawned tasks make progress."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def environment():
    return FakeEnvironment(elements={"#buy", "#email"})


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def sleeper():
    return RecordingSleep()
