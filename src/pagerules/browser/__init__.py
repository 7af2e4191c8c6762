"""Page environment module using Playwright."""

from .environment import Environment, Disposer, Listener
from .manager import BrowserManager
from .context import PageEnvironment

__all__ = ["Environment", "Disposer", "Listener", "BrowserManager", "PageEnvironment"]
