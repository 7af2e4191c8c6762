"""
Browser Manager - Single persistent browser instance management.

Owns the Playwright browser, context and the one page the engine watches.
"""

import asyncio
import os
from typing import Optional
from pathlib import Path
import structlog

from playwright.async_api import async_playwright, Browser, BrowserContext, Page, Playwright

from ..core.config import BrowserConfig

logger = structlog.get_logger()


class BrowserManager:
    """
    Manages a single persistent browser instance.

    Features:
    - Single browser context
    - Session persistence (cookies, storage)
    - Graceful shutdown with state save
    """

    def __init__(self, config: Optional[BrowserConfig] = None):
        """
        Initialize browser manager.

        Args:
            config: Browser configuration (defaults apply when omitted)
        """
        self.config = config or BrowserConfig()
        self.viewport = {
            "width": self.config.viewport_width,
            "height": self.config.viewport_height,
        }

        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._lock = asyncio.Lock()
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize browser instance."""
        async with self._lock:
            if self._initialized:
                return

            logger.info("browser_initializing", headless=self.config.headless)

            Path(self.config.user_data_dir).mkdir(parents=True, exist_ok=True)

            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.config.headless,
                args=[
                    "--disable-dev-shm-usage",  # Overcome limited /dev/shm in Docker
                    "--no-sandbox",
                    "--disable-extensions",
                    "--no-first-run",
                    f"--window-size={self.viewport['width']},{self.viewport['height']}",
                ],
            )

            storage_path = self._get_storage_path()
            self._context = await self._browser.new_context(
                viewport=self.viewport,
                storage_state=storage_path if Path(storage_path).exists() else None,
                locale="en-US",
            )
            self._page = await self._context.new_page()

            if self.config.start_url:
                await self._page.goto(self.config.start_url)

            self._initialized = True
            logger.info("browser_initialized", start_url=self.config.start_url)

    async def shutdown(self) -> None:
        """Gracefully shutdown browser."""
        async with self._lock:
            if not self._initialized:
                return

            logger.info("browser_shutting_down")

            try:
                await self._save_storage_state()

                if self._context:
                    await self._context.close()
                    self._context = None

                if self._browser:
                    await self._browser.close()
                    self._browser = None

                if self._playwright:
                    await self._playwright.stop()
                    self._playwright = None

            except Exception as e:
                logger.error("browser_shutdown_error", error=str(e))

            self._page = None
            self._initialized = False
            logger.info("browser_shutdown_complete")

    async def get_page(self) -> Page:
        """
        Get the watched page instance.

        Ensures browser is initialized.
        """
        if not self._initialized:
            await self.initialize()

        if not self._page or self._page.is_closed():
            async with self._lock:
                self._page = await self._context.new_page()

        return self._page

    async def _save_storage_state(self) -> None:
        """Save session state for persistence."""
        if self._context:
            try:
                storage_path = self._get_storage_path()
                await self._context.storage_state(path=storage_path)
                logger.debug("storage_state_saved", path=storage_path)
            except Exception as e:
                logger.warning("storage_state_save_failed", error=str(e))

    def _get_storage_path(self) -> str:
        return os.path.join(self.config.user_data_dir, "storage_state.json")

