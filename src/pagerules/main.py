"""
Main entry point for the page automation engine.

Starts the browser, storage, engine, health server and signal handlers.
"""

import asyncio
import os
import signal
import sys
from pathlib import Path
from typing import Optional

import structlog
from aiohttp import web
from dotenv import load_dotenv

from .browser import BrowserManager, PageEnvironment
from .core.config import ConfigLoader, EngineConfig, HealthConfig
from .core.logging import configure_logging
from .core.storage import SQLiteStorage
from .rules.engine import AutomationEngine
from .services import OllamaAIProcessor, create_ai_processor, create_notifier

logger = structlog.get_logger()


class HealthServer:
    """Simple HTTP health and stats server."""

    def __init__(self, engine: AutomationEngine, config: Optional[HealthConfig] = None):
        self.engine = engine
        self.config = config or HealthConfig()
        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self._health_handler)
        app.router.add_get("/ready", self._ready_handler)
        app.router.add_get("/stats", self._stats_handler)
        return app

    async def start(self) -> None:
        """Start the health server."""
        self._app = self.build_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        site = web.TCPSite(self._runner, self.config.host, self.config.port)
        await site.start()

        logger.info("health_server_started", host=self.config.host, port=self.config.port)

    async def stop(self) -> None:
        """Stop the health server."""
        if self._runner:
            await self._runner.cleanup()
            logger.info("health_server_stopped")

    async def _health_handler(self, request: web.Request) -> web.Response:
        """Basic health check - is the process alive."""
        return web.json_response({"status": "healthy"})

    async def _ready_handler(self, request: web.Request) -> web.Response:
        """Readiness check - is the engine reacting to triggers."""
        if self.engine.running:
            return web.json_response({"status": "ready"})
        return web.json_response({"status": "not_ready"}, status=503)

    async def _stats_handler(self, request: web.Request) -> web.Response:
        return web.json_response(self.engine.get_stats().to_dict())


def load_config(config_path: str, data_dir: Optional[str]) -> EngineConfig:
    """Load engine config, falling back to defaults when the file is missing."""
    if os.path.exists(config_path):
        config = ConfigLoader(str(Path(config_path).parent)).load_engine_config(config_path)
    else:
        logger.info("config_file_missing", path=config_path)
        config = EngineConfig()

    if data_dir:
        config = config.model_copy(update={
            "storage": config.storage.model_copy(
                update={"db_path": os.path.join(data_dir, "pagerules.db")}
            ),
            "browser": config.browser.model_copy(
                update={"user_data_dir": os.path.join(data_dir, "browser")}
            ),
        })
    return config


class Application:
    """Main application container."""

    def __init__(self, config: EngineConfig):
        self.config = config
        self.storage: Optional[SQLiteStorage] = None
        self.browser_manager: Optional[BrowserManager] = None
        self.environment: Optional[PageEnvironment] = None
        self.engine: Optional[AutomationEngine] = None
        self.health_server: Optional[HealthServer] = None
        self.ai = None
        self._shutdown_event = asyncio.Event()

    async def start(self) -> None:
        """Start all components."""
        logger.info("application_starting", config_hash=self.config.config_hash())

        self.storage = SQLiteStorage(
            self.config.storage.db_path,
            rules_key=self.config.storage.rules_key,
        )
        await self.storage.initialize()

        self.browser_manager = BrowserManager(self.config.browser)
        page = await self.browser_manager.get_page()
        self.environment = PageEnvironment(
            page,
            default_timeout=self.config.browser.default_timeout_ms,
            click_settle_ms=self.config.actions.click_settle_ms,
        )

        self.ai = create_ai_processor(self.config.llm)
        self.engine = AutomationEngine(
            self.storage,
            self.environment,
            self.ai,
            notifier=create_notifier(self.config.telegram),
            config=self.config,
        )
        await self.engine.start()

        if self.config.health.enabled:
            self.health_server = HealthServer(self.engine, self.config.health)
            await self.health_server.start()

        logger.info("application_started")

    async def stop(self) -> None:
        """Stop all components."""
        logger.info("application_stopping")

        if self.health_server:
            await self.health_server.stop()

        if self.engine:
            await self.engine.stop()
            await self.engine.watcher.drain()

        if isinstance(self.ai, OllamaAIProcessor):
            await self.ai.close()

        if self.environment:
            await self.environment.close()

        if self.browser_manager:
            await self.browser_manager.shutdown()

        if self.storage:
            await self.storage.close()

        logger.info("application_stopped")

    async def run(self) -> None:
        """Run until shutdown signal."""
        await self._shutdown_event.wait()

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


async def main() -> None:
    """Main entry point."""
    load_dotenv()
    configure_logging()

    config_path = os.getenv("CONFIG_PATH", "./config/pagerules.yaml")
    app = Application(load_config(config_path, os.getenv("DATA_DIR")))

    # Setup signal handlers
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("shutdown_signal_received")
        app.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await app.start()
        await app.run()
    except Exception:
        logger.exception("application_error")
        sys.exit(1)
    finally:
        await app.stop()


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
