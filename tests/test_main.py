"""Tests for the application entry point."""

import os
import sys
import tempfile
from pathlib import Path

import pytest
import yaml
from aiohttp import test_utils

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from pagerules.main import HealthServer, load_config
from pagerules.rules.engine import AutomationEngine
from pagerules.services.ai import HeuristicAIProcessor

from conftest import make_rule_data


class TestHealthServer:
    """Test the health and stats endpoints."""

    @pytest.mark.asyncio
    async def test_endpoints(self, storage, environment):
        engine = AutomationEngine(storage, environment, HeuristicAIProcessor())
        await engine.create_rule(make_rule_data())

        client = test_utils.TestClient(test_utils.TestServer(HealthServer(engine).build_app()))
        await client.start_server()
        try:
            response = await client.get("/health")
            assert response.status == 200
            assert await response.json() == {"status": "healthy"}

            response = await client.get("/ready")
            assert response.status == 503

            await engine.start()
            response = await client.get("/ready")
            assert response.status == 200

            response = await client.get("/stats")
            stats = await response.json()
            assert stats["total_rules"] == 1
            assert stats["active_rules"] == 1
            assert stats["total_executions"] == 0
        finally:
            await engine.stop()
            await client.close()


class TestLoadConfig:
    """Test config resolution from the environment."""

    def test_missing_file_uses_defaults(self):
        config = load_config("/nonexistent/pagerules.yaml", None)
        assert config.storage.db_path == "./data/pagerules.db"

    def test_file_and_data_dir(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "pagerules.yaml"
            path.write_text(yaml.safe_dump({"name": "shop-bot", "browser": {"headless": False}}))

            config = load_config(str(path), "/srv/pagerules")

        assert config.name == "shop-bot"
        assert config.browser.headless is False
        assert config.storage.db_path == os.path.join("/srv/pagerules", "pagerules.db")
        assert config.browser.user_data_dir == os.path.join("/srv/pagerules", "browser")
