"""Configuration loading and validation."""

import json
import hashlib
from pathlib import Path
from typing import Any, Optional

import yaml
import jsonschema
from pydantic import BaseModel, Field

from .errors import ConfigError


class TriggerConfig(BaseModel):
    """Trigger watcher timing."""
    time_poll_interval_seconds: float = Field(default=60.0, gt=0)
    content_debounce_seconds: float = Field(default=1.0, ge=0)
    navigation_debounce_seconds: float = Field(default=0.25, ge=0)


class ActionConfig(BaseModel):
    """Action executor defaults."""
    default_wait_ms: int = Field(default=1000, ge=0)
    click_settle_ms: int = Field(default=500, ge=0)
    notification_title: str = Field(default="Page Automation")
    saved_key_prefix: str = Field(default="saved_")


class StorageConfig(BaseModel):
    """Rule persistence settings."""
    db_path: str = Field(default="./data/pagerules.db")
    rules_key: str = Field(default="automation_rules")


class BrowserConfig(BaseModel):
    """Browser settings for the Playwright environment."""
    headless: bool = Field(default=True)
    user_data_dir: str = Field(default="./data/browser")
    viewport_width: int = Field(default=1280, ge=320)
    viewport_height: int = Field(default=720, ge=240)
    start_url: Optional[str] = Field(default=None)
    default_timeout_ms: int = Field(default=30000, ge=1000)


class TelegramConfig(BaseModel):
    """Telegram notification channel."""
    enabled: bool = Field(default=False)
    bot_token: Optional[str] = Field(default=None)
    chat_id: Optional[int] = Field(default=None)


class LLMConfig(BaseModel):
    """Local LLM configuration for ai_process actions."""
    enabled: bool = Field(default=False)
    provider: str = Field(default="ollama")
    base_url: str = Field(default="http://localhost:11434")
    model: str = Field(default="llama3.2:3b")
    max_tokens: int = Field(default=500, ge=50)
    timeout_seconds: int = Field(default=30, ge=5)


class HealthConfig(BaseModel):
    """Health/stats HTTP endpoint."""
    enabled: bool = Field(default=True)
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8080, ge=1, le=65535)


class EngineConfig(BaseModel):
    """Main engine configuration."""
    name: str = Field(default="pagerules")
    version: str = Field(default="0.1.0")

    triggers: TriggerConfig = Field(default_factory=TriggerConfig)
    actions: ActionConfig = Field(default_factory=ActionConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)

    # Rough estimate only, credited once per successful execution
    time_saved_minutes_per_execution: float = Field(default=2.0, ge=0)

    rules_directory: str = Field(default="./config/rules")

    def config_hash(self) -> str:
        """Generate hash of config for change detection."""
        return hashlib.sha256(
            self.model_dump_json().encode()
        ).hexdigest()[:16]


# Shape check for rule documents imported from files. Field-level
# validation (trigger variants, action types) happens in the models.
RULE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["name", "trigger", "actions"],
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "description": {"type": "string"},
        "trigger": {
            "type": "object",
            "required": ["type"],
            "properties": {
                "type": {
                    "enum": [
                        "page_load",
                        "url_change",
                        "element_appears",
                        "time_based",
                        "user_action",
                    ]
                },
            },
        },
        "conditions": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["type"],
                "properties": {
                    "type": {"type": "string"},
                    "operator": {"type": "string"},
                    "case_sensitive": {"type": "boolean"},
                },
            },
        },
        "actions": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "required": ["type"],
                "properties": {
                    "type": {
                        "enum": [
                            "click",
                            "fill",
                            "navigate",
                            "extract",
                            "ai_process",
                            "notify",
                            "save",
                            "wait",
                        ]
                    },
                    "delay": {"type": "integer", "minimum": 0},
                    "options": {"type": "object"},
                },
            },
        },
        "is_active": {"type": "boolean"},
        "stop_on_error": {"type": "boolean"},
        "tags": {"type": "array", "items": {"type": "string"}},
    },
}


class ConfigLoader:
    """Loads and validates YAML/JSON configurations."""

    def __init__(self, config_dir: str = "./config"):
        self.config_dir = Path(config_dir)

    def load_engine_config(self, path: Optional[str] = None) -> EngineConfig:
        """Load main engine configuration."""
        if path is None:
            path = self.config_dir / "pagerules.yaml"
        else:
            path = Path(path)

        data = self._load_file(path)
        try:
            return EngineConfig(**data)
        except Exception as e:
            raise ConfigError(f"Invalid engine config: {e}", config_path=str(path))

    def load_rules(self, directory: Optional[str] = None) -> list[dict[str, Any]]:
        """
        Load rule documents from a directory.

        Each file holds either a single rule or {"rules": [...]}.
        Returns validated rule dicts ready for AutomationEngine.create_rule.
        """
        if directory is None:
            directory = self.config_dir / "rules"
        else:
            directory = Path(directory)

        rules: list[dict[str, Any]] = []
        if not directory.exists():
            return rules

        files = sorted(
            list(directory.glob("**/*.yaml"))
            + list(directory.glob("**/*.yml"))
            + list(directory.glob("**/*.json"))
        )
        for file_path in files:
            rules.extend(self._load_rules_file(file_path))

        return rules

    def _load_file(self, path: Path) -> dict[str, Any]:
        """Load YAML or JSON file."""
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}", config_path=str(path))

        try:
            content = path.read_text()

            if path.suffix in (".yaml", ".yml"):
                return yaml.safe_load(content) or {}
            elif path.suffix == ".json":
                return json.loads(content)
            else:
                raise ConfigError(
                    f"Unsupported config format: {path.suffix}",
                    config_path=str(path)
                )
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML: {e}", config_path=str(path))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON: {e}", config_path=str(path))

    def _load_rules_file(self, path: Path) -> list[dict[str, Any]]:
        """Load and schema-check rules from a single file."""
        data = self._load_file(path)

        # Support both single rule and list of rules
        rule_list = data.get("rules", [data] if "trigger" in data else [])

        for rule_data in rule_list:
            try:
                jsonschema.validate(rule_data, RULE_SCHEMA)
            except jsonschema.ValidationError as e:
                raise ConfigError(
                    f"Invalid rule {rule_data.get('name', '?')!r}: {e.message}",
                    config_path=str(path),
                )

        return rule_list
