"""Core engine components."""

from .config import ConfigLoader, EngineConfig
from .storage import Storage, SQLiteStorage
from .errors import (
    FrameworkError,
    ConfigError,
    RuleError,
    RuleNotFoundError,
    RuleInactiveError,
    InvalidPatternError,
    ActionError,
    ElementNotFoundError,
    PersistenceError,
)

__all__ = [
    "ConfigLoader",
    "EngineConfig",
    "Storage",
    "SQLiteStorage",
    "FrameworkError",
    "ConfigError",
    "RuleError",
    "RuleNotFoundError",
    "RuleInactiveError",
    "InvalidPatternError",
    "ActionError",
    "ElementNotFoundError",
    "PersistenceError",
]
