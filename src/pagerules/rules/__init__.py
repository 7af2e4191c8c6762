"""Rules engine components."""

from .engine import AutomationEngine
from .store import RuleStore
from .evaluator import ConditionEvaluator
from .actions import ActionExecutor, ActionHandler
from .tracker import ExecutionTracker
from .stats import EngineStats, compute_stats
from .patterns import glob_to_regex, compile_pattern, matches_glob, matches_regex

__all__ = [
    "AutomationEngine",
    "RuleStore",
    "ConditionEvaluator",
    "ActionExecutor",
    "ActionHandler",
    "ExecutionTracker",
    "EngineStats",
    "compute_stats",
    "glob_to_regex",
    "compile_pattern",
    "matches_glob",
    "matches_regex",
]
