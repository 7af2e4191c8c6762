"""Trigger watching and timing primitives."""

from .scheduler import Debouncer, IntervalPoller, is_within_schedule, day_of_week
from .watcher import TriggerWatcher, PageClassifier, RuleTriggerHandle, classify_general

__all__ = [
    "Debouncer",
    "IntervalPoller",
    "is_within_schedule",
    "day_of_week",
    "TriggerWatcher",
    "PageClassifier",
    "RuleTriggerHandle",
    "classify_general",
]
