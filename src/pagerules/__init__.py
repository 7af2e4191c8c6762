"""
Rule-Based Page Automation Engine

Condition-triggered, multi-step automations against a live page:
- Rules with one trigger, ANDed conditions and ordered actions
- Glob/regex pattern matching for URL and text conditions
- Pluggable action dispatch (click, fill, navigate, extract, AI, notify, save, wait)
- Auditable per-execution and per-action records
"""

__version__ = "0.1.0"

from .rules.engine import AutomationEngine

__all__ = ["AutomationEngine", "__version__"]
