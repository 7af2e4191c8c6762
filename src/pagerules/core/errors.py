"""Engine error definitions."""

import hashlib
from typing import Optional, Any
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels for classification."""
    LOW = "low"           # Expected, handled by failing closed
    MEDIUM = "medium"     # Recorded on the execution
    HIGH = "high"         # Caller must act (missing rule, bad config)
    CRITICAL = "critical" # Storage or engine integrity at risk


class ErrorCategory(Enum):
    """Error categories for routing and handling."""
    TRANSIENT = "transient"       # Page still settling, network hiccup
    PERMANENT = "permanent"       # Missing rule, invalid selector - won't resolve
    EXTERNAL = "external"         # Collaborator (storage, AI, notifier) failure
    VALIDATION = "validation"     # Input/shape validation failure


class FrameworkError(Exception):
    """Base exception for all engine errors."""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.TRANSIENT,
        context: Optional[dict[str, Any]] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.severity = severity
        self.category = category
        self.context = context or {}
        self.retryable = retryable

    def fingerprint(self) -> str:
        """Generate error fingerprint for deduplication."""
        components = [
            self.__class__.__name__,
            self.category.value,
            str(self.context.get("rule_id", "")),
            str(self.context.get("action_id", "")),
            str(self.context.get("selector", "")),
        ]
        return hashlib.sha256(":".join(components).encode()).hexdigest()[:16]

    def to_dict(self) -> dict[str, Any]:
        """Serialize error for logging/storage."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "context": self.context,
            "retryable": self.retryable,
            "fingerprint": self.fingerprint(),
        }


class ConfigError(FrameworkError):
    """Configuration loading or validation error."""

    def __init__(self, message: str, config_path: Optional[str] = None, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        kwargs.setdefault("category", ErrorCategory.PERMANENT)
        super().__init__(message, **kwargs)
        self.context["config_path"] = config_path


class RuleError(FrameworkError):
    """Rule shape or execution state error."""

    def __init__(self, message: str, rule_id: Optional[str] = None, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.MEDIUM)
        kwargs.setdefault("category", ErrorCategory.VALIDATION)
        super().__init__(message, **kwargs)
        self.context["rule_id"] = rule_id


class RuleNotFoundError(RuleError):
    """Rule id is not known to the store."""

    def __init__(self, rule_id: str, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        kwargs.setdefault("category", ErrorCategory.PERMANENT)
        super().__init__(f"Rule not found: {rule_id}", rule_id=rule_id, **kwargs)


class RuleInactiveError(RuleError):
    """Execution attempted on a disabled rule."""

    def __init__(self, rule_id: str, **kwargs):
        super().__init__(f"Rule is not active: {rule_id}", rule_id=rule_id, **kwargs)


class InvalidPatternError(FrameworkError):
    """Regular expression (or translated glob) failed to compile."""

    def __init__(self, message: str, pattern: Optional[str] = None, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.LOW)
        kwargs.setdefault("category", ErrorCategory.VALIDATION)
        super().__init__(message, **kwargs)
        self.context["pattern"] = pattern


class ActionError(FrameworkError):
    """A single automation action failed."""

    def __init__(
        self,
        message: str,
        action_id: Optional[str] = None,
        action_type: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault("category", ErrorCategory.EXTERNAL)
        super().__init__(message, **kwargs)
        self.context["action_id"] = action_id
        self.context["action_type"] = action_type


class ElementNotFoundError(ActionError):
    """Environment action target is missing."""

    def __init__(self, selector: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.PERMANENT)
        super().__init__(f"Element not found: {selector}", **kwargs)
        self.context["selector"] = selector


class PersistenceError(FrameworkError):
    """Storage round-trip failed."""

    def __init__(self, message: str, key: Optional[str] = None, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.CRITICAL)
        kwargs.setdefault("category", ErrorCategory.EXTERNAL)
        super().__init__(message, **kwargs)
        self.context["key"] = key
