"""Automation data model: rules, triggers, conditions, actions and execution records."""

import time
import uuid
from enum import Enum
from typing import Any, Annotated, Literal, Optional, Union
from dataclasses import dataclass, field, asdict
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator, model_validator

from .errors import RuleError


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def new_id(prefix: str) -> str:
    """Generate an opaque engine id."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


# ==================== Triggers ====================

class Schedule(BaseModel):
    """Time window for time_based triggers.

    Days use 0=Sunday .. 6=Saturday. Times are "HH:MM", 24h, local time.
    """
    days_of_week: list[int] = Field(default_factory=list)
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    @field_validator("days_of_week")
    @classmethod
    def _check_days(cls, days: list[int]) -> list[int]:
        for day in days:
            if not 0 <= day <= 6:
                raise ValueError(f"day of week out of range: {day}")
        return days

    @field_validator("start_time", "end_time")
    @classmethod
    def _check_time(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        hours, sep, minutes = value.partition(":")
        if not sep or not hours.isdigit() or not minutes.isdigit():
            raise ValueError(f"time must be HH:MM: {value!r}")
        if not (0 <= int(hours) <= 23 and 0 <= int(minutes) <= 59):
            raise ValueError(f"time out of range: {value!r}")
        return value


class PageLoadTrigger(BaseModel):
    type: Literal["page_load"] = "page_load"


class UrlChangeTrigger(BaseModel):
    type: Literal["url_change"] = "url_change"
    pattern: str = ""


class ElementAppearsTrigger(BaseModel):
    type: Literal["element_appears"] = "element_appears"
    selector: str = ""


class TimeBasedTrigger(BaseModel):
    type: Literal["time_based"] = "time_based"
    schedule: Schedule = Field(default_factory=Schedule)


class UserActionTrigger(BaseModel):
    type: Literal["user_action"] = "user_action"
    event: str = "click"
    selector: Optional[str] = None


AutomationTrigger = Annotated[
    Union[
        PageLoadTrigger,
        UrlChangeTrigger,
        ElementAppearsTrigger,
        TimeBasedTrigger,
        UserActionTrigger,
    ],
    Field(discriminator="type"),
]


# ==================== Conditions ====================

class TriggerCondition(BaseModel):
    """A predicate over the page context.

    `type` and `operator` are free strings so that a rule with an unknown
    one still loads; the evaluator treats unknown values as not met.
    """
    type: str
    operator: str = "equals"
    value: Union[bool, int, float, str, None] = None
    case_sensitive: bool = True


# ==================== Actions ====================

class ActionType(str, Enum):
    CLICK = "click"
    FILL = "fill"
    NAVIGATE = "navigate"
    EXTRACT = "extract"
    AI_PROCESS = "ai_process"
    NOTIFY = "notify"
    SAVE = "save"
    WAIT = "wait"


class _ActionBase(BaseModel):
    id: str = Field(default_factory=lambda: new_id("act"))
    selector: Optional[str] = None
    value: Any = None
    options: dict[str, Any] = Field(default_factory=dict)
    delay: Optional[int] = Field(default=None, ge=0)  # ms, applied after success


class ClickAction(_ActionBase):
    type: Literal["click"] = "click"


class FillAction(_ActionBase):
    type: Literal["fill"] = "fill"


class NavigateAction(_ActionBase):
    type: Literal["navigate"] = "navigate"


class ExtractAction(_ActionBase):
    type: Literal["extract"] = "extract"


class AIProcessAction(_ActionBase):
    type: Literal["ai_process"] = "ai_process"


class NotifyAction(_ActionBase):
    type: Literal["notify"] = "notify"


class SaveAction(_ActionBase):
    type: Literal["save"] = "save"


class WaitAction(_ActionBase):
    type: Literal["wait"] = "wait"


AutomationAction = Annotated[
    Union[
        ClickAction,
        FillAction,
        NavigateAction,
        ExtractAction,
        AIProcessAction,
        NotifyAction,
        SaveAction,
        WaitAction,
    ],
    Field(discriminator="type"),
]


# ==================== Rules ====================

class AutomationRule(BaseModel):
    """A named trigger + conditions + actions automation unit."""
    id: str
    name: str
    description: str = ""
    trigger: AutomationTrigger
    conditions: list[TriggerCondition] = Field(default_factory=list)
    actions: list[AutomationAction] = Field(min_length=1)
    is_active: bool = True
    stop_on_error: bool = True
    tags: list[str] = Field(default_factory=list)
    created_at: int
    updated_at: int
    execution_count: int = Field(default=0, ge=0)
    last_executed: Optional[int] = None

    @model_validator(mode="after")
    def _check_invariants(self) -> "AutomationRule":
        if self.updated_at < self.created_at:
            raise ValueError("updated_at must not precede created_at")
        action_ids = [action.id for action in self.actions]
        if len(set(action_ids)) != len(action_ids):
            raise ValueError("action ids must be unique within a rule")
        return self

    def find_action(self, action_id: str) -> Optional[AutomationAction]:
        """Look up an action definition by id."""
        return next((a for a in self.actions if a.id == action_id), None)


# ==================== Page context ====================

@dataclass
class FormField:
    """A form control discovered on the page."""
    type: str
    name: str
    id: str
    value: Optional[str] = None
    placeholder: Optional[str] = None
    required: bool = False


@dataclass
class PageContext:
    """Point-in-time facts used to evaluate triggers and run actions."""
    url: str
    title: str = ""
    content: str = ""
    page_type: str = "general"
    form_fields: list[FormField] = field(default_factory=list)
    selected_text: Optional[str] = None
    timestamp: int = 0

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = now_ms()

    @property
    def domain(self) -> Optional[str]:
        """Host component of the URL, None when it cannot be parsed."""
        try:
            return urlparse(self.url).hostname or None
        except ValueError:
            return None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ==================== Execution records ====================

class ExecutionStatus(Enum):
    """Execution lifecycle status."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ActionStatus(Enum):
    """Per-action lifecycle status."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


# Forward-only. CANCELLED is reachable only through explicit cancellation,
# which nothing in the engine performs yet.
EXECUTION_TRANSITIONS: dict[ExecutionStatus, set[ExecutionStatus]] = {
    ExecutionStatus.PENDING: {ExecutionStatus.RUNNING, ExecutionStatus.CANCELLED},
    ExecutionStatus.RUNNING: {
        ExecutionStatus.COMPLETED,
        ExecutionStatus.FAILED,
        ExecutionStatus.CANCELLED,
    },
    ExecutionStatus.COMPLETED: set(),
    ExecutionStatus.FAILED: set(),
    ExecutionStatus.CANCELLED: set(),
}

ACTION_TRANSITIONS: dict[ActionStatus, set[ActionStatus]] = {
    ActionStatus.PENDING: {ActionStatus.RUNNING, ActionStatus.SKIPPED},
    ActionStatus.RUNNING: {ActionStatus.COMPLETED, ActionStatus.FAILED},
    ActionStatus.COMPLETED: set(),
    ActionStatus.FAILED: set(),
    ActionStatus.SKIPPED: set(),
}


@dataclass
class ActionExecution:
    """Per-action record within one execution."""
    id: str
    action_id: str
    status: ActionStatus = ActionStatus.PENDING
    started_at: Optional[int] = None
    completed_at: Optional[int] = None
    result: Any = None
    error: Optional[str] = None

    def transition(self, status: ActionStatus) -> None:
        if status not in ACTION_TRANSITIONS[self.status]:
            raise RuleError(
                f"Invalid action transition {self.status.value} -> {status.value}"
            )
        self.status = status

    def start(self) -> None:
        self.transition(ActionStatus.RUNNING)
        self.started_at = now_ms()

    def complete(self, result: Any) -> None:
        self.transition(ActionStatus.COMPLETED)
        self.result = result
        self.completed_at = now_ms()

    def fail(self, error: str) -> None:
        self.transition(ActionStatus.FAILED)
        self.error = error
        self.completed_at = now_ms()

    def skip(self) -> None:
        self.transition(ActionStatus.SKIPPED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "action_id": self.action_id,
            "status": self.status.value,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "result": self.result,
            "error": self.error,
        }


@dataclass
class AutomationExecution:
    """One realized run of a rule's action sequence."""
    id: str
    rule_id: str
    triggered_at: int
    context: PageContext
    actions: list[ActionExecution] = field(default_factory=list)
    status: ExecutionStatus = ExecutionStatus.PENDING
    completed_at: Optional[int] = None
    duration: Optional[int] = None
    error: Optional[str] = None

    def transition(self, status: ExecutionStatus) -> None:
        if status not in EXECUTION_TRANSITIONS[self.status]:
            raise RuleError(
                f"Invalid execution transition {self.status.value} -> {status.value}",
                rule_id=self.rule_id,
            )
        self.status = status

    @property
    def is_terminal(self) -> bool:
        return not EXECUTION_TRANSITIONS[self.status]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "rule_id": self.rule_id,
            "triggered_at": self.triggered_at,
            "completed_at": self.completed_at,
            "duration": self.duration,
            "status": self.status.value,
            "context": self.context.to_dict(),
            "actions": [a.to_dict() for a in self.actions],
            "error": self.error,
        }
