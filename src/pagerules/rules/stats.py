"""Engine-wide statistics."""

from dataclasses import dataclass, asdict
from typing import Any, Iterable

from ..core.models import AutomationExecution, AutomationRule, ExecutionStatus


@dataclass
class EngineStats:
    """Snapshot of engine activity."""
    total_rules: int
    active_rules: int
    total_executions: int
    successful_executions: int
    failed_executions: int
    average_execution_time: float  # ms, over executions that have a duration
    time_saved: float              # minutes, estimate only

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def compute_stats(
    rules: Iterable[AutomationRule],
    executions: Iterable[AutomationExecution],
    minutes_saved_per_success: float = 2.0,
) -> EngineStats:
    """
    Derive statistics from rules and executions.

    `time_saved` is a flat credit per successful execution, not a
    measurement.
    """
    rules = list(rules)
    executions = list(executions)

    successful = sum(1 for e in executions if e.status == ExecutionStatus.COMPLETED)
    failed = sum(1 for e in executions if e.status == ExecutionStatus.FAILED)

    durations = [e.duration for e in executions if e.duration is not None]
    average = sum(durations) / len(durations) if durations else 0.0

    return EngineStats(
        total_rules=len(rules),
        active_rules=sum(1 for r in rules if r.is_active),
        total_executions=len(executions),
        successful_executions=successful,
        failed_executions=failed,
        average_execution_time=average,
        time_saved=successful * minutes_saved_per_success,
    )
