"""Condition evaluation for the automation engine."""

from typing import Any, Callable, Optional, Awaitable
import structlog

from ..core.models import PageContext, TriggerCondition
from .patterns import matches_regex

logger = structlog.get_logger()


# Selector probe supplied by the environment collaborator
ElementProbe = Callable[[str], Awaitable[bool]]


def _exists(actual: Any, expected: Any) -> bool:
    return actual is not None


def _not_exists(actual: Any, expected: Any) -> bool:
    return actual is None


class ConditionEvaluator:
    """
    Evaluates rule conditions against a page context.

    Conditions are ANDed and evaluation short-circuits on the first false.
    Anything the evaluator does not understand (unknown type, unknown
    operator, invalid regex, missing probe) is treated as "not met" so a
    misconfigured rule never fires.

    Supports:
    - Value sources: url, domain, pageType, element
    - String operators: equals, contains, startsWith, endsWith, matches
    - Existence checks: exists, not_exists
    """

    OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
        "equals": lambda a, b: a == b,
        "contains": lambda a, b: str(b) in str(a),
        "startsWith": lambda a, b: str(a).startswith(str(b)),
        "endsWith": lambda a, b: str(a).endswith(str(b)),
        "exists": _exists,
        "not_exists": _not_exists,
    }

    def __init__(self, element_probe: Optional[ElementProbe] = None):
        self.element_probe = element_probe

    async def evaluate(
        self,
        conditions: list[TriggerCondition],
        context: PageContext,
    ) -> bool:
        """
        Evaluate a list of conditions (AND).

        Returns True if all conditions pass; an empty list passes.
        """
        for condition in conditions:
            if not await self.evaluate_condition(condition, context):
                return False
        return True

    async def evaluate_condition(
        self,
        condition: TriggerCondition,
        context: PageContext,
    ) -> bool:
        """Evaluate a single condition."""
        if condition.type == "element":
            # Existence probe is the answer; the operator is not consulted
            return await self._probe(str(condition.value))

        if condition.type == "url":
            actual = context.url
        elif condition.type == "domain":
            actual = context.domain
            if actual is None:
                logger.debug("unparseable_url", url=context.url)
                return False
        elif condition.type == "pageType":
            actual = context.page_type
        else:
            logger.debug("unknown_condition_type", condition_type=condition.type)
            return False

        return self.compare(
            actual,
            condition.operator,
            condition.value,
            case_sensitive=condition.case_sensitive,
        )

    def compare(
        self,
        actual: Any,
        operator: str,
        expected: Any,
        case_sensitive: bool = True,
    ) -> bool:
        """Compare an actual value against an expected one."""
        if operator == "matches":
            if expected is None:
                return False
            return matches_regex(
                "" if actual is None else actual,
                str(expected),
                case_sensitive=case_sensitive,
            )

        op_func = self.OPERATORS.get(operator)
        if not op_func:
            logger.debug("unknown_condition_operator", operator=operator)
            return False

        if not case_sensitive and isinstance(actual, str) and isinstance(expected, str):
            actual = actual.lower()
            expected = expected.lower()

        try:
            return bool(op_func(actual, expected))
        except Exception as e:
            logger.warning("condition_compare_error", operator=operator, error=str(e))
            return False

    async def _probe(self, selector: str) -> bool:
        if not selector or self.element_probe is None:
            return False
        try:
            return bool(await self.element_probe(selector))
        except Exception as e:
            logger.warning("element_probe_error", selector=selector, error=str(e))
            return False
