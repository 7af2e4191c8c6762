"""Rule CRUD and persistence."""

from typing import Any, Optional
import structlog
from pydantic import ValidationError

from ..core.errors import RuleError, RuleNotFoundError
from ..core.models import AutomationRule, new_id, now_ms
from ..core.storage import Storage

logger = structlog.get_logger()


# Fields the store owns; callers cannot set them through create/update
_ENGINE_FIELDS = ("id", "created_at", "updated_at", "execution_count", "last_executed")


class RuleStore:
    """
    Owns AutomationRule records and mirrors them to storage.

    Every mutation persists the full rule list before returning. If the
    save fails the in-memory change is rolled back and the
    PersistenceError propagates, so memory and storage never diverge.
    """

    def __init__(self, storage: Storage):
        self.storage = storage
        self._rules: dict[str, AutomationRule] = {}

    async def load(self) -> list[AutomationRule]:
        """Replace in-memory rules with the persisted list."""
        raw_rules = await self.storage.load_rules()

        rules: dict[str, AutomationRule] = {}
        for raw in raw_rules:
            try:
                rule = AutomationRule.model_validate(raw)
            except ValidationError as e:
                logger.error("rule_load_invalid", rule_id=raw.get("id"), error=str(e))
                continue
            rules[rule.id] = rule

        self._rules = rules
        logger.info(
            "rules_loaded",
            total=len(rules),
            active=sum(1 for r in rules.values() if r.is_active),
        )
        return list(rules.values())

    async def create(self, rule_data: dict[str, Any]) -> AutomationRule:
        """Create a rule; the store assigns id, timestamps and counters."""
        data = {k: v for k, v in rule_data.items() if k not in _ENGINE_FIELDS}
        now = now_ms()
        data.update(
            id=new_id("rule"),
            created_at=now,
            updated_at=now,
            execution_count=0,
            last_executed=None,
        )
        rule = self._validate(data)

        self._rules[rule.id] = rule
        try:
            await self._persist()
        except Exception:
            if self._rules.get(rule.id) is rule:
                del self._rules[rule.id]
            raise

        logger.info("rule_created", rule_id=rule.id, name=rule.name)
        return rule

    async def update(self, rule_id: str, partial: dict[str, Any]) -> AutomationRule:
        """Merge partial fields into a rule and bump updated_at."""
        previous = self._require(rule_id)

        data = previous.model_dump()
        data.update({k: v for k, v in partial.items() if k not in _ENGINE_FIELDS})
        data["updated_at"] = max(now_ms(), previous.created_at)
        rule = self._validate(data, rule_id=rule_id)

        await self._replace(previous, rule)
        logger.info("rule_updated", rule_id=rule_id, fields=sorted(partial))
        return rule

    async def delete(self, rule_id: str) -> None:
        """Remove a rule. Raises RuleNotFoundError when absent."""
        previous = self._require(rule_id)

        del self._rules[rule_id]
        try:
            await self._persist()
        except Exception:
            self._rules.setdefault(rule_id, previous)
            raise

        logger.info("rule_deleted", rule_id=rule_id)

    def get(self, rule_id: str) -> Optional[AutomationRule]:
        return self._rules.get(rule_id)

    def list_rules(self) -> list[AutomationRule]:
        return list(self._rules.values())

    async def record_execution(self, rule_id: str, executed_at: int) -> Optional[AutomationRule]:
        """
        Count a completed execution against a rule.

        Returns None when the rule was deleted while the execution ran.
        """
        previous = self._rules.get(rule_id)
        if previous is None:
            return None

        rule = previous.model_copy(update={
            "execution_count": previous.execution_count + 1,
            "last_executed": executed_at,
        })
        await self._replace(previous, rule)
        return rule

    async def _replace(self, previous: AutomationRule, rule: AutomationRule) -> None:
        self._rules[rule.id] = rule
        try:
            await self._persist()
        except Exception:
            # Leave a rule written by a concurrent mutation in place
            if self._rules.get(rule.id) is rule:
                self._rules[rule.id] = previous
            raise

    async def _persist(self) -> None:
        await self.storage.save_rules(
            [rule.model_dump(mode="json") for rule in self._rules.values()]
        )

    def _require(self, rule_id: str) -> AutomationRule:
        rule = self._rules.get(rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)
        return rule

    @staticmethod
    def _validate(data: dict[str, Any], rule_id: Optional[str] = None) -> AutomationRule:
        try:
            return AutomationRule.model_validate(data)
        except ValidationError as e:
            raise RuleError(f"Invalid rule: {e}", rule_id=rule_id or data.get("id")) from e
