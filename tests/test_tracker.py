"""Tests for execution lifecycle tracking."""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from pagerules.core.errors import RuleInactiveError, RuleNotFoundError
from pagerules.core.models import (
    ActionStatus,
    ActionType,
    ExecutionStatus,
    PageContext,
)
from pagerules.rules.actions import ActionExecutor
from pagerules.rules.store import RuleStore
from pagerules.rules.tracker import ExecutionTracker
from pagerules.services.ai import HeuristicAIProcessor

from conftest import make_rule_data


A_B_C = [
    {"id": "act_a", "type": "fill", "selector": "#email", "value": "me@example.com"},
    {"id": "act_b", "type": "click", "selector": "#missing"},
    {"id": "act_c", "type": "notify", "value": "done"},
]


@pytest.fixture
def store(storage):
    return RuleStore(storage)


@pytest.fixture
def executor(environment, storage, notifier, sleeper):
    return ActionExecutor(environment, storage, HeuristicAIProcessor(), notifier=notifier, sleep=sleeper)


@pytest.fixture
def tracker(store, executor):
    return ExecutionTracker(store, executor)


@pytest.fixture
def context():
    return PageContext(url="https://shop.example.com/cart", title="Cart")


def statuses(execution):
    return [a.status for a in execution.actions]


class TestStopOnError:
    """Test failure handling across the action sequence."""

    @pytest.mark.asyncio
    async def test_stop_on_error_aborts_remaining(self, store, tracker, context, notifier):
        rule = await store.create(make_rule_data(actions=A_B_C, stop_on_error=True))

        execution = await tracker.execute_rule(rule.id, context)

        assert statuses(execution) == [
            ActionStatus.COMPLETED,
            ActionStatus.FAILED,
            ActionStatus.PENDING,
        ]
        assert execution.status == ExecutionStatus.FAILED
        assert execution.error == "Element not found: #missing"
        assert execution.completed_at is not None
        assert execution.duration is None
        assert notifier.sent == []
        assert store.get(rule.id).execution_count == 0

    @pytest.mark.asyncio
    async def test_continue_on_error(self, store, tracker, context, notifier):
        rule = await store.create(make_rule_data(actions=A_B_C, stop_on_error=False))

        execution = await tracker.execute_rule(rule.id, context)

        assert statuses(execution) == [
            ActionStatus.COMPLETED,
            ActionStatus.FAILED,
            ActionStatus.COMPLETED,
        ]
        assert execution.status == ExecutionStatus.COMPLETED
        assert execution.actions[1].error == "Element not found: #missing"
        assert execution.duration == execution.completed_at - execution.triggered_at
        assert notifier.sent == [("Page Automation", "done")]

        updated = store.get(rule.id)
        assert updated.execution_count == 1
        assert updated.last_executed == execution.completed_at


class TestPreconditions:
    """Test NotFound and Inactive."""

    @pytest.mark.asyncio
    async def test_unknown_rule(self, tracker, context):
        with pytest.raises(RuleNotFoundError):
            await tracker.execute_rule("rule_missing", context)
        assert tracker.list_executions() == []

    @pytest.mark.asyncio
    async def test_inactive_rule(self, store, tracker, context):
        rule = await store.create(make_rule_data(is_active=False))
        with pytest.raises(RuleInactiveError):
            await tracker.execute_rule(rule.id, context)
        assert tracker.list_executions() == []


class TestMidFlightMutation:
    """Test rules changing while an execution is running."""

    @pytest.mark.asyncio
    async def test_removed_action_is_skipped(self, store, tracker, executor, context):
        rule = await store.create(make_rule_data(actions=[
            {"id": "act_wait", "type": "wait", "value": 10},
            {"id": "act_gone", "type": "notify", "value": "removed"},
            {"id": "act_kept", "type": "notify", "value": "kept"},
        ]))

        async def edit_rule(action, ctx):
            current = store.get(rule.id)
            await store.update(rule.id, {
                "actions": [a.model_dump() for a in current.actions if a.id != "act_gone"],
            })
            return "edited"

        executor.register(ActionType.WAIT, edit_rule)

        execution = await tracker.execute_rule(rule.id, context)

        assert statuses(execution) == [
            ActionStatus.COMPLETED,
            ActionStatus.SKIPPED,
            ActionStatus.COMPLETED,
        ]
        assert execution.status == ExecutionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_deleted_rule_finishes_on_snapshot(self, store, tracker, executor, context, notifier):
        rule = await store.create(make_rule_data(actions=[
            {"id": "act_wait", "type": "wait"},
            {"id": "act_after", "type": "notify", "value": "after delete"},
        ]))

        async def delete_rule(action, ctx):
            await store.delete(rule.id)
            return "deleted"

        executor.register(ActionType.WAIT, delete_rule)

        execution = await tracker.execute_rule(rule.id, context)

        assert execution.status == ExecutionStatus.COMPLETED
        assert statuses(execution) == [ActionStatus.COMPLETED, ActionStatus.COMPLETED]
        assert [a.action_id for a in execution.actions] == ["act_wait", "act_after"]
        assert notifier.sent == [("Page Automation", "after delete")]
        assert store.get(rule.id) is None

    @pytest.mark.asyncio
    async def test_persistence_failure_fails_execution(self, store, storage, tracker, context):
        rule = await store.create(make_rule_data())
        storage.fail_saves = True

        execution = await tracker.execute_rule(rule.id, context)

        assert execution.status == ExecutionStatus.FAILED
        assert execution.actions[0].status == ActionStatus.COMPLETED
        assert "disk full" in execution.error


class TestQueries:
    """Test execution lookups."""

    @pytest.mark.asyncio
    async def test_get_and_list(self, store, tracker, context):
        ok = await store.create(make_rule_data(name="ok"))
        bad = await store.create(make_rule_data(
            name="bad",
            actions=[{"type": "click", "selector": "#missing"}],
        ))

        first = await tracker.execute_rule(ok.id, context)
        second = await tracker.execute_rule(bad.id, context)
        third = await tracker.execute_rule(ok.id, context)

        assert tracker.get_execution(second.id) is second
        assert tracker.get_execution("exec_missing") is None
        assert tracker.list_executions() == [first, second, third]
        assert tracker.list_executions(rule_id=ok.id) == [first, third]
        assert tracker.list_executions(status=ExecutionStatus.FAILED) == [second]

    @pytest.mark.asyncio
    async def test_to_dict(self, store, tracker, context):
        rule = await store.create(make_rule_data())
        execution = await tracker.execute_rule(rule.id, context)

        data = execution.to_dict()

        assert data["rule_id"] == rule.id
        assert data["status"] == "completed"
        assert data["context"]["url"] == context.url
        assert data["actions"][0]["status"] == "completed"
        assert data["actions"][0]["result"]["delivered"] is True
