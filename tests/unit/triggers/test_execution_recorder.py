import logging
from datetime import timedelta
from unittest.mock import MagicMock, Mock

import pytest
from sqlalchemy.exc import OperationalError

from maintflow.platform.config import Settings
from maintflow.triggers.engine.recorder import ExecutionRecorder, utcnow
from maintflow.triggers.repository import FlowRuleRepository
from maintflow.triggers.schemas import ActionResult, FlowRule, PriorityLevel


@pytest.fixture
def config():
    return Settings(FLOW_STATS_WINDOW_DAYS=30, FLOW_RECENT_WINDOW_DAYS=7)


@pytest.fixture
def recorder(storage, config):
    return ExecutionRecorder(storage, config=config)


def snapshot(storage, rule_id, company_id="company-1"):
    with storage.get_session() as session:
        return FlowRule.from_model(FlowRuleRepository().get(session, rule_id, company_id))


def test_record_persists_execution(storage, rule_factory, recorder):
    rule = snapshot(storage, rule_factory(name="Critical asset alert"))
    results = [ActionResult(action_type="log", order=0, success=True, message="ok", attempts=1)]
    context = {"maintenance": {"id": 42}, "asset": {"id": "A-7", "isCritical": True}}

    execution = recorder.record(rule, True, action_results=results, context=context)

    assert execution is not None
    assert execution.rule_id == rule.id
    assert execution.rule_name == "Critical asset alert"
    assert execution.company_id == "company-1"
    assert execution.trigger == "creation"
    assert execution.maintenance_id == "42"
    assert execution.asset_id == "A-7"
    assert execution.action_results[0]["action_type"] == "log"

    stored = recorder.list_executions("company-1")
    assert [e.id for e in stored] == [execution.id]


def test_record_failure_returns_none_and_logs(rule_factory, storage, caplog):
    rule = snapshot(storage, rule_factory())
    broken = MagicMock()
    broken.get_session.side_effect = OperationalError("INSERT", {}, Exception("disk full"))
    recorder = ExecutionRecorder(broken)

    with caplog.at_level(logging.ERROR):
        assert recorder.record(rule, True) is None
    assert "Failed to record execution" in caplog.text


def test_zero_executions_rate_is_zero(recorder, rule_factory):
    rule_factory()
    stats = recorder.stats("company-1")

    assert stats.total_executions == 0
    assert stats.average_success_rate == 0.0
    assert stats.recent_executions == 0


def test_stats_rate_rounded_and_windowed(storage, rule_factory, recorder):
    rule = snapshot(storage, rule_factory())
    now = utcnow()
    recorder.record(rule, True, triggered_at=now - timedelta(days=1))
    recorder.record(rule, True, triggered_at=now - timedelta(days=2))
    recorder.record(rule, False, triggered_at=now - timedelta(days=10))
    recorder.record(rule, False, triggered_at=now - timedelta(days=60))

    windowed = recorder.stats("company-1")
    assert windowed.total_executions == 3
    assert windowed.average_success_rate == 66.67
    assert windowed.recent_executions == 2
    assert windowed.window_days == 30

    all_time = recorder.stats("company-1", window_days=0)
    assert all_time.total_executions == 4
    assert all_time.average_success_rate == 50.0
    assert all_time.window_days is None


def test_flow_counts_and_priority_buckets(rule_factory, recorder):
    rule_factory(priority=350)
    rule_factory(priority=250, is_active=False)
    rule_factory(priority=100)
    rule_factory(priority=50)
    rule_factory(company_id="company-2", priority=900)

    stats = recorder.stats("company-1")
    buckets = {entry.priority: entry.count for entry in stats.flows_by_priority}

    assert stats.total_flows == 4
    assert stats.active_flows == 3
    assert stats.inactive_flows == 1
    assert buckets == {PriorityLevel.HIGH: 1, PriorityLevel.MEDIUM: 1, PriorityLevel.LOW: 2}


def test_rule_stats(storage, rule_factory, recorder):
    busy = snapshot(storage, rule_factory(name="Busy", priority=10))
    rule_factory(name="Idle", priority=20)
    recorder.record(busy, True)
    recorder.record(busy, False)
    recorder.record(busy, True)

    stats = recorder.rule_stats("company-1")

    assert [s.name for s in stats] == ["Busy", "Idle"]
    assert stats[0].execution_count == 3
    assert stats[0].success_rate == 66.67
    assert stats[0].last_executed is not None
    assert stats[1].execution_count == 0
    assert stats[1].success_rate == 0.0
    assert stats[1].last_executed is None


def test_rule_stats_covers_every_rule(storage, rule_factory, recorder, monkeypatch):
    ids = [rule_factory(name=f"Rule {i:03d}", priority=(i % 5) + 1) for i in range(150)]
    # Stats must not go through the paginated listing
    monkeypatch.setattr(recorder.rules, "list", Mock(side_effect=AssertionError("paginated list used")))

    stats = recorder.rule_stats("company-1")

    assert len(stats) == 150
    assert {s.rule_id for s in stats} == set(ids)
    assert [s.priority for s in stats] == sorted(s.priority for s in stats)
