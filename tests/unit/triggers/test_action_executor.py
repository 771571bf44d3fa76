import asyncio

import httpx
import pytest

from conftest import RecordingAction
from maintflow.triggers.actions.base import ActionContext
from maintflow.triggers.actions.registry import HandlerRegistry
from maintflow.triggers.engine.executor import ActionExecutor, RetryPolicy
from maintflow.triggers.errors import TransientActionError
from maintflow.triggers.schemas import FlowAction, HandlerResult


class FakeSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class SlowAction(RecordingAction):
    async def execute(self, parameters, context):
        self.calls.append({"parameters": parameters, "context": context})
        await asyncio.sleep(1)
        return HandlerResult.ok()


@pytest.fixture
def context():
    return ActionContext(
        trigger="creation",
        company_id="company-1",
        event_data={"maintenance": {"id": 7, "title": "Oil change"}},
        rule_id="rule-1",
        rule_name="Notify on creation",
    )


@pytest.fixture
def sleep():
    return FakeSleep()


def make_executor(registry, sleep, **kwargs):
    kwargs.setdefault("retry_policy", RetryPolicy(max_attempts=3, base_delay=0.5, max_delay=8.0))
    kwargs.setdefault("timeout", 5.0)
    kwargs.setdefault("stop_on_failure", False)
    return ActionExecutor(registry, sleep=sleep, **kwargs)


def test_backoff_doubles_and_caps():
    policy = RetryPolicy(max_attempts=10, base_delay=0.5, max_delay=3.0)
    assert [policy.delay_for(n) for n in range(1, 6)] == [0.5, 1.0, 2.0, 3.0, 3.0]


@pytest.mark.asyncio
async def test_actions_run_in_order_with_interpolated_parameters(context, sleep):
    log = []
    registry = HandlerRegistry()
    registry.register_handler(RecordingAction("email", log=log))
    registry.register_handler(RecordingAction("task", log=log))
    executor = make_executor(registry, sleep)

    actions = [
        FlowAction(type="task", parameters={"title": "Follow up {{maintenance.title}}"}, order=1),
        FlowAction(type="email", parameters={"subject": "Maintenance #{{maintenance.id}}"}, order=0),
    ]
    outcome = await executor.run(actions, context)

    assert outcome.success is True
    assert [name for name, _rule in log] == ["email", "task"]
    email = registry.resolve("email")
    assert email.calls[0]["parameters"] == {"subject": "Maintenance #7"}
    assert email.calls[0]["context"].action_order == 0
    assert [r.attempts for r in outcome.action_results] == [1, 1]


@pytest.mark.asyncio
async def test_transient_failure_retried_then_succeeds(context, sleep):
    registry = HandlerRegistry()
    flaky = RecordingAction("email", results=[
        HandlerResult.failure("SMTP busy", transient=True),
        TransientActionError("SMTP busy"),
        HandlerResult.ok("sent"),
    ])
    registry.register_handler(flaky)
    executor = make_executor(registry, sleep)

    outcome = await executor.run([FlowAction(type="email", order=0)], context)

    assert outcome.success is True
    assert outcome.action_results[0].attempts == 3
    assert sleep.delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_transient_failure_gives_up_after_max_attempts(context, sleep):
    registry = HandlerRegistry()
    registry.register_handler(RecordingAction("email", results=[
        ConnectionError("refused"), httpx.ConnectError("refused"), ConnectionError("refused"),
    ]))
    executor = make_executor(registry, sleep)

    outcome = await executor.run([FlowAction(type="email", order=0)], context)

    result = outcome.action_results[0]
    assert outcome.success is False
    assert result.attempts == 3
    assert result.transient is True
    assert "gave up after 3 attempts" in result.message
    assert len(sleep.delays) == 2


@pytest.mark.asyncio
async def test_permanent_failure_not_retried(context, sleep):
    registry = HandlerRegistry()
    handler = RecordingAction("email", results=[HandlerResult.failure("Recipient rejected")])
    registry.register_handler(handler)
    executor = make_executor(registry, sleep)

    outcome = await executor.run([FlowAction(type="email", order=0)], context)

    assert outcome.success is False
    assert outcome.action_results[0].attempts == 1
    assert outcome.action_results[0].message == "Recipient rejected"
    assert len(handler.calls) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_handler_exception_is_a_permanent_failure(context, sleep):
    registry = HandlerRegistry()
    registry.register_handler(RecordingAction("email", results=[KeyError("recipient")]))
    executor = make_executor(registry, sleep)

    outcome = await executor.run([FlowAction(type="email", order=0)], context)

    result = outcome.action_results[0]
    assert result.success is False
    assert result.attempts == 1
    assert "KeyError" in result.message


@pytest.mark.asyncio
async def test_timeout_is_transient(context, sleep):
    registry = HandlerRegistry()
    slow = SlowAction("slow")
    registry.register_handler(slow)
    executor = make_executor(registry, sleep, timeout=0.01, retry_policy=RetryPolicy(max_attempts=2))

    outcome = await executor.run([FlowAction(type="slow", order=0)], context)

    result = outcome.action_results[0]
    assert result.success is False
    assert result.transient is True
    assert "Timed out" in result.message
    assert len(slow.calls) == 2


@pytest.mark.asyncio
async def test_missing_handler_fails_without_retry(context, sleep):
    registry = HandlerRegistry()
    registry.register_handler(RecordingAction("log"))
    executor = make_executor(registry, sleep)

    outcome = await executor.run(
        [FlowAction(type="send_sms", order=0), FlowAction(type="log", order=1)], context
    )

    missing, logged = outcome.action_results
    assert outcome.success is False
    assert missing.success is False
    assert missing.attempts == 0
    assert "send_sms" in missing.message and "log" in missing.message
    assert logged.success is True
    assert "send_sms#0" in outcome.error_detail


@pytest.mark.asyncio
async def test_continue_policy_runs_every_action(context, sleep):
    registry = HandlerRegistry()
    registry.register_handler(RecordingAction("a", results=[HandlerResult.failure("nope")]))
    registry.register_handler(RecordingAction("b"))
    executor = make_executor(registry, sleep)

    outcome = await executor.run([FlowAction(type="a", order=0), FlowAction(type="b", order=1)], context)

    assert outcome.success is False
    assert [r.success for r in outcome.action_results] == [False, True]
    assert len(registry.resolve("b").calls) == 1


@pytest.mark.asyncio
async def test_stop_policy_skips_remaining_actions(context, sleep):
    registry = HandlerRegistry()
    registry.register_handler(RecordingAction("a", results=[HandlerResult.failure("nope")]))
    registry.register_handler(RecordingAction("b"))
    executor = make_executor(registry, sleep)

    outcome = await executor.run(
        [FlowAction(type="a", order=0), FlowAction(type="b", order=1)], context, stop_on_failure=True
    )

    failed, skipped = outcome.action_results
    assert outcome.success is False
    assert skipped.skipped is True
    assert skipped.attempts == 0
    assert registry.resolve("b").calls == []
    assert outcome.error_detail == "a#0: nope"


@pytest.mark.asyncio
async def test_non_result_return_is_failure(context, sleep):
    registry = HandlerRegistry()
    registry.register_handler(RecordingAction("odd", results=["sent"]))
    executor = make_executor(registry, sleep)

    outcome = await executor.run([FlowAction(type="odd", order=0)], context)

    assert outcome.success is False
    assert "expected HandlerResult" in outcome.action_results[0].message


@pytest.mark.asyncio
async def test_handler_returning_nothing_is_failure(context, sleep):
    registry = HandlerRegistry()
    registry.register_handler(RecordingAction("silent", results=[None]))
    executor = make_executor(registry, sleep)

    outcome = await executor.run([FlowAction(type="silent", order=0)], context)

    assert outcome.success is False
    result = outcome.action_results[0]
    assert result.success is False
    assert result.attempts == 1
    assert "Handler returned NoneType, expected HandlerResult" in result.message


@pytest.mark.asyncio
async def test_empty_action_list_succeeds(context, sleep):
    outcome = await make_executor(HandlerRegistry(), sleep).run([], context)
    assert outcome.success is True
    assert outcome.action_results == []
