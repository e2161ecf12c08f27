import threading

import pytest
from conftest import FailingHandler, RecordingHandler

from engine import ActionExecutor, AuditRecorder
from handlers import ActionHandler
from models import ActionExecutionStatus, ActionResult, ExecutionStatus

FACTS = {"device": {"name": "Front Door"}, "event": {"state": "open"}}


class BlockingHandler(ActionHandler):
    def __init__(self):
        self.release = threading.Event()

    def execute(self, params):
        self.release.wait(5)
        return ActionResult(success=True)


class ExplodingHandler(ActionHandler):
    def execute(self, params):
        raise RuntimeError("boom")


@pytest.fixture()
def recorder(audit_repository, settings, clock):
    return AuditRecorder(audit_repository, settings, clock=clock)


@pytest.fixture()
def sleeps():
    return []


@pytest.fixture()
def executor(registry, recorder, settings, sleeps):
    return ActionExecutor(registry, recorder, settings, sleep=sleeps.append)


def _run(executor, recorder, automation):
    execution_id = recorder.start_execution(automation.id or "a-1", FACTS, len(automation.actions))
    summary = executor.run(automation, FACTS, execution_id)
    return summary, recorder.get_execution_detail(execution_id)


def test_actions_run_in_order_with_rendered_params(make_automation, executor, recorder, record_handler):
    automation = make_automation(
        actions=[
            {"type": "record", "params": {"message": "{{device.name}} is {{event.state}}"}},
            {"type": "record", "params": {"step": 2}},
        ]
    )

    summary, detail = _run(executor, recorder, automation)

    assert summary.status is ExecutionStatus.SUCCESS
    assert (summary.successful, summary.failed, summary.skipped) == (2, 0, 0)
    assert record_handler.calls == [{"message": "Front Door is open"}, {"step": 2}]
    assert [action.action_index for action in detail.actions] == [0, 1]
    assert [action.status for action in detail.actions] == [ActionExecutionStatus.SUCCESS] * 2
    assert detail.actions[0].action_params == {"message": "Front Door is open"}


def test_timeout_is_a_failure_and_later_actions_still_run(make_automation, executor, recorder, registry, record_handler):
    blocking = BlockingHandler()
    registry.register("slow", "Never answers in time", blocking)
    automation = make_automation(actions=[{"type": "slow"}, {"type": "record"}])

    try:
        summary, detail = _run(executor, recorder, automation)
    finally:
        blocking.release.set()

    assert summary.status is ExecutionStatus.PARTIAL_FAILURE
    assert (summary.successful, summary.failed) == (1, 1)
    first, second = detail.actions
    assert (first.action_index, second.action_index) == (0, 1)
    assert first.status is ActionExecutionStatus.FAILURE
    assert first.error_message == "Timed out after 0.2s"
    assert second.status is ActionExecutionStatus.SUCCESS
    assert len(record_handler.calls) == 1


def test_abandoned_calls_do_not_hold_up_later_actions(executor, registry, record_handler, settings):
    blocking = BlockingHandler()
    registry.register("slow", "Never answers in time", blocking)

    try:
        for _ in range(settings.max_concurrent_firings + 1):
            timed_out, _ = executor.dispatch("slow", {})
            assert timed_out.error == "Timed out after 0.2s"
        result, retries = executor.dispatch("record", {"n": 1})
    finally:
        blocking.release.set()

    assert result.success is True
    assert retries == 0
    assert record_handler.calls == [{"n": 1}]


def test_failed_hard_dependency_skips_the_rest(make_automation, executor, recorder, registry, record_handler):
    registry.register("gate", "Always fails", FailingHandler())
    automation = make_automation(
        actions=[{"type": "gate", "hardDependency": True}, {"type": "record", "params": {"secret": "{{device.name}}"}}]
    )

    summary, detail = _run(executor, recorder, automation)

    assert summary.status is ExecutionStatus.FAILURE
    assert (summary.successful, summary.failed, summary.skipped) == (0, 1, 1)
    assert record_handler.calls == []
    skipped = detail.actions[1]
    assert skipped.status is ActionExecutionStatus.SKIPPED
    assert skipped.action_params == {"secret": "Front Door"}
    assert "required action 0 failed" in skipped.error_message


def test_soft_failure_does_not_block(make_automation, executor, recorder, registry, record_handler):
    registry.register("flaky", "Always fails", FailingHandler())
    automation = make_automation(actions=[{"type": "flaky"}, {"type": "record"}])

    summary, _ = _run(executor, recorder, automation)

    assert summary.status is ExecutionStatus.PARTIAL_FAILURE
    assert len(record_handler.calls) == 1


def test_retryable_handler_is_retried_with_backoff(make_automation, executor, recorder, registry, sleeps):
    failing = FailingHandler(retryable=True)
    registry.register("webhook", "Idempotent call", failing)

    summary, detail = _run(executor, recorder, make_automation(actions=[{"type": "webhook"}]))

    assert summary.status is ExecutionStatus.FAILURE
    assert len(failing.calls) == 4
    assert detail.actions[0].retry_count == 3
    assert sleeps == pytest.approx([0.1, 0.2, 0.25])


def test_non_retryable_handler_runs_once(make_automation, executor, recorder, registry, sleeps):
    failing = FailingHandler(retryable=False)
    registry.register("unlock", "Physical side effect", failing)

    _, detail = _run(executor, recorder, make_automation(actions=[{"type": "unlock"}]))

    assert len(failing.calls) == 1
    assert detail.actions[0].retry_count == 0
    assert sleeps == []


def test_retry_stops_at_first_success(executor, registry):
    class SecondTimeLucky(RecordingHandler):
        def execute(self, params):
            self.calls.append(params)
            return ActionResult(success=len(self.calls) > 1, error=None if len(self.calls) > 1 else "busy")

    handler = SecondTimeLucky(retryable=True)
    registry.register("lucky", "Succeeds on retry", handler)

    result, retries = executor.dispatch("lucky", {})

    assert result.success is True
    assert retries == 1


def test_handler_exceptions_become_failures(make_automation, executor, recorder, registry):
    registry.register("explode", "Raises", ExplodingHandler())

    summary, detail = _run(executor, recorder, make_automation(actions=[{"type": "explode"}, {"type": "missing"}]))

    assert summary.status is ExecutionStatus.FAILURE
    assert detail.actions[0].error_message == "RuntimeError: boom"
    assert detail.actions[1].error_message == "Unknown action type: missing"
