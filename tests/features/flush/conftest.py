"""BDD step definitions for the flush cycle."""

from collections.abc import Iterator

import pytest
from pytest_bdd import given, parsers, then, when
from tests.collector import COLLECTOR_KEY
from tests.features.flush.steps_helpers import FlushScenarioContext, run_async


@pytest.fixture
def ctx() -> Iterator[FlushScenarioContext]:
    """Fresh scenario context for each test."""
    context = FlushScenarioContext()
    yield context
    if context.manager is not None:
        context.manager.destroy()


# === Given ===


@given("a telemetry manager with a collector")
def step_manager_with_collector(ctx: FlushScenarioContext) -> None:
    ctx.build_manager(with_collector=True)


@given("a telemetry manager without a collector")
def step_manager_without_collector(ctx: FlushScenarioContext) -> None:
    ctx.build_manager(with_collector=False)


@given("the collector is unreachable")
def step_collector_unreachable(ctx: FlushScenarioContext) -> None:
    ctx.collector.fail = True


@given(parsers.parse("the collector answers with status {status:d}"))
def step_collector_status(ctx: FlushScenarioContext, status: int) -> None:
    ctx.collector.status = status


@given(parsers.parse("{count:d} tracked metrics"))
def step_tracked_metrics(ctx: FlushScenarioContext, count: int) -> None:
    manager = ctx.get_manager()
    for i in range(count):
        manager.track_metric(f"metric.{i}", i)


# === When ===


@when("the manager flushes")
def step_flush(ctx: FlushScenarioContext) -> None:
    run_async(ctx.get_manager().flush())


@when(parsers.parse("{count:d} batches are tracked and flushed"))
def step_flush_batches(ctx: FlushScenarioContext, count: int) -> None:
    manager = ctx.get_manager()
    for i in range(count):
        manager.track_metric(f"batch.{i}", i)
        run_async(manager.flush())


@when(parsers.parse('the error "{message}" is tracked'))
def step_track_error(ctx: FlushScenarioContext, message: str) -> None:
    # No loop is running here, so a critical error flushes before returning.
    ctx.get_manager().track_error(Exception(message))


# === Then ===


@then(parsers.re(r"the collector received (?P<count>\d+) requests?"), converters={"count": int})
def step_request_count(ctx: FlushScenarioContext, count: int) -> None:
    assert len(ctx.collector.requests) == count


@then("the request carries the bearer key")
def step_bearer_key(ctx: FlushScenarioContext) -> None:
    request = ctx.collector.requests[-1]
    assert request.headers["Authorization"] == f"Bearer {COLLECTOR_KEY}"


@then("all buffers are empty")
def step_buffers_empty(ctx: FlushScenarioContext) -> None:
    assert not ctx.get_manager().get_session_data().has_data()


@then(
    parsers.re(r"(?P<count>\d+) sessions? (?:is|are) stored locally"),
    converters={"count": int},
)
def step_stored_count(ctx: FlushScenarioContext, count: int) -> None:
    stored = run_async(ctx.get_manager().get_stored_monitoring_data())
    assert len(stored) == count


@then(parsers.parse("the oldest stored session holds batch {index:d}"))
def step_oldest_batch(ctx: FlushScenarioContext, index: int) -> None:
    stored = run_async(ctx.get_manager().get_stored_monitoring_data())
    assert stored[0]["metrics"][0]["name"] == f"batch.{index}"
