"""Step definitions for telemetry guard scenarios."""

import pytest
from pytest_bdd import given, parsers, then, when
from tests.features.telemetry.steps_helpers import TelemetryScenarioContext

from telemetrykit.core.config import TelemetryConfig
from telemetrykit.core.emitter import LogEmitter
from telemetrykit.core.labels import LabelSet
from telemetrykit.core.loop_guard import LoopGuard
from telemetrykit.core.registry import OVERFLOW_LABEL_VALUE, SeriesRegistry

SITE = "worker.py:42"


@pytest.fixture
def ctx() -> TelemetryScenarioContext:
    """Fresh scenario context for each test."""
    return TelemetryScenarioContext()


# === Loop guard ===
@given(
    parsers.parse(
        "an emitter with a loop guard threshold of {threshold:d} "
        "and a window of {window:d} seconds"
    )
)
def step_guarded_emitter(
    ctx: TelemetryScenarioContext, clock, threshold: int, window: int
) -> None:
    guard = LoopGuard(threshold=threshold, window=window, clock=clock)
    ctx.emitter = LogEmitter(ctx.sink, loop_guard=guard)


@when(parsers.parse("the same record is logged {n:d} times inside a batch"))
def step_log_in_batch(ctx: TelemetryScenarioContext, n: int) -> None:
    assert ctx.emitter is not None
    with ctx.emitter.batch():
        for item in range(n):
            ctx.emitter.info("processing item", {"item": item}, site=SITE)


@when(parsers.parse("the same record is logged {n:d} times"))
def step_log_repeatedly(ctx: TelemetryScenarioContext, n: int) -> None:
    assert ctx.emitter is not None
    for item in range(n):
        ctx.emitter.info("processing item", {"item": item}, site=SITE)


@when(parsers.parse('the messages "{first}" and "{second}" are each logged {n:d} times'))
def step_log_two_messages(
    ctx: TelemetryScenarioContext, first: str, second: str, n: int
) -> None:
    assert ctx.emitter is not None
    for _ in range(n):
        ctx.emitter.info(first, site=SITE)
        ctx.emitter.info(second, site=SITE)


@when(parsers.parse("{seconds:d} seconds pass"))
def step_time_passes(clock, seconds: int) -> None:
    clock.advance(seconds)


@when("the emitter is flushed")
def step_flush(ctx: TelemetryScenarioContext) -> None:
    assert ctx.emitter is not None
    ctx.emitter.flush()


@then(parsers.parse("{n:d} records are written"))
def step_record_count(ctx: TelemetryScenarioContext, n: int) -> None:
    assert len(ctx.sink) == n


@then(parsers.parse('the last record reads "{text}"'))
def step_last_record_text(ctx: TelemetryScenarioContext, text: str) -> None:
    assert ctx.sink.records[-1].render() == text


@then(parsers.parse("the last record has suppressed_count {n:d}"))
def step_last_record_suppressed(ctx: TelemetryScenarioContext, n: int) -> None:
    assert ctx.sink.records[-1].fields["suppressed_count"] == n


# === Cardinality ===
@given(
    parsers.parse('a registry with a cardinality ceiling of {ceiling:d} and the "{policy}" policy')
)
def step_registry(
    ctx: TelemetryScenarioContext, clock, ceiling: int, policy: str
) -> None:
    config = TelemetryConfig(cardinality_ceiling=ceiling, cardinality_policy=policy)
    ctx.registry = SeriesRegistry(config, reporter=ctx.report, clock=clock)


@when(parsers.parse('the counter "{name}" is incremented for {n:d} distinct users'))
def step_increment_users(ctx: TelemetryScenarioContext, name: str, n: int) -> None:
    assert ctx.registry is not None
    counter = ctx.registry.counter(name, ["user"])
    for user in range(n):
        counter.labels(user=f"u{user}").inc()


@then(parsers.parse('"{name}" has {n:d} series'))
def step_series_count(ctx: TelemetryScenarioContext, name: str, n: int) -> None:
    assert ctx.registry is not None
    assert ctx.registry.series_count(name) == n


@then(parsers.parse("{n:d} cardinality rejections are counted"))
def step_rejections(ctx: TelemetryScenarioContext, n: int) -> None:
    assert ctx.registry is not None
    assert ctx.registry.diagnostic_counts()["cardinality_rejections"] == n


@then(parsers.parse("{n:d} diagnostic is reported"))
def step_reports(ctx: TelemetryScenarioContext, n: int) -> None:
    assert len(ctx.reports) == n


@then(parsers.parse('the overflow series of "{name}" has value {value:d}'))
def step_overflow_value(ctx: TelemetryScenarioContext, name: str, value: int) -> None:
    assert ctx.registry is not None
    overflow = LabelSet.of(user=OVERFLOW_LABEL_VALUE)
    values = {s.labels: s.value for s in ctx.registry.snapshot() if s.name == name}
    assert values[overflow] == value
