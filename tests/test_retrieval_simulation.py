from __future__ import annotations

from datetime import datetime, timezone

import pytest

from fleet_check import FleetCheckConfig, FleetCheckRuntime, RunContext
from fleet_check.config import RetrievalSimulationOptions
from fleet_check.errors import ContentMismatch, ContextCancelled, DeadlineExceeded, SyncTimeout
from fleet_check.simulations import RetrievalSimulation
from fleet_check.orchestration import InMemoryOrchestrator
from fleet_check.simulations.retrieval import run_id_for
from fleet_check.telemetry import TelemetryCollector

from fleet_fakes import FakeSwarm, cancel_after, make_cluster

METRIC = "simulation_retrieval_{}"


def _options(**overrides):
    values = dict(seed=42, postage_wait=0, upload_delay=0)
    values.update(overrides)
    return RetrievalSimulationOptions(**values)


def _simulation(swarm, sink, **overrides):
    cluster = make_cluster(swarm, {"bee": [f"bee-{i}" for i in range(4)], "bootnode": ["bootnode-0"]})
    return RetrievalSimulation(cluster, _options(**overrides), sink, run_id="test-run")


def test_sync_failures_are_counted_until_cancelled():
    swarm = FakeSwarm()
    sink = TelemetryCollector()
    ctx = RunContext.background()
    swarm.fail("wait_sync", "bee-0")
    swarm.hooks["wait_sync"] = cancel_after(ctx, 3)

    result = _simulation(swarm, sink).run(ctx)

    assert result.seed == 42
    assert result.sweeps == 3
    assert result.summary.not_synced == 3
    assert sink.total(METRIC.format("tags_not_synced")) == 3
    assert isinstance(result.stop_reason, ContextCancelled)
    assert swarm.calls_to("download_chunk") == []
    assert all(isinstance(error, SyncTimeout) for error in result.recent_failures)


def test_surfaced_cancellation_is_raised():
    swarm = FakeSwarm()
    ctx = RunContext.background()
    swarm.hooks["wait_sync"] = cancel_after(ctx, 1)
    with pytest.raises(ContextCancelled):
        _simulation(swarm, TelemetryCollector(), surface_cancellation=True).run(ctx)


def test_healthy_sweeps_retrieve_every_chunk():
    swarm = FakeSwarm()
    sink = TelemetryCollector()
    ctx = RunContext.background()
    swarm.hooks["download_chunk"] = cancel_after(ctx, 4)

    result = _simulation(swarm, sink, upload_node_count=2).run(ctx)

    assert result.sweeps == 2
    assert result.summary.uploaded == 4
    assert result.summary.synced == 4
    assert result.summary.retrieved == 4
    assert result.summary.failures == 0
    assert swarm.calls_to("upload_chunk") == ["bee-0", "bee-1", "bee-0", "bee-1"]
    assert sink.total(METRIC.format("chunks_retrieved")) == 4
    assert len(sink.observations[METRIC.format("chunk_upload_seconds")]) == 4


def test_mismatches_are_recorded_and_the_loop_continues():
    swarm = FakeSwarm()
    swarm.corrupt.update(["bee-0", "bee-1", "bee-2", "bee-3", "bootnode-0"])
    sink = TelemetryCollector()
    ctx = RunContext.background()
    swarm.hooks["download_chunk"] = cancel_after(ctx, 3)

    result = _simulation(swarm, sink).run(ctx)

    assert result.sweeps == 3
    assert result.summary.not_retrieved == 3
    assert result.summary.retrieved == 0
    assert all(isinstance(error, ContentMismatch) for error in result.recent_failures)


def test_failed_units_do_not_stop_the_sweep():
    swarm = FakeSwarm()
    ctx = RunContext.background()
    swarm.fail("upload_chunk", "bee-0")
    swarm.hooks["upload_chunk"] = cancel_after(ctx, 6)

    result = _simulation(swarm, TelemetryCollector(), upload_node_count=2, chunks_per_node=3).run(ctx)

    assert result.sweeps == 1
    assert result.summary.not_uploaded == 3
    assert result.summary.retrieved == 3


def test_batch_failure_skips_only_that_upload_node():
    swarm = FakeSwarm()
    ctx = RunContext.background()
    swarm.fail("get_or_create_batch", "bee-0")
    swarm.hooks["download_chunk"] = cancel_after(ctx, 1)

    result = _simulation(swarm, TelemetryCollector(), upload_node_count=2).run(ctx)

    assert swarm.calls_to("upload_chunk") == ["bee-1"]
    assert result.summary.retrieved == 1
    assert result.recent_failures[0].reason == "batch creation failed"


def test_same_seed_picks_same_download_nodes():
    picks = []
    for _ in range(2):
        swarm = FakeSwarm()
        ctx = RunContext.background()
        swarm.hooks["download_chunk"] = cancel_after(ctx, 5)
        _simulation(swarm, TelemetryCollector()).run(ctx)
        picks.append(swarm.calls_to("download_chunk"))
    assert picks[0] == picks[1]
    assert len(picks[0]) == 5


def test_deadline_stops_the_simulation_between_sweeps():
    swarm = FakeSwarm()
    ctx = RunContext.with_deadline_in(0.2)
    result = _simulation(swarm, TelemetryCollector(), upload_delay=10).run(ctx)
    assert result.sweeps == 1
    assert isinstance(result.stop_reason, DeadlineExceeded)


def test_runtime_tags_metrics_with_run_id():
    swarm = FakeSwarm()
    cfg = FleetCheckConfig.default()
    cfg.retrieval_simulation = _options()
    runtime = FleetCheckRuntime.bootstrap(cfg, client_factory=swarm.client_factory, sink=TelemetryCollector())
    ctx = RunContext.background()
    swarm.hooks["download_chunk"] = cancel_after(ctx, 1)
    result = runtime.run_retrieval_simulation(ctx)
    assert result.run_id.startswith("default-")
    assert result.summary.retrieved == 1


def test_run_id_format():
    now = datetime(2024, 3, 5, 7, 8, 9, 123456, tzinfo=timezone.utc)
    assert run_id_for("testnet", now) == "testnet-2024-03-05-07-08-09-123456"


def test_long_runs_keep_summary_state_bounded():
    swarm = FakeSwarm()
    ctx = RunContext.background()
    swarm.hooks["download_chunk"] = cancel_after(ctx, 300)

    result = _simulation(swarm, TelemetryCollector()).run(ctx)

    assert result.sweeps == 300
    assert result.summary.uploaded == result.summary.downloaded == 300
    assert all(isinstance(value, (int, float)) for value in vars(result.summary).values())
    assert result.summary.upload_seconds_total >= 0.0
    assert any(line.startswith("uploaded: 300 ok") for line in result.summary.lines())


def test_recent_failures_keep_only_the_latest():
    swarm = FakeSwarm()
    ctx = RunContext.background()
    swarm.fail("wait_sync", "bee-0")
    swarm.hooks["wait_sync"] = cancel_after(ctx, 150)

    result = _simulation(swarm, TelemetryCollector()).run(ctx)

    assert result.summary.not_synced == 150
    assert len(result.recent_failures) == 100


@pytest.mark.parametrize("groups", [{"bee": ["bee-0", "bee-1"]}, {"bee": ["bee-0"], "light": ["light-0"]}])
def test_expired_deadline_during_setup_ends_cleanly(groups):
    swarm = FakeSwarm()
    orchestrator = InMemoryOrchestrator()
    cluster = make_cluster(swarm, groups, orchestrator=orchestrator)
    orchestrator.register(cluster.options.namespace, cluster.node_names())
    ctx = RunContext.with_deadline_in(0.0)

    result = RetrievalSimulation(cluster, _options(), TelemetryCollector()).run(ctx)

    assert result.sweeps == 0
    assert isinstance(result.stop_reason, DeadlineExceeded)
    assert swarm.calls == []


def test_expired_deadline_during_setup_surfaces_when_asked():
    swarm = FakeSwarm()
    orchestrator = InMemoryOrchestrator()
    cluster = make_cluster(swarm, {"bee": ["bee-0"]}, orchestrator=orchestrator)
    orchestrator.register(cluster.options.namespace, cluster.node_names())
    simulation = RetrievalSimulation(cluster, _options(surface_cancellation=True), TelemetryCollector())
    with pytest.raises(DeadlineExceeded):
        simulation.run(RunContext.with_deadline_in(0.0))
