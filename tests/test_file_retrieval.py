from __future__ import annotations

from prometheus_client import CollectorRegistry

from fleet_check import FleetCheckConfig, FleetCheckRuntime, RunContext
from fleet_check.checks import FileRetrievalCheck
from fleet_check.config import FileRetrievalOptions
from fleet_check.errors import BatchCreationFailed, ConfigurationError, ContentMismatch, DownloadFailed, UploadFailed
from fleet_check.orchestration import InMemoryOrchestrator
from fleet_check.telemetry import PrometheusSink, TelemetryCollector

from fleet_fakes import FakeSwarm, overlay_of

METRIC = "check_file_retrieval_{}"


def _runtime(swarm, sink=None, **options):
    cfg = FleetCheckConfig.default()
    cfg.file_retrieval = FileRetrievalOptions(seed=42, postage_wait=0, download_delay=0, file_size=64 * 1024, **options)
    return FleetCheckRuntime.bootstrap(cfg, client_factory=swarm.client_factory, sink=sink or TelemetryCollector())


def test_file_retrieval_passes_against_healthy_fleet():
    swarm = FakeSwarm()
    sink = TelemetryCollector()
    outcome = _runtime(swarm, sink).run_file_retrieval(RunContext.background())
    assert outcome.passed
    assert outcome.exit_code == 0
    assert outcome.summary.retrieved == 1
    assert swarm.calls_to("upload_file") == ["bee-0"]
    assert swarm.calls_to("download_file") == ["bootnode-0"]
    assert sink.value(METRIC.format("files_retrieved"), node=overlay_of("bee-0")) == 1
    assert sink.pushes >= 1


def test_batch_depth_is_sized_from_file_length():
    swarm = FakeSwarm()
    _runtime(swarm).run_file_retrieval(RunContext.background())
    # 64 KiB is 16 data chunks plus the root: estimate 4, plus margin 2
    assert swarm.batches == [("bee-0", 1, 6, "test-label")]


def test_every_upload_node_uploads_files_per_node():
    swarm = FakeSwarm()
    outcome = _runtime(swarm, upload_node_count=2, files_per_node=2).run_file_retrieval(RunContext.background())
    assert outcome.passed
    assert swarm.calls_to("upload_file") == ["bee-0", "bee-0", "bee-1", "bee-1"]
    assert outcome.summary.retrieved == 4


def test_full_mode_downloads_from_every_other_node():
    swarm = FakeSwarm()
    outcome = _runtime(swarm, full=True).run_file_retrieval(RunContext.background())
    assert outcome.passed
    assert sorted(swarm.calls_to("download_file")) == ["bee-1", "bee-2", "bee-3", "bootnode-0"]
    assert outcome.summary.retrieved == 4


def test_content_mismatch_aborts_the_check():
    swarm = FakeSwarm()
    swarm.corrupt.add("bootnode-0")
    outcome = _runtime(swarm, files_per_node=3).run_file_retrieval(RunContext.background())
    assert not outcome.passed
    assert outcome.exit_code == 1
    assert isinstance(outcome.error, ContentMismatch)
    assert outcome.error.node == "bee-0"
    assert outcome.error.download_node == "bootnode-0"
    assert swarm.calls_to("upload_file") == ["bee-0"]
    assert outcome.summary.not_retrieved == 1


def test_upload_failure_is_reported():
    swarm = FakeSwarm()
    swarm.fail("upload_file", "bee-0")
    sink = TelemetryCollector()
    outcome = _runtime(swarm, sink).run_file_retrieval(RunContext.background())
    assert isinstance(outcome.error, UploadFailed)
    assert sink.value(METRIC.format("files_not_uploaded"), node=overlay_of("bee-0")) == 1
    assert swarm.calls_to("download_file") == []


def test_batch_creation_failure_is_reported():
    swarm = FakeSwarm()
    swarm.fail("create_postage_batch", "bee-0")
    outcome = _runtime(swarm).run_file_retrieval(RunContext.background())
    assert isinstance(outcome.error, BatchCreationFailed)
    assert swarm.calls_to("upload_file") == []


def test_download_failure_names_download_node():
    swarm = FakeSwarm()
    swarm.fail("download_file", "bootnode-0")
    outcome = _runtime(swarm).run_file_retrieval(RunContext.background())
    assert isinstance(outcome.error, DownloadFailed)
    assert outcome.error.download_node == "bootnode-0"
    assert outcome.summary.not_downloaded == 1


def test_too_many_upload_nodes_is_a_configuration_error():
    swarm = FakeSwarm()
    outcome = _runtime(swarm, upload_node_count=6).run_file_retrieval(RunContext.background())
    assert not outcome.passed
    assert "exceeds" in str(outcome.error)


class _BrokenPushSink(TelemetryCollector):
    def push(self):
        raise ConnectionError("pushgateway unreachable")


def test_metric_push_failures_do_not_fail_the_check(caplog):
    swarm = FakeSwarm()
    outcome = _runtime(swarm, _BrokenPushSink()).run_file_retrieval(RunContext.background())
    assert outcome.passed
    assert outcome.summary.failed_pushes >= 1
    assert "metrics push failed" in caplog.text


def test_prometheus_registry_receives_check_metrics():
    swarm = FakeSwarm()
    registry = CollectorRegistry()
    sink = PrometheusSink(registry=registry)
    cluster = _runtime(swarm).cluster
    check = FileRetrievalCheck(cluster, FileRetrievalOptions(seed=1, postage_wait=0, download_delay=0, file_size=100), sink)
    check.run(RunContext.background())
    labels = {"node": overlay_of("bee-0")}
    assert registry.get_sample_value("fleet_check_check_file_retrieval_files_uploaded_total", labels) == 1.0
    assert registry.get_sample_value("fleet_check_check_file_retrieval_files_retrieved_total", labels) == 1.0
    assert registry.get_sample_value("fleet_check_check_file_retrieval_file_upload_seconds_count") == 1.0


def test_no_running_nodes_is_a_configuration_error():
    swarm = FakeSwarm()
    cfg = FleetCheckConfig.default()
    cfg.file_retrieval = FileRetrievalOptions(seed=1, postage_wait=0, download_delay=0, upload_node_count=0)
    orchestrator = InMemoryOrchestrator()
    runtime = FleetCheckRuntime.bootstrap(
        cfg, orchestrator=orchestrator, client_factory=swarm.client_factory, sink=TelemetryCollector()
    )
    ctx = RunContext.background()
    for group in runtime.cluster.node_groups().values():
        for name in group.node_names():
            group.stop_node(ctx, name)

    outcome = runtime.run_file_retrieval(ctx)

    assert not outcome.passed
    assert isinstance(outcome.error, ConfigurationError)
    assert "no running nodes" in str(outcome.error)
