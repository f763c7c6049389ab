"""Runtime wiring: builds the cluster and metrics sink, runs checks and simulations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .checks.file_retrieval import FileRetrievalCheck
from .cluster import Cluster
from .cluster.cluster import ClientFactory
from .config import FleetCheckConfig
from .context import RunContext
from .errors import FleetCheckError
from .orchestration.base import Orchestrator
from .orchestration.memory import InMemoryOrchestrator
from .reporting import RunOutcome
from .simulations.retrieval import RetrievalSimulation, SimulationSummary, run_id_for
from .telemetry import MetricsSink, PrometheusSink

_LOGGER = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format="[%(asctime)s] %(levelname)s %(message)s")


def build_cluster(
    config: FleetCheckConfig,
    *,
    orchestrator: Optional[Orchestrator] = None,
    client_factory: Optional[ClientFactory] = None,
) -> Cluster:
    cluster = Cluster(config.cluster_name, config.cluster, orchestrator=orchestrator, client_factory=client_factory)
    for layout in config.node_groups:
        group = cluster.add_node_group(layout.name, layout.options)
        for node_name in layout.nodes:
            group.add_node(node_name)
    nodes = cluster.nodes()
    if isinstance(orchestrator, InMemoryOrchestrator):
        orchestrator.register(config.cluster.namespace, nodes)
    return cluster


@dataclass
class FleetCheckRuntime:
    config: FleetCheckConfig
    cluster: Cluster
    sink: Optional[MetricsSink] = None

    @classmethod
    def bootstrap(
        cls,
        config: Optional[FleetCheckConfig] = None,
        *,
        orchestrator: Optional[Orchestrator] = None,
        client_factory: Optional[ClientFactory] = None,
        sink: Optional[MetricsSink] = None,
    ) -> "FleetCheckRuntime":
        cfg = config or FleetCheckConfig.default()
        configure_logging(cfg.observability.log_level)
        cluster = build_cluster(cfg, orchestrator=orchestrator, client_factory=client_factory)
        return cls(config=cfg, cluster=cluster, sink=sink)

    def _sink(self, **grouping_key: str) -> MetricsSink:
        if self.sink is not None:
            return self.sink
        return PrometheusSink.from_config(self.config.observability, **grouping_key)

    def run_file_retrieval(self, ctx: RunContext) -> RunOutcome:
        check = FileRetrievalCheck(self.cluster, self.config.file_retrieval, self._sink())
        try:
            summary = check.run(ctx)
        except FleetCheckError as exc:
            _LOGGER.error("file retrieval failed: %s", exc)
            return RunOutcome(passed=False, error=exc, summary=check.summary)
        _LOGGER.info("file retrieval passed")
        return RunOutcome(passed=True, summary=summary)

    def run_retrieval_simulation(self, ctx: RunContext) -> SimulationSummary:
        run_id = run_id_for(self.cluster.name)
        simulation = RetrievalSimulation(
            self.cluster,
            self.config.retrieval_simulation,
            self._sink(run=run_id),
            run_id=run_id,
        )
        return simulation.run(ctx)
