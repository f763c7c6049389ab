"""Continuous chunk retrieval simulation.

Each sweep uploads seeded random chunks from the first ``upload_node_count``
nodes, waits for the upload tag to sync, downloads every chunk from a
pseudo-randomly chosen node and compares the bytes. Failures are recorded and
the loop carries on until the context is cancelled.
"""

from __future__ import annotations

import logging
import random
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Deque, Dict, List, Optional

from ..cluster import Cluster
from ..clients.node_api import NodeClient
from ..config import RetrievalSimulationOptions
from ..context import RunContext
from ..errors import (
    BatchCreationFailed,
    ConfigurationError,
    ContentMismatch,
    ContextCancelled,
    DownloadFailed,
    SyncTimeout,
    UploadFailed,
    VerificationError,
)
from ..reporting import Reporter, RunSummary
from ..telemetry import MetricsSink
from ..workload import pseudo_generators, random_chunk, random_seed

_LOGGER = logging.getLogger(__name__)

SUBSYSTEM = "simulation_retrieval"


@dataclass
class SimulationSummary:
    seed: int
    run_id: str
    sweeps: int = 0
    summary: RunSummary = field(default_factory=RunSummary)
    stop_reason: Optional[ContextCancelled] = None
    recent_failures: Deque[VerificationError] = field(default_factory=lambda: deque(maxlen=100))


def run_id_for(cluster_name: str, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"{cluster_name}-{now:%Y-%m-%d-%H-%M-%S-%f}"


@dataclass
class RetrievalSimulation:
    cluster: Cluster
    options: RetrievalSimulationOptions
    sink: MetricsSink
    run_id: Optional[str] = None

    def run(self, ctx: RunContext) -> SimulationSummary:
        opts = self.options
        seed = opts.seed if opts.seed is not None else random_seed()
        _LOGGER.info("Seed: %d", seed)
        rnds = pseudo_generators(seed, opts.upload_node_count)
        result = SimulationSummary(seed=seed, run_id=self.run_id or run_id_for(self.cluster.name))
        reporter = Reporter(self.sink, SUBSYSTEM, unit="chunk")
        result.summary = reporter.summary

        try:
            overlays = self.cluster.flatten_overlays(ctx)
            clients = self.cluster.nodes_clients(ctx)
        except ContextCancelled as exc:
            result.stop_reason = exc
            return self._stopped(result)
        sorted_nodes = sorted(clients)
        if not sorted_nodes:
            raise ConfigurationError(f"cluster {self.cluster.name} has no running nodes")
        if opts.upload_node_count > len(sorted_nodes):
            raise ConfigurationError(
                f"upload node count {opts.upload_node_count} exceeds {len(sorted_nodes)} available nodes"
            )

        try:
            while True:
                try:
                    self._sweep(ctx, reporter, result, clients, overlays, sorted_nodes, rnds)
                except ContextCancelled as exc:
                    result.stop_reason = exc
                    break
                result.sweeps += 1
                if not ctx.sleep(opts.upload_delay):
                    result.stop_reason = ctx.err()
                    break
        finally:
            reporter.log_summary()
        return self._stopped(result)

    def _stopped(self, result: SimulationSummary) -> SimulationSummary:
        _LOGGER.info("retrieval simulation stopped after %d sweeps: %s", result.sweeps, result.stop_reason)
        if self.options.surface_cancellation and result.stop_reason is not None:
            raise result.stop_reason
        return result

    def _record(self, result: SimulationSummary, error: VerificationError) -> None:
        result.recent_failures.append(error)
        _LOGGER.info("error: %s", error)

    def _sweep(
        self,
        ctx: RunContext,
        reporter: Reporter,
        result: SimulationSummary,
        clients: Dict[str, NodeClient],
        overlays: Dict[str, str],
        sorted_nodes: List[str],
        rnds: List[random.Random],
    ) -> None:
        opts = self.options
        for i in range(opts.upload_node_count):
            node_name = sorted_nodes[i]
            client = clients[node_name]
            overlay = overlays.get(node_name, node_name)

            try:
                batch_id = client.get_or_create_batch(ctx, opts.postage_amount, opts.postage_depth, opts.postage_label)
            except ContextCancelled:
                raise
            except Exception as exc:
                self._record(result, BatchCreationFailed(node_name, cause=exc))
                continue
            _LOGGER.info("node %s: batch id %s", node_name, batch_id)
            if not ctx.sleep(opts.postage_wait):
                ctx.raise_if_done()

            for j in range(opts.chunks_per_node):
                chunk = random_chunk(rnds[i])

                try:
                    tag = client.create_tag(ctx)
                except ContextCancelled:
                    raise
                except Exception as exc:
                    reporter.not_uploaded(overlay)
                    reporter.push(f"upload node {node_name}")
                    self._record(result, UploadFailed(node_name, address=chunk.address, cause=exc, detail=f"create tag: {exc}"))
                    continue

                t0 = time.perf_counter()
                try:
                    ref = client.upload_chunk(ctx, chunk.data, batch_id, tag=tag.uid)
                except ContextCancelled:
                    raise
                except Exception as exc:
                    reporter.not_uploaded(overlay)
                    reporter.push(f"upload node {node_name}")
                    self._record(result, UploadFailed(node_name, address=chunk.address, cause=exc))
                    continue
                reporter.uploaded(overlay, ref, time.perf_counter() - t0, chunk.size())
                _LOGGER.info("Chunk %s uploaded successfully to node %s", chunk.address, overlay)

                t1 = time.perf_counter()
                try:
                    client.wait_sync(ctx, tag.uid)
                except ContextCancelled:
                    raise
                except Exception as exc:
                    reporter.not_synced(overlay)
                    reporter.push(f"upload node {node_name}")
                    self._record(result, SyncTimeout(node_name, address=ref, cause=exc))
                    continue
                reporter.synced(overlay, ref, time.perf_counter() - t1)
                _LOGGER.info("Chunk %s synced successfully with node %s", chunk.address, node_name)

                download_node = sorted_nodes[rnds[i].randrange(len(sorted_nodes))]
                download_overlay = overlays.get(download_node, download_node)

                t2 = time.perf_counter()
                try:
                    data = clients[download_node].download_chunk(ctx, ref)
                except ContextCancelled:
                    raise
                except Exception as exc:
                    reporter.not_downloaded(download_overlay)
                    reporter.push(f"upload node {node_name}, download node {download_node}")
                    self._record(result, DownloadFailed(node_name, address=ref, download_node=download_node, cause=exc))
                    continue
                reporter.downloaded(download_overlay, ref, time.perf_counter() - t2, len(data))

                if data != chunk.data:
                    reporter.not_retrieved(download_overlay)
                    reporter.push(f"upload node {node_name}, download node {download_node}")
                    self._record(
                        result,
                        ContentMismatch(
                            node_name,
                            address=ref,
                            download_node=download_node,
                            detail=f"chunk {j}: uploaded size {len(chunk.data)}, downloaded size {len(data)}",
                        ),
                    )
                    if data and data in chunk.data:
                        _LOGGER.info("Downloaded data is subset of the uploaded data")
                    continue

                reporter.retrieved(download_overlay)
                _LOGGER.info("Chunk %s retrieved successfully from node %s", chunk.address, download_overlay)
                reporter.push(f"upload node {node_name}, download node {download_node}")
