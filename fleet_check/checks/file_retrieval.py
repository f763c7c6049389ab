"""Single-shot file retrieval check.

Uploads seeded random files to the first ``upload_node_count`` nodes (sorted
by name) and downloads each one either from the last node in the cluster or,
in full mode, from every other node. The first failure of any kind aborts the
whole check.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List

from ..cluster import Cluster
from ..clients.node_api import NodeClient
from ..config import FileRetrievalOptions
from ..context import RunContext
from ..errors import (
    BatchCreationFailed,
    ConfigurationError,
    ContentMismatch,
    ContextCancelled,
    DownloadFailed,
    UploadFailed,
)
from ..models import File
from ..reporting import Reporter, RunSummary
from ..telemetry import MetricsSink
from ..workload import BATCH_DEPTH_MARGIN, estimate_batch_depth, pseudo_generators, random_file, random_seed

_LOGGER = logging.getLogger(__name__)

SUBSYSTEM = "check_file_retrieval"


@dataclass
class FileRetrievalCheck:
    cluster: Cluster
    options: FileRetrievalOptions
    sink: MetricsSink
    summary: RunSummary = field(default_factory=RunSummary, init=False)

    def run(self, ctx: RunContext) -> RunSummary:
        opts = self.options
        seed = opts.seed if opts.seed is not None else random_seed()
        _LOGGER.info("running file retrieval%s", " (full mode)" if opts.full else "")
        _LOGGER.info("Seed: %d", seed)
        rnds = pseudo_generators(seed, opts.upload_node_count)
        reporter = Reporter(self.sink, SUBSYSTEM, unit="file")
        self.summary = reporter.summary

        overlays = self.cluster.flatten_overlays(ctx)
        clients = self.cluster.nodes_clients(ctx)
        sorted_nodes = sorted(clients)
        if not sorted_nodes:
            raise ConfigurationError(f"cluster {self.cluster.name} has no running nodes")
        if opts.upload_node_count > len(sorted_nodes):
            raise ConfigurationError(
                f"upload node count {opts.upload_node_count} exceeds {len(sorted_nodes)} available nodes"
            )
        last_node = sorted_nodes[-1]

        try:
            for i in range(opts.upload_node_count):
                node_name = sorted_nodes[i]
                for j in range(opts.files_per_node):
                    file = random_file(rnds[i], f"{opts.file_name}-{i}-{j}", opts.file_size)
                    if opts.full:
                        targets = [name for name in sorted_nodes if name != node_name]
                    else:
                        targets = [last_node]
                    self._check_file(ctx, reporter, clients, overlays, node_name, j, file, targets)
        finally:
            reporter.log_summary()
        return reporter.summary

    def _check_file(
        self,
        ctx: RunContext,
        reporter: Reporter,
        clients: Dict[str, NodeClient],
        overlays: Dict[str, str],
        node_name: str,
        index: int,
        file: File,
        targets: List[str],
    ) -> None:
        opts = self.options
        overlay = overlays.get(node_name, node_name)
        client = clients[node_name]

        depth = BATCH_DEPTH_MARGIN + estimate_batch_depth(file.size())
        try:
            batch_id = client.create_postage_batch(ctx, opts.postage_amount, depth, opts.postage_label)
        except ContextCancelled:
            raise
        except Exception as exc:
            raise BatchCreationFailed(node_name, cause=exc) from exc
        _LOGGER.info("node %s: created batch id %s", node_name, batch_id)
        if not ctx.sleep(opts.postage_wait):
            ctx.raise_if_done()

        t0 = time.perf_counter()
        try:
            file.address = client.upload_file(ctx, file.data, batch_id, name=file.name)
        except ContextCancelled:
            raise
        except Exception as exc:
            reporter.not_uploaded(overlay)
            reporter.push(f"node {node_name}")
            raise UploadFailed(node_name, cause=exc) from exc
        reporter.uploaded(overlay, file.address, time.perf_counter() - t0, file.size())

        if not ctx.sleep(opts.download_delay):
            ctx.raise_if_done()

        for target in targets:
            t1 = time.perf_counter()
            try:
                downloaded = clients[target].download_file(ctx, file.address)
            except ContextCancelled:
                raise
            except Exception as exc:
                reporter.not_downloaded(overlay)
                reporter.push(f"node {node_name}")
                raise DownloadFailed(node_name, address=file.address, download_node=target, cause=exc) from exc
            reporter.downloaded(overlay, file.address, time.perf_counter() - t1, downloaded.size)

            if downloaded.hash != file.hash:
                reporter.not_retrieved(overlay)
                _LOGGER.info(
                    "Node %s. File %d not retrieved successfully from node %s. Uploaded size: %d Downloaded size: %d "
                    "Node: %s Download node: %s File: %s",
                    node_name,
                    index,
                    target,
                    file.size(),
                    downloaded.size,
                    overlay,
                    overlays.get(target, target),
                    file.address,
                )
                reporter.push(f"node {node_name}")
                raise ContentMismatch(
                    node_name,
                    address=file.address,
                    download_node=target,
                    detail=f"uploaded size {file.size()}, downloaded size {downloaded.size}",
                )

            reporter.retrieved(overlay)
            _LOGGER.info(
                "Node %s. File %d retrieved successfully from node %s. Node: %s Download node: %s File: %s",
                node_name,
                index,
                target,
                overlay,
                overlays.get(target, target),
                file.address,
            )
            reporter.push(f"node {node_name}")
