"""Cluster of node groups and cluster-wide aggregation of node state."""

from __future__ import annotations

import logging
import random
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple, TypeVar

from ..clients.node_api import BeeClient, NodeClient
from ..config import ClusterOptions, NodeGroupOptions
from ..context import RunContext
from ..errors import (
    ConfigurationError,
    ContextCancelled,
    DuplicateNodeGroup,
    DuplicateNodeName,
    NodeGroupNotFound,
    NodeGroupQueryError,
    OrchestrationNotSet,
)
from ..models import Addresses, Balance, Settlements, Topology
from ..orchestration.base import Orchestrator
from ..orchestration.notset import NotSetOrchestrator
from .node import Node
from .node_group import NodeGroup
from .urls import merge_maps

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

ClientFactory = Callable[[Node], NodeClient]


class ClusterOverlays(dict):
    """``{group name: {node name: overlay}}`` view with group-then-node sampling."""

    def random(self, rng: random.Random) -> Tuple[str, str, str]:
        """Pick a group uniformly, then a node uniformly within it.

        This is uniform over groups, not over nodes: a node in a small group
        is more likely to be chosen than one in a large group. Use
        :meth:`Cluster.random_node` for a per-node uniform choice.
        """
        groups = sorted(name for name, overlays in self.items() if overlays)
        if not groups:
            raise ConfigurationError("no overlays to choose from")
        group = groups[rng.randrange(len(groups))]
        names = sorted(self[group])
        name = names[rng.randrange(len(names))]
        return group, name, self[group][name]


class Cluster:
    """Owns node groups; every live view is queried on demand, never cached."""

    def __init__(
        self,
        name: str,
        options: Optional[ClusterOptions] = None,
        *,
        orchestrator: Optional[Orchestrator] = None,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.name = name
        self.options = options or ClusterOptions()
        self.orchestrator: Orchestrator = orchestrator or NotSetOrchestrator()
        self.client_factory: ClientFactory = client_factory or self._default_client
        self._node_groups: Dict[str, NodeGroup] = {}

    def _default_client(self, node: Node) -> NodeClient:
        insecure = self.options.api_insecure_tls or self.options.debug_api_insecure_tls
        return BeeClient(
            name=node.name,
            api_url=node.api_url,
            debug_api_url=node.debug_api_url,
            timeout=self.options.request_timeout,
            verify_tls=not insecure,
        )

    # Node groups -------------------------------------------------------------
    def add_node_group(self, name: str, options: Optional[NodeGroupOptions] = None) -> NodeGroup:
        if name in self._node_groups:
            raise DuplicateNodeGroup(name)
        options = options or NodeGroupOptions()
        merged = NodeGroupOptions(
            annotations=merge_maps(self.options.annotations, options.annotations),
            labels=merge_maps(self.options.labels, options.labels),
            node_config=options.node_config,
        )
        group = NodeGroup(name, merged, cluster=self, orchestrator=self.orchestrator)
        self._node_groups[name] = group
        return group

    def node_groups(self) -> Dict[str, NodeGroup]:
        return dict(self._node_groups)

    def node_group_names(self) -> List[str]:
        return sorted(self._node_groups)

    def node_group(self, name: str) -> NodeGroup:
        try:
            return self._node_groups[name]
        except KeyError:
            raise NodeGroupNotFound(name) from None

    # Nodes -------------------------------------------------------------------
    def nodes(self) -> Dict[str, Node]:
        nodes: Dict[str, Node] = {}
        for group_name in self.node_group_names():
            for node_name, node in self._node_groups[group_name].nodes().items():
                if node_name in nodes:
                    raise DuplicateNodeName(node_name, (nodes[node_name].group, group_name))
                nodes[node_name] = node
        return nodes

    def node_names(self) -> List[str]:
        """All node names, sorted, so iteration order is stable across runs."""
        return sorted(self.nodes())

    def full_node_names(self) -> List[str]:
        return sorted(name for name, node in self.nodes().items() if node.full_node)

    def light_node_names(self) -> List[str]:
        return sorted(name for name, node in self.nodes().items() if not node.full_node)

    def size(self) -> int:
        return sum(group.size() for group in self._node_groups.values())

    def nodes_clients(self, ctx: RunContext) -> Dict[str, NodeClient]:
        """Clients for all nodes not reported stopped."""
        self.nodes()
        clients: Dict[str, NodeClient] = {}
        for group_name in self.node_group_names():
            clients.update(self._node_groups[group_name].nodes_clients(ctx))
        return clients

    def nodes_clients_all(self) -> Dict[str, NodeClient]:
        self.nodes()
        clients: Dict[str, NodeClient] = {}
        for group_name in self.node_group_names():
            clients.update(self._node_groups[group_name].nodes_clients_all())
        return clients

    # Fan-out -----------------------------------------------------------------
    def _collect(
        self,
        ctx: RunContext,
        query: Callable[[NodeGroup, RunContext], T],
        exclude: Iterable[str] = (),
    ) -> Dict[str, T]:
        """Run ``query`` once per group; the first failing group aborts the call."""
        excluded = set(exclude)
        groups = [name for name in self.node_group_names() if name not in excluded]
        if not self.options.parallel_queries or len(groups) < 2:
            results: Dict[str, T] = {}
            for name in groups:
                try:
                    results[name] = query(self._node_groups[name], ctx)
                except ContextCancelled:
                    raise
                except Exception as exc:
                    raise NodeGroupQueryError(name, exc) from exc
            return results

        query_ctx = ctx.with_cancel()
        executor = ThreadPoolExecutor(max_workers=len(groups), thread_name_prefix=f"cluster-{self.name}")
        collected: Dict[str, T] = {}
        try:
            futures = {executor.submit(query, self._node_groups[name], query_ctx): name for name in groups}
            for future in as_completed(futures):
                name = futures[future]
                try:
                    collected[name] = future.result()
                except ContextCancelled:
                    ctx.raise_if_done()
                    raise
                except Exception as exc:
                    raise NodeGroupQueryError(name, exc) from exc
        finally:
            query_ctx.cancel()
            executor.shutdown(wait=False, cancel_futures=True)
        return {name: collected[name] for name in groups}

    @staticmethod
    def _flatten(per_group: Mapping[str, Mapping[str, T]]) -> Dict[str, T]:
        flat: Dict[str, T] = {}
        owner: Dict[str, str] = {}
        for group_name in sorted(per_group):
            for node_name, value in per_group[group_name].items():
                if node_name in flat:
                    raise DuplicateNodeName(node_name, (owner[node_name], group_name))
                flat[node_name] = value
                owner[node_name] = group_name
        return flat

    # Cluster-wide views ------------------------------------------------------
    def addresses(self, ctx: RunContext, exclude: Iterable[str] = ()) -> Dict[str, Dict[str, Addresses]]:
        return self._collect(ctx, lambda group, c: group.addresses(c), exclude)

    def flatten_addresses(self, ctx: RunContext, exclude: Iterable[str] = ()) -> Dict[str, Addresses]:
        return self._flatten(self.addresses(ctx, exclude))

    def balances(self, ctx: RunContext, exclude: Iterable[str] = ()) -> Dict[str, Dict[str, Dict[str, Balance]]]:
        return self._collect(ctx, lambda group, c: group.balances(c), exclude)

    def flatten_balances(self, ctx: RunContext, exclude: Iterable[str] = ()) -> Dict[str, Dict[str, Balance]]:
        return self._flatten(self.balances(ctx, exclude))

    def overlays(self, ctx: RunContext, exclude: Iterable[str] = ()) -> ClusterOverlays:
        return ClusterOverlays(self._collect(ctx, lambda group, c: group.overlays(c), exclude))

    def flatten_overlays(self, ctx: RunContext, exclude: Iterable[str] = ()) -> Dict[str, str]:
        return self._flatten(self.overlays(ctx, exclude))

    def peers(self, ctx: RunContext, exclude: Iterable[str] = ()) -> Dict[str, Dict[str, List[str]]]:
        return self._collect(ctx, lambda group, c: group.peers(c), exclude)

    def flatten_peers(self, ctx: RunContext, exclude: Iterable[str] = ()) -> Dict[str, List[str]]:
        return self._flatten(self.peers(ctx, exclude))

    def settlements(self, ctx: RunContext, exclude: Iterable[str] = ()) -> Dict[str, Dict[str, Settlements]]:
        return self._collect(ctx, lambda group, c: group.settlements(c), exclude)

    def flatten_settlements(self, ctx: RunContext, exclude: Iterable[str] = ()) -> Dict[str, Settlements]:
        return self._flatten(self.settlements(ctx, exclude))

    def topologies(self, ctx: RunContext, exclude: Iterable[str] = ()) -> Dict[str, Dict[str, Topology]]:
        return self._collect(ctx, lambda group, c: group.topologies(c), exclude)

    def flatten_topologies(self, ctx: RunContext, exclude: Iterable[str] = ()) -> Dict[str, Topology]:
        return self._flatten(self.topologies(ctx, exclude))

    def global_replication_factor(self, ctx: RunContext, address: str) -> int:
        """Number of nodes across all groups that hold ``address``."""
        per_group = self._collect(ctx, lambda group, c: group.group_replication_factor(c, address))
        return sum(per_group.values())

    # Selection ---------------------------------------------------------------
    def random_node(self, ctx: RunContext, rng: random.Random) -> Node:
        """Uniform choice over every node not reported stopped."""
        pool: List[Node] = []
        for group_name in self.node_group_names():
            group = self._node_groups[group_name]
            try:
                stopped = set(group.stopped_nodes(ctx))
            except OrchestrationNotSet:
                stopped = set()
            except ContextCancelled:
                raise
            except Exception as exc:
                raise NodeGroupQueryError(group_name, exc) from exc
            pool.extend(node for name, node in sorted(group.nodes().items()) if name not in stopped)
        if not pool:
            raise ConfigurationError(f"cluster {self.name} has no running nodes")
        return pool[rng.randrange(len(pool))]
