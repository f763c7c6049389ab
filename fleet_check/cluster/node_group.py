"""Named collection of nodes sharing addressing and orchestration settings."""

from __future__ import annotations

import copy
import logging
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, TypeVar

from ..clients.node_api import NodeClient
from ..config import NodeConfig, NodeGroupOptions
from ..context import RunContext
from ..errors import ConfigurationError, NodeNotFound, OrchestrationNotSet
from ..models import Addresses, Balance, Settlements, Topology
from ..orchestration.base import Orchestrator
from . import urls
from .node import Node

if TYPE_CHECKING:  # pragma: no cover
    from .cluster import Cluster

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class NodeGroup:
    def __init__(self, name: str, options: NodeGroupOptions, cluster: "Cluster", orchestrator: Orchestrator) -> None:
        self.name = name
        self.options = options
        self.cluster = cluster
        self.orchestrator = orchestrator
        self._nodes: Dict[str, Node] = {}

    @property
    def namespace(self) -> str:
        return self.cluster.options.namespace

    # Membership ------------------------------------------------------------
    def add_node(self, name: str, config: Optional[NodeConfig] = None) -> Node:
        if name in self._nodes:
            raise ConfigurationError(f"node {name} already exists in node group {self.name}")
        opts = self.cluster.options
        node = Node(
            name=name,
            group=self.name,
            api_url=urls.api_url(name, opts.namespace, opts.api_domain, opts.api_scheme, opts.disable_namespace),
            debug_api_url=urls.debug_api_url(
                name, opts.namespace, opts.debug_api_domain, opts.debug_api_scheme, opts.disable_namespace
            ),
            api_ingress_host=urls.ingress_host(name, opts.namespace, opts.api_domain, opts.disable_namespace),
            debug_api_ingress_host=urls.ingress_debug_host(
                name, opts.namespace, opts.debug_api_domain, opts.disable_namespace
            ),
            config=config or copy.deepcopy(self.options.node_config),
        )
        self._nodes[name] = node
        return node

    def add_nodes(self, count: int, config: Optional[NodeConfig] = None) -> List[Node]:
        start = len(self._nodes)
        return [self.add_node(f"{self.name}-{i}", config) for i in range(start, start + count)]

    def nodes(self) -> Dict[str, Node]:
        return dict(self._nodes)

    def node(self, name: str) -> Node:
        try:
            return self._nodes[name]
        except KeyError:
            raise NodeNotFound(name) from None

    def node_names(self) -> List[str]:
        return sorted(self._nodes)

    def size(self) -> int:
        return len(self._nodes)

    # Orchestration ---------------------------------------------------------
    def stopped_nodes(self, ctx: RunContext) -> List[str]:
        stopped = self.orchestrator.stopped_nodes(ctx, self.namespace)
        return [name for name in stopped if name in self._nodes]

    def running_nodes(self, ctx: RunContext) -> List[str]:
        running = self.orchestrator.running_nodes(ctx, self.namespace)
        return [name for name in running if name in self._nodes]

    def _stopped_or_none(self, ctx: RunContext) -> List[str]:
        try:
            return self.stopped_nodes(ctx)
        except OrchestrationNotSet:
            _LOGGER.debug("node group %s: orchestration not set, no stopped nodes known", self.name)
            return []

    def node_ready(self, ctx: RunContext, name: str) -> bool:
        self.node(name)
        return self.orchestrator.ready(ctx, name, self.namespace)

    def start_node(self, ctx: RunContext, name: str) -> None:
        self.node(name)
        self.orchestrator.start(ctx, name, self.namespace)
        _LOGGER.info("node %s started", name)

    def stop_node(self, ctx: RunContext, name: str) -> None:
        self.node(name)
        self.orchestrator.stop(ctx, name, self.namespace)
        _LOGGER.info("node %s stopped", name)

    # Clients ---------------------------------------------------------------
    def nodes_clients(self, ctx: RunContext) -> Dict[str, NodeClient]:
        """Fresh clients for every node not reported stopped."""
        stopped = set(self._stopped_or_none(ctx))
        return {
            name: self.cluster.client_factory(node)
            for name, node in sorted(self._nodes.items())
            if name not in stopped
        }

    def nodes_clients_all(self) -> Dict[str, NodeClient]:
        return {name: self.cluster.client_factory(node) for name, node in sorted(self._nodes.items())}

    def node_client(self, name: str) -> NodeClient:
        return self.cluster.client_factory(self.node(name))

    # Per-node state --------------------------------------------------------
    def _query(self, ctx: RunContext, fn: Callable[[NodeClient, RunContext], T]) -> Dict[str, T]:
        return {name: fn(client, ctx) for name, client in self.nodes_clients(ctx).items()}

    def addresses(self, ctx: RunContext) -> Dict[str, Addresses]:
        return self._query(ctx, lambda client, c: client.addresses(c))

    def balances(self, ctx: RunContext) -> Dict[str, Dict[str, Balance]]:
        return self._query(ctx, lambda client, c: client.balances(c))

    def overlays(self, ctx: RunContext) -> Dict[str, str]:
        return self._query(ctx, lambda client, c: client.overlay(c))

    def peers(self, ctx: RunContext) -> Dict[str, List[str]]:
        return self._query(ctx, lambda client, c: client.peers(c))

    def settlements(self, ctx: RunContext) -> Dict[str, Settlements]:
        return self._query(ctx, lambda client, c: client.settlements(c))

    def topologies(self, ctx: RunContext) -> Dict[str, Topology]:
        return self._query(ctx, lambda client, c: client.topology(c))

    def group_replication_factor(self, ctx: RunContext, address: str) -> int:
        """Number of nodes in this group holding ``address``."""
        return sum(1 for client in self.nodes_clients(ctx).values() if client.has_chunk(ctx, address))
