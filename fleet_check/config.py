"""Configuration primitives for fleet checks and simulations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .errors import ConfigurationError

MB = 1024 * 1024


@dataclass
class NodeConfig:
    full_node: bool = True


@dataclass
class NodeGroupOptions:
    annotations: Dict[str, str] = field(default_factory=dict)
    labels: Dict[str, str] = field(default_factory=dict)
    node_config: NodeConfig = field(default_factory=NodeConfig)


@dataclass
class ClusterOptions:
    namespace: str = "bee"
    api_scheme: str = "http"
    api_domain: str = "localhost"
    api_insecure_tls: bool = False
    debug_api_scheme: str = "http"
    debug_api_domain: str = "localhost"
    debug_api_insecure_tls: bool = False
    disable_namespace: bool = False
    annotations: Dict[str, str] = field(default_factory=dict)
    labels: Dict[str, str] = field(default_factory=dict)
    request_timeout: float = 30.0
    parallel_queries: bool = True


@dataclass
class FileRetrievalOptions:
    file_name: str = "file-retrieval"
    file_size: int = 1 * MB
    files_per_node: int = 1
    full: bool = False
    postage_amount: int = 1
    postage_label: str = "test-label"
    postage_wait: float = 5.0
    download_delay: float = 1.0
    seed: Optional[int] = None
    upload_node_count: int = 1


@dataclass
class RetrievalSimulationOptions:
    chunks_per_node: int = 1
    postage_amount: int = 1000
    postage_depth: int = 16
    postage_label: str = "test-label"
    postage_wait: float = 5.0
    seed: Optional[int] = None
    upload_node_count: int = 1
    upload_delay: float = 5.0
    surface_cancellation: bool = False


@dataclass
class ObservabilityConfig:
    log_level: str = "INFO"
    pushgateway_url: Optional[str] = None
    job_name: str = "fleet-check"
    metrics_namespace: str = "fleet_check"


@dataclass
class NodeGroupLayout:
    name: str
    nodes: List[str] = field(default_factory=list)
    options: NodeGroupOptions = field(default_factory=NodeGroupOptions)


@dataclass
class FleetCheckConfig:
    cluster_name: str
    cluster: ClusterOptions
    node_groups: List[NodeGroupLayout]
    file_retrieval: FileRetrievalOptions
    retrieval_simulation: RetrievalSimulationOptions
    observability: ObservabilityConfig

    @staticmethod
    def default() -> "FleetCheckConfig":
        return FleetCheckConfig(
            cluster_name="default",
            cluster=ClusterOptions(),
            node_groups=[
                NodeGroupLayout(name="bootnode", nodes=["bootnode-0"]),
                NodeGroupLayout(name="bee", nodes=[f"bee-{i}" for i in range(4)]),
            ],
            file_retrieval=FileRetrievalOptions(),
            retrieval_simulation=RetrievalSimulationOptions(),
            observability=ObservabilityConfig(),
        )

    @staticmethod
    def from_dict(payload: Mapping[str, Any]) -> "FleetCheckConfig":
        """Build a config from a plain mapping (e.g. parsed JSON)."""
        base = FleetCheckConfig.default()
        groups_payload = payload.get("node_groups", None)
        if groups_payload is None:
            groups = base.node_groups
        else:
            if not isinstance(groups_payload, Mapping):
                raise ConfigurationError("node_groups must be a mapping of group name to group settings")
            groups = []
            for group_name, group in groups_payload.items():
                group = dict(group or {})
                node_config = group.pop("node_config", {})
                nodes = list(group.pop("nodes", []))
                count = group.pop("count", None)
                if count is not None:
                    nodes.extend(f"{group_name}-{i}" for i in range(int(count)))
                try:
                    options = NodeGroupOptions(node_config=NodeConfig(**node_config), **group)
                except TypeError as exc:
                    raise ConfigurationError(f"node group {group_name}: {exc}") from exc
                groups.append(NodeGroupLayout(name=group_name, nodes=nodes, options=options))
        try:
            return FleetCheckConfig(
                cluster_name=payload.get("cluster_name", base.cluster_name),
                cluster=ClusterOptions(**payload.get("cluster", {})),
                node_groups=groups,
                file_retrieval=FileRetrievalOptions(**payload.get("file_retrieval", {})),
                retrieval_simulation=RetrievalSimulationOptions(**payload.get("retrieval_simulation", {})),
                observability=ObservabilityConfig(**payload.get("observability", {})),
            )
        except TypeError as exc:
            raise ConfigurationError(str(exc)) from exc
