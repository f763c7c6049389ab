"""A single fleet member."""

from __future__ import annotations

from dataclasses import dataclass, field

from ..config import NodeConfig


@dataclass
class Node:
    name: str
    group: str
    api_url: str
    debug_api_url: str
    api_ingress_host: str
    debug_api_ingress_host: str
    config: NodeConfig = field(default_factory=NodeConfig)

    @property
    def full_node(self) -> bool:
        return self.config.full_node
