"""Cluster topology model: clusters own node groups, node groups own nodes."""

from .cluster import Cluster, ClusterOverlays  # noqa: F401
from .node import Node  # noqa: F401
from .node_group import NodeGroup  # noqa: F401
