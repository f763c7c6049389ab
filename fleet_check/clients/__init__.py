"""Clients for the node API."""

from .node_api import BeeClient, NodeClient  # noqa: F401
