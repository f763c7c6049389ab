"""Capability set every orchestration backend exposes to the topology model."""

from __future__ import annotations

from typing import List, Protocol

from ..context import RunContext


class Orchestrator(Protocol):
    def ready(self, ctx: RunContext, name: str, namespace: str) -> bool:
        ...

    def start(self, ctx: RunContext, name: str, namespace: str) -> None:
        ...

    def stop(self, ctx: RunContext, name: str, namespace: str) -> None:
        ...

    def running_nodes(self, ctx: RunContext, namespace: str) -> List[str]:
        ...

    def stopped_nodes(self, ctx: RunContext, namespace: str) -> List[str]:
        ...
