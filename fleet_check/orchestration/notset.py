"""Orchestrator used when no orchestration platform is wired in."""

from __future__ import annotations

from typing import List

from ..context import RunContext
from ..errors import OrchestrationNotSet


class NotSetOrchestrator:
    """Every call raises :class:`OrchestrationNotSet`."""

    def ready(self, ctx: RunContext, name: str, namespace: str) -> bool:
        raise OrchestrationNotSet()

    def start(self, ctx: RunContext, name: str, namespace: str) -> None:
        raise OrchestrationNotSet()

    def stop(self, ctx: RunContext, name: str, namespace: str) -> None:
        raise OrchestrationNotSet()

    def running_nodes(self, ctx: RunContext, namespace: str) -> List[str]:
        raise OrchestrationNotSet()

    def stopped_nodes(self, ctx: RunContext, namespace: str) -> List[str]:
        raise OrchestrationNotSet()
