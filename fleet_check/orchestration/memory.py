"""Process-local orchestrator tracking which node workloads are online."""

from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Set

from ..context import RunContext
from ..errors import NodeNotFound


class InMemoryOrchestrator:
    """Keeps running/stopped state per namespace without touching a platform.

    Useful for local fleets started outside any orchestrator and for tests
    that need nodes to go offline between queries.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._running: Dict[str, Set[str]] = {}
        self._stopped: Dict[str, Set[str]] = {}

    def register(self, namespace: str, names: Iterable[str]) -> None:
        with self._lock:
            running = self._running.setdefault(namespace, set())
            self._stopped.setdefault(namespace, set())
            running.update(names)

    def _known(self, name: str, namespace: str) -> bool:
        return name in self._running.get(namespace, set()) or name in self._stopped.get(namespace, set())

    def ready(self, ctx: RunContext, name: str, namespace: str) -> bool:
        ctx.raise_if_done()
        with self._lock:
            if not self._known(name, namespace):
                raise NodeNotFound(name)
            return name in self._running[namespace]

    def start(self, ctx: RunContext, name: str, namespace: str) -> None:
        ctx.raise_if_done()
        with self._lock:
            if not self._known(name, namespace):
                raise NodeNotFound(name)
            self._stopped[namespace].discard(name)
            self._running[namespace].add(name)

    def stop(self, ctx: RunContext, name: str, namespace: str) -> None:
        ctx.raise_if_done()
        with self._lock:
            if not self._known(name, namespace):
                raise NodeNotFound(name)
            self._running[namespace].discard(name)
            self._stopped[namespace].add(name)

    def running_nodes(self, ctx: RunContext, namespace: str) -> List[str]:
        ctx.raise_if_done()
        with self._lock:
            return sorted(self._running.get(namespace, set()))

    def stopped_nodes(self, ctx: RunContext, namespace: str) -> List[str]:
        ctx.raise_if_done()
        with self._lock:
            return sorted(self._stopped.get(namespace, set()))
