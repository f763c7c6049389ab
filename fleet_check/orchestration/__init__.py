"""Node orchestration backends (start/stop/readiness of node workloads)."""

from .base import Orchestrator  # noqa: F401
from .memory import InMemoryOrchestrator  # noqa: F401
from .notset import NotSetOrchestrator  # noqa: F401
