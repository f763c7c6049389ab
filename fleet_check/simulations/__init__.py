"""Long-running probes against a live fleet."""

from .retrieval import RetrievalSimulation, SimulationSummary  # noqa: F401
