"""Correctness checks against a fleet of content-addressed storage nodes."""

from .config import FleetCheckConfig  # noqa: F401
from .context import RunContext  # noqa: F401
from .runtime import FleetCheckRuntime  # noqa: F401
