"""Exception hierarchy shared by the topology model and the verification engine."""

from __future__ import annotations

from typing import Optional


class FleetCheckError(Exception):
    """Base class for every error raised by fleet_check."""


# Configuration / setup ---------------------------------------------------
class ConfigurationError(FleetCheckError):
    pass


class DuplicateNodeGroup(ConfigurationError):
    def __init__(self, name: str) -> None:
        super().__init__(f"node group {name} already registered")
        self.name = name


class DuplicateNodeName(ConfigurationError):
    def __init__(self, name: str, groups: tuple[str, ...] = ()) -> None:
        where = f" (groups: {', '.join(groups)})" if groups else ""
        super().__init__(f"key {name} already present{where}")
        self.name = name
        self.groups = groups


class NodeGroupNotFound(ConfigurationError):
    def __init__(self, name: str) -> None:
        super().__init__(f"node group {name} not found")
        self.name = name


class NodeNotFound(ConfigurationError):
    def __init__(self, name: str) -> None:
        super().__init__(f"node {name} not found")
        self.name = name


# Topology queries ----------------------------------------------------------
class NodeGroupQueryError(FleetCheckError):
    """Wraps the first failure of a per-group query with the group name."""

    def __init__(self, group: str, cause: BaseException) -> None:
        super().__init__(f"{group}: {cause}")
        self.group = group
        self.cause = cause


class NodeAPIError(FleetCheckError):
    def __init__(self, node: str, message: str, *, status_code: Optional[int] = None, url: Optional[str] = None) -> None:
        super().__init__(f"node {node}: {message}")
        self.node = node
        self.status_code = status_code
        self.url = url


class OrchestrationNotSet(FleetCheckError):
    """Raised by the not-set orchestrator; callers may treat it as "nothing known"."""

    def __init__(self) -> None:
        super().__init__("orchestration client not set")


# Context termination -----------------------------------------------------
class ContextCancelled(FleetCheckError):
    def __init__(self, message: str = "context canceled") -> None:
        super().__init__(message)


class DeadlineExceeded(ContextCancelled):
    def __init__(self) -> None:
        super().__init__("context deadline exceeded")


# Verification ----------------------------------------------------------------
class VerificationError(FleetCheckError):
    """A single test unit failed; carries the nodes and content address involved."""

    reason = "verification failed"

    def __init__(
        self,
        node: str,
        *,
        address: Optional[str] = None,
        download_node: Optional[str] = None,
        cause: Optional[BaseException] = None,
        detail: Optional[str] = None,
    ) -> None:
        self.node = node
        self.address = address
        self.download_node = download_node
        self.cause = cause
        parts = [f"node {node}"]
        if download_node:
            parts.append(f"download node {download_node}")
        if address:
            parts.append(f"address {address}")
        message = f"{self.reason}: {', '.join(parts)}"
        if detail:
            message = f"{message}: {detail}"
        elif cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class BatchCreationFailed(VerificationError):
    reason = "batch creation failed"


class UploadFailed(VerificationError):
    reason = "upload failed"


class SyncTimeout(VerificationError):
    reason = "sync timeout"


class DownloadFailed(VerificationError):
    reason = "download failed"


class ContentMismatch(VerificationError):
    reason = "content mismatch"
