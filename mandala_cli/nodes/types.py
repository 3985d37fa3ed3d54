"""Shared data types for node probing and discovery."""

from dataclasses import dataclass, field
from enum import Enum

import httpx

# httpx.InvalidURL is not an HTTPError subclass
REQUEST_ERRORS = (httpx.HTTPError, httpx.InvalidURL)


class FetchStatus(Enum):
    OK = "ok"
    UNREACHABLE = "unreachable"
    MALFORMED = "malformed"


@dataclass
class FetchResult:
    """Outcome of a best-effort remote read.

    ``value`` is set only when ``status`` is OK; ``error`` describes the
    failure otherwise.
    """

    status: FetchStatus
    value: object = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.status is FetchStatus.OK

    @classmethod
    def success(cls, value):
        return cls(FetchStatus.OK, value=value)

    @classmethod
    def unreachable(cls, error):
        return cls(FetchStatus.UNREACHABLE, error=str(error))

    @classmethod
    def malformed(cls, error):
        return cls(FetchStatus.MALFORMED, error=str(error))


@dataclass
class GpuInfo:
    """GPU block advertised by a node."""

    enabled: bool = False
    type: str | None = None
    total: int | None = None
    available: int | None = None


@dataclass
class NodeCapabilities:
    """Result of probing a node's public info endpoint."""

    url: str
    gpu: GpuInfo = field(default_factory=GpuInfo)
    pricing: dict = field(default_factory=dict)
    supported_runtimes: list[str] = field(default_factory=list)
    schema_versions_supported: list[str] = field(default_factory=lambda: ["1.0"])


@dataclass
class DiscoveredNode:
    """A node advertised by a registry or found by direct probing."""

    url: str
    identity_key: str = ""
    gpu: bool = False
    gpu_type: str | None = None
    gpu_total: int | None = None
    gpu_available: int | None = None
    pricing: dict = field(default_factory=dict)
    runtimes: list[str] = field(default_factory=list)
    last_seen: str = ""

    def matches(self, node_filter: dict | None) -> bool:
        """Whether this node satisfies a ``{"gpu", "gpuType"}`` filter."""
        if not node_filter:
            return True
        if node_filter.get("gpu") and not self.gpu:
            return False
        gpu_type = node_filter.get("gpuType")
        if gpu_type and self.gpu_type != gpu_type:
            return False
        return True
