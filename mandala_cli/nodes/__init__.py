"""Node access: REST client, capability probing, registry discovery."""

from mandala_cli.nodes.client import IdentityAuth, NodeClient, default_auth
from mandala_cli.nodes.discovery import (
    default_lookup_endpoints,
    discover_gpu_nodes,
    discover_nodes,
    log_discovered_nodes,
    parse_lookup_output,
)
from mandala_cli.nodes.probe import parse_capabilities, probe_known_nodes, probe_node
from mandala_cli.nodes.types import (
    DiscoveredNode,
    FetchResult,
    FetchStatus,
    GpuInfo,
    NodeCapabilities,
)

__all__ = [
    "DiscoveredNode",
    "FetchResult",
    "FetchStatus",
    "GpuInfo",
    "IdentityAuth",
    "NodeCapabilities",
    "NodeClient",
    "default_auth",
    "default_lookup_endpoints",
    "discover_gpu_nodes",
    "discover_nodes",
    "log_discovered_nodes",
    "parse_capabilities",
    "parse_lookup_output",
    "probe_known_nodes",
    "probe_node",
]
