"""Deploy options dataclass."""

from dataclasses import dataclass, field
from typing import Callable

from mandala_cli.deploy.readiness import READINESS_INTERVAL, READINESS_TIMEOUT
from mandala_cli.nodes.client import DEFAULT_TIMEOUT


@dataclass
class DeployOptions:
    """Everything a multi-service deployment run needs besides the manifest."""

    manifest_path: str = "agent-manifest.json"
    base_dir: str = "."  # build contexts resolve against this
    select_node: Callable | None = None  # picks one DiscoveredNode; default: most GPUs available
    lookup_endpoints: list[str] | None = None
    known_nodes: list[str] = field(default_factory=list)
    service_url_template: str | None = None
    readiness_timeout: int = READINESS_TIMEOUT
    readiness_interval: int = READINESS_INTERVAL
    request_timeout: int = DEFAULT_TIMEOUT
    auth: object = None  # httpx.Auth; default identity from env
    transport: object = None  # httpx transport override
    registrations: set[str] = field(default_factory=set)  # node URLs registered this run
