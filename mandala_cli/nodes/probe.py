"""Capability probing: read a node's public info endpoint."""

import logging
from datetime import datetime, timezone

import httpx

from mandala_cli.nodes.types import REQUEST_ERRORS, DiscoveredNode, FetchResult, GpuInfo, NodeCapabilities

logger = logging.getLogger(__name__)

PUBLIC_INFO_PATH = "/api/v1/public"
PROBE_TIMEOUT = 10


def _optional_int(value, name):
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{name}' must be an integer, got {value!r}")
    return value


def _str_list(value, name):
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"'{name}' must be a list of strings")
    return list(value)


def parse_capabilities(url, data) -> NodeCapabilities:
    """Validate a ``/api/v1/public`` body into NodeCapabilities.

    Missing fields default to disabled/empty; fields of the wrong type raise
    ValueError.
    """
    if not isinstance(data, dict):
        raise ValueError("public info response is not a JSON object")

    gpu_dict = data.get("gpu") or {}
    if not isinstance(gpu_dict, dict):
        raise ValueError("'gpu' must be an object")
    gpu_type = gpu_dict.get("type")
    if gpu_type is not None and not isinstance(gpu_type, str):
        raise ValueError("'gpu.type' must be a string")
    gpu = GpuInfo(
        enabled=bool(gpu_dict.get("enabled", False)),
        type=gpu_type,
        total=_optional_int(gpu_dict.get("total"), "gpu.total"),
        available=_optional_int(gpu_dict.get("available"), "gpu.available"),
    )

    pricing = data.get("pricing") or {}
    if not isinstance(pricing, dict):
        raise ValueError("'pricing' must be an object")

    schema_versions = _str_list(data.get("schemaVersionsSupported"), "schemaVersionsSupported") or ["1.0"]

    return NodeCapabilities(
        url=url,
        gpu=gpu,
        pricing=pricing,
        supported_runtimes=_str_list(data.get("supportedRuntimes"), "supportedRuntimes"),
        schema_versions_supported=schema_versions,
    )


async def _get_public_info(url, timeout, transport):
    async with httpx.AsyncClient(timeout=timeout, transport=transport) as http:
        resp = await http.get(f"{url.rstrip('/')}{PUBLIC_INFO_PATH}")
    resp.raise_for_status()
    return resp.json()


async def probe_node(url, timeout=PROBE_TIMEOUT, transport=None) -> FetchResult:
    """Probe *url* for its declared capabilities.

    GET /api/v1/public (no auth)

    Returns:
        FetchResult with NodeCapabilities on success, UNREACHABLE on
        transport/HTTP errors, MALFORMED on an invalid body.
    """
    try:
        data = await _get_public_info(url, timeout, transport)
    except REQUEST_ERRORS as e:
        logger.debug(f"Probe of {url} failed: {e}")
        return FetchResult.unreachable(e)
    except ValueError as e:
        return FetchResult.malformed(f"invalid JSON: {e}")

    try:
        return FetchResult.success(parse_capabilities(url, data))
    except ValueError as e:
        return FetchResult.malformed(e)


def _identity_from_public_info(data):
    node_id = data.get("nodeId")
    if isinstance(node_id, str) and node_id:
        return node_id
    mainnet = data.get("mainnetPublicKey")
    if isinstance(mainnet, dict) and isinstance(mainnet.get("publicKey"), str):
        return mainnet["publicKey"]
    return ""


async def probe_known_nodes(urls, timeout=PROBE_TIMEOUT, transport=None) -> list[DiscoveredNode]:
    """Discover nodes by probing known URLs directly.

    Fallback for when no registry answers. Unreachable or malformed nodes
    are skipped.
    """
    nodes = []
    for url in urls:
        try:
            data = await _get_public_info(url, timeout, transport)
            caps = parse_capabilities(url, data)
        except (*REQUEST_ERRORS, ValueError) as e:
            logger.debug(f"Skipping {url}: {e}")
            continue
        nodes.append(
            DiscoveredNode(
                url=url,
                identity_key=_identity_from_public_info(data),
                gpu=caps.gpu.enabled,
                gpu_type=caps.gpu.type,
                gpu_total=caps.gpu.total,
                gpu_available=caps.gpu.available,
                pricing=caps.pricing,
                runtimes=caps.supported_runtimes,
                last_seen=datetime.now(timezone.utc).isoformat(),
            )
        )
    return nodes
