"""Node discovery through overlay registry lookup services.

Registries are queried one after another; an unreachable endpoint or a
malformed record is skipped, so discovery never fails outright. With no
registry answering, known node URLs can be probed directly instead.
"""

import json
import logging
import os

import httpx

from mandala_cli.nodes.probe import probe_known_nodes
from mandala_cli.nodes.types import REQUEST_ERRORS, DiscoveredNode, FetchResult
from mandala_cli.tables import format_table

logger = logging.getLogger(__name__)

DEFAULT_LOOKUP_ENDPOINT = "https://overlay.babbage.systems"
LOOKUP_ENDPOINTS_ENV_VAR = "MANDALA_LOOKUP_ENDPOINTS"
REGISTRY_SERVICE = "ls_mandala_registry"
LOOKUP_TIMEOUT = 10

# Positional layout of a registry output's ``fields`` list.
FIELD_URL = 1
FIELD_IDENTITY_KEY = 2
FIELD_CAPABILITIES = 3
FIELD_PRICING = 4
FIELD_RUNTIMES = 5
FIELD_LAST_SEEN = 6


def default_lookup_endpoints(extra=None):
    """Well-known registry plus MANDALA_LOOKUP_ENDPOINTS and *extra*, without duplicates."""
    endpoints = [DEFAULT_LOOKUP_ENDPOINT]
    endpoints += [e.strip() for e in os.environ.get(LOOKUP_ENDPOINTS_ENV_VAR, "").split(",")]
    endpoints += list(extra or [])
    result = []
    for endpoint in endpoints:
        endpoint = endpoint.rstrip("/") if endpoint else endpoint
        if endpoint and endpoint not in result:
            result.append(endpoint)
    return result


def _field(fields, index):
    return fields[index] if index < len(fields) and fields[index] is not None else ""


def _json_object(raw, name):
    value = json.loads(raw or "{}")
    if not isinstance(value, dict):
        raise ValueError(f"{name} is not a JSON object")
    return value


def parse_lookup_output(output) -> DiscoveredNode:
    """Parse one registry output record.

    Raises ValueError (or TypeError) for malformed records.
    """
    if not isinstance(output, dict):
        raise ValueError("output is not an object")
    fields = output.get("fields") or []
    if not isinstance(fields, list):
        raise ValueError("'fields' is not a list")

    url = _field(fields, FIELD_URL)
    if not isinstance(url, str) or not url:
        raise ValueError("record has no node URL")

    caps = _json_object(_field(fields, FIELD_CAPABILITIES), "capabilities")
    pricing = _json_object(_field(fields, FIELD_PRICING), "pricing")
    runtimes = [r for r in str(_field(fields, FIELD_RUNTIMES)).split(",") if r]
    for key in ("gpuTotal", "gpuAvailable"):
        value = caps.get(key)
        if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            raise ValueError(f"capabilities.{key} must be an integer")

    return DiscoveredNode(
        url=url,
        identity_key=str(_field(fields, FIELD_IDENTITY_KEY)),
        gpu=bool(caps.get("gpu", False)),
        gpu_type=caps.get("gpuType"),
        gpu_total=caps.get("gpuTotal"),
        gpu_available=caps.get("gpuAvailable"),
        pricing=pricing,
        runtimes=runtimes,
        last_seen=str(_field(fields, FIELD_LAST_SEEN)),
    )


async def query_registry(endpoint, node_filter=None, timeout=LOOKUP_TIMEOUT, transport=None) -> FetchResult:
    """POST a findNodes lookup to one registry endpoint.

    Returns:
        FetchResult whose value is the raw ``outputs`` list.
    """
    payload = {
        "service": REGISTRY_SERVICE,
        "query": {"type": "findNodes", "value": node_filter or {}},
    }
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as http:
            resp = await http.post(f"{endpoint}/lookup", json=payload)
        resp.raise_for_status()
        body = resp.json()
    except REQUEST_ERRORS as e:
        return FetchResult.unreachable(e)
    except ValueError as e:
        return FetchResult.malformed(f"invalid JSON: {e}")

    outputs = body.get("outputs") if isinstance(body, dict) else None
    if not isinstance(outputs, list):
        return FetchResult.malformed("response has no 'outputs' list")
    return FetchResult.success(outputs)


def _dedupe(nodes):
    seen = set()
    result = []
    for node in nodes:
        if node.url in seen:
            continue
        seen.add(node.url)
        result.append(node)
    return result


async def discover_nodes(node_filter=None, lookup_endpoints=None, known_urls=None, transport=None) -> list[DiscoveredNode]:
    """Discover nodes matching *node_filter* (``{"gpu": bool, "gpuType": str}``).

    Args:
        lookup_endpoints: registry base URLs (default: default_lookup_endpoints()).
        known_urls: node URLs to probe directly when no registry returns a match.

    Returns:
        Matching nodes deduplicated by URL, first occurrence wins. Empty when
        every source fails.
    """
    endpoints = lookup_endpoints if lookup_endpoints is not None else default_lookup_endpoints()
    discovered = []

    for endpoint in endpoints:
        result = await query_registry(endpoint, node_filter, transport=transport)
        if not result.ok:
            logger.warning(f"Skipping registry {endpoint} ({result.status.value}: {result.error})")
            continue
        for output in result.value:
            try:
                node = parse_lookup_output(output)
            except (ValueError, TypeError) as e:
                logger.debug(f"Skipping malformed record from {endpoint}: {e}")
                continue
            if node.matches(node_filter):
                discovered.append(node)

    if not discovered and known_urls:
        logger.info(f"No registry results; probing {len(known_urls)} known node(s) directly...")
        probed = await probe_known_nodes(known_urls, transport=transport)
        discovered = [n for n in probed if n.matches(node_filter)]

    return _dedupe(discovered)


async def discover_gpu_nodes(gpu_type=None, lookup_endpoints=None, known_urls=None, transport=None):
    """Discover GPU-enabled nodes, optionally of a specific GPU type."""
    node_filter = {"gpu": True}
    if gpu_type:
        node_filter["gpuType"] = gpu_type
    return await discover_nodes(node_filter, lookup_endpoints, known_urls, transport)


def log_discovered_nodes(nodes):
    """Log a table of discovered nodes."""
    if not nodes:
        logger.info("No nodes discovered.")
        return

    headers = ["URL", "Identity Key", "GPU", "GPU Type", "GPU Avail", "Runtimes", "Last Seen"]
    rows = [
        [
            n.url,
            f"{n.identity_key[:12]}..." if n.identity_key else "-",
            "Yes" if n.gpu else "No",
            n.gpu_type or "-",
            str(n.gpu_available) if n.gpu_available is not None else "-",
            ", ".join(n.runtimes) or "-",
            n.last_seen or "-",
        ]
        for n in nodes
    ]
    for line in format_table(headers, rows):
        logger.info(line)
