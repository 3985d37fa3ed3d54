"""CLI handlers for 'nodes discover' and 'nodes probe'."""

import asyncio
import logging
import sys

from mandala_cli.errors import MandalaError
from mandala_cli.nodes import default_lookup_endpoints, discover_nodes, log_discovered_nodes, probe_node
from mandala_cli.settings import load_settings

logger = logging.getLogger(__name__)


def _settings(args):
    try:
        return load_settings(args.config)
    except MandalaError as e:
        logger.error(f"Error: {e}")
        sys.exit(1)


# ── CLI handlers ───────────────────────────────────────────────────


def handle_discover(args):
    """CLI handler for 'nodes discover'."""
    asyncio.run(_handle_discover(args))


async def _handle_discover(args):
    settings = _settings(args)
    endpoints = default_lookup_endpoints(settings.lookup_endpoints + (args.lookup_endpoint or []))
    known = settings.known_nodes + [u for u in (args.probe or []) if u not in settings.known_nodes]

    node_filter = {}
    if args.gpu or args.gpu_type:
        node_filter["gpu"] = True
    if args.gpu_type:
        node_filter["gpuType"] = args.gpu_type

    logger.info(f"Querying {len(endpoints)} registry endpoint(s)...")
    nodes = await discover_nodes(node_filter or None, lookup_endpoints=endpoints, known_urls=known)
    log_discovered_nodes(nodes)


def handle_probe(args):
    """CLI handler for 'nodes probe'."""
    asyncio.run(_handle_probe(args))


async def _handle_probe(args):
    url = args.url.rstrip("/")
    result = await probe_node(url)
    if not result.ok:
        logger.error(f"Error: {url} is {result.status.value}: {result.error}")
        sys.exit(1)

    caps = result.value
    gpu = caps.gpu
    logger.info(f"Node:            {caps.url}")
    if gpu.enabled:
        logger.info(f"GPU:             {gpu.type or 'unknown type'} (available {gpu.available if gpu.available is not None else '?'}"
                    f" / total {gpu.total if gpu.total is not None else '?'})")
    else:
        logger.info("GPU:             none")
    logger.info(f"Runtimes:        {', '.join(caps.supported_runtimes) or '-'}")
    logger.info(f"Schema versions: {', '.join(caps.schema_versions_supported)}")
    for key, value in sorted(caps.pricing.items()):
        logger.info(f"Price {key}: {value}")


# ── Registration ───────────────────────────────────────────────────


def register_nodes_command(subparsers):
    """Register the 'nodes' command with discover/probe actions."""
    parser = subparsers.add_parser("nodes", help="Discover and inspect Mandala nodes")
    actions = parser.add_subparsers(dest="action", required=True)

    discover = actions.add_parser("discover", help="Find nodes via overlay registries")
    discover.add_argument("--gpu", action="store_true", help="Only GPU-enabled nodes")
    discover.add_argument("--gpu-type", default=None, help="Only nodes with this GPU type (implies --gpu)")
    discover.add_argument(
        "--lookup-endpoint", action="append", default=None, metavar="URL",
        help="Additional registry endpoint (repeatable)",
    )
    discover.add_argument(
        "--probe", action="append", default=None, metavar="URL",
        help="Node URL to probe directly when registries return nothing (repeatable)",
    )
    discover.set_defaults(func=handle_discover)

    probe = actions.add_parser("probe", help="Show a node's advertised capabilities")
    probe.add_argument("url", help="Node base URL")
    probe.set_defaults(func=handle_probe)
