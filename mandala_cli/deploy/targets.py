"""Deployment target resolution and preparation.

A target is resolved per service by alias, then prepared once per run: a
missing node URL is filled by GPU discovery, the caller's identity is
registered with the node, and a project is created when none is recorded.
"""

import logging
import os
from urllib.parse import urlparse

from mandala_cli.errors import DeploymentError
from mandala_cli.manifest.types import url_template_problem
from mandala_cli.nodes.client import NodeClient
from mandala_cli.nodes.discovery import discover_gpu_nodes

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_URL_TEMPLATE = "https://{project_id}.{node_host}"
SERVICE_URL_TEMPLATE_ENV_VAR = "MANDALA_SERVICE_URL_TEMPLATE"


def resolve_target(manifest, service_name):
    """Return the DeploymentTarget a service deploys to.

    Uses the service's ``provider`` alias, or the first declared target when
    the service names none.
    """
    service = manifest.services[service_name]
    if service.provider:
        target = manifest.target_by_name(service.provider)
        if target is None:
            raise DeploymentError("resolve", f"service '{service_name}' references unknown target '{service.provider}'", target=service.provider)
        return target
    if not manifest.deployments:
        raise DeploymentError("resolve", f"no deployment targets declared for service '{service_name}'")
    return manifest.deployments[0]


def ensure_deployment_entry(manifest, target) -> bool:
    """Record *target* in the manifest's target list unless its (URL, project) pair is present.

    Returns True if an entry was added.
    """
    for existing in manifest.deployments:
        if existing is target:
            return False
        if existing.url == target.url and existing.project_id == target.project_id:
            return False
    manifest.deployments.append(target)
    logger.info(f"Recorded deployment target {target.label} in manifest.")
    return True


# ── GPU node selection policies ───────────────────────────────────


def most_available_gpu(nodes):
    """Pick the node with the most available GPUs; ties go to the first discovered."""
    best = nodes[0]
    for node in nodes[1:]:
        if (node.gpu_available or 0) > (best.gpu_available or 0):
            best = node
    return best


def prompt_for_node(nodes, input_fn=input):
    """Ask the operator to choose one of *nodes* by number."""
    logger.info("Discovered GPU nodes:")
    for i, node in enumerate(nodes, start=1):
        avail = node.gpu_available if node.gpu_available is not None else "?"
        logger.info(f"  {i}. {node.url}  gpu={node.gpu_type or '-'}  available={avail}")
    while True:
        choice = input_fn(f"Select a node [1-{len(nodes)}]: ").strip()
        if choice.isdigit() and 1 <= int(choice) <= len(nodes):
            return nodes[int(choice) - 1]
        logger.warning(f"Invalid choice '{choice}'.")


# ── Preparation ───────────────────────────────────────────────────


async def fill_target_url(target, options):
    """Give a URL-less target a node, via GPU discovery.

    Raises DeploymentError when the target has no GPU requirement (nothing to
    discover by) or when discovery finds no candidates.
    """
    if target.url:
        return target
    if not target.requirements.gpu:
        raise DeploymentError(
            "validate",
            "no node URL configured and no GPU requirement to discover one by; set MandalaCloudURL",
            target=target.name,
        )

    gpu_type = target.requirements.gpu_type
    logger.info(f"Target '{target.name}' has no node URL; discovering GPU nodes{f' ({gpu_type})' if gpu_type else ''}...")
    nodes = await discover_gpu_nodes(
        gpu_type,
        lookup_endpoints=options.lookup_endpoints,
        known_urls=options.known_nodes,
        transport=options.transport,
    )
    if not nodes:
        raise DeploymentError("validate", f"no GPU nodes found{f' with GPU type {gpu_type}' if gpu_type else ''}", target=target.name)

    select = options.select_node or most_available_gpu
    node = select(nodes)
    target.url = node.url.rstrip("/")
    logger.info(f"Target '{target.name}' -> {target.url}")
    return target


def make_client(target, options) -> NodeClient:
    return NodeClient(
        target.url,
        registrations=options.registrations,
        auth=options.auth,
        timeout=options.request_timeout,
        transport=options.transport,
    )


async def prepare_target(target, options):
    """Ensure *target* has a URL, a registered identity and a project ID.

    Raises DeploymentError on any failure; nothing has been deployed yet
    when this runs.
    """
    await fill_target_url(target, options)
    client = make_client(target, options)

    if not await client.ensure_registered():
        raise DeploymentError("prepare", "identity registration failed", target=target.label)

    if target.project_id:
        logger.info(f"Target '{target.name}': using project {target.project_id}")
        return target

    logger.info(f"Target '{target.name}': creating project on {target.url} ({target.network})...")
    project_id = await client.create_project(target.name, target.network)
    if not project_id:
        raise DeploymentError("prepare", "could not create a project", target=target.label)
    target.project_id = project_id
    logger.info(f"Target '{target.name}': created project {project_id}")
    return target


def service_url(template, project_id, node_url, service_name) -> str:
    """Externally reachable URL of a deployed service.

    *template* may use ``{project_id}``, ``{node_host}`` and ``{service}``.
    """
    template = template or os.environ.get(SERVICE_URL_TEMPLATE_ENV_VAR) or DEFAULT_SERVICE_URL_TEMPLATE
    node_host = urlparse(node_url).netloc or node_url
    try:
        return template.format(project_id=project_id, node_host=node_host, service=service_name)
    except (KeyError, IndexError, ValueError, AttributeError) as e:
        raise DeploymentError("deploy", url_template_problem(template) or str(e), target=service_name) from e
