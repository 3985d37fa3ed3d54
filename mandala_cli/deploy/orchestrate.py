"""Multi-service deploy orchestration: validate, prepare, deploy, link, report.

Stages run strictly in sequence and each iterates its collection one item
at a time. Validation and preparation are all-or-nothing; a service whose
archive cannot be uploaded aborts the run but leaves services already
deployed running. Readiness timeouts and unresolvable links are warnings.
The manifest is written back whatever the outcome, so resolved node URLs
and project IDs are reused on the next run.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

from mandala_cli.deploy.packager import estimate_context_size, pack_build_context, remove_archive
from mandala_cli.deploy.params import DeployOptions
from mandala_cli.deploy.readiness import wait_for_online
from mandala_cli.deploy.report import log_plan, log_report
from mandala_cli.deploy.scheduler import order_services
from mandala_cli.deploy.targets import (
    ensure_deployment_entry,
    fill_target_url,
    make_client,
    prepare_target,
    resolve_target,
    service_url,
)
from mandala_cli.errors import DeploymentError, PackagingError
from mandala_cli.manifest import save_manifest
from mandala_cli.manifest.types import SCHEMA_VERSION
from mandala_cli.nodes.probe import probe_node

logger = logging.getLogger(__name__)


class Stage(Enum):
    VALIDATING = "validate"
    PREPARING = "prepare"
    DEPLOYING = "deploy"
    LINKING = "link"
    REPORTING = "report"
    ABORTED = "aborted"


@dataclass
class ServiceResult:
    name: str
    node: str | None = None
    project_id: str | None = None
    deployment_id: str | None = None
    url: str | None = None
    deployed: bool = False
    ready: bool = False


@dataclass
class LinkResult:
    from_service: str
    to_service: str
    env_var: str
    url: str | None = None
    applied: bool = False


@dataclass
class DeploymentReport:
    """Per-service and per-link outcome of one run."""

    services: dict[str, ServiceResult] = field(default_factory=dict)
    links: list[LinkResult] = field(default_factory=list)
    order: list[str] = field(default_factory=list)
    stage: Stage = Stage.VALIDATING
    error: DeploymentError | None = None

    @property
    def success(self) -> bool:
        return self.error is None and all(r.deployed for r in self.services.values())


# ── Validation ────────────────────────────────────────────────────


def check_capabilities(target, caps, services):
    """Return a list of reasons *caps* cannot host *target* and its *services*."""
    problems = []
    if SCHEMA_VERSION not in caps.schema_versions_supported:
        problems.append(
            f"node does not support manifest schema {SCHEMA_VERSION} (supports: {', '.join(caps.schema_versions_supported)})"
        )
    req = target.requirements
    if req.gpu and not caps.gpu.enabled:
        problems.append("target requires a GPU but the node has none")
    if req.gpu_type and caps.gpu.type != req.gpu_type:
        problems.append(f"target requires GPU type {req.gpu_type}, node offers {caps.gpu.type or 'none'}")
    for svc in services:
        if svc.needs_gpu and (not caps.gpu.enabled or caps.gpu.available == 0):
            problems.append(f"service '{svc.name}' requests {svc.resources.gpu_count} GPU(s) but none are available")
        if caps.supported_runtimes and svc.runtime not in caps.supported_runtimes:
            problems.append(f"service '{svc.name}' runtime '{svc.runtime}' not supported (node: {', '.join(caps.supported_runtimes)})")
    return problems


async def validate_targets(manifest, options):
    """Fill missing node URLs, then probe every target. All-or-nothing."""
    if not manifest.deployments:
        raise DeploymentError(Stage.VALIDATING.value, "manifest declares no deployment targets")
    for name in manifest.services:
        resolve_target(manifest, name)

    for target in manifest.deployments:
        await fill_target_url(target, options)
        logger.info(f"Probing {target.url} for target '{target.name}'...")
        result = await probe_node(target.url, transport=options.transport)
        if not result.ok:
            raise DeploymentError(Stage.VALIDATING.value, f"node {result.status.value}: {result.error}", target=target.label)
        problems = check_capabilities(target, result.value, manifest.services_on(target))
        if problems:
            raise DeploymentError(Stage.VALIDATING.value, "; ".join(problems), target=target.label)
    logger.info(f"Validated {len(manifest.deployments)} target(s).")


async def prepare_targets(manifest, options):
    """Register identity and ensure a project on every target."""
    for target in manifest.deployments:
        await prepare_target(target, options)


# ── Deploying ─────────────────────────────────────────────────────


def _url_template(manifest, options):
    return options.service_url_template or manifest.service_url_template


async def deploy_service(manifest, name, options, report):
    """Package, upload, configure and await one service."""
    service = manifest.services[name]
    target = resolve_target(manifest, name)
    result = report.services[name]
    result.node = target.url
    result.project_id = target.project_id

    ensure_deployment_entry(manifest, target)
    client = make_client(target, options)

    build_context = os.path.normpath(os.path.join(options.base_dir, service.build_context or "."))
    logger.info(f"[{name}] Packaging {build_context}...")
    try:
        archive = pack_build_context(build_context, name)
    except PackagingError as e:
        raise DeploymentError(Stage.DEPLOYING.value, str(e), target=name) from e

    try:
        logger.info(f"[{name}] Creating deployment on {target.url} (project {target.project_id})...")
        slot = await client.create_deployment(target.project_id)
        if slot is None:
            raise DeploymentError(Stage.DEPLOYING.value, "node did not return an upload URL and deployment ID", target=name)
        upload_url, deployment_id = slot
        logger.info(f"[{name}] Uploading artifact (deployment {deployment_id})...")
        if not await client.upload_artifact(upload_url, archive, name):
            raise DeploymentError(Stage.DEPLOYING.value, "artifact upload failed", target=name)
    finally:
        remove_archive(archive)

    result.deployment_id = deployment_id
    result.deployed = True

    env = {**manifest.env, **service.env}
    if env and await client.update_settings(target.project_id, env) is None:
        logger.warning(f"[{name}] Warning: environment update failed; service keeps its previous settings.")

    logger.info(f"[{name}] Waiting for project {target.project_id} to come online...")
    readiness = await wait_for_online(client, target.project_id, options.readiness_timeout, options.readiness_interval)
    result.ready = readiness.ready
    if not readiness.ready:
        logger.warning(f"[{name}] Warning: did not become ready in time; continuing.")

    # A domain the node reports is authoritative; the template is a convention
    result.url = readiness.backend_domain or service_url(
        _url_template(manifest, options), target.project_id, target.url, name
    )
    logger.info(f"[{name}] Deployed: {result.url}")


# ── Linking ───────────────────────────────────────────────────────


async def apply_links(manifest, options, report):
    """Inject each resolvable link URL into its consumer and restart it.

    Links are grouped per consumer project so each project gets one env
    update, one metadata write and one restart.
    """
    groups = {}
    for link in manifest.links:
        to_result = report.services.get(link.to_service)
        from_result = report.services.get(link.from_service)
        link_result = LinkResult(link.from_service, link.to_service, link.env_var)
        report.links.append(link_result)

        if to_result is None or not to_result.url:
            logger.warning(f"Skipping link {link.from_service} -> {link.to_service} ({link.env_var}): '{link.to_service}' has no deployed URL.")
            continue
        link_result.url = to_result.url
        if from_result is None or not from_result.deployed:
            logger.warning(f"Skipping link {link.from_service} -> {link.to_service} ({link.env_var}): '{link.from_service}' is not deployed.")
            continue

        target = resolve_target(manifest, link.from_service)
        key = (target.url, target.project_id)
        groups.setdefault(key, (target, []))[1].append(link_result)

    for target, link_results in groups.values():
        client = make_client(target, options)
        env = {lr.env_var: lr.url for lr in link_results}
        logger.info(f"Linking {', '.join(sorted(env))} into project {target.project_id}...")
        if await client.update_settings(target.project_id, env) is None:
            logger.warning(f"Warning: could not set link variables on project {target.project_id}.")
            continue
        for lr in link_results:
            lr.applied = True
        await client.set_service_links(target.project_id, [{"envVar": lr.env_var, "url": lr.url} for lr in link_results])
        await client.restart(target.project_id)


# ── Entry points ──────────────────────────────────────────────────


async def deploy_multi_service(manifest, options: DeployOptions) -> DeploymentReport:
    """Deploy every service in *manifest* in dependency order.

    Raises DeploymentError on a fatal failure, after the manifest has been
    saved and the partial report logged.
    """
    report = DeploymentReport(services={name: ServiceResult(name) for name in manifest.services})
    try:
        report.stage = Stage.VALIDATING
        await validate_targets(manifest, options)

        report.stage = Stage.PREPARING
        await prepare_targets(manifest, options)

        report.order = order_services(manifest.services, manifest.links)
        logger.info(f"Deploy order: {' -> '.join(report.order)}")

        report.stage = Stage.DEPLOYING
        for name in report.order:
            await deploy_service(manifest, name, options, report)

        report.stage = Stage.LINKING
        await apply_links(manifest, options, report)

        report.stage = Stage.REPORTING
    except DeploymentError as e:
        logger.debug(f"Aborting during {report.stage.value}")
        report.error = e
        report.stage = Stage.ABORTED
        raise
    finally:
        if options.manifest_path:
            try:
                save_manifest(manifest, options.manifest_path)
            except OSError as e:
                logger.error(f"Could not write manifest {options.manifest_path}: {e}")
        log_report(report)
    return report


@dataclass
class PlannedService:
    name: str
    target: str
    node: str
    build_context: str
    files: int | None = None
    size: int | None = None


def plan_deployment(manifest, base_dir=".") -> list[PlannedService]:
    """Dry run: resolve targets and order services without any network call."""
    order = order_services(manifest.services, manifest.links)
    planned = []
    for name in order:
        service = manifest.services[name]
        target = resolve_target(manifest, name)
        context = os.path.normpath(os.path.join(base_dir, service.build_context or "."))
        entry = PlannedService(
            name=name,
            target=target.name,
            node=target.url or ("<discover GPU node>" if target.requirements.gpu else "<missing URL>"),
            build_context=context,
        )
        if os.path.isdir(context):
            entry.files, entry.size = estimate_context_size(context)
        planned.append(entry)
    log_plan(planned, manifest.links)
    return planned
