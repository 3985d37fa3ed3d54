"""Deploy library: ordering, packaging, target preparation, orchestration."""

from mandala_cli.deploy.params import DeployOptions
from mandala_cli.deploy.scheduler import order_services
from mandala_cli.deploy.packager import (
    estimate_context_size,
    is_excluded,
    pack_build_context,
    remove_archive,
)
from mandala_cli.deploy.readiness import Readiness, wait_for_online
from mandala_cli.deploy.targets import (
    ensure_deployment_entry,
    most_available_gpu,
    prepare_target,
    resolve_target,
    service_url,
)
from mandala_cli.deploy.orchestrate import (
    DeploymentReport,
    Stage,
    deploy_multi_service,
    plan_deployment,
)

__all__ = [
    "DeployOptions",
    "DeploymentReport",
    "Readiness",
    "Stage",
    "deploy_multi_service",
    "ensure_deployment_entry",
    "estimate_context_size",
    "is_excluded",
    "most_available_gpu",
    "order_services",
    "pack_build_context",
    "plan_deployment",
    "prepare_target",
    "remove_archive",
    "resolve_target",
    "service_url",
    "wait_for_online",
]
