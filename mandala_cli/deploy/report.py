"""Human-readable summaries of a deploy run and of a dry-run plan."""

import logging

from mandala_cli.tables import format_table

logger = logging.getLogger(__name__)


def _size(num_bytes):
    if num_bytes is None:
        return "-"
    for unit in ("B", "KB", "MB"):
        if num_bytes < 1024:
            return f"{num_bytes:.0f} {unit}" if unit == "B" else f"{num_bytes:.1f} {unit}"
        num_bytes /= 1024
    return f"{num_bytes:.1f} GB"


def log_report(report):
    """Log per-service and per-link outcome tables for a deploy run."""
    if not report.services:
        return

    names = report.order or list(report.services)
    rows = []
    for name in names:
        r = report.services[name]
        if r.deployed:
            status = "ready" if r.ready else "deployed (not ready)"
        else:
            status = "not deployed"
        rows.append([name, r.node or "-", r.url or "-", status, r.project_id or "-", r.deployment_id or "-"])

    logger.info("")
    logger.info("Services:")
    for line in format_table(["SERVICE", "NODE", "URL", "STATUS", "PROJECT", "DEPLOYMENT"], rows):
        logger.info(f"  {line}")

    if report.links:
        link_rows = [
            [f"{lr.from_service} -> {lr.to_service}", lr.env_var, "applied" if lr.applied else "skipped", lr.url or "unresolved"]
            for lr in report.links
        ]
        logger.info("")
        logger.info("Links:")
        for line in format_table(["LINK", "ENV VAR", "STATUS", "URL"], link_rows):
            logger.info(f"  {line}")

    logger.info("")
    if report.error is not None:
        logger.info(f"Deployment aborted: {report.error}")
    else:
        deployed = sum(1 for r in report.services.values() if r.deployed)
        logger.info(f"Deployed {deployed}/{len(report.services)} service(s).")


def log_plan(planned, links):
    """Log what a deploy run would do, in order."""
    rows = [
        [str(i), p.name, p.target, p.node, p.build_context, "-" if p.files is None else str(p.files), _size(p.size)]
        for i, p in enumerate(planned, start=1)
    ]
    logger.info("Deployment plan:")
    for line in format_table(["#", "SERVICE", "TARGET", "NODE", "BUILD CONTEXT", "FILES", "SIZE"], rows):
        logger.info(f"  {line}")
    missing = [p.name for p in planned if p.files is None]
    if missing:
        logger.warning(f"Warning: build context not found for: {', '.join(missing)}")
    if links:
        logger.info("")
        logger.info("Links:")
        for link in links:
            logger.info(f"  {link.from_service} <- {link.env_var} = URL of {link.to_service}")
