"""CLI handlers for 'deploy' and 'plan'."""

import asyncio
import logging
import os
import sys

from mandala_cli.deploy import deploy_multi_service, most_available_gpu, plan_deployment
from mandala_cli.deploy.targets import prompt_for_node
from mandala_cli.errors import DeploymentError, MandalaError
from mandala_cli.manifest import MANIFEST_FILE, load_manifest
from mandala_cli.redact import register_secret_values
from mandala_cli.settings import load_settings

logger = logging.getLogger(__name__)


def _load(args):
    """Load settings and manifest, registering their secrets for redaction.

    Exits on a bad settings file or manifest.
    """
    try:
        settings = load_settings(args.config)
        manifest = load_manifest(args.manifest)
    except MandalaError as e:
        logger.error(f"Error: {e}")
        sys.exit(1)

    register_secret_values({"identity_key": settings.identity_key})
    register_secret_values(manifest.env)
    for service in manifest.services.values():
        register_secret_values(service.env)
    return settings, manifest


def _node_selector(auto_select):
    if auto_select or not sys.stdin.isatty():
        return most_available_gpu
    return prompt_for_node


def _base_dir(manifest_path):
    return os.path.dirname(os.path.abspath(manifest_path))


# ── CLI handlers ───────────────────────────────────────────────────


def handle_plan(args):
    """CLI handler for 'plan' and 'deploy --dry-run'."""
    _, manifest = _load(args)
    try:
        plan_deployment(manifest, _base_dir(args.manifest))
    except MandalaError as e:
        logger.error(f"Error {e}")
        sys.exit(1)


def handle_deploy(args):
    """CLI handler for 'deploy'."""
    if args.dry_run:
        handle_plan(args)
        return
    asyncio.run(_handle_deploy(args))


async def _handle_deploy(args):
    settings, manifest = _load(args)
    options = settings.deploy_options(
        args.manifest,
        base_dir=_base_dir(args.manifest),
        select_node=_node_selector(args.auto_select),
    )
    try:
        report = await deploy_multi_service(manifest, options)
    except DeploymentError as e:
        logger.error(f"Error {e}")
        sys.exit(1)
    except MandalaError as e:
        logger.error(f"Error: {e}")
        sys.exit(1)
    if not report.success:
        sys.exit(1)


# ── Registration ───────────────────────────────────────────────────


def _add_manifest_arg(parser):
    parser.add_argument(
        "--manifest", default=MANIFEST_FILE,
        help=f"Path to the agent manifest (default: {MANIFEST_FILE})",
    )


def register_deploy_command(subparsers):
    """Register the 'deploy' command."""
    parser = subparsers.add_parser("deploy", help="Deploy every service in the manifest")
    _add_manifest_arg(parser)
    parser.add_argument(
        "--auto-select", action="store_true",
        help="Pick the discovered GPU node with the most available GPUs instead of prompting",
    )
    parser.add_argument("--dry-run", action="store_true", help="Show the deployment plan without contacting any node")
    parser.set_defaults(func=handle_deploy)


def register_plan_command(subparsers):
    """Register the 'plan' command."""
    parser = subparsers.add_parser("plan", help="Show deploy order, targets and build contexts")
    _add_manifest_arg(parser)
    parser.set_defaults(func=handle_plan)
