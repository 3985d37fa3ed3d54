"""Manifest loading, legacy migration, validation and persistence."""

import json
import logging
import os

from mandala_cli.errors import ManifestError
from mandala_cli.manifest.types import AGENT_TYPES, RUNTIMES, SCHEMA, SCHEMA_VERSION, Manifest, url_template_problem

logger = logging.getLogger(__name__)

MANIFEST_FILE = "agent-manifest.json"

# Name given to the only service of a migrated single-agent manifest.
LEGACY_SERVICE_NAME = "agent"


def _migrate_legacy_format(d):
    """Convert a 1.0 single-agent manifest into the 2.0 multi-service layout.

    The top-level agent/resources/ports/healthCheck keys become one service
    named ``agent``. Deployment entries using the old ``CARSCloudURL`` key are
    renamed to ``MandalaCloudURL`` in both layouts.
    """
    deployments = d.get("deployments")
    for entry in deployments if isinstance(deployments, list) else []:
        if isinstance(entry, dict) and "CARSCloudURL" in entry and "MandalaCloudURL" not in entry:
            entry["MandalaCloudURL"] = entry.pop("CARSCloudURL")

    if "services" in d or "agent" not in d:
        return d

    service = {"agent": d.pop("agent")}
    for key in ("resources", "ports", "healthCheck"):
        if key in d:
            service[key] = d.pop(key)
    d["services"] = {LEGACY_SERVICE_NAME: service}
    d.setdefault("links", [])
    d["schemaVersion"] = SCHEMA_VERSION
    logger.info(f"Migrated single-agent manifest to schema {SCHEMA_VERSION} (service '{LEGACY_SERVICE_NAME}').")
    return d


def _require_object(value, what):
    if value is not None and not isinstance(value, dict):
        raise ManifestError(f"{what} must be an object, got {type(value).__name__}.")


def validate_manifest_dict(d):
    """Raise ManifestError if the (post-migrate) manifest dict is malformed."""
    if not isinstance(d, dict):
        raise ManifestError("Manifest must be a JSON object.")
    if d.get("schema") != SCHEMA:
        raise ManifestError(f"Invalid manifest schema: '{d.get('schema')}'. Expected '{SCHEMA}'.")

    services = d.get("services")
    if not isinstance(services, dict) or not services:
        raise ManifestError("Manifest must define at least one service under 'services'.")
    _require_object(d.get("env"), "Top-level 'env'")

    for name, svc in services.items():
        if not isinstance(svc, dict):
            raise ManifestError(f"Service '{name}' must be an object.")
        for key in ("agent", "resources", "healthCheck", "env"):
            _require_object(svc.get(key), f"Service '{name}': '{key}'")
        agent = svc.get("agent") or {}
        agent_type = agent.get("type", "custom")
        if agent_type not in AGENT_TYPES:
            raise ManifestError(f"Service '{name}': unknown agent type '{agent_type}'. Expected one of: {', '.join(AGENT_TYPES)}")
        runtime = agent.get("runtime", "node")
        if runtime not in RUNTIMES:
            raise ManifestError(f"Service '{name}': unknown runtime '{runtime}'. Expected one of: {', '.join(RUNTIMES)}")
        ports = svc.get("ports", [])
        if not isinstance(ports, list) or not all(isinstance(p, int) and not isinstance(p, bool) for p in ports):
            raise ManifestError(f"Service '{name}': 'ports' must be a list of integers.")

    links = d.get("links", [])
    if not isinstance(links, list):
        raise ManifestError("'links' must be a list.")
    for i, link in enumerate(links):
        if not isinstance(link, dict) or not all(isinstance(link.get(k), str) and link.get(k) for k in ("from", "to", "envVar")):
            raise ManifestError(f"Link #{i} must have non-empty 'from', 'to' and 'envVar' strings.")

    deployments = d.get("deployments", [])
    if not isinstance(deployments, list):
        raise ManifestError("'deployments' must be a list.")
    for i, target in enumerate(deployments):
        if not isinstance(target, dict):
            raise ManifestError(f"Deployment target #{i} must be an object, got {type(target).__name__}.")
        label = target.get("name") or f"target-{i}"
        _require_object(target.get("requirements"), f"Deployment target '{label}': 'requirements'")
    names = [t.get("name") for t in deployments if t.get("name")]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ManifestError(f"Duplicate deployment target name(s): {', '.join(duplicates)}")

    if d.get("serviceUrlTemplate") is not None:
        problem = url_template_problem(d["serviceUrlTemplate"])
        if problem:
            raise ManifestError(f"'serviceUrlTemplate': {problem}")


def load_manifest(path=MANIFEST_FILE):
    """Load, migrate and validate the manifest at *path*.

    Returns a Manifest dataclass.
    """
    if not os.path.isfile(path):
        raise ManifestError(f"No {os.path.basename(path)} found at {path}. Create one before deploying.")

    try:
        with open(path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ManifestError(f"Error parsing {path}: {e}") from e

    if isinstance(data, dict):
        data = _migrate_legacy_format(data)
    validate_manifest_dict(data)
    return Manifest.from_dict(data)


def save_manifest(manifest: Manifest, path=MANIFEST_FILE):
    """Write *manifest* to *path* as indented JSON."""
    with open(path, "w") as f:
        f.write(json.dumps(manifest.to_dict(), indent=2) + "\n")
    logger.debug(f"Manifest written to {path}")
