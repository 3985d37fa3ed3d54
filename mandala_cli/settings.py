"""CLI settings: defaults, then ~/.mandala/config.yaml, then environment."""

import logging
import os
from dataclasses import dataclass, field, fields

import yaml

from mandala_cli.deploy.params import DeployOptions
from mandala_cli.deploy.readiness import READINESS_INTERVAL, READINESS_TIMEOUT
from mandala_cli.deploy.targets import SERVICE_URL_TEMPLATE_ENV_VAR
from mandala_cli.errors import MandalaError
from mandala_cli.manifest.types import url_template_problem
from mandala_cli.nodes.client import DEFAULT_TIMEOUT, IDENTITY_ENV_VAR, IdentityAuth
from mandala_cli.nodes.discovery import default_lookup_endpoints

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = "~/.mandala/config.yaml"
KNOWN_NODES_ENV_VAR = "MANDALA_KNOWN_NODES"


@dataclass
class Settings:
    lookup_endpoints: list[str] = field(default_factory=list)  # extra registries
    known_nodes: list[str] = field(default_factory=list)
    service_url_template: str | None = None
    readiness_timeout: int = READINESS_TIMEOUT
    readiness_interval: int = READINESS_INTERVAL
    request_timeout: int = DEFAULT_TIMEOUT
    identity_key: str = ""

    def all_lookup_endpoints(self):
        """Well-known registry, MANDALA_LOOKUP_ENDPOINTS, then configured extras."""
        return default_lookup_endpoints(self.lookup_endpoints)

    def deploy_options(self, manifest_path, base_dir=".", select_node=None) -> DeployOptions:
        return DeployOptions(
            manifest_path=manifest_path,
            base_dir=base_dir,
            select_node=select_node,
            lookup_endpoints=self.all_lookup_endpoints(),
            known_nodes=list(self.known_nodes),
            service_url_template=self.service_url_template,
            readiness_timeout=self.readiness_timeout,
            readiness_interval=self.readiness_interval,
            request_timeout=self.request_timeout,
            auth=IdentityAuth(self.identity_key),
        )


def _split_list(value):
    return [v.strip() for v in value.split(",") if v.strip()]


def _as_list(value, key):
    if value is None:
        return []
    if isinstance(value, str):
        return _split_list(value)
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return value
    raise MandalaError(f"Settings key '{key}' must be a list of strings")


def _read_settings_file(path, explicit):
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        if explicit:
            raise MandalaError(f"Settings file '{path}' not found") from None
        return {}
    except yaml.YAMLError as e:
        raise MandalaError(f"Error parsing settings file '{path}': {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise MandalaError(f"Settings file '{path}' must contain a mapping")
    return data


def load_settings(path=None) -> Settings:
    """Build Settings from the YAML file at *path* (or the default location) and env vars.

    A missing default file is fine; a missing explicit *path* is an error.
    """
    explicit = path is not None
    path = os.path.expanduser(path or DEFAULT_SETTINGS_PATH)
    data = _read_settings_file(path, explicit)

    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(data) - known)
    if unknown:
        logger.warning(f"Ignoring unknown settings key(s) in {path}: {', '.join(unknown)}")

    settings = Settings()
    settings.lookup_endpoints = _as_list(data.get("lookup_endpoints"), "lookup_endpoints")
    settings.known_nodes = _as_list(data.get("known_nodes"), "known_nodes")
    settings.service_url_template = data.get("service_url_template") or None
    for key in ("readiness_timeout", "readiness_interval", "request_timeout"):
        if key in data:
            value = data[key]
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise MandalaError(f"Settings key '{key}' must be a positive integer")
            setattr(settings, key, value)
    settings.identity_key = str(data.get("identity_key") or "")

    # Environment overrides the file
    settings.known_nodes += [u for u in _split_list(os.environ.get(KNOWN_NODES_ENV_VAR, "")) if u not in settings.known_nodes]
    settings.service_url_template = os.environ.get(SERVICE_URL_TEMPLATE_ENV_VAR) or settings.service_url_template
    settings.identity_key = os.environ.get(IDENTITY_ENV_VAR) or settings.identity_key

    if settings.service_url_template:
        problem = url_template_problem(settings.service_url_template)
        if problem:
            raise MandalaError(f"Settings: {problem}")
    return settings
