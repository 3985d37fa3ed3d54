"""Manifest model and persistence."""

from mandala_cli.manifest.manifest import (
    MANIFEST_FILE,
    load_manifest,
    save_manifest,
    validate_manifest_dict,
)
from mandala_cli.manifest.types import (
    DeploymentTarget,
    Manifest,
    Resources,
    ServiceDefinition,
    ServiceLink,
    TargetRequirements,
)

__all__ = [
    "MANIFEST_FILE",
    "DeploymentTarget",
    "Manifest",
    "Resources",
    "ServiceDefinition",
    "ServiceLink",
    "TargetRequirements",
    "load_manifest",
    "save_manifest",
    "validate_manifest_dict",
]
