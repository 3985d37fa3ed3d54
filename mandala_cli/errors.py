"""Exception types shared by the manifest, packaging and deploy layers."""


class MandalaError(Exception):
    """Base class for errors the CLI reports and exits on."""


class ManifestError(MandalaError):
    """Manifest file is missing, unreadable or structurally invalid."""


class PackagingError(MandalaError):
    """A service build context could not be archived."""


class DeploymentError(MandalaError):
    """Fatal failure that aborts a deployment run.

    Carries the orchestrator stage and, when known, the target or service the
    failure is about so the CLI can print an actionable message.
    """

    def __init__(self, stage, message, target=None):
        super().__init__(message)
        self.stage = stage
        self.target = target
        self.message = message

    def __str__(self):
        where = f" {self.target}" if self.target else ""
        return f"[{self.stage}]{where}: {self.message}"
