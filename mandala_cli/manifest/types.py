"""Manifest dataclass types."""

from dataclasses import dataclass, field

SCHEMA = "mandala-agent"
SCHEMA_VERSION = "2.0"
DEFAULT_NETWORK = "mainnet"

AGENT_TYPES = ("openclaw", "agidentity", "custom")
RUNTIMES = ("node", "python", "docker")

URL_TEMPLATE_FIELDS = ("project_id", "node_host", "service")


def url_template_problem(template) -> str | None:
    """Return why *template* cannot be formatted into a service URL, or None."""
    if not isinstance(template, str):
        return "service URL template must be a string"
    try:
        template.format(**{name: name for name in URL_TEMPLATE_FIELDS})
    except (KeyError, IndexError, ValueError, AttributeError) as e:
        return f"service URL template '{template}' is invalid ({e!r}); placeholders: {', '.join(URL_TEMPLATE_FIELDS)}"
    return None


@dataclass
class Resources:
    """Resource request for one service."""

    cpu: str = ""
    memory: str = ""
    gpu: str | None = None

    @property
    def gpu_count(self) -> int:
        """Requested GPU count; 0 when none or unparseable."""
        if not self.gpu:
            return 0
        try:
            return int(self.gpu)
        except ValueError:
            return 0

    def to_dict(self) -> dict:
        d = {}
        if self.cpu:
            d["cpu"] = self.cpu
        if self.memory:
            d["memory"] = self.memory
        if self.gpu:
            d["gpu"] = self.gpu
        return d


@dataclass
class ServiceDefinition:
    """One deployable unit within a multi-service manifest."""

    name: str
    agent_type: str = "custom"
    runtime: str = "node"
    resources: Resources = field(default_factory=Resources)
    ports: list[int] = field(default_factory=list)
    health_check_path: str = "/health"
    build_context: str | None = None
    image: str | None = None
    dockerfile: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    provider: str | None = None

    @property
    def needs_gpu(self) -> bool:
        return self.resources.gpu_count > 0

    @classmethod
    def from_dict(cls, name: str, d: dict) -> "ServiceDefinition":
        """Build a ServiceDefinition from its manifest entry."""
        agent = d.get("agent") or {}
        res = d.get("resources") or {}
        health = d.get("healthCheck") or {}
        gpu = res.get("gpu")
        return cls(
            name=name,
            agent_type=agent.get("type", "custom"),
            runtime=agent.get("runtime", "node"),
            resources=Resources(
                cpu=str(res.get("cpu", "")),
                memory=str(res.get("memory", "")),
                gpu=str(gpu) if gpu is not None else None,
            ),
            ports=[int(p) for p in d.get("ports", [])],
            health_check_path=health.get("path", "/health"),
            build_context=agent.get("buildContext"),
            image=agent.get("image"),
            dockerfile=agent.get("dockerfile"),
            env={k: str(v) for k, v in (d.get("env") or {}).items()},
            provider=d.get("provider"),
        )

    def to_dict(self) -> dict:
        agent = {"type": self.agent_type, "runtime": self.runtime}
        if self.build_context:
            agent["buildContext"] = self.build_context
        if self.image:
            agent["image"] = self.image
        if self.dockerfile:
            agent["dockerfile"] = self.dockerfile
        d = {"agent": agent}
        resources = self.resources.to_dict()
        if resources:
            d["resources"] = resources
        if self.ports:
            d["ports"] = list(self.ports)
        d["healthCheck"] = {"path": self.health_check_path}
        if self.env:
            d["env"] = dict(self.env)
        if self.provider:
            d["provider"] = self.provider
        return d


@dataclass
class ServiceLink:
    """Directed edge: ``from_service`` receives ``to_service``'s URL as ``env_var``."""

    from_service: str
    to_service: str
    env_var: str

    @classmethod
    def from_dict(cls, d: dict) -> "ServiceLink":
        return cls(from_service=d["from"], to_service=d["to"], env_var=d["envVar"])

    def to_dict(self) -> dict:
        return {"from": self.from_service, "to": self.to_service, "envVar": self.env_var}


@dataclass
class TargetRequirements:
    """Capabilities a target's node must provide."""

    gpu: bool = False
    gpu_type: str | None = None

    def to_filter(self) -> dict:
        """Registry lookup filter for these requirements."""
        f = {"gpu": True} if self.gpu else {}
        if self.gpu_type:
            f["gpuType"] = self.gpu_type
        return f


@dataclass
class DeploymentTarget:
    """A named (node, project, network) triple.

    ``url`` and ``project_id`` may be empty until the orchestrator resolves
    them; both are written back to the manifest after a run.
    """

    name: str
    url: str | None = None
    project_id: str | None = None
    network: str = DEFAULT_NETWORK
    requirements: TargetRequirements = field(default_factory=TargetRequirements)

    @property
    def label(self) -> str:
        """Human-readable identifier for log messages."""
        return f"'{self.name}' ({self.url or 'no URL'})"

    @classmethod
    def from_dict(cls, d: dict, index: int = 0) -> "DeploymentTarget":
        req = d.get("requirements") or {}
        return cls(
            name=d.get("name") or f"target-{index}",
            url=d.get("MandalaCloudURL") or None,
            project_id=d.get("projectID") or None,
            network=d.get("network") or DEFAULT_NETWORK,
            requirements=TargetRequirements(gpu=bool(req.get("gpu", False)), gpu_type=req.get("gpuType")),
        )

    def to_dict(self) -> dict:
        d = {"name": self.name, "provider": "mandala"}
        if self.url:
            d["MandalaCloudURL"] = self.url
        if self.project_id:
            d["projectID"] = self.project_id
        d["network"] = self.network
        if self.requirements.gpu or self.requirements.gpu_type:
            req = {"gpu": self.requirements.gpu}
            if self.requirements.gpu_type:
                req["gpuType"] = self.requirements.gpu_type
            d["requirements"] = req
        return d


@dataclass
class Manifest:
    """Complete multi-service manifest: services, links, targets, shared env."""

    services: dict[str, ServiceDefinition] = field(default_factory=dict)
    links: list[ServiceLink] = field(default_factory=list)
    deployments: list[DeploymentTarget] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    service_url_template: str | None = None

    def target_by_name(self, name: str) -> DeploymentTarget | None:
        for target in self.deployments:
            if target.name == name:
                return target
        return None

    def services_on(self, target: DeploymentTarget) -> list[ServiceDefinition]:
        """Services whose resolved target is *target*."""
        default = self.deployments[0] if self.deployments else None
        result = []
        for svc in self.services.values():
            resolved = self.target_by_name(svc.provider) if svc.provider else default
            if resolved is target:
                result.append(svc)
        return result

    @classmethod
    def from_dict(cls, d: dict) -> "Manifest":
        """Build a Manifest from a (post-migrate) 2.0 manifest dict."""
        services = {name: ServiceDefinition.from_dict(name, s) for name, s in d.get("services", {}).items()}
        links = [ServiceLink.from_dict(link) for link in d.get("links", [])]
        deployments = [DeploymentTarget.from_dict(t, i) for i, t in enumerate(d.get("deployments", []))]
        return cls(
            services=services,
            links=links,
            deployments=deployments,
            env={k: str(v) for k, v in (d.get("env") or {}).items()},
            service_url_template=d.get("serviceUrlTemplate"),
        )

    def to_dict(self) -> dict:
        d = {
            "schema": SCHEMA,
            "schemaVersion": SCHEMA_VERSION,
            "services": {name: svc.to_dict() for name, svc in self.services.items()},
            "links": [link.to_dict() for link in self.links],
            "env": dict(self.env),
            "deployments": [t.to_dict() for t in self.deployments],
        }
        if self.service_url_template:
            d["serviceUrlTemplate"] = self.service_url_template
        return d
