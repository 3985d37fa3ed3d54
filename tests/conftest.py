"""Shared pytest fixtures for all test modules."""

import json
import os
import re
import subprocess
import sys

import httpx
import pytest

import mandala_cli.redact as redact_module


PROJECT_ROOT = os.path.normpath(os.path.join(os.path.dirname(__file__), ".."))


@pytest.fixture(scope="session")
def project_root():
    """Absolute path to the project root directory."""
    return PROJECT_ROOT


@pytest.fixture(scope="session")
def run_cli(project_root, tmp_path_factory):
    """Return a callable that invokes the mandala CLI as a subprocess.

    HOME points at an empty temp dir so no user settings file is read.
    """
    home = tmp_path_factory.mktemp("home")

    def _run(*args):
        env = {k: v for k, v in os.environ.items() if not k.startswith("MANDALA_")}
        env["HOME"] = str(home)
        env["PYTHONPATH"] = os.pathsep.join(filter(None, [project_root, env.get("PYTHONPATH")]))
        result = subprocess.run(
            [sys.executable, "-m", "mandala_cli.mandala", *args],
            capture_output=True,
            text=True,
            cwd=project_root,
            env=env,
        )
        return result.returncode, result.stdout, result.stderr

    return _run


@pytest.fixture(autouse=True)
def _clean_redaction_state(monkeypatch):
    """Keep registered secrets and MANDALA_* env vars from leaking between tests."""
    for var in list(os.environ):
        if var.startswith("MANDALA_"):
            monkeypatch.delenv(var)
    redact_module.reset_secret_cache()
    yield
    redact_module.reset_secret_cache()


# ── Manifest fixtures ───────────────────────────────────────────────


NODE_A = "https://node-a.test"
NODE_B = "https://node-b.test"


def manifest_dict(services=None, links=None, deployments=None, env=None):
    """A minimal valid 2.0 manifest dict."""
    return {
        "schema": "mandala-agent",
        "schemaVersion": "2.0",
        "services": services if services is not None else {
            "agent": {"agent": {"type": "openclaw", "runtime": "node", "buildContext": "./agent"}, "ports": [3000]},
        },
        "links": links or [],
        "env": env or {},
        "deployments": deployments if deployments is not None else [
            {"name": "main", "provider": "mandala", "MandalaCloudURL": NODE_A, "network": "mainnet"},
        ],
    }


@pytest.fixture
def write_manifest(tmp_path):
    """Return a factory that writes a manifest dict (and its build contexts) to tmp_path."""

    def _write(data):
        for svc in data.get("services", {}).values():
            context = svc.get("agent", {}).get("buildContext")
            if context:
                ctx = tmp_path / context
                ctx.mkdir(parents=True, exist_ok=True)
                (ctx / "index.js").write_text("console.log('hi')\n")
        path = tmp_path / "agent-manifest.json"
        path.write_text(json.dumps(data, indent=2))
        return str(path)

    return _write


# ── Fake node / registry network ───────────────────────────────────


DEFAULT_PUBLIC_INFO = {
    "schemaVersionsSupported": ["1.0", "2.0"],
    "supportedRuntimes": ["node", "python", "docker"],
    "gpu": {"enabled": False},
    "pricing": {"cpu_rate_per_5min": 1000},
}

_PROJECT_PATH = re.compile(r"^/api/v1/project/([^/]+)/(.+)$")


class FakeNetwork:
    """Scriptable stand-in for Mandala nodes and overlay registries.

    Every request is recorded; responses are keyed by host so one transport
    can serve several nodes and registries.
    """

    def __init__(self):
        self.requests = []
        self.public_info = {}  # host -> dict, or an int HTTP status
        self.registry = {}  # host -> list of outputs, or an int HTTP status
        self.give_upload_slot = True
        self.upload_status = 200
        self.online = True
        self.backend_domain = None
        self.fail_paths = set()  # paths answered with 500
        self._projects = 0
        self._deployments = 0

    @property
    def transport(self):
        return httpx.MockTransport(self.handle)

    def paths(self, host=None):
        return [r.url.path for r in self.requests if host is None or r.url.host == host]

    def calls(self, suffix):
        """JSON bodies of requests whose path ends with *suffix*."""
        return [json.loads(r.content or b"{}") for r in self.requests if r.url.path.endswith(suffix)]

    def uploads(self):
        return [r for r in self.requests if r.url.path.startswith("/upload/")]

    def handle(self, request):
        self.requests.append(request)
        host, path = request.url.host, request.url.path

        if path in self.fail_paths:
            return httpx.Response(500, json={"error": "internal failure"})

        if path == "/lookup":
            outputs = self.registry.get(host, [])
            if isinstance(outputs, int):
                return httpx.Response(outputs)
            return httpx.Response(200, json={"type": "output-list", "outputs": outputs})

        if path == "/api/v1/public":
            info = self.public_info.get(host, DEFAULT_PUBLIC_INFO)
            if isinstance(info, int):
                return httpx.Response(info)
            return httpx.Response(200, json=info)

        if path == "/api/v1/register":
            return httpx.Response(200, json={"message": "registered"})

        if path == "/api/v1/project/create":
            self._projects += 1
            return httpx.Response(200, json={"projectId": f"proj-{self._projects}"})

        if path.startswith("/upload/"):
            return httpx.Response(self.upload_status)

        match = _PROJECT_PATH.match(path)
        if match:
            action = match.group(2)
            if action == "deploy":
                if not self.give_upload_slot:
                    return httpx.Response(200, json={})
                self._deployments += 1
                dep = f"dep-{self._deployments}"
                return httpx.Response(200, json={"url": f"https://{host}/upload/{dep}", "deploymentId": dep})
            if action == "info":
                status = {"online": self.online}
                if self.backend_domain:
                    status["domains"] = {"backend": self.backend_domain}
                return httpx.Response(200, json={"id": match.group(1), "status": status})
            if action in ("settings/update", "service-links", "admin/restart"):
                return httpx.Response(200, json={"message": "ok"})

        return httpx.Response(404, json={"error": f"no route for {path}"})


@pytest.fixture
def network():
    return FakeNetwork()


def registry_output(url, gpu=False, gpu_type=None, available=None, identity="02" + "ab" * 32):
    """A registry lookup output record in the positional ``fields`` layout."""
    caps = {"gpu": gpu}
    if gpu_type:
        caps["gpuType"] = gpu_type
    if available is not None:
        caps["gpuTotal"] = max(available, 1)
        caps["gpuAvailable"] = available
    return {
        "beef": "",
        "outputIndex": 0,
        "fields": [
            "MANDALA_NODE",
            url,
            identity,
            json.dumps(caps),
            json.dumps({"gpu_rate_per_5min": 5000}),
            "node,docker",
            "2026-10-01T00:00:00Z",
        ],
    }
