"""Mandala Node REST client: authenticated JSON requests against one node."""

import logging
import os
from pathlib import Path

import httpx

from mandala_cli.nodes.types import REQUEST_ERRORS

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60
UPLOAD_TIMEOUT = 600
IDENTITY_HEADER = "x-bsv-identity-key"
IDENTITY_ENV_VAR = "MANDALA_IDENTITY_KEY"


class IdentityAuth(httpx.Auth):
    """Attach the caller's identity key to every node request.

    The signing handshake itself belongs to the wallet layer; this only
    carries the identity so the node can associate requests with a caller.
    """

    def __init__(self, identity_key=""):
        self.identity_key = identity_key

    def auth_flow(self, request):
        if self.identity_key:
            request.headers[IDENTITY_HEADER] = self.identity_key
        yield request


def default_auth():
    """IdentityAuth built from the MANDALA_IDENTITY_KEY env var."""
    return IdentityAuth(os.environ.get(IDENTITY_ENV_VAR, ""))


def log_request_error(error, context_msg=None):
    """Log a failed request, preferring the server's own error message."""
    if context_msg:
        logger.error(context_msg)
    server_error = None
    if isinstance(error, httpx.HTTPStatusError):
        try:
            body = error.response.json()
            if isinstance(body, dict):
                server_error = body.get("error")
        except ValueError:
            pass
    if server_error:
        logger.error(f"Error from server: {server_error}")
    else:
        logger.error(f"Error: {error}")


class NodeClient:
    """Client for one node's ``/api/v1`` endpoints.

    Args:
        base_url: node base URL, e.g. ``https://cars.babbage.systems``.
        registrations: set of node URLs already registered in this run;
            shared by reference between clients so a node is registered
            at most once.
        auth: httpx auth for node calls (default: identity from env).
        transport: optional httpx transport (tests inject MockTransport).
    """

    def __init__(self, base_url, registrations=None, auth=None, timeout=DEFAULT_TIMEOUT, transport=None):
        self.base_url = base_url.rstrip("/")
        self.registrations = registrations if registrations is not None else set()
        self.auth = auth if auth is not None else default_auth()
        self.timeout = timeout
        self.transport = transport

    def _http(self, auth=True, timeout=None):
        return httpx.AsyncClient(
            auth=self.auth if auth else None,
            timeout=timeout or self.timeout,
            transport=self.transport,
        )

    async def request(self, path, data=None):
        """POST JSON *data* to *path* and return the parsed response.

        Raises httpx.HTTPError on transport/status failures and ValueError
        on a non-JSON body.
        """
        url = f"{self.base_url}{path}"
        async with self._http() as http:
            resp = await http.post(url, json=data if data is not None else {})
        resp.raise_for_status()
        return resp.json()

    async def safe_request(self, path, data=None):
        """Like request(), but logs failures and returns None instead of raising."""
        try:
            return await self.request(path, data)
        except (*REQUEST_ERRORS, ValueError) as e:
            log_request_error(e, f"Request to {path} failed")
            return None

    # ── Identity / projects ───────────────────────────────────────

    async def ensure_registered(self) -> bool:
        """Register the caller's identity with this node once per run.

        POST /api/v1/register
        """
        if self.base_url in self.registrations:
            return True
        result = await self.safe_request("/api/v1/register", {})
        if result is None:
            return False
        self.registrations.add(self.base_url)
        logger.debug(f"Registered identity with {self.base_url}")
        return True

    async def create_project(self, name, network):
        """Create a project and return its ID, or None on failure.

        POST /api/v1/project/create
        """
        result = await self.safe_request("/api/v1/project/create", {"name": name, "network": network})
        if not isinstance(result, dict):
            return None
        project_id = result.get("projectId")
        if not project_id:
            logger.error("No projectId returned from project/create.")
            return None
        return str(project_id)

    async def project_info(self, project_id):
        """POST /api/v1/project/{id}/info"""
        result = await self.safe_request(f"/api/v1/project/{project_id}/info", {})
        return result if isinstance(result, dict) else None

    # ── Deployments ───────────────────────────────────────────────

    async def create_deployment(self, project_id):
        """Request a new deployment slot.

        POST /api/v1/project/{id}/deploy

        Returns:
            (upload_url, deployment_id), or None if the node did not return both.
        """
        result = await self.safe_request(f"/api/v1/project/{project_id}/deploy", {})
        if not isinstance(result, dict):
            return None
        upload_url = result.get("url")
        deployment_id = result.get("deploymentId")
        if not isinstance(upload_url, str) or not upload_url or not deployment_id:
            return None
        return upload_url, str(deployment_id)

    async def upload_artifact(self, upload_url, archive_path, service_name) -> bool:
        """Upload an archive to a signed URL, tagged with the service name.

        The upload URL is pre-signed by the node, so no auth is attached.
        """
        path = Path(archive_path)
        if not path.exists():
            logger.error(f"Artifact not found: {path}")
            return False
        try:
            url = httpx.URL(upload_url).copy_merge_params({"serviceName": service_name})
            async with self._http(auth=False, timeout=UPLOAD_TIMEOUT) as http:
                resp = await http.post(
                    url,
                    content=path.read_bytes(),
                    headers={"content-type": "application/octet-stream"},
                )
            resp.raise_for_status()
        except REQUEST_ERRORS as e:
            log_request_error(e, f"Artifact upload for '{service_name}' failed.")
            return False
        return True

    async def update_settings(self, project_id, env):
        """POST /api/v1/project/{id}/settings/update"""
        return await self.safe_request(f"/api/v1/project/{project_id}/settings/update", {"env": env})

    async def set_service_links(self, project_id, links):
        """Store link metadata ``[{"envVar", "url"}]`` on the project.

        POST /api/v1/project/{id}/service-links
        """
        return await self.safe_request(f"/api/v1/project/{project_id}/service-links", {"links": links})

    async def restart(self, project_id):
        """POST /api/v1/project/{id}/admin/restart"""
        return await self.safe_request(f"/api/v1/project/{project_id}/admin/restart", {})
