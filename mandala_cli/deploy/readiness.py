"""Readiness polling: wait for a project to report online."""

import asyncio
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

READINESS_TIMEOUT = 300
READINESS_INTERVAL = 5


@dataclass
class Readiness:
    """Outcome of a readiness wait."""

    ready: bool
    backend_domain: str | None = None


def _backend_domain(status):
    domains = status.get("domains")
    if not isinstance(domains, dict):
        return None
    backend = domains.get("backend")
    if not isinstance(backend, str) or not backend:
        return None
    return backend if "://" in backend else f"https://{backend}"


async def wait_for_online(client, project_id, timeout=READINESS_TIMEOUT, interval=READINESS_INTERVAL) -> Readiness:
    """Poll project info until ``status.online`` is true or *timeout* elapses.

    Never raises on timeout or failed polls: the wait is advisory.

    Returns:
        Readiness(ready=True, backend_domain=...) once online, otherwise
        Readiness(ready=False).
    """
    elapsed = 0
    while elapsed < timeout:
        info = await client.project_info(project_id)
        status = info.get("status") if info else None
        if isinstance(status, dict) and status.get("online") is True:
            return Readiness(ready=True, backend_domain=_backend_domain(status))
        await asyncio.sleep(interval)
        elapsed += interval

    logger.warning(f"Project {project_id} did not become ready in time ({timeout}s).")
    return Readiness(ready=False)
