"""Dependency scheduling: order services so link targets deploy first."""

import logging
from collections import deque

logger = logging.getLogger(__name__)


def order_services(services, links):
    """Topologically order *services* by their links (Kahn's algorithm).

    Each link ``from -> to`` means ``from`` needs ``to``'s URL, so ``to`` is
    scheduled first. Ties keep service insertion order (FIFO queue).

    Args:
        services: iterable of service names, in manifest order.
        links: list of ServiceLink. Links naming unknown services are ignored.

    Returns:
        List of service names. If the links contain a cycle, the manifest
        service order is returned and a warning is logged.
    """
    names = list(services)
    in_degree = {name: 0 for name in names}
    successors = {name: [] for name in names}

    for link in links:
        if link.from_service not in in_degree or link.to_service not in in_degree:
            continue
        in_degree[link.from_service] += 1
        successors[link.to_service].append(link.from_service)

    queue = deque(name for name in names if in_degree[name] == 0)
    ordered = []
    while queue:
        name = queue.popleft()
        ordered.append(name)
        for succ in successors[name]:
            in_degree[succ] -= 1
            if in_degree[succ] == 0:
                queue.append(succ)

    if len(ordered) < len(names):
        stuck = [name for name in names if in_degree[name] > 0]
        logger.warning(
            f"Warning: dependency cycle among services: {', '.join(stuck)}. "
            "Deploying all services in manifest order; links are applied afterwards."
        )
        return names

    return ordered
