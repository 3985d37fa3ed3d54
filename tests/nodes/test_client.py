"""Tests for mandala_cli.nodes.client."""

import json

import httpx

from conftest import NODE_A
from mandala_cli.nodes.client import IDENTITY_HEADER, IdentityAuth, NodeClient


def _client(network, registrations=None, **kwargs):
    return NodeClient(f"{NODE_A}/", registrations=registrations, transport=network.transport, **kwargs)


# ── Registration ──────────────────────────────────────────────────


async def test_ensure_registered_once(network):
    registrations = set()
    first = _client(network, registrations)
    second = _client(network, registrations)

    assert await first.ensure_registered()
    assert await second.ensure_registered()

    assert network.paths().count("/api/v1/register") == 1
    assert registrations == {NODE_A}


async def test_ensure_registered_failure_not_cached(network, caplog):
    network.fail_paths.add("/api/v1/register")
    client = _client(network)

    with caplog.at_level("ERROR"):
        assert not await client.ensure_registered()

    assert client.registrations == set()
    assert "Error from server: internal failure" in caplog.text


async def test_identity_header_attached(network):
    client = _client(network, auth=IdentityAuth("02" + "ee" * 32))

    await client.ensure_registered()

    assert network.requests[0].headers[IDENTITY_HEADER] == "02" + "ee" * 32


# ── Projects and deployments ──────────────────────────────────────


async def test_create_project(network):
    project_id = await _client(network).create_project("main", "mainnet")

    assert project_id == "proj-1"
    assert network.calls("/project/create") == [{"name": "main", "network": "mainnet"}]


async def test_create_project_without_id():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"message": "ok"}))
    client = NodeClient(NODE_A, transport=transport)

    assert await client.create_project("main", "mainnet") is None


async def test_create_deployment(network):
    slot = await _client(network).create_deployment("proj-1")

    assert slot == ("https://node-a.test/upload/dep-1", "dep-1")


async def test_create_deployment_missing_fields(network):
    network.give_upload_slot = False

    assert await _client(network).create_deployment("proj-1") is None


async def test_project_info_failure_returns_none(network):
    network.fail_paths.add("/api/v1/project/proj-1/info")

    assert await _client(network).project_info("proj-1") is None


# ── Upload ────────────────────────────────────────────────────────


async def test_upload_artifact_tags_service_without_auth(network, tmp_path):
    archive = tmp_path / "a.tgz"
    archive.write_bytes(b"\x1f\x8bpayload")
    client = _client(network, auth=IdentityAuth("02" + "ee" * 32))

    ok = await client.upload_artifact("https://node-a.test/upload/dep-1?sig=abc", archive, "web")

    assert ok
    [request] = network.uploads()
    assert request.url.params["serviceName"] == "web"
    assert request.url.params["sig"] == "abc"
    assert request.content == b"\x1f\x8bpayload"
    assert IDENTITY_HEADER not in request.headers


async def test_upload_artifact_failure(network, tmp_path):
    network.upload_status = 403
    archive = tmp_path / "a.tgz"
    archive.write_bytes(b"x")

    assert not await _client(network).upload_artifact("https://node-a.test/upload/dep-1", archive, "web")


async def test_upload_artifact_missing_file(network, tmp_path):
    assert not await _client(network).upload_artifact("https://node-a.test/upload/dep-1", tmp_path / "nope.tgz", "web")
    assert network.requests == []


# ── Settings, links, restart ──────────────────────────────────────


async def test_settings_links_restart_paths(network):
    client = _client(network)

    await client.update_settings("p1", {"A": "1"})
    await client.set_service_links("p1", [{"envVar": "A", "url": "https://x"}])
    await client.restart("p1")

    assert network.paths() == [
        "/api/v1/project/p1/settings/update",
        "/api/v1/project/p1/service-links",
        "/api/v1/project/p1/admin/restart",
    ]
    assert json.loads(network.requests[0].content) == {"env": {"A": "1"}}
