"""Tests for mandala_cli.settings."""

import pytest
import yaml

from mandala_cli.deploy.readiness import READINESS_TIMEOUT
from mandala_cli.errors import MandalaError
from mandala_cli.nodes.discovery import DEFAULT_LOOKUP_ENDPOINT
from mandala_cli.settings import load_settings


def _write(tmp_path, data):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump(data))
    return str(path)


def test_defaults_when_default_file_missing(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))

    settings = load_settings()

    assert settings.known_nodes == []
    assert settings.service_url_template is None
    assert settings.readiness_timeout == READINESS_TIMEOUT
    assert settings.all_lookup_endpoints() == [DEFAULT_LOOKUP_ENDPOINT]


def test_explicit_missing_file_is_error(tmp_path):
    with pytest.raises(MandalaError, match="not found"):
        load_settings(str(tmp_path / "missing.yaml"))


def test_file_values(tmp_path):
    path = _write(tmp_path, {
        "lookup_endpoints": ["https://reg.test"],
        "known_nodes": "https://a.test, https://b.test",
        "service_url_template": "https://{service}.apps.test",
        "readiness_timeout": 60,
        "readiness_interval": 2,
        "request_timeout": 30,
    })

    settings = load_settings(path)

    assert settings.all_lookup_endpoints() == [DEFAULT_LOOKUP_ENDPOINT, "https://reg.test"]
    assert settings.known_nodes == ["https://a.test", "https://b.test"]
    assert settings.service_url_template == "https://{service}.apps.test"
    assert (settings.readiness_timeout, settings.readiness_interval, settings.request_timeout) == (60, 2, 30)


def test_env_overrides_file(tmp_path, monkeypatch):
    path = _write(tmp_path, {"known_nodes": ["https://a.test"], "service_url_template": "https://file", "identity_key": "from-file-key"})
    monkeypatch.setenv("MANDALA_KNOWN_NODES", "https://a.test,https://c.test")
    monkeypatch.setenv("MANDALA_SERVICE_URL_TEMPLATE", "https://env")
    monkeypatch.setenv("MANDALA_IDENTITY_KEY", "from-env-key")

    settings = load_settings(path)

    assert settings.known_nodes == ["https://a.test", "https://c.test"]
    assert settings.service_url_template == "https://env"
    assert settings.identity_key == "from-env-key"


@pytest.mark.parametrize("data, message", [
    (["a", "b"], "must contain a mapping"),
    ({"known_nodes": [1, 2]}, "list of strings"),
    ({"readiness_timeout": 0}, "positive integer"),
    ({"request_timeout": "fast"}, "positive integer"),
    ({"service_url_template": "https://{host}"}, "service URL template .* is invalid"),
])
def test_invalid_settings(tmp_path, data, message):
    with pytest.raises(MandalaError, match=message):
        load_settings(_write(tmp_path, data))


def test_invalid_env_template(tmp_path, monkeypatch):
    monkeypatch.setenv("MANDALA_SERVICE_URL_TEMPLATE", "https://{0}.apps.test")
    with pytest.raises(MandalaError, match="Settings: service URL template"):
        load_settings(_write(tmp_path, {}))


def test_invalid_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("known_nodes: [unclosed\n")
    with pytest.raises(MandalaError, match="Error parsing settings file"):
        load_settings(str(path))


def test_unknown_keys_warned(tmp_path, caplog):
    with caplog.at_level("WARNING"):
        load_settings(_write(tmp_path, {"servers": []}))
    assert "Ignoring unknown settings key(s)" in caplog.text


def test_deploy_options_carry_settings(tmp_path):
    settings = load_settings(_write(tmp_path, {"readiness_timeout": 30, "identity_key": "02" + "aa" * 32}))

    options = settings.deploy_options("m.json", base_dir="/srv")

    assert options.manifest_path == "m.json"
    assert options.base_dir == "/srv"
    assert options.readiness_timeout == 30
    assert options.auth.identity_key == "02" + "aa" * 32
    assert options.lookup_endpoints == [DEFAULT_LOOKUP_ENDPOINT]
