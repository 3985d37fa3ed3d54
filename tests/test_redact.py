"""Tests for mandala_cli.redact: secret redaction in text and log records."""

import logging

import mandala_cli.redact as redact_module
from mandala_cli.logging_setup import setup_cli_logging
from mandala_cli.redact import SecretRedactingFilter, redact_secrets, register_secret_values


def _reset_cache():
    """Reset the module-level pattern cache so env changes take effect."""
    redact_module._patterns = None


def _record(msg, args=None):
    return logging.LogRecord(name="test", level=logging.INFO, pathname="", lineno=0, msg=msg, args=args, exc_info=None)


# ── redact_secrets ──────────────────────────────────────────────


def test_redact_secrets_replaces_value(monkeypatch):
    monkeypatch.setenv("MANDALA_IDENTITY_KEY", "02deadbeefcafe0123")
    _reset_cache()

    text = "Registering identity 02deadbeefcafe0123 with node"
    assert redact_secrets(text) == "Registering identity *** with node"


def test_redact_secrets_short_values_ignored(monkeypatch):
    monkeypatch.setenv("MANDALA_PRIVATE_KEY", "short")
    _reset_cache()

    text = "Key is short and should not be redacted"
    assert redact_secrets(text) == text


def test_redact_secrets_no_env_vars():
    _reset_cache()

    text = "Nothing secret here"
    assert redact_secrets(text) == text


def test_redact_secrets_multiple_values(monkeypatch):
    monkeypatch.setenv("MANDALA_PRIVATE_KEY", "priv_AAAA_long")
    monkeypatch.setenv("AGENT_PRIVATE_KEY", "agent_BBBB_long_enough")
    _reset_cache()

    result = redact_secrets("P=priv_AAAA_long A=agent_BBBB_long_enough done")
    assert result == "P=*** A=*** done"


# ── register_secret_values ──────────────────────────────────────


def test_register_secret_values_only_secret_keys():
    added = register_secret_values({
        "OPENAI_API_KEY": "sk-live-abcdef123456",
        "DB_PASSWORD": "hunter2hunter2",
        "LOG_LEVEL": "debug-verbose",
        "AUTH_TOKEN": "tiny",
    })

    assert added == 2
    text = "sk-live-abcdef123456 hunter2hunter2 debug-verbose tiny"
    assert redact_secrets(text) == "*** *** debug-verbose tiny"


def test_register_secret_values_idempotent():
    assert register_secret_values({"API_SECRET": "s3cr3t-value"}) == 1
    assert register_secret_values({"API_SECRET": "s3cr3t-value"}) == 0


def test_reset_secret_cache_forgets_registered():
    register_secret_values({"API_SECRET": "s3cr3t-value"})
    redact_module.reset_secret_cache()
    assert redact_secrets("s3cr3t-value") == "s3cr3t-value"


# ── SecretRedactingFilter ───────────────────────────────────────


def test_secret_redacting_filter(monkeypatch):
    monkeypatch.setenv("MANDALA_IDENTITY_KEY", "02FilterTestKey99")
    _reset_cache()

    record = _record("Using key 02FilterTestKey99")
    SecretRedactingFilter().filter(record)
    assert record.msg == "Using key ***"


def test_secret_redacting_filter_with_args(monkeypatch):
    monkeypatch.setenv("MANDALA_IDENTITY_KEY", "02ArgsTestKey88")
    _reset_cache()

    record = _record("Key: %s (%d)", ("02ArgsTestKey88", 3))
    SecretRedactingFilter().filter(record)
    assert record.args == ("***", 3)


def test_cli_logging_redacts_child_loggers(monkeypatch, capsys):
    monkeypatch.setenv("MANDALA_IDENTITY_KEY", "02StdoutKey777")
    _reset_cache()
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        setup_cli_logging()
        logging.getLogger("mandala_cli.nodes.client").info("identity 02StdoutKey777 registered")
        assert capsys.readouterr().out == "identity *** registered\n"
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
