from datetime import timedelta

import pytest

from alerting.model import (
    DEFAULT_NATS_URL,
    Config,
    ConfigError,
    NamedTemplateConfig,
    NotifyConfig,
    NotifyRetry,
    RuleConfig,
    RuleRaise,
    RuleResolve,
    ServiceConfig,
    compile_wildcard_pattern,
    derive_state_nats_config,
    is_supported_notify_channel,
    is_supported_notify_route_mode,
    is_supported_value_predicate_op,
    normalize_nats_urls,
    normalize_notify_channel,
    normalize_notify_route_mode,
    notify_channel_enabled,
    notify_channel_names,
    notify_channel_retry,
    notify_channel_templates,
    resolve_timeout,
    string_list,
)


def test_string_list_scalar_and_list():
    assert string_list("dc1") == ["dc1"]
    assert string_list(["a", "b"]) == ["a", "b"]
    assert string_list([]) == []


@pytest.mark.parametrize("value", [1, ["a", 2], {"x": "y"}])
def test_string_list_rejects_non_strings(value):
    with pytest.raises(ConfigError):
        string_list(value)


def test_normalize_channel_and_mode():
    assert normalize_notify_channel("  Telegram ") == "telegram"
    assert normalize_notify_route_mode("") == "history"
    assert normalize_notify_route_mode(" Active_Only ") == "active_only"


def test_route_mode_support():
    assert is_supported_notify_route_mode("")
    assert is_supported_notify_route_mode("ACTIVE_ONLY")
    assert not is_supported_notify_route_mode("thread")


def test_channel_names_order_and_copy():
    names = notify_channel_names()
    assert names == ["telegram", "http", "mattermost", "jira", "youtrack"]
    names.append("x")
    assert "x" not in notify_channel_names()


def test_supported_channel():
    assert is_supported_notify_channel(" JIRA ")
    assert not is_supported_notify_channel("slack")


def test_channel_enabled_and_retry():
    cfg = NotifyConfig()
    cfg.mattermost.enabled = True
    cfg.mattermost.retry = NotifyRetry(enabled=True, max_attempts=4)
    assert notify_channel_enabled(cfg, "mattermost")
    assert not notify_channel_enabled(cfg, "http")
    assert not notify_channel_enabled(cfg, "slack")
    assert notify_channel_retry(cfg, "Mattermost").max_attempts == 4
    assert notify_channel_retry(cfg, "slack") == NotifyRetry()


def test_channel_templates_returns_copy():
    cfg = NotifyConfig()
    cfg.http.name_template.append(NamedTemplateConfig(name="default", message="m"))
    templates = notify_channel_templates(cfg, "http")
    assert templates == [NamedTemplateConfig(name="default", message="m")]
    templates.clear()
    assert len(cfg.http.name_template) == 1
    assert notify_channel_templates(cfg, "unknown") == []


@pytest.mark.parametrize(
    "value_type,op,expected",
    [
        ("n", ">=", True),
        ("n", "in", False),
        ("s", "*", True),
        ("s", "match", True),
        ("b", "!=", True),
        ("b", ">", False),
        ("x", "==", False),
    ],
)
def test_value_predicate_ops(value_type, op, expected):
    assert is_supported_value_predicate_op(value_type, op) is expected


def test_resolve_timeout_by_type():
    rule = RuleConfig(alert_type="count_window", resolve=RuleResolve(silence_sec=30))
    assert resolve_timeout(rule) == timedelta(seconds=30)
    rule = RuleConfig(alert_type="missing_heartbeat", raise_=RuleRaise(missing_sec=5))
    assert resolve_timeout(rule) == timedelta(seconds=5)
    assert resolve_timeout(RuleConfig(alert_type="other")) == timedelta(0)


def test_normalize_nats_urls_keeps_count():
    assert normalize_nats_urls([" a ", " "]) == ["a", ""]
    assert normalize_nats_urls(None) == []


def test_derive_state_config_defaults():
    state = derive_state_nats_config(Config())
    assert state.url == [DEFAULT_NATS_URL]
    assert state.tick_bucket == "tick"
    assert state.data_bucket == "data"
    assert state.delete_subject_wildcard == "$KV.tick.>"
    assert state.delete_consumer_name == "alerting-resolve"
    assert state.enable_delete_consumer and state.allow_create_buckets


def test_derive_state_config_uses_ingest_urls():
    cfg = Config()
    cfg.ingest.nats.url = [" nats://a:4222 "]
    assert derive_state_nats_config(cfg).url == ["nats://a:4222"]


def test_wildcard_pattern():
    compiled = compile_wildcard_pattern("API-*.Host?")
    assert compiled.match("api-prod.host1")
    assert not compiled.match("api-prod.host12")
    assert not compiled.match("apiXprod.hostA") or compiled.match("api-xprod.hosta")
    literal = compile_wildcard_pattern("a.b")
    assert literal.match("a.b")
    assert not literal.match("axb")


def test_wildcard_pattern_escapes_specials():
    compiled = compile_wildcard_pattern("x(1)|y")
    assert compiled.match("x(1)|y")
    assert not compiled.match("y")


def test_default_dataclasses_compare_equal():
    assert ServiceConfig() == ServiceConfig()
    assert ServiceConfig(name="a") != ServiceConfig()
    assert Config().rule == []