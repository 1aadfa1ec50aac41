"""Validation of a full configuration snapshot and of individual rules."""

from __future__ import annotations

import json
import re

from .model import (
    Config,
    ConfigError,
    LogSinkConfig,
    RuleConfig,
    RuleValuePredicate,
    compile_wildcard_pattern,
    is_supported_value_predicate_op,
)
from .notify_checks import (
    validate_notify_templates,
    validate_rule_notify_routes,
    validate_tracker_notifier,
)

_ALERT_TYPES = frozenset({"count_total", "count_window", "missing_heartbeat"})
_MATCH_TYPES = frozenset({"event", "agg"})
_LOG_LEVELS = frozenset({"debug", "info", "warn", "error", "panic"})
_LOG_FORMATS = frozenset({"line", "json"})


def _q(value: str) -> str:
    """Render a value double-quoted, as error messages show it."""
    return json.dumps(value, ensure_ascii=False)


def _validate_ingest(cfg: Config) -> None:
    http = cfg.ingest.http
    if not http.listen.strip():
        raise ConfigError("ingest.http.listen is required")
    if not http.health_path.strip():
        raise ConfigError("ingest.http.health_path is required")
    if not http.ready_path.strip():
        raise ConfigError("ingest.http.ready_path is required")
    if not http.ingest_path.strip():
        raise ConfigError("ingest.http.ingest_path is required")

    nats = cfg.ingest.nats
    if not nats.url:
        raise ConfigError("ingest.nats.url is required")
    for index, url in enumerate(nats.url):
        if not url.strip():
            raise ConfigError(f"ingest.nats.url[{index}] is empty")
    if not nats.enabled:
        return
    suffix = "when ingest.nats.enabled=true"
    if not nats.subject.strip():
        raise ConfigError(f"ingest.nats.subject is required {suffix}")
    if not nats.stream.strip():
        raise ConfigError(f"ingest.nats.stream is required {suffix}")
    if not nats.consumer_name.strip():
        raise ConfigError(f"ingest.nats.consumer_name is required {suffix}")
    if not nats.deliver_group.strip():
        raise ConfigError(f"ingest.nats.deliver_group is required {suffix}")
    if nats.ack_wait_sec <= 0:
        raise ConfigError(f"ingest.nats.ack_wait_sec must be >0 {suffix}")
    if nats.nack_delay_ms < 0:
        raise ConfigError("ingest.nats.nack_delay_ms must be >=0")
    if nats.max_deliver == 0 or nats.max_deliver < -1:
        raise ConfigError("ingest.nats.max_deliver must be -1 or >0")
    if nats.max_ack_pending <= 0:
        raise ConfigError(f"ingest.nats.max_ack_pending must be >0 {suffix}")


def _validate_queue(cfg: Config) -> None:
    queue = cfg.notify.queue
    if queue.enabled:
        suffix = "when notify.queue.enabled=true"
        if not queue.url.strip():
            raise ConfigError(f"notify.queue.url is required {suffix}")
        if not queue.subject.strip():
            raise ConfigError(f"notify.queue.subject is required {suffix}")
        if not queue.stream.strip():
            raise ConfigError(f"notify.queue.stream is required {suffix}")
        if not queue.consumer_name.strip():
            raise ConfigError(f"notify.queue.consumer_name is required {suffix}")
        if not queue.deliver_group.strip():
            raise ConfigError(f"notify.queue.deliver_group is required {suffix}")
        if queue.ack_wait_sec <= 0:
            raise ConfigError(f"notify.queue.ack_wait_sec must be >0 {suffix}")
        if queue.nack_delay_ms < 0:
            raise ConfigError("notify.queue.nack_delay_ms must be >=0")
        if queue.max_deliver == 0 or queue.max_deliver < -1:
            raise ConfigError("notify.queue.max_deliver must be -1 or >0")
        if queue.max_ack_pending <= 0:
            raise ConfigError(f"notify.queue.max_ack_pending must be >0 {suffix}")
    if queue.dlq.enabled:
        if not queue.enabled:
            raise ConfigError("notify.queue.dlq.enabled requires notify.queue.enabled=true")
        suffix = "when notify.queue.dlq.enabled=true"
        if not queue.dlq.subject.strip():
            raise ConfigError(f"notify.queue.dlq.subject is required {suffix}")
        if not queue.dlq.stream.strip():
            raise ConfigError(f"notify.queue.dlq.stream is required {suffix}")
        if queue.dlq.subject.strip() == queue.subject.strip():
            raise ConfigError("notify.queue.dlq.subject must differ from notify.queue.subject")


def _validate_notify_channels(cfg: Config) -> None:
    telegram = cfg.notify.telegram
    if telegram.enabled:
        if not telegram.bot_token.strip():
            raise ConfigError(
                "notify.telegram.bot_token is required when notify.telegram.enabled=true"
            )
        if not telegram.chat_id.strip():
            raise ConfigError(
                "notify.telegram.chat_id is required when notify.telegram.enabled=true"
            )
    if cfg.notify.http.enabled and not cfg.notify.http.url.strip():
        raise ConfigError("notify.http.url is required when notify.http.enabled=true")
    _validate_queue(cfg)
    mattermost = cfg.notify.mattermost
    if mattermost.enabled:
        suffix = "when notify.mattermost.enabled=true"
        if not mattermost.base_url.strip():
            raise ConfigError(f"notify.mattermost.base_url is required {suffix}")
        if not mattermost.bot_token.strip():
            raise ConfigError(f"notify.mattermost.bot_token is required {suffix}")
        if not mattermost.channel_id.strip():
            raise ConfigError(f"notify.mattermost.channel_id is required {suffix}")
        if mattermost.timeout_sec <= 0:
            raise ConfigError(f"notify.mattermost.timeout_sec must be >0 {suffix}")
    validate_tracker_notifier("jira", cfg.notify.jira)
    validate_tracker_notifier("youtrack", cfg.notify.youtrack)


def validate_config(cfg: Config) -> Config:
    """Validate a full configuration snapshot; return it unchanged on success."""
    if not cfg.rule:
        raise ConfigError("at least one rule is required")
    if cfg.service.runtime_state_idle_sec < 0:
        raise ConfigError("service.runtime_state_idle_sec must be >=0")
    if cfg.service.runtime_state_max < 0:
        raise ConfigError("service.runtime_state_max must be >=0")
    _validate_ingest(cfg)
    validate_log_sink("log.console", cfg.log.console, False)
    validate_log_sink("log.file", cfg.log.file, True)
    _validate_notify_channels(cfg)
    templates = validate_notify_templates(cfg.notify)

    rule_names: set[str] = set()
    for index, rule in enumerate(cfg.rule):
        prefix = f"rule[{index}] {_q(rule.name)}"
        try:
            validate_rule(rule)
        except ConfigError as exc:
            raise ConfigError(f"{prefix}: {exc}") from exc
        if rule.name in rule_names:
            raise ConfigError(f"duplicate rule name {_q(rule.name)}")
        rule_names.add(rule.name)
        try:
            validate_rule_notify_routes(cfg.notify, rule, templates)
        except ConfigError as exc:
            raise ConfigError(f"{prefix}: {exc}") from exc
    return cfg


def _validate_thresholds(rule: RuleConfig) -> None:
    raise_, resolve = rule.raise_, rule.resolve
    if rule.alert_type == "count_total":
        if raise_.n < 1:
            raise ConfigError("raise.n must be >=1")
        if resolve.silence_sec < 0:
            raise ConfigError("resolve.silence_sec must be >=0")
        if raise_.tagg_sec > 0 or raise_.missing_sec > 0:
            raise ConfigError("count_total forbids raise.tagg_sec and raise.missing_sec")
    elif rule.alert_type == "count_window":
        if raise_.n < 1:
            raise ConfigError("raise.n must be >=1")
        if raise_.tagg_sec <= 0:
            raise ConfigError("raise.tagg_sec must be >0")
        if resolve.silence_sec < 0:
            raise ConfigError("resolve.silence_sec must be >=0")
        if raise_.missing_sec > 0:
            raise ConfigError("count_window forbids raise.missing_sec")
    elif rule.alert_type == "missing_heartbeat":
        if raise_.missing_sec <= 0:
            raise ConfigError("raise.missing_sec must be >0")
        if raise_.n > 0 or raise_.tagg_sec > 0 or resolve.silence_sec > 0:
            raise ConfigError(
                "missing_heartbeat forbids raise.n, raise.tagg_sec, resolve.silence_sec"
            )


def validate_rule(rule: RuleConfig) -> RuleConfig:
    """Validate one rule against schema constraints; return it on success."""
    if not rule.name.strip():
        raise ConfigError("name is required")
    if rule.alert_type not in _ALERT_TYPES:
        raise ConfigError(f"unsupported alert_type {_q(rule.alert_type)}")
    if not rule.match.type:
        raise ConfigError("match.type is required")
    for match_type in rule.match.type:
        if match_type not in _MATCH_TYPES:
            raise ConfigError(f"unsupported match.type value {_q(match_type)}")
    if not rule.match.var:
        raise ConfigError("match.var is required")
    if not rule.key.from_tags:
        raise ConfigError("key.from_tags is required")
    if rule.match.value is not None:
        try:
            validate_value_predicate(rule.match.value)
        except ConfigError as exc:
            raise ConfigError(f"match.value: {exc}") from exc
    if rule.pending.enabled and rule.pending.delay_sec <= 0:
        raise ConfigError("pending.delay_sec must be >0 when pending.enabled=true")
    if not rule.notify.route:
        raise ConfigError("notify.route is required")
    _validate_thresholds(rule)
    return rule


def validate_value_predicate(predicate: RuleValuePredicate | None) -> RuleValuePredicate:
    """Validate a typed value predicate and compile its patterns in place."""
    if predicate is None:
        raise ConfigError("predicate is nil")
    predicate.compiled_match_re = None
    predicate.compiled_wildcard_re = None

    supported = is_supported_value_predicate_op(predicate.type, predicate.op)
    if predicate.type == "n":
        if not supported:
            raise ConfigError(f"unsupported numeric op {_q(predicate.op)}")
        if predicate.n is None:
            raise ConfigError("n operand is required for type=n")
    elif predicate.type == "s":
        if not supported:
            raise ConfigError(f"unsupported string op {_q(predicate.op)}")
        if predicate.op == "in":
            if not predicate.in_:
                raise ConfigError("in operand requires non-empty list")
        elif predicate.s is None:
            raise ConfigError("s operand is required for string op")
        if predicate.op == "match":
            try:
                predicate.compiled_match_re = re.compile(predicate.s)
            except re.error as exc:
                raise ConfigError(f"invalid match regex: {exc}") from exc
        if predicate.op == "*":
            try:
                predicate.compiled_wildcard_re = compile_wildcard_pattern(predicate.s)
            except ConfigError as exc:
                raise ConfigError(f"invalid wildcard pattern: {exc}") from exc
    elif predicate.type == "b":
        if not supported:
            raise ConfigError(f"unsupported bool op {_q(predicate.op)}")
        if predicate.b is None:
            raise ConfigError("b operand is required for type=b")
    else:
        raise ConfigError(f"unsupported value type {_q(predicate.type)}")
    return predicate


def validate_log_sink(name: str, sink: LogSinkConfig, require_path: bool) -> None:
    """Validate one enabled log sink; disabled sinks always pass."""
    if not sink.enabled:
        return
    if sink.level.strip().lower() not in _LOG_LEVELS:
        raise ConfigError(f"{name}.level has unsupported value {_q(sink.level)}")
    if sink.format.strip().lower() not in _LOG_FORMATS:
        raise ConfigError(f"{name}.format has unsupported value {_q(sink.format)}")
    if require_path and not sink.path.strip():
        raise ConfigError(f"{name}.path is required")