"""Configuration data model, channel registry and small config helpers."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

DEFAULT_HTTP_LISTEN = ":8080"
DEFAULT_HEALTH_PATH = "/healthz"
DEFAULT_READY_PATH = "/readyz"
DEFAULT_INGEST_PATH = "/ingest"
DEFAULT_NATS_SUBJECT = "alerting.events"
DEFAULT_NATS_INGEST_STREAM = "ALERTING_EVENTS"
DEFAULT_NATS_INGEST_CONSUMER = "alerting-ingest"
DEFAULT_NATS_INGEST_GROUP = "alerting-workers"
DEFAULT_NATS_ACK_WAIT_SEC = 30
DEFAULT_NATS_NACK_DELAY_MS = 1000
DEFAULT_NATS_MAX_DELIVER = -1
DEFAULT_NATS_MAX_ACK_PENDING = 2048
DEFAULT_NATS_URL = "nats://127.0.0.1:4222"
DEFAULT_NATS_TICK_BUCKET = "tick"
DEFAULT_NATS_DATA_BUCKET = "data"
DEFAULT_NOTIFY_QUEUE_SUBJECT = "alerting.notify.jobs"
DEFAULT_NOTIFY_QUEUE_STREAM = "ALERTING_NOTIFY"
DEFAULT_NOTIFY_QUEUE_DLQ_SUBJECT = "alerting.notify.jobs.dlq"
DEFAULT_NOTIFY_QUEUE_DLQ_STREAM = "ALERTING_NOTIFY_DLQ"
DEFAULT_NOTIFY_QUEUE_CONSUMER = "alerting-notify"
DEFAULT_NOTIFY_QUEUE_GROUP = "alerting-notify-workers"
DEFAULT_DELETE_CONSUMER = "alerting-resolve"
DEFAULT_DELETE_DELIVER = "alerting-resolve"
DEFAULT_RELOAD_SECONDS = 5
DEFAULT_RESOLVE_SCAN_SECONDS = 1
DEFAULT_NOTIFY_REPEAT_SECONDS = 300
DEFAULT_PENDING_DELAY_SECONDS = 300

NOTIFY_CHANNEL_TELEGRAM = "telegram"
NOTIFY_CHANNEL_HTTP = "http"
NOTIFY_CHANNEL_MATTERMOST = "mattermost"
NOTIFY_CHANNEL_JIRA = "jira"
NOTIFY_CHANNEL_YOUTRACK = "youtrack"

NOTIFY_ROUTE_MODE_HISTORY = "history"
NOTIFY_ROUTE_MODE_ACTIVE_ONLY = "active_only"

# Channel key -> attribute of NotifyConfig holding that transport section.
_NOTIFY_CHANNELS: dict[str, str] = {
    NOTIFY_CHANNEL_TELEGRAM: "telegram",
    NOTIFY_CHANNEL_HTTP: "http",
    NOTIFY_CHANNEL_MATTERMOST: "mattermost",
    NOTIFY_CHANNEL_JIRA: "jira",
    NOTIFY_CHANNEL_YOUTRACK: "youtrack",
}

_SUPPORTED_VALUE_PREDICATE_OPS: dict[str, frozenset[str]] = {
    "n": frozenset({"==", "!=", ">", ">=", "<", "<="}),
    "s": frozenset({"==", "!=", "in", "prefix", "match", "*"}),
    "b": frozenset({"==", "!="}),
}

_WILDCARD_ESCAPES = str.maketrans({ch: "\\" + ch for ch in ".+()[]{}^$|"})


class ConfigError(ValueError):
    """Raised when configuration cannot be loaded or is invalid."""


@dataclass
class ServiceConfig:
    name: str = ""
    reload_enabled: bool = False
    reload_interval_sec: int = 0
    resolve_scan_interval_sec: int = 0
    runtime_state_idle_sec: int = 0
    runtime_state_max: int = 0


@dataclass
class HTTPIngestConfig:
    enabled: bool = False
    listen: str = ""
    health_path: str = ""
    ready_path: str = ""
    ingest_path: str = ""
    max_body_bytes: int = 0


@dataclass
class NATSIngestConfig:
    enabled: bool = False
    url: list[str] = field(default_factory=list)
    subject: str = ""
    stream: str = ""
    consumer_name: str = ""
    deliver_group: str = ""
    ack_wait_sec: int = 0
    nack_delay_ms: int = 0
    max_deliver: int = 0
    max_ack_pending: int = 0


@dataclass
class IngestConfig:
    http: HTTPIngestConfig = field(default_factory=HTTPIngestConfig)
    nats: NATSIngestConfig = field(default_factory=NATSIngestConfig)


@dataclass
class NATSStateConfig:
    url: list[str] = field(default_factory=list)
    tick_bucket: str = ""
    data_bucket: str = ""
    delete_consumer_name: str = ""
    delete_deliver_group: str = ""
    delete_subject_wildcard: str = ""
    enable_delete_consumer: bool = False
    allow_create_buckets: bool = False
    resolve_reason_by_ttl_only: bool = False


@dataclass
class NotifyQueueDLQ:
    enabled: bool = False
    subject: str = ""
    stream: str = ""


@dataclass
class NotifyQueue:
    enabled: bool = False
    url: str = ""
    subject: str = ""
    stream: str = ""
    consumer_name: str = ""
    deliver_group: str = ""
    ack_wait_sec: int = 0
    nack_delay_ms: int = 0
    max_deliver: int = 0
    max_ack_pending: int = 0
    dlq: NotifyQueueDLQ = field(default_factory=NotifyQueueDLQ)


@dataclass
class NamedTemplateConfig:
    name: str = ""
    message: str = ""


@dataclass
class NotifyRetry:
    enabled: bool = False
    backoff: str = ""
    initial_ms: int = 0
    max_ms: int = 0
    max_attempts: int = 0
    log_each_attempt: bool = False


@dataclass
class TelegramNotifier:
    enabled: bool = False
    bot_token: str = ""
    chat_id: str = ""
    active_chat_id: str = ""
    api_base: str = ""
    retry: NotifyRetry = field(default_factory=NotifyRetry)
    name_template: list[NamedTemplateConfig] = field(default_factory=list)


@dataclass
class HTTPNotifier:
    enabled: bool = False
    url: str = ""
    method: str = ""
    timeout_sec: int = 0
    headers: dict[str, str] = field(default_factory=dict)
    retry: NotifyRetry = field(default_factory=NotifyRetry)
    name_template: list[NamedTemplateConfig] = field(default_factory=list)


@dataclass
class MattermostConfig:
    enabled: bool = False
    base_url: str = ""
    bot_token: str = ""
    channel_id: str = ""
    active_channel_id: str = ""
    timeout_sec: int = 0
    retry: NotifyRetry = field(default_factory=NotifyRetry)
    name_template: list[NamedTemplateConfig] = field(default_factory=list)


@dataclass
class TrackerAuthConfig:
    type: str = ""
    username: str = ""
    password: str = ""
    token: str = ""
    header: str = ""
    prefix: str = ""


@dataclass
class TrackerActionConfig:
    method: str = ""
    path: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    body_template: str = ""
    success_status: list[int] = field(default_factory=list)
    ref_json_path: str = ""


@dataclass
class TrackerNotifier:
    enabled: bool = False
    base_url: str = ""
    timeout_sec: int = 0
    auth: TrackerAuthConfig = field(default_factory=TrackerAuthConfig)
    create: TrackerActionConfig = field(default_factory=TrackerActionConfig)
    resolve: TrackerActionConfig = field(default_factory=TrackerActionConfig)
    retry: NotifyRetry = field(default_factory=NotifyRetry)
    name_template: list[NamedTemplateConfig] = field(default_factory=list)


@dataclass
class NotifyConfig:
    repeat: bool = False
    repeat_every_sec: int = 0
    repeat_on: list[str] = field(default_factory=list)
    repeat_per_channel: bool = False
    on_pending: bool = False
    queue: NotifyQueue = field(default_factory=NotifyQueue)
    telegram: TelegramNotifier = field(default_factory=TelegramNotifier)
    http: HTTPNotifier = field(default_factory=HTTPNotifier)
    mattermost: MattermostConfig = field(default_factory=MattermostConfig)
    jira: TrackerNotifier = field(default_factory=TrackerNotifier)
    youtrack: TrackerNotifier = field(default_factory=TrackerNotifier)


@dataclass
class LogSinkConfig:
    enabled: bool = False
    level: str = ""
    format: str = ""
    path: str = ""


@dataclass
class LogConfig:
    console: LogSinkConfig = field(default_factory=LogSinkConfig)
    file: LogSinkConfig = field(default_factory=LogSinkConfig)


@dataclass
class RuleValuePredicate:
    """Typed value filter: value type ``t``, operator and its operands."""

    type: str = ""
    op: str = ""
    n: float | None = None
    s: str | None = None
    b: bool | None = None
    in_: list[str] = field(default_factory=list)
    compiled_match_re: re.Pattern[str] | None = field(default=None, compare=False, repr=False)
    compiled_wildcard_re: re.Pattern[str] | None = field(default=None, compare=False, repr=False)


@dataclass
class RuleMatch:
    type: list[str] = field(default_factory=list)
    var: list[str] = field(default_factory=list)
    tags: dict[str, list[str]] = field(default_factory=dict)
    value: RuleValuePredicate | None = None


@dataclass
class RuleKey:
    from_tags: list[str] = field(default_factory=list)


@dataclass
class RuleRaise:
    n: int = 0
    tagg_sec: int = 0
    missing_sec: int = 0


@dataclass
class RuleResolve:
    silence_sec: int = 0


@dataclass
class RulePending:
    enabled: bool = False
    delay_sec: int = 0


@dataclass
class RuleNotifyRoute:
    name: str = ""
    channel: str = ""
    template: str = ""
    mode: str = ""


@dataclass
class RuleNotify:
    repeat: bool | None = None
    repeat_every_sec: int = 0
    on_pending: bool | None = None
    route: list[RuleNotifyRoute] = field(default_factory=list)


@dataclass
class RuleOutOfOrder:
    max_late_ms: int = 0
    max_future_skew_ms: int = 0


@dataclass
class RuleConfig:
    name: str = ""
    alert_type: str = ""
    match: RuleMatch = field(default_factory=RuleMatch)
    key: RuleKey = field(default_factory=RuleKey)
    raise_: RuleRaise = field(default_factory=RuleRaise)
    resolve: RuleResolve = field(default_factory=RuleResolve)
    pending: RulePending = field(default_factory=RulePending)
    notify: RuleNotify = field(default_factory=RuleNotify)
    out_of_order: RuleOutOfOrder = field(default_factory=RuleOutOfOrder)


@dataclass
class Config:
    service: ServiceConfig = field(default_factory=ServiceConfig)
    log: LogConfig = field(default_factory=LogConfig)
    ingest: IngestConfig = field(default_factory=IngestConfig)
    notify: NotifyConfig = field(default_factory=NotifyConfig)
    rule: list[RuleConfig] = field(default_factory=list)


@dataclass(frozen=True)
class ConfigSource:
    """Either a single config file or a directory of fragments."""

    file: str = ""
    dir: str = ""


def string_list(value: Any) -> list[str]:
    """Decode a tag allow-list given as a string or a list of strings."""
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        out: list[str] = []
        for item in value:
            if not isinstance(item, str):
                raise ConfigError(f"string list contains non-string value {type(item).__name__}")
            out.append(item)
        return out
    raise ConfigError(f"unsupported tag value type {type(value).__name__}")


def normalize_notify_channel(value: str) -> str:
    return value.strip().lower()


def normalize_notify_route_mode(value: str) -> str:
    normalized = value.strip().lower()
    return normalized or NOTIFY_ROUTE_MODE_HISTORY


def is_supported_notify_route_mode(mode: str) -> bool:
    return normalize_notify_route_mode(mode) in (
        NOTIFY_ROUTE_MODE_HISTORY,
        NOTIFY_ROUTE_MODE_ACTIVE_ONLY,
    )


def notify_channel_names() -> list[str]:
    """Supported channel keys in their fixed order."""
    return list(_NOTIFY_CHANNELS)


def is_supported_notify_channel(channel: str) -> bool:
    return normalize_notify_channel(channel) in _NOTIFY_CHANNELS


def _channel_section(cfg: NotifyConfig, channel: str) -> Any:
    attribute = _NOTIFY_CHANNELS.get(normalize_notify_channel(channel))
    return None if attribute is None else getattr(cfg, attribute)


def notify_channel_enabled(cfg: NotifyConfig, channel: str) -> bool:
    section = _channel_section(cfg, channel)
    return bool(section is not None and section.enabled)


def notify_channel_retry(cfg: NotifyConfig, channel: str) -> NotifyRetry:
    section = _channel_section(cfg, channel)
    return NotifyRetry() if section is None else section.retry


def notify_channel_templates(cfg: NotifyConfig, channel: str) -> list[NamedTemplateConfig]:
    """Return a copy of the channel's template list."""
    section = _channel_section(cfg, channel)
    return [] if section is None else list(section.name_template)


def is_supported_value_predicate_op(value_type: str, op: str) -> bool:
    return op in _SUPPORTED_VALUE_PREDICATE_OPS.get(value_type, frozenset())


def resolve_timeout(rule: RuleConfig) -> timedelta:
    """Timeout used for tick refresh and resolve checks of a rule."""
    if rule.alert_type in ("count_total", "count_window"):
        return timedelta(seconds=rule.resolve.silence_sec)
    if rule.alert_type == "missing_heartbeat":
        return timedelta(seconds=rule.raise_.missing_sec)
    return timedelta(0)


def normalize_nats_urls(urls: list[str] | None) -> list[str]:
    """Strip each URL, keeping the element count for later validation."""
    return [url.strip() for url in urls or []]


def derive_state_nats_config(cfg: Config) -> NATSStateConfig:
    """Fixed state-backend settings derived from the ingest NATS URLs."""
    urls = normalize_nats_urls(cfg.ingest.nats.url) or [DEFAULT_NATS_URL]
    return NATSStateConfig(
        url=urls,
        tick_bucket=DEFAULT_NATS_TICK_BUCKET,
        data_bucket=DEFAULT_NATS_DATA_BUCKET,
        delete_consumer_name=DEFAULT_DELETE_CONSUMER,
        delete_deliver_group=DEFAULT_DELETE_DELIVER,
        delete_subject_wildcard="$KV." + DEFAULT_NATS_TICK_BUCKET + ".>",
        enable_delete_consumer=True,
        allow_create_buckets=True,
    )


def compile_wildcard_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a ``*``/``?`` wildcard into an anchored regex over the lowercased pattern."""
    normalized = pattern.lower().translate(_WILDCARD_ESCAPES)
    normalized = normalized.replace("*", ".*").replace("?", ".")
    try:
        return re.compile("^" + normalized + "$")
    except re.error as exc:
        raise ConfigError(str(exc)) from exc