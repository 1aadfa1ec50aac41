"""Load configuration snapshots from one TOML file or a directory of fragments."""

from __future__ import annotations

import dataclasses
import json
import os
import re
import tomllib
import types
import typing
from dataclasses import dataclass
from typing import Any, Mapping

from .defaults import apply_defaults
from .model import (
    Config,
    ConfigError,
    ConfigSource,
    HTTPIngestConfig,
    HTTPNotifier,
    IngestConfig,
    LogConfig,
    MattermostConfig,
    NamedTemplateConfig,
    NATSIngestConfig,
    NotifyConfig,
    NotifyQueue,
    NotifyRetry,
    RuleConfig,
    RuleMatch,
    RuleNotifyRoute,
    RuleValuePredicate,
    ServiceConfig,
    TelegramNotifier,
    TrackerActionConfig,
    TrackerAuthConfig,
    TrackerNotifier,
    string_list,
)
from .validation import validate_config

_LEGACY_RULE_ARRAY = re.compile(r"^\s*\[\[\s*rule\s*\]\]", re.MULTILINE | re.ASCII)
_UNSUPPORTED_STATE = re.compile(
    r"^\s*\[\[?\s*state(?:\.[^\]\s]+)*\s*\]\]?", re.MULTILINE | re.ASCII
)

# Item types of list fields whose items are not plain strings.
_LIST_ITEM_TYPES: dict[str, Any] = {
    "name_template": NamedTemplateConfig,
    "route": RuleNotifyRoute,
    "success_status": int,
}

# Types of fields that default to None (optional values).
_OPTIONAL_TYPES: dict[str, Any] = {
    "value": RuleValuePredicate,
    "repeat": bool,
    "on_pending": bool,
    "n": float,
    "s": str,
    "b": bool,
}

_field_types_cache: dict[type, dict[str, Any]] = {}


def _q(value: Any) -> str:
    """Render a value double-quoted, as error messages show it."""
    return json.dumps(str(value), ensure_ascii=False)


@dataclass
class MergeHints:
    """Explicit boolean keys seen in one fragment's notify section.

    ``None`` means the key was absent, so a decoded ``False`` must not
    override a value set by an earlier fragment.
    """

    repeat: bool | None = None
    repeat_per_channel: bool | None = None
    on_pending: bool | None = None
    queue_enabled: bool | None = None
    queue_dlq_enabled: bool | None = None
    telegram_enabled: bool | None = None
    http_enabled: bool | None = None
    mattermost_enabled: bool | None = None
    jira_enabled: bool | None = None
    youtrack_enabled: bool | None = None

    def has_explicit_bool(self) -> bool:
        """True when at least one bool key was set explicitly."""
        return any(getattr(self, f.name) is not None for f in dataclasses.fields(self))


# ---------------------------------------------------------------------------
# decoding


def _field_type(fld: dataclasses.Field) -> Any:
    if fld.default_factory is not dataclasses.MISSING:  # type: ignore[misc]
        sample = fld.default_factory()  # type: ignore[misc]
        if dataclasses.is_dataclass(sample):
            return type(sample)
        if isinstance(sample, list):
            return list[_LIST_ITEM_TYPES.get(fld.name, str)]
        if isinstance(sample, dict):
            return dict[str, str]
        return type(sample)
    if fld.default is not dataclasses.MISSING and fld.default is not None:
        return type(fld.default)
    if fld.name in _OPTIONAL_TYPES:
        return _OPTIONAL_TYPES[fld.name]
    raise ConfigError(f"{fld.name}: unsupported field")


def _field_types(cls: type) -> dict[str, Any]:
    known = _field_types_cache.get(cls)
    if known is None:
        known = {
            fld.name: _field_type(fld)
            for fld in dataclasses.fields(cls)
            if not fld.name.startswith("compiled_")
            and not (cls is RuleMatch and fld.name == "tags")
            and not (cls is Config and fld.name == "rule")
        }
        _field_types_cache[cls] = known
    return known


def _toml_key(cls: type, name: str) -> str:
    if cls is RuleValuePredicate and name == "type":
        return "t"
    if name == "name_template":
        return "name-template"
    return name.rstrip("_")


def _mismatch(path: str, expected: str, value: Any) -> ConfigError:
    return ConfigError(f"{path}: expected {expected}, got {type(value).__name__}")


def _decode(value: Any, tp: Any, path: str) -> Any:
    origin = typing.get_origin(tp)
    if origin in (types.UnionType, typing.Union):
        inner = [arg for arg in typing.get_args(tp) if arg is not type(None)]
        return _decode(value, inner[0], path)
    if isinstance(tp, type) and dataclasses.is_dataclass(tp):
        if not isinstance(value, dict):
            raise _mismatch(path, "table", value)
        return _decode_dataclass(tp, value, path)
    if origin is list:
        if not isinstance(value, list):
            raise _mismatch(path, "array", value)
        (item_type,) = typing.get_args(tp)
        return [_decode(item, item_type, f"{path}[{i}]") for i, item in enumerate(value)]
    if origin is dict:
        if not isinstance(value, dict):
            raise _mismatch(path, "table", value)
        _, value_type = typing.get_args(tp)
        return {str(k): _decode(v, value_type, f"{path}.{k}") for k, v in value.items()}
    if tp is bool:
        if not isinstance(value, bool):
            raise _mismatch(path, "bool", value)
        return value
    if tp is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise _mismatch(path, "integer", value)
        return value
    if tp is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise _mismatch(path, "float", value)
        return float(value)
    if tp is str:
        if not isinstance(value, str):
            raise _mismatch(path, "string", value)
        return value
    raise ConfigError(f"{path}: unsupported value")


def _decode_tags(value: Any, path: str) -> dict[str, list[str]]:
    if not isinstance(value, dict):
        raise _mismatch(path, "table", value)
    tags: dict[str, list[str]] = {}
    for key, raw in value.items():
        try:
            tags[str(key)] = string_list(raw)
        except ConfigError as exc:
            raise ConfigError(f"{path}.{key}: {exc}") from exc
    return tags


def _decode_dataclass(cls: type, table: Mapping[str, Any], path: str) -> Any:
    kwargs: dict[str, Any] = {}
    for fld in dataclasses.fields(cls):
        if fld.name.startswith("compiled_"):
            continue
        key = _toml_key(cls, fld.name)
        if key not in table:
            continue
        sub_path = f"{path}.{key}" if path else key
        if cls is RuleMatch and fld.name == "tags":
            kwargs[fld.name] = _decode_tags(table[key], sub_path)
        else:
            kwargs[fld.name] = _decode(table[key], _field_types(cls)[fld.name], sub_path)
    return cls(**kwargs)


def config_from_mapping(data: Mapping[str, Any]) -> Config:
    """Build a config from parsed TOML, taking rule names from ``[rule.<name>]`` keys."""
    top = {key: value for key, value in data.items() if key != "rule"}
    cfg: Config = _decode_dataclass(Config, top, "")
    rules = data.get("rule")
    if rules is None:
        return cfg
    if not isinstance(rules, dict):
        raise ConfigError("rule: expected [rule.<rule_name>] tables")
    for name in sorted(rules):
        body = rules[name]
        path = f"rule.{name}"
        if not isinstance(body, dict):
            raise _mismatch(path, "table", body)
        raw_name = body.get("name", "")
        if not isinstance(raw_name, str):
            raise _mismatch(path + ".name", "string", raw_name)
        if raw_name.strip():
            raise ConfigError(
                f"rule.{name}.name is not supported; use [rule.{name}] key as rule name"
            )
        rule_body = {key: value for key, value in body.items() if key != "name"}
        rule: RuleConfig = _decode_dataclass(RuleConfig, rule_body, path)
        rule.name = name
        cfg.rule.append(rule)
    return cfg


def _table(data: Any, key: str) -> Mapping[str, Any]:
    if isinstance(data, Mapping):
        value = data.get(key)
        if isinstance(value, Mapping):
            return value
    return {}


def _explicit_bool(table: Mapping[str, Any], key: str) -> bool | None:
    value = table.get(key)
    return value if isinstance(value, bool) else None


def merge_hints_from_mapping(data: Mapping[str, Any]) -> MergeHints:
    """Collect explicitly set notify bools from parsed TOML."""
    notify = _table(data, "notify")
    queue = _table(notify, "queue")
    return MergeHints(
        repeat=_explicit_bool(notify, "repeat"),
        repeat_per_channel=_explicit_bool(notify, "repeat_per_channel"),
        on_pending=_explicit_bool(notify, "on_pending"),
        queue_enabled=_explicit_bool(queue, "enabled"),
        queue_dlq_enabled=_explicit_bool(_table(queue, "dlq"), "enabled"),
        telegram_enabled=_explicit_bool(_table(notify, "telegram"), "enabled"),
        http_enabled=_explicit_bool(_table(notify, "http"), "enabled"),
        mattermost_enabled=_explicit_bool(_table(notify, "mattermost"), "enabled"),
        jira_enabled=_explicit_bool(_table(notify, "jira"), "enabled"),
        youtrack_enabled=_explicit_bool(_table(notify, "youtrack"), "enabled"),
    )


# ---------------------------------------------------------------------------
# sources


def from_cli(file_path: str | None, dir_path: str | None) -> ConfigSource:
    """Build a config source from the command-line file and directory options."""
    file_path = (file_path or "").strip()
    dir_path = (dir_path or "").strip()
    if not file_path and not dir_path:
        raise ConfigError("either --config-file or --config-dir must be provided")
    if file_path and dir_path:
        raise ConfigError("config source must be either file or dir")
    if file_path:
        return ConfigSource(file=file_path)
    return ConfigSource(dir=dir_path)


def reject_unsupported_syntax(body: str | bytes) -> None:
    """Raise for the legacy ``[[rule]]`` form or any ``[state]`` section."""
    text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
    if _LEGACY_RULE_ARRAY.search(text):
        raise ConfigError(
            "legacy [[rule]] format is not supported; use [rule.<rule_name>] tables"
        )
    if _UNSUPPORTED_STATE.search(text):
        raise ConfigError(
            "state configuration is not supported; state backend settings are fixed "
            "and derived from ingest.nats.url"
        )


def _read_toml(path: str) -> dict[str, Any]:
    try:
        with open(path, "rb") as handle:
            body = handle.read()
    except OSError as exc:
        raise ConfigError(f"read config file {_q(path)}: {exc}") from exc
    try:
        reject_unsupported_syntax(body)
        return tomllib.loads(body.decode("utf-8"))
    except (ConfigError, tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        raise ConfigError(f"decode config file {_q(path)}: {exc}") from exc


def _load_fragment(path: str) -> tuple[Config, MergeHints]:
    data = _read_toml(path)
    try:
        cfg = config_from_mapping(data)
    except ConfigError as exc:
        raise ConfigError(f"decode config file {_q(path)}: {exc}") from exc
    return cfg, merge_hints_from_mapping(data)


def load_file(path: str | os.PathLike[str]) -> Config:
    """Read one TOML configuration file without defaults or validation."""
    cfg, _ = _load_fragment(os.fspath(path))
    return cfg


def load_dir(path: str | os.PathLike[str]) -> Config:
    """Read and merge every ``.toml`` file of a directory in name order."""
    directory = os.fspath(path)
    try:
        with os.scandir(directory) as entries:
            files = sorted(
                os.path.join(directory, entry.name)
                for entry in entries
                if not entry.is_dir(follow_symlinks=False)
                and os.path.splitext(entry.name)[1].lower() == ".toml"
            )
    except OSError as exc:
        raise ConfigError(f"read config dir {_q(directory)}: {exc}") from exc
    if not files:
        raise ConfigError(f"no .toml files found in {_q(directory)}")

    merged = Config()
    for file in files:
        fragment, hints = _load_fragment(file)
        merge_config(merged, fragment, hints)
    return merged


def load_snapshot(src: ConfigSource) -> Config:
    """Load, default and validate a configuration from a file or directory source."""
    cfg = load_file(src.file) if src.file else load_dir(src.dir)
    apply_defaults(cfg)
    validate_config(cfg)
    return cfg


# ---------------------------------------------------------------------------
# merging


def _merge_bool(current: bool, value: bool, explicit: bool | None) -> bool:
    if explicit is not None:
        return explicit
    return True if value else current


def _has_text(value: str) -> bool:
    return bool(value.strip())


def _has_http_ingest(cfg: HTTPIngestConfig) -> bool:
    return (
        cfg.enabled
        or _has_text(cfg.listen)
        or _has_text(cfg.health_path)
        or _has_text(cfg.ready_path)
        or _has_text(cfg.ingest_path)
        or cfg.max_body_bytes != 0
    )


def _has_nats_ingest(cfg: NATSIngestConfig) -> bool:
    return (
        cfg.enabled
        or bool(cfg.url)
        or _has_text(cfg.subject)
        or _has_text(cfg.stream)
        or _has_text(cfg.consumer_name)
        or _has_text(cfg.deliver_group)
        or cfg.ack_wait_sec != 0
        or cfg.nack_delay_ms != 0
        or cfg.max_deliver != 0
        or cfg.max_ack_pending != 0
    )


def _has_ingest(cfg: IngestConfig) -> bool:
    return _has_http_ingest(cfg.http) or _has_nats_ingest(cfg.nats)


def _has_tracker_action(cfg: TrackerActionConfig) -> bool:
    return (
        _has_text(cfg.method)
        or _has_text(cfg.path)
        or bool(cfg.headers)
        or _has_text(cfg.body_template)
        or bool(cfg.success_status)
        or _has_text(cfg.ref_json_path)
    )


def _has_tracker(cfg: TrackerNotifier) -> bool:
    if (
        cfg.enabled
        or _has_text(cfg.base_url)
        or cfg.timeout_sec != 0
        or cfg.auth != TrackerAuthConfig()
        or cfg.retry != NotifyRetry()
        or cfg.name_template
    ):
        return True
    return _has_tracker_action(cfg.create) or _has_tracker_action(cfg.resolve)


def _has_queue(cfg: NotifyQueue) -> bool:
    return (
        cfg.enabled
        or _has_text(cfg.url)
        or _has_text(cfg.subject)
        or _has_text(cfg.stream)
        or _has_text(cfg.consumer_name)
        or _has_text(cfg.deliver_group)
        or cfg.ack_wait_sec != 0
        or cfg.nack_delay_ms != 0
        or cfg.max_deliver != 0
        or cfg.max_ack_pending != 0
        or cfg.dlq.enabled
        or _has_text(cfg.dlq.subject)
        or _has_text(cfg.dlq.stream)
    )


def _has_notify(cfg: NotifyConfig) -> bool:
    if (
        cfg.repeat
        or cfg.repeat_every_sec != 0
        or cfg.repeat_on
        or cfg.repeat_per_channel
        or cfg.on_pending
    ):
        return True
    if _has_queue(cfg.queue):
        return True
    tg = cfg.telegram
    if (
        tg.enabled
        or _has_text(tg.bot_token)
        or _has_text(tg.chat_id)
        or _has_text(tg.active_chat_id)
        or _has_text(tg.api_base)
        or tg.retry != NotifyRetry()
        or tg.name_template
    ):
        return True
    http = cfg.http
    if (
        http.enabled
        or _has_text(http.url)
        or _has_text(http.method)
        or http.timeout_sec != 0
        or http.headers
        or http.retry != NotifyRetry()
        or http.name_template
    ):
        return True
    mm = cfg.mattermost
    if (
        mm.enabled
        or _has_text(mm.base_url)
        or _has_text(mm.bot_token)
        or _has_text(mm.channel_id)
        or _has_text(mm.active_channel_id)
        or mm.timeout_sec != 0
        or mm.retry != NotifyRetry()
        or mm.name_template
    ):
        return True
    return _has_tracker(cfg.jira) or _has_tracker(cfg.youtrack)


def _merge_queue(dst: NotifyQueue, src: NotifyQueue, hints: MergeHints) -> None:
    dst.enabled = _merge_bool(dst.enabled, src.enabled, hints.queue_enabled)
    for name in ("url", "subject", "stream", "consumer_name", "deliver_group"):
        if _has_text(getattr(src, name)):
            setattr(dst, name, getattr(src, name))
    for name in ("ack_wait_sec", "nack_delay_ms", "max_deliver", "max_ack_pending"):
        if getattr(src, name) != 0:
            setattr(dst, name, getattr(src, name))
    dst.dlq.enabled = _merge_bool(dst.dlq.enabled, src.dlq.enabled, hints.queue_dlq_enabled)
    if _has_text(src.dlq.subject):
        dst.dlq.subject = src.dlq.subject
    if _has_text(src.dlq.stream):
        dst.dlq.stream = src.dlq.stream


def _merge_telegram(dst: TelegramNotifier, src: TelegramNotifier, explicit: bool | None) -> None:
    dst.enabled = _merge_bool(dst.enabled, src.enabled, explicit)
    for name in ("bot_token", "chat_id", "active_chat_id", "api_base"):
        if _has_text(getattr(src, name)):
            setattr(dst, name, getattr(src, name))
    if src.retry != NotifyRetry():
        dst.retry = src.retry
    dst.name_template.extend(src.name_template)


def _merge_http(dst: HTTPNotifier, src: HTTPNotifier, explicit: bool | None) -> None:
    dst.enabled = _merge_bool(dst.enabled, src.enabled, explicit)
    if _has_text(src.url):
        dst.url = src.url
    if _has_text(src.method):
        dst.method = src.method
    if src.timeout_sec != 0:
        dst.timeout_sec = src.timeout_sec
    dst.headers.update(src.headers)
    if src.retry != NotifyRetry():
        dst.retry = src.retry
    dst.name_template.extend(src.name_template)


def _merge_mattermost(dst: MattermostConfig, src: MattermostConfig, explicit: bool | None) -> None:
    dst.enabled = _merge_bool(dst.enabled, src.enabled, explicit)
    for name in ("base_url", "bot_token", "channel_id", "active_channel_id"):
        if _has_text(getattr(src, name)):
            setattr(dst, name, getattr(src, name))
    if src.timeout_sec != 0:
        dst.timeout_sec = src.timeout_sec
    if src.retry != NotifyRetry():
        dst.retry = src.retry
    dst.name_template.extend(src.name_template)


def _merge_tracker_action(dst: TrackerActionConfig, src: TrackerActionConfig) -> None:
    for name in ("method", "path", "body_template", "ref_json_path"):
        if _has_text(getattr(src, name)):
            setattr(dst, name, getattr(src, name))
    dst.headers.update(src.headers)
    if src.success_status:
        dst.success_status = list(src.success_status)


def _merge_tracker(dst: TrackerNotifier, src: TrackerNotifier, explicit: bool | None) -> None:
    dst.enabled = _merge_bool(dst.enabled, src.enabled, explicit)
    if _has_text(src.base_url):
        dst.base_url = src.base_url
    if src.timeout_sec != 0:
        dst.timeout_sec = src.timeout_sec
    if src.auth != TrackerAuthConfig():
        dst.auth = src.auth
    _merge_tracker_action(dst.create, src.create)
    _merge_tracker_action(dst.resolve, src.resolve)
    if src.retry != NotifyRetry():
        dst.retry = src.retry
    dst.name_template.extend(src.name_template)


def _merge_notify(dst: NotifyConfig, src: NotifyConfig, hints: MergeHints) -> None:
    dst.repeat = _merge_bool(dst.repeat, src.repeat, hints.repeat)
    if src.repeat_every_sec != 0:
        dst.repeat_every_sec = src.repeat_every_sec
    if src.repeat_on:
        dst.repeat_on = list(src.repeat_on)
    dst.repeat_per_channel = _merge_bool(
        dst.repeat_per_channel, src.repeat_per_channel, hints.repeat_per_channel
    )
    dst.on_pending = _merge_bool(dst.on_pending, src.on_pending, hints.on_pending)
    _merge_queue(dst.queue, src.queue, hints)
    _merge_telegram(dst.telegram, src.telegram, hints.telegram_enabled)
    _merge_http(dst.http, src.http, hints.http_enabled)
    _merge_mattermost(dst.mattermost, src.mattermost, hints.mattermost_enabled)
    _merge_tracker(dst.jira, src.jira, hints.jira_enabled)
    _merge_tracker(dst.youtrack, src.youtrack, hints.youtrack_enabled)


def merge_config(dst: Config, src: Config, hints: MergeHints | None = None) -> Config:
    """Overlay fragment ``src`` onto ``dst`` in place and return ``dst``."""
    hints = hints or MergeHints()
    if src.service != ServiceConfig():
        dst.service = src.service
    if src.log != LogConfig():
        dst.log = src.log
    if _has_ingest(src.ingest):
        dst.ingest = src.ingest
    if _has_notify(src.notify) or hints.has_explicit_bool():
        _merge_notify(dst.notify, src.notify, hints)
    dst.rule.extend(src.rule)
    return dst