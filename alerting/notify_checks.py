"""Validation of notification templates, tracker transports and rule routes."""

from __future__ import annotations

import dataclasses
import json

from .model import (
    NOTIFY_CHANNEL_MATTERMOST,
    NOTIFY_CHANNEL_TELEGRAM,
    NOTIFY_ROUTE_MODE_ACTIVE_ONLY,
    ConfigError,
    NamedTemplateConfig,
    NotifyConfig,
    RuleConfig,
    TrackerActionConfig,
    TrackerAuthConfig,
    TrackerNotifier,
    is_supported_notify_channel,
    is_supported_notify_route_mode,
    normalize_notify_channel,
    normalize_notify_route_mode,
    notify_channel_enabled,
    notify_channel_names,
    notify_channel_templates,
)

TemplateIndex = dict[str, dict[str, NamedTemplateConfig]]

_BLOCK_KEYWORDS = frozenset({"if", "range", "with", "define", "block"})
_ELSE_PARENTS = frozenset({"if", "range", "with"})


def _q(value: str) -> str:
    """Render a value double-quoted, as error messages show it."""
    return json.dumps(value, ensure_ascii=False)


def _find_action_end(body: str, start: int) -> int:
    """Index of the closing delimiter of an action, skipping quoted text; -1 if none."""
    quote = ""
    pos = start
    while pos < len(body):
        char = body[pos]
        if quote:
            if char == "\\" and quote != "`":
                pos += 2
                continue
            if char == quote:
                quote = ""
        elif char in "\"'`":
            quote = char
        elif body.startswith("}}", pos):
            return pos
        pos += 1
    return -1


def _strip_trim_markers(inner: str) -> str:
    if inner.startswith("-") and (len(inner) == 1 or inner[1].isspace()):
        inner = inner[1:]
    if inner.endswith("-") and (len(inner) == 1 or inner[-2].isspace()):
        inner = inner[:-1]
    return inner.strip()


def _check_template_syntax(name: str, body: str) -> None:
    """Check action delimiters and block structure of a text template."""
    blocks: list[str] = []
    pos = 0
    while True:
        start = body.find("{{", pos)
        if start < 0:
            break
        end = _find_action_end(body, start + 2)
        if end < 0:
            raise ConfigError(f"template: {name}: unclosed action")
        inner = _strip_trim_markers(body[start + 2 : end])
        pos = end + 2
        if inner.startswith("/*"):
            if not inner.endswith("*/"):
                raise ConfigError(f"template: {name}: unclosed comment")
            continue
        if not inner:
            raise ConfigError(f"template: {name}: missing value for command")
        keyword = inner.split(None, 1)[0]
        if keyword in _BLOCK_KEYWORDS:
            blocks.append(keyword)
        elif keyword == "else":
            if not blocks or blocks[-1] not in _ELSE_PARENTS:
                raise ConfigError(f"template: {name}: unexpected {{{{else}}}}")
        elif keyword == "end":
            if not blocks:
                raise ConfigError(f"template: {name}: unexpected {{{{end}}}}")
            blocks.pop()
    if blocks:
        raise ConfigError(f"template: {name}: unexpected EOF")


def validate_message_template(path: str, body: str) -> str:
    """Check that a message template is non-empty and parses; return the trimmed body."""
    trimmed = body.strip()
    if not trimmed:
        raise ConfigError(f"{path} is required")
    try:
        _check_template_syntax(path, trimmed)
    except ConfigError as exc:
        raise ConfigError(f"{path} is invalid: {exc}") from exc
    return trimmed


def validate_tracker_notifier(channel: str, cfg: TrackerNotifier) -> None:
    """Validate one tracker transport section; disabled sections always pass."""
    prefix = "notify." + channel
    if not cfg.enabled:
        return
    if not cfg.base_url.strip():
        raise ConfigError(f"{prefix}.base_url is required when {prefix}.enabled=true")
    if cfg.timeout_sec <= 0:
        raise ConfigError(f"{prefix}.timeout_sec must be >0 when {prefix}.enabled=true")
    validate_tracker_action(prefix + ".create", cfg.create, True)
    validate_tracker_action(prefix + ".resolve", cfg.resolve, False)
    validate_tracker_auth(prefix + ".auth", cfg.auth)


def validate_tracker_action(path_prefix: str, cfg: TrackerActionConfig, is_create: bool) -> None:
    """Validate one tracker create/resolve action definition."""
    if not cfg.path.strip():
        raise ConfigError(f"{path_prefix}.path is required")
    if not cfg.method.strip():
        raise ConfigError(f"{path_prefix}.method is required")
    if not cfg.success_status:
        raise ConfigError(f"{path_prefix}.success_status is required")
    for index, status_code in enumerate(cfg.success_status):
        if not 100 <= status_code <= 599:
            raise ConfigError(
                f"{path_prefix}.success_status[{index}] must be valid HTTP status code"
            )
    if is_create and not cfg.ref_json_path.strip():
        raise ConfigError(f"{path_prefix}.ref_json_path is required for create action")
    validate_message_template(path_prefix + ".path", cfg.path)
    if cfg.body_template.strip():
        validate_message_template(path_prefix + ".body_template", cfg.body_template)
    for header, value in cfg.headers.items():
        if not header.strip():
            raise ConfigError(f"{path_prefix}.headers contains empty key")
        if not value.strip():
            raise ConfigError(f"{path_prefix}.headers[{_q(header)}] is empty")
        validate_message_template(f"{path_prefix}.headers.{header}", value)


def validate_tracker_auth(path_prefix: str, cfg: TrackerAuthConfig) -> None:
    """Validate tracker auth settings for the selected auth type."""
    auth_type = cfg.type.strip().lower()
    if auth_type in ("", "none"):
        return
    if auth_type == "bearer":
        if not cfg.token.strip():
            raise ConfigError(f"{path_prefix}.token is required when {path_prefix}.type=bearer")
        return
    if auth_type == "basic":
        if not cfg.username.strip():
            raise ConfigError(f"{path_prefix}.username is required when {path_prefix}.type=basic")
        if not cfg.password.strip():
            raise ConfigError(f"{path_prefix}.password is required when {path_prefix}.type=basic")
        return
    if auth_type == "header":
        if not cfg.header.strip():
            raise ConfigError(f"{path_prefix}.header is required when {path_prefix}.type=header")
        if not cfg.token.strip():
            raise ConfigError(f"{path_prefix}.token is required when {path_prefix}.type=header")
        return
    raise ConfigError(f"{path_prefix}.type has unsupported value {_q(cfg.type)}")


def _collect_channel_templates(
    path_prefix: str, templates: list[NamedTemplateConfig]
) -> dict[str, NamedTemplateConfig]:
    by_name: dict[str, NamedTemplateConfig] = {}
    for index, template in enumerate(templates):
        name = template.name.strip()
        if not name:
            raise ConfigError(f"{path_prefix}[{index}].name is required")
        name_key = name.lower()
        if name_key in by_name:
            raise ConfigError(f"duplicate {path_prefix} name {_q(name)}")
        validate_message_template(f"{path_prefix}[{index}].message", template.message)
        by_name[name_key] = dataclasses.replace(template, name=name)
    return by_name


def validate_notify_templates(notify_cfg: NotifyConfig) -> TemplateIndex:
    """Validate every channel's templates; return them by channel and lowercased name."""
    index: TemplateIndex = {}
    for channel in notify_channel_names():
        templates = notify_channel_templates(notify_cfg, channel)
        if not templates:
            continue
        path_prefix = "notify." + channel + ".name-template"
        index[channel] = _collect_channel_templates(path_prefix, templates)
    return index


def validate_rule_notify_routes(
    notify_cfg: NotifyConfig, rule: RuleConfig, templates: TemplateIndex
) -> None:
    """Validate a rule's channel/template bindings against the notify section."""
    used_route_keys: set[str] = set()
    for index, route in enumerate(rule.notify.route):
        channel = normalize_notify_channel(route.channel)
        if not is_supported_notify_channel(channel):
            raise ConfigError(
                f"notify.route[{index}].channel has unsupported value {_q(route.channel)}"
            )
        if not notify_channel_enabled(notify_cfg, channel):
            raise ConfigError(
                f"notify.route[{index}].channel {_q(route.channel)} is disabled in [notify.{channel}]"
            )
        route_key = route.name.strip().lower() or channel
        if route_key in used_route_keys:
            raise ConfigError(f"notify.route has duplicate key {_q(route_key)}")
        used_route_keys.add(route_key)

        template_name = route.template.strip()
        if not template_name:
            raise ConfigError(f"notify.route[{index}].template is required")
        by_name = templates.get(channel)
        if by_name is None or template_name.lower() not in by_name:
            raise ConfigError(
                f"notify.route[{index}].template {_q(route.template)} is not defined "
                f"in [[notify.{channel}.name-template]]"
            )

        mode = normalize_notify_route_mode(route.mode)
        if not is_supported_notify_route_mode(mode):
            raise ConfigError(f"notify.route[{index}].mode has unsupported value {_q(route.mode)}")
        if mode != NOTIFY_ROUTE_MODE_ACTIVE_ONLY:
            continue
        if channel == NOTIFY_CHANNEL_TELEGRAM:
            if not notify_cfg.telegram.active_chat_id.strip():
                raise ConfigError(
                    f"notify.route[{index}] active_only requires notify.telegram.active_chat_id"
                )
        elif channel == NOTIFY_CHANNEL_MATTERMOST:
            if not notify_cfg.mattermost.active_channel_id.strip():
                raise ConfigError(
                    f"notify.route[{index}] active_only requires notify.mattermost.active_channel_id"
                )
        else:
            raise ConfigError(
                f"notify.route[{index}] active_only is supported only for telegram and mattermost"
            )