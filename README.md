# alerting

Configuration layer for a rule-based alerting service: dataclass models for
service, logging, ingest, notification and rule settings; TOML loading from a
single file or a directory of fragments; defaults; and strict validation.

There are no runtime dependencies. TOML is read with the standard library's
`tomllib`, so Python 3.11 or later is required.

## Modules

| module                   | contents                                                                 |
|--------------------------|--------------------------------------------------------------------------|
| `alerting.model`         | `Config` and its section dataclasses, `ConfigSource`, `ConfigError`, channel registry and helpers |
| `alerting.loader`        | `from_cli`, `load_file`, `load_dir`, `load_snapshot`, `merge_config`, `MergeHints` |
| `alerting.defaults`      | `apply_defaults` and the per-section fill helpers                        |
| `alerting.validation`    | `validate_config`, `validate_rule`, `validate_value_predicate`, `validate_log_sink` |
| `alerting.notify_checks` | template, tracker transport and rule route validation                    |
| `alerting.clock`         | `Clock`, `RealClock`, `FixedClock`                                       |

Every error is raised as `alerting.model.ConfigError`, a subclass of
`ValueError`, with a message naming the offending field, for example
`notify.http.url is required when notify.http.enabled=true`.

## Loading a configuration

A configuration comes from exactly one of a TOML file or a directory of
`*.toml` fragments.

```python
from alerting.loader import from_cli, load_snapshot

source = from_cli("/etc/alerting/config.toml", "")
config = load_snapshot(source)
```

`from_cli` strips both paths and raises `ConfigError` when neither or both are
given. `load_snapshot` reads the source, fills in defaults and validates the
result.

## A minimal file

```toml
[notify.http]
enabled = true
url = "https://alerts.example.com/hook"

[[notify.http.name-template]]
name = "default"
message = "{{ .RuleName }} is {{ .State }}"

[rule.api_errors]
alert_type = "count_window"
match.type = ["event"]
match.var = ["errors"]
match.tags = { service = "api" }
key.from_tags = ["dc", "service", "host"]
raise.n = 3
raise.tagg_sec = 10
resolve.silence_sec = 30

[[rule.api_errors.notify.route]]
channel = "http"
template = "default"
```

Rules are declared as `[rule.<name>]` tables and the table key is the rule
name; a `name` key inside the table is rejected. The legacy `[[rule]]` array
form and any `[state]` section are rejected as well. Rules are loaded in
name order.

Tag values under `match.tags` may be a single string or a list of strings.

Supported alert types:

| `alert_type`        | required                               | forbidden                                          |
|---------------------|----------------------------------------|----------------------------------------------------|
| `count_total`       | `raise.n >= 1`                         | `raise.tagg_sec`, `raise.missing_sec`              |
| `count_window`      | `raise.n >= 1`, `raise.tagg_sec > 0`   | `raise.missing_sec`                                |
| `missing_heartbeat` | `raise.missing_sec > 0`                | `raise.n`, `raise.tagg_sec`, `resolve.silence_sec` |

`match.type` values must be `event` or `agg`. An optional `match.value`
predicate has a type `t` of `n`, `s` or `b` and an `op`; string predicates
with `op = "match"` compile a regular expression and with `op = "*"` a
wildcard pattern.

Notification channels are `telegram`, `http`, `mattermost`, `jira` and
`youtrack`. Each rule route names an enabled channel and a template defined
in that channel's `name-template` list (names compare case-insensitively).
Route keys (the route `name`, or the channel when it is empty) must be unique
within a rule. Route mode is `history` (the default) or `active_only`; the
latter is accepted only for Telegram with `notify.telegram.active_chat_id`
set and for Mattermost with `notify.mattermost.active_channel_id` set.

Message templates are checked for balanced `{{ ... }}` actions and matching
`if`/`range`/`with`/`define`/`block` ... `end` blocks; they are not rendered.

## Directory mode

In directory mode every `.toml` file of the directory is loaded in file-name
order and overlaid onto the previous ones: non-empty `service`, `log` and
`ingest` sections replace earlier ones, `notify` merges field by field,
templates and rules accumulate. Boolean flags written explicitly, such as
`enabled = false`, override earlier values even though they equal the default.

```python
from alerting.loader import load_dir
from alerting.defaults import apply_defaults
from alerting.validation import validate_config

config = load_dir("/etc/alerting/conf.d")
apply_defaults(config)
validate_config(config)
```

`load_file` and `load_dir` return the raw configuration without defaults or
validation. `config_from_mapping` and `merge_hints_from_mapping` build the
same objects from an already parsed mapping, and `merge_config(dst, src,
hints)` overlays one fragment onto another in place.

## Helpers

```python
from alerting.model import resolve_timeout, compile_wildcard_pattern, derive_state_nats_config

rule = config.rule[0]
resolve_timeout(rule)                              # timedelta used for tick refresh
compile_wildcard_pattern("API-*").match("api-7")   # pattern is lowercased; * and ? are wildcards
derive_state_nats_config(config).tick_bucket       # "tick"
```

`alerting.clock` offers `RealClock` (current UTC time) and `FixedClock`
(a settable clock with `advance`) for deterministic code and tests.

## What this package does not do

It covers configuration only. It does not evaluate rules against events,
keep alert state, send notifications, accept events over HTTP or NATS, or run
as a service; there is no command-line program.