import pytest

from alerting.defaults import (
    apply_defaults,
    fill_notify_retry_defaults,
    fill_tracker_action_defaults,
    fill_tracker_notifier_defaults,
)
from alerting.model import (
    DEFAULT_HEALTH_PATH,
    DEFAULT_HTTP_LISTEN,
    DEFAULT_INGEST_PATH,
    DEFAULT_NATS_ACK_WAIT_SEC,
    DEFAULT_NATS_MAX_ACK_PENDING,
    DEFAULT_NATS_MAX_DELIVER,
    DEFAULT_NATS_NACK_DELAY_MS,
    DEFAULT_NATS_SUBJECT,
    DEFAULT_NATS_URL,
    DEFAULT_NOTIFY_QUEUE_DLQ_SUBJECT,
    DEFAULT_NOTIFY_QUEUE_SUBJECT,
    DEFAULT_NOTIFY_REPEAT_SECONDS,
    DEFAULT_PENDING_DELAY_SECONDS,
    DEFAULT_READY_PATH,
    DEFAULT_RELOAD_SECONDS,
    DEFAULT_RESOLVE_SCAN_SECONDS,
    Config,
    NotifyRetry,
    RuleConfig,
    TrackerActionConfig,
    TrackerNotifier,
)


def _defaulted(cfg=None):
    cfg = cfg or Config()
    apply_defaults(cfg)
    return cfg


def test_service_defaults():
    cfg = _defaulted()
    assert cfg.service.name == "alerting"
    assert cfg.service.reload_interval_sec == DEFAULT_RELOAD_SECONDS
    assert cfg.service.resolve_scan_interval_sec == DEFAULT_RESOLVE_SCAN_SECONDS


def test_service_blank_name_replaced_but_explicit_values_kept():
    cfg = Config()
    cfg.service.name = "   "
    cfg.service.reload_interval_sec = 42
    apply_defaults(cfg)
    assert cfg.service.name == "alerting"
    assert cfg.service.reload_interval_sec == 42


def test_log_defaults_enable_console_when_nothing_enabled():
    cfg = _defaulted()
    assert cfg.log.console.enabled is True
    assert cfg.log.file.enabled is False
    assert (cfg.log.console.level, cfg.log.console.format) == ("info", "line")
    assert (cfg.log.file.level, cfg.log.file.format) == ("info", "json")


def test_log_console_stays_disabled_when_file_enabled():
    cfg = Config()
    cfg.log.file.enabled = True
    apply_defaults(cfg)
    assert cfg.log.console.enabled is False
    assert cfg.log.file.enabled is True


def test_http_ingest_defaults():
    cfg = _defaulted()
    http = cfg.ingest.http
    assert http.listen == DEFAULT_HTTP_LISTEN
    assert http.health_path == DEFAULT_HEALTH_PATH
    assert http.ready_path == DEFAULT_READY_PATH
    assert http.ingest_path == DEFAULT_INGEST_PATH
    assert http.max_body_bytes == 2 << 20
    assert http.enabled is True


def test_http_ingest_not_forced_when_nats_enabled():
    cfg = Config()
    cfg.ingest.nats.enabled = True
    apply_defaults(cfg)
    assert cfg.ingest.http.enabled is False


def test_nats_ingest_defaults():
    cfg = _defaulted()
    nats = cfg.ingest.nats
    assert nats.url == [DEFAULT_NATS_URL]
    assert nats.subject == DEFAULT_NATS_SUBJECT
    assert nats.ack_wait_sec == DEFAULT_NATS_ACK_WAIT_SEC
    assert nats.nack_delay_ms == DEFAULT_NATS_NACK_DELAY_MS
    assert nats.max_deliver == DEFAULT_NATS_MAX_DELIVER
    assert nats.max_ack_pending == DEFAULT_NATS_MAX_ACK_PENDING


def test_nats_urls_are_stripped_and_count_preserved():
    cfg = Config()
    cfg.ingest.nats.url = [" nats://a:4222 ", "  "]
    apply_defaults(cfg)
    assert cfg.ingest.nats.url == ["nats://a:4222", ""]


@pytest.mark.parametrize("nack", [0, -5])
def test_nats_non_positive_nack_delay_gets_default(nack):
    cfg = Config()
    cfg.ingest.nats.nack_delay_ms = nack
    cfg.notify.queue.nack_delay_ms = nack
    apply_defaults(cfg)
    assert cfg.ingest.nats.nack_delay_ms == DEFAULT_NATS_NACK_DELAY_MS
    assert cfg.notify.queue.nack_delay_ms == DEFAULT_NATS_NACK_DELAY_MS


def test_nats_explicit_max_deliver_kept():
    cfg = Config()
    cfg.ingest.nats.max_deliver = 7
    apply_defaults(cfg)
    assert cfg.ingest.nats.max_deliver == 7


def test_notify_defaults():
    cfg = _defaulted()
    notify = cfg.notify
    assert notify.repeat_every_sec == DEFAULT_NOTIFY_REPEAT_SECONDS
    assert notify.repeat_on == ["firing"]
    assert notify.queue.url == DEFAULT_NATS_URL
    assert notify.queue.subject == DEFAULT_NOTIFY_QUEUE_SUBJECT
    assert notify.queue.dlq.subject == DEFAULT_NOTIFY_QUEUE_DLQ_SUBJECT
    assert notify.telegram.api_base == "https://api.telegram.org"
    assert notify.http.method == "POST"
    assert notify.http.timeout_sec == 10
    assert notify.mattermost.timeout_sec == 10


def test_notify_channel_retries_filled():
    cfg = _defaulted()
    for retry in (
        cfg.notify.telegram.retry,
        cfg.notify.http.retry,
        cfg.notify.mattermost.retry,
        cfg.notify.jira.retry,
        cfg.notify.youtrack.retry,
    ):
        assert (retry.backoff, retry.initial_ms, retry.max_ms) == ("exponential", 500, 60000)


def test_rule_defaults_inherit_global_repeat():
    cfg = Config(rule=[RuleConfig(name="a"), RuleConfig(name="b")])
    cfg.notify.repeat_every_sec = 60
    cfg.rule[1].notify.repeat_every_sec = 15
    cfg.rule[1].pending.delay_sec = 9
    apply_defaults(cfg)
    assert cfg.rule[0].pending.delay_sec == DEFAULT_PENDING_DELAY_SECONDS
    assert cfg.rule[0].notify.repeat_every_sec == 60
    assert cfg.rule[1].notify.repeat_every_sec == 15
    assert cfg.rule[1].pending.delay_sec == 9


def test_apply_defaults_is_idempotent():
    once = _defaulted(Config(rule=[RuleConfig(name="r")]))
    twice = _defaulted(_defaulted(Config(rule=[RuleConfig(name="r")])))
    assert once == twice


def test_fill_tracker_notifier_defaults():
    tracker = TrackerNotifier()
    fill_tracker_notifier_defaults(tracker)
    assert tracker.timeout_sec == 10
    assert tracker.create.method == "POST"
    assert tracker.create.success_status == [200, 201]
    assert tracker.resolve.method == "POST"
    assert tracker.resolve.success_status == [200, 204]
    assert tracker.retry.backoff == "exponential"


def test_fill_tracker_notifier_defaults_accepts_none():
    assert fill_tracker_notifier_defaults(None) is None


def test_fill_tracker_action_keeps_explicit_values():
    action = TrackerActionConfig(method="PUT", success_status=[202])
    fill_tracker_action_defaults(action, True)
    assert action.method == "PUT"
    assert action.success_status == [202]


def test_fill_tracker_action_blank_method_replaced():
    action = TrackerActionConfig(method="  ")
    fill_tracker_action_defaults(action, False)
    assert action.method == "POST"
    assert action.success_status == [200, 204]


def test_fill_notify_retry_keeps_explicit_values():
    retry = NotifyRetry(backoff="linear", initial_ms=100, max_ms=-1)
    fill_notify_retry_defaults(retry)
    assert retry.backoff == "linear"
    assert retry.initial_ms == 100
    assert retry.max_ms == 60000


def test_success_status_defaults_are_independent_lists():
    first = TrackerActionConfig()
    second = TrackerActionConfig()
    fill_tracker_action_defaults(first, True)
    fill_tracker_action_defaults(second, True)
    first.success_status.append(299)
    assert second.success_status == [200, 201]