"""Fill omitted configuration fields with safe defaults."""

from __future__ import annotations

from .model import (
    DEFAULT_HEALTH_PATH,
    DEFAULT_HTTP_LISTEN,
    DEFAULT_INGEST_PATH,
    DEFAULT_NATS_ACK_WAIT_SEC,
    DEFAULT_NATS_INGEST_CONSUMER,
    DEFAULT_NATS_INGEST_GROUP,
    DEFAULT_NATS_INGEST_STREAM,
    DEFAULT_NATS_MAX_ACK_PENDING,
    DEFAULT_NATS_MAX_DELIVER,
    DEFAULT_NATS_NACK_DELAY_MS,
    DEFAULT_NATS_SUBJECT,
    DEFAULT_NATS_URL,
    DEFAULT_NOTIFY_QUEUE_CONSUMER,
    DEFAULT_NOTIFY_QUEUE_DLQ_STREAM,
    DEFAULT_NOTIFY_QUEUE_DLQ_SUBJECT,
    DEFAULT_NOTIFY_QUEUE_GROUP,
    DEFAULT_NOTIFY_QUEUE_STREAM,
    DEFAULT_NOTIFY_QUEUE_SUBJECT,
    DEFAULT_NOTIFY_REPEAT_SECONDS,
    DEFAULT_PENDING_DELAY_SECONDS,
    DEFAULT_READY_PATH,
    DEFAULT_RELOAD_SECONDS,
    DEFAULT_RESOLVE_SCAN_SECONDS,
    Config,
    HTTPIngestConfig,
    LogConfig,
    NATSIngestConfig,
    NotifyConfig,
    NotifyQueue,
    NotifyRetry,
    ServiceConfig,
    TrackerActionConfig,
    TrackerNotifier,
    normalize_nats_urls,
)

DEFAULT_SERVICE_NAME = "alerting"
DEFAULT_LOG_LEVEL = "info"
DEFAULT_CONSOLE_FORMAT = "line"
DEFAULT_FILE_FORMAT = "json"
DEFAULT_MAX_BODY_BYTES = 2 << 20
DEFAULT_TELEGRAM_API_BASE = "https://api.telegram.org"
DEFAULT_HTTP_METHOD = "POST"
DEFAULT_TIMEOUT_SEC = 10
DEFAULT_RETRY_BACKOFF = "exponential"
DEFAULT_RETRY_INITIAL_MS = 500
DEFAULT_RETRY_MAX_MS = 60000
DEFAULT_CREATE_SUCCESS_STATUS = (200, 201)
DEFAULT_RESOLVE_SUCCESS_STATUS = (200, 204)


def _service_defaults(service: ServiceConfig) -> None:
    if not service.name.strip():
        service.name = DEFAULT_SERVICE_NAME
    if service.reload_interval_sec <= 0:
        service.reload_interval_sec = DEFAULT_RELOAD_SECONDS
    if service.resolve_scan_interval_sec <= 0:
        service.resolve_scan_interval_sec = DEFAULT_RESOLVE_SCAN_SECONDS


def _log_defaults(log: LogConfig) -> None:
    if not log.console.level:
        log.console.level = DEFAULT_LOG_LEVEL
    if not log.console.format:
        log.console.format = DEFAULT_CONSOLE_FORMAT
    if not log.file.level:
        log.file.level = DEFAULT_LOG_LEVEL
    if not log.file.format:
        log.file.format = DEFAULT_FILE_FORMAT
    if not log.console.enabled and not log.file.enabled:
        log.console.enabled = True


def _http_ingest_defaults(http: HTTPIngestConfig) -> None:
    if not http.listen.strip():
        http.listen = DEFAULT_HTTP_LISTEN
    if not http.health_path.strip():
        http.health_path = DEFAULT_HEALTH_PATH
    if not http.ready_path.strip():
        http.ready_path = DEFAULT_READY_PATH
    if not http.ingest_path.strip():
        http.ingest_path = DEFAULT_INGEST_PATH
    if http.max_body_bytes <= 0:
        http.max_body_bytes = DEFAULT_MAX_BODY_BYTES


def _nats_ingest_defaults(nats: NATSIngestConfig) -> None:
    nats.url = normalize_nats_urls(nats.url) or [DEFAULT_NATS_URL]
    if not nats.subject:
        nats.subject = DEFAULT_NATS_SUBJECT
    if not nats.stream:
        nats.stream = DEFAULT_NATS_INGEST_STREAM
    if not nats.consumer_name:
        nats.consumer_name = DEFAULT_NATS_INGEST_CONSUMER
    if not nats.deliver_group:
        nats.deliver_group = DEFAULT_NATS_INGEST_GROUP
    if nats.ack_wait_sec <= 0:
        nats.ack_wait_sec = DEFAULT_NATS_ACK_WAIT_SEC
    if nats.nack_delay_ms <= 0:
        nats.nack_delay_ms = DEFAULT_NATS_NACK_DELAY_MS
    if nats.max_deliver == 0:
        nats.max_deliver = DEFAULT_NATS_MAX_DELIVER
    if nats.max_ack_pending <= 0:
        nats.max_ack_pending = DEFAULT_NATS_MAX_ACK_PENDING


def _queue_defaults(queue: NotifyQueue) -> None:
    if not queue.url:
        queue.url = DEFAULT_NATS_URL
    if not queue.subject:
        queue.subject = DEFAULT_NOTIFY_QUEUE_SUBJECT
    if not queue.stream:
        queue.stream = DEFAULT_NOTIFY_QUEUE_STREAM
    if not queue.consumer_name:
        queue.consumer_name = DEFAULT_NOTIFY_QUEUE_CONSUMER
    if not queue.deliver_group:
        queue.deliver_group = DEFAULT_NOTIFY_QUEUE_GROUP
    if queue.ack_wait_sec <= 0:
        queue.ack_wait_sec = DEFAULT_NATS_ACK_WAIT_SEC
    if queue.nack_delay_ms <= 0:
        queue.nack_delay_ms = DEFAULT_NATS_NACK_DELAY_MS
    if queue.max_deliver == 0:
        queue.max_deliver = DEFAULT_NATS_MAX_DELIVER
    if queue.max_ack_pending <= 0:
        queue.max_ack_pending = DEFAULT_NATS_MAX_ACK_PENDING
    if not queue.dlq.subject:
        queue.dlq.subject = DEFAULT_NOTIFY_QUEUE_DLQ_SUBJECT
    if not queue.dlq.stream:
        queue.dlq.stream = DEFAULT_NOTIFY_QUEUE_DLQ_STREAM


def _notify_defaults(notify: NotifyConfig) -> None:
    if notify.repeat_every_sec <= 0:
        notify.repeat_every_sec = DEFAULT_NOTIFY_REPEAT_SECONDS
    if not notify.repeat_on:
        notify.repeat_on = ["firing"]
    _queue_defaults(notify.queue)

    if not notify.telegram.api_base:
        notify.telegram.api_base = DEFAULT_TELEGRAM_API_BASE
    fill_notify_retry_defaults(notify.telegram.retry)

    if not notify.http.method:
        notify.http.method = DEFAULT_HTTP_METHOD
    if notify.http.timeout_sec <= 0:
        notify.http.timeout_sec = DEFAULT_TIMEOUT_SEC
    fill_notify_retry_defaults(notify.http.retry)

    if notify.mattermost.timeout_sec <= 0:
        notify.mattermost.timeout_sec = DEFAULT_TIMEOUT_SEC
    fill_notify_retry_defaults(notify.mattermost.retry)

    fill_tracker_notifier_defaults(notify.jira)
    fill_tracker_notifier_defaults(notify.youtrack)


def apply_defaults(cfg: Config) -> None:
    """Fill omitted fields of ``cfg`` in place."""
    _service_defaults(cfg.service)
    _log_defaults(cfg.log)
    _http_ingest_defaults(cfg.ingest.http)
    _nats_ingest_defaults(cfg.ingest.nats)
    if not cfg.ingest.http.enabled and not cfg.ingest.nats.enabled:
        cfg.ingest.http.enabled = True
    _notify_defaults(cfg.notify)

    for rule in cfg.rule:
        if rule.pending.delay_sec <= 0:
            rule.pending.delay_sec = DEFAULT_PENDING_DELAY_SECONDS
        if rule.notify.repeat_every_sec <= 0:
            rule.notify.repeat_every_sec = cfg.notify.repeat_every_sec


def fill_tracker_notifier_defaults(cfg: TrackerNotifier | None) -> None:
    """Fill tracker transport defaults in place."""
    if cfg is None:
        return
    if cfg.timeout_sec <= 0:
        cfg.timeout_sec = DEFAULT_TIMEOUT_SEC
    fill_notify_retry_defaults(cfg.retry)
    fill_tracker_action_defaults(cfg.create, True)
    fill_tracker_action_defaults(cfg.resolve, False)


def fill_tracker_action_defaults(action: TrackerActionConfig | None, is_create: bool) -> None:
    """Fill one tracker action's method and success statuses in place."""
    if action is None:
        return
    if not action.method.strip():
        action.method = DEFAULT_HTTP_METHOD
    if not action.success_status:
        statuses = DEFAULT_CREATE_SUCCESS_STATUS if is_create else DEFAULT_RESOLVE_SUCCESS_STATUS
        action.success_status = list(statuses)


def fill_notify_retry_defaults(retry: NotifyRetry | None) -> None:
    """Fill retry policy defaults in place."""
    if retry is None:
        return
    if not retry.backoff:
        retry.backoff = DEFAULT_RETRY_BACKOFF
    if retry.initial_ms <= 0:
        retry.initial_ms = DEFAULT_RETRY_INITIAL_MS
    if retry.max_ms <= 0:
        retry.max_ms = DEFAULT_RETRY_MAX_MS