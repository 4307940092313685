from prometheus_client import Counter, Gauge

# Operational metrics of the aggregator itself, served on /metrics.
# The aggregated event counters are served separately on /stats.
MESSAGES_PROCESSED = Counter('events_messages_processed_total', 'Bus messages handled by the ingestion loop', ['status'])
PARSE_ERRORS = Counter('events_parse_errors_total', 'Bus messages dropped because they could not be decoded')
BUS_RECONNECTS = Counter('events_bus_reconnects_total', 'Bus consumer reconnect attempts')
DLQ_PUBLISHED = Counter('events_dlq_published_total', 'Malformed messages sent to the dead-letter topic', ['topic'])
RECONCILE_TOTAL = Counter('events_reconcile_total', 'Event store reconcile attempts', ['result'])
LAST_RECONCILE = Gauge('events_last_reconcile_timestamp_seconds', 'Unix time of the last successful reconcile')
