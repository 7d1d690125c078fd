from prometheus_client import Counter, Histogram

telemetry_ingested_total = Counter('telemetry_ingested_total', 'Total number of telemetry records ingested', ['device_id'])
telemetry_ingest_duration = Histogram('telemetry_ingest_duration_seconds', 'Time spent processing telemetry ingestion', ['mode'])
kafka_publish_errors = Counter('kafka_publish_errors_total', 'Total number of Kafka publish errors')
publish_fallbacks = Counter('telemetry_publish_fallbacks_total', 'Records acknowledged with a synthesized partition/offset')
validation_failures = Counter('telemetry_validation_failures_total', 'Requests rejected by validation', ['endpoint'])
