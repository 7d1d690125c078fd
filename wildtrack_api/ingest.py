"""
Ingestion pipeline: sanitize, publish, and degrade to a placeholder result when
the broker is down.

A broker outage is logged and counted but never reported to the API client:
records acknowledged through the fallback path carry ``partition=0`` and an
offset derived from the wall clock, so client-visible success does not imply
durability.
"""
import logging
import time
from typing import Any, Dict, List, Union

from . import metrics
from .errors import PublishError, ValidationError
from .models import BatchTelemetry, PublishResult, TelemetryRecord
from .producer import Publisher
from .sanitize import sanitize_telemetry

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return time.time_ns() // 1_000_000


async def publish_with_fallback(publisher: Publisher, document: Dict[str, Any], index: int = 0) -> PublishResult:
    try:
        return await publisher.publish(document)
    except PublishError as e:
        metrics.kafka_publish_errors.inc()
        metrics.publish_fallbacks.inc()
        logger.warning(f"Kafka not available for item {index} of device {document.get('deviceId')}, using mock response: {e}")
        # index keeps offsets distinct within one batch
        return PublishResult(partition=0, offset=now_ms() + index, fallback=True)


async def ingest_one(record: TelemetryRecord, publisher: Publisher) -> Dict[str, Any]:
    with metrics.telemetry_ingest_duration.labels(mode="single").time():
        document = sanitize_telemetry(record).to_document()
        result = await publish_with_fallback(publisher, document)
        metrics.telemetry_ingested_total.labels(device_id=record.device_id).inc()

        if result.fallback:
            logger.info(f"Telemetry processed in mock mode device_id={record.device_id} timestamp={document['timestamp']}")
        else:
            logger.info(f"Telemetry uploaded device_id={record.device_id} partition={result.partition} offset={result.offset}")

        return {
            "id": f"{record.device_id}-{now_ms()}",
            "timestamp": document["timestamp"],
            "partition": result.partition,
            "offset": result.offset,
        }


async def ingest_batch(
    batch: BatchTelemetry,
    items: List[Union[TelemetryRecord, ValidationError]],
    publisher: Publisher,
) -> Dict[str, Any]:
    """
    Publish each validated item independently, in input order.

    Items that failed validation, or raised while being processed, are listed
    under ``errors``; they never stop their siblings.
    """
    results = []
    errors = []

    with metrics.telemetry_ingest_duration.labels(mode="batch").time():
        for index, item in enumerate(items):
            if isinstance(item, ValidationError):
                errors.append({"index": index, "error": item.message, "details": item.details})
                continue
            try:
                document = sanitize_telemetry(item).to_document()
                result = await publish_with_fallback(publisher, document, index=index)
            except Exception as e:
                logger.exception(f"Error processing batch item {index}")
                errors.append({"index": index, "error": str(e)})
                continue
            metrics.telemetry_ingested_total.labels(device_id=item.device_id).inc()
            results.append({
                "index": index,
                "success": True,
                "timestamp": document["timestamp"],
                "partition": result.partition,
                "offset": result.offset,
            })

    summary = {"total": len(items), "successful": len(results), "failed": len(errors)}
    logger.info(
        f"Batch telemetry upload completed device_id={batch.device_id} total={summary['total']} "
        f"success={summary['successful']} errors={summary['failed']}"
    )
    return {"summary": summary, "results": results, "errors": errors}
