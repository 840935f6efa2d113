"""CloudWatch custom metrics for outbound calls, flushed in batches.

Every external collaborator (the LLM gateway, the completion endpoint,
Stripe, Resend) reports one request count per call plus latency, and an
error count on failure.

* Data points are buffered in memory behind a lock.
* With ``METRICS_ENABLED=true`` a daemon thread pushes the buffer to
  CloudWatch every ``FLUSH_INTERVAL_SECONDS``; otherwise points are only
  debug-logged and dropped on flush.
* ``PutMetricData`` accepts at most ``MAX_BATCH_SIZE`` points per call.

>>> from dgtl_dental.services.metrics import metrics
>>> with metrics.timed("stripe", "checkout.create"):
...     create_session()
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "DGTLDental"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000


def _point(name: str, dims: dict[str, str], value: float, unit: str) -> dict[str, Any]:
    return {
        "MetricName": name,
        "Dimensions": [{"Name": k, "Value": v} for k, v in dims.items()],
        "Timestamp": datetime.now(UTC),
        "Value": value,
        "Unit": unit,
    }


class MetricsClient:
    """Buffers metric data points and publishes them to CloudWatch."""

    def __init__(self) -> None:
        self._enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None

        if self._enabled:
            self._start_flush_thread()

    def _get_cw_client(self):
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── Recording ─────────────────────────────────────────────────────

    def record_success(self, service: str, operation: str, latency_ms: float) -> None:
        self._extend(
            _point("ExternalAPI/RequestCount", {"Service": service, "Status": "success"}, 1, "Count"),
            _point(
                "ExternalAPI/Latency",
                {"Service": service, "Operation": operation},
                latency_ms,
                "Milliseconds",
            ),
        )
        logger.debug("Metric: %s %s ok in %.1fms", service, operation, latency_ms)

    def record_failure(
        self,
        service: str,
        operation: str,
        error_type: str,
        latency_ms: float = 0,
    ) -> None:
        points = [
            _point("ExternalAPI/RequestCount", {"Service": service, "Status": "failure"}, 1, "Count"),
            _point("ExternalAPI/ErrorCount", {"Service": service, "ErrorType": error_type}, 1, "Count"),
        ]
        if latency_ms > 0:
            points.append(
                _point(
                    "ExternalAPI/Latency",
                    {"Service": service, "Operation": operation},
                    latency_ms,
                    "Milliseconds",
                )
            )
        self._extend(*points)
        logger.debug("Metric: %s %s failed (%s)", service, operation, error_type)

    @contextmanager
    def timed(self, service: str, operation: str) -> Iterator[None]:
        """Record success or failure (with latency) around a block; re-raises."""
        t0 = time.perf_counter()
        try:
            yield
        except Exception as exc:
            self.record_failure(
                service, operation,
                error_type=type(exc).__name__,
                latency_ms=(time.perf_counter() - t0) * 1000,
            )
            raise
        self.record_success(service, operation, latency_ms=(time.perf_counter() - t0) * 1000)

    # ── Publishing ────────────────────────────────────────────────────

    def flush(self) -> int:
        """Push buffered points to CloudWatch. Returns the number sent."""
        with self._lock:
            batch, self._buffer = self._buffer, []

        if not batch:
            return 0
        if not self._enabled:
            logger.debug("Metrics disabled, dropping %d points", len(batch))
            return 0

        sent = 0
        try:
            cw = self._get_cw_client()
            for start in range(0, len(batch), MAX_BATCH_SIZE):
                chunk = batch[start : start + MAX_BATCH_SIZE]
                cw.put_metric_data(Namespace=NAMESPACE, MetricData=chunk)
                sent += len(chunk)
            logger.info("Flushed %d metrics to CloudWatch", sent)
        except Exception:
            logger.exception("Failed to flush metrics to CloudWatch")
        return sent

    def _extend(self, *points: dict[str, Any]) -> None:
        with self._lock:
            self._buffer.extend(points)

    def _start_flush_thread(self) -> None:
        def _loop():
            while True:
                time.sleep(FLUSH_INTERVAL_SECONDS)
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        threading.Thread(target=_loop, daemon=True, name="metrics-flush").start()
        atexit.register(self.flush)
        logger.info("Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS)


metrics = MetricsClient()
