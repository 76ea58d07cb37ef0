"""
Prometheus Metrics for Holdings Reconciliation

Counters and histograms for report runs, drift per axis, and page fetches.
A report run is a short-lived batch job, so metrics are pushed to a
Pushgateway at the end of a run rather than scraped.
"""

import logging
from typing import Iterable, Optional, Tuple

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, push_to_gateway

logger = logging.getLogger(__name__)


class ReconciliationMetrics:
    """Prometheus metrics for reconciliation reports."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize reconciliation metrics.

        Args:
            registry: Registry to register metrics in. A private registry is
                created if omitted, so several instances can coexist.
        """
        self.registry = registry or CollectorRegistry()

        # Report runs by type and terminal status
        self.report_runs_total = Counter(
            'holdings_reconciliation_runs_total',
            'Total number of reconciliation report runs',
            ['report_type', 'status'],
            registry=self.registry
        )

        self.report_duration_seconds = Histogram(
            'holdings_reconciliation_duration_seconds',
            'Duration of reconciliation report runs in seconds',
            ['report_type'],
            buckets=[1, 5, 10, 30, 60, 120, 300, 600, 1800, 3600],
            registry=self.registry
        )

        # Drift and ok counts of the latest report, per axis
        self.drift_entries = Gauge(
            'holdings_reconciliation_drift_entries',
            'Entries found in only one store, by axis and side',
            ['report_type', 'axis', 'side'],
            registry=self.registry
        )

        self.ok_entries = Gauge(
            'holdings_reconciliation_ok_entries',
            'Entries found in both stores, by axis',
            ['report_type', 'axis'],
            registry=self.registry
        )

        # Page fetches at the cursor boundary
        self.pages_fetched_total = Counter(
            'holdings_reconciliation_pages_fetched_total',
            'Total pages fetched from listing sources',
            ['source'],
            registry=self.registry
        )

        self.fetch_retries_total = Counter(
            'holdings_reconciliation_fetch_retries_total',
            'Total page-fetch retries after a retryable failure',
            ['source'],
            registry=self.registry
        )

        logger.info("ReconciliationMetrics initialized")

    def record_page_fetched(self, source: str) -> None:
        """Record one page fetched from a listing source."""
        self.pages_fetched_total.labels(source=source).inc()

    def record_fetch_retry(self, source: str) -> None:
        """Record one retried page fetch."""
        self.fetch_retries_total.labels(source=source).inc()

    def record_report_run(
        self,
        report_type: str,
        status: str,
        duration_seconds: float,
        axes: Iterable[Tuple[str, object]] = ()
    ) -> None:
        """
        Record a finished report run.

        Args:
            report_type: Report type (e.g. "Inventory")
            status: Terminal status ("Generated" or "Failed")
            duration_seconds: Wall-clock duration of the run
            axes: (axis name, SubReport) pairs of the report
        """
        self.report_runs_total.labels(
            report_type=report_type,
            status=status
        ).inc()

        self.report_duration_seconds.labels(
            report_type=report_type
        ).observe(duration_seconds)

        for axis, sub_report in axes:
            self.ok_entries.labels(report_type=report_type, axis=axis).set(sub_report.ok_count)
            self.drift_entries.labels(report_type=report_type, axis=axis, side='a').set(len(sub_report.only_in_a))
            self.drift_entries.labels(report_type=report_type, axis=axis, side='b').set(len(sub_report.only_in_b))

        logger.debug(
            f"Recorded report metrics: type={report_type}, status={status}, "
            f"duration={duration_seconds:.2f}s"
        )

    def push(self, gateway: str, job: str = "holdings-reconciliation") -> None:
        """
        Push all metrics in the registry to a Pushgateway.

        Args:
            gateway: Pushgateway address (host:port or URL)
            job: Job label for the pushed group
        """
        push_to_gateway(gateway, job=job, registry=self.registry)
        logger.info(f"Pushed reconciliation metrics to {gateway}")
