"""
Monitoring Module for Holdings Reconciliation

Prometheus metrics for report runs, drift per axis, and page fetches.

Usage:
    from src.monitoring import ReconciliationMetrics

    metrics = ReconciliationMetrics()
    metrics.record_report_run(
        report_type="Inventory",
        status="Generated",
        duration_seconds=45.2,
        axes=report.axes()
    )
    metrics.push("pushgateway:9091")
"""

from src.monitoring.metrics import ReconciliationMetrics

__all__ = [
    "ReconciliationMetrics",
]

__version__ = "1.0.0"
