"""
In-memory metrics for flow execution.

Tracked series:
- run_started_total: Counter of runs started
- run_completed_total{status}: Counter of finished runs by outcome
- run_duration_seconds{status}: Histogram of run wall-clock times
- node_execution_total{kind,status}: Counter of node executions
- node_duration_seconds{kind}: Histogram of node execution times
"""
import re as _re
from collections import defaultdict
from typing import Any
import logging

logger = logging.getLogger("agentflow.metrics")

PROMETHEUS_PREFIX = "agentflow_"


class MetricsCollector:
    """Simple in-memory metrics collector."""

    def __init__(self):
        self.counters: dict[str, int] = defaultdict(int)
        self.histograms: dict[str, list[float]] = defaultdict(list)

    def increment_counter(self, name: str, value: int = 1, labels: dict[str, str] | None = None):
        key = self._build_key(name, labels)
        self.counters[key] += value

    def observe_histogram(self, name: str, value: float, labels: dict[str, str] | None = None):
        key = self._build_key(name, labels)
        self.histograms[key].append(value)

    def get_counter(self, name: str, labels: dict[str, str] | None = None) -> int:
        key = self._build_key(name, labels)
        return self.counters.get(key, 0)

    def get_histogram_stats(self, name: str, labels: dict[str, str] | None = None) -> dict[str, Any]:
        """Get histogram statistics (count, sum, min, max, avg, p95)."""
        key = self._build_key(name, labels)
        values = self.histograms.get(key, [])

        if not values:
            return {"count": 0, "sum": 0, "min": 0, "max": 0, "avg": 0, "p95": 0}

        sorted_vals = sorted(values)
        n = len(sorted_vals)
        p95_idx = max(0, int(n * 0.95) - 1)
        return {
            "count": n,
            "sum": sum(sorted_vals),
            "min": sorted_vals[0],
            "max": sorted_vals[-1],
            "avg": sum(sorted_vals) / n,
            "p95": sorted_vals[p95_idx],
        }

    def get_all_metrics(self) -> dict[str, Any]:
        return {
            "counters": dict(self.counters),
            "histograms": {k: self.get_histogram_stats(k) for k in self.histograms.keys()},
        }

    def reset(self):
        self.counters.clear()
        self.histograms.clear()

    @staticmethod
    def _build_key(name: str, labels: dict[str, str] | None) -> str:
        if not labels:
            return name
        label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{name}{{{label_str}}}"


# Global metrics collector instance
metrics = MetricsCollector()


def record_run_started():
    metrics.increment_counter("run_started_total")


def record_run_completed(duration_seconds: float, status: str):
    """
    Record a run completion event.

    Args:
        duration_seconds: Run wall-clock time in seconds
        status: "success" or the ErrorKind value the run failed with
    """
    metrics.increment_counter("run_completed_total", labels={"status": status})
    metrics.observe_histogram("run_duration_seconds", duration_seconds, labels={"status": status})


def record_node_execution(kind: str, status: str, duration_seconds: float | None = None):
    """Record one node execution; *status* is completed, failed or cancelled."""
    metrics.increment_counter("node_execution_total", labels={"kind": kind, "status": status})
    if duration_seconds is not None:
        metrics.observe_histogram("node_duration_seconds", duration_seconds, labels={"kind": kind})


def get_metrics_summary() -> dict:
    return metrics.get_all_metrics()


def _parse_metric_key(key: str) -> tuple[str, str]:
    """Split ``name{k=v,...}`` into (name, Prometheus label block with quoted values)."""
    m = _re.match(r'^([^{]+)(?:\{(.+)\})?$', key)
    if not m:
        return key, ""
    base_name = m.group(1)
    raw_labels = m.group(2) or ""
    if not raw_labels:
        return base_name, ""
    label_parts: list[str] = []
    for pair in raw_labels.split(","):
        if "=" in pair:
            k, v = pair.split("=", 1)
            label_parts.append(f'{k.strip()}="{v.strip()}"')
    label_str = "{" + ",".join(label_parts) + "}" if label_parts else ""
    return base_name, label_str


def _append_quantile_label(label_str: str, quantile: str) -> str:
    q_pair = f'quantile="{quantile}"'
    if label_str:
        return label_str[:-1] + "," + q_pair + "}"
    return "{" + q_pair + "}"


def to_prometheus_text() -> str:
    """Render all in-memory metrics in Prometheus text exposition format.

    Each metric family gets exactly one ``# TYPE`` line; histograms are
    rendered as summaries with count, sum and the 0.95 / 1.0 quantiles.
    """
    summary = get_metrics_summary()
    lines: list[str] = []

    # ── Counters ───────────────────────────────────────────────────────────
    counter_families: dict[str, list[tuple[str, int]]] = defaultdict(list)
    for key, val in summary.get("counters", {}).items():
        base_name, label_str = _parse_metric_key(key)
        counter_families[PROMETHEUS_PREFIX + base_name].append((label_str, val))
    for prom_name, entries in counter_families.items():
        lines.append(f"# TYPE {prom_name} counter")
        for label_str, val in entries:
            lines.append(f"{prom_name}{label_str} {val}")

    # ── Histograms (rendered as Prometheus summaries) ──────────────────────
    histogram_families: dict[str, list[tuple[str, dict]]] = defaultdict(list)
    for key, stats in summary.get("histograms", {}).items():
        base_name, label_str = _parse_metric_key(key)
        histogram_families[PROMETHEUS_PREFIX + base_name].append((label_str, stats))
    for prom_name, entries in histogram_families.items():
        lines.append(f"# TYPE {prom_name} summary")
        for label_str, stats in entries:
            lines.append(f"{prom_name}_count{label_str} {stats['count']}")
            lines.append(f"{prom_name}_sum{label_str} {stats['sum']:.6f}")
            lines.append(f"{prom_name}{_append_quantile_label(label_str, '0.95')} {stats['p95']:.6f}")
            lines.append(f"{prom_name}{_append_quantile_label(label_str, '1.0')} {stats['max']:.6f}")
    return "\n".join(lines) + "\n"
