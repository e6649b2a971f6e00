"""In-process renewal metrics.

Counters and gauges live in memory; :meth:`MetricsCollector.export`
renders them in Prometheus text format so the embedding gateway can
append them to its own metrics endpoint.
"""

from __future__ import annotations

import threading
import time

# HELP lines for the series acmegate itself records.
_HELP = {
    "acmegate_renewal_cycles_total": "Renewal cycles started",
    "acmegate_certificates_renewed_total": "Certificates reissued",
    "acmegate_renewal_failures_total": "Hosts whose renewal failed",
    "acmegate_renew_configs_cleaned_total": "Renewal entries removed for missing certificates",
    "acmegate_renewal_worker_errors_total": "Renewal cycles that raised",
    "acmegate_managed_certificates": "Certificates seen by the last cycle",
}

_SeriesKey = tuple[str, tuple[tuple[str, str], ...]]


def _series(name: str, labels: dict | None) -> _SeriesKey:
    return name, tuple(sorted((k, str(v)) for k, v in (labels or {}).items()))


def _render(key: _SeriesKey) -> str:
    name, labels = key
    if not labels:
        return name
    inner = ",".join(f'{k}="{v}"' for k, v in labels)
    return f"{name}{{{inner}}}"


class MetricsCollector:
    """Thread-safe counters and gauges."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._values: dict[_SeriesKey, float] = {}
        self._kinds: dict[str, str] = {}
        self._started = time.time()

    def increment(self, name: str, amount: int = 1, labels: dict | None = None) -> None:
        key = _series(name, labels)
        with self._lock:
            self._kinds.setdefault(name, "counter")
            self._values[key] = self._values.get(key, 0) + amount

    def set_gauge(self, name: str, value: float, labels: dict | None = None) -> None:
        with self._lock:
            self._kinds.setdefault(name, "gauge")
            self._values[_series(name, labels)] = value

    def get(self, name: str, labels: dict | None = None) -> float:
        """Current value of a series; ``0`` if it was never recorded."""
        with self._lock:
            return self._values.get(_series(name, labels), 0)

    def export(self) -> str:
        """Render every series, grouped by metric name, as Prometheus text."""
        uptime = time.time() - self._started
        lines = [
            "# HELP acmegate_uptime_seconds Time since process start",
            "# TYPE acmegate_uptime_seconds gauge",
            f"acmegate_uptime_seconds {uptime:.1f}",
            "",
        ]
        with self._lock:
            snapshot = sorted(self._values.items())
            kinds = dict(self._kinds)

        current = None
        for key, value in snapshot:
            name = key[0]
            if name != current:
                if current is not None:
                    lines.append("")
                if name in _HELP:
                    lines.append(f"# HELP {name} {_HELP[name]}")
                lines.append(f"# TYPE {name} {kinds[name]}")
                current = name
            lines.append(f"{_render(key)} {value}")

        return "\n".join(lines) + "\n"
