"""
Metrics module for monitoring ingestion and solve quality.

Provides functionality to:
- Count accepted and rejected measurements, pulses and corrections
- Track per-lighthouse measurement rates
- Keep the diagnostics of the most recent solve
- Export metrics as JSON or Prometheus text
"""

import time
import json
import threading
from datetime import datetime
from typing import Optional, Dict, Any
from dataclasses import dataclass, field
from collections import deque


@dataclass
class LighthouseMetrics:
    """Per-lighthouse ingestion metrics."""
    serial: str
    measurement_count: int = 0
    pulse_count: int = 0
    rate_hz: float = 0.0

    # Rolling window for rate calculation
    _timestamps: deque = field(default_factory=lambda: deque(maxlen=60))


class MetricsCollector:
    """
    Thread-safe metrics collector for a calibration session.

    Usage:
        metrics = MetricsCollector()
        metrics.record_measurement("LHB-A", accepted=True, pulses=8, rejected_pulses=1)
        metrics.record_solve(result.stats.to_dict(), success=True)
        summary = metrics.get_summary()
    """

    def __init__(self, history_size: int = 60):
        """
        Initialize metrics collector.

        Args:
            history_size: Number of measurements kept for rolling rates
        """
        self.history_size = history_size
        self._lighthouses: Dict[str, LighthouseMetrics] = {}
        self._lock = threading.Lock()
        self._start_time = time.time()

        self.measurements_accepted = 0
        self.measurements_dropped = 0
        self.measurements_ignored = 0
        self.pulses_rejected = 0
        self.corrections_accepted = 0
        self.corrections_ignored = 0
        self.queue_drops = 0
        self.solves = 0
        self.solve_failures = 0
        self._last_solve: Optional[Dict[str, Any]] = None

    def record_measurement(
        self,
        lighthouse: str,
        accepted: bool,
        pulses: int = 0,
        rejected_pulses: int = 0
    ) -> None:
        """
        Record the outcome of filtering one measurement.

        Args:
            lighthouse: Lighthouse serial
            accepted: Whether the measurement was stored
            pulses: Number of pulses kept
            rejected_pulses: Number of pulses removed by thresholds
        """
        with self._lock:
            self.pulses_rejected += rejected_pulses
            if not accepted:
                self.measurements_dropped += 1
                return

            self.measurements_accepted += 1
            lh = self._lighthouses.get(lighthouse)
            if lh is None:
                lh = LighthouseMetrics(
                    serial=lighthouse,
                    _timestamps=deque(maxlen=self.history_size)
                )
                self._lighthouses[lighthouse] = lh

            now = time.time()
            lh.measurement_count += 1
            lh.pulse_count += pulses
            lh._timestamps.append(now)
            if len(lh._timestamps) >= 2:
                time_span = lh._timestamps[-1] - lh._timestamps[0]
                if time_span > 0:
                    lh.rate_hz = (len(lh._timestamps) - 1) / time_span

    def record_ignored(self) -> None:
        """Record a measurement ignored before filtering (idle or unknown device)."""
        with self._lock:
            self.measurements_ignored += 1

    def record_correction(self, accepted: bool) -> None:
        with self._lock:
            if accepted:
                self.corrections_accepted += 1
            else:
                self.corrections_ignored += 1

    def record_queue_drop(self) -> None:
        with self._lock:
            self.queue_drops += 1

    def record_solve(self, stats: Optional[Dict[str, Any]], success: bool) -> None:
        with self._lock:
            self.solves += 1
            if not success:
                self.solve_failures += 1
            self._last_solve = stats

    def get_summary(self) -> Dict[str, Any]:
        """
        Get a complete metrics summary.

        Returns:
            Dictionary containing all metrics
        """
        with self._lock:
            lighthouses = {
                serial: {
                    "measurement_count": lh.measurement_count,
                    "pulse_count": lh.pulse_count,
                    "rate_hz": round(lh.rate_hz, 2),
                }
                for serial, lh in self._lighthouses.items()
            }
            return {
                "timestamp": datetime.now().isoformat(),
                "uptime_seconds": round(time.time() - self._start_time, 2),
                "ingest": {
                    "measurements_accepted": self.measurements_accepted,
                    "measurements_dropped": self.measurements_dropped,
                    "measurements_ignored": self.measurements_ignored,
                    "pulses_rejected": self.pulses_rejected,
                    "corrections_accepted": self.corrections_accepted,
                    "corrections_ignored": self.corrections_ignored,
                    "queue_drops": self.queue_drops,
                },
                "lighthouses": lighthouses,
                "solve": {
                    "count": self.solves,
                    "failures": self.solve_failures,
                    "last": self._last_solve,
                },
            }

    def export_prometheus(self) -> str:
        """
        Export metrics in Prometheus text format.

        Returns:
            Prometheus-formatted metrics string
        """
        summary = self.get_summary()
        ingest = summary["ingest"]

        lines = [
            "# HELP lhcal_measurements_total Measurements by outcome",
            "# TYPE lhcal_measurements_total counter",
            f'lhcal_measurements_total{{outcome="accepted"}} {ingest["measurements_accepted"]}',
            f'lhcal_measurements_total{{outcome="dropped"}} {ingest["measurements_dropped"]}',
            f'lhcal_measurements_total{{outcome="ignored"}} {ingest["measurements_ignored"]}',
            "",
            "# HELP lhcal_pulses_rejected_total Pulses removed by thresholds",
            "# TYPE lhcal_pulses_rejected_total counter",
            f"lhcal_pulses_rejected_total {ingest['pulses_rejected']}",
            "",
            "# HELP lhcal_lighthouse_rate_hz Per-lighthouse measurement rate",
            "# TYPE lhcal_lighthouse_rate_hz gauge",
        ]

        for serial, lh in summary["lighthouses"].items():
            lines.append(f'lhcal_lighthouse_rate_hz{{lighthouse="{serial}"}} {lh["rate_hz"]}')

        lines.extend([
            "",
            "# HELP lhcal_solves_total Pipeline runs",
            "# TYPE lhcal_solves_total counter",
            f"lhcal_solves_total {summary['solve']['count']}",
        ])

        return "\n".join(lines)

    def reset(self) -> None:
        """Reset all metrics."""
        with self._lock:
            self._lighthouses.clear()
            self.measurements_accepted = 0
            self.measurements_dropped = 0
            self.measurements_ignored = 0
            self.pulses_rejected = 0
            self.corrections_accepted = 0
            self.corrections_ignored = 0
            self.queue_drops = 0
            self.solves = 0
            self.solve_failures = 0
            self._last_solve = None
            self._start_time = time.time()


class MetricsExporter:
    """
    Export metrics to file.
    """

    @staticmethod
    def to_json(metrics: Dict[str, Any], filepath: str) -> None:
        """Write metrics to JSON file."""
        with open(filepath, 'w') as f:
            json.dump(metrics, f, indent=2)

    @staticmethod
    def to_prometheus_file(metrics: MetricsCollector, filepath: str) -> None:
        """Write Prometheus-format metrics to file."""
        with open(filepath, 'w') as f:
            f.write(metrics.export_prometheus())
