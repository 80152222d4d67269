"""
Session recording for offline replay.

One JSONL file per recording session:

    {"_type": "header", "schema_version": "1.0", "capture_start": ..., "log_format": "jsonl"}
    {"_type": "measurement", "received_at": ..., "data": {...}}
    {"_type": "correction", "received_at": ..., "data": {..., "parent": ..., "child": ...}}
    {"_type": "event", "event_type": ..., "timestamp": ..., "data": {...}}
    {"_type": "footer", "capture_end": ..., "total_measurements": N, "total_corrections": M}

Raw (unfiltered) input is written so a replay goes through the same
thresholds as the live session did.
"""

import json
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from .model import Correction, Measurement

SCHEMA_VERSION = "1.0"


class SessionRecorder:
    """
    Append measurements, corrections and events to a session log.

    Usage:
        recorder = SessionRecorder("./logs")
        session = CalibrationSession(config, recorder=recorder)
        # each Idle -> Recording trigger opens a new log, each stop closes it
    """

    def __init__(self, log_dir: str = "./logs"):
        self.log_dir = Path(log_dir)
        self._lock = threading.Lock()
        self._handle = None
        self._path: Optional[Path] = None
        self._counts = {"measurement": 0, "correction": 0}

    @property
    def active(self) -> bool:
        return self._handle is not None

    @property
    def path(self) -> Optional[str]:
        return str(self._path) if self._path else None

    def start(self, session_name: Optional[str] = None) -> str:
        """
        Open a new log file and write its header.

        Raises:
            RuntimeError: If a log is already open
        """
        with self._lock:
            if self._handle is not None:
                raise RuntimeError(f"Already recording to {self._path}")
            self.log_dir.mkdir(parents=True, exist_ok=True)
            name = session_name or datetime.now().strftime("%Y%m%d_%H%M%S_%f")
            self._path = self.log_dir / f"{name}.jsonl"
            self._handle = open(self._path, 'w', encoding='utf-8')
            self._counts = {"measurement": 0, "correction": 0}
            self._write({
                "_type": "header",
                "schema_version": SCHEMA_VERSION,
                "capture_start": datetime.now().isoformat(),
                "log_format": "jsonl",
            })
            return str(self._path)

    def stop(self) -> Dict[str, Any]:
        """Write the footer, close the file and return its totals."""
        with self._lock:
            if self._handle is None:
                return {"status": "not_recording"}
            totals = {
                "log_file": str(self._path),
                "total_measurements": self._counts["measurement"],
                "total_corrections": self._counts["correction"],
            }
            self._write({
                "_type": "footer",
                "capture_end": datetime.now().isoformat(),
                "total_measurements": totals["total_measurements"],
                "total_corrections": totals["total_corrections"],
            })
            self._handle.close()
            self._handle = None
            return totals

    def record_measurement(self, measurement: Measurement) -> None:
        self._append("measurement", measurement.to_dict())

    def record_correction(self, parent: str, child: str, correction: Correction) -> None:
        data = correction.to_dict()
        data.update(parent=parent, child=child)
        self._append("correction", data)

    def record_event(self, event_type: str, **data: Any) -> None:
        with self._lock:
            self._require_open()
            self._write({
                "_type": "event",
                "event_type": event_type,
                "timestamp": datetime.now().isoformat(),
                "data": data,
            })

    def _append(self, kind: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._require_open()
            self._write({"_type": kind, "received_at": datetime.now().isoformat(), "data": data})
            self._counts[kind] += 1

    def _require_open(self) -> None:
        if self._handle is None:
            raise RuntimeError("Not currently recording")

    def _write(self, entry: Dict[str, Any]) -> None:
        self._handle.write(json.dumps(entry) + '\n')
        self._handle.flush()
