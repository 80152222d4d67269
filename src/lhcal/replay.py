"""
Replay module for offline calibration from recorded sessions.

Provides functionality to:
- Read recorded log files (JSONL format)
- Replay measurements and corrections in order, at max speed or scaled time
- Feed a CalibrationSession (or SessionRunner) as if the data were live
"""

import json
import time
from typing import Optional, Dict, Any, List, Generator
from pathlib import Path
from dataclasses import dataclass

from .model import Correction, Measurement


@dataclass
class LogHeader:
    """Metadata from log file header."""
    schema_version: str
    capture_start: str
    log_format: str


@dataclass
class LogFooter:
    """Metadata from log file footer."""
    capture_end: str
    total_measurements: int
    total_corrections: int


@dataclass(eq=False)
class LogEntry:
    """A measurement or correction read from the log."""
    kind: str  # "measurement" or "correction"
    received_at: str
    measurement: Optional[Measurement] = None
    correction: Optional[Correction] = None
    parent: str = ""
    child: str = ""

    @property
    def timestamp(self) -> float:
        if self.measurement is not None:
            return self.measurement.timestamp
        return self.correction.timestamp


class SessionReplay:
    """
    Replay recorded calibration input.

    Usage:
        replay = SessionReplay("logs/20260222_120000.jsonl")
        replay.feed(session)               # max speed
        for entry in replay.replay(realtime=True, speed=10.0):
            ...
    """

    def __init__(self, log_file: str):
        """
        Initialize the replay reader.

        Args:
            log_file: Path to the JSONL log file
        """
        self.log_file = Path(log_file)
        if not self.log_file.exists():
            raise FileNotFoundError(f"Log file not found: {log_file}")

        self._header: Optional[LogHeader] = None
        self._footer: Optional[LogFooter] = None
        self._entries: List[LogEntry] = []
        self._events: List[Dict[str, Any]] = []

        self._load_log()

    def _load_log(self) -> None:
        """Load and parse the log file."""
        with open(self.log_file, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                entry = json.loads(line)
                entry_type = entry.get("_type")

                if entry_type == "header":
                    self._header = LogHeader(
                        schema_version=entry.get("schema_version", "unknown"),
                        capture_start=entry.get("capture_start", ""),
                        log_format=entry.get("log_format", "jsonl")
                    )
                elif entry_type == "footer":
                    self._footer = LogFooter(
                        capture_end=entry.get("capture_end", ""),
                        total_measurements=entry.get("total_measurements", 0),
                        total_corrections=entry.get("total_corrections", 0)
                    )
                elif entry_type == "measurement":
                    self._entries.append(LogEntry(
                        kind="measurement",
                        received_at=entry.get("received_at", ""),
                        measurement=Measurement.from_dict(entry["data"])
                    ))
                elif entry_type == "correction":
                    data = entry["data"]
                    self._entries.append(LogEntry(
                        kind="correction",
                        received_at=entry.get("received_at", ""),
                        correction=Correction.from_dict(data),
                        parent=data.get("parent", ""),
                        child=data.get("child", "")
                    ))
                elif entry_type == "event":
                    self._events.append(entry)

    @property
    def header(self) -> Optional[LogHeader]:
        return self._header

    @property
    def footer(self) -> Optional[LogFooter]:
        return self._footer

    @property
    def entries(self) -> List[LogEntry]:
        return list(self._entries)

    @property
    def events(self) -> List[Dict[str, Any]]:
        return list(self._events)

    @property
    def measurement_count(self) -> int:
        return sum(1 for e in self._entries if e.kind == "measurement")

    @property
    def correction_count(self) -> int:
        return sum(1 for e in self._entries if e.kind == "correction")

    def get_duration_seconds(self) -> float:
        if not self._entries:
            return 0.0
        timestamps = [e.timestamp for e in self._entries]
        return max(timestamps) - min(timestamps)

    def replay(
        self,
        realtime: bool = False,
        speed: float = 1.0
    ) -> Generator[LogEntry, None, None]:
        """
        Replay entries from the log.

        Args:
            realtime: If True, sleep between entries using their timestamps
            speed: Playback speed multiplier (10.0 = ten times faster)

        Yields:
            LogEntry objects in recorded order
        """
        prev_ts = None
        for entry in self._entries:
            if realtime and prev_ts is not None:
                delay = (entry.timestamp - prev_ts) / speed
                if delay > 0:
                    time.sleep(delay)
            prev_ts = entry.timestamp
            yield entry

    def feed(self, target, realtime: bool = False, speed: float = 1.0) -> Dict[str, int]:
        """
        Push every entry into a session or runner.

        Args:
            target: CalibrationSession (``on_*``) or SessionRunner (``submit_*``)

        Returns:
            Counts of measurements and corrections delivered
        """
        if hasattr(target, "submit_measurement"):
            on_measurement = target.submit_measurement
            on_correction = target.submit_correction
        else:
            on_measurement = target.on_measurement
            on_correction = target.on_correction

        counts = {"measurements": 0, "corrections": 0}
        for entry in self.replay(realtime=realtime, speed=speed):
            if entry.kind == "measurement":
                on_measurement(entry.measurement)
                counts["measurements"] += 1
            else:
                on_correction(entry.parent, entry.child, entry.correction)
                counts["corrections"] += 1
        return counts


def validate_log_integrity(log_file: str) -> Dict[str, Any]:
    """
    Validate a log file for integrity and consistency.

    Args:
        log_file: Path to the JSONL log file

    Returns:
        Validation result dictionary
    """
    result = {
        "valid": True,
        "errors": [],
        "warnings": [],
        "stats": {}
    }

    try:
        replay = SessionReplay(log_file)
    except (OSError, ValueError, KeyError) as e:
        result["valid"] = False
        result["errors"].append(str(e))
        return result

    if not replay.header:
        result["errors"].append("Missing header")
        result["valid"] = False
    elif replay.header.schema_version != "1.0":
        result["warnings"].append(f"Unknown schema version: {replay.header.schema_version}")

    if not replay.footer:
        result["warnings"].append("Missing footer (log may be incomplete)")
    elif replay.footer.total_measurements != replay.measurement_count:
        result["errors"].append(
            f"Footer reports {replay.footer.total_measurements} measurements, "
            f"found {replay.measurement_count}"
        )
        result["valid"] = False

    timestamps = [e.measurement.timestamp for e in replay.entries if e.kind == "measurement"]
    if any(b < a for a, b in zip(timestamps, timestamps[1:])):
        result["warnings"].append("Measurements are not in timestamp order")

    result["stats"] = {
        "total_measurements": replay.measurement_count,
        "total_corrections": replay.correction_count,
        "duration_seconds": replay.get_duration_seconds(),
        "events_count": len(replay.events)
    }

    return result
