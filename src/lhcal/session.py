"""
Recording session management.

Provides:
- CalibrationSession: Idle/Recording state machine owning the measurement
  and correction buffers and the current transform graph
- SessionRunner: single worker thread feeding a session from a bounded
  queue, with an idle timeout that stops recording automatically
"""

import enum
import logging
import queue
import threading
import time
from concurrent.futures import Future
from typing import Optional, Dict, Any, List, Callable, Tuple
from dataclasses import dataclass

from .calfile import write_calibration
from .config import CalibrationConfig, Thresholds
from .errors import CalibrationError, InsufficientDataError
from .graph import NamedTransform, TransformGraph
from .metrics import MetricsCollector
from .model import Correction, Measurement
from .pipeline import CalibrationPipeline, SolveResult
from .recorder import SessionRecorder

logger = logging.getLogger(__name__)

# Thresholds are configured in degrees and converted with this factor
DEGREES_PER_RADIAN = 57.2958


class SessionState(enum.Enum):
    IDLE = "idle"
    RECORDING = "recording"


@dataclass(frozen=True)
class TriggerResponse:
    success: bool
    message: str


def filter_pulses(
    measurement: Measurement,
    thresholds: Thresholds
) -> Tuple[Optional[Measurement], int]:
    """
    Apply per-pulse thresholds to a measurement.

    A pulse is rejected when its (signed) angle exceeds the angle threshold
    or its duration is below the duration threshold. The measurement is
    dropped entirely when fewer than ``thresholds.count`` pulses survive.

    Returns:
        Tuple of (filtered measurement or None, number of rejected pulses)
    """
    max_angle = thresholds.angle / DEGREES_PER_RADIAN
    min_duration = thresholds.duration / 1e6
    kept = [
        p for p in measurement.pulses
        if p.angle <= max_angle and p.duration >= min_duration
    ]
    rejected = len(measurement.pulses) - len(kept)
    if len(kept) < thresholds.count:
        return None, rejected
    return measurement.with_pulses(kept), rejected


class CalibrationSession:
    """
    Recording state machine for one calibration host.

    Usage:
        session = CalibrationSession(config)
        session.trigger()                  # Idle -> Recording
        session.on_measurement(m)          # buffered
        session.on_correction("world", "body", c)
        response = session.trigger()       # solve, Recording -> Idle
    """

    def __init__(
        self,
        config: CalibrationConfig,
        pipeline: Optional[CalibrationPipeline] = None,
        metrics: Optional[MetricsCollector] = None,
        recorder: Optional[SessionRecorder] = None
    ):
        """
        Initialize calibration session.

        Args:
            config: Static configuration
            pipeline: Pipeline to run on stop (default built from config)
            metrics: Shared metrics collector
            recorder: Writes one replayable log per recording session
                (default built from ``config.record_dir`` when set)
        """
        self.config = config
        self.pipeline = pipeline or CalibrationPipeline(config)
        self.metrics = metrics or MetricsCollector()
        if recorder is None and config.record_dir:
            recorder = SessionRecorder(log_dir=config.record_dir)
        self.recorder = recorder

        self.trackers = config.trackers
        self.lighthouses = config.lighthouses
        self.graph = TransformGraph.from_config(config)
        self.last_result: Optional[SolveResult] = None

        self.state = SessionState.RECORDING if config.offline else SessionState.IDLE
        if config.offline:
            logger.info("Offline mode, recording immediately.")

        self._measurements: List[Measurement] = []
        self._corrections: List[Correction] = []
        self._busy = False
        self._transform_callbacks: List[Callable[[List[NamedTransform]], None]] = []

        if self.recording:
            self._open_log()

    @property
    def recording(self) -> bool:
        return self.state == SessionState.RECORDING

    @property
    def measurements(self) -> List[Measurement]:
        return list(self._measurements)

    @property
    def corrections(self) -> List[Correction]:
        return list(self._corrections)

    def add_transform_callback(self, callback: Callable[[List[NamedTransform]], None]) -> None:
        """Register a listener for published transforms."""
        self._transform_callbacks.append(callback)

    def publish_transforms(self) -> List[NamedTransform]:
        transforms = self.graph.named_transforms()
        for callback in self._transform_callbacks:
            callback(transforms)
        return transforms

    def _open_log(self) -> None:
        if self.recorder is None:
            return
        try:
            path = self.recorder.start()
        except (OSError, RuntimeError) as e:
            logger.error("Could not start session log: %s", e)
            return
        logger.info("Recording raw input to %s", path)
        self.recorder.record_event("recording_started")

    def _close_log(self, event_type: str, **data: Any) -> None:
        if self.recorder is None or not self.recorder.active:
            return
        self.recorder.record_event(event_type, **data)
        self.recorder.stop()

    def _active_log(self) -> Optional[SessionRecorder]:
        return self.recorder if self.recorder is not None and self.recorder.active else None

    def _is_ready(self, tracker: str, lighthouse: str) -> bool:
        tr = self.trackers.get(tracker)
        lh = self.lighthouses.get(lighthouse)
        return tr is not None and lh is not None and tr.ready and lh.ready

    def on_measurement(self, measurement: Measurement) -> bool:
        """
        Buffer a measurement if recording and it passes the thresholds.

        Returns:
            True if the measurement was stored
        """
        if not self.recording:
            self.metrics.record_ignored()
            return False

        log = self._active_log()
        if log:
            log.record_measurement(measurement)

        if not self._is_ready(measurement.tracker, measurement.lighthouse):
            self.metrics.record_ignored()
            return False

        filtered, rejected = filter_pulses(measurement, self.config.thresholds)
        if filtered is None:
            self.metrics.record_measurement(measurement.lighthouse, False, rejected_pulses=rejected)
            return False

        self._measurements.append(filtered)
        self.metrics.record_measurement(
            measurement.lighthouse, True,
            pulses=len(filtered.pulses), rejected_pulses=rejected
        )
        return True

    def on_correction(self, parent: str, child: str, correction: Correction) -> bool:
        """
        Buffer a world -> body correction while recording.

        Returns:
            True if the correction was stored
        """
        log = self._active_log()
        if self.recording and log:
            log.record_correction(parent, child, correction)

        accepted = (
            self.recording
            and parent == self.config.frames.world
            and child == self.config.frames.body
        )
        if accepted:
            self._corrections.append(correction)
        self.metrics.record_correction(accepted)
        return accepted

    def solve(self) -> SolveResult:
        """
        Run the pipeline on the buffered data without changing state.

        Raises:
            InsufficientDataError: If no measurements are buffered
        """
        return self.pipeline.solve(list(self._measurements), list(self._corrections))

    def trigger(self) -> TriggerResponse:
        """
        Toggle between Idle and Recording.

        Idle -> Recording performs no computation. Recording -> Idle solves
        the buffered session, clears the measurement buffer and reports
        whether a solution was found.
        """
        if not self.recording:
            self.state = SessionState.RECORDING
            logger.info("Recording started.")
            self._open_log()
            return TriggerResponse(True, "Recording started.")

        if self._busy:
            return TriggerResponse(False, "Solve already in progress.")

        self._busy = True
        measurements = self._measurements
        corrections = list(self._corrections)
        self._measurements = []
        if self.config.clear_corrections:
            self._corrections = []

        try:
            result = self.pipeline.solve(measurements, corrections)
        except InsufficientDataError as e:
            logger.warning("Solution not found: %s", e)
            return self._fail(str(e), "Recording stopped. Solution not found: insufficient measurements.")
        except CalibrationError as e:
            logger.error("Solution not found: %s", e)
            return self._fail(str(e), f"Recording stopped. Solution not found: {e}")
        except Exception as e:
            logger.exception("Pipeline failed on %d measurements", len(measurements))
            return self._fail(repr(e), f"Recording stopped. Solution not found: pipeline error ({e})")
        finally:
            self._busy = False
            self.state = SessionState.IDLE

        self._apply(result)
        self.metrics.record_solve(result.stats.to_dict(), success=True)
        self._close_log("solve_finished", success=True, stats=result.stats.to_dict())
        return TriggerResponse(True, "Recording stopped. Solution found.")

    def _fail(self, reason: str, message: str) -> TriggerResponse:
        self.metrics.record_solve(None, success=False)
        self._close_log("solve_finished", success=False, reason=reason)
        return TriggerResponse(False, message)

    def _apply(self, result: SolveResult) -> None:
        self.last_result = result
        self.graph = result.graph
        for serial, transform in result.graph.lighthouses.items():
            if serial in self.lighthouses:
                self.lighthouses[serial].transform = transform

        if result.stats.degraded:
            logger.warning("Solved with identity fallback for: %s", ", ".join(result.stats.degraded))

        self.publish_transforms()

        if self.config.calfile:
            try:
                path = write_calibration(self.config.calfile, self.graph)
                logger.info("Calibration written to %s", path)
            except OSError as e:
                logger.error("Could not write calibration to %s: %s", self.config.calfile, e)

    def get_status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "measurements": len(self._measurements),
            "corrections": len(self._corrections),
            "solved": self.graph.solved,
            "metrics": self.metrics.get_summary(),
        }


_MEASUREMENT = "measurement"
_CORRECTION = "correction"
_TRIGGER = "trigger"
_STOP = "stop"


class SessionRunner:
    """
    Drive a CalibrationSession from a single worker thread.

    Ingestion calls never block: events go onto a bounded queue and are
    dropped (and counted) when it is full. The idle deadline is rearmed by
    every measurement; when it expires while recording the runner issues
    the stop trigger itself.

    Usage:
        runner = SessionRunner(session, idle_timeout=1.0)
        runner.start()
        runner.submit_measurement(m)
        response = runner.trigger()
        runner.stop()
    """

    def __init__(
        self,
        session: CalibrationSession,
        idle_timeout: Optional[float] = None,
        queue_size: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.session = session
        self.idle_timeout = session.config.idle_timeout if idle_timeout is None else idle_timeout
        self._queue: queue.Queue = queue.Queue(
            maxsize=session.config.queue_size if queue_size is None else queue_size
        )
        self._clock = clock
        self._thread: Optional[threading.Thread] = None
        self._trigger_callback: Optional[Callable[[TriggerResponse], None]] = None
        self.last_response: Optional[TriggerResponse] = None

    def set_trigger_callback(self, callback: Callable[[TriggerResponse], None]) -> None:
        """Set callback for responses to timeout-issued triggers."""
        self._trigger_callback = callback

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        if self._thread is None:
            return
        self._queue.put((_STOP, None))
        self._thread.join(timeout=timeout)
        self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _enqueue(self, event: Tuple[str, Any]) -> bool:
        try:
            self._queue.put_nowait(event)
            return True
        except queue.Full:
            self.session.metrics.record_queue_drop()
            logger.warning("Event queue full, dropping %s", event[0])
            return False

    def submit_measurement(self, measurement: Measurement) -> bool:
        return self._enqueue((_MEASUREMENT, measurement))

    def submit_correction(self, parent: str, child: str, correction: Correction) -> bool:
        return self._enqueue((_CORRECTION, (parent, child, correction)))

    def trigger(self, timeout: Optional[float] = None) -> TriggerResponse:
        """
        Request a trigger and wait for the worker to answer.

        Raises:
            RuntimeError: If the worker thread is not running
        """
        if not self.is_running:
            raise RuntimeError("Session runner is not running")
        future: Future = Future()
        self._queue.put((_TRIGGER, future))
        return future.result(timeout=timeout)

    def _respond(self, response: TriggerResponse) -> None:
        self.last_response = response
        if self._trigger_callback:
            self._trigger_callback(response)

    def _run(self) -> None:
        deadline: Optional[float] = None
        while True:
            wait = None if deadline is None else max(0.0, deadline - self._clock())
            try:
                kind, payload = self._queue.get(timeout=wait)
            except queue.Empty:
                deadline = None
                if self.session.recording:
                    logger.info("No measurements for %.2f seconds, stopping recording.", self.idle_timeout)
                    self._respond(self.session.trigger())
                continue

            if kind == _STOP:
                break
            elif kind == _MEASUREMENT:
                self.session.on_measurement(payload)
                if self.idle_timeout and self.idle_timeout > 0:
                    deadline = self._clock() + self.idle_timeout
            elif kind == _CORRECTION:
                self.session.on_correction(*payload)
            elif kind == _TRIGGER:
                deadline = None
                try:
                    response = self.session.trigger()
                except Exception as e:
                    payload.set_exception(e)
                else:
                    self.last_response = response
                    payload.set_result(response)
