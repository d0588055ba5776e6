"""
Cadence estimation and classification logic
"""

import logging
import math
import threading
from collections import deque
from typing import Deque, List, Optional, Sequence

from models import AccelSample, CadenceState, CadenceReading, CadenceStats, ClassificationBand
from signal_processing import GravityFilter, PeakDetector, magnitude
from utils import now_berlin
from config import (
    MIN_STEP_INTERVAL_MS,
    WINDOW_SECONDS,
    RATE_STRATEGY,
    THRESHOLD_STATIONARY,
    THRESHOLD_FAST,
    STATE_COLORS,
    STATE_LABELS,
    HISTORY_LENGTH,
    RESET_GRAVITY_ON_RESET
)

logger = logging.getLogger(__name__)

RATE_STRATEGIES = ("density", "span")


def make_band(state: CadenceState, upper_bound: Optional[float] = None) -> ClassificationBand:
    """Build a band using the configured display label and color"""
    return ClassificationBand(
        upper_bound=upper_bound,
        state=state,
        label=STATE_LABELS[state.value],
        color=STATE_COLORS[state.value]
    )


def default_bands() -> List[ClassificationBand]:
    return [
        make_band(CadenceState.STATIONARY, THRESHOLD_STATIONARY),
        make_band(CadenceState.WALKING, THRESHOLD_FAST),
        make_band(CadenceState.BRISK_WALKING),
    ]


class RateEstimator:
    """
    Sliding window of step timestamps (ms) and the cadence derived from it.

    Two conversions from window contents to steps per minute are supported:
    - "density": count / window_seconds * 60, stable for 0 or 1 steps
    - "span": (count - 1) / (last - first) in minutes, 0 with fewer than
      two distinct timestamps
    """

    def __init__(
        self,
        window_seconds: float = WINDOW_SECONDS,
        strategy: str = RATE_STRATEGY,
        min_interval_ms: float = MIN_STEP_INTERVAL_MS
    ):
        if window_seconds <= 0:
            raise ValueError(f"window_seconds must be > 0, got {window_seconds}")
        if strategy not in RATE_STRATEGIES:
            raise ValueError(f"Unknown rate strategy '{strategy}', expected one of {RATE_STRATEGIES}")
        self.window_seconds = window_seconds
        self.strategy = strategy
        self.min_interval_ms = min_interval_ms

        self.timestamps: Deque[float] = deque()
        self.last_recorded: Optional[float] = None

    def record(self, timestamp: float) -> bool:
        """
        Append a step timestamp unless it falls within the refractory
        interval of the last recorded step (or before it).

        Returns:
            True if the step was recorded
        """
        if self.last_recorded is not None and timestamp - self.last_recorded < self.min_interval_ms:
            logger.debug(f"Step at {timestamp:.0f}ms rejected (last at {self.last_recorded:.0f}ms)")
            return False
        self.last_recorded = timestamp
        self.timestamps.append(timestamp)
        return True

    def prune(self, now: float):
        """Drop steps older than the window"""
        window_start = now - self.window_seconds * 1000.0
        while self.timestamps and self.timestamps[0] < window_start:
            self.timestamps.popleft()

    def compute(self, now: float) -> float:
        """Cadence in steps per minute over the trailing window"""
        self.prune(now)
        in_window = [ts for ts in self.timestamps if ts <= now]
        count = len(in_window)
        if count == 0:
            return 0.0

        if self.strategy == "density":
            return (count / self.window_seconds) * 60.0

        span_ms = in_window[-1] - in_window[0]
        if count < 2 or span_ms <= 0:
            return 0.0
        return (count - 1) / (span_ms / 60000.0)

    def __len__(self) -> int:
        return len(self.timestamps)

    def reset(self):
        self.timestamps.clear()
        self.last_recorded = None


class StateClassifier:
    """Maps a cadence to the first band whose upper bound exceeds it."""

    def __init__(self, bands: Optional[Sequence[ClassificationBand]] = None):
        bands = list(bands) if bands is not None else default_bands()
        if not bands:
            raise ValueError("At least one classification band is required")
        if bands[-1].upper_bound is not None:
            raise ValueError("The last band must be unbounded")

        bounds = [b.upper_bound for b in bands[:-1]]
        if any(b is None for b in bounds):
            raise ValueError("Only the last band may be unbounded")
        if any(b <= 0 for b in bounds) or any(lo >= hi for lo, hi in zip(bounds, bounds[1:])):
            raise ValueError(f"Band upper bounds must be positive and strictly ascending: {bounds}")

        self.bands = bands

    def classify(self, rate: float) -> ClassificationBand:
        if math.isnan(rate) or rate < 0:
            raise ValueError(f"Cadence must be a non-negative number, got {rate}")
        for band in self.bands[:-1]:
            if rate < band.upper_bound:
                return band
        return self.bands[-1]


class HistoryBuffer:
    """Fixed-capacity FIFO of recent cadence values; None marks 'no data'."""

    def __init__(self, capacity: int = HISTORY_LENGTH):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self.slots: Deque[Optional[float]] = deque([None] * capacity, maxlen=capacity)

    def push(self, rate: Optional[float]):
        self.slots.append(rate)

    def reset(self):
        self.slots = deque([None] * self.capacity, maxlen=self.capacity)

    def values(self) -> List[Optional[float]]:
        return list(self.slots)

    def __len__(self) -> int:
        return len(self.slots)


class CadenceProcessor:
    """
    Owns the filtering, detection, estimation and classification stages.

    Samples and ticks may arrive from different threads (serial reader,
    tick driver, HTTP handlers); every entry point takes the same lock so
    they are applied in arrival order.
    """

    def __init__(
        self,
        gravity_filter: Optional[GravityFilter] = None,
        peak_detector: Optional[PeakDetector] = None,
        rate_estimator: Optional[RateEstimator] = None,
        classifier: Optional[StateClassifier] = None,
        history: Optional[HistoryBuffer] = None,
        reset_gravity_on_reset: bool = RESET_GRAVITY_ON_RESET
    ):
        self.gravity_filter = gravity_filter if gravity_filter is not None else GravityFilter()
        self.peak_detector = peak_detector if peak_detector is not None else PeakDetector()
        self.rate_estimator = rate_estimator if rate_estimator is not None else RateEstimator()
        self.classifier = classifier if classifier is not None else StateClassifier()
        self.history = history if history is not None else HistoryBuffer()
        self.reset_gravity_on_reset = reset_gravity_on_reset

        self._lock = threading.Lock()
        self.current_reading: Optional[CadenceReading] = None

        # Statistics tracking
        self.total_samples: int = 0
        self.dropped_samples: int = 0
        self.total_steps: int = 0

    def on_sample(self, sample: AccelSample, now: float) -> Optional[float]:
        """
        Process one raw sample.

        Returns:
            the step timestamp if a step was detected and recorded, else None
        """
        if not sample.is_complete():
            with self._lock:
                self.dropped_samples += 1
            logger.debug(f"Dropping incomplete sample {sample}")
            return None

        with self._lock:
            self.total_samples += 1
            linear = self.gravity_filter.update(sample)
            peak_time = self.peak_detector.observe(magnitude(linear), now)
            if peak_time is None:
                return None
            return peak_time if self._record_step(peak_time) else None

    def inject_step(self, now: float) -> bool:
        """Record a simulated step, subject to the same refractory gate"""
        with self._lock:
            return self._record_step(now)

    def _record_step(self, timestamp: float) -> bool:
        accepted = self.rate_estimator.record(timestamp)
        if accepted:
            self.total_steps += 1
        return accepted

    def on_tick(self, now: float) -> CadenceReading:
        """Compute cadence, classify it and append it to the history."""
        with self._lock:
            rate = self.rate_estimator.compute(now)
            band = self.classifier.classify(rate)
            self.history.push(rate)
            self.current_reading = CadenceReading(
                rate=rate,
                state=band.state,
                label=band.label,
                color=band.color,
                event_count=len(self.rate_estimator),
                updated_at=now_berlin()
            )
            return self.current_reading

    def get_current_status(self) -> CadenceReading:
        """Latest tick result, or the uninitialized state before any tick"""
        with self._lock:
            if self.current_reading is not None:
                return self.current_reading
            band = make_band(CadenceState.UNINITIALIZED)
            return CadenceReading(
                rate=None,
                state=band.state,
                label=band.label,
                color=band.color,
                event_count=len(self.rate_estimator),
                updated_at=now_berlin()
            )

    def get_history(self) -> List[Optional[float]]:
        with self._lock:
            return self.history.values()

    def get_session_stats(self) -> CadenceStats:
        """Get sample and step counters since the last reset"""
        with self._lock:
            return CadenceStats(
                total_samples=self.total_samples,
                dropped_samples=self.dropped_samples,
                total_steps=self.total_steps,
                steps_in_window=len(self.rate_estimator)
            )

    def reset(self, reset_gravity: Optional[bool] = None):
        """
        Clear steps, history and the current reading.

        The gravity estimate survives unless reset_gravity is True (or None
        with reset_gravity_on_reset enabled).
        """
        if reset_gravity is None:
            reset_gravity = self.reset_gravity_on_reset

        with self._lock:
            self.rate_estimator.reset()
            self.peak_detector.reset()
            self.history.reset()
            self.current_reading = None
            self.total_samples = 0
            self.dropped_samples = 0
            self.total_steps = 0
            if reset_gravity:
                self.gravity_filter.reset()

        logger.info(f"Cadence state reset (gravity {'cleared' if reset_gravity else 'kept'})")
