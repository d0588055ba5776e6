"""
Gravity compensation and step (peak) detection on raw accelerometer data
"""

import logging
import math
from typing import Optional, Tuple

from models import AccelSample
from config import (
    GRAVITY_ALPHA,
    PEAK_THRESHOLD,
    PEAK_MIN_PROMINENCE,
    MIN_STEP_INTERVAL_MS
)

logger = logging.getLogger(__name__)

Vector = Tuple[float, float, float]


def magnitude(vector: Vector) -> float:
    """Euclidean norm of a 3-axis vector"""
    x, y, z = vector
    return math.sqrt(x * x + y * y + z * z)


class GravityFilter:
    """
    Exponential low-pass filter tracking the gravity component of
    acceleration-including-gravity readings.

    Each update moves the estimate per axis as
    g' = alpha * g + (1 - alpha) * sample and returns sample - g'.
    """

    def __init__(self, alpha: float = GRAVITY_ALPHA):
        if not 0.0 < alpha < 1.0:
            raise ValueError(f"alpha must be in (0, 1), got {alpha}")
        self.alpha = alpha
        self.gravity: list = [0.0, 0.0, 0.0]

    def update(self, sample: AccelSample) -> Vector:
        """Update the gravity estimate and return linear acceleration."""
        values = (sample.x, sample.y, sample.z)
        a = self.alpha
        for i, v in enumerate(values):
            self.gravity[i] = a * self.gravity[i] + (1.0 - a) * v

        return (
            values[0] - self.gravity[0],
            values[1] - self.gravity[1],
            values[2] - self.gravity[2],
        )

    def reset(self):
        """Forget the gravity estimate"""
        self.gravity = [0.0, 0.0, 0.0]


class PeakDetector:
    """
    Streaming local-maximum detector on linear acceleration magnitude.

    A peak is recognised one sample late: the previous magnitude is the
    candidate and is accepted when
    - the signal rose into it and is now flat or falling,
    - it exceeds the amplitude threshold,
    - the rise from the value before it exceeds the minimum prominence,
    - more than the refractory interval has passed since the last peak.
    """

    def __init__(
        self,
        threshold: float = PEAK_THRESHOLD,
        min_prominence: float = PEAK_MIN_PROMINENCE,
        min_interval_ms: float = MIN_STEP_INTERVAL_MS
    ):
        if min_prominence < 0:
            raise ValueError(f"min_prominence must be >= 0, got {min_prominence}")
        if min_interval_ms < 0:
            raise ValueError(f"min_interval_ms must be >= 0, got {min_interval_ms}")
        self.threshold = threshold
        self.min_prominence = min_prominence
        self.min_interval_ms = min_interval_ms

        self.prev: float = 0.0
        self.prev2: float = 0.0
        self.last_peak_time: Optional[float] = None

    def observe(self, mag: float, now: float) -> Optional[float]:
        """
        Feed one magnitude sample.

        Returns:
            now if the previous sample was accepted as a peak, else None
        """
        candidate = self.prev
        is_local_max = self.prev2 < candidate and mag <= candidate
        detected = (
            is_local_max
            and candidate > self.threshold
            and (candidate - self.prev2) > self.min_prominence
            and (self.last_peak_time is None
                 or now - self.last_peak_time > self.min_interval_ms)
        )

        self.prev2 = candidate
        self.prev = mag

        if not detected:
            return None

        self.last_peak_time = now
        logger.debug(f"Peak {candidate:.3f} detected at {now:.0f}ms")
        return now

    def reset(self):
        """Clear retained magnitudes and refractory bookkeeping"""
        self.prev = 0.0
        self.prev2 = 0.0
        self.last_peak_time = None
