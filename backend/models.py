"""
Data models for the Cadence Tracker
"""

import math
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field
from enum import Enum


class CadenceState(str, Enum):
    """Cadence classification states"""
    STATIONARY = "stationary"
    WALKING = "walking"
    BRISK_WALKING = "brisk_walking"
    UNINITIALIZED = "uninitialized"  # no cadence computed yet


class AccelSample(BaseModel):
    """Raw acceleration-including-gravity reading (m/s²)"""
    x: Optional[float] = None
    y: Optional[float] = None
    z: Optional[float] = None
    timestamp_ms: Optional[float] = None  # sender clock, any origin

    def is_complete(self) -> bool:
        """True when all three axes are present and finite"""
        return all(
            v is not None and math.isfinite(v)
            for v in (self.x, self.y, self.z)
        )


class SampleBatch(BaseModel):
    """
    Batch of samples pushed by a remote sensor, oldest first.
    Spacing comes from per-sample timestamp_ms, else interval_ms, else
    every sample is stamped on arrival.
    """
    samples: List[AccelSample]
    interval_ms: Optional[float] = Field(default=None, gt=0)


class SampleIngestResult(BaseModel):
    """Outcome of ingesting a sample batch"""
    accepted: int
    dropped: int
    steps_detected: int


class ClassificationBand(BaseModel):
    """Half-open cadence interval [previous bound, upper_bound) mapped to a state"""
    upper_bound: Optional[float] = None  # None = unbounded final band
    state: CadenceState
    label: str
    color: str


class CadenceReading(BaseModel):
    """Cadence and state computed on one tick"""
    rate: Optional[float] = None  # steps per minute, None = uninitialized
    state: CadenceState
    label: str
    color: str
    event_count: int
    updated_at: datetime


class HistorySnapshot(BaseModel):
    """Recent cadence values for chart rendering, oldest first"""
    capacity: int
    tick_interval_seconds: float
    values: List[Optional[float]]


class CadenceStats(BaseModel):
    """Counters since the last reset"""
    total_samples: int
    dropped_samples: int
    total_steps: int
    steps_in_window: int


class StepInjectionResult(BaseModel):
    """Outcome of a simulated step"""
    accepted: bool
    event_count: int
