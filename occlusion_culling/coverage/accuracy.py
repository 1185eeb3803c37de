"""
Per-point measurement accuracy estimates.

An accuracy model maps sensor range (and optionally incidence angle) to a
score in a configured [min_score, max_score] band. Higher is better, and
the score never increases with range at a fixed incidence angle.

The default model follows the usual depth-sensor noise behaviour where
axial error grows with the square of range and with the obliquity of the
surface. Any callable with the same signature can be swapped in.
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

import numpy as np


class AccuracyModel(Protocol):
    min_score: float
    max_score: float

    def __call__(
        self, ranges: np.ndarray, incidence: Optional[np.ndarray] = None
    ) -> np.ndarray: ...


@dataclass(frozen=True)
class RangeAccuracyModel:
    """Quadratic range-error model.

    error = coefficient * range^2 / max(cos(theta), cos(max_incidence))
    score = clip(max_score - error, min_score, max_score)

    Attributes
    ----------
    coefficient : float
        Error growth per squared metre (>= 0).
    min_score, max_score : float
        Clamp band for the score.
    max_incidence_deg : float
        Incidence angles beyond this are treated as this angle, which keeps
        grazing hits from producing unbounded error.
    """

    coefficient: float = 0.0285
    min_score: float = 0.0
    max_score: float = 1.0
    max_incidence_deg: float = 80.0

    def __post_init__(self):
        if self.coefficient < 0:
            raise ValueError(f"coefficient must be >= 0, got {self.coefficient}")
        if self.min_score > self.max_score:
            raise ValueError(
                f"min_score ({self.min_score}) exceeds max_score ({self.max_score})"
            )
        if not 0.0 <= self.max_incidence_deg < 90.0:
            raise ValueError(f"max_incidence_deg must be in [0, 90), got {self.max_incidence_deg}")

    def error(self, ranges: np.ndarray, incidence: Optional[np.ndarray] = None) -> np.ndarray:
        r = np.asarray(ranges, dtype=np.float64)
        err = self.coefficient * r * r
        if incidence is not None:
            cos_floor = math.cos(math.radians(self.max_incidence_deg))
            cos_t = np.abs(np.cos(np.asarray(incidence, dtype=np.float64)))
            err = err / np.maximum(cos_t, cos_floor)
        return err

    def __call__(self, ranges: np.ndarray, incidence: Optional[np.ndarray] = None) -> np.ndarray:
        return np.clip(self.max_score - self.error(ranges, incidence), self.min_score, self.max_score)


def incidence_angles(points: np.ndarray, normals: np.ndarray, origin) -> np.ndarray:
    """Angle (rad) between each surface normal and the ray back to the sensor.

    Normals are treated as unoriented, so the result lies in [0, pi/2].
    Zero-length normals or rays give 0.
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    nrm = np.asarray(normals, dtype=np.float64).reshape(-1, 3)
    to_sensor = np.asarray(origin, dtype=np.float64) - pts
    denom = np.linalg.norm(to_sensor, axis=1) * np.linalg.norm(nrm, axis=1)
    dots = np.abs(np.einsum("ij,ij->i", to_sensor, nrm))
    cos_t = np.divide(dots, denom, out=np.ones(len(pts)), where=denom > 1e-12)
    return np.arccos(np.clip(cos_t, 0.0, 1.0))


class AccuracyTracker:
    """Running min/max of per-pose mean accuracy. Thread-safe."""

    def __init__(self):
        self._lock = threading.Lock()
        self._min: Optional[float] = None
        self._max: Optional[float] = None
        self.count = 0

    def update(self, mean_accuracy: float) -> None:
        value = float(mean_accuracy)
        with self._lock:
            self._min = value if self._min is None else min(self._min, value)
            self._max = value if self._max is None else max(self._max, value)
            self.count += 1

    @property
    def range(self) -> Tuple[Optional[float], Optional[float]]:
        with self._lock:
            return self._min, self._max

    def normalize(self, mean_accuracy: float) -> float:
        """Map a mean accuracy into [0, 1] relative to the tracked range.

        Returns 1.0 when the range is degenerate (no spread seen yet).
        """
        lo, hi = self.range
        if lo is None or hi is None or hi - lo <= 0.0:
            return 1.0
        return float(np.clip((mean_accuracy - lo) / (hi - lo), 0.0, 1.0))

    def reset(self) -> None:
        with self._lock:
            self._min = None
            self._max = None
            self.count = 0
