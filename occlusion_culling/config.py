"""
Configuration for grid, frustum, occlusion and coverage parameters.

Defaults live in DEFAULTS; a JSON file can override any subset of them
and is deep-merged on load:

    cfg = CullingConfig.load("culling.json")
    fov = cfg.field_of_view()
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from pathlib import Path
from typing import Any, Optional

import numpy as np

from occlusion_culling.coverage.accuracy import RangeAccuracyModel
from occlusion_culling.culling.frustum import FieldOfView

logger = logging.getLogger(__name__)

# ── Defaults ──────────────────────────────────────────────────────────────

DEFAULTS: dict[str, Any] = {
    "grid": {
        "leaf_size": [0.5, 0.5, 0.5],
    },
    "frustum": {
        "h_fov_deg": 58.0,
        "v_fov_deg": 45.0,
        "near_m": 0.8,
        "far_m": 5.8,
        "epsilon": 1e-6,
    },
    "occlusion": {
        "boundary_epsilon": 1e-9,
        "workers": 1,
    },
    "set_algebra": {
        "tolerance": 1e-4,
    },
    "accuracy": {
        "coefficient": 0.0285,
        "min_score": 0.0,
        "max_score": 1.0,
        "max_incidence_deg": 80.0,
    },
    "planner": {
        "pose_workers": 1,
        "max_marker_points": 5000,
    },
}


class CullingConfig:
    """Nested-section configuration with JSON overlay. Thread-safe."""

    def __init__(self, overrides: Optional[dict[str, Any]] = None):
        self._lock = threading.Lock()
        self._data: dict[str, Any] = copy.deepcopy(DEFAULTS)
        self.source: Optional[Path] = None
        if overrides:
            self._merge(self._data, overrides)

    @classmethod
    def load(cls, path: Optional[str | Path] = None) -> CullingConfig:
        """Load config from a JSON file, merging with defaults.

        A missing or unreadable file is logged and the defaults are kept.
        """
        cfg = cls()
        if path is None:
            return cfg
        path = Path(path)
        if not path.exists():
            logger.warning("Config file %s not found, using defaults", path)
            return cfg
        try:
            saved = json.loads(path.read_text())
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Failed to load culling config from %s: %s", path, e)
            return cfg
        if not isinstance(saved, dict):
            logger.warning("Ignoring culling config %s: top level is not an object", path)
            return cfg
        cfg._merge(cfg._data, saved)
        cfg.source = path
        logger.info("Loaded culling config from %s", path)
        return cfg

    def _merge(self, base: dict, overlay: dict):
        """Deep-merge overlay into base."""
        for k, v in overlay.items():
            if k in base and isinstance(base[k], dict) and isinstance(v, dict):
                self._merge(base[k], v)
            else:
                base[k] = v

    def get(self, section: str, key: Optional[str] = None) -> Any:
        """Get a config value. If key is None, returns the whole section."""
        with self._lock:
            sec = self._data.get(section, {})
            if key is None:
                return copy.deepcopy(sec)
            return copy.deepcopy(sec.get(key))

    def update(self, data: dict[str, Any]):
        """Deep-merge updates."""
        with self._lock:
            self._merge(self._data, data)

    def get_all(self) -> dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._data)

    def diff(self) -> dict[str, Any]:
        """Return values that differ from defaults."""
        with self._lock:
            return self._diff_dict(DEFAULTS, self._data)

    def _diff_dict(self, defaults: dict, current: dict) -> dict:
        result = {}
        for k, v in current.items():
            if k not in defaults:
                result[k] = v
            elif isinstance(v, dict) and isinstance(defaults[k], dict):
                d = self._diff_dict(defaults[k], v)
                if d:
                    result[k] = d
            elif v != defaults[k]:
                result[k] = v
        return result

    # -- typed builders ----------------------------------------------------

    def leaf_size(self) -> np.ndarray:
        leaf = np.asarray(self.get("grid", "leaf_size"), dtype=np.float64).reshape(-1)
        return np.repeat(leaf, 3) if leaf.size == 1 else leaf

    def field_of_view(self) -> FieldOfView:
        sec = self.get("frustum")
        return FieldOfView.from_degrees(
            sec["h_fov_deg"], sec["v_fov_deg"], sec["near_m"], sec["far_m"]
        )

    def accuracy_model(self) -> RangeAccuracyModel:
        sec = self.get("accuracy")
        return RangeAccuracyModel(
            coefficient=float(sec["coefficient"]),
            min_score=float(sec["min_score"]),
            max_score=float(sec["max_score"]),
            max_incidence_deg=float(sec["max_incidence_deg"]),
        )
