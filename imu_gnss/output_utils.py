#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Fusion Output Utilities Module

Collaborators that subscribe to the engine and persist or accumulate its
output. None of them touch the filter state.

CSV files (no header by default, 15 fractional digits, ", " separator):
- fusion_state.csv: t, px, py, pz, qx, qy, qz, qw, lat, lon, alt
- fusion_gps.csv:   t, lat, lon, alt

Usage:
    engine = FilterEngine(config)
    with StateCsvLogger("out/") as state_log, FixCsvLogger("out/") as gps_log:
        engine.add_observer(state_log)
        engine.add_fix_observer(gps_log)
        ...

Author: IMU-GNSS project
"""

import os
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from .data_types import StateSnapshot

STATE_CSV = "fusion_state.csv"
GPS_CSV = "fusion_gps.csv"

STATE_COLUMNS = ["t", "px", "py", "pz", "qx", "qy", "qz", "qw", "lat", "lon", "alt"]
GPS_COLUMNS = ["t", "lat", "lon", "alt"]


def _format_row(values) -> str:
    return ", ".join(f"{float(v):.15f}" for v in values) + "\n"


class _CsvWriter:
    """Line-oriented CSV writer kept open for the lifetime of a run."""

    def __init__(self, output_dir: str, filename: str, columns: List[str],
                 write_header: bool = False, enabled: bool = True):
        self.output_dir = output_dir
        self.enabled = enabled
        self.path = os.path.join(output_dir, filename)
        self.rows_written = 0
        self._f = None

        if self.enabled:
            os.makedirs(self.output_dir, exist_ok=True)
            self._f = open(self.path, "w", newline="")
            if write_header:
                self._f.write(", ".join(columns) + "\n")

    def _write(self, values):
        if self._f is None:
            return
        self._f.write(_format_row(values))
        self.rows_written += 1

    def flush(self):
        if self._f is not None:
            self._f.flush()

    def close(self):
        if self._f is not None:
            self._f.close()
            self._f = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class StateCsvLogger(_CsvWriter):
    """State observer writing fusion_state.csv."""

    def __init__(self, output_dir: str, write_header: bool = False, enabled: bool = True):
        super().__init__(output_dir, STATE_CSV, STATE_COLUMNS, write_header, enabled)

    def __call__(self, snapshot: StateSnapshot):
        self.log_state(snapshot)

    def log_state(self, snapshot: StateSnapshot):
        p = snapshot.state.p
        q = snapshot.quaternion_xyzw
        lla = snapshot.lla
        self._write([snapshot.timestamp, p[0], p[1], p[2],
                     q[0], q[1], q[2], q[3], lla[0], lla[1], lla[2]])


class FixCsvLogger(_CsvWriter):
    """Fix observer writing fusion_gps.csv."""

    def __init__(self, output_dir: str, write_header: bool = False, enabled: bool = True):
        super().__init__(output_dir, GPS_CSV, GPS_COLUMNS, write_header, enabled)

    def __call__(self, timestamp: float, lla: np.ndarray):
        self.log_fix(timestamp, lla)

    def log_fix(self, timestamp: float, lla: np.ndarray):
        self._write([timestamp, lla[0], lla[1], lla[2]])


@dataclass(frozen=True, eq=False)
class PoseStamped:
    timestamp: float
    position: np.ndarray
    quaternion_xyzw: np.ndarray
    covariance: np.ndarray  # 6×6 (position, orientation)


class PathRecorder:
    """
    Accumulating path of published poses (the odometry + path stream,
    without any transport).
    """

    def __init__(self, max_length: Optional[int] = None):
        self.max_length = max_length
        self.poses: List[PoseStamped] = []

    def __call__(self, snapshot: StateSnapshot):
        self.poses.append(PoseStamped(
            timestamp=snapshot.timestamp,
            position=np.array(snapshot.state.p),
            quaternion_xyzw=np.array(snapshot.quaternion_xyzw),
            covariance=np.array(snapshot.pose_covariance),
        ))
        if self.max_length is not None and len(self.poses) > self.max_length:
            del self.poses[0]

    def __len__(self):
        return len(self.poses)

    @property
    def latest(self) -> Optional[PoseStamped]:
        return self.poses[-1] if self.poses else None

    def positions(self) -> np.ndarray:
        """N×3 array of recorded positions."""
        if not self.poses:
            return np.zeros((0, 3))
        return np.vstack([pose.position for pose in self.poses])

    def path_length(self) -> float:
        """Travelled distance along the recorded path [m]."""
        pts = self.positions()
        if len(pts) < 2:
            return 0.0
        return float(np.sum(np.linalg.norm(np.diff(pts, axis=0), axis=1)))
