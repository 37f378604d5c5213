#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Fusion Data Loaders Module

CSV loaders for offline replay of recorded IMU and GNSS streams.

IMU CSV:
    time column (time_ref > stamp_bag > stamp_msg > t), ang_x, ang_y, ang_z,
    lin_x, lin_y, lin_z

GNSS CSV:
    time column (time_ref > stamp_bag > stamp_msg > t), lat, lon, alt,
    optional status, optional covariance as position_covariance_0..8
    (row-major 3×3) or cov_e, cov_n, cov_u (diagonal)
"""

import heapq
import os
from typing import Iterator, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from .data_types import InertialSample, PositionFix

TIME_COLUMNS = ("time_ref", "stamp_bag", "stamp_msg", "t", "timestamp")

FULL_COV_COLUMNS = [f"position_covariance_{i}" for i in range(9)]
DIAG_COV_COLUMNS = ["cov_e", "cov_n", "cov_u"]


def _time_column(df: pd.DataFrame, label: str) -> str:
    for col in TIME_COLUMNS:
        if col in df.columns:
            return col
    raise ValueError(f"{label} CSV missing timestamp column (one of {', '.join(TIME_COLUMNS)})")


def load_imu_csv(path: str) -> List[InertialSample]:
    """Load IMU samples from CSV, sorted by time."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"IMU CSV not found: {path}")

    df = pd.read_csv(path, skipinitialspace=True)
    t_col = _time_column(df, "IMU")

    cols = ["ang_x", "ang_y", "ang_z", "lin_x", "lin_y", "lin_z"]
    for c in cols:
        if c not in df.columns:
            raise ValueError(f"IMU CSV missing column: {c}")

    df = df.sort_values(t_col, kind="mergesort").reset_index(drop=True)
    t = df[t_col].to_numpy(dtype=float)
    ang = df[["ang_x", "ang_y", "ang_z"]].to_numpy(dtype=float)
    lin = df[["lin_x", "lin_y", "lin_z"]].to_numpy(dtype=float)

    recs = [InertialSample(t[i], ang[i], lin[i]) for i in range(len(df))]
    print(f"[IMU] Loaded {len(recs)} samples using {t_col}")
    return recs


def load_fix_csv(path: str, default_status: int = 2,
                 default_sigma_h: float = 1.0,
                 default_sigma_v: float = 2.0) -> List[PositionFix]:
    """
    Load GNSS fixes from CSV, sorted by time.

    Args:
        path: CSV path
        default_status: Status used when the file has no status column
        default_sigma_h: Horizontal 1-sigma [m] when no covariance columns
        default_sigma_v: Vertical 1-sigma [m] when no covariance columns
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"GNSS CSV not found: {path}")

    df = pd.read_csv(path, skipinitialspace=True)
    t_col = _time_column(df, "GNSS")
    for c in ("lat", "lon", "alt"):
        if c not in df.columns:
            raise ValueError(f"GNSS CSV missing column: {c}")

    df = df.sort_values(t_col, kind="mergesort").reset_index(drop=True)
    n = len(df)

    if all(c in df.columns for c in FULL_COV_COLUMNS):
        covs = df[FULL_COV_COLUMNS].to_numpy(dtype=float).reshape(n, 3, 3)
    elif all(c in df.columns for c in DIAG_COV_COLUMNS):
        diag = df[DIAG_COV_COLUMNS].to_numpy(dtype=float)
        covs = np.array([np.diag(d) for d in diag]).reshape(n, 3, 3)
    else:
        cov0 = np.diag([default_sigma_h**2, default_sigma_h**2, default_sigma_v**2])
        covs = np.repeat(cov0[None, :, :], n, axis=0)

    if "status" in df.columns:
        status = df["status"].to_numpy(dtype=int)
    else:
        status = np.full(n, int(default_status))

    t = df[t_col].to_numpy(dtype=float)
    lla = df[["lat", "lon", "alt"]].to_numpy(dtype=float)

    fixes = [PositionFix(t[i], lla[i], covs[i], int(status[i])) for i in range(n)]
    print(f"[GNSS] Loaded {len(fixes)} fixes using {t_col}")
    return fixes


def merge_streams(imu: Sequence[InertialSample],
                  fixes: Sequence[PositionFix]) -> Iterator[Union[InertialSample, PositionFix]]:
    """
    Interleave IMU samples and fixes by timestamp.

    On equal timestamps the IMU sample comes first, so a fix always sees
    every inertial sample up to and including its own time.
    """
    keyed_imu = ((s.timestamp, 0, i, s) for i, s in enumerate(imu))
    keyed_fix = ((f.timestamp, 1, i, f) for i, f in enumerate(fixes))
    for _, _, _, item in heapq.merge(keyed_imu, keyed_fix):
        yield item


def first_fix_index(fixes: Sequence[PositionFix], accepted_status) -> Optional[int]:
    for i, fix in enumerate(fixes):
        if fix.status in accepted_status:
            return i
    return None
