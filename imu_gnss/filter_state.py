#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Filter State Module

Nominal state + error-state covariance pair for the IMU-GNSS ESKF.

Error State (15):
    idx 0..2   : δp  (position error)
    idx 3..5   : δv  (velocity error)
    idx 6..8   : δθ  (rotation error - 3D!)
    idx 9..11  : δba (accel bias error)
    idx 12..14 : δbg (gyro bias error)

A FilterState is never mutated in place by the filter: predict and update
build a new one from copies and the engine swaps it in.

Author: IMU-GNSS project
"""

import numpy as np
from filterpy.common import pretty_str

from .config import FilterConfig
from .data_types import NominalState
from .math_utils import rot_to_quat_xyzw, symmetrize

STATE_DIM = 15

IDX_P = slice(0, 3)
IDX_V = slice(3, 6)
IDX_THETA = slice(6, 9)
IDX_BA = slice(9, 12)
IDX_BG = slice(12, 15)


def ensure_covariance_valid(P: np.ndarray, label: str = "",
                            min_eigenvalue: float = 0.0,
                            verbose: bool = False) -> np.ndarray:
    """
    Ensure covariance matrix is valid (symmetric + positive semi-definite).

    Numerical errors during propagation/update can cause:
    1. Asymmetry: P ≠ P^T (floating-point rounding)
    2. Negative eigenvalues: loss of PSD property

    Args:
        P: Covariance matrix (n×n)
        label: Debug label for logging
        min_eigenvalue: Eigenvalue floor; eigenvalues below it are lifted
        verbose: Print asymmetry diagnostics

    Returns:
        P_valid: Fixed covariance matrix
    """
    if verbose:
        asymmetry = np.linalg.norm(P - P.T, ord='fro')
        if asymmetry > 1e-6:
            print(f"[COV_CHECK] {label}: Asymmetry detected (||P - P^T|| = {asymmetry:.3e}), symmetrizing")
    P = symmetrize(P)

    eigvals, eigvecs = np.linalg.eigh(P)
    if eigvals[0] < min_eigenvalue:
        if eigvals[0] < -1e-9 * max(1.0, eigvals[-1]):
            print(f"[COV_CHECK] {label}: Negative eigenvalue λ_min = {eigvals[0]:.3e}, "
                  f"clipping to {min_eigenvalue:.1e}")
        eigvals = np.maximum(eigvals, min_eigenvalue)
        P = symmetrize((eigvecs * eigvals) @ eigvecs.T)

    return P


def initial_covariance(config: FilterConfig) -> np.ndarray:
    """
    Build the 15×15 prior covariance from the configured 1-sigma values.

    P0 = diag(σp² I, σv² I, σrp², σrp², σyaw², σba² I, σbg² I)
    """
    P = np.zeros((STATE_DIM, STATE_DIM), dtype=float)
    P[IDX_P, IDX_P] = np.eye(3) * config.sigma_p**2
    P[IDX_V, IDX_V] = np.eye(3) * config.sigma_v**2
    P[6, 6] = config.sigma_rp**2
    P[7, 7] = config.sigma_rp**2
    P[8, 8] = config.sigma_yaw**2
    P[IDX_BA, IDX_BA] = np.eye(3) * config.sigma_ba**2
    P[IDX_BG, IDX_BG] = np.eye(3) * config.sigma_bg**2
    return P


class FilterState:
    """(NominalState, ErrorCovariance) pair."""

    def __init__(self, nominal: NominalState, P: np.ndarray):
        P = np.asarray(P, dtype=float)
        if P.shape != (STATE_DIM, STATE_DIM):
            raise ValueError(f"Covariance must be {STATE_DIM}x{STATE_DIM}, got {P.shape}")
        self.nominal = nominal
        self.P = P

    @property
    def timestamp(self) -> float:
        return self.nominal.timestamp

    def copy(self) -> "FilterState":
        return FilterState(self.nominal.copy(), self.P.copy())

    def pose_covariance(self) -> np.ndarray:
        """
        6×6 covariance over (position, orientation):

            [ P_pp  P_pθ ]
            [ P_θp  P_θθ ]
        """
        idx = np.r_[0:3, 6:9]
        return self.P[np.ix_(idx, idx)].copy()

    def quaternion_xyzw(self) -> np.ndarray:
        return rot_to_quat_xyzw(self.nominal.R)

    def fingerprint(self) -> bytes:
        """Raw bytes of every numeric field, for bit-exact comparisons."""
        n = self.nominal
        return b"".join([
            np.float64(n.timestamp).tobytes(),
            np.ascontiguousarray(n.p).tobytes(),
            np.ascontiguousarray(n.v).tobytes(),
            np.ascontiguousarray(n.R).tobytes(),
            np.ascontiguousarray(n.ba).tobytes(),
            np.ascontiguousarray(n.bg).tobytes(),
            np.ascontiguousarray(self.P).tobytes(),
        ])

    def __repr__(self):
        n = self.nominal
        return '\n'.join([
            'FilterState object',
            pretty_str('t', n.timestamp),
            pretty_str('p', n.p),
            pretty_str('v', n.v),
            pretty_str('R', n.R),
            pretty_str('ba', n.ba),
            pretty_str('bg', n.bg),
            pretty_str('P', self.P),
        ])
