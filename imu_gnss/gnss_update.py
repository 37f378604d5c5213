#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
GNSS Position Update Module

Loosely-coupled absolute position update with IMU->antenna lever arm.

Measurement model (ENU):
    z = p + R l + n,     n ~ N(0, R_k)

    r = z - (p + R l)
    H = [ I   0   -R[l]×   0   0 ]        (3×15)
    S = H P Hᵀ + R_k
    K = P Hᵀ S⁻¹
    δx = K r

Injection:
    p += δp,  v += δv,  R = orthonormalize(R Exp(δθ)),  ba += δba,  bg += δbg

Covariance (Joseph form):
    P' = (I - K H) P (I - K H)ᵀ + K R_k Kᵀ

The error state is reset to zero after injection (reset Jacobian ≈ I).

Every step is a pure function of (state, measurement) so H, K and the
injection can be unit-tested in isolation.

Author: IMU-GNSS project
"""

from dataclasses import dataclass
from typing import Tuple

import numpy as np
import scipy.linalg as linalg
from filterpy.stats import logpdf

from . import config as _config
from .config import FilterConfig
from .coordinates import LocalFrame
from .data_types import NominalState, PositionFix
from .errors import InvalidFixQuality, SingularInnovationCovariance
from .filter_state import (
    IDX_BA, IDX_BG, IDX_P, IDX_THETA, IDX_V, STATE_DIM,
    FilterState, ensure_covariance_valid,
)
from .math_utils import orthonormalize, skew_symmetric, so3_exp, symmetrize


@dataclass(frozen=True, eq=False)
class UpdateReport:
    """Diagnostics of one accepted GNSS update."""

    timestamp: float
    residual: np.ndarray  # 3
    innovation_cov: np.ndarray  # 3×3
    gain: np.ndarray  # 15×3
    correction: np.ndarray  # 15
    mahalanobis: float
    log_likelihood: float


# =============================================================================
# Pure building blocks
# =============================================================================

def check_fix_quality(fix: PositionFix, accepted_status) -> None:
    """
    Gate on receiver status and covariance sanity.

    Raises:
        InvalidFixQuality
    """
    if fix.status not in accepted_status:
        raise InvalidFixQuality(
            f"status {fix.status} not in accepted {tuple(accepted_status)}")
    if not np.all(np.isfinite(fix.lla)):
        raise InvalidFixQuality("non-finite fix position")
    cov = fix.covariance
    if not np.all(np.isfinite(cov)):
        raise InvalidFixQuality("non-finite fix covariance")
    if not np.allclose(cov, cov.T, rtol=1e-6, atol=1e-12):
        raise InvalidFixQuality("fix covariance is not symmetric")
    if np.linalg.eigvalsh(symmetrize(cov))[0] < 0.0:
        raise InvalidFixQuality("fix covariance is not positive semi-definite")


def predicted_measurement(nominal: NominalState, lever_arm: np.ndarray) -> np.ndarray:
    """Antenna position predicted by the nominal state: p + R l."""
    return nominal.p + nominal.R @ lever_arm


def measurement_jacobian(nominal: NominalState, lever_arm: np.ndarray) -> np.ndarray:
    """
    H (3×15): I on δp, -R [l]× on δθ, zero elsewhere.
    """
    H = np.zeros((3, STATE_DIM), dtype=float)
    H[:, IDX_P] = np.eye(3)
    H[:, IDX_THETA] = -nominal.R @ skew_symmetric(lever_arm)
    return H


def innovation_covariance(P: np.ndarray, H: np.ndarray, R_meas: np.ndarray) -> np.ndarray:
    """S = H P Hᵀ + R_k (symmetrized)."""
    return symmetrize(H @ P @ H.T + R_meas)


def kalman_gain(P: np.ndarray, H: np.ndarray, S: np.ndarray,
                max_condition: float = 1e12) -> np.ndarray:
    """
    K = P Hᵀ S⁻¹, solved through a Cholesky factorization of S.

    Raises:
        SingularInnovationCovariance: S non-finite, not PD, or cond(S) > max_condition
    """
    if not np.all(np.isfinite(S)):
        raise SingularInnovationCovariance("innovation covariance has NaN/inf")
    cond = np.linalg.cond(S)
    if not np.isfinite(cond) or cond > max_condition:
        raise SingularInnovationCovariance(
            f"innovation covariance ill-conditioned (cond={cond:.3e} > {max_condition:.1e})")
    try:
        c_and_lower = linalg.cho_factor(S)
    except linalg.LinAlgError as e:
        raise SingularInnovationCovariance(f"innovation covariance not positive definite: {e}")
    # K = P Hᵀ S⁻¹  <=>  Kᵀ = S⁻¹ H P  (S, P symmetric)
    return linalg.cho_solve(c_and_lower, H @ P).T


def inject_error_state(nominal: NominalState, dx: np.ndarray) -> NominalState:
    """
    Apply error-state correction to nominal state.

    Additive for p, v and biases, multiplicative (right) for orientation.
    """
    dx = np.asarray(dx, dtype=float).reshape(STATE_DIM,)
    return NominalState(
        timestamp=nominal.timestamp,
        p=nominal.p + dx[IDX_P],
        v=nominal.v + dx[IDX_V],
        R=orthonormalize(nominal.R @ so3_exp(dx[IDX_THETA])),
        ba=nominal.ba + dx[IDX_BA],
        bg=nominal.bg + dx[IDX_BG],
    )


def joseph_update(P: np.ndarray, K: np.ndarray, H: np.ndarray,
                  R_meas: np.ndarray) -> np.ndarray:
    """P' = (I - K H) P (I - K H)ᵀ + K R Kᵀ, symmetrized and kept PSD."""
    I_KH = np.eye(P.shape[0]) - K @ H
    P_new = I_KH @ P @ I_KH.T + K @ R_meas @ K.T
    return ensure_covariance_valid(P_new, label="GNSS-Update")


# =============================================================================
# Updater
# =============================================================================

class GnssUpdater:
    """GNSS absolute position measurement update."""

    def __init__(self, config: FilterConfig):
        self.config = config
        self.lever_arm = config.lever_arm_vec

    def update(self, state: FilterState, fix: PositionFix,
               frame: LocalFrame) -> Tuple[FilterState, UpdateReport]:
        """
        Run one measurement update.

        Args:
            state: Current filter state (not modified)
            fix: GNSS fix
            frame: Local ENU frame (engine origin)

        Returns:
            (new FilterState, UpdateReport)

        Raises:
            InvalidFixQuality, SingularInnovationCovariance
        """
        check_fix_quality(fix, self.config.accepted_fix_status)

        nominal = state.nominal
        P = state.P

        # 1-3: measured vs predicted antenna position
        p_meas = frame.to_local(fix.lla)
        residual = p_meas - predicted_measurement(nominal, self.lever_arm)

        # 4-6: Jacobian, noise, innovation covariance
        H = measurement_jacobian(nominal, self.lever_arm)
        R_meas = np.array(fix.covariance, dtype=float)
        S = innovation_covariance(P, H, R_meas)

        # 7: gain and correction
        K = kalman_gain(P, H, S, self.config.max_innovation_condition)
        dx = K @ residual

        # 8-10: inject, Joseph covariance, implicit reset of δx.
        # The state keeps its own timestamp: the fix is applied to the latest
        # propagated state, never retrodicted.
        nominal_new = inject_error_state(nominal, dx)
        P_new = joseph_update(P, K, H, R_meas)

        m2 = float(residual @ linalg.cho_solve(linalg.cho_factor(S), residual))
        report = UpdateReport(
            timestamp=fix.timestamp,
            residual=residual,
            innovation_cov=S,
            gain=K,
            correction=dx,
            mahalanobis=float(np.sqrt(m2)),
            log_likelihood=float(logpdf(x=residual, cov=S)),
        )

        if _config.VERBOSE_DEBUG:
            print(f"[GNSS] t={fix.timestamp:.3f} r={residual} |δp|={np.linalg.norm(dx[IDX_P]):.3f}m "
                  f"|δθ|={np.degrees(np.linalg.norm(dx[IDX_THETA])):.3f}° m={report.mahalanobis:.2f}")

        return FilterState(nominal_new, P_new), report
