#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
IMU Propagation Module

Strapdown mechanization of the nominal state and linearized propagation of
the 15-dim error-state covariance.

Nominal state (ENU world, body -> world rotation R):
    a_w   = R (f - ba) + g,        g = [0, 0, -g_norm]
    p_new = p + v dt + ½ a_w dt²
    v_new = v + a_w dt
    R_new = R Exp((ω - bg) dt)
    ba, bg held constant (random walks)

Error state δx = [δp, δv, δθ, δba, δbg]:
    P_new = F P Fᵀ + G Qc Gᵀ dt

Integration order:
    euler    - current sample's (ω, f) over the whole interval
    midpoint - average of previous and current (ω, f) over the interval

Author: IMU-GNSS project
"""

from typing import Optional

import numpy as np

from . import config as _config
from .config import FilterConfig
from .data_types import InertialSample, NominalState
from .errors import ImuGap, InvalidSample, NonMonotonicTimestamp
from .filter_state import (
    IDX_BA, IDX_BG, IDX_P, IDX_THETA, IDX_V, STATE_DIM,
    FilterState, ensure_covariance_valid,
)
from .math_utils import orthonormalize, skew_symmetric, so3_exp

NOISE_DIM = 12


def compute_error_state_jacobian(R_body_to_world: np.ndarray, a_corr: np.ndarray,
                                 w_corr: np.ndarray, dt: float) -> np.ndarray:
    """
    Compute error-state transition matrix F for ESKF propagation.

    Error state: δx = [δp, δv, δθ, δba, δbg]^T (15 dimensions)

    Args:
        R_body_to_world: Rotation matrix from body to world frame
        a_corr: Bias-corrected specific force (body frame)
        w_corr: Bias-corrected angular velocity (body frame)
        dt: Time step

    Returns:
        F: 15×15 error-state transition matrix
    """
    F = np.eye(STATE_DIM, dtype=float)

    # δp depends on δv
    F[IDX_P, IDX_V] = np.eye(3) * dt

    # δv depends on δθ and δba
    F[IDX_V, IDX_THETA] = -R_body_to_world @ skew_symmetric(a_corr) * dt
    F[IDX_V, IDX_BA] = -R_body_to_world * dt

    # δθ depends on previous δθ and δbg
    F[IDX_THETA, IDX_THETA] = so3_exp(w_corr * dt).T
    F[IDX_THETA, IDX_BG] = -np.eye(3) * dt

    return F


def compute_noise_jacobian(R_body_to_world: np.ndarray) -> np.ndarray:
    """
    Map the noise vector [n_a, n_ω, n_ba, n_bg] onto the error state.

    Returns:
        G: 15×12 noise Jacobian
    """
    G = np.zeros((STATE_DIM, NOISE_DIM), dtype=float)
    G[IDX_V, 0:3] = -R_body_to_world
    G[IDX_THETA, 3:6] = -np.eye(3)
    G[IDX_BA, 6:9] = np.eye(3)
    G[IDX_BG, 9:12] = np.eye(3)
    return G


def compute_continuous_noise(acc_n: float, gyr_n: float,
                             acc_w: float, gyr_w: float) -> np.ndarray:
    """
    Continuous-time noise spectral density Qc (12×12) from the four
    configured noise densities.
    """
    Qc = np.zeros((NOISE_DIM, NOISE_DIM), dtype=float)
    Qc[0:3, 0:3] = np.eye(3) * acc_n**2
    Qc[3:6, 3:6] = np.eye(3) * gyr_n**2
    Qc[6:9, 6:9] = np.eye(3) * acc_w**2
    Qc[9:12, 9:12] = np.eye(3) * gyr_w**2
    return Qc


def propagate_nominal_state(nominal: NominalState, w_meas: np.ndarray,
                            a_meas: np.ndarray, dt: float,
                            gravity: np.ndarray, timestamp: float) -> NominalState:
    """
    Strapdown integration of the nominal state over one step.

    Args:
        nominal: State at the start of the interval
        w_meas: Angular velocity used for the interval (body frame)
        a_meas: Specific force used for the interval (body frame)
        dt: Time step
        gravity: Gravity vector in world frame
        timestamp: Timestamp of the resulting state

    Returns:
        New NominalState (input is not modified)
    """
    w_corr = w_meas - nominal.bg
    a_corr = a_meas - nominal.ba

    a_world = nominal.R @ a_corr + gravity

    return NominalState(
        timestamp=float(timestamp),
        p=nominal.p + nominal.v * dt + 0.5 * a_world * dt * dt,
        v=nominal.v + a_world * dt,
        R=orthonormalize(nominal.R @ so3_exp(w_corr * dt)),
        ba=nominal.ba.copy(),
        bg=nominal.bg.copy(),
    )


def propagate_covariance(P: np.ndarray, F: np.ndarray, G: np.ndarray,
                         Qc: np.ndarray, dt: float) -> np.ndarray:
    """P_new = F P Fᵀ + G Qc Gᵀ dt, symmetrized and kept PSD."""
    P_new = F @ P @ F.T + G @ Qc @ G.T * dt
    return ensure_covariance_valid(P_new, label="Predict")


class Predictor:
    """IMU-driven prediction step of the ESKF."""

    def __init__(self, config: FilterConfig):
        self.config = config
        self.gravity = np.array([0.0, 0.0, -config.g_norm], dtype=float)
        self.Qc = compute_continuous_noise(config.acc_n, config.gyr_n,
                                           config.acc_w, config.gyr_w)

    def step_dt(self, prev_t: Optional[float], sample: InertialSample) -> float:
        """
        Validate a sample against the previous consumed timestamp.

        Returns:
            dt in seconds (0.0 for the very first sample)

        Raises:
            InvalidSample: non-finite values
            NonMonotonicTimestamp: dt <= 0
            ImuGap: dt > max_dt
        """
        if not sample.is_finite():
            raise InvalidSample(f"non-finite inertial sample at t={sample.timestamp}")
        if prev_t is None:
            return 0.0
        dt = sample.timestamp - prev_t
        if dt <= 0.0:
            raise NonMonotonicTimestamp(
                f"t={sample.timestamp:.6f} is not after previous t={prev_t:.6f} (dt={dt:.6f})")
        if dt > self.config.max_dt:
            raise ImuGap(f"dt={dt:.3f}s exceeds max_dt={self.config.max_dt:.3f}s "
                         f"at t={sample.timestamp:.6f}")
        return dt

    def interval_measurements(self, sample: InertialSample,
                              prev_sample: Optional[InertialSample]):
        """(ω, f) applied over the interval ending at `sample`."""
        if self.config.integration == "midpoint" and prev_sample is not None:
            w = 0.5 * (prev_sample.angular_velocity + sample.angular_velocity)
            a = 0.5 * (prev_sample.specific_force + sample.specific_force)
            return w, a
        return np.array(sample.angular_velocity), np.array(sample.specific_force)

    def predict(self, state: FilterState, sample: InertialSample, dt: float,
                prev_sample: Optional[InertialSample] = None) -> FilterState:
        """
        Propagate (nominal, P) over dt using one inertial sample.

        Args:
            state: Current filter state (not modified)
            sample: Inertial sample closing the interval
            dt: Validated step length (see step_dt)
            prev_sample: Previous sample, used by midpoint integration

        Returns:
            New FilterState stamped at sample.timestamp
        """
        nominal = state.nominal
        w_meas, a_meas = self.interval_measurements(sample, prev_sample)

        w_corr = w_meas - nominal.bg
        a_corr = a_meas - nominal.ba

        # Jacobians are evaluated at the start of the interval
        F = compute_error_state_jacobian(nominal.R, a_corr, w_corr, dt)
        G = compute_noise_jacobian(nominal.R)

        nominal_new = propagate_nominal_state(nominal, w_meas, a_meas, dt,
                                              self.gravity, sample.timestamp)
        P_new = propagate_covariance(state.P, F, G, self.Qc, dt)

        if _config.VERBOSE_DEBUG:
            print(f"[PREDICT] t={sample.timestamp:.6f} dt={dt:.4f} "
                  f"p={nominal_new.p} v={nominal_new.v} tr(P)={np.trace(P_new):.4e}")

        return FilterState(nominal_new, P_new)
