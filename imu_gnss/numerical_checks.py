#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Numerical Validation and Tripwire Module
=========================================

Checks that catch NaN/inf, indefinite covariances and drifted rotations
at the step that produced them.
"""

import numpy as np

from .math_utils import is_rotation


def assert_finite(name, M, t=None, raise_on_fail=False):
    """
    Tripwire: Check matrix/vector for inf/nan and print a short diagnostic.

    Parameters:
    -----------
    name : str
        Descriptive name of the quantity being checked
    M : np.ndarray
        Matrix or vector to validate
    t : float, optional
        Timestamp (for logging context)
    raise_on_fail : bool
        If True, raises ValueError on failure. If False, only prints warning.

    Returns:
    --------
    bool : True if finite, False if inf/nan detected
    """
    if M is None:
        print(f"[TRIPWIRE] {name}: is None!")
        return False

    M = np.asarray(M, dtype=float)
    if np.all(np.isfinite(M)):
        return True

    print(f"[TRIPWIRE] NaN/inf DETECTED in {name} (shape={M.shape}, t={t})")
    if np.any(np.isnan(M)):
        print(f"  NaN locations (first 10): {np.argwhere(np.isnan(M))[:10].tolist()}")
    if np.any(np.isinf(M)):
        print(f"  Inf locations (first 10): {np.argwhere(np.isinf(M))[:10].tolist()}")

    if raise_on_fail:
        raise ValueError(f"NaN/inf detected in {name}")
    return False


def check_covariance_psd(P, name="covariance", min_eigenvalue=1e-12, t=None):
    """
    Validate covariance matrix is symmetric positive semi-definite.

    Parameters:
    -----------
    P : np.ndarray
        Covariance matrix
    name : str
        Descriptive name for logging
    min_eigenvalue : float
        Tolerance on negative eigenvalues
    t : float, optional
        Timestamp for logging

    Returns:
    --------
    is_valid : bool
    """
    if not assert_finite(name, P, t=t):
        return False

    if not np.allclose(P, P.T, rtol=1e-5, atol=1e-12):
        asymmetry = np.max(np.abs(P - P.T))
        print(f"[TRIPWIRE] {name}: not symmetric (max diff={asymmetry:.6e}) at t={t}")
        return False

    try:
        eigvals = np.linalg.eigvalsh(P)
    except np.linalg.LinAlgError:
        print(f"[TRIPWIRE] {name}: eigenvalue computation failed at t={t}")
        return False

    if eigvals[0] < -min_eigenvalue:
        print(f"[TRIPWIRE] {name}: negative eigenvalue ({eigvals[0]:.6e}) at t={t}")
        return False
    return True


def check_rotation(R, name="rotation", tol=1e-6, t=None):
    """True if R is a valid rotation matrix; prints a diagnostic otherwise."""
    if not assert_finite(name, R, t=t):
        return False
    if not is_rotation(R, tol=tol):
        R = np.asarray(R, dtype=float)
        ortho_err = np.linalg.norm(R.T @ R - np.eye(3), ord='fro')
        print(f"[TRIPWIRE] {name}: not a rotation (||RᵀR - I||={ortho_err:.3e}, "
              f"det={np.linalg.det(R):.6f}) at t={t}")
        return False
    return True
