#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
IMU-GNSS Math Utilities Module
==============================

Rotation helpers and small linear-algebra routines shared by the
propagation, initialization and measurement-update code.

Rotation Convention:
--------------------
Orientation is stored as a 3x3 rotation matrix R that maps body-frame
vectors into the local ENU frame:

    v_enu = R @ v_body

Perturbations are applied on the right (body frame):

    R_new = R @ Exp(δθ)

Quaternion Convention:
----------------------
Quaternions leave this module in scipy's [x, y, z, w] ordering, which is
also the column order written to the state log.

Key Operations:
---------------
- skew_symmetric: 3x3 cross-product matrix
- so3_exp: rotation vector -> rotation matrix
- so3_log: rotation matrix -> rotation vector
- orthonormalize: project a drifted matrix back onto SO(3)
- rot_to_quat_xyzw: rotation matrix -> quaternion [x, y, z, w]
- rotation_from_roll_pitch_yaw: ZYX Euler angles -> rotation matrix

Author: IMU-GNSS project
"""

import numpy as np
from scipy.spatial.transform import Rotation as R_scipy


# =============================================================================
# Matrix Operations
# =============================================================================

def skew_symmetric(v: np.ndarray) -> np.ndarray:
    """
    Create skew-symmetric matrix from 3D vector.
    [v]× such that [v]× @ u = v × u (cross product)

    [v]× = [ 0   -vz   vy ]
           [ vz   0   -vx ]
           [-vy   vx   0  ]
    """
    return np.array([
        [0,      -v[2],  v[1]],
        [v[2],    0,    -v[0]],
        [-v[1],   v[0],   0   ]
    ], dtype=float)


def symmetrize(P: np.ndarray) -> np.ndarray:
    """Return (P + P^T) / 2."""
    return (P + P.T) / 2.0


# =============================================================================
# SO(3) Operations
# =============================================================================

def so3_exp(dtheta: np.ndarray) -> np.ndarray:
    """
    Exponential map from a rotation vector to a rotation matrix.

    Small angles use the first-order form I + [δθ]×, re-projected onto SO(3).
    """
    dtheta = np.asarray(dtheta, dtype=float).reshape(3,)
    theta = np.linalg.norm(dtheta)
    if theta < 1e-10:
        return orthonormalize(np.eye(3) + skew_symmetric(dtheta))
    return R_scipy.from_rotvec(dtheta).as_matrix()


def so3_log(R: np.ndarray) -> np.ndarray:
    """Logarithm map: rotation matrix -> rotation vector."""
    return R_scipy.from_matrix(R).as_rotvec()


def orthonormalize(R: np.ndarray) -> np.ndarray:
    """
    Project a 3x3 matrix onto the closest rotation (Frobenius norm).

    Uses SVD: R = U S V^T  ->  U V^T, with the sign of the last singular
    direction flipped if needed so that det = +1.
    """
    U, _, Vt = np.linalg.svd(R)
    R_ortho = U @ Vt
    if np.linalg.det(R_ortho) < 0:
        U[:, 2] *= -1.0
        R_ortho = U @ Vt
    return R_ortho


def is_rotation(R: np.ndarray, tol: float = 1e-9) -> bool:
    """True if R is orthonormal with det = +1 (within tol)."""
    R = np.asarray(R, dtype=float)
    if R.shape != (3, 3) or not np.all(np.isfinite(R)):
        return False
    ortho_err = np.linalg.norm(R.T @ R - np.eye(3), ord='fro')
    return ortho_err < tol and abs(np.linalg.det(R) - 1.0) < tol


# =============================================================================
# Conversions
# =============================================================================

def rot_to_quat_xyzw(R: np.ndarray) -> np.ndarray:
    """Convert 3x3 rotation matrix to quaternion [x, y, z, w]."""
    return R_scipy.from_matrix(R).as_quat()


def rotation_from_roll_pitch_yaw(roll: float, pitch: float, yaw: float) -> np.ndarray:
    """
    Build body-to-ENU rotation from ZYX Euler angles.

    R = Rz(yaw) @ Ry(pitch) @ Rx(roll)
    """
    return R_scipy.from_euler('ZYX', [yaw, pitch, roll]).as_matrix()


def roll_pitch_yaw(R: np.ndarray) -> np.ndarray:
    """Extract [roll, pitch, yaw] (radians) from a body-to-ENU rotation."""
    yaw, pitch, roll = R_scipy.from_matrix(R).as_euler('ZYX')
    return np.array([roll, pitch, yaw])
