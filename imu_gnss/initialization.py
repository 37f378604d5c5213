"""
Static Initialization

Levels the platform from a buffered window of stationary IMU samples and
anchors the local frame at the first usable GNSS fix.

At rest the accelerometer measures the reaction to gravity, so the mean
specific force points "up" in body frame:

    f ≈ g [-sinθ, cosθ sinφ, cosθ cosφ]
    roll  φ = atan2(fy, fz)
    pitch θ = atan2(-fx, sqrt(fy² + fz²))

Yaw is unobservable from inertial data alone; it is set to the configured
default and carried with a large prior uncertainty.

Author: IMU-GNSS project
"""

from typing import Sequence

import numpy as np

from .config import FilterConfig
from .coordinates import LocalFrame
from .data_types import InertialSample, NominalState, PositionFix
from .errors import Desynchronized, ExcessiveMotion, NotEnoughSamples
from .filter_state import FilterState, initial_covariance
from .math_utils import rotation_from_roll_pitch_yaw


def level_from_specific_force(mean_force: np.ndarray) -> np.ndarray:
    """
    Roll and pitch from the mean body-frame specific force.

    Returns:
        [roll, pitch] in radians
    """
    fx, fy, fz = mean_force
    roll = np.arctan2(fy, fz)
    pitch = np.arctan2(-fx, np.sqrt(fy * fy + fz * fz))
    return np.array([roll, pitch])


class Initializer:
    """Builds the first FilterState from the IMU buffer and a fix."""

    def __init__(self, config: FilterConfig):
        self.config = config

    def check_ready(self, buffer: Sequence[InertialSample], fix: PositionFix):
        """
        Raises:
            NotEnoughSamples: buffer below min_init_samples
            Desynchronized: fix too far from newest buffered sample
        """
        if len(buffer) < self.config.min_init_samples:
            raise NotEnoughSamples(
                f"{len(buffer)} buffered IMU samples, need {self.config.min_init_samples}")

        last = buffer[-1]
        offset = fix.timestamp - last.timestamp
        if abs(offset) > self.config.sync_tolerance:
            raise Desynchronized(
                f"fix t={fix.timestamp:.3f} vs last IMU t={last.timestamp:.3f} "
                f"(|Δt|={abs(offset):.3f}s > {self.config.sync_tolerance:.3f}s)")

    def initialize(self, buffer: Sequence[InertialSample], fix: PositionFix):
        """
        Produce the initial filter state and local frame.

        Args:
            buffer: Buffered IMU samples, oldest first (not modified)
            fix: Triggering position fix

        Returns:
            (FilterState, LocalFrame)

        Raises:
            NotEnoughSamples, Desynchronized, ExcessiveMotion
        """
        self.check_ready(buffer, fix)

        forces = np.array([s.specific_force for s in buffer], dtype=float)
        mean_force = forces.mean(axis=0)
        norm_std = float(np.std(np.linalg.norm(forces, axis=1)))
        if norm_std > self.config.max_init_accel_std:
            raise ExcessiveMotion(
                f"specific-force norm std {norm_std:.3f} m/s² > "
                f"{self.config.max_init_accel_std:.3f} m/s², platform not static")
        if np.linalg.norm(mean_force) < 1e-6:
            raise ExcessiveMotion("mean specific force is zero, cannot level")

        roll, pitch = level_from_specific_force(mean_force)
        R0 = rotation_from_roll_pitch_yaw(roll, pitch, self.config.initial_yaw)

        nominal = NominalState(
            timestamp=buffer[-1].timestamp,
            p=np.zeros(3),
            v=np.zeros(3),
            R=R0,
            ba=np.zeros(3),
            bg=np.zeros(3),
        )
        frame = LocalFrame(fix.lla)

        print(f"[INIT] Leveled from {len(buffer)} IMU samples: "
              f"roll={np.degrees(roll):.2f}°, pitch={np.degrees(pitch):.2f}°, "
              f"yaw={np.degrees(self.config.initial_yaw):.2f}° (default), "
              f"|f|={np.linalg.norm(mean_force):.4f} m/s², std={norm_std:.4f}")
        print(f"[INIT] Origin lat={fix.lat:.8f}, lon={fix.lon:.8f}, alt={fix.alt:.3f}")

        return FilterState(nominal, initial_covariance(self.config)), frame
