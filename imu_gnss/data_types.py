"""Value records exchanged with the fusion engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import numpy as np


def _frozen_vector(values, size: int, name: str) -> np.ndarray:
    arr = np.array(values, dtype=float).reshape(-1)
    if arr.shape != (size,):
        raise ValueError(f"{name} must have {size} components, got shape {arr.shape}")
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class InertialSample:
    """Single IMU measurement."""

    timestamp: float  # seconds, monotonic
    angular_velocity: np.ndarray  # [wx, wy, wz] rad/s, body frame
    specific_force: np.ndarray  # [ax, ay, az] m/s², body frame

    def __post_init__(self):
        object.__setattr__(self, "timestamp", float(self.timestamp))
        object.__setattr__(self, "angular_velocity",
                           _frozen_vector(self.angular_velocity, 3, "angular_velocity"))
        object.__setattr__(self, "specific_force",
                           _frozen_vector(self.specific_force, 3, "specific_force"))

    @property
    def w(self) -> np.ndarray:
        """Alias for angular velocity (gyro)."""
        return self.angular_velocity

    @property
    def a(self) -> np.ndarray:
        """Alias for specific force (accelerometer)."""
        return self.specific_force

    def is_finite(self) -> bool:
        return bool(np.isfinite(self.timestamp)
                    and np.all(np.isfinite(self.angular_velocity))
                    and np.all(np.isfinite(self.specific_force)))


@dataclass(frozen=True, eq=False)
class PositionFix:
    """Absolute geodetic position fix (e.g. a NavSatFix message)."""

    timestamp: float  # seconds
    lla: np.ndarray  # [lat deg, lon deg, alt m]
    covariance: np.ndarray  # 3x3 ENU position covariance [m²]
    status: int  # receiver quality indicator

    def __post_init__(self):
        object.__setattr__(self, "timestamp", float(self.timestamp))
        object.__setattr__(self, "lla", _frozen_vector(self.lla, 3, "lla"))
        cov = np.array(self.covariance, dtype=float)
        if cov.size == 9:
            cov = cov.reshape(3, 3)
        if cov.shape != (3, 3):
            raise ValueError(f"covariance must be 3x3, got shape {cov.shape}")
        cov.setflags(write=False)
        object.__setattr__(self, "covariance", cov)
        object.__setattr__(self, "status", int(self.status))

    @property
    def lat(self) -> float:
        return float(self.lla[0])

    @property
    def lon(self) -> float:
        return float(self.lla[1])

    @property
    def alt(self) -> float:
        return float(self.lla[2])


@dataclass
class NominalState:
    """
    Nominal (full) navigation state.

    Error-state ordering used by the covariance:
        idx 0..2   : δp  (position error)
        idx 3..5   : δv  (velocity error)
        idx 6..8   : δθ  (rotation error, body frame)
        idx 9..11  : δba (accel bias error)
        idx 12..14 : δbg (gyro bias error)
    """

    timestamp: float = 0.0
    p: np.ndarray = field(default_factory=lambda: np.zeros(3))  # ENU [m]
    v: np.ndarray = field(default_factory=lambda: np.zeros(3))  # ENU [m/s]
    R: np.ndarray = field(default_factory=lambda: np.eye(3))  # body -> ENU
    ba: np.ndarray = field(default_factory=lambda: np.zeros(3))  # [m/s²]
    bg: np.ndarray = field(default_factory=lambda: np.zeros(3))  # [rad/s]

    def copy(self) -> "NominalState":
        return NominalState(
            timestamp=float(self.timestamp),
            p=np.array(self.p, dtype=float),
            v=np.array(self.v, dtype=float),
            R=np.array(self.R, dtype=float),
            ba=np.array(self.ba, dtype=float),
            bg=np.array(self.bg, dtype=float),
        )


class Outcome(Enum):
    BUFFERED = "buffered"
    PROPAGATED = "propagated"
    INITIALIZED = "initialized"
    UPDATED = "updated"
    DEFERRED = "deferred"
    REJECTED = "rejected"


@dataclass(frozen=True)
class StepResult:
    """Result of one consume_inertial / consume_fix call."""

    outcome: Outcome
    reason: Optional[str] = None  # FusionError subclass name when rejected
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome is not Outcome.REJECTED


@dataclass(frozen=True, eq=False)
class StateSnapshot:
    """Observer payload published after each successful predict/update."""

    timestamp: float
    state: NominalState
    pose_covariance: np.ndarray  # 6x6 over (position, orientation)
    quaternion_xyzw: np.ndarray
    lla: np.ndarray  # geodetic position of the IMU estimate
    origin_lla: np.ndarray
