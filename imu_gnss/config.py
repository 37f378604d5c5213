#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
IMU-GNSS Configuration Module
=============================

Defines the immutable filter configuration and loads it from YAML.

Configuration Structure:
------------------------
The YAML config file contains (every key optional, defaults below):
- imu: IMU noise densities, gravity, buffer and integration settings
- init: static-initialization gates and prior standard deviations
- gnss: accepted fix status codes, innovation conditioning limit and
  pending-fix queue length
- lever_arm: IMU->GNSS antenna offset in body frame [x, y, z]
  (or imu_gnss_extrinsics.transform: 4x4 body_T_gnss)

Frame Conventions:
------------------
- World Frame: ENU (East-North-Up) - local tangent plane at the first fix
- Body Frame: IMU frame, specific force reads +g on the up axis at rest

Sensor Noise Parameters:
------------------------
- acc_n: Accelerometer noise density [m/s²/√Hz]
- gyr_n: Gyroscope noise density [rad/s/√Hz]
- acc_w: Accelerometer bias random walk [m/s³/√Hz]
- gyr_w: Gyroscope bias random walk [rad/s²/√Hz]

Author: IMU-GNSS project
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Tuple

import numpy as np
import yaml

# ========================================
# Debug verbosity control
# ========================================
# Set to True for detailed per-sample debug output
VERBOSE_DEBUG = False

# NavSatStatus.STATUS_GBAS_FIX
DEFAULT_ACCEPTED_FIX_STATUS = (2,)

INTEGRATION_METHODS = ("euler", "midpoint")


@dataclass(frozen=True)
class FilterConfig:
    """Construction-time parameters of the fusion engine. Immutable."""

    # IMU noise densities
    acc_n: float = 1e-2
    gyr_n: float = 1e-4
    acc_w: float = 1e-6
    gyr_w: float = 1e-8
    g_norm: float = 9.81

    # Initial covariance priors (1-sigma)
    sigma_p: float = 10.0
    sigma_v: float = 10.0
    sigma_rp: float = float(np.radians(10.0))
    sigma_yaw: float = float(np.radians(100.0))
    sigma_ba: float = 0.02
    sigma_bg: float = 0.02

    # IMU->GNSS antenna lever arm in body frame [m]
    lever_arm: Tuple[float, float, float] = (0.0, 0.0, 0.0)

    # Initialization
    imu_buffer_size: int = 200
    min_init_samples: int = 100
    sync_tolerance: float = 0.5
    max_init_accel_std: float = 3.0
    initial_yaw: float = 0.0

    # Prediction
    max_dt: float = 0.5
    integration: str = "euler"

    # Measurement update
    accepted_fix_status: Tuple[int, ...] = field(default=DEFAULT_ACCEPTED_FIX_STATUS)
    max_innovation_condition: float = 1e12
    # Fixes newer than the last IMU sample wait for the inertial feed to catch up
    max_pending_fixes: int = 10

    # Observer notifications
    notify_on_predict: bool = False

    def __post_init__(self):
        for name in ("acc_n", "gyr_n", "acc_w", "gyr_w"):
            if getattr(self, name) < 0.0:
                raise ValueError(f"{name} must be non-negative, got {getattr(self, name)}")
        for name in ("sigma_p", "sigma_v", "sigma_rp", "sigma_yaw", "sigma_ba", "sigma_bg",
                     "g_norm", "sync_tolerance", "max_dt", "max_innovation_condition"):
            if not getattr(self, name) > 0.0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.imu_buffer_size < 1:
            raise ValueError(f"imu_buffer_size must be >= 1, got {self.imu_buffer_size}")
        if self.max_pending_fixes < 1:
            raise ValueError(f"max_pending_fixes must be >= 1, got {self.max_pending_fixes}")
        if not 1 <= self.min_init_samples <= self.imu_buffer_size:
            raise ValueError(
                f"min_init_samples must be in [1, imu_buffer_size={self.imu_buffer_size}], "
                f"got {self.min_init_samples}")
        if self.integration not in INTEGRATION_METHODS:
            raise ValueError(f"integration must be one of {INTEGRATION_METHODS}, got {self.integration!r}")
        if len(self.lever_arm) != 3:
            raise ValueError(f"lever_arm must have 3 components, got {self.lever_arm}")
        if len(self.accepted_fix_status) == 0:
            raise ValueError("accepted_fix_status must not be empty")

        # Normalize sequence types so YAML lists and numpy arrays compare equal
        object.__setattr__(self, "lever_arm", tuple(float(x) for x in self.lever_arm))
        object.__setattr__(self, "accepted_fix_status",
                           tuple(int(s) for s in self.accepted_fix_status))

    @property
    def lever_arm_vec(self) -> np.ndarray:
        return np.array(self.lever_arm, dtype=float)

    def with_overrides(self, **kwargs) -> "FilterConfig":
        """Return a copy with some fields replaced (validated again)."""
        return replace(self, **kwargs)


def config_from_dict(config: Dict[str, Any]) -> FilterConfig:
    """
    Convert a nested configuration dictionary (YAML layout) to FilterConfig.

    Missing sections and keys fall back to the FilterConfig defaults.

    Args:
        config: Parsed YAML dictionary

    Returns:
        FilterConfig instance

    Raises:
        ValueError: If a value fails validation
    """
    config = config or {}
    result: Dict[str, Any] = {}

    # IMU parameters
    imu = config.get('imu', {}) or {}
    for key in ('acc_n', 'gyr_n', 'acc_w', 'gyr_w', 'g_norm', 'max_dt'):
        if key in imu:
            result[key] = float(imu[key])
    if 'buffer_size' in imu:
        result['imu_buffer_size'] = int(imu['buffer_size'])
    if 'integration' in imu:
        result['integration'] = str(imu['integration']).lower()

    # Initialization gates and priors
    init = config.get('init', {}) or {}
    if 'min_samples' in init:
        result['min_init_samples'] = int(init['min_samples'])
    if 'sync_tolerance' in init:
        result['sync_tolerance'] = float(init['sync_tolerance'])
    if 'max_accel_std' in init:
        result['max_init_accel_std'] = float(init['max_accel_std'])
    if 'initial_yaw_deg' in init:
        result['initial_yaw'] = float(np.radians(init['initial_yaw_deg']))
    for key in ('sigma_p', 'sigma_v', 'sigma_ba', 'sigma_bg'):
        if key in init:
            result[key] = float(init[key])
    if 'sigma_rp_deg' in init:
        result['sigma_rp'] = float(np.radians(init['sigma_rp_deg']))
    if 'sigma_yaw_deg' in init:
        result['sigma_yaw'] = float(np.radians(init['sigma_yaw_deg']))

    # GNSS acceptance policy
    gnss = config.get('gnss', {}) or {}
    if 'accepted_status' in gnss:
        status = gnss['accepted_status']
        if isinstance(status, int):
            status = [status]
        result['accepted_fix_status'] = tuple(int(s) for s in status)
    if 'max_innovation_condition' in gnss:
        result['max_innovation_condition'] = float(gnss['max_innovation_condition'])
    if 'max_pending' in gnss:
        result['max_pending_fixes'] = int(gnss['max_pending'])

    # IMU-GNSS Lever Arm (optional - defaults to zero if not specified)
    if 'lever_arm' in config:
        result['lever_arm'] = tuple(float(x) for x in config['lever_arm'])
    elif 'imu_gnss_extrinsics' in config:
        body_t_gnss = np.array(config['imu_gnss_extrinsics']['transform'], dtype=np.float64)
        result['lever_arm'] = tuple(float(x) for x in body_t_gnss[:3, 3])

    if 'notify_on_predict' in config:
        result['notify_on_predict'] = bool(config['notify_on_predict'])

    return FilterConfig(**result)


def load_config(config_path: str) -> FilterConfig:
    """
    Load YAML configuration file into a FilterConfig.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        FilterConfig

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is malformed
        ValueError: If a parameter is out of range

    Example:
        >>> config = load_config("configs/imu_gnss_default.yaml")
        >>> print(f"Lever arm: {config.lever_arm}")
    """
    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)

    if config is not None and not isinstance(config, dict):
        raise ValueError(f"Config root must be a mapping, got {type(config).__name__}")

    return config_from_dict(config)
