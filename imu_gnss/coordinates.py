#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Coordinate Conversion Module

Geodetic (WGS84 lat/lon/alt) <-> local ENU tangent plane anchored at a
fixed origin.

    geodetic --pyproj--> ECEF --R_enu_ecef--> ENU

pyproj handles the ellipsoid (EPSG:4979 -> EPSG:4978); the ECEF->ENU step
is a plain rotation about the origin. The round trip is exact to well
below a millimetre for points within tens of kilometres of the origin.

Author: IMU-GNSS project
"""

from typing import Sequence

import numpy as np
from pyproj import CRS, Transformer


# =============================================================================
# Projection Cache
# =============================================================================

_proj_cache = {"to_ecef": None, "to_lla": None}


def _transformers():
    """Lazily build the WGS84 geodetic <-> ECEF transformers."""
    if _proj_cache["to_ecef"] is None:
        crs_lla = CRS.from_epsg(4979)   # WGS84 3D geographic
        crs_ecef = CRS.from_epsg(4978)  # WGS84 geocentric
        _proj_cache["to_ecef"] = Transformer.from_crs(crs_lla, crs_ecef, always_xy=True)
        _proj_cache["to_lla"] = Transformer.from_crs(crs_ecef, crs_lla, always_xy=True)
    return _proj_cache["to_ecef"], _proj_cache["to_lla"]


def geodetic_to_ecef(lla: Sequence[float]) -> np.ndarray:
    """[lat deg, lon deg, alt m] -> ECEF [x, y, z] in metres."""
    to_ecef, _ = _transformers()
    x, y, z = to_ecef.transform(float(lla[1]), float(lla[0]), float(lla[2]))
    return np.array([x, y, z], dtype=float)


def ecef_to_geodetic(xyz: Sequence[float]) -> np.ndarray:
    """ECEF [x, y, z] -> [lat deg, lon deg, alt m]."""
    _, to_lla = _transformers()
    lon, lat, alt = to_lla.transform(float(xyz[0]), float(xyz[1]), float(xyz[2]))
    return np.array([lat, lon, alt], dtype=float)


def enu_rotation(lat_deg: float, lon_deg: float) -> np.ndarray:
    """
    Rotation taking ECEF difference vectors into ENU at (lat, lon).

        e = -sinλ dx + cosλ dy
        n = -sinφ cosλ dx - sinφ sinλ dy + cosφ dz
        u =  cosφ cosλ dx + cosφ sinλ dy + sinφ dz
    """
    phi = np.radians(lat_deg)
    lam = np.radians(lon_deg)
    sinp, cosp = np.sin(phi), np.cos(phi)
    sinl, cosl = np.sin(lam), np.cos(lam)
    return np.array([
        [-sinl,         cosl,        0.0],
        [-sinp * cosl, -sinp * sinl, cosp],
        [ cosp * cosl,  cosp * sinl, sinp],
    ], dtype=float)


# =============================================================================
# Public API
# =============================================================================

def geodetic_to_local(origin: Sequence[float], point: Sequence[float]) -> np.ndarray:
    """
    Convert a geodetic point to local ENU coordinates.

    Args:
        origin: Local frame origin [lat deg, lon deg, alt m]
        point: Point to convert [lat deg, lon deg, alt m]

    Returns:
        ENU position [e, n, u] in metres
    """
    return LocalFrame(origin).to_local(point)


def local_to_geodetic(origin: Sequence[float], enu: Sequence[float]) -> np.ndarray:
    """
    Convert local ENU coordinates back to a geodetic point.

    Args:
        origin: Local frame origin [lat deg, lon deg, alt m]
        enu: ENU position [e, n, u] in metres

    Returns:
        [lat deg, lon deg, alt m]
    """
    return LocalFrame(origin).to_geodetic(enu)


class LocalFrame:
    """ENU frame anchored at a fixed geodetic origin."""

    def __init__(self, origin: Sequence[float]):
        origin = np.array(origin, dtype=float).reshape(-1)
        if origin.shape != (3,) or not np.all(np.isfinite(origin)):
            raise ValueError(f"origin must be a finite [lat, lon, alt], got {origin}")
        if not -90.0 <= origin[0] <= 90.0:
            raise ValueError(f"origin latitude out of range: {origin[0]}")
        origin.setflags(write=False)
        self._origin = origin
        self._ecef0 = geodetic_to_ecef(origin)
        self._R_enu_ecef = enu_rotation(origin[0], origin[1])

    @property
    def origin(self) -> np.ndarray:
        return self._origin

    def to_local(self, point: Sequence[float]) -> np.ndarray:
        d = geodetic_to_ecef(point) - self._ecef0
        return self._R_enu_ecef @ d

    def to_geodetic(self, enu: Sequence[float]) -> np.ndarray:
        enu = np.asarray(enu, dtype=float).reshape(3,)
        xyz = self._ecef0 + self._R_enu_ecef.T @ enu
        return ecef_to_geodetic(xyz)
