import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from imu_gnss.coordinates import (
    LocalFrame, ecef_to_geodetic, geodetic_to_ecef, geodetic_to_local, local_to_geodetic,
)

ORIGIN = (37.4275, -122.1697, 30.0)


def test_origin_maps_to_zero():
    enu = geodetic_to_local(ORIGIN, ORIGIN)
    assert np.allclose(enu, np.zeros(3), atol=1e-6)


@pytest.mark.parametrize("enu", [
    (1.0, 0.0, 0.0),
    (0.0, 250.0, -3.0),
    (-1200.0, 800.0, 40.0),
    (35000.0, -20000.0, 150.0),
])
def test_local_geodetic_round_trip(enu):
    lla = local_to_geodetic(ORIGIN, enu)
    back = geodetic_to_local(ORIGIN, lla)
    assert np.allclose(back, enu, atol=1e-6)

    again = local_to_geodetic(ORIGIN, back)
    assert np.allclose(again[:2], lla[:2], atol=1e-9)
    assert abs(again[2] - lla[2]) < 1e-6


def test_enu_axes_point_east_north_up():
    north = local_to_geodetic(ORIGIN, (0.0, 100.0, 0.0))
    east = local_to_geodetic(ORIGIN, (100.0, 0.0, 0.0))
    up = local_to_geodetic(ORIGIN, (0.0, 0.0, 100.0))

    assert north[0] > ORIGIN[0] and abs(north[1] - ORIGIN[1]) < 1e-9
    assert east[1] > ORIGIN[1] and abs(east[0] - ORIGIN[0]) < 1e-6
    assert abs(up[2] - (ORIGIN[2] + 100.0)) < 1e-3


def test_ecef_round_trip():
    xyz = geodetic_to_ecef(ORIGIN)
    # WGS84 radius bounds
    assert 6.35e6 < np.linalg.norm(xyz) < 6.40e6
    assert np.allclose(ecef_to_geodetic(xyz), ORIGIN, atol=1e-9)


def test_local_frame_origin_is_immutable():
    frame = LocalFrame(ORIGIN)
    with pytest.raises(ValueError):
        frame.origin[0] = 0.0
    assert np.allclose(frame.origin, ORIGIN)


@pytest.mark.parametrize("origin", [
    (np.nan, 0.0, 0.0),
    (95.0, 10.0, 0.0),
    (1.0, 2.0),
])
def test_local_frame_rejects_bad_origin(origin):
    with pytest.raises(ValueError):
        LocalFrame(origin)
