import sys
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from imu_gnss.data_types import NominalState, StateSnapshot
from imu_gnss.output_utils import (
    GPS_CSV, STATE_CSV, FixCsvLogger, PathRecorder, StateCsvLogger,
)


def _snapshot(t, p):
    return StateSnapshot(
        timestamp=t,
        state=NominalState(timestamp=t, p=np.array(p, dtype=float)),
        pose_covariance=np.eye(6),
        quaternion_xyzw=np.array([0.0, 0.0, 0.0, 1.0]),
        lla=np.array([47.0, 8.0, 400.0]),
        origin_lla=np.array([47.0, 8.0, 400.0]),
    )


def test_state_logger_writes_rows(tmp_path):
    with StateCsvLogger(str(tmp_path)) as log:
        log(_snapshot(1.0, (1.0, 2.0, 3.0)))
        log(_snapshot(1.5, (1.5, 2.5, 3.5)))
        assert log.rows_written == 2

    lines = (tmp_path / STATE_CSV).read_text().splitlines()
    assert len(lines) == 2
    fields = lines[0].split(", ")
    assert len(fields) == 11
    assert fields[0] == "1.000000000000000"
    assert float(fields[1]) == 1.0
    assert float(fields[7]) == 1.0  # qw
    assert float(fields[8]) == 47.0


def test_fix_logger_with_header(tmp_path):
    with FixCsvLogger(str(tmp_path), write_header=True) as log:
        log(3.25, np.array([47.1, 8.2, 410.5]))

    lines = (tmp_path / GPS_CSV).read_text().splitlines()
    assert lines[0] == "t, lat, lon, alt"
    assert [float(x) for x in lines[1].split(", ")] == [3.25, 47.1, 8.2, 410.5]


def test_disabled_logger_writes_nothing(tmp_path):
    log = StateCsvLogger(str(tmp_path / "off"), enabled=False)
    log(_snapshot(0.0, (0.0, 0.0, 0.0)))
    log.close()
    assert log.rows_written == 0
    assert not (tmp_path / "off").exists()


def test_path_recorder_accumulates():
    path = PathRecorder()
    assert path.latest is None
    assert path.path_length() == 0.0

    for k, p in enumerate([(0, 0, 0), (3, 4, 0), (3, 4, 12)]):
        path(_snapshot(float(k), p))

    assert len(path) == 3
    assert np.array_equal(path.latest.position, [3.0, 4.0, 12.0])
    assert path.positions().shape == (3, 3)
    assert np.isclose(path.path_length(), 17.0)


def test_path_recorder_bounded():
    path = PathRecorder(max_length=2)
    for k in range(5):
        path(_snapshot(float(k), (k, 0, 0)))
    assert len(path) == 2
    assert [pose.timestamp for pose in path.poses] == [3.0, 4.0]


def test_path_recorder_copies_snapshot_data():
    snap = _snapshot(0.0, (1.0, 1.0, 1.0))
    path = PathRecorder()
    path(snap)
    snap.state.p[:] = 0.0
    assert np.array_equal(path.latest.position, [1.0, 1.0, 1.0])
