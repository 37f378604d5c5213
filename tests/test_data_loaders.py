import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from imu_gnss.data_loaders import first_fix_index, load_fix_csv, load_imu_csv, merge_streams
from imu_gnss.data_types import InertialSample, PositionFix


def test_load_imu_sorts_and_picks_time_column(tmp_path):
    path = tmp_path / "imu.csv"
    path.write_text(
        "stamp_msg,t,ang_x,ang_y,ang_z,lin_x,lin_y,lin_z\n"
        "0.02,9.0,0,0,0.1,0,0,9.81\n"
        "0.01,9.0,0,0,0.2,0,0,9.80\n"
    )
    samples = load_imu_csv(str(path))

    assert [s.timestamp for s in samples] == [0.01, 0.02]
    assert np.allclose(samples[0].angular_velocity, [0, 0, 0.2])
    assert np.allclose(samples[1].specific_force, [0, 0, 9.81])


def test_load_imu_missing_column(tmp_path):
    path = tmp_path / "imu.csv"
    path.write_text("t,ang_x,ang_y,ang_z,lin_x,lin_y\n0,0,0,0,0,0\n")
    with pytest.raises(ValueError):
        load_imu_csv(str(path))


def test_load_imu_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_imu_csv(str(tmp_path / "nope.csv"))


def test_load_fix_full_covariance(tmp_path):
    cov_cols = ",".join(f"position_covariance_{i}" for i in range(9))
    path = tmp_path / "gnss.csv"
    path.write_text(
        f"t,lat,lon,alt,status,{cov_cols}\n"
        "1.0,47.0,8.0,400.0,2,1,0,0,0,1,0,0,0,4\n"
        "0.5,47.1,8.1,401.0,0,2,0,0,0,2,0,0,0,8\n"
    )
    fixes = load_fix_csv(str(path))

    assert [f.timestamp for f in fixes] == [0.5, 1.0]
    assert fixes[0].status == 0
    assert np.allclose(np.diag(fixes[1].covariance), [1.0, 1.0, 4.0])
    assert fixes[1].lat == 47.0 and fixes[1].alt == 400.0


def test_load_fix_diagonal_and_default_covariance(tmp_path):
    diag_path = tmp_path / "diag.csv"
    diag_path.write_text("t,lat,lon,alt,cov_e,cov_n,cov_u\n0.0,1.0,2.0,3.0,0.25,0.36,1.0\n")
    fix = load_fix_csv(str(diag_path))[0]
    assert np.allclose(fix.covariance, np.diag([0.25, 0.36, 1.0]))
    assert fix.status == 2

    bare_path = tmp_path / "bare.csv"
    bare_path.write_text("time_ref,lat,lon,alt\n0.0,1.0,2.0,3.0\n")
    fix = load_fix_csv(str(bare_path), default_status=4, default_sigma_h=2.0, default_sigma_v=3.0)[0]
    assert np.allclose(fix.covariance, np.diag([4.0, 4.0, 9.0]))
    assert fix.status == 4


def test_load_fix_missing_time_column(tmp_path):
    path = tmp_path / "gnss.csv"
    path.write_text("lat,lon,alt\n1,2,3\n")
    with pytest.raises(ValueError):
        load_fix_csv(str(path))


def test_merge_streams_orders_imu_first_on_ties():
    imu = [InertialSample(t, (0, 0, 0), (0, 0, 9.81)) for t in (0.0, 0.5, 1.0, 1.5)]
    fixes = [PositionFix(t, (1.0, 2.0, 3.0), np.eye(3), 2) for t in (0.25, 1.0)]

    events = list(merge_streams(imu, fixes))
    kinds = ["imu" if isinstance(e, InertialSample) else "fix" for e in events]

    assert kinds == ["imu", "fix", "imu", "imu", "fix", "imu"]
    assert [e.timestamp for e in events] == sorted(e.timestamp for e in events)


def test_first_fix_index():
    fixes = [PositionFix(t, (1.0, 2.0, 3.0), np.eye(3), s) for t, s in ((0.0, 0), (1.0, 2), (2.0, 2))]
    assert first_fix_index(fixes, (2,)) == 1
    assert first_fix_index(fixes, (5,)) is None
