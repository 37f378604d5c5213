import dataclasses
import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from imu_gnss.config import FilterConfig, config_from_dict, load_config

REPO_ROOT = Path(__file__).resolve().parents[1]


def test_defaults():
    cfg = FilterConfig()
    assert cfg.imu_buffer_size == 200
    assert cfg.min_init_samples == 100
    assert cfg.sync_tolerance == 0.5
    assert cfg.accepted_fix_status == (2,)
    assert cfg.integration == "euler"
    assert np.isclose(cfg.sigma_yaw, np.radians(100.0))
    assert np.array_equal(cfg.lever_arm_vec, np.zeros(3))


def test_config_is_frozen():
    cfg = FilterConfig()
    with pytest.raises(dataclasses.FrozenInstanceError):
        cfg.acc_n = 1.0


def test_load_yaml_sections(tmp_path):
    path = tmp_path / "cfg.yaml"
    path.write_text(
        "imu:\n"
        "  acc_n: 0.05\n"
        "  buffer_size: 50\n"
        "  integration: Midpoint\n"
        "init:\n"
        "  min_samples: 20\n"
        "  initial_yaw_deg: 90\n"
        "  sigma_rp_deg: 5\n"
        "gnss:\n"
        "  accepted_status: 1\n"
        "  max_pending: 3\n"
        "lever_arm: [0.1, -0.2, 0.5]\n"
    )
    cfg = load_config(str(path))

    assert cfg.acc_n == 0.05
    assert cfg.imu_buffer_size == 50
    assert cfg.integration == "midpoint"
    assert cfg.min_init_samples == 20
    assert np.isclose(cfg.initial_yaw, np.pi / 2)
    assert np.isclose(cfg.sigma_rp, np.radians(5.0))
    assert cfg.accepted_fix_status == (1,)
    assert cfg.max_pending_fixes == 3
    assert cfg.lever_arm == (0.1, -0.2, 0.5)
    # untouched keys keep defaults
    assert cfg.gyr_n == FilterConfig().gyr_n


def test_lever_arm_from_extrinsics_transform():
    T = np.eye(4)
    T[:3, 3] = [0.3, 0.0, 1.2]
    cfg = config_from_dict({"imu_gnss_extrinsics": {"transform": T.tolist()}})
    assert cfg.lever_arm == (0.3, 0.0, 1.2)


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_config(str(path)) == FilterConfig()


def test_non_mapping_yaml_rejected(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n")
    with pytest.raises(ValueError):
        load_config(str(path))


def test_shipped_default_config_loads():
    cfg = load_config(str(REPO_ROOT / "configs" / "imu_gnss_default.yaml"))
    assert cfg == FilterConfig()


@pytest.mark.parametrize("overrides", [
    {"integration": "rk4"},
    {"min_init_samples": 300},
    {"acc_n": -1.0},
    {"max_dt": 0.0},
    {"lever_arm": (0.0, 1.0)},
    {"accepted_fix_status": ()},
    {"max_pending_fixes": 0},
])
def test_invalid_values_raise(overrides):
    with pytest.raises(ValueError):
        FilterConfig(**overrides)


def test_with_overrides_revalidates():
    cfg = FilterConfig().with_overrides(notify_on_predict=True)
    assert cfg.notify_on_predict
    with pytest.raises(ValueError):
        cfg.with_overrides(imu_buffer_size=0)
