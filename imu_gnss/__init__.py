"""
IMU-GNSS Fusion Package

Loosely-coupled error-state Kalman filter fusing high-rate IMU samples with
absolute GNSS position fixes.

Modules:
- imu_gnss.config: FilterConfig and YAML loading
- imu_gnss.data_types: InertialSample, PositionFix, NominalState, StepResult
- imu_gnss.errors: FusionError taxonomy
- imu_gnss.math_utils: SO(3) helpers
- imu_gnss.coordinates: geodetic <-> local ENU conversion (pyproj)
- imu_gnss.filter_state: 15-dim error-state covariance + nominal state
- imu_gnss.propagation: strapdown prediction (Predictor)
- imu_gnss.initialization: static leveling (Initializer)
- imu_gnss.gnss_update: lever-arm position update (GnssUpdater)
- imu_gnss.engine: FilterEngine orchestrator
- imu_gnss.numerical_checks: NaN / PSD / rotation tripwires
- imu_gnss.output_utils: CSV loggers and path recorder
- imu_gnss.data_loaders: CSV replay loaders

Usage:
    from imu_gnss.engine import FilterEngine
    from imu_gnss.config import load_config

    engine = FilterEngine(load_config("configs/imu_gnss_default.yaml"))
    engine.consume_inertial(sample)
    engine.consume_fix(fix)
"""

__version__ = "1.0.0"

# Lazy module imports - access as imu_gnss.engine, imu_gnss.config, etc.
import importlib

_SUBMODULES = {
    "config", "data_types", "errors", "math_utils", "coordinates",
    "filter_state", "propagation", "initialization", "gnss_update",
    "engine", "numerical_checks", "output_utils", "data_loaders",
}


def __getattr__(name):
    """Lazy module loading to avoid importing pyproj/pandas up front."""
    if name in _SUBMODULES:
        module = importlib.import_module(f".{name}", __name__)
        globals()[name] = module
        return module
    raise AttributeError(f"module 'imu_gnss' has no attribute '{name}'")


def __dir__():
    return list(_SUBMODULES)


__all__ = list(_SUBMODULES)
