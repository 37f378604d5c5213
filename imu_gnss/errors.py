"""Recoverable fusion errors.

Every error here leaves the engine in its current lifecycle state; the
caller simply waits for the next input.
"""


class FusionError(Exception):
    """Base class for all engine rejections."""


# Initialization

class NotEnoughSamples(FusionError):
    """Inertial buffer below the minimum fill for initialization."""


class Desynchronized(FusionError):
    """Fix timestamp too far from the newest buffered inertial sample."""


class ExcessiveMotion(FusionError):
    """Buffered window is not static enough to level the platform."""


# Measurement update

class InvalidFixQuality(FusionError):
    """Fix status is not an accepted solution, or its covariance is unusable."""


class SingularInnovationCovariance(FusionError):
    """Innovation covariance is singular or ill-conditioned."""


# Prediction

class NonMonotonicTimestamp(FusionError):
    """Inertial sample is not strictly newer than the previous one."""


class ImuGap(FusionError):
    """Inertial step longer than the configured maximum gap."""


class InvalidSample(FusionError):
    """Inertial sample contains non-finite values."""


class NotInitialized(FusionError):
    """Operation requires an initialized filter."""
