#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Fusion Engine Module

Orchestrates the IMU-GNSS ESKF behind two entry points:

    consume_inertial(sample) -> StepResult   (BUFFERED | PROPAGATED | REJECTED)
    consume_fix(fix)         -> StepResult   (INITIALIZED | UPDATED | DEFERRED | REJECTED)

Lifecycle:
    UNINITIALIZED --(enough buffered IMU + synchronized valid fix)--> INITIALIZED

There is no way back to UNINITIALIZED; build a new engine to reset.

Causal ordering:
    An update sees every IMU sample with an earlier timestamp. A fix newer
    than the last consumed sample is DEFERRED into a small time-ordered queue
    and applied once the inertial feed reaches it: before propagating the
    first later sample, or right after a sample with the same timestamp.
    Older fixes are applied to the current state (no retrodiction).

Concurrency:
    A single lock guards (state, buffer, frame, last sample, pending fixes).
    Each entry point holds it for its whole read-modify-write, so predict and
    update never interleave. Notifications are queued under that lock in
    mutation order and delivered after it is released, one delivering thread
    at a time, so observers see snapshots in state order.

Author: IMU-GNSS project
"""

import heapq
import itertools
import threading
from collections import deque
from typing import Callable, Deque, List, Optional, Tuple

import numpy as np

from . import config as _config
from .config import FilterConfig
from .coordinates import LocalFrame
from .data_types import InertialSample, Outcome, PositionFix, StateSnapshot, StepResult
from .errors import (
    FusionError, ImuGap, NotInitialized,
)
from .filter_state import FilterState
from .gnss_update import GnssUpdater, UpdateReport, check_fix_quality
from .initialization import Initializer
from .numerical_checks import check_covariance_psd, check_rotation
from .propagation import Predictor

StateObserver = Callable[[StateSnapshot], None]
FixObserver = Callable[[float, np.ndarray], None]


class FilterEngine:
    """Owns the single (NominalState, ErrorCovariance) pair."""

    def __init__(self, config: Optional[FilterConfig] = None):
        self.config = config if config is not None else FilterConfig()

        self.predictor = Predictor(self.config)
        self.initializer = Initializer(self.config)
        self.updater = GnssUpdater(self.config)

        self._lock = threading.Lock()
        self._buffer: Deque[InertialSample] = deque(maxlen=self.config.imu_buffer_size)
        self._state: Optional[FilterState] = None
        self._frame: Optional[LocalFrame] = None
        self._last_sample: Optional[InertialSample] = None
        self._last_t: Optional[float] = None
        # heap of (timestamp, arrival, fix)
        self._pending: List[Tuple[float, int, PositionFix]] = []
        self._arrival = itertools.count()

        self._observers: List[StateObserver] = []
        self._fix_observers: List[FixObserver] = []
        # (kind, payload) in mutation order; appended under _lock
        self._outbox: Deque[tuple] = deque()
        self._notify_lock = threading.RLock()

        self.last_report: Optional[UpdateReport] = None
        self.stats = {
            "imu_buffered": 0,
            "imu_propagated": 0,
            "imu_rejected": 0,
            "init_attempts": 0,
            "fix_updates": 0,
            "fix_deferred": 0,
            "fix_dropped": 0,
            "fix_rejected": 0,
        }

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self._state is not None

    @property
    def origin(self) -> Optional[np.ndarray]:
        return None if self._frame is None else self._frame.origin

    @property
    def buffer_size(self) -> int:
        return len(self._buffer)

    @property
    def pending_fixes(self) -> int:
        """Number of fixes waiting for the IMU stream to reach them."""
        with self._lock:
            return len(self._pending)

    @property
    def state(self) -> FilterState:
        """Copy of the current filter state."""
        with self._lock:
            if self._state is None:
                raise NotInitialized("filter has not been initialized")
            return self._state.copy()

    def snapshot(self) -> StateSnapshot:
        with self._lock:
            if self._state is None:
                raise NotInitialized("filter has not been initialized")
            return self._make_snapshot()

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def add_observer(self, callback: StateObserver):
        """Register a callback receiving a StateSnapshot after each state change."""
        self._observers.append(callback)

    def add_fix_observer(self, callback: FixObserver):
        """Register a callback receiving (timestamp, lla) for each applied fix."""
        self._fix_observers.append(callback)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def consume_inertial(self, sample: InertialSample) -> StepResult:
        """
        Feed one IMU sample.

        Before initialization the sample goes into the bounded buffer (FIFO
        eviction); afterwards it propagates the filter. Pending fixes older
        than the sample are applied before the propagation, fixes stamped at
        the sample time right after it.
        """
        with self._lock:
            result = self._consume_inertial(sample)
        self._deliver()
        return result

    def consume_fix(self, fix: PositionFix) -> StepResult:
        """
        Feed one GNSS fix: initializes the filter on the first usable fix,
        runs a measurement update afterwards. A fix ahead of the IMU stream
        is deferred until the stream catches up.
        """
        with self._lock:
            result = self._consume_fix(fix)
        self._deliver()
        return result

    # ------------------------------------------------------------------
    # Internals (lock held)
    # ------------------------------------------------------------------

    def _consume_inertial(self, sample: InertialSample) -> StepResult:
        try:
            dt = self.predictor.step_dt(self._last_t, sample)
        except ImuGap as e:
            # Restart the time reference so the stream can resume
            self._last_t = sample.timestamp
            self._last_sample = sample
            if self._state is None:
                # The leveling window must be contiguous
                print(f"[INIT] IMU gap, restarting buffer: {e}")
                self._buffer.clear()
                return self._buffer_sample(sample)
            return self._reject_imu(e)
        except FusionError as e:
            return self._reject_imu(e)

        if self._state is None:
            return self._buffer_sample(sample)

        self._apply_pending(lambda t: t < sample.timestamp)

        self._state = self.predictor.predict(self._state, sample, dt,
                                             prev_sample=self._last_sample)
        self._last_t = sample.timestamp
        self._last_sample = sample
        self.stats["imu_propagated"] += 1
        if _config.VERBOSE_DEBUG:
            self._tripwire("predict")
        if self.config.notify_on_predict:
            self._post_state()

        self._apply_pending(lambda t: t <= sample.timestamp)
        return StepResult(Outcome.PROPAGATED)

    def _consume_fix(self, fix: PositionFix) -> StepResult:
        try:
            check_fix_quality(fix, self.config.accepted_fix_status)
            if self._state is None:
                outcome = self._initialize(fix)
            elif self._last_t is not None and fix.timestamp > self._last_t:
                return self._defer_fix(fix)
            else:
                outcome = self._update(fix)
        except FusionError as e:
            return self._reject_fix(fix, e)
        self._post_fix(fix, outcome)
        return StepResult(outcome)

    def _initialize(self, fix: PositionFix) -> Outcome:
        self.stats["init_attempts"] += 1
        state, frame = self.initializer.initialize(list(self._buffer), fix)
        self._state = state
        self._frame = frame
        self._buffer.clear()
        print(f"[ENGINE] System initialized at t={state.timestamp:.6f} "
              f"after {self.stats['init_attempts']} attempt(s)")
        return Outcome.INITIALIZED

    def _update(self, fix: PositionFix) -> Outcome:
        state, report = self.updater.update(self._state, fix, self._frame)
        self._state = state
        self.last_report = report
        self.stats["fix_updates"] += 1
        return Outcome.UPDATED

    def _defer_fix(self, fix: PositionFix) -> StepResult:
        heapq.heappush(self._pending, (fix.timestamp, next(self._arrival), fix))
        self.stats["fix_deferred"] += 1
        if len(self._pending) > self.config.max_pending_fixes:
            _, _, dropped = heapq.heappop(self._pending)
            self.stats["fix_dropped"] += 1
            print(f"[GNSS] Pending queue full ({self.config.max_pending_fixes}), "
                  f"dropping fix t={dropped.timestamp:.3f}")
        if _config.VERBOSE_DEBUG:
            print(f"[GNSS] Deferred fix t={fix.timestamp:.3f} (IMU at t={self._last_t:.3f})")
        return StepResult(Outcome.DEFERRED)

    def _apply_pending(self, due: Callable[[float], bool]):
        while self._pending and due(self._pending[0][0]):
            _, _, fix = heapq.heappop(self._pending)
            try:
                outcome = self._update(fix)
            except FusionError as e:
                self._reject_fix(fix, e)
                continue
            self._post_fix(fix, outcome)

    def _buffer_sample(self, sample: InertialSample) -> StepResult:
        self._buffer.append(sample)
        self._last_t = sample.timestamp
        self._last_sample = sample
        self.stats["imu_buffered"] += 1
        return StepResult(Outcome.BUFFERED)

    def _reject_imu(self, error: FusionError) -> StepResult:
        self.stats["imu_rejected"] += 1
        print(f"[PREDICT] Rejected IMU sample: {type(error).__name__}: {error}")
        return StepResult(Outcome.REJECTED, type(error).__name__, str(error))

    def _reject_fix(self, fix: PositionFix, error: FusionError) -> StepResult:
        self.stats["fix_rejected"] += 1
        tag = "INIT" if self._state is None else "GNSS"
        print(f"[{tag}] Rejected fix t={fix.timestamp:.3f}: {type(error).__name__}: {error}")
        return StepResult(Outcome.REJECTED, type(error).__name__, str(error))

    def _tripwire(self, stage: str):
        t = self._state.timestamp
        check_covariance_psd(self._state.P, name=f"P after {stage}", t=t)
        check_rotation(self._state.nominal.R, name=f"R after {stage}", t=t)

    def _make_snapshot(self) -> StateSnapshot:
        state = self._state
        nominal = state.nominal.copy()
        return StateSnapshot(
            timestamp=nominal.timestamp,
            state=nominal,
            pose_covariance=state.pose_covariance(),
            quaternion_xyzw=state.quaternion_xyzw(),
            lla=self._frame.to_geodetic(nominal.p),
            origin_lla=np.array(self._frame.origin),
        )

    def _post_fix(self, fix: PositionFix, outcome: Outcome):
        if _config.VERBOSE_DEBUG:
            self._tripwire(outcome.value)
        if self._fix_observers:
            self._outbox.append(("fix", (fix.timestamp, np.array(fix.lla))))
        self._post_state()

    def _post_state(self):
        if self._observers:
            self._outbox.append(("state", self._make_snapshot()))

    # ------------------------------------------------------------------
    # Delivery (lock released)
    # ------------------------------------------------------------------

    def _deliver(self):
        with self._notify_lock:
            while self._outbox:
                kind, payload = self._outbox.popleft()
                if kind == "fix":
                    for callback in self._fix_observers:
                        callback(*payload)
                else:
                    for callback in self._observers:
                        callback(payload)
