"""
TrajectorySession: one engine trajectory handle + its ingest adapter.

State machine:

    CREATED --activate()--> ACTIVE --begin_finish()--> FINISHING --mark_finished()--> FINISHED

Only ACTIVE sessions accept sensor data. FINISHED is terminal; the handle stays
addressable for read queries.
"""

from __future__ import annotations

import enum
from typing import AbstractSet, FrozenSet, Optional

import numpy as np

from slam_bridge.bridge.sensor_bridge import SensorIngestAdapter
from slam_bridge.bridge.tf_bridge import TransformResolver
from slam_bridge.common.errors import InactiveTrajectoryError, InvalidTransitionError
from slam_bridge.common.transforms.rigid3 import Rigid3
from slam_bridge.engine.facade import MapEngineFacade
from slam_bridge.engine.structures import SensorSample, TrajectoryHandle


class SessionState(enum.Enum):
    CREATED = "created"
    ACTIVE = "active"
    FINISHING = "finishing"
    FINISHED = "finished"


_TRANSITIONS = {
    SessionState.CREATED: {SessionState.ACTIVE},
    SessionState.ACTIVE: {SessionState.FINISHING},
    SessionState.FINISHING: {SessionState.FINISHED},
    SessionState.FINISHED: set(),
}


class TrajectorySession:
    def __init__(
        self,
        handle: TrajectoryHandle,
        ingest_adapter: SensorIngestAdapter,
        expected_sensor_ids: AbstractSet[str],
    ) -> None:
        if ingest_adapter.handle != handle:
            raise ValueError(
                f"Ingest adapter is bound to trajectory {ingest_adapter.handle}, not {handle}"
            )
        self.handle = handle
        self.ingest_adapter = ingest_adapter
        self.expected_sensor_ids: FrozenSet[str] = frozenset(expected_sensor_ids)
        self._state = SessionState.CREATED

    @classmethod
    def create(
        cls,
        engine: MapEngineFacade,
        resolver: TransformResolver,
        expected_sensor_ids: AbstractSet[str],
        logger=None,
    ) -> "TrajectorySession":
        """Allocate an engine trajectory and bind a fresh adapter to it (state CREATED)."""
        handle = engine.create_trajectory(expected_sensor_ids)
        adapter = SensorIngestAdapter(engine, handle, resolver, expected_sensor_ids, logger=logger)
        return cls(handle, adapter, expected_sensor_ids)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state is SessionState.ACTIVE

    def _transition(self, target: SessionState) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise InvalidTransitionError(
                f"Trajectory {self.handle}: cannot go from {self._state.value} to {target.value}"
            )
        self._state = target

    def activate(self) -> None:
        self._transition(SessionState.ACTIVE)

    def begin_finish(self) -> None:
        self._transition(SessionState.FINISHING)

    def mark_finished(self) -> None:
        self._transition(SessionState.FINISHED)

    # -------------------------------------------------------------------------
    # Ingestion (ACTIVE only)
    # -------------------------------------------------------------------------

    def _require_active(self) -> None:
        if self._state is not SessionState.ACTIVE:
            raise InactiveTrajectoryError(self.handle, self._state.value)

    def forward(self, sample: SensorSample) -> None:
        """Hand an already prepared sample to this trajectory."""
        self._require_active()
        self.ingest_adapter.forward(sample)

    def handle_range(
        self,
        sensor_id: str,
        time_sec: float,
        frame_id: str,
        points: np.ndarray,
        origin: Optional[np.ndarray] = None,
    ) -> bool:
        self._require_active()
        return self.ingest_adapter.handle_range(sensor_id, time_sec, frame_id, points, origin)

    def handle_imu(
        self,
        sensor_id: str,
        time_sec: float,
        frame_id: str,
        linear_acceleration: np.ndarray,
        angular_velocity: np.ndarray,
    ) -> bool:
        self._require_active()
        return self.ingest_adapter.handle_imu(
            sensor_id, time_sec, frame_id, linear_acceleration, angular_velocity
        )

    def handle_odometry(self, sensor_id: str, time_sec: float, child_frame_id: str, pose: Rigid3) -> bool:
        self._require_active()
        return self.ingest_adapter.handle_odometry(sensor_id, time_sec, child_frame_id, pose)

    def __repr__(self) -> str:
        return f"TrajectorySession(handle={self.handle}, state={self._state.value})"
