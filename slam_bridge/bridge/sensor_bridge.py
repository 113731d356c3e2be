"""
SensorIngestAdapter: native sensor samples -> engine samples in the tracking frame.

Bound 1:1 to one engine trajectory handle. Ingestion is split in two steps:

    prepare_*()  resolve sensor -> tracking and build the engine sample.
                 May block on TF; safe to call concurrently.
    forward()    hand the sample to the engine. NOT thread-safe; the
                 MappingBridge serializes it.

handle_*() chain both for single-threaded callers.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import AbstractSet, Dict, FrozenSet, Optional

import numpy as np

from slam_bridge.bridge.tf_bridge import TransformResolver
from slam_bridge.common import constants
from slam_bridge.common.errors import TransformTimeout
from slam_bridge.common.transforms.rigid3 import Rigid3
from slam_bridge.engine.facade import MapEngineFacade
from slam_bridge.engine.structures import (
    ImuData,
    OdometryData,
    RangeData,
    SensorSample,
    TrajectoryHandle,
)


@dataclass
class SensorCounters:
    received: int = 0
    forwarded: int = 0
    dropped: int = 0

    def to_dict(self) -> dict:
        return {"received": self.received, "forwarded": self.forwarded, "dropped": self.dropped}


class SensorIngestAdapter:
    def __init__(
        self,
        engine: MapEngineFacade,
        handle: TrajectoryHandle,
        resolver: TransformResolver,
        expected_sensor_ids: AbstractSet[str],
        logger=None,
    ) -> None:
        self.engine = engine
        self.handle = handle
        self.resolver = resolver
        self.expected_sensor_ids: FrozenSet[str] = frozenset(expected_sensor_ids)
        self._logger = logger or logging.getLogger("slam_bridge.sensor_bridge")
        self._counter_lock = threading.Lock()
        self.counters: Dict[str, SensorCounters] = {
            sensor_id: SensorCounters() for sensor_id in sorted(self.expected_sensor_ids)
        }

    # -------------------------------------------------------------------------
    # prepare: TF lookup + conversion (no engine access)
    # -------------------------------------------------------------------------

    def prepare_range(
        self,
        sensor_id: str,
        time_sec: float,
        frame_id: str,
        points: np.ndarray,
        origin: Optional[np.ndarray] = None,
    ) -> Optional[RangeData]:
        """points (N, 3) and origin (3,) in frame_id; origin defaults to the frame origin."""
        self._count(sensor_id)
        sensor_to_tracking = self._lookup(sensor_id, frame_id, time_sec)
        if sensor_to_tracking is None:
            return None
        origin = np.zeros(3) if origin is None else np.asarray(origin, dtype=float)
        return RangeData(
            sensor_id=sensor_id,
            time=float(time_sec),
            origin=sensor_to_tracking.apply(origin),
            points=sensor_to_tracking.apply(np.asarray(points, dtype=float).reshape(-1, 3)),
        )

    def prepare_imu(
        self,
        sensor_id: str,
        time_sec: float,
        frame_id: str,
        linear_acceleration: np.ndarray,
        angular_velocity: np.ndarray,
    ) -> Optional[ImuData]:
        self._count(sensor_id)
        sensor_to_tracking = self._lookup(sensor_id, frame_id, time_sec)
        if sensor_to_tracking is None:
            return None
        # Lever-arm effects are not modelled: the IMU must sit at the tracking origin.
        offset = float(np.linalg.norm(sensor_to_tracking.translation))
        if offset >= constants.IMU_COLOCATION_TOLERANCE_M:
            raise ValueError(
                f"The IMU frame '{frame_id}' must be colocated with the tracking frame "
                f"'{self.resolver.tracking_frame}' (offset {offset:.6f} m)"
            )
        return ImuData(
            sensor_id=sensor_id,
            time=float(time_sec),
            linear_acceleration=sensor_to_tracking.rotate(linear_acceleration),
            angular_velocity=sensor_to_tracking.rotate(angular_velocity),
        )

    def prepare_odometry(
        self, sensor_id: str, time_sec: float, child_frame_id: str, pose: Rigid3
    ) -> Optional[OdometryData]:
        """pose: child frame in the odometry frame; forwarded as the tracking frame pose."""
        self._count(sensor_id)
        sensor_to_tracking = self._lookup(sensor_id, child_frame_id, time_sec)
        if sensor_to_tracking is None:
            return None
        return OdometryData(
            sensor_id=sensor_id,
            time=float(time_sec),
            pose=pose * sensor_to_tracking.inverse(),
        )

    # -------------------------------------------------------------------------
    # forward: engine ingestion
    # -------------------------------------------------------------------------

    def forward(self, sample: SensorSample) -> None:
        self.engine.ingest_sample(self.handle, sample)
        with self._counter_lock:
            self.counters[sample.sensor_id].forwarded += 1

    def _forward_prepared(self, sample: Optional[SensorSample]) -> bool:
        if sample is None:
            return False
        self.forward(sample)
        return True

    def handle_range(
        self,
        sensor_id: str,
        time_sec: float,
        frame_id: str,
        points: np.ndarray,
        origin: Optional[np.ndarray] = None,
    ) -> bool:
        return self._forward_prepared(self.prepare_range(sensor_id, time_sec, frame_id, points, origin))

    def handle_imu(
        self,
        sensor_id: str,
        time_sec: float,
        frame_id: str,
        linear_acceleration: np.ndarray,
        angular_velocity: np.ndarray,
    ) -> bool:
        return self._forward_prepared(
            self.prepare_imu(sensor_id, time_sec, frame_id, linear_acceleration, angular_velocity)
        )

    def handle_odometry(self, sensor_id: str, time_sec: float, child_frame_id: str, pose: Rigid3) -> bool:
        return self._forward_prepared(self.prepare_odometry(sensor_id, time_sec, child_frame_id, pose))

    # -------------------------------------------------------------------------

    def _count(self, sensor_id: str) -> None:
        if sensor_id not in self.expected_sensor_ids:
            raise ValueError(
                f"Unexpected sensor id '{sensor_id}' (expected {sorted(self.expected_sensor_ids)})"
            )
        with self._counter_lock:
            self.counters[sensor_id].received += 1

    def _lookup(self, sensor_id: str, frame_id: str, time_sec: float) -> Optional[Rigid3]:
        try:
            return self.resolver.resolve(frame_id, time_sec)
        except TransformTimeout as exc:
            with self._counter_lock:
                self.counters[sensor_id].dropped += 1
            self._logger.warning(f"Dropping '{sensor_id}' sample: {exc}")
            return None

    def dropped_total(self) -> int:
        with self._counter_lock:
            return sum(c.dropped for c in self.counters.values())

    def stats(self) -> dict:
        with self._counter_lock:
            return {sensor_id: c.to_dict() for sensor_id, c in self.counters.items()}
