"""
Engine-native data structures.

Samples flow in (RangeData, ImuData, OdometryData); snapshots and trajectory
nodes flow out. Everything here is immutable once produced.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

import numpy as np

from slam_bridge.common.transforms.rigid3 import Rigid3


TrajectoryHandle = int


def _frozen_array(a, shape_tail: tuple, dtype=float) -> np.ndarray:
    arr = np.array(a, dtype=dtype)
    if shape_tail and arr.size == 0:
        arr = arr.reshape((0,) + shape_tail)
    if shape_tail and arr.shape[1:] != shape_tail:
        raise ValueError(f"Expected array of shape (N, {', '.join(map(str, shape_tail))}), got {arr.shape}")
    arr.setflags(write=False)
    return arr


# =============================================================================
# Sensor samples (tracking frame)
# =============================================================================


@dataclass(frozen=True, eq=False)
class RangeData:
    """Range returns in the tracking frame. origin is the sensor origin."""

    sensor_id: str
    time: float
    origin: np.ndarray
    points: np.ndarray

    def __post_init__(self) -> None:
        object.__setattr__(self, "origin", _frozen_array(np.reshape(self.origin, 3), ()))
        object.__setattr__(self, "points", _frozen_array(self.points, (3,)))


@dataclass(frozen=True, eq=False)
class ImuData:
    sensor_id: str
    time: float
    linear_acceleration: np.ndarray
    angular_velocity: np.ndarray

    def __post_init__(self) -> None:
        object.__setattr__(self, "linear_acceleration", _frozen_array(np.reshape(self.linear_acceleration, 3), ()))
        object.__setattr__(self, "angular_velocity", _frozen_array(np.reshape(self.angular_velocity, 3), ()))


@dataclass(frozen=True, eq=False)
class OdometryData:
    """Pose of the tracking frame in the odometry frame."""

    sensor_id: str
    time: float
    pose: Rigid3


SensorSample = Union[RangeData, ImuData, OdometryData]


# =============================================================================
# Engine outputs
# =============================================================================


@dataclass(frozen=True)
class SubmapRef:
    trajectory: TrajectoryHandle
    index: int


@dataclass(frozen=True, eq=False)
class SubmapSnapshot:
    """
    Point-in-time read of a submap.

    cells: row-major uint8 intensities (height * width), 0 = unknown.
    local_pose: submap origin in the trajectory's local frame, NOT the map frame.
    """

    version: int
    cells: bytes
    width: int
    height: int
    resolution: float
    local_pose: Rigid3

    def __post_init__(self) -> None:
        if len(self.cells) != self.width * self.height:
            raise ValueError(
                f"Submap cells length {len(self.cells)} != width*height ({self.width}*{self.height})"
            )

    def cells_array(self) -> np.ndarray:
        return np.frombuffer(self.cells, dtype=np.uint8).reshape(self.height, self.width)


@dataclass(frozen=True, eq=False)
class TrajectoryNode:
    """Optimized pose estimate attached to one ingested range sample."""

    trajectory: TrajectoryHandle
    index: int
    time: float
    pose: Rigid3
    range_data: RangeData

    def points_in_map(self) -> np.ndarray:
        return self.pose.apply(self.range_data.points)

    def origin_in_map(self) -> np.ndarray:
        return self.pose.apply(self.range_data.origin)


@dataclass(frozen=True)
class SubmapEntry:
    version: int
    pose: Rigid3


@dataclass(frozen=True)
class SubmapList:
    """Global submap listing grouped by trajectory in creation order."""

    map_frame: str
    trajectories: tuple = field(default_factory=tuple)

    def num_submaps(self) -> int:
        return sum(len(t) for t in self.trajectories)

    def to_dict(self) -> dict:
        return {
            "map_frame": self.map_frame,
            "trajectory": [
                {"submap": [{"submap_version": e.version, "pose": e.pose.to_dict()} for e in entries]}
                for entries in self.trajectories
            ],
        }


@dataclass(frozen=True, eq=False)
class OccupancyGrid:
    """
    2D occupancy grid in the map frame.

    data: int8 (height, width), -1 unknown, 0..100 occupancy.
    origin: pose of cell (0, 0)'s corner in the map frame.
    """

    frame_id: str
    resolution: float
    width: int
    height: int
    origin: Rigid3
    data: np.ndarray

    def __post_init__(self) -> None:
        data = np.asarray(self.data, dtype=np.int8)
        if data.shape != (self.height, self.width):
            raise ValueError(f"Grid data shape {data.shape} != ({self.height}, {self.width})")
        data.setflags(write=False)
        object.__setattr__(self, "data", data)
