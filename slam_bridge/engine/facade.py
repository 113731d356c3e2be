"""
MapEngineFacade: the capability interface the bridge consumes.

The bridge never reaches into engine internals; everything it needs is one of
the operations below. Handles are issued densely from 0 and never recycled.
"""

from __future__ import annotations

import abc
from typing import AbstractSet, List

from slam_bridge.common.transforms.rigid3 import Rigid3
from slam_bridge.engine.structures import (
    SensorSample,
    SubmapSnapshot,
    TrajectoryHandle,
    TrajectoryNode,
)


class MapEngineFacade(abc.ABC):
    """Opaque SLAM engine: trajectories, submaps and a global optimizer."""

    @abc.abstractmethod
    def create_trajectory(self, expected_sensor_ids: AbstractSet[str]) -> TrajectoryHandle:
        """Allocate a new trajectory accepting the given sensor ids."""

    @abc.abstractmethod
    def finalize_trajectory(self, handle: TrajectoryHandle) -> None:
        """Stop accepting input on handle. Submaps stay readable."""

    @abc.abstractmethod
    def ingest_sample(self, handle: TrajectoryHandle, sample: SensorSample) -> None:
        """Per-trajectory ingestion entry point. Not safe for concurrent callers."""

    @abc.abstractmethod
    def run_global_optimization(self) -> None:
        """Full pose-graph optimization pass over all trajectories."""

    @abc.abstractmethod
    def num_trajectories(self) -> int:
        ...

    @abc.abstractmethod
    def get_submap_count(self, handle: TrajectoryHandle) -> int:
        ...

    @abc.abstractmethod
    def get_submap_versions(self, handle: TrajectoryHandle) -> List[int]:
        """Last inserted range index per submap, in submap index order."""

    @abc.abstractmethod
    def get_submap_snapshot(self, handle: TrajectoryHandle, index: int) -> SubmapSnapshot:
        """Raises EngineError with the engine's message on failure."""

    @abc.abstractmethod
    def get_global_transforms(self, handle: TrajectoryHandle) -> List[Rigid3]:
        """Map-frame pose per submap; length must equal get_submap_count(handle)."""

    @abc.abstractmethod
    def get_all_trajectory_nodes(self) -> List[TrajectoryNode]:
        """Optimized nodes of all trajectories, ordered by (trajectory, index)."""
