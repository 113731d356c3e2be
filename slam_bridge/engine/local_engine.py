"""
In-process reference engine.

Implements the MapEngineFacade contract without scan matching or loop closure:
- Node poses are propagated from the latest odometry sample (identity when the
  trajectory has none).
- Range data is inserted into one active submap at a time; a new submap starts
  after `scans_per_submap` insertions.
- Each trajectory carries a map-frame correction (identity unless changed via
  apply_correction). The global optimization pass re-derives the cached
  map-frame submap transforms from the corrections.

All public methods are guarded by one engine lock so reads return consistent
point-in-time copies. Per-trajectory ingestion is still required to be
serialized by the caller.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import AbstractSet, Dict, FrozenSet, List, Optional, Tuple

import numpy as np

from slam_bridge.common import constants
from slam_bridge.common.errors import EngineError
from slam_bridge.common.transforms.rigid3 import Rigid3
from slam_bridge.engine.facade import MapEngineFacade
from slam_bridge.engine.probability_grid import ProbabilityGrid
from slam_bridge.engine.structures import (
    ImuData,
    OdometryData,
    RangeData,
    SensorSample,
    SubmapSnapshot,
    TrajectoryHandle,
    TrajectoryNode,
)


@dataclass
class _Submap:
    local_pose: Rigid3
    # (origin, points) in the trajectory local frame, planar xy
    insertions: List[Tuple[np.ndarray, np.ndarray]] = field(default_factory=list)
    version: int = -1

    @property
    def num_range_data(self) -> int:
        return len(self.insertions)


@dataclass
class _Trajectory:
    handle: TrajectoryHandle
    expected_sensor_ids: FrozenSet[str]
    finished: bool = False
    submaps: List[_Submap] = field(default_factory=list)
    # (time, local pose, range data)
    nodes: List[Tuple[float, Rigid3, RangeData]] = field(default_factory=list)
    odom_pose: Optional[Rigid3] = None
    imu_count: int = 0
    correction: Rigid3 = field(default_factory=Rigid3.identity)
    global_submap_poses: List[Rigid3] = field(default_factory=list)


class LocalMapEngine(MapEngineFacade):
    def __init__(
        self,
        resolution: float = constants.RESOLUTION_DEFAULT,
        scans_per_submap: int = constants.SCANS_PER_SUBMAP_DEFAULT,
        submap_max_range: float = constants.SUBMAP_MAX_RANGE_DEFAULT,
        logger=None,
    ) -> None:
        if scans_per_submap < 1:
            raise ValueError(f"scans_per_submap must be >= 1, got {scans_per_submap}")
        self.resolution = float(resolution)
        self.scans_per_submap = int(scans_per_submap)
        self.submap_max_range = float(submap_max_range)
        self._logger = logger or logging.getLogger("slam_bridge.local_engine")
        self._lock = threading.RLock()
        self._trajectories: List[_Trajectory] = []
        self.optimization_count = 0

    @classmethod
    def from_params(cls, params, logger=None) -> "LocalMapEngine":
        return cls(
            resolution=params.resolution,
            scans_per_submap=params.scans_per_submap,
            submap_max_range=params.submap_max_range,
            logger=logger,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def create_trajectory(self, expected_sensor_ids: AbstractSet[str]) -> TrajectoryHandle:
        with self._lock:
            handle = len(self._trajectories)
            self._trajectories.append(
                _Trajectory(handle=handle, expected_sensor_ids=frozenset(expected_sensor_ids))
            )
            return handle

    def finalize_trajectory(self, handle: TrajectoryHandle) -> None:
        with self._lock:
            traj = self._get(handle)
            if traj.finished:
                raise EngineError(f"Trajectory {handle} is already finished")
            traj.finished = True

    def num_trajectories(self) -> int:
        with self._lock:
            return len(self._trajectories)

    def is_finished(self, handle: TrajectoryHandle) -> bool:
        with self._lock:
            return self._get(handle).finished

    # -------------------------------------------------------------------------
    # Ingestion
    # -------------------------------------------------------------------------

    def ingest_sample(self, handle: TrajectoryHandle, sample: SensorSample) -> None:
        with self._lock:
            traj = self._get(handle)
            if traj.finished:
                raise EngineError(f"Trajectory {handle} is finished and rejects sensor data")
            if sample.sensor_id not in traj.expected_sensor_ids:
                raise EngineError(
                    f"Unexpected sensor id '{sample.sensor_id}' for trajectory {handle} "
                    f"(expected {sorted(traj.expected_sensor_ids)})"
                )
            if isinstance(sample, RangeData):
                self._add_range_data(traj, sample)
            elif isinstance(sample, OdometryData):
                traj.odom_pose = sample.pose
            elif isinstance(sample, ImuData):
                traj.imu_count += 1
            else:
                raise EngineError(f"Unsupported sample type {type(sample).__name__}")

    def _add_range_data(self, traj: _Trajectory, range_data: RangeData) -> None:
        pose = traj.odom_pose if traj.odom_pose is not None else Rigid3.identity()
        node_index = len(traj.nodes)
        traj.nodes.append((range_data.time, pose, range_data))

        if not traj.submaps or traj.submaps[-1].num_range_data >= self.scans_per_submap:
            submap_pose = Rigid3.from_translation(*pose.translation)
            traj.submaps.append(_Submap(local_pose=submap_pose))
            traj.global_submap_poses.append(traj.correction * submap_pose)
            self._logger.debug(
                f"Trajectory {traj.handle}: started submap {len(traj.submaps) - 1} at node {node_index}"
            )

        pts = range_data.points
        if pts.shape[0] > 0:
            ranges = np.linalg.norm(pts - range_data.origin, axis=1)
            pts = pts[ranges <= self.submap_max_range]
        submap = traj.submaps[-1]
        submap.insertions.append(
            (pose.apply(range_data.origin)[:2].copy(), pose.apply(pts)[:, :2].copy())
        )
        submap.version = node_index

    # -------------------------------------------------------------------------
    # Optimization
    # -------------------------------------------------------------------------

    def run_global_optimization(self) -> None:
        with self._lock:
            for traj in self._trajectories:
                traj.global_submap_poses = [traj.correction * sm.local_pose for sm in traj.submaps]
            self.optimization_count += 1

    def apply_correction(self, handle: TrajectoryHandle, correction: Rigid3) -> None:
        """Set the map-frame correction of a trajectory (takes effect on next optimization)."""
        with self._lock:
            self._get(handle).correction = correction

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_submap_count(self, handle: TrajectoryHandle) -> int:
        with self._lock:
            return len(self._get(handle).submaps)

    def get_submap_versions(self, handle: TrajectoryHandle) -> List[int]:
        with self._lock:
            return [sm.version for sm in self._get(handle).submaps]

    def get_submap_snapshot(self, handle: TrajectoryHandle, index: int) -> SubmapSnapshot:
        with self._lock:
            traj = self._get(handle)
            if index < 0 or index >= len(traj.submaps):
                raise EngineError(
                    f"Requested submap {index} from trajectory {handle} but there are "
                    f"only {len(traj.submaps)} submaps."
                )
            submap = traj.submaps[index]
            insertions = list(submap.insertions)
            version = submap.version
            local_pose = submap.local_pose

        xy_sets = [o.reshape(1, 2) for o, _ in insertions] + [p for _, p in insertions]
        grid = ProbabilityGrid.covering(xy_sets, self.resolution)
        for origin, points in insertions:
            grid.insert(origin, points)
        cells = np.ascontiguousarray(grid.intensities())
        # Pose of the grid corner in the trajectory local frame.
        corner_pose = Rigid3.from_translation(grid.corner[0], grid.corner[1], local_pose.translation[2])
        return SubmapSnapshot(
            version=version,
            cells=cells.tobytes(),
            width=grid.width,
            height=grid.height,
            resolution=grid.resolution,
            local_pose=corner_pose,
        )

    def get_global_transforms(self, handle: TrajectoryHandle) -> List[Rigid3]:
        with self._lock:
            return list(self._get(handle).global_submap_poses)

    def get_all_trajectory_nodes(self) -> List[TrajectoryNode]:
        with self._lock:
            nodes = []
            for traj in self._trajectories:
                for index, (time, pose, range_data) in enumerate(traj.nodes):
                    nodes.append(
                        TrajectoryNode(
                            trajectory=traj.handle,
                            index=index,
                            time=time,
                            pose=traj.correction * pose,
                            range_data=range_data,
                        )
                    )
            return nodes

    # -------------------------------------------------------------------------

    def _get(self, handle: TrajectoryHandle) -> _Trajectory:
        if not isinstance(handle, (int, np.integer)) or handle < 0 or handle >= len(self._trajectories):
            raise EngineError(f"Unknown trajectory {handle}")
        return self._trajectories[int(handle)]
