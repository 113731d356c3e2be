"""
Rerun visualization: submap poses, trajectory nodes and the occupancy grid.

Optional (use_rerun). Spawn a viewer or save to .rrd and open with
`rerun recording.rrd`.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from slam_bridge.engine.structures import OccupancyGrid, SubmapList, TrajectoryNode


def _set_rerun_time(rr, time_sec: float) -> None:
    """Set current time on the 'time' timeline across rerun API versions."""
    if hasattr(rr, "set_time_seconds"):
        rr.set_time_seconds("time", time_sec)
    else:
        rr.set_time("time", timestamp=time_sec)


class RerunVisualizer:
    """
    Log bridge outputs to Rerun.

    Call init() once; then log_* from the node timers.
    """

    def __init__(
        self,
        application_id: str = "slam_bridge",
        spawn: bool = False,
        recording_path: Optional[str] = None,
    ):
        self._application_id = application_id
        self._spawn = spawn
        self._recording_path = recording_path
        self._rr = None

    @property
    def active(self) -> bool:
        return self._rr is not None

    def init(self) -> bool:
        if self._rr is not None:
            return True
        import rerun as rr

        rr.init(self._application_id, spawn=self._spawn)
        # If recording to file: must call save() before any log (Rerun API).
        if self._recording_path and not self._spawn:
            rr.save(self._recording_path)
        self._rr = rr
        return True

    def log_submaps(self, submap_list: SubmapList, time_sec: float) -> None:
        """Submap origins as Points3D, one entity per trajectory."""
        if self._rr is None:
            return
        rr = self._rr
        _set_rerun_time(rr, time_sec)
        for trajectory_id, entries in enumerate(submap_list.trajectories):
            positions = np.array([e.pose.translation for e in entries], dtype=np.float32).reshape(-1, 3)
            rr.log(f"bridge/submaps/{trajectory_id}", rr.Points3D(positions=positions, radii=0.05))

    def log_trajectory(self, nodes: Sequence[TrajectoryNode], time_sec: float) -> None:
        """Node positions as one LineStrips3D per trajectory."""
        if self._rr is None:
            return
        rr = self._rr
        _set_rerun_time(rr, time_sec)
        by_trajectory = {}
        for node in nodes:
            by_trajectory.setdefault(node.trajectory, []).append(node.pose.translation)
        for trajectory_id, positions in by_trajectory.items():
            strip = np.asarray(positions, dtype=np.float32)
            rr.log(f"bridge/trajectory/{trajectory_id}", rr.LineStrips3D([strip]))

    def log_occupancy_grid(self, grid: OccupancyGrid, time_sec: float) -> None:
        """Grid as a grayscale image (unknown = mid gray), row 0 = max y."""
        if self._rr is None:
            return
        rr = self._rr
        _set_rerun_time(rr, time_sec)
        occ = grid.data.astype(np.int16)
        img = np.where(occ < 0, 128, 255 - (occ * 255) // 100).astype(np.uint8)
        rr.log("bridge/map", rr.Image(np.flipud(img)))
