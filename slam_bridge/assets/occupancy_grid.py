"""
Occupancy grid rasterization of optimized trajectory nodes.

Each node contributes one ray-cast insertion of its range data, transformed
into the map frame with the node's optimized pose.
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence

import numpy as np

from slam_bridge.common.param_models import BridgeParams
from slam_bridge.common.transforms.rigid3 import Rigid3
from slam_bridge.engine.probability_grid import ProbabilityGrid
from slam_bridge.engine.structures import OccupancyGrid, TrajectoryNode


class GridRasterizer(Protocol):
    def rasterize(self, nodes: Sequence[TrajectoryNode], params: BridgeParams) -> Optional[OccupancyGrid]:
        ...


def _points_within_range(node: TrajectoryNode, max_range: Optional[float]) -> np.ndarray:
    """Map-frame points of node, dropping returns farther than max_range from the sensor origin."""
    data = node.range_data
    points = data.points
    if max_range is not None and points.shape[0] > 0:
        points = points[np.linalg.norm(points - data.origin, axis=1) <= max_range]
    return node.pose.apply(points)


def build_probability_grid(
    nodes: Sequence[TrajectoryNode],
    resolution: float,
    max_range: Optional[float] = None,
) -> Optional[ProbabilityGrid]:
    """Log-odds grid over all node insertions, or None if nodes is empty."""
    if not nodes:
        return None
    origins = [node.origin_in_map()[:2] for node in nodes]
    points = [_points_within_range(node, max_range)[:, :2] for node in nodes]
    grid = ProbabilityGrid.covering([o.reshape(1, 2) for o in origins] + points, resolution)
    for origin, pts in zip(origins, points):
        grid.insert(origin, pts)
    return grid


class OccupancyGridBuilder:
    """Rasterizes trajectory nodes into a map-frame OccupancyGrid."""

    def rasterize(self, nodes: Sequence[TrajectoryNode], params: BridgeParams) -> Optional[OccupancyGrid]:
        grid = build_probability_grid(nodes, params.resolution, params.submap_max_range)
        if grid is None:
            return None
        return OccupancyGrid(
            frame_id=params.map_frame,
            resolution=grid.resolution,
            width=grid.width,
            height=grid.height,
            origin=Rigid3.from_translation(grid.corner[0], grid.corner[1], 0.0),
            data=grid.occupancy(),
        )
