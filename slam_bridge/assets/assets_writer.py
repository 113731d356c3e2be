"""
Asset export for a finished trajectory.

Writes, for a given stem:
    <stem>.pgm   map_server compatible occupancy image (row 0 = max y)
    <stem>.yaml  map_server metadata sidecar
    <stem>.ply   binary little-endian point cloud of all range returns (map frame)
"""

from __future__ import annotations

import logging
import os
from typing import List, Protocol, Sequence

import numpy as np
import yaml

from slam_bridge.assets.occupancy_grid import OccupancyGridBuilder
from slam_bridge.common import constants
from slam_bridge.common.param_models import BridgeParams
from slam_bridge.engine.structures import OccupancyGrid, TrajectoryNode


PGM_OCCUPIED = 0
PGM_FREE = 254
PGM_UNKNOWN = 205


class AssetExporter(Protocol):
    def export(self, nodes: Sequence[TrajectoryNode], params: BridgeParams, stem: str) -> List[str]:
        ...


def occupancy_to_pgm(grid: OccupancyGrid) -> np.ndarray:
    """
    Grayscale pixels (darker = more occupied), flipped so row 0 is max y.

    Known cells map linearly from PGM_FREE (0) to PGM_OCCUPIED (100); unknown
    cells are PGM_UNKNOWN. map_server applies the sidecar thresholds on load.
    """
    occ = grid.data.astype(np.int32)
    known = occ >= 0
    img = np.full(occ.shape, PGM_UNKNOWN, dtype=np.uint8)
    scaled = np.rint((constants.OCCUPANCY_MAX - occ) * PGM_FREE / constants.OCCUPANCY_MAX)
    img[known] = scaled[known].astype(np.uint8)
    return np.flipud(img)


def write_pgm(path: str, image: np.ndarray) -> None:
    height, width = image.shape
    with open(path, "wb") as f:
        f.write(f"P5\n{width} {height}\n255\n".encode("ascii"))
        f.write(np.ascontiguousarray(image, dtype=np.uint8).tobytes())


def write_map_yaml(path: str, image_name: str, grid: OccupancyGrid) -> None:
    meta = {
        "image": image_name,
        "resolution": float(grid.resolution),
        "origin": [float(grid.origin.translation[0]), float(grid.origin.translation[1]), float(grid.origin.yaw())],
        "negate": 0,
        "occupied_thresh": constants.MAP_OCCUPIED_THRESH,
        "free_thresh": constants.MAP_FREE_THRESH,
    }
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(meta, f, sort_keys=False)


def write_ply(path: str, points: np.ndarray) -> None:
    points = np.asarray(points, dtype="<f4").reshape(-1, 3)
    header = (
        "ply\n"
        "format binary_little_endian 1.0\n"
        f"element vertex {points.shape[0]}\n"
        "property float x\n"
        "property float y\n"
        "property float z\n"
        "end_header\n"
    )
    with open(path, "wb") as f:
        f.write(header.encode("ascii"))
        f.write(np.ascontiguousarray(points).tobytes())


class AssetsWriter:
    def __init__(self, grid_builder=None, logger=None) -> None:
        self._grid_builder = grid_builder or OccupancyGridBuilder()
        self._logger = logger or logging.getLogger("slam_bridge.assets_writer")

    def export(self, nodes: Sequence[TrajectoryNode], params: BridgeParams, stem: str) -> List[str]:
        """Write all assets for nodes; returns the written paths. Raises OSError on I/O failure."""
        if not nodes:
            raise ValueError("Cannot export assets for an empty node set")
        directory = os.path.dirname(stem)
        if directory:
            os.makedirs(directory, exist_ok=True)

        written = []
        grid = self._grid_builder.rasterize(nodes, params)
        if grid is not None:
            pgm_path = stem + ".pgm"
            yaml_path = stem + ".yaml"
            write_pgm(pgm_path, occupancy_to_pgm(grid))
            write_map_yaml(yaml_path, os.path.basename(pgm_path), grid)
            written += [pgm_path, yaml_path]

        ply_path = stem + ".ply"
        write_ply(ply_path, np.concatenate([node.points_in_map() for node in nodes], axis=0))
        written.append(ply_path)

        self._logger.info(f"Wrote {len(written)} assets for {len(nodes)} nodes under '{stem}'")
        return written
