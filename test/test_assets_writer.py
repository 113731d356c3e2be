"""Asset export tests: occupancy rasterization plus .pgm/.yaml/.ply files."""

import os

import numpy as np
import pytest
import yaml

from slam_bridge.assets.assets_writer import (
    PGM_FREE,
    PGM_OCCUPIED,
    PGM_UNKNOWN,
    AssetsWriter,
    occupancy_to_pgm,
    write_ply,
)
from slam_bridge.assets.occupancy_grid import OccupancyGridBuilder, build_probability_grid
from slam_bridge.common.transforms.rigid3 import Rigid3
from slam_bridge.engine.structures import OccupancyGrid, RangeData, TrajectoryNode

from conftest import ring_scan


def _node(index: int, pose: Rigid3) -> TrajectoryNode:
    data = RangeData(sensor_id="scan", time=float(index), origin=np.zeros(3), points=ring_scan())
    return TrajectoryNode(trajectory=0, index=index, time=float(index), pose=pose, range_data=data)


@pytest.fixture
def nodes():
    return [_node(0, Rigid3.identity()), _node(1, Rigid3.from_translation(0.2, 0.0, 0.0))]


def _read_pgm(path):
    with open(path, "rb") as f:
        assert f.readline() == b"P5\n"
        width, height = (int(v) for v in f.readline().split())
        assert f.readline() == b"255\n"
        pixels = np.frombuffer(f.read(), dtype=np.uint8)
    return pixels.reshape(height, width)


class TestOccupancyGridBuilder:
    def test_empty_nodes(self, params):
        assert build_probability_grid([], params.resolution) is None
        assert OccupancyGridBuilder().rasterize([], params) is None

    def test_grid_covers_all_points(self, params, nodes):
        grid = OccupancyGridBuilder().rasterize(nodes, params)
        assert grid.frame_id == params.map_frame
        assert grid.resolution == pytest.approx(params.resolution)
        x0, y0 = grid.origin.translation[:2]
        assert x0 <= -2.0 and y0 <= -2.0
        assert x0 + grid.width * grid.resolution >= 2.2
        assert y0 + grid.height * grid.resolution >= 2.0

    def test_returns_beyond_max_range_are_dropped(self, params):
        far = np.array([[60.0, 0.0, 0.0], [0.0, -45.0, 0.0]])
        data = RangeData(sensor_id="scan", time=0.0, origin=np.zeros(3), points=np.vstack([ring_scan(), far]))
        node = TrajectoryNode(trajectory=0, index=0, time=0.0, pose=Rigid3.identity(), range_data=data)
        unbounded = build_probability_grid([node], params.resolution)
        bounded = build_probability_grid([node], params.resolution, max_range=10.0)
        assert unbounded.corner[0] + unbounded.width * unbounded.resolution >= 60.0
        assert bounded.corner[0] + bounded.width * bounded.resolution < 10.0
        assert bounded.corner[1] > -10.0
        assert bounded.observed.any()

    def test_grid_data_validated(self):
        with pytest.raises(ValueError):
            OccupancyGrid("map", 0.1, 3, 2, Rigid3.identity(), np.zeros((3, 2)))


class TestPgm:
    def test_pixel_mapping_and_flip(self):
        data = np.array([[-1, 0], [100, 50]], dtype=np.int8)
        grid = OccupancyGrid("map", 0.1, 2, 2, Rigid3.identity(), data)
        img = occupancy_to_pgm(grid)
        # row 0 of the image is the top (max y) row of the grid
        assert img[0, 0] == PGM_OCCUPIED
        assert img[0, 1] == 127
        assert img[1, 0] == PGM_UNKNOWN
        assert img[1, 1] == PGM_FREE


class TestAssetsWriter:
    def test_writes_all_assets(self, params, nodes, tmp_path):
        stem = str(tmp_path / "maps" / "trajectory_0")
        paths = AssetsWriter().export(nodes, params, stem)
        assert paths == [stem + ".pgm", stem + ".yaml", stem + ".ply"]
        for path in paths:
            assert os.path.isfile(path)

        img = _read_pgm(stem + ".pgm")
        assert (img == PGM_UNKNOWN).any()
        assert (img < PGM_UNKNOWN).any()

        with open(stem + ".yaml", encoding="utf-8") as f:
            meta = yaml.safe_load(f)
        assert meta["image"] == "trajectory_0.pgm"
        assert meta["resolution"] == pytest.approx(params.resolution)
        assert len(meta["origin"]) == 3

    def test_ply_contains_every_point(self, params, nodes, tmp_path):
        stem = str(tmp_path / "cloud")
        AssetsWriter().export(nodes, params, stem)
        with open(stem + ".ply", "rb") as f:
            raw = f.read()
        header, body = raw.split(b"end_header\n", 1)
        n_points = sum(n.range_data.points.shape[0] for n in nodes)
        assert f"element vertex {n_points}".encode("ascii") in header
        points = np.frombuffer(body, dtype="<f4").reshape(-1, 3)
        assert points.shape == (n_points, 3)
        # second node is shifted by its pose
        assert np.allclose(points[n_points // 2:], nodes[1].points_in_map(), atol=1e-5)

    def test_empty_nodes_rejected(self, params, tmp_path):
        with pytest.raises(ValueError):
            AssetsWriter().export([], params, str(tmp_path / "x"))

    def test_unwritable_location_raises_oserror(self, params, nodes, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(OSError):
            AssetsWriter().export(nodes, params, str(blocker / "stem"))

    def test_write_ply_empty(self, tmp_path):
        path = str(tmp_path / "empty.ply")
        write_ply(path, np.zeros((0, 3)))
        with open(path, "rb") as f:
            assert b"element vertex 0" in f.read()
