"""Rerun visualizer: no-op until init(), then logs to a recording file."""

import numpy as np
import pytest

from slam_bridge.common.transforms.rigid3 import Rigid3
from slam_bridge.engine.structures import OccupancyGrid, SubmapEntry, SubmapList
from slam_bridge.node.rerun_visualizer import RerunVisualizer


def _grid():
    data = np.array([[-1, 0], [50, 100]], dtype=np.int8)
    return OccupancyGrid("map", 0.1, 2, 2, Rigid3.identity(), data)


def test_inactive_visualizer_is_noop():
    viz = RerunVisualizer()
    assert not viz.active
    viz.log_submaps(SubmapList("map", ((SubmapEntry(0, Rigid3.identity()),),)), 0.0)
    viz.log_occupancy_grid(_grid(), 0.0)
    viz.log_trajectory([], 0.0)


def test_records_to_file(tmp_path):
    pytest.importorskip("rerun")
    path = str(tmp_path / "bridge.rrd")
    viz = RerunVisualizer(application_id="slam_bridge_test", recording_path=path)
    assert viz.init()
    assert viz.active
    viz.log_submaps(
        SubmapList("map", ((SubmapEntry(0, Rigid3.identity()), SubmapEntry(1, Rigid3.from_translation(1.0, 0.0))),)),
        1.0,
    )
    viz.log_occupancy_grid(_grid(), 1.0)
