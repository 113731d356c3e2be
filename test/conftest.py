import os
import sys
import threading
from typing import List, Sequence

import numpy as np
import pytest

# Ensure local package import works for pytest collection.
_TEST_DIR = os.path.dirname(__file__)
_PKG_ROOT = os.path.abspath(os.path.join(_TEST_DIR, ".."))
if _PKG_ROOT not in sys.path:
    sys.path.insert(0, _PKG_ROOT)

from slam_bridge.bridge.map_builder_bridge import MappingBridge
from slam_bridge.bridge.tf_bridge import StaticTransformResolver
from slam_bridge.common.param_models import BridgeParams
from slam_bridge.common.transforms.rigid3 import Rigid3
from slam_bridge.engine.local_engine import LocalMapEngine
from slam_bridge.engine.structures import TrajectoryNode


# =============================================================================
# Helpers
# =============================================================================

LASER_FRAME = "laser"


def ring_scan(n_beams: int = 36, radius: float = 2.0) -> np.ndarray:
    """(N, 3) points on a circle around the sensor origin (a round room)."""
    angles = np.linspace(-np.pi, np.pi, n_beams, endpoint=False)
    return np.stack([radius * np.cos(angles), radius * np.sin(angles), np.zeros_like(angles)], axis=1)


def ingest_scans(bridge: MappingBridge, count: int, start_time: float = 0.0, frame_id: str = LASER_FRAME) -> None:
    for i in range(count):
        assert bridge.handle_range("scan", start_time + 0.1 * i, frame_id, ring_scan())


class RecordingExporter:
    """AssetExporter that records calls instead of touching the filesystem."""

    def __init__(self, fail_with: Exception = None):
        self.calls: List[tuple] = []
        self.fail_with = fail_with

    def export(self, nodes: Sequence[TrajectoryNode], params: BridgeParams, stem: str) -> List[str]:
        self.calls.append((list(nodes), stem))
        if self.fail_with is not None:
            raise self.fail_with
        return [stem + ".pgm", stem + ".yaml", stem + ".ply"]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def params(tmp_path) -> BridgeParams:
    """Laser-scan-only params with small submaps and a temporary asset directory."""
    return BridgeParams(
        scans_per_submap=2,
        resolution=0.1,
        asset_directory=str(tmp_path),
    )


@pytest.fixture
def resolver() -> StaticTransformResolver:
    """base_link tracking frame, laser mounted 0.1 m ahead of it."""
    return StaticTransformResolver(
        "base_link",
        {LASER_FRAME: Rigid3.from_translation(0.1, 0.0, 0.0)},
        timeout_sec=0.2,
    )


@pytest.fixture
def engine(params) -> LocalMapEngine:
    return LocalMapEngine.from_params(params)


@pytest.fixture
def exporter() -> RecordingExporter:
    return RecordingExporter()


@pytest.fixture
def bridge(params, engine, resolver, exporter) -> MappingBridge:
    b = MappingBridge(params, engine, resolver, exporter=exporter)
    yield b
    b.close()


class GatedResolver(StaticTransformResolver):
    """Static resolver whose lookups of gated_frame block until release is set."""

    def __init__(self, tracking_frame, transforms, gated_frame: str):
        super().__init__(tracking_frame, transforms, timeout_sec=0.2)
        self.gated_frame = gated_frame
        self.entered = threading.Event()
        self.release = threading.Event()

    def resolve(self, frame_id, time_sec, timeout_sec=None):
        if frame_id == self.gated_frame:
            self.entered.set()
            self.release.wait(5.0)
        return super().resolve(frame_id, time_sec, timeout_sec)
