"""Tests for SensorIngestAdapter and the static transform resolver."""

import logging
import math

import numpy as np
import pytest

from slam_bridge.bridge.sensor_bridge import SensorIngestAdapter
from slam_bridge.bridge.tf_bridge import StaticTransformResolver
from slam_bridge.common.errors import TransformTimeout
from slam_bridge.common.transforms.rigid3 import Rigid3
from slam_bridge.engine.structures import ImuData, OdometryData, RangeData


class _CapturingEngine:
    """Only the ingestion entry point is needed by the adapter."""

    def __init__(self):
        self.samples = []

    def ingest_sample(self, handle, sample):
        self.samples.append((handle, sample))


@pytest.fixture
def capture():
    return _CapturingEngine()


@pytest.fixture
def static_resolver():
    return StaticTransformResolver(
        "base_link",
        {
            "laser": Rigid3.from_xyz_yaw(0.2, 0.0, 0.1, math.pi / 2),
            "imu_link": Rigid3.from_xyz_yaw(0.0, 0.0, 0.0, math.pi),
            "imu_offset": Rigid3.from_translation(0.0, 0.05, 0.0),
            "odom_child": Rigid3.from_translation(0.5, 0.0, 0.0),
        },
        timeout_sec=0.2,
    )


@pytest.fixture
def adapter(capture, static_resolver):
    return SensorIngestAdapter(capture, 3, static_resolver, {"scan", "imu", "odom"})


class TestStaticTransformResolver:
    def test_tracking_frame_is_identity(self, static_resolver):
        assert static_resolver.resolve("base_link", 1.0).isclose(Rigid3.identity())

    def test_unknown_frame_times_out(self, static_resolver):
        with pytest.raises(TransformTimeout) as excinfo:
            static_resolver.resolve("camera", 12.5)
        assert excinfo.value.source_frame == "camera"
        assert excinfo.value.timeout_sec == pytest.approx(0.2)
        assert isinstance(excinfo.value, TimeoutError)

    def test_set_transform(self, static_resolver):
        static_resolver.set_transform("camera", Rigid3.from_translation(1.0, 0.0, 0.0))
        assert np.allclose(static_resolver.resolve("camera", 0.0).translation, [1.0, 0.0, 0.0])


class TestRangeIngestion:
    def test_points_and_origin_moved_to_tracking_frame(self, adapter, capture):
        assert adapter.handle_range("scan", 1.5, "laser", np.array([[1.0, 0.0, 0.0]]))
        handle, sample = capture.samples[0]
        assert handle == 3
        assert isinstance(sample, RangeData)
        assert sample.time == 1.5
        assert np.allclose(sample.origin, [0.2, 0.0, 0.1])
        assert np.allclose(sample.points, [[0.2, 1.0, 0.1]])

    def test_explicit_origin(self, adapter, capture):
        adapter.handle_range("scan", 0.0, "base_link", np.zeros((0, 3)), origin=np.array([1.0, 1.0, 0.0]))
        sample = capture.samples[0][1]
        assert np.allclose(sample.origin, [1.0, 1.0, 0.0])
        assert sample.points.shape == (0, 3)

    def test_timeout_drops_sample(self, adapter, capture, caplog):
        with caplog.at_level(logging.WARNING, logger="slam_bridge.sensor_bridge"):
            assert adapter.handle_range("scan", 0.0, "missing_frame", np.zeros((1, 3))) is False
        assert capture.samples == []
        assert adapter.counters["scan"].dropped == 1
        assert adapter.counters["scan"].received == 1
        assert adapter.dropped_total() == 1
        assert "Dropping 'scan' sample" in caplog.text

    def test_ingestion_continues_after_drop(self, adapter, capture):
        adapter.handle_range("scan", 0.0, "missing_frame", np.zeros((1, 3)))
        assert adapter.handle_range("scan", 0.1, "laser", np.zeros((1, 3)))
        assert len(capture.samples) == 1
        assert adapter.stats()["scan"] == {"received": 2, "forwarded": 1, "dropped": 1}

    def test_unexpected_sensor_id(self, adapter, capture):
        with pytest.raises(ValueError, match="Unexpected sensor id"):
            adapter.handle_range("points2", 0.0, "laser", np.zeros((1, 3)))
        assert capture.samples == []


class TestImuIngestion:
    def test_vectors_rotated(self, adapter, capture):
        adapter.handle_imu("imu", 0.0, "imu_link", np.array([1.0, 0.0, 9.8]), np.array([0.0, 0.1, 0.0]))
        sample = capture.samples[0][1]
        assert isinstance(sample, ImuData)
        assert np.allclose(sample.linear_acceleration, [-1.0, 0.0, 9.8])
        assert np.allclose(sample.angular_velocity, [0.0, -0.1, 0.0])

    def test_imu_must_be_colocated(self, adapter, capture):
        with pytest.raises(ValueError, match="colocated"):
            adapter.handle_imu("imu", 0.0, "imu_offset", np.zeros(3), np.zeros(3))
        assert capture.samples == []


class TestOdometryIngestion:
    def test_pose_expressed_for_tracking_frame(self, adapter, capture):
        # child frame sits 0.5 m ahead of base_link; odom reports child at x=2
        pose = Rigid3.from_translation(2.0, 0.0, 0.0)
        adapter.handle_odometry("odom", 0.0, "odom_child", pose)
        sample = capture.samples[0][1]
        assert isinstance(sample, OdometryData)
        assert np.allclose(sample.pose.translation, [1.5, 0.0, 0.0])


class TestPrepareForward:
    def test_prepare_does_not_touch_engine(self, adapter, capture):
        sample = adapter.prepare_range("scan", 2.0, "laser", np.array([[1.0, 0.0, 0.0]]))
        assert isinstance(sample, RangeData)
        assert capture.samples == []
        assert adapter.stats()["scan"] == {"received": 1, "forwarded": 0, "dropped": 0}
        adapter.forward(sample)
        assert capture.samples == [(3, sample)]
        assert adapter.stats()["scan"]["forwarded"] == 1

    def test_prepare_returns_none_on_timeout(self, adapter, capture):
        assert adapter.prepare_odometry("odom", 0.0, "missing_frame", Rigid3.identity()) is None
        assert adapter.counters["odom"].dropped == 1
        assert capture.samples == []
