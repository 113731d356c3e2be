"""
BridgeParams validation and YAML loading.

Also checks that the shipped config/slam_bridge.yaml loads cleanly, so the
production defaults stay in sync with the parameter model.
"""

import os

import pytest
import yaml
from pydantic import ValidationError

from slam_bridge.common import constants
from slam_bridge.common.param_models import BridgeParams, load_bridge_params


_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "..", "config", "slam_bridge.yaml")


class TestBridgeParams:
    def test_defaults(self):
        p = BridgeParams()
        assert p.map_frame == constants.MAP_FRAME_DEFAULT
        assert p.tracking_frame == constants.TRACKING_FRAME_DEFAULT
        assert p.expected_sensor_ids() == frozenset({"scan"})

    def test_expected_sensor_ids_follow_flags(self):
        p = BridgeParams(use_laser_scan=False, use_point_cloud=True, use_imu=True, use_odometry=True)
        assert p.expected_sensor_ids() == frozenset({"points2", "imu", "odom"})

    def test_export_stem(self, tmp_path):
        p = BridgeParams(asset_directory=str(tmp_path), export_stem_template="run_{trajectory_id}")
        assert p.export_stem(3) == os.path.join(str(tmp_path), "run_3")

    @pytest.mark.parametrize("field, value", [
        ("lookup_transform_timeout_sec", 0.0),
        ("resolution", -0.05),
        ("scans_per_submap", 0),
        ("submap_max_range", 0.0),
        ("submap_publish_period_sec", 0.0),
        ("map_frame", "   "),
        ("export_stem_template", "map_{other}"),
    ])
    def test_invalid_values_rejected(self, field, value):
        with pytest.raises(ValidationError):
            BridgeParams(**{field: value})

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            BridgeParams(not_a_param=1)

    def test_assignment_validated(self):
        p = BridgeParams()
        with pytest.raises(ValidationError):
            p.resolution = 0.0


class TestLoadBridgeParams:
    def test_ros_parameters_wrapper(self, tmp_path):
        path = tmp_path / "cfg.yaml"
        path.write_text(yaml.safe_dump({"/**": {"ros__parameters": {"map_frame": "world", "resolution": 0.1}}}))
        p = load_bridge_params(str(path))
        assert p.map_frame == "world"
        assert p.resolution == pytest.approx(0.1)

    def test_node_name_wrapper(self, tmp_path):
        path = tmp_path / "cfg.yaml"
        path.write_text(yaml.safe_dump({"slam_bridge": {"ros__parameters": {"use_imu": True}}}))
        assert load_bridge_params(str(path)).use_imu

    def test_flat_file_and_overrides(self, tmp_path):
        path = tmp_path / "cfg.yaml"
        path.write_text(yaml.safe_dump({"scans_per_submap": 5}))
        p = load_bridge_params(str(path), scans_per_submap=7)
        assert p.scans_per_submap == 7

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "cfg.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="mapping"):
            load_bridge_params(str(path))

    def test_no_path_gives_defaults(self):
        assert load_bridge_params() == BridgeParams()

    def test_shipped_config_loads(self):
        p = load_bridge_params(_CONFIG_PATH)
        assert p.use_laser_scan
        assert p.export_stem_template == constants.EXPORT_STEM_TEMPLATE_DEFAULT
