"""Pydantic parameter models for the SLAM bridge node."""

from __future__ import annotations

import os
from typing import Any, Dict, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from slam_bridge.common import constants


class BridgeParams(BaseModel):
    """Bridge node parameter model (NodeOptions of the mapping bridge)."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    use_sim_time: bool = False

    map_frame: str = constants.MAP_FRAME_DEFAULT
    tracking_frame: str = constants.TRACKING_FRAME_DEFAULT
    lookup_transform_timeout_sec: float = Field(constants.LOOKUP_TRANSFORM_TIMEOUT_SEC_DEFAULT, gt=0.0)

    submap_publish_period_sec: float = Field(constants.SUBMAP_PUBLISH_PERIOD_SEC_DEFAULT, gt=0.0)
    occupancy_grid_publish_period_sec: float = Field(constants.OCCUPANCY_GRID_PUBLISH_PERIOD_SEC_DEFAULT, gt=0.0)
    status_publish_interval_sec: float = Field(constants.STATUS_PUBLISH_INTERVAL_SEC, gt=0.0)

    resolution: float = Field(constants.RESOLUTION_DEFAULT, gt=0.0)
    scans_per_submap: int = Field(constants.SCANS_PER_SUBMAP_DEFAULT, ge=1)
    submap_max_range: float = Field(constants.SUBMAP_MAX_RANGE_DEFAULT, gt=0.0)

    asset_directory: str = constants.ASSET_DIRECTORY_DEFAULT
    export_stem_template: str = constants.EXPORT_STEM_TEMPLATE_DEFAULT

    use_laser_scan: bool = True
    use_multi_echo_laser_scan: bool = False
    use_point_cloud: bool = False
    use_imu: bool = False
    use_odometry: bool = False

    use_rerun: bool = False
    rerun_spawn: bool = False
    rerun_recording_path: str = ""

    @field_validator("map_frame", "tracking_frame")
    @classmethod
    def _frame_not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("frame id must be non-empty")
        return v

    @field_validator("export_stem_template")
    @classmethod
    def _template_formats(cls, v: str) -> str:
        try:
            v.format(trajectory_id=0)
        except (KeyError, IndexError, ValueError) as exc:
            raise ValueError(
                f"export_stem_template must only use {{trajectory_id}}: {exc}"
            ) from exc
        return v

    def expected_sensor_ids(self) -> FrozenSet[str]:
        """Sensor ids equal the (unremapped) topic names of the enabled inputs."""
        ids = set()
        if self.use_laser_scan:
            ids.add(constants.SCAN_TOPIC)
        if self.use_multi_echo_laser_scan:
            ids.add(constants.MULTI_ECHO_SCAN_TOPIC)
        if self.use_point_cloud:
            ids.add(constants.POINT_CLOUD_TOPIC)
        if self.use_imu:
            ids.add(constants.IMU_TOPIC)
        if self.use_odometry:
            ids.add(constants.ODOMETRY_TOPIC)
        return frozenset(ids)

    def export_stem(self, trajectory_id: int) -> str:
        stem = self.export_stem_template.format(trajectory_id=trajectory_id)
        return os.path.join(self.asset_directory, stem)


def _load_yaml_file(path: str) -> Dict[str, Any]:
    """Load a YAML config file, handling the ros__parameters wrapper."""
    import yaml

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config root must be a mapping (from {path})")

    # ROS2 YAML files wrap parameters in /**:/ros__parameters: or <node>:/ros__parameters:
    for key in ("/**", "slam_bridge"):
        section = data.get(key)
        if isinstance(section, dict) and "ros__parameters" in section:
            return dict(section["ros__parameters"] or {})
    return data


def load_bridge_params(path: Optional[str] = None, **overrides: Any) -> BridgeParams:
    """Build BridgeParams from an optional YAML file; keyword overrides win."""
    values: Dict[str, Any] = {}
    if path:
        values.update(_load_yaml_file(path))
    values.update(overrides)
    return BridgeParams(**values)
