"""
ROS message <-> native conversions.

Sensor messages are turned into plain numpy arguments for the bridge's
handle_* calls; Rigid3 and OccupancyGrid are turned back into wire messages.
"""

from __future__ import annotations

import math
from typing import Tuple

import numpy as np
from builtin_interfaces.msg import Time
from geometry_msgs.msg import Pose, Transform
from nav_msgs.msg import OccupancyGrid as OccupancyGridMsg
from nav_msgs.msg import Odometry
from sensor_msgs.msg import Imu, LaserScan, MultiEchoLaserScan, PointCloud2, PointField

from slam_bridge.common.transforms.rigid3 import Rigid3
from slam_bridge.engine.structures import OccupancyGrid


def stamp_to_sec(stamp) -> float:
    return float(stamp.sec) + float(stamp.nanosec) * 1e-9


def sec_to_stamp(t: float) -> Time:
    sec = int(math.floor(t))
    nanosec = int(round((t - sec) * 1e9))
    if nanosec >= 1_000_000_000:
        sec += 1
        nanosec -= 1_000_000_000
    return Time(sec=sec, nanosec=nanosec)


# =============================================================================
# Geometry
# =============================================================================


def transform_msg_to_rigid3(msg: Transform) -> Rigid3:
    t, q = msg.translation, msg.rotation
    return Rigid3(translation=np.array([t.x, t.y, t.z]), rotation=np.array([q.x, q.y, q.z, q.w]))


def pose_msg_to_rigid3(msg: Pose) -> Rigid3:
    p, q = msg.position, msg.orientation
    return Rigid3(translation=np.array([p.x, p.y, p.z]), rotation=np.array([q.x, q.y, q.z, q.w]))


def rigid3_to_pose_msg(rigid: Rigid3) -> Pose:
    msg = Pose()
    msg.position.x, msg.position.y, msg.position.z = (float(v) for v in rigid.translation)
    (
        msg.orientation.x,
        msg.orientation.y,
        msg.orientation.z,
        msg.orientation.w,
    ) = (float(v) for v in rigid.rotation)
    return msg


# =============================================================================
# Range sensors
# =============================================================================


def _polar_to_points(ranges: np.ndarray, angle_min: float, angle_increment: float,
                     range_min: float, range_max: float) -> np.ndarray:
    ranges = np.asarray(ranges, dtype=float)
    angles = angle_min + angle_increment * np.arange(ranges.shape[0], dtype=float)
    valid = np.isfinite(ranges) & (ranges >= range_min) & (ranges <= range_max)
    r = ranges[valid]
    a = angles[valid]
    return np.stack([r * np.cos(a), r * np.sin(a), np.zeros_like(r)], axis=1)


def laser_scan_to_points(msg: LaserScan) -> np.ndarray:
    """(N, 3) points in the scan frame; out-of-range returns are discarded."""
    return _polar_to_points(
        np.asarray(msg.ranges, dtype=float),
        msg.angle_min,
        msg.angle_increment,
        msg.range_min,
        msg.range_max,
    )


def multi_echo_laser_scan_to_points(msg: MultiEchoLaserScan) -> np.ndarray:
    """First echo of every beam; beams without echoes are treated as no return."""
    first = np.array(
        [echo.echoes[0] if len(echo.echoes) > 0 else np.nan for echo in msg.ranges],
        dtype=float,
    )
    return _polar_to_points(first, msg.angle_min, msg.angle_increment, msg.range_min, msg.range_max)


_POINTFIELD_DTYPES = {
    PointField.FLOAT32: np.dtype("<f4"),
    PointField.FLOAT64: np.dtype("<f8"),
    PointField.INT32: np.dtype("<i4"),
    PointField.UINT32: np.dtype("<u4"),
    PointField.INT16: np.dtype("<i2"),
    PointField.UINT16: np.dtype("<u2"),
    PointField.INT8: np.dtype("i1"),
    PointField.UINT8: np.dtype("u1"),
}


def pointcloud2_to_points(msg: PointCloud2) -> np.ndarray:
    """XYZ of a PointCloud2 as (N, 3) float64; NaN/Inf points are filtered."""
    field_map = {f.name: f for f in msg.fields}
    missing = [k for k in ("x", "y", "z") if k not in field_map]
    if missing:
        raise ValueError(f"PointCloud2 missing fields {missing}; present: {sorted(field_map)}")

    n_points = msg.width * msg.height
    if n_points == 0:
        return np.zeros((0, 3), dtype=float)

    data = np.frombuffer(bytes(msg.data), dtype=np.uint8).reshape(-1, msg.point_step)[:n_points]
    cols = []
    for name in ("x", "y", "z"):
        f = field_map[name]
        dtype = _POINTFIELD_DTYPES.get(f.datatype)
        if dtype is None:
            raise ValueError(f"Unsupported PointField datatype {f.datatype} for '{name}'")
        if msg.is_bigendian:
            dtype = dtype.newbyteorder(">")
        raw = np.ascontiguousarray(data[:, f.offset:f.offset + dtype.itemsize])
        cols.append(raw.view(dtype).reshape(-1).astype(float))
    points = np.stack(cols, axis=1)
    return points[np.isfinite(points).all(axis=1)]


# =============================================================================
# IMU / odometry
# =============================================================================


def imu_to_vectors(msg: Imu) -> Tuple[np.ndarray, np.ndarray]:
    a, w = msg.linear_acceleration, msg.angular_velocity
    return np.array([a.x, a.y, a.z], dtype=float), np.array([w.x, w.y, w.z], dtype=float)


def odometry_to_rigid3(msg: Odometry) -> Rigid3:
    return pose_msg_to_rigid3(msg.pose.pose)


# =============================================================================
# Outputs
# =============================================================================


def occupancy_grid_to_msg(grid: OccupancyGrid, stamp_sec: float) -> OccupancyGridMsg:
    msg = OccupancyGridMsg()
    msg.header.frame_id = grid.frame_id
    msg.header.stamp = sec_to_stamp(stamp_sec)
    msg.info.map_load_time = msg.header.stamp
    msg.info.resolution = float(grid.resolution)
    msg.info.width = int(grid.width)
    msg.info.height = int(grid.height)
    msg.info.origin = rigid3_to_pose_msg(grid.origin)
    msg.data = grid.data.reshape(-1).astype(int).tolist()
    return msg
