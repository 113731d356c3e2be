"""
TransformResolver: sensor frame -> tracking frame lookups with a bounded wait.

Any lookup failure surfaces as TransformTimeout; the caller drops the sample.
"""

from __future__ import annotations

import abc
from typing import Dict, Optional

from slam_bridge.common.errors import TransformTimeout
from slam_bridge.common.transforms.rigid3 import Rigid3


class TransformResolver(abc.ABC):
    """Resolves T_tracking_frame at a timestamp."""

    def __init__(self, tracking_frame: str, timeout_sec: float) -> None:
        self.tracking_frame = tracking_frame
        self.timeout_sec = float(timeout_sec)

    @abc.abstractmethod
    def resolve(self, frame_id: str, time_sec: float, timeout_sec: Optional[float] = None) -> Rigid3:
        """Pose of frame_id in the tracking frame. Raises TransformTimeout."""


class StaticTransformResolver(TransformResolver):
    """Fixed extrinsics, e.g. for offline replay or when TF is not available."""

    def __init__(
        self,
        tracking_frame: str,
        transforms: Optional[Dict[str, Rigid3]] = None,
        timeout_sec: float = 0.0,
    ) -> None:
        super().__init__(tracking_frame, timeout_sec)
        self._transforms: Dict[str, Rigid3] = dict(transforms or {})

    def set_transform(self, frame_id: str, sensor_to_tracking: Rigid3) -> None:
        self._transforms[frame_id] = sensor_to_tracking

    def resolve(self, frame_id: str, time_sec: float, timeout_sec: Optional[float] = None) -> Rigid3:
        if frame_id == self.tracking_frame:
            return Rigid3.identity()
        transform = self._transforms.get(frame_id)
        if transform is None:
            raise TransformTimeout(
                self.tracking_frame,
                frame_id,
                time_sec,
                self.timeout_sec if timeout_sec is None else timeout_sec,
            )
        return transform


class TfTransformResolver(TransformResolver):
    """tf2_ros.Buffer backed resolver."""

    def __init__(self, tracking_frame: str, timeout_sec: float, tf_buffer) -> None:
        super().__init__(tracking_frame, timeout_sec)
        self._tf_buffer = tf_buffer

    def resolve(self, frame_id: str, time_sec: float, timeout_sec: Optional[float] = None) -> Rigid3:
        from rclpy.duration import Duration
        from rclpy.time import Time
        from tf2_ros import TransformException

        from slam_bridge.node.msg_conversion import transform_msg_to_rigid3

        timeout = self.timeout_sec if timeout_sec is None else float(timeout_sec)
        try:
            stamped = self._tf_buffer.lookup_transform(
                self.tracking_frame,
                frame_id,
                Time(nanoseconds=int(round(time_sec * 1e9))),
                timeout=Duration(nanoseconds=int(round(timeout * 1e9))),
            )
        except TransformException as exc:
            raise TransformTimeout(self.tracking_frame, frame_id, time_sec, timeout) from exc
        return transform_msg_to_rigid3(stamped.transform)
