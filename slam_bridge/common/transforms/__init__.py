"""Rigid transform utilities."""

from slam_bridge.common.transforms.rigid3 import (
    Rigid3,
    quat_to_rotmat,
    rotmat_to_quat,
    rotmat_to_rotvec,
    rotvec_to_rotmat,
)

__all__ = [
    "Rigid3",
    "quat_to_rotmat",
    "rotmat_to_quat",
    "rotmat_to_rotvec",
    "rotvec_to_rotmat",
]
