"""
Rigid 3D transforms (translation + unit quaternion).

Rigid3 is the single geometric type that crosses the bridge boundary:
submap local poses, global submap transforms, trajectory node poses and
sensor-to-tracking extrinsics are all Rigid3.

Representation:
    translation: (x, y, z) in meters
    rotation:    unit quaternion (x, y, z, w), w >= 0 canonical sign

Numerical Policy:
    ROTATION_EPSILON = 1e-10: small-angle branch for rotvec conversions
    SINGULARITY_EPSILON = 1e-6: threshold for the θ ≈ π branch
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Tuple

import numpy as np


ROTATION_EPSILON: float = 1e-10
SINGULARITY_EPSILON: float = 1e-6


# =============================================================================
# Rotation conversions
# =============================================================================


def skew(v: np.ndarray) -> np.ndarray:
    """Skew-symmetric matrix from 3-vector (hat operator)."""
    v = np.asarray(v, dtype=float).reshape(-1)
    return np.array([
        [0.0, -v[2], v[1]],
        [v[2], 0.0, -v[0]],
        [-v[1], v[0], 0.0]
    ], dtype=float)


def rotvec_to_rotmat(rotvec: np.ndarray) -> np.ndarray:
    """Rodrigues' formula: R = I + sin(θ)[ω]_× + (1-cos(θ))[ω]_×²."""
    rotvec = np.asarray(rotvec, dtype=float).reshape(-1)
    theta = np.linalg.norm(rotvec)
    if theta < ROTATION_EPSILON:
        return np.eye(3, dtype=float) + skew(rotvec)
    K = skew(rotvec / theta)
    return np.eye(3, dtype=float) + math.sin(theta) * K + (1.0 - math.cos(theta)) * (K @ K)


def rotmat_to_rotvec(R: np.ndarray) -> np.ndarray:
    """
    Logarithmic map SO(3) -> so(3).

    Handles θ ≈ 0 (skew part), θ ≈ π (diagonal axis extraction) and the
    general case.
    """
    R = np.asarray(R, dtype=float)
    cos_theta = np.clip((np.trace(R) - 1.0) / 2.0, -1.0, 1.0)
    theta = math.acos(cos_theta)

    if theta < ROTATION_EPSILON:
        return np.array([R[2, 1] - R[1, 2], R[0, 2] - R[2, 0], R[1, 0] - R[0, 1]], dtype=float) / 2.0

    if abs(theta - math.pi) < SINGULARITY_EPSILON:
        axis = np.sqrt(np.maximum((np.diag(R) + 1.0) * 0.5, 0.0))
        # Resolve sign ambiguity using off-diagonal elements
        if axis[0] > 1e-6:
            axis[1] = math.copysign(axis[1], R[0, 1])
            axis[2] = math.copysign(axis[2], R[0, 2])
        elif axis[1] > 1e-6:
            axis[2] = math.copysign(axis[2], R[1, 2])
        axis_norm = np.linalg.norm(axis)
        if axis_norm < 1e-12:
            return np.zeros(3, dtype=float)
        return axis / axis_norm * theta

    axis = np.array([R[2, 1] - R[1, 2], R[0, 2] - R[2, 0], R[1, 0] - R[0, 1]], dtype=float)
    return axis / (2.0 * math.sin(theta)) * theta


def quat_to_rotmat(qx: float, qy: float, qz: float, qw: float) -> np.ndarray:
    """Convert quaternion (x, y, z, w) to rotation matrix."""
    n = math.sqrt(qx*qx + qy*qy + qz*qz + qw*qw)
    if n < 1e-12:
        return np.eye(3, dtype=float)
    qx, qy, qz, qw = qx/n, qy/n, qz/n, qw/n

    xx, yy, zz = qx*qx, qy*qy, qz*qz
    xy, xz, yz = qx*qy, qx*qz, qy*qz
    wx, wy, wz = qw*qx, qw*qy, qw*qz

    return np.array([
        [1.0 - 2.0*(yy + zz), 2.0*(xy - wz), 2.0*(xz + wy)],
        [2.0*(xy + wz), 1.0 - 2.0*(xx + zz), 2.0*(yz - wx)],
        [2.0*(xz - wy), 2.0*(yz + wx), 1.0 - 2.0*(xx + yy)]
    ], dtype=float)


def rotmat_to_quat(R: np.ndarray) -> Tuple[float, float, float, float]:
    """Convert rotation matrix to quaternion (x, y, z, w)."""
    R = np.asarray(R, dtype=float)
    trace = np.trace(R)

    if trace > 0:
        s = 0.5 / math.sqrt(trace + 1.0)
        qw = 0.25 / s
        qx = (R[2, 1] - R[1, 2]) * s
        qy = (R[0, 2] - R[2, 0]) * s
        qz = (R[1, 0] - R[0, 1]) * s
    elif R[0, 0] > R[1, 1] and R[0, 0] > R[2, 2]:
        s = 2.0 * math.sqrt(1.0 + R[0, 0] - R[1, 1] - R[2, 2])
        qw = (R[2, 1] - R[1, 2]) / s
        qx = 0.25 * s
        qy = (R[0, 1] + R[1, 0]) / s
        qz = (R[0, 2] + R[2, 0]) / s
    elif R[1, 1] > R[2, 2]:
        s = 2.0 * math.sqrt(1.0 + R[1, 1] - R[0, 0] - R[2, 2])
        qw = (R[0, 2] - R[2, 0]) / s
        qx = (R[0, 1] + R[1, 0]) / s
        qy = 0.25 * s
        qz = (R[1, 2] + R[2, 1]) / s
    else:
        s = 2.0 * math.sqrt(1.0 + R[2, 2] - R[0, 0] - R[1, 1])
        qw = (R[1, 0] - R[0, 1]) / s
        qx = (R[0, 2] + R[2, 0]) / s
        qy = (R[1, 2] + R[2, 1]) / s
        qz = 0.25 * s

    n = math.sqrt(qx*qx + qy*qy + qz*qz + qw*qw)
    return (qx/n, qy/n, qz/n, qw/n)


def _canonical_quat(q) -> np.ndarray:
    q = np.asarray(q, dtype=float).reshape(-1)
    if q.shape[0] != 4:
        raise ValueError(f"Expected quaternion (x, y, z, w), got shape {q.shape}")
    n = np.linalg.norm(q)
    if n < 1e-12:
        raise ValueError("Quaternion has zero norm")
    q = q / n
    if q[3] < 0.0:
        q = -q
    return q


# =============================================================================
# Rigid3
# =============================================================================


@dataclass(frozen=True, eq=False)
class Rigid3:
    """Immutable rigid transform. Equality is exact; use isclose() for tolerance."""

    translation: np.ndarray = field(default_factory=lambda: np.zeros(3))
    rotation: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0, 0.0, 1.0]))

    def __post_init__(self) -> None:
        t = np.asarray(self.translation, dtype=float).reshape(-1)
        if t.shape[0] != 3:
            raise ValueError(f"Expected translation (x, y, z), got shape {t.shape}")
        q = _canonical_quat(self.rotation)
        t.setflags(write=False)
        q.setflags(write=False)
        object.__setattr__(self, "translation", t)
        object.__setattr__(self, "rotation", q)

    # --- constructors -------------------------------------------------------

    @classmethod
    def identity(cls) -> "Rigid3":
        return cls()

    @classmethod
    def from_translation(cls, x: float, y: float, z: float = 0.0) -> "Rigid3":
        return cls(translation=np.array([x, y, z], dtype=float))

    @classmethod
    def from_rotmat(cls, R: np.ndarray, t=None) -> "Rigid3":
        t = np.zeros(3) if t is None else t
        return cls(translation=t, rotation=np.array(rotmat_to_quat(R)))

    @classmethod
    def from_rotvec(cls, rotvec, t=None) -> "Rigid3":
        return cls.from_rotmat(rotvec_to_rotmat(rotvec), t)

    @classmethod
    def from_xyz_yaw(cls, x: float, y: float, z: float, yaw: float) -> "Rigid3":
        half = 0.5 * yaw
        return cls(
            translation=np.array([x, y, z], dtype=float),
            rotation=np.array([0.0, 0.0, math.sin(half), math.cos(half)]),
        )

    @classmethod
    def from_matrix(cls, T: np.ndarray) -> "Rigid3":
        T = np.asarray(T, dtype=float)
        if T.shape != (4, 4):
            raise ValueError(f"Expected 4x4 homogeneous matrix, got shape {T.shape}")
        return cls.from_rotmat(T[:3, :3], T[:3, 3])

    # --- accessors ----------------------------------------------------------

    def rotmat(self) -> np.ndarray:
        qx, qy, qz, qw = self.rotation
        return quat_to_rotmat(qx, qy, qz, qw)

    def rotvec(self) -> np.ndarray:
        return rotmat_to_rotvec(self.rotmat())

    def yaw(self) -> float:
        R = self.rotmat()
        return math.atan2(R[1, 0], R[0, 0])

    def matrix(self) -> np.ndarray:
        T = np.eye(4, dtype=float)
        T[:3, :3] = self.rotmat()
        T[:3, 3] = self.translation
        return T

    # --- group operations ---------------------------------------------------

    def __mul__(self, other: "Rigid3") -> "Rigid3":
        if not isinstance(other, Rigid3):
            return NotImplemented
        return self.compose(other)

    def compose(self, other: "Rigid3") -> "Rigid3":
        """self ∘ other: t = t_a + R_a t_b, R = R_a R_b."""
        R_a = self.rotmat()
        return Rigid3.from_rotmat(R_a @ other.rotmat(), self.translation + R_a @ other.translation)

    def inverse(self) -> "Rigid3":
        R_inv = self.rotmat().T
        return Rigid3.from_rotmat(R_inv, -R_inv @ self.translation)

    def apply(self, points: np.ndarray) -> np.ndarray:
        """Apply to (N, 3) or (3,) points; returns the same shape."""
        points = np.asarray(points, dtype=float)
        single = points.ndim == 1
        pts = points.reshape(-1, 3)
        out = pts @ self.rotmat().T + self.translation
        return out.reshape(3) if single else out

    def rotate(self, vectors: np.ndarray) -> np.ndarray:
        """Rotate (N, 3) or (3,) free vectors (no translation)."""
        vectors = np.asarray(vectors, dtype=float)
        single = vectors.ndim == 1
        out = vectors.reshape(-1, 3) @ self.rotmat().T
        return out.reshape(3) if single else out

    # --- comparison ---------------------------------------------------------

    def isclose(self, other: "Rigid3", atol: float = 1e-9) -> bool:
        if not np.allclose(self.translation, other.translation, atol=atol):
            return False
        # q and -q are the same rotation
        return bool(abs(abs(float(np.dot(self.rotation, other.rotation))) - 1.0) < atol)

    def to_dict(self) -> dict:
        return {
            "translation": [float(v) for v in self.translation],
            "rotation": [float(v) for v in self.rotation],
        }

    def __repr__(self) -> str:
        t = ", ".join(f"{v:.4f}" for v in self.translation)
        q = ", ".join(f"{v:.4f}" for v in self.rotation)
        return f"Rigid3(t=[{t}], q=[{q}])"
