"""
Unit tests for Rigid3 and the rotation conversions it is built on.

scipy's Rotation is used as an independent reference for conventions.
"""

import math

import numpy as np
import pytest
from scipy.spatial.transform import Rotation

from slam_bridge.common.transforms.rigid3 import (
    Rigid3,
    quat_to_rotmat,
    rotmat_to_quat,
    rotmat_to_rotvec,
    rotvec_to_rotmat,
)


class TestRotationConversions:
    """Conversions agree with scipy and survive the θ ≈ π branch."""

    @pytest.mark.parametrize("rotvec", [
        [0.0, 0.0, 0.0],
        [0.01, 0.02, 0.03],
        [0.3, -1.2, 0.7],
        [math.pi - 1e-4, 0.0, 0.0],
    ])
    def test_rotvec_to_rotmat_matches_scipy(self, rotvec):
        expected = Rotation.from_rotvec(rotvec).as_matrix()
        assert np.allclose(rotvec_to_rotmat(np.array(rotvec)), expected, atol=1e-10)

    def test_quat_xyzw_convention(self):
        """90° about z: quaternion (0, 0, sin 45°, cos 45°)."""
        q = Rotation.from_euler("z", 90, degrees=True).as_quat()
        R = quat_to_rotmat(*q)
        assert np.allclose(R @ np.array([1.0, 0.0, 0.0]), [0.0, 1.0, 0.0], atol=1e-12)

    def test_rotmat_to_quat_matches_scipy_up_to_sign(self):
        rng = np.random.default_rng(7)
        for rotvec in rng.normal(size=(20, 3)):
            R = Rotation.from_rotvec(rotvec).as_matrix()
            q = np.array(rotmat_to_quat(R))
            q_ref = Rotation.from_matrix(R).as_quat()
            assert abs(abs(np.dot(q, q_ref)) - 1.0) < 1e-9

    def test_rotvec_exactly_pi(self):
        R = rotvec_to_rotmat(np.array([0.0, math.pi, 0.0]))
        recovered = rotmat_to_rotvec(R)
        assert np.isclose(np.linalg.norm(recovered), math.pi, atol=1e-6)
        assert np.allclose(rotvec_to_rotmat(recovered), R, atol=1e-9)


class TestRigid3:
    def test_identity_defaults(self):
        T = Rigid3.identity()
        assert np.allclose(T.translation, 0.0)
        assert np.allclose(T.rotation, [0.0, 0.0, 0.0, 1.0])

    def test_rotation_is_normalized_and_canonical(self):
        T = Rigid3(translation=[0, 0, 0], rotation=[0.0, 0.0, 0.0, -2.0])
        assert np.allclose(T.rotation, [0.0, 0.0, 0.0, 1.0])

    def test_arrays_are_read_only(self):
        T = Rigid3.from_translation(1.0, 2.0)
        with pytest.raises(ValueError):
            T.translation[0] = 5.0

    def test_bad_shapes_rejected(self):
        with pytest.raises(ValueError):
            Rigid3(translation=[1.0, 2.0])
        with pytest.raises(ValueError):
            Rigid3(rotation=[0.0, 0.0, 0.0, 0.0])

    def test_compose_applies_right_first(self):
        A = Rigid3.from_xyz_yaw(1.0, 0.0, 0.0, math.pi / 2)
        B = Rigid3.from_translation(1.0, 0.0, 0.0)
        p = np.array([0.5, 0.0, 0.0])
        assert np.allclose((A * B).apply(p), A.apply(B.apply(p)))
        assert np.allclose((A * B).apply(p), [1.0, 1.5, 0.0])

    def test_inverse_roundtrip(self):
        T = Rigid3.from_rotvec([0.1, -0.4, 0.9], t=[1.0, -2.0, 0.5])
        assert (T * T.inverse()).isclose(Rigid3.identity())
        assert (T.inverse() * T).isclose(Rigid3.identity())

    def test_matrix_roundtrip(self):
        T = Rigid3.from_rotvec([0.2, 0.0, -0.3], t=[3.0, 1.0, 0.0])
        assert Rigid3.from_matrix(T.matrix()).isclose(T)

    def test_apply_single_and_batched(self):
        T = Rigid3.from_xyz_yaw(0.0, 0.0, 1.0, math.pi)
        single = T.apply(np.array([1.0, 0.0, 0.0]))
        batched = T.apply(np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]))
        assert single.shape == (3,)
        assert batched.shape == (2, 3)
        assert np.allclose(single, [-1.0, 0.0, 1.0])
        assert np.allclose(batched[1], [0.0, -1.0, 1.0])

    def test_rotate_ignores_translation(self):
        T = Rigid3.from_xyz_yaw(5.0, 5.0, 5.0, math.pi / 2)
        assert np.allclose(T.rotate(np.array([1.0, 0.0, 0.0])), [0.0, 1.0, 0.0])

    def test_yaw(self):
        assert math.isclose(Rigid3.from_xyz_yaw(0, 0, 0, 0.75).yaw(), 0.75, abs_tol=1e-12)

    def test_isclose_tolerance(self):
        T = Rigid3.from_translation(1.0, 0.0, 0.0)
        assert T.isclose(Rigid3.from_translation(1.0 + 1e-12, 0.0, 0.0))
        assert not T.isclose(Rigid3.from_translation(1.1, 0.0, 0.0))

    def test_to_dict_is_json_friendly(self):
        d = Rigid3.from_xyz_yaw(1.0, 2.0, 3.0, 0.0).to_dict()
        assert d["translation"] == [1.0, 2.0, 3.0]
        assert d["rotation"] == [0.0, 0.0, 0.0, 1.0]
        assert all(isinstance(v, float) for v in d["translation"] + d["rotation"])
