# Copyright (c) 2024. Tudor Oancea
import numpy as np
import pytest

from racing_mpc import align_yaw, unwrap_to_pi, wrap_to_pi


class TestAlignYaw:
    @pytest.mark.parametrize(
        "yaw, yaw_ref, expected",
        [
            (0.1, 0.0, 0.1),
            (0.1 + 2 * np.pi, 0.0, 0.1),
            (0.1 - 4 * np.pi, 0.0, 0.1),
            (-3.1, 3.1, -3.1 + 2 * np.pi),
            (3.1, -3.1, 3.1 - 2 * np.pi),
            (1.0, 20.0, 1.0 + 6 * np.pi),
        ],
    )
    def test_closest_representative(self, yaw, yaw_ref, expected):
        aligned = float(align_yaw(yaw, yaw_ref))
        assert aligned == pytest.approx(expected)
        assert abs(aligned - yaw_ref) <= np.pi


class TestWrapping:
    def test_wrap_to_pi(self):
        x = np.array([0.0, np.pi / 2, 3 * np.pi / 2, -3 * np.pi / 2, 7.0])
        wrapped = wrap_to_pi(x)
        assert np.all(wrapped >= -np.pi)
        assert np.all(wrapped < np.pi)
        np.testing.assert_allclose(np.sin(wrapped), np.sin(x), atol=1e-12)
        np.testing.assert_allclose(np.cos(wrapped), np.cos(x), atol=1e-12)

    def test_unwrap_inverts_wrap(self):
        yaw = np.linspace(0.0, 4 * np.pi, 50)
        np.testing.assert_allclose(unwrap_to_pi(wrap_to_pi(yaw)), yaw, atol=1e-9)
