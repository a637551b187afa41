"""
Unit tests for camera models
"""

import pytest
import numpy as np
from pathlib import Path
import sys

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from metricba.core.camera_models import (
    PinholeCamera,
    SimplifiedPinholeCamera,
    BrownCamera,
    create_camera_model,
)


CAMERAS = {
    "pinhole": lambda: PinholeCamera(520.0, 510.0, 320.0, 240.0),
    "pinhole_skew": lambda: PinholeCamera(520.0, 510.0, 320.0, 240.0, skew=1.5, zero_skew=False),
    "simplified": lambda: SimplifiedPinholeCamera(600.0, k1=0.08, k2=-0.02),
    "brown": lambda: BrownCamera(500.0, 480.0, 310.0, 250.0, radial=(0.05, -0.01, 0.002),
                                 t1=0.001, t2=-0.002, skew=0.5, zero_skew=False),
    "brown_no_tangential": lambda: BrownCamera(500.0, 480.0, 310.0, 250.0, radial=(0.1,),
                                               tangential=False),
}

POINT = np.array([0.4, -0.3, 2.5])


def analytic(camera, X):
    n = camera.get_intrinsic_count()
    point_x, point_y = np.zeros(3), np.zeros(3)
    calib_x, calib_y = np.zeros(n), np.zeros(n)
    camera.jacobian(*X, point_x, point_y, True, calib_x, calib_y)
    return np.vstack([point_x, point_y]), np.vstack([calib_x, calib_y])


def numerical_point(camera, X, step=1e-6):
    J = np.zeros((2, 3))
    for i in range(3):
        plus, minus = X.copy(), X.copy()
        plus[i] += step
        minus[i] -= step
        J[:, i] = (np.array(camera.project(*plus)) - np.array(camera.project(*minus))) / (2 * step)
    return J


def numerical_intrinsic(camera, X, step=1e-6):
    n = camera.get_intrinsic_count()
    params = np.zeros(n)
    camera.get_intrinsic(params, 0)
    J = np.zeros((2, n))
    for i in range(n):
        plus, minus = params.copy(), params.copy()
        plus[i] += step
        minus[i] -= step
        camera.set_intrinsic(plus, 0)
        p = np.array(camera.project(*X))
        camera.set_intrinsic(minus, 0)
        m = np.array(camera.project(*X))
        J[:, i] = (p - m) / (2 * step)
    camera.set_intrinsic(params, 0)
    return J


class TestGradients:
    """Analytic gradients against central differences"""

    @pytest.mark.parametrize("name", sorted(CAMERAS))
    def test_point_gradient(self, name):
        camera = CAMERAS[name]()
        point_grad, _ = analytic(camera, POINT)
        np.testing.assert_allclose(point_grad, numerical_point(camera, POINT), rtol=1e-5, atol=1e-5)

    @pytest.mark.parametrize("name", sorted(CAMERAS))
    def test_intrinsic_gradient(self, name):
        camera = CAMERAS[name]()
        _, calib_grad = analytic(camera, POINT)
        np.testing.assert_allclose(calib_grad, numerical_intrinsic(camera, POINT), rtol=1e-5, atol=1e-5)

    def test_point_only(self):
        """Intrinsic buffers are left alone when they are not requested"""
        camera = CAMERAS["brown"]()
        point_x, point_y = np.zeros(3), np.zeros(3)
        camera.jacobian(*POINT, point_x, point_y, False, None, None)
        expected, _ = analytic(camera, POINT)
        np.testing.assert_allclose(point_x, expected[0])
        np.testing.assert_allclose(point_y, expected[1])


class TestIntrinsics:
    """Test intrinsic parameter read and write"""

    def test_counts(self):
        assert CAMERAS["pinhole"]().get_intrinsic_count() == 4
        assert CAMERAS["pinhole_skew"]().get_intrinsic_count() == 5
        assert CAMERAS["simplified"]().get_intrinsic_count() == 3
        assert CAMERAS["brown"]().get_intrinsic_count() == 4 + 1 + 3 + 2
        assert CAMERAS["brown_no_tangential"]().get_intrinsic_count() == 5

    def test_brown_order(self):
        """fx, fy, cx, cy, skew, radial, t1, t2"""
        camera = CAMERAS["brown"]()
        params = np.zeros(12)
        camera.get_intrinsic(params, 2)
        np.testing.assert_allclose(
            params[2:], [500.0, 480.0, 310.0, 250.0, 0.5, 0.05, -0.01, 0.002, 0.001, -0.002]
        )

    @pytest.mark.parametrize("name", sorted(CAMERAS))
    def test_set_get(self, name):
        camera = CAMERAS[name]()
        n = camera.get_intrinsic_count()
        values = np.arange(1, n + 1, dtype=float) * 0.1
        params = np.concatenate([[7.0], values])
        camera.set_intrinsic(params, 1)

        out = np.zeros(n)
        camera.get_intrinsic(out, 0)
        np.testing.assert_allclose(out, values)

    def test_zero_skew_ignores_value(self):
        camera = PinholeCamera(500.0, 500.0, 320.0, 240.0, skew=3.0)
        assert camera.skew == 0.0
        assert camera.project(0.0, 1.0, 2.0) == (320.0, 490.0)


class TestFactory:
    """Test create_camera_model"""

    def test_colmap_models(self):
        camera = create_camera_model("SIMPLE_PINHOLE", [500, 320, 240])
        assert isinstance(camera, PinholeCamera)
        assert camera.fx == camera.fy == 500.0

        camera = create_camera_model("RADIAL", [500, 510, 320, 240, 0.1, 0.01])
        assert isinstance(camera, BrownCamera)
        assert not camera.tangential
        assert camera.get_intrinsic_count() == 6

        camera = create_camera_model("OPENCV", [500, 510, 320, 240, 0.1, 0.01, 0.001, 0.002])
        assert camera.t1 == 0.001 and camera.t2 == 0.002

    def test_native_models(self):
        assert isinstance(create_camera_model("pinhole_simplified", [500, 0.1, 0.0]),
                          SimplifiedPinholeCamera)
        camera = create_camera_model("brown", [500, 510, 320, 240, 0.1, 0.01, 0.0, 0.001, 0.002])
        np.testing.assert_allclose(camera.radial, [0.1, 0.01, 0.0])
        assert camera.t2 == 0.002

    def test_too_few_parameters(self):
        with pytest.raises(ValueError):
            create_camera_model("PINHOLE", [500, 500, 320])

    def test_unsupported(self):
        with pytest.raises(ValueError, match="Unsupported camera model"):
            create_camera_model("FISHEYE", [1, 2, 3, 4])
