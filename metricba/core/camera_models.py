"""
Camera intrinsic models used by metric bundle adjustment

A camera model projects a point in camera coordinates (X, Y, Z) into pixels and
computes the gradient of that projection with respect to the point and,
optionally, with respect to its own intrinsic parameters. The gradients are
written into caller supplied arrays so the Jacobian assembler can reuse the
same buffers for every observation.

Models:
- PinholeCamera:           fx, fy, cx, cy, [skew]
- SimplifiedPinholeCamera: f, k1, k2 (Bundler / BAL style, no principal point)
- BrownCamera:             fx, fy, cx, cy, [skew], k1..kn, [t1, t2]
"""

import numpy as np
import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


class CameraModel(ABC):
    """Projection model with analytic gradients"""

    @abstractmethod
    def get_intrinsic_count(self) -> int:
        """Number of intrinsic parameters that are optimized"""

    @abstractmethod
    def set_intrinsic(self, params: np.ndarray, offset: int) -> None:
        """Read intrinsic parameters from `params` starting at `offset`"""

    @abstractmethod
    def get_intrinsic(self, params: np.ndarray, offset: int) -> None:
        """Write intrinsic parameters into `params` starting at `offset`"""

    @abstractmethod
    def project(self, X: float, Y: float, Z: float) -> Tuple[float, float]:
        """Project a point in camera coordinates into pixels"""

    @abstractmethod
    def jacobian(
        self,
        X: float,
        Y: float,
        Z: float,
        point_x: np.ndarray,
        point_y: np.ndarray,
        compute_intrinsic: bool,
        calib_x: Optional[np.ndarray],
        calib_y: Optional[np.ndarray],
    ) -> None:
        """
        Gradient of the projected pixel with respect to the point and the intrinsics

        Args:
            X, Y, Z: Point in camera coordinates
            point_x: (output) d(pixel x)/d(X, Y, Z), length 3
            point_y: (output) d(pixel y)/d(X, Y, Z), length 3
            compute_intrinsic: If True the intrinsic gradient is computed too
            calib_x: (output) d(pixel x)/d(intrinsics), length >= get_intrinsic_count()
            calib_y: (output) d(pixel y)/d(intrinsics), length >= get_intrinsic_count()
        """


class PinholeCamera(CameraModel):
    """Pinhole camera with optional skew. Intrinsic order: fx, fy, cx, cy, [skew]"""

    def __init__(self, fx: float, fy: float, cx: float, cy: float,
                 skew: float = 0.0, zero_skew: bool = True):
        self.fx = float(fx)
        self.fy = float(fy)
        self.cx = float(cx)
        self.cy = float(cy)
        self.skew = 0.0 if zero_skew else float(skew)
        self.zero_skew = zero_skew

    def get_intrinsic_count(self) -> int:
        return 4 if self.zero_skew else 5

    def set_intrinsic(self, params: np.ndarray, offset: int) -> None:
        self.fx, self.fy, self.cx, self.cy = (float(v) for v in params[offset:offset + 4])
        if not self.zero_skew:
            self.skew = float(params[offset + 4])

    def get_intrinsic(self, params: np.ndarray, offset: int) -> None:
        params[offset:offset + 4] = (self.fx, self.fy, self.cx, self.cy)
        if not self.zero_skew:
            params[offset + 4] = self.skew

    def project(self, X: float, Y: float, Z: float) -> Tuple[float, float]:
        nx = X / Z
        ny = Y / Z
        return self.fx * nx + self.skew * ny + self.cx, self.fy * ny + self.cy

    def jacobian(self, X, Y, Z, point_x, point_y, compute_intrinsic, calib_x, calib_y) -> None:
        nx = X / Z
        ny = Y / Z

        point_x[0] = self.fx / Z
        point_x[1] = self.skew / Z
        point_x[2] = -(self.fx * nx + self.skew * ny) / Z

        point_y[0] = 0.0
        point_y[1] = self.fy / Z
        point_y[2] = -self.fy * ny / Z

        if not compute_intrinsic:
            return

        calib_x[0:4] = (nx, 0.0, 1.0, 0.0)
        calib_y[0:4] = (0.0, ny, 0.0, 1.0)
        if not self.zero_skew:
            calib_x[4] = ny
            calib_y[4] = 0.0

    def __repr__(self) -> str:
        return (f"PinholeCamera(fx={self.fx:.3f}, fy={self.fy:.3f}, "
                f"cx={self.cx:.3f}, cy={self.cy:.3f}, skew={self.skew:.3f})")


class SimplifiedPinholeCamera(CameraModel):
    """
    Bundler style camera with two radial distortion terms and no principal point

        r = 1 + k1*|n|^2 + k2*|n|^4
        pixel = f * r * n,  n = (X/Z, Y/Z)
    """

    def __init__(self, f: float, k1: float = 0.0, k2: float = 0.0):
        self.f = float(f)
        self.k1 = float(k1)
        self.k2 = float(k2)

    def get_intrinsic_count(self) -> int:
        return 3

    def set_intrinsic(self, params: np.ndarray, offset: int) -> None:
        self.f, self.k1, self.k2 = (float(v) for v in params[offset:offset + 3])

    def get_intrinsic(self, params: np.ndarray, offset: int) -> None:
        params[offset:offset + 3] = (self.f, self.k1, self.k2)

    def project(self, X: float, Y: float, Z: float) -> Tuple[float, float]:
        nx = X / Z
        ny = Y / Z
        r2 = nx * nx + ny * ny
        r = 1.0 + r2 * (self.k1 + self.k2 * r2)
        return self.f * r * nx, self.f * r * ny

    def jacobian(self, X, Y, Z, point_x, point_y, compute_intrinsic, calib_x, calib_y) -> None:
        nx = X / Z
        ny = Y / Z
        r2 = nx * nx + ny * ny
        r = 1.0 + r2 * (self.k1 + self.k2 * r2)
        # dr/d(r2)
        dr = self.k1 + 2.0 * self.k2 * r2

        f = self.f
        # partials with respect to the normalized coordinates
        gx_nx = f * (r + 2.0 * nx * nx * dr)
        gx_ny = f * 2.0 * nx * ny * dr
        gy_nx = gx_ny
        gy_ny = f * (r + 2.0 * ny * ny * dr)

        _chain_normalized(X, Y, Z, gx_nx, gx_ny, point_x)
        _chain_normalized(X, Y, Z, gy_nx, gy_ny, point_y)

        if not compute_intrinsic:
            return

        calib_x[0:3] = (r * nx, f * nx * r2, f * nx * r2 * r2)
        calib_y[0:3] = (r * ny, f * ny * r2, f * ny * r2 * r2)

    def __repr__(self) -> str:
        return f"SimplifiedPinholeCamera(f={self.f:.3f}, k1={self.k1:.5f}, k2={self.k2:.5f})"


class BrownCamera(CameraModel):
    """
    Pinhole camera with Brown-Conrady radial and tangential distortion

    Intrinsic order: fx, fy, cx, cy, [skew], k1..kn, [t1, t2]. The tangential
    terms match OpenCV's p1, p2.
    """

    def __init__(self, fx: float, fy: float, cx: float, cy: float,
                 radial: Sequence[float] = (0.0, 0.0), t1: float = 0.0, t2: float = 0.0,
                 skew: float = 0.0, zero_skew: bool = True, tangential: bool = True):
        self.fx = float(fx)
        self.fy = float(fy)
        self.cx = float(cx)
        self.cy = float(cy)
        self.skew = 0.0 if zero_skew else float(skew)
        self.zero_skew = zero_skew
        self.radial = np.array(radial, dtype=np.float64)
        self.tangential = tangential
        self.t1 = float(t1) if tangential else 0.0
        self.t2 = float(t2) if tangential else 0.0

    def get_intrinsic_count(self) -> int:
        count = 4 + len(self.radial)
        if not self.zero_skew:
            count += 1
        if self.tangential:
            count += 2
        return count

    def set_intrinsic(self, params: np.ndarray, offset: int) -> None:
        self.fx, self.fy, self.cx, self.cy = (float(v) for v in params[offset:offset + 4])
        index = offset + 4
        if not self.zero_skew:
            self.skew = float(params[index])
            index += 1
        n = len(self.radial)
        self.radial[:] = params[index:index + n]
        index += n
        if self.tangential:
            self.t1 = float(params[index])
            self.t2 = float(params[index + 1])

    def get_intrinsic(self, params: np.ndarray, offset: int) -> None:
        params[offset:offset + 4] = (self.fx, self.fy, self.cx, self.cy)
        index = offset + 4
        if not self.zero_skew:
            params[index] = self.skew
            index += 1
        n = len(self.radial)
        params[index:index + n] = self.radial
        index += n
        if self.tangential:
            params[index] = self.t1
            params[index + 1] = self.t2

    def _distort(self, nx: float, ny: float) -> Tuple[float, float, float, float]:
        """Returns distorted coordinates, r^2 and the radial sum"""
        r2 = nx * nx + ny * ny
        radial_sum = 0.0
        r2_pow = r2
        for k in self.radial:
            radial_sum += k * r2_pow
            r2_pow *= r2

        xd = nx + nx * radial_sum + 2.0 * self.t1 * nx * ny + self.t2 * (r2 + 2.0 * nx * nx)
        yd = ny + ny * radial_sum + self.t1 * (r2 + 2.0 * ny * ny) + 2.0 * self.t2 * nx * ny
        return xd, yd, r2, radial_sum

    def project(self, X: float, Y: float, Z: float) -> Tuple[float, float]:
        xd, yd, _, _ = self._distort(X / Z, Y / Z)
        return self.fx * xd + self.skew * yd + self.cx, self.fy * yd + self.cy

    def jacobian(self, X, Y, Z, point_x, point_y, compute_intrinsic, calib_x, calib_y) -> None:
        nx = X / Z
        ny = Y / Z
        xd, yd, r2, radial_sum = self._distort(nx, ny)

        # d(radial_sum)/d(r2)
        d_sum = 0.0
        r2_pow = 1.0
        for i, k in enumerate(self.radial):
            d_sum += (i + 1) * k * r2_pow
            r2_pow *= r2

        t1, t2 = self.t1, self.t2
        dxd_nx = 1.0 + radial_sum + 2.0 * nx * nx * d_sum + 2.0 * t1 * ny + 6.0 * t2 * nx
        dxd_ny = 2.0 * nx * ny * d_sum + 2.0 * t1 * nx + 2.0 * t2 * ny
        dyd_nx = 2.0 * nx * ny * d_sum + 2.0 * t1 * nx + 2.0 * t2 * ny
        dyd_ny = 1.0 + radial_sum + 2.0 * ny * ny * d_sum + 6.0 * t1 * ny + 2.0 * t2 * nx

        gx_nx = self.fx * dxd_nx + self.skew * dyd_nx
        gx_ny = self.fx * dxd_ny + self.skew * dyd_ny
        gy_nx = self.fy * dyd_nx
        gy_ny = self.fy * dyd_ny

        _chain_normalized(X, Y, Z, gx_nx, gx_ny, point_x)
        _chain_normalized(X, Y, Z, gy_nx, gy_ny, point_y)

        if not compute_intrinsic:
            return

        calib_x[0:4] = (xd, 0.0, 1.0, 0.0)
        calib_y[0:4] = (0.0, yd, 0.0, 1.0)
        index = 4
        if not self.zero_skew:
            calib_x[index] = yd
            calib_y[index] = 0.0
            index += 1

        # radial terms enter through nx*sum and ny*sum
        ax = self.fx * nx + self.skew * ny
        ay = self.fy * ny
        r2_pow = r2
        for _ in range(len(self.radial)):
            calib_x[index] = ax * r2_pow
            calib_y[index] = ay * r2_pow
            r2_pow *= r2
            index += 1

        if self.tangential:
            dxd_t1 = 2.0 * nx * ny
            dyd_t1 = r2 + 2.0 * ny * ny
            dxd_t2 = r2 + 2.0 * nx * nx
            dyd_t2 = 2.0 * nx * ny
            calib_x[index] = self.fx * dxd_t1 + self.skew * dyd_t1
            calib_y[index] = self.fy * dyd_t1
            calib_x[index + 1] = self.fx * dxd_t2 + self.skew * dyd_t2
            calib_y[index + 1] = self.fy * dyd_t2

    def __repr__(self) -> str:
        return (f"BrownCamera(fx={self.fx:.3f}, fy={self.fy:.3f}, cx={self.cx:.3f}, "
                f"cy={self.cy:.3f}, radial={self.radial.tolist()}, t1={self.t1:.5f}, t2={self.t2:.5f})")


def _chain_normalized(X: float, Y: float, Z: float, g_nx: float, g_ny: float, out: np.ndarray) -> None:
    """Turn a gradient w.r.t. (X/Z, Y/Z) into a gradient w.r.t. (X, Y, Z)"""
    out[0] = g_nx / Z
    out[1] = g_ny / Z
    out[2] = -(g_nx * X + g_ny * Y) / (Z * Z)


def create_camera_model(model: str, params: Sequence[float]) -> CameraModel:
    """
    Create a camera model from a model name and parameter list

    Accepts COLMAP names (PINHOLE, SIMPLE_PINHOLE, RADIAL, OPENCV) and the native
    names (pinhole, pinhole_simplified, brown). Native names take parameters in
    the same order as set_intrinsic() with default options.
    """
    name = (model or "PINHOLE").upper()
    params = [float(p) for p in params]

    if name == "PINHOLE":
        _expect_params(name, params, 4)
        return PinholeCamera(*params[:4])
    if name == "SIMPLE_PINHOLE":
        _expect_params(name, params, 3)
        f, cx, cy = params[:3]
        return PinholeCamera(f, f, cx, cy)
    if name == "RADIAL":
        _expect_params(name, params, 6)
        fx, fy, cx, cy, k1, k2 = params[:6]
        return BrownCamera(fx, fy, cx, cy, radial=(k1, k2), tangential=False)
    if name == "OPENCV":
        _expect_params(name, params, 8)
        fx, fy, cx, cy, k1, k2, p1, p2 = params[:8]
        return BrownCamera(fx, fy, cx, cy, radial=(k1, k2), t1=p1, t2=p2)
    if name == "PINHOLE_SIMPLIFIED":
        _expect_params(name, params, 3)
        return SimplifiedPinholeCamera(*params[:3])
    if name == "BROWN":
        _expect_params(name, params, 6)
        fx, fy, cx, cy = params[:4]
        radial = params[4:-2]
        t1, t2 = params[-2:]
        return BrownCamera(fx, fy, cx, cy, radial=radial, t1=t1, t2=t2)

    raise ValueError(f"Unsupported camera model {model}")


def _expect_params(name: str, params: Sequence[float], count: int) -> None:
    if len(params) < count:
        raise ValueError(f"Camera model {name} expects ≥{count} parameters, got {len(params)}")
