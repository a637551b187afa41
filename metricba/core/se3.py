"""
Rigid body transforms (SE3) and the point operations used by bundle adjustment

A transform maps a point from frame A to frame B as X_b = R * X_a + T.
Homogeneous points [x, y, z, w] are mapped as R * [x, y, z] + T * w.
"""

import numpy as np
from typing import Optional
from dataclasses import dataclass, field


@dataclass
class Se3:
    """Rotation matrix plus translation"""

    R: np.ndarray = field(default_factory=lambda: np.eye(3))
    T: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self):
        self.R = np.array(self.R, dtype=np.float64).reshape(3, 3)
        self.T = np.array(self.T, dtype=np.float64).reshape(3)

    def set(self, other: "Se3") -> None:
        """Copy the other transform into this one without reallocating"""
        self.R[:] = other.R
        self.T[:] = other.T

    def copy(self) -> "Se3":
        return Se3(self.R.copy(), self.T.copy())

    def invert(self) -> "Se3":
        """Transform going the other way"""
        R_inv = self.R.T.copy()
        return Se3(R_inv, -R_inv @ self.T)

    def concat(self, second: "Se3") -> "Se3":
        """Apply this transform first, then `second`"""
        return Se3(second.R @ self.R, second.R @ self.T + second.T)

    @classmethod
    def from_matrix(cls, matrix: np.ndarray) -> "Se3":
        """Build from a 3x4 or 4x4 [R|T] matrix"""
        matrix = np.asarray(matrix, dtype=np.float64)
        return cls(matrix[:3, :3], matrix[:3, 3])

    def to_matrix(self) -> np.ndarray:
        """4x4 homogeneous matrix"""
        M = np.eye(4)
        M[:3, :3] = self.R
        M[:3, 3] = self.T
        return M


def transform(se: Se3, point: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
    """Apply the transform to a 3D point"""
    if out is None:
        out = np.empty(3)
    np.dot(se.R, point[:3], out=out)
    out += se.T
    return out


def transform_v(se: Se3, point: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
    """Apply the transform to a homogeneous 4D point. Output is 3D and not divided by w"""
    if out is None:
        out = np.empty(3)
    np.dot(se.R, point[:3], out=out)
    out += se.T * point[3]
    return out
