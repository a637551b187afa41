"""
Rotation parameterizations and their Jacobians

Each parameterization turns a few numbers from the optimization parameter vector
into a 3x3 rotation matrix and supplies the partial derivative of that matrix
with respect to every one of its parameters:

    dR/dp_i  (3x3)  for i in [0, get_parameter_length())

Supported:
- Rodrigues (axis * angle, 3 parameters)
- Quaternion (w, x, y, z, 4 parameters, not required to be unit length)
"""

import numpy as np
import logging
from abc import ABC, abstractmethod
from scipy.spatial.transform import Rotation

logger = logging.getLogger(__name__)

# Below this angle the Rodrigues partials use the first order expansion around zero
SMALL_ANGLE = 1e-7


def skew(v: np.ndarray) -> np.ndarray:
    """Cross product matrix, skew(a) @ b == cross(a, b)"""
    return np.array([
        [0.0, -v[2], v[1]],
        [v[2], 0.0, -v[0]],
        [-v[1], v[0], 0.0]
    ])


class JacobianSo3(ABC):
    """Rotation matrix and its partials for a minimal rotation parameterization"""

    @abstractmethod
    def get_parameter_length(self) -> int:
        """Number of parameters used to encode the rotation"""

    @abstractmethod
    def set_parameters(self, params: np.ndarray, offset: int) -> None:
        """Read the parameters starting at `offset` and compute R and its partials"""

    @abstractmethod
    def get_parameters(self, R: np.ndarray, params: np.ndarray, offset: int) -> None:
        """Write the parameters which encode rotation matrix R starting at `offset`"""

    @abstractmethod
    def get_rotation_matrix(self) -> np.ndarray:
        """Rotation matrix for the last call to set_parameters()"""

    @abstractmethod
    def get_partial(self, index: int) -> np.ndarray:
        """Partial of the rotation matrix with respect to parameter `index`"""


class JacobianSo3Rodrigues(JacobianSo3):
    """
    Rodrigues vector v = axis * angle

    Partials follow Gallego and Yezzi, "A compact formula for the derivative of a
    3-D rotation in exponential coordinates":

        dR/dv_i = (v_i [v]x + [v x (I - R) e_i]x) R / |v|^2
    """

    def __init__(self):
        self._R = np.eye(3)
        self._partials = np.zeros((3, 3, 3))
        self._set_small_angle_partials()

    def _set_small_angle_partials(self):
        for i in range(3):
            e = np.zeros(3)
            e[i] = 1.0
            self._partials[i] = skew(e)

    def get_parameter_length(self) -> int:
        return 3

    def set_parameters(self, params: np.ndarray, offset: int) -> None:
        v = np.asarray(params[offset:offset + 3], dtype=np.float64)
        theta2 = float(v @ v)
        self._R[:] = Rotation.from_rotvec(v).as_matrix()

        if theta2 < SMALL_ANGLE * SMALL_ANGLE:
            self._set_small_angle_partials()
            return

        I_minus_R = np.eye(3) - self._R
        v_skew = skew(v)
        for i in range(3):
            S = v[i] * v_skew + skew(np.cross(v, I_minus_R[:, i]))
            np.dot(S, self._R, out=self._partials[i])
            self._partials[i] /= theta2

    def get_parameters(self, R: np.ndarray, params: np.ndarray, offset: int) -> None:
        params[offset:offset + 3] = Rotation.from_matrix(R).as_rotvec()

    def get_rotation_matrix(self) -> np.ndarray:
        return self._R

    def get_partial(self, index: int) -> np.ndarray:
        return self._partials[index]


class JacobianSo3Quaternion(JacobianSo3):
    """
    Quaternion (w, x, y, z)

    The quaternion is not constrained to unit length. The rotation matrix is
    R = M(q) / |q|^2 where M is the homogeneous quadratic form, so the partials
    account for the normalization:

        dR/dq_i = dM/dq_i / |q|^2 - 2 q_i M / |q|^4
    """

    def __init__(self):
        self._R = np.eye(3)
        self._partials = np.zeros((4, 3, 3))
        self._M = np.zeros((3, 3))
        self._dM = np.zeros((4, 3, 3))

    def get_parameter_length(self) -> int:
        return 4

    def set_parameters(self, params: np.ndarray, offset: int) -> None:
        w, x, y, z = (float(p) for p in params[offset:offset + 4])
        n = w*w + x*x + y*y + z*z
        if n == 0.0:
            raise ValueError("Quaternion has zero length")

        M = self._M
        M[0] = (w*w + x*x - y*y - z*z, 2*(x*y - w*z), 2*(x*z + w*y))
        M[1] = (2*(x*y + w*z), w*w - x*x + y*y - z*z, 2*(y*z - w*x))
        M[2] = (2*(x*z - w*y), 2*(y*z + w*x), w*w - x*x - y*y + z*z)

        dM = self._dM
        dM[0] = ((w, -z, y), (z, w, -x), (-y, x, w))
        dM[1] = ((x, y, z), (y, -x, -w), (z, w, -x))
        dM[2] = ((-y, x, w), (x, y, z), (-w, z, -y))
        dM[3] = ((-z, -w, x), (w, -z, y), (x, y, z))
        dM *= 2.0

        np.divide(M, n, out=self._R)
        q = (w, x, y, z)
        for i in range(4):
            self._partials[i] = dM[i] / n - (2.0 * q[i] / (n * n)) * M

    def get_parameters(self, R: np.ndarray, params: np.ndarray, offset: int) -> None:
        x, y, z, w = Rotation.from_matrix(R).as_quat()
        params[offset:offset + 4] = (w, x, y, z)

    def get_rotation_matrix(self) -> np.ndarray:
        return self._R

    def get_partial(self, index: int) -> np.ndarray:
        return self._partials[index]


ROTATION_TYPES = {
    "rodrigues": JacobianSo3Rodrigues,
    "quaternion": JacobianSo3Quaternion,
}


def create_rotation_jacobian(name: str) -> JacobianSo3:
    """Create a rotation parameterization by name"""
    try:
        return ROTATION_TYPES[name.lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown rotation parameterization '{name}', expected one of {sorted(ROTATION_TYPES)}"
        ) from None
