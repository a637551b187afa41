"""
Encode a metric scene into the optimization parameter vector and back

Uses the same layout as the Jacobian, so a vector produced by encode() can be
handed straight to MetricSchurJacobian.evaluate().
"""

import numpy as np
import logging
from typing import Optional

from .rotation import create_rotation_jacobian
from .scene import SceneStructureMetric
from .layout import build_parameter_layout

logger = logging.getLogger(__name__)


class SceneParameterCodec:
    """Converts between SceneStructureMetric and a flat parameter vector"""

    def __init__(self, rotation: str = "rodrigues"):
        self.rotation = rotation
        self._jac_so3 = create_rotation_jacobian(rotation)

    @property
    def rotation_length(self) -> int:
        """Number of parameters used by each rotation"""
        return self._jac_so3.get_parameter_length()

    def encode(self, structure: SceneStructureMetric, params: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Write the current scene into a parameter vector

        Args:
            structure: Scene to encode
            params: Optional output storage, must have the right length

        Returns:
            The parameter vector
        """
        jac = self._jac_so3
        layout = build_parameter_layout(structure, jac.get_parameter_length())
        rotation_length = jac.get_parameter_length()

        if params is None:
            params = np.zeros(layout.total_params)
        elif len(params) != layout.total_params:
            raise ValueError(f"Expected parameter vector of length {layout.total_params}, got {len(params)}")

        point_length = layout.point_length
        for i, point in enumerate(structure.points):
            params[i * point_length:(i + 1) * point_length] = point.coordinate

        for i, rigid in enumerate(structure.rigids):
            if rigid.known:
                continue
            index = layout.rigid_index(i)
            jac.get_parameters(rigid.object_to_world.R, params, index)
            params[index + rotation_length:index + rotation_length + 3] = rigid.object_to_world.T

        for i, view in enumerate(structure.views):
            if view.known:
                continue
            index = layout.view_index(i)
            jac.get_parameters(view.world_to_view.R, params, index)
            params[index + rotation_length:index + rotation_length + 3] = view.world_to_view.T

        for i, camera in enumerate(structure.cameras):
            if not camera.known:
                camera.model.get_intrinsic(params, layout.camera_index(i))

        return params

    def decode(self, params: np.ndarray, structure: SceneStructureMetric) -> None:
        """Overwrite the scene's points, unknown transforms and unknown intrinsics from `params`"""
        jac = self._jac_so3
        layout = build_parameter_layout(structure, jac.get_parameter_length())
        rotation_length = jac.get_parameter_length()

        params = np.asarray(params, dtype=np.float64)
        if len(params) != layout.total_params:
            raise ValueError(f"Expected parameter vector of length {layout.total_params}, got {len(params)}")

        point_length = layout.point_length
        for i, point in enumerate(structure.points):
            point.coordinate[:] = params[i * point_length:(i + 1) * point_length]

        for i, rigid in enumerate(structure.rigids):
            if rigid.known:
                continue
            index = layout.rigid_index(i)
            jac.set_parameters(params, index)
            rigid.object_to_world.R[:] = jac.get_rotation_matrix()
            rigid.object_to_world.T[:] = params[index + rotation_length:index + rotation_length + 3]

        for i, view in enumerate(structure.views):
            if view.known:
                continue
            index = layout.view_index(i)
            jac.set_parameters(params, index)
            view.world_to_view.R[:] = jac.get_rotation_matrix()
            view.world_to_view.T[:] = params[index + rotation_length:index + rotation_length + 3]

        for i, camera in enumerate(structure.cameras):
            if not camera.known:
                camera.model.set_intrinsic(params, layout.camera_index(i))
