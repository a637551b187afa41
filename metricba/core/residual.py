"""
Reprojection residuals for metric bundle adjustment

residual = predicted pixel - observed pixel, two rows per observation in the
same order the Jacobian uses: for every view its free point observations and
then its rigid point observations.
"""

import numpy as np
import logging
from typing import Optional

from .se3 import transform, transform_v
from .scene import SceneStructureMetric, SceneObservations, validate_scene
from .codec import SceneParameterCodec

logger = logging.getLogger(__name__)


class ReprojectionResidual:
    """Residual function matching MetricSchurJacobian"""

    def __init__(self, rotation: str = "rodrigues"):
        self.rotation = rotation
        self.codec = SceneParameterCodec(rotation)
        self.structure: Optional[SceneStructureMetric] = None
        self.observations: Optional[SceneObservations] = None
        self._num_params = 0

        self._world_pt = np.zeros(3)
        self._camera_pt = np.zeros(3)

    def configure(self, structure: SceneStructureMetric, observations: SceneObservations) -> None:
        validate_scene(structure, observations)
        self.structure = structure
        self.observations = observations
        rotation_length = self.codec.rotation_length
        self._num_params = structure.parameter_count(rotation_length)

    def get_input_parameter_count(self) -> int:
        self._check_configured()
        return self._num_params

    def get_output_residual_count(self) -> int:
        self._check_configured()
        return 2 * self.observations.observation_count()

    def evaluate(self, params: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Compute residuals at `params`. The bound scene is updated to `params`.

        Args:
            params: Parameter vector
            out: Optional output storage of length get_output_residual_count()

        Returns:
            Residual vector
        """
        self._check_configured()
        self.codec.decode(params, self.structure)

        if out is None:
            out = np.zeros(self.get_output_residual_count())

        structure = self.structure
        observations = self.observations
        index = 0
        for view_index, view in enumerate(structure.views):
            world_to_view = view.world_to_view
            model = structure.cameras[view.camera].model

            obs_view = observations.views[view_index]
            for i in range(obs_view.size()):
                point_index, x, y = obs_view.get(i)
                world = structure.points[point_index].coordinate
                if structure.homogeneous:
                    transform_v(world_to_view, world, out=self._camera_pt)
                else:
                    transform(world_to_view, world, out=self._camera_pt)

                px, py = model.project(*self._camera_pt)
                out[index] = px - x
                out[index + 1] = py - y
                index += 2

            if not observations.has_rigid():
                continue

            obs_view = observations.views_rigid[view_index]
            for i in range(obs_view.size()):
                feature_index, x, y = obs_view.get(i)
                rigid = structure.rigids[int(structure.lookup_rigid[feature_index])]
                local = rigid.points[feature_index - rigid.index_first]
                if structure.homogeneous:
                    transform_v(rigid.object_to_world, local, out=self._world_pt)
                else:
                    transform(rigid.object_to_world, local, out=self._world_pt)
                transform(world_to_view, self._world_pt, out=self._camera_pt)

                px, py = model.project(*self._camera_pt)
                out[index] = px - x
                out[index + 1] = py - y
                index += 2

        return out

    def _check_configured(self) -> None:
        if self.structure is None:
            raise RuntimeError("configure() must be called before using the residual function")
