"""
Analytic Jacobian of the reprojection residuals for metric bundle adjustment

For each observation the predicted pixel is

    free point:   pixel = project(R_v * X + T_v)                       (X = [x,y,z])
                  pixel = project(R_v * [x,y,z] + T_v * w)             (homogeneous)
    rigid point:  pixel = project(R_v * (R_r * P + T_r * w) + T_v)     (P fixed in body)

where [R_v|T_v] is world to view and [R_r|T_r] is object to world. The chain
rule gives, with g = d(pixel)/d(camera point) from the camera model:

    d/dX        = g * R_v                      (+ g * T_v for w)
    d/d(rot_v)  = g * (dR_v/dp_i * X)
    d/d(T_v)    = g * w
    d/d(rot_r)  = g * R_v * (dR_r/dp_i * P)
    d/d(T_r)    = g * R_v * w

Columns for points and rigid bodies go into the left block, columns for views
and camera intrinsics go into the right block, matching a Schur complement
solver which eliminates the point block first. Rows follow the observation
order: for every view, free point observations and then rigid point
observations, two rows (x, y) each.
"""

import numpy as np
import logging
from typing import List, Optional

from .se3 import Se3, transform, transform_v
from .rotation import JacobianSo3, create_rotation_jacobian
from .scene import SceneStructureMetric, SceneObservations, SceneView, SceneCamera, validate_scene
from .layout import ParameterLayout, build_parameter_layout
from .matrix import JacobianBlock

logger = logging.getLogger(__name__)


class MetricSchurJacobian:
    """
    Computes the left (point) and right (view) Jacobian blocks for a metric scene

    configure() must be called whenever the scene structure changes. evaluate()
    can then be called any number of times with new parameter vectors. Scratch
    buffers belong to the instance, so one instance must not be used from more
    than one thread at a time.
    """

    def __init__(self, rotation: str = "rodrigues"):
        """
        Args:
            rotation: Rotation parameterization, "rodrigues" or "quaternion"
        """
        self.rotation = rotation
        self.structure: Optional[SceneStructureMetric] = None
        self.observations: Optional[SceneObservations] = None
        self.layout: Optional[ParameterLayout] = None

        # fails early on an unknown rotation name
        self._rotation_length = create_rotation_jacobian(rotation).get_parameter_length()

        # per view and per rigid body state, rebuilt by configure()
        self._jac_view: List[JacobianSo3] = []
        self._jac_rigid: List[JacobianSo3] = []
        self._world_to_view: List[Se3] = []
        self._object_to_world: List[Se3] = []

        # feature location in world and camera coordinates
        self._world_pt = np.zeros(3)
        self._camera_pt = np.zeros(3)

        # gradient of the pixel with respect to the camera point and intrinsics
        self._point_grad_x = np.zeros(3)
        self._point_grad_y = np.zeros(3)
        self._calib_grad_x = np.zeros(0)
        self._calib_grad_y = np.zeros(0)

        # work space
        self._RR = np.zeros((3, 3))
        self._rotated = np.zeros(3)
        self._grad_rx = np.zeros(3)
        self._grad_ry = np.zeros(3)

        # rows of the current observation
        self._row_x = 0
        self._row_y = 1

    def configure(self, structure: SceneStructureMetric, observations: SceneObservations) -> None:
        """Bind to a scene and pre-compute where every parameter lives"""
        validate_scene(structure, observations)

        self.structure = structure
        self.observations = observations
        self.layout = build_parameter_layout(structure, self._rotation_length)

        self._jac_view = [create_rotation_jacobian(self.rotation) for _ in structure.views]
        self._jac_rigid = [create_rotation_jacobian(self.rotation) for _ in structure.rigids]
        self._world_to_view = [Se3() for _ in structure.views]
        self._object_to_world = [Se3() for _ in structure.rigids]

        self._calib_grad_x = np.zeros(self.layout.max_camera_intrinsics)
        self._calib_grad_y = np.zeros(self.layout.max_camera_intrinsics)

        logger.debug(
            f"Jacobian configured: {self.get_output_residual_count()} residuals, "
            f"{self.get_input_parameter_count()} parameters"
        )

    def get_input_parameter_count(self) -> int:
        self._check_configured()
        return self.layout.total_params

    def get_output_residual_count(self) -> int:
        self._check_configured()
        return 2 * self.observations.observation_count()

    def evaluate(self, params: np.ndarray, left: JacobianBlock, right: JacobianBlock) -> None:
        """
        Compute the Jacobian at `params`

        Args:
            params: Parameter vector, length get_input_parameter_count()
            left: (output) point and rigid body columns
            right: (output) view and camera intrinsic columns
        """
        self._check_configured()
        layout = self.layout
        params = np.asarray(params, dtype=np.float64)
        if params.shape != (layout.total_params,):
            raise ValueError(
                f"Expected parameter vector of length {layout.total_params}, got shape {params.shape}"
            )

        num_rows = self.get_output_residual_count()
        left.reshape(num_rows, layout.left_columns)
        right.reshape(num_rows, layout.right_columns)
        left.zero()
        right.zero()

        self._decode_state(params)

        structure = self.structure
        observation_index = 0
        for view_index, view in enumerate(structure.views):
            camera = structure.cameras[view.camera]
            observation_index = self._compute_general_points(
                left, right, params, observation_index, view_index, view, camera)
            if self.observations.has_rigid():
                observation_index = self._compute_rigid_points(
                    left, right, observation_index, view_index, view, camera)

    def _decode_state(self, params: np.ndarray) -> None:
        """Read the current transforms and intrinsics out of the parameter vector"""
        layout = self.layout
        structure = self.structure
        rotation_length = self._rotation_length

        for rigid_index, rigid in enumerate(structure.rigids):
            object_to_world = self._object_to_world[rigid_index]
            if rigid.known:
                object_to_world.set(rigid.object_to_world)
                continue
            index = layout.rigid_index(rigid_index)
            jac = self._jac_rigid[rigid_index]
            jac.set_parameters(params, index)
            object_to_world.R[:] = jac.get_rotation_matrix()
            object_to_world.T[:] = params[index + rotation_length:index + rotation_length + 3]

        for view_index, view in enumerate(structure.views):
            world_to_view = self._world_to_view[view_index]
            if view.known:
                world_to_view.set(view.world_to_view)
                continue
            index = layout.view_index(view_index)
            jac = self._jac_view[view_index]
            jac.set_parameters(params, index)
            world_to_view.R[:] = jac.get_rotation_matrix()
            world_to_view.T[:] = params[index + rotation_length:index + rotation_length + 3]

        for camera_index, camera in enumerate(structure.cameras):
            if not camera.known:
                camera.model.set_intrinsic(params, layout.camera_index(camera_index))

    def _compute_general_points(self, left: JacobianBlock, right: JacobianBlock,
                                params: np.ndarray, observation_index: int, view_index: int,
                                view: SceneView, camera: SceneCamera) -> int:
        obs_view = self.observations.views[view_index]
        world_to_view = self._world_to_view[view_index]
        homogeneous = self.structure.homogeneous
        point_length = self.layout.point_length

        for feature_index in obs_view.point:
            column = feature_index * point_length
            world = params[column:column + point_length]

            if homogeneous:
                transform_v(world_to_view, world, out=self._camera_pt)
                w = world[3]
            else:
                transform(world_to_view, world, out=self._camera_pt)
                w = 1.0

            self._row_x = observation_index * 2
            self._row_y = self._row_x + 1

            self._partial_camera(right, view.camera, camera)

            # partial of (R*X + T*w) with respect to [x, y, z] is R and with respect to w is T
            self._set_rotated(left, column, world_to_view.R)
            if homogeneous:
                self._set_dot(left, column + 3, world_to_view.T)

            if not view.known:
                self._partial_view(right, view_index, world, w)

            observation_index += 1
        return observation_index

    def _compute_rigid_points(self, left: JacobianBlock, right: JacobianBlock,
                              observation_index: int, view_index: int,
                              view: SceneView, camera: SceneCamera) -> int:
        obs_view = self.observations.views_rigid[view_index]
        structure = self.structure
        world_to_view = self._world_to_view[view_index]
        homogeneous = structure.homogeneous

        for feature_index in obs_view.point:
            rigid_index = int(structure.lookup_rigid[feature_index])
            rigid = structure.rigids[rigid_index]
            local = rigid.points[feature_index - rigid.index_first]
            object_to_world = self._object_to_world[rigid_index]

            if homogeneous:
                transform_v(object_to_world, local, out=self._world_pt)
                w = local[3]
            else:
                transform(object_to_world, local, out=self._world_pt)
                w = 1.0
            transform(world_to_view, self._world_pt, out=self._camera_pt)

            self._row_x = observation_index * 2
            self._row_y = self._row_x + 1

            self._partial_camera(right, view.camera, camera)

            if not view.known:
                self._partial_view(right, view_index, self._world_pt, 1.0)

            # R2*(R1*P + T1*w) + T2, partial R1 is R2*(dR1*P), partial T1 is R2*w
            if not rigid.known:
                self._partial_rigid(left, view_index, rigid_index, local, w)

            observation_index += 1
        return observation_index

    def _partial_camera(self, right: JacobianBlock, camera_index: int, camera: SceneCamera) -> None:
        """Computes the point gradient and writes the intrinsic columns of unknown cameras"""
        X, Y, Z = self._camera_pt
        if camera.known:
            camera.model.jacobian(X, Y, Z, self._point_grad_x, self._point_grad_y, False, None, None)
            return

        camera.model.jacobian(X, Y, Z, self._point_grad_x, self._point_grad_y,
                              True, self._calib_grad_x, self._calib_grad_y)
        column = self.layout.camera_column(camera_index)
        for j in range(camera.model.get_intrinsic_count()):
            right.set(self._row_x, column + j, self._calib_grad_x[j])
            right.set(self._row_y, column + j, self._calib_grad_y[j])

    def _partial_view(self, right: JacobianBlock, view_index: int, X: np.ndarray, w: float) -> None:
        column = int(self.layout.view_offsets[view_index])
        jac = self._jac_view[view_index]
        N = jac.get_parameter_length()

        for i in range(N):
            self._set_partial(right, column + i, jac.get_partial(i), X)

        gx = self._point_grad_x
        gy = self._point_grad_y
        for k in range(3):
            right.set(self._row_x, column + N + k, gx[k] * w)
            right.set(self._row_y, column + N + k, gy[k] * w)

    def _partial_rigid(self, left: JacobianBlock, view_index: int, rigid_index: int,
                       P: np.ndarray, w: float) -> None:
        column = self.layout.rigid_index(rigid_index)
        jac = self._jac_rigid[rigid_index]
        R_view = self._world_to_view[view_index].R
        N = jac.get_parameter_length()

        for i in range(N):
            np.dot(R_view, jac.get_partial(i), out=self._RR)
            self._set_partial(left, column + i, self._RR, P)

        # gradient rotated into the world frame, g * R_view
        np.dot(self._point_grad_x, R_view, out=self._grad_rx)
        np.dot(self._point_grad_y, R_view, out=self._grad_ry)
        for k in range(3):
            left.set(self._row_x, column + N + k, self._grad_rx[k] * w)
            left.set(self._row_y, column + N + k, self._grad_ry[k] * w)

    def _set_rotated(self, block: JacobianBlock, column: int, R: np.ndarray) -> None:
        """J[rows, column:column+3] = [gx; gy] * R"""
        np.dot(self._point_grad_x, R, out=self._grad_rx)
        np.dot(self._point_grad_y, R, out=self._grad_ry)
        for k in range(3):
            block.set(self._row_x, column + k, self._grad_rx[k])
            block.set(self._row_y, column + k, self._grad_ry[k])

    def _set_partial(self, block: JacobianBlock, column: int, R: np.ndarray, X: np.ndarray) -> None:
        """J[rows, column] = [gx; gy] * (R * X)"""
        np.dot(R, X[:3], out=self._rotated)
        self._set_dot(block, column, self._rotated)

    def _set_dot(self, block: JacobianBlock, column: int, v: np.ndarray) -> None:
        """J[rows, column] = [gx; gy] * v"""
        block.set(self._row_x, column, float(self._point_grad_x @ v))
        block.set(self._row_y, column, float(self._point_grad_y @ v))

    def _check_configured(self) -> None:
        if self.layout is None:
            raise RuntimeError("configure() must be called before using the Jacobian")
