"""
Parameter vector layout for metric bundle adjustment

The optimization parameter vector is packed in this order:

    [points][unknown rigid bodies][unknown views][unknown camera intrinsics]

Points use 3 (euclidean) or 4 (homogeneous) values each. Rigid bodies and views
use the rotation parameters followed by 3 translation values. Known rigid
bodies, views and cameras get no slot.

The Jacobian is split at the same place a Schur complement solver splits the
problem: the left block holds point and rigid body columns, the right block
holds view and camera columns.
"""

import numpy as np
import logging
from dataclasses import dataclass

from .scene import SceneStructureMetric

logger = logging.getLogger(__name__)


@dataclass
class ParameterLayout:
    """Offsets of every parameter group inside the flat parameter vector"""

    point_length: int  # 3 or 4
    length_se3: int  # rotation parameters + 3

    num_points: int
    num_rigid_unknown: int
    num_views_unknown: int
    num_camera_parameters: int

    index_first_rigid: int
    index_first_view: int
    index_last_view: int
    total_params: int

    # per entity offset relative to the start of its group. Known entities
    # keep the offset of the next unknown one but are never read.
    rigid_offsets: np.ndarray
    view_offsets: np.ndarray
    camera_offsets: np.ndarray

    # largest intrinsic count among unknown cameras
    max_camera_intrinsics: int

    @property
    def left_columns(self) -> int:
        """Width of the point / rigid body block"""
        return self.index_first_view

    @property
    def right_columns(self) -> int:
        """Width of the view / camera block"""
        return self.total_params - self.index_first_view

    def rigid_index(self, rigid: int) -> int:
        """Index of the first parameter of a rigid body in the parameter vector"""
        return self.index_first_rigid + int(self.rigid_offsets[rigid])

    def view_index(self, view: int) -> int:
        """Index of the first parameter of a view in the parameter vector"""
        return self.index_first_view + int(self.view_offsets[view])

    def camera_index(self, camera: int) -> int:
        """Index of the first intrinsic parameter of a camera in the parameter vector"""
        return self.index_last_view + int(self.camera_offsets[camera])

    def camera_column(self, camera: int) -> int:
        """Column of a camera's first intrinsic parameter in the right block"""
        return self.index_last_view - self.index_first_view + int(self.camera_offsets[camera])


def build_parameter_layout(structure: SceneStructureMetric, rotation_length: int) -> ParameterLayout:
    """Compute the parameter layout of a scene for a rotation with `rotation_length` parameters"""
    point_length = structure.point_length
    length_se3 = 3 + rotation_length

    num_points = len(structure.points)
    num_rigid_unknown = structure.unknown_rigid_count()
    num_views_unknown = structure.unknown_view_count()

    rigid_offsets = np.zeros(len(structure.rigids), dtype=np.int64)
    offset = 0
    for i, rigid in enumerate(structure.rigids):
        rigid_offsets[i] = offset
        if not rigid.known:
            offset += length_se3

    view_offsets = np.zeros(len(structure.views), dtype=np.int64)
    offset = 0
    for i, view in enumerate(structure.views):
        view_offsets[i] = offset
        if not view.known:
            offset += length_se3

    camera_offsets = np.zeros(len(structure.cameras), dtype=np.int64)
    offset = 0
    max_camera_intrinsics = 0
    for i, camera in enumerate(structure.cameras):
        if camera is None:
            raise ValueError(f"Camera {i} has not been set")
        camera_offsets[i] = offset
        if not camera.known:
            count = camera.model.get_intrinsic_count()
            max_camera_intrinsics = max(max_camera_intrinsics, count)
            offset += count
    num_camera_parameters = offset

    index_first_rigid = num_points * point_length
    index_first_view = index_first_rigid + num_rigid_unknown * length_se3
    index_last_view = index_first_view + num_views_unknown * length_se3
    total_params = index_last_view + num_camera_parameters

    layout = ParameterLayout(
        point_length=point_length,
        length_se3=length_se3,
        num_points=num_points,
        num_rigid_unknown=num_rigid_unknown,
        num_views_unknown=num_views_unknown,
        num_camera_parameters=num_camera_parameters,
        index_first_rigid=index_first_rigid,
        index_first_view=index_first_view,
        index_last_view=index_last_view,
        total_params=total_params,
        rigid_offsets=rigid_offsets,
        view_offsets=view_offsets,
        camera_offsets=camera_offsets,
        max_camera_intrinsics=max_camera_intrinsics,
    )

    logger.debug(
        f"Parameter layout: {num_points} points, {num_rigid_unknown} rigid, "
        f"{num_views_unknown} views, {num_camera_parameters} intrinsics -> "
        f"{layout.left_columns} left + {layout.right_columns} right = {total_params}"
    )
    return layout
