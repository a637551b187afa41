"""
Shared fixtures: synthetic metric scenes and a finite difference Jacobian
"""

import pytest
import numpy as np
from pathlib import Path
import sys

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from scipy.spatial.transform import Rotation

from metricba.core.se3 import Se3, transform, transform_v
from metricba.core.camera_models import BrownCamera
from metricba.core.scene import SceneStructureMetric, SceneObservations


def default_camera():
    """Camera which exercises every intrinsic: skew, radial and tangential"""
    return BrownCamera(500.0, 480.0, 320.0, 240.0, radial=(0.05, -0.01),
                       t1=0.001, t2=-0.002, skew=0.5, zero_skew=False)


def build_scene(homogeneous=False, with_rigid=True, camera_known=False, known_views=(),
                rigid_known=False, num_views=3, num_points=6, rigid_points=4,
                scale_w=False, noise=0.0, seed=42, camera_factory=default_camera):
    """
    Create a small scene where every view observes every point

    The random stream does not depend on the known flags or the point type, so
    scenes built with the same seed describe the same geometry.
    """
    rng = np.random.default_rng(seed)

    structure = SceneStructureMetric(homogeneous=homogeneous)
    structure.initialize(1, num_views, num_points, 1 if with_rigid else 0)
    structure.set_camera(0, camera_known, camera_factory())

    for v in range(num_views):
        R = Rotation.from_rotvec(rng.normal(scale=0.1, size=3)).as_matrix()
        T = rng.uniform(-0.3, 0.3, size=3)
        structure.set_view(v, v in known_views, Se3(R, T), camera=0)

    for i in range(num_points):
        X = rng.uniform(-1.0, 1.0, size=3) + np.array([0.0, 0.0, 6.0])
        w = rng.uniform(0.5, 2.0)
        if homogeneous and scale_w:
            structure.set_point(i, *(X * w), w)
        else:
            structure.set_point(i, *X)

    if with_rigid:
        R = Rotation.from_rotvec(rng.normal(scale=0.2, size=3)).as_matrix()
        structure.set_rigid(0, rigid_known, Se3(R, [0.3, -0.2, 5.0]), rigid_points)
        for j in range(rigid_points):
            structure.set_rigid_point(0, j, *rng.uniform(-0.5, 0.5, size=3))
        structure.assign_ids_to_rigid_points()

    observations = SceneObservations()
    observations.initialize(num_views, rigid=with_rigid)
    model = structure.cameras[0].model
    for v, view in enumerate(structure.views):
        for i, point in enumerate(structure.points):
            if homogeneous:
                camera_pt = transform_v(view.world_to_view, point.coordinate)
            else:
                camera_pt = transform(view.world_to_view, point.coordinate)
            x, y = model.project(*camera_pt)
            observations.get_view(v).add(i, x + rng.normal(scale=noise), y + rng.normal(scale=noise))
            structure.connect_point_to_view(i, v)

        if not with_rigid:
            continue
        rigid = structure.rigids[0]
        for j in range(rigid.point_count()):
            local = rigid.get_point(j)
            if homogeneous:
                world = transform_v(rigid.object_to_world, local)
            else:
                world = transform(rigid.object_to_world, local)
            x, y = model.project(*transform(view.world_to_view, world))
            observations.get_view_rigid(v).add(rigid.index_first + j,
                                               x + rng.normal(scale=noise), y + rng.normal(scale=noise))

    return structure, observations


def numerical_jacobian(residual, params, step=1e-6):
    """Central difference Jacobian of a configured ReprojectionResidual"""
    params = np.asarray(params, dtype=np.float64)
    J = np.zeros((residual.get_output_residual_count(), len(params)))
    for i in range(len(params)):
        plus = params.copy()
        minus = params.copy()
        plus[i] += step
        minus[i] -= step
        J[:, i] = (residual.evaluate(plus) - residual.evaluate(minus)) / (2.0 * step)

    # put the scene back where it was
    residual.evaluate(params)
    return J


@pytest.fixture
def scene():
    """Euclidean scene with a rigid body and an unknown camera"""
    return build_scene()
