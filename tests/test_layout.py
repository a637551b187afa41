"""
Unit tests for the parameter layout
"""

import pytest
import numpy as np
from pathlib import Path
import sys

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from metricba.core.camera_models import PinholeCamera, SimplifiedPinholeCamera
from metricba.core.layout import build_parameter_layout
from metricba.core.scene import SceneStructureMetric
from metricba.core.se3 import Se3


def make_structure(homogeneous=False, known_views=(), known_rigid=(), known_cameras=()):
    structure = SceneStructureMetric(homogeneous=homogeneous)
    structure.initialize(total_cameras=2, total_views=4, total_points=5, total_rigid=2)
    structure.set_camera(0, 0 in known_cameras, PinholeCamera(500, 500, 320, 240))
    structure.set_camera(1, 1 in known_cameras, SimplifiedPinholeCamera(600))
    for v in range(4):
        structure.set_view(v, v in known_views, Se3(), camera=v % 2)
    for r in range(2):
        structure.set_rigid(r, r in known_rigid, Se3(), 3)
    structure.assign_ids_to_rigid_points()
    return structure


class TestParameterLayout:
    """Test column assignment"""

    def test_all_unknown(self):
        layout = build_parameter_layout(make_structure(), 3)

        assert layout.index_first_rigid == 15
        assert layout.index_first_view == 15 + 2 * 6
        assert layout.index_last_view == 27 + 4 * 6
        assert layout.total_params == 51 + 4 + 3
        assert layout.left_columns == 27
        assert layout.right_columns == 24 + 7
        assert layout.max_camera_intrinsics == 4

    def test_known_entities_are_skipped(self):
        structure = make_structure(known_views=(0, 2), known_rigid=(0,), known_cameras=(0,))
        layout = build_parameter_layout(structure, 3)

        assert layout.num_views_unknown == 2
        assert layout.num_rigid_unknown == 1
        assert layout.num_camera_parameters == 3
        assert layout.index_first_view == 15 + 6
        assert layout.total_params == 21 + 12 + 3
        assert layout.max_camera_intrinsics == 3

        # unknown entities are packed without gaps
        assert layout.rigid_index(1) == 15
        assert layout.view_index(1) == 21
        assert layout.view_index(3) == 27
        assert layout.camera_index(1) == 33
        assert layout.camera_column(1) == 12
        assert structure.parameter_count(3) == layout.total_params

    def test_camera_column(self):
        layout = build_parameter_layout(make_structure(), 4)

        assert layout.length_se3 == 7
        assert layout.camera_column(0) == layout.index_last_view - layout.index_first_view
        assert layout.camera_column(1) == layout.camera_column(0) + 4
        assert layout.camera_index(1) - layout.index_first_view == layout.camera_column(1)

    def test_homogeneous(self):
        layout = build_parameter_layout(make_structure(homogeneous=True), 3)

        assert layout.point_length == 4
        assert layout.index_first_rigid == 20
        assert layout.total_params == 20 + 12 + 24 + 7

    def test_everything_known(self):
        structure = SceneStructureMetric()
        structure.initialize(1, 2, 0)
        structure.set_camera(0, True, PinholeCamera(500, 500, 320, 240))
        structure.set_view(0, True, Se3(), camera=0)
        structure.set_view(1, True, Se3(), camera=0)

        layout = build_parameter_layout(structure, 3)
        assert layout.total_params == 0
        assert layout.left_columns == 0
        assert layout.right_columns == 0
        assert np.all(layout.view_offsets == 0)

    def test_unset_camera(self):
        structure = SceneStructureMetric()
        structure.initialize(2, 1, 1)
        structure.set_camera(0, False, PinholeCamera(500, 500, 320, 240))

        with pytest.raises(ValueError, match="Camera 1"):
            build_parameter_layout(structure, 3)
