"""
I/O utilities for bundle adjustment problems in BAL format

BAL ("Bundle Adjustment in the Large") files hold one simplified pinhole camera
per view. BAL cameras look down -Z with y up, so views are flipped into the
+Z / y down convention used by the camera models when loading and flipped back
when saving.
"""

import bz2
import json
import logging
import numpy as np
from dataclasses import asdict
from pathlib import Path
from typing import Tuple, Union
from scipy.spatial.transform import Rotation

from ..core.camera_models import SimplifiedPinholeCamera
from ..core.config import BundleAdjustmentConfig
from ..core.optimizer import BundleAdjustmentResult
from ..core.scene import SceneStructureMetric, SceneObservations
from ..core.se3 import Se3

logger = logging.getLogger(__name__)

# rotation by 180 degrees around x, its own inverse
FLIP = np.diag([1.0, -1.0, -1.0])


def _open_text(filepath: Path, mode: str):
    if filepath.suffix == ".bz2":
        return bz2.open(filepath, mode + "t")
    return open(filepath, mode)


def load_bal(filepath: Union[str, Path]) -> Tuple[SceneStructureMetric, SceneObservations]:
    """Load a BAL problem. Every camera and view starts out unknown"""
    filepath = Path(filepath)
    with _open_text(filepath, "r") as f:
        tokens = f.read().split()

    try:
        num_cameras, num_points, num_observations = (int(t) for t in tokens[:3])
        index = 3

        obs_table = np.array(tokens[index:index + 4 * num_observations], dtype=np.float64)
        obs_table = obs_table.reshape(num_observations, 4)
        index += 4 * num_observations

        camera_table = np.array(tokens[index:index + 9 * num_cameras], dtype=np.float64)
        camera_table = camera_table.reshape(num_cameras, 9)
        index += 9 * num_cameras

        point_table = np.array(tokens[index:index + 3 * num_points], dtype=np.float64)
        point_table = point_table.reshape(num_points, 3)
    except ValueError as e:
        raise ValueError(f"Malformed BAL file {filepath}: {e}") from e

    structure = SceneStructureMetric(homogeneous=False)
    structure.initialize(num_cameras, num_cameras, num_points)
    for i, row in enumerate(camera_table):
        R = Rotation.from_rotvec(row[:3]).as_matrix()
        structure.set_view(i, False, Se3(FLIP @ R, FLIP @ row[3:6]), camera=i)
        structure.set_camera(i, False, SimplifiedPinholeCamera(*row[6:9]))

    for i, (x, y, z) in enumerate(point_table):
        structure.set_point(i, x, y, z)

    observations = SceneObservations()
    observations.initialize(num_cameras)
    for camera, point, x, y in obs_table:
        camera, point = int(camera), int(point)
        if not (0 <= camera < num_cameras and 0 <= point < num_points):
            raise ValueError(f"Malformed BAL file {filepath}: observation of point {point} in camera {camera}")
        observations.get_view(camera).add(point, x, -y)
        structure.connect_point_to_view(point, camera)

    logger.info(
        f"Loaded {filepath.name}: {num_cameras} cameras, {num_points} points, "
        f"{num_observations} observations"
    )
    return structure, observations


def save_bal(filepath: Union[str, Path], structure: SceneStructureMetric,
             observations: SceneObservations) -> None:
    """Save a scene with one SimplifiedPinholeCamera per view in BAL format"""
    filepath = Path(filepath)
    if structure.homogeneous:
        raise ValueError("BAL files store euclidean points only")
    if len(structure.cameras) != len(structure.views):
        raise ValueError("BAL files need exactly one camera per view")
    for i, view in enumerate(structure.views):
        camera = structure.cameras[view.camera]
        if view.camera != i or not isinstance(camera.model, SimplifiedPinholeCamera):
            raise ValueError(f"View {i} must use its own SimplifiedPinholeCamera to be saved as BAL")

    filepath.parent.mkdir(parents=True, exist_ok=True)
    with _open_text(filepath, "w") as f:
        f.write(f"{len(structure.cameras)} {len(structure.points)} {observations.observation_count()}\n")

        for view_index, obs_view in enumerate(observations.views):
            for i in range(obs_view.size()):
                point, x, y = obs_view.get(i)
                f.write(f"{view_index} {point} {x:.10e} {-y:.10e}\n")

        for view in structure.views:
            world_to_view = view.world_to_view
            rotvec = Rotation.from_matrix(FLIP @ world_to_view.R).as_rotvec()
            model = structure.cameras[view.camera].model
            values = [*rotvec, *(FLIP @ world_to_view.T), model.f, model.k1, model.k2]
            f.writelines(f"{v:.16e}\n" for v in values)

        for point in structure.points:
            f.writelines(f"{v:.16e}\n" for v in point.coordinate)

    logger.info(f"Saved {filepath}")


def save_result_info(filepath: Union[str, Path], result: BundleAdjustmentResult,
                     config: BundleAdjustmentConfig) -> None:
    """Save a JSON summary of an optimization run"""

    def convert_to_json_serializable(obj):
        """Convert numpy values to plain Python types for JSON serialization"""
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        elif isinstance(obj, dict):
            return {k: convert_to_json_serializable(v) for k, v in obj.items()}
        elif isinstance(obj, (list, tuple)):
            return [convert_to_json_serializable(item) for item in obj]
        elif isinstance(obj, np.integer):
            return int(obj)
        elif isinstance(obj, np.floating):
            return float(obj)
        elif isinstance(obj, np.bool_):
            return bool(obj)
        return obj

    info = {
        "result": convert_to_json_serializable(asdict(result)),
        "config": convert_to_json_serializable(config.to_dict()),
    }

    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, "w") as f:
        json.dump(info, f, indent=2)
