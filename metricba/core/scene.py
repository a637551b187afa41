"""
Scene structure and observations for metric bundle adjustment

SceneStructureMetric describes what is being optimized:
- Cameras: intrinsic model, optionally known (fixed)
- Views: world to view transform plus the camera that captured it
- Points: 3D (x, y, z) or homogeneous (x, y, z, w) coordinates in world frame
- Rigid bodies: object to world transform plus points fixed in the body frame

SceneObservations holds the pixel observations of each view. The order in which
observations are added defines the row order of the residual vector.
"""

import numpy as np
import logging
from typing import List, Optional
from dataclasses import dataclass, field

from .se3 import Se3
from .camera_models import CameraModel

logger = logging.getLogger(__name__)


@dataclass
class SceneCamera:
    """Camera intrinsics shared by one or more views"""

    model: CameraModel
    known: bool = False


@dataclass
class SceneView:
    """A single image and its extrinsics"""

    world_to_view: Se3 = field(default_factory=Se3)
    camera: int = -1
    known: bool = False


@dataclass
class ScenePoint:
    """A point in the free point pool"""

    coordinate: np.ndarray  # (3,) or (4,) world coordinates
    views: List[int] = field(default_factory=list)  # views which observe this point


@dataclass
class SceneRigid:
    """A rigid object. Its points never change in the object frame"""

    object_to_world: Se3 = field(default_factory=Se3)
    points: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))  # (N, 3) or (N, 4)
    known: bool = False

    # index of the first point in this body across all rigid points
    index_first: int = 0

    def point_count(self) -> int:
        return len(self.points)

    def get_point(self, index: int) -> np.ndarray:
        return self.points[index]

    def set_point(self, index: int, x: float, y: float, z: float, w: Optional[float] = None) -> None:
        if self.points.shape[1] == 4:
            self.points[index] = (x, y, z, 1.0 if w is None else w)
        else:
            self.points[index] = (x, y, z)


class SceneStructureMetric:
    """
    Metric scene being optimized by bundle adjustment

    Typical usage:
        structure = SceneStructureMetric(homogeneous=False)
        structure.initialize(total_cameras=1, total_views=2, total_points=10)
        structure.set_camera(0, False, PinholeCamera(500, 500, 320, 240))
        structure.set_view(0, True, Se3())
        structure.set_view(1, False, world_to_view)
        structure.connect_view_to_camera(0, 0)
        ...
    """

    def __init__(self, homogeneous: bool = False):
        self.homogeneous = homogeneous
        self.cameras: List[SceneCamera] = []
        self.views: List[SceneView] = []
        self.points: List[ScenePoint] = []
        self.rigids: List[SceneRigid] = []

        # rigid point index -> rigid body index
        self.lookup_rigid: np.ndarray = np.zeros(0, dtype=np.int64)

    @property
    def point_length(self) -> int:
        """Number of values used to store a point. 3 = euclidean, 4 = homogeneous"""
        return 4 if self.homogeneous else 3

    def initialize(self, total_cameras: int, total_views: int, total_points: int,
                   total_rigid: int = 0) -> None:
        """Discard the previous scene and allocate storage for a new one"""
        if min(total_cameras, total_views, total_points, total_rigid) < 0:
            raise ValueError("Scene element counts must be non-negative")

        self.cameras = [None] * total_cameras
        self.views = [SceneView() for _ in range(total_views)]
        self.points = [ScenePoint(np.zeros(self.point_length)) for _ in range(total_points)]
        self.rigids = [SceneRigid(points=np.zeros((0, self.point_length))) for _ in range(total_rigid)]
        self.lookup_rigid = np.zeros(0, dtype=np.int64)

    def set_camera(self, index: int, known: bool, model: CameraModel) -> None:
        self.cameras[index] = SceneCamera(model=model, known=known)

    def set_view(self, index: int, known: bool, world_to_view: Se3, camera: int = -1) -> None:
        view = self.views[index]
        view.known = known
        view.world_to_view = world_to_view.copy()
        if camera >= 0:
            view.camera = camera

    def connect_view_to_camera(self, view: int, camera: int) -> None:
        self.views[view].camera = camera

    def set_point(self, index: int, x: float, y: float, z: float, w: Optional[float] = None) -> None:
        coordinate = self.points[index].coordinate
        if self.homogeneous:
            coordinate[:] = (x, y, z, 1.0 if w is None else w)
        else:
            coordinate[:] = (x, y, z)

    def get_point(self, index: int) -> np.ndarray:
        return self.points[index].coordinate

    def connect_point_to_view(self, point: int, view: int) -> None:
        views = self.points[point].views
        if view in views:
            raise ValueError(f"Point {point} is already connected to view {view}")
        views.append(view)

    def set_rigid(self, index: int, known: bool, object_to_world: Se3, total_points: int) -> None:
        """Specify a rigid body. Call assign_ids_to_rigid_points() once all are set"""
        rigid = self.rigids[index]
        rigid.known = known
        rigid.object_to_world = object_to_world.copy()
        rigid.points = np.zeros((total_points, self.point_length))
        if self.homogeneous and total_points > 0:
            rigid.points[:, 3] = 1.0

    def set_rigid_point(self, rigid: int, point: int, x: float, y: float, z: float,
                        w: Optional[float] = None) -> None:
        self.rigids[rigid].set_point(point, x, y, z, w)

    def assign_ids_to_rigid_points(self) -> None:
        """Assign a global index to every rigid point and build the lookup table"""
        total = sum(r.point_count() for r in self.rigids)
        self.lookup_rigid = np.zeros(total, dtype=np.int64)

        index = 0
        for rigid_index, rigid in enumerate(self.rigids):
            rigid.index_first = index
            self.lookup_rigid[index:index + rigid.point_count()] = rigid_index
            index += rigid.point_count()

    def rigid_point_count(self) -> int:
        return len(self.lookup_rigid)

    def has_rigid(self) -> bool:
        return len(self.rigids) > 0

    def unknown_view_count(self) -> int:
        return sum(1 for v in self.views if not v.known)

    def unknown_rigid_count(self) -> int:
        return sum(1 for r in self.rigids if not r.known)

    def unknown_camera_count(self) -> int:
        return sum(1 for c in self.cameras if not c.known)

    def unknown_camera_parameter_count(self) -> int:
        return sum(c.model.get_intrinsic_count() for c in self.cameras if not c.known)

    def parameter_count(self, rotation_length: int = 3) -> int:
        """Total number of optimization parameters for a rotation with `rotation_length` parameters"""
        length_se3 = 3 + rotation_length
        return (len(self.points) * self.point_length
                + self.unknown_rigid_count() * length_se3
                + self.unknown_view_count() * length_se3
                + self.unknown_camera_parameter_count())

    def __repr__(self) -> str:
        return (f"SceneStructureMetric(cameras={len(self.cameras)}, views={len(self.views)}, "
                f"points={len(self.points)}, rigids={len(self.rigids)}, homogeneous={self.homogeneous})")


class ObservationView:
    """Observations of a single view: point index plus pixel coordinate"""

    def __init__(self):
        self.point: List[int] = []
        self.observations: List[float] = []  # interleaved x, y

    def size(self) -> int:
        return len(self.point)

    def add(self, point: int, x: float, y: float) -> None:
        self.point.append(int(point))
        self.observations.append(float(x))
        self.observations.append(float(y))

    def get(self, index: int) -> tuple:
        """Returns (point index, x, y)"""
        return self.point[index], self.observations[2 * index], self.observations[2 * index + 1]

    def set(self, index: int, x: float, y: float) -> None:
        self.observations[2 * index] = float(x)
        self.observations[2 * index + 1] = float(y)

    def __len__(self) -> int:
        return len(self.point)


class SceneObservations:
    """Pixel observations for every view, optionally split into free and rigid points"""

    def __init__(self):
        self.views: List[ObservationView] = []
        self.views_rigid: Optional[List[ObservationView]] = None

    def initialize(self, total_views: int, rigid: bool = False) -> None:
        self.views = [ObservationView() for _ in range(total_views)]
        self.views_rigid = [ObservationView() for _ in range(total_views)] if rigid else None

    def has_rigid(self) -> bool:
        return self.views_rigid is not None

    def get_view(self, index: int) -> ObservationView:
        return self.views[index]

    def get_view_rigid(self, index: int) -> ObservationView:
        return self.views_rigid[index]

    def observation_count(self) -> int:
        total = sum(v.size() for v in self.views)
        if self.views_rigid is not None:
            total += sum(v.size() for v in self.views_rigid)
        return total


def validate_scene(structure: SceneStructureMetric, observations: SceneObservations) -> None:
    """Precondition checks shared by the Jacobian and the residual function"""
    if len(observations.views) != len(structure.views):
        raise ValueError(
            f"Observations have {len(observations.views)} views but the scene has {len(structure.views)}"
        )

    for view_index, view in enumerate(structure.views):
        if not 0 <= view.camera < len(structure.cameras):
            raise ValueError(f"View {view_index} is not connected to a valid camera ({view.camera})")
        if structure.cameras[view.camera] is None:
            raise ValueError(f"Camera {view.camera} used by view {view_index} has not been set")

    num_points = len(structure.points)
    for view_index, obs_view in enumerate(observations.views):
        if obs_view.point and not 0 <= min(obs_view.point) <= max(obs_view.point) < num_points:
            raise ValueError(f"View {view_index} observes a point outside of [0, {num_points})")

    if observations.has_rigid():
        if len(observations.views_rigid) != len(structure.views):
            raise ValueError("Rigid observations must have one entry per view")
        num_rigid_points = structure.rigid_point_count()
        for view_index, obs_view in enumerate(observations.views_rigid):
            if obs_view.point and not 0 <= min(obs_view.point) <= max(obs_view.point) < num_rigid_points:
                raise ValueError(
                    f"View {view_index} observes a rigid point outside of [0, {num_rigid_points}). "
                    f"Was assign_ids_to_rigid_points() called?"
                )
