"""
Core metric bundle adjustment components
"""

from .se3 import Se3, transform, transform_v
from .rotation import (
    JacobianSo3,
    JacobianSo3Rodrigues,
    JacobianSo3Quaternion,
    create_rotation_jacobian,
)
from .camera_models import (
    CameraModel,
    PinholeCamera,
    SimplifiedPinholeCamera,
    BrownCamera,
    create_camera_model,
)
from .scene import SceneStructureMetric, SceneObservations
from .layout import ParameterLayout, build_parameter_layout
from .matrix import JacobianBlock, DenseBlock, TripletBlock, create_block
from .codec import SceneParameterCodec
from .jacobian import MetricSchurJacobian
from .residual import ReprojectionResidual
from .config import BundleAdjustmentConfig, JacobianConfig, OptimizerConfig
from .optimizer import MetricBundleAdjustment, BundleAdjustmentResult


# Convenience functions for direct usage
def compute_jacobian(structure, observations, params=None, config=None):
    """Evaluate the Jacobian blocks of a scene at `params` (defaults to the current scene)"""
    config = config or JacobianConfig()
    jacobian = MetricSchurJacobian(config.rotation)
    jacobian.configure(structure, observations)
    if params is None:
        params = SceneParameterCodec(config.rotation).encode(structure)

    left = create_block(config.storage)
    right = create_block(config.storage)
    jacobian.evaluate(params, left, right)
    return left, right


def bundle_adjust(structure, observations, config=None):
    """Refine a scene in place"""
    return MetricBundleAdjustment(config).optimize(structure, observations)


__all__ = [
    # Geometry
    "Se3",
    "transform",
    "transform_v",
    "JacobianSo3",
    "JacobianSo3Rodrigues",
    "JacobianSo3Quaternion",
    "create_rotation_jacobian",
    # Cameras
    "CameraModel",
    "PinholeCamera",
    "SimplifiedPinholeCamera",
    "BrownCamera",
    "create_camera_model",
    # Scene
    "SceneStructureMetric",
    "SceneObservations",
    "ParameterLayout",
    "build_parameter_layout",
    "SceneParameterCodec",
    # Jacobian
    "JacobianBlock",
    "DenseBlock",
    "TripletBlock",
    "create_block",
    "MetricSchurJacobian",
    "ReprojectionResidual",
    # Optimization
    "BundleAdjustmentConfig",
    "JacobianConfig",
    "OptimizerConfig",
    "MetricBundleAdjustment",
    "BundleAdjustmentResult",
    # Convenience functions
    "compute_jacobian",
    "bundle_adjust",
]
