"""
Metric Bundle Adjustment Package
Sparse Schur Jacobian engine for metric structure-from-motion refinement
"""

__version__ = "0.1.0"


# Lazy imports - scipy is only loaded when a component is actually used
def __getattr__(name):
    """Lazy import for module attributes"""

    # Core algorithm
    if name == "MetricSchurJacobian":
        from .core.jacobian import MetricSchurJacobian
        return MetricSchurJacobian
    elif name == "ReprojectionResidual":
        from .core.residual import ReprojectionResidual
        return ReprojectionResidual
    elif name == "SceneParameterCodec":
        from .core.codec import SceneParameterCodec
        return SceneParameterCodec
    elif name == "MetricBundleAdjustment":
        from .core.optimizer import MetricBundleAdjustment
        return MetricBundleAdjustment
    elif name == "BundleAdjustmentConfig":
        from .core.config import BundleAdjustmentConfig
        return BundleAdjustmentConfig
    # Scene description
    elif name == "SceneStructureMetric":
        from .core.scene import SceneStructureMetric
        return SceneStructureMetric
    elif name == "SceneObservations":
        from .core.scene import SceneObservations
        return SceneObservations
    elif name == "Se3":
        from .core.se3 import Se3
        return Se3
    # Camera models
    elif name == "PinholeCamera":
        from .core.camera_models import PinholeCamera
        return PinholeCamera
    elif name == "SimplifiedPinholeCamera":
        from .core.camera_models import SimplifiedPinholeCamera
        return SimplifiedPinholeCamera
    elif name == "BrownCamera":
        from .core.camera_models import BrownCamera
        return BrownCamera
    # Output storage
    elif name == "DenseBlock":
        from .core.matrix import DenseBlock
        return DenseBlock
    elif name == "TripletBlock":
        from .core.matrix import TripletBlock
        return TripletBlock
    # Problem files
    elif name == "load_bal":
        from .utils.io_utils import load_bal
        return load_bal
    elif name == "save_bal":
        from .utils.io_utils import save_bal
        return save_bal

    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


__all__ = [
    # Core algorithm
    "MetricSchurJacobian",
    "ReprojectionResidual",
    "SceneParameterCodec",
    "MetricBundleAdjustment",
    "BundleAdjustmentConfig",

    # Scene description
    "SceneStructureMetric",
    "SceneObservations",
    "Se3",

    # Camera models
    "PinholeCamera",
    "SimplifiedPinholeCamera",
    "BrownCamera",

    # Output storage
    "DenseBlock",
    "TripletBlock",

    # Problem files
    "load_bal",
    "save_bal",
]
