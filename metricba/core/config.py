"""
Configuration management for metric bundle adjustment

Uses dataclasses for type safety and validation.
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Union


ROTATIONS = ("rodrigues", "quaternion")
STORAGES = ("dense", "triplet")
METHODS = ("trf", "dogbox", "lm")
LOSSES = ("linear", "soft_l1", "huber", "cauchy", "arctan")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass
class JacobianConfig:
    """Configuration for the Jacobian and parameter layout"""

    # Rotation parameterization: "rodrigues" (3 params) or "quaternion" (4 params)
    rotation: str = "rodrigues"

    # Jacobian block storage: "triplet" (sparse) or "dense"
    storage: str = "triplet"

    def __post_init__(self):
        """Validate configuration"""
        if self.rotation not in ROTATIONS:
            raise ValueError(f"Invalid rotation: {self.rotation}")
        if self.storage not in STORAGES:
            raise ValueError(f"Invalid storage: {self.storage}")


@dataclass
class OptimizerConfig:
    """Options passed to scipy.optimize.least_squares"""

    # Trust region method: "trf", "dogbox" or "lm" (lm uses a dense Jacobian)
    method: str = "trf"

    # Maximum number of function evaluations
    max_nfev: Optional[int] = 100

    # Convergence tolerances
    ftol: float = 1e-8
    xtol: float = 1e-8
    gtol: float = 1e-8

    # Loss function: "linear", "soft_l1", "huber", "cauchy", "arctan"
    loss: str = "linear"

    # Soft margin between inlier and outlier residuals, in pixels
    f_scale: float = 1.0

    # Variable scaling, "jac" or a positive float
    x_scale: Union[str, float] = "jac"

    # Verbose output (0, 1 or 2)
    verbose: int = 0

    def __post_init__(self):
        """Validate configuration"""
        if self.method not in METHODS:
            raise ValueError(f"Invalid method: {self.method}")
        if self.loss not in LOSSES:
            raise ValueError(f"Invalid loss: {self.loss}")
        if self.method == "lm" and self.loss != "linear":
            raise ValueError("Method 'lm' only supports the linear loss")
        if self.max_nfev is not None and self.max_nfev <= 0:
            raise ValueError(f"max_nfev must be positive, got {self.max_nfev}")
        if self.f_scale <= 0:
            raise ValueError(f"f_scale must be positive, got {self.f_scale}")
        if self.verbose not in (0, 1, 2):
            raise ValueError(f"verbose must be 0, 1 or 2, got {self.verbose}")

    def least_squares_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for scipy.optimize.least_squares"""
        return {
            "method": self.method,
            "max_nfev": self.max_nfev,
            "ftol": self.ftol,
            "xtol": self.xtol,
            "gtol": self.gtol,
            "loss": self.loss,
            "f_scale": self.f_scale,
            "x_scale": self.x_scale,
            "verbose": self.verbose,
        }


@dataclass
class BundleAdjustmentConfig:
    """Main configuration for metric bundle adjustment"""

    jacobian: JacobianConfig = field(default_factory=JacobianConfig)
    optimizer: OptimizerConfig = field(default_factory=OptimizerConfig)

    # Logging level: "DEBUG", "INFO", "WARNING", "ERROR"
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate configuration"""
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"Invalid log_level: {self.log_level}")

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "BundleAdjustmentConfig":
        """Create config from dictionary (for CLI/JSON loading)"""
        config_dict = dict(config_dict)
        jacobian = JacobianConfig(**config_dict.pop("jacobian", {}))
        optimizer = OptimizerConfig(**config_dict.pop("optimizer", {}))

        return cls(
            jacobian=jacobian,
            optimizer=optimizer,
            **config_dict
        )

    def to_dict(self) -> Dict[str, Any]:
        """Export config to dictionary"""
        return {
            "jacobian": dict(self.jacobian.__dict__),
            "optimizer": dict(self.optimizer.__dict__),
            "log_level": self.log_level,
        }
