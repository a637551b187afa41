"""
Metric bundle adjustment driven by scipy.optimize.least_squares

Objective:
    minimize Σ ρ( ||π(K_c, [R_v|T_v] * X_j) - x_vj||² )
             v,j

The residuals come from ReprojectionResidual and the analytic Jacobian from
MetricSchurJacobian. The two Jacobian blocks are stacked side by side, so the
columns line up with the parameter vector produced by SceneParameterCodec.
"""

import time
import numpy as np
import logging
from typing import Optional
from dataclasses import dataclass
from scipy.optimize import least_squares
from scipy.sparse import coo_matrix, csr_matrix

from .config import BundleAdjustmentConfig
from .codec import SceneParameterCodec
from .jacobian import MetricSchurJacobian
from .matrix import create_block, TripletBlock
from .residual import ReprojectionResidual
from .scene import SceneStructureMetric, SceneObservations

logger = logging.getLogger(__name__)


@dataclass
class BundleAdjustmentResult:
    """Summary of an optimization run"""

    initial_cost: float
    final_cost: float
    nfev: int
    njev: int
    success: bool
    status: int
    message: str
    elapsed: float = 0.0


class MetricBundleAdjustment:
    """
    Refines a SceneStructureMetric in place by minimizing the reprojection error
    """

    def __init__(self, config: Optional[BundleAdjustmentConfig] = None):
        """
        Args:
            config: BundleAdjustmentConfig or None (uses defaults)
        """
        self.config = config or BundleAdjustmentConfig()
        self.logger = logging.getLogger(__name__)

        # Configure logging
        logging.basicConfig(level=getattr(logging, self.config.log_level))

        rotation = self.config.jacobian.rotation
        self.codec = SceneParameterCodec(rotation)
        self.residual = ReprojectionResidual(rotation)
        self.jacobian = MetricSchurJacobian(rotation)
        self._left = create_block(self.config.jacobian.storage)
        self._right = create_block(self.config.jacobian.storage)

    def optimize(self, structure: SceneStructureMetric,
                 observations: SceneObservations) -> BundleAdjustmentResult:
        """
        Run bundle adjustment. The scene is updated with the refined parameters.

        Args:
            structure: Scene with initial estimates
            observations: Pixel observations of every view

        Returns:
            BundleAdjustmentResult
        """
        self.logger.info("Starting metric bundle adjustment...")
        start_time = time.time()

        self.residual.configure(structure, observations)
        self.jacobian.configure(structure, observations)

        num_params = self.jacobian.get_input_parameter_count()
        num_residuals = self.jacobian.get_output_residual_count()
        self.logger.info(f"Total observations: {num_residuals // 2}, parameters: {num_params}")

        x0 = self.codec.encode(structure)
        initial_cost = 0.5 * float(np.sum(self.residual.evaluate(x0) ** 2))

        if num_params == 0 or num_residuals == 0:
            self.logger.warning("Nothing to optimize: no free parameters or no observations")
            return BundleAdjustmentResult(
                initial_cost=initial_cost, final_cost=initial_cost, nfev=1, njev=0,
                success=True, status=0, message="Nothing to optimize",
            )

        options = self.config.optimizer.least_squares_kwargs()
        if options["method"] == "lm" and num_residuals < num_params:
            raise ValueError(
                f"Method 'lm' needs at least as many residuals ({num_residuals}) as parameters ({num_params})"
            )

        result = least_squares(
            self.residual.evaluate,
            x0,
            jac=self._compute_jacobian,
            **options,
        )

        # leave the scene at the solution, not the last evaluated point
        self.codec.decode(result.x, structure)

        # result.cost includes the robust loss, report the plain squared error instead
        final_cost = 0.5 * float(np.sum(result.fun ** 2))

        elapsed = time.time() - start_time
        self.logger.info(
            f"Optimization finished: cost={initial_cost:.4f} -> {final_cost:.4f}, "
            f"evaluations={result.nfev}, success={result.success}, time={elapsed:.2f}s"
        )

        return BundleAdjustmentResult(
            initial_cost=initial_cost,
            final_cost=final_cost,
            nfev=int(result.nfev),
            njev=int(result.njev or 0),
            success=bool(result.success),
            status=int(result.status),
            message=str(result.message),
            elapsed=elapsed,
        )

    def _compute_jacobian(self, params: np.ndarray):
        """Full Jacobian [left | right] in the format the configured method accepts"""
        left, right = self._left, self._right
        self.jacobian.evaluate(params, left, right)

        if self.config.optimizer.method == "lm":
            return np.hstack([left.to_dense(), right.to_dense()])

        if isinstance(left, TripletBlock) and isinstance(right, TripletBlock):
            rows_l, cols_l, values_l = left.triplets()
            rows_r, cols_r, values_r = right.triplets()
            num_rows, num_left = left.shape
            shape = (num_rows, num_left + right.shape[1])
            return coo_matrix(
                (np.concatenate([values_l, values_r]),
                 (np.concatenate([rows_l, rows_r]), np.concatenate([cols_l, cols_r + num_left]))),
                shape=shape,
            ).tocsr()
        return csr_matrix(np.hstack([left.to_dense(), right.to_dense()]))
