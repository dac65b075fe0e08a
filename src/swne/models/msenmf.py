from __future__ import annotations

from typing import Literal

import numpy as np
import pandas as pd

from . import _utils_nmf
from .factor_nmf import FactorNMF


class MSENMF(FactorNMF):
    """
    Decompose a non-negative data matrix A into the product of a basis
    matrix W and a coefficient matrix H by minimizing the regularized
    squared error of the observed entries.

    Reference
    ---------
    D. Lee, H. Seung: Algorithms for Non-negative Matrix Factorization
    - Advances in neural information processing systems, 2000
    """

    @property
    def loss(self) -> Literal["mse"]:
        return "mse"

    @property
    def samplewise_reconstruction_error(self) -> pd.Series:
        """
        The residual sum of squares of the observed entries of each sample.
        """
        residuals = self.mask * (self.X - self.W @ self.H)
        return pd.Series(np.sum(residuals**2, axis=0), index=self.sample_names)

    def objective_function(self) -> float:
        return _utils_nmf.mse_objective(
            self.X, self.W, self.H, self.mask, self.alpha, self.beta
        )

    def _update_parameters(self) -> None:
        self.W = np.ascontiguousarray(
            _utils_nmf.update_W_mse(self.X, self.W, self.H, self.mask, self.alpha)
        )
        self.H = np.ascontiguousarray(
            _utils_nmf.update_H_mse(self.X, self.W, self.H, self.mask, self.beta)
        )
