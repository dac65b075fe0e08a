from __future__ import annotations

from typing import Literal

import numpy as np
import pandas as pd

from . import _utils_nmf
from .factor_nmf import FactorNMF


class KLNMF(FactorNMF):
    """
    Decompose a non-negative data matrix A into the product of a basis
    matrix W and a coefficient matrix H by minimizing the regularized
    generalized Kullback-Leibler (KL) divergence of the observed entries.

    Reference
    ---------
    D. Lee, H. Seung: Algorithms for Non-negative Matrix Factorization
    - Advances in neural information processing systems, 2000
    https://proceedings.neurips.cc/paper_files/paper/2000/file/f9d1152547c0bde01830b7e8bd60024c-Paper.pdf
    """

    @property
    def loss(self) -> Literal["mkl"]:
        return "mkl"

    @property
    def samplewise_reconstruction_error(self) -> pd.Series:
        """
        The generalized KL-divergences of the observed entries of each sample.
        """
        X, WH = self.X, self.W @ self.H
        safe_X = np.where(X > 0, X, 1.0)
        summands = np.where(X > 0, X * np.log(safe_X / WH), 0.0) - X + WH
        errors = np.sum(self.mask * summands, axis=0)
        return pd.Series(errors, index=self.sample_names)

    def objective_function(self) -> float:
        """
        The sum of the KL-divergence and the penalties.
        """
        return _utils_nmf.kl_objective(
            self.X, self.W, self.H, self.mask, self.alpha, self.beta
        )

    def _update_parameters(self) -> None:
        self.W = np.ascontiguousarray(
            _utils_nmf.update_W_kl(self.X, self.W, self.H, self.mask, self.alpha)
        )
        self.H = np.ascontiguousarray(
            _utils_nmf.update_H_kl(self.X, self.W, self.H, self.mask, self.beta)
        )
