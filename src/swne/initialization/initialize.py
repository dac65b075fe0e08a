"""
Initialization of the basis and coefficient matrices of NMF models.
"""

from __future__ import annotations

import numpy as np

from ..utils import (
    EPSILON,
    InvalidConfiguration,
    nonnegativity_checker,
    value_checker,
)
from .methods import _INIT_METHODS, _Init_methods, init_ica, init_nnsvd, init_random


def initialize_mat(
    data_mat: np.ndarray,
    n_factors: int,
    method: _Init_methods = "random",
    seed: int | None = None,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Initialize the basis and coefficient matrices.

    Inputs
    ------
    data_mat : np.ndarray
        shape (n_features, n_samples). Missing values (NaN) are
        replaced by the mean of the observed values for the
        deterministic methods.

    n_factors : int

    method : str
        initialization method. One of 'ica', 'nnsvd', 'random'.

    seed : int, optional
        Seed of the random number generator used by the method.

    Returns
    -------
    basis_mat : np.ndarray
        shape (n_features, n_factors)

    coefficient_mat : np.ndarray
        shape (n_factors, n_samples)
    """
    value_checker("method", method, _INIT_METHODS)
    nonnegativity_checker("data_mat", data_mat)

    if n_factors < 1:
        raise InvalidConfiguration("The number of factors has to be positive.")

    if method == "random":
        basis_mat, coefficient_mat = init_random(data_mat, n_factors, seed=seed)
    else:
        if n_factors > min(data_mat.shape):
            raise InvalidConfiguration(
                f"The '{method}' initialization supports at most "
                f"{min(data_mat.shape)} factors for this data."
            )
        missing = np.isnan(data_mat)

        if np.any(missing):
            data_mat = np.where(missing, np.nanmean(data_mat), data_mat)

        if method == "nnsvd":
            basis_mat, coefficient_mat = init_nnsvd(data_mat, n_factors, seed=seed)
        else:
            basis_mat, coefficient_mat = init_ica(data_mat, n_factors, seed=seed)

    basis_mat = np.ascontiguousarray(basis_mat.clip(EPSILON))
    coefficient_mat = np.ascontiguousarray(coefficient_mat.clip(EPSILON))
    return basis_mat, coefficient_mat
