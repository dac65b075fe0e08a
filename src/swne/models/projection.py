"""
Projection of new data onto a fixed NMF basis.
"""

from __future__ import annotations

from typing import Iterable, Literal, get_args

import numpy as np
from scipy import optimize

from ..utils import (
    EPSILON,
    DimensionMismatch,
    expand_penalty,
    nonnegativity_checker,
    shape_checker,
    value_checker,
)
from ._utils_nmf import kl_objective, mse_objective, update_H_kl, update_H_mse

_Losses = Literal["mse", "mkl"]
_LOSSES = get_args(_Losses)


def align_features(
    data_mat: np.ndarray, feature_names: list[str], basis_feature_names: list[str]
) -> np.ndarray:
    """
    Reorder the rows of 'data_mat' to match the features of a basis.
    The two feature sets have to be identical.
    """
    if len(feature_names) != len(basis_feature_names) or set(feature_names) != set(
        basis_feature_names
    ):
        raise DimensionMismatch(
            "The features of the new data and the features of the basis differ."
        )
    if feature_names == basis_feature_names:
        return data_mat

    positions = {name: i for i, name in enumerate(feature_names)}
    indices = [positions[name] for name in basis_feature_names]
    return data_mat[indices, :]


def _nnls_coefficients(
    data_mat: np.ndarray, basis_mat: np.ndarray, mask: np.ndarray, l2: float = 0.0
) -> np.ndarray:
    """
    Solve the (L2-regularized) non-negative least squares problem of each
    sample exactly. Only the observed entries of a sample are used.
    """
    n_factors = basis_mat.shape[1]
    n_samples = data_mat.shape[1]
    coefficient_mat = np.zeros((n_factors, n_samples))

    for d in range(n_samples):
        observed = mask[:, d] > 0
        A = basis_mat[observed, :]
        b = data_mat[observed, d]

        if l2 > 0:
            A = np.vstack([A, np.sqrt(l2) * np.identity(n_factors)])
            b = np.concatenate([b, np.zeros(n_factors)])

        coefficient_mat[:, d], _ = optimize.nnls(A, b)

    return coefficient_mat


def project(
    data_mat: np.ndarray,
    basis_mat: np.ndarray,
    loss: _Losses = "mkl",
    alpha: float | Iterable[float] | None = None,
    init: np.ndarray | None = None,
    max_iterations: int = 1000,
    conv_test_freq: int = 10,
    tol: float = 1e-6,
) -> np.ndarray:
    """
    Find the non-negative coefficient matrix H minimizing the loss between
    'data_mat' and basis_mat @ H while the basis is held fixed.

    Inputs
    ------
    data_mat : np.ndarray
        shape (n_features, n_samples), missing values (NaN) are ignored

    basis_mat : np.ndarray
        shape (n_features, n_factors)

    loss : str, default='mkl'
        'mse' for the squared error, 'mkl' for the generalized
        Kullback-Leibler divergence

    alpha : float or sequence of at most three floats, optional
        The (L2, angle, L1) penalty weights of the coefficients.

    init : np.ndarray, optional
        shape (n_factors, n_samples), initial coefficients

    max_iterations : int, default=1000
        The maximum number of multiplicative updates.

    tol : float, default=1e-6
        Relative change of the objective function at which the
        multiplicative updates are stopped.

    Returns
    -------
    coefficient_mat : np.ndarray
        shape (n_factors, n_samples)
    """
    value_checker("loss", loss, _LOSSES)
    data_mat = np.asarray(data_mat, dtype=float)
    basis_mat = np.ascontiguousarray(basis_mat, dtype=float)
    nonnegativity_checker("data_mat", data_mat)
    nonnegativity_checker("basis_mat", basis_mat)

    if data_mat.ndim != 2 or data_mat.shape[0] != basis_mat.shape[0]:
        raise DimensionMismatch(
            "The number of features of the data and the basis have to be identical."
        )

    n_factors = basis_mat.shape[1]
    n_samples = data_mat.shape[1]
    beta = expand_penalty(alpha)
    missing = np.isnan(data_mat)
    mask = np.ascontiguousarray((~missing).astype(float))
    X = np.ascontiguousarray(np.where(missing, 0.0, data_mat))

    if loss == "mse" and beta[1] == 0 and beta[2] == 0 and init is None:
        return _nnls_coefficients(X, basis_mat, mask, l2=beta[0])

    if init is None:
        H = np.ones((n_factors, n_samples))
    else:
        shape_checker("init", init, (n_factors, n_samples))
        nonnegativity_checker("init", init)
        H = np.array(init, dtype=float).clip(EPSILON)

    if loss == "mse":
        update_H, objective = update_H_mse, mse_objective
    else:
        update_H, objective = update_H_kl, kl_objective

    # the basis is fixed, its penalty is a constant
    alpha_W = np.zeros(3)
    of_value = objective(X, basis_mat, H, mask, alpha_W, beta)

    for n_iteration in range(1, max_iterations + 1):
        H = np.ascontiguousarray(update_H(X, basis_mat, H, mask, beta))

        if n_iteration % conv_test_freq == 0:
            prev_of_value = of_value
            of_value = objective(X, basis_mat, H, mask, alpha_W, beta)
            rel_change = np.abs(prev_of_value - of_value) / max(
                np.abs(prev_of_value), EPSILON
            )
            if rel_change < tol:
                break

    return H
