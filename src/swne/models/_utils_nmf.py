from __future__ import annotations

import numpy as np
from numba import njit

EPSILON = np.finfo(np.float32).eps


@njit
def penalty(X: np.ndarray, alpha: np.ndarray) -> float:
    r"""
    The regularization penalty of a factor matrix X of shape (n, n_factors)
        alpha_0 / 2 * ||X||_F^2
        + alpha_1 / 2 * \sum_{i != j} x_i^T x_j
        + alpha_2 * \sum_ik X_ik,
    i.e. an L2, angle and L1 penalty.

    Parameters
    ----------
    X : np.ndarray of shape (n, n_factors)
        basis matrix or transposed coefficient matrix

    alpha : np.ndarray of shape (3,)
        L2, angle and L1 penalty weights

    Returns
    -------
    result : float
    """
    squared_norm = np.sum(X**2)
    rowsums = np.sum(X, axis=1)
    angle = np.sum(rowsums**2) - squared_norm
    result = 0.5 * alpha[0] * squared_norm + 0.5 * alpha[1] * angle
    result += alpha[2] * np.sum(X)
    return result


@njit
def penalty_gradient(X: np.ndarray, alpha: np.ndarray) -> np.ndarray:
    """
    The gradient of the penalty with respect to X. It is non-negative
    for non-negative X and is added to the denominator of the
    multiplicative update rules.
    """
    rowsums = np.sum(X, axis=1)
    gradient = alpha[0] * X + alpha[1] * (rowsums[:, np.newaxis] - X) + alpha[2]
    return gradient


@njit(fastmath=True)
def mse_objective(
    X: np.ndarray,
    W: np.ndarray,
    H: np.ndarray,
    mask: np.ndarray,
    alpha: np.ndarray,
    beta: np.ndarray,
) -> float:
    """
    Half of the masked residual sum of squares plus the regularization
    penalties of W and H.

    Parameters
    ----------
    X : np.ndarray of shape (n_features, n_samples)
        data matrix, missing entries set to zero

    W : np.ndarray of shape (n_features, n_factors)
        basis matrix

    H : np.ndarray of shape (n_factors, n_samples)
        coefficient matrix

    mask : np.ndarray of shape (n_features, n_samples)
        1.0 for observed and 0.0 for missing entries

    alpha, beta : np.ndarray of shape (3,)
        penalty weights of W and H
    """
    residuals = mask * (X - W @ H)
    result = 0.5 * np.sum(residuals**2)
    result += penalty(W, alpha) + penalty(H.T, beta)
    return result


@njit(fastmath=True)
def kl_objective(
    X: np.ndarray,
    W: np.ndarray,
    H: np.ndarray,
    mask: np.ndarray,
    alpha: np.ndarray,
    beta: np.ndarray,
) -> float:
    r"""
    The masked generalized Kullback-Leibler divergence
        \sum_vd m_vd * (X_vd * ln(X_vd / (WH)_vd) - X_vd + (WH)_vd)
    plus the regularization penalties of W and H.
    """
    V, D = X.shape
    WH = W @ H
    result = 0.0

    for v in range(V):
        for d in range(D):
            if mask[v, d] == 0:
                continue
            if X[v, d] != 0:
                result += X[v, d] * np.log(X[v, d] / WH[v, d])
                result -= X[v, d]
            result += WH[v, d]

    result += penalty(W, alpha) + penalty(H.T, beta)
    return result


@njit
def update_W_mse(
    X: np.ndarray,
    W: np.ndarray,
    H: np.ndarray,
    mask: np.ndarray,
    alpha: np.ndarray,
) -> np.ndarray:
    """
    The multiplicative update rule of the basis matrix W for the masked
    squared error (Lee and Seung, 2001) with the penalty gradient
    added to the denominator.

    Clipping the matrix avoids floating point errors.

    Returns
    -------
    W_updated : np.ndarray of shape (n_features, n_factors)
    """
    numerator = (mask * X) @ H.T
    denominator = (mask * (W @ H)) @ H.T + penalty_gradient(W, alpha)
    W_updated = W * numerator / np.maximum(denominator, EPSILON)
    return np.maximum(W_updated, EPSILON)


@njit
def update_W_kl(
    X: np.ndarray,
    W: np.ndarray,
    H: np.ndarray,
    mask: np.ndarray,
    alpha: np.ndarray,
) -> np.ndarray:
    """
    The multiplicative update rule of the basis matrix W for the masked
    generalized Kullback-Leibler divergence with the penalty gradient
    added to the denominator.

    Clipping the matrix avoids floating point errors.

    Returns
    -------
    W_updated : np.ndarray of shape (n_features, n_factors)
    """
    aux = mask * X / (W @ H)
    numerator = aux @ H.T
    denominator = mask @ H.T + penalty_gradient(W, alpha)
    W_updated = W * numerator / np.maximum(denominator, EPSILON)
    return np.maximum(W_updated, EPSILON)


@njit
def update_H_mse(
    X: np.ndarray,
    W: np.ndarray,
    H: np.ndarray,
    mask: np.ndarray,
    beta: np.ndarray,
) -> np.ndarray:
    """
    The multiplicative update rule of the coefficient matrix H for the
    masked squared error. It is the basis update of the transposed problem.
    """
    return update_W_mse(X.T, H.T, W.T, mask.T, beta).T


@njit
def update_H_kl(
    X: np.ndarray,
    W: np.ndarray,
    H: np.ndarray,
    mask: np.ndarray,
    beta: np.ndarray,
) -> np.ndarray:
    """
    The multiplicative update rule of the coefficient matrix H for the
    masked generalized Kullback-Leibler divergence.
    """
    return update_W_kl(X.T, H.T, W.T, mask.T, beta).T
