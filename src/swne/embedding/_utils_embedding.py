from __future__ import annotations

import numpy as np
from scipy import sparse
from sklearn.metrics import pairwise_distances

from ..utils import EPSILON


def factor_distances(coefficient_mat: np.ndarray, metric: str = "cosine") -> np.ndarray:
    """
    The pairwise distances of the factors, i.e. the rows of the
    coefficient matrix of shape (n_factors, n_samples). Each factor is
    scaled to a maximum of one beforehand.

    'pearson' is the correlation distance 1 - r.
    """
    row_max = np.max(coefficient_mat, axis=1, keepdims=True)
    scaled = coefficient_mat / np.maximum(row_max, EPSILON)
    metric = "correlation" if metric == "pearson" else metric
    distances = pairwise_distances(scaled, metric=metric)
    distances = np.nan_to_num((distances + distances.T) / 2)
    np.fill_diagonal(distances, 0.0)
    return distances


def classical_mds(distances: np.ndarray, n_components: int = 2) -> np.ndarray:
    """
    Classical (Torgerson) multidimensional scaling: the coordinates are
    the leading eigenvectors of the double centered squared distances,
    scaled by the square roots of the eigenvalues.
    """
    n_points = distances.shape[0]
    centering = np.identity(n_points) - np.ones((n_points, n_points)) / n_points
    gram = -0.5 * centering @ (distances**2) @ centering
    eigenvalues, eigenvectors = np.linalg.eigh(gram)
    order = np.argsort(eigenvalues)[::-1]
    coords = np.zeros((n_points, n_components))
    n_available = min(n_components, n_points)
    leading = order[:n_available]
    coords[:, :n_available] = eigenvectors[:, leading] * np.sqrt(
        np.maximum(eigenvalues[leading], 0.0)
    )
    return coords


def compute_sample_weights(
    coefficient_mat: np.ndarray, alpha_exp: float = 1.0, n_pull: int | None = None
) -> tuple[np.ndarray, np.ndarray]:
    """
    The convex weights of shape (n_samples, n_factors) placing each
    sample relative to the factors. The weights are proportional to the
    coefficients raised to the power 'alpha_exp'. If 'n_pull' is given,
    only the 'n_pull' largest coefficients of a sample contribute.

    Samples without any positive weight are placed at the centroid of the
    factors and flagged in the second return value.
    """
    weights = np.power(coefficient_mat.T, alpha_exp)
    n_factors = weights.shape[1]

    if n_pull is not None and n_pull < n_factors:
        thresholds = -np.sort(-weights, axis=1)[:, n_pull - 1]
        weights = np.where(weights >= thresholds[:, np.newaxis], weights, 0.0)

    sums = np.sum(weights, axis=1)
    degenerate = ~(sums > 0)
    weights[degenerate, :] = 1.0 / n_factors
    weights[~degenerate, :] /= sums[~degenerate, np.newaxis]
    return weights, degenerate


def similarity_pairs(
    similarity: np.ndarray | sparse.spmatrix,
    similarity_type: str = "similarity",
) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    The sample pairs (i < j) entering the stress together with their
    target distances and weights.

    Similarities s are converted to distances 1 - s / max(s) and weighted
    by s / max(s), such that only similar pairs contribute.
    Distances are used as targets with unit weights.
    For sparse input, only the stored pairs are used.
    """
    if sparse.issparse(similarity):
        upper = sparse.triu(similarity, k=1).tocoo()
        rows, cols, values = upper.row, upper.col, upper.data.astype(float)
    else:
        rows, cols = np.triu_indices(similarity.shape[0], k=1)
        values = np.asarray(similarity, dtype=float)[rows, cols]

    if similarity_type == "distance":
        return rows, cols, values, np.ones_like(values)

    max_value = np.max(values) if len(values) else 0.0

    if max_value <= 0:
        empty = np.empty(0)
        return empty.astype(int), empty.astype(int), empty, empty

    scaled = values / max_value
    keep = scaled > 0
    return rows[keep], cols[keep], 1.0 - scaled[keep], scaled[keep]


def pair_stress(
    coords: np.ndarray,
    rows: np.ndarray,
    cols: np.ndarray,
    targets: np.ndarray,
    weights: np.ndarray,
) -> tuple[float, np.ndarray]:
    r"""
    The normalized weighted stress
        \sum_p w_p (||x_i - x_j|| - t_p)^2 / \sum_p w_p t_p^2
    of the pairs p = (i, j) and its gradient with respect to the coordinates.

    Parameters
    ----------
    coords : np.ndarray of shape (n_points, 2)

    rows, cols : np.ndarray of shape (n_pairs,)
        point indices of the pairs

    targets : np.ndarray of shape (n_pairs,)
        target distances

    weights : np.ndarray of shape (n_pairs,)

    Returns
    -------
    value : float

    gradient : np.ndarray of shape (n_points, 2)
    """
    n_points, n_dims = coords.shape
    gradient = np.zeros((n_points, n_dims))

    if len(rows) == 0:
        return 0.0, gradient

    diff = coords[rows] - coords[cols]
    distances = np.sqrt(np.sum(diff**2, axis=1))
    residuals = distances - targets
    normalization = max(np.sum(weights * targets**2), EPSILON)
    value = np.sum(weights * residuals**2) / normalization

    # a vanishing difference vector has a vanishing gradient contribution
    scale = 2 * weights * residuals / np.maximum(distances, EPSILON) / normalization
    grad_diff = scale[:, np.newaxis] * diff

    for dim in range(n_dims):
        gradient[:, dim] = np.bincount(
            rows, weights=grad_diff[:, dim], minlength=n_points
        ) - np.bincount(cols, weights=grad_diff[:, dim], minlength=n_points)

    return float(value), gradient


def embedding_objective(
    factor_coords_flat: np.ndarray,
    sample_weights: np.ndarray,
    sample_pairs: tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray],
    factor_pairs: tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray],
    factor_weight: float,
) -> tuple[float, np.ndarray]:
    """
    The stress of the sample distances plus 'factor_weight' times the
    stress of the factor distances as a function of the flattened factor
    coordinates. The sample coordinates are sample_weights @ factor_coords.
    """
    n_factors = sample_weights.shape[1]
    factor_coords = factor_coords_flat.reshape((n_factors, 2))
    sample_coords = sample_weights @ factor_coords

    value_samples, grad_samples = pair_stress(sample_coords, *sample_pairs)
    value_factors, grad_factors = pair_stress(factor_coords, *factor_pairs)

    value = value_samples + factor_weight * value_factors
    gradient = sample_weights.T @ grad_samples + factor_weight * grad_factors
    return value, gradient.ravel()
