"""
Initialization methods for non-negative matrix factorization (NMF)
"""

from __future__ import annotations

import warnings
from typing import Literal, get_args

import numpy as np
from scipy import linalg
from sklearn.decomposition import FastICA

from ..utils import euclidean_norm, negative_part, positive_part

ZERO_THRESHOLD = 1e-10
_Init_methods = Literal[
    "ica",
    "nnsvd",
    "random",
]
_INIT_METHODS = get_args(_Init_methods)


def floor_and_fill(
    mat: np.ndarray, data_mean: float, rng: np.random.Generator
) -> np.ndarray:
    """
    Set all entries below 1e-10 to zero and replace the zeros by
    uniform noise from [0, data_mean / 100].

    Exact zeros are fixed points of the multiplicative update rules,
    so they have to be removed before fitting.
    """
    mat = np.where(mat < ZERO_THRESHOLD, 0.0, mat)
    zeros = mat == 0
    mat[zeros] = rng.uniform(0, data_mean / 100, size=np.sum(zeros))
    return mat


def init_random(
    data_mat: np.ndarray, n_factors: int, seed: int | None = None
) -> tuple[np.ndarray, np.ndarray]:
    """
    Draw the basis and coefficient entries from a half-normal distribution
    scaled such that the expected entries of the product match the
    mean of the data.

    Inputs:
    -------
    data_mat: np.ndarray
        shape (n_features, n_samples), missing values are allowed

    n_factors: int

    seed: int, optional
    """
    rng = np.random.default_rng(seed)
    n_features, n_samples = data_mat.shape
    avg = np.sqrt(np.nanmean(data_mat) / n_factors)
    basis_mat = avg * np.abs(rng.standard_normal((n_features, n_factors)))
    coefficient_mat = avg * np.abs(rng.standard_normal((n_factors, n_samples)))
    return basis_mat, coefficient_mat


def init_nnsvd(
    data_mat: np.ndarray, n_factors: int, seed: int | None = None
) -> tuple[np.ndarray, np.ndarray]:
    """
    Non-negative double singular value decomposition, see table 1 in
    "SVD based initialization: A head start for nonnegative matrix
    factorization" (Boutsidis and Gallopoulos, 2008).

    The first singular triplet is made non-negative by taking absolute values.
    For all other triplets, the dominating pair of positive or negative
    parts of the singular vectors is kept. Zeros are filled with
    small uniform noise afterwards.
    """
    rng = np.random.default_rng(seed)
    n_features, n_samples = data_mat.shape
    basis_mat = np.zeros((n_features, n_factors))
    coefficient_mat = np.zeros((n_factors, n_samples))

    U, S, Vt = linalg.svd(data_mat, full_matrices=False)
    U, S, V = U[:, :n_factors], S[:n_factors], Vt[:n_factors, :].T

    basis_mat[:, 0] = np.sqrt(S[0]) * np.abs(U[:, 0])
    coefficient_mat[0, :] = np.sqrt(S[0]) * np.abs(V[:, 0])

    for i in range(1, n_factors):
        uu, vv = U[:, i], V[:, i]
        uup, uun = positive_part(uu), negative_part(uu)
        vvp, vvn = positive_part(vv), negative_part(vv)
        n_uup, n_uun = euclidean_norm(uup), euclidean_norm(uun)
        n_vvp, n_vvn = euclidean_norm(vvp), euclidean_norm(vvn)
        termp, termn = n_uup * n_vvp, n_uun * n_vvn

        if termp >= termn:
            u, v, n_u, n_v, term = uup, vvp, n_uup, n_vvp, termp
        else:
            u, v, n_u, n_v, term = uun, vvn, n_uun, n_vvn, termn

        # a vanishing product leaves the factor to the noise below
        if term > 0:
            basis_mat[:, i] = np.sqrt(S[i] * term) * u / n_u
            coefficient_mat[i, :] = np.sqrt(S[i] * term) * v / n_v

    data_mean = np.mean(data_mat)
    basis_mat = floor_and_fill(basis_mat, data_mean, rng)
    coefficient_mat = floor_and_fill(coefficient_mat, data_mean, rng)
    return basis_mat, coefficient_mat


def init_ica(
    data_mat: np.ndarray, n_factors: int, seed: int | None = None
) -> tuple[np.ndarray, np.ndarray]:
    """
    Run independent component analysis on the samples. The mixing matrix
    serves as the initial basis and the sources as the initial coefficients.
    Negative entries are floored and zeros are filled with small uniform
    noise.
    """
    rng = np.random.default_rng(seed)

    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        ica = FastICA(
            n_components=n_factors, whiten="unit-variance", random_state=seed
        )
        sources = ica.fit_transform(data_mat.T)

    basis_mat = np.array(ica.mixing_, dtype=float)
    coefficient_mat = np.array(sources.T, dtype=float)

    data_mean = np.mean(data_mat)
    basis_mat = floor_and_fill(basis_mat, data_mean, rng)
    coefficient_mat = floor_and_fill(coefficient_mat, data_mean, rng)
    return basis_mat, coefficient_mat
