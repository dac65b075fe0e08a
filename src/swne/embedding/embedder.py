"""
Similarity weighted non-negative embedding of NMF factors and samples.
"""

from __future__ import annotations

import warnings
from typing import Literal, get_args

import numpy as np
import pandas as pd
from scipy import optimize, sparse

from ..utils import (
    DimensionMismatch,
    InvalidConfiguration,
    make_factor_names,
    nonnegativity_checker,
    type_checker,
    value_checker,
)
from ._utils_embedding import (
    classical_mds,
    compute_sample_weights,
    embedding_objective,
    factor_distances,
    similarity_pairs,
)

_Factor_distances = Literal["cosine", "euclidean", "pearson"]
_FACTOR_DISTANCES = get_args(_Factor_distances)
_Similarity_types = Literal["similarity", "distance"]
_SIMILARITY_TYPES = get_args(_Similarity_types)

SYMMETRY_TOL = 1e-8


class SimilarityEmbedder:
    """
    Embed NMF factors and samples in a shared two-dimensional space.

    The factors are placed first. Every sample is then located at the convex
    combination of the factor coordinates given by its normalized coefficients,
    i.e. sample_coords = P @ factor_coords with rows of P summing to one.
    Only the factor coordinates are optimized: starting from a classical
    multidimensional scaling of the factor distances, they minimize the
    normalized stress between the embedded sample distances and the distances
    implied by the sample similarities, plus 'factor_weight' times the stress
    of the factor distances.

    Since the sample coordinates are always exactly P @ factor_coords, a sample
    loading on a single factor is placed on top of that factor.

    Reference
    ---------
    Y. Wu, P. Tamayo, K. Zhang: Visualizing and Interpreting Single-Cell Gene
    Expression Datasets with Similarity Weighted Nonnegative Embedding
    - Cell Systems, 2018
    """

    def __init__(
        self,
        alpha_exp: float = 1.0,
        n_pull: int | None = None,
        factor_distance: _Factor_distances = "cosine",
        similarity_type: _Similarity_types = "similarity",
        factor_weight: float = 1.0,
        normalize: bool = False,
        max_iterations: int = 1000,
        tol: float = 1e-8,
    ):
        """
        Inputs
        ------
        alpha_exp: float, default=1.0
            Positive exponent applied to the coefficients before normalizing them to
            sample weights. Larger values pull samples closer to their
            dominating factors.

        n_pull: int, optional
            If given, a sample is only placed relative to its
            'n_pull' strongest factors.

        factor_distance: str, default='cosine'
            Distance between the factors. One of 'cosine', 'euclidean', 'pearson'.

        similarity_type: str, default='similarity'
            Whether the sample-sample matrix holds similarities
            (larger means closer, e.g. a shared nearest neighbor graph)
            or distances.

        factor_weight: float, default=1.0
            The weight of the factor distance stress.

        normalize: bool, default=False
            If True, the coordinates are shifted and uniformly rescaled into the
            unit square after the optimization.

        max_iterations: int, default=1000
            The maximum number of L-BFGS-B iterations.

        tol: float, default=1e-8
            Tolerance of the relative decrease of the objective function
            at convergence.
        """
        value_checker("factor_distance", factor_distance, _FACTOR_DISTANCES)
        value_checker("similarity_type", similarity_type, _SIMILARITY_TYPES)

        if alpha_exp <= 0:
            raise InvalidConfiguration("'alpha_exp' has to be positive.")
        if n_pull is not None and n_pull < 1:
            raise InvalidConfiguration("'n_pull' has to be a positive integer.")
        if factor_weight < 0:
            raise InvalidConfiguration("'factor_weight' has to be non-negative.")

        self.alpha_exp = alpha_exp
        self.n_pull = n_pull
        self.factor_distance = factor_distance
        self.similarity_type = similarity_type
        self.factor_weight = factor_weight
        self.normalize = normalize
        self.max_iterations = max_iterations
        self.tol = tol

        # initialize fitting dependent attributes
        self.factor_names: list[str] = []
        self.sample_names: list[str] = []
        self.factor_coords = np.empty((0, 2))
        self.sample_coords = np.empty((0, 2))
        self.sample_weights = np.empty((0, 0))
        self.stress = np.nan
        self.converged = False
        self.n_iterations = 0

    def _setup_scores(self, scores: np.ndarray | pd.DataFrame) -> np.ndarray:
        type_checker("scores", scores, [np.ndarray, pd.DataFrame])

        if type(scores) is pd.DataFrame:
            self.factor_names = [str(name) for name in scores.index]
            self.sample_names = [str(name) for name in scores.columns]
            H = scores.to_numpy(dtype=float)
        else:
            if scores.ndim != 2:
                raise DimensionMismatch("The scores have to be a two-dimensional matrix.")
            H = np.array(scores, dtype=float)
            self.factor_names = make_factor_names(H.shape[0])
            self.sample_names = [f"sample_{j + 1}" for j in range(H.shape[1])]

        if set(self.factor_names) & set(self.sample_names):
            raise DimensionMismatch("The factor and sample names have to be distinct.")

        if not np.all(np.isfinite(H)):
            raise ValueError("The scores must not contain missing or infinite values.")

        nonnegativity_checker("scores", H)
        return H

    def _setup_similarity(
        self, similarity: np.ndarray | pd.DataFrame | sparse.spmatrix
    ) -> np.ndarray | sparse.spmatrix:
        """
        Check that the similarity matrix is square, symmetric, non-negative
        and matches the samples of the scores.
        """
        n_samples = len(self.sample_names)

        if type(similarity) is pd.DataFrame:
            index = [str(name) for name in similarity.index]
            columns = [str(name) for name in similarity.columns]

            if set(index) != set(self.sample_names) or set(columns) != set(
                self.sample_names
            ):
                raise DimensionMismatch(
                    "The labels of the similarity matrix and the samples differ."
                )
            similarity = similarity.copy()
            similarity.index, similarity.columns = index, columns
            similarity = similarity.loc[self.sample_names, self.sample_names]
            similarity = similarity.to_numpy(dtype=float)

        elif not sparse.issparse(similarity):
            type_checker("similarity", similarity, np.ndarray)
            similarity = np.asarray(similarity, dtype=float)

        if similarity.shape != (n_samples, n_samples):
            raise DimensionMismatch(
                f"The similarity matrix has to be of shape ({n_samples}, {n_samples})."
            )

        if sparse.issparse(similarity):
            similarity = sparse.csr_matrix(similarity, dtype=float)
            values = similarity.data
            asymmetry = abs(similarity - similarity.T).max() if n_samples else 0.0
        else:
            values = similarity
            asymmetry = np.max(np.abs(similarity - similarity.T)) if n_samples else 0.0

        if not np.all(np.isfinite(values)):
            raise ValueError(
                "The similarity matrix must not contain missing or infinite values."
            )
        if asymmetry > SYMMETRY_TOL:
            raise DimensionMismatch("The similarity matrix has to be symmetric.")

        nonnegativity_checker("similarity", values)
        return similarity

    def fit(
        self,
        scores: np.ndarray | pd.DataFrame,
        similarity: np.ndarray | pd.DataFrame | sparse.spmatrix,
    ) -> SimilarityEmbedder:
        """
        Compute the factor and sample coordinates.

        Inputs
        ------
        scores: np.ndarray | pd.DataFrame
            The NMF coefficient matrix of shape (n_factors, n_samples).

        similarity: np.ndarray | pd.DataFrame | scipy sparse matrix
            Symmetric sample-sample similarities (or distances, see
            'similarity_type') of shape (n_samples, n_samples). The diagonal
            is ignored. A dataframe has to be labelled by the sample names.
        """
        H = self._setup_scores(scores)
        similarity = self._setup_similarity(similarity)
        n_factors = H.shape[0]

        self.sample_weights, degenerate = compute_sample_weights(
            H, alpha_exp=self.alpha_exp, n_pull=self.n_pull
        )
        if np.any(degenerate):
            warnings.warn(
                f"{np.sum(degenerate)} samples do not load on any factor. "
                "They are placed at the centroid of the factors.",
                UserWarning,
            )

        distances = factor_distances(H, metric=self.factor_distance)
        factor_rows, factor_cols = np.triu_indices(n_factors, k=1)
        factor_targets = distances[factor_rows, factor_cols]
        factor_pairs = (
            factor_rows,
            factor_cols,
            factor_targets,
            np.ones_like(factor_targets),
        )
        sample_pairs = similarity_pairs(similarity, self.similarity_type)
        factor_coords_init = classical_mds(distances, n_components=2)

        result = optimize.minimize(
            embedding_objective,
            factor_coords_init.ravel(),
            args=(self.sample_weights, sample_pairs, factor_pairs, self.factor_weight),
            jac=True,
            method="L-BFGS-B",
            options={"maxiter": self.max_iterations, "ftol": self.tol},
        )
        if not result.success:
            warnings.warn(
                "The optimization of the factor coordinates did not converge: "
                f"{result.message}. The last iterate is used.",
                UserWarning,
            )

        self.factor_coords = result.x.reshape((n_factors, 2))
        self.stress = float(result.fun)
        self.converged = bool(result.success)
        self.n_iterations = int(result.nit)

        if self.normalize:
            self.factor_coords = self._normalize_coords(self.factor_coords)

        self.sample_coords = self.sample_weights @ self.factor_coords
        return self

    @staticmethod
    def _normalize_coords(coords: np.ndarray) -> np.ndarray:
        """
        Shift and uniformly rescale the coordinates into the unit square.
        Convex combinations commute with this map.
        """
        lower = np.min(coords, axis=0)
        span = np.max(np.max(coords, axis=0) - lower)
        span = span if span > 0 else 1.0
        return (coords - lower) / span

    def transform(self, scores: np.ndarray | pd.DataFrame) -> pd.DataFrame:
        """
        Place new samples, e.g. projected onto the NMF basis, relative to
        the fitted factor coordinates.

        Inputs
        ------
        scores: np.ndarray | pd.DataFrame
            Coefficient matrix of shape (n_factors, n_new_samples).
        """
        type_checker("scores", scores, [np.ndarray, pd.DataFrame])

        if type(scores) is pd.DataFrame:
            if [str(name) for name in scores.index] != self.factor_names:
                raise DimensionMismatch(
                    "The factors of the new scores and the embedding differ."
                )
            sample_names = [str(name) for name in scores.columns]
            H = scores.to_numpy(dtype=float)
        else:
            H = np.array(scores, dtype=float)
            sample_names = [f"sample_{j + 1}" for j in range(H.shape[1])]

        if H.shape[0] != len(self.factor_names):
            raise DimensionMismatch(
                f"The new scores have to have {len(self.factor_names)} rows."
            )
        nonnegativity_checker("scores", H)
        weights, _ = compute_sample_weights(H, self.alpha_exp, self.n_pull)
        return pd.DataFrame(
            weights @ self.factor_coords, index=sample_names, columns=["x", "y"]
        )

    @property
    def embedding(self) -> pd.DataFrame:
        """
        The factor and sample coordinates as a dataframe indexed by the
        factor and sample names, with columns 'x', 'y' and 'type'.
        """
        factors = pd.DataFrame(
            self.factor_coords, index=self.factor_names, columns=["x", "y"]
        )
        factors["type"] = "factor"
        samples = pd.DataFrame(
            self.sample_coords, index=self.sample_names, columns=["x", "y"]
        )
        samples["type"] = "sample"
        return pd.concat([factors, samples])

    def to_dict(self) -> dict[str, tuple[float, float]]:
        """
        The mapping from factor and sample names to their coordinates.
        """
        embedding = self.embedding
        return {
            name: (float(x), float(y))
            for name, x, y in zip(embedding.index, embedding["x"], embedding["y"])
        }
