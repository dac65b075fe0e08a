from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable, Literal, get_args

import anndata as ad
import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from scipy import stats

from .embedding import SimilarityEmbedder
from .initialization.methods import _INIT_METHODS
from .models import LOSS_MODELS
from .models.projection import _LOSSES, align_features, project
from .utils import (
    DimensionMismatch,
    InvalidConfiguration,
    kl_divergence,
    make_factor_names,
    nonnegativity_checker,
    to_feature_matrix,
    type_checker,
    value_checker,
)

if TYPE_CHECKING:
    from scipy import sparse

    from .initialization.methods import _Init_methods
    from .models import FactorNMF
    from .models.projection import _Losses

_Association_metrics = Literal["IC", "pearson", "spearman"]
_ASSOCIATION_METRICS = get_args(_Association_metrics)


def _spawn_seeds(seed: int | np.random.SeedSequence | None, n_seeds: int) -> list[int]:
    """
    Independent integer seeds derived from a single seed.
    """
    if not isinstance(seed, np.random.SeedSequence):
        seed = np.random.SeedSequence(seed)

    return [int(s) for s in seed.generate_state(n_seeds)]


def _fit_single_nmf(
    data: pd.DataFrame,
    n_factors: int,
    loss: _Losses,
    init: _Init_methods,
    alpha: float | Iterable[float],
    seed: int,
    model_kwargs: dict[str, Any],
) -> FactorNMF:
    model = LOSS_MODELS[loss](
        n_factors=n_factors, init_method=init, alpha=alpha, **model_kwargs
    )
    model.fit(data, init_kwargs={"seed": seed})
    return model


def fit_nmf(
    data: np.ndarray | pd.DataFrame | ad.AnnData,
    n_factors: int,
    alpha: float | Iterable[float] = 0.0,
    init: _Init_methods = "random",
    loss: _Losses = "mse",
    n_rand_init: int = 5,
    n_jobs: int = 1,
    seed: int | np.random.SeedSequence | None = None,
    **kwargs,
) -> FactorNMF:
    """
    Fit an NMF model and return the fitted model.

    With the 'random' initialization, 'n_rand_init' independent models are
    fitted and the model with the smallest final objective function value
    is returned. The deterministic initializations 'nnsvd' and 'ica' are
    fitted once.

    Inputs
    ------
    data: np.ndarray | pd.DataFrame | AnnData
        Non-negative data of shape (n_features, n_samples), or an AnnData
        object of shape (n_samples, n_features). Missing values (NaN)
        are excluded from the objective.

    n_factors: int
        The number of factors.

    alpha: float or sequence of at most three floats, default=0.0
        The (L2, angle, L1) penalty weights of the basis.

    init: str, default='random'
        One of 'ica', 'nnsvd', 'random'.

    loss: str, default='mse'
        'mse' for the squared error, 'mkl' for the generalized KL-divergence.

    n_rand_init: int, default=5
        The number of random restarts.

    n_jobs: int, default=1
        The maximum number of concurrently running fits.

    seed: int, optional
        Seed from which the seeds of all fits are derived.

    kwargs:
        Any further keyword arguments of the NMF model, e.g. 'max_iterations',
        'min_iterations', 'tol' or 'beta'.
    """
    value_checker("init", init, _INIT_METHODS)
    value_checker("loss", loss, _LOSSES)
    X, feature_names, sample_names = to_feature_matrix(data)
    nonnegativity_checker("data", X)

    if n_rand_init < 1:
        raise InvalidConfiguration("'n_rand_init' has to be a positive integer.")

    data_df = pd.DataFrame(X, index=feature_names, columns=sample_names)
    n_runs = n_rand_init if init == "random" else 1
    seeds = _spawn_seeds(seed, n_runs)
    models = Parallel(n_jobs=n_jobs)(
        delayed(_fit_single_nmf)(data_df, n_factors, loss, init, alpha, s, kwargs)
        for s in seeds
    )
    best_model = min(models, key=lambda model: model.objective_function())
    return best_model


def run_nmf(
    data: np.ndarray | pd.DataFrame | ad.AnnData,
    n_factors: int,
    alpha: float | Iterable[float] = 0.0,
    init: _Init_methods = "random",
    loss: _Losses = "mse",
    n_rand_init: int = 5,
    n_jobs: int = 1,
    seed: int | None = None,
    **kwargs,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """
    Factorize the data into loadings (basis) and scores (coefficients),
    see 'fit_nmf' for the arguments.

    Returns
    -------
    loadings : pd.DataFrame
        shape (n_features, n_factors), columns 'metagene_1', ..., 'metagene_k'

    scores : pd.DataFrame
        shape (n_factors, n_samples)
    """
    model = fit_nmf(
        data,
        n_factors,
        alpha=alpha,
        init=init,
        loss=loss,
        n_rand_init=n_rand_init,
        n_jobs=n_jobs,
        seed=seed,
        **kwargs,
    )
    return model.loadings, model.scores


def _heldout_errors(
    data: pd.DataFrame,
    data_true: np.ndarray,
    masked_indices: np.ndarray,
    n_factors: int,
    alpha: float | Iterable[float],
    init: _Init_methods,
    loss: _Losses,
    n_rand_init: int,
    seed: int,
    model_kwargs: dict[str, Any],
) -> tuple[float, float]:
    model = fit_nmf(
        data,
        n_factors,
        alpha=alpha,
        init=init,
        loss=loss,
        n_rand_init=n_rand_init,
        seed=seed,
        **model_kwargs,
    )
    values_hat = (model.W @ model.H).ravel()[masked_indices]
    values_true = data_true.ravel()[masked_indices]
    mse = np.mean((values_hat - values_true) ** 2)
    mkl = np.mean(kl_divergence(values_true, values_hat))
    return float(mse), float(mkl)


def find_components(
    data: np.ndarray | pd.DataFrame | ad.AnnData,
    k_range: Iterable[int] = range(1, 11),
    alpha: float | Iterable[float] = 0.0,
    n_jobs: int = 1,
    seed: int | None = None,
    na_frac: float = 0.3,
    loss: _Losses = "mse",
    max_iterations: int = 1000,
    init: _Init_methods = "random",
    n_rand_init: int = 1,
    **kwargs,
) -> tuple[pd.DataFrame, int]:
    """
    Select the number of factors by held-out reconstruction error.

    A random subset of 'na_frac' of all entries is masked, NMF models are fitted
    on the remaining entries for every number of factors in 'k_range', and the
    reconstruction errors at the masked entries are computed. This is a single
    random split, not a cross-validation.

    Inputs
    ------
    data: np.ndarray | pd.DataFrame | AnnData
        Non-negative data of shape (n_features, n_samples), or an AnnData
        object of shape (n_samples, n_features).

    k_range: Iterable[int], default=range(1, 11)
        The numbers of factors to test.

    alpha: float or sequence of at most three floats, default=0.0
        A single number 'a' is used as the (L2, angle, L1) penalty
        (a, a, 0) of the basis.

    n_jobs: int, default=1
        The maximum number of concurrently running fits.

    seed: int, optional
        Seed of the masked entries and of all fits. Given a seed, the error
        curve is reproducible.

    na_frac: float, default=0.3
        The fraction of masked entries.

    loss: str, default='mse'
        The loss of the NMF models. It also determines the error used to
        choose the number of factors.

    max_iterations: int, default=1000
        The maximum number of iterations of every fit.

    Returns
    -------
    errors : pd.DataFrame
        The mean squared errors and mean generalized KL-divergences of the
        held-out entries, indexed by the number of factors.

    best_k : int
        The number of factors with the smallest held-out error.
    """
    value_checker("loss", loss, _LOSSES)
    value_checker("init", init, _INIT_METHODS)
    X, feature_names, sample_names = to_feature_matrix(data)
    nonnegativity_checker("data", X)
    k_range = list(k_range)

    if not k_range:
        raise InvalidConfiguration("'k_range' must not be empty.")
    if not 0 < na_frac < 1:
        raise InvalidConfiguration("'na_frac' has to be strictly between 0 and 1.")

    if np.isscalar(alpha):
        alpha = (alpha, alpha, 0.0)

    seed_mask, seed_fits = np.random.SeedSequence(seed).spawn(2)
    rng = np.random.default_rng(seed_mask)
    observed = np.flatnonzero(~np.isnan(X))
    n_masked = min(int(na_frac * X.size), len(observed))
    masked_indices = np.sort(rng.choice(observed, size=n_masked, replace=False))

    X_masked = X.copy()
    X_masked.ravel()[masked_indices] = np.nan
    data_masked = pd.DataFrame(X_masked, index=feature_names, columns=sample_names)
    model_kwargs = {"max_iterations": max_iterations, **kwargs}
    seeds = _spawn_seeds(seed_fits, len(k_range))

    errors = Parallel(n_jobs=n_jobs)(
        delayed(_heldout_errors)(
            data_masked,
            X,
            masked_indices,
            k,
            alpha,
            init,
            loss,
            n_rand_init,
            s,
            model_kwargs,
        )
        for k, s in zip(k_range, seeds)
    )
    errors_df = pd.DataFrame(
        errors, index=pd.Index(k_range, name="k"), columns=["mse", "mkl"]
    )
    best_k = int(errors_df[loss].idxmin())
    return errors_df, best_k


def project_nmf(
    newdata: np.ndarray | pd.DataFrame | ad.AnnData,
    loadings: np.ndarray | pd.DataFrame,
    alpha: float | Iterable[float] | None = None,
    init: np.ndarray | None = None,
    loss: _Losses = "mkl",
    **kwargs,
) -> pd.DataFrame:
    """
    Project new data onto fixed NMF loadings (basis), i.e. find the
    non-negative scores minimizing the loss between loadings @ scores
    and the new data.

    Inputs
    ------
    newdata: np.ndarray | pd.DataFrame | AnnData
        Non-negative data of shape (n_features, n_samples), or an AnnData
        object of shape (n_samples, n_features).

    loadings: np.ndarray | pd.DataFrame
        The basis of shape (n_features, n_factors). If both the new data and
        the loadings are labelled, the features are matched by name.

    alpha: float or sequence of at most three floats, optional
        The (L2, angle, L1) penalty weights of the scores.

    init: np.ndarray, optional
        Initial scores of shape (n_factors, n_samples).

    loss: str, default='mkl'
        'mse' or 'mkl'.

    kwargs:
        'max_iterations', 'conv_test_freq' or 'tol' of the
        multiplicative updates.

    Returns
    -------
    scores : pd.DataFrame
        shape (n_factors, n_samples)
    """
    value_checker("loss", loss, _LOSSES)
    type_checker("loadings", loadings, [np.ndarray, pd.DataFrame])
    X, feature_names, sample_names = to_feature_matrix(newdata)

    if type(loadings) is pd.DataFrame:
        W = loadings.to_numpy(dtype=float)
        names = [str(name) for name in loadings.columns]

        if type(newdata) is not np.ndarray:
            basis_feature_names = [str(name) for name in loadings.index]
            X = align_features(X, feature_names, basis_feature_names)
    else:
        W = np.asarray(loadings, dtype=float)
        names = make_factor_names(W.shape[1])

    if X.shape[0] != W.shape[0]:
        raise DimensionMismatch(
            "The number of features of the new data and the loadings differ."
        )

    H = project(X, W, loss=loss, alpha=alpha, init=init, **kwargs)
    return pd.DataFrame(H, index=names, columns=sample_names)


def embed(
    scores: np.ndarray | pd.DataFrame,
    similarity: np.ndarray | pd.DataFrame | sparse.spmatrix,
    **kwargs,
) -> pd.DataFrame:
    """
    Embed the factors and samples in two dimensions, see SimilarityEmbedder.

    Inputs
    ------
    scores: np.ndarray | pd.DataFrame
        The NMF scores (coefficients) of shape (n_factors, n_samples).

    similarity: np.ndarray | pd.DataFrame | scipy sparse matrix
        Symmetric sample-sample similarities of shape (n_samples, n_samples).

    kwargs:
        Any keyword arguments of SimilarityEmbedder.

    Returns
    -------
    embedding : pd.DataFrame
        The coordinates 'x', 'y' and the 'type' ('factor' or 'sample'),
        indexed by the factor and sample names.
    """
    embedder = SimilarityEmbedder(**kwargs).fit(scores, similarity)
    return embedder.embedding


def _bandwidth_nrd(x: np.ndarray) -> float:
    """
    Normal reference bandwidth of a Gaussian kernel density estimate,
    scaled by four to match the kernel width convention of 'kde2d'.
    """
    q25, q75 = np.quantile(x, [0.25, 0.75])
    iqr_scale = (q75 - q25) / 1.34
    std = np.std(x, ddof=1)
    scale = min(std, iqr_scale) if iqr_scale > 0 else std
    return 4 * 1.06 * scale * len(x) ** (-1 / 5)


def _kde2d(
    x: np.ndarray, y: np.ndarray, bandwidths: np.ndarray, n_grid: int
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Two-dimensional Gaussian kernel density estimate on a square grid
    spanning the range of the data.
    """
    gx = np.linspace(np.min(x), np.max(x), n_grid)
    gy = np.linspace(np.min(y), np.max(y), n_grid)
    h = bandwidths / 4
    ax = (gx[:, np.newaxis] - x) / h[0]
    ay = (gy[:, np.newaxis] - y) / h[1]
    z = stats.norm.pdf(ax) @ stats.norm.pdf(ay).T / (len(x) * h[0] * h[1])
    return gx, gy, z


def information_coefficient(
    x: np.ndarray, y: np.ndarray, n_grid: int = 25, seed: int | None = None
) -> float:
    """
    The information coefficient sign(rho) * sqrt(1 - exp(-2 MI)) of two vectors,
    where the mutual information MI is computed from a kernel density estimate
    with correlation-adjusted bandwidths.

    Only positions where both vectors are finite are used. Fewer than three
    such positions, or a degenerate (NaN) result, give 0.

    Reference
    ---------
    D. Kim et al.: Information-based association of genomic features
    - arXiv, 2016
    """
    rng = np.random.default_rng(seed)
    x, y = np.asarray(x, dtype=float), np.asarray(y, dtype=float)
    overlap = np.isfinite(x) & np.isfinite(y)
    n_overlap = np.sum(overlap)

    if n_overlap <= 2:
        return 0.0

    x = x[overlap] + 1e-9 * rng.uniform(size=n_overlap)
    y = y[overlap] + 1e-9 * rng.uniform(size=n_overlap)

    with np.errstate(divide="ignore", invalid="ignore"):
        rho = np.corrcoef(x, y)[0, 1]
        bandwidths = np.array([_bandwidth_nrd(x), _bandwidth_nrd(y)])
        bandwidths *= 1 - 0.75 * np.abs(rho)
        gx, gy, z = _kde2d(x, y, bandwidths, n_grid)
        fxy = z + np.finfo(float).eps
        dx, dy = gx[1] - gx[0], gy[1] - gy[0]
        pxy = fxy / (np.sum(fxy) * dx * dy)
        px = np.sum(pxy, axis=1) * dy
        py = np.sum(pxy, axis=0) * dx
        mutual_information = (
            np.sum(pxy * np.log(pxy / (px[:, np.newaxis] * py[np.newaxis, :])))
            * dx
            * dy
        )
        ic = np.sign(rho) * np.sqrt(1 - np.exp(-2 * mutual_information))

    if not np.isfinite(ic):
        return 0.0

    return float(ic)


def _correlation_rows(mat1: np.ndarray, mat2: np.ndarray) -> np.ndarray:
    """
    The pearson correlation of all rows of 'mat1' with all rows of 'mat2'.
    Rows without variance have a correlation of zero.
    """

    def standardize(mat):
        centered = mat - np.mean(mat, axis=1, keepdims=True)
        norms = np.sqrt(np.sum(centered**2, axis=1, keepdims=True))
        with np.errstate(divide="ignore", invalid="ignore"):
            return centered / norms

    correlation = standardize(mat1) @ standardize(mat2).T
    return np.nan_to_num(correlation)


def _information_coefficients_row(
    x: np.ndarray, scores_mat: np.ndarray, n_grid: int, seed: int
) -> np.ndarray:
    return np.array(
        [information_coefficient(x, u, n_grid=n_grid, seed=seed) for u in scores_mat]
    )


def factor_association(
    features: pd.DataFrame | ad.AnnData,
    scores: pd.DataFrame,
    metric: _Association_metrics = "IC",
    n_jobs: int = 1,
    n_grid: int = 25,
    seed: int | None = None,
) -> pd.DataFrame:
    """
    Associate every feature with every factor by the information coefficient
    or the pearson or spearman correlation across samples.

    Inputs
    ------
    features: pd.DataFrame | AnnData
        Feature values of shape (n_features, n_samples), or an AnnData object
        of shape (n_samples, n_features), e.g. the normalized expression.

    scores: pd.DataFrame
        The NMF scores of shape (n_factors, n_samples). The samples are
        matched by name.

    metric: str, default='IC'
        One of 'IC', 'pearson', 'spearman'.

    n_jobs: int, default=1
        The number of parallel jobs used for the information coefficients.

    Returns
    -------
    associations : pd.DataFrame
        shape (n_features, n_factors)
    """
    value_checker("metric", metric, _ASSOCIATION_METRICS)
    type_checker("features", features, [pd.DataFrame, ad.AnnData])
    type_checker("scores", scores, pd.DataFrame)
    X, feature_names, sample_names = to_feature_matrix(features)
    score_sample_names = [str(name) for name in scores.columns]

    if set(score_sample_names) != set(sample_names) or len(
        score_sample_names
    ) != len(sample_names):
        raise DimensionMismatch("The samples of the features and scores differ.")

    H = scores.to_numpy(dtype=float)
    H = align_features(H.T, score_sample_names, sample_names).T

    if metric == "pearson":
        associations = _correlation_rows(X, H)
    elif metric == "spearman":
        associations = _correlation_rows(
            stats.rankdata(X, axis=1), stats.rankdata(H, axis=1)
        )
    else:
        seeds = _spawn_seeds(seed, len(X))
        rows = Parallel(n_jobs=n_jobs)(
            delayed(_information_coefficients_row)(x, H, n_grid, s)
            for x, s in zip(X, seeds)
        )
        associations = np.array(rows).reshape((len(X), H.shape[0]))

    return pd.DataFrame(associations, index=feature_names, columns=scores.index)


def summarize_assoc_features(
    associations: pd.DataFrame,
    features_return: int = 10,
    features_use: Iterable[str] | None = None,
) -> pd.DataFrame:
    """
    The top associated features of every factor as a long dataframe with
    the columns 'assoc_score', 'feature' and 'factor'.

    Inputs
    ------
    associations: pd.DataFrame
        shape (n_features, n_factors), see 'factor_association'

    features_return: int, default=10
        The number of top features per factor.

    features_use: Iterable[str], optional
        Only consider this subset of features.
    """
    type_checker("associations", associations, pd.DataFrame)

    if features_use is not None:
        associations = associations.loc[list(features_use), :]

    summaries = []

    for factor in associations.columns:
        summary = pd.DataFrame(
            {
                "assoc_score": associations[factor].to_numpy(),
                "feature": associations.index,
                "factor": factor,
            }
        )
        summary = summary.sort_values("assoc_score", ascending=False, kind="stable")
        summaries.append(summary.head(features_return))

    return pd.concat(summaries, ignore_index=True)
