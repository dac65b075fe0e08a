from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Iterable, Literal

import anndata as ad
import numpy as np
import pandas as pd

from ..initialization.initialize import initialize_mat
from ..initialization.methods import _INIT_METHODS
from ..utils import (
    EPSILON,
    InvalidConfiguration,
    dict_checker,
    expand_penalty,
    make_factor_names,
    nonnegativity_checker,
    to_feature_matrix,
    value_checker,
)
from .projection import align_features, project

if TYPE_CHECKING:
    from ..initialization.methods import _Init_methods
    from .projection import _Losses

_INIT_KWARGS = ["seed"]


class FactorNMF(ABC):
    """
    The abstract class FactorNMF unifies the structure of the NMF
    algorithms that factorize a non-negative data matrix A of shape
    (n_features, n_samples) into a basis matrix W of shape
    (n_features, n_factors) and a coefficient matrix H of shape
    (n_factors, n_samples).

    Every child class has to implement the following attributes:

        - loss: Literal["mse", "mkl"]
            The reconstruction loss minimized by the algorithm.

    Every child class has to implement the following methods:

        - objective_function:
            The regularized loss to minimize during model training.

        - samplewise_reconstruction_error:
            The per-sample reconstruction errors of the observed entries.

        - _update_parameters:
            Update the basis and coefficient matrices.

    The following attributes and methods are implemented in FactorNMF:

        - feature_names, sample_names, factor_names: list[str]
            The row names of the data, the column names of the data and
            the generated factor names 'metagene_1', ..., 'metagene_k'.

        - loadings: pd.DataFrame
            The basis matrix W with named features and factors.

        - scores: pd.DataFrame
            The coefficient matrix H with named factors and samples.

        - data_reconstructed: pd.DataFrame
            The reconstructed data WH.

        - reconstruction_error: float
            The sum of the samplewise reconstruction errors.

        - fit:
            Fit the basis and coefficient matrices.

        - project:
            Compute the coefficients of new data with respect to the fitted basis.
    """

    def __init__(
        self,
        n_factors: int = 1,
        init_method: _Init_methods = "random",
        alpha: float | Iterable[float] = 0.0,
        beta: float | Iterable[float] | None = None,
        min_iterations: int = 100,
        max_iterations: int = 1000,
        conv_test_freq: int = 10,
        tol: float = 1e-6,
    ):
        """
        Inputs
        ------
        n_factors: int
            The number of latent factors (metagenes).

        init_method: str, default='random'
            The model parameter initialization method.
            One of 'ica', 'nnsvd', 'random'.

        alpha: float or sequence of at most three floats, default=0.0
            The (L2, angle, L1) penalty weights of the basis matrix.
            A single number is interpreted as an L2 penalty.

        beta: float or sequence of at most three floats, optional
            The (L2, angle, L1) penalty weights of the coefficient matrix.

        min_iterations: int, default=100
            The minimum number of iterations to perform by the NMF algorithm

        max_iterations: int, default=1000
            The maximum number of iterations to perform by the NMF algorithm.
            Reaching it is not an error.

        conv_test_freq: int, default=10
            The frequency at which the algorithm is tested for convergence.
            The objective function value is only computed every 'conv_test_freq'
            many iterations.

        tol: float, default=1e-6
            The convergence tolerance. The NMF algorithm is converged
            when the relative change of the objective function is smaller
            than 'tol'.
        """
        value_checker("init_method", init_method, _INIT_METHODS)

        if n_factors < 1:
            raise InvalidConfiguration("The number of factors has to be positive.")

        self.n_factors = n_factors
        self.init_method = init_method
        self.alpha = expand_penalty(alpha)
        self.beta = expand_penalty(beta)
        self.min_iterations = min_iterations
        self.max_iterations = max_iterations
        self.conv_test_freq = conv_test_freq
        self.tol = tol

        # initialize data/fitting dependent attributes
        self.X = np.empty((0, 0))
        self.mask = np.empty((0, 0))
        self._data_with_missing = np.empty((0, 0))
        self.W = np.empty((0, n_factors))
        self.H = np.empty((n_factors, 0))
        self.feature_names: list[str] = []
        self.sample_names: list[str] = []
        self.history: dict[str, Any] = {}

    @property
    @abstractmethod
    def loss(self) -> _Losses:
        """
        The reconstruction loss minimized by the algorithm.
        """

    @property
    def factor_names(self) -> list[str]:
        return make_factor_names(self.n_factors)

    @property
    def loadings(self) -> pd.DataFrame:
        """
        The basis matrix as a dataframe of shape (n_features, n_factors).
        """
        return pd.DataFrame(
            self.W.copy(), index=self.feature_names, columns=self.factor_names
        )

    @property
    def scores(self) -> pd.DataFrame:
        """
        The coefficient matrix as a dataframe of shape (n_factors, n_samples).
        """
        return pd.DataFrame(
            self.H.copy(), index=self.factor_names, columns=self.sample_names
        )

    @property
    def data_reconstructed(self) -> pd.DataFrame:
        return pd.DataFrame(
            self.W @ self.H, index=self.feature_names, columns=self.sample_names
        )

    @property
    @abstractmethod
    def samplewise_reconstruction_error(self) -> pd.Series:
        """
        The reconstruction errors of the observed entries of each sample.
        """

    @property
    def reconstruction_error(self) -> float:
        """
        The total reconstruction error between the observed data and
        the reconstructed data.
        """
        return float(np.sum(self.samplewise_reconstruction_error))

    @abstractmethod
    def objective_function(self) -> float:
        """
        The objective function to be minimized during fitting.
        """

    @abstractmethod
    def _update_parameters(self) -> None:
        """
        Update the basis and coefficient matrices.
        """

    def _setup_data(self, data: np.ndarray | pd.DataFrame | ad.AnnData) -> None:
        """
        Convert the input data to a matrix of shape (n_features, n_samples),
        check for negative entries and mask the missing values.
        """
        X, self.feature_names, self.sample_names = to_feature_matrix(data)
        nonnegativity_checker("data", X)
        missing = np.isnan(X)
        self.mask = np.ascontiguousarray((~missing).astype(float))
        self.X = np.ascontiguousarray(np.where(missing, 0.0, X))

        if not np.any(self.mask):
            raise ValueError("The data does not contain any observed entries.")

        self._data_with_missing = X

    def _initialize(self, init_kwargs: dict[str, Any] | None = None) -> None:
        """
        Initialize the basis and coefficient matrices.

        Input:
        ------
        init_kwargs: dict
            Keyword arguments to be passed to the initialization method.
            Only 'seed' is supported.
        """
        init_kwargs = {} if init_kwargs is None else init_kwargs.copy()
        dict_checker("init_kwargs", init_kwargs, _INIT_KWARGS)
        self.W, self.H = initialize_mat(
            self._data_with_missing, self.n_factors, self.init_method, **init_kwargs
        )

    def fit(
        self,
        data: np.ndarray | pd.DataFrame | ad.AnnData,
        init_kwargs: dict[str, Any] | None = None,
        history: bool = True,
        verbose: Literal[0, 1] = 0,
        verbosity_freq: int = 1000,
    ) -> FactorNMF:
        """
        Fit the basis and coefficient matrices.

        Inputs
        ------
        data: np.ndarray | pd.DataFrame | AnnData
            The non-negative data. A dataframe or array has to be of shape
            (n_features, n_samples), an AnnData object of shape
            (n_samples, n_features). Missing values (NaN) are excluded from
            the objective function.

        init_kwargs: dict, optional
            Keyword arguments to pass to the model parameter initialization, e.g.,
            a seed when a stochastic initialization method is used.

        history: bool, default=True
            If True, the objective function values computed during model training
            will be stored.

        verbose: Literal[0, 1], default=0
            If True, intermediate objective function values obtained during model
            training are printed.

        verbosity_freq: int, default=1000
            The objective function values after every 'verbosity_freq' many
            iterations are printed. Only applies if 'verbose' is set to 1.
        """
        self._setup_data(data)
        self._initialize(init_kwargs)
        of_values = [self.objective_function()]
        n_iteration = 0
        converged = False

        while not converged:
            n_iteration += 1

            if verbose and n_iteration % verbosity_freq == 0:
                print(f"iteration: {n_iteration}; objective: {of_values[-1]:.2f}")

            self._update_parameters()

            if n_iteration % self.conv_test_freq == 0:
                prev_of_value = of_values[-1]
                of_values.append(self.objective_function())
                rel_change_nominator = np.abs(prev_of_value - of_values[-1])
                rel_change = rel_change_nominator / max(np.abs(prev_of_value), EPSILON)
                converged = rel_change < self.tol and n_iteration >= self.min_iterations

            converged |= n_iteration >= self.max_iterations

        self.n_iterations = n_iteration

        if history:
            self.history["objective_function"] = of_values[1:]

        return self

    def project(
        self,
        data: np.ndarray | pd.DataFrame | ad.AnnData,
        alpha: float | Iterable[float] | None = None,
    ) -> pd.DataFrame:
        """
        The coefficients of new data with respect to the fitted basis, using the
        loss function of the model. See 'project' in the projection module.
        """
        X, feature_names, sample_names = to_feature_matrix(data)
        X = align_features(X, feature_names, self.feature_names)
        H = project(
            X,
            self.W,
            loss=self.loss,
            alpha=alpha,
            max_iterations=self.max_iterations,
            conv_test_freq=self.conv_test_freq,
            tol=self.tol,
        )
        return pd.DataFrame(H, index=self.factor_names, columns=sample_names)
