from __future__ import annotations

from typing import Any, Iterable

import anndata as ad
import numpy as np
import pandas as pd

EPSILON = np.finfo(np.float32).eps


class InvalidConfiguration(ValueError):
    """
    An unrecognized configuration value, e.g. an unknown initialization
    method or loss function.
    """


class DimensionMismatch(ValueError):
    """
    Matrices whose shapes or labels do not line up.
    """


class NegativeInputError(ValueError):
    """
    A matrix that has to be non-negative contains negative entries.
    """


def dict_checker(
    dict_name: str, dictionary: dict[Any, Any], valid_keys: list[Any]
) -> None:
    """
    A helper function to test the keys of a dictionary.

    Input:
    ------
    dict_name: str
        The name of the dictionary

    dictionary: dict[Any, Any]

    valid_keys: list[Any]
        The allowed keys of 'dictionary'
    """
    type_checker(dict_name, dictionary, dict)

    for key in dictionary.keys():
        if key not in valid_keys:
            raise InvalidConfiguration(
                f"'{dict_name}' includes keys outside of {valid_keys}."
            )


def shape_checker(
    arg_name: str, arg: np.ndarray | pd.DataFrame, allowed_shape: tuple[int, ...]
) -> None:
    """
    A helper function to test the shape of a numpy ndarray or pandas dataframe.

    Input:
    ------
    arg_name: str
        The name of the argument
    arg:
        The actual value of the argument
    allowed_shape:
        The expected shape of 'arg'
    """
    type_checker(arg_name, arg, [np.ndarray, pd.DataFrame])

    if arg.shape != allowed_shape:
        raise DimensionMismatch(f"The shape of '{arg_name}' has to be {allowed_shape}.")


def type_checker(arg_name: str, arg: Any, allowed_types: type | Iterable[type]) -> None:
    """
    A helper function to test the type of an argument.

    Input:
    ------
    arg_name: str
        The name of the argument
    arg:
        The actual value of the argument
    allowed_types: a type or list of types
        The type or list of types allowed for 'arg'
    """
    if isinstance(allowed_types, type):
        allowed_types = [allowed_types]

    if type(arg) not in allowed_types:
        raise TypeError(f"The type of '{arg_name}' has to be one of {allowed_types}.")


def value_checker(arg_name: str, arg: Any, allowed_values: Iterable[Any]) -> None:
    """
    A helper function to test the value of an argument.

    Input:
    ------
    arg_name: str
        The name of the argument
    arg:
        The actual value of the argument
    allowed_values:
        A value or list of values allowed for 'arg'
    """
    if isinstance(allowed_values, type):
        allowed_values = [allowed_values]

    if arg not in allowed_values:
        raise InvalidConfiguration(
            f"The value of '{arg_name}' has to be one of {allowed_values}."
        )


def nonnegativity_checker(arg_name: str, arg: np.ndarray | pd.DataFrame) -> None:
    """
    A helper function to test that a matrix has no negative entries.
    Missing values (NaN) are ignored.
    """
    values = np.asarray(arg, dtype=float)

    if np.any(values[~np.isnan(values)] < 0):
        raise NegativeInputError(f"'{arg_name}' contains negative values.")


def kl_divergence(
    x: float | np.ndarray, y: float | np.ndarray, pseudocount: float = 1e-12
) -> float | np.ndarray:
    """
    The elementwise generalized Kullback-Leibler divergence
        x * ln(x / y) - x + y
    with a pseudocount added to both arguments.
    """
    x = np.asarray(x, dtype=float) + pseudocount
    y = np.asarray(y, dtype=float) + pseudocount

    if x.shape != y.shape:
        raise DimensionMismatch(
            f"The shapes {x.shape} and {y.shape} of 'x' and 'y' do not match."
        )

    return x * np.log(x / y) - x + y


def positive_part(x: np.ndarray) -> np.ndarray:
    return np.maximum(x, 0.0)


def negative_part(x: np.ndarray) -> np.ndarray:
    return np.maximum(-x, 0.0)


def euclidean_norm(x: np.ndarray) -> float:
    return float(np.sqrt(np.sum(np.asarray(x) ** 2)))


def expand_penalty(alpha: float | Iterable[float] | None) -> np.ndarray:
    """
    Expand a regularization parameter to the penalty vector
    (L2, angle, L1). A scalar is interpreted as an L2 penalty, shorter
    sequences are padded with zeros.
    """
    if alpha is None:
        return np.zeros(3)

    penalty = np.atleast_1d(np.asarray(alpha, dtype=float))

    if penalty.ndim != 1 or len(penalty) > 3:
        raise InvalidConfiguration(
            "A regularization parameter has to be a scalar or at most three numbers."
        )
    if np.any(penalty < 0):
        raise InvalidConfiguration("Regularization parameters have to be non-negative.")

    return np.concatenate([penalty, np.zeros(3 - len(penalty))])


def to_feature_matrix(
    data: np.ndarray | pd.DataFrame | ad.AnnData,
) -> tuple[np.ndarray, list[str], list[str]]:
    """
    Convert the input data to a float matrix of shape (n_features, n_samples)
    together with the feature and sample names.

    A dataframe is expected to have the features as rows and the samples
    as columns. An AnnData object follows the usual convention of having
    the samples as observations and the features as variables.
    """
    type_checker("data", data, [np.ndarray, pd.DataFrame, ad.AnnData])

    if type(data) is ad.AnnData:
        values = data.X.toarray() if hasattr(data.X, "toarray") else data.X
        X = np.array(values, dtype=float).T
        feature_names = list(data.var_names)
        sample_names = list(data.obs_names)

    elif type(data) is pd.DataFrame:
        X = data.to_numpy(dtype=float)
        feature_names = [str(name) for name in data.index]
        sample_names = [str(name) for name in data.columns]

    else:
        if data.ndim != 2:
            raise DimensionMismatch("The data has to be a two-dimensional matrix.")
        X = np.array(data, dtype=float)
        feature_names = [f"feature_{i + 1}" for i in range(X.shape[0])]
        sample_names = [f"sample_{j + 1}" for j in range(X.shape[1])]

    return np.ascontiguousarray(X), feature_names, sample_names


def make_factor_names(n_factors: int) -> list[str]:
    return [f"metagene_{k + 1}" for k in range(n_factors)]
