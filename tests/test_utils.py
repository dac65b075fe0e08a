import numpy as np
import pandas as pd
import pytest
from anndata import AnnData

from swne.utils import (
    DimensionMismatch,
    InvalidConfiguration,
    NegativeInputError,
    euclidean_norm,
    expand_penalty,
    kl_divergence,
    make_factor_names,
    negative_part,
    nonnegativity_checker,
    positive_part,
    to_feature_matrix,
    value_checker,
)


def test_kl_divergence_identical():
    x = np.array([[0.0, 1.0], [2.0, 5.0]])
    assert np.allclose(kl_divergence(x, x), 0.0)


def test_kl_divergence_values():
    result = kl_divergence(np.array([2.0]), np.array([1.0]), pseudocount=0)
    assert np.isclose(result[0], 2 * np.log(2) - 2 + 1)

    # zero entries are handled by the pseudocount
    result = kl_divergence(np.array([0.0]), np.array([3.0]))
    assert np.isclose(result[0], 3.0)


def test_kl_divergence_shape_mismatch():
    with pytest.raises(DimensionMismatch):
        kl_divergence(np.ones(3), np.ones(4))


def test_positive_negative_part():
    x = np.array([-2.0, 0.0, 3.0])
    assert np.array_equal(positive_part(x), [0.0, 0.0, 3.0])
    assert np.array_equal(negative_part(x), [2.0, 0.0, 0.0])
    assert np.array_equal(positive_part(x) - negative_part(x), x)


def test_euclidean_norm():
    assert euclidean_norm(np.array([3.0, 4.0])) == 5.0
    assert euclidean_norm(np.zeros(3)) == 0.0


@pytest.mark.parametrize(
    "alpha,expected",
    [
        (None, [0.0, 0.0, 0.0]),
        (0.5, [0.5, 0.0, 0.0]),
        ((0.1, 0.2), [0.1, 0.2, 0.0]),
        ([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]),
    ],
)
def test_expand_penalty(alpha, expected):
    assert np.array_equal(expand_penalty(alpha), expected)


@pytest.mark.parametrize("alpha", [(1.0, 2.0, 3.0, 4.0), -1.0])
def test_expand_penalty_invalid(alpha):
    with pytest.raises(InvalidConfiguration):
        expand_penalty(alpha)


def test_nonnegativity_checker_ignores_missing():
    nonnegativity_checker("data", np.array([[1.0, np.nan], [0.0, 2.0]]))

    with pytest.raises(NegativeInputError):
        nonnegativity_checker("data", np.array([[1.0, -1.0]]))


def test_error_types_are_value_errors():
    with pytest.raises(ValueError):
        value_checker("loss", "poisson", ["mse", "mkl"])


class TestToFeatureMatrix:
    @pytest.fixture
    def values(self):
        return np.arange(6, dtype=float).reshape((2, 3))

    def test_ndarray(self, values):
        X, feature_names, sample_names = to_feature_matrix(values)
        assert np.array_equal(X, values)
        assert feature_names == ["feature_1", "feature_2"]
        assert sample_names == ["sample_1", "sample_2", "sample_3"]

    def test_dataframe(self, values):
        data = pd.DataFrame(values, index=["g1", "g2"], columns=["a", "b", "c"])
        X, feature_names, sample_names = to_feature_matrix(data)
        assert np.array_equal(X, values)
        assert feature_names == ["g1", "g2"]
        assert sample_names == ["a", "b", "c"]

    def test_anndata(self, values):
        adata = AnnData(
            values.T,
            obs=pd.DataFrame(index=["a", "b", "c"]),
            var=pd.DataFrame(index=["g1", "g2"]),
        )
        X, feature_names, sample_names = to_feature_matrix(adata)
        assert np.array_equal(X, values)
        assert feature_names == ["g1", "g2"]
        assert sample_names == ["a", "b", "c"]

    def test_invalid_type(self, values):
        with pytest.raises(TypeError):
            to_feature_matrix(values.tolist())


def test_make_factor_names():
    assert make_factor_names(3) == ["metagene_1", "metagene_2", "metagene_3"]
