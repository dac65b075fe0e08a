import numpy as np
import pytest

from swne.models.projection import align_features, project
from swne.utils import DimensionMismatch, InvalidConfiguration, NegativeInputError


@pytest.fixture
def basis_mat():
    rng = np.random.default_rng(2)
    return rng.gamma(1.0, size=(25, 3))


@pytest.fixture
def coefficient_mat():
    rng = np.random.default_rng(3)
    return rng.gamma(1.0, size=(3, 10))


@pytest.fixture
def data_mat(basis_mat, coefficient_mat):
    return basis_mat @ coefficient_mat


@pytest.mark.parametrize("loss", ["mse", "mkl"])
def test_recover_coefficients(data_mat, basis_mat, coefficient_mat, loss):
    H = project(data_mat, basis_mat, loss=loss, max_iterations=5000, tol=1e-12)
    assert H.shape == coefficient_mat.shape
    assert np.all(H >= 0)
    assert np.allclose(H, coefficient_mat, rtol=5e-2, atol=5e-2)


def test_missing_values(data_mat, basis_mat, coefficient_mat):
    data_mat[0, 0] = np.nan
    data_mat[4, 7] = np.nan
    H = project(data_mat, basis_mat, loss="mse")
    assert np.allclose(H, coefficient_mat)


def test_l2_penalty_shrinks(data_mat, basis_mat):
    H = project(data_mat, basis_mat, loss="mse")
    H_penalized = project(data_mat, basis_mat, loss="mse", alpha=100.0)
    assert np.sum(H_penalized) < np.sum(H)


def test_l1_penalty_uses_updates(data_mat, basis_mat):
    H = project(data_mat, basis_mat, loss="mse", alpha=(0, 0, 1.0))
    assert H.shape == (3, 10)
    assert np.all(H >= 0)


def test_init(data_mat, basis_mat, coefficient_mat):
    H = project(data_mat, basis_mat, loss="mkl", init=coefficient_mat)
    assert np.allclose(H, coefficient_mat, rtol=1e-3)

    with pytest.raises(DimensionMismatch):
        project(data_mat, basis_mat, loss="mkl", init=coefficient_mat[:, :5])


def test_invalid_inputs(data_mat, basis_mat):
    with pytest.raises(InvalidConfiguration):
        project(data_mat, basis_mat, loss="poisson")

    with pytest.raises(DimensionMismatch):
        project(data_mat[:-1, :], basis_mat)

    with pytest.raises(NegativeInputError):
        project(-data_mat, basis_mat)


def test_align_features():
    data_mat = np.arange(6).reshape((3, 2))
    aligned = align_features(data_mat, ["b", "c", "a"], ["a", "b", "c"])
    assert np.array_equal(aligned, data_mat[[2, 0, 1], :])

    with pytest.raises(DimensionMismatch):
        align_features(data_mat, ["b", "c", "d"], ["a", "b", "c"])
