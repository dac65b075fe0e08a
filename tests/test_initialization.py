import numpy as np
import pytest

from swne.initialization import initialize
from swne.initialization.methods import floor_and_fill
from swne.utils import InvalidConfiguration, NegativeInputError

METHODS = ["ica", "nnsvd", "random"]
N_FACTORS = 3
SEED = 1


@pytest.fixture
def data_mat():
    rng = np.random.default_rng(0)
    W = rng.gamma(1.0, size=(20, N_FACTORS))
    H = rng.gamma(1.0, size=(N_FACTORS, 15))
    return W @ H


@pytest.mark.parametrize("method", METHODS)
class TestInitializeMat:
    def test_shapes(self, data_mat, method):
        basis_mat, coefficient_mat = initialize.initialize_mat(
            data_mat, N_FACTORS, method, seed=SEED
        )
        assert basis_mat.shape == (20, N_FACTORS)
        assert coefficient_mat.shape == (N_FACTORS, 15)

    def test_strictly_positive(self, data_mat, method):
        basis_mat, coefficient_mat = initialize.initialize_mat(
            data_mat, N_FACTORS, method, seed=SEED
        )
        assert np.all(basis_mat > 0)
        assert np.all(coefficient_mat > 0)

    def test_reproducible(self, data_mat, method):
        W1, H1 = initialize.initialize_mat(data_mat, N_FACTORS, method, seed=SEED)
        W2, H2 = initialize.initialize_mat(data_mat, N_FACTORS, method, seed=SEED)
        assert np.array_equal(W1, W2)
        assert np.array_equal(H1, H2)

    def test_missing_values(self, data_mat, method):
        data_mat[0, 0] = np.nan
        basis_mat, coefficient_mat = initialize.initialize_mat(
            data_mat, N_FACTORS, method, seed=SEED
        )
        assert np.all(np.isfinite(basis_mat))
        assert np.all(np.isfinite(coefficient_mat))

    def test_negative_input(self, data_mat, method):
        data_mat[1, 2] = -1.0
        with pytest.raises(NegativeInputError):
            initialize.initialize_mat(data_mat, N_FACTORS, method, seed=SEED)


def test_nnsvd_first_factor_close_to_rank_one(data_mat):
    basis_mat, coefficient_mat = initialize.initialize_mat(data_mat, 1, "nnsvd")
    # the leading singular triplet of a positive matrix is the best rank one fit
    U, S, Vt = np.linalg.svd(data_mat)
    best_rank_one = S[0] * np.outer(U[:, 0], Vt[0, :])
    assert np.allclose(basis_mat @ coefficient_mat, best_rank_one)


def test_random_scale(data_mat):
    basis_mat, coefficient_mat = initialize.initialize_mat(
        data_mat, N_FACTORS, "random", seed=SEED
    )
    ratio = np.mean(basis_mat @ coefficient_mat) / np.mean(data_mat)
    assert 0.1 < ratio < 10


def test_invalid_method(data_mat):
    with pytest.raises(InvalidConfiguration):
        initialize.initialize_mat(data_mat, N_FACTORS, "flat")


def test_too_many_factors(data_mat):
    with pytest.raises(InvalidConfiguration):
        initialize.initialize_mat(data_mat, 16, "nnsvd")


def test_floor_and_fill():
    rng = np.random.default_rng(SEED)
    mat = np.array([[1e-12, 2.0], [0.0, 3.0]])
    result = floor_and_fill(mat, data_mean=100.0, rng=rng)
    assert np.array_equal(result[:, 1], [2.0, 3.0])
    assert np.all(result[:, 0] >= 0)
    assert np.all(result[:, 0] <= 1.0)
