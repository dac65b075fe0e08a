import numpy as np
import pandas as pd
import pytest

from swne import tools
from swne.utils import DimensionMismatch, InvalidConfiguration, NegativeInputError

SEED = 42


@pytest.fixture
def data():
    rng = np.random.default_rng(0)
    W = rng.gamma(1.0, size=(20, 2))
    H = rng.gamma(1.0, size=(2, 30))
    features = [f"gene{i}" for i in range(20)]
    samples = [f"cell{j}" for j in range(30)]
    return pd.DataFrame(W @ H, index=features, columns=samples)


@pytest.fixture
def data_rank3():
    rng = np.random.default_rng(1)
    W = rng.gamma(0.5, size=(50, 3))
    H = rng.gamma(0.5, size=(3, 50))
    noise = rng.uniform(0, 0.01, size=(50, 50))
    return W @ H + noise


class TestRunNMF:
    def test_output(self, data):
        loadings, scores = tools.run_nmf(
            data, 2, n_rand_init=2, seed=SEED, max_iterations=200
        )
        assert loadings.shape == (20, 2)
        assert scores.shape == (2, 30)
        assert list(loadings.columns) == ["metagene_1", "metagene_2"]
        assert list(scores.columns) == list(data.columns)

    def test_reproducible(self, data):
        loadings1, scores1 = tools.run_nmf(data, 2, seed=SEED, max_iterations=100)
        loadings2, scores2 = tools.run_nmf(data, 2, seed=SEED, max_iterations=100)
        assert np.array_equal(loadings1.values, loadings2.values)
        assert np.array_equal(scores1.values, scores2.values)

    def test_best_restart(self, data):
        model = tools.fit_nmf(data, 2, n_rand_init=3, seed=SEED, max_iterations=50)
        seeds = tools._spawn_seeds(SEED, 3)
        objectives = [
            tools._fit_single_nmf(
                data, 2, "mse", "random", 0.0, s, {"max_iterations": 50}
            ).objective_function()
            for s in seeds
        ]
        assert np.isclose(model.objective_function(), min(objectives))

    @pytest.mark.parametrize("init", ["ica", "nnsvd"])
    def test_deterministic_init(self, data, init):
        loadings, scores = tools.run_nmf(
            data, 2, init=init, loss="mkl", max_iterations=100
        )
        assert np.all(loadings.values >= 0)
        assert np.all(scores.values >= 0)

    def test_invalid_inputs(self, data):
        with pytest.raises(InvalidConfiguration):
            tools.run_nmf(data, 2, loss="poisson")

        with pytest.raises(InvalidConfiguration):
            tools.run_nmf(data, 2, init="flat")

        with pytest.raises(NegativeInputError):
            tools.run_nmf(-data, 2)


class TestFindComponents:
    def test_reproducible(self, data):
        kwargs = {"k_range": range(1, 6), "seed": SEED, "max_iterations": 200}
        errors1, best_k1 = tools.find_components(data, **kwargs)
        errors2, best_k2 = tools.find_components(data, **kwargs)
        assert np.array_equal(errors1.values, errors2.values)
        assert best_k1 == best_k2

    def test_output(self, data):
        errors, best_k = tools.find_components(
            data, k_range=[1, 2, 3], seed=SEED, max_iterations=100
        )
        assert list(errors.index) == [1, 2, 3]
        assert errors.index.name == "k"
        assert list(errors.columns) == ["mse", "mkl"]
        assert np.all(np.isfinite(errors.values))
        assert best_k == errors["mse"].idxmin()

    def test_selection_by_loss(self, data):
        errors, best_k = tools.find_components(
            data, k_range=[1, 2, 3], loss="mkl", seed=SEED, max_iterations=100
        )
        assert best_k == errors["mkl"].idxmin()

    def test_rank3(self, data_rank3):
        errors, best_k = tools.find_components(
            data_rank3, k_range=range(1, 11), seed=SEED, n_jobs=2
        )
        assert best_k in (3, 4)
        assert errors.loc[3, "mse"] < 0.5 * errors.loc[1, "mse"]
        assert errors.loc[3, "mse"] <= errors.loc[10, "mse"]

    def test_invalid_inputs(self, data):
        with pytest.raises(InvalidConfiguration):
            tools.find_components(data, na_frac=1.0)

        with pytest.raises(InvalidConfiguration):
            tools.find_components(data, k_range=[])

        with pytest.raises(InvalidConfiguration):
            tools.find_components(data, loss="poisson")


class TestProjectNMF:
    @pytest.fixture
    def loadings(self, data):
        loadings, _ = tools.run_nmf(data, 2, seed=SEED, max_iterations=200)
        return loadings

    def test_labelled(self, data, loadings):
        scores = tools.project_nmf(data, loadings, loss="mse")
        assert list(scores.index) == ["metagene_1", "metagene_2"]
        assert list(scores.columns) == list(data.columns)

        scores_shuffled = tools.project_nmf(data.iloc[::-1, :], loadings, loss="mse")
        assert np.allclose(scores.values, scores_shuffled.values)

    def test_unlabelled(self, data, loadings):
        scores = tools.project_nmf(data.values, loadings.values, loss="mkl")
        assert scores.shape == (2, 30)
        assert np.all(scores.values >= 0)

    def test_feature_mismatch(self, data, loadings):
        with pytest.raises(DimensionMismatch):
            tools.project_nmf(data.iloc[:-1, :], loadings)

        with pytest.raises(DimensionMismatch):
            tools.project_nmf(data.values[:-1, :], loadings.values)


def test_embed(data):
    _, scores = tools.run_nmf(data, 2, seed=SEED, max_iterations=100)
    similarity = np.corrcoef(data.values.T).clip(0)
    embedding = tools.embed(scores, similarity)
    assert list(embedding.columns) == ["x", "y", "type"]
    assert np.sum(embedding["type"] == "factor") == 2
    assert np.sum(embedding["type"] == "sample") == 30


class TestInformationCoefficient:
    @pytest.fixture
    def x(self):
        rng = np.random.default_rng(SEED)
        return rng.normal(size=200)

    def test_positive_association(self, x):
        rng = np.random.default_rng(0)
        y = x + 0.1 * rng.normal(size=200)
        assert tools.information_coefficient(x, y, seed=SEED) > 0.5

    def test_negative_association(self, x):
        rng = np.random.default_rng(0)
        y = -x + 0.1 * rng.normal(size=200)
        assert tools.information_coefficient(x, y, seed=SEED) < -0.5

    def test_range(self, x):
        rng = np.random.default_rng(0)
        ic = tools.information_coefficient(x, rng.normal(size=200), seed=SEED)
        assert -1 <= ic <= 1

    def test_degenerate(self):
        x = np.array([1.0, np.nan, 2.0, np.nan])
        y = np.array([np.nan, 1.0, 2.0, 3.0])
        assert tools.information_coefficient(x, y) == 0.0
        assert tools.information_coefficient(np.ones(2), np.ones(2)) == 0.0


class TestFactorAssociation:
    @pytest.fixture
    def scores(self):
        rng = np.random.default_rng(SEED)
        samples = [f"cell{j}" for j in range(40)]
        return pd.DataFrame(
            rng.gamma(1.0, size=(2, 40)),
            index=["metagene_1", "metagene_2"],
            columns=samples,
        )

    @pytest.fixture
    def features(self, scores):
        rng = np.random.default_rng(0)
        values = np.vstack(
            [
                scores.iloc[0].values,
                2 * scores.iloc[1].values + 1,
                rng.uniform(size=40),
            ]
        )
        return pd.DataFrame(values, index=["a", "b", "c"], columns=scores.columns)

    @pytest.mark.parametrize("metric", ["pearson", "spearman"])
    def test_correlation(self, features, scores, metric):
        associations = tools.factor_association(features, scores, metric=metric)
        assert associations.shape == (3, 2)
        assert list(associations.columns) == ["metagene_1", "metagene_2"]
        assert np.isclose(associations.loc["a", "metagene_1"], 1.0)
        assert np.isclose(associations.loc["b", "metagene_2"], 1.0)

    def test_information_coefficient(self, features, scores):
        associations = tools.factor_association(features, scores, seed=SEED)
        assert associations.shape == (3, 2)
        assert associations.loc["a", "metagene_1"] > associations.loc["c", "metagene_1"]

    def test_sample_order(self, features, scores):
        associations = tools.factor_association(features, scores, metric="pearson")
        associations_shuffled = tools.factor_association(
            features.iloc[:, ::-1], scores, metric="pearson"
        )
        assert np.allclose(associations.values, associations_shuffled.values)

    def test_constant_feature(self, features, scores):
        features.iloc[2, :] = 1.0
        associations = tools.factor_association(features, scores, metric="pearson")
        assert np.all(associations.loc["c"] == 0)

    def test_sample_mismatch(self, features, scores):
        with pytest.raises(DimensionMismatch):
            tools.factor_association(features.iloc[:, 1:], scores)

    def test_summarize(self, features, scores):
        associations = tools.factor_association(features, scores, metric="pearson")
        summary = tools.summarize_assoc_features(associations, features_return=2)
        assert list(summary.columns) == ["assoc_score", "feature", "factor"]
        assert len(summary) == 4
        top = summary[summary["factor"] == "metagene_1"].iloc[0]
        assert top["feature"] == "a"

        summary = tools.summarize_assoc_features(
            associations, features_return=5, features_use=["b", "c"]
        )
        assert set(summary["feature"]) == {"b", "c"}
