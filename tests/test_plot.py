import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402
import pytest  # noqa: E402

from swne import plot  # noqa: E402


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")


@pytest.fixture
def embedding_df():
    coords = np.array([[0.0, 0.0], [1.0, 0.0], [0.5, 1.0], [0.2, 0.1], [0.6, 0.5]])
    embedding_df = pd.DataFrame(
        coords,
        index=["metagene_1", "metagene_2", "metagene_3", "cell0", "cell1"],
        columns=["x", "y"],
    )
    embedding_df["type"] = 3 * ["factor"] + 2 * ["sample"]
    return embedding_df


def test_history():
    ax = plot.history(np.array([5.0, 3.0, 2.0, 1.5]), conv_test_freq=10)
    xdata = ax.get_lines()[0].get_xdata()
    assert list(xdata) == [10, 20, 30, 40]

    ax = plot.history(np.array([5.0, 3.0, 2.0, 1.5]), conv_test_freq=10, min_iteration=25)
    assert list(ax.get_lines()[0].get_xdata()) == [30, 40]

    with pytest.raises(ValueError):
        plot.history(np.array([5.0, 3.0]), conv_test_freq=10, min_iteration=50)


def test_error_curve():
    errors = pd.DataFrame(
        {"mse": [3.0, 1.0, 1.2], "mkl": [2.0, 0.5, 0.6]},
        index=pd.Index([1, 2, 3], name="k"),
    )
    ax = plot.error_curve(errors, best_k=2)
    assert ax.get_xlabel() == "number of factors"

    ax = plot.error_curve(errors, loss="mse")
    assert ax.get_ylabel() == "held-out mse"


def test_embedding(embedding_df):
    ax = plot.embedding(embedding_df, adjust_annotations=False)
    texts = [text.get_text() for text in ax.texts]
    assert texts == ["metagene_1", "metagene_2", "metagene_3"]


def test_embedding_hue(embedding_df):
    clusters = pd.Series(["a", "b"], index=["cell1", "cell0"])
    ax = plot.embedding(embedding_df, color=clusters, factors_use=["metagene_2"])
    assert [text.get_text() for text in ax.texts] == ["metagene_2"]


def test_embedding_without_factors(embedding_df):
    ax = plot.embedding(embedding_df, show_factors=False)
    assert len(ax.texts) == 0
