from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable

import matplotlib as mpl
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from adjustText import adjust_text
from matplotlib.axes import Axes

from .utils import type_checker

if TYPE_CHECKING:
    from matplotlib.typing import ColorType


def set_swne_style():
    sns.set_context("notebook")
    sns.set_style("ticks")
    params = {
        "axes.edgecolor": "black",
        "axes.labelsize": "medium",
        "axes.spines.top": False,
        "axes.spines.right": False,
        "axes.titlesize": "large",
        "font.family": "DejaVu Sans",
        "legend.fontsize": "medium",
        "pdf.fonttype": 42,
        "xtick.labelsize": "small",
        "ytick.labelsize": "small",
    }
    mpl.rcParams.update(params)


def history(
    values: np.ndarray,
    conv_test_freq: int,
    min_iteration: int = 0,
    ax: Axes | None = None,
    **kwargs,
) -> Axes:
    """
    Plot the objective function values stored in the history of an NMF model.
    """
    values = np.asarray(values)
    ns_iteration = np.arange(1, len(values) + 1) * conv_test_freq

    if len(values) == 0 or min_iteration > ns_iteration[-1]:
        raise ValueError(
            "The smallest iteration number shown in the history plot "
            "cannot be larger than the total number of iterations."
        )
    if ax is None:
        _, ax = plt.subplots(figsize=(4, 4))

    ax.set(xlabel="n_iteration", ylabel="objective function value")
    shown = ns_iteration >= min_iteration
    ax.plot(ns_iteration[shown], values[shown], **kwargs)
    return ax


def error_curve(
    errors: pd.DataFrame,
    loss: str | None = None,
    best_k: int | None = None,
    ax: Axes | None = None,
    **kwargs,
) -> Axes:
    """
    Plot the held-out reconstruction errors against the number of factors.

    Inputs
    ------
    errors: pd.DataFrame
        The error curve computed by 'find_components', indexed by the number
        of factors, with the columns 'mse' and 'mkl'.

    loss: str, optional
        Only plot the errors of this loss. By default, both errors are plotted,
        each scaled to its maximum.

    best_k: int, optional
        Highlight this number of factors.
    """
    type_checker("errors", errors, pd.DataFrame)

    if ax is None:
        _, ax = plt.subplots(figsize=(4, 4))

    if loss is None:
        plot_data = errors / errors.max()
        ylabel = "scaled held-out error"
    else:
        plot_data = errors[[loss]]
        ylabel = f"held-out {loss}"

    plot_data = plot_data.rename_axis("k").reset_index().melt(
        id_vars="k", var_name="error", value_name="value"
    )
    sns.lineplot(
        data=plot_data, x="k", y="value", hue="error", marker="o", ax=ax, **kwargs
    )

    if best_k is not None:
        ax.axvline(x=best_k, color="black", linestyle="dashed", linewidth=1)

    ax.set(xlabel="number of factors", ylabel=ylabel)
    return ax


def _annotate_plot(
    ax: Axes,
    data: np.ndarray,
    annotations: Iterable[str],
    fontsize: float | str = "medium",
    color: ColorType = "black",
    adjust_annotations: bool = True,
    adjust_kwargs: dict[str, Any] | None = None,
    **kwargs,
) -> None:
    texts = [
        ax.text(
            data_point[0],
            data_point[1],
            annotation,
            fontsize=fontsize,
            color=color,
            **kwargs,
        )
        for data_point, annotation in zip(data, annotations)
    ]
    if adjust_annotations and texts:
        adjust_kwargs = {} if adjust_kwargs is None else adjust_kwargs.copy()
        adjust_text(texts, ax=ax, **adjust_kwargs)


def embedding(
    embedding_df: pd.DataFrame,
    color: Iterable[ColorType] | pd.Series | None = None,
    show_factors: bool = True,
    factors_use: Iterable[str] | None = None,
    sample_size: float = 10,
    factor_size: float = 60,
    annotate_factors: bool = True,
    annotation_kwargs: dict[str, Any] | None = None,
    adjust_annotations: bool = True,
    adjust_kwargs: dict[str, Any] | None = None,
    ax: Axes | None = None,
    **kwargs,
) -> Axes:
    """
    Scatterplot of a two-dimensional embedding of factors and samples.

    Inputs
    ------
    embedding_df: pd.DataFrame
        The 'embedding' of a fitted SimilarityEmbedder, i.e. the columns
        'x', 'y' and 'type' indexed by the factor and sample names.

    color: Iterable | pd.Series, optional
        The sample colors. A series is matched to the samples by name and
        interpreted as the hue, e.g. cluster labels.

    show_factors: bool, default=True
        Whether to plot the factors.

    factors_use: Iterable[str], optional
        Only show these factors.
    """
    type_checker("embedding_df", embedding_df, pd.DataFrame)

    if ax is None:
        _, ax = plt.subplots(figsize=(5, 5))

    samples = embedding_df[embedding_df["type"] == "sample"]
    factors = embedding_df[embedding_df["type"] == "factor"]

    if factors_use is not None:
        factors = factors.loc[list(factors_use)]

    if type(color) is pd.Series:
        sns.scatterplot(
            x=samples["x"],
            y=samples["y"],
            hue=color.loc[samples.index].to_numpy(),
            s=sample_size,
            linewidth=0,
            ax=ax,
            **kwargs,
        )
    else:
        sns.scatterplot(
            x=samples["x"],
            y=samples["y"],
            color=None if color is None else list(color),
            s=sample_size,
            linewidth=0,
            ax=ax,
            **kwargs,
        )

    if show_factors:
        ax.scatter(
            factors["x"], factors["y"], s=factor_size, color="black", zorder=3
        )

        if annotate_factors:
            annotation_kwargs = (
                {} if annotation_kwargs is None else annotation_kwargs.copy()
            )
            _annotate_plot(
                ax,
                factors[["x", "y"]].to_numpy(),
                factors.index,
                adjust_annotations=adjust_annotations,
                adjust_kwargs=adjust_kwargs,
                **annotation_kwargs,
            )

    ax.set(xlabel="", ylabel="", xticks=[], yticks=[])
    return ax
