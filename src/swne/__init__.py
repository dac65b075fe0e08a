"""
SWNE: similarity weighted non-negative embedding
================================================
"""

from . import models
from . import plot as pl
from . import tools as tl
from .embedding import SimilarityEmbedder

__version__ = "0.1.0"

pl.set_swne_style()

__all__ = [
    "__version__",
    "models",
    "pl",
    "tl",
    "SimilarityEmbedder",
]
