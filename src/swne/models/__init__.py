"""
A collection of NMF algorithms
"""

from .factor_nmf import FactorNMF
from .klnmf import KLNMF
from .msenmf import MSENMF
from .projection import project

LOSS_MODELS: dict[str, type[FactorNMF]] = {
    "mse": MSENMF,
    "mkl": KLNMF,
}

__all__ = [
    "FactorNMF",
    "KLNMF",
    "LOSS_MODELS",
    "MSENMF",
    "project",
]
