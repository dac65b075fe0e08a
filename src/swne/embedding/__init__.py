"""
Two-dimensional embedding of NMF factors and samples
"""

from .embedder import SimilarityEmbedder

__all__ = ["SimilarityEmbedder"]
