"""Normalization package."""

from src.normalization.code_mapper import CodeMapper, CodeMatch, CodeResolution, CodeStatus
from src.normalization.string_normalizer import (
    NormalizationResult,
    StringNormalizer,
    normalize,
    similarity,
)
from src.normalization.taxonomies import Taxonomy, TaxonomyEntry, TaxonomyRegistry

__all__ = [
    "CodeMapper",
    "CodeMatch",
    "CodeResolution",
    "CodeStatus",
    "NormalizationResult",
    "StringNormalizer",
    "Taxonomy",
    "TaxonomyEntry",
    "TaxonomyRegistry",
    "normalize",
    "similarity",
]
