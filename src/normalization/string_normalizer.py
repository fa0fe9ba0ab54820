"""String normalization and label similarity for coded-field matching.

Normalization folds case and diacritics so that extracted labels such as
"Salarié Non-Cadre" and "salarie non cadre" compare equal. Similarity is a cheap,
explainable score tailored to the short controlled vocabularies of the pricing
service taxonomies:

- 0.0 when either side normalizes to an empty string
- 1.0 for identical normalized forms
- ``containment_score`` (0.9) when one normalized form contains the other
- otherwise a Dice coefficient over whitespace tokens
"""

from __future__ import annotations

import re
import unicodedata
from collections import Counter
from typing import List, Sequence

from pydantic import BaseModel, ConfigDict

from src.utils.config import NormalizationConfig

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


class NormalizationResult(BaseModel):
    """Result of a normalization call."""

    model_config = ConfigDict(frozen=True)

    original: str
    normalized: str

    @property
    def tokens(self) -> List[str]:
        return self.normalized.split() if self.normalized else []


def normalize(text: object | None) -> str:
    """Return the canonical comparison form of ``text``.

    Lower-cases, strips diacritics (NFD decomposition, combining marks dropped),
    collapses every run of characters outside ``[a-z0-9]`` into one space and trims.
    """
    if text is None:
        return ""
    working = str(text).lower()
    if not working.strip():
        return ""
    decomposed = unicodedata.normalize("NFD", working)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_ALNUM_RE.sub(" ", stripped).strip()


def similarity(a: object | None, b: object | None, *, containment_score: float = 0.9) -> float:
    """Score two free-text labels between 0 and 1."""
    left = normalize(a)
    right = normalize(b)

    if not left or not right:
        return 0.0
    if left == right:
        return 1.0
    if left in right or right in left:
        return containment_score

    left_tokens = left.split()
    right_tokens = right.split()
    common = sum((Counter(left_tokens) & Counter(right_tokens)).values())
    return (2 * common) / (len(left_tokens) + len(right_tokens))


class StringNormalizer:
    """Configured entry point for normalization and similarity scoring."""

    def __init__(self, config: NormalizationConfig | None = None) -> None:
        self.config = config or NormalizationConfig()

    def normalize(self, text: object | None) -> NormalizationResult:
        """Normalize a single string."""
        original = "" if text is None else str(text)
        return NormalizationResult(original=original, normalized=normalize(text))

    def normalize_batch(self, texts: Sequence[object | None]) -> List[NormalizationResult]:
        """Normalize a batch of strings."""
        return [self.normalize(text) for text in texts]

    def similarity(self, a: object | None, b: object | None) -> float:
        return similarity(a, b, containment_score=self.config.containment_score)

    def equivalent(self, a: object | None, b: object | None) -> bool:
        """True when both values normalize to the same non-empty form."""
        left = normalize(a)
        return bool(left) and left == normalize(b)
