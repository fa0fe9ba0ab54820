"""Map free-text labels to Exade taxonomy codes.

Every label of every entry in the requested taxonomy is scored with
:func:`similarity`; the best entry wins when its score reaches the acceptance
threshold (0.5 by default). Entries are visited in declaration order and only a
strictly better score replaces the current best, so a tie keeps the first entry.
Tied codes are still reported on the match for reviewers.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Tuple

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from src.normalization.string_normalizer import StringNormalizer, normalize
from src.normalization.taxonomies import Taxonomy, TaxonomyEntry, TaxonomyRegistry
from src.utils.config import NormalizationConfig


class CodeStatus(str, Enum):
    """Outcome of resolving a coded field."""

    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"


class CodeMatch(BaseModel):
    """Best taxonomy entry for a free-text label."""

    model_config = ConfigDict(frozen=True)

    taxonomy: str
    code: int
    name: str
    matched_label: str
    score: float
    tied_codes: Tuple[int, ...] = Field(default_factory=tuple)

    @property
    def is_tie(self) -> bool:
        return bool(self.tied_codes)


class CodeResolution(BaseModel):
    """Coded value carried through consolidation and comparison.

    A field with no data at all is ``None``; a resolution with
    ``status=UNRESOLVED`` means text was present but could not be mapped.
    """

    model_config = ConfigDict(frozen=True)

    taxonomy: str
    status: CodeStatus
    raw_text: str
    code: int | None = None
    name: str | None = None
    matched_label: str | None = None
    score: float = 0.0
    tied_codes: Tuple[int, ...] = Field(default_factory=tuple)

    @property
    def is_resolved(self) -> bool:
        return self.status is CodeStatus.RESOLVED

    def __str__(self) -> str:
        if self.is_resolved:
            return f"{self.name} ({self.code})"
        return f"{self.raw_text} (non reconnu)"


class CodeMapper:
    """Best-match-above-threshold mapping against a shared taxonomy registry."""

    def __init__(
        self,
        registry: TaxonomyRegistry | None = None,
        config: NormalizationConfig | None = None,
        normalizer: StringNormalizer | None = None,
    ) -> None:
        self.config = config or NormalizationConfig()
        self.registry = registry or TaxonomyRegistry.default()
        self.normalizer = normalizer or StringNormalizer(config=self.config)

    @property
    def threshold(self) -> float:
        return self.config.acceptance_threshold

    def map_to_code(self, taxonomy_name: str, free_text: str | None) -> CodeMatch | None:
        """Return the best entry for ``free_text`` or None when nothing reaches the threshold."""
        taxonomy = self.registry[taxonomy_name]
        if not normalize(free_text):
            return None

        best: Tuple[TaxonomyEntry, str, float] | None = None
        entry_scores: List[Tuple[TaxonomyEntry, float]] = []

        for entry in taxonomy.entries:
            entry_best = 0.0
            for label in entry.all_labels():
                score = self.normalizer.similarity(free_text, label)
                if score > entry_best:
                    entry_best = score
                if best is None or score > best[2]:
                    best = (entry, label, score)
            entry_scores.append((entry, entry_best))

        if best is None or best[2] < self.threshold:
            logger.debug(
                "No {} code for '{}' (best score {:.2f})",
                taxonomy_name,
                free_text,
                best[2] if best else 0.0,
            )
            return None

        entry, label, score = best
        tied = tuple(
            other.code for other, other_score in entry_scores
            if other.code != entry.code and other_score == score
        )
        if tied and self.config.log_ties:
            logger.warning(
                "Tied {} match for '{}': kept code {} over {} (score {:.2f})",
                taxonomy_name,
                free_text,
                entry.code,
                list(tied),
                score,
            )

        return CodeMatch(
            taxonomy=taxonomy_name,
            code=entry.code,
            name=entry.name,
            matched_label=label,
            score=score,
            tied_codes=tied,
        )

    def resolve(self, taxonomy_name: str, value: object | None) -> CodeResolution | None:
        """Resolve an extracted value (code or free text) into a :class:`CodeResolution`."""
        if value is None or isinstance(value, bool):
            return None
        raw_text = str(value).strip()
        if not raw_text:
            return None

        taxonomy = self.registry[taxonomy_name]
        passthrough = self._valid_code(taxonomy, value)
        if passthrough is not None:
            return CodeResolution(
                taxonomy=taxonomy_name,
                status=CodeStatus.RESOLVED,
                raw_text=raw_text,
                code=passthrough.code,
                name=passthrough.name,
                matched_label=passthrough.name,
                score=1.0,
            )

        match = self.map_to_code(taxonomy_name, raw_text)
        if match is None:
            logger.warning("Unrecognised {} value: '{}'", taxonomy_name, raw_text)
            return CodeResolution(
                taxonomy=taxonomy_name, status=CodeStatus.UNRESOLVED, raw_text=raw_text
            )

        logger.debug(
            "{} '{}' -> code {} (score {:.2f})", taxonomy_name, raw_text, match.code, match.score
        )
        return CodeResolution(
            taxonomy=taxonomy_name,
            status=CodeStatus.RESOLVED,
            raw_text=raw_text,
            code=match.code,
            name=match.name,
            matched_label=match.matched_label,
            score=match.score,
            tied_codes=match.tied_codes,
        )

    @staticmethod
    def _valid_code(taxonomy: Taxonomy, value: object) -> TaxonomyEntry | None:
        if isinstance(value, int):
            return taxonomy.get(value)
        if isinstance(value, float) and value.is_integer():
            return taxonomy.get(int(value))
        if isinstance(value, str) and value.strip().isdigit():
            return taxonomy.get(int(value.strip()))
        return None
